"""Rule-based authorization: configuration, Redis store, rule expressions and engine, WSGI middleware."""

__version__ = "0.1.0"

__all__ = ["config", "redis_store", "expressions", "engine", "middleware"]