"""Rule engine: loads rules per application, caches them and evaluates data against them."""

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping

from lauth.expressions import Executor, Operator, Parser, RuleCondition
from lauth.redis_store import RedisStore, RedisStoreError

RULE_KEY_PREFIX = "rules:"
DEFAULT_EXPIRATION = timedelta(hours=24)


class RuleLoadError(Exception):
    """Raised when rules cannot be loaded from the repository or stored in the cache."""


def _condition_to_dict(condition: RuleCondition) -> dict[str, Any]:
    return {
        "field": condition.field,
        "operator": str(condition.operator),
        "value": condition.value,
    }


def _condition_from_dict(data: Mapping[str, Any]) -> RuleCondition:
    raw_operator = data.get("operator", "")
    try:
        operator: Operator | str = Operator(raw_operator)
    except ValueError:
        operator = raw_operator
    return RuleCondition(field=data.get("field", ""), operator=operator, value=data.get("value"))


@dataclass
class Rule:
    """An access rule of an application, made of conditions that must all hold."""

    id: str
    app_id: str = ""
    name: str = ""
    description: str = ""
    priority: int = 0
    is_enabled: bool = True
    conditions: list[RuleCondition] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping of the rule."""
        return {
            "id": self.id,
            "app_id": self.app_id,
            "name": self.name,
            "description": self.description,
            "priority": self.priority,
            "is_enabled": self.is_enabled,
            "conditions": [_condition_to_dict(c) for c in self.conditions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rule":
        """Build a rule from a mapping produced by :meth:`to_dict`."""
        if not isinstance(data, Mapping):
            raise ValueError("rule must be a mapping")
        return cls(
            id=data.get("id", ""),
            app_id=data.get("app_id", ""),
            name=data.get("name", ""),
            description=data.get("description", ""),
            priority=data.get("priority", 0),
            is_enabled=data.get("is_enabled", True),
            conditions=[_condition_from_dict(c) for c in data.get("conditions") or []],
        )


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class Result:
    """Outcome of evaluating data against rules."""

    allowed: bool
    rule: Rule | None = None
    data: Mapping[str, Any] | None = None
    time: datetime = field(default_factory=_now)
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping with the time in RFC 3339 form."""
        return {
            "allowed": self.allowed,
            "rule": self.rule.to_dict() if self.rule is not None else None,
            "data": dict(self.data) if self.data is not None else None,
            "time": _rfc3339(self.time),
            "error": self.error,
        }

    def to_json(self) -> str:
        """Serialise the result as JSON."""
        return json.dumps(self.to_dict())


class RuleRepository(ABC):
    """Source of persisted rules and their conditions."""

    @abstractmethod
    def get_active_rules(self, app_id: str) -> list[Rule]:
        """Return the enabled rules of an application."""

    @abstractmethod
    def get_conditions(self, rule_id: str) -> list[RuleCondition]:
        """Return the conditions of a rule."""


class RuleCache:
    """Stores the rule list of each application as JSON in a key/value store."""

    def __init__(self, store: RedisStore) -> None:
        self.store = store

    @staticmethod
    def _key(app_id: str) -> str:
        return f"{RULE_KEY_PREFIX}{app_id}"

    def get(self, app_id: str) -> list[Rule]:
        """Return the cached rules; raises :class:`KeyNotFound` on a miss."""
        payload = self.store.get(self._key(app_id))
        try:
            items = json.loads(payload)
            if items is None:
                return []
            if not isinstance(items, list):
                raise ValueError("expected a list of rules")
            return [Rule.from_dict(item) for item in items]
        except ValueError as exc:
            raise ValueError(f"failed to unmarshal rules: {exc}") from exc

    def set(
        self,
        app_id: str,
        rules: list[Rule],
        expiration: float | timedelta | None = 0,
    ) -> None:
        """Cache ``rules``; a zero expiration means the 24 hour default."""
        payload = json.dumps([rule.to_dict() for rule in rules])
        if not expiration:
            expiration = DEFAULT_EXPIRATION
        self.store.set(self._key(app_id), payload, expiration)

    def delete(self, app_id: str) -> None:
        """Drop the cached rules of an application."""
        self.store.delete(self._key(app_id))


class Engine:
    """Evaluates request data against the rules of an application."""

    def __init__(
        self,
        cache: RuleCache,
        repo: RuleRepository,
        parser: Parser | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.cache = cache
        self.repo = repo
        self.parser = parser if parser is not None else Parser()
        self.executor = executor if executor is not None else Executor()

    def evaluate(
        self,
        app_id: str,
        data: Mapping[str, Any],
        cancel_event: threading.Event | None = None,
    ) -> Result:
        """Return the first allowing rule's result, or a denial when none allows."""
        try:
            rules = self.cache.get(app_id)
        except (RedisStoreError, ValueError):
            self.load_rules(app_id)
            rules = self.cache.get(app_id)

        for rule in rules:
            if not rule.is_enabled:
                continue
            try:
                result = self.evaluate_rule(rule, data, cancel_event)
            except Exception:
                continue
            if result.allowed:
                return result

        return Result(allowed=False, data=data)

    def evaluate_rule(
        self,
        rule: Rule,
        data: Mapping[str, Any],
        cancel_event: threading.Event | None = None,
    ) -> Result:
        """Evaluate one rule; parse and evaluation errors propagate."""
        expr = self.parser.parse(rule.conditions)
        allowed = self.executor.execute(expr, data, cancel_event)
        return Result(allowed=allowed, rule=rule, data=data)

    def load_rules(self, app_id: str) -> None:
        """Load the active rules and their conditions, then cache them."""
        try:
            rules = list(self.repo.get_active_rules(app_id))
        except Exception as exc:
            raise RuleLoadError(f"failed to load rules from database: {exc}") from exc

        for rule in rules:
            try:
                rule.conditions = list(self.repo.get_conditions(rule.id))
            except Exception as exc:
                raise RuleLoadError(
                    f"failed to load conditions for rule {rule.id}: {exc}"
                ) from exc

        try:
            self.cache.set(app_id, rules, 0)
        except Exception as exc:
            raise RuleLoadError(f"failed to cache rules: {exc}") from exc

    def invalidate_cache(self, app_id: str) -> None:
        """Remove the cached rules of an application."""
        self.cache.delete(app_id)