"""WSGI middleware for bearer-token authentication and CORS headers."""

import json
import logging
from datetime import datetime, timedelta, timezone
from http.cookies import CookieError, SimpleCookie
from typing import Any, Callable, Iterable, Protocol
from urllib.parse import unquote

logger = logging.getLogger(__name__)

BEARER_SCHEMA = "Bearer "
USER_KEY = "lauth.user"
ACCESS_FIELD = "access_token"
ACCESS_KIND = "access"
EXPIRES_HEADER = "X-Token-Expires-In"

CORS_ALLOW_HEADERS = (
    "Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, Authorization, "
    "accept, origin, Cache-Control, X-Requested-With"
)
CORS_ALLOW_METHODS = "POST, OPTIONS, GET, PUT, DELETE"

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]


class InvalidToken(Exception):
    """Raised by a token service when a token is malformed or not recognised."""


class TokenExpired(Exception):
    """Raised by a token service when a token has expired."""


class TokenRevoked(Exception):
    """Raised by a token service when a token has been revoked."""


class UserNotInContext(LookupError):
    """Raised when a request carries no authenticated user."""


class TokenValidator(Protocol):
    """Anything able to validate a token and return its claims."""

    def validate_token(self, token: str, token_type: str) -> Any:
        ...


def _merge_headers(
    headers: list[tuple[str, str]], extra: list[tuple[str, str]]
) -> list[tuple[str, str]]:
    """Return ``headers`` with each of ``extra`` replacing any header of that name."""
    names = {name.lower() for name, _ in extra}
    return [(n, v) for n, v in headers if n.lower() not in names] + list(extra)


def _json_response(start_response: Callable[..., Any], status: str, payload: Any) -> list[bytes]:
    body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    start_response(
        status,
        [
            ("Content-Type", "application/json; charset=utf-8"),
            ("Content-Length", str(len(body))),
        ],
    )
    return [body]


def _with_fraction(whole: int, fraction: int, digits: int) -> str:
    text = str(whole)
    if fraction:
        text += "." + f"{fraction:0{digits}d}".rstrip("0")
    return text


def _format_duration(span: timedelta) -> str:
    """Render a positive duration as hours, minutes and seconds, e.g. ``1h2m3.5s``."""
    micros = span // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    if micros < 1000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{_with_fraction(micros // 1000, micros % 1000, 3)}ms"
    total_seconds, frac = divmod(micros, 1_000_000)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    secs = _with_fraction(seconds, frac, 6) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}"
    if minutes:
        return f"{sign}{minutes}m{secs}"
    return f"{sign}{secs}"


def _remaining(claims: Any) -> timedelta | None:
    expires_at = getattr(claims, "expires_at", None)
    if not isinstance(expires_at, datetime):
        return None
    if expires_at.tzinfo is None:
        expires_at = expires_at.astimezone()
    return expires_at - datetime.now(timezone.utc)


class AuthMiddleware:
    """Rejects requests without a valid access token and exposes its claims."""

    def __init__(self, app: WSGIApp, token_service: TokenValidator, enabled: bool = True) -> None:
        self.app = app
        self.token_service = token_service
        self.enabled = enabled

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        if not self.enabled:
            logger.debug("auth middleware is disabled")
            return self.app(environ, start_response)

        token = self.extract_token(environ)
        if not token:
            return _json_response(start_response, "401 Unauthorized", {"error": "missing token"})

        try:
            claims = self.token_service.validate_token(token, ACCESS_KIND)
        except InvalidToken as exc:
            logger.info("token validation failed: %s", exc)
            return _json_response(start_response, "401 Unauthorized", {"error": "invalid token"})
        except TokenExpired as exc:
            logger.info("token validation failed: %s", exc)
            return _json_response(start_response, "401 Unauthorized", {"error": "token expired"})
        except TokenRevoked as exc:
            logger.info("token validation failed: %s", exc)
            return _json_response(start_response, "401 Unauthorized", {"error": "token revoked"})
        except Exception as exc:
            logger.warning("token validation failed: %s", exc)
            return _json_response(
                start_response, "500 Internal Server Error", {"error": "failed to validate token"}
            )

        extra: list[tuple[str, str]] = []
        remaining = _remaining(claims)
        if remaining is not None and remaining > timedelta(0):
            extra.append((EXPIRES_HEADER, _format_duration(remaining)))

        logger.debug("token validated successfully")
        environ[USER_KEY] = claims

        def _start(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            return start_response(status, _merge_headers(list(headers), extra), exc_info)

        return self.app(environ, _start)

    def extract_token(self, environ: dict) -> str:
        """Return the bearer token from the Authorization header or the access cookie."""
        auth = environ.get("HTTP_AUTHORIZATION", "")
        if auth.startswith(BEARER_SCHEMA):
            logger.debug("found token in Authorization header")
            return auth[len(BEARER_SCHEMA):]

        raw_cookie = environ.get("HTTP_COOKIE", "")
        if raw_cookie:
            cookies = SimpleCookie()
            try:
                cookies.load(raw_cookie)
            except CookieError as exc:
                logger.debug("unreadable cookie header: %s", exc)
            else:
                morsel = cookies.get(ACCESS_FIELD)
                if morsel is not None:
                    logger.debug("found token in cookie")
                    return unquote(morsel.value)

        logger.debug("no token found in request")
        return ""


class CORSMiddleware:
    """Adds CORS headers to every response and answers preflight requests."""

    def __init__(self, app: WSGIApp) -> None:
        self.app = app

    def _headers(self, environ: dict) -> list[tuple[str, str]]:
        headers: list[tuple[str, str]] = []
        origin = environ.get("HTTP_ORIGIN", "")
        if origin:
            headers.append(("Access-Control-Allow-Origin", origin))
        headers.extend(
            [
                ("Access-Control-Allow-Credentials", "true"),
                ("Access-Control-Allow-Headers", CORS_ALLOW_HEADERS),
                ("Access-Control-Allow-Methods", CORS_ALLOW_METHODS),
            ]
        )
        return headers

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        extra = self._headers(environ)
        if environ.get("REQUEST_METHOD") == "OPTIONS":
            start_response("204 No Content", extra)
            return [b""]

        def _start(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            return start_response(status, _merge_headers(list(headers), extra), exc_info)

        return self.app(environ, _start)


def get_user(environ: dict) -> Any:
    """Return the claims stored by :class:`AuthMiddleware`, or ``None``."""
    return environ.get(USER_KEY)


def require_user(environ: dict) -> Any:
    """Return the stored claims; raise :class:`UserNotInContext` if there are none."""
    claims = get_user(environ)
    if claims is None:
        raise UserNotInContext("user not found in context")
    return claims