"""Application configuration loaded from YAML, JSON or TOML files."""

import json
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or decoded."""


@dataclass
class ServerConfig:
    """HTTP server settings."""

    port: int = 0
    mode: str = ""
    auth_enabled: bool = False


@dataclass
class DatabaseConfig:
    """PostgreSQL connection settings."""

    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""
    dbname: str = ""
    sslmode: str = ""

    def dsn(self) -> str:
        """Return the libpq key/value connection string."""
        return (
            f"host={self.host} user={self.user} password={self.password} "
            f"dbname={self.dbname} port={self.port} sslmode={self.sslmode}"
        )


@dataclass
class RedisConfig:
    """Redis connection settings."""

    host: str = ""
    port: int = 0
    password: str = ""
    db: int = 0


@dataclass
class JWTConfig:
    """Token signing settings."""

    secret: str = ""
    access_token_expire: int = 0
    refresh_token_expire: int = 0


@dataclass
class Config:
    """Complete application configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    jwt: JWTConfig = field(default_factory=JWTConfig)


_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False"}


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if value == "":
            return 0
        try:
            return int(value, 0)
        except ValueError:
            raise ValueError(f"cannot parse {value!r} as int") from None
    raise ValueError(f"expected an int, got {type(value).__name__}")


def _to_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value == "":
            return False
        if value in _TRUE_WORDS:
            return True
        if value in _FALSE_WORDS:
            return False
        raise ValueError(f"cannot parse {value!r} as bool")
    raise ValueError(f"expected a bool, got {type(value).__name__}")


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    raise ValueError(f"expected a string, got {type(value).__name__}")


_CONVERTERS: dict[type, Callable[[Any], Any]] = {
    int: _to_int,
    bool: _to_bool,
    str: _to_str,
}


def _lower_keys(section: Mapping[Any, Any]) -> dict[str, Any]:
    return {str(key).lower(): value for key, value in section.items()}


def _build(cls: type, section: Any, name: str) -> Any:
    if section is None:
        return cls()
    if not isinstance(section, Mapping):
        raise ValueError(f"'{name}' must be a mapping")
    values = _lower_keys(section)
    kwargs = {}
    for f in fields(cls):
        if f.name in values:
            try:
                kwargs[f.name] = _CONVERTERS[f.type](values[f.name])
            except ValueError as exc:
                raise ValueError(f"'{name}.{f.name}': {exc}") from None
    return cls(**kwargs)


def _read(path: Path) -> Any:
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        with path.open("r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    if suffix == ".json":
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    if suffix == ".toml":
        with path.open("rb") as fh:
            return tomllib.load(fh)
    raise ConfigError(f'failed to read config file: unsupported config type "{suffix.lstrip(".")}"')


def load_config(config_path: str | Path) -> Config:
    """Read the configuration file at ``config_path`` into a :class:`Config`."""
    path = Path(config_path)
    try:
        raw = _read(path)
    except ConfigError:
        raise
    except (OSError, ValueError, yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"failed to read config file: {exc}") from exc

    if raw is None:
        raw = {}
    try:
        if not isinstance(raw, Mapping):
            raise ValueError("top level must be a mapping")
        top = _lower_keys(raw)
        return Config(
            server=_build(ServerConfig, top.get("server"), "server"),
            database=_build(DatabaseConfig, top.get("database"), "database"),
            redis=_build(RedisConfig, top.get("redis"), "redis"),
            jwt=_build(JWTConfig, top.get("jwt"), "jwt"),
        )
    except ValueError as exc:
        raise ConfigError(f"failed to unmarshal config: {exc}") from exc