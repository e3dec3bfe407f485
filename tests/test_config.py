import json

import pytest

from lauth.config import (
    Config,
    ConfigError,
    DatabaseConfig,
    JWTConfig,
    RedisConfig,
    ServerConfig,
    load_config,
)

YAML_TEXT = """\
server:
  port: 8080
  mode: debug
  auth_enabled: true
database:
  host: localhost
  port: 5432
  user: user
  password: password
  dbname: lauth
  sslmode: disable
redis:
  host: localhost
  port: 6379
  password: password
  db: 2
jwt:
  secret: secret
  access_token_expire: 3600
  refresh_token_expire: 86400
"""


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(YAML_TEXT)
    cfg = load_config(path)
    password = "password"
    assert cfg.server == ServerConfig(port=8080, mode="debug", auth_enabled=True)
    assert cfg.database == DatabaseConfig(
        host="localhost",
        port=5432,
        user="user",
        password=password,
        dbname="lauth",
        sslmode="disable",
    )
    assert cfg.redis == RedisConfig(host="localhost", port=6379, password=password, db=2)
    assert cfg.jwt == JWTConfig(
        secret="secret", access_token_expire=3600, refresh_token_expire=86400
    )


def test_load_json_matches_yaml(tmp_path):
    yaml_path = tmp_path / "config.yml"
    yaml_path.write_text(YAML_TEXT)
    data = {
        "server": {"port": 8080, "mode": "debug", "auth_enabled": True},
        "database": {
            "host": "localhost",
            "port": 5432,
            "user": "user",
            "password": "password",
            "dbname": "lauth",
            "sslmode": "disable",
        },
        "redis": {"host": "localhost", "port": 6379, "password": "password", "db": 2},
        "jwt": {
            "secret": "secret",
            "access_token_expire": 3600,
            "refresh_token_expire": 86400,
        },
    }
    json_path = tmp_path / "config.json"
    json_path.write_text(json.dumps(data))
    assert load_config(json_path) == load_config(yaml_path)


def test_load_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[server]\nport = 9000\nmode = "release"\n')
    cfg = load_config(path)
    assert cfg.server.port == 9000
    assert cfg.server.mode == "release"
    assert cfg.database == DatabaseConfig()


def test_missing_sections_use_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(path) == Config()


def test_keys_are_case_insensitive(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("Database:\n  DBName: appdb\n  SSLMode: require\n  Port: 5433\n")
    cfg = load_config(path)
    assert cfg.database.dbname == "appdb"
    assert cfg.database.sslmode == "require"
    assert cfg.database.port == 5433


def test_weak_conversion_of_strings(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text('server:\n  port: "8081"\n  auth_enabled: "false"\nredis:\n  host: 127\n')
    cfg = load_config(path)
    assert cfg.server.port == 8081
    assert cfg.server.auth_enabled is False
    assert cfg.redis.host == "127"


def test_bad_value_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("server:\n  port: abc\n")
    with pytest.raises(ConfigError, match="failed to unmarshal config"):
        load_config(path)


def test_section_not_mapping_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("server: 12\n")
    with pytest.raises(ConfigError, match="failed to unmarshal config"):
        load_config(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="failed to read config file"):
        load_config(tmp_path / "absent.yaml")


def test_unsupported_extension_raises(tmp_path):
    path = tmp_path / "config.xyz"
    path.write_text("server: {}\n")
    with pytest.raises(ConfigError, match="unsupported config type"):
        load_config(path)


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("server: [unclosed\n")
    with pytest.raises(ConfigError, match="failed to read config file"):
        load_config(path)


def test_dsn_format():
    password = "password"
    db = DatabaseConfig(
        host="localhost",
        port=5432,
        user="user",
        password=password,
        dbname="lauth",
        sslmode="disable",
    )
    assert db.dsn() == (
        "host=localhost user=user password=password dbname=lauth port=5432 sslmode=disable"
    )