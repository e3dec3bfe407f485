# lauth

Building blocks for a rule-based authorization service. The package has
configuration loading, a Redis key/value store, a rule expression language,
a rule engine with a Redis-backed cache, and WSGI middleware for bearer-token
authentication and CORS.

## Installation

```
pip install lauth
```

## Modules

### `lauth.config`

`load_config(path)` reads a configuration file into a `Config`. The file
suffix picks the format: `.yaml`/`.yml`, `.json` or `.toml`. `Config` has four
sections:

- `server` (`ServerConfig`: `port`, `mode`, `auth_enabled`)
- `database` (`DatabaseConfig`: `host`, `port`, `user`, `password`, `dbname`, `sslmode`)
- `redis` (`RedisConfig`: `host`, `port`, `password`, `db`)
- `jwt` (`JWTConfig`: `secret`, `access_token_expire`, `refresh_token_expire`)

Section and key names are matched case-insensitively. Missing sections and
keys keep their defaults: empty strings, zero, or `False`. Numbers and booleans
given as strings are converted. A file that cannot be read, has an unsupported
suffix, or holds values of the wrong type raises `ConfigError`.

`DatabaseConfig.dsn()` returns a PostgreSQL key/value connection string:

```
host=db user=app password=password dbname=lauth port=5432 sslmode=disable
```

Example YAML file:

```yaml
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
  password: ""
  db: 0
jwt:
  secret: secret
  access_token_expire: 3600
  refresh_token_expire: 86400
```

### `lauth.redis_store`

`RedisStore.connect(redis_config)` creates a Redis client with 5-second
timeouts and pings the server. If the server does not answer, it raises
`RedisStoreError`. `RedisStore(client)` wraps an existing client.

- `set(key, value, expiration=0)` stores a value. `expiration` is in seconds
  or a `timedelta`. Zero or `None` means no expiry. A negative value keeps the
  key's existing TTL.
- `get(key)` returns the value as a string. A missing key raises
  `KeyNotFound`, which is both a `RedisStoreError` and a `KeyError`.
- `delete(*keys)` removes keys.
- `exists(key)` returns a bool.

Redis errors are re-raised as `RedisStoreError`.

### `lauth.expressions`

A `RuleCondition(field, operator, value)` tests one field of a data mapping.
`Parser().parse(conditions)` turns a list of conditions into an
`AndExpression` of `FieldExpression`s. The result is true only when every
condition holds. It raises `ParseError` if the list is empty or an operator
is unknown.

`Executor().execute(expr, data, cancel_event=None)` evaluates an expression.
If the given `threading.Event` is already set, it raises
`ExecutionCancelled`.

Operators (`Operator` values):

| Operator                | value          | shown as       |
|-------------------------|----------------|----------------|
| `EQUAL`                 | `eq`           | `==`           |
| `NOT_EQUAL`             | `ne`           | `!=`           |
| `GREATER_THAN`          | `gt`           | `>`            |
| `GREATER_THAN_OR_EQUAL` | `gte`          | `>=`           |
| `LESS_THAN`             | `lt`           | `<`            |
| `LESS_THAN_OR_EQUAL`    | `lte`          | `<=`           |
| `IN`                    | `in`           | `IN`           |
| `NOT_IN`                | `not_in`       | `NOT IN`       |
| `CONTAINS`              | `contains`     | `CONTAINS`     |
| `NOT_CONTAINS`          | `not_contains` | `NOT CONTAINS` |

Rules for each operator:

- **Equality.** Equality and membership require both values to have the same
  type, so `1` does not equal `1.0` or `True`.
- **Ordering.** `compare_values(a, b)` orders two ints, two floats or two
  strings. Any other pair compares as equal, so ordering operators treat it
  as equal.
- **`IN` / `NOT_IN`.** These need a list or tuple as the condition value.
- **`CONTAINS` / `NOT_CONTAINS`.** On a string field these do a substring
  test. On a list field they do a membership test.
- **Errors.** Any other field type raises `EvaluationError`. So does a field
  that is missing from the data.

```python
from lauth.expressions import Executor, Operator, Parser, RuleCondition

conditions = [
    RuleCondition(field="role", operator=Operator.EQUAL, value="admin"),
    RuleCondition(field="age", operator=Operator.GREATER_THAN_OR_EQUAL, value=18),
]
expr = Parser().parse(conditions)
print(str(expr))  # (role == admin AND age >= 18)
print(Executor().execute(expr, {"role": "admin", "age": 30}))  # True
```

### `lauth.engine`

The rule data types:

- `Rule` holds `id`, `app_id`, `name`, `description`, `priority`,
  `is_enabled` and `conditions`. Use `to_dict()` / `from_dict()` to convert it.
- `Result` holds `allowed`, `rule`, `data`, `time` and `error`. `to_dict()` and
  `to_json()` render `time` in RFC 3339 form.

`RuleRepository` is an abstract class. Implement `get_active_rules(app_id)`
and `get_conditions(rule_id)` to supply rules.

`RuleCache(store)` keeps each application's rules as JSON under the key
`rules:<app_id>`. Its methods are `get`, `set` and `delete`. An expiration of
zero means the 24-hour default.

`Engine(cache, repo, parser=None, executor=None)` has these methods:

- `evaluate(app_id, data, cancel_event=None)` reads the rules from the cache.
  On a miss it calls `load_rules` and reads the cache again. It then evaluates
  the enabled rules in the order they are stored. A rule that fails to parse
  or evaluate is skipped. The first allowing rule's `Result` is returned. If
  no rule allows the data, it returns a denial with no rule.
- `evaluate_rule(rule, data, cancel_event=None)` evaluates one rule. Errors
  propagate.
- `load_rules(app_id)` fetches the active rules and their conditions from the
  repository and caches them. Failures raise `RuleLoadError`.
- `invalidate_cache(app_id)` drops the cached rules.

### `lauth.middleware`

`AuthMiddleware(app, token_service, enabled=True)` is WSGI middleware. It
reads the token from an `Authorization: Bearer <token>` header, or from the
`access_token` cookie if there is no such header. It then calls
`token_service.validate_token(token, "access")`.

Responses when validation fails:

| Condition                 | Status | JSON body                              |
|---------------------------|--------|----------------------------------------|
| No token                  | 401    | `{"error":"missing token"}`            |
| `InvalidToken` raised     | 401    | `{"error":"invalid token"}`            |
| `TokenExpired` raised     | 401    | `{"error":"token expired"}`            |
| `TokenRevoked` raised     | 401    | `{"error":"token revoked"}`            |
| Any other exception       | 500    | `{"error":"failed to validate token"}` |

On success the claims are stored in the environ. If the claims have an
`expires_at` datetime in the future, the response gets an
`X-Token-Expires-In` header such as `59m59.5s`. With `enabled=False` every
request passes straight through.

`get_user(environ)` returns the stored claims or `None`.
`require_user(environ)` raises `UserNotInContext` when there are none.

`CORSMiddleware(app)` adds these headers to every response:

- `Access-Control-Allow-Origin`, echoing the request's `Origin`
- `Access-Control-Allow-Credentials`
- `Access-Control-Allow-Headers`
- `Access-Control-Allow-Methods`

It answers `OPTIONS` requests itself with `204 No Content`.

## What the package does not do

- **No command or server.** The package has no command-line program and no
  HTTP server or routes. The middleware must wrap a WSGI application that you
  supply.
- **No token service.** It does not issue or check tokens itself. You pass an
  object with `validate_token`.
- **No rule storage.** It does not store rules in a database.
  `RuleRepository` must be implemented by the caller.
  `DatabaseConfig.dsn()` only builds a connection string; it opens no
  connection.

## Running the tests

```
pip install -e ".[test]"
pytest
```