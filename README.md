# cdsctf

Building blocks for the server side of a capture-the-flag platform. It covers
the deployment environment, site configuration, a Redis-backed JSON cache,
media file storage, the database schema, and record types with queries over
that schema.

## Modules

### `cdsctf.env`

Loads the deployment environment from a TOML file (by default
`application.toml` in the working directory).

- `load_env(path)` reads and validates the file and returns an `Env`.
- `init(path)` does the same and keeps the result; `get_env()` returns it.
- `Env` holds `axum` (`host`, `port`), `db` (`host`, `port`, `dbname`,
  `username`, `password`, `sslmode`), `queue` (`host`, `port`, `user`,
  `password`, `token`, `tls`), `cache` (`url`), `metric` (`enabled`,
  `namespace`) and `cluster` (`namespace`, `proxy` with `enabled` and
  `traffic_capture`). Every field is required and type-checked; ports must
  be in 0–65535. `DbEnv.url()` gives the PostgreSQL connection URL.
- Any missing file, invalid TOML, missing field or wrong type raises
  `EnvError`.
- `MEDIA_PATH` (`./media`) and `CAPTURE_PATH` (`./captures`) name the data
  directories.

A minimal file:

```toml
[axum]
host = "0.0.0.0"
port = 8888

[db]
host = "localhost"
port = 5432
dbname = "cdsctf"
username = "user"
password = "password"
sslmode = "disable"

[queue]
host = "localhost"
port = 4222
user = "user"
password = "password"
token = "token"
tls = false

[cache]
url = "redis://localhost:6379"

[metric]
enabled = false
namespace = "cdsctf"

[cluster]
namespace = "cdsctf-challenges"

[cluster.proxy]
enabled = false
traffic_capture = false
```

### `cdsctf.config`

Site-wide configuration as nested dataclasses: `Config` with `site`
(`SiteConfig`), `auth` (`AuthConfig` with `JwtConfig` and
`RegistrationConfig`/`EmailConfig`) and `cluster` (`ClusterConfig` with
`StrategyConfig`). `ProxyConfig` is also provided.

- `Config.from_dict(data)` builds a configuration from its JSON form; every
  field is required, and a missing field or wrong type raises `ValueError`.
  `Config.to_dict()` gives the JSON form back.
- `init(cache, fetch_stored)` returns the cached configuration; if the cache
  has none, it calls `fetch_stored()` for the stored JSON value and, if there
  is one, writes it to the cache under the key `config`.
- `get_config(cache)` returns the cached configuration, raising
  `LookupError` if there is none.

### `cdsctf.cache`

`Cache` wraps a Redis client and stores values as JSON text:
`get`, `get_del`, `set`, `set_ex` (with an expiry in seconds) and `flush`
(removes every key). Redis failures and values that cannot be encoded or
decoded raise `CacheError`. `init(url)` creates the shared cache;
`get_cache()` returns it.

### `cdsctf.media`

`MediaStore(root=Path("./media"))` keeps uploaded files below a root
directory:

- `get(path, filename)` returns the bytes, raising `MediaNotFound` if the
  file cannot be opened.
- `scan_dir(path)` lists `(name, size)` of regular files directly in a
  directory, or an empty list if it does not exist.
- `save(path, filename, data)` writes a file, creating directories.
- `delete(path, filename)` and `delete_dir(path)` remove a file or a whole
  directory if present.

Errors are `MediaError` or its subclasses `MediaNotFound` and
`MediaInternalError`. `hash(data)` returns the hex SHA-256 digest, and
`img_convert_to_webp(img)` re-encodes an image as WebP at quality 85.

### `cdsctf.assets`

`get(path, base_dir=None)` returns the bytes of an asset from `./assets`
(or `base_dir`), falling back to an `assets` directory inside the package,
or `None` if it exists in neither.

### `cdsctf.entity`

The SQLAlchemy tables `users`, `teams`, `user_teams`, `challenges`,
`configs`, `games`, `game_challenges`, `game_teams`, `pods` and
`submissions`, with their column defaults; the enums `FlagType`,
`SubmissionStatus` and `Group`; and the JSON value types `ChallengeEnv`,
`Flag` and `Nat` with `to_dict`/`from_dict`.

- `create_engine_from_env(env=None)` creates a PostgreSQL engine from the
  environment (a PostgreSQL driver for SQLAlchemy must be installed
  separately).
- `create_schema(engine)` creates missing tables.
- `insert_row(conn, table, values)` and `update_row(conn, table, key, values)`
  write a row, stamping `created_at`/`updated_at` where the table has them,
  and return it; `update_row` raises `LookupError` if no row matches.
- `save_config(conn, value, cache)` stores the configuration value and
  mirrors it into the cache.

### `cdsctf.transfer`

Record types with `from_row`, and query functions taking a SQLAlchemy
connection:

- `challenge`: `Challenge`, `find(...)`, `find_by_ids(conn, ids)`.
- `config`: `ConfigRecord`.
- `game`: `Game`, `find(...)` with `sorts` such as `"-started_at,title"`
  (unknown columns are ignored).
- `game_challenge`: `GameChallenge` with its `challenge` loaded, `find(...)`.
- `members`: `User`, `Team`, `UserTeam`, `find_users(...)`,
  `find_teams(...)`, `find_teams_by_ids(...)`, `find_teams_by_user_id(...)`,
  `find_user_teams(...)`.
- `game_team`: `GameTeam` with its `team` loaded, `find(...)` with `sorts`.
- `pod`: `Pod` with `user`, `team` and `challenge` loaded, `find(...)` with
  `is_available`.
- `submission`: `Submission` with relations loaded (and desensitized),
  `find(...)`, `get_by_challenge_ids(...)`,
  `get_by_game_id_and_team_ids(...)`.

Functions that take `page` and `size` return the matching records for that
page together with the total count before paging; `page` starts at 1.
Records that leave the server should be passed through `desensitize()`,
which clears flags, password hashes, invite tokens and container details.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from sqlalchemy import create_engine

from cdsctf import entity
from cdsctf.transfer import challenge

engine = create_engine("sqlite://")
entity.create_schema(engine)

with engine.begin() as conn:
    entity.insert_row(
        conn,
        entity.challenges,
        {
            "title": "warmup",
            "description": None,
            "category": 1,
            "tags": ["web"],
            "is_practicable": True,
            "image_name": None,
            "ports": [80],
            "envs": [],
            "flags": [entity.Flag(value="flag{example}")],
        },
    )
    found, total = challenge.find(conn, is_practicable=True, page=1, size=20)
    for item in found:
        item.desensitize()
```

With a deployment environment:

```python
from cdsctf import cache, config, env
from cdsctf.entity import create_engine_from_env, create_schema

settings = env.init("application.toml")
store = cache.init(settings.cache.url)
engine = create_engine_from_env(settings)
create_schema(engine)
site = config.get_config(store)
```

## What this package does not do

It has no HTTP server, routes, authentication middleware or command-line
entry point; it does not start or manage challenge containers in a
cluster, publish to or consume from a message queue, export metrics, or set
up logging. The `queue`, `metric` and `cluster` sections of the environment
are loaded and validated but not used by anything in the package.