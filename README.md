# orderinfo

A small service that answers questions about orders.

Orders live in a SQL database as four related tables (`orders`,
`deliveries`, `payments`, `items`). The service keeps whole orders in Redis
and serves them over a JSON HTTP API. It also holds the logic that applies
`create`, `update` and `delete` order events and answers each one with a
reply message.

## Install

```
pip install .
```

The database is reached through SQLAlchemy, so the driver SQLAlchemy needs
for your database URL (for PostgreSQL, for example) must be installed as well.

For running the tests:

```
pip install ".[test]"
pytest
```

## Configuration

The command reads `config.yaml` from the current directory, or the file
given with `--config`:

```yaml
databaseConfig:
  dsn: "sqlite:///orders.db"
redisConfig:
  address: "localhost:6379"
  password: "password"
  database: 0
  ttl: 3600
serverAddr: ":8081"
kafka:
  consumer:
    brokers: ["localhost:9092"]
    groupID: "orders"
    topic: "orders"
  producer:
    brokers: ["localhost:9092"]
    topic: "orders-responses"
```

- `dsn` is either a SQLAlchemy URL (`postgres://` is accepted and read as
  `postgresql://`) or a keyword string such as
  `host=localhost port=5432 user=user password=password dbname=orders`,
  which is turned into a PostgreSQL URL.
- `ttl` is how many seconds an order stays cached; `0` means no expiry.
- `serverAddr` is `host:port`; an empty host listens on all interfaces.
- `kafka.producer.topic` is the topic event replies are addressed to.

The tables must already exist; the package does not create them. Deleting an
order removes only its `orders` row, so the schema should cascade deletes to
the other tables.

## Running

```
orderinfo
orderinfo --config path/to/config.yaml
```

On start the command connects to the database and pings Redis, loads every
stored order into the cache in one pipeline, and serves HTTP on
`serverAddr`. SIGINT or SIGTERM stops the HTTP server and then closes the
connections. The exit status is `0` after a clean stop and `1` when
configuration, a connection or the cache preload fails.

## HTTP API

`GET /order/<order_uid>` returns the full order as JSON: the order header
fields together with `delivery`, `payment` and `items` (each left out when
absent).

- `200` with the order. It comes from the cache when present, otherwise from
  the database, after which it is cached.
- `404` with `{"error": "..."}` when no such order exists.
- `500` with `{"error": "..."}` on any other failure.

Responses carry CORS headers for the origins `http://localhost:8080`,
`http://127.0.0.1:8080` and `http://localhost:63342`, and preflight
`OPTIONS` requests are answered.

## What the command does not do

The package contains no client for a message broker. The `orderinfo`
command reads the `kafka` section but connects to no broker: it logs a
warning, and its event consumer stops at once, so no order events are
received or answered while it runs. Orders can only be read over HTTP.

To handle events, supply your own reader and writer (see below).

## Order events

An event is a JSON object:

```json
{"event": "create", "order": {"order_uid": "b563feb7b2b84b6test", "...": "..."}}
```

`event` is one of `create`, `update` or `delete`. The order must carry an
`order_uid`, a `delivery`, a `payment`, at least one item and a valid
`date_created` (RFC 3339). `create` refuses an order that already exists;
`update` changes the order header, delivery and payment; `delete` removes
the order. The cache is updated to match.

For every handled event a reply is written to the response topic:

```json
{"event": "create_success", "order_uid": "b563feb7b2b84b6test", "error": "", "timestamp": "2024-01-01T12:00:00+00:00"}
```

On failure the event name ends in `_error` and `error` holds the reason.
Messages that are not valid JSON are answered with the event `invalid_json`.
Events that fail validation get no reply. `KafkaService.consume_messages`
hands each message to the handler up to three times, waiting one and then
two seconds between attempts.

## Using it from Python

```python
from orderinfo.config import load_config
from orderinfo.model import FullOrder

cfg = load_config("config.yaml")

order = FullOrder.from_json(text)   # text: an order document as JSON
print(order.to_json())
```

Wiring the service with your own broker client:

```python
import threading

from orderinfo.app import build_order_service, start_consumer
from orderinfo.config import setup_database, setup_redis

database = setup_database(cfg.database_config.dsn)
redis_client = setup_redis(cfg.redis_config)
service = build_order_service(database, redis_client, cfg.redis_config.ttl, writer, reader)

stop = threading.Event()
thread = start_consumer(service, cfg.kafka_config.producer.topic, stop)
```

`writer` must provide `write_messages(*messages)` and `close()`, and
`reader` must provide `read_message(timeout)` (returning an
`orderinfo.ports.Message` or `None`, and raising `EOFError` once closed) and
`close()`; these are the `MessageWriter` and `MessageReader` protocols in
`orderinfo.ports`. `OrderHandler(service).register(app)` adds the HTTP route
to a Flask application such as the one `orderinfo.config.setup_rest_server`
returns, and `orderinfo.app.run_server` serves it until a stop event is set
or a signal arrives.