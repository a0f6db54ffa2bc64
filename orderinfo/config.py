"""Application configuration and set-up of database, cache and HTTP server."""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any

import redis
import sqlalchemy
import yaml
from flask import Flask, Response, request

from orderinfo.util import ServiceError

logger = logging.getLogger("orderinfo")

ALLOWED_ORIGINS = ("http://localhost:8080", "http://127.0.0.1:8080", "http://localhost:63342")
ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
ALLOWED_HEADERS = ("Accept", "Authorization", "Content-Type", "X-CSRF-Token")
EXPOSED_HEADERS = ("Link",)
CORS_MAX_AGE = 300


def _section(data: Any, key: str) -> dict:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


@dataclass
class DatabaseConfig:
    dsn: str = ""


@dataclass
class RedisConfig:
    address: str = ""
    password: str = ""
    database: int = 0
    ttl: int = 0


@dataclass
class KafkaConsumerConfig:
    brokers: list[str] = field(default_factory=list)
    group_id: str = ""
    topic: str = ""


@dataclass
class KafkaProducerConfig:
    brokers: list[str] = field(default_factory=list)
    topic: str = ""


@dataclass
class KafkaConfig:
    consumer: KafkaConsumerConfig = field(default_factory=KafkaConsumerConfig)
    producer: KafkaProducerConfig = field(default_factory=KafkaProducerConfig)


@dataclass
class AppConfig:
    database_config: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis_config: RedisConfig = field(default_factory=RedisConfig)
    server_addr: str = ""
    kafka_config: KafkaConfig = field(default_factory=KafkaConfig)

    @classmethod
    def from_dict(cls, data: Any) -> AppConfig:
        db = _section(data, "databaseConfig")
        rc = _section(data, "redisConfig")
        kafka = _section(data, "kafka")
        cons = _section(kafka, "consumer")
        prod = _section(kafka, "producer")
        return cls(
            database_config=DatabaseConfig(dsn=str(db.get("dsn") or "")),
            redis_config=RedisConfig(
                address=str(rc.get("address") or ""),
                password=str(rc.get("password") or ""),
                database=int(rc.get("database") or 0),
                ttl=int(rc.get("ttl") or 0),
            ),
            server_addr=str((data or {}).get("serverAddr") or ""),
            kafka_config=KafkaConfig(
                consumer=KafkaConsumerConfig(
                    brokers=[str(b) for b in cons.get("brokers") or []],
                    group_id=str(cons.get("groupID") or ""),
                    topic=str(cons.get("topic") or ""),
                ),
                producer=KafkaProducerConfig(
                    brokers=[str(b) for b in prod.get("brokers") or []],
                    topic=str(prod.get("topic") or ""),
                ),
            ),
        )


def load_config(path: str) -> AppConfig:
    """Read a YAML configuration file."""
    with open(path, encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is not None and not isinstance(data, dict):
        raise ValueError("configuration must be a mapping")
    return AppConfig.from_dict(data or {})


class Database:
    """A SQL database reached through a SQLAlchemy engine."""

    def __init__(self, engine: sqlalchemy.engine.Engine) -> None:
        self.engine = engine

    def connect(self) -> AbstractContextManager:
        return self.engine.connect()

    def transaction(self) -> AbstractContextManager:
        """Open a connection inside a transaction committed on success."""
        return self.engine.begin()

    def close(self) -> None:
        try:
            self.engine.dispose()
        except Exception as exc:
            raise ServiceError("ошибка закрытия соединения с БД", exc) from exc


def new_database_connection(url: str) -> Database:
    """Create an engine for ``url`` and check that the database answers."""
    try:
        engine = sqlalchemy.create_engine(url)
    except Exception as exc:
        raise ServiceError("ошибка подключения к БД", exc) from exc
    try:
        with engine.connect() as conn:
            conn.execute(sqlalchemy.text("SELECT 1"))
    except Exception as exc:
        engine.dispose()
        raise ServiceError("ошибка пинга БД", exc) from exc
    logger.info("подключение к БД выполнено успешно. Драйвер: %s", engine.dialect.name)
    return Database(engine)


def _dsn_to_url(dsn: str) -> str:
    if "://" in dsn:
        scheme, rest = dsn.split("://", 1)
        if scheme in ("postgres", "postgresql"):
            return "postgresql://" + rest
        return dsn
    params = dict(part.split("=", 1) for part in dsn.split() if "=" in part)
    url = sqlalchemy.engine.URL.create(
        "postgresql",
        username=params.pop("user", None),
        password=params.pop("password", None),
        host=params.pop("host", None),
        port=int(params.pop("port")) if "port" in params else None,
        database=params.pop("dbname", None),
        query=params,
    )
    return url.render_as_string(hide_password=False)


def setup_database(dsn: str) -> Database:
    return new_database_connection(_dsn_to_url(dsn))


class RedisClient:
    """A connected Redis client."""

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    def close(self) -> None:
        try:
            self.client.close()
        except Exception as exc:
            raise ServiceError("ошибка закрытия соединения с БД Redis'а", exc) from exc


def new_redis_client(cfg: RedisConfig) -> RedisClient:
    """Connect to Redis and ping it with a two second timeout."""
    host, port = parse_address(cfg.address)
    client = redis.Redis(
        host=host,
        port=port,
        password=cfg.password or None,
        db=cfg.database,
        socket_timeout=2,
        socket_connect_timeout=2,
    )
    try:
        client.ping()
    except Exception as exc:
        client.close()
        raise ServiceError("ошибка пинга БД Redis'а", exc) from exc
    return RedisClient(client)


def setup_redis(cfg: RedisConfig) -> RedisClient:
    return new_redis_client(cfg)


def parse_address(addr: str) -> tuple[str, int]:
    """Split ``host:port``; an empty host means all interfaces."""
    host, sep, port_text = addr.rpartition(":")
    if not sep or not port_text.isdigit():
        raise ValueError(f"invalid address: {addr!r}")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"invalid port in address: {addr!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port


def setup_rest_server(addr: str) -> Flask:
    """Create the Flask application with the CORS policy applied."""
    app = Flask("orderinfo")
    app.config["SERVER_ADDR"] = addr
    allowed_headers = {h.lower() for h in ALLOWED_HEADERS}

    @app.before_request
    def _preflight():
        if request.method != "OPTIONS" or "Access-Control-Request-Method" not in request.headers:
            return None
        resp = Response(status=200)
        resp.headers.add("Vary", "Origin")
        resp.headers.add("Vary", "Access-Control-Request-Method")
        resp.headers.add("Vary", "Access-Control-Request-Headers")
        origin = request.headers.get("Origin", "")
        method = request.headers["Access-Control-Request-Method"].upper()
        requested = [
            h.strip() for h in request.headers.get("Access-Control-Request-Headers", "").split(",")
            if h.strip()
        ]
        if (
            origin in ALLOWED_ORIGINS
            and method in ALLOWED_METHODS
            and all(h.lower() in allowed_headers for h in requested)
        ):
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Access-Control-Allow-Methods"] = method
            if requested:
                resp.headers["Access-Control-Allow-Headers"] = ", ".join(requested)
            resp.headers["Access-Control-Allow-Credentials"] = "true"
            resp.headers["Access-Control-Max-Age"] = str(CORS_MAX_AGE)
        return resp

    @app.after_request
    def _cors(resp: Response) -> Response:
        if "Access-Control-Request-Method" in request.headers and request.method == "OPTIONS":
            return resp
        resp.headers.add("Vary", "Origin")
        origin = request.headers.get("Origin", "")
        if origin in ALLOWED_ORIGINS and request.method in ALLOWED_METHODS:
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Access-Control-Allow-Credentials"] = "true"
            resp.headers["Access-Control-Expose-Headers"] = ", ".join(EXPOSED_HEADERS)
        return resp

    return app