"""Service entry point: wires storage, cache, broker and the HTTP server."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from concurrent.futures import CancelledError
from datetime import timedelta
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from orderinfo.cache_repository import CacheRepository
from orderinfo.config import load_config, parse_address, setup_database, setup_redis, setup_rest_server
from orderinfo.delivery_repository import DeliveryRepository
from orderinfo.handler import OrderHandler
from orderinfo.items_repository import ItemsRepository
from orderinfo.kafka_service import KafkaService
from orderinfo.order_service import OrderService
from orderinfo.orders_repository import OrderRepository
from orderinfo.payment_repository import PaymentRepository
from orderinfo.util import ServiceError

logger = logging.getLogger("orderinfo")


class _ThreadingServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True
    allow_reuse_address = True


class _RequestHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def build_order_service(
    database: Any,
    redis_client: Any,
    ttl: float | timedelta,
    producer: Any,
    consumer: Any,
) -> OrderService:
    """Assemble the repositories and services around the given clients."""
    delivery_repo = DeliveryRepository(database)
    items_repo = ItemsRepository(database)
    payment_repo = PaymentRepository(database)
    order_repo = OrderRepository(database, delivery_repo, payment_repo, items_repo)
    cache_repo = CacheRepository(redis_client, ttl)
    kafka_service = KafkaService(producer, consumer)
    return OrderService(cache_repo, order_repo, kafka_service)


def start_consumer(
    order_service: OrderService, response_topic: str, stop: threading.Event
) -> threading.Thread:
    """Start a thread that feeds broker messages to the order service."""

    def consume() -> None:
        handler = order_service.handle_kafka_message(response_topic)
        try:
            order_service.kafka_service.consume_messages(handler, stop)
        except CancelledError:
            logger.info("Kafka consumer остановлен")
        except Exception as exc:
            logger.error("Kafka consumer завершился с ошибкой: %s", exc)
        else:
            logger.info("Kafka consumer остановлен")

    thread = threading.Thread(target=consume, name="kafka-consumer", daemon=True)
    thread.start()
    return thread


def _install_signal_handlers(stop: threading.Event) -> dict[int, Any]:
    if threading.current_thread() is not threading.main_thread():
        return {}

    def on_signal(signum: int, frame: Any) -> None:
        logger.info("получен сигнал %s, завершаем работу...", signal.Signals(signum).name)
        stop.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, on_signal)
    return previous


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def run_server(
    app: Any,
    addr: str,
    kafka_service: Any,
    consumer_thread: threading.Thread | None,
    stop: threading.Event,
) -> None:
    """Serve ``app`` on ``addr`` until ``stop`` is set or a signal arrives, then shut down."""
    host, port = parse_address(addr)
    server = make_server(
        host, port, app, server_class=_ThreadingServer, handler_class=_RequestHandler
    )
    failures: list[BaseException] = []

    def serve() -> None:
        logger.info("Сервер запущен на %s", addr)
        print("_" * 52)
        try:
            server.serve_forever(poll_interval=0.2)
        except Exception as exc:
            failures.append(exc)
            stop.set()

    server_thread = threading.Thread(target=serve, name="http-server", daemon=True)
    server_thread.start()

    previous = _install_signal_handlers(stop)
    try:
        while not stop.wait(0.2):
            pass
    finally:
        _restore_signal_handlers(previous)

    if failures:
        server.server_close()
        raise ServiceError("ошибка работы сервера", failures[0])

    try:
        server.shutdown()
        server.server_close()
        server_thread.join(5)
    except Exception as exc:
        logger.error("ошибка при остановке сервера: %s", exc)
    else:
        logger.info("сервер успешно остановлен")

    try:
        kafka_service.close()
    except Exception as exc:
        logger.error("ошибка при остановке Kafka service: %s", exc)
    if consumer_thread is not None:
        consumer_thread.join()

    logger.info("Работа всех сервисов успешно завершена")


def main(argv: list[str] | None = None) -> int:
    """Run the order information service; return the process exit status."""
    parser = argparse.ArgumentParser(prog="orderinfo", description="Order information service")
    parser.add_argument("--config", default="config.yaml", help="path to the YAML configuration")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    try:
        cfg = load_config(args.config)
    except Exception as exc:
        logger.error("ошибка загрузки конфига: %s", exc)
        return 1

    try:
        database = setup_database(cfg.database_config.dsn)
    except Exception as exc:
        logger.error("не удалось подключиться к БД: %s", exc)
        return 1

    try:
        try:
            redis_client = setup_redis(cfg.redis_config)
        except Exception as exc:
            logger.error("ошибка подключения к Redis: %s", exc)
            return 1
        try:
            return _serve(cfg, database, redis_client)
        finally:
            try:
                redis_client.close()
            except Exception as exc:
                logger.error("ошибка при закрытии Redis: %s", exc)
    finally:
        try:
            database.close()
        except Exception as exc:
            logger.error("ошибка при закрытии БД: %s", exc)


def _serve(cfg: Any, database: Any, redis_client: Any) -> int:
    ttl = timedelta(seconds=cfg.redis_config.ttl)
    logger.warning("клиент брокера сообщений не настроен, обмен событиями недоступен")
    order_service = build_order_service(database, redis_client, ttl, None, None)

    try:
        order_service.preload_cache(ttl)
    except Exception as exc:
        logger.error("ошибка предзагрузки кеша: %s", exc)
        return 1
    logger.info("кеш загружен, запускаем сервер")

    stop = threading.Event()
    consumer_thread = start_consumer(order_service, cfg.kafka_config.producer.topic, stop)

    app = setup_rest_server(cfg.server_addr)
    OrderHandler(order_service).register(app)

    try:
        run_server(app, cfg.server_addr, order_service.kafka_service, consumer_thread, stop)
    except Exception as exc:
        stop.set()
        logger.error("ошибка работы сервера: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())