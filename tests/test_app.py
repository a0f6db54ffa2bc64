import json
import socket
import threading
import time
import urllib.request
from datetime import datetime, timedelta, timezone

import pytest

from orderinfo.app import build_order_service, main, run_server, start_consumer
from orderinfo.cache_repository import CacheRepository
from orderinfo.config import setup_rest_server
from orderinfo.kafka_service import KafkaService
from orderinfo.model import Delivery, FullOrder, Item, Payment
from orderinfo.order_service import OrderService
from orderinfo.orders_repository import OrderRepository
from orderinfo.ports import Message


class FakeReader:
    def __init__(self, messages=()):
        self.messages = list(messages)
        self.closed = False
        self.lock = threading.Lock()

    def read_message(self, timeout):
        if self.closed:
            raise EOFError
        with self.lock:
            if self.messages:
                return self.messages.pop(0)
        time.sleep(0.01)
        return None

    def close(self):
        self.closed = True


class FakeWriter:
    def __init__(self):
        self.sent = []
        self.closed = False

    def write_messages(self, *messages):
        self.sent.extend(messages)

    def close(self):
        self.closed = True


class FakeOrderRepo:
    def __init__(self):
        self.deleted = []

    def delete_order(self, order_uid):
        self.deleted.append(order_uid)


class FakeCache:
    def __init__(self):
        self.deleted = []

    def delete_order(self, order_uid):
        self.deleted.append(order_uid)


def make_order(uid="order-1"):
    return FullOrder(
        order_uid=uid,
        track_number="TRACK",
        date_created=datetime(2021, 11, 26, 6, 22, 19, tzinfo=timezone.utc),
        delivery=Delivery(name="Test Testov"),
        payment=Payment(transaction=uid),
        items=[Item(chrt_id=1)],
    )


def free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_build_order_service_wires_components():
    database = object()
    redis_client = object()
    producer, consumer = FakeWriter(), FakeReader()
    service = build_order_service(database, redis_client, 30, producer, consumer)
    assert isinstance(service, OrderService)
    assert isinstance(service.cache_repository, CacheRepository)
    assert service.cache_repository.client is redis_client
    assert service.cache_repository.ttl == timedelta(seconds=30)
    assert isinstance(service.order_repository, OrderRepository)
    assert service.order_repository.database is database
    assert service.order_repository.delivery_repo.database is database
    assert service.kafka_service.producer is producer
    assert service.kafka_service.consumer is consumer


def test_consumer_thread_handles_event_and_replies():
    order = make_order()
    payload = json.dumps({"event": "delete", "order": order.to_dict()}).encode()
    reader, writer = FakeReader([Message(value=payload, topic="orders")]), FakeWriter()
    repo, cache = FakeOrderRepo(), FakeCache()
    service = OrderService(cache, repo, KafkaService(writer, reader))
    stop = threading.Event()
    thread = start_consumer(service, "responses", stop)
    try:
        assert wait_for(lambda: writer.sent)
    finally:
        stop.set()
        thread.join(5)
    assert not thread.is_alive()
    assert repo.deleted == [order.order_uid]
    assert cache.deleted == [order.order_uid]
    reply = writer.sent[0]
    assert reply.topic == "responses"
    body = json.loads(reply.value)
    assert body["event"] == "delete_success"
    assert body["order_uid"] == order.order_uid


def test_consumer_thread_stops_when_reader_closes():
    reader, writer = FakeReader(), FakeWriter()
    service = OrderService(FakeCache(), FakeOrderRepo(), KafkaService(writer, reader))
    thread = start_consumer(service, "responses", threading.Event())
    reader.close()
    thread.join(5)
    assert not thread.is_alive()
    assert writer.sent == []


def test_run_server_serves_until_stopped_and_closes_kafka():
    port = free_port()
    app = setup_rest_server(f"127.0.0.1:{port}")
    app.add_url_rule("/ping", "ping", lambda: "pong")
    reader, writer = FakeReader(), FakeWriter()
    kafka = KafkaService(writer, reader)
    service = OrderService(FakeCache(), FakeOrderRepo(), kafka)
    stop = threading.Event()
    consumer_thread = start_consumer(service, "responses", stop)
    results = []

    def client():
        try:
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                try:
                    with urllib.request.urlopen(f"http://127.0.0.1:{port}/ping", timeout=1) as resp:
                        results.append((resp.status, resp.read()))
                    break
                except OSError:
                    time.sleep(0.05)
        finally:
            stop.set()

    client_thread = threading.Thread(target=client)
    client_thread.start()
    run_server(app, f"127.0.0.1:{port}", kafka, consumer_thread, stop)
    client_thread.join(5)

    assert results == [(200, b"pong")]
    assert reader.closed and writer.closed
    assert not consumer_thread.is_alive()


def test_run_server_rejects_bad_address():
    app = setup_rest_server("bad")
    with pytest.raises(ValueError):
        run_server(app, "bad", KafkaService(None, None), None, threading.Event())


def test_main_fails_without_config(tmp_path):
    assert main(["--config", str(tmp_path / "missing.yaml")]) == 1


def test_main_fails_on_bad_redis_address(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "databaseConfig:\n  dsn: 'sqlite://'\n"
        "redisConfig:\n  address: 'bad'\n  ttl: 60\n"
        "serverAddr: '127.0.0.1:0'\n",
        encoding="utf-8",
    )
    assert main(["--config", str(config)]) == 1