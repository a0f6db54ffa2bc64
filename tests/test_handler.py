import json
from datetime import datetime, timezone

import pytest

from orderinfo.config import setup_rest_server
from orderinfo.handler import OrderHandler
from orderinfo.model import Delivery, FullOrder, Item, Payment
from orderinfo.order_service import OrderNotFoundError


def make_order(uid="b563feb7b2b84b6test"):
    return FullOrder(
        order_uid=uid,
        track_number="WBILMTESTTRACK",
        entry="WBIL",
        locale="en",
        customer_id="test",
        delivery_service="meest",
        shardkey="9",
        sm_id=99,
        date_created=datetime(2021, 11, 26, 6, 22, 19, tzinfo=timezone.utc),
        oof_shard="1",
        delivery=Delivery(id=1, order_uid=uid, name="Test Testov", email="test@example.com"),
        payment=Payment(transaction=uid, currency="USD", amount=1817),
        items=[Item(chrt_id=9934930, track_number="WBILMTESTTRACK", price=453)],
    )


class FakeService:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def get_order(self, order_uid):
        self.calls.append(order_uid)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def make_client():
    def build(service):
        app = setup_rest_server("127.0.0.1:8080")
        OrderHandler(service).register(app)
        return app.test_client()

    return build


def test_found_order_is_returned_as_json(make_client):
    order = make_order()
    service = FakeService(result=order)
    resp = make_client(service).get(f"/order/{order.order_uid}")
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "application/json"
    assert resp.get_json() == order.to_dict()
    assert service.calls == [order.order_uid]


def test_missing_order_gives_404(make_client):
    service = FakeService(error=OrderNotFoundError())
    resp = make_client(service).get("/order/unknown")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "не удалось найти заказ"}


def test_other_failure_gives_500(make_client):
    service = FakeService(error=RuntimeError("boom"))
    resp = make_client(service).get("/order/abc")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "ошибка получения заказа"}


def test_empty_uid_gives_400_without_lookup():
    service = FakeService(result=make_order())
    body, status, headers = OrderHandler(service).get_order_by_uid("")
    assert status == 400
    assert json.loads(body) == {"error": "параметр order_uid обязателен"}
    assert headers["Content-Type"] == "application/json"
    assert service.calls == []


def test_direct_call_returns_serialised_order():
    order = make_order("abc")
    body, status, _ = OrderHandler(FakeService(result=order)).get_order_by_uid("abc")
    assert status == 200
    assert FullOrder.from_json(body) == order.__class__.from_dict(order.to_dict())


def test_allowed_origin_is_echoed(make_client):
    order = make_order()
    origin = "http://localhost:8080"
    resp = make_client(FakeService(result=order)).get(
        f"/order/{order.order_uid}", headers={"Origin": origin}
    )
    assert resp.status_code == 200
    assert resp.headers["Access-Control-Allow-Origin"] == origin