import json
import logging

import pytest

from orderinfo.model import Delivery
from orderinfo.util import (
    NoRowsError,
    ServiceError,
    error_response,
    json_response,
    log_error,
)


def test_log_error_wraps_and_logs(caplog):
    cause = ValueError("boom")
    with caplog.at_level(logging.ERROR, logger="orderinfo"):
        err = log_error("context", cause)
    assert isinstance(err, ServiceError)
    assert err.cause is cause
    assert err.__cause__ is cause
    assert str(err) == "context: boom"
    assert "context: boom" in caplog.text


def test_service_error_without_cause():
    assert str(ServiceError("alone")) == "alone"


def test_no_rows_default_message():
    assert str(NoRowsError()) == "sql: no rows in result set"


def test_json_response_dict():
    body, code, headers = json_response(200, {"a": 1})
    assert code == 200
    assert headers["Content-Type"] == "application/json"
    assert json.loads(body) == {"a": 1}


def test_json_response_uses_to_dict():
    delivery = Delivery(name="Иван", city="Moscow")
    body, _, _ = json_response(201, delivery)
    assert json.loads(body.decode("utf-8")) == delivery.to_dict()


def test_json_response_rejects_unknown():
    with pytest.raises(TypeError):
        json_response(200, object())


def test_error_response():
    body, code, _ = error_response(404, "не найдено")
    assert code == 404
    assert json.loads(body.decode("utf-8")) == {"error": "не найдено"}