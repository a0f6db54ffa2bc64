"""HTTP handler that serves orders by their uid."""

from __future__ import annotations

import logging
from typing import Any

from orderinfo.order_service import OrderNotFoundError
from orderinfo.util import error_response, json_response

logger = logging.getLogger("orderinfo")


class OrderHandler:
    """Serves ``GET /order/<order_uid>`` from an order service."""

    def __init__(self, order_service: Any) -> None:
        self.order_service = order_service

    def get_order_by_uid(self, order_uid: str) -> tuple[bytes, int, dict[str, str]]:
        """Return the order as a JSON response, or a JSON error response."""
        if not order_uid:
            return error_response(400, "параметр order_uid обязателен")
        try:
            order = self.order_service.get_order(order_uid)
        except OrderNotFoundError as exc:
            logger.error("%s", exc)
            return error_response(404, "не удалось найти заказ")
        except Exception as exc:
            logger.error("%s", exc)
            return error_response(500, "ошибка получения заказа")
        return json_response(200, order)

    def register(self, app: Any) -> None:
        """Attach the order route to a Flask application."""
        app.add_url_rule(
            "/order/<order_uid>",
            endpoint="get_order_by_uid",
            view_func=self.get_order_by_uid,
            methods=["GET"],
        )