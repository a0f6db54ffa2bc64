"""Redis cache of full orders stored as JSON."""

from __future__ import annotations

from datetime import timedelta

from orderinfo.config import RedisClient
from orderinfo.model import FullOrder
from orderinfo.util import ServiceError, log_error

_OK_REPLIES = (True, "OK", b"OK")


def order_key(order_uid: str) -> str:
    """Return the cache key of an order."""
    return f"order:{order_uid}"


class CacheRepository:
    """Stores full orders in Redis with a fixed time to live."""

    def __init__(self, client: RedisClient, ttl: float | timedelta = 0) -> None:
        self.client = client
        self.ttl = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)

    @property
    def _expiry(self) -> timedelta | None:
        return self.ttl if self.ttl > timedelta(0) else None

    def set_order(self, order: FullOrder) -> None:
        try:
            data = order.to_json()
        except (TypeError, ValueError) as exc:
            raise log_error("ошибка сериализации заказа", exc) from exc
        try:
            reply = self.client.client.set(order_key(order.order_uid), data, ex=self._expiry)
        except Exception as exc:
            raise log_error("ошибка сохранения в Redis", exc) from exc
        if reply not in _OK_REPLIES:
            raise ServiceError(f"неожиданный ответ Redis: {reply}")

    def get_order(self, order_uid: str) -> FullOrder | None:
        """Return the cached order, or None when it is not cached."""
        try:
            value = self.client.client.get(order_key(order_uid))
        except Exception as exc:
            raise log_error("ошибка получения заказа из Redis", exc) from exc
        if value is None:
            return None
        try:
            return FullOrder.from_json(value)
        except (TypeError, ValueError, AttributeError) as exc:
            raise log_error("ошибка десериализации заказа из кэша", exc) from exc

    def delete_order(self, order_uid: str) -> None:
        try:
            self.client.client.delete(order_key(order_uid))
        except Exception as exc:
            raise log_error("ошибка удаления заказа из Redis", exc) from exc

    def pipeline(self):
        """Return a Redis pipeline for batched commands."""
        return self.client.client.pipeline()