"""Order use cases: lookup with caching, updates, and broker event handling."""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from orderinfo.cache_repository import order_key
from orderinfo.kafka_service import KafkaEvent, KafkaService
from orderinfo.model import ZERO_TIME, FullOrder, Order, format_time
from orderinfo.ports import Message
from orderinfo.util import NoRowsError, ServiceError, log_error

logger = logging.getLogger("orderinfo")


class OrderNotFoundError(LookupError):
    """Raised when the requested order does not exist."""

    def __init__(self, message: str = "не удалось найти заказ") -> None:
        super().__init__(message)


@dataclass
class KafkaResponseEvent:
    """The reply sent back for each handled event."""

    event: str
    order_uid: str = ""
    error: str = ""
    timestamp: str = ""

    def to_json(self) -> str:
        return json.dumps(
            {
                "event": self.event,
                "order_uid": self.order_uid,
                "error": self.error,
                "timestamp": self.timestamp,
            },
            ensure_ascii=False,
        )


def _caused_by(exc: BaseException, kind: type) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, kind):
            return True
        seen.add(id(current))
        current = current.__cause__ or getattr(current, "cause", None)
    return False


def _now() -> str:
    return format_time(datetime.now().astimezone().replace(microsecond=0))


def _invalid(message: str) -> ServiceError:
    return log_error("[Kafka] ERROR", ValueError(message))


class OrderService:
    """Coordinates the order store, the cache and the broker."""

    def __init__(self, cache_repository: Any, order_repository: Any, kafka_service: KafkaService) -> None:
        self.cache_repository = cache_repository
        self.order_repository = order_repository
        self.kafka_service = kafka_service

    def get_order(self, order_uid: str) -> FullOrder:
        """Return an order from the cache, falling back to the database."""
        try:
            order = self.cache_repository.get_order(order_uid)
        except Exception as exc:
            raise log_error("ошибка при обращении к кэшу", exc) from exc
        if order is not None:
            logger.info("заказ с uuid=%s был взят из кэша Redis", order_uid)
            return order

        try:
            order = self.order_repository.get_full_order(order_uid)
        except Exception as exc:
            if _caused_by(exc, NoRowsError):
                log_error("не удалось найти заказ", exc)
                raise OrderNotFoundError() from exc
            raise log_error("ошибка обращения к таблице заказа", exc) from exc

        try:
            self.cache_repository.set_order(order)
        except Exception as exc:
            log_error("ошибка Redis", exc)
        logger.info("заказ не был найден в кэше Redis, был выполнен fallback к БД")
        return order

    def update_order(self, order: Order, full_order: FullOrder) -> None:
        try:
            self.order_repository.update_full_order(order, full_order)
        except Exception as exc:
            raise log_error("не удалось обновить информацию о заказе", exc) from exc
        try:
            self.cache_repository.set_order(full_order)
        except Exception as exc:
            log_error("ошибка Redis", exc)
        logger.info("информация о заказе с uuid=%s обновлена", order.order_uid)

    def delete_order(self, order_uid: str) -> None:
        try:
            self.order_repository.delete_order(order_uid)
        except Exception as exc:
            raise log_error("не удалось удалить заказ", exc) from exc
        try:
            self.cache_repository.delete_order(order_uid)
        except Exception as exc:
            log_error("не удалось заказ из кэша", exc)

    def preload_cache(self, ttl: float | timedelta) -> None:
        """Load every stored order into the cache in one pipeline."""
        try:
            orders = self.order_repository.get_all_orders()
        except Exception as exc:
            raise ServiceError("ошибка при получении заказов из БД", exc) from exc

        expiry = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)
        pipe = self.cache_repository.pipeline()
        for order in orders:
            try:
                value = order.to_json()
            except (TypeError, ValueError) as exc:
                logger.error("не удалось сериализовать заказ с uuid: %s: %s", order.order_uid, exc)
                continue
            pipe.set(order_key(order.order_uid), value, ex=expiry if expiry > timedelta(0) else None)

        try:
            pipe.execute()
        except Exception as exc:
            raise ServiceError("ошибка при загрузке заказов в кэш через pipeline", exc) from exc
        logger.info("Успешно загружен(о) %d заказ(ов) в кэш", len(orders))

    def handle_kafka_message(self, response_topic: str) -> Callable[[Message], None]:
        """Return a handler that applies an order event and replies on ``response_topic``."""

        def handle(message: Message) -> None:
            self._handle(message, response_topic)

        return handle

    def _handle(self, message: Message, response_topic: str) -> None:
        try:
            event = KafkaEvent.from_json(message.value)
        except ValueError as exc:
            reply = KafkaResponseEvent(event="invalid_json", error=str(exc), timestamp=_now())
            with contextlib.suppress(Exception):
                self._send_response(response_topic, reply)
            raise log_error("[Kafka] invalid JSON in message", exc) from exc

        full = event.full_order
        if full is None:
            raise _invalid("поле FullOrder пустое (nil)")
        logger.info("[Kafka] получен ивент: %s для заказа с orderUID: %s", event.event, full.order_uid)
        if not full.order_uid:
            raise _invalid("поле OrderUID пустое")
        if full.delivery is None:
            raise _invalid("поле Delivery пустое (nil)")
        if full.payment is None:
            raise _invalid("поле Payment пустое (nil)")
        if not full.items:
            raise _invalid("список Items пустой")
        if full.date_created == ZERO_TIME:
            raise _invalid("поле DateCreated пустое или невалидное")

        order_uid = full.order_uid
        full.delivery.order_uid = order_uid
        full.payment.order_uid = order_uid
        for item in full.items:
            item.order_uid = order_uid
        order = full.header()

        actions = {"create": self._create, "update": self._update, "delete": self._delete}
        error: Exception | None = None
        try:
            action = actions.get(event.event)
            if action is None:
                raise log_error("[Kafka] неподдерживаемый тип события", ValueError(event.event))
            action(order, full)
        except Exception as exc:
            error = exc

        reply = KafkaResponseEvent(
            event=f"{event.event}_success", order_uid=order_uid, timestamp=_now()
        )
        if error is not None:
            reply.event = f"{event.event}_error"
            reply.error = str(error)

        try:
            self._send_response(response_topic, reply)
        except Exception as exc:
            raise log_error(
                "[Kafka][producer] не удалось отправить событие", ServiceError(str(reply))
            ) from exc
        logger.info("[Kafka][producer] отправил событие сообщение %s в топик %s", reply, response_topic)

    def _create(self, order: Order, full: FullOrder) -> None:
        uid = order.order_uid
        try:
            exists = self.order_repository.exists(uid)
        except Exception as exc:
            raise log_error("[Kafka][create] ошибка проверки существования заказа", exc) from exc
        if exists:
            raise log_error("[Kafka][create] заказ уже существует", ValueError(f"order_uid {uid}"))
        try:
            self.order_repository.save_full_order(order, full)
        except Exception as exc:
            raise log_error("[Kafka][create] ошибка сохранения заказа", exc) from exc
        logger.info("[Kafka][create] заказ успешно сохранён, order_uid: %s", uid)
        try:
            self.cache_repository.set_order(full)
        except Exception as exc:
            log_error("[Kafka][create] ошибка кеширования заказа", exc)
            raise
        logger.info("[Kafka][create] заказ успешно сохранён в кеш, order_uid: %s", uid)

    def _update(self, order: Order, full: FullOrder) -> None:
        uid = order.order_uid
        try:
            self.order_repository.update_full_order(order, full)
        except Exception as exc:
            raise log_error("[Kafka][update] ошибка обновления заказа", exc) from exc
        logger.info("[Kafka][update] заказ успешно обновлён, order_uid: %s", uid)
        try:
            self.cache_repository.set_order(full)
        except Exception as exc:
            log_error("[Kafka][update] ошибка кеширования заказа", exc)
            raise
        logger.info("[Kafka][update] заказ успешно обновлён в кеше, order_uid: %s", uid)

    def _delete(self, order: Order, full: FullOrder) -> None:
        uid = order.order_uid
        try:
            self.order_repository.delete_order(uid)
        except Exception as exc:
            raise log_error("[Kafka][delete] ошибка удаления заказа", exc) from exc
        logger.info("[Kafka][delete] заказ успешно удалён, order_uid: %s", uid)
        try:
            self.cache_repository.delete_order(uid)
        except Exception as exc:
            log_error("[Kafka][delete] ошибка удаления заказа из кеша", exc)
            raise
        logger.info("[Kafka][delete] заказ успешно удалён из кеша, order_uid: %s", uid)

    def _send_response(self, topic: str, reply: KafkaResponseEvent) -> None:
        self.kafka_service.produce_message(topic, None, reply.to_json().encode("utf-8"))