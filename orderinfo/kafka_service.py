"""Publishing to and consuming from the message broker."""

from __future__ import annotations

import contextlib
import functools
import json
import logging
import time
from collections.abc import Callable
from concurrent.futures import CancelledError
from dataclasses import dataclass
from datetime import timedelta
from threading import Event
from typing import Any

from orderinfo.model import FullOrder
from orderinfo.ports import Message, MessageReader, MessageWriter
from orderinfo.util import ServiceError

logger = logging.getLogger("orderinfo")


@dataclass
class KafkaEvent:
    """An incoming order event: what to do and the order it concerns."""

    event: str = ""
    full_order: FullOrder | None = None

    @classmethod
    def from_json(cls, data: str | bytes) -> KafkaEvent:
        """Decode an event; raise ValueError on malformed input."""
        payload = json.loads(data)
        if not isinstance(payload, dict):
            raise ValueError("event: expected an object")
        event = payload.get("event")
        if event is None:
            event = ""
        elif not isinstance(event, str):
            raise ValueError("event.event: expected a string")
        order = payload.get("order")
        full_order = None if order is None else FullOrder.from_dict(order)
        return cls(event=event, full_order=full_order)


def retry(
    attempts: int,
    delay: float | timedelta,
    fn: Callable[[], Any],
    stop: Event | None = None,
) -> None:
    """Call ``fn`` up to ``attempts`` times, waiting ``delay * n`` after the n-th failure.

    The last failure is re-raised. CancelledError is raised once ``stop`` is set.
    """
    base = delay.total_seconds() if isinstance(delay, timedelta) else float(delay)
    for attempt in range(attempts):
        if stop is not None and stop.is_set():
            raise CancelledError()
        try:
            fn()
            return
        except Exception:
            if attempt == attempts - 1:
                raise
        wait = base * (attempt + 1)
        if stop is None:
            time.sleep(wait)
        elif stop.wait(wait):
            raise CancelledError()


class KafkaService:
    """Sends messages through a writer and feeds read messages to a handler."""

    def __init__(
        self,
        producer: MessageWriter | None,
        consumer: MessageReader | None,
        *,
        poll_timeout: float = 1.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.producer = producer
        self.consumer = consumer
        self.poll_timeout = poll_timeout
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    def produce_message(self, topic: str, key: bytes | None, value: bytes) -> None:
        if self.producer is None:
            raise ServiceError("ошибка отправки сообщения: producer не настроен")
        try:
            self.producer.write_messages(Message(value=value, topic=topic, key=key))
        except Exception as exc:
            raise ServiceError("ошибка отправки сообщения", exc) from exc

    def consume_messages(
        self, handler: Callable[[Message], Any], stop: Event | None = None
    ) -> None:
        """Read messages until ``stop`` is set or the reader is closed.

        Each message is handed to ``handler`` with retries; failures are logged.
        """
        if self.consumer is None:
            raise ServiceError("consumer не настроен")
        while stop is None or not stop.is_set():
            try:
                message = self.consumer.read_message(self.poll_timeout)
            except EOFError:
                return
            except Exception as exc:
                logger.error("ошибка чтения сообщения из Kafka: %s", exc)
                continue
            if message is None:
                continue
            try:
                retry(
                    self.retry_attempts,
                    self.retry_delay,
                    functools.partial(handler, message),
                    stop,
                )
            except (Exception, CancelledError) as exc:
                logger.error("ошибка после всех попыток обработки сообщения: %s", exc)

    def close(self) -> None:
        """Close the consumer, then the producer; producer errors are ignored."""
        if self.consumer is not None:
            try:
                self.consumer.close()
            except Exception as exc:
                raise ServiceError("ошибка закрытия consumer", exc) from exc
        if self.producer is not None:
            with contextlib.suppress(Exception):
                self.producer.close()