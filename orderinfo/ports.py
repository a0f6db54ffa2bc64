"""Interfaces between the service and its message broker and cache."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from orderinfo.model import FullOrder


@dataclass(frozen=True)
class Message:
    """A message read from or written to a broker topic."""

    value: bytes
    topic: str = ""
    key: Optional[bytes] = None


@runtime_checkable
class MessageWriter(Protocol):
    def write_messages(self, *messages: Message) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class MessageReader(Protocol):
    def read_message(self, timeout: float) -> Optional[Message]:
        """Return the next message, or None when none arrived in time.

        Raises EOFError once the reader is closed.
        """
        ...

    def close(self) -> None: ...


@runtime_checkable
class Cache(Protocol):
    def set_order(self, order: FullOrder) -> None: ...

    def get_order(self, order_uid: str) -> Optional[FullOrder]: ...

    def delete_order(self, order_uid: str) -> None: ...