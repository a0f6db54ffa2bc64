"""Order data types and their JSON and database-row forms."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Any

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIME_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_time(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp; datetimes pass through (naive ones as UTC)."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        raise ValueError(f"invalid time value: {value!r}")
    match = _TIME_RE.match(value)
    if not match:
        raise ValueError(f"invalid RFC 3339 time: {value!r}")
    year, month, day, hour, minute, second, frac, zone = match.groups()
    micro = int((frac or "").ljust(6, "0")[:6] or 0)
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
    )


def format_time(value: datetime) -> str:
    """Format a datetime as RFC 3339 with trimmed fractional seconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _load(cls, data: Any, skip: tuple[str, ...] = ()):
    if not isinstance(data, Mapping):
        raise ValueError(f"{cls.__name__}: expected an object, got {type(data).__name__}")
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name in skip or data.get(f.name) is None:
            continue
        value = data[f.name]
        if f.type == "int":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{cls.__name__}.{f.name}: expected an integer")
        elif f.type == "str":
            if not isinstance(value, str):
                raise ValueError(f"{cls.__name__}.{f.name}: expected a string")
        elif f.type == "datetime":
            value = parse_time(value)
        else:
            continue
        kwargs[f.name] = value
    return cls(**kwargs)


def _row_mapping(row: Any) -> Mapping:
    return getattr(row, "_mapping", row)


@dataclass
class Order:
    """The order header as stored in the orders table."""

    order_uid: str = ""
    track_number: str = ""
    entry: str = ""
    locale: str = ""
    internal_signature: str = ""
    customer_id: str = ""
    delivery_service: str = ""
    shardkey: str = ""
    sm_id: int = 0
    date_created: datetime = ZERO_TIME
    oof_shard: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["date_created"] = format_time(self.date_created)
        return data

    @classmethod
    def from_row(cls, row: Any) -> Order:
        return _load(cls, _row_mapping(row))


@dataclass
class Delivery:
    id: int = 0
    order_uid: str = ""
    name: str = ""
    phone: str = ""
    zip: str = ""
    city: str = ""
    address: str = ""
    region: str = ""
    email: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Any) -> Delivery:
        return _load(cls, data)

    @classmethod
    def from_row(cls, row: Any) -> Delivery:
        return _load(cls, _row_mapping(row))


@dataclass
class Payment:
    transaction: str = ""
    request_id: str = ""
    currency: str = ""
    provider: str = ""
    amount: int = 0
    payment_dt: int = 0
    bank: str = ""
    delivery_cost: int = 0
    goods_total: int = 0
    custom_fee: int = 0
    order_uid: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "order_uid"}

    @classmethod
    def from_dict(cls, data: Any) -> Payment:
        return _load(cls, data, skip=("order_uid",))

    @classmethod
    def from_row(cls, row: Any) -> Payment:
        return _load(cls, _row_mapping(row))


@dataclass
class Item:
    chrt_id: int = 0
    track_number: str = ""
    price: int = 0
    rid: str = ""
    name: str = ""
    sale: int = 0
    size: str = ""
    total_price: int = 0
    nm_id: int = 0
    brand: str = ""
    status: int = 0
    order_uid: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "order_uid"}

    @classmethod
    def from_dict(cls, data: Any) -> Item:
        return _load(cls, data, skip=("order_uid",))

    @classmethod
    def from_row(cls, row: Any) -> Item:
        return _load(cls, _row_mapping(row))


_HEADER_FIELDS = tuple(f.name for f in fields(Order))


@dataclass
class FullOrder:
    """An order together with its delivery, payment and items."""

    order_uid: str = ""
    track_number: str = ""
    entry: str = ""
    locale: str = ""
    internal_signature: str = ""
    customer_id: str = ""
    delivery_service: str = ""
    shardkey: str = ""
    sm_id: int = 0
    date_created: datetime = ZERO_TIME
    oof_shard: str = ""
    delivery: Delivery | None = None
    payment: Payment | None = None
    items: list[Item] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.header().to_dict()
        if self.delivery is not None:
            data["delivery"] = self.delivery.to_dict()
        if self.payment is not None:
            data["payment"] = self.payment.to_dict()
        if self.items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> FullOrder:
        order = _load(cls, data)
        if data.get("delivery") is not None:
            order.delivery = Delivery.from_dict(data["delivery"])
        if data.get("payment") is not None:
            order.payment = Payment.from_dict(data["payment"])
        items = data.get("items")
        if items is not None:
            if not isinstance(items, list):
                raise ValueError("FullOrder.items: expected an array")
            order.items = [Item.from_dict(item) for item in items]
        return order

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str | bytes) -> FullOrder:
        return cls.from_dict(json.loads(text))

    def header(self) -> Order:
        """Return the order header part of this order."""
        return Order(**{name: getattr(self, name) for name in _HEADER_FIELDS})

    @classmethod
    def from_parts(
        cls,
        order: Order,
        delivery: Delivery | None,
        payment: Payment | None,
        items: list[Item] | None,
    ) -> FullOrder:
        return cls(
            **{name: getattr(order, name) for name in _HEADER_FIELDS},
            delivery=delivery,
            payment=payment,
            items=list(items or []),
        )