"""Storage of order delivery details in the deliveries table."""

from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from orderinfo.config import Database
from orderinfo.model import Delivery
from orderinfo.util import NoRowsError, ServiceError, log_error

_SELECT = text("SELECT * FROM deliveries WHERE order_uid = :order_uid")

_INSERT = text(
    "INSERT INTO deliveries (order_uid, name, phone, zip, city, address, region, email) "
    "VALUES (:order_uid, :name, :phone, :zip, :city, :address, :region, :email) "
    "RETURNING id"
)

_UPDATE = text(
    "UPDATE deliveries SET name = :name, phone = :phone, zip = :zip, city = :city, "
    "address = :address, region = :region, email = :email "
    "WHERE order_uid = :order_uid"
)


def _params(delivery: Delivery) -> dict[str, Any]:
    return {
        "order_uid": delivery.order_uid,
        "name": delivery.name,
        "phone": delivery.phone,
        "zip": delivery.zip,
        "city": delivery.city,
        "address": delivery.address,
        "region": delivery.region,
        "email": delivery.email,
    }


class DeliveryRepository:
    """Reads and writes deliveries through a caller-supplied connection."""

    def __init__(self, database: Database | None = None) -> None:
        self.database = database

    def get_by_order_uid(self, conn, order_uid: str) -> Delivery:
        """Return the delivery of an order; raise ServiceError if there is none."""
        try:
            row = conn.execute(_SELECT, {"order_uid": order_uid}).first()
            delivery = None if row is None else Delivery.from_row(row)
        except (SQLAlchemyError, ValueError) as exc:
            raise log_error("ошибка получения таблицы доставки", exc) from exc
        if delivery is None:
            raise log_error("не удалось вставить данные в таблицу", NoRowsError())
        return delivery

    def save(self, conn, delivery: Delivery) -> None:
        """Insert a delivery and store the generated id on it."""
        try:
            new_id = conn.execute(_INSERT, _params(delivery)).scalar_one()
        except SQLAlchemyError as exc:
            raise log_error("ошибка при вставке информации о доставке", exc) from exc
        delivery.id = int(new_id)

    def update(self, conn, delivery: Delivery) -> None:
        """Update the delivery of ``delivery.order_uid``."""
        try:
            result = conn.execute(_UPDATE, _params(delivery))
        except SQLAlchemyError as exc:
            raise log_error("ошибка при обновлении информации о доставке", exc) from exc
        if result.rowcount == 0:
            raise ServiceError(
                f"обновление информации о доставке: доставка с id={delivery.id} не найдена"
            )