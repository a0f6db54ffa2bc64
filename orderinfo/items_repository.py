"""Storage of order items in the items table."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from orderinfo.config import Database
from orderinfo.model import Item
from orderinfo.util import log_error

_SELECT = text("SELECT * FROM items WHERE order_uid = :order_uid")

_INSERT = text(
    "INSERT INTO items (chrt_id, track_number, price, rid, name, sale, size, "
    "total_price, nm_id, brand, status, order_uid) "
    "VALUES (:chrt_id, :track_number, :price, :rid, :name, :sale, :size, "
    ":total_price, :nm_id, :brand, :status, :order_uid)"
)


class ItemsRepository:
    """Reads and writes order items through a caller-supplied connection."""

    def __init__(self, database: Database | None = None) -> None:
        self.database = database

    def get_by_order_uid(self, conn, order_uid: str) -> list[Item]:
        """Return every item of an order, possibly none."""
        try:
            rows = conn.execute(_SELECT, {"order_uid": order_uid}).all()
            return [Item.from_row(row) for row in rows]
        except (SQLAlchemyError, ValueError) as exc:
            raise log_error("ошибка при получении таблицы товаров", exc) from exc

    def save_item(self, conn, item: Item, order_uid: str) -> None:
        """Insert one item under ``order_uid``."""
        params = {
            "chrt_id": item.chrt_id,
            "track_number": item.track_number,
            "price": item.price,
            "rid": item.rid,
            "name": item.name,
            "sale": item.sale,
            "size": item.size,
            "total_price": item.total_price,
            "nm_id": item.nm_id,
            "brand": item.brand,
            "status": item.status,
            "order_uid": order_uid,
        }
        try:
            conn.execute(_INSERT, params)
        except SQLAlchemyError as exc:
            raise log_error("ошибка при вставке товара", exc) from exc

    def save_items(self, conn, items: Iterable[Item], order_uid: str) -> None:
        """Insert items in order, stopping at the first failure."""
        for item in items:
            self.save_item(conn, item, order_uid)