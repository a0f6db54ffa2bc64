"""Storage of whole orders across the orders, deliveries, payments and items tables."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from orderinfo.config import Database
from orderinfo.delivery_repository import DeliveryRepository
from orderinfo.items_repository import ItemsRepository
from orderinfo.model import Delivery, FullOrder, Item, Order, Payment, format_time
from orderinfo.payment_repository import PaymentRepository
from orderinfo.util import NoRowsError, ServiceError, log_error

logger = logging.getLogger("orderinfo")

_SELECT_ORDER = text("SELECT * FROM orders WHERE order_uid = :order_uid")
_SELECT_ALL_ORDERS = text("SELECT * FROM orders")
_SELECT_ALL_DELIVERIES = text("SELECT * FROM deliveries")
_SELECT_ALL_PAYMENTS = text("SELECT * FROM payments")
_SELECT_ALL_ITEMS = text("SELECT * FROM items")
_EXISTS = text("SELECT EXISTS (SELECT 1 FROM orders WHERE order_uid = :order_uid)")
_DELETE = text("DELETE FROM orders WHERE order_uid = :order_uid")

_INSERT_ORDER = text(
    "INSERT INTO orders (order_uid, track_number, entry, locale, internal_signature, "
    "customer_id, delivery_service, shardkey, sm_id, date_created, oof_shard) "
    "VALUES (:order_uid, :track_number, :entry, :locale, :internal_signature, "
    ":customer_id, :delivery_service, :shardkey, :sm_id, :date_created, :oof_shard)"
)

_UPDATE_ORDER = text(
    "UPDATE orders SET track_number = :track_number, entry = :entry, "
    "delivery_service = :delivery_service, sm_id = :sm_id "
    "WHERE order_uid = :order_uid"
)


class OrderRepository:
    """Reads and writes full orders, each write in its own transaction."""

    def __init__(
        self,
        database: Database,
        delivery_repo: Any = None,
        payment_repo: Any = None,
        items_repo: Any = None,
    ) -> None:
        self.database = database
        self.delivery_repo = delivery_repo or DeliveryRepository(database)
        self.payment_repo = payment_repo or PaymentRepository(database)
        self.items_repo = items_repo or ItemsRepository(database)

    @contextmanager
    def _transaction(self) -> Iterator[Any]:
        try:
            conn = self.database.connect()
        except SQLAlchemyError as exc:
            raise log_error("не удалось начать транзакцию", exc) from exc
        with conn:
            try:
                tx = conn.begin()
            except SQLAlchemyError as exc:
                raise log_error("не удалось начать транзакцию", exc) from exc
            try:
                yield conn
            except BaseException:
                tx.rollback()
                raise
            try:
                tx.commit()
            except SQLAlchemyError as exc:
                raise log_error("не удалось зафиксировать транзакцию", exc) from exc

    @staticmethod
    def _step(message: str, action: Callable[..., None], *args: Any) -> None:
        try:
            action(*args)
        except ServiceError as exc:
            raise log_error(message, exc) from exc

    def get_full_order(self, order_uid: str) -> FullOrder:
        """Read an order with its delivery, payment and items in one transaction."""
        with self._transaction() as conn:
            order = self.get_order(conn, order_uid)
            delivery = self.delivery_repo.get_by_order_uid(conn, order_uid)
            payment = self.payment_repo.get_by_order_uid(conn, order_uid)
            items = self.items_repo.get_by_order_uid(conn, order_uid)
        return FullOrder.from_parts(order, delivery, payment, items)

    def get_all_orders(self) -> list[FullOrder]:
        """Read every order and join its delivery, payment and items."""
        with self.database.connect() as conn:
            orders = self._select_all(
                conn, _SELECT_ALL_ORDERS, Order, "ошибка при получении заказов"
            )
            deliveries = {
                d.order_uid: d
                for d in self._select_all(
                    conn, _SELECT_ALL_DELIVERIES, Delivery, "ошибка при получении доставок"
                )
            }
            payments = {
                p.order_uid: p
                for p in self._select_all(
                    conn, _SELECT_ALL_PAYMENTS, Payment, "ошибка при получении оплат"
                )
            }
            items: dict[str, list[Item]] = {}
            for item in self._select_all(
                conn, _SELECT_ALL_ITEMS, Item, "ошибка при получении items"
            ):
                items.setdefault(item.order_uid, []).append(item)

        return [
            FullOrder.from_parts(
                order,
                deliveries.get(order.order_uid),
                payments.get(order.order_uid),
                items.get(order.order_uid),
            )
            for order in orders
        ]

    @staticmethod
    def _select_all(conn: Any, query: Any, cls: Any, message: str) -> list:
        try:
            return [cls.from_row(row) for row in conn.execute(query).all()]
        except (SQLAlchemyError, ValueError) as exc:
            raise ServiceError(message, exc) from exc

    def save_full_order(self, order: Order, full_order: FullOrder) -> None:
        """Insert the order, its delivery, payment and items atomically."""
        if full_order.delivery is None:
            raise ValueError("full order has no delivery")
        if full_order.payment is None:
            raise ValueError("full order has no payment")
        with self._transaction() as conn:
            self._step(
                "не удалось выполнить транзакцию для заказа", self._save_order, conn, order
            )
            self._step(
                "не удалось выполнить транзакцию для доставки",
                self.delivery_repo.save,
                conn,
                full_order.delivery,
            )
            self._step(
                "не удалось выполнить транзакцию для оплаты",
                self.payment_repo.save,
                conn,
                full_order.payment,
                order.order_uid,
            )
            self._step(
                "не удалось выполнить транзакцию для товара(ов)",
                self.items_repo.save_items,
                conn,
                full_order.items,
                order.order_uid,
            )
            logger.info(
                "заказ от %s с uuid=%s успешно сохранен",
                format_time(order.date_created),
                order.order_uid,
            )

    def update_full_order(self, order: Order, full_order: FullOrder) -> None:
        """Update the order header, delivery and payment atomically."""
        if full_order.delivery is None:
            raise ValueError("full order has no delivery")
        if full_order.payment is None:
            raise ValueError("full order has no payment")
        with self._transaction() as conn:
            self._step(
                "не удалось выполнить транзакцию для заказа", self._update_order, conn, order
            )
            self._step(
                "не удалось выполнить транзакцию для доставки",
                self.delivery_repo.update,
                conn,
                full_order.delivery,
            )
            self._step(
                "не удалось выполнить транзакцию для оплаты",
                self.payment_repo.update,
                conn,
                full_order.payment,
            )
            logger.info(
                "заказ от %s с uuid=%s успешно обновлен",
                format_time(order.date_created),
                order.order_uid,
            )

    def delete_order(self, order_uid: str) -> None:
        """Delete an order row; dependent rows go by the schema's cascade."""
        with self._transaction() as conn:
            try:
                conn.execute(_DELETE, {"order_uid": order_uid})
            except SQLAlchemyError as exc:
                raise log_error("ошибка удаления заказа", exc) from exc
            logger.info("заказ с uuid=%s успешно удален", order_uid)

    def get_order(self, conn: Any, order_uid: str) -> Order:
        """Return the order header; raise ServiceError caused by NoRowsError if absent."""
        try:
            row = conn.execute(_SELECT_ORDER, {"order_uid": order_uid}).first()
            order = None if row is None else Order.from_row(row)
        except (SQLAlchemyError, ValueError) as exc:
            raise log_error("ошибка получения таблицы заказов", exc) from exc
        if order is None:
            raise log_error("не удалось найти заказ", NoRowsError())
        return order

    def exists(self, order_uid: str) -> bool:
        """Tell whether an order with this uid is stored."""
        with self.database.connect() as conn:
            return bool(conn.execute(_EXISTS, {"order_uid": order_uid}).scalar())

    @staticmethod
    def _header_params(order: Order) -> dict[str, Any]:
        params = order.to_dict()
        params["date_created"] = format_time(order.date_created)
        return params

    def _save_order(self, conn: Any, order: Order) -> None:
        try:
            conn.execute(_INSERT_ORDER, self._header_params(order))
        except SQLAlchemyError as exc:
            raise log_error("ошибка при вставке заказа", exc) from exc

    def _update_order(self, conn: Any, order: Order) -> None:
        params = {
            "track_number": order.track_number,
            "entry": order.entry,
            "delivery_service": order.delivery_service,
            "sm_id": order.sm_id,
            "order_uid": order.order_uid,
        }
        try:
            result = conn.execute(_UPDATE_ORDER, params)
        except SQLAlchemyError as exc:
            raise log_error("ошибка при обновлении заказа", exc) from exc
        if result.rowcount == 0:
            raise ServiceError(
                f"обновление заказа: заказ с order_uid={order.order_uid} не найден"
            )