"""Storage of order payment details in the payments table."""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from orderinfo.config import Database
from orderinfo.model import Payment
from orderinfo.util import NoRowsError, ServiceError, log_error

_SELECT = text("SELECT * FROM payments WHERE order_uid = :order_uid")

_INSERT = text(
    "INSERT INTO payments (transaction, request_id, currency, provider, amount, payment_dt, "
    "bank, delivery_cost, goods_total, custom_fee, order_uid) "
    "VALUES (:transaction, :request_id, :currency, :provider, :amount, :payment_dt, "
    ":bank, :delivery_cost, :goods_total, :custom_fee, :order_uid)"
)

_UPDATE = text(
    "UPDATE payments SET request_id = :request_id, currency = :currency, amount = :amount, "
    "payment_dt = :payment_dt, bank = :bank, delivery_cost = :delivery_cost, "
    "custom_fee = :custom_fee WHERE transaction = :transaction"
)


class PaymentRepository:
    """Reads and writes payments through a caller-supplied connection."""

    def __init__(self, database: Database | None = None) -> None:
        self.database = database

    def get_by_order_uid(self, conn, order_uid: str) -> Payment:
        """Return the payment of an order; raise ServiceError if there is none."""
        try:
            row = conn.execute(_SELECT, {"order_uid": order_uid}).first()
            payment = None if row is None else Payment.from_row(row)
        except (SQLAlchemyError, ValueError) as exc:
            raise log_error(
                "ошибка получения таблицы с информацией об оплате", exc
            ) from exc
        if payment is None:
            raise log_error("не удалось вставить данные в таблицу", NoRowsError())
        return payment

    def save(self, conn, payment: Payment, order_uid: str) -> None:
        """Insert a payment under ``order_uid``."""
        params = {
            "transaction": payment.transaction,
            "request_id": payment.request_id,
            "currency": payment.currency,
            "provider": payment.provider,
            "amount": payment.amount,
            "payment_dt": payment.payment_dt,
            "bank": payment.bank,
            "delivery_cost": payment.delivery_cost,
            "goods_total": payment.goods_total,
            "custom_fee": payment.custom_fee,
            "order_uid": order_uid,
        }
        try:
            conn.execute(_INSERT, params)
        except SQLAlchemyError as exc:
            raise log_error("ошибка при вставке информации об оплате", exc) from exc

    def update(self, conn, payment: Payment) -> None:
        """Update the payment identified by its transaction."""
        params = {
            "request_id": payment.request_id,
            "currency": payment.currency,
            "amount": payment.amount,
            "payment_dt": payment.payment_dt,
            "bank": payment.bank,
            "delivery_cost": payment.delivery_cost,
            "custom_fee": payment.custom_fee,
            "transaction": payment.transaction,
        }
        try:
            result = conn.execute(_UPDATE, params)
        except SQLAlchemyError as exc:
            raise log_error("ошибка при обновлении способа оплаты", exc) from exc
        if result.rowcount == 0:
            raise ServiceError(f"оплата с transaction={payment.transaction} не найден")