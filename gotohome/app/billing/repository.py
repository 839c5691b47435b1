"""Persistence layer for orders, callback deliveries and entitlements."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from ..entitlements.models import Entitlement, PlanKey
from .errors import StorageFailure
from .models import CallbackEvent, Order, OrderStatus


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_order(row: dict) -> Order:
    return Order(
        order_reference=row["order_reference"],
        user_id=row["user_id"],
        plan_id=row["plan_id"],
        plan_key=PlanKey(row["plan_key"]),
        amount=int(row["amount"]),
        currency=row["currency"],
        status=OrderStatus(row["status"]),
        transaction_status=row.get("transaction_status"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_entitlement(row: dict) -> Entitlement:
    return Entitlement(
        user_id=row["user_id"],
        plan=PlanKey(row["plan"]),
        expires_at=row.get("expires_at"),
        updated_at=row["updated_at"],
    )


class PostgresBillingRepository:
    """Concrete repository persisting billing state in PostgreSQL.

    The entitlement write is a single ``INSERT ... ON CONFLICT DO UPDATE``
    statement so that concurrent deliveries for one user serialize in the
    database instead of racing through a read-modify-write.
    """

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        try:
            with managed_connection(self._conn) as (connection, managed):
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                    if managed:
                        connection.commit()
                except Exception:
                    if managed:
                        connection.rollback()
                    raise
                finally:
                    cursor.close()
        except psycopg2.Error as exc:
            raise StorageFailure(f"database error: {exc.__class__.__name__}") from exc

    def save_order(self, order: Order) -> Order:
        """Insert an order; an existing reference is returned unchanged."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO payment_orders (
                    order_reference,
                    user_id,
                    plan_id,
                    plan_key,
                    amount,
                    currency,
                    status,
                    created_at,
                    updated_at
                )
                VALUES (%(order_reference)s, %(user_id)s, %(plan_id)s, %(plan_key)s,
                        %(amount)s, %(currency)s, %(status)s, %(created_at)s, %(created_at)s)
                ON CONFLICT (order_reference) DO NOTHING
                RETURNING *
                """,
                {
                    "order_reference": order.order_reference,
                    "user_id": order.user_id,
                    "plan_id": order.plan_id,
                    "plan_key": order.plan_key.value,
                    "amount": order.amount,
                    "currency": order.currency,
                    "status": order.status.value,
                    "created_at": order.created_at,
                },
            )
            row = cursor.fetchone()
            if row:
                return _row_to_order(row)
            cursor.execute(
                "SELECT * FROM payment_orders WHERE order_reference = %s LIMIT 1",
                (order.order_reference,),
            )
            existing = cursor.fetchone()
            if not existing:
                raise StorageFailure("Failed to persist order")
            return _row_to_order(existing)

    def update_order_status(
        self,
        order_reference: str,
        *,
        status: OrderStatus,
        transaction_status: str,
    ) -> Optional[Order]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE payment_orders
                SET status = %s,
                    transaction_status = %s,
                    updated_at = NOW()
                WHERE order_reference = %s
                RETURNING *
                """,
                (status.value, transaction_status, order_reference),
            )
            row = cursor.fetchone()
            return _row_to_order(row) if row else None

    def record_callback_event(self, event: CallbackEvent) -> bool:
        """Store a delivery; returns ``False`` when an identical one was seen."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO payment_callback_events (
                    order_reference,
                    transaction_status,
                    merchant_signature,
                    payload,
                    received_at
                )
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (order_reference, transaction_status, merchant_signature) DO NOTHING
                """,
                (
                    event.order_reference,
                    event.transaction_status,
                    event.merchant_signature,
                    psycopg2.extras.Json(event.payload),
                    event.received_at,
                ),
            )
            return cursor.rowcount > 0

    def upsert_entitlement(self, entitlement: Entitlement) -> Entitlement:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO user_subscriptions (
                    user_id,
                    plan,
                    expires_at,
                    updated_at
                )
                VALUES (%(user_id)s, %(plan)s, %(expires_at)s, %(updated_at)s)
                ON CONFLICT (user_id) DO UPDATE SET
                    plan = EXCLUDED.plan,
                    expires_at = EXCLUDED.expires_at,
                    updated_at = EXCLUDED.updated_at
                RETURNING *
                """,
                {
                    "user_id": entitlement.user_id,
                    "plan": entitlement.plan.value,
                    "expires_at": entitlement.expires_at,
                    "updated_at": entitlement.updated_at,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise StorageFailure("Failed to persist entitlement")
            return _row_to_entitlement(row)

    def get_entitlement(self, user_id: str) -> Optional[Entitlement]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM user_subscriptions
                WHERE user_id = %s
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            return _row_to_entitlement(row) if row else None


__all__ = ["PostgresBillingRepository", "managed_connection"]
