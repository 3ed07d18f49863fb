"""Subscription rows and their reporting status."""
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..errors import ConflictError, NotFoundError
from .schema import from_db_time, is_unique_violation, to_db_time
from .status import (
    StatusBlock,
    SubscriptionStatus,
    advance,
    history_from_json,
    history_to_json,
)


logger = logging.getLogger(__name__)


@dataclass
class Subscription:
    id: uuid.UUID
    flow_id: str
    subscription_id: str
    report_timestamp: datetime
    subscription_created: datetime
    fxa_uid: str  # hashed
    quantity: int
    plan_id: str
    plan_currency: str
    plan_amount: int  # minor units
    country: Optional[str] = None
    aic_id: Optional[uuid.UUID] = None
    aic_expires: Optional[datetime] = None
    cj_event_value: Optional[str] = None
    status: StatusBlock = field(default_factory=StatusBlock)

    def get_status(self) -> Optional[SubscriptionStatus]:
        return self.status.get_status(SubscriptionStatus)

    def update_status(
        self, new_status: SubscriptionStatus, now: Optional[datetime] = None
    ) -> None:
        advance(self.status, new_status, now=now)


def _from_row(row: sqlite3.Row) -> Subscription:
    return Subscription(
        id=uuid.UUID(row["id"]),
        flow_id=row["flow_id"],
        subscription_id=row["subscription_id"],
        report_timestamp=from_db_time(row["report_timestamp"]),
        subscription_created=from_db_time(row["subscription_created"]),
        fxa_uid=row["fxa_uid"],
        quantity=row["quantity"],
        plan_id=row["plan_id"],
        plan_currency=row["plan_currency"],
        plan_amount=row["plan_amount"],
        country=row["country"],
        aic_id=uuid.UUID(row["aic_id"]) if row["aic_id"] else None,
        aic_expires=from_db_time(row["aic_expires"]),
        cj_event_value=row["cj_event_value"],
        status=StatusBlock(
            status=row["status"],
            status_t=from_db_time(row["status_t"]),
            history=history_from_json(row["status_history"]),
        ),
    )


class SubscriptionModel:
    """Queries over the subscriptions table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def create_from_sub(self, sub: Subscription) -> Subscription:
        """Insert a subscription.

        Raises:
            ConflictError: On duplicate id, flow_id or subscription_id
        """
        try:
            self.conn.execute(
                """
                INSERT INTO subscriptions (
                    id, flow_id, subscription_id,
                    report_timestamp, subscription_created,
                    fxa_uid, quantity,
                    plan_id, plan_currency, plan_amount,
                    country,
                    aic_id, aic_expires, cj_event_value,
                    status, status_t, status_history
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(sub.id),
                    sub.flow_id,
                    sub.subscription_id,
                    to_db_time(sub.report_timestamp),
                    to_db_time(sub.subscription_created),
                    sub.fxa_uid,
                    sub.quantity,
                    sub.plan_id,
                    sub.plan_currency,
                    sub.plan_amount,
                    sub.country,
                    str(sub.aic_id) if sub.aic_id else None,
                    to_db_time(sub.aic_expires),
                    sub.cj_event_value,
                    sub.status.status,
                    to_db_time(sub.status.status_t),
                    history_to_json(sub.status.history),
                ),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            if is_unique_violation(exc):
                raise ConflictError(
                    f"Duplicate subscription (flow_id={sub.flow_id}, "
                    f"subscription_id={sub.subscription_id}): {exc}"
                ) from exc
            raise
        return sub

    def _fetch_one(self, column: str, value: str) -> Subscription:
        row = self.conn.execute(
            f"SELECT * FROM subscriptions WHERE {column} = ?", (value,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"No subscription with {column}={value}")
        return _from_row(row)

    def fetch_one_by_id(self, sub_id: uuid.UUID) -> Subscription:
        return self._fetch_one("id", str(sub_id))

    def fetch_one_by_flow_id(self, flow_id: str) -> Subscription:
        return self._fetch_one("flow_id", flow_id)

    def fetch_one_by_subscription_id(self, subscription_id: str) -> Subscription:
        return self._fetch_one("subscription_id", subscription_id)

    def fetch_all(self) -> list[Subscription]:
        rows = self.conn.execute("SELECT * FROM subscriptions").fetchall()
        return [_from_row(row) for row in rows]

    def fetch_all_by_status(self, status: SubscriptionStatus) -> list[Subscription]:
        rows = self.conn.execute(
            "SELECT * FROM subscriptions WHERE status = ? ORDER BY subscription_created",
            (status.value,),
        ).fetchall()
        return [_from_row(row) for row in rows]

    def fetch_all_not_reported(self) -> list[Subscription]:
        return self.fetch_all_by_status(SubscriptionStatus.NOT_REPORTED)

    def get_reported_date_range(self) -> Optional[tuple[datetime, datetime]]:
        """Earliest and latest status_t over Reported subscriptions.

        Returns:
            (min, max) or None when nothing is Reported
        """
        row = self.conn.execute(
            """
            SELECT MIN(status_t), MAX(status_t) FROM subscriptions
            WHERE status = ?
            """,
            (SubscriptionStatus.REPORTED.value,),
        ).fetchone()
        if row is None or row[0] is None:
            return None
        return from_db_time(row[0]), from_db_time(row[1])

    def update_sub_status(
        self,
        sub_id: uuid.UUID,
        new_status: SubscriptionStatus,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """Advance a stored subscription to a new status and persist it."""
        sub = self.fetch_one_by_id(sub_id)
        sub.update_status(new_status, now=now)
        self.conn.execute(
            """
            UPDATE subscriptions
            SET status = ?, status_t = ?, status_history = ?
            WHERE id = ?
            """,
            (
                sub.status.status,
                to_db_time(sub.status.status_t),
                history_to_json(sub.status.history),
                str(sub_id),
            ),
        )
        self.conn.commit()
        return sub
