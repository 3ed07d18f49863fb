"""Refund rows, their reporting status and correction file dates."""
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from ..errors import ConflictError, NotFoundError
from .schema import (
    from_db_date,
    from_db_time,
    is_unique_violation,
    to_db_date,
    to_db_time,
)
from .status import RefundStatus, StatusBlock, advance, history_from_json, history_to_json


logger = logging.getLogger(__name__)


@dataclass
class Refund:
    id: uuid.UUID
    refund_id: str
    subscription_id: str
    refund_created: datetime
    refund_amount: int  # minor units
    refund_status: Optional[str] = None
    refund_reason: Optional[str] = None
    correction_file_date: Optional[date] = None
    status: StatusBlock = field(default_factory=StatusBlock)

    def get_status(self) -> Optional[RefundStatus]:
        return self.status.get_status(RefundStatus)

    def update_status(self, new_status: RefundStatus, now: Optional[datetime] = None) -> None:
        advance(self.status, new_status, now=now)

    def mutable_fields(self) -> tuple:
        """Fields that an upstream refund row may change."""
        return (
            self.subscription_id,
            int(self.refund_created.timestamp()),
            self.refund_amount,
            self.refund_status,
            self.refund_reason,
        )


def _from_row(row: sqlite3.Row) -> Refund:
    return Refund(
        id=uuid.UUID(row["id"]),
        refund_id=row["refund_id"],
        subscription_id=row["subscription_id"],
        refund_created=from_db_time(row["refund_created"]),
        refund_amount=row["refund_amount"],
        refund_status=row["refund_status"],
        refund_reason=row["refund_reason"],
        correction_file_date=from_db_date(row["correction_file_date"]),
        status=StatusBlock(
            status=row["status"],
            status_t=from_db_time(row["status_t"]),
            history=history_from_json(row["status_history"]),
        ),
    )


class RefundModel:
    """Queries over the refunds table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def create_from_refund(self, refund: Refund) -> Refund:
        """Insert a refund.

        Raises:
            ConflictError: On duplicate id or refund_id
        """
        try:
            self.conn.execute(
                """
                INSERT INTO refunds (
                    id, refund_id, subscription_id,
                    refund_created, refund_amount,
                    refund_status, refund_reason,
                    correction_file_date,
                    status, status_t, status_history
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(refund.id),
                    refund.refund_id,
                    refund.subscription_id,
                    to_db_time(refund.refund_created),
                    refund.refund_amount,
                    refund.refund_status,
                    refund.refund_reason,
                    to_db_date(refund.correction_file_date),
                    refund.status.status,
                    to_db_time(refund.status.status_t),
                    history_to_json(refund.status.history),
                ),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            if is_unique_violation(exc):
                raise ConflictError(f"Duplicate refund_id={refund.refund_id}: {exc}") from exc
            raise
        return refund

    def fetch_one_by_refund_id(self, refund_id: str) -> Refund:
        row = self.conn.execute(
            "SELECT * FROM refunds WHERE refund_id = ?", (refund_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"No refund with refund_id={refund_id}")
        return _from_row(row)

    def fetch_all_by_status(self, status: RefundStatus) -> list[Refund]:
        rows = self.conn.execute(
            "SELECT * FROM refunds WHERE status = ? ORDER BY refund_created",
            (status.value,),
        ).fetchall()
        return [_from_row(row) for row in rows]

    def fetch_correction_order_ids(self, day: date) -> list[str]:
        """Order ids of subscriptions whose refunds belong to a day's correction file."""
        rows = self.conn.execute(
            """
            SELECT subscriptions.id
            FROM refunds
            JOIN subscriptions ON subscriptions.subscription_id = refunds.subscription_id
            WHERE refunds.correction_file_date = ?
            ORDER BY refunds.refund_created
            """,
            (to_db_date(day),),
        ).fetchall()
        return [row[0] for row in rows]

    def update_refund(self, refund: Refund) -> Refund:
        """Persist every mutable, status and correction column of a refund."""
        cursor = self.conn.execute(
            """
            UPDATE refunds
            SET
                subscription_id = ?,
                refund_created = ?,
                refund_amount = ?,
                refund_status = ?,
                refund_reason = ?,
                correction_file_date = ?,
                status = ?,
                status_t = ?,
                status_history = ?
            WHERE refund_id = ?
            """,
            (
                refund.subscription_id,
                to_db_time(refund.refund_created),
                refund.refund_amount,
                refund.refund_status,
                refund.refund_reason,
                to_db_date(refund.correction_file_date),
                refund.status.status,
                to_db_time(refund.status.status_t),
                history_to_json(refund.status.history),
                refund.refund_id,
            ),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"No refund with refund_id={refund.refund_id}")
        return refund
