"""Attribution cookie (aic) rows and their archive."""
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..errors import ConflictError, NotFoundError
from .schema import from_db_time, is_unique_violation, to_db_time
from .status import utcnow


logger = logging.getLogger(__name__)

LIVE_TABLE = "aic"
ARCHIVE_TABLE = "aic_archive"


@dataclass
class AttributionCookie:
    id: uuid.UUID
    cj_event_value: str
    flow_id: str
    created: datetime
    expires: datetime


def _from_row(row: sqlite3.Row) -> AttributionCookie:
    return AttributionCookie(
        id=uuid.UUID(row["id"]),
        cj_event_value=row["cj_event_value"],
        flow_id=row["flow_id"],
        created=from_db_time(row["created"]),
        expires=from_db_time(row["expires"]),
    )


class AICModel:
    """Queries over the aic and aic_archive tables."""

    def __init__(self, conn: sqlite3.Connection, lifetime: timedelta):
        self.conn = conn
        self.lifetime = lifetime

    def _insert(self, table: str, aic: AttributionCookie) -> AttributionCookie:
        try:
            self.conn.execute(
                f"""
                INSERT INTO {table} (id, cj_event_value, flow_id, created, expires)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(aic.id),
                    aic.cj_event_value,
                    aic.flow_id,
                    to_db_time(aic.created),
                    to_db_time(aic.expires),
                ),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            if is_unique_violation(exc):
                raise ConflictError(f"aic {aic.id} already exists in {table}") from exc
            raise
        return aic

    def _fetch_one(self, table: str, column: str, value: str) -> AttributionCookie:
        row = self.conn.execute(
            f"SELECT * FROM {table} WHERE {column} = ?", (value,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"No row in {table} with {column}={value}")
        return _from_row(row)

    def create(
        self, cj_event_value: str, flow_id: str, now: Optional[datetime] = None
    ) -> AttributionCookie:
        created = now if now is not None else utcnow()
        aic = AttributionCookie(
            id=uuid.uuid4(),
            cj_event_value=cj_event_value,
            flow_id=flow_id,
            created=created,
            expires=created + self.lifetime,
        )
        return self._insert(LIVE_TABLE, aic)

    def create_from_aic(self, aic: AttributionCookie) -> AttributionCookie:
        return self._insert(LIVE_TABLE, aic)

    def create_archive_from_aic(self, aic: AttributionCookie) -> AttributionCookie:
        return self._insert(ARCHIVE_TABLE, aic)

    def fetch_one_by_id(self, aic_id: uuid.UUID) -> AttributionCookie:
        return self._fetch_one(LIVE_TABLE, "id", str(aic_id))

    def fetch_one_by_flow_id(self, flow_id: str) -> AttributionCookie:
        return self._fetch_one(LIVE_TABLE, "flow_id", flow_id)

    def fetch_one_by_id_from_archive(self, aic_id: uuid.UUID) -> AttributionCookie:
        return self._fetch_one(ARCHIVE_TABLE, "id", str(aic_id))

    def fetch_one_by_flow_id_from_archive(self, flow_id: str) -> AttributionCookie:
        return self._fetch_one(ARCHIVE_TABLE, "flow_id", flow_id)

    def fetch_expired(self, now: Optional[datetime] = None) -> list[AttributionCookie]:
        now = now if now is not None else utcnow()
        rows = self.conn.execute(
            "SELECT * FROM aic WHERE expires < ? ORDER BY expires",
            (to_db_time(now),),
        ).fetchall()
        return [_from_row(row) for row in rows]

    def update_flow_id(self, aic_id: uuid.UUID, flow_id: str) -> AttributionCookie:
        """Rewrite flow_id only; the cookie clock is not reset."""
        cursor = self.conn.execute(
            "UPDATE aic SET flow_id = ? WHERE id = ?", (flow_id, str(aic_id))
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"No aic with id={aic_id}")
        return self.fetch_one_by_id(aic_id)

    def update_flow_id_and_cj_event_value(
        self,
        aic_id: uuid.UUID,
        cj_event_value: str,
        flow_id: str,
        now: Optional[datetime] = None,
    ) -> AttributionCookie:
        """Rewrite both values; a new cj_event_value resets the cookie clock."""
        created = now if now is not None else utcnow()
        cursor = self.conn.execute(
            """
            UPDATE aic
            SET cj_event_value = ?, flow_id = ?, created = ?, expires = ?
            WHERE id = ?
            """,
            (
                cj_event_value,
                flow_id,
                to_db_time(created),
                to_db_time(created + self.lifetime),
                str(aic_id),
            ),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"No aic with id={aic_id}")
        return self.fetch_one_by_id(aic_id)

    def archive_aic(self, aic: AttributionCookie) -> None:
        """Move a cookie from aic to aic_archive in one transaction.

        Raises:
            ConflictError: If the id is already archived (nothing is moved)
        """
        try:
            with self.conn:
                self.conn.execute("DELETE FROM aic WHERE id = ?", (str(aic.id),))
                self.conn.execute(
                    """
                    INSERT INTO aic_archive (id, cj_event_value, flow_id, created, expires)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        str(aic.id),
                        aic.cj_event_value,
                        aic.flow_id,
                        to_db_time(aic.created),
                        to_db_time(aic.expires),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if is_unique_violation(exc):
                raise ConflictError(f"aic {aic.id} is already archived") from exc
            raise
