"""SQLite schema definitions for the attribution store.

Tables: aic, aic_archive, subscriptions, refunds
"""
import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from ..errors import FatalDependencyError


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1

SQLITE_PREFIX = "sqlite:///"


def database_path(database_url: str) -> str:
    """Resolve a database_url to a sqlite3 path.

    Accepts `sqlite:///relative.db`, `sqlite:////abs/path.db`, a plain path,
    or `:memory:`.
    """
    if database_url.startswith(SQLITE_PREFIX):
        return database_url[len(SQLITE_PREFIX):] or ":memory:"
    return database_url


def connect(database_url: str) -> sqlite3.Connection:
    """Open a store connection and make sure the schema exists.

    Raises:
        FatalDependencyError: If the database cannot be opened
    """
    path = database_path(database_url)
    try:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        init_database(conn)
    except (sqlite3.Error, OSError) as exc:
        raise FatalDependencyError(f"Could not open database {path}: {exc}") from exc
    return conn


def init_database(conn: sqlite3.Connection) -> None:
    """Create tables if they don't exist.

    Args:
        conn: SQLite connection
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    cursor = conn.execute("SELECT MAX(version) FROM schema_version")
    current_version = cursor.fetchone()[0] or 0

    if current_version < SCHEMA_VERSION:
        _apply_schema(conn)
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
        logger.info("Database schema initialized (version %s)", SCHEMA_VERSION)
    else:
        logger.debug("Database schema up to date (version %s)", current_version)


def _apply_schema(conn: sqlite3.Connection) -> None:
    for table in ("aic", "aic_archive"):
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                cj_event_value TEXT NOT NULL,
                flow_id TEXT NOT NULL,
                created TEXT NOT NULL,
                expires TEXT NOT NULL
            )
            """
        )
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_flow_id ON {table}(flow_id)"
        )

    conn.execute("CREATE INDEX IF NOT EXISTS idx_aic_expires ON aic(expires)")

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS subscriptions (
            id TEXT PRIMARY KEY,
            flow_id TEXT NOT NULL UNIQUE,
            subscription_id TEXT NOT NULL UNIQUE,
            report_timestamp TEXT NOT NULL,
            subscription_created TEXT NOT NULL,
            fxa_uid TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            plan_id TEXT NOT NULL,
            plan_currency TEXT NOT NULL,
            plan_amount INTEGER NOT NULL,
            country TEXT,
            aic_id TEXT,
            aic_expires TEXT,
            cj_event_value TEXT,
            status TEXT,
            status_t TEXT,
            status_history TEXT
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_subscriptions_status
        ON subscriptions(status)
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS refunds (
            id TEXT PRIMARY KEY,
            refund_id TEXT NOT NULL UNIQUE,
            subscription_id TEXT NOT NULL,
            refund_created TEXT NOT NULL,
            refund_amount INTEGER NOT NULL,
            refund_status TEXT,
            refund_reason TEXT,
            correction_file_date TEXT,
            status TEXT,
            status_t TEXT,
            status_history TEXT
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_refunds_status
        ON refunds(status)
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_refunds_correction_file_date
        ON refunds(correction_file_date)
        WHERE correction_file_date IS NOT NULL
        """
    )


# Instants are stored as fixed-width UTC text so string order is time order.

def to_db_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value).astimezone(timezone.utc)


def to_db_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def from_db_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value is not None else None


def is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(exc) or "PRIMARY KEY" in str(exc)
