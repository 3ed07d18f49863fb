"""Status block embedded in subscriptions and refunds.

A status block carries the current status, the instant it was set, and an
append-only history of every status it has held. History is stored as a
JSON document: {"entries": [{"status": "...", "t": "..."}]}.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, TypeVar


logger = logging.getLogger(__name__)


class SubscriptionStatus(str, Enum):
    NOT_REPORTED = "NotReported"
    REPORTED = "Reported"
    WILL_NOT_REPORT = "WillNotReport"
    CJ_RECEIVED = "CJReceived"
    CJ_NOT_RECEIVED = "CJNotReceived"


class RefundStatus(str, Enum):
    NOT_REPORTED = "NotReported"
    REPORTED = "Reported"
    WILL_NOT_REPORT = "WillNotReport"


StatusT = TypeVar("StatusT", SubscriptionStatus, RefundStatus)


@dataclass(frozen=True)
class StatusHistoryEntry:
    status: str
    t: datetime


@dataclass
class StatusBlock:
    status: Optional[str] = None
    status_t: Optional[datetime] = None
    history: list[StatusHistoryEntry] = field(default_factory=list)

    def get_status(self, status_type: type[StatusT]) -> Optional[StatusT]:
        """Current status as an enum member, or None when absent or unknown."""
        if self.status is None:
            return None
        try:
            return status_type(self.status)
        except ValueError:
            return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def advance(block: StatusBlock, new_status: Enum | str, now: Optional[datetime] = None) -> StatusBlock:
    """Move a status block to a new status.

    All three writes share one instant.
    """
    t = now if now is not None else utcnow()
    value = new_status.value if isinstance(new_status, Enum) else new_status
    block.status = value
    block.status_t = t
    block.history.append(StatusHistoryEntry(status=value, t=t))
    return block


def history_to_json(history: list[StatusHistoryEntry]) -> str:
    return json.dumps(
        {
            "entries": [
                {"status": entry.status, "t": entry.t.isoformat()}
                for entry in history
            ]
        },
        separators=(",", ":"),
    )


def history_from_json(raw: Optional[str]) -> list[StatusHistoryEntry]:
    """Parse a stored history. Absent or malformed values yield []."""
    if raw is None:
        return []

    try:
        data = json.loads(raw)
        return [
            StatusHistoryEntry(
                status=entry["status"],
                t=datetime.fromisoformat(entry["t"]).astimezone(timezone.utc),
            )
            for entry in data["entries"]
        ]
    except (ValueError, KeyError, TypeError) as exc:
        logger.warning("Discarding malformed status_history %r: %s", raw[:200], exc)
        return []
