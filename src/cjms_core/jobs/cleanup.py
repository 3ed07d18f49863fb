"""Move expired attribution cookies to the archive."""
import logging
import sqlite3
from datetime import datetime
from typing import Optional

from ..errors import CJMSError
from ..store.aic import AICModel
from ..telemetry import Metrics, log_and_incr


logger = logging.getLogger(__name__)


def archive_expired_aics(
    aics: AICModel,
    metrics: Metrics,
    now: Optional[datetime] = None,
) -> int:
    """Archive every cookie whose expires is before now.

    A failure to read expired cookies propagates. A failed move is logged
    and the pass continues.

    Returns:
        Number of cookies archived
    """
    expired = aics.fetch_expired(now=now)
    metrics.gauge("expired", len(expired))

    archived = 0
    for aic in expired:
        try:
            aics.archive_aic(aic)
        except (CJMSError, sqlite3.Error) as exc:
            log_and_incr(
                logger,
                metrics,
                "aic_archive_failed",
                f"Could not archive aic: {exc}. Continuing...",
                level=logging.ERROR,
                aic_id=aic.id,
            )
            continue

        archived += 1
        log_and_incr(logger, metrics, "aic_archived", "Successfully archived aic", aic_id=aic.id)

    return archived
