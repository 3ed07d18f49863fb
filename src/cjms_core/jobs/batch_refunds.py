"""Assign refunds to daily correction files and render those files."""
import logging
import sqlite3
from datetime import date, datetime, timezone
from typing import Optional

from ..errors import NotFoundError
from ..settings import Settings
from ..store.refunds import RefundModel
from ..store.status import RefundStatus
from ..telemetry import Metrics, log_and_incr


logger = logging.getLogger(__name__)

REPORTABLE_REFUND_STATUS = "succeeded"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def batch_refunds_by_day(
    refunds: RefundModel,
    metrics: Metrics,
    today: Optional[date] = None,
) -> None:
    """Move every NotReported refund to Reported (stamped with today) or WillNotReport.

    Refunds without a refund_status, or with "succeeded", go in today's file.
    """
    today = today if today is not None else utc_today()
    pending = refunds.fetch_all_by_status(RefundStatus.NOT_REPORTED)
    metrics.gauge("not_reported", len(pending))

    for refund in pending:
        if refund.refund_status is None or refund.refund_status == REPORTABLE_REFUND_STATUS:
            refund.update_status(RefundStatus.REPORTED)
            refund.correction_file_date = today
            event = "refund_batched"
        else:
            refund.update_status(RefundStatus.WILL_NOT_REPORT)
            refund.correction_file_date = None
            event = "refund_will_not_report"

        try:
            refunds.update_refund(refund)
        except (NotFoundError, sqlite3.Error) as exc:
            log_and_incr(
                logger,
                metrics,
                "refund_update_failed",
                f"Error updating refund: {exc}. Continuing...",
                level=logging.ERROR,
                refund_id=refund.refund_id,
            )
            continue

        log_and_incr(
            logger,
            metrics,
            event,
            f"Refund is now {refund.status.status}",
            refund_id=refund.refund_id,
            correction_file_date=refund.correction_file_date,
        )


def render_correction_file(refunds: RefundModel, settings: Settings, day: date) -> str:
    """Correction file body for one day.

    Header lines carry the advertiser ids; each refund in the day's batch
    reverses the conversion reported under its subscription's order id.
    """
    lines = [f"&CID={settings.cj_cid}", f"&SUBID={settings.cj_subid}"]
    for order_id in refunds.fetch_correction_order_ids(day):
        lines.append(f"RETRN,,{order_id}")
    return "".join(f"{line}\n" for line in lines)
