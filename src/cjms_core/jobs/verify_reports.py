"""Check Reported subscriptions against the affiliate network's commission records."""
import logging
import sqlite3
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from ..cj.client import CJClient
from ..cj.models import CommissionDetailRecord
from ..errors import NotFoundError
from ..store.status import SubscriptionStatus, utcnow
from ..store.subscriptions import Subscription, SubscriptionModel
from ..telemetry import Metrics, log_and_incr


logger = logging.getLogger(__name__)

GRACE_PERIOD = timedelta(hours=36)


def record_matches_subscription(record: CommissionDetailRecord, sub: Subscription) -> bool:
    """Every item's SKU is the plan and the sale amount is the plan amount."""
    if not record.items:
        return False
    if any(item.sku != sub.plan_id for item in record.items):
        return False
    return Decimal(record.sale_amount_pub_currency) == Decimal(sub.plan_amount) / 100


def group_original_records(
    records: list[CommissionDetailRecord],
) -> dict[str, list[CommissionDetailRecord]]:
    """Original records keyed by order id. Correction records are dropped."""
    by_order: dict[str, list[CommissionDetailRecord]] = defaultdict(list)
    for record in records:
        if record.original:
            by_order[record.order_id].append(record)
    return by_order


async def verify_reports_with_cj(
    subscriptions: SubscriptionModel,
    cj_client: CJClient,
    metrics: Metrics,
    now: Optional[datetime] = None,
) -> None:
    """One verification pass over Reported subscriptions.

    Raises:
        TransportError, DeserializeError: If the commission detail API fails
    """
    date_range = subscriptions.get_reported_date_range()
    if date_range is None:
        logger.info("No Reported subscriptions to verify")
        return

    min_t, max_t = date_range
    reported = subscriptions.fetch_all_by_status(SubscriptionStatus.REPORTED)
    metrics.gauge("reported", len(reported))

    record_set = await cj_client.query_commission_detail_api_between_dates(min_t, max_t)
    metrics.gauge("records", record_set.count)
    by_order = group_original_records(record_set.records)

    now = now if now is not None else utcnow()

    for sub in reported:
        matches = by_order.get(str(sub.id), [])

        if len(matches) > 1:
            log_and_incr(
                logger,
                metrics,
                "multiple_records",
                f"{len(matches)} original records for one order. Leaving as Reported.",
                level=logging.ERROR,
                sub_id=sub.id,
            )
            continue

        if len(matches) == 1:
            if record_matches_subscription(matches[0], sub):
                new_status, event = SubscriptionStatus.CJ_RECEIVED, "cj_received"
            else:
                new_status, event = SubscriptionStatus.CJ_NOT_RECEIVED, "record_mismatch"
        elif sub.status.status_t is not None and now - sub.status.status_t > GRACE_PERIOD:
            new_status, event = SubscriptionStatus.CJ_NOT_RECEIVED, "not_found_after_grace"
        else:
            log_and_incr(
                logger,
                metrics,
                "not_found_within_grace",
                "No record yet. Leaving as Reported.",
                sub_id=sub.id,
            )
            continue

        try:
            subscriptions.update_sub_status(sub.id, new_status, now=now)
        except (NotFoundError, sqlite3.Error) as exc:
            log_and_incr(
                logger,
                metrics,
                "update_failed",
                f"Could not update subscription status: {exc}",
                level=logging.ERROR,
                sub_id=sub.id,
            )
            continue

        log_and_incr(
            logger,
            metrics,
            event,
            f"Subscription is now {new_status.value}",
            sub_id=sub.id,
        )
