"""Report NotReported subscriptions to the affiliate network."""
import logging
import sqlite3

from ..cj.client import CJClient
from ..errors import NotFoundError, TransportError
from ..store.status import SubscriptionStatus
from ..store.subscriptions import Subscription, SubscriptionModel
from ..telemetry import Metrics, log_and_incr


logger = logging.getLogger(__name__)


def will_not_report(sub: Subscription) -> bool:
    """True when the cookie was missing or had expired before the subscription."""
    return sub.aic_expires is None or sub.aic_expires < sub.subscription_created


def _set_status(
    subscriptions: SubscriptionModel,
    metrics: Metrics,
    sub: Subscription,
    status: SubscriptionStatus,
    event: str,
    message: str,
) -> bool:
    try:
        subscriptions.update_sub_status(sub.id, status)
    except (NotFoundError, sqlite3.Error) as exc:
        log_and_incr(
            logger,
            metrics,
            f"{event}_failed",
            f"{message} Could not update local status: {exc}",
            level=logging.ERROR,
            sub_id=sub.id,
        )
        return False
    log_and_incr(logger, metrics, event, message, sub_id=sub.id)
    return True


async def report_subscriptions_to_cj(
    subscriptions: SubscriptionModel,
    cj_client: CJClient,
    metrics: Metrics,
) -> None:
    """One reporting pass over NotReported subscriptions.

    HTTP 200 marks the subscription Reported. Any other outcome appends a
    NotReported entry so the next run retries. If the local write after a 200
    fails the row stays NotReported and is reported again; the affiliate
    network dedupes by order id.
    """
    pending = subscriptions.fetch_all_not_reported()
    metrics.gauge("not_reported", len(pending))

    for sub in pending:
        if will_not_report(sub):
            if sub.aic_expires is None:
                log_and_incr(
                    logger,
                    metrics,
                    "no_aic_expiry",
                    "Subscription does not have an aic expiry. Will not report.",
                    level=logging.WARNING,
                    sub_id=sub.id,
                )
            else:
                log_and_incr(
                    logger,
                    metrics,
                    "aic_expired_before_subscription",
                    "aic expired before subscription created. Will not report.",
                    sub_id=sub.id,
                )
            _set_status(
                subscriptions,
                metrics,
                sub,
                SubscriptionStatus.WILL_NOT_REPORT,
                "mark_will_not_report",
                "Marked as WillNotReport.",
            )
            continue

        try:
            status = await cj_client.report_subscription(sub)
        except TransportError as exc:
            log_and_incr(
                logger,
                metrics,
                "report_failed",
                f"Could not report subscription: {exc}",
                level=logging.ERROR,
                sub_id=sub.id,
            )
            status = None

        if status == 200:
            _set_status(
                subscriptions,
                metrics,
                sub,
                SubscriptionStatus.REPORTED,
                "report_ok",
                "Reported subscription; received 200 status.",
            )
            continue

        if status is not None:
            log_and_incr(
                logger,
                metrics,
                "report_failed",
                "Could not report subscription; received non-200 status.",
                level=logging.ERROR,
                sub_id=sub.id,
                status=status,
            )
        _set_status(
            subscriptions,
            metrics,
            sub,
            SubscriptionStatus.NOT_REPORTED,
            "mark_not_reported",
            "Marked as NotReported.",
        )
