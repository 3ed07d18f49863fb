"""Ingest new subscriptions from the warehouse and link them to cookies."""
import logging
import sqlite3
import uuid

from ..errors import CJMSError, ConflictError, NotFoundError, WarehouseRowError
from ..store.aic import AICModel
from ..store.status import SubscriptionStatus
from ..store.subscriptions import Subscription, SubscriptionModel
from ..telemetry import Metrics, log_and_incr
from ..warehouse.client import SUBSCRIPTIONS_QUERY, WarehouseClient
from ..warehouse.result_set import ResultSet


logger = logging.getLogger(__name__)


def make_subscription_from_row(rs: ResultSet) -> Subscription:
    """Build a subscription from the current warehouse row.

    Raises:
        WarehouseRowError: If a required column is missing, null or mistyped
    """
    return Subscription(
        id=uuid.uuid4(),
        flow_id=rs.require_string_by_name("flow_id"),
        subscription_id=rs.require_string_by_name("subscription_id"),
        report_timestamp=rs.require_timestamp_by_name("report_timestamp"),
        subscription_created=rs.require_timestamp_by_name("subscription_created"),
        fxa_uid=rs.require_string_by_name("fxa_uid"),
        quantity=rs.require_int_by_name("quantity"),
        plan_id=rs.require_string_by_name("plan_id"),
        plan_currency=rs.require_string_by_name("plan_currency"),
        plan_amount=rs.require_int_by_name("plan_amount"),
        country=rs.get_string_by_name("country"),
    )


async def fetch_and_process_new_subscriptions(
    warehouse: WarehouseClient,
    subscriptions: SubscriptionModel,
    aics: AICModel,
    metrics: Metrics,
) -> None:
    """Walk the warehouse subscriptions and store each one that has a cookie.

    Per row: build, find the cookie by flow_id (live table first, then the
    archive), copy its values onto the subscription, archive it if it was
    live, insert the subscription as NotReported. Archive and insert are
    separate writes; a re-run finds the cookie in the archive.

    Raises:
        TransportError, DeserializeError: If the warehouse query fails
    """
    rs = await warehouse.get_results(SUBSCRIPTIONS_QUERY)
    metrics.gauge("rows", rs.row_count())

    while rs.next_row():
        try:
            sub = make_subscription_from_row(rs)
        except WarehouseRowError as exc:
            log_and_incr(
                logger,
                metrics,
                "deserialize_failed",
                f"Failed to make subscription from warehouse row: {exc}. Continuing...",
                level=logging.ERROR,
            )
            continue

        log_and_incr(
            logger,
            metrics,
            "deserialize_ok",
            "Deserialized subscription from warehouse row",
            subscription_id=sub.subscription_id,
        )

        found_in_archive = False
        try:
            aic = aics.fetch_one_by_flow_id(sub.flow_id)
        except NotFoundError:
            try:
                aic = aics.fetch_one_by_flow_id_from_archive(sub.flow_id)
                found_in_archive = True
            except NotFoundError:
                log_and_incr(
                    logger,
                    metrics,
                    "no_aic",
                    "No aic for subscription. Continuing...",
                    level=logging.WARNING,
                    flow_id=sub.flow_id,
                    subscription_id=sub.subscription_id,
                )
                continue

        if found_in_archive:
            log_and_incr(logger, metrics, "aic_fetch_from_archive", "aic was fetched from archive", aic_id=aic.id)
        else:
            log_and_incr(logger, metrics, "aic_fetch", "Fetched aic", aic_id=aic.id)

        sub.aic_id = aic.id
        sub.cj_event_value = aic.cj_event_value
        sub.aic_expires = aic.expires

        if not found_in_archive:
            try:
                aics.archive_aic(aic)
            except (CJMSError, sqlite3.Error) as exc:
                log_and_incr(
                    logger,
                    metrics,
                    "aic_archive_failed",
                    f"Failed to archive aic: {exc}. Continuing...",
                    level=logging.ERROR,
                    aic_id=aic.id,
                )
                continue
            log_and_incr(logger, metrics, "aic_archived", "Archived aic", aic_id=aic.id)

        sub.update_status(SubscriptionStatus.NOT_REPORTED)
        try:
            subscriptions.create_from_sub(sub)
        except ConflictError as exc:
            log_and_incr(
                logger,
                metrics,
                "subscription_duplicate",
                f"Duplicate key violation: {exc}",
                level=logging.ERROR,
                subscription_id=sub.subscription_id,
            )
            continue
        except sqlite3.Error as exc:
            log_and_incr(
                logger,
                metrics,
                "subscription_create_failed",
                f"Database error while creating subscription: {exc}. Continuing...",
                level=logging.ERROR,
                subscription_id=sub.subscription_id,
            )
            continue

        log_and_incr(logger, metrics, "subscription_created", "Created subscription", sub_id=sub.id)
