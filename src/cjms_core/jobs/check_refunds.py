"""Ingest refunds from the warehouse."""
import logging
import sqlite3
import uuid

from ..errors import ConflictError, NotFoundError, WarehouseRowError
from ..store.refunds import Refund, RefundModel
from ..store.status import RefundStatus
from ..store.subscriptions import SubscriptionModel
from ..telemetry import Metrics, log_and_incr
from ..warehouse.client import REFUNDS_QUERY, WarehouseClient
from ..warehouse.result_set import ResultSet


logger = logging.getLogger(__name__)


def make_refund_from_row(rs: ResultSet) -> Refund:
    """Build a refund from the current warehouse row.

    Raises:
        WarehouseRowError: If a required column is missing, null or mistyped
    """
    return Refund(
        id=uuid.uuid4(),
        refund_id=rs.require_string_by_name("refund_id"),
        subscription_id=rs.require_string_by_name("subscription_id"),
        refund_created=rs.require_timestamp_by_name("created"),
        refund_amount=rs.require_int_by_name("amount"),
        refund_status=rs.get_string_by_name("status"),
        refund_reason=rs.get_string_by_name("reason"),
    )


async def fetch_and_process_refunds(
    warehouse: WarehouseClient,
    subscriptions: SubscriptionModel,
    refunds: RefundModel,
    metrics: Metrics,
) -> None:
    """Insert new refunds and reset changed ones to NotReported.

    Raises:
        TransportError, DeserializeError: If the warehouse query fails
    """
    rs = await warehouse.get_results(REFUNDS_QUERY)
    metrics.gauge("rows", rs.row_count())

    while rs.next_row():
        try:
            incoming = make_refund_from_row(rs)
        except WarehouseRowError as exc:
            log_and_incr(
                logger,
                metrics,
                "deserialize_failed",
                f"Failed to make refund from warehouse row: {exc}. Continuing...",
                level=logging.ERROR,
            )
            continue

        log_and_incr(
            logger,
            metrics,
            "deserialize_ok",
            "Deserialized refund from warehouse row",
            refund_id=incoming.refund_id,
        )

        try:
            subscriptions.fetch_one_by_subscription_id(incoming.subscription_id)
        except NotFoundError:
            log_and_incr(
                logger,
                metrics,
                "subscription_missing",
                "Subscription for refund is not in the database. Continuing...",
                level=logging.WARNING,
                subscription_id=incoming.subscription_id,
                refund_id=incoming.refund_id,
            )
            continue

        try:
            existing = refunds.fetch_one_by_refund_id(incoming.refund_id)
        except NotFoundError:
            existing = None

        if existing is None:
            incoming.update_status(RefundStatus.NOT_REPORTED)
            try:
                refunds.create_from_refund(incoming)
            except ConflictError as exc:
                log_and_incr(
                    logger,
                    metrics,
                    "refund_duplicate",
                    f"Duplicate key violation: {exc}",
                    level=logging.ERROR,
                    refund_id=incoming.refund_id,
                )
                continue
            except sqlite3.Error as exc:
                log_and_incr(
                    logger,
                    metrics,
                    "refund_create_failed",
                    f"Database error while creating refund: {exc}. Continuing...",
                    level=logging.ERROR,
                    refund_id=incoming.refund_id,
                )
                continue
            log_and_incr(logger, metrics, "refund_created", "Created refund", refund_id=incoming.refund_id)
            continue

        if existing.mutable_fields() == incoming.mutable_fields():
            log_and_incr(
                logger,
                metrics,
                "refund_unchanged",
                "Data for refund is unchanged. Continuing...",
                refund_id=existing.refund_id,
            )
            continue

        log_and_incr(
            logger,
            metrics,
            "refund_changed",
            "Data for refund is changed. Updating...",
            refund_id=existing.refund_id,
        )
        existing.subscription_id = incoming.subscription_id
        existing.refund_created = incoming.refund_created
        existing.refund_amount = incoming.refund_amount
        existing.refund_status = incoming.refund_status
        existing.refund_reason = incoming.refund_reason
        existing.update_status(RefundStatus.NOT_REPORTED)
        existing.correction_file_date = None

        try:
            refunds.update_refund(existing)
        except (NotFoundError, sqlite3.Error) as exc:
            log_and_incr(
                logger,
                metrics,
                "refund_update_failed",
                f"Error updating refund: {exc}. Continuing...",
                level=logging.ERROR,
                refund_id=existing.refund_id,
            )
            continue
        log_and_incr(logger, metrics, "refund_updated", "Refund updated", refund_id=existing.refund_id)
