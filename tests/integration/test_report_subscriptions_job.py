"""Integration tests for reporting subscriptions to the affiliate network."""
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from cjms_core.errors import TransportError
from cjms_core.jobs.report_subscriptions import report_subscriptions_to_cj, will_not_report
from cjms_core.store.status import SubscriptionStatus


@pytest.fixture
def cj_client():
    """Affiliate network client double."""
    client = AsyncMock()
    client.report_subscription.return_value = 200
    return client


def _history(subscriptions, sub) -> list[str]:
    return [entry.status for entry in subscriptions.fetch_one_by_id(sub.id).status.history]


def test_will_not_report(make_subscription):
    sub = make_subscription()
    assert not will_not_report(sub)

    sub.aic_expires = sub.subscription_created - timedelta(seconds=1)
    assert will_not_report(sub)

    sub.aic_expires = None
    assert will_not_report(sub)


@pytest.mark.asyncio
async def test_200_marks_reported(subscriptions, cj_client, metrics, make_subscription):
    sub = make_subscription()
    subscriptions.create_from_sub(sub)

    await report_subscriptions_to_cj(subscriptions, cj_client, metrics)

    cj_client.report_subscription.assert_awaited_once()
    assert cj_client.report_subscription.await_args.args[0].id == sub.id
    assert _history(subscriptions, sub) == ["NotReported", "Reported"]
    assert metrics.count("report_ok") == 1


@pytest.mark.asyncio
async def test_expired_cookie_is_not_reported(subscriptions, cj_client, metrics, make_subscription):
    base = make_subscription()
    sub = make_subscription(aic_expires=base.subscription_created - timedelta(days=1))
    subscriptions.create_from_sub(sub)

    await report_subscriptions_to_cj(subscriptions, cj_client, metrics)

    cj_client.report_subscription.assert_not_awaited()
    assert _history(subscriptions, sub) == ["NotReported", "WillNotReport"]
    assert metrics.count("aic_expired_before_subscription") == 1
    assert metrics.count("mark_will_not_report") == 1


@pytest.mark.asyncio
async def test_missing_expiry_is_not_reported(subscriptions, cj_client, metrics, make_subscription):
    sub = make_subscription(aic_expires=None)
    subscriptions.create_from_sub(sub)

    await report_subscriptions_to_cj(subscriptions, cj_client, metrics)

    cj_client.report_subscription.assert_not_awaited()
    assert subscriptions.fetch_one_by_id(sub.id).get_status() == SubscriptionStatus.WILL_NOT_REPORT
    assert metrics.count("no_aic_expiry") == 1


@pytest.mark.asyncio
async def test_non_200_is_retried_next_run(subscriptions, cj_client, metrics, make_subscription):
    sub = make_subscription()
    subscriptions.create_from_sub(sub)
    cj_client.report_subscription.return_value = 500

    await report_subscriptions_to_cj(subscriptions, cj_client, metrics)

    assert _history(subscriptions, sub) == ["NotReported", "NotReported"]
    assert metrics.count("report_failed") == 1
    assert metrics.count("mark_not_reported") == 1

    cj_client.report_subscription.return_value = 200
    await report_subscriptions_to_cj(subscriptions, cj_client, metrics)

    assert _history(subscriptions, sub) == ["NotReported", "NotReported", "Reported"]


@pytest.mark.asyncio
async def test_transport_error_keeps_not_reported(
    subscriptions, cj_client, metrics, make_subscription
):
    first = make_subscription()
    second = make_subscription(subscription_created=first.subscription_created + timedelta(hours=1))
    for sub in (first, second):
        subscriptions.create_from_sub(sub)
    cj_client.report_subscription.side_effect = [TransportError("connection reset"), 200]

    await report_subscriptions_to_cj(subscriptions, cj_client, metrics)

    assert subscriptions.fetch_one_by_id(first.id).get_status() == SubscriptionStatus.NOT_REPORTED
    assert subscriptions.fetch_one_by_id(second.id).get_status() == SubscriptionStatus.REPORTED
    assert metrics.gauge_value("not_reported") == 2


@pytest.mark.asyncio
async def test_only_not_reported_are_considered(
    subscriptions, cj_client, metrics, make_subscription
):
    subscriptions.create_from_sub(make_subscription(status=SubscriptionStatus.REPORTED))
    subscriptions.create_from_sub(make_subscription(status=SubscriptionStatus.WILL_NOT_REPORT))

    await report_subscriptions_to_cj(subscriptions, cj_client, metrics)

    cj_client.report_subscription.assert_not_awaited()
