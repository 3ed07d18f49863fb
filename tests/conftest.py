"""Shared fixtures for CJMS tests."""
import socket
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from cjms_core.settings import Settings
from cjms_core.store.aic import AICModel
from cjms_core.store.refunds import Refund, RefundModel
from cjms_core.store.schema import connect
from cjms_core.store.status import RefundStatus, SubscriptionStatus
from cjms_core.store.subscriptions import Subscription, SubscriptionModel
from cjms_core.telemetry import Metrics
from cjms_core.warehouse.result_set import ResultSet


@pytest.fixture
def settings():
    """Complete settings for tests."""
    return Settings(
        authentication="test-password",
        aic_expiration_days=30,
        cj_api_access_token="cj-api-token",
        cj_cid="C",
        cj_signature="test-signature",
        cj_subid="U",
        cj_type="test-type",
        cj_sftp_user="123456",
        database_url="sqlite:///:memory:",
        environment="local",
        gcp_project="test-project",
        host="127.0.0.1",
        port=8080,
        log_level="info",
        sentry_dsn="",
        sentry_environment="test",
        statsd_host="127.0.0.1",
        statsd_port=9091,
    )


@pytest.fixture
def db_conn(tmp_path):
    """Store connection on a temporary SQLite file."""
    conn = connect(str(tmp_path / "cjms.db"))
    yield conn
    conn.close()


@pytest.fixture
def metrics():
    return Metrics("test")


@pytest.fixture
def aics(db_conn):
    return AICModel(db_conn, timedelta(days=30))


@pytest.fixture
def subscriptions(db_conn):
    return SubscriptionModel(db_conn)


@pytest.fixture
def refunds(db_conn):
    return RefundModel(db_conn)


@pytest.fixture
def make_subscription():
    """Factory for NotReported subscriptions with sensible defaults."""

    def _make(**overrides) -> Subscription:
        created = datetime(2022, 3, 16, 17, 14, 57, tzinfo=timezone.utc)
        values = {
            "id": uuid.uuid4(),
            "flow_id": f"flow-{uuid.uuid4().hex[:8]}",
            "subscription_id": f"sub_{uuid.uuid4().hex[:8]}",
            "report_timestamp": created + timedelta(minutes=5),
            "subscription_created": created,
            "fxa_uid": "hashed-fxa-uid",
            "quantity": 1,
            "plan_id": "price_1Iw85dJNcmPzuWtRyhMDdtM7",
            "plan_currency": "usd",
            "plan_amount": 100,
            "country": "us",
            "aic_id": uuid.uuid4(),
            "aic_expires": created + timedelta(days=10),
            "cj_event_value": "CJX",
        }
        status = overrides.pop("status", SubscriptionStatus.NOT_REPORTED)
        status_t = overrides.pop("status_t", None)
        values.update(overrides)
        sub = Subscription(**values)
        sub.update_status(status, now=status_t)
        return sub

    return _make


@pytest.fixture
def make_refund():
    """Factory for NotReported refunds with sensible defaults."""

    def _make(**overrides) -> Refund:
        values = {
            "id": uuid.uuid4(),
            "refund_id": f"re_{uuid.uuid4().hex[:8]}",
            "subscription_id": "sub_1",
            "refund_created": datetime(2021, 11, 7, 10, 0, 0, tzinfo=timezone.utc),
            "refund_amount": 100,
            "refund_status": "succeeded",
            "refund_reason": "requested_by_customer",
        }
        status = overrides.pop("status", RefundStatus.NOT_REPORTED)
        values.update(overrides)
        refund = Refund(**values)
        refund.update_status(status)
        return refund

    return _make


def make_query_response(fields: list[str], rows: list[list]) -> dict:
    """Warehouse query response with string-typed schema and the given cell values."""
    return {
        "kind": "bigquery#queryResponse",
        "jobComplete": True,
        "schema": {"fields": [{"name": name, "type": "STRING"} for name in fields]},
        "rows": [{"f": [{"v": value} for value in row]} for row in rows],
        "totalRows": str(len(rows)),
    }


def make_result_set(fields: list[str], rows: list[list]) -> ResultSet:
    return ResultSet(make_query_response(fields, rows))


@pytest.fixture
def query_response():
    """Factory for warehouse query responses."""
    return make_query_response


@pytest.fixture
def result_set():
    """Factory for ResultSets over given columns and rows."""
    return make_result_set


class StatsdListener:
    """UDP socket standing in for a StatsD daemon."""

    def __init__(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(0.5)
        self.port = self.sock.getsockname()[1]

    def received(self) -> list[str]:
        """Every metric line delivered so far."""
        lines = []
        while True:
            try:
                data = self.sock.recv(65535)
            except socket.timeout:
                return lines
            lines.extend(data.decode("ascii").splitlines())

    def close(self) -> None:
        self.sock.close()


@pytest.fixture
def statsd_listener():
    listener = StatsdListener()
    yield listener
    listener.close()
