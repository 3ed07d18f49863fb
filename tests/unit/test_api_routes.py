"""Unit tests for API routes."""
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from cjms_core.jobs.batch_refunds import utc_today
from cjms_core.main import allowed_origins, create_app
from cjms_core.store.schema import connect
from cjms_core.store.status import RefundStatus


@pytest.fixture
def version_file(tmp_path):
    path = tmp_path / "version.yaml"
    path.write_text("commit: a1b2c3\nsource: https://github.com/example/cjms\nversion: v1.0.0\n")
    return path


@pytest.fixture
def client(settings, db_conn, metrics, version_file):
    """Create test client over a temporary store."""
    app = create_app(settings, conn=db_conn, metrics=metrics, version_file=str(version_file))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def broken_client(settings, tmp_path, metrics, version_file):
    """Test client whose store connection is already closed."""
    conn = connect(str(tmp_path / "closed.db"))
    conn.close()
    app = create_app(settings, conn=conn, metrics=metrics, version_file=str(version_file))
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


AUTH = ("ignored-user", "test-password")


def test_index(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "Hello world!"


@pytest.mark.parametrize("path", ["/__heartbeat__", "/__lbheartbeat__"])
def test_heartbeats(client, path):
    response = client.get(path)

    assert response.status_code == 200
    assert response.text == "OK"


def test_version(client):
    response = client.get("/__version__")

    assert response.status_code == 200
    assert response.json() == {
        "commit": "a1b2c3",
        "source": "https://github.com/example/cjms",
        "version": "v1.0.0",
    }


def test_error_log_route_logs_an_error(client, caplog):
    with caplog.at_level(logging.ERROR, logger="cjms_core.api.routes"):
        response = client.get("/__error_log__")

    assert response.status_code == 200
    assert response.text == "Error log test"
    assert any(
        record.levelno == logging.ERROR and "request-error-log-test" in record.getMessage()
        for record in caplog.records
    )


def test_error_panic_route_returns_500(settings, db_conn, metrics, version_file):
    app = create_app(settings, conn=db_conn, metrics=metrics, version_file=str(version_file))

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/__error_panic__")

    assert response.status_code == 500


def test_create_app_initialises_error_reporting(settings, db_conn, metrics, version_file):
    with patch("cjms_core.main.init_sentry") as init_sentry:
        create_app(settings, conn=db_conn, metrics=metrics, version_file=str(version_file))

    init_sentry.assert_called_once_with(settings, str(version_file))


def test_create_aic(client, aics, metrics):
    before = datetime.now(timezone.utc)

    response = client.post("/aic", json={"flow_id": "F1", "cj_id": "CJ1"})

    assert response.status_code == 201
    body = response.json()
    stored = aics.fetch_one_by_id(uuid.UUID(body["aic_id"]))
    assert stored.flow_id == "F1"
    assert stored.cj_event_value == "CJ1"
    assert stored.expires - stored.created == timedelta(days=30)
    assert body["expires"] == int(stored.expires.timestamp())
    assert body["expires"] >= int((before + timedelta(days=30)).timestamp())
    assert metrics.count("aic_created") == 1


def test_create_aic_malformed_json(client):
    response = client.post(
        "/aic", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


def test_create_aic_missing_field(client):
    response = client.post("/aic", json={"flow_id": "F1"})

    assert response.status_code == 400


def test_aic_wrong_method(client):
    response = client.get("/aic")

    assert response.status_code == 405


def test_update_aic_flow_only_keeps_expiry(client, aics):
    created = client.post("/aic", json={"flow_id": "F1", "cj_id": "CJ1"}).json()
    original = aics.fetch_one_by_id(uuid.UUID(created["aic_id"]))

    response = client.put(f"/aic/{created['aic_id']}", json={"flow_id": "F2"})

    assert response.status_code == 201
    assert response.json() == created
    stored = aics.fetch_one_by_id(original.id)
    assert stored.flow_id == "F2"
    assert stored.cj_event_value == "CJ1"
    assert stored.created == original.created
    assert stored.expires == original.expires


def test_update_aic_new_cj_id(client, aics):
    created = client.post("/aic", json={"flow_id": "F1", "cj_id": "CJ1"}).json()

    response = client.put(f"/aic/{created['aic_id']}", json={"flow_id": "F3", "cj_id": "CJ2"})

    assert response.status_code == 201
    stored = aics.fetch_one_by_id(uuid.UUID(created["aic_id"]))
    assert stored.flow_id == "F3"
    assert stored.cj_event_value == "CJ2"
    assert stored.expires - stored.created == timedelta(days=30)


def test_update_aic_unknown_id(client):
    response = client.put(f"/aic/{uuid.uuid4()}", json={"flow_id": "F2"})

    assert response.status_code == 404


def test_update_aic_id_not_a_uuid(client):
    response = client.put("/aic/not-a-uuid", json={"flow_id": "F2"})

    assert response.status_code == 404


def test_corrections_without_auth(client):
    response = client.get("/corrections/today.csv")

    assert response.status_code == 401
    assert response.json()["detail"] == "Password missing."


def test_corrections_wrong_password(client):
    response = client.get("/corrections/2021-11-07.csv", auth=("user", "wrong"))

    assert response.status_code == 401
    assert response.json()["detail"] == "Incorrect password."


def test_corrections_for_day(client, subscriptions, refunds, make_subscription, make_refund):
    sub = make_subscription(subscription_id="sub_S1")
    subscriptions.create_from_sub(sub)
    refund = make_refund(subscription_id="sub_S1", status=RefundStatus.REPORTED)
    refund.correction_file_date = date(2021, 11, 7)
    refunds.create_from_refund(refund)

    response = client.get("/corrections/2021-11-07.csv", auth=AUTH)

    assert response.status_code == 200
    assert response.text == f"&CID=C\n&SUBID=U\nRETRN,,{sub.id}\n"


def test_corrections_today_empty(client):
    response = client.get("/corrections/today.csv", auth=AUTH)

    assert response.status_code == 200
    assert response.text == "&CID=C\n&SUBID=U\n"


def test_corrections_today_uses_utc_date(client, subscriptions, refunds, make_subscription, make_refund):
    sub = make_subscription(subscription_id="sub_T1")
    subscriptions.create_from_sub(sub)
    refund = make_refund(subscription_id="sub_T1", status=RefundStatus.REPORTED)
    refund.correction_file_date = utc_today()
    refunds.create_from_refund(refund)

    response = client.get("/corrections/today.csv", auth=AUTH)

    assert response.text.endswith(f"RETRN,,{sub.id}\n")


def test_corrections_unparseable_day(client):
    response = client.get("/corrections/yesterday.csv", auth=AUTH)

    assert response.status_code == 404


def test_create_aic_store_failure(broken_client, metrics):
    response = broken_client.post("/aic", json={"flow_id": "F1", "cj_id": "CJ1"})

    assert response.status_code == 500
    assert response.json()["detail"] == "aic create failed"
    assert metrics.count("aic_create_failed") == 1


def test_update_aic_store_failure(broken_client, metrics):
    response = broken_client.put(f"/aic/{uuid.uuid4()}", json={"flow_id": "F2"})

    assert response.status_code == 500
    assert response.json()["detail"] == "aic update failed"
    assert metrics.count("aic_update_failed") == 1


def test_corrections_store_failure(broken_client):
    response = broken_client.get("/corrections/2021-11-07.csv", auth=AUTH)

    assert response.status_code == 500
    assert response.json()["detail"] == "Could not render correction file"


def test_allowed_origins_by_environment():
    assert allowed_origins("prod") == ["https://www.mozilla.org", "https://www.allizom.org"]
    assert "http://localhost:8000" in allowed_origins("stage")
    assert "https://www-demo5.allizom.org" in allowed_origins("dev")
