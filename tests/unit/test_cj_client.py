"""Unit tests for the affiliate network client (mocked aiohttp session)."""
import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from cjms_core.cj.client import CJClient, convert_amount_to_decimal, format_event_time
from cjms_core.cj.country_codes import get_iso_code_3_from_iso_code_2
from cjms_core.errors import DeserializeError, TransportError


@pytest.fixture
def mock_session():
    """Mock aiohttp ClientSession."""
    return MagicMock()


@pytest.fixture
def cj_client(settings, mock_session):
    return CJClient(settings, mock_session)


def _response(status: int, body: str = "") -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.text.return_value = body
    mock_response.__aenter__.return_value = mock_response
    return mock_response


def test_country_codes():
    assert get_iso_code_3_from_iso_code_2("us") == "USA"
    assert get_iso_code_3_from_iso_code_2("cG") == "COG"
    assert get_iso_code_3_from_iso_code_2("DE") == "DEU"
    assert get_iso_code_3_from_iso_code_2("gfd") == "N/A"
    assert get_iso_code_3_from_iso_code_2("") == "N/A"


def test_convert_amount_to_decimal():
    assert convert_amount_to_decimal(3988) == 39.88
    assert str(convert_amount_to_decimal(100)) == "1.0"


def test_event_time_is_truncated_to_the_hour():
    created = datetime(2022, 3, 16, 17, 14, 57, tzinfo=timezone.utc)
    assert format_event_time(created) == "2022-03-16T17:00:00.000Z"


def test_build_report_params(cj_client, make_subscription):
    sub = make_subscription(
        id=uuid.UUID("6f2d9e0c-0e9a-4b1f-8c55-0d2f0f9f3a11"),
        plan_amount=3988,
        quantity=2,
        country="gb",
        cj_event_value="CJ1",
    )

    params = cj_client.build_report_params(sub)

    assert params == {
        "CID": "C",
        "TYPE": "test-type",
        "SIGNATURE": "test-signature",
        "METHOD": "S2S",
        "CJEVENT": "CJ1",
        "EVENTTIME": "2022-03-16T17:00:00.000Z",
        "OID": "6f2d9e0c-0e9a-4b1f-8c55-0d2f0f9f3a11",
        "CURRENCY": "usd",
        "ITEM1": "price_1Iw85dJNcmPzuWtRyhMDdtM7",
        "AMT1": "39.88",
        "QTY1": "2",
        "CUST_COUNTRY": "GBR",
    }


def test_build_report_params_defaults(cj_client, make_subscription):
    sub = make_subscription(cj_event_value=None, country=None)

    params = cj_client.build_report_params(sub)

    assert params["CJEVENT"] == "n/a"
    assert params["CUST_COUNTRY"] == "N/A"


@pytest.mark.asyncio
async def test_report_subscription_returns_status(cj_client, mock_session, make_subscription):
    mock_session.get.return_value = _response(200)
    sub = make_subscription()

    status = await cj_client.report_subscription(sub)

    assert status == 200
    args, kwargs = mock_session.get.call_args
    assert args[0] == "https://www.emjcd.com/u"
    assert kwargs["params"]["OID"] == str(sub.id)


@pytest.mark.asyncio
async def test_report_subscription_non_200(cj_client, mock_session, make_subscription):
    mock_session.get.return_value = _response(500, "server error")

    assert await cj_client.report_subscription(make_subscription()) == 500


@pytest.mark.asyncio
async def test_report_subscription_network_error(cj_client, mock_session, make_subscription):
    mock_session.get.side_effect = aiohttp.ClientConnectionError("refused")

    with pytest.raises(TransportError):
        await cj_client.report_subscription(make_subscription())


def test_commission_detail_query_window(cj_client):
    query = cj_client.build_commission_detail_query(
        datetime(2022, 3, 14, 23, 59, tzinfo=timezone.utc),
        datetime(2022, 3, 16, 1, 0, tzinfo=timezone.utc),
    )

    assert 'forAdvertisers: ["123456"]' in query
    assert 'sincePostingDate: "2022-03-14T00:00:00Z"' in query
    assert 'beforePostingDate: "2022-03-17T00:00:00Z"' in query


@pytest.mark.asyncio
async def test_query_commission_detail_parses_records(cj_client, mock_session):
    body = {
        "data": {
            "advertiserCommissions": {
                "count": 2,
                "records": [
                    {
                        "original": True,
                        "orderId": "order-1",
                        "correctionReason": None,
                        "saleAmountPubCurrency": 39.88,
                        "items": [{"sku": "price_1"}],
                    },
                    {
                        "original": False,
                        "orderId": "order-1",
                        "correctionReason": "RETURNED",
                        "saleAmountPubCurrency": -39.88,
                        "items": [{"sku": "price_1"}],
                    },
                ],
            }
        }
    }
    mock_session.get.return_value = _response(200, json.dumps(body))

    record_set = await cj_client.query_commission_detail_api_between_dates(
        datetime(2022, 3, 14, tzinfo=timezone.utc),
        datetime(2022, 3, 16, tzinfo=timezone.utc),
    )

    assert record_set.count == 2
    first = record_set.records[0]
    assert first.original is True
    assert first.order_id == "order-1"
    assert first.sale_amount_pub_currency == Decimal("39.88")
    assert first.items[0].sku == "price_1"
    assert record_set.records[1].correction_reason == "RETURNED"

    args, kwargs = mock_session.get.call_args
    assert args[0] == "https://commissions.api.cj.com/query"
    assert kwargs["headers"] == {"Authorization": "Bearer cj-api-token"}
    assert "advertiserCommissions" in kwargs["params"]["query"]


@pytest.mark.asyncio
async def test_query_commission_detail_errors_payload(cj_client, mock_session):
    mock_session.get.return_value = _response(
        200, json.dumps({"errors": [{"message": "bad token"}]})
    )

    with pytest.raises(TransportError) as exc_info:
        await cj_client.query_commission_detail_api_between_dates(
            datetime(2022, 3, 14, tzinfo=timezone.utc),
            datetime(2022, 3, 16, tzinfo=timezone.utc),
        )

    assert "bad token" in exc_info.value.body


@pytest.mark.asyncio
async def test_query_commission_detail_non_200(cj_client, mock_session):
    mock_session.get.return_value = _response(401, "unauthorized")

    with pytest.raises(TransportError) as exc_info:
        await cj_client.query_commission_detail_api_between_dates(
            datetime(2022, 3, 14, tzinfo=timezone.utc),
            datetime(2022, 3, 16, tzinfo=timezone.utc),
        )

    assert exc_info.value.status == 401


@pytest.mark.asyncio
async def test_query_commission_detail_bad_body(cj_client, mock_session):
    mock_session.get.return_value = _response(200, '{"data": {"advertiserCommissions": {}}}')

    with pytest.raises(DeserializeError):
        await cj_client.query_commission_detail_api_between_dates(
            datetime(2022, 3, 14, tzinfo=timezone.utc),
            datetime(2022, 3, 16, tzinfo=timezone.utc),
        )
