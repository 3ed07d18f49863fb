"""Async client for the affiliate network.

Two endpoints:
- server-to-server conversion report (one GET per subscription)
- commission detail GraphQL API (verification of reported conversions)
"""
import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import aiohttp
from pydantic import ValidationError

from ..errors import DeserializeError, TransportError
from ..settings import Settings
from ..store.subscriptions import Subscription
from .country_codes import get_iso_code_3_from_iso_code_2
from .models import CommissionDetailQueryResponse, CommissionDetailRecordSet


logger = logging.getLogger(__name__)

DEFAULT_S2S_ENDPOINT = "https://www.emjcd.com/u"
DEFAULT_COMMISSION_DETAIL_ENDPOINT = "https://commissions.api.cj.com/query"

COMMISSION_DETAIL_QUERY = """{
  advertiserCommissions(
    forAdvertisers: ["%(advertiser)s"],
    sincePostingDate: "%(since)s",
    beforePostingDate: "%(before)s"
  ) {
    count
    records {
      original
      orderId
      correctionReason
      saleAmountPubCurrency
      items {
        sku
      }
    }
  }
}"""


def convert_amount_to_decimal(plan_amount: int) -> float:
    """Minor units to major units (3988 -> 39.88)."""
    return plan_amount / 100


def format_event_time(subscription_created: datetime) -> str:
    """Creation instant truncated to the hour, e.g. 2022-03-16T17:00:00.000Z."""
    return subscription_created.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:00:00.000Z")


class CJClient:
    """Reports conversions and reads back commission records."""

    def __init__(
        self,
        settings: Settings,
        session: aiohttp.ClientSession,
        s2s_endpoint: Optional[str] = None,
        commission_detail_endpoint: Optional[str] = None,
    ) -> None:
        self.cj_cid = settings.cj_cid
        self.cj_type = settings.cj_type
        self.cj_signature = settings.cj_signature
        self.advertiser_id = settings.cj_sftp_user
        self._api_token = settings.cj_api_access_token
        self.session = session
        self.s2s_endpoint = s2s_endpoint or DEFAULT_S2S_ENDPOINT
        self.commission_detail_endpoint = (
            commission_detail_endpoint or DEFAULT_COMMISSION_DETAIL_ENDPOINT
        )

    def build_report_params(self, sub: Subscription) -> dict[str, str]:
        return {
            "CID": self.cj_cid,
            "TYPE": self.cj_type,
            "SIGNATURE": self.cj_signature,
            "METHOD": "S2S",
            "CJEVENT": sub.cj_event_value or "n/a",
            "EVENTTIME": format_event_time(sub.subscription_created),
            "OID": str(sub.id),
            "CURRENCY": sub.plan_currency,
            "ITEM1": sub.plan_id,
            "AMT1": str(convert_amount_to_decimal(sub.plan_amount)),
            "QTY1": str(sub.quantity),
            "CUST_COUNTRY": get_iso_code_3_from_iso_code_2(sub.country or ""),
        }

    async def report_subscription(self, sub: Subscription) -> int:
        """Send one conversion.

        Returns:
            HTTP status of the report

        Raises:
            TransportError: If the request could not be completed
        """
        timeout = aiohttp.ClientTimeout(total=30, connect=10)
        try:
            async with self.session.get(
                self.s2s_endpoint,
                params=self.build_report_params(sub),
                timeout=timeout,
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.warning(
                        "Conversion report for %s returned HTTP %s: %s",
                        sub.id,
                        resp.status,
                        body[:200],
                    )
                return resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Conversion report for {sub.id} failed: {exc}") from exc

    def build_commission_detail_query(self, min_t: datetime, max_t: datetime) -> str:
        # Start of min's day to the start of the day after max
        since = min_t.astimezone(timezone.utc).strftime("%Y-%m-%dT00:00:00Z")
        before = (max_t.astimezone(timezone.utc) + timedelta(days=1)).strftime(
            "%Y-%m-%dT00:00:00Z"
        )
        return COMMISSION_DETAIL_QUERY % {
            "advertiser": self.advertiser_id,
            "since": since,
            "before": before,
        }

    async def query_commission_detail_api_between_dates(
        self, min_t: datetime, max_t: datetime
    ) -> CommissionDetailRecordSet:
        """Fetch commission records posted in the window.

        Raises:
            TransportError: On network failure, non-200, or a response without data
            DeserializeError: If the body cannot be parsed
        """
        headers = {"Authorization": f"Bearer {self._api_token}"}
        params = {"query": self.build_commission_detail_query(min_t, max_t)}
        timeout = aiohttp.ClientTimeout(total=60, connect=10)

        try:
            async with self.session.get(
                self.commission_detail_endpoint,
                params=params,
                headers=headers,
                timeout=timeout,
            ) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise TransportError(
                        f"Commission detail API returned HTTP {resp.status}",
                        status=resp.status,
                        body=body[:500],
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Call to commission detail API failed: {exc}") from exc

        try:
            payload = json.loads(body, parse_float=Decimal)
            query_result = CommissionDetailQueryResponse.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            raise DeserializeError(
                f"Could not deserialize data from commission detail API: {exc}"
            ) from exc

        if query_result.data is None:
            if query_result.errors is not None:
                raise TransportError(
                    "Got no data from commission detail API",
                    status=200,
                    body=json.dumps(query_result.errors, default=str)[:500],
                )
            raise TransportError("Got no data and no errors from commission detail API")

        record_set = query_result.data.advertiser_commissions
        logger.info(
            "Received %s commission records from commission detail API",
            record_set.count,
        )
        return record_set
