"""Async client for the warehouse query API."""
import asyncio
import json
import logging
import os
from typing import Optional

import aiohttp

from ..errors import DeserializeError, FatalDependencyError, TransportError
from ..settings import Settings
from .result_set import ResultSet


logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "https://www.googleapis.com"
METADATA_TOKEN_URL = (
    "http://metadata/computeMetadata/v1/instance/service-accounts/default/token"
)
ACCESS_TOKEN_ENV = "BQ_ACCESS_TOKEN"

SUBSCRIPTIONS_QUERY = "SELECT * FROM `cjms_bigquery.subscriptions_v1`;"
REFUNDS_QUERY = "SELECT * FROM `cjms_bigquery.refunds_v1`;"


def use_env(settings: Settings) -> bool:
    """Local runs read the token from the environment; deployed runs ask the metadata server."""
    return settings.environment == "local"


def access_token_from_env() -> str:
    token = os.getenv(ACCESS_TOKEN_ENV)
    if not token:
        raise FatalDependencyError(f"{ACCESS_TOKEN_ENV} not found in env.")
    return token


async def access_token_from_metadata(session: aiohttp.ClientSession) -> str:
    """Fetch a workload identity token from the instance metadata server.

    Raises:
        FatalDependencyError: If the token cannot be fetched or parsed
    """
    timeout = aiohttp.ClientTimeout(total=10, connect=5)
    try:
        async with session.get(
            METADATA_TOKEN_URL,
            headers={"Metadata-Flavor": "Google"},
            timeout=timeout,
        ) as resp:
            if resp.status != 200:
                raise FatalDependencyError(
                    f"Couldn't get metadata for pod: HTTP {resp.status}"
                )
            content = json.loads(await resp.text())
            return content["access_token"]
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise FatalDependencyError(f"Couldn't get metadata for pod: {exc}") from exc
    except (ValueError, KeyError, TypeError) as exc:
        raise FatalDependencyError(f"Couldn't deserialize metadata for pod: {exc}") from exc


class WarehouseClient:
    """Runs SQL against the warehouse and returns a ResultSet."""

    def __init__(
        self,
        project: str,
        access_token: str,
        session: aiohttp.ClientSession,
        domain: Optional[str] = None,
    ) -> None:
        self.project = project
        self._access_token = access_token
        self.session = session
        self.domain = domain or DEFAULT_DOMAIN

    def query_api_url(self) -> str:
        return f"{self.domain}/bigquery/v2/projects/{self.project}/queries"

    async def get_results(self, query: str) -> ResultSet:
        """Run a query and wrap the response.

        Raises:
            TransportError: On network failure or a non-200 response
            DeserializeError: If the body is not a query response
        """
        headers = {"Authorization": f"Bearer {self._access_token}"}
        payload = {
            "kind": "bigquery#queryResponse",
            "query": query,
            "useLegacySql": False,
        }
        timeout = aiohttp.ClientTimeout(total=120, connect=10)

        try:
            async with self.session.post(
                self.query_api_url(),
                json=payload,
                headers=headers,
                timeout=timeout,
            ) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise TransportError(
                        f"Did not successfully query warehouse: HTTP {resp.status}",
                        status=resp.status,
                        body=body[:500],
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Did not successfully query warehouse: {exc}") from exc

        try:
            query_response = json.loads(body)
        except ValueError as exc:
            raise DeserializeError(f"Couldn't extract body: {exc}") from exc
        if not isinstance(query_response, dict):
            raise DeserializeError("Couldn't extract body: not a JSON object")

        result_set = ResultSet(query_response)
        logger.info("Warehouse query returned %s rows", result_set.row_count())
        return result_set


async def get_warehouse_client(
    settings: Settings,
    session: aiohttp.ClientSession,
    domain: Optional[str] = None,
) -> WarehouseClient:
    """Build a client with a token chosen by environment.

    Raises:
        FatalDependencyError: If no access token can be obtained
    """
    if use_env(settings):
        token = access_token_from_env()
    else:
        token = await access_token_from_metadata(session)
    return WarehouseClient(settings.gcp_project, token, session, domain=domain)
