"""Unit tests for correction file authentication."""
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPBasicCredentials

from cjms_core.api.auth import require_password


@pytest.fixture
def request_with_settings(settings):
    request = MagicMock()
    request.app.state.settings = settings
    return request


@pytest.mark.asyncio
async def test_require_password_success(request_with_settings):
    credentials = HTTPBasicCredentials(username="anyone", password="test-password")

    assert await require_password(request_with_settings, credentials) is None


@pytest.mark.asyncio
async def test_require_password_incorrect(request_with_settings):
    credentials = HTTPBasicCredentials(username="anyone", password="wrong")

    with pytest.raises(HTTPException) as exc_info:
        await require_password(request_with_settings, credentials)

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Incorrect password."
    assert exc_info.value.headers == {"WWW-Authenticate": "Basic"}


@pytest.mark.asyncio
async def test_require_password_missing_header(request_with_settings):
    with pytest.raises(HTTPException) as exc_info:
        await require_password(request_with_settings, None)

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Password missing."


@pytest.mark.asyncio
async def test_require_password_empty_password(request_with_settings):
    credentials = HTTPBasicCredentials(username="anyone", password="")

    with pytest.raises(HTTPException) as exc_info:
        await require_password(request_with_settings, credentials)

    assert exc_info.value.detail == "Password missing."
