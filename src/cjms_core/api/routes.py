"""FastAPI routes for the cookie minter, correction files and custodial checks."""
import logging
import sqlite3
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from ..errors import CJMSError, NotFoundError
from ..jobs.batch_refunds import render_correction_file, utc_today
from ..store.cookies import CookieMinter
from ..store.refunds import RefundModel
from ..telemetry import log_and_incr
from ..version import VERSION_FILE, read_version
from .auth import require_password


logger = logging.getLogger(__name__)

router = APIRouter()


class AICCreateRequest(BaseModel):
    """Landing-page request for a new attribution cookie."""

    flow_id: str = Field(..., description="Upstream flow correlation id")
    cj_id: str = Field(..., description="Affiliate click id (cj_event_value)")


class AICUpdateRequest(BaseModel):
    """Refresh of an existing cookie; cj_id is optional."""

    flow_id: str = Field(..., description="Upstream flow correlation id")
    cj_id: Optional[str] = Field(None, description="New affiliate click id, if any")


class AICResponse(BaseModel):
    aic_id: uuid.UUID
    expires: int = Field(..., description="Expiry as epoch seconds")


def get_minter(request: Request) -> CookieMinter:
    settings = request.app.state.settings
    return CookieMinter.for_days(request.app.state.conn, settings.aic_expiration_days)


def get_refunds(request: Request) -> RefundModel:
    return RefundModel(request.app.state.conn)


def _server_error(message: str, exc: Exception) -> HTTPException:
    logger.error("%s: %s", message, exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message
    )


# Custodial


@router.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return "Hello world!"


@router.get("/__heartbeat__", response_class=PlainTextResponse)
@router.get("/__lbheartbeat__", response_class=PlainTextResponse)
async def heartbeat() -> str:
    return "OK"


@router.get("/__version__")
async def version(request: Request) -> JSONResponse:
    path = getattr(request.app.state, "version_file", VERSION_FILE)
    try:
        info = read_version(path)
    except CJMSError as exc:
        raise _server_error("Version file unavailable", exc) from exc
    return JSONResponse(info.model_dump())


@router.get("/__error_log__", response_class=PlainTextResponse)
async def error_log() -> str:
    """Emit one ERROR record so error reporting can be checked end to end."""
    logger.error("request-error-log-test: Test error log report")
    return "Error log test"


@router.get("/__error_panic__")
async def error_panic() -> None:
    raise RuntimeError("This is fine. :fire:")


# Attribution cookies


@router.post("/aic", status_code=status.HTTP_201_CREATED, response_model=AICResponse)
async def create_aic(
    payload: AICCreateRequest,
    request: Request,
    minter: CookieMinter = Depends(get_minter),
) -> AICResponse:
    metrics = request.app.state.metrics
    try:
        created = minter.create(payload.cj_id, payload.flow_id)
    except (CJMSError, sqlite3.Error) as exc:
        log_and_incr(
            logger,
            metrics,
            "aic_create_failed",
            f"aic create failed: {exc}",
            level=logging.ERROR,
            flow_id=payload.flow_id,
        )
        raise _server_error("aic create failed", exc) from exc

    log_and_incr(
        logger,
        metrics,
        "aic_created",
        "aic created.",
        aic_id=created.id,
        flow_id=created.flow_id,
        expires=created.expires.isoformat(),
    )
    return AICResponse(aic_id=created.id, expires=int(created.expires.timestamp()))


@router.put("/aic/{aic_id}", status_code=status.HTTP_201_CREATED, response_model=AICResponse)
async def update_aic(
    aic_id: str,
    payload: AICUpdateRequest,
    request: Request,
    minter: CookieMinter = Depends(get_minter),
) -> AICResponse:
    metrics = request.app.state.metrics
    try:
        parsed_id = uuid.UUID(aic_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="aic not found")

    try:
        updated = minter.update(parsed_id, payload.flow_id, payload.cj_id)
    except NotFoundError:
        log_and_incr(
            logger,
            metrics,
            "aic_update_not_found",
            "aic could not be found.",
            level=logging.WARNING,
            aic_id=aic_id,
        )
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="aic not found")
    except (CJMSError, sqlite3.Error) as exc:
        log_and_incr(
            logger,
            metrics,
            "aic_update_failed",
            f"aic update failed: {exc}",
            level=logging.ERROR,
            aic_id=aic_id,
        )
        raise _server_error("aic update failed", exc) from exc

    log_and_incr(
        logger,
        metrics,
        "aic_updated",
        "aic updated.",
        aic_id=updated.id,
        flow_id=updated.flow_id,
        expires=updated.expires.isoformat(),
    )
    return AICResponse(aic_id=updated.id, expires=int(updated.expires.timestamp()))


# Correction files


def _correction_response(request: Request, refunds: RefundModel, day: date) -> PlainTextResponse:
    try:
        body = render_correction_file(refunds, request.app.state.settings, day)
    except sqlite3.Error as exc:
        raise _server_error("Could not render correction file", exc) from exc
    return PlainTextResponse(body, media_type="text/csv")


@router.get("/corrections/today.csv", dependencies=[Depends(require_password)])
async def corrections_today(
    request: Request,
    refunds: RefundModel = Depends(get_refunds),
) -> PlainTextResponse:
    return _correction_response(request, refunds, utc_today())


@router.get("/corrections/{day}.csv", dependencies=[Depends(require_password)])
async def corrections_for_day(
    day: str,
    request: Request,
    refunds: RefundModel = Depends(get_refunds),
) -> PlainTextResponse:
    try:
        parsed_day = date.fromisoformat(day)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return _correction_response(request, refunds, parsed_day)
