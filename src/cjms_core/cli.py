"""Console entry points: one per batch job, plus the web server and version tool.

Usage:
    cjms-cleanup [--settings settings.yaml]
    cjms-check-subscriptions
    cjms-check-refunds
    cjms-batch-refunds
    cjms-report-subscriptions
    cjms-verify-reports
    cjms-web
    cjms-version [--output version.yaml]

Exit code 0 on success, 1 when the run aborts.
"""
import argparse
import asyncio
import logging
import sqlite3
import sys
from datetime import timedelta
from typing import Awaitable, Callable

import uvicorn

from .cj.client import CJClient
from .context import JobContext, job_context
from .errors import CJMSError
from .jobs.batch_refunds import batch_refunds_by_day
from .jobs.check_refunds import fetch_and_process_refunds
from .jobs.check_subscriptions import fetch_and_process_new_subscriptions
from .jobs.cleanup import archive_expired_aics
from .jobs.report_subscriptions import report_subscriptions_to_cj
from .jobs.verify_reports import verify_reports_with_cj
from .main import create_app
from .settings import SETTINGS_FILE, load_settings
from .store.aic import AICModel
from .store.refunds import RefundModel
from .store.subscriptions import SubscriptionModel
from .telemetry import setup_logging
from .version import VERSION_FILE, collect_version_info, write_version
from .warehouse.client import get_warehouse_client


logger = logging.getLogger(__name__)

JobFn = Callable[[JobContext], Awaitable[None]]


def _aic_model(ctx: JobContext) -> AICModel:
    return AICModel(ctx.conn, timedelta(days=ctx.settings.aic_expiration_days))


async def _cleanup(ctx: JobContext) -> None:
    archive_expired_aics(_aic_model(ctx), ctx.metrics)


async def _check_subscriptions(ctx: JobContext) -> None:
    warehouse = await get_warehouse_client(ctx.settings, ctx.session)
    await fetch_and_process_new_subscriptions(
        warehouse, SubscriptionModel(ctx.conn), _aic_model(ctx), ctx.metrics
    )


async def _check_refunds(ctx: JobContext) -> None:
    warehouse = await get_warehouse_client(ctx.settings, ctx.session)
    await fetch_and_process_refunds(
        warehouse, SubscriptionModel(ctx.conn), RefundModel(ctx.conn), ctx.metrics
    )


async def _batch_refunds(ctx: JobContext) -> None:
    batch_refunds_by_day(RefundModel(ctx.conn), ctx.metrics)


async def _report_subscriptions(ctx: JobContext) -> None:
    cj_client = CJClient(ctx.settings, ctx.session)
    await report_subscriptions_to_cj(SubscriptionModel(ctx.conn), cj_client, ctx.metrics)


async def _verify_reports(ctx: JobContext) -> None:
    cj_client = CJClient(ctx.settings, ctx.session)
    await verify_reports_with_cj(SubscriptionModel(ctx.conn), cj_client, ctx.metrics)


def _parse_args(description: str, argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "--settings",
        default=SETTINGS_FILE,
        help="Settings YAML file. Environment variables are used when it does not exist.",
    )
    return parser.parse_args(argv)


async def _run_job(name: str, settings_path: str, job: JobFn) -> None:
    async with job_context(name, settings_path) as ctx:
        await job(ctx)


def run_job(name: str, job: JobFn, description: str, argv: list[str] | None = None) -> int:
    """Run one job to completion and return the process exit code."""
    args = _parse_args(description, argv)
    try:
        asyncio.run(_run_job(name, args.settings, job))
    except (CJMSError, sqlite3.Error) as exc:
        setup_logging()
        logger.error("%s aborted: %s", name, exc)
        return 1
    return 0


def cleanup() -> None:
    sys.exit(run_job("cleanup", _cleanup, "Archive expired attribution cookies"))


def check_subscriptions() -> None:
    sys.exit(
        run_job(
            "check_subscriptions",
            _check_subscriptions,
            "Ingest new subscriptions from the warehouse",
        )
    )


def check_refunds() -> None:
    sys.exit(run_job("check_refunds", _check_refunds, "Ingest refunds from the warehouse"))


def batch_refunds() -> None:
    sys.exit(run_job("batch_refunds", _batch_refunds, "Assign refunds to correction files"))


def report_subscriptions() -> None:
    sys.exit(
        run_job(
            "report_subscriptions",
            _report_subscriptions,
            "Report subscriptions to the affiliate network",
        )
    )


def verify_reports() -> None:
    sys.exit(
        run_job(
            "verify_reports",
            _verify_reports,
            "Verify reported subscriptions with the affiliate network",
        )
    )


def web(argv: list[str] | None = None) -> None:
    """Serve the HTTP facade with uvicorn."""
    args = _parse_args("Serve the CJMS HTTP facade", argv)
    try:
        settings = load_settings(args.settings)
        setup_logging(settings.log_level)
        app = create_app(settings)
    except CJMSError as exc:
        setup_logging()
        logger.error("web aborted: %s", exc)
        sys.exit(1)

    logger.info("Serving on %s", settings.server_address())
    uvicorn.run(app, host=settings.host, port=settings.port)


def version(argv: list[str] | None = None) -> None:
    """Write the version file from CI variables or git."""
    parser = argparse.ArgumentParser(description="Write version.yaml")
    parser.add_argument("--output", default=VERSION_FILE, help="Version file to write")
    args = parser.parse_args(argv)

    setup_logging()
    try:
        write_version(args.output, collect_version_info())
    except OSError as exc:
        logger.error("Failed to write %s: %s", args.output, exc)
        sys.exit(1)
