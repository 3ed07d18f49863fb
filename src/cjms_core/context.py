"""Per-run context shared by the batch jobs."""
import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

import aiohttp

from .settings import SETTINGS_FILE, Settings, load_settings
from .store.schema import connect
from .telemetry import Metrics, init_sentry, setup_logging, statsd_client


logger = logging.getLogger(__name__)


@dataclass
class JobContext:
    """Everything a job needs, built once at process start."""

    name: str
    settings: Settings
    conn: sqlite3.Connection
    metrics: Metrics
    session: aiohttp.ClientSession


@asynccontextmanager
async def job_context(
    name: str, settings_path: str | Path = SETTINGS_FILE
) -> AsyncIterator[JobContext]:
    """Load settings, open the store and an HTTP session, then clean up.

    The run time is recorded and the event totals are logged whether or
    not the job raised.

    Raises:
        ConfigMissingError: If settings are missing or invalid
        FatalDependencyError: If the store or the statsd host is unavailable
    """
    settings = load_settings(settings_path)
    setup_logging(settings.log_level)
    init_sentry(settings)
    metrics = Metrics(name, statsd=statsd_client(settings))
    conn = connect(settings.database_url)
    started = time.monotonic()

    logger.info("Starting %s (environment=%s)", name, settings.environment)
    try:
        timeout = aiohttp.ClientTimeout(total=300, connect=30)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            yield JobContext(
                name=name,
                settings=settings,
                conn=conn,
                metrics=metrics,
                session=session,
            )
    finally:
        elapsed = time.monotonic() - started
        metrics.time(elapsed)
        metrics.close()
        conn.close()
        logger.info("Finished %s in %.2fs totals=%s", name, elapsed, metrics.totals())
