"""Logging, error reporting and per-job counters.

Events are sent as StatsD metrics over UDP as they happen, prefixed
`cjms.<job>.`. The same counts are kept on a private prometheus_client
registry for the lifetime of the process, which backs the end-of-run
summary and lets callers read values back.
"""
import logging
from typing import Optional

import sentry_sdk
from prometheus_client import CollectorRegistry, Counter, Gauge
from sentry_sdk.integrations.logging import LoggingIntegration
from statsd import StatsClient

from .errors import CJMSError, FatalDependencyError
from .settings import Settings
from .version import VERSION_FILE, read_version


logger = logging.getLogger(__name__)

STATSD_PREFIX = "cjms"


def setup_logging(level: str | int = logging.INFO) -> None:
    """Configure root logging once per process."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def init_sentry(settings: Settings, version_file: str = VERSION_FILE) -> None:
    """Report ERROR log records and unhandled exceptions to Sentry.

    An empty sentry_dsn leaves the SDK disabled.
    """
    try:
        release = read_version(version_file).version
    except CJMSError as exc:
        logger.warning("Sentry release unknown: %s", exc)
        release = None

    sentry_sdk.init(
        dsn=settings.sentry_dsn or None,
        environment=settings.sentry_environment,
        release=release,
        max_breadcrumbs=0,
        sample_rate=1.0,
        traces_sample_rate=0.0,
        integrations=[LoggingIntegration(level=None, event_level=logging.ERROR)],
    )


def statsd_client(settings: Settings) -> StatsClient:
    """UDP StatsD client for statsd_host:statsd_port.

    Raises:
        FatalDependencyError: If the host cannot be resolved
    """
    try:
        return StatsClient(settings.statsd_host, settings.statsd_port, prefix=STATSD_PREFIX)
    except OSError as exc:
        raise FatalDependencyError(
            f"Could not create statsd client for {settings.statsd_host}:{settings.statsd_port}: {exc}"
        ) from exc


class Metrics:
    """Counters, gauges and a run timer scoped to one job name.

    Without a StatsD client the values are only kept in process.
    """

    def __init__(
        self,
        job: str,
        statsd: Optional[StatsClient] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.job = job
        self.statsd = statsd
        self.registry = registry if registry is not None else CollectorRegistry()

        self._events = Counter(
            "cjms_events",
            "Count of job events.",
            ["job", "event"],
            registry=self.registry,
        )
        self._gauges = Gauge(
            "cjms_gauge",
            "Point-in-time job values.",
            ["job", "event"],
            registry=self.registry,
        )
        self._timer = Gauge(
            "cjms_run_seconds",
            "Duration of the last run.",
            ["job"],
            registry=self.registry,
        )

    def incr(self, event: str) -> None:
        self._events.labels(job=self.job, event=event).inc()
        if self.statsd is not None:
            self.statsd.incr(f"{self.job}.{event}")

    def gauge(self, event: str, value: float) -> None:
        self._gauges.labels(job=self.job, event=event).set(value)
        if self.statsd is not None:
            self.statsd.gauge(f"{self.job}.{event}", value)

    def time(self, seconds: float) -> None:
        self._timer.labels(job=self.job).set(seconds)
        if self.statsd is not None:
            self.statsd.timing(f"{self.job}.run", seconds * 1000)

    def count(self, event: str) -> float:
        """Current counter value for an event (0 when never incremented)."""
        value = self.registry.get_sample_value(
            "cjms_events_total", {"job": self.job, "event": event}
        )
        return value or 0.0

    def gauge_value(self, event: str) -> Optional[float]:
        return self.registry.get_sample_value(
            "cjms_gauge", {"job": self.job, "event": event}
        )

    def totals(self) -> dict[str, float]:
        """Every event counted so far, keyed by event name."""
        totals = {}
        for metric in self.registry.collect():
            for sample in metric.samples:
                if sample.name == "cjms_events_total" and sample.labels.get("job") == self.job:
                    totals[sample.labels["event"]] = sample.value
        return totals

    def close(self) -> None:
        if self.statsd is not None:
            self.statsd.close()


def _format_fields(fields: dict) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


def log_and_incr(
    log: logging.Logger,
    metrics: Metrics,
    event: str,
    message: str,
    level: int = logging.INFO,
    exc_info: bool = False,
    **fields,
) -> None:
    """Log a structured job event and count it.

    Emits `<job>.<event> key=value ...: message` and increments the
    counter for the event.
    """
    metrics.incr(event)
    details = _format_fields(fields)
    if details:
        log.log(level, "%s.%s %s: %s", metrics.job, event, details, message, exc_info=exc_info)
    else:
        log.log(level, "%s.%s: %s", metrics.job, event, message, exc_info=exc_info)
