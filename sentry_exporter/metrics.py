from __future__ import annotations

import platform
import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Gauge,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from sentry_exporter import __version__


NAMESPACE = "sentry_exporter"


class ExporterMetrics:
    """
    Process-level metrics served on /metrics.

    Each instance owns its registry so several apps can live in one process.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        ProcessCollector(registry=self.registry)
        PlatformCollector(registry=self.registry)

        self.build_info = Gauge(
            f"{NAMESPACE}_build_info",
            "A metric with a constant '1' value labeled by version and python_version.",
            ["version", "python_version"],
            registry=self.registry,
        )
        self.build_info.labels(version=__version__, python_version=platform.python_version()).set(1)

        self.last_reload_successful = Gauge(
            f"{NAMESPACE}_config_last_reload_successful",
            "Whether the last configuration reload attempt was successful.",
            registry=self.registry,
        )
        self.last_reload_success_ts = Gauge(
            f"{NAMESPACE}_config_last_reload_success_timestamp_seconds",
            "Timestamp of the last successful configuration reload.",
            registry=self.registry,
        )

    def reload_succeeded(self, *, ts: float | None = None) -> None:
        self.last_reload_successful.set(1)
        self.last_reload_success_ts.set(time.time() if ts is None else float(ts))

    def reload_failed(self) -> None:
        self.last_reload_successful.set(0)

    def render(self) -> bytes:
        return generate_latest(self.registry)
