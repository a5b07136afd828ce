"""
Prometheus metrics for long-running backup and rebroadcast services.

Only ``run_forever()`` deployments need this; a ``--once`` run leaves
``metrics.enabled`` off and every helper on
[BaseService][broadcastr.core.base_service.BaseService] is a no-op.

Metrics (all prefixed ``broadcastr_`` and labelled by ``service``):
    service_info:            Static metadata set once at startup.
    cycle_duration_seconds:  Wall time of one backup or rebroadcast cycle.
    service_gauge:           Last values of a cycle, e.g. ``fetched_events``,
                             ``resolved_relays``, ``consecutive_failures``.
    service_counter:         Totals, e.g. ``cycles_success``, ``errors_<Type>``.
    relay_outcomes:          Relays settled per pass, by ``direction``
                             (fetch or broadcast) and ``outcome``.
    passes_cancelled:        Cycles stopped by a shutdown while a pass ran.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Metrics endpoint settings, under ``metrics:`` in a service YAML file."""

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


SERVICE_INFO = Info("broadcastr_service", "Service name of this process")

# a pass over a few hundred relays with a 10s idle window runs for minutes
CYCLE_DURATION_SECONDS = Histogram(
    "broadcastr_cycle_duration_seconds",
    "Duration of a backup or rebroadcast cycle in seconds",
    ["service"],
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800),
)

SERVICE_GAUGE = Gauge(
    "broadcastr_service_gauge",
    "Values recorded by the last cycle",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "broadcastr_service_counter",
    "Cycle and error totals",
    ["service", "name"],
)

# fetch outcomes: done | error; broadcast outcomes: success | error | timeout
RELAY_OUTCOMES = Counter(
    "broadcastr_relay_outcomes",
    "Relays settled per pass, by direction and outcome",
    ["service", "direction", "outcome"],
)

PASSES_CANCELLED = Counter(
    "broadcastr_passes_cancelled",
    "Cycles stopped by a shutdown request while a pass was running",
    ["service"],
)


class MetricsServer:
    """``/metrics`` endpoint served on the service's own event loop.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        await service.run_forever()
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint. No-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        await web.TCPSite(self._runner, self._config.host, self._config.port).start()

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})


async def start_metrics_server(config: MetricsConfig | None = None) -> MetricsServer:
    """Start a metrics server for ``config``; the caller must ``stop()`` it."""
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
