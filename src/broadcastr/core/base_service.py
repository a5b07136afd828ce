"""
Service lifecycle for Broadcastr.

A service owns one shutdown ``asyncio.Event`` and uses it two ways:

* between cycles it is the interruptible sleep of
  [run_forever()][broadcastr.core.base_service.BaseService.run_forever];
* during a cycle it is the cancel token of the fetch and broadcast passes
  ([cancel_token][broadcastr.core.base_service.BaseService.cancel_token]), so
  SIGINT or SIGTERM closes the open relay connections of the running batch
  and skips the batches not yet started.

A pass that ends with
[PassCancelledError][broadcastr.core.exceptions.PassCancelledError] after a
shutdown request is a clean stop, not a failed cycle. Every other error counts
towards ``max_consecutive_failures``.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from broadcastr.models.constants import ServiceName

from .exceptions import PassCancelledError
from .logger import Logger
from .metrics import (
    CYCLE_DURATION_SECONDS,
    PASSES_CANCELLED,
    RELAY_OUTCOMES,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
)
from .yaml import load_yaml


class BaseServiceConfig(BaseModel):
    """Settings shared by the continuously running services.

    ``interval`` only matters for ``run_forever()``; a ``--once`` run ignores
    it. A daily backup is ``interval: 86400``.
    """

    interval: float = Field(
        default=3600.0,
        ge=60.0,
        description="Seconds between backup or rebroadcast cycles",
    )
    max_consecutive_failures: int = Field(
        default=5,
        ge=0,
        description="Stop after this many failed cycles in a row (0 = unlimited)",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Prometheus metrics configuration",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """Base class of the Backup and Rebroadcast services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][broadcastr.core.base_service.BaseService.run], passing
    ``self.cancel_token`` to every pass they start.

    Note:
        The lifecycle is ``async with service:`` then either a single
        ``run()`` (``--once``) or ``run_forever()``. Entering the context
        clears the shutdown event; leaving it sets the event.
    """

    SERVICE_NAME: ClassVar[ServiceName]
    CONFIG_CLASS: ClassVar[type[BaseModel]]

    def __init__(self, config: ConfigT | None = None) -> None:
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> ConfigT:
        return self._config

    @abstractmethod
    async def run(self) -> None:
        """Execute one fetch and/or broadcast cycle."""
        ...

    def request_shutdown(self) -> None:
        """Stop after the current step and cancel any running pass.

        Called from the CLI signal handlers.
        """
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return not self._shutdown_event.is_set()

    @property
    def cancel_token(self) -> asyncio.Event:
        """Cancel token for passes started by ``run()``; set on shutdown."""
        return self._shutdown_event

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Sleep until the next cycle or a shutdown request.

        Returns:
            ``True`` if shutdown was requested during the wait, ``False`` if
            the timeout expired.
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def run_forever(self) -> None:
        """Run cycles every ``config.interval`` seconds until told to stop.

        Stops on [request_shutdown()][broadcastr.core.base_service.BaseService.request_shutdown],
        when a pass reports cancellation after such a request, or after
        ``config.max_consecutive_failures`` failed cycles in a row (``0``
        disables the limit). ``CancelledError``, ``KeyboardInterrupt`` and
        ``SystemExit`` propagate immediately.
        """
        interval = self._config.interval
        max_failures = self._config.max_consecutive_failures

        if self._config.metrics.enabled:
            SERVICE_INFO.info({"service": self.SERVICE_NAME})

        self._logger.info(
            "run_forever_started", interval=interval, max_consecutive_failures=max_failures
        )

        failures = 0
        while self.is_running:
            try:
                await self._run_cycle()
                failures = 0

            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise

            except PassCancelledError as e:
                if not self.is_running:
                    self._logger.info("cycle_cancelled", reason=str(e))
                    if self._config.metrics.enabled:
                        PASSES_CANCELLED.labels(service=self.SERVICE_NAME).inc()
                    break
                failures = self._record_failure(e, failures + 1)

            except Exception as e:  # Intentionally broad: top-level error boundary for run_forever
                failures = self._record_failure(e, failures + 1)

            if 0 < max_failures <= failures:
                self._logger.critical(
                    "max_consecutive_failures_reached", failures=failures, limit=max_failures
                )
                break

            if await self.wait(interval):
                break

        self._logger.info("run_forever_stopped")

    async def _run_cycle(self) -> None:
        start = time.monotonic()
        await self.run()
        duration = time.monotonic() - start

        self.inc_counter("cycles_success")
        if self._config.metrics.enabled:
            CYCLE_DURATION_SECONDS.labels(service=self.SERVICE_NAME).observe(duration)
        self.set_gauge("last_cycle_timestamp", time.time())
        self.set_gauge("consecutive_failures", 0)
        self._logger.info(
            "cycle_succeeded", duration_s=round(duration, 2), next_cycle_s=self._config.interval
        )

    def _record_failure(self, error: Exception, failures: int) -> int:
        self.inc_counter("cycles_failed")
        self.inc_counter(f"errors_{type(error).__name__}")
        self.set_gauge("consecutive_failures", failures)
        self._logger.error(
            "cycle_failed",
            error=str(error),
            error_type=type(error).__name__,
            consecutive_failures=failures,
        )
        return failures

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> Self:
        """Create a service from a YAML file under ``config/services``."""
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> Self:
        """Create a service from a configuration mapping.

        Raises:
            pydantic.ValidationError: If the mapping does not validate.
        """
        config = cast("ConfigT", cls.CONFIG_CLASS(**data))
        return cls(config=config, **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        self._shutdown_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self._shutdown_event.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a per-service gauge, e.g. ``fetched_events``. No-op when metrics are off."""
        if not self._config.metrics.enabled:
            return
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        if not self._config.metrics.enabled:
            return
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)

    def record_relay_outcome(self, direction: str, outcome: str, value: int = 1) -> None:
        """Count relays that settled with ``outcome`` in a fetch or broadcast pass."""
        if not self._config.metrics.enabled or value <= 0:
            return
        RELAY_OUTCOMES.labels(
            service=self.SERVICE_NAME, direction=direction, outcome=outcome
        ).inc(value)
