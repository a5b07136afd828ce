"""Reusable service mixins for Broadcastr.

See Also:
    [BaseService][broadcastr.core.base_service.BaseService]: The base class
        that mixin classes are composed with via multiple inheritance.
    [RelayPassConfig][broadcastr.services.common.configs.RelayPassConfig]:
        Settings consumed by
        [RelayPassMixin][broadcastr.services.common.mixins.RelayPassMixin].
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from broadcastr.core.exceptions import MembershipMissingError
from broadcastr.models.relay_status import RelayOutcomeStatus, RelayPhase, RelayStatusEntry

from ..broadcaster import Broadcaster
from ..fetcher import Fetcher
from .membership import resolve_relays
from .utils import coerce_relays, summarize_status


if TYPE_CHECKING:
    from broadcastr.core.logger import Logger
    from broadcastr.models.event import Event
    from broadcastr.models.relay import Relay
    from broadcastr.models.relay_status import RelayOutcome
    from broadcastr.utils.transport import Connector

    from .configs import RelayPassConfig


class RelayPassMixin:
    """Mixin wiring a service to the fetch and broadcast coordinators.

    Provides ``_fetcher`` and ``_broadcaster`` sharing one status hook that
    reports relay progress through the service logger, plus the membership
    and metrics steps common to every cycle that ends in a broadcast.

    Note:
        Call ``_init_passes()`` in ``__init__`` after ``BaseService`` has set
        ``_config`` and ``_logger``.

    Examples:
        ```python
        class MyService(RelayPassMixin, BaseService[MyConfig]):
            def __init__(self, config=None, *, connect=None):
                super().__init__(config=config)
                self._init_passes(connect)
        ```
    """

    _config: RelayPassConfig
    _logger: Logger
    _fetcher: Fetcher
    _broadcaster: Broadcaster

    if TYPE_CHECKING:
        # Provided by BaseService at runtime
        def set_gauge(self, name: str, value: float) -> None: ...

        def record_relay_outcome(self, direction: str, outcome: str, value: int = 1) -> None: ...

    def _init_passes(self, connect: Connector | None = None) -> None:
        """Create the coordinators from ``_config.pass_config`` and ``_config.networks``."""
        pass_config = self._config.pass_config
        networks = self._config.networks
        self._fetcher = Fetcher(
            pass_config,
            connect=connect,
            networks=networks,
            on_status=self._on_status,
            logger=self._logger.bind(pass_name="fetch"),
        )
        self._broadcaster = Broadcaster(
            pass_config,
            connect=connect,
            networks=networks,
            on_status=self._on_status,
            logger=self._logger.bind(pass_name="broadcast"),
        )

    def _on_status(self, snapshot: tuple[RelayStatusEntry, ...]) -> None:
        """Render hook: log the aggregate table on every relay change."""
        self._logger.debug("relay_status", **summarize_status(snapshot))

    def _enabled_relays(self, relays: Iterable[Relay | str]) -> list[Relay]:
        """Normalize ``relays`` and drop those on disabled networks."""
        result = []
        for relay in coerce_relays(relays, self._logger):
            if self._config.networks.is_enabled(relay.network):
                result.append(relay)
            else:
                self._logger.info(
                    "relay_skipped", url=relay.url, reason=f"{relay.network} network disabled"
                )
        return result

    def _resolve_targets(self, events: Sequence[Event], identity: str) -> list[Relay]:
        """Membership relays of ``identity``, or the working set when falling back.

        Raises:
            MembershipMissingError: If there is no usable membership record
                and ``membership_fallback`` is disabled.
        """
        try:
            urls = resolve_relays(events, identity)
        except MembershipMissingError as e:
            if not self._config.membership_fallback:
                raise
            self._logger.warning(
                "membership_fallback", reason=e.reason, relays=len(self._config.relays)
            )
            return self._enabled_relays(self._config.relays)

        self._logger.info("membership_resolved", relays=len(urls))
        return self._enabled_relays(sorted(urls))

    def _emit_fetch_metrics(self, entries: tuple[RelayStatusEntry, ...], events: int) -> None:
        for phase in (RelayPhase.DONE, RelayPhase.ERROR):
            self.record_relay_outcome(
                "fetch", phase.value, sum(1 for entry in entries if entry.phase == phase)
            )
        self.set_gauge("fetched_events", events)
        self.set_gauge("fetch_relays_done", sum(1 for e in entries if e.phase == RelayPhase.DONE))

    def _emit_broadcast_metrics(self, outcomes: dict[str, RelayOutcome]) -> None:
        for status in RelayOutcomeStatus:
            self.record_relay_outcome(
                "broadcast", status.value, sum(1 for o in outcomes.values() if o.status == status)
            )
        self.set_gauge("broadcast_accepted", sum(o.accepted for o in outcomes.values()))
        self.set_gauge("broadcast_rejected", sum(o.rejected for o in outcomes.values()))
