"""Backup service for Broadcastr.

Gathers everything an identity authored or was mentioned in, saves it as a
backup file, and republishes it to the identity's own relays.

The cycle proceeds as follows:

1. Fetch from the working relay set with the identity filters via
   [Fetcher][broadcastr.services.fetcher.Fetcher].
2. Write the deduplicated, newest-first event list with
   [write_backup][broadcastr.utils.backup.write_backup].
3. Resolve the identity's write relays from its newest kind-3 record via
   [resolve_relays][broadcastr.services.common.membership.resolve_relays].
4. Broadcast every event to those relays via
   [Broadcaster][broadcastr.services.broadcaster.Broadcaster].

Note:
    The backup is written before membership resolution, so a cycle that
    fails with [MembershipMissingError][broadcastr.core.exceptions.MembershipMissingError]
    still leaves the fetched data on disk.

Examples:
    ```python
    from broadcastr.services import Backup

    backup = Backup.from_yaml("config/services/backup.yaml")
    async with backup:
        await backup.run_forever()
    ```
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from broadcastr.core.base_service import BaseService
from broadcastr.core.exceptions import ConfigurationError
from broadcastr.models.constants import ServiceName
from broadcastr.services.common.configs import build_filters
from broadcastr.services.common.mixins import RelayPassMixin
from broadcastr.utils.backup import write_backup
from broadcastr.utils.keys import to_npub

from .configs import BackupConfig


if TYPE_CHECKING:
    from broadcastr.models.event import Event
    from broadcastr.models.relay_status import RelayOutcome
    from broadcastr.utils.transport import Connector


class Backup(RelayPassMixin, BaseService[BackupConfig]):
    """Fetch-and-broadcast service.

    Attributes:
        last_events: Events gathered by the most recent cycle.
        last_backup_path: File written by the most recent cycle.
        last_outcomes: Broadcast outcome per relay of the most recent cycle.

    See Also:
        [Rebroadcast][broadcastr.services.rebroadcast.Rebroadcast]:
            Republishes an existing backup file without fetching.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.BACKUP
    CONFIG_CLASS: ClassVar[type[BackupConfig]] = BackupConfig

    def __init__(
        self,
        config: BackupConfig | None = None,
        *,
        connect: Connector | None = None,
    ) -> None:
        super().__init__(config=config or BackupConfig())
        self._config: BackupConfig
        self._init_passes(connect)
        self.last_events: list[Event] = []
        self.last_backup_path: Path | None = None
        self.last_outcomes: dict[str, RelayOutcome] = {}

    async def run(self) -> None:
        """Execute one fetch, backup and broadcast cycle.

        Raises:
            ConfigurationError: If no identity is configured.
            MembershipMissingError: If no membership record was fetched and
                ``membership_fallback`` is disabled.
            PassCancelledError: If shutdown is requested mid-pass.
        """
        identity = self._config.identity
        if identity is None:
            raise ConfigurationError("identity is required for a backup")

        cycle_start = time.monotonic()
        self._logger.info(
            "cycle_started",
            identity=identity,
            npub=to_npub(identity),
            relays=len(self._config.relays),
        )

        events = await self.fetch(identity)
        self.last_events = events

        if events:
            path = self._config.output.path_for(int(time.time()))
            size = write_backup(path, events)
            self.last_backup_path = path
            self.set_gauge("backup_bytes", size)
            self._logger.info("backup_written", path=str(path), events=len(events), bytes=size)
        else:
            self._logger.warning("backup_skipped", reason="no events fetched")

        outcomes: dict[str, RelayOutcome] = {}
        if self._config.broadcast:
            targets = self._resolve_targets(events, identity)
            outcomes = await self._broadcaster.broadcast(
                events, targets, cancel=self.cancel_token
            )
            self._emit_broadcast_metrics(outcomes)
        self.last_outcomes = outcomes

        self._logger.info(
            "cycle_completed",
            events=len(events),
            broadcast_relays=len(outcomes),
            accepted=sum(o.accepted for o in outcomes.values()),
            duration_s=round(time.monotonic() - cycle_start, 2),
        )

    async def fetch(self, identity: str) -> list[Event]:
        """Fetch pass over the enabled part of the working relay set."""
        relays = self._enabled_relays(self._config.relays)
        events = await self._fetcher.fetch(
            build_filters(identity, self._config.filter),
            identity,
            relays,
            cancel=self.cancel_token,
        )
        entries = self._fetcher.tracker.render() if self._fetcher.tracker else ()
        self._emit_fetch_metrics(entries, len(events))
        return events
