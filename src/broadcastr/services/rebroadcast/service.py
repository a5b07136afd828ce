"""Rebroadcast service for Broadcastr.

Republishes a previously written backup file to the relays listed in the
identity's newest membership record, without fetching anything first.

Examples:
    ```python
    from broadcastr.services import Rebroadcast

    service = Rebroadcast.from_yaml("config/services/rebroadcast.yaml")
    async with service:
        await service.run()
    ```
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, ClassVar

from broadcastr.core.base_service import BaseService
from broadcastr.core.exceptions import ConfigurationError
from broadcastr.models.constants import ServiceName
from broadcastr.services.common.membership import infer_identity
from broadcastr.services.common.mixins import RelayPassMixin
from broadcastr.utils.backup import list_backups, load_backup
from broadcastr.utils.keys import to_npub

from .configs import RebroadcastConfig


if TYPE_CHECKING:
    from broadcastr.models.event import Event
    from broadcastr.models.relay_status import RelayOutcome
    from broadcastr.utils.transport import Connector


class Rebroadcast(RelayPassMixin, BaseService[RebroadcastConfig]):
    """Broadcast-only service.

    Attributes:
        last_outcomes: Broadcast outcome per relay of the most recent cycle.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.REBROADCAST
    CONFIG_CLASS: ClassVar[type[RebroadcastConfig]] = RebroadcastConfig

    def __init__(
        self,
        config: RebroadcastConfig | None = None,
        *,
        connect: Connector | None = None,
    ) -> None:
        super().__init__(config=config or RebroadcastConfig())
        self._config: RebroadcastConfig
        self._init_passes(connect)
        self.last_outcomes: dict[str, RelayOutcome] = {}

    async def run(self) -> None:
        """Load the backup, resolve membership and broadcast.

        Raises:
            ConfigurationError: If the backup file is missing or invalid, or
                no identity is configured and none can be inferred.
            MembershipMissingError: If the backup holds no membership record
                for the identity and ``membership_fallback`` is disabled.
            PassCancelledError: If shutdown is requested mid-pass.
        """
        cycle_start = time.monotonic()
        events = self.load_events()
        identity = self._config.identity or infer_identity(events)
        if identity is None:
            raise ConfigurationError(
                f"no identity configured and none found in {self._config.backup_file}"
            )

        self._logger.info(
            "cycle_started", identity=identity, npub=to_npub(identity), events=len(events)
        )

        targets = self._resolve_targets(events, identity)
        outcomes = await self._broadcaster.broadcast(events, targets, cancel=self.cancel_token)
        self._emit_broadcast_metrics(outcomes)
        self.last_outcomes = outcomes

        self._logger.info(
            "cycle_completed",
            events=len(events),
            broadcast_relays=len(outcomes),
            accepted=sum(o.accepted for o in outcomes.values()),
            duration_s=round(time.monotonic() - cycle_start, 2),
        )

    def load_events(self) -> list[Event]:
        """Read the configured backup file.

        A directory selects its newest stored backup, so a rebroadcast can
        follow a series of timestamped backups.

        Raises:
            ConfigurationError: If the file does not exist, the directory holds
                no backup, or the content is not a backup.
        """
        path = self._config.backup_file
        if path.is_dir():
            backups = list_backups(path)
            if not backups:
                raise ConfigurationError(f"no backups found in {path}")
            path = path / backups[0].name
        try:
            events = load_backup(path)
        except FileNotFoundError as e:
            raise ConfigurationError(f"backup file not found: {path}") from e
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"cannot read backup {path}: {e}") from e
        self._logger.info("backup_loaded", path=str(path), events=len(events))
        return events
