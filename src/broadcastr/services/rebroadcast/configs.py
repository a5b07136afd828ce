"""Rebroadcast service configuration models.

See Also:
    [Rebroadcast][broadcastr.services.rebroadcast.Rebroadcast]: The service
        class that consumes these configurations.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field

from broadcastr.services.common.configs import RelayPassConfig
from broadcastr.utils.backup import DEFAULT_BACKUP_NAME


class RebroadcastConfig(RelayPassConfig):
    """Configuration for the Rebroadcast service ("just broadcast").

    ``identity`` is optional here: when unset it is inferred from the
    newest contact list stored in the backup.

    Examples:
        ```yaml
        backup_file: backups/nostr-backup.js
        pass:
          idle_timeout: 15.0
        ```
    """

    backup_file: Path = Field(
        default=Path("backups") / DEFAULT_BACKUP_NAME,
        description="Backup file to republish, or a directory to use its newest backup",
    )
