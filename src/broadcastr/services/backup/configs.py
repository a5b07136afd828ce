"""Backup service configuration models.

See Also:
    [Backup][broadcastr.services.backup.Backup]: The service class that
        consumes these configurations.
    [RelayPassConfig][broadcastr.services.common.configs.RelayPassConfig]:
        Base class providing identity, relays, pass and network settings.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from broadcastr.services.common.configs import FilterConfig, RelayPassConfig
from broadcastr.utils.backup import BACKUP_SUFFIX, DEFAULT_BACKUP_NAME


class OutputConfig(BaseModel):
    """Where backup files are written.

    With ``timestamped`` enabled every cycle writes a new file
    (``nostr-backup-<unix time>.js``) instead of overwriting ``filename``.
    """

    directory: Path = Field(default=Path("backups"), description="Backup directory")
    filename: str = Field(default=DEFAULT_BACKUP_NAME, min_length=1, description="Backup file name")
    timestamped: bool = Field(default=False, description="Write one file per cycle")

    @field_validator("filename", mode="after")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        if "/" in v or "\\" in v:
            raise ValueError(f"filename must not contain path separators: {v}")
        if not v.endswith(BACKUP_SUFFIX):
            raise ValueError(f"filename must end with {BACKUP_SUFFIX}: {v}")
        return v

    def path_for(self, timestamp: int) -> Path:
        if not self.timestamped:
            return self.directory / self.filename
        stem = self.filename.removesuffix(BACKUP_SUFFIX)
        return self.directory / f"{stem}-{timestamp}{BACKUP_SUFFIX}"


class BackupConfig(RelayPassConfig):
    """Configuration for the Backup service ("fetch and broadcast").

    Examples:
        ```yaml
        identity: npub1...
        interval: 86400
        filter:
          kinds: [0, 1, 3, 6, 7]
        output:
          directory: /var/lib/broadcastr
        broadcast: true
        ```
    """

    filter: FilterConfig = Field(default_factory=FilterConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    broadcast: bool = Field(
        default=True, description="Republish the fetched events to the membership relays"
    )
