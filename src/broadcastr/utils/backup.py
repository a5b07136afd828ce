"""Backup file format and on-disk backup directory.

A backup is a self-describing JavaScript document, so the same file can be
loaded by a browser page or re-ingested here:

```text
const data = [
  {
    "id": "...",
    ...
  }
]
```

Re-ingestion strips the assignment header and parses the remainder as a JSON
array of events.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from broadcastr.models.event import Event


BACKUP_HEADER: Final[str] = "const data = "
BACKUP_SUFFIX: Final[str] = ".js"
DEFAULT_BACKUP_NAME: Final[str] = "nostr-backup.js"

logger = logging.getLogger("broadcastr.utils.backup")


@dataclass(frozen=True, slots=True)
class BackupInfo:
    """A stored backup: file name, last modification time, size in bytes."""

    name: str
    modified_at: datetime
    size: int


def dump_backup(events: Iterable[Event]) -> str:
    """Serialize events into the backup document, preserving their order."""
    payload = [event.to_dict() for event in events]
    return BACKUP_HEADER + json.dumps(payload, indent=2, ensure_ascii=False)


def parse_backup(text: str) -> list[Event]:
    """Parse a backup document back into events.

    A document without the header is accepted as a bare JSON array.

    Raises:
        ValueError: If the body is not a JSON array of valid events.
    """
    body = text.lstrip("\ufeff").strip()
    body = body.removeprefix(BACKUP_HEADER.strip()).lstrip(" =")
    body = body.rstrip().rstrip(";")
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValueError(f"Backup is not valid JSON: {e}") from e
    if not isinstance(payload, list):
        raise ValueError(f"Backup must contain a JSON array, got {type(payload).__name__}")

    events = []
    for index, item in enumerate(payload):
        try:
            events.append(Event.from_dict(item))
        except (TypeError, ValueError) as e:
            raise ValueError(f"Backup entry {index} is not a valid event: {e}") from e
    return events


def write_backup(path: Path, events: Iterable[Event]) -> int:
    """Write a backup file, creating parent directories.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    data = dump_backup(events).encode("utf-8")
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(data)
    tmp.replace(path)
    logger.debug("backup_written path=%s bytes=%d", path, len(data))
    return len(data)


def load_backup(path: Path) -> list[Event]:
    """Read and parse a backup file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the content is not a valid backup.
    """
    return parse_backup(path.read_text(encoding="utf-8"))


def list_backups(directory: Path) -> list[BackupInfo]:
    """List stored backups in ``directory``, newest first."""
    if not directory.is_dir():
        return []
    infos = []
    for path in directory.glob(f"*{BACKUP_SUFFIX}"):
        if not path.is_file():
            continue
        stat = path.stat()
        infos.append(
            BackupInfo(
                name=path.name,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                size=stat.st_size,
            )
        )
    infos.sort(key=lambda info: (info.modified_at, info.name), reverse=True)
    return infos
