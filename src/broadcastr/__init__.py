r"""Broadcastr -- back up and republish a Nostr identity's events.

Gathers every event an identity authored or was mentioned in from many
relays, deduplicates them, derives the identity's relay membership from its
newest contact list, and republishes the whole set to those relays with
bounded concurrency and per-relay progress.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         Fetch/broadcast coordinators, Backup, Rebroadcast
              /      \
           core      utils     Base service, logging, metrics / wire codec, transport
              \      /
               models          Pure frozen dataclasses (zero I/O)
```

Note:
    Top-level imports (``from broadcastr import Fetcher``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("broadcastr")

__all__ = [
    "Backup",
    "BackupConfig",
    "BaseService",
    "Broadcaster",
    "Event",
    "EventStore",
    "Fetcher",
    "Logger",
    "NetworkType",
    "PassConfig",
    "Rebroadcast",
    "RebroadcastConfig",
    "Relay",
    "RelayPhase",
    "RelayStatusTracker",
    "resolve_relays",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("broadcastr.core", "BaseService"),
    "Logger": ("broadcastr.core", "Logger"),
    "Event": ("broadcastr.models", "Event"),
    "NetworkType": ("broadcastr.models", "NetworkType"),
    "Relay": ("broadcastr.models", "Relay"),
    "RelayPhase": ("broadcastr.models", "RelayPhase"),
    "EventStore": ("broadcastr.services.common", "EventStore"),
    "PassConfig": ("broadcastr.services.common", "PassConfig"),
    "RelayStatusTracker": ("broadcastr.services.common", "RelayStatusTracker"),
    "resolve_relays": ("broadcastr.services.common", "resolve_relays"),
    "Backup": ("broadcastr.services", "Backup"),
    "BackupConfig": ("broadcastr.services", "BackupConfig"),
    "Broadcaster": ("broadcastr.services", "Broadcaster"),
    "Fetcher": ("broadcastr.services", "Fetcher"),
    "Rebroadcast": ("broadcastr.services", "Rebroadcast"),
    "RebroadcastConfig": ("broadcastr.services", "RebroadcastConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'broadcastr' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
