"""The two Broadcastr services plus the pass coordinators they share.

Services are the top layer of the diamond DAG, depending on
[broadcastr.core][broadcastr.core], [broadcastr.utils][broadcastr.utils]
and [broadcastr.models][broadcastr.models]. Each service extends
[BaseService][broadcastr.core.base_service.BaseService] and implements
``async def run()`` for one cycle of work.

```text
Backup:       Fetcher.fetch -> write_backup -> resolve_relays -> Broadcaster.broadcast
Rebroadcast:  load_backup -> resolve_relays -> Broadcaster.broadcast
```

Attributes:
    Backup: Fetch an identity's events from the working relay set, save them
        and republish them to the identity's own relays.
    Rebroadcast: Republish an existing backup file.
    Fetcher: Batched fetch coordinator with dedup and idle timeouts.
    Broadcaster: Batched broadcast coordinator counting ``OK`` acks.
"""

from .backup import Backup, BackupConfig
from .broadcaster import Broadcaster
from .fetcher import Fetcher
from .rebroadcast import Rebroadcast, RebroadcastConfig


__all__ = [
    "Backup",
    "BackupConfig",
    "Broadcaster",
    "Fetcher",
    "Rebroadcast",
    "RebroadcastConfig",
]
