"""Relay status tracking shared by the relay tasks of one pass.

The tracker is the only explicitly shared mutable state in a pass. Every
mutation is one synchronous method call with no ``await`` inside, so on the
single-threaded event loop each update is applied atomically and updates
from concurrent relay tasks are serialized without a lock.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from broadcastr.models.relay_status import RelayPhase, RelayStatusEntry


logger = logging.getLogger("broadcastr.services.status")

StatusHook = Callable[[tuple[RelayStatusEntry, ...]], None]


class RelayStatusTracker:
    """Table of relay URL to ``{phase, count, error}`` for one pass.

    Args:
        on_change: Optional render hook, called with a fresh immutable
            snapshot after every change.

    Examples:
        ```python
        tracker = RelayStatusTracker(on_change=print_table)
        tracker.register(["wss://nos.lol"])
        tracker.update("wss://nos.lol", RelayPhase.IN_PROGRESS)
        tracker.update("wss://nos.lol", delta=1)
        tracker.render()
        ```
    """

    __slots__ = ("_entries", "_on_change")

    def __init__(self, on_change: StatusHook | None = None) -> None:
        self._entries: dict[str, RelayStatusEntry] = {}
        self._on_change = on_change

    def register(self, urls: Iterable[str]) -> None:
        """Create ``PENDING`` entries, keeping registration order."""
        changed = False
        for url in urls:
            if url not in self._entries:
                self._entries[url] = RelayStatusEntry(url=url, phase=RelayPhase.PENDING)
                changed = True
        if changed:
            self._notify()

    def update(
        self,
        url: str,
        phase: RelayPhase | None = None,
        delta: int = 0,
        *,
        error: str | None = None,
    ) -> RelayStatusEntry:
        """Merge a phase change and/or count increment for one relay.

        Unknown URLs are registered on the fly.

        Args:
            url: Relay URL.
            phase: New phase, or ``None`` to keep the current one.
            delta: Amount added to the running count (must be >= 0).
            error: Failure description to record alongside the phase.

        Returns:
            The merged entry.
        """
        if delta < 0:
            raise ValueError(f"delta must be non-negative, got {delta}")

        current = self._entries.get(url) or RelayStatusEntry(url=url, phase=RelayPhase.PENDING)
        merged = RelayStatusEntry(
            url=url,
            phase=phase if phase is not None else current.phase,
            count=current.count + delta,
            error=error if error is not None else current.error,
        )
        self._entries[url] = merged
        self._notify()
        return merged

    def get(self, url: str) -> RelayStatusEntry | None:
        return self._entries.get(url)

    def render(self) -> tuple[RelayStatusEntry, ...]:
        """Immutable snapshot of all entries in registration order."""
        return tuple(self._entries.values())

    def counts(self) -> dict[RelayPhase, int]:
        """Number of relays in each phase."""
        result = dict.fromkeys(RelayPhase, 0)
        for entry in self._entries.values():
            result[entry.phase] += 1
        return result

    def __len__(self) -> int:
        return len(self._entries)

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.render())
        except Exception:  # Intentionally broad: a broken render hook must not fail the pass
            logger.exception("status_hook_failed")
