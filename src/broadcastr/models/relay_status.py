"""Per-relay progress types produced by fetch and broadcast passes.

See Also:
    [RelayStatusTracker][broadcastr.services.common.status.RelayStatusTracker]:
        The shared table that produces
        [RelayStatusEntry][broadcastr.models.relay_status.RelayStatusEntry]
        snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class RelayPhase(StrEnum):
    """Lifecycle phase of one relay within a pass."""

    PENDING = "pending"
    CONNECTING = "connecting"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ERROR = "error"

    @property
    def is_settled(self) -> bool:
        return self in (RelayPhase.DONE, RelayPhase.ERROR)


class RelayOutcomeStatus(StrEnum):
    """How a relay operation settled."""

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class RelayStatusEntry:
    """Immutable snapshot of one relay's progress.

    Attributes:
        url: Normalized relay URL.
        phase: Current [RelayPhase][broadcastr.models.relay_status.RelayPhase].
        count: Events transferred through this relay in the current pass
            (fetch: newly stored; broadcast: acknowledged as stored).
        error: Short description of the last failure, if any.
    """

    url: str
    phase: RelayPhase
    count: int = 0
    error: str | None = None

    def render(self) -> str:
        """One-line human-readable form, e.g. ``nos.lol: done (42)``."""
        host = self.url.removeprefix("wss://").removeprefix("ws://")
        text = f"{host}: {self.phase.value} ({self.count})"
        if self.error:
            text += f" [{self.error}]"
        return text


@dataclass(frozen=True, slots=True)
class RelayOutcome:
    """Final result of broadcasting to one relay.

    Attributes:
        url: Normalized relay URL.
        status: [RelayOutcomeStatus][broadcastr.models.relay_status.RelayOutcomeStatus].
        accepted: Events acknowledged with ``OK true``.
        rejected: Events acknowledged with ``OK false``.
        error: Failure description for ``ERROR``/``TIMEOUT`` outcomes.
    """

    url: str
    status: RelayOutcomeStatus
    accepted: int = 0
    rejected: int = 0
    error: str | None = None
