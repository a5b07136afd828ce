"""Pure frozen dataclass models (no I/O).

Attributes:
    Event: Immutable Nostr event as exchanged on the wire.
    Relay: Validated, normalized relay URL with network detection.
    RelayPhase, RelayStatusEntry, RelayOutcome: Per-relay pass progress.
"""

from .constants import (
    DEFAULT_BOOTSTRAP_RELAYS,
    EVENT_KIND_MAX,
    EventKind,
    NetworkType,
    ServiceName,
)
from .event import Event
from .relay import Relay, parse_relays
from .relay_status import RelayOutcome, RelayOutcomeStatus, RelayPhase, RelayStatusEntry


__all__ = [
    "DEFAULT_BOOTSTRAP_RELAYS",
    "EVENT_KIND_MAX",
    "Event",
    "EventKind",
    "NetworkType",
    "Relay",
    "RelayOutcome",
    "RelayOutcomeStatus",
    "RelayPhase",
    "RelayStatusEntry",
    "ServiceName",
    "parse_relays",
]
