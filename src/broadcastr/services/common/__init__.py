"""Building blocks shared by the fetch and broadcast passes."""

from .batching import run_in_batches, split_batches
from .configs import (
    ClearnetConfig,
    FilterConfig,
    I2pConfig,
    LokiConfig,
    NetworksConfig,
    PassConfig,
    TorConfig,
    build_filters,
    make_connector,
)
from .membership import find_membership, infer_identity, parse_relay_map, resolve_relays
from .status import RelayStatusTracker, StatusHook
from .store import EventStore


__all__ = [
    "ClearnetConfig",
    "EventStore",
    "FilterConfig",
    "I2pConfig",
    "LokiConfig",
    "NetworksConfig",
    "PassConfig",
    "RelayStatusTracker",
    "StatusHook",
    "TorConfig",
    "build_filters",
    "find_membership",
    "infer_identity",
    "make_connector",
    "parse_relay_map",
    "resolve_relays",
    "run_in_batches",
    "split_batches",
]
