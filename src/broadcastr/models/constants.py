"""Shared constants for the models layer.

Enumerations used across the models, utils and services layers. Kept here so
the lower layers never import from ``broadcastr.services``.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Final


class NetworkType(StrEnum):
    """Network type enum for relay classification.

    Each relay URL is classified into exactly one network type during
    [Relay][broadcastr.models.relay.Relay] construction. Clearnet relays use
    ``wss://``; overlay networks use ``ws://`` and are dialled through a
    SOCKS5 proxy.

    Warning:
        ``LOCAL`` and ``UNKNOWN`` cause ``Relay`` construction to raise
        ``ValueError``; they never appear on a constructed instance.
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"
    UNKNOWN = "unknown"


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging and metrics."""

    BACKUP = "backup"
    REBROADCAST = "rebroadcast"


class EventKind(IntEnum):
    """Nostr event kinds the engine treats specially.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        CONTACTS: Kind 3 -- contact list whose content carries the author's
            relay membership map (NIP-02).
    """

    SET_METADATA = 0
    CONTACTS = 3


EVENT_KIND_MAX: Final[int] = 65_535

# Relays used for the first fetch pass, before the identity's own
# membership is known.
DEFAULT_BOOTSTRAP_RELAYS: Final[tuple[str, ...]] = (
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.band",
    "wss://relay.primal.net",
    "wss://relay.snort.social",
    "wss://nostr.wine",
    "wss://nostr.mom",
    "wss://offchain.pub",
    "wss://nostr.bitcoiner.social",
    "wss://relay.nostr.bg",
    "wss://nostr-pub.wellorder.net",
    "wss://purplepag.es",
)
