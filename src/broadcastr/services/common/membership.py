"""Membership resolution: which relays an identity publishes to.

An identity's membership is the ``content`` of its newest kind-3 event, a
JSON object mapping relay URLs to read/write flags:

```json
{"wss://nos.lol": {"read": true, "write": true},
 "wss://relay.damus.io": {"read": true, "write": false}}
```

Only write-capable entries are broadcast targets. Ordering follows the NIP-01
replaceable event rule: newest ``created_at`` wins, ties go to the lowest id.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from broadcastr.core.exceptions import MembershipMissingError
from broadcastr.core.logger import format_kv_pairs
from broadcastr.models.constants import EventKind
from broadcastr.models.event import Event
from broadcastr.models.relay import parse_relays


_logger = logging.getLogger(__name__)


def _log(level: str, message: str, **kwargs: Any) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    if _logger.isEnabledFor(log_level):
        _logger.log(log_level, message + format_kv_pairs(kwargs, max_value_length=None))


def find_membership(events: Iterable[Event], identity: str) -> Event | None:
    """Select the newest kind-3 event authored by ``identity``, if any."""
    candidates = [event for event in events if event.is_membership_of(identity)]
    if not candidates:
        return None
    return min(candidates, key=Event.sort_key)


def infer_identity(events: Iterable[Event]) -> str | None:
    """Author of the newest kind-3 event in ``events``.

    Used when re-ingesting a backup without an explicit identity: a backup
    contains exactly one author's contact lists.
    """
    contacts = [event for event in events if event.kind == EventKind.CONTACTS]
    if not contacts:
        return None
    return min(contacts, key=Event.sort_key).pubkey


def parse_relay_map(content: str) -> dict[str, dict[str, Any]]:
    """Decode a membership payload into ``{url: flags}``.

    Entries whose flags are not an object are dropped.

    Raises:
        ValueError: If ``content`` is not a JSON object.
    """
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValueError(f"membership content is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValueError(f"membership content must be an object, got {type(payload).__name__}")

    relay_map: dict[str, dict[str, Any]] = {}
    for url, flags in payload.items():
        if not isinstance(flags, dict):
            _log("warning", "membership_entry_skipped", url=url, reason="flags not an object")
            continue
        relay_map[url] = flags
    return relay_map


def resolve_relays(events: Iterable[Event], identity: str) -> frozenset[str]:
    """Derive the write relay set of ``identity`` from its newest membership record.

    Args:
        events: Gathered events, in any order.
        identity: Hex public key.

    Returns:
        Normalized URLs of every write-capable relay. Invalid URLs are
        skipped with a warning.

    Raises:
        MembershipMissingError: If no membership record exists, or the
            newest one does not carry a relay map.
    """
    membership = find_membership(events, identity)
    if membership is None:
        raise MembershipMissingError(identity)

    try:
        relay_map = parse_relay_map(membership.content)
    except ValueError as e:
        raise MembershipMissingError(identity, reason=f"unusable membership record ({e})") from e

    writable = [url for url, flags in relay_map.items() if flags.get("write")]
    relays, rejected = parse_relays(writable)
    for raw, reason in rejected:
        _log("warning", "membership_relay_invalid", url=raw, reason=reason)

    _log(
        "debug",
        "membership_resolved",
        event_id=membership.id,
        created_at=membership.created_at,
        entries=len(relay_map),
        write_relays=len(relays),
    )
    return frozenset(relay.url for relay in relays)
