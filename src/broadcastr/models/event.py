"""
Immutable Nostr event wrapper.

Wraps ``nostr_sdk.Event`` in a frozen dataclass. The SDK parses and
serializes the NIP-01 JSON; the wrapper caches the plain fields the
coordinators read on every message (``id``, ``pubkey``, ``kind`` and
``created_at``) and gives the engine value equality and hashing.

The engine consumes events verbatim: it never re-signs or re-hashes them, and
signature verification is out of scope.

See Also:
    [EventStore][broadcastr.services.common.store.EventStore]: Deduplicating
        container keyed by ``Event.id``.
    [broadcastr.utils.protocol][]: Decodes ``EVENT`` frames into this model.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from nostr_sdk import Event as NostrEvent

from ._validation import validate_instance
from .constants import EventKind


_FIELDS = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable Nostr event.

    Args:
        nostr_event: The underlying ``nostr_sdk.Event`` instance.

    Attributes:
        id: Content-derived event hash (64 lowercase hex characters).
        pubkey: Author public key (64 lowercase hex characters).
        created_at: Unix timestamp in seconds, used for ordering.
        kind: Integer kind tag (0-65535).
        tags: Ordered tag arrays, stored as nested tuples.
        content: Opaque payload whose format depends on ``kind``.
        sig: Schnorr signature (128 lowercase hex characters), not verified.

    Raises:
        TypeError: If ``nostr_event`` is not a ``nostr_sdk.Event``.

    Examples:
        ```python
        event = Event.from_json(raw)
        event.is_membership_of(pubkey)
        event.to_dict()  # NIP-01 JSON object with list tags
        ```

    Note:
        Equality and hashing use the cached fields, never the SDK object.
    """

    nostr_event: NostrEvent = field(repr=False, compare=False)
    id: str = field(init=False)
    pubkey: str = field(init=False)
    created_at: int = field(init=False)
    kind: int = field(init=False)
    tags: tuple[tuple[str, ...], ...] = field(init=False, repr=False)
    content: str = field(init=False, repr=False)
    sig: str = field(init=False, repr=False)

    def __post_init__(self) -> None:
        validate_instance(self.nostr_event, NostrEvent, "nostr_event")
        inner = self.nostr_event
        object.__setattr__(self, "id", inner.id().to_hex())
        object.__setattr__(self, "pubkey", inner.author().to_hex())
        object.__setattr__(self, "created_at", inner.created_at().as_secs())
        object.__setattr__(self, "kind", inner.kind().as_u16())
        object.__setattr__(
            self, "tags", tuple(tuple(tag.as_vec()) for tag in inner.tags().to_vec())
        )
        object.__setattr__(self, "content", inner.content())
        object.__setattr__(self, "sig", inner.signature())

    @classmethod
    def from_json(cls, raw: str) -> Event:
        """Parse an event from its JSON text.

        Raises:
            ValueError: If the SDK rejects the JSON (missing fields, wrong
                types, invalid hex or an invalid public key).
        """
        try:
            inner = NostrEvent.from_json(raw)
        # nostr-sdk raises its own FFI error types, whose names vary between releases
        except Exception as e:  # noqa: BLE001
            raise ValueError(f"invalid event: {e}") from e
        return cls(inner)

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        """Build an event from a decoded NIP-01 JSON object.

        Unknown keys are ignored; all seven NIP-01 fields are required.

        Raises:
            TypeError: If ``data`` is not a mapping.
            ValueError: If a field is missing or invalid.
        """
        validate_instance(data, Mapping, "event")
        missing = [name for name in _FIELDS if name not in data]
        if missing:
            raise ValueError(f"event is missing fields: {', '.join(missing)}")
        return cls.from_json(json.dumps({name: data[name] for name in _FIELDS}))

    def to_json(self) -> str:
        return self.nostr_event.as_json()

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        data: dict[str, Any] = json.loads(self.to_json())
        return data

    def is_membership_of(self, pubkey: str) -> bool:
        """Whether this is a kind-3 event authored by ``pubkey``."""
        return self.kind == EventKind.CONTACTS and self.pubkey == pubkey

    def sort_key(self) -> tuple[int, str]:
        """Ordering key: newest first, then lowest id."""
        return (-self.created_at, self.id)
