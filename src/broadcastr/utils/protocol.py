"""NIP-01 wire codec for relay connections.

Relays speak JSON arrays over WebSocket text frames. Parsing is delegated to
``nostr_sdk.RelayMessage`` and ``nostr_sdk.ClientMessage``; this module maps
the SDK variants onto small typed records and reports frames the SDK rejects
with
[MalformedMessageError][broadcastr.core.exceptions.MalformedMessageError].

Client to relay:

```text
["REQ", <subscription_id>, <filter>, ...]
["EVENT", <event>]
["CLOSE", <subscription_id>]
```

Relay to client:

```text
["EVENT", <subscription_id>, <event>]
["EOSE", <subscription_id>]
["OK", <event_id>, <true|false>, <message>]
["NOTICE", <message>]
["CLOSED", <subscription_id>, <message>]
["AUTH", <challenge>]
```

Frames with an unrecognized label decode to
[UnknownMessage][broadcastr.utils.protocol.UnknownMessage] so callers can
ignore them, as NIP-01 asks clients to do.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from nostr_sdk import ClientMessage
from nostr_sdk import RelayMessage as NostrRelayMessage

from broadcastr.core.exceptions import MalformedMessageError
from broadcastr.models.event import Event


# =============================================================================
# Relay Messages
# =============================================================================


@dataclass(frozen=True, slots=True)
class EventMessage:
    subscription_id: str
    event: Event


@dataclass(frozen=True, slots=True)
class EoseMessage:
    subscription_id: str


@dataclass(frozen=True, slots=True)
class OkMessage:
    event_id: str
    accepted: bool
    reason: str = ""


@dataclass(frozen=True, slots=True)
class NoticeMessage:
    message: str


@dataclass(frozen=True, slots=True)
class ClosedMessage:
    subscription_id: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class AuthMessage:
    challenge: str


@dataclass(frozen=True, slots=True)
class UnknownMessage:
    label: str


RelayMessage = (
    EventMessage
    | EoseMessage
    | OkMessage
    | NoticeMessage
    | ClosedMessage
    | AuthMessage
    | UnknownMessage
)

# =============================================================================
# Encoding
# =============================================================================


def encode_req(subscription_id: str, filters: list[dict[str, Any]]) -> str:
    """Encode a subscription request carrying every filter in one frame.

    ``nostr_sdk.ClientMessage.req`` takes a single filter, so the multi-filter
    ``REQ`` is assembled here.
    """
    if not filters:
        raise ValueError("REQ requires at least one filter")
    return json.dumps(["REQ", subscription_id, *filters], separators=(",", ":"))


def encode_event(event: Event) -> str:
    """Encode a publish frame for ``event``."""
    return ClientMessage.event(event.nostr_event).as_json()


def encode_close(subscription_id: str) -> str:
    return ClientMessage.close(subscription_id).as_json()


# =============================================================================
# Decoding
# =============================================================================


_SDK_LABELS = frozenset({"EVENT", "EOSE", "OK", "NOTICE", "CLOSED", "AUTH"})


def _frame_label(text: str) -> str:
    """Return the label of a frame the SDK could not decode as a known message."""
    try:
        frame = json.loads(text)
    except ValueError as e:
        raise MalformedMessageError(f"frame is not valid JSON: {e}") from e

    if not isinstance(frame, list) or not frame:
        raise MalformedMessageError("frame must be a non-empty JSON array")
    if not isinstance(frame[0], str):
        raise MalformedMessageError("frame label must be a string")
    return frame[0]


def decode_message(raw: str | bytes) -> RelayMessage:
    """Decode one relay frame with ``nostr_sdk.RelayMessage``.

    Args:
        raw: Text (or UTF-8 bytes) of a single WebSocket message.

    Returns:
        The typed relay message. Labels the SDK does not model decode to
        [UnknownMessage][broadcastr.utils.protocol.UnknownMessage].

    Raises:
        MalformedMessageError: If the frame is not JSON, not a non-empty
            array with a string label, or a known label with the wrong shape
            (including an ``EVENT`` whose event the SDK rejects).
    """
    try:
        text = raw.decode() if isinstance(raw, bytes) else raw
    except UnicodeDecodeError as e:
        raise MalformedMessageError(f"frame is not valid UTF-8: {e}") from e

    try:
        message = NostrRelayMessage.from_json(text).as_enum()
    # nostr-sdk raises its own FFI error types, whose names vary between releases
    except Exception as e:  # noqa: BLE001
        label = _frame_label(text)
        if label not in _SDK_LABELS:
            return UnknownMessage(label)
        raise MalformedMessageError(f"invalid {label} frame: {e}") from e

    if message.is_event_msg():
        return EventMessage(message.subscription_id, Event(message.event))
    if message.is_end_of_stored_events():
        return EoseMessage(message.subscription_id)
    if message.is_ok():
        return OkMessage(message.event_id.to_hex(), message.status, message.message)
    if message.is_notice():
        return NoticeMessage(message.message)
    if message.is_closed():
        return ClosedMessage(message.subscription_id, message.message)
    if message.is_auth():
        return AuthMessage(message.challenge)
    # COUNT and negentropy frames
    return UnknownMessage(_frame_label(text))
