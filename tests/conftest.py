"""
Pytest configuration and shared fixtures for Broadcastr tests.

Provides:
- Identity fixtures (a real secp256k1 keypair in hex and npub form)
- An event factory producing events signed with ``nostr_sdk.EventBuilder``
- An in-memory relay double (``FakeConnector`` / ``FakeConnection``) that
  the coordinators accept through their ``connect`` parameter
"""

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from itertools import count
from typing import Any

import pytest
from nostr_sdk import EventBuilder, Keys, Kind, Tag, Timestamp

from broadcastr.core.exceptions import ConnectivityError, RelayTimeoutError
from broadcastr.models import Event, Relay
from broadcastr.utils.protocol import (
    EoseMessage,
    EventMessage,
    OkMessage,
    RelayMessage,
)


VALID_HEX_KEY = "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"
OTHER_HEX_KEY = "7f7ff03d123792d6ac594bfa67bf6d0c0ab55b6b1fdb6249303fe861f1ccba9a"

IDENTITY_KEYS = Keys.parse(VALID_HEX_KEY)
OTHER_KEYS = Keys.parse(OTHER_HEX_KEY)
IDENTITY_PUBKEY = IDENTITY_KEYS.public_key().to_hex()
OTHER_PUBKEY = OTHER_KEYS.public_key().to_hex()

_KEYS_BY_PUBKEY = {IDENTITY_PUBKEY: IDENTITY_KEYS, OTHER_PUBKEY: OTHER_KEYS}
_notes = count(1)


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Identity and Events
# ============================================================================


@pytest.fixture(scope="session")
def identity() -> str:
    """Hex public key of a real keypair."""
    return IDENTITY_PUBKEY


@pytest.fixture(scope="session")
def identity_npub() -> str:
    """The ``identity`` fixture encoded as NIP-19 npub."""
    return IDENTITY_KEYS.public_key().to_bech32()


def make_event(
    *,
    pubkey: str = OTHER_PUBKEY,
    kind: int = 1,
    created_at: int = 1_700_000_000,
    content: str | None = None,
    tags: list[list[str]] | None = None,
) -> Event:
    """Build a signed event authored by one of the two test keypairs.

    Ids are unique unless ``content`` is given: the default content carries a
    counter, and the id is the hash of the event fields.
    """
    if content is None:
        content = f"note {next(_notes)}"
    builder = (
        EventBuilder(Kind(kind), content)
        .tags([Tag.parse(tag) for tag in tags or []])
        .custom_created_at(Timestamp.from_secs(created_at))
    )
    return Event(builder.sign_with_keys(_KEYS_BY_PUBKEY[pubkey]))


def make_membership(
    pubkey: str,
    relays: dict[str, dict[str, bool]],
    *,
    created_at: int = 1_700_000_000,
) -> Event:
    """Build a kind-3 membership record carrying ``relays`` as its content."""
    return make_event(
        pubkey=pubkey,
        kind=3,
        created_at=created_at,
        content=json.dumps(relays),
    )


# ============================================================================
# In-memory Relay Double
# ============================================================================


SendHandler = Callable[["FakeConnection", list[Any]], None]


class FakeConnection:
    """Queue-backed connection implementing the coordinator ``Connection`` protocol.

    Items pushed to the queue are returned by ``recv``; ``None`` means the
    relay closed the socket and an exception instance is raised. An empty
    queue for longer than the idle timeout raises ``RelayTimeoutError``.
    """

    def __init__(self, connector: "FakeConnector", url: str, on_send: SendHandler | None) -> None:
        self._connector = connector
        self.url = url
        self._on_send = on_send
        self._queue: asyncio.Queue[RelayMessage | BaseException | None] = asyncio.Queue()
        self.sent: list[list[Any]] = []
        self.closed = False

    def push(self, item: RelayMessage | BaseException | None) -> None:
        self._queue.put_nowait(item)

    async def send(self, frame: str) -> None:
        if self.closed:
            raise ConnectivityError(f"send on closed connection: {self.url}")
        stall_after = self._connector.stalls.get(self.url)
        if stall_after is not None and len(self.sent) >= stall_after:
            # a relay that stopped reading: the write never completes
            await asyncio.Event().wait()
        payload = json.loads(frame)
        self.sent.append(payload)
        if self._on_send is not None:
            self._on_send(self, payload)

    async def recv(self, timeout: float) -> RelayMessage | None:  # noqa: ASYNC109
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            raise RelayTimeoutError(f"No message from {self.url}") from None
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._connector.open_connections -= 1


class FakeConnector:
    """Connection factory routing each relay URL to a scripted behaviour.

    Tracks connection attempts and the peak number of simultaneously open
    connections. Unknown URLs get a silent relay.
    """

    def __init__(self) -> None:
        self._behaviours: dict[str, SendHandler | BaseException] = {}
        self._preloaded: dict[str, list[RelayMessage | BaseException | None]] = {}
        self.connections: dict[str, FakeConnection] = {}
        self.attempts: list[str] = []
        self.stalls: dict[str, int] = {}
        self.open_connections = 0
        self.max_open = 0
        self.connect_delay = 0.0

    async def __call__(self, relay: Relay) -> FakeConnection:
        url = relay.url
        self.attempts.append(url)
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        behaviour = self._behaviours.get(url)
        if isinstance(behaviour, BaseException):
            raise behaviour
        conn = FakeConnection(self, url, behaviour)
        for item in self._preloaded.get(url, []):
            conn.push(item)
        self.connections[url] = conn
        self.open_connections += 1
        self.max_open = max(self.max_open, self.open_connections)
        return conn

    # -- behaviours ----------------------------------------------------------

    def serve(self, url: str, events: Iterable[Event], *, eose: bool = True) -> None:
        """Answer a REQ with ``events`` then EOSE."""
        events = list(events)

        def on_send(conn: FakeConnection, payload: list[Any]) -> None:
            if payload[0] != "REQ":
                return
            sub_id = payload[1]
            for event in events:
                conn.push(EventMessage(subscription_id=sub_id, event=event))
            if eose:
                conn.push(EoseMessage(subscription_id=sub_id))

        self._behaviours[url] = on_send

    def ack(self, url: str, *, accept: bool | Callable[[str], bool] = True) -> None:
        """Answer every EVENT with an OK."""

        def on_send(conn: FakeConnection, payload: list[Any]) -> None:
            if payload[0] != "EVENT":
                return
            event_id = payload[1]["id"]
            accepted = accept(event_id) if callable(accept) else accept
            reason = "" if accepted else "blocked: test"
            conn.push(OkMessage(event_id=event_id, accepted=accepted, reason=reason))

        self._behaviours[url] = on_send

    def script(self, url: str, items: Iterable[RelayMessage | BaseException | None]) -> None:
        """Queue fixed replies regardless of what is sent."""
        self._behaviours.pop(url, None)
        self._preloaded[url] = list(items)

    def refuse(self, url: str, error: BaseException | None = None) -> None:
        """Fail the connection attempt."""
        self._behaviours[url] = error or ConnectivityError(f"Connection refused: {url}")

    def stall(self, url: str, *, after: int = 0) -> None:
        """Block every send once ``after`` frames have been written."""
        self.stalls[url] = after


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


def relay_urls(n: int) -> list[str]:
    return [f"wss://relay{i}.example.com" for i in range(n)]
