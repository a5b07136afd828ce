"""Fetch pass: gather every event belonging to an identity from many relays.

Each relay is sent a single ``REQ`` carrying the identity filters and then
streamed until it reports ``EOSE``. Events land in one shared
[EventStore][broadcastr.services.common.store.EventStore], so a relay's count
is the number of events it contributed first: with two relays returning the
same three ids, whichever answers first is credited with 3 and the other with 0.

Relays run in batches (``PassConfig.batch_size``, default 10) on the
[run_in_batches][broadcastr.services.common.batching.run_in_batches]
skeleton. A relay that stays silent for ``idle_timeout`` seconds is closed and
marked ``ERROR`` with error ``timeout``; the idle window restarts on every
inbound message, and a frame that cannot be written within the same window
counts as a timeout too. No relay fault ever escapes the pass: every relay
ends ``DONE`` or ``ERROR``.

Examples:
    ```python
    fetcher = Fetcher(PassConfig(idle_timeout=5.0), on_status=render_table)
    events = await fetcher.fetch(build_filters(pubkey), pubkey, relays)
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from broadcastr.core.exceptions import (
    ConnectivityError,
    MalformedMessageError,
    ProtocolError,
    RelayTimeoutError,
)
from broadcastr.core.logger import Logger
from broadcastr.models.constants import EventKind
from broadcastr.models.event import Event
from broadcastr.models.relay import Relay
from broadcastr.models.relay_status import RelayPhase
from broadcastr.utils.protocol import (
    AuthMessage,
    ClosedMessage,
    EoseMessage,
    EventMessage,
    NoticeMessage,
    encode_close,
    encode_req,
)
from broadcastr.utils.transport import Connection, Connector

from .common.batching import run_in_batches
from .common.configs import NetworksConfig, PassConfig, make_connector
from .common.status import RelayStatusTracker, StatusHook
from .common.store import EventStore
from .common.utils import coerce_relays


TIMEOUT_ERROR = "timeout"


@dataclass(frozen=True, slots=True)
class _FetchContext:
    """Immutable state shared by the relay tasks of one fetch pass."""

    filters: list[dict[str, Any]]
    identity: str
    store: EventStore
    tracker: RelayStatusTracker


class Fetcher:
    """Fetch coordinator.

    Args:
        config: Batching and timeout settings.
        connect: Connection factory. Defaults to real WebSocket connections
            routed according to ``networks``.
        networks: Network enablement and proxies for the default connector.
        on_status: Render hook receiving a status snapshot on every change.
        logger: Structured logger; defaults to ``Logger("fetcher")``.

    Attributes:
        tracker: Status table of the most recent pass (``None`` before the
            first one).
    """

    def __init__(
        self,
        config: PassConfig | None = None,
        *,
        connect: Connector | None = None,
        networks: NetworksConfig | None = None,
        on_status: StatusHook | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._config = config or PassConfig()
        self._connect = connect or make_connector(
            networks or NetworksConfig(), self._config.connect_timeout
        )
        self._on_status = on_status
        self._logger = logger or Logger("fetcher")
        self.tracker: RelayStatusTracker | None = None

    async def fetch(
        self,
        filters: list[dict[str, Any]],
        identity: str,
        relays: Iterable[Relay | str],
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[Event]:
        """Run one fetch pass.

        Args:
            filters: NIP-01 filter objects sent in the ``REQ``.
            identity: Hex public key; kind-3 events from other authors are
                discarded.
            relays: Relays to query (``Relay`` objects or URLs).
            cancel: Optional cancel token.

        Returns:
            Deduplicated events, newest first (``created_at`` descending,
            then ``id`` ascending).

        Raises:
            PassCancelledError: If ``cancel`` is set during the pass.
            ValueError: If ``filters`` is empty.
        """
        if not filters:
            raise ValueError("at least one filter is required")

        targets = coerce_relays(relays, self._logger)
        tracker = RelayStatusTracker(on_change=self._on_status)
        tracker.register(relay.url for relay in targets)
        self.tracker = tracker
        ctx = _FetchContext(filters=filters, identity=identity, store=EventStore(), tracker=tracker)

        self._logger.info(
            "fetch_started",
            relays=len(targets),
            batch_size=self._config.batch_size,
            idle_timeout=self._config.idle_timeout,
        )
        start = time.monotonic()

        async def worker(relay: Relay) -> None:
            await self._fetch_relay(relay, ctx)

        await run_in_batches(targets, worker, batch_size=self._config.batch_size, cancel=cancel)

        counts = tracker.counts()
        self._logger.info(
            "fetch_completed",
            relays=len(targets),
            done=counts[RelayPhase.DONE],
            failed=counts[RelayPhase.ERROR],
            events=len(ctx.store),
            duration_s=round(time.monotonic() - start, 2),
        )
        return sorted(ctx.store.all(), key=Event.sort_key)

    async def _fetch_relay(self, relay: Relay, ctx: _FetchContext) -> None:
        """Fetch from one relay; every fault ends as an ``ERROR`` status."""
        url = relay.url
        conn: Connection | None = None
        ctx.tracker.update(url, RelayPhase.CONNECTING)
        try:
            conn = await asyncio.wait_for(
                self._connect(relay), timeout=self._config.connect_timeout
            )
            await self._send(conn, encode_req(self._config.subscription_id, ctx.filters))
            ctx.tracker.update(url, RelayPhase.IN_PROGRESS)
            await self._stream(conn, url, ctx)

        except (RelayTimeoutError, TimeoutError):
            ctx.tracker.update(url, RelayPhase.ERROR, error=TIMEOUT_ERROR)
            self._logger.warning("relay_timeout", url=url, idle_s=self._config.idle_timeout)
        except MalformedMessageError as e:
            ctx.tracker.update(url, RelayPhase.ERROR, error="malformed message")
            self._logger.warning("relay_malformed_message", url=url, error=str(e))
        except (ConnectivityError, ProtocolError, OSError, ValueError) as e:
            ctx.tracker.update(url, RelayPhase.ERROR, error=str(e))
            self._logger.warning(
                "relay_fetch_failed", url=url, error=str(e), error_type=type(e).__name__
            )
        except Exception as e:  # noqa: BLE001
            ctx.tracker.update(url, RelayPhase.ERROR, error=str(e) or type(e).__name__)
            self._logger.error(
                "relay_fetch_unexpected_error", url=url, error=str(e), error_type=type(e).__name__
            )
        finally:
            if conn is not None:
                await conn.close()

    async def _stream(self, conn: Connection, url: str, ctx: _FetchContext) -> None:
        """Consume relay messages until ``EOSE`` for our subscription."""
        sub_id = self._config.subscription_id
        discarded = 0

        while True:
            msg = await conn.recv(self._config.idle_timeout)

            if msg is None:
                raise ConnectivityError("connection closed before EOSE")

            if isinstance(msg, EventMessage):
                if msg.subscription_id != sub_id:
                    continue
                event = msg.event
                if event.kind == EventKind.CONTACTS and event.pubkey != ctx.identity:
                    discarded += 1
                    continue
                if ctx.store.insert(event):
                    ctx.tracker.update(url, delta=1)

            elif isinstance(msg, EoseMessage):
                if msg.subscription_id != sub_id:
                    continue
                entry = ctx.tracker.update(url, RelayPhase.DONE)
                self._logger.debug(
                    "relay_fetch_done", url=url, count=entry.count, discarded=discarded
                )
                with contextlib.suppress(ConnectivityError, TimeoutError):
                    await self._send(conn, encode_close(sub_id))
                return

            elif isinstance(msg, ClosedMessage):
                if msg.subscription_id == sub_id:
                    raise ProtocolError(f"subscription closed by relay: {msg.reason or 'no reason'}")

            elif isinstance(msg, NoticeMessage):
                self._logger.info("relay_notice", url=url, message=msg.message)

            elif isinstance(msg, AuthMessage):
                self._logger.debug("relay_auth_ignored", url=url)

    async def _send(self, conn: Connection, frame: str) -> None:
        """Send one frame; a relay that stops reading times out like a silent one."""
        await asyncio.wait_for(conn.send(frame), timeout=self._config.idle_timeout)
