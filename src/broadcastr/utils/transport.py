"""WebSocket transport for relay connections.

Each relay operation owns exactly one
[RelayConnection][broadcastr.utils.transport.RelayConnection], an explicit
state machine over an aiohttp WebSocket:

```text
CONNECTING --open()--> STREAMING --close()--> CLOSING --> SETTLED
     \\________________ failure ________________________/
```

``recv()`` applies the per-message idle timeout, so callers express the
"reset the timer on every inbound message" rule simply by calling it in a
loop. Overlay relays (Tor, I2P, Lokinet) are dialled through a SOCKS5 proxy
using ``aiohttp_socks.ProxyConnector``.

Coordinators never construct connections directly; they receive a
[Connector][broadcastr.utils.transport.Connector] so that tests can inject an
in-memory double implementing [Connection][broadcastr.utils.transport.Connection].
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Final, Protocol, Self

import aiohttp
from aiohttp_socks import ProxyConnector, ProxyError

from broadcastr.core.exceptions import ConnectivityError, RelayTimeoutError
from broadcastr.models.relay import Relay

from .protocol import RelayMessage, decode_message


DEFAULT_TIMEOUT: Final[float] = 10.0
_CLOSE_TIMEOUT: Final[float] = 5.0
_MAX_MSG_SIZE: Final[int] = 16 * 1024 * 1024

logger = logging.getLogger("broadcastr.utils.transport")


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"
    SETTLED = "settled"


class Connection(Protocol):
    """Message-oriented relay connection used by the coordinators."""

    async def send(self, frame: str) -> None: ...

    async def recv(self, timeout: float) -> RelayMessage | None: ...  # noqa: ASYNC109

    async def close(self) -> None: ...


Connector = Callable[[Relay], Awaitable[Connection]]


class RelayConnection:
    """aiohttp WebSocket connection to a single relay.

    Attributes:
        relay: The [Relay][broadcastr.models.relay.Relay] being contacted.
        state: Current [ConnectionState][broadcastr.utils.transport.ConnectionState].

    Examples:
        ```python
        async with RelayConnection(relay, connect_timeout=10.0) as conn:
            await conn.send(encode_req("sub", filters))
            message = await conn.recv(timeout=10.0)
        ```
    """

    def __init__(
        self,
        relay: Relay,
        *,
        proxy_url: str | None = None,
        connect_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.relay = relay
        self.state = ConnectionState.CONNECTING
        self._proxy_url = proxy_url
        self._connect_timeout = connect_timeout
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    async def open(self) -> Self:
        """Perform the WebSocket handshake.

        Raises:
            RelayTimeoutError: If the handshake does not finish within
                ``connect_timeout``.
            ConnectivityError: On refused connections, SOCKS proxy errors
                (an unreachable overlay host), DNS, TLS or HTTP upgrade
                failures.
        """
        if self.state is not ConnectionState.CONNECTING:
            raise ConnectivityError(f"Connection to {self.relay.url} already {self.state}")

        connector: aiohttp.BaseConnector
        if self._proxy_url:
            connector = ProxyConnector.from_url(self._proxy_url)
        else:
            connector = aiohttp.TCPConnector()
        self._session = aiohttp.ClientSession(connector=connector)

        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self.relay.url, max_msg_size=_MAX_MSG_SIZE),
                timeout=self._connect_timeout,
            )
        except TimeoutError:
            await self._settle()
            raise RelayTimeoutError(f"Connection timeout: {self.relay.url}") from None
        except (aiohttp.ClientError, OSError, ProxyError) as e:
            await self._settle()
            raise ConnectivityError(f"Connection failed: {self.relay.url} ({e})") from e
        except BaseException:
            # cancellation or an unexpected error: the session is released first
            await self._settle()
            raise

        self.state = ConnectionState.STREAMING
        logger.debug("ws_connected url=%s proxy=%s", self.relay.url, bool(self._proxy_url))
        return self

    async def send(self, frame: str) -> None:
        """Send one text frame.

        Raises:
            ConnectivityError: If the connection is not streaming or the
                socket write fails.
        """
        ws = self._require_stream()
        try:
            await ws.send_str(frame)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise ConnectivityError(f"Send failed: {self.relay.url} ({e})") from e

    async def recv(self, timeout: float) -> RelayMessage | None:  # noqa: ASYNC109
        """Wait for the next relay message.

        Args:
            timeout: Idle window in seconds for this message.

        Returns:
            The decoded message, or ``None`` once the relay closed the socket.

        Raises:
            RelayTimeoutError: If nothing arrives within ``timeout``.
            ConnectivityError: If the socket reports an error.
            MalformedMessageError: If the frame does not decode.
        """
        ws = self._require_stream()
        try:
            msg = await asyncio.wait_for(ws.receive(), timeout=timeout)
        except TimeoutError:
            raise RelayTimeoutError(
                f"No message from {self.relay.url} within {timeout:.1f}s"
            ) from None

        if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            return decode_message(msg.data)
        if msg.type == aiohttp.WSMsgType.ERROR:
            raise ConnectivityError(f"Socket error: {self.relay.url} ({ws.exception()})")
        # CLOSE, CLOSING, CLOSED
        return None

    async def close(self) -> None:
        """Close the socket and session. Idempotent."""
        if self.state is ConnectionState.SETTLED:
            return
        self.state = ConnectionState.CLOSING
        await self._settle()

    async def _settle(self) -> None:
        # aiohttp can raise assorted client errors while tearing down a
        # half-open socket; teardown must always reach SETTLED.
        if self._ws is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(self._ws.close(), timeout=_CLOSE_TIMEOUT)
        if self._session is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(self._session.close(), timeout=_CLOSE_TIMEOUT)
        self._ws = None
        self._session = None
        self.state = ConnectionState.SETTLED

    def _require_stream(self) -> aiohttp.ClientWebSocketResponse:
        if self.state is not ConnectionState.STREAMING or self._ws is None:
            raise ConnectivityError(f"Connection to {self.relay.url} is {self.state}")
        return self._ws

    async def __aenter__(self) -> Self:
        return await self.open()

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()


async def connect_relay(
    relay: Relay,
    *,
    proxy_url: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
) -> RelayConnection:
    """Open a [RelayConnection][broadcastr.utils.transport.RelayConnection].

    Raises:
        ValueError: If an overlay relay is requested without ``proxy_url``.
        RelayTimeoutError: If the handshake times out.
        ConnectivityError: On any other connection failure.
    """
    if relay.is_overlay and proxy_url is None:
        raise ValueError(f"proxy_url required for {relay.network} relay: {relay.url}")
    return await RelayConnection(relay, proxy_url=proxy_url, connect_timeout=timeout).open()
