"""
Unit tests for utils.transport module.

Tests:
- RelayConnection.open() success, failure and handshake timeout
- SOCKS proxy errors and unexpected errors release the session
- recv() decoding, close frames, socket errors and idle timeout
- send() state checks
- close() idempotence and SETTLED state
- connect_relay() proxy requirement for overlay relays
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from aiohttp_socks import ProxyError

from broadcastr.core.exceptions import ConnectivityError, RelayTimeoutError
from broadcastr.models import Relay
from broadcastr.utils.protocol import EoseMessage
from broadcastr.utils.transport import ConnectionState, RelayConnection, connect_relay


# ============================================================================
# Fixtures
# ============================================================================


def _ws_message(msg_type: aiohttp.WSMsgType, data: object = None) -> MagicMock:
    msg = MagicMock()
    msg.type = msg_type
    msg.data = data
    return msg


@pytest.fixture
def mock_ws() -> MagicMock:
    ws = MagicMock()
    ws.send_str = AsyncMock()
    ws.receive = AsyncMock(return_value=_ws_message(aiohttp.WSMsgType.TEXT, '["EOSE","sub"]'))
    ws.close = AsyncMock()
    ws.exception = MagicMock(return_value=RuntimeError("boom"))
    return ws


@pytest.fixture
def mock_session(mock_ws: MagicMock) -> MagicMock:
    session = MagicMock()
    session.ws_connect = AsyncMock(return_value=mock_ws)
    session.close = AsyncMock()
    return session


@pytest.fixture
def patched_aiohttp(mock_session: MagicMock):
    with (
        patch("broadcastr.utils.transport.aiohttp.ClientSession", return_value=mock_session),
        patch("broadcastr.utils.transport.aiohttp.TCPConnector", return_value=MagicMock()),
    ):
        yield mock_session


@pytest.fixture
def relay() -> Relay:
    return Relay("wss://nos.lol")


# ============================================================================
# open()
# ============================================================================


class TestOpen:
    """Handshake handling."""

    async def test_open_streams(self, relay: Relay, patched_aiohttp: MagicMock) -> None:
        conn = await RelayConnection(relay).open()
        assert conn.state == ConnectionState.STREAMING
        patched_aiohttp.ws_connect.assert_awaited_once()
        assert patched_aiohttp.ws_connect.await_args.args[0] == "wss://nos.lol"

    async def test_refused(self, relay: Relay, patched_aiohttp: MagicMock) -> None:
        patched_aiohttp.ws_connect.side_effect = aiohttp.ClientConnectionError("refused")
        conn = RelayConnection(relay)
        with pytest.raises(ConnectivityError, match="Connection failed"):
            await conn.open()
        assert conn.state == ConnectionState.SETTLED
        patched_aiohttp.close.assert_awaited_once()

    async def test_proxy_error(self, patched_aiohttp: MagicMock) -> None:
        onion = Relay("ws://" + "a" * 56 + ".onion")
        patched_aiohttp.ws_connect.side_effect = ProxyError("Host unreachable", 4)
        conn = RelayConnection(onion, proxy_url="socks5://127.0.0.1:9050")
        with (
            patch("broadcastr.utils.transport.ProxyConnector"),
            pytest.raises(ConnectivityError, match="Host unreachable"),
        ):
            await conn.open()
        assert conn.state == ConnectionState.SETTLED
        patched_aiohttp.close.assert_awaited_once()

    async def test_unexpected_error_settles(
        self, relay: Relay, patched_aiohttp: MagicMock
    ) -> None:
        patched_aiohttp.ws_connect.side_effect = LookupError("odd")
        conn = RelayConnection(relay)
        with pytest.raises(LookupError):
            await conn.open()
        assert conn.state == ConnectionState.SETTLED
        patched_aiohttp.close.assert_awaited_once()

    async def test_handshake_timeout(self, relay: Relay, patched_aiohttp: MagicMock) -> None:
        async def hang(*_args: object, **_kwargs: object) -> None:
            await asyncio.sleep(10)

        patched_aiohttp.ws_connect.side_effect = hang
        conn = RelayConnection(relay, connect_timeout=0.01)
        with pytest.raises(RelayTimeoutError):
            await conn.open()
        assert conn.state == ConnectionState.SETTLED

    async def test_open_twice_rejected(self, relay: Relay, patched_aiohttp: MagicMock) -> None:
        conn = await RelayConnection(relay).open()
        with pytest.raises(ConnectivityError, match="already"):
            await conn.open()

    async def test_proxy_connector_used(self, patched_aiohttp: MagicMock) -> None:
        onion = Relay("ws://" + "a" * 56 + ".onion")
        with patch("broadcastr.utils.transport.ProxyConnector") as proxy_cls:
            await RelayConnection(onion, proxy_url="socks5://127.0.0.1:9050").open()
        proxy_cls.from_url.assert_called_once_with("socks5://127.0.0.1:9050")


# ============================================================================
# recv() / send() / close()
# ============================================================================


class TestStreaming:
    """Message exchange on an open connection."""

    async def test_recv_decodes(self, relay: Relay, patched_aiohttp: MagicMock) -> None:
        conn = await RelayConnection(relay).open()
        assert await conn.recv(timeout=1.0) == EoseMessage(subscription_id="sub")

    async def test_recv_close_frame(
        self, relay: Relay, patched_aiohttp: MagicMock, mock_ws: MagicMock
    ) -> None:
        mock_ws.receive.return_value = _ws_message(aiohttp.WSMsgType.CLOSE)
        conn = await RelayConnection(relay).open()
        assert await conn.recv(timeout=1.0) is None

    async def test_recv_error_frame(
        self, relay: Relay, patched_aiohttp: MagicMock, mock_ws: MagicMock
    ) -> None:
        mock_ws.receive.return_value = _ws_message(aiohttp.WSMsgType.ERROR)
        conn = await RelayConnection(relay).open()
        with pytest.raises(ConnectivityError, match="Socket error"):
            await conn.recv(timeout=1.0)

    async def test_recv_idle_timeout(
        self, relay: Relay, patched_aiohttp: MagicMock, mock_ws: MagicMock
    ) -> None:
        async def hang() -> None:
            await asyncio.sleep(10)

        mock_ws.receive.side_effect = hang
        conn = await RelayConnection(relay).open()
        with pytest.raises(RelayTimeoutError):
            await conn.recv(timeout=0.01)

    async def test_send(self, relay: Relay, patched_aiohttp: MagicMock, mock_ws: MagicMock) -> None:
        conn = await RelayConnection(relay).open()
        await conn.send('["CLOSE","sub"]')
        mock_ws.send_str.assert_awaited_once_with('["CLOSE","sub"]')

    async def test_send_failure(
        self, relay: Relay, patched_aiohttp: MagicMock, mock_ws: MagicMock
    ) -> None:
        mock_ws.send_str.side_effect = ConnectionResetError("reset")
        conn = await RelayConnection(relay).open()
        with pytest.raises(ConnectivityError, match="Send failed"):
            await conn.send("[]")

    async def test_send_before_open(self, relay: Relay) -> None:
        with pytest.raises(ConnectivityError):
            await RelayConnection(relay).send("[]")

    async def test_close_idempotent(
        self, relay: Relay, patched_aiohttp: MagicMock, mock_ws: MagicMock
    ) -> None:
        conn = await RelayConnection(relay).open()
        await conn.close()
        await conn.close()
        assert conn.state == ConnectionState.SETTLED
        mock_ws.close.assert_awaited_once()
        patched_aiohttp.close.assert_awaited_once()

    async def test_context_manager(self, relay: Relay, patched_aiohttp: MagicMock) -> None:
        async with RelayConnection(relay) as conn:
            assert conn.state == ConnectionState.STREAMING
        assert conn.state == ConnectionState.SETTLED


# ============================================================================
# connect_relay()
# ============================================================================


class TestConnectRelay:
    async def test_overlay_requires_proxy(self) -> None:
        onion = Relay("ws://" + "a" * 56 + ".onion")
        with pytest.raises(ValueError, match="proxy_url required"):
            await connect_relay(onion)

    async def test_clearnet_opens(self, relay: Relay, patched_aiohttp: MagicMock) -> None:
        conn = await connect_relay(relay, timeout=1.0)
        assert conn.state == ConnectionState.STREAMING
