"""Broadcast pass: republish an event set to a relay set.

Each relay receives every event as an ``["EVENT", ...]`` frame, after which
the coordinator waits for the matching ``OK`` acknowledgements. A relay's
count is its number of positive ``OK`` replies. The relay settles ``DONE``
once every sent id is acknowledged or the relay closes the socket, and
``ERROR`` on connection failure, malformed frames or ``idle_timeout``
seconds without a reply. Each ``EVENT`` write is bounded by the same window,
so a relay that stops reading cannot hold up its batch. There are no retries
within a pass.

Examples:
    ```python
    broadcaster = Broadcaster(PassConfig(), on_status=render_table)
    outcomes = await broadcaster.broadcast(events, relays)
    outcomes["wss://nos.lol"].accepted
    ```
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from broadcastr.core.exceptions import (
    ConnectivityError,
    MalformedMessageError,
    ProtocolError,
    RelayTimeoutError,
)
from broadcastr.core.logger import Logger
from broadcastr.models.event import Event
from broadcastr.models.relay import Relay
from broadcastr.models.relay_status import RelayOutcome, RelayOutcomeStatus, RelayPhase
from broadcastr.utils.protocol import AuthMessage, NoticeMessage, OkMessage, encode_event
from broadcastr.utils.transport import Connection, Connector

from .common.batching import run_in_batches
from .common.configs import NetworksConfig, PassConfig, make_connector
from .common.status import RelayStatusTracker, StatusHook
from .common.utils import coerce_relays


TIMEOUT_ERROR = "timeout"


@dataclass(slots=True)
class _AckState:
    """Acknowledgement bookkeeping for one relay."""

    pending: set[str]
    accepted: int = 0
    rejected: int = 0


class Broadcaster:
    """Broadcast coordinator.

    Args:
        config: Batching and timeout settings.
        connect: Connection factory. Defaults to real WebSocket connections
            routed according to ``networks``.
        networks: Network enablement and proxies for the default connector.
        on_status: Render hook receiving a status snapshot on every change.
        logger: Structured logger; defaults to ``Logger("broadcaster")``.

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
        self._logger = logger or Logger("broadcaster")
        self.tracker: RelayStatusTracker | None = None

    async def broadcast(
        self,
        events: Sequence[Event],
        relays: Iterable[Relay | str],
        *,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, RelayOutcome]:
        """Run one broadcast pass.

        Args:
            events: Events to publish, sent in the given order.
            relays: Target relays (``Relay`` objects or URLs).
            cancel: Optional cancel token.

        Returns:
            Outcome per normalized relay URL. Empty when ``events`` is empty,
            in which case no relay is contacted.

        Raises:
            PassCancelledError: If ``cancel`` is set during the pass.
        """
        targets = coerce_relays(relays, self._logger)
        tracker = RelayStatusTracker(on_change=self._on_status)
        self.tracker = tracker

        if not events:
            self._logger.info("broadcast_skipped", reason="no events", relays=len(targets))
            return {}

        tracker.register(relay.url for relay in targets)
        outcomes: dict[str, RelayOutcome] = {}

        self._logger.info(
            "broadcast_started",
            events=len(events),
            relays=len(targets),
            batch_size=self._config.batch_size,
        )
        start = time.monotonic()

        async def worker(relay: Relay) -> None:
            outcomes[relay.url] = await self._broadcast_relay(relay, events, tracker)

        await run_in_batches(targets, worker, batch_size=self._config.batch_size, cancel=cancel)

        succeeded = sum(1 for o in outcomes.values() if o.status == RelayOutcomeStatus.SUCCESS)
        self._logger.info(
            "broadcast_completed",
            relays=len(targets),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            accepted=sum(o.accepted for o in outcomes.values()),
            duration_s=round(time.monotonic() - start, 2),
        )
        return outcomes

    async def _broadcast_relay(
        self, relay: Relay, events: Sequence[Event], tracker: RelayStatusTracker
    ) -> RelayOutcome:
        """Publish to one relay; every fault ends as an ``ERROR`` status."""
        url = relay.url
        conn: Connection | None = None
        acks = _AckState(pending={event.id for event in events})
        tracker.update(url, RelayPhase.CONNECTING)
        try:
            conn = await asyncio.wait_for(
                self._connect(relay), timeout=self._config.connect_timeout
            )
            tracker.update(url, RelayPhase.IN_PROGRESS)
            for event in events:
                await asyncio.wait_for(
                    conn.send(encode_event(event)), timeout=self._config.idle_timeout
                )
            closed_early = await self._collect_acks(conn, url, acks, tracker)

        except (RelayTimeoutError, TimeoutError):
            tracker.update(url, RelayPhase.ERROR, error=TIMEOUT_ERROR)
            self._logger.warning(
                "relay_timeout", url=url, idle_s=self._config.idle_timeout, pending=len(acks.pending)
            )
            return self._outcome(url, RelayOutcomeStatus.TIMEOUT, acks, TIMEOUT_ERROR)
        except MalformedMessageError as e:
            tracker.update(url, RelayPhase.ERROR, error="malformed message")
            self._logger.warning("relay_malformed_message", url=url, error=str(e))
            return self._outcome(url, RelayOutcomeStatus.ERROR, acks, str(e))
        except (ConnectivityError, ProtocolError, OSError, ValueError) as e:
            tracker.update(url, RelayPhase.ERROR, error=str(e))
            self._logger.warning(
                "relay_broadcast_failed", url=url, error=str(e), error_type=type(e).__name__
            )
            return self._outcome(url, RelayOutcomeStatus.ERROR, acks, str(e))
        except Exception as e:  # noqa: BLE001
            tracker.update(url, RelayPhase.ERROR, error=str(e) or type(e).__name__)
            self._logger.error(
                "relay_broadcast_unexpected_error",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._outcome(url, RelayOutcomeStatus.ERROR, acks, str(e) or type(e).__name__)
        finally:
            if conn is not None:
                await conn.close()

        tracker.update(url, RelayPhase.DONE)
        self._logger.debug(
            "relay_broadcast_done",
            url=url,
            accepted=acks.accepted,
            rejected=acks.rejected,
            unacknowledged=len(acks.pending),
            closed_early=closed_early,
        )
        return self._outcome(url, RelayOutcomeStatus.SUCCESS, acks, None)

    async def _collect_acks(
        self, conn: Connection, url: str, acks: _AckState, tracker: RelayStatusTracker
    ) -> bool:
        """Read ``OK`` replies until all ids are acknowledged.

        Returns:
            ``True`` if the relay closed the connection with acks outstanding.
        """
        while acks.pending:
            msg = await conn.recv(self._config.idle_timeout)

            if msg is None:
                return True

            if isinstance(msg, OkMessage):
                if msg.event_id not in acks.pending:
                    continue
                acks.pending.discard(msg.event_id)
                if msg.accepted:
                    acks.accepted += 1
                    tracker.update(url, delta=1)
                else:
                    acks.rejected += 1
                    self._logger.debug(
                        "event_rejected", url=url, event_id=msg.event_id, reason=msg.reason
                    )

            elif isinstance(msg, NoticeMessage):
                self._logger.info("relay_notice", url=url, message=msg.message)

            elif isinstance(msg, AuthMessage):
                self._logger.debug("relay_auth_ignored", url=url)

        return False

    @staticmethod
    def _outcome(
        url: str, status: RelayOutcomeStatus, acks: _AckState, error: str | None
    ) -> RelayOutcome:
        return RelayOutcome(
            url=url,
            status=status,
            accepted=acks.accepted,
            rejected=acks.rejected,
            error=error,
        )
