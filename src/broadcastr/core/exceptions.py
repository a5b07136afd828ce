"""Broadcastr exception hierarchy.

Per-relay faults (connectivity, timeouts, malformed wire messages) are raised
inside a single relay task and absorbed by the coordinator that owns it: they
end up in the relay's status entry and never escape a pass. Only the absence
of usable membership data and explicit cancellation reach the caller.

Exception hierarchy:

```text
BroadcastrError (base -- never raised directly)
├── ConfigurationError       -- bad YAML, invalid settings, unusable identity
├── ConnectivityError        -- relay unreachable, handshake or socket failure
│   └── RelayTimeoutError    -- no traffic within the idle window
├── ProtocolError            -- NIP-01 level violations
│   └── MalformedMessageError -- inbound frame with an unexpected shape
├── MembershipMissingError   -- no membership record for the identity
└── PassCancelledError       -- a fetch/broadcast pass was aborted by the caller
```

See Also:
    [run_in_batches()][broadcastr.services.common.batching.run_in_batches]:
        The skeleton that isolates per-relay failures.
    [resolve_relays()][broadcastr.services.common.membership.resolve_relays]:
        Raises [MembershipMissingError][broadcastr.core.exceptions.MembershipMissingError].
"""

from __future__ import annotations


class BroadcastrError(Exception):
    """Base exception for all Broadcastr errors. Never raised directly."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(BroadcastrError):
    """Invalid or missing configuration (YAML, CLI flags, identity)."""


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(BroadcastrError):
    """Relay unreachable, refused the handshake, or dropped the socket.

    Local to one relay: recorded as an ``ERROR`` status and never propagated
    to the pass result.
    """


class RelayTimeoutError(ConnectivityError):
    """No inbound message arrived within the idle timeout.

    The connection is closed and only this relay's operation fails.
    """


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(BroadcastrError):
    """NIP-01 protocol violation reported by, or detected on, a relay."""


class MalformedMessageError(ProtocolError):
    """Inbound frame that is not valid JSON or does not match a known shape.

    Treated as a connection-level fault: the relay is closed and marked
    ``ERROR``.
    """


# ---------------------------------------------------------------------------
# Cycle-level
# ---------------------------------------------------------------------------


class MembershipMissingError(BroadcastrError):
    """No usable membership (kind 3) record was found for the identity.

    Fatal to a fetch-then-broadcast cycle: there is no target relay set. The
    engine never substitutes one; falling back to a known relay list is the
    caller's decision.
    """

    def __init__(self, identity: str, reason: str = "no membership record found") -> None:
        self.identity = identity
        self.reason = reason
        super().__init__(f"{reason} for {identity}")


class PassCancelledError(BroadcastrError):
    """A fetch or broadcast pass was aborted through its cancel token."""
