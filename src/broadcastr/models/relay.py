"""
Validated Nostr relay URL with network type detection.

Relay addresses arrive from two untrusted places: the bootstrap list in the
service configuration and the membership map inside a kind-3 event. Both are
parsed here, normalized (lowercase host, default port stripped, trailing
slash removed) so that the same relay written two ways is contacted once, and
classified by network so overlay relays can be routed through a proxy.
Local and private addresses are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network
from typing import Any, ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from .constants import NetworkType


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable representation of a Nostr relay endpoint.

    Attributes:
        url: Fully normalized URL including scheme.
        network: Detected ``NetworkType``.
        scheme: ``ws`` or ``wss`` (clearnet is always upgraded to ``wss``).
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit non-default port, or ``None``.
        path: URL path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed, uses an unsupported scheme,
            points to a local/private address, or contains null bytes.

    Examples:
        ```python
        Relay("wss://Relay.Damus.io/").url   # 'wss://relay.damus.io'
        Relay("ws://abc.onion").network      # NetworkType.TOR
        ```
    """

    raw_url: str = field(repr=False, compare=False)

    url: str = field(init=False)
    network: NetworkType = field(init=False, compare=False)
    scheme: str = field(init=False, compare=False)
    host: str = field(init=False, compare=False)
    port: int | None = field(init=False, compare=False)
    path: str | None = field(init=False, compare=False)

    _PORT_WS: ClassVar[int] = 80
    _PORT_WSS: ClassVar[int] = 443

    _NETWORK_TLDS: ClassVar[dict[str, NetworkType]] = {
        ".onion": NetworkType.TOR,
        ".i2p": NetworkType.I2P,
        ".loki": NetworkType.LOKI,
    }

    # IANA private/reserved ranges
    _LOCAL_NETWORKS: ClassVar[list[IPv4Network | IPv6Network]] = [
        ip_network("0.0.0.0/8"),
        ip_network("10.0.0.0/8"),
        ip_network("100.64.0.0/10"),
        ip_network("127.0.0.0/8"),
        ip_network("169.254.0.0/16"),
        ip_network("172.16.0.0/12"),
        ip_network("192.0.0.0/24"),
        ip_network("192.0.2.0/24"),
        ip_network("192.168.0.0/16"),
        ip_network("198.18.0.0/15"),
        ip_network("198.51.100.0/24"),
        ip_network("203.0.113.0/24"),
        ip_network("224.0.0.0/4"),
        ip_network("240.0.0.0/4"),
        ip_network("::1/128"),
        ip_network("::/128"),
        ip_network("::ffff:0:0/96"),
        ip_network("2001:db8::/32"),
        ip_network("fc00::/7"),
        ip_network("fe80::/10"),
        ip_network("ff00::/8"),
    ]

    def __post_init__(self) -> None:
        if not isinstance(self.raw_url, str):
            raise ValueError(f"Relay URL must be a string, got {type(self.raw_url).__name__}")
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        parsed = self._parse(self.raw_url)

        if parsed["network"] == NetworkType.LOCAL:
            raise ValueError("Local addresses not allowed")
        if parsed["network"] == NetworkType.UNKNOWN:
            raise ValueError(f"Invalid host: '{parsed['host']}'")

        object.__setattr__(self, "url", f"{parsed['scheme']}://{parsed['url_without_scheme']}")
        object.__setattr__(self, "network", parsed["network"])
        object.__setattr__(self, "scheme", parsed["scheme"])
        object.__setattr__(self, "host", parsed["host"])
        object.__setattr__(self, "port", parsed["port"])
        object.__setattr__(self, "path", parsed["path"])

    def __str__(self) -> str:
        return self.url

    @property
    def is_overlay(self) -> bool:
        """Whether the relay lives on Tor, I2P or Lokinet."""
        return self.network in (NetworkType.TOR, NetworkType.I2P, NetworkType.LOKI)

    @staticmethod
    def _detect_network(host: str) -> NetworkType:
        """Classify a hostname: overlay TLD, local address, or clearnet domain."""
        if not host:
            return NetworkType.UNKNOWN

        host_bare = host.lower().strip("[]")

        for tld, network in Relay._NETWORK_TLDS.items():
            if host_bare.endswith(tld):
                return network

        if host_bare in ("localhost", "localhost.localdomain"):
            return NetworkType.LOCAL

        try:
            ip = ip_address(host_bare)
            is_local = any(ip in net for net in Relay._LOCAL_NETWORKS)
            return NetworkType.LOCAL if is_local else NetworkType.CLEARNET
        except ValueError:
            pass

        if "." not in host_bare:
            return NetworkType.UNKNOWN

        labels = host_bare.split(".")
        valid = all(
            label and not label.startswith("-") and not label.endswith("-") for label in labels
        )
        return NetworkType.CLEARNET if valid else NetworkType.UNKNOWN

    @staticmethod
    def _parse(raw: str) -> dict[str, Any]:
        """Parse and normalize a raw relay URL string.

        Raises:
            ValueError: If the scheme is not ``ws``/``wss`` or the URI is invalid.
        """
        uri = uri_reference(raw.strip()).normalize()

        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )

        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        port = int(uri.port) if uri.port else None
        host = uri.host.strip("[]")

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        network = Relay._detect_network(host)
        scheme = "wss" if network == NetworkType.CLEARNET else "ws"

        formatted_host = f"[{host}]" if ":" in host else host

        default_port = Relay._PORT_WSS if scheme == "wss" else Relay._PORT_WS
        if port and port != default_port:
            url_without_scheme = f"{formatted_host}:{port}{path or ''}"
        else:
            port = None
            url_without_scheme = f"{formatted_host}{path or ''}"

        return {
            "url_without_scheme": url_without_scheme,
            "scheme": scheme,
            "host": host,
            "port": port,
            "path": path,
            "network": network,
        }


def parse_relays(urls: list[str] | tuple[str, ...]) -> tuple[list[Relay], list[tuple[str, str]]]:
    """Parse many relay URLs, dropping duplicates after normalization.

    Returns:
        ``(relays, rejected)`` where ``relays`` keeps first-seen order and
        ``rejected`` lists ``(raw_url, reason)`` pairs for invalid entries.
    """
    relays: list[Relay] = []
    rejected: list[tuple[str, str]] = []
    seen: set[str] = set()
    for raw in urls:
        try:
            relay = Relay(raw)
        except ValueError as e:
            rejected.append((str(raw), str(e)))
            continue
        if relay.url not in seen:
            seen.add(relay.url)
            relays.append(relay)
    return relays, rejected
