"""Shared configuration models for Broadcastr passes.

Examples:
    ```yaml
    pass:
      batch_size: 10
      idle_timeout: 10.0
    networks:
      tor:
        enabled: true            # inherits socks5://127.0.0.1:9050
    filter:
      kinds: [0, 1, 3, 7]
    ```
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from broadcastr.core.base_service import BaseServiceConfig
from broadcastr.core.exceptions import ConnectivityError
from broadcastr.models.constants import DEFAULT_BOOTSTRAP_RELAYS, EVENT_KIND_MAX, NetworkType
from broadcastr.models.relay import Relay
from broadcastr.utils.keys import parse_pubkey
from broadcastr.utils.transport import Connection, Connector, connect_relay


# =============================================================================
# Networks
# =============================================================================


class ClearnetConfig(BaseModel):
    """Clearnet relays: direct TLS connections, no proxy."""

    enabled: bool = True
    proxy_url: str | None = None


class TorConfig(BaseModel):
    """Tor (.onion) relays, reached through a SOCKS5 proxy."""

    enabled: bool = False
    proxy_url: str | None = "socks5://127.0.0.1:9050"


class I2pConfig(BaseModel):
    """I2P (.i2p) relays, reached through a SOCKS5 proxy."""

    enabled: bool = False
    proxy_url: str | None = "socks5://127.0.0.1:4447"


class LokiConfig(BaseModel):
    """Lokinet (.loki) relays, reached through a SOCKS5 proxy."""

    enabled: bool = False
    proxy_url: str | None = "socks5://127.0.0.1:1080"


NetworkTypeConfig = ClearnetConfig | TorConfig | I2pConfig | LokiConfig


class NetworksConfig(BaseModel):
    """Per-network enablement and proxy settings.

    Relays on a disabled network fail fast with a
    [ConnectivityError][broadcastr.core.exceptions.ConnectivityError] instead
    of being dialled.
    """

    clearnet: ClearnetConfig = Field(default_factory=ClearnetConfig)
    tor: TorConfig = Field(default_factory=TorConfig)
    i2p: I2pConfig = Field(default_factory=I2pConfig)
    loki: LokiConfig = Field(default_factory=LokiConfig)

    def get(self, network: NetworkType) -> NetworkTypeConfig:
        """Get the configuration for a network, falling back to clearnet."""
        return getattr(self, network.value, self.clearnet)

    def is_enabled(self, network: NetworkType) -> bool:
        return self.get(network).enabled

    def get_proxy_url(self, network: NetworkType) -> str | None:
        """SOCKS5 proxy for an enabled overlay network; always ``None`` for clearnet."""
        if network == NetworkType.CLEARNET:
            return None
        config = self.get(network)
        return config.proxy_url if config.enabled else None

    def get_enabled_networks(self) -> list[str]:
        return [name for name in type(self).model_fields if getattr(self, name).enabled]


# =============================================================================
# Pass
# =============================================================================


class PassConfig(BaseModel):
    """Batching and timeout settings shared by fetch and broadcast passes.

    The worst-case duration of a pass is
    ``ceil(relays / batch_size) * (connect_timeout + idle_timeout)`` when no
    relay answers at all.
    """

    batch_size: int = Field(
        default=10, ge=1, le=100, description="Relays contacted concurrently per batch"
    )
    idle_timeout: float = Field(
        default=10.0, gt=0.0, le=300.0, description="Seconds without traffic before giving up"
    )
    connect_timeout: float = Field(
        default=10.0, gt=0.0, le=300.0, description="Seconds allowed for the WebSocket handshake"
    )
    subscription_id: str = Field(
        default="broadcastr", min_length=1, max_length=64, description="REQ subscription id"
    )


# =============================================================================
# Filter
# =============================================================================


class FilterConfig(BaseModel):
    """Extra constraints merged into every fetch filter.

    The identity-derived clauses (``authors`` and ``#p``) are always added by
    [build_filters][broadcastr.services.common.configs.build_filters]; this
    model only narrows them.
    """

    kinds: list[int] | None = Field(default=None, description="Event kinds (None = all)")
    since: int | None = Field(default=None, ge=0, description="Lower created_at bound")
    until: int | None = Field(default=None, ge=0, description="Upper created_at bound")
    limit: int | None = Field(default=None, ge=1, description="Per-filter relay limit")
    include_mentions: bool = Field(
        default=True, description="Also fetch events that tag the identity with #p"
    )

    @field_validator("kinds", mode="after")
    @classmethod
    def validate_kinds(cls, v: list[int] | None) -> list[int] | None:
        """Validate that all event kinds are within 0-65535."""
        if v is None:
            return v
        for kind in v:
            if not 0 <= kind <= EVENT_KIND_MAX:
                raise ValueError(f"Event kind {kind} out of valid range (0-{EVENT_KIND_MAX})")
        return v

    @model_validator(mode="after")
    def validate_window(self) -> FilterConfig:
        if self.since is not None and self.until is not None and self.since > self.until:
            raise ValueError(f"since ({self.since}) must not be after until ({self.until})")
        return self

    def extra_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if self.kinds:
            fields["kinds"] = list(self.kinds)
        if self.since is not None:
            fields["since"] = self.since
        if self.until is not None:
            fields["until"] = self.until
        if self.limit is not None:
            fields["limit"] = self.limit
        return fields


def build_filters(identity: str, config: FilterConfig | None = None) -> list[dict[str, Any]]:
    """Build the REQ filters for an identity: authored by it, and mentioning it.

    Examples:
        ```python
        build_filters(pubkey)
        # [{"authors": [pubkey]}, {"#p": [pubkey]}]
        ```
    """
    config = config or FilterConfig()
    extra = config.extra_fields()
    filters: list[dict[str, Any]] = [{"authors": [identity], **extra}]
    if config.include_mentions:
        filters.append({"#p": [identity], **extra})
    return filters


# =============================================================================
# Connector
# =============================================================================


def make_connector(networks: NetworksConfig, connect_timeout: float) -> Connector:
    """Build the default [Connector][broadcastr.utils.transport.Connector].

    Routes overlay relays through their network's proxy and refuses relays
    whose network is disabled.
    """

    async def connect(relay: Relay) -> Connection:
        if not networks.is_enabled(relay.network):
            raise ConnectivityError(f"{relay.network} network disabled: {relay.url}")
        return await connect_relay(
            relay,
            proxy_url=networks.get_proxy_url(relay.network),
            timeout=connect_timeout,
        )

    return connect


# =============================================================================
# Service
# =============================================================================


class RelayPassConfig(BaseServiceConfig):
    """Settings shared by services that end in a broadcast pass.

    ``identity`` accepts hex or ``npub1...`` and is stored as hex.
    ``relays`` is the working set: the fetch targets of a backup, and the
    broadcast fallback when ``membership_fallback`` is enabled.
    """

    model_config = ConfigDict(populate_by_name=True)

    identity: str | None = Field(default=None, description="Hex or npub public key")
    relays: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BOOTSTRAP_RELAYS),
        min_length=1,
        description="Working relay set",
    )
    pass_config: PassConfig = Field(default_factory=PassConfig, alias="pass")
    networks: NetworksConfig = Field(default_factory=NetworksConfig)
    membership_fallback: bool = Field(
        default=False,
        description="Broadcast to the working set when no membership record exists",
    )

    @field_validator("identity", mode="after")
    @classmethod
    def normalize_identity(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return parse_pubkey(v)
