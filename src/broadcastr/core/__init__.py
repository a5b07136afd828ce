"""Core layer providing the foundation for Broadcastr services.

Depends only on ``broadcastr.models`` and is depended upon by
``broadcastr.services``.

Attributes:
    BaseService: Abstract generic base class with lifecycle management,
        factory methods and Prometheus metrics integration.
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus HTTP endpoint.
    load_yaml: Safe YAML loading.
"""

from .base_service import (
    BaseService,
    BaseServiceConfig,
    ConfigT,
)
from .exceptions import (
    BroadcastrError,
    ConfigurationError,
    ConnectivityError,
    MalformedMessageError,
    MembershipMissingError,
    PassCancelledError,
    ProtocolError,
    RelayTimeoutError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    CYCLE_DURATION_SECONDS,
    PASSES_CANCELLED,
    RELAY_OUTCOMES,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)
from .yaml import load_yaml


__all__ = [
    "CYCLE_DURATION_SECONDS",
    "PASSES_CANCELLED",
    "RELAY_OUTCOMES",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "BaseService",
    "BaseServiceConfig",
    "BroadcastrError",
    "ConfigT",
    "ConfigurationError",
    "ConnectivityError",
    "Logger",
    "MalformedMessageError",
    "MembershipMissingError",
    "MetricsConfig",
    "MetricsServer",
    "PassCancelledError",
    "ProtocolError",
    "RelayTimeoutError",
    "StructuredFormatter",
    "format_kv_pairs",
    "load_yaml",
    "start_metrics_server",
]
