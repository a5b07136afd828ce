"""Rebroadcast service package.

Re-exports all public symbols::

    from broadcastr.services.rebroadcast import Rebroadcast, RebroadcastConfig
"""

from .configs import RebroadcastConfig
from .service import Rebroadcast


__all__ = [
    "Rebroadcast",
    "RebroadcastConfig",
]
