"""Backup service package.

Re-exports all public symbols::

    from broadcastr.services.backup import Backup, BackupConfig
"""

from .configs import BackupConfig, OutputConfig
from .service import Backup


__all__ = [
    "Backup",
    "BackupConfig",
    "OutputConfig",
]
