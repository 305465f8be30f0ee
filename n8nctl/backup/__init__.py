"""Backup and restore for n8n deployments."""

from .manager import BackupManager, BackupResult
from .recovery import RecoveryManager, RestoreMode, RestoreResult
from .storage import BackupStorage

__all__ = [
    "BackupManager",
    "BackupResult",
    "BackupStorage",
    "RecoveryManager",
    "RestoreMode",
    "RestoreResult",
]
