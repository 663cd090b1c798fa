"""Data models for lxcmaint."""
from lxcmaint.models.app import (
    AdminCommand,
    AppProfile,
    BuildStep,
    HealthCheck,
    PreservedPath,
    ReleaseSource,
)
from lxcmaint.models.config import ConfigValidationError, MaintenanceConfig
from lxcmaint.models.result import BackupArchive, RestoreResult, UpdateResult, UpdateStatus

__all__ = [
    'AdminCommand',
    'AppProfile',
    'BuildStep',
    'HealthCheck',
    'PreservedPath',
    'ReleaseSource',
    'ConfigValidationError',
    'MaintenanceConfig',
    'BackupArchive',
    'RestoreResult',
    'UpdateResult',
    'UpdateStatus',
]
