"""Configuration management."""
from lxcmaint.config.loader import ConfigLoader
from lxcmaint.models.config import ConfigValidationError

__all__ = ['ConfigLoader', 'ConfigValidationError']
