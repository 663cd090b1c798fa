"""YAML configuration loader with environment overrides."""
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from lxcmaint.config.profiles import PROFILES
from lxcmaint.core.lock import default_lock_path
from lxcmaint.core.retry import RetryPolicy
from lxcmaint.models.app import AppProfile, expand_placeholders
from lxcmaint.models.config import ConfigValidationError, MaintenanceConfig

KEY_TYPES = {
    'app': str,
    'app_dir': str,
    'backup_dir': str,
    'work_root': str,
    'lock_file': str,
    'keep_backups': int,
    'variables': dict,
    'health': dict,
    'profiles': dict,
}

ALLOWED_KEYS = set(KEY_TYPES)

TYPE_NAMES = {str: 'a string', int: 'an integer', dict: 'a mapping'}


class ConfigLoader:
    """Loads lxcmaint configuration and resolves it into a MaintenanceConfig.

    Precedence, highest first: explicit arguments (CLI options), environment
    (``APP_DIR``, ``BACKUP_DIR``, ``LXCMAINT_APP`` and any variable a profile
    declares), the YAML file, profile defaults.
    """

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        self.config_path = Path(config_path) if config_path else None
        self.environ = os.environ if environ is None else environ
        self.raw_config: Dict[str, Any] = {}

    def read(self) -> Dict[str, Any]:
        """Read the YAML file, if any. A missing default file means no overrides."""
        if self.config_path is None:
            self.raw_config = {}
            return self.raw_config

        if not self.config_path.exists():
            raise ConfigValidationError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path) as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML in {self.config_path}: {e}")

        raw = raw or {}
        if not isinstance(raw, dict):
            raise ConfigValidationError(f"{self.config_path}: top level must be a mapping")

        unknown = set(raw) - ALLOWED_KEYS
        if unknown:
            raise ConfigValidationError(
                f"{self.config_path}: unknown keys: {', '.join(sorted(unknown))}"
            )

        for key, expected in KEY_TYPES.items():
            value = raw.get(key)
            if value is None:
                continue
            # bool is an int subclass
            if not isinstance(value, expected) or isinstance(value, bool):
                raise ConfigValidationError(
                    f"{self.config_path}: '{key}' must be {TYPE_NAMES[expected]}, got {value!r}"
                )

        self.raw_config = raw
        return raw

    def profiles(self) -> Dict[str, AppProfile]:
        """Built-in profiles merged with profiles defined in the config file."""
        raw_profiles = dict(PROFILES)
        custom = self.raw_config.get('profiles') or {}
        if not isinstance(custom, dict):
            raise ConfigValidationError("'profiles' must be a mapping of name -> profile")

        for name, data in custom.items():
            if not isinstance(data, dict):
                raise ConfigValidationError(f"Profile '{name}' must be a mapping")
            raw_profiles[name] = {'name': name, **data}

        profiles = {}
        for name, data in raw_profiles.items():
            try:
                profiles[name] = AppProfile.model_validate(data)
            except ValidationError as e:
                raise ConfigValidationError(f"Invalid profile '{name}':\n{e}")
        return profiles

    def load(
        self,
        app: Optional[str] = None,
        app_dir: Optional[str] = None,
        backup_dir: Optional[str] = None,
        mock: bool = False,
    ) -> MaintenanceConfig:
        """Resolve the configuration for one application.

        Raises:
            ConfigValidationError: On unknown app, bad values or unresolved placeholders
        """
        raw = self.read()
        profiles = self.profiles()

        app_name = app or self.environ.get('LXCMAINT_APP') or raw.get('app')
        if not app_name:
            raise ConfigValidationError(
                "No application selected. Use --app, LXCMAINT_APP or 'app:' in the config file. "
                f"Available: {', '.join(sorted(profiles))}"
            )
        if app_name not in profiles:
            raise ConfigValidationError(
                f"Unknown application '{app_name}'. Available: {', '.join(sorted(profiles))}"
            )
        profile = profiles[app_name]

        variables = self._resolve_variables(profile, raw.get('variables') or {})
        lookup = profile.lookup(variables)

        try:
            resolved_app_dir = (
                app_dir
                or self.environ.get('APP_DIR')
                or raw.get('app_dir')
                or expand_placeholders(profile.app_dir, lookup)
            )
            resolved_backup_dir = (
                backup_dir
                or self.environ.get('BACKUP_DIR')
                or raw.get('backup_dir')
                or expand_placeholders(profile.backup_dir, lookup)
            )
            values = {**variables, 'APP_DIR': str(resolved_app_dir), 'BACKUP_DIR': str(resolved_backup_dir)}
            resolved = profile.resolve(values).model_copy(
                update={'app_dir': str(resolved_app_dir), 'backup_dir': str(resolved_backup_dir)}
            )
        except KeyError as e:
            raise ConfigValidationError(f"Profile '{app_name}' references undefined variable {e}")
        except ValidationError as e:
            raise ConfigValidationError(f"Profile '{app_name}' is invalid after substitution:\n{e}")

        try:
            health_policy = RetryPolicy(**(raw.get('health') or {}))
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"Invalid health settings: {e}")

        lock_file = raw.get('lock_file') or default_lock_path(app_name)

        return MaintenanceConfig(
            profile=resolved,
            app_dir=Path(resolved_app_dir),
            backup_dir=Path(resolved_backup_dir),
            work_root=raw.get('work_root'),
            health_policy=health_policy,
            lock_file=Path(lock_file),
            keep_backups=raw.get('keep_backups'),
            variables=values,
            mock=mock,
        )

    def _resolve_variables(self, profile: AppProfile, configured: Mapping[str, Any]) -> Dict[str, str]:
        """Profile defaults < config file < environment, for declared variables."""
        if not isinstance(configured, Mapping):
            raise ConfigValidationError("'variables' must be a mapping")

        variables = {key: str(value) for key, value in configured.items()}
        for key, default in profile.variables.items():
            if key in self.environ:
                variables[key] = self.environ[key]
            else:
                variables.setdefault(key, default)
        return variables
