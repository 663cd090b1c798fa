"""Application profile models describing how one app is updated in place."""
import re
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_PLACEHOLDER = re.compile(r"\{([A-Z_][A-Z0-9_]*)\}")
_VARIABLE_NAME = re.compile(r"^[A-Z_][A-Z0-9_]*$")


def _validate_relative(path: str) -> str:
    """Reject absolute paths and parent traversal in app-relative paths."""
    if not path or path.startswith('/'):
        raise ValueError(f"Path must be relative to the app directory. Got: {path!r}")
    if '..' in path.split('/'):
        raise ValueError(f"Path must not contain '..'. Got: {path!r}")
    return path.rstrip('/')


class ReleaseSource(BaseModel):
    """Where new releases come from."""

    model_config = ConfigDict(extra='forbid')

    type: Literal["tarball", "github_release"] = "tarball"
    url: Optional[str] = None
    repo: Optional[str] = Field(None, description="GitHub owner/name for github_release sources")
    strip_components: int = Field(1, ge=0)

    @model_validator(mode='after')
    def validate_location(self) -> 'ReleaseSource':
        """Tarball sources need a URL, GitHub sources need owner/name."""
        if self.type == 'tarball':
            if not self.url:
                raise ValueError("Tarball source requires url to be specified")
            if not self.url.startswith(('https://', 'http://', 'file://')):
                raise ValueError(f"Tarball URL must be http(s) or file. Got: {self.url}")
        elif self.type == 'github_release':
            if not self.repo or not re.match(r'^[\w.-]+/[\w.-]+$', self.repo):
                raise ValueError(
                    f"GitHub release source requires repo as 'owner/name'. Got: {self.repo!r}"
                )
        return self


class PreservedPath(BaseModel):
    """A file or directory carried over from the old release into the new one."""

    model_config = ConfigDict(extra='forbid')

    path: str
    kind: Literal["file", "dir"] = "file"
    seed_from: Optional[str] = Field(
        None, description="Sample file in the new release used when path did not exist before"
    )
    mode: Optional[int] = Field(None, description="Mode applied recursively after restore (dirs)")

    @field_validator('path', 'seed_from')
    @classmethod
    def validate_paths(cls, v):
        if v is None:
            return v
        return _validate_relative(v)

    @model_validator(mode='after')
    def validate_seed(self) -> 'PreservedPath':
        if self.seed_from and self.kind != 'file':
            raise ValueError("seed_from is only valid for file entries")
        return self


class BuildStep(BaseModel):
    """One command run inside the new release directory after the swap."""

    model_config = ConfigDict(extra='forbid')

    name: str
    run: List[str] = Field(..., min_length=1)
    env: Dict[str, str] = Field(default_factory=dict)
    if_exists: Optional[str] = Field(None, description="Only run if this path exists in the new release")
    if_previous_exists: Optional[str] = Field(
        None, description="Only run if this path existed in the previous release"
    )

    @field_validator('if_exists', 'if_previous_exists')
    @classmethod
    def validate_conditions(cls, v):
        if v is None:
            return v
        return _validate_relative(v)


class HealthCheck(BaseModel):
    """How to decide that the restarted application is healthy."""

    model_config = ConfigDict(extra='forbid')

    systemd: bool = Field(True, description="Require every service to be active")
    url: Optional[str] = None
    expect_status: int = 200
    verify_tls: bool = False
    request_timeout: float = Field(5.0, gt=0)


class AdminCommand(BaseModel):
    """Application-specific maintenance command (e.g. purge, stats)."""

    model_config = ConfigDict(extra='forbid')

    run: List[str] = Field(..., min_length=1)
    requires: Optional[str] = None
    help: str = ""

    @field_validator('requires')
    @classmethod
    def validate_requires(cls, v):
        if v is None:
            return v
        return _validate_relative(v)


class AppProfile(BaseModel):
    """Everything needed to back up, update and restore one application."""

    model_config = ConfigDict(extra='forbid')

    name: str
    display_name: Optional[str] = None
    app_dir: str = "/opt/{APP}"
    backup_dir: str = "/opt/{APP}-backups"
    marker: str
    source: ReleaseSource
    preserve: List[PreservedPath] = Field(default_factory=list)
    services: List[str] = Field(default_factory=list, description="Stopped in order, started in reverse")
    owner: Optional[str] = Field(None, description="user[:group] applied recursively after swap")
    build: List[BuildStep] = Field(default_factory=list)
    health: HealthCheck = Field(default_factory=HealthCheck)
    admin: Dict[str, AdminCommand] = Field(default_factory=dict)
    variables: Dict[str, str] = Field(default_factory=dict)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Name doubles as the backup archive prefix."""
        if not re.match(r'^[a-z0-9][a-z0-9_-]*$', v):
            raise ValueError(
                f"Profile name '{v}' must be lowercase letters, numbers, hyphens and underscores"
            )
        return v

    @field_validator('marker')
    @classmethod
    def validate_marker(cls, v):
        return _validate_relative(v)

    @field_validator('variables')
    @classmethod
    def validate_variables(cls, v):
        for key in v:
            if not _VARIABLE_NAME.match(key):
                raise ValueError(f"Variable name '{key}' must be an uppercase env var name")
        return v

    @property
    def title(self) -> str:
        return self.display_name or self.name

    def resolve(self, values: Mapping[str, str]) -> 'AppProfile':
        """Return a copy with ``{NAME}`` placeholders substituted.

        Args:
            values: Variable values; ``APP`` is always available as the profile name

        Raises:
            KeyError: If a placeholder has no value
        """
        lookup = self.lookup(values)
        data = self.model_dump()
        data['variables'] = {key: str(lookup[key]) for key in self.variables}
        return AppProfile.model_validate(expand_placeholders(data, lookup))

    def lookup(self, values: Mapping[str, str]) -> Dict[str, str]:
        """Merge profile defaults with supplied variable values."""
        return {'APP': self.name, **self.variables, **values}


def expand_placeholders(value: Any, lookup: Mapping[str, str]) -> Any:
    """Substitute ``{NAME}`` placeholders in strings, lists and dicts.

    Raises:
        KeyError: If a placeholder has no value in ``lookup``
    """
    if isinstance(value, str):
        def replace(match):
            key = match.group(1)
            if key not in lookup:
                raise KeyError(key)
            return str(lookup[key])
        return _PLACEHOLDER.sub(replace, value)
    if isinstance(value, list):
        return [expand_placeholders(item, lookup) for item in value]
    if isinstance(value, dict):
        return {key: expand_placeholders(item, lookup) for key, item in value.items()}
    return value
