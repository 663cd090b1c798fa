"""Shared test fixtures for lxcmaint tests."""
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from lxcmaint.core.errors import CommandError, FetchError
from lxcmaint.core.retry import RetryPolicy
from lxcmaint.models.app import AppProfile
from lxcmaint.models.config import MaintenanceConfig
from lxcmaint.services.health import HealthChecker
from lxcmaint.services.systemd import ServiceManager


class FakeServices(ServiceManager):
    """In-memory systemd: tracks which units are running."""

    def __init__(self, running=(), fail_on: Optional[Dict[str, str]] = None):
        super().__init__(mock=False)
        self.running = set(running)
        self.calls: List[tuple] = []
        self.fail_on = fail_on or {}      # {action: unit} raising CommandError
        self.crash_on_restart = set()     # units whose next restart leaves them down

    def _systemctl(self, action, unit):
        self.calls.append((action, unit))
        if self.fail_on.get(action) == unit:
            raise CommandError(['systemctl', action, unit], 1, "simulated failure")
        if action == 'stop':
            self.running.discard(unit)
        elif action in ('start', 'restart'):
            if unit in self.crash_on_restart:
                self.crash_on_restart.discard(unit)
                self.running.discard(unit)
            else:
                self.running.add(unit)

    def is_active(self, unit):
        return unit in self.running


class FakeFetcher:
    """Writes a canned release tree instead of downloading."""

    def __init__(self, files: Optional[Dict[str, str]] = None, error: Optional[Exception] = None,
                 version: Optional[str] = "v2.0"):
        self.files = files if files is not None else {
            'index.php': '<?php // v2',
            'cfg/conf.sample.php': '<?php // sample v2',
            'lib/VERSION': '2.0',
        }
        self.error = error
        self.version = version
        self.calls = 0

    def fetch(self, source, dest: Path, marker: str):
        self.calls += 1
        if self.error is not None:
            raise self.error
        for rel, content in self.files.items():
            path = dest / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        if not (dest / marker).exists():
            raise FetchError(f"Downloaded bundle invalid ({marker} missing)")
        return self.version


class FakeRunner:
    """Records commands; raises for commands whose argv[0] is in ``fail``."""

    def __init__(self, fail=(), interrupt=(), output: str = ""):
        self.fail = set(fail)
        self.interrupt = set(interrupt)
        self.output = output
        self.calls: List[tuple] = []

    def run(self, cmd, cwd=None, env=None, capture=True):
        self.calls.append((list(cmd), cwd, env))
        if cmd[0] in self.interrupt:
            raise KeyboardInterrupt()
        if cmd[0] in self.fail:
            raise CommandError(cmd, 2, "simulated build failure")
        return self.output


def snapshot_tree(root: Path) -> Dict[str, bytes]:
    """Map of relative path -> file bytes (directories as None)."""
    tree = {}
    for path in sorted(root.rglob('*')):
        rel = str(path.relative_to(root))
        tree[rel] = path.read_bytes() if path.is_file() else None
    return tree


@pytest.fixture
def app_dir(tmp_path) -> Path:
    """An installed PrivateBin-like application (release 1.0)."""
    root = tmp_path / "opt" / "privatebin"
    (root / "cfg").mkdir(parents=True)
    (root / "data" / "ab").mkdir(parents=True)
    (root / "lib").mkdir()
    (root / "index.php").write_text("<?php // v1")
    (root / "cfg" / "conf.php").write_text("<?php // operator settings\n$traffic = 10;\n")
    (root / "cfg" / "conf.sample.php").write_text("<?php // sample v1")
    (root / "data" / "ab" / "paste1").write_text("secret paste")
    (root / "lib" / "VERSION").write_text("1.0")
    return root


@pytest.fixture
def profile() -> AppProfile:
    return AppProfile.model_validate({
        'name': 'privatebin',
        'display_name': 'PrivateBin',
        'marker': 'index.php',
        'source': {'type': 'tarball', 'url': 'https://example.invalid/tarball'},
        'preserve': [
            {'path': 'cfg/conf.php', 'kind': 'file', 'seed_from': 'cfg/conf.sample.php'},
            {'path': 'data', 'kind': 'dir', 'mode': 0o755},
        ],
        'services': ['nginx', 'php-fpm'],
        'build': [{'name': 'composer', 'run': ['composer', 'install']}],
        'admin': {
            'purge': {'run': ['php', 'bin/administration', '--purge'], 'requires': 'bin/administration'},
        },
    })


@pytest.fixture
def config(tmp_path, app_dir, profile) -> MaintenanceConfig:
    return MaintenanceConfig(
        profile=profile,
        app_dir=app_dir,
        backup_dir=tmp_path / "backups",
        health_policy=RetryPolicy(attempts=3, interval=0),
    )


@pytest.fixture
def services() -> FakeServices:
    return FakeServices(running={'nginx', 'php-fpm'})


@pytest.fixture
def health(services, config) -> HealthChecker:
    return HealthChecker(services, config.health_policy, sleep=lambda seconds: None)
