"""Tests for the lxcmaint command line."""
import shutil
import tarfile

import pytest
import yaml
from typer.testing import CliRunner

from lxcmaint.cli import app
from lxcmaint.core.errors import FetchError
from lxcmaint.core.lock import MaintenanceLock
from lxcmaint.services.release_fetcher import ReleaseFetcher

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Mock-mode PrivateBin install with config pointing into tmp_path."""
    app_dir = tmp_path / "opt" / "privatebin"
    (app_dir / "cfg").mkdir(parents=True)
    (app_dir / "data").mkdir()
    (app_dir / "index.php").write_text("<?php // v1")
    (app_dir / "cfg" / "conf.php").write_text("<?php // settings")

    config = tmp_path / "lxcmaint.yml"
    config.write_text(yaml.dump({
        'app': 'privatebin',
        'app_dir': str(app_dir),
        'backup_dir': str(tmp_path / "backups"),
        'lock_file': str(tmp_path / "privatebin.lock"),
        'health': {'attempts': 1, 'interval': 0},
    }))

    monkeypatch.setenv('LXCMAINT_MOCK', '1')
    monkeypatch.setenv('LXCMAINT_CONFIG', str(config))
    for name in ('APP_DIR', 'BACKUP_DIR', 'LXCMAINT_APP', 'PHP_VERSION'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr('lxcmaint.cli_maint_commands.install_signal_handlers', lambda: None)

    return {'app_dir': app_dir, 'backup_dir': tmp_path / "backups", 'lock_file': tmp_path / "privatebin.lock"}


def fake_fetch(self, source, dest, marker):
    dest.mkdir(parents=True, exist_ok=True)
    (dest / "index.php").write_text("<?php // v2")
    (dest / "cfg").mkdir()
    (dest / "cfg" / "conf.sample.php").write_text("<?php // sample")
    return "v2"


def test_no_args_shows_help():
    """Bare invocation prints usage and exits 0."""
    result = runner.invoke(app, [])

    assert result.exit_code == 0
    assert "update" in result.output
    assert "restore-latest" in result.output


def test_unknown_command():
    result = runner.invoke(app, ['frobnicate'])

    assert result.exit_code != 0


def test_help_lists_commands():
    result = runner.invoke(app, ['--help'])

    assert result.exit_code == 0
    for command in ('update', 'backup', 'list-backups', 'restore', 'restore-latest'):
        assert command in result.output


class TestBackupCommands:
    """backup / list-backups / prune-backups."""

    def test_backup_creates_archive(self, cli_env):
        result = runner.invoke(app, ['backup'])

        assert result.exit_code == 0, result.output
        archives = list(cli_env['backup_dir'].glob("privatebin-*.tgz"))
        assert len(archives) == 1

    def test_list_backups_empty(self, cli_env):
        result = runner.invoke(app, ['list-backups'])

        assert result.exit_code == 0
        assert "No backups" in result.output

    def test_list_backups_shows_archives(self, cli_env):
        runner.invoke(app, ['backup'])

        result = runner.invoke(app, ['list-backups'])

        assert result.exit_code == 0
        assert "privatebin-" in result.output

    def test_backup_missing_app_dir(self, cli_env):
        shutil.rmtree(cli_env['app_dir'])

        result = runner.invoke(app, ['backup'])

        assert result.exit_code == 1
        assert "APP_DIR not found" in result.output

    def test_prune_backups(self, cli_env):
        for _ in range(3):
            runner.invoke(app, ['backup'])

        result = runner.invoke(app, ['prune-backups', '--keep', '1'])

        assert result.exit_code == 0
        assert "Deleted 2 old backup(s)" in result.output
        assert len(list(cli_env['backup_dir'].glob("*.tgz"))) == 1

    def test_prune_without_keep(self, cli_env):
        result = runner.invoke(app, ['prune-backups'])

        assert result.exit_code == 1
        assert "keep" in result.output


class TestRestoreCommands:
    """restore / restore-latest."""

    def test_restore_latest_without_backups(self, cli_env):
        """Fails with a clear message and leaves the app alone."""
        result = runner.invoke(app, ['restore-latest'])

        assert result.exit_code == 1
        assert "No backups found" in result.output
        assert (cli_env['app_dir'] / "index.php").read_text() == "<?php // v1"

    def test_restore_latest(self, cli_env):
        runner.invoke(app, ['backup'])
        (cli_env['app_dir'] / "index.php").write_text("broken")

        result = runner.invoke(app, ['restore-latest'])

        assert result.exit_code == 0, result.output
        assert "Restored" in result.output
        assert (cli_env['app_dir'] / "index.php").read_text() == "<?php // v1"

    def test_restore_explicit_archive(self, cli_env):
        runner.invoke(app, ['backup'])
        archive = next(cli_env['backup_dir'].glob("*.tgz"))
        (cli_env['app_dir'] / "cfg" / "conf.php").unlink()

        result = runner.invoke(app, ['restore', str(archive)])

        assert result.exit_code == 0, result.output
        assert (cli_env['app_dir'] / "cfg" / "conf.php").exists()

    def test_restore_missing_argument(self, cli_env):
        result = runner.invoke(app, ['restore'])

        assert result.exit_code == 1
        assert "Missing backup file" in result.output

    def test_restore_mismatched_archive(self, cli_env, tmp_path):
        other = tmp_path / "src" / "cryptpad"
        other.mkdir(parents=True)
        (other / "server.js").write_text("x")
        foreign = tmp_path / "cryptpad.tgz"
        with tarfile.open(foreign, "w:gz") as tar:
            tar.add(other, arcname="cryptpad")

        result = runner.invoke(app, ['restore', str(foreign)])

        assert result.exit_code == 1
        assert "Backup does not contain" in result.output
        assert (cli_env['app_dir'] / "index.php").read_text() == "<?php // v1"


class TestUpdateCommand:
    """update."""

    def test_update_success(self, cli_env, monkeypatch):
        monkeypatch.setattr(ReleaseFetcher, 'fetch', fake_fetch)

        result = runner.invoke(app, ['update'])

        assert result.exit_code == 0, result.output
        assert "Updated privatebin to v2" in result.output
        assert (cli_env['app_dir'] / "index.php").read_text() == "<?php // v2"
        assert (cli_env['app_dir'] / "cfg" / "conf.php").read_text() == "<?php // settings"
        assert len(list(cli_env['backup_dir'].glob("*.tgz"))) == 1

    def test_update_rolled_back(self, cli_env, monkeypatch):
        def failing_fetch(self, source, dest, marker):
            raise FetchError("network unreachable")

        monkeypatch.setattr(ReleaseFetcher, 'fetch', failing_fetch)

        result = runner.invoke(app, ['update'])

        assert result.exit_code == 1
        assert "failed at 'fetch'" in result.output
        assert (cli_env['app_dir'] / "index.php").read_text() == "<?php // v1"

    def test_update_not_installed(self, cli_env):
        (cli_env['app_dir'] / "index.php").unlink()

        result = runner.invoke(app, ['update'])

        assert result.exit_code == 1
        assert "Not a PrivateBin install" in result.output
        assert not cli_env['backup_dir'].exists()

    def test_update_blocked_by_lock(self, cli_env):
        """A second concurrent run is refused."""
        with MaintenanceLock(cli_env['lock_file']):
            result = runner.invoke(app, ['update'])

        assert result.exit_code == 1
        assert "Another maintenance operation" in result.output

    def test_no_lock_skips_locking(self, cli_env):
        with MaintenanceLock(cli_env['lock_file']):
            result = runner.invoke(app, ['backup', '--no-lock'])

        assert result.exit_code == 0, result.output


class TestAppCommands:
    """purge / stats / profiles and app selection."""

    def test_purge_without_admin_script(self, cli_env):
        result = runner.invoke(app, ['purge'])

        assert result.exit_code == 1
        assert "Administration script not found" in result.output

    def test_purge_with_admin_script(self, cli_env):
        (cli_env['app_dir'] / "bin").mkdir()
        (cli_env['app_dir'] / "bin" / "administration").write_text("<?php")

        result = runner.invoke(app, ['purge'])

        assert result.exit_code == 0, result.output

    def test_stats_unsupported_for_app(self, cli_env):
        result = runner.invoke(app, ['--app', 'cryptpad', 'stats'])

        assert result.exit_code == 1
        assert "has no 'stats' command" in result.output

    def test_profiles(self, cli_env):
        result = runner.invoke(app, ['profiles'])

        assert result.exit_code == 0
        for name in ('privatebin', 'cryptpad', 'docmost'):
            assert name in result.output

    def test_unknown_app(self, cli_env):
        result = runner.invoke(app, ['--app', 'ghost', 'backup'])

        assert result.exit_code == 1
        assert "Unknown application 'ghost'" in result.output


def test_badly_typed_config_is_reported(cli_env, tmp_path, monkeypatch):
    """A wrong value type gives an error line and exit 1, not a traceback."""
    config = tmp_path / "typed.yml"
    config.write_text(yaml.dump({'app': 'privatebin', 'keep_backups': '3'}))
    monkeypatch.setenv('LXCMAINT_CONFIG', str(config))

    result = runner.invoke(app, ['list-backups'])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Error" in result.output
