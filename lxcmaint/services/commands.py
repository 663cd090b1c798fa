"""Running build/admin commands and fixing ownership of app directories."""
import grp
import os
import pwd
import subprocess
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from lxcmaint.core.errors import CommandError
from lxcmaint.core.logger import get_logger

logger = get_logger(__name__)


class CommandRunner:
    """Runs external commands inside an application directory."""

    def __init__(self, mock: bool = False):
        self.mock = mock

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        capture: bool = True,
    ) -> str:
        """Run a command, raising CommandError on non-zero exit.

        Args:
            cmd: Argument vector
            cwd: Working directory
            env: Extra environment merged over the current one
            capture: Capture output (False streams it to the terminal)

        Returns:
            Captured stdout ('' when not captured or in mock mode)
        """
        cmd = list(cmd)
        if self.mock:
            logger.info(f"MOCK: Would run {' '.join(cmd)} in {cwd or os.getcwd()}")
            return ""

        full_env = None
        if env:
            full_env = {**os.environ, **env}

        logger.debug(f"Running {' '.join(cmd)} in {cwd}")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd else None,
                env=full_env,
                capture_output=capture,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise CommandError(cmd, e.returncode, (e.stderr or e.stdout or "") if capture else "")
        except FileNotFoundError:
            raise CommandError(cmd, 127, f"{cmd[0]}: command not found")

        return result.stdout if capture else ""


def resolve_owner(owner: str) -> Tuple[int, int]:
    """Turn ``user[:group]`` into (uid, gid); -1 leaves that id unchanged.

    Raises:
        KeyError: If the user or group does not exist
    """
    user, _, group = owner.partition(':')
    uid = pwd.getpwnam(user).pw_uid if user else -1
    gid = grp.getgrnam(group).gr_gid if group else -1
    return uid, gid


def fix_ownership(root: Path, owner: Optional[str], mock: bool = False) -> None:
    """Recursively chown ``root`` to ``owner`` without following symlinks.

    Raises:
        KeyError: If the owner does not exist
        OSError: If chown fails
    """
    if not owner:
        return

    if mock:
        logger.info(f"MOCK: Would chown -R {owner} {root}")
        return

    uid, gid = resolve_owner(owner)
    os.lchown(root, uid, gid)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            os.lchown(os.path.join(dirpath, name), uid, gid)


def apply_mode(root: Path, mode: int, mock: bool = False) -> None:
    """Recursively chmod ``root`` (directories and files alike, like chmod -R)."""
    if mock:
        logger.info(f"MOCK: Would chmod -R {oct(mode)} {root}")
        return

    os.chmod(root, mode)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = os.path.join(dirpath, name)
            if not os.path.islink(path):
                os.chmod(path, mode)
