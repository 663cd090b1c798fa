"""Download and unpack upstream releases into a staging directory.

Two source types are supported:
    tarball         fixed URL that always serves the newest tree
                    (e.g. GitHub's /repos/<owner>/<name>/tarball endpoint)
    github_release  resolve the latest release tag via the GitHub API, then
                    download that tag's source archive
"""
import shutil
import tarfile
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple
from urllib.parse import urlparse

import requests

from lxcmaint.core.errors import FetchError
from lxcmaint.core.logger import get_logger
from lxcmaint.core.retry import retry
from lxcmaint.models.app import ReleaseSource

logger = get_logger(__name__)

GITHUB_API = "https://api.github.com"


class ReleaseFetcher:
    """Fetches a release archive and verifies it looks like the application."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60.0):
        self.session = session or requests.Session()
        self.session.headers.setdefault('User-Agent', 'lxcmaint')
        self.timeout = timeout

    def resolve(self, source: ReleaseSource) -> Tuple[str, Optional[str]]:
        """Return (download_url, version) for a source.

        Raises:
            FetchError: If the latest release tag cannot be determined
        """
        if source.type == 'tarball':
            return source.url, None

        try:
            tag = self._latest_tag(source.repo)
        except (requests.RequestException, ValueError) as e:
            raise FetchError(f"Failed to fetch latest release tag for {source.repo}: {e}")

        if not tag:
            raise FetchError(f"Failed to fetch latest release tag for {source.repo}: no tag_name")

        return f"https://github.com/{source.repo}/archive/refs/tags/{tag}.tar.gz", tag

    @retry(max_attempts=3, delay=2.0, exceptions=(requests.ConnectionError, requests.Timeout))
    def _latest_tag(self, repo: str) -> Optional[str]:
        response = self.session.get(f"{GITHUB_API}/repos/{repo}/releases/latest", timeout=self.timeout)
        response.raise_for_status()
        return response.json().get('tag_name')

    def download(self, url: str, target: Path) -> Path:
        """Stream ``url`` to ``target``.

        Raises:
            FetchError: On network or HTTP errors
        """
        parsed = urlparse(url)
        if parsed.scheme == 'file':
            try:
                shutil.copyfile(parsed.path, target)
            except OSError as e:
                raise FetchError(f"Failed to read {url}: {e}")
            return target

        logger.debug(f"Downloading {url}")
        try:
            with self.session.get(url, stream=True, timeout=self.timeout, allow_redirects=True) as response:
                response.raise_for_status()
                with open(target, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=1024 * 256):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise FetchError(f"Failed to download {url}: {e}")

        return target

    def fetch(self, source: ReleaseSource, dest: Path, marker: str) -> Optional[str]:
        """Download and unpack the newest release into ``dest``.

        The archive is written next to ``dest`` (inside the staging workspace)
        and deleted after extraction.

        Args:
            source: Release source
            dest: Empty directory to unpack into
            marker: App-relative path that must exist after unpacking

        Returns:
            Version string when known (github_release), else None

        Raises:
            FetchError: If download/unpack fails or the marker is missing
        """
        url, version = self.resolve(source)
        archive = dest.parent / f"{dest.name}.tar.gz"

        logger.info(f"Downloading {version or 'latest'} from {url}")
        self.download(url, archive)
        try:
            extracted = extract_tarball(archive, dest, source.strip_components)
        finally:
            archive.unlink(missing_ok=True)

        logger.debug(f"Extracted {extracted} entries into {dest}")
        if not (dest / marker).exists():
            raise FetchError(f"Downloaded bundle invalid ({marker} missing)")

        return version


def extract_tarball(archive: Path, dest: Path, strip_components: int = 1) -> int:
    """Extract a (compressed) tarball, dropping leading path components.

    Entries that would land outside ``dest`` are rejected by tarfile's data
    filter.

    Returns:
        Number of entries extracted

    Raises:
        FetchError: If the archive is unreadable or unsafe
    """
    dest.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive, 'r:*') as tar:
            members = []
            for member in tar.getmembers():
                parts = PurePosixPath(member.name).parts
                if len(parts) <= strip_components:
                    continue
                member.name = str(PurePosixPath(*parts[strip_components:]))
                if member.islnk():
                    link_parts = PurePosixPath(member.linkname).parts
                    member.linkname = str(PurePosixPath(*link_parts[strip_components:]))
                members.append(member)
            tar.extractall(dest, members=members, filter='data')
    except (tarfile.TarError, OSError) as e:
        raise FetchError(f"Failed to unpack {archive.name}: {e}")

    return len(members)
