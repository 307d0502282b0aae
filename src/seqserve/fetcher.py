"""Remote archive download and extraction.

Used to install NCBI BLAST+ when it is missing and to fetch the NCBI taxonomy
database. Archives are downloaded with ``curl`` into a fixed temporary
directory (so interrupted downloads can resume) and unpacked with ``tar`` into
a per-user data directory, by default:

  $SEQSERVE_HOME, else $XDG_DATA_HOME/seqserve, else ~/.local/share/seqserve
"""

from __future__ import annotations

import enum
import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from typing import List, Optional

from .console import abort_on_interrupt
from .context import RunContext
from .errors import DownloadError


ENV_HOME = "SEQSERVE_HOME"

BLAST_VERSION = "2.16.0"
BLAST_MANUAL_URL = f"https://ftp.ncbi.nlm.nih.gov/blast/executables/blast+/{BLAST_VERSION}/"
TAXDB_URL = "https://ftp.ncbi.nlm.nih.gov/blast/db/taxdb.tar.gz"

logger = logging.getLogger("seqserve")


class Platform(enum.Enum):
    LINUX_X64 = "linux-x64"
    MACOS_X64 = "macos-x64"


# NCBI archive name per platform.
BLAST_ARCHIVES = {
    Platform.LINUX_X64: "ncbi-blast-{version}+-x64-linux.tar.gz",
    Platform.MACOS_X64: "ncbi-blast-{version}+-x64-macosx.tar.gz",
}

_X64 = {"x86_64", "amd64"}


def detect_platform(context: RunContext) -> Platform:
    """Return the platform to download BLAST+ for, or raise DownloadError."""
    machine = (context.machine or "").lower()
    if context.platform.startswith("linux") and machine in _X64:
        return Platform.LINUX_X64
    # Apple silicon runs the x64 build under Rosetta.
    if context.platform == "darwin" and (machine in _X64 or machine == "arm64"):
        return Platform.MACOS_X64
    raise DownloadError(
        f"Automatic BLAST+ installation is not supported on this platform "
        f"({context.platform} {context.machine or 'unknown'}). Please download BLAST+ "
        f"{BLAST_VERSION} from {BLAST_MANUAL_URL} and pass its bin directory with --bin."
    )


def blast_download_url(platform: Platform, version: str = BLAST_VERSION) -> str:
    archive = BLAST_ARCHIVES[platform].format(version=version)
    return f"https://ftp.ncbi.nlm.nih.gov/blast/executables/blast+/{version}/{archive}"


def blast_bin_dir(extract_root: str, version: str = BLAST_VERSION) -> str:
    return os.path.join(extract_root, f"ncbi-blast-{version}+", "bin")


def default_asset_home(context: RunContext) -> str:
    """Per-user, writable directory for downloaded tools."""
    env = context.environ.get(ENV_HOME)
    if env:
        return context.expand(env)
    xdg = context.environ.get("XDG_DATA_HOME")
    if xdg:
        return os.path.join(context.expand(xdg), "seqserve")
    return os.path.join(context.home, ".local", "share", "seqserve")


def default_download_dir() -> str:
    return os.path.join(tempfile.gettempdir(), "seqserve-downloads")


@dataclass(frozen=True)
class RemoteArchive:
    url: str
    archive_path: str
    extract_root: str

    @classmethod
    def for_url(cls, url: str, download_dir: str, extract_root: str) -> "RemoteArchive":
        name = url.rstrip("/").rsplit("/", 1)[-1] or "download.tar.gz"
        return cls(url=url, archive_path=os.path.join(download_dir, name), extract_root=extract_root)

    @property
    def part_path(self) -> str:
        return self.archive_path + ".part"


def _remove(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class RemoteAssetFetcher:
    """Download an archive and unpack it under ``extract_root``."""

    def __init__(
        self,
        extract_root: str,
        download_dir: Optional[str] = None,
        curl_exe: str = "curl",
        tar_exe: str = "tar",
    ):
        self.extract_root = extract_root
        self.download_dir = download_dir or default_download_dir()
        self.curl_exe = curl_exe
        self.tar_exe = tar_exe

    def _run(self, cmd: List[str], what: str, archive: RemoteArchive) -> None:
        logger.debug("CMD: %s", " ".join(cmd))
        try:
            with abort_on_interrupt():
                r = subprocess.run(cmd, check=False)
        except OSError as e:
            raise DownloadError(f"Could not run {cmd[0]} to {what} {archive.url}: {e}") from e
        if r.returncode != 0:
            raise DownloadError(f"Failed to {what} {archive.url} ({cmd[0]} exited with status {r.returncode}).")

    def download(self, archive: RemoteArchive) -> None:
        """Download into ``<archive>.part`` and rename once curl succeeds.

        An interrupted download leaves the .part file for the next attempt to
        resume; a failed one removes it so a changed remote file starts over.
        """
        os.makedirs(self.download_dir, exist_ok=True)
        print(f"Downloading {archive.url} ...", flush=True)
        part = archive.part_path
        cmd = [self.curl_exe, "-L", "--fail", "-C", "-", "-o", part, archive.url]
        try:
            self._run(cmd, "download", archive)
        except DownloadError:
            _remove(part)
            raise
        os.replace(part, archive.archive_path)

    def extract(self, archive: RemoteArchive) -> None:
        os.makedirs(archive.extract_root, exist_ok=True)
        print(f"Extracting to {archive.extract_root} ...", flush=True)
        staging = tempfile.mkdtemp(prefix=".extract_", dir=archive.extract_root)
        try:
            self._run([self.tar_exe, "-xzf", archive.archive_path, "-C", staging], "extract", archive)
            for name in sorted(os.listdir(staging)):
                target = os.path.join(archive.extract_root, name)
                if os.path.isdir(target) and not os.path.islink(target):
                    shutil.rmtree(target)
                elif os.path.lexists(target):
                    os.remove(target)
                shutil.move(os.path.join(staging, name), target)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def fetch(self, url: str) -> str:
        """Download ``url`` and extract it; return the extraction root."""
        archive = RemoteArchive.for_url(url, self.download_dir, self.extract_root)
        self.download(archive)
        try:
            self.extract(archive)
        finally:
            # A complete archive is never reused; the next fetch downloads afresh.
            _remove(archive.archive_path)
        logger.info("Extracted %s into %s", os.path.basename(archive.archive_path), archive.extract_root)
        return archive.extract_root
