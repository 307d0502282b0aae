"""Install precompiled BLAST databases.

A bundle is a .zip archive holding BLAST index files (e.g. .nsq/.nin/.nhr or a
.nal alias; protein databases likewise). It is unpacked into its own folder in
the database directory so the next scan picks it up.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import zipfile

from .errors import GenericIOError
from .scanner import INDEX_EXTS


def _safe_name(name: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in name.strip())


def install_database_bundle(zip_path: str, database_dir: str) -> str:
    """Unpack a precompiled database bundle into ``database_dir``.

    Parameters
    ----------
    zip_path : str
        Path to the bundle (.zip).
    database_dir : str
        Destination database directory.

    Returns
    -------
    str
        Path to the installed database folder: the single top-level folder
        inside the ZIP, or else the ZIP stem. An existing folder is never
        replaced.
    """
    zp = os.path.abspath(zip_path)
    if not os.path.isfile(zp):
        raise GenericIOError(f"Database bundle not found: {zp}")
    if not zp.lower().endswith(".zip"):
        raise GenericIOError("Database bundles must be .zip archives.")

    try:
        with zipfile.ZipFile(zp, "r") as zf:
            members = [m for m in zf.namelist() if not m.endswith("/")]
    except zipfile.BadZipFile as e:
        raise GenericIOError(f"Not a valid ZIP archive: {zp} ({e})") from e
    if not members:
        raise GenericIOError("The ZIP archive is empty.")
    if not any(os.path.splitext(m)[1].lower() in INDEX_EXTS for m in members):
        raise GenericIOError(
            "No BLAST index files were found inside the ZIP archive. "
            "Put FASTA files in the database directory and run with -m instead."
        )

    top_levels = {m.split("/")[0] for m in members if "/" in m}
    if len(top_levels) == 1 and all("/" in m for m in members):
        folder = sorted(top_levels)[0]
    else:
        folder = os.path.splitext(os.path.basename(zp))[0]
    safe = _safe_name(folder)
    if not safe or safe.startswith("."):
        raise GenericIOError(f"Unusable database name derived from archive: {folder!r}")

    target = os.path.join(database_dir, safe)
    if os.path.exists(target):
        raise GenericIOError(f"Target database folder already exists: {target}")

    # Unpack next to the target and move into place, so a failed install leaves nothing behind.
    tmp = tempfile.mkdtemp(prefix=".import_", dir=database_dir)
    try:
        with zipfile.ZipFile(zp, "r") as zf:
            zf.extractall(tmp)
        candidates = [os.path.join(tmp, d) for d in os.listdir(tmp)]
        root_dir = candidates[0] if len(candidates) == 1 and os.path.isdir(candidates[0]) else tmp
        shutil.move(root_dir, target)
    finally:
        shutil.rmtree(tmp, ignore_errors=True)
    return target
