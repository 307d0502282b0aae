"""BLAST+ tool discovery and version checks.

seqserve needs the search programs plus ``blastdbcmd`` and ``makeblastdb``
from NCBI BLAST+ >= 2.12.0.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
from typing import Dict, Optional

from .console import abort_on_interrupt
from .errors import BinaryMissingOrIncompatible


MINIMUM_VERSION = (2, 12, 0)
REQUIRED_TOOLS = ("blastn", "blastp", "blastx", "tblastn", "tblastx", "blastdbcmd", "makeblastdb")

_VER_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


def _parse_version(text: str) -> tuple[int, int, int] | None:
    m = _VER_RE.search(text or "")
    if not m:
        return None
    return int(m.group(1)), int(m.group(2)), int(m.group(3))


def format_version(v: tuple[int, int, int]) -> str:
    return ".".join(str(x) for x in v)


def get_tool_version(exe: str) -> tuple[int, int, int] | None:
    """Return (major, minor, patch) for a BLAST+ executable, or None if unknown."""
    try:
        with abort_on_interrupt():
            r = subprocess.run([exe, "-version"], capture_output=True, text=True, check=False)
    except OSError:
        return None
    txt = (r.stdout or "") + "\n" + (r.stderr or "")
    return _parse_version(txt)


def locate_tools(bin_dir: Optional[str], path: Optional[str]) -> Dict[str, str]:
    """Map each required tool name to an executable path.

    With ``bin_dir`` only that directory is searched, otherwise ``path``
    (a PATH-style string).
    """
    if bin_dir is not None and not os.path.isdir(bin_dir):
        raise BinaryMissingOrIncompatible(f"BLAST+ bin directory does not exist: {bin_dir}")
    search = bin_dir if bin_dir is not None else path
    found: Dict[str, str] = {}
    missing = []
    for tool in REQUIRED_TOOLS:
        exe = shutil.which(tool, path=search)
        if exe is None:
            missing.append(tool)
        else:
            found[tool] = exe
    if missing:
        where = f"in {bin_dir}" if bin_dir is not None else "on PATH"
        raise BinaryMissingOrIncompatible(
            f"NCBI BLAST+ not found {where} (missing: {', '.join(missing)})."
        )
    return found


def require_blast(tools: Dict[str, str]) -> tuple[int, int, int]:
    """Hard requirement: BLAST+ MINIMUM_VERSION or newer."""
    v = get_tool_version(tools["blastdbcmd"])
    if v is None:
        raise BinaryMissingOrIncompatible(
            f"Could not determine the BLAST+ version of '{tools['blastdbcmd']}'."
        )
    if v < MINIMUM_VERSION:
        raise BinaryMissingOrIncompatible(
            f"BLAST+ {format_version(MINIMUM_VERSION)}+ is required. Detected: {format_version(v)}."
        )
    return v
