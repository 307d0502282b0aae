"""Process state threaded through the setup wizard.

Working directory, home directory, environment variables and the platform are
captured once at start-up so nothing downstream reads them from ``os``.
"""

from __future__ import annotations

import os
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict


@dataclass(frozen=True)
class RunContext:
    cwd: str
    home: str
    environ: Dict[str, str] = field(default_factory=dict)
    platform: str = sys.platform
    machine: str = ""

    @classmethod
    def from_process(cls) -> "RunContext":
        return cls(
            cwd=os.getcwd(),
            home=str(Path.home()),
            environ=dict(os.environ),
            platform=sys.platform,
            machine=platform.machine(),
        )

    def expand(self, path: str) -> str:
        """Absolute form of a user-supplied path, resolved against ``cwd``."""
        p = path.strip()
        if p == "~" or p.startswith("~/"):
            p = self.home + p[1:]
        return os.path.normpath(os.path.join(self.cwd, p))
