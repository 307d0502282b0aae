"""Interactive prompts and interrupt handling.

Ctrl-C (or end of input) is only honoured while we wait on the user or on an
external program; either way the process exits with status 130.
"""

from __future__ import annotations

import contextlib
import os
import sys
from typing import Callable, Iterator, Optional

ABORT_STATUS = 130


@contextlib.contextmanager
def abort_on_interrupt() -> Iterator[None]:
    try:
        yield
    except (KeyboardInterrupt, EOFError):
        # Leave the cursor on a fresh line before reporting.
        print(file=sys.stderr, flush=True)
        print("Aborted.", file=sys.stderr, flush=True)
        raise SystemExit(ABORT_STATUS)


class Prompter:
    """Asks the user questions; ``input_fn`` is swappable for tests."""

    def __init__(self, input_fn: Callable[[str], str] = input):
        self.input_fn = input_fn

    def ask(self, text: str, default: Optional[str] = None) -> str:
        with abort_on_interrupt():
            s = self.input_fn(text)
        s = s.strip().strip('"').strip("'")
        if not s and default is not None:
            return default
        return s

    def ask_yes_no(self, text: str, default: bool = True) -> bool:
        hint = "[Y/n]" if default else "[y/N]"
        while True:
            s = self.ask(f"{text} {hint} ").lower()
            if s == "":
                return default
            if s in {"y", "yes"}:
                return True
            if s in {"n", "no"}:
                return False
            print("Please answer y or n.", flush=True)

    def ask_directory(self, text: str, default: str, resolve: Callable[[str], str]) -> str:
        """Prompt until an existing directory is given; ENTER picks ``default``."""
        while True:
            p = resolve(self.ask(f"{text} (ENTER={default}): ", default=default))
            if os.path.isdir(p):
                return p
            print(f"Not a directory: {p}. Please try again.", flush=True)
