"""Command-line entry point.

Runs the setup wizard and then exactly one action (see ``commands``).
"""

from __future__ import annotations

import sys

from .commands import CommandDispatcher
from .context import RunContext
from .pipeline import InitializationPipeline


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    context = RunContext.from_process()
    result = InitializationPipeline(context).run(argv)
    return CommandDispatcher(result, context).dispatch()


if __name__ == "__main__":
    raise SystemExit(main())
