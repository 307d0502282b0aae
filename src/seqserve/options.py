"""Command-line options.

Parses the command line into a ``ConfigIntent``: what the user asked for,
before the config file and the environment have been consulted. The intent is
mutated by the setup wizard as it fixes problems (e.g. sets ``database_dir``).
"""

from __future__ import annotations

import argparse
import logging
import textwrap
from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, Optional, Sequence

from .errors import ArgumentError
from . import __version__

logger = logging.getLogger("seqserve")

PROG = "seqserve"

# Value options, named as ConfigIntent fields.
VALUE_KEYS = ("config_file", "bin_dir", "database_dir", "num_threads", "host", "port", "require_path", "import_path")
FLAG_KEYS = (
    "set", "devel", "interactive", "make_databases", "list_databases",
    "list_unformatted", "download_taxdb", "doctor",
)


@dataclass
class ConfigIntent:
    config_file: Optional[str] = None
    bin_dir: Optional[str] = None
    database_dir: Optional[str] = None
    num_threads: Optional[int] = None
    host: Optional[str] = None
    port: Optional[int] = None
    require_path: Optional[str] = None
    import_path: Optional[str] = None

    set: bool = False
    devel: bool = False
    interactive: bool = False
    make_databases: bool = False
    list_databases: bool = False
    list_unformatted: bool = False
    download_taxdb: bool = False
    doctor: bool = False

    log_level: str = "INFO"
    # Keys given explicitly on the command line.
    explicit: FrozenSet[str] = field(default_factory=frozenset)

    def as_dict(self) -> Dict[str, Any]:
        """Values and flags, leaving out anything unset."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            if f.name in ("explicit", "log_level"):
                continue
            v = getattr(self, f.name)
            if v is None or v is False:
                continue
            out[f.name] = v
        return out

    def wants_listing(self) -> bool:
        return self.list_databases or self.list_unformatted or self.make_databases


def _non_empty(value: str) -> str:
    v = value.strip()
    if not v:
        raise argparse.ArgumentTypeError("expected a non-empty value")
    return v


def _integer(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of printing usage and exiting."""

    def error(self, message: str):
        raise ArgumentError(f"{message} (see '{self.prog} --help')")


def build_parser() -> argparse.ArgumentParser:
    class _Fmt(argparse.ArgumentDefaultsHelpFormatter, argparse.RawDescriptionHelpFormatter):
        """Help formatter combining defaults + multi-line descriptions."""

    description = (
        "seqserve: set up and serve local NCBI BLAST+ databases.\n\n"
        "Missing pieces (BLAST+, database directory, databases) are detected on start-up\n"
        "and fixed interactively. Use --set to save the resulting configuration."
    )
    epilog = textwrap.dedent(
        """\
        Examples:
          # Start the server; you will be asked for anything that is missing
          seqserve

          # Serve the databases in a folder and remember it
          seqserve -d path/to/databases --set

          # Show FASTA files that still need makeblastdb, then format them
          seqserve -d path/to/databases -u
          seqserve -d path/to/databases -m
        """
    )

    p = _Parser(prog=PROG, description=description, epilog=epilog, formatter_class=_Fmt, allow_abbrev=False)

    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}",
                   help="Show program version and exit.")

    g_cfg = p.add_argument_group("Configuration")
    g_cfg.add_argument("-c", "--config_file", type=_non_empty,
                       help="Use the given configuration file (default: ~/.seqserve.conf).")
    g_cfg.add_argument("--config", type=_non_empty, help=argparse.SUPPRESS)
    g_cfg.add_argument("-b", "--bin", dest="bin_dir", type=_non_empty,
                       help="Directory containing the BLAST+ binaries (default: search PATH).")
    g_cfg.add_argument("-d", "--database_dir", type=_non_empty,
                       help="Directory containing BLAST databases and FASTA files (searched recursively).")
    g_cfg.add_argument("-n", "--num_threads", type=_integer, help="Number of threads BLAST may use.")
    g_cfg.add_argument("-H", "--host", type=_non_empty, help="Host to bind the server to.")
    g_cfg.add_argument("-p", "--port", type=_integer, help="Port to run the server on.")
    g_cfg.add_argument("-r", "--require", dest="require_path", type=_non_empty,
                       help="Python file to load before the server starts (customisation hook).")
    g_cfg.add_argument("-s", "--set", action="store_true",
                       help="Save the configuration to the config file and exit.")

    g_act = p.add_argument_group("Actions")
    g_act.add_argument("-m", "--make-blast-databases", dest="make_databases", action="store_true",
                       help="Format FASTA files in the database directory with makeblastdb.")
    g_act.add_argument("-l", "--list_databases", action="store_true",
                       help="List formatted BLAST databases.")
    g_act.add_argument("-u", "--list-unformatted-fastas", dest="list_unformatted", action="store_true",
                       help="List FASTA files that have not been formatted yet.")
    g_act.add_argument("-T", "--download-taxdb", dest="download_taxdb", action="store_true",
                       help="Download the NCBI taxonomy database (taxdb) into the database directory.")
    g_act.add_argument("-i", "--import", dest="import_path", type=_non_empty,
                       help="Install a precompiled BLAST database bundle (.zip) into the database directory.")
    g_act.add_argument("-I", "--interactive", action="store_true",
                       help="Open a Python console with the loaded configuration.")
    g_act.add_argument("--doctor", action="store_true", help="Check the BLAST+ setup and databases for problems.")

    g_out = p.add_argument_group("Output")
    g_out.add_argument("-D", "--devel", action="store_true", help="Development mode (debug logging).")
    g_out.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="INFO",
                       help="Logging verbosity.")
    return p


def handle_information_flags(argv: Sequence[str]) -> None:
    """Print help or version and exit 0 if requested, regardless of other flags.

    Option values (``-r -v``) and anything after ``--`` are not flags.
    """
    parser = build_parser()
    takes_value = {opt for a in parser._actions if a.nargs != 0 for opt in a.option_strings}
    wants_help = wants_version = False
    skip = False
    for tok in argv:
        if skip:
            skip = False
            continue
        if tok == "--":
            break
        if tok in ("-h", "--help"):
            wants_help = True
        elif tok in ("-v", "--version"):
            wants_version = True
        elif tok in takes_value:
            skip = True
    if wants_help:
        parser.print_help()
        raise SystemExit(0)
    if wants_version:
        print(f"{PROG} {__version__}", flush=True)
        raise SystemExit(0)


def _explicit_keys(parser: argparse.ArgumentParser, argv: Sequence[str]) -> FrozenSet[str]:
    seen = set()
    by_flag = {}
    for action in parser._actions:
        for opt in action.option_strings:
            by_flag[opt] = action.dest
    for tok in argv:
        flag = tok.split("=", 1)[0]
        if flag not in by_flag and tok[:1] == "-" and tok[1:2] != "-":
            flag = tok[:2]  # -d/path/to/dbs
        if flag in by_flag:
            seen.add(by_flag[flag])
    if "config" in seen:
        seen.add("config_file")
    return frozenset(seen)


def parse_options(argv: Sequence[str]) -> ConfigIntent:
    """Parse ``argv`` into a ConfigIntent.

    Raises ArgumentError for unknown flags or malformed values; nothing is
    returned in that case.
    """
    handle_information_flags(argv)
    parser = build_parser()
    ns = parser.parse_args(list(argv))

    if ns.config is not None:
        logger.warning("--config is deprecated; use --config_file instead.")
        if ns.config_file is None:
            ns.config_file = ns.config

    kwargs = {k: getattr(ns, k) for k in VALUE_KEYS + FLAG_KEYS}
    return ConfigIntent(**kwargs, log_level=ns.log_level, explicit=_explicit_keys(parser, argv))
