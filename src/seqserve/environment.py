"""Environment initialization.

One attempt at turning a ConfigIntent into a usable Environment: read the
config file, check threads, find BLAST+, check the database directory and look
for formatted databases. Problems come back as an InitializationOutcome rather
than an exception so the setup wizard can decide what to do next.
"""

from __future__ import annotations

import importlib.util
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .blast_tools import locate_tools, require_blast
from .config_file import PERSISTED_KEYS, config_path_for, load_config_file
from .context import RunContext
from .errors import (
    DatabaseDirUnset,
    FailureKind,
    GenericIOError,
    NoDatabaseFound,
    NumThreadsInvalid,
    SeqserveError,
)
from .options import ConfigIntent
from .scanner import DatabaseEntry, DatabaseScanner

logger = logging.getLogger("seqserve")

DEFAULTS: Dict[str, Any] = {"num_threads": 1, "host": "localhost", "port": 4567}


@dataclass
class Environment:
    database_dir: Optional[str] = None
    bin_dir: Optional[str] = None
    binaries: Dict[str, str] = field(default_factory=dict)
    blast_version: Optional[tuple] = None
    num_threads: int = 1
    host: str = "localhost"
    port: int = 4567
    databases: List[DatabaseEntry] = field(default_factory=list)

    @property
    def makeblastdb(self) -> str:
        return self.binaries.get("makeblastdb", "makeblastdb")


@dataclass
class InitializationOutcome:
    kind: Optional[FailureKind] = None
    message: str = ""
    environment: Optional[Environment] = None
    error: Optional[BaseException] = None

    @property
    def ready(self) -> bool:
        return self.kind is None

    @classmethod
    def Ready(cls, environment: Environment) -> "InitializationOutcome":
        return cls(environment=environment)

    @classmethod
    def failure(cls, error: SeqserveError, environment: Optional[Environment] = None) -> "InitializationOutcome":
        return cls(kind=error.kind or FailureKind.CONFIG_ERROR, message=str(error), environment=environment, error=error)


def effective_settings(intent: ConfigIntent, context: RunContext) -> Dict[str, Any]:
    """Defaults, overridden by the config file, overridden by the command line."""
    path = config_path_for(intent, context)
    settings = dict(DEFAULTS)
    settings.update(load_config_file(path, required=intent.config_file is not None))
    settings.update({k: v for k, v in intent.as_dict().items() if k in PERSISTED_KEYS})
    return settings


def check_num_threads(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise NumThreadsInvalid(f"Number of threads should be a number; got {value!r}.") from None
    if n < 1:
        raise NumThreadsInvalid(f"Number of threads should be at least 1; got {n}.")
    cpus = os.cpu_count() or 1
    if n > cpus:
        logger.warning("Number of threads (%d) is more than the number of CPUs (%d).", n, cpus)
    return n


def load_extension(path: str) -> None:
    """Execute a user-supplied Python file (``--require``)."""
    if not os.path.isfile(path):
        raise GenericIOError(f"File to require does not exist: {path}")
    spec = importlib.util.spec_from_file_location("seqserve_extension", path)
    if spec is None or spec.loader is None:
        raise GenericIOError(f"Cannot load {path} as a Python module.")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise GenericIOError(f"Loading {path} failed: {type(e).__name__}: {e}") from e
    logger.info("Loaded %s", path)


def _initialize(
    intent: ConfigIntent,
    context: RunContext,
    scanner: DatabaseScanner,
    env: Environment,
    loaded_extensions: Set[str],
) -> None:
    settings = effective_settings(intent, context)
    env.num_threads = check_num_threads(settings["num_threads"])
    env.host = str(settings["host"])
    try:
        env.port = int(settings["port"])
    except (TypeError, ValueError):
        raise GenericIOError(f"Port should be a number; got {settings['port']!r}.") from None

    if settings.get("require_path"):
        path = context.expand(str(settings["require_path"]))
        if path not in loaded_extensions:
            load_extension(path)
            loaded_extensions.add(path)

    bin_dir = settings.get("bin_dir")
    env.bin_dir = context.expand(str(bin_dir)) if bin_dir else None
    env.binaries = locate_tools(env.bin_dir, context.environ.get("PATH"))
    env.blast_version = require_blast(env.binaries)
    logger.debug("Using BLAST+ %s from %s", env.blast_version, env.bin_dir or "PATH")

    database_dir = settings.get("database_dir")
    if not database_dir:
        raise DatabaseDirUnset("Database directory is not set.")
    env.database_dir = context.expand(str(database_dir))
    if not os.path.isdir(env.database_dir):
        raise GenericIOError(f"Database directory does not exist: {env.database_dir}")

    scanner.makeblastdb_exe = env.makeblastdb
    env.databases = scanner.formatted_entries(env.database_dir)
    if not env.databases:
        raise NoDatabaseFound(f"No BLAST databases found in {env.database_dir}.")


def initialize_environment(
    intent: ConfigIntent,
    context: RunContext,
    scanner: Optional[DatabaseScanner] = None,
    loaded_extensions: Optional[Set[str]] = None,
) -> InitializationOutcome:
    """Make one initialization attempt.

    Known problems become failed outcomes; anything else propagates so the
    caller can report it as a bug. Extension files already in
    ``loaded_extensions`` are not run again.
    """
    env = Environment()
    if loaded_extensions is None:
        loaded_extensions = set()
    try:
        _initialize(intent, context, scanner or DatabaseScanner(), env, loaded_extensions)
    except SeqserveError as e:
        return InitializationOutcome.failure(e, environment=env)
    return InitializationOutcome.Ready(env)
