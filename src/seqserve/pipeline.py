"""Setup wizard: parse options, initialize, fix what is missing, retry.

The pipeline is a small state machine::

    PARSING -> ATTEMPTING -> READY
                  |   ^
                  v   |
               REMEDIATING

Each attempt yields an InitializationOutcome. Recoverable failures (BLAST+
missing, database directory unset, no database found) get one remediation
step each before the next attempt; anything else ends in ABORTED.
"""

from __future__ import annotations

import enum
import functools
import logging
import traceback
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .console import Prompter
from .context import RunContext
from .environment import Environment, InitializationOutcome, initialize_environment
from .errors import (
    SUPPORT_CHANNEL,
    RECOVERABLE_KINDS,
    ArgumentError,
    DownloadError,
    FailureKind,
    SeqserveError,
)
from .fetcher import (
    BLAST_MANUAL_URL,
    BLAST_VERSION,
    RemoteAssetFetcher,
    blast_bin_dir,
    blast_download_url,
    default_asset_home,
    detect_platform,
)
from .options import ConfigIntent, parse_options
from .scanner import DatabaseScanner

logger = logging.getLogger("seqserve")

MAX_REPEATS = 5
ARGUMENT_ERROR_STATUS = 2
FATAL_STATUS = 1

Initializer = Callable[[ConfigIntent, RunContext, DatabaseScanner], InitializationOutcome]


class State(enum.Enum):
    PARSING = "parsing"
    ATTEMPTING = "attempting"
    REMEDIATING = "remediating"
    READY = "ready"
    ABORTED = "aborted"


@dataclass
class PipelineResult:
    intent: ConfigIntent
    environment: Optional[Environment]
    outcome: InitializationOutcome


def configure_logging(intent: ConfigIntent) -> None:
    level = "DEBUG" if intent.devel else intent.log_level
    logging.basicConfig(level=getattr(logging, level), format="%(levelname)s: %(message)s")
    logging.getLogger("seqserve").setLevel(getattr(logging, level))


class InitializationPipeline:
    def __init__(
        self,
        context: RunContext,
        prompter: Optional[Prompter] = None,
        initializer: Optional[Initializer] = None,
        fetcher: Optional[RemoteAssetFetcher] = None,
        scanner: Optional[DatabaseScanner] = None,
        max_repeats: int = MAX_REPEATS,
    ):
        self.context = context
        self.prompter = prompter or Prompter()
        # --require files run once per pipeline, not once per attempt.
        self.loaded_extensions: set = set()
        self.initializer = initializer or functools.partial(
            initialize_environment, loaded_extensions=self.loaded_extensions
        )
        self.fetcher = fetcher or RemoteAssetFetcher(default_asset_home(context))
        self.scanner = scanner or DatabaseScanner()
        self.max_repeats = max_repeats
        self.state = State.PARSING
        self.intent: Optional[ConfigIntent] = None
        self.history: list = []

    # -- transitions -------------------------------------------------------

    def _abort(self, message: str, status: int = FATAL_STATUS):
        self.state = State.ABORTED
        logger.error(message)
        raise SystemExit(status)

    def _ready(self, outcome: InitializationOutcome) -> PipelineResult:
        self.state = State.READY
        return PipelineResult(intent=self.intent, environment=outcome.environment, outcome=outcome)

    def _report_unexpected(self, error: BaseException):
        tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        logger.error(
            "Something went wrong while setting up: %s\n%s\n"
            "This is a bug. Please report it to %s together with the output above.",
            error, tb.rstrip(), SUPPORT_CHANNEL,
        )
        self._abort("Setup aborted because of an unexpected error.")

    def attempt(self) -> InitializationOutcome:
        self.state = State.ATTEMPTING
        try:
            outcome = self.initializer(self.intent, self.context, self.scanner)
        except Exception as e:
            outcome = InitializationOutcome(kind=FailureKind.UNEXPECTED, message=str(e), error=e)
        self.history.append(outcome.kind)
        return outcome

    def _repeats(self, kind: FailureKind) -> int:
        n = 0
        for k in reversed(self.history):
            if k is not kind:
                break
            n += 1
        return n

    def run(self, argv: Sequence[str]) -> PipelineResult:
        self.state = State.PARSING
        try:
            self.intent = parse_options(argv)
        except ArgumentError as e:
            self._abort(f"Error: {e}", status=ARGUMENT_ERROR_STATUS)
        configure_logging(self.intent)
        return self.resume()

    def resume(self) -> PipelineResult:
        """Attempt/remediate until ready; assumes ``self.intent`` is set."""
        while True:
            outcome = self.attempt()
            if outcome.ready:
                return self._ready(outcome)
            kind = outcome.kind
            if kind is FailureKind.UNEXPECTED:
                self._report_unexpected(outcome.error)
            if kind not in RECOVERABLE_KINDS:
                self._abort(f"Error: {outcome.message}")
            if kind is FailureKind.NO_DATABASE_FOUND and self.intent.wants_listing():
                # Listing/formatting actions report the empty result themselves.
                return self._ready(outcome)
            if self._repeats(kind) >= self.max_repeats:
                self._abort(
                    f"Error: {outcome.message} Giving up after {self.max_repeats} attempts to fix it."
                )

            self.state = State.REMEDIATING
            logger.debug("Remediating %s: %s", kind.value, outcome.message)
            try:
                done = self.remediate(outcome)
            except SeqserveError as e:
                self._abort(f"Error: {e}")
            if done:
                return self._ready(outcome)

    # -- remediation -------------------------------------------------------

    def remediate(self, outcome: InitializationOutcome) -> bool:
        """Run the fix for ``outcome.kind``; True means stop without another attempt."""
        if outcome.kind is FailureKind.BINARY_MISSING:
            self.remediate_binary(outcome)
        elif outcome.kind is FailureKind.DATABASE_DIR_UNSET:
            self.remediate_database_dir(outcome)
        elif outcome.kind is FailureKind.NO_DATABASE_FOUND:
            return self.remediate_no_database(outcome)
        return False

    def remediate_binary(self, outcome: InitializationOutcome) -> None:
        print(f"\n{outcome.message}", flush=True)
        print(f"seqserve needs NCBI BLAST+ (it can download BLAST+ {BLAST_VERSION} for you).", flush=True)
        response = self.prompter.ask(
            "Path to an existing BLAST+ bin directory (ENTER to download and install): ", default=""
        )
        if response:
            self.intent.bin_dir = self.context.expand(response)
        else:
            platform = detect_platform(self.context)
            url = blast_download_url(platform)
            try:
                root = self.fetcher.fetch(url)
            except DownloadError as e:
                raise DownloadError(
                    f"{e} Please download BLAST+ {BLAST_VERSION} manually from {BLAST_MANUAL_URL} "
                    "and pass its bin directory with --bin."
                ) from e
            self.intent.bin_dir = blast_bin_dir(root)
            print(f"Installed BLAST+ {BLAST_VERSION} in {self.intent.bin_dir}", flush=True)
        if "bin_dir" not in self.intent.explicit:
            self.intent.set = True

    def remediate_database_dir(self, outcome: InitializationOutcome) -> None:
        print(f"\n{outcome.message}", flush=True)
        print("seqserve serves BLAST databases (and formats FASTA files) found in a directory.", flush=True)
        self.intent.database_dir = self.prompter.ask_directory(
            "Database directory", default=self.context.cwd, resolve=self.context.expand
        )
        if "database_dir" not in self.intent.explicit:
            self.intent.set = True

    def remediate_no_database(self, outcome: InitializationOutcome) -> bool:
        env = outcome.environment
        database_dir = env.database_dir if env and env.database_dir else self.intent.database_dir
        print(f"\n{outcome.message}", flush=True)
        if not self.prompter.ask_yes_no(
            f"Search for FASTA files in {database_dir} and create BLAST databases?", default=True
        ):
            if self.intent.set:
                return True
            self._abort("No BLAST databases to serve. Run again with -m to create them.")

        print("Searching for FASTA files...", flush=True)
        if env is not None:
            self.scanner.makeblastdb_exe = env.makeblastdb
        raw = self.scanner.unformatted_entries(database_dir)
        if not raw:
            self._abort(f"Couldn't find any FASTA files in {database_dir}.")
        report = self.scanner.format_all(raw)
        print(f"Formatted {len(report.succeeded)} of {len(raw)} FASTA file(s).", flush=True)
        if not report.succeeded:
            self._abort("None of the FASTA files could be formatted; see the errors above.")
        return self.intent.set
