"""Terminal actions.

Once setup succeeds exactly one action runs, chosen by the flags in this
order: doctor, interactive console, list databases, list/make unformatted
FASTA, download taxdb, import, save config, start server.
"""

from __future__ import annotations

import code
import logging
import os
from typing import Callable, List, Optional, Tuple

from .blast_tools import format_version
from .config_file import write_config_file
from .context import RunContext
from .environment import Environment
from .errors import SeqserveError
from .fetcher import TAXDB_URL, RemoteAssetFetcher
from .importer import install_database_bundle
from .pipeline import PipelineResult
from .scanner import DatabaseScanner, EntryState, entries_frame, index_files
from . import server

logger = logging.getLogger("seqserve")


class CommandDispatcher:
    def __init__(
        self,
        result: PipelineResult,
        context: RunContext,
        scanner: Optional[DatabaseScanner] = None,
        fetcher_factory: Callable[[str], RemoteAssetFetcher] = RemoteAssetFetcher,
        serve: Callable[[Environment], int] = server.serve,
    ):
        self.intent = result.intent
        self.env = result.environment or Environment(database_dir=self.intent.database_dir)
        self.context = context
        self.scanner = scanner or DatabaseScanner(makeblastdb_exe=self.env.makeblastdb)
        self.fetcher_factory = fetcher_factory
        self.serve = serve

    def actions(self) -> List[Optional[Tuple[str, Callable[[], int]]]]:
        """(flag, handler) pairs in precedence order."""
        i = self.intent
        return [
            ("doctor", self.doctor) if i.doctor else None,
            ("interactive", self.interactive) if i.interactive else None,
            ("list_databases", self.list_databases) if i.list_databases else None,
            ("list_unformatted", self.list_unformatted) if (i.list_unformatted or i.make_databases) else None,
            ("download_taxdb", self.download_taxdb) if i.download_taxdb else None,
            ("import", self.import_database) if i.import_path else None,
            ("set", self.save_config) if i.set else None,
            ("serve", self.start_server),
        ]

    def dispatch(self) -> int:
        name, handler = next(a for a in self.actions() if a is not None)
        logger.debug("Running action: %s", name)
        try:
            return handler()
        except SeqserveError as e:
            logger.error("Error: %s", e)
            return 1

    # -- actions -----------------------------------------------------------

    def doctor(self) -> int:
        env = self.env
        print("Running checks...", flush=True)
        if env.blast_version:
            print(f"  BLAST+ {format_version(env.blast_version)} ({env.bin_dir or 'from PATH'})", flush=True)
        print(f"  Database directory: {env.database_dir}", flush=True)
        problems = 0

        raw = self.scanner.unformatted_entries(env.database_dir) if env.database_dir else []
        if raw:
            problems += 1
            print(f"\n  {len(raw)} FASTA file(s) not formatted yet (run with -m):", flush=True)
            for e in raw:
                print(f"    - {e.path}", flush=True)

        for db in env.databases:
            exts = {os.path.splitext(p)[1][2:] for p in index_files(db.path, db.alphabet)}
            missing = []
            if not exts & {"og", "os"}:
                missing.append("-parse_seqids")
            if "hi" not in exts:
                missing.append("-hash_index")
            if missing:
                problems += 1
                print(f"\n  {db.path}: created without {' and '.join(missing)}; "
                      "sequence retrieval may not work. Re-create it with makeblastdb.", flush=True)

        print("\nNo problems found." if not problems else f"\n{problems} problem(s) found.", flush=True)
        return 0

    def interactive(self) -> int:
        banner = "seqserve console: `intent`, `env` and `scanner` are available."
        code.interact(banner=banner, local={"intent": self.intent, "env": self.env, "scanner": self.scanner})
        return 0

    def list_databases(self) -> int:
        dbs = [e for e in self.env.databases if e.state is EntryState.FORMATTED]
        if not dbs:
            print(f"No BLAST databases found in {self.env.database_dir}.", flush=True)
            return 0
        print(entries_frame(dbs, self.env.database_dir).to_string(index=False), flush=True)
        return 0

    def list_unformatted(self) -> int:
        raw = self.scanner.unformatted_entries(self.env.database_dir)
        if not raw:
            print(f"All FASTA files in {self.env.database_dir} are formatted.", flush=True)
            return 0
        print(entries_frame(raw, self.env.database_dir).to_string(index=False), flush=True)
        if not self.intent.make_databases:
            return 0

        report = self.scanner.format_all(raw)
        print(f"\nFormatted {len(report.succeeded)} of {len(raw)} FASTA file(s).", flush=True)
        for entry, reason in report.failed:
            print(f"  FAILED {entry.path}: {reason}", flush=True)
        return 0 if report.ok else 1

    def download_taxdb(self) -> int:
        fetcher = self.fetcher_factory(self.env.database_dir)
        fetcher.fetch(TAXDB_URL)
        print(f"Taxonomy database installed in {self.env.database_dir}", flush=True)
        return 0

    def import_database(self) -> int:
        target = install_database_bundle(self.context.expand(self.intent.import_path), self.env.database_dir)
        print(f"Installed database bundle into {target}", flush=True)
        return 0

    def save_config(self) -> int:
        path = write_config_file(self.intent, self.context)
        print(f"Configuration saved to {path}", flush=True)
        return 0

    def start_server(self) -> int:
        return self.serve(self.env)
