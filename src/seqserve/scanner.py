"""Database directory scanning and formatting.

A database directory may hold formatted BLAST databases (index files written by
makeblastdb) and raw FASTA files that still need formatting. ``scan`` walks the
tree and classifies both; ``format_all`` runs makeblastdb over raw files.
"""

from __future__ import annotations

import enum
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
from tqdm import tqdm

from .console import abort_on_interrupt

logger = logging.getLogger("seqserve")

FA_EXTS = (".fa", ".fasta", ".fna", ".faa", ".fas", ".fsa", ".ffn", ".frn", ".mpfa", ".seq")

NUCL_EXTS = (".nin", ".nhr", ".nsq", ".nal", ".nog", ".nos", ".not", ".ntf", ".nto", ".nhd", ".nhi", ".ndb", ".njs", ".nnd", ".nni", ".nsd", ".nsi")
PROT_EXTS = (".pin", ".phr", ".psq", ".pal", ".pog", ".pos", ".pot", ".ptf", ".pto", ".phd", ".phi", ".pdb", ".pjs", ".pnd", ".pni", ".psd", ".psi")
INDEX_EXTS = frozenset(NUCL_EXTS + PROT_EXTS)

# Residues counted when guessing the alphabet of a raw file.
SAMPLE_RESIDUES = 10000
NUCLEOTIDE_FRACTION = 0.9
_NUCLEOTIDES = frozenset("ACGTUN")


class Alphabet(enum.Enum):
    NUCLEOTIDE = "nucleotide"
    PROTEIN = "protein"
    UNKNOWN = "unknown"

    @property
    def dbtype(self) -> Optional[str]:
        return {"nucleotide": "nucl", "protein": "prot"}.get(self.value)


class EntryState(enum.Enum):
    RAW = "raw"
    FORMATTED = "formatted"


@dataclass(frozen=True)
class DatabaseEntry:
    path: str  # FASTA file, or database prefix (no extension) when formatted
    alphabet: Alphabet
    state: EntryState

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def title(self) -> str:
        n = self.name
        for suf in FA_EXTS:
            if n.lower().endswith(suf):
                return n[: -len(suf)]
        return n


@dataclass
class FormatReport:
    succeeded: List[DatabaseEntry] = field(default_factory=list)
    failed: List[Tuple[DatabaseEntry, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _index_prefixes(names: Iterable[str]) -> Dict[str, Alphabet]:
    """Database prefixes with a usable index among ``names`` (one directory)."""
    by_ext: Dict[str, set] = {}
    for n in names:
        stem, ext = os.path.splitext(n)
        if ext in INDEX_EXTS:
            by_ext.setdefault(stem, set()).add(ext)

    out: Dict[str, Alphabet] = {}
    for stem, exts in by_ext.items():
        if ".nal" in exts or (".nsq" in exts and exts & {".nin", ".nhr"}):
            out[stem] = Alphabet.NUCLEOTIDE
        elif ".pal" in exts or (".psq" in exts and exts & {".pin", ".phr"}):
            out[stem] = Alphabet.PROTEIN

    # Volumes (nt.00, nt.01, ...) belong to the alias of the same name.
    for stem in list(out):
        base, _, vol = stem.rpartition(".")
        if base in out and vol.isdigit():
            del out[stem]
    return out


def looks_like_fasta(path: str) -> bool:
    name = os.path.basename(path)
    ext = os.path.splitext(name)[1].lower()
    if ext and ext not in FA_EXTS:
        return False
    try:
        with open(path, "r", encoding="utf-8", errors="ignore") as fh:
            for line in fh:
                if line.strip():
                    return line.startswith(">")
    except OSError:
        return False
    return False


def guess_alphabet(path: str) -> Alphabet:
    """Nucleotide if nearly all sampled residues are ACGTUN."""
    total = 0
    nucl = 0
    with open(path, "r", encoding="utf-8", errors="ignore") as fh:
        for line in fh:
            if line.startswith(">") or line.startswith(";"):
                continue
            for ch in line.strip().upper():
                if not ch.isalpha():
                    continue
                total += 1
                if ch in _NUCLEOTIDES:
                    nucl += 1
            if total >= SAMPLE_RESIDUES:
                break
    if total == 0:
        return Alphabet.UNKNOWN
    return Alphabet.NUCLEOTIDE if nucl / total >= NUCLEOTIDE_FRACTION else Alphabet.PROTEIN


def index_files(path: str, alphabet: Alphabet) -> List[str]:
    d = os.path.dirname(path) or "."
    base = os.path.basename(path)
    exts = NUCL_EXTS if alphabet is Alphabet.NUCLEOTIDE else PROT_EXTS
    out = []
    for n in sorted(os.listdir(d)):
        if not n.startswith(base + "."):
            continue
        rest = n[len(base):]
        # path.nin, and per-volume path.00.nin
        if "." + rest.rsplit(".", 1)[-1] in exts:
            out.append(os.path.join(d, n))
    return out


class DatabaseScanner:
    """Finds BLAST databases and FASTA files and formats the latter."""

    def __init__(self, makeblastdb_exe: str = "makeblastdb", show_progress: bool = True):
        self.makeblastdb_exe = makeblastdb_exe
        self.show_progress = show_progress

    def scan(self, root: str) -> List[DatabaseEntry]:
        entries: List[DatabaseEntry] = []
        if not root or not os.path.isdir(root):
            return entries
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            names = sorted(n for n in filenames if not n.startswith("."))
            prefixes = _index_prefixes(names)
            seen = set()
            for n in names:
                stem, ext = os.path.splitext(n)
                if ext in INDEX_EXTS:
                    # Report each database once, at its first index file.
                    for prefix in (stem, stem.rpartition(".")[0]):
                        if prefix in prefixes and prefix not in seen:
                            seen.add(prefix)
                            entries.append(DatabaseEntry(
                                path=os.path.join(dirpath, prefix),
                                alphabet=prefixes[prefix],
                                state=EntryState.FORMATTED,
                            ))
                            break
                    continue
                if n in prefixes:
                    continue  # FASTA already formatted in place
                p = os.path.join(dirpath, n)
                if looks_like_fasta(p):
                    entries.append(DatabaseEntry(path=p, alphabet=guess_alphabet(p), state=EntryState.RAW))
        return entries

    def unformatted_entries(self, root: str) -> List[DatabaseEntry]:
        return [e for e in self.scan(root) if e.state is EntryState.RAW]

    def formatted_entries(self, root: str) -> List[DatabaseEntry]:
        return [e for e in self.scan(root) if e.state is EntryState.FORMATTED]

    def _cleanup_partial(self, entry: DatabaseEntry) -> None:
        for p in index_files(entry.path, entry.alphabet):
            try:
                os.remove(p)
            except OSError as e:
                logger.warning("Could not remove partial index file %s: %s", p, e)

    def format_entry(self, entry: DatabaseEntry) -> Optional[str]:
        """Run makeblastdb for one raw entry. Returns None on success, else the reason."""
        if entry.alphabet.dbtype is None:
            return "could not determine whether it holds nucleotide or protein sequences"
        cmd = [self.makeblastdb_exe, "-in", entry.path, "-out", entry.path,
               "-dbtype", entry.alphabet.dbtype, "-parse_seqids", "-hash_index",
               "-title", entry.title]
        logger.debug("CMD: %s", " ".join(cmd))
        try:
            with abort_on_interrupt():
                try:
                    r = subprocess.run(cmd, capture_output=True, text=True, check=False)
                except BaseException:
                    self._cleanup_partial(entry)
                    raise
        except OSError as e:
            return f"could not run {self.makeblastdb_exe}: {e}"
        if r.returncode != 0:
            self._cleanup_partial(entry)
            lines = [l for l in (r.stderr or r.stdout or "").splitlines() if l.strip()]
            return lines[-1] if lines else f"makeblastdb exited with status {r.returncode}"
        return None

    def format_all(self, entries: Iterable[DatabaseEntry]) -> FormatReport:
        """Format every raw entry; a failure does not stop the remaining ones."""
        report = FormatReport()
        todo = [e for e in entries if e.state is EntryState.RAW]
        for entry in tqdm(todo, desc="makeblastdb", unit="file", disable=not self.show_progress):
            reason = self.format_entry(entry)
            if reason is None:
                report.succeeded.append(DatabaseEntry(entry.path, entry.alphabet, EntryState.FORMATTED))
            else:
                logger.error("Could not format %s: %s", entry.path, reason)
                report.failed.append((entry, reason))
        return report


def entries_frame(entries: Iterable[DatabaseEntry], root: Optional[str] = None) -> pd.DataFrame:
    rows = []
    for e in entries:
        shown = os.path.relpath(e.path, root) if root else e.path
        rows.append([e.title, e.alphabet.value, e.state.value, shown])
    return pd.DataFrame(rows, columns=["title", "type", "state", "path"])
