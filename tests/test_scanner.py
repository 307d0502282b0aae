import os

import pytest

from seqserve import scanner as scanner_mod
from seqserve.scanner import (
    Alphabet,
    DatabaseEntry,
    DatabaseScanner,
    EntryState,
    entries_frame,
    guess_alphabet,
)

from conftest import NUCL_FASTA, PROT_FASTA, fake_makeblastdb, make_formatted_db, write_file


@pytest.fixture()
def populated(database_dir):
    write_file(database_dir / "a.fa", NUCL_FASTA)
    write_file(database_dir / "sub" / "p.fasta", PROT_FASTA)
    write_file(database_dir / "notes.txt", "not a fasta")
    write_file(database_dir / "README", "# readme")
    write_file(database_dir / ".hidden.fa", NUCL_FASTA)
    write_file(database_dir / ".cache" / "x.fa", NUCL_FASTA)
    write_file(database_dir / "empty.fa", "")
    write_file(database_dir / "formatted.fa", NUCL_FASTA)
    make_formatted_db(database_dir, "formatted.fa")
    make_formatted_db(database_dir / "db", "nt")
    return database_dir


def test_scan_classifies_entries(populated):
    entries = DatabaseScanner(show_progress=False).scan(str(populated))
    assert entries == [
        DatabaseEntry(str(populated / "a.fa"), Alphabet.NUCLEOTIDE, EntryState.RAW),
        DatabaseEntry(str(populated / "formatted.fa"), Alphabet.NUCLEOTIDE, EntryState.FORMATTED),
        DatabaseEntry(str(populated / "db" / "nt"), Alphabet.NUCLEOTIDE, EntryState.FORMATTED),
        DatabaseEntry(str(populated / "sub" / "p.fasta"), Alphabet.PROTEIN, EntryState.RAW),
    ]


def test_scan_is_idempotent(populated):
    s = DatabaseScanner(show_progress=False)
    assert s.scan(str(populated)) == s.scan(str(populated))


def test_unformatted_and_formatted(populated):
    s = DatabaseScanner(show_progress=False)
    assert [e.name for e in s.unformatted_entries(str(populated))] == ["a.fa", "p.fasta"]
    assert [e.title for e in s.formatted_entries(str(populated))] == ["formatted", "nt"]


def test_scan_missing_directory(tmp_path):
    assert DatabaseScanner().scan(str(tmp_path / "nope")) == []


def test_alias_volumes_reported_once(database_dir):
    write_file(database_dir / "nt.nal", "TITLE nt\nDBLIST nt.00 nt.01\n")
    for vol in ("nt.00", "nt.01"):
        make_formatted_db(database_dir, vol)
    make_formatted_db(database_dir, "swissprot", (".pin", ".phr", ".psq"))

    entries = DatabaseScanner().formatted_entries(str(database_dir))
    assert [(e.name, e.alphabet) for e in entries] == [
        ("nt", Alphabet.NUCLEOTIDE),
        ("swissprot", Alphabet.PROTEIN),
    ]


def test_incomplete_index_is_not_a_database(database_dir):
    write_file(database_dir / "half.nin")
    assert DatabaseScanner().scan(str(database_dir)) == []


def test_guess_alphabet(tmp_path):
    assert guess_alphabet(str(write_file(tmp_path / "n.fa", NUCL_FASTA))) is Alphabet.NUCLEOTIDE
    assert guess_alphabet(str(write_file(tmp_path / "p.fa", PROT_FASTA))) is Alphabet.PROTEIN
    assert guess_alphabet(str(write_file(tmp_path / "h.fa", ">only header\n"))) is Alphabet.UNKNOWN


def test_format_all_survives_failures(database_dir, monkeypatch):
    names = [f"f{i}.fa" for i in range(1, 6)]
    for n in names:
        write_file(database_dir / n, NUCL_FASTA)
    run = fake_makeblastdb(fail_names={"f2.fa", "f4.fa"})
    monkeypatch.setattr(scanner_mod.subprocess, "run", run)

    s = DatabaseScanner(show_progress=False)
    report = s.format_all(s.unformatted_entries(str(database_dir)))

    assert [e.name for e in report.succeeded] == ["f1.fa", "f3.fa", "f5.fa"]
    assert all(e.state is EntryState.FORMATTED for e in report.succeeded)
    assert [e.name for e, _ in report.failed] == ["f2.fa", "f4.fa"]
    assert report.failed[0][1] == "BLAST options error: bad input"
    assert not report.ok
    assert len(run.calls) == 5
    for n in names:
        assert (database_dir / n).read_text() == NUCL_FASTA
    # partial index of a failed file is removed
    assert not (database_dir / "f2.fa.nhr").exists()
    assert [e.name for e in s.unformatted_entries(str(database_dir))] == ["f2.fa", "f4.fa"]


def test_format_command(database_dir, monkeypatch):
    write_file(database_dir / "sub" / "p.fasta", PROT_FASTA)
    run = fake_makeblastdb()
    monkeypatch.setattr(scanner_mod.subprocess, "run", run)

    s = DatabaseScanner(makeblastdb_exe="/opt/blast/bin/makeblastdb", show_progress=False)
    report = s.format_all(s.scan(str(database_dir)))

    assert report.ok
    path = str(database_dir / "sub" / "p.fasta")
    assert run.calls == [[
        "/opt/blast/bin/makeblastdb", "-in", path, "-out", path, "-dbtype", "prot",
        "-parse_seqids", "-hash_index", "-title", "p",
    ]]


def test_format_skips_unknown_alphabet(tmp_path, monkeypatch):
    run = fake_makeblastdb()
    monkeypatch.setattr(scanner_mod.subprocess, "run", run)
    entry = DatabaseEntry(str(write_file(tmp_path / "h.fa", ">x\n")), Alphabet.UNKNOWN, EntryState.RAW)

    report = DatabaseScanner(show_progress=False).format_all([entry])

    assert report.succeeded == []
    assert len(report.failed) == 1
    assert run.calls == []


def test_entries_frame(populated):
    entries = DatabaseScanner().scan(str(populated))
    df = entries_frame(entries, str(populated))
    assert list(df.columns) == ["title", "type", "state", "path"]
    assert df["path"].tolist() == ["a.fa", "formatted.fa", os.path.join("db", "nt"), os.path.join("sub", "p.fasta")]
    assert df["state"].tolist() == ["raw", "formatted", "formatted", "raw"]
