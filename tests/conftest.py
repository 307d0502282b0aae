import os
import subprocess

import pytest

from seqserve.console import Prompter
from seqserve.context import RunContext


NUCL_FASTA = ">seq1 first\nACGTACGTACGTTTGA\nACGTNACGT\n>seq2\nGGGCCCAAATTT\n"
PROT_FASTA = ">prot1\nMKVLAAGIVLLSTWQ\n>prot2\nMSTNPKPQRKTKRN\n"


@pytest.fixture()
def context(tmp_path):
    """Isolated process state: cwd and home live under tmp_path."""
    cwd = tmp_path / "work"
    home = tmp_path / "home"
    cwd.mkdir()
    home.mkdir()
    return RunContext(cwd=str(cwd), home=str(home), environ={"PATH": ""}, platform="linux", machine="x86_64")


@pytest.fixture()
def database_dir(tmp_path):
    d = tmp_path / "dbs"
    d.mkdir()
    return d


def write_file(path, text=""):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def make_formatted_db(directory, prefix="nt", exts=(".nin", ".nhr", ".nsq")):
    for ext in exts:
        write_file(directory / f"{prefix}{ext}")


def scripted_prompter(*responses):
    """Prompter answering with ``responses`` in order; exception classes are raised."""
    queue = list(responses)
    asked = []

    def input_fn(text):
        asked.append(text)
        r = queue.pop(0)
        if isinstance(r, type) and issubclass(r, BaseException):
            raise r()
        return r

    prompter = Prompter(input_fn=input_fn)
    prompter.asked = asked
    return prompter


def fake_makeblastdb(fail_names=()):
    """Stand-in for subprocess.run running makeblastdb.

    Writes index files for the -out prefix, or fails (leaving a partial index)
    when the input file name is in ``fail_names``.
    """
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        src = cmd[cmd.index("-in") + 1]
        out = cmd[cmd.index("-out") + 1]
        letter = "n" if cmd[cmd.index("-dbtype") + 1] == "nucl" else "p"
        if os.path.basename(src) in fail_names:
            write_file_path(out + f".{letter}hr")
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="BLAST options error: bad input\n")
        for ext in ("in", "hr", "sq", "og", "os", "hi"):
            write_file_path(out + f".{letter}{ext}")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    run.calls = calls
    return run


def write_file_path(p):
    with open(p, "w"):
        pass
