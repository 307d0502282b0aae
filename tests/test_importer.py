import os
import zipfile

import pytest

from seqserve.errors import GenericIOError
from seqserve.importer import install_database_bundle


def make_bundle(path, members):
    with zipfile.ZipFile(path, "w") as zf:
        for m in members:
            zf.writestr(m, "")
    return str(path)


def test_single_folder_bundle(tmp_path, database_dir):
    zp = make_bundle(tmp_path / "bundle.zip", ["midori/midori.nsq", "midori/midori.nin", "midori/midori.nhr"])
    target = install_database_bundle(zp, str(database_dir))
    assert target == str(database_dir / "midori")
    assert sorted(os.listdir(target)) == ["midori.nhr", "midori.nin", "midori.nsq"]
    assert [n for n in os.listdir(database_dir) if n.startswith(".import_")] == []


def test_flat_bundle_uses_archive_name(tmp_path, database_dir):
    zp = make_bundle(tmp_path / "swissprot db.zip", ["sp.pin", "sp.phr", "sp.psq"])
    target = install_database_bundle(zp, str(database_dir))
    assert target == str(database_dir / "swissprot_db")
    assert os.path.isfile(os.path.join(target, "sp.psq"))


def test_existing_target(tmp_path, database_dir):
    zp = make_bundle(tmp_path / "b.zip", ["nt/nt.nal"])
    (database_dir / "nt").mkdir()
    (database_dir / "nt" / "old").write_text("")

    with pytest.raises(GenericIOError, match="already exists"):
        install_database_bundle(zp, str(database_dir))

    assert os.listdir(database_dir / "nt") == ["old"]
    assert [n for n in os.listdir(database_dir) if n.startswith(".import_")] == []


@pytest.mark.parametrize(
    "members,message",
    [
        ([], "empty"),
        (["seqs/a.fasta"], "No BLAST index files"),
    ],
)
def test_rejected_bundles(tmp_path, database_dir, members, message):
    zp = make_bundle(tmp_path / "b.zip", members)
    with pytest.raises(GenericIOError, match=message):
        install_database_bundle(zp, str(database_dir))
    assert os.listdir(database_dir) == []


def test_not_a_zip(tmp_path, database_dir):
    bad = tmp_path / "b.zip"
    bad.write_text("plain text")
    with pytest.raises(GenericIOError, match="Not a valid ZIP"):
        install_database_bundle(str(bad), str(database_dir))
    with pytest.raises(GenericIOError, match="not found"):
        install_database_bundle(str(tmp_path / "missing.zip"), str(database_dir))
