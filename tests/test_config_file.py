import json
from pathlib import Path

import pytest

from seqserve.config_file import default_config_path, load_config_file, write_config_file
from seqserve.errors import ConfigFileError
from seqserve.options import parse_options


def test_write_and_load(context):
    intent = parse_options(["-d", "~/dbs", "-b", "blast/bin", "-p", "8000", "--set", "-l"])
    path = write_config_file(intent, context)

    assert path == default_config_path(context)
    assert load_config_file(path) == {
        "bin_dir": str(Path(context.cwd) / "blast" / "bin"),
        "database_dir": str(Path(context.home) / "dbs"),
        "port": 8000,
    }
    assert not path.with_name(path.name + ".tmp").exists()


def test_write_keeps_existing_values(context):
    path = default_config_path(context)
    path.write_text(json.dumps({"host": "0.0.0.0", "port": 80}))

    write_config_file(parse_options(["-p", "8080", "-s"]), context)

    assert json.loads(path.read_text()) == {"host": "0.0.0.0", "port": 8080}


def test_explicit_config_file(context):
    path = write_config_file(parse_options(["-c", "my.conf", "-n", "4", "-s"]), context)
    assert path == Path(context.cwd) / "my.conf"
    assert load_config_file(path, required=True) == {"num_threads": 4}


def test_missing_file(tmp_path):
    assert load_config_file(tmp_path / "none.conf") == {}
    with pytest.raises(ConfigFileError, match="not found"):
        load_config_file(tmp_path / "none.conf", required=True)


def test_unknown_keys_are_ignored(tmp_path, caplog):
    path = tmp_path / "c.conf"
    path.write_text(json.dumps({"port": 1234, "colour": "blue", "host": None}))
    assert load_config_file(path) == {"port": 1234}
    assert "colour" in caplog.text


@pytest.mark.parametrize("text", ["{not json", "[1, 2]"])
def test_invalid_file(tmp_path, text):
    path = tmp_path / "c.conf"
    path.write_text(text)
    with pytest.raises(ConfigFileError):
        load_config_file(path)
