import json
import socket
import threading
import urllib.error
import urllib.request
from http.server import ThreadingHTTPServer

import pytest

from seqserve import server
from seqserve.commands import CommandDispatcher
from seqserve.environment import Environment, InitializationOutcome
from seqserve.options import parse_options
from seqserve.pipeline import PipelineResult
from seqserve.scanner import DatabaseScanner
from seqserve.server import databases_payload, make_handler

from conftest import make_formatted_db


@pytest.fixture()
def env(database_dir):
    make_formatted_db(database_dir, "nt")
    make_formatted_db(database_dir / "prot", "sp", (".pin", ".phr", ".psq"))
    return Environment(database_dir=str(database_dir), databases=DatabaseScanner().formatted_entries(str(database_dir)))


def test_databases_payload(env):
    assert databases_payload(env) == [
        {"title": "nt", "type": "nucleotide", "state": "formatted", "path": "nt"},
        {"title": "sp", "type": "protein", "state": "formatted", "path": "prot/sp"},
    ]


def test_http_endpoint(env):
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), make_handler(env))
    t = threading.Thread(target=httpd.serve_forever, daemon=True)
    t.start()
    base = f"http://127.0.0.1:{httpd.server_address[1]}"
    try:
        with urllib.request.urlopen(base + "/databases") as resp:
            data = json.loads(resp.read())
        assert [d["title"] for d in data["databases"]] == ["nt", "sp"]
        with pytest.raises(urllib.error.HTTPError) as err:
            urllib.request.urlopen(base + "/search")
        assert err.value.code == 404
    finally:
        httpd.shutdown()
        httpd.server_close()


def test_port_in_use(env, context, caplog):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen(1)
        env.host, env.port = sock.getsockname()
        result = PipelineResult(intent=parse_options([]), environment=env, outcome=InitializationOutcome.Ready(env))

        assert CommandDispatcher(result, context, serve=server.serve).dispatch() == 1

    assert f"Could not start the server on 127.0.0.1:{env.port}" in caplog.text
    assert "Use -p to pick another port." in caplog.text
