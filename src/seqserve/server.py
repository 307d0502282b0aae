"""Minimal HTTP front end.

Serves the list of available databases as JSON; the search UI itself lives
elsewhere.
"""

from __future__ import annotations

import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from .environment import Environment
from .errors import GenericIOError
from .scanner import entries_frame

logger = logging.getLogger("seqserve")


def databases_payload(env: Environment) -> list:
    return entries_frame(env.databases, env.database_dir).to_dict(orient="records")


def make_handler(env: Environment):
    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path.rstrip("/") in ("", "/databases"):
                body = json.dumps({"databases": databases_payload(env)}).encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
            else:
                self.send_error(404)

        def log_message(self, format, *args):
            logger.debug("%s - %s", self.address_string(), format % args)

    return Handler


def serve(env: Environment) -> int:
    try:
        httpd = ThreadingHTTPServer((env.host, env.port), make_handler(env))
    except OSError as e:
        raise GenericIOError(
            f"Could not start the server on {env.host}:{env.port}: {e}. "
            "Is another seqserve already running? Use -p to pick another port."
        ) from e
    print(f"** seqserve is ready at http://{env.host}:{env.port}", flush=True)
    print("   Press CTRL+C to quit.", flush=True)
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down.", flush=True)
    finally:
        httpd.server_close()
    return 0
