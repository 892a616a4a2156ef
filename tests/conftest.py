import http.server
import json
import socket
import sys
import threading
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Headers every client adds on its own; echoing them only adds noise.
IGNORED_HEADERS = {"host", "connection", "accept", "accept-encoding", "user-agent", "content-length"}


class EchoHandler(http.server.BaseHTTPRequestHandler):
    """Echo the request back as JSON, with a few special paths."""

    protocol_version = "HTTP/1.1"

    def _read_body(self) -> str:
        length = int(self.headers.get("Content-Length") or 0)
        if length:
            return self.rfile.read(length).decode("utf-8")
        if self.headers.get("Transfer-Encoding", "").lower() == "chunked":
            chunks = []
            while True:
                size = int(self.rfile.readline().strip() or b"0", 16)
                if size == 0:
                    self.rfile.readline()
                    break
                chunks.append(self.rfile.read(size))
                self.rfile.readline()
            return b"".join(chunks).decode("utf-8")
        return ""

    def _send(self, status: int, payload: bytes, content_type: str, extra: list[tuple[str, str]] = ()) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(payload)))
        for key, value in extra:
            self.send_header(key, value)
        self.end_headers()
        self.wfile.write(payload)

    def _handle(self) -> None:
        path = self.path
        body = self._read_body()

        if path == "/drop":
            self.close_connection = True
            return
        if path == "/slow":
            time.sleep(1.0)
        if path == "/json-404":
            self._send(404, b'{"msg":"not found"}', "application/json")
            return
        if path == "/cookies":
            self._send(
                200,
                b"",
                "text/plain",
                [("Set-Cookie", "one=1"), ("Set-Cookie", "two=2")],
            )
            return
        if path == "/latin1":
            self._send(200, "café".encode("latin-1"), "text/plain; charset=latin-1")
            return

        headers = {
            key.lower(): value
            for key, value in self.headers.items()
            if key.lower() not in IGNORED_HEADERS
        }
        payload = json.dumps(
            {"method": self.command, "path": path, "headers": headers, "body": body},
            sort_keys=True,
        ).encode("utf-8")
        status = 404 if path == "/404" else 200
        self._send(status, payload, "application/json")

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_post = _handle

    def log_message(self, format: str, *args) -> None:  # noqa: N802
        return


class _Server(http.server.ThreadingHTTPServer):
    daemon_threads = True


@pytest.fixture(scope="session")
def local_server() -> str:
    server = _Server(("127.0.0.1", 0), EchoHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()


@pytest.fixture
def closed_port_url() -> str:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}/"


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    for name in (
        "XHTTP_BASE_URL",
        "XHTTP_TIMEOUT_MS",
        "XHTTP_USER_AGENT",
        "XHTTP_TRANSPORT",
        "XHTTP_MAX_WORKERS",
        "XHTTP_CHUNK_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
