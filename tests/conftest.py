"""Shared test fixtures."""

import base64
import email.message
import io
import os
import threading
import time
import urllib.error
import urllib.response
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock, patch

import pytest

from webfetch.config import reset_default_config


@pytest.fixture(autouse=True)
def clean_fetch_env(monkeypatch):
    """Start every test from built-in defaults, whatever the shell exports."""
    for key in list(os.environ):
        if key.startswith("WEBFETCH_"):
            monkeypatch.delenv(key, raising=False)
    reset_default_config()
    yield
    reset_default_config()


def _headers(content_type=None, extra=None):
    msg = email.message.Message()
    if content_type:
        msg["Content-Type"] = content_type
    for name, value in (extra or {}).items():
        msg[name] = value
    return msg


@pytest.fixture
def make_response():
    """Build a urllib-style response object."""

    def _make(status=200, body=b"", content_type="text/plain", url="http://example.com/", headers=None):
        return urllib.response.addinfourl(io.BytesIO(body), _headers(content_type, headers), url, status)

    return _make


@pytest.fixture
def make_http_error():
    """Build the HTTPError urllib raises for non-2xx statuses."""

    def _make(status, reason="Error", body=b"", content_type="text/html", url="http://example.com/"):
        return urllib.error.HTTPError(url, status, reason, _headers(content_type), io.BytesIO(body))

    return _make


@pytest.fixture
def fake_opener():
    """Patch the opener so `opener.open` side effects drive each attempt."""
    opener = MagicMock()
    with patch("webfetch.fetcher.build_opener", return_value=opener) as factory:
        opener.factory = factory
        yield opener


@pytest.fixture
def no_sleep():
    with patch("webfetch.fetcher.time.sleep") as sleep:
        yield sleep


_CHALLENGES = {
    "ntlm": "NTLM",
    "negotiate": "Negotiate",
    "bearer": 'Bearer realm="api"',
}


class _EchoHandler(BaseHTTPRequestHandler):
    """Tiny endpoint set used by the integration tests."""

    def log_message(self, format, *args):
        pass

    def _send(self, status, body=b"", content_type="text/plain; charset=utf-8", extra=None):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        for name, value in (extra or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        self.server.hits.append(self.path)
        if self.path == "/number":
            self._send(200, b"42")
        elif self.path == "/latin1":
            self._send(200, "café".encode("latin-1"), "text/plain; charset=iso-8859-1")
        elif self.path == "/headers":
            lines = [f"{k.lower()}: {v}" for k, v in self.headers.items()]
            self._send(200, "\n".join(lines).encode("utf-8"))
        elif self.path == "/redirect":
            self._send(302, extra={"Location": "/number"})
        elif self.path == "/slow":
            time.sleep(0.5)
            self._send(200, b"late")
        elif self.path == "/created":
            self._send(201, b"made")
        elif self.path == "/auth/basic":
            expected = "Basic " + base64.b64encode(b"CORP\\bob:pw").decode("ascii")
            if self.headers.get("Authorization") == expected:
                self._send(200, b"welcome")
            else:
                self._send(401, b"denied", extra={"WWW-Authenticate": 'Basic realm="test"'})
        elif self.path.startswith("/auth/"):
            challenge = _CHALLENGES[self.path.rsplit("/", 1)[1]]
            self._send(401, b"denied", extra={"WWW-Authenticate": challenge})
        else:
            self._send(404, b"missing")

    def do_POST(self):
        self.server.hits.append(self.path)
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        ctype = self.headers.get("Content-Type", "")
        self._send(200, body, extra={"X-Received-Content-Type": ctype})


@pytest.fixture
def local_server():
    """Run the echo endpoints on an ephemeral localhost port."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _EchoHandler)
    server.hits = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    server.base_url = f"http://{host}:{port}"
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
