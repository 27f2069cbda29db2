import io
import socket
import threading
import time

import pytest

from fileserver import FileServer, ServerConfig


PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x01\xff\xfe"


@pytest.fixture
def site_root(tmp_path):
    """Document root with a few files, plus a secret file next to it."""
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_bytes(b"<h1>Hi</h1>")
    (root / "style.css").write_bytes(b"body{}")
    (root / "app.js").write_bytes(b"console.log(1);")
    (root / "logo.png").write_bytes(PNG_BYTES)
    (root / "data.unknownext").write_bytes(b"\x00\x01\x02")
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_bytes(b"<p>docs</p>")
    (root / "empty").mkdir()
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return root


@pytest.fixture
def start_server(site_root):
    """Start FileServer instances in background threads on ephemeral ports."""
    running = []

    def start(prefix="http://127.0.0.1:0/", **kwargs):
        stream = io.StringIO()
        config = ServerConfig.create(str(site_root), prefix, **kwargs)
        server = FileServer(config, stream=stream)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        assert server.started.wait(5), "server did not start"
        running.append((server, thread))
        return server, stream

    yield start

    for server, thread in running:
        server.stop()
        thread.join(5)


def wait_for_log(stream, text, timeout=3.0):
    """The status line is written after the connection closes, so poll for it."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if text in stream.getvalue():
            return stream.getvalue()
        time.sleep(0.02)
    raise AssertionError(f"{text!r} not found in log:\n{stream.getvalue()}")


def raw_request(port, data, timeout=5.0):
    """Send raw bytes and read the whole response until the server closes."""
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)
