#!/usr/bin/env python3
"""
Single-Process Static File Server Using Socket Programming

This server serves files from a sandboxed document root over plain HTTP/1.1:
- One request handled at a time, one request per connection
- Path confinement to the document root (traversal neutralized, symlinks checked)
- Default document for directory-like paths
- Content type detection from the file extension
- One status line per request on standard output
- Accept loop that polls every 500ms so Ctrl+C / SIGTERM stop it promptly

Query parameters, request bodies and headers are logged only; they never
change the response.

Python Version: 3.8+
"""

import argparse
import errno
import logging
import mimetypes
import os
import posixpath
import select
import signal
import socket
import stat
import sys
import threading
from email.utils import formatdate
from typing import Dict, List, NamedTuple, Optional, Tuple
from urllib.parse import parse_qsl, unquote, urlsplit


DEFAULT_PREFIX = "http://localhost:8080/"
DEFAULT_DOCUMENT = "index.html"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
SERVER_NAME = "fileserver/1.0"

POLL_INTERVAL = 0.5  # seconds between checks of the stop flag
CLIENT_TIMEOUT = 10
LISTEN_BACKLOG = 50
MAX_LINE_BYTES = 8192
MAX_HEADERS = 100
MAX_BODY_BYTES = 10 * 1024 * 1024

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
REQUEST_LOG_FORMAT = "%(asctime)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

STATUS_MESSAGES = {
    100: "Continue",
    200: "OK",
    404: "Not Found",
    500: "Internal Server Error",
}

# Checked before the mimetypes registry, which differs between platforms.
CONTENT_TYPES = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".txt": "text/plain",
    ".xml": "application/xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".wasm": "application/wasm",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
}


class FileServerError(Exception):
    """Base class for server errors."""


class StartupFault(FileServerError):
    """The server could not be configured or could not bind its listener."""


class ProcessingFault(FileServerError):
    """A request could not be read, resolved, loaded or answered."""


class ServerConfig(NamedTuple):
    """Startup configuration. Immutable for the lifetime of the process."""

    root: str
    prefix: str = DEFAULT_PREFIX
    default_document: str = DEFAULT_DOCUMENT
    verbose: bool = False
    log_file: Optional[str] = None

    @classmethod
    def create(cls, root: Optional[str] = None, prefix: str = DEFAULT_PREFIX,
               default_document: str = DEFAULT_DOCUMENT, verbose: bool = False,
               log_file: Optional[str] = None) -> "ServerConfig":
        """
        Build a configuration with the root normalized to an absolute, real path.

        Args:
            root: Document root (default: current working directory)
            prefix: Bind URI such as http://localhost:8080/
            default_document: File served for paths ending in '/'
            verbose: Include request headers in the request log
            log_file: Optional file that receives a copy of the log

        Returns:
            ServerConfig instance
        """
        if root is None:
            root = os.getcwd()
        return cls(os.path.realpath(os.path.expanduser(root)), prefix,
                   default_document, verbose, log_file)


class ResolvedTarget(NamedTuple):
    filesystem_path: str
    exists: bool


def parse_prefix(prefix: str) -> Tuple[str, int, str]:
    """
    Split a bind prefix into host, port and base path.

    Wildcard hosts ('+' and '*') bind every interface. https prefixes are
    accepted because TLS is terminated outside this process.

    Args:
        prefix: Bind URI, e.g. http://localhost:8080/ or http://+:80/site/

    Returns:
        (host, port, base_path) with base_path always ending in '/'
    """
    parts = urlsplit(prefix)
    if parts.scheme not in ("http", "https"):
        raise StartupFault(f"Unsupported prefix scheme: {prefix!r}")

    try:
        port = parts.port
    except ValueError as e:
        raise StartupFault(f"Invalid port in prefix {prefix!r}: {e}") from e
    if port is None:
        port = 443 if parts.scheme == "https" else 80

    host = parts.hostname
    if not host:
        raise StartupFault(f"Missing host in prefix: {prefix!r}")
    if host in ("+", "*"):
        host = ""

    base_path = parts.path or "/"
    if not base_path.startswith("/"):
        base_path = "/" + base_path
    if not base_path.endswith("/"):
        base_path += "/"

    return host, port, base_path


def is_within_root(path: str, root: str) -> bool:
    """Return True if path is root itself or a descendant of it."""
    try:
        return os.path.commonpath([root, path]) == root
    except ValueError:
        # Different drives on Windows
        return False


def resolve_target(url_path: str, root: str, default_document: str = DEFAULT_DOCUMENT,
                   base_path: str = "/") -> ResolvedTarget:
    """
    Map a decoded URL path to a file confined to the document root.

    The path is normalized as an absolute path before it touches the
    filesystem, so '..' segments can never climb above the namespace root.
    The real path (symlinks followed) must still be inside root, otherwise
    the target is reported as missing.

    Args:
        url_path: URL-decoded request path, starting with '/'
        root: Absolute, real path of the document root
        default_document: Filename appended to paths ending in '/'
        base_path: Path of the bind prefix; only URLs under it are served

    Returns:
        ResolvedTarget; exists is True only for a regular file
    """
    if not url_path.startswith(base_path):
        return ResolvedTarget(root, False)

    relative = url_path[len(base_path):]
    if url_path.endswith("/"):
        relative += default_document

    normalized = posixpath.normpath("/" + relative).lstrip("/")
    if "\x00" in normalized:
        return ResolvedTarget(root, False)

    candidate = os.path.realpath(os.path.join(root, *normalized.split("/")))
    if not is_within_root(candidate, root):
        return ResolvedTarget(candidate, False)

    try:
        st = os.stat(candidate)
    except OSError as e:
        if e.errno in (errno.ENOENT, errno.ENOTDIR, errno.ENAMETOOLONG, errno.ELOOP):
            return ResolvedTarget(candidate, False)
        raise

    return ResolvedTarget(candidate, stat.S_ISREG(st.st_mode))


def load_content(filesystem_path: str) -> bytes:
    """Read a whole file. Read errors become ProcessingFault, never 'not found'."""
    try:
        with open(filesystem_path, "rb") as f:
            return f.read()
    except OSError as e:
        raise ProcessingFault(f"Error reading {filesystem_path}: {e}") from e


def guess_content_type(path: str) -> str:
    """Return the content type for a path, falling back to application/octet-stream."""
    ext = os.path.splitext(path)[1].lower()
    if ext in CONTENT_TYPES:
        return CONTENT_TYPES[ext]

    mime_type, encoding = mimetypes.guess_type(path, strict=False)
    if mime_type and not encoding:
        return mime_type
    return DEFAULT_CONTENT_TYPE


def get_header(headers: Dict[str, str], name: str, default: str = "") -> str:
    """Case-insensitive header lookup."""
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return default


def _read_line(rfile) -> bytes:
    line = rfile.readline(MAX_LINE_BYTES + 1)
    if len(line) > MAX_LINE_BYTES:
        raise ProcessingFault("Request line or header too long")
    return line


def _read_exact(rfile, length: int) -> bytes:
    data = rfile.read(length)
    if len(data) < length:
        raise ProcessingFault(f"Connection closed after {len(data)} of {length} body bytes")
    return data


def _read_chunked(rfile) -> bytes:
    chunks = []
    total = 0
    while True:
        size_line = _read_line(rfile)
        if not size_line:
            raise ProcessingFault("Connection closed inside chunked body")
        try:
            size = int(size_line.split(b";", 1)[0].strip(), 16)
        except ValueError:
            raise ProcessingFault(f"Invalid chunk size: {size_line!r}")
        if size == 0:
            break
        total += size
        if total > MAX_BODY_BYTES:
            raise ProcessingFault(f"Request body exceeds {MAX_BODY_BYTES} bytes")
        chunks.append(_read_exact(rfile, size))
        _read_line(rfile)

    # Trailers are discarded
    while True:
        line = _read_line(rfile)
        if line in (b"\r\n", b"\n", b""):
            break

    return b"".join(chunks)


def read_request(client_socket: socket.socket) -> Optional[Dict]:
    """
    Read and parse one HTTP request from a connected socket.

    Args:
        client_socket: Accepted client connection

    Returns:
        Request dictionary, or None if the client closed without sending anything

    Raises:
        ProcessingFault: The request is malformed or incomplete
    """
    with client_socket.makefile("rb") as rfile:
        request_line = _read_line(rfile)
        if not request_line:
            return None

        parts = request_line.decode("iso-8859-1").split()
        if len(parts) != 3 or not parts[2].startswith("HTTP/"):
            raise ProcessingFault(f"Malformed request line: {request_line!r}")
        method, target, version = parts

        headers: Dict[str, str] = {}
        while True:
            line = _read_line(rfile)
            if not line:
                raise ProcessingFault("Connection closed before end of headers")
            if line in (b"\r\n", b"\n"):
                break
            if len(headers) >= MAX_HEADERS:
                raise ProcessingFault("Too many headers")

            text = line.decode("iso-8859-1").rstrip("\r\n")
            if ":" not in text:
                continue
            key, value = text.split(":", 1)
            key, value = key.strip(), value.strip()
            if key in headers:
                headers[key] = f"{headers[key]}, {value}"
            else:
                headers[key] = value

        chunked = get_header(headers, "transfer-encoding").lower() == "chunked"
        length = 0
        if not chunked:
            length_header = get_header(headers, "content-length", "0")
            try:
                length = int(length_header)
            except ValueError:
                raise ProcessingFault(f"Invalid Content-Length: {length_header!r}")
            if length < 0:
                raise ProcessingFault(f"Invalid Content-Length: {length_header!r}")
            if length > MAX_BODY_BYTES:
                raise ProcessingFault(f"Request body exceeds {MAX_BODY_BYTES} bytes")

        # Only acknowledge Expect when a body will actually be read
        if (chunked or length) and get_header(headers, "expect").lower() == "100-continue":
            client_socket.sendall(b"HTTP/1.1 100 Continue\r\n\r\n")

        if chunked:
            body = _read_chunked(rfile)
        else:
            body = _read_exact(rfile, length) if length else b""

    url = urlsplit(target)
    return {
        "method": method,
        "target": target,
        "path": unquote(url.path),
        "query": parse_qsl(url.query, keep_blank_values=True),
        "version": version,
        "headers": headers,
        "body": body or None,
    }


def format_request_line(request: Dict, status_code: int, verbose: bool = False) -> str:
    """
    Format the per-request status line (the timestamp is added by the log formatter).

    Args:
        request: Parsed request dictionary
        status_code: Final status code sent to the client
        verbose: Append every request header on its own indented block

    Returns:
        '<status> <method> <path>[ k=v&...][ body][\\n  [Header]\\n    value...]'
    """
    line = f"{status_code} {request['method']} {request['path']}"

    query: List[Tuple[str, str]] = request.get("query") or []
    if query:
        line += " " + "&".join(f"{key}={value}" for key, value in query)

    body = request.get("body")
    if body is not None:
        line += " " + body.decode("utf-8", errors="replace")

    if verbose:
        for name, value in request.get("headers", {}).items():
            line += f"\n  [{name}]\n    {value}"

    return line


class FileServer:
    """
    Static file server that handles one request at a time.

    The listening socket is owned by serve_forever() and always closed there;
    stop() only clears the running flag, which the accept loop checks at
    least every POLL_INTERVAL seconds.
    """

    def __init__(self, config: ServerConfig, stream=None):
        """
        Initialize the server.

        Args:
            config: Startup configuration
            stream: Output stream for log lines (default: sys.stdout)
        """
        self.config = config
        self.running = False
        self.port: Optional[int] = None
        self.base_path = "/"
        self.started = threading.Event()

        self._setup_logging(stream if stream is not None else sys.stdout)

    def _setup_logging(self, stream):
        """Configure the server logger and the request logger."""
        self.logger = logging.getLogger("fileserver")
        self.request_logger = logging.getLogger("fileserver.requests")

        for logger, log_format in ((self.logger, LOG_FORMAT),
                                   (self.request_logger, REQUEST_LOG_FORMAT)):
            formatter = logging.Formatter(log_format, DATE_FORMAT)
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()

            console_handler = logging.StreamHandler(stream)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

            if self.config.log_file:
                file_handler = logging.FileHandler(self.config.log_file, mode="a")
                file_handler.setFormatter(formatter)
                logger.addHandler(file_handler)

            logger.setLevel(logging.INFO)
            logger.propagate = False

    def install_signal_handlers(self):
        """Stop the server on SIGINT/SIGTERM. Must be called from the main thread."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        self.logger.info(f"Received signal {signum}, stopping...")
        self.stop()

    def stop(self):
        """Ask the accept loop to exit after the current poll interval or request."""
        self.running = False

    def _bind(self) -> socket.socket:
        """
        Validate the configuration and create the listening socket.

        Returns:
            Bound, listening, non-blocking socket

        Raises:
            StartupFault: Bad root or prefix, or the bind failed
        """
        if not os.path.isdir(self.config.root):
            raise StartupFault(f"Root is not a directory: {self.config.root}")
        if not self.config.default_document:
            raise StartupFault("Default document must not be empty")

        host, port, self.base_path = parse_prefix(self.config.prefix)
        if urlsplit(self.config.prefix).scheme == "https":
            self.logger.warning("https prefix: TLS must be terminated in front of this server")

        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        listener = socket.socket(family, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((host, port))
            listener.listen(LISTEN_BACKLOG)
            listener.setblocking(False)
        except OSError as e:
            listener.close()
            raise StartupFault(f"Cannot bind {self.config.prefix}: {e}") from e

        self.port = listener.getsockname()[1]
        return listener

    def serve_forever(self):
        """
        Bind, then accept and handle connections until stop() is called.

        Raises:
            StartupFault: The listener could not be set up
        """
        self.logger.info(f"Root: {self.config.root}")
        self.logger.info(f"Prefix: {self.config.prefix}")
        self.logger.info(f"Default: {self.config.default_document}")

        self.running = True
        try:
            with self._bind() as listener:
                self.logger.info(f"Started (listening on port {self.port})")
                self.started.set()

                while self.running:
                    ready, _, _ = select.select([listener], [], [], POLL_INTERVAL)
                    if not ready:
                        continue

                    try:
                        client_socket, client_address = listener.accept()
                    except (BlockingIOError, ConnectionAbortedError):
                        continue

                    self._handle_connection(client_socket, client_address)
        except Exception as e:
            self.logger.error(f"Error: {e}")
            raise
        finally:
            self.running = False
            self.logger.info("Stopped")

    def _handle_connection(self, client_socket: socket.socket, client_address: Tuple):
        """
        Read one request, answer it, close the connection, then log the status line.

        Faults are answered with 500 when nothing was sent yet; they never
        leave this method.

        Args:
            client_socket: Accepted client connection
            client_address: Client address tuple (host, port, ...)
        """
        connection_id = f"{client_address[0]}:{client_address[1]}"
        request = None
        status_code = None
        responded = False

        try:
            client_socket.settimeout(CLIENT_TIMEOUT)
            request = read_request(client_socket)
            if request is None:
                self.logger.debug(f"Connection closed without a request: {connection_id}")
                return

            response = self._process_request(request)
            status_code = response["status_code"]
            self._send_response(client_socket, response)
            responded = True

        except Exception as e:
            self.logger.error(f"Error processing request from {connection_id}: {e}")
            if not responded:
                status_code = 500
                try:
                    self._send_response(client_socket, self._create_response(500))
                except OSError as send_error:
                    self.logger.error(f"Error sending 500 response to {connection_id}: {send_error}")
        finally:
            client_socket.close()

        if request is not None and status_code is not None:
            self._log_request(request, status_code)

    def _process_request(self, request: Dict) -> Dict:
        """Resolve the request path and build the response."""
        target = resolve_target(request["path"], self.config.root,
                                self.config.default_document, self.base_path)
        if not target.exists:
            return self._create_response(404)

        body = load_content(target.filesystem_path)
        return self._create_response(200, guess_content_type(target.filesystem_path), body)

    def _create_response(self, status_code: int, content_type: Optional[str] = None,
                         body: bytes = b"") -> Dict:
        return {
            "status_code": status_code,
            "content_type": content_type,
            "body": body,
        }

    def _send_response(self, client_socket: socket.socket, response: Dict):
        """
        Send an HTTP response to the client.

        Args:
            client_socket: Client socket connection
            response: Response dictionary
        """
        status_code = response["status_code"]
        body = response["body"]

        headers = {
            "Date": formatdate(usegmt=True),
            "Server": SERVER_NAME,
            "Content-Length": str(len(body)),
            "Connection": "close",
        }
        if status_code == 200 and response.get("content_type"):
            headers["Content-Type"] = response["content_type"]

        head = f"HTTP/1.1 {status_code} {STATUS_MESSAGES[status_code]}\r\n"
        for key, value in headers.items():
            head += f"{key}: {value}\r\n"
        head += "\r\n"

        client_socket.sendall(head.encode("iso-8859-1") + body)

    def _log_request(self, request: Dict, status_code: int):
        self.request_logger.info(format_request_line(request, status_code, self.config.verbose))


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the file server.
    Parses command line arguments and runs the server until interrupted.
    """
    parser = argparse.ArgumentParser(description="Serve static files from a document root")
    parser.add_argument("--root", default=None,
                        help="Document root (default: current directory)")
    parser.add_argument("--prefix", default=DEFAULT_PREFIX,
                        help=f"Bind URI (default: {DEFAULT_PREFIX})")
    parser.add_argument("--default", dest="default_document", default=DEFAULT_DOCUMENT,
                        help=f"Default document for paths ending in '/' (default: {DEFAULT_DOCUMENT})")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log request headers")
    parser.add_argument("--log-file", default=None,
                        help="Also append the log to this file")
    args = parser.parse_args(argv)

    config = ServerConfig.create(args.root, args.prefix, args.default_document,
                                 args.verbose, args.log_file)
    try:
        server = FileServer(config)
    except OSError as e:
        print(f"Error: {e}")
        return 1

    try:
        server.install_signal_handlers()
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except (FileServerError, OSError):
        # Already logged by serve_forever
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())


"""
===============================================================================
README - Static File Server
===============================================================================

## Running

```bash
# Serve the current directory on http://localhost:8080/
fileserver

# Serve ./site on all interfaces, port 8000, under /docs/
fileserver --root ./site --prefix http://+:8000/docs/

# Log request headers too, and keep a copy of the log
fileserver --verbose --log-file server.log
```

## Output

```
2026-10-19 12:00:00 [INFO] Root: /srv/site
2026-10-19 12:00:00 [INFO] Prefix: http://localhost:8080/
2026-10-19 12:00:00 [INFO] Default: index.html
2026-10-19 12:00:00 [INFO] Started (listening on port 8080)
2026-10-19 12:00:03 200 GET / x=1&y=2
2026-10-19 12:00:04 404 GET /missing.txt
2026-10-19 12:00:09 [INFO] Stopped
```

## Behaviour

- 200 with the file bytes, 404 when no regular file matches, 500 on any fault.
- A path ending in '/' serves the default document of that directory.
- '..' segments are clamped at the document root; symlinks leading out of
  the root are reported as 404.
- Requests are handled one at a time. Ctrl+C stops the server within half a
  second and releases the port.
- TLS is not handled here; put a TLS terminator in front for https prefixes.
"""
