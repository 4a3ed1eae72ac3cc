"""Threaded HTTP transport bridging the stdlib server to the router."""

import socket
import ssl
import sys
import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

from easysrv.domain.http_types import Request
from easysrv.domain.logger import Logger, component_logger
from easysrv.lifecycle.state import ServerLifecycle
from easysrv.pipeline.router import Router
from easysrv.pipeline.wrapper import TransportHandler
from easysrv.transport.connection_limiter import ConnectionLimiter

TRANSPORT_LOGGER = component_logger("transport")

ACCEPT_POLL_SECONDS = 0.5
MAX_LINE_BYTES = 65536

CONNECTION_ERROR_EVENT = 12
REDIRECT_EVENT = 13
ROUTE_MATCHED_EVENT = 14


def format_address(client_address) -> str:
    """Render a socket address as ``host:port`` with IPv6 hosts bracketed."""
    host, port = client_address[0], client_address[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class _HandlerWriter:
    """ResponseWriter writing through a BaseHTTPRequestHandler."""

    def __init__(self, handler: "EasyRequestHandler") -> None:
        self._handler = handler
        self._headers: dict[str, tuple[str, str]] = {}
        self.status_code: Optional[int] = None

    def set_header(self, key: str, value: str) -> None:
        self._headers[key.lower()] = (key, value)

    def write_header(self, code: int) -> None:
        if self.status_code is not None:
            return
        self.status_code = code
        self._handler.send_response(code)
        for key, value in self._headers.values():
            self._handler.send_header(key, value)
        if self._handler.server.lifecycle.is_draining():
            self._handler.send_header("Connection", "close")
        self._handler.end_headers()

    def write(self, data: bytes) -> None:
        if self.status_code is None:
            self.write_header(200)
        self._handler.wfile.write(data)


class EasyRequestHandler(BaseHTTPRequestHandler):
    """Per-connection handler dispatching every request through the router."""

    server: "EasyHTTPServer"  # type: ignore[assignment]
    protocol_version = "HTTP/1.1"
    server_version = "easysrv"
    timeout = None

    def setup(self) -> None:
        self.server.configure_connection(self.request)
        super().setup()

    def handle(self) -> None:
        self.close_connection = True
        self._serve_one()
        while not self.close_connection:
            self.connection.settimeout(self.server.idle_timeout)
            self._serve_one()

    def _serve_one(self) -> None:
        lifecycle = self.server.lifecycle
        if not lifecycle.mark_idle(self.connection):
            self.close_connection = True
            return
        try:
            self.handle_one_request()
        finally:
            lifecycle.mark_busy(self.connection)

    def parse_request(self) -> bool:
        self.server.lifecycle.mark_busy(self.connection)
        self.connection.settimeout(self.server.http_timeout)
        return super().parse_request()

    def __getattr__(self, name: str):
        # Every method goes through the router so unknown methods get 404/405.
        if name.startswith("do_"):
            return self._dispatch
        raise AttributeError(name)

    # pylint: disable=redefined-builtin
    def log_message(self, format: str, *args) -> None:
        TRANSPORT_LOGGER.debug(
            format % args, extra={"fields": {"client": self.address_string()}}
        )

    def log_error(self, format: str, *args) -> None:
        TRANSPORT_LOGGER.warning(
            format % args, extra={"fields": {"client": self.address_string()}}
        )

    def _build_request(self) -> Request:
        headers: dict[str, str] = {}
        for name, value in self.headers.items():
            headers.setdefault(name.lower(), value)

        target = urllib.parse.urlsplit(self.path)
        return Request(
            method=self.command,
            uri=self.path,
            path=urllib.parse.unquote(target.path) or "/",
            headers=headers,
            remote_addr=format_address(self.client_address),
            query=urllib.parse.parse_qs(target.query, keep_blank_values=True),
        )

    def _read_body(self, request: Request) -> bytes:
        transfer_encoding = request.header("transfer-encoding", "")
        if transfer_encoding:
            if transfer_encoding.strip().lower() != "chunked":
                raise ValueError(f"Unsupported transfer coding {transfer_encoding!r}")
            if request.header("content-length", ""):
                raise ValueError("Both Transfer-Encoding and Content-Length set")
            return self._read_chunked_body()

        content_length = int(request.header("content-length", "0"))
        if content_length < 0:
            raise ValueError("Negative Content-Length")
        return self.rfile.read(content_length) if content_length else b""

    def _read_chunked_body(self) -> bytes:
        """Decode a chunked body and discard any trailer fields."""
        chunks = []
        while True:
            size_line = self.rfile.readline(MAX_LINE_BYTES + 1)
            if len(size_line) > MAX_LINE_BYTES or not size_line.endswith(b"\r\n"):
                raise ValueError("Malformed chunk size line")
            size = int(size_line.split(b";", 1)[0].strip(), 16)
            if size < 0:
                raise ValueError("Negative chunk size")
            if size == 0:
                break
            chunk = self.rfile.read(size)
            if len(chunk) != size or self.rfile.read(2) != b"\r\n":
                raise ValueError("Truncated chunk")
            chunks.append(chunk)

        while True:
            trailer = self.rfile.readline(MAX_LINE_BYTES + 1)
            if len(trailer) > MAX_LINE_BYTES or not trailer.endswith(b"\n"):
                raise ValueError("Malformed chunk trailer")
            if trailer in (b"\r\n", b"\n"):
                return b"".join(chunks)

    def _dispatch(self) -> None:
        server = self.server
        request = self._build_request()
        try:
            request.body = self._read_body(request)
        except ValueError:
            self.close_connection = True
            server.bad_request_handler(_HandlerWriter(self), request)
            return

        match = server.router.match(request.method, request.path)
        if match.redirect_to is not None:
            self._redirect(request, match.redirect_to)
            return

        server.logger.debug(
            server.seid + ROUTE_MATCHED_EVENT,
            "Route matched",
            {"route": match.name, "method": request.method, "path": request.path},
        )
        request.vars = match.vars
        writer = _HandlerWriter(self)
        if match.allowed:
            writer.set_header("Allow", ", ".join(match.allowed))
        match.handler(writer, request)

    def _redirect(self, request: Request, location: str) -> None:
        query = urllib.parse.urlsplit(request.uri).query
        if query:
            location = f"{location}?{query}"
        self.server.logger.debug(
            self.server.seid + REDIRECT_EVENT,
            "Redirecting to canonical path",
            {"from": request.path, "to": location},
        )
        writer = _HandlerWriter(self)
        writer.set_header("Location", location)
        writer.set_header("Content-Length", "0")
        writer.write_header(301)


class EasyHTTPServer(ThreadingHTTPServer):
    """ThreadingHTTPServer with an accept-time connection cap and drain support."""

    daemon_threads = True
    block_on_close = False
    allow_reuse_port = False
    timeout = ACCEPT_POLL_SECONDS

    def __init__(
        self,
        server_address: tuple[str, int],
        router: Router[TransportHandler],
        bad_request_handler: TransportHandler,
        lifecycle: ServerLifecycle,
        logger: Logger,
        seid: int = 0,
        http_timeout: float = 60,
        idle_timeout: float = 60,
        max_concurrent: int = 0,
        tls_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        if ":" in server_address[0]:
            self.address_family = socket.AF_INET6
        self.router = router
        self.bad_request_handler = bad_request_handler
        self.lifecycle = lifecycle
        self.logger = logger
        self.seid = seid
        self.http_timeout = http_timeout
        self.idle_timeout = idle_timeout
        self.limiter = ConnectionLimiter(max_concurrent)
        self.tls_context = tls_context
        super().__init__(server_address, EasyRequestHandler)

    def get_request(self):
        while not self.limiter.acquire(timeout=ACCEPT_POLL_SECONDS):
            if self.lifecycle.should_stop():
                raise OSError("server is shutting down")
        try:
            connection, client_address = super().get_request()
        except OSError:
            self.limiter.release()
            raise
        if self.tls_context is not None:
            try:
                connection = self.tls_context.wrap_socket(
                    connection, server_side=True, do_handshake_on_connect=False
                )
            except OSError:
                connection.close()
                self.limiter.release()
                raise
        return connection, client_address

    def configure_connection(self, connection: socket.socket) -> None:
        """Apply the request timeout and finish the TLS handshake, if any."""
        connection.settimeout(self.http_timeout)
        if isinstance(connection, ssl.SSLSocket):
            connection.do_handshake()

    def process_request(self, request, client_address) -> None:
        thread = threading.Thread(
            target=self.process_request_thread,
            args=(request, client_address),
            daemon=self.daemon_threads,
        )
        self.lifecycle.register_worker(thread)
        thread.start()

    def process_request_thread(self, request, client_address) -> None:
        try:
            super().process_request_thread(request, client_address)
        finally:
            self.lifecycle.cleanup_worker(threading.current_thread())

    def shutdown_request(self, request) -> None:
        try:
            super().shutdown_request(request)
        finally:
            self.limiter.release()

    def handle_error(self, request, client_address) -> None:
        TRANSPORT_LOGGER.debug(
            "Connection error detail",
            extra={"fields": {"client": format_address(client_address)}},
            exc_info=True,
        )
        error = sys.exc_info()[1]
        self.logger.error(
            self.seid + CONNECTION_ERROR_EVENT,
            "Error handling client connection",
            {
                "src": format_address(client_address),
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )

    def serve(self) -> None:
        """Accept connections until the lifecycle requests a stop."""
        try:
            while not self.lifecycle.should_stop():
                self.handle_request()
        finally:
            self.server_close()
            self.lifecycle.mark_serving_done()
