"""Request-handling wrapper producing uniform JSON responses and access logs."""

import ipaddress
import time
from typing import Callable, Protocol, Sequence

from easysrv.domain.http_types import (
    Handler,
    Header,
    Request,
    Response,
    split_host_port,
)
from easysrv.domain.logger import Logger
from easysrv.domain.response_builders import JSON_HEADERS, encode_response

REQUEST_EVENT = 10
ENCODE_ERROR_EVENT = 11


class ResponseWriter(Protocol):
    """Transport-side sink for a single response."""

    def set_header(self, key: str, value: str) -> None: ...

    def write_header(self, code: int) -> None: ...

    def write(self, data: bytes) -> None: ...


TransportHandler = Callable[[ResponseWriter, Request], None]


def _strip_port(address: str) -> str:
    address = address.strip()
    if not address:
        return address
    try:
        ipaddress.ip_address(address)
        return address
    except ValueError:
        pass
    host, _ = split_host_port(address)
    return host


def get_client_ip(request: Request) -> str:
    """Return the client address with any trailing port removed.

    ``X-Forwarded-For`` wins over the transport remote address. When the
    header lists several hops the first (originating) entry is used.
    """
    forwarded = request.header("x-forwarded-for")
    if forwarded:
        for candidate in forwarded.split(","):
            if candidate.strip():
                return _strip_port(candidate)
    return _strip_port(request.remote_addr)


def clean_uri(uri: str) -> str:
    """Drop the query string so parameters never reach the logs."""
    return uri.split("?", 1)[0]


class Wrapper:
    """Adapts application handlers into transport handlers."""

    def __init__(self, headers: Sequence[Header], logger: Logger, seid: int = 0):
        self._headers = list(headers)
        self._logger = logger
        self._seid = seid

    def wrap(self, handler_name: str, handler: Handler) -> TransportHandler:
        """Return a transport handler that serves ``handler`` as JSON."""

        def serve(writer: ResponseWriter, request: Request) -> None:
            start_time = time.monotonic()
            src = get_client_ip(request)

            for header in self._headers:
                writer.set_header(header.key, header.value)

            response = handler(request)

            for key, value in response.headers.items():
                writer.set_header(key, value)
            for key, value in JSON_HEADERS.items():
                writer.set_header(key, value)

            code = int(response.code)
            body = self._encode(response, handler_name, request, src)

            writer.set_header("Content-Length", str(len(body)))
            writer.write_header(code)
            if request.method.upper() != "HEAD":
                writer.write(body)

            duration = time.monotonic() - start_time
            uri = clean_uri(request.uri)
            self._logger.info(
                self._seid + REQUEST_EVENT,
                f"{request.method} {uri} {code}",
                {
                    "src": src,
                    "method": request.method,
                    "uri": uri,
                    "code": code,
                    "handler": handler_name,
                    "duration": f"{duration:.4f}",
                },
            )

        return serve

    def _encode(
        self, response: Response, handler_name: str, request: Request, src: str
    ) -> bytes:
        try:
            return encode_response(response)
        except (TypeError, ValueError) as error:
            self._logger.error(
                self._seid + ENCODE_ERROR_EVENT,
                f"JSON encode error in {handler_name} handler: {error}",
                {
                    "src": src,
                    "method": request.method,
                    "uri": clean_uri(request.uri),
                    "handler": handler_name,
                    "error": str(error),
                },
            )
            return b""
