"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional


@dataclass
class Request:
    """Represents an inbound request as seen by application handlers."""

    method: str
    uri: str
    path: str
    headers: dict[str, str]
    body: bytes = b""
    remote_addr: str = ""
    query: dict[str, list[str]] = field(default_factory=dict)
    vars: dict[str, str] = field(default_factory=dict)

    def header(self, name: str, default: str = "") -> str:
        """Return a request header value, matching the name case-insensitively."""
        return self.headers.get(name.lower(), default)


@dataclass
class Response:
    """Uniform JSON envelope returned by every handler.

    ``headers`` is not serialized; it lets a handler override individual
    response headers after the configured defaults are applied.
    """

    status: str
    code: int
    details: str = ""
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the envelope in wire order with empty optional fields omitted."""
        payload: dict[str, Any] = {"status": self.status, "code": self.code}
        if self.details:
            payload["details"] = self.details
        if self.data is not None:
            payload["data"] = self.data
        return payload


Handler = Callable[[Request], Response]


@dataclass(frozen=True)
class Route:
    """Binding of a named method and path pattern to a handler."""

    name: str
    method: str
    pattern: str
    handler: Handler


@dataclass(frozen=True)
class Header:
    """Default response header applied before the handler runs."""

    key: str
    value: str


def split_host_port(address: str) -> tuple[str, Optional[str]]:
    """Split ``host:port`` handling bracketed IPv6 literals."""
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else None
        return host, port or None
    if address.count(":") == 1:
        host, port = address.split(":", 1)
        return host, port
    return address, None
