"""Pure response envelope builders and serialization."""

import dataclasses
import json
from http import HTTPStatus
from typing import Any

from easysrv.domain.http_types import Response

JSON_HEADERS = {
    "Content-Type": "application/json; charset=UTF-8",
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "-1",
}


def ok_response(details: str = "", data: Any = None) -> Response:
    """Return a 200 envelope with optional details and payload."""
    return Response("ok", int(HTTPStatus.OK), details, data)


def error_response(code: int, message: str) -> Response:
    """Return an error envelope for the given status code."""
    return Response("error", int(code), message)


def health_response(is_down: bool) -> Response:
    """Produce a health check envelope based on the down-marker state."""
    if is_down:
        return Response(
            "down", int(HTTPStatus.SERVICE_UNAVAILABLE), "server is shutting down"
        )
    return Response("ok", int(HTTPStatus.OK), "health check ok")


def _encode_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_response(response: Response) -> bytes:
    """Serialize the envelope as a newline-terminated JSON document.

    Raises TypeError or ValueError when the payload cannot be encoded.
    """
    document = json.dumps(response.to_dict(), default=_encode_default)
    return f"{document}\n".encode("utf-8")
