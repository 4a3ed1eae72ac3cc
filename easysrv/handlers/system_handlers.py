"""Built-in handlers for health checks, diagnostics and fallbacks."""

import os
from http import HTTPStatus

from easysrv.domain.http_types import Handler, Request, Response
from easysrv.domain.response_builders import (
    error_response,
    health_response,
    ok_response,
)


def is_down(down_file: str) -> bool:
    """Return True when the down-marker file is configured and present."""
    return bool(down_file) and os.path.exists(down_file)


def health_handler(down_file: str) -> Handler:
    """Return a health handler bound to the given down-marker path."""

    def handle_health(_request: Request) -> Response:
        return health_response(is_down(down_file))

    return handle_health


def handle_test(request: Request) -> Response:
    """Echo the optional ``id`` path variable back in the details field."""
    item_id = request.vars.get("id", "")
    if not item_id:
        return ok_response("no ID received")
    return ok_response(f"received ID {item_id}")


def handle_400(_request: Request) -> Response:
    return error_response(HTTPStatus.BAD_REQUEST, "bad request")


def handle_401(_request: Request) -> Response:
    return error_response(HTTPStatus.UNAUTHORIZED, "not authorized")


def handle_404(_request: Request) -> Response:
    return error_response(HTTPStatus.NOT_FOUND, "object does not exist")


def handle_405(_request: Request) -> Response:
    return error_response(HTTPStatus.METHOD_NOT_ALLOWED, "method not allowed")
