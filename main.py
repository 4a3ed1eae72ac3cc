"""Example easysrv server with a help route and signal-driven shutdown."""

import signal
import sys
import threading

from easysrv.bootstrap.config import options_from_args, parse_cli_args
from easysrv.domain.errors import EasySrvError
from easysrv.domain.http_types import Request, Response, Route
from easysrv.domain.response_builders import ok_response
from easysrv.server import EasyServer, new_server


def handle_help(_request: Request) -> Response:
    return ok_response("This is a help message")


class _Stopper:
    """Runs server.stop() off the signal-handling thread."""

    def __init__(self, server: EasyServer) -> None:
        self._server = server
        self._thread = None
        self.error = None

    def request_stop(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        # stop() waits for the accept loop, which runs on the main thread.
        self._thread = threading.Thread(target=self._stop, name="easysrv-stop")
        self._thread.start()

    def _stop(self) -> None:
        self.error = None
        try:
            self._server.stop()
        except EasySrvError as exc:
            self.error = exc

    def join(self) -> None:
        if self._thread is not None:
            self._thread.join()


def main(argv: list[str]) -> int:
    """Run the example server until SIGTERM or SIGINT."""
    args = parse_cli_args(argv)
    try:
        server = new_server(*options_from_args(args))
    except EasySrvError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        return 2

    server.add_route(Route("help", "GET", "/help", handle_help))
    stopper = _Stopper(server)

    def shutdown_handler(_signum: int, _frame) -> None:
        stopper.request_stop()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    try:
        server.start()
    except (EasySrvError, OSError) as exc:
        print(f"server failed: {exc}", file=sys.stderr)
        return 1

    stopper.join()
    if stopper.error is not None:
        print(f"shutdown failed: {stopper.error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
