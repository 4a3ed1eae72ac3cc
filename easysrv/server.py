"""Embeddable HTTP server assembled from functional options."""

import threading
import time
from typing import Iterable, Optional

from easysrv.bootstrap.config import (
    DEFAULT_HEADERS,
    SHUTDOWN_GRACE_SECONDS,
    Option,
    ServerConfig,
    apply_options,
    parse_listen,
)
from easysrv.bootstrap.logging_setup import new_event_logger
from easysrv.bootstrap.tls import create_tls_context
from easysrv.domain.errors import (
    ServerNotRunningError,
    ServerStateError,
    ShutdownError,
)
from easysrv.domain.http_types import Header, Route
from easysrv.domain.logger import Logger
from easysrv.handlers.system_handlers import (
    handle_400,
    handle_404,
    handle_405,
    handle_test,
    health_handler,
)
from easysrv.lifecycle.state import LifecycleState, ServerLifecycle
from easysrv.pipeline.router import Router
from easysrv.pipeline.wrapper import Wrapper
from easysrv.transport.http_server import EasyHTTPServer, format_address

STARTING_EVENT = 1
LISTENING_EVENT = 2
STOPPING_EVENT = 3
STOPPED_EVENT = 4
GRACE_EXCEEDED_EVENT = 5


class EasyServer:
    """An HTTP/1.1 server with JSON envelopes, access logging and a health probe.

    Routes, headers and the logger may be changed until ``start`` is called.
    ``start`` blocks the calling thread until another thread calls ``stop``.
    """

    def __init__(self, config: Optional[ServerConfig] = None) -> None:
        self.config = config if config is not None else ServerConfig()
        self.lifecycle = ServerLifecycle()
        self._server: Optional[EasyHTTPServer] = None
        self._stop_lock = threading.Lock()

    @property
    def logger(self) -> Optional[Logger]:
        return self.config.logger

    @property
    def address(self) -> Optional[tuple[str, int]]:
        """The bound (host, port) once listening, otherwise None."""
        if self._server is None:
            return None
        return self._server.server_address[:2]

    def set_logger(self, logger: Logger) -> None:
        self.config.logger = logger

    def add_header(self, key: str, value: str) -> None:
        """Add a header applied to every response."""
        self.config.headers.append(Header(key, value))

    def add_route(self, route: Route) -> None:
        self.config.routes.append(route)

    def add_routes(self, routes: Iterable[Route]) -> None:
        self.config.routes.extend(routes)

    def wait_started(self, timeout: float) -> bool:
        """Block until the listener is bound and serving, or the timeout passes."""
        return self.lifecycle.wait_running(timeout)

    def start(self) -> None:
        """Bind the listener and serve until ``stop`` is called.

        Raises ConfigError for bad TLS material, an unopenable log file or an
        invalid route pattern, OSError when the address cannot be bound and
        ServerStateError when the server was already started.
        """
        config = self.config
        state = self.lifecycle.state
        if state is not LifecycleState.UNSTARTED:
            raise ServerStateError(f"server cannot start from state {state.value}")

        if config.logger is None:
            config.logger = new_event_logger(
                config.log_file, config.debug, config.log_json
            )
        logger = config.logger
        seid = config.seid
        logger.info(seid + STARTING_EVENT, "Starting server", {"listen": config.listen})

        # Built-ins stay out of config so a failed start can be retried.
        headers = list(config.headers)
        if config.default_headers:
            headers.extend(DEFAULT_HEADERS)
        routes = list(config.routes)
        if config.health_handler:
            routes.append(
                Route("health", "GET", "/health", health_handler(config.down_file))
            )
        if config.test_handler:
            routes.extend(
                [
                    Route("test", "GET", "/test", handle_test),
                    Route("test", "GET", "/test/{id}", handle_test),
                ]
            )

        wrapper = Wrapper(headers, logger, seid)
        router = Router(
            wrapper.wrap("Handler404", handle_404),
            wrapper.wrap("Handler405", handle_405),
            strict_slash=config.strict_slash,
        )
        for route in routes:
            router.add(
                route.name,
                route.method,
                route.pattern,
                wrapper.wrap(route.name, route.handler),
            )

        tls_context = None
        if config.tls:
            tls_context = create_tls_context(
                config.tls_cert_file, config.tls_key_file, config.tls_strong_ciphers
            )

        server = EasyHTTPServer(
            parse_listen(config.listen),
            router,
            wrapper.wrap("Handler400", handle_400),
            self.lifecycle,
            logger,
            seid=seid,
            http_timeout=config.http_timeout,
            idle_timeout=config.http_idle_timeout,
            max_concurrent=config.max_concurrent,
            tls_context=tls_context,
        )
        self._server = server
        logger.info(
            seid + LISTENING_EVENT,
            "Server listening",
            {
                "address": format_address(server.server_address),
                "tls": config.tls,
                "max_concurrent": config.max_concurrent,
                "routes": len(router),
            },
        )
        try:
            self.lifecycle.mark_running()
        except ServerStateError:
            # stop() won the race; serve() never runs to release the socket.
            server.server_close()
            self.lifecycle.mark_serving_done()
            raise
        server.serve()

    def stop(self) -> None:
        """Stop accepting connections and drain in-flight requests.

        Waits up to the shutdown grace period; raises ShutdownError when
        requests are still running after it.
        """
        if self._server is None:
            raise ServerNotRunningError("server is not running")

        with self._stop_lock:
            logger = self.config.logger
            seid = self.config.seid
            deadline = time.monotonic() + SHUTDOWN_GRACE_SECONDS
            logger.info(
                seid + STOPPING_EVENT,
                "Stopping server",
                {"grace_seconds": SHUTDOWN_GRACE_SECONDS},
            )
            self.lifecycle.begin_draining()

            serving_done = self.lifecycle.wait_serving_done(
                max(0.0, deadline - time.monotonic())
            )
            idle_closed = self.lifecycle.close_idle_connections()
            workers_done = self.lifecycle.wait_for_workers(
                max(0.0, deadline - time.monotonic())
            )
            self.lifecycle.mark_stopped()

            if not (serving_done and workers_done):
                active = self.lifecycle.active_worker_count()
                logger.warning(
                    seid + GRACE_EXCEEDED_EVENT,
                    "Shutdown grace period exceeded",
                    {"active_connections": active},
                )
                raise ShutdownError(
                    f"server shutdown error: {active} connections still active "
                    f"after {SHUTDOWN_GRACE_SECONDS}s"
                )

            logger.info(
                seid + STOPPED_EVENT,
                "Server stopped",
                {"idle_closed": idle_closed},
            )


def new_server(*options: Option) -> EasyServer:
    """Build a server from defaults and ordered options.

    The first option to raise ConfigError aborts construction.
    """
    return EasyServer(apply_options(ServerConfig(), options))
