"""Server configuration, functional options and CLI argument parsing."""

import argparse
import socket
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from easysrv.domain.errors import ConfigError
from easysrv.domain.http_types import Header, Route, split_host_port
from easysrv.domain.logger import Logger

DEFAULT_LISTEN = "127.0.0.1:8080"
DEFAULT_HTTP_TIMEOUT = 60
DEFAULT_HTTP_IDLE_TIMEOUT = 60
DEFAULT_MAX_CONCURRENT = 100
SHUTDOWN_GRACE_SECONDS = 10
HTTP_PORT = 80

DEFAULT_HEADERS = (
    Header("Cache-Control", "no-cache, no-store, must-revalidate"),
    Header("Pragma", "no-cache"),
    Header("Expires", "0"),
)


@dataclass
class ServerConfig:
    """Every tunable of a server; mutate only before start."""

    listen: str = DEFAULT_LISTEN
    http_timeout: int = DEFAULT_HTTP_TIMEOUT
    http_idle_timeout: int = DEFAULT_HTTP_IDLE_TIMEOUT
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    log_file: str = ""
    down_file: str = ""
    health_handler: bool = True
    test_handler: bool = False
    strict_slash: bool = False
    default_headers: bool = True
    tls: bool = False
    tls_cert_file: str = ""
    tls_key_file: str = ""
    tls_strong_ciphers: bool = True
    debug: bool = False
    log_json: bool = False
    seid: int = 0
    logger: Optional[Logger] = None
    headers: list[Header] = field(default_factory=list)
    routes: list[Route] = field(default_factory=list)


Option = Callable[[ServerConfig], None]


def parse_listen(listen: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address into a bindable tuple.

    An empty address binds every interface on the http port; the port may be
    numeric or a service name.
    """
    if not listen:
        return "", HTTP_PORT
    host, port = split_host_port(listen)
    if port is None:
        raise ConfigError(f"listen address {listen!r} has no port")
    if port.isdigit():
        number = int(port)
    else:
        try:
            number = socket.getservbyname(port)
        except OSError as exc:
            raise ConfigError(f"unknown port {port!r} in listen address") from exc
    if not 0 <= number <= 65535:
        raise ConfigError(f"port {number} out of range in listen address")
    return host, number


def apply_options(config: ServerConfig, options: Iterable[Option]) -> ServerConfig:
    """Apply options in order; the first ConfigError stops the sequence."""
    for option in options:
        option(config)
    return config


def _require_positive(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")


def _require_non_negative(name: str, value: int) -> None:
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")


def with_logger(logger: Logger) -> Option:
    def option(config: ServerConfig) -> None:
        config.logger = logger

    return option


def with_listen(listen: str) -> Option:
    def option(config: ServerConfig) -> None:
        parse_listen(listen)
        config.listen = listen

    return option


def with_http_timeout(seconds: int) -> Option:
    def option(config: ServerConfig) -> None:
        _require_positive("http timeout", seconds)
        config.http_timeout = seconds

    return option


def with_http_idle_timeout(seconds: int) -> Option:
    def option(config: ServerConfig) -> None:
        _require_positive("http idle timeout", seconds)
        config.http_idle_timeout = seconds

    return option


def with_max_concurrent(max_concurrent: int) -> Option:
    def option(config: ServerConfig) -> None:
        _require_non_negative("max concurrent", max_concurrent)
        config.max_concurrent = max_concurrent

    return option


def with_log_file(log_file: str) -> Option:
    def option(config: ServerConfig) -> None:
        config.log_file = log_file

    return option


def with_down_file(down_file: str) -> Option:
    def option(config: ServerConfig) -> None:
        config.down_file = down_file

    return option


def with_seid(seid: int) -> Option:
    def option(config: ServerConfig) -> None:
        _require_non_negative("seid", seid)
        config.seid = seid

    return option


def with_health_handler(enabled: bool) -> Option:
    def option(config: ServerConfig) -> None:
        config.health_handler = enabled

    return option


def with_test_handler(enabled: bool) -> Option:
    def option(config: ServerConfig) -> None:
        config.test_handler = enabled

    return option


def with_strict_slash(enabled: bool) -> Option:
    def option(config: ServerConfig) -> None:
        config.strict_slash = enabled

    return option


def with_default_headers(enabled: bool) -> Option:
    def option(config: ServerConfig) -> None:
        config.default_headers = enabled

    return option


def with_tls(enabled: bool) -> Option:
    def option(config: ServerConfig) -> None:
        config.tls = enabled

    return option


def with_tls_cert_file(cert_file: str) -> Option:
    def option(config: ServerConfig) -> None:
        config.tls_cert_file = cert_file

    return option


def with_tls_key_file(key_file: str) -> Option:
    def option(config: ServerConfig) -> None:
        config.tls_key_file = key_file

    return option


def with_tls_strong_ciphers(enabled: bool) -> Option:
    def option(config: ServerConfig) -> None:
        config.tls_strong_ciphers = enabled

    return option


def with_debug(enabled: bool) -> Option:
    def option(config: ServerConfig) -> None:
        config.debug = enabled

    return option


def with_log_json(enabled: bool) -> Option:
    def option(config: ServerConfig) -> None:
        config.log_json = enabled

    return option


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(description="easysrv example server")
    parser.add_argument("--listen", default=DEFAULT_LISTEN)
    parser.add_argument("--http-timeout", type=int, default=DEFAULT_HTTP_TIMEOUT)
    parser.add_argument(
        "--http-idle-timeout", type=int, default=DEFAULT_HTTP_IDLE_TIMEOUT
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=DEFAULT_MAX_CONCURRENT,
        help="Maximum concurrent connections (0 for unlimited)",
    )
    parser.add_argument(
        "--log-file", default="", help="Log file path (default: stdout)"
    )
    parser.add_argument(
        "--down-file",
        default="",
        help="Marker file whose presence makes /health report down",
    )
    parser.add_argument("--seid", type=int, default=0, help="Base log event id")
    parser.add_argument(
        "--health-handler", action=argparse.BooleanOptionalAction, default=True
    )
    parser.add_argument(
        "--test-handler", action=argparse.BooleanOptionalAction, default=False
    )
    parser.add_argument(
        "--strict-slash", action=argparse.BooleanOptionalAction, default=False
    )
    parser.add_argument(
        "--default-headers", action=argparse.BooleanOptionalAction, default=True
    )
    parser.add_argument("--tls", action=argparse.BooleanOptionalAction, default=False)
    parser.add_argument("--cert", default="", help="Path to TLS certificate file")
    parser.add_argument("--key", default="", help="Path to TLS private key file")
    parser.add_argument(
        "--strong-ciphers", action=argparse.BooleanOptionalAction, default=True
    )
    parser.add_argument("--debug", action=argparse.BooleanOptionalAction, default=False)
    parser.add_argument(
        "--log-json", action=argparse.BooleanOptionalAction, default=False
    )
    return parser.parse_args(argv)


def options_from_args(args: argparse.Namespace) -> list[Option]:
    """Translate parsed CLI arguments into an ordered option list."""
    return [
        with_listen(args.listen),
        with_http_timeout(args.http_timeout),
        with_http_idle_timeout(args.http_idle_timeout),
        with_max_concurrent(args.max_concurrent),
        with_log_file(args.log_file),
        with_down_file(args.down_file),
        with_seid(args.seid),
        with_health_handler(args.health_handler),
        with_test_handler(args.test_handler),
        with_strict_slash(args.strict_slash),
        with_default_headers(args.default_headers),
        with_tls(args.tls),
        with_tls_cert_file(args.cert),
        with_tls_key_file(args.key),
        with_tls_strong_ciphers(args.strong_ciphers),
        with_debug(args.debug),
        with_log_json(args.log_json),
    ]
