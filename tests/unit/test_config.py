"""Unit tests for server configuration and functional options."""

import pytest

from easysrv.bootstrap.config import (
    DEFAULT_HTTP_IDLE_TIMEOUT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LISTEN,
    DEFAULT_MAX_CONCURRENT,
    ServerConfig,
    apply_options,
    parse_listen,
    with_debug,
    with_down_file,
    with_health_handler,
    with_http_idle_timeout,
    with_http_timeout,
    with_listen,
    with_logger,
    with_max_concurrent,
    with_seid,
    with_strict_slash,
    with_tls,
    with_tls_cert_file,
    with_tls_key_file,
)
from easysrv.domain.errors import ConfigError
from easysrv.domain.http_types import Request, Route
from easysrv.domain.response_builders import ok_response
from easysrv.server import new_server
from tests.utils.events import RecordingLogger


def test_server_config_defaults() -> None:
    """A bare config carries the documented defaults."""

    config = ServerConfig()

    assert config.listen == DEFAULT_LISTEN == "127.0.0.1:8080"
    assert config.http_timeout == DEFAULT_HTTP_TIMEOUT == 60
    assert config.http_idle_timeout == DEFAULT_HTTP_IDLE_TIMEOUT == 60
    assert config.max_concurrent == DEFAULT_MAX_CONCURRENT == 100
    assert config.health_handler is True
    assert config.test_handler is False
    assert config.strict_slash is False
    assert config.default_headers is True
    assert config.tls is False
    assert config.tls_strong_ciphers is True
    assert config.seid == 0
    assert config.logger is None
    assert config.routes == []
    assert config.headers == []


def test_options_apply_in_order() -> None:
    """Later options overwrite the values set by earlier ones."""

    config = apply_options(
        ServerConfig(),
        [
            with_listen("0.0.0.0:9000"),
            with_http_timeout(5),
            with_http_idle_timeout(7),
            with_max_concurrent(0),
            with_down_file("/tmp/down"),
            with_seid(1000),
            with_health_handler(False),
            with_strict_slash(True),
            with_debug(True),
            with_listen("127.0.0.1:9001"),
        ],
    )

    assert config.listen == "127.0.0.1:9001"
    assert config.http_timeout == 5
    assert config.http_idle_timeout == 7
    assert config.max_concurrent == 0
    assert config.down_file == "/tmp/down"
    assert config.seid == 1000
    assert config.health_handler is False
    assert config.strict_slash is True
    assert config.debug is True


@pytest.mark.parametrize(
    "option",
    [
        with_http_timeout(0),
        with_http_idle_timeout(-1),
        with_max_concurrent(-5),
        with_seid(-1),
        with_listen("no-port-here"),
        with_listen("127.0.0.1:70000"),
    ],
)
def test_invalid_option_values_raise_config_error(option) -> None:
    """Each validating option rejects out-of-range input."""

    with pytest.raises(ConfigError):
        option(ServerConfig())


def test_first_failing_option_short_circuits() -> None:
    """Options after a failing one are never applied."""

    applied = []

    def record(config: ServerConfig) -> None:
        applied.append(config)

    with pytest.raises(ConfigError):
        new_server(with_seid(5), with_http_timeout(0), record)

    assert applied == []


def test_new_server_applies_options() -> None:
    """new_server builds a config from defaults plus options."""

    logger = RecordingLogger()
    server = new_server(
        with_logger(logger),
        with_tls(True),
        with_tls_cert_file("cert.pem"),
        with_tls_key_file("key.pem"),
    )

    assert server.logger is logger
    assert server.config.tls is True
    assert server.config.tls_cert_file == "cert.pem"
    assert server.config.tls_key_file == "key.pem"
    assert server.address is None


def test_registry_appends_routes_and_headers_in_order() -> None:
    """Routes and headers accumulate in registration order."""

    def handler(_request: Request):
        return ok_response()

    server = new_server()
    first = Route("first", "GET", "/a", handler)
    second = Route("second", "POST", "/b", handler)
    third = Route("third", "", "/c", handler)

    server.add_route(first)
    server.add_routes([second, third])
    server.add_header("X-One", "1")
    server.add_header("X-Two", "2")

    assert server.config.routes == [first, second, third]
    assert [(h.key, h.value) for h in server.config.headers] == [
        ("X-One", "1"),
        ("X-Two", "2"),
    ]


def test_set_logger_replaces_logger() -> None:
    """set_logger swaps the logger used on start."""

    server = new_server()
    logger = RecordingLogger()
    server.set_logger(logger)

    assert server.logger is logger


@pytest.mark.parametrize(
    "listen, expected",
    [
        ("127.0.0.1:8080", ("127.0.0.1", 8080)),
        (":8080", ("", 8080)),
        ("localhost:0", ("localhost", 0)),
        ("[::1]:8443", ("::1", 8443)),
        ("", ("", 80)),
    ],
)
def test_parse_listen(listen: str, expected) -> None:
    """Listen addresses split into bindable host and port."""

    assert parse_listen(listen) == expected


def test_parse_listen_rejects_unknown_service_name() -> None:
    """Non-numeric ports must resolve as a known service."""

    with pytest.raises(ConfigError):
        parse_listen("127.0.0.1:not-a-real-service")
