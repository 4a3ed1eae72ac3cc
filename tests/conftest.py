"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Generator, List, Optional, Sequence, TypedDict

import pytest

from easysrv.bootstrap.config import Option, with_listen, with_logger
from easysrv.domain.errors import ServerNotRunningError
from easysrv.domain.http_types import Route
from easysrv.server import EasyServer, new_server
from tests.utils.events import RecordingLogger
from tests.utils.http import reserve_port, wait_for_port

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"


@dataclass
class RunningServer:
    """An in-process server started on a background thread."""

    server: EasyServer
    thread: threading.Thread
    logger: RecordingLogger
    errors: List[BaseException] = field(default_factory=list)

    @property
    def host(self) -> str:
        return self.server.address[0]

    @property
    def port(self) -> int:
        return self.server.address[1]

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def stop(self) -> None:
        self.server.stop()
        self.thread.join(timeout=5)


ServerFactory = Callable[..., RunningServer]


def _run_in_background(
    server: EasyServer,
) -> tuple[threading.Thread, List[BaseException]]:
    errors: List[BaseException] = []

    def run() -> None:
        try:
            server.start()
        except Exception as exc:  # pylint: disable=broad-except
            errors.append(exc)

    thread = threading.Thread(target=run, name="easysrv-test", daemon=True)
    thread.start()
    return thread, errors


@pytest.fixture()
def start_server() -> Generator[ServerFactory, None, None]:
    """Start EasyServer instances on ephemeral ports; stop them afterwards."""

    running: List[RunningServer] = []

    def factory(
        *options: Option,
        routes: Sequence[Route] = (),
        headers: Sequence[tuple[str, str]] = (),
    ) -> RunningServer:
        logger = RecordingLogger()
        server = new_server(with_listen("127.0.0.1:0"), with_logger(logger), *options)
        server.add_routes(routes)
        for key, value in headers:
            server.add_header(key, value)
        thread, errors = _run_in_background(server)
        if not server.wait_started(5):
            thread.join(timeout=1)
            raise RuntimeError(f"server did not start: {errors}")
        instance = RunningServer(server, thread, logger, errors)
        running.append(instance)
        return instance

    yield factory

    for instance in running:
        if instance.thread.is_alive():
            try:
                instance.stop()
            except ServerNotRunningError:
                pass


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    process: subprocess.Popen
    log_file: Optional[Path]


def _launch_server(
    host: str,
    port: int,
    extra_args: Optional[List[str]] = None,
    log_file: Optional[Path] = None,
) -> Generator[ServerProcessInfo, None, None]:
    args = [sys.executable, str(SERVER_ENTRYPOINT), "--listen", f"{host}:{port}"]
    if log_file:
        args.extend(["--log-file", str(log_file)])
    if extra_args:
        args.extend(extra_args)

    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(host, port)
        except Exception:
            # If startup failed, print stdout/stderr to help debug
            process.terminate()
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            raise

        yield {
            "base_url": f"http://{host}:{port}",
            "host": host,
            "port": port,
            "process": process,
            "log_file": log_file,
        }

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=15)
            except subprocess.TimeoutExpired:
                process.kill()


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="server_process")
def _server_process(tmp_path: Path) -> Generator[ServerProcessInfo, None, None]:
    """Launch the example entrypoint in a background process."""

    host = "127.0.0.1"
    port = reserve_port(host)
    log_file = tmp_path / "server.log"
    extra_args = ["--test-handler", "--down-file", str(tmp_path / "down")]
    yield from _launch_server(host, port, extra_args, log_file=log_file)
