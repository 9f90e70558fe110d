from __future__ import annotations

"""
Launch strategies for ephemeral dependencies.

Each strategy attempts one way of obtaining a running instance and reports
a `LaunchFailure` (never an exception) when it cannot, so `LaunchChain` can
fall through to the next candidate in its configured order.
"""

import logging
import os
import shutil
import socket
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence, Union

from depstack.commands import run_cmd
from depstack.errors import LaunchFailed, StrategyUnavailable
from depstack.readiness import can_connect, wait_until


logger = logging.getLogger(__name__)

REDIS_CONTAINER_PORT = 6379
DEFAULT_REDIS_IMAGE = "redis:7-alpine"
CONTAINER_LABEL = "depstack.managed"
OWNER_HOST_LABEL = "depstack.owner-host"
OWNER_PID_LABEL = "depstack.owner-pid"
ENGINE_INFO_TIMEOUT_SEC = 20.0
CONTAINER_RUN_TIMEOUT_SEC = 300.0
PORT_MAPPING_TIMEOUT_SEC = 10.0
PORT_CHECK_TIMEOUT_SEC = 0.5


@dataclass(frozen=True)
class ProcessLaunch:
    process: subprocess.Popen
    port: int


@dataclass(frozen=True)
class ContainerLaunch:
    container_id: str
    mapped_port: int
    engine: str = "docker"

    @property
    def port(self) -> int:
        return self.mapped_port


@dataclass(frozen=True)
class LaunchFailure:
    reason: str


LaunchOutcome = Union[ProcessLaunch, ContainerLaunch, LaunchFailure]


def redis_server_args(port: int) -> list[str]:
    """Persistence-disabled server flags shared by local and container launches."""
    return ["--port", str(port), "--save", "", "--appendonly", "no"]


def owner_labels() -> list[str]:
    """Labels naming the host and process that own a container, used by stale sweeps."""
    return [
        "--label",
        f"{OWNER_HOST_LABEL}={socket.gethostname()}",
        "--label",
        f"{OWNER_PID_LABEL}={os.getpid()}",
    ]


class LaunchStrategy:
    name = "strategy"

    def attempt(self, port: int, prefix: str) -> LaunchOutcome:
        try:
            return self.launch(port, prefix)
        except StrategyUnavailable as exc:
            return LaunchFailure(str(exc))
        except (OSError, subprocess.SubprocessError) as exc:
            return LaunchFailure(f"failed to start: {exc}")

    def launch(self, port: int, prefix: str) -> ProcessLaunch | ContainerLaunch:
        raise NotImplementedError


class ProcessStrategy(LaunchStrategy):
    """Run a server binary directly, optionally behind a platform shim such as `cmd /C`."""

    def __init__(
        self,
        name: str,
        binary: str,
        *,
        argv_prefix: Sequence[str] = (),
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.name = name
        self.binary = binary
        self.argv_prefix = tuple(argv_prefix)
        self._which = which

    def command(self, port: int) -> list[str]:
        return [*self.argv_prefix, self.binary, *redis_server_args(port)]

    def launch(self, port: int, prefix: str) -> ProcessLaunch:
        for executable in (*self.argv_prefix[:1], self.binary):
            if self._which(executable) is None:
                raise StrategyUnavailable(f"{executable} not found on PATH")
        if can_connect("localhost", port, timeout=PORT_CHECK_TIMEOUT_SEC):
            raise StrategyUnavailable(f"port {port} is already in use by another server")
        process = subprocess.Popen(
            self.command(port),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        return ProcessLaunch(process=process, port=port)


def parse_port_mapping(output: str) -> int | None:
    """
    Extract the host port from `docker port <id> <port>/tcp` output.

    The engine prints one `address:port` row per binding, e.g.
    `127.0.0.1:54321` or `[::]:54321`; the first parseable row wins.
    """
    for line in output.splitlines():
        item = line.strip()
        if ":" not in item:
            continue
        _, _, port_text = item.rpartition(":")
        try:
            return int(port_text)
        except ValueError:
            continue
    return None


class ContainerStrategy(LaunchStrategy):
    """Start a throwaway container through the engine CLI and resolve its mapped port."""

    name = "container"

    def __init__(
        self,
        image: str = DEFAULT_REDIS_IMAGE,
        *,
        container_port: int = REDIS_CONTAINER_PORT,
        engine: str = "docker",
        run: Callable[..., subprocess.CompletedProcess[str]] = run_cmd,
        which: Callable[[str], str | None] = shutil.which,
        port_mapping_timeout: float = PORT_MAPPING_TIMEOUT_SEC,
    ) -> None:
        self.image = image
        self.container_port = container_port
        self.engine = engine
        self._run = run
        self._which = which
        self.port_mapping_timeout = port_mapping_timeout

    def run_command(self, prefix: str) -> list[str]:
        return [
            self.engine,
            "run",
            "-d",
            "--rm",
            "-p",
            f"127.0.0.1::{self.container_port}",
            "--label",
            f"{CONTAINER_LABEL}=true",
            "--label",
            f"depstack.prefix={prefix}",
            *owner_labels(),
            self.image,
            "redis-server",
            *redis_server_args(self.container_port),
        ]

    def _ensure_engine(self) -> None:
        if self._which(self.engine) is None:
            raise StrategyUnavailable(f"{self.engine} not found on PATH")
        info = self._run(
            [self.engine, "info", "--format", "{{.ServerVersion}}"],
            check=False,
            timeout=ENGINE_INFO_TIMEOUT_SEC,
        )
        if info.returncode != 0:
            detail = (info.stderr or info.stdout or "").strip()
            raise StrategyUnavailable(f"{self.engine} engine unreachable: {detail}")

    def _mapped_port(self, container_id: str) -> int | None:
        result = self._run(
            [self.engine, "port", container_id, f"{self.container_port}/tcp"],
            check=False,
            timeout=ENGINE_INFO_TIMEOUT_SEC,
        )
        if result.returncode != 0:
            return None
        return parse_port_mapping(result.stdout or "")

    def launch(self, port: int, prefix: str) -> ContainerLaunch:
        self._ensure_engine()
        result = self._run(self.run_command(prefix), check=False, timeout=CONTAINER_RUN_TIMEOUT_SEC)
        lines = (result.stdout or "").strip().splitlines()
        if result.returncode != 0 or not lines:
            detail = (result.stderr or "").strip()
            raise StrategyUnavailable(f"{self.engine} run {self.image} failed: {detail}")
        container_id = lines[-1].strip()
        try:
            mapped_port = wait_until(
                lambda: self._mapped_port(container_id),
                timeout_sec=self.port_mapping_timeout,
                poll_sec=0.2,
                description=f"port mapping of container {container_id[:12]}",
            )
        except TimeoutError as exc:
            self._run([self.engine, "rm", "-f", container_id], check=False, timeout=ENGINE_INFO_TIMEOUT_SEC)
            raise StrategyUnavailable(str(exc)) from exc
        logger.info(
            "Container %s started; requested port %d is served on host port %d",
            container_id[:12],
            port,
            mapped_port,
        )
        return ContainerLaunch(container_id=container_id, mapped_port=mapped_port, engine=self.engine)


class LaunchChain:
    """Ordered fallback list of launch strategies."""

    def __init__(self, strategies: Sequence[LaunchStrategy]) -> None:
        self.strategies = list(strategies)

    @property
    def names(self) -> list[str]:
        return [strategy.name for strategy in self.strategies]

    def launch(self, port: int, prefix: str = "") -> ProcessLaunch | ContainerLaunch:
        failures: list[tuple[str, str]] = []
        for strategy in self.strategies:
            outcome = strategy.attempt(port, prefix)
            if isinstance(outcome, LaunchFailure):
                logger.info("Launch strategy %s unavailable: %s", strategy.name, outcome.reason)
                failures.append((strategy.name, outcome.reason))
                continue
            logger.info("Launched via %s strategy", strategy.name)
            return outcome
        raise LaunchFailed(failures)
