from __future__ import annotations

import subprocess
import sys
import threading
from dataclasses import dataclass, field

from depstack.errors import StrategyUnavailable
from depstack.strategies import ContainerLaunch, LaunchStrategy, ProcessStrategy


LISTENER_SCRIPT = (
    "import socket, sys, time\n"
    "sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)\n"
    "sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)\n"
    "sock.bind(('127.0.0.1', int(sys.argv[1])))\n"
    "sock.listen(16)\n"
    "print('listening on', sys.argv[1], flush=True)\n"
    "print('stderr-banner', file=sys.stderr, flush=True)\n"
    "time.sleep(120)\n"
)

SILENT_SCRIPT = "import time; time.sleep(120)"

CRASHING_SCRIPT = (
    "import sys\n"
    "print('FATAL: Address already in use', file=sys.stderr, flush=True)\n"
    "sys.exit(1)\n"
)


def python_path(_name: str) -> str:
    return sys.executable


class PythonListenerStrategy(ProcessStrategy):
    """Runs a tiny Python TCP listener in place of a real server binary."""

    def __init__(self, name: str = "native", *, script: str = LISTENER_SCRIPT) -> None:
        super().__init__(name, sys.executable, which=python_path)
        self.script = script
        self.launched: list[subprocess.Popen] = []

    def command(self, port: int) -> list[str]:
        return [sys.executable, "-c", self.script, str(port)]

    def launch(self, port: int, prefix: str):
        outcome = super().launch(port, prefix)
        self.launched.append(outcome.process)
        return outcome


class UnavailableStrategy(LaunchStrategy):
    def __init__(self, name: str, reason: str = "not installed") -> None:
        self.name = name
        self.reason = reason
        self.attempts = 0

    def launch(self, port: int, prefix: str):
        self.attempts += 1
        raise StrategyUnavailable(self.reason)


class FixedContainerStrategy(LaunchStrategy):
    """Pretends a container engine remapped the requested port to `mapped_port`."""

    name = "container"

    def __init__(self, mapped_port: int, container_id: str = "c0ffee0000000000") -> None:
        self.mapped_port = mapped_port
        self.container_id = container_id
        self.requested: list[int] = []

    def launch(self, port: int, prefix: str) -> ContainerLaunch:
        self.requested.append(port)
        return ContainerLaunch(container_id=self.container_id, mapped_port=self.mapped_port)


@dataclass
class CountingResource:
    terminations: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)

    def terminate(self) -> None:
        with self.lock:
            self.terminations += 1


class FailingResource:
    def terminate(self) -> None:
        raise OSError("kill failed")


@dataclass
class FakeRunner:
    """Records engine CLI invocations and replays canned results keyed by subcommand."""

    responses: dict[str, subprocess.CompletedProcess[str]]
    calls: list[list[str]] = field(default_factory=list)

    def __call__(self, cmd: list[str], **_kwargs) -> subprocess.CompletedProcess[str]:
        self.calls.append(list(cmd))
        result = self.responses.get(cmd[1])
        if result is None:
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        return result

    def subcommands(self) -> list[str]:
        return [call[1] for call in self.calls]


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(["docker"], returncode, stdout=stdout, stderr=stderr)
