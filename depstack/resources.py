from __future__ import annotations

"""
Owned OS resources and the lock-guarded slot that releases them exactly once.

A `ResourceSlot` is the only place an owned process or container is
terminated. `release()` takes the resource and clears the validity flag in
one critical section, then terminates outside the lock, so concurrent or
repeated callers issue at most one terminate.
"""

import logging
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import Protocol

from depstack.commands import run_cmd
from depstack.errors import CommandError


logger = logging.getLogger(__name__)

PROCESS_EXIT_WAIT_SEC = 5.0
CONTAINER_REMOVE_TIMEOUT_SEC = 60.0


class OwnedResource(Protocol):
    def terminate(self) -> None: ...


def spawn_placeholder(message: str) -> subprocess.Popen[bytes]:
    """Start a short-lived process whose only output is `message`."""
    return subprocess.Popen(
        [sys.executable, "-c", "import sys; print(sys.argv[1])", message],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


@dataclass
class ProcessResource:
    process: subprocess.Popen

    def alive(self) -> bool:
        return self.process.poll() is None

    def terminate(self) -> None:
        proc = self.process
        if proc.stdin is not None and not proc.stdin.closed:
            try:
                proc.stdin.close()
            except OSError:
                pass
        if proc.poll() is None:
            proc.kill()
        proc.wait(timeout=PROCESS_EXIT_WAIT_SEC)


@dataclass
class ContainerResource:
    container_id: str
    engine: str = "docker"

    def terminate(self) -> None:
        run_cmd(
            [self.engine, "rm", "-f", self.container_id],
            check=True,
            timeout=CONTAINER_REMOVE_TIMEOUT_SEC,
        )


class ResourceSlot:
    """Holds at most one owned resource plus its validity flag."""

    def __init__(self, name: str, resource: OwnedResource | None = None) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._resource = resource
        self._valid = resource is not None

    @property
    def valid(self) -> bool:
        with self._lock:
            return self._valid

    def take(self) -> OwnedResource | None:
        with self._lock:
            resource = self._resource
            self._resource = None
            self._valid = False
            return resource

    def release(self) -> bool:
        """Terminate the held resource once; later calls return False."""
        resource = self.take()
        if resource is None:
            return False
        terminate_quietly(self.name, resource)
        return True


def terminate_quietly(name: str, resource: OwnedResource) -> None:
    try:
        resource.terminate()
    except (OSError, subprocess.SubprocessError, CommandError) as exc:
        logger.debug("%s: terminate failed during teardown: %s", name, exc)
