from __future__ import annotations

"""
Managed dependency handle: launch, readiness barrier, output relay, teardown.

A handle is only ever returned in the RUNNING state. Every teardown path
(`stop()`, `with` exit, fixture finalization, garbage collection) goes
through the handle's `ResourceSlot`, so the owned process or container is
terminated exactly once.
"""

import enum
import logging
import weakref
from dataclasses import dataclass

from depstack.errors import ReadinessTimeout, UseAfterInvalid
from depstack.readiness import wait_ready
from depstack.relay import OutputRelay
from depstack.resources import (
    ContainerResource,
    ProcessResource,
    ResourceSlot,
    spawn_placeholder,
    terminate_quietly,
)
from depstack.strategies import LaunchChain, ProcessLaunch


logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
RELAY_JOIN_TIMEOUT_SEC = 5.0


class HandleState(enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class DependencyEndpoint:
    host: str
    port: int
    prefix: str


def release_with_relay(
    slot: ResourceSlot,
    relay: OutputRelay,
    placeholder: ProcessResource | None = None,
) -> bool:
    released = slot.release()
    if released:
        relay.join(RELAY_JOIN_TIMEOUT_SEC)
        if placeholder is not None:
            terminate_quietly(f"{slot.name} relay placeholder", placeholder)
    return released


class ManagedDependency:
    """One launched dependency instance, exclusively owning its process or container."""

    def __init__(
        self,
        name: str,
        chain: LaunchChain,
        port: int,
        prefix: str = "",
        out_level: int = logging.DEBUG,
        err_level: int = logging.ERROR,
        *,
        startup_timeout: float = 10.0,
        tag: str | None = None,
        host: str = DEFAULT_HOST,
        sink: logging.Logger | None = None,
    ) -> None:
        self.name = name
        self.tag = tag or f"[{name.lower()}]"
        self._state = HandleState.STARTING
        logger.info("Starting %s on port %d", name, port)

        try:
            outcome = chain.launch(port, prefix)
        except Exception:
            self._state = HandleState.FAILED
            raise

        self._endpoint = DependencyEndpoint(host=host, port=outcome.port, prefix=prefix)
        if isinstance(outcome, ProcessLaunch):
            resource = ProcessResource(outcome.process)
            is_alive = resource.alive
        else:
            resource = ContainerResource(outcome.container_id, outcome.engine)
            is_alive = None
        self._slot = ResourceSlot(name, resource)
        relay: OutputRelay | None = None
        placeholder: ProcessResource | None = None

        try:
            wait_ready(host, outcome.port, startup_timeout, is_alive=is_alive)
            if isinstance(outcome, ProcessLaunch):
                # Output written while probing waits in the pipe until the relay attaches.
                relay = OutputRelay.attach(outcome.process, out_level, err_level, self.tag, sink)
            else:
                # Containers expose no process streams; relay a one-line confirmation instead.
                placeholder = ProcessResource(
                    spawn_placeholder(
                        f"{name} container {outcome.container_id[:12]} listening on {host}:{outcome.port}"
                    )
                )
                relay = OutputRelay.attach(placeholder.process, out_level, err_level, self.tag, sink)
        except BaseException as exc:
            self._state = HandleState.FAILED
            self._slot.release()
            if relay is None and isinstance(outcome, ProcessLaunch):
                # The process is gone; relay what it wrote before dying and close its pipes.
                OutputRelay.attach(outcome.process, out_level, err_level, self.tag, sink).join(
                    RELAY_JOIN_TIMEOUT_SEC
                )
            if placeholder is not None and relay is None:
                terminate_quietly(f"{name} relay placeholder", placeholder)
            if isinstance(exc, ReadinessTimeout):
                logger.error("%s never became ready: %s", name, exc)
            raise

        self._relay = relay
        self._placeholder = placeholder
        self._finalizer = weakref.finalize(self, release_with_relay, self._slot, self._relay, placeholder)
        self._state = HandleState.RUNNING

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.host}:{self.port} prefix={self.prefix!r} state={self._state.value}>"

    def __enter__(self) -> "ManagedDependency":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @property
    def endpoint(self) -> DependencyEndpoint:
        return self._endpoint

    @property
    def host(self) -> str:
        return self._endpoint.host

    @property
    def port(self) -> int:
        return self._endpoint.port

    @property
    def prefix(self) -> str:
        return self._endpoint.prefix

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def valid(self) -> bool:
        return self._slot.valid

    def assert_valid(self) -> None:
        if not self._slot.valid:
            raise UseAfterInvalid(f"{self.name} has been closed")

    def stop(self) -> None:
        resource = self._slot.take()
        if resource is None:
            return
        logger.info("Stopping %s", self.name)
        self._state = HandleState.STOPPING
        terminate_quietly(self.name, resource)
        self._relay.join(RELAY_JOIN_TIMEOUT_SEC)
        if self._placeholder is not None:
            terminate_quietly(f"{self.name} relay placeholder", self._placeholder)
        self._state = HandleState.STOPPED
        self._finalizer.detach()

    def kill(self) -> None:
        self.stop()
