from __future__ import annotations

import logging
import shutil
import subprocess
import weakref
from typing import Callable, Sequence

from depstack.config import DEFAULT_MONITOR_CLIENTS
from depstack.handle import ManagedDependency, release_with_relay
from depstack.relay import OutputRelay
from depstack.resources import ProcessResource, ResourceSlot, spawn_placeholder


logger = logging.getLogger(__name__)


class SpawnedRedisMonitor:
    """
    Streams `MONITOR` output of a running Redis handle into the logs.

    The monitor is observational only: it has no readiness probe and no
    validity flag, and its lifecycle is independent of the Redis it watches.
    """

    def __init__(
        self,
        redis: ManagedDependency,
        out_level: int = logging.DEBUG,
        err_level: int = logging.ERROR,
        *,
        clients: Sequence[str] = DEFAULT_MONITOR_CLIENTS,
        which: Callable[[str], str | None] = shutil.which,
        sink: logging.Logger | None = None,
    ) -> None:
        redis.assert_valid()
        logger.info("Starting Redis monitor on port %d", redis.port)
        self.client: str | None = None
        process = self._spawn(redis.host, redis.port, clients, which)
        self._slot = ResourceSlot("Redis monitor", ProcessResource(process))
        self._relay = OutputRelay.attach(process, out_level, err_level, "[redis-monitor]", sink)
        self._finalizer = weakref.finalize(self, release_with_relay, self._slot, self._relay)

    def _spawn(
        self,
        host: str,
        port: int,
        clients: Sequence[str],
        which: Callable[[str], str | None],
    ) -> subprocess.Popen:
        for client in clients:
            executable = which(client)
            if executable is None:
                continue
            try:
                process = subprocess.Popen(
                    [executable, "-h", host, "-p", str(port), "monitor"],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                )
            except OSError as exc:
                logger.info("%s spawn failed (%s), trying next monitor client", client, exc)
                continue
            self.client = client
            return process
        logger.info("No Redis CLI available, creating placeholder monitor process")
        return spawn_placeholder("Redis monitor unavailable")

    def __enter__(self) -> "SpawnedRedisMonitor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.kill()

    def kill(self) -> None:
        if release_with_relay(self._slot, self._relay):
            self._finalizer.detach()

    def stop(self) -> None:
        self.kill()
