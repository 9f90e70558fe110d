from __future__ import annotations

"""
Pytest fixtures for test-scoped Redis dependencies.

This module provides:
- one-time cleanup of containers whose owning test process has exited,
- a session-scoped Redis handle on a free port with a unique key prefix,
- a per-test monitor streaming Redis command activity into the test logs.

Enable it with `pytest_plugins = ["depstack.pytest_plugin"]` in a conftest.
"""

import logging
import os
import shutil
import socket
import subprocess
import sys
import uuid
from typing import Callable

import pytest

from depstack.commands import find_free_port, run_cmd, slugify
from depstack.config import RedisConfig
from depstack.monitor import SpawnedRedisMonitor
from depstack.redis import SpawnedRedis
from depstack.strategies import CONTAINER_LABEL, OWNER_HOST_LABEL, OWNER_PID_LABEL


logger = logging.getLogger(__name__)

STALE_LISTING_FORMAT = "\t".join(
    ["{{.ID}}", '{{.Label "' + OWNER_HOST_LABEL + '"}}', '{{.Label "' + OWNER_PID_LABEL + '"}}']
)


def _owner_alive(pid: int) -> bool:
    if sys.platform.startswith("win"):
        # os.kill terminates the target on Windows, so ownership cannot be probed.
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _is_stale(owner_host: str, owner_pid: str, hostname: str) -> bool:
    # Containers from other hosts or without an owner are never ours to remove.
    if owner_host != hostname or not owner_pid.isdigit():
        return False
    return not _owner_alive(int(owner_pid))


def _discover_stale_containers(
    engine: str = "docker",
    *,
    run: Callable[..., subprocess.CompletedProcess[str]] = run_cmd,
    which: Callable[[str], str | None] = shutil.which,
) -> list[str]:
    if which(engine) is None:
        return []
    result = run(
        [engine, "ps", "-a", "--filter", f"label={CONTAINER_LABEL}=true", "--format", STALE_LISTING_FORMAT],
        check=False,
        timeout=30,
    )
    if result.returncode != 0:
        return []
    hostname = socket.gethostname()
    stale: list[str] = []
    for line in (result.stdout or "").splitlines():
        container_id, _, owner = line.strip().partition("\t")
        owner_host, _, owner_pid = owner.partition("\t")
        if container_id and _is_stale(owner_host.strip(), owner_pid.strip(), hostname):
            stale.append(container_id)
    return stale


def _cleanup_stale_containers(
    engine: str = "docker",
    *,
    run: Callable[..., subprocess.CompletedProcess[str]] = run_cmd,
    which: Callable[[str], str | None] = shutil.which,
) -> None:
    stale = _discover_stale_containers(engine, run=run, which=which)
    if not stale:
        return
    logger.info("Removing %d stale dependency container(s) whose owner exited", len(stale))
    run([engine, "rm", "-f", *stale], check=False, timeout=120)


def unique_prefix(name: str) -> str:
    return f"{slugify(name)}-{uuid.uuid4().hex[:8]}-"


@pytest.fixture(scope="session")
def redis_config() -> RedisConfig:
    return RedisConfig.load()


@pytest.fixture(scope="session")
def cleanup_stale_dependencies():
    """Remove containers left behind by runs whose process no longer exists."""
    _cleanup_stale_containers()


@pytest.fixture(scope="session")
def redis_dependency(redis_config: RedisConfig, cleanup_stale_dependencies, request) -> SpawnedRedis:
    redis = SpawnedRedis(
        port=find_free_port(),
        prefix=unique_prefix(request.session.name),
        config=redis_config,
    )
    yield redis
    redis.stop()


@pytest.fixture
def redis_monitor(redis_dependency: SpawnedRedis, redis_config: RedisConfig) -> SpawnedRedisMonitor:
    monitor = SpawnedRedisMonitor(redis_dependency, clients=redis_config.monitor_clients)
    yield monitor
    monitor.kill()
