from __future__ import annotations

import shutil

import pytest

from depstack.commands import run_cmd


def _redis_backend_available() -> bool:
    if shutil.which("redis-server") or shutil.which("valkey-server"):
        return True
    if shutil.which("docker") is None:
        return False
    result = run_cmd(["docker", "info", "--format", "{{.ServerVersion}}"], check=False, timeout=20)
    return result.returncode == 0


@pytest.fixture(scope="session", autouse=True)
def require_redis_backend() -> None:
    if not _redis_backend_available():
        pytest.skip("No redis-server, valkey-server or reachable docker engine; skipping live Redis tests.")
