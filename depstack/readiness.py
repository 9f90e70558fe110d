from __future__ import annotations

"""
Blocking readiness checks used while a dependency is being launched.

Both helpers are setup-time barriers: they poll on the calling thread and
run until success or their deadline, with no other way to cancel them.
"""

import logging
import socket
import time
from typing import Callable, TypeVar

from depstack.errors import ReadinessTimeout


T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_PROBE_INTERVAL_SEC = 0.1
CONNECT_TIMEOUT_SEC = 1.0
DEFAULT_SETTLE_SEC = 0.2


def wait_until(
    fn: Callable[[], T | None],
    *,
    timeout_sec: float,
    poll_sec: float = 0.25,
    description: str,
) -> T:
    deadline = time.monotonic() + timeout_sec
    last_exc: Exception | None = None
    while time.monotonic() < deadline:
        try:
            result = fn()
            if result is not None:
                return result
        except Exception as exc:  # pragma: no cover - used for diagnostics
            last_exc = exc
        time.sleep(poll_sec)
    if last_exc is not None:
        raise TimeoutError(f"timed out waiting for {description}: {last_exc}") from last_exc
    raise TimeoutError(f"timed out waiting for {description}")


def can_connect(host: str, port: int, timeout: float = CONNECT_TIMEOUT_SEC) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_ready(
    host: str,
    port: int,
    timeout: float,
    *,
    interval: float = DEFAULT_PROBE_INTERVAL_SEC,
    is_alive: Callable[[], bool] | None = None,
    settle: float = DEFAULT_SETTLE_SEC,
) -> None:
    """
    Block until `host:port` accepts a TCP connection.

    Raises `ReadinessTimeout` once `timeout` seconds have elapsed, or earlier
    when `is_alive` reports that the launched process has already exited.
    With `is_alive`, a successful connect only counts if the process is still
    running `settle` seconds later; otherwise another server owns the port.
    """
    deadline = time.monotonic() + timeout
    attempts = 0
    while True:
        attempts += 1
        remaining = deadline - time.monotonic()
        if can_connect(host, port, timeout=max(0.05, min(CONNECT_TIMEOUT_SEC, remaining))):
            if is_alive is not None:
                time.sleep(settle)
                if not is_alive():
                    raise ReadinessTimeout(
                        host, port, timeout, "process exited while another server accepted connections"
                    )
            logger.debug("%s:%s ready after %d attempt(s)", host, port, attempts)
            return
        if is_alive is not None and not is_alive():
            raise ReadinessTimeout(host, port, timeout, "process exited before accepting connections")
        if time.monotonic() + interval > deadline:
            raise ReadinessTimeout(host, port, timeout, f"{attempts} connection attempt(s) refused")
        time.sleep(interval)
