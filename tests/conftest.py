from __future__ import annotations

"""
Shared pytest utilities for the full test suite.

This module:
- registers the dependency fixtures plugin used by integration tests,
- provides a throwaway TCP listener for readiness and handle tests.
"""

import socket

import pytest

pytest_plugins = ["depstack.pytest_plugin"]


@pytest.fixture
def tcp_listener() -> int:
    """Bind a listening socket on 127.0.0.1 and return its port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind(("127.0.0.1", 0))
        server.listen(16)
        yield int(server.getsockname()[1])
