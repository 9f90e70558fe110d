from __future__ import annotations

import logging

import pytest

from depstack.commands import find_free_port
from depstack.errors import LaunchFailed
from depstack.strategies import (
    ContainerLaunch,
    LaunchChain,
    LaunchFailure,
    ProcessLaunch,
    ProcessStrategy,
)
from tests.support.fakes import FixedContainerStrategy, PythonListenerStrategy, UnavailableStrategy


pytestmark = pytest.mark.unit


def test_chain_fails_when_every_strategy_is_unavailable(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="depstack.strategies")
    strategies = [UnavailableStrategy("native"), UnavailableStrategy("alternate"), UnavailableStrategy("container")]
    with pytest.raises(LaunchFailed) as excinfo:
        LaunchChain(strategies).launch(6400, "t1-")

    assert [name for name, _reason in excinfo.value.failures] == ["native", "alternate", "container"]
    assert all(strategy.attempts == 1 for strategy in strategies)
    infos = [record for record in caplog.records if record.name == "depstack.strategies"]
    assert len(infos) == 3
    assert all(record.levelno == logging.INFO for record in infos)


def test_empty_chain_raises_launch_failed() -> None:
    with pytest.raises(LaunchFailed, match="no launch strategies"):
        LaunchChain([]).launch(6400)


def test_chain_short_circuits_on_first_success() -> None:
    first = FixedContainerStrategy(mapped_port=54321)
    second = UnavailableStrategy("never-tried")
    outcome = LaunchChain([first, second]).launch(6400, "t1-")

    assert isinstance(outcome, ContainerLaunch)
    assert outcome.port == 54321
    assert first.requested == [6400]
    assert second.attempts == 0


def test_chain_falls_back_past_missing_binary() -> None:
    """A binary on PATH that cannot be executed is a recoverable strategy failure."""
    broken = ProcessStrategy("native", "/nonexistent/redis-server", which=lambda name: name)
    listener = PythonListenerStrategy("alternate")
    port = find_free_port()
    outcome = LaunchChain([broken, listener]).launch(port)
    try:
        assert isinstance(outcome, ProcessLaunch)
        assert outcome.port == port
        assert listener.launched == [outcome.process]
    finally:
        outcome.process.kill()
        outcome.process.wait(timeout=30)


def test_process_strategy_reports_missing_binary_without_spawning() -> None:
    strategy = ProcessStrategy("native", "redis-server", which=lambda _name: None)
    outcome = strategy.attempt(6400, "")
    assert outcome == LaunchFailure("redis-server not found on PATH")


def test_shim_strategy_requires_shim_and_binary() -> None:
    available = {"cmd"}
    strategy = ProcessStrategy(
        "shim",
        "redis-server",
        argv_prefix=("cmd", "/C"),
        which=lambda name: name if name in available else None,
    )
    outcome = strategy.attempt(6400, "")
    assert isinstance(outcome, LaunchFailure)
    assert "redis-server" in outcome.reason


def test_process_strategy_command_disables_persistence() -> None:
    strategy = ProcessStrategy("shim", "redis-server", argv_prefix=("cmd", "/C"))
    assert strategy.command(6400) == [
        "cmd",
        "/C",
        "redis-server",
        "--port",
        "6400",
        "--save",
        "",
        "--appendonly",
        "no",
    ]


def test_chain_names_follow_configured_order() -> None:
    chain = LaunchChain([UnavailableStrategy("container"), PythonListenerStrategy("native")])
    assert chain.names == ["container", "native"]


def test_process_strategy_refuses_occupied_port(tcp_listener: int) -> None:
    strategy = PythonListenerStrategy()
    outcome = strategy.attempt(tcp_listener, "")
    assert outcome == LaunchFailure(f"port {tcp_listener} is already in use by another server")
    assert strategy.launched == []
