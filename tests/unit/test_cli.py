from __future__ import annotations

from pathlib import Path

import pytest

from depstack.__main__ import main, parse_args


pytestmark = pytest.mark.unit


def test_parse_args_defaults() -> None:
    args = parse_args([])
    assert args.port is None
    assert args.prefix == ""
    assert args.monitor is False
    assert args.log_level == "INFO"


def test_unknown_strategy_exits_with_config_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--strategies", "native,teleport"]) == 2
    assert "unknown launch strategies" in capsys.readouterr().err


def test_launch_failure_exits_with_one(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """With nothing on PATH every strategy is unavailable and setup aborts."""
    monkeypatch.setenv("PATH", str(tmp_path))
    monkeypatch.delenv("DEPSTACK_CONFIG", raising=False)
    assert main(["--strategies", "native,alternate,container"]) == 1
    err = capsys.readouterr().err
    assert "All launch strategies failed" in err
    assert "redis-server not found on PATH" in err
