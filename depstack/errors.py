from __future__ import annotations

import subprocess


class DependencyError(RuntimeError):
    """Base class for dependency lifecycle failures."""


class StrategyUnavailable(DependencyError):
    """Raised inside a launch strategy that cannot proceed on this host."""


class LaunchFailed(DependencyError):
    """Every strategy in a launch chain failed."""

    def __init__(self, failures: list[tuple[str, str]]) -> None:
        if failures:
            detail = "; ".join(f"{name}: {reason}" for name, reason in failures)
        else:
            detail = "no launch strategies configured"
        super().__init__(f"All launch strategies failed ({detail})")
        self.failures = failures


class ReadinessTimeout(DependencyError, TimeoutError):
    """A launched dependency never accepted connections before its deadline."""

    def __init__(self, host: str, port: int, timeout: float, detail: str | None = None) -> None:
        message = f"{host}:{port} did not accept connections within {timeout:g}s"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.host = host
        self.port = port
        self.timeout = timeout


class UseAfterInvalid(AssertionError):
    """A handle was used after its resource had been torn down."""


class ConfigError(DependencyError):
    """Invalid dependency configuration."""


class CommandError(RuntimeError):
    """Raised when a shell command exits non-zero."""

    def __init__(self, cmd: list[str], result: subprocess.CompletedProcess[str]) -> None:
        joined = " ".join(cmd)
        stdout = (result.stdout or "").strip()
        stderr = (result.stderr or "").strip()
        super().__init__(
            f"Command failed ({result.returncode}): {joined}\nSTDOUT:\n{stdout}\nSTDERR:\n{stderr}"
        )
        self.cmd = cmd
        self.result = result
