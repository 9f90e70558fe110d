from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from depstack.errors import ConfigError
from depstack.logs import resolve_level
from depstack.strategies import (
    DEFAULT_REDIS_IMAGE,
    ContainerStrategy,
    LaunchStrategy,
    ProcessStrategy,
)


DEFAULT_REDIS_PORT = 6379
DEFAULT_STARTUP_TIMEOUT_SEC = 10.0
DEFAULT_MONITOR_CLIENTS = ("redis-cli", "valkey-cli")
STRATEGY_NAMES = ("native", "alternate", "shim", "container")

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def load_config_file(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise ConfigError(f"{path}: top-level YAML value must be a mapping")
    return payload


def parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def env_flag(environ: Mapping[str, str], name: str) -> bool | None:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return None
    return parse_bool(name, raw)


def parse_strategy_list(raw: str | list[str]) -> list[str]:
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, list):
        items = [str(item) for item in raw]
    else:
        raise ConfigError(f"strategies must be a list or comma-separated string, got {raw!r}")
    names = [item.strip().lower() for item in items if item.strip()]
    unknown = [name for name in names if name not in STRATEGY_NAMES]
    if unknown:
        raise ConfigError(f"unknown launch strategies {unknown}; expected names from {list(STRATEGY_NAMES)}")
    if not names:
        raise ConfigError("strategy list must not be empty")
    return list(dict.fromkeys(names))


def default_strategy_order(
    platform: str,
    *,
    use_local: bool = False,
    prefer_container: bool = False,
) -> list[str]:
    windows = platform.startswith("win")
    if use_local:
        local = ["shim", "alternate"] if windows else ["native", "alternate"]
        return [*local, "container"]
    if windows:
        return ["container", "shim", "alternate"]
    order = ["native", "alternate", "container"]
    if prefer_container:
        order = ["container", "native", "alternate"]
    return order


@dataclass
class RedisConfig:
    port: int = DEFAULT_REDIS_PORT
    strategies: list[str] = field(default_factory=lambda: default_strategy_order(sys.platform))
    image: str = DEFAULT_REDIS_IMAGE
    startup_timeout_sec: float = DEFAULT_STARTUP_TIMEOUT_SEC
    out_level: int = logging.DEBUG
    err_level: int = logging.ERROR
    monitor_clients: list[str] = field(default_factory=lambda: list(DEFAULT_MONITOR_CLIENTS))
    platform: str = sys.platform

    @classmethod
    def load(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        platform: str | None = None,
    ) -> "RedisConfig":
        """Build configuration from defaults, then `DEPSTACK_CONFIG` YAML, then environment."""
        environ = os.environ if environ is None else environ
        platform = platform or sys.platform

        file_cfg: dict[str, Any] = {}
        config_path = environ.get("DEPSTACK_CONFIG", "").strip()
        if config_path:
            file_cfg = load_config_file(Path(config_path))
        redis_cfg = file_cfg.get("redis") or {}
        monitor_cfg = file_cfg.get("monitor") or {}
        if not isinstance(redis_cfg, dict) or not isinstance(monitor_cfg, dict):
            raise ConfigError("`redis` and `monitor` config sections must be mappings")

        use_local = env_flag(environ, "DEPSTACK_USE_LOCAL_REDIS") or False
        prefer_container = env_flag(environ, "DEPSTACK_PREFER_CONTAINER") or False
        strategies = default_strategy_order(
            platform,
            use_local=use_local,
            prefer_container=prefer_container,
        )
        if "strategies" in redis_cfg:
            strategies = parse_strategy_list(redis_cfg["strategies"])
        if environ.get("DEPSTACK_REDIS_STRATEGIES", "").strip():
            strategies = parse_strategy_list(environ["DEPSTACK_REDIS_STRATEGIES"])

        try:
            port = int(environ.get("DEPSTACK_REDIS_PORT") or redis_cfg.get("port", DEFAULT_REDIS_PORT))
            startup_timeout = float(
                environ.get("DEPSTACK_STARTUP_TIMEOUT")
                or redis_cfg.get("startup_timeout_sec", DEFAULT_STARTUP_TIMEOUT_SEC)
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid numeric setting: {exc}") from exc
        if startup_timeout <= 0:
            raise ConfigError("startup timeout must be positive")

        clients = monitor_cfg.get("clients", list(DEFAULT_MONITOR_CLIENTS))
        if isinstance(clients, str):
            clients = [clients]

        return cls(
            port=port,
            strategies=strategies,
            image=environ.get("DEPSTACK_REDIS_IMAGE") or str(redis_cfg.get("image", DEFAULT_REDIS_IMAGE)),
            startup_timeout_sec=startup_timeout,
            out_level=resolve_level(redis_cfg.get("out_level", logging.DEBUG)),
            err_level=resolve_level(redis_cfg.get("err_level", logging.ERROR)),
            monitor_clients=[str(client) for client in clients],
            platform=platform,
        )

    def build_strategies(self) -> list[LaunchStrategy]:
        windows = self.platform.startswith("win")
        factories = {
            "native": lambda: ProcessStrategy("native", "redis-server"),
            "alternate": lambda: ProcessStrategy("alternate", "memurai" if windows else "valkey-server"),
            "shim": lambda: ProcessStrategy("shim", "redis-server", argv_prefix=("cmd", "/C")),
            "container": lambda: ContainerStrategy(self.image),
        }
        return [factories[name]() for name in self.strategies]
