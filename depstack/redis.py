from __future__ import annotations

import logging
from typing import Sequence

from depstack.config import RedisConfig
from depstack.handle import ManagedDependency
from depstack.strategies import LaunchChain, LaunchStrategy


class SpawnedRedis(ManagedDependency):
    """A test-scoped Redis server obtained through the configured strategy chain."""

    def __init__(
        self,
        port: int | None = None,
        prefix: str = "",
        out_level: int | None = None,
        err_level: int | None = None,
        *,
        config: RedisConfig | None = None,
        strategies: Sequence[LaunchStrategy] | None = None,
        sink: logging.Logger | None = None,
    ) -> None:
        config = config or RedisConfig.load()
        if strategies is None:
            strategies = config.build_strategies()
        self.config = config
        super().__init__(
            "Redis",
            LaunchChain(strategies),
            config.port if port is None else port,
            prefix,
            config.out_level if out_level is None else out_level,
            config.err_level if err_level is None else err_level,
            startup_timeout=config.startup_timeout_sec,
            tag="[redis]",
            sink=sink,
        )

    @classmethod
    def new_default(cls) -> "SpawnedRedis":
        return cls()
