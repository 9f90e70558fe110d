from depstack.errors import (
    CommandError,
    ConfigError,
    DependencyError,
    LaunchFailed,
    ReadinessTimeout,
    StrategyUnavailable,
    UseAfterInvalid,
)
from depstack.handle import DependencyEndpoint, HandleState, ManagedDependency
from depstack.monitor import SpawnedRedisMonitor
from depstack.redis import SpawnedRedis
from depstack.strategies import LaunchChain

__all__ = [
    "CommandError",
    "ConfigError",
    "DependencyEndpoint",
    "DependencyError",
    "HandleState",
    "LaunchChain",
    "LaunchFailed",
    "ManagedDependency",
    "ReadinessTimeout",
    "SpawnedRedis",
    "SpawnedRedisMonitor",
    "StrategyUnavailable",
    "UseAfterInvalid",
]
