from __future__ import annotations

import logging

from depstack.errors import ConfigError


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def resolve_level(value: int | str) -> int:
    """Accept a logging level as an int or a name such as "debug"."""
    if isinstance(value, bool):
        raise ConfigError(f"invalid log level: {value!r}")
    if isinstance(value, int):
        return value
    name = str(value).strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ConfigError(f"invalid log level: {value!r}")
    return level


def configure_logging(level: int | str = logging.INFO) -> None:
    logging.basicConfig(level=resolve_level(level), format=LOG_FORMAT)
