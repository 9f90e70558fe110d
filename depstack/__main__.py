from __future__ import annotations

import argparse
import os
import sys
import threading

from depstack.config import RedisConfig
from depstack.errors import ConfigError, DependencyError
from depstack.logs import configure_logging
from depstack.monitor import SpawnedRedisMonitor
from depstack.redis import SpawnedRedis


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a test-scoped Redis until interrupted")
    parser.add_argument("--port", type=int, default=None, help="Requested port (default from config)")
    parser.add_argument("--prefix", default="", help="Key prefix reported by the handle")
    parser.add_argument("--monitor", action="store_true", help="Also stream MONITOR output")
    parser.add_argument(
        "--strategies",
        default=None,
        help="Comma-separated launch order, e.g. native,container",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    environ = dict(os.environ)
    if args.strategies:
        environ["DEPSTACK_REDIS_STRATEGIES"] = args.strategies
    try:
        configure_logging(args.log_level)
        config = RedisConfig.load(environ)
    except ConfigError as exc:
        print(f"depstack: {exc}", file=sys.stderr)
        return 2

    try:
        redis = SpawnedRedis(port=args.port, prefix=args.prefix, config=config)
    except DependencyError as exc:
        print(f"depstack: {exc}", file=sys.stderr)
        return 1

    with redis:
        monitor = SpawnedRedisMonitor(redis, clients=config.monitor_clients) if args.monitor else None
        print(f"redis listening on {redis.host}:{redis.port} prefix={redis.prefix!r}", flush=True)
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            pass
        finally:
            if monitor is not None:
                monitor.kill()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
