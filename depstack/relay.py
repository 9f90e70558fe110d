from __future__ import annotations

import logging
import subprocess
import threading
from typing import IO


logger = logging.getLogger(__name__)


def _decode_line(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return raw.rstrip("\r\n")


class OutputRelay:
    """Forwards a child process's stdout/stderr lines into a logger."""

    def __init__(self, tag: str, threads: list[threading.Thread]) -> None:
        self.tag = tag
        self._threads = threads

    @classmethod
    def attach(
        cls,
        process: subprocess.Popen,
        out_level: int,
        err_level: int,
        tag: str,
        sink: logging.Logger | None = None,
    ) -> "OutputRelay":
        sink = sink or logger
        threads: list[threading.Thread] = []
        for stream_name, stream, level in (
            ("stdout", process.stdout, out_level),
            ("stderr", process.stderr, err_level),
        ):
            if stream is None:
                continue
            thread = threading.Thread(
                target=_relay_lines,
                args=(stream, sink, level, tag),
                name=f"relay{tag}-{stream_name}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)
        return cls(tag, threads)

    @property
    def attached(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)


def _relay_lines(stream: IO, sink: logging.Logger, level: int, tag: str) -> None:
    # Ends on EOF, which the kill of the owning process guarantees.
    try:
        for raw in stream:
            sink.log(level, "%s %s", tag, _decode_line(raw))
    except (OSError, ValueError):
        # Stream closed underneath the reader during teardown.
        return
    finally:
        try:
            stream.close()
        except OSError:
            pass
