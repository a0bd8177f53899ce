"""Collecting the server's output in a file and forwarding it to a logger."""

from __future__ import annotations

import io
import os
import tempfile
import threading
from typing import IO, Any

from pgembed.errors import EmbeddedPostgresError

LOGS_UNAVAILABLE = b"logs could not be read"


class SyncedLogger:
    """A temporary log file whose new content is copied to a logger on each flush."""

    def __init__(self, logger: IO[Any] | None, directory: str | None = None) -> None:
        fd, path = tempfile.mkstemp(prefix="embedded_postgres_log", dir=directory or None)
        self.path = path
        self.file = os.fdopen(fd, "w+b")
        self.logger = logger
        self.offset = 0

    def flush(self) -> None:
        """Copy whatever was written to the log file since the last flush to the logger."""
        if self.logger is None:
            return
        try:
            with open(self.path, "rb") as source:
                source.seek(self.offset)
                content = source.read()
        except OSError as err:
            raise EmbeddedPostgresError(f"unable to process postgres logs: {err}") from err

        if isinstance(self.logger, io.TextIOBase):
            self.logger.write(content.decode("utf-8", errors="replace"))
        else:
            self.logger.write(content)
        self.offset += len(content)

    def close(self) -> None:
        """Close the log file handle."""
        self.file.close()


def read_logs_or_timeout(path: str | os.PathLike[str], timeout: float = 10.0) -> bytes:
    """Read the whole log file, raising TimeoutError if that takes longer than timeout."""
    outcome: dict[str, Any] = {}

    def read() -> None:
        try:
            with open(path, "rb") as source:
                outcome["data"] = source.read()
        except OSError as err:
            outcome["error"] = err

    reader = threading.Thread(target=read, daemon=True)
    reader.start()
    reader.join(timeout)
    if reader.is_alive():
        raise TimeoutError("timed out waiting for logs")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["data"]