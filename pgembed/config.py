"""Runtime configuration for an embedded Postgres server."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import IO, Any

V16 = "16.4.0"
V15 = "15.8.0"
V14 = "14.13.0"
V13 = "13.16.0"
V12 = "12.20.0"
V11 = "11.22.0"
V10 = "10.23.0"
V9 = "9.6.24"

PASSWORD = "password"
DEFAULT_BINARY_REPOSITORY_URL = "https://repo1.maven.org/maven2"


def _stdout() -> IO[Any]:
    return sys.stdout


@dataclass(frozen=True)
class Config:
    """Settings for the Postgres process; derive variants with dataclasses.replace.

    An empty path means the path is chosen when the server starts.
    A logger of None discards the server's output.
    """

    version: str = V16
    port: int = 5432
    database: str = "postgres"
    username: str = "postgres"
    password: str = PASSWORD
    cache_path: str = ""
    runtime_path: str = ""
    data_path: str = ""
    binaries_path: str = ""
    locale: str = ""
    encoding: str = ""
    start_parameters: dict[str, str] = field(default_factory=dict)
    binary_repository_url: str = DEFAULT_BINARY_REPOSITORY_URL
    start_timeout: float = 15.0
    logger: IO[Any] | None = field(default_factory=_stdout)
    own_process_group: bool = False

    def connection_url(self) -> str:
        """Return a postgresql:// URL for connecting to the configured database."""
        return (
            f"postgresql://{self.username}:{self.password}"
            f"@localhost:{self.port}/{self.database}"
        )


def default_config() -> Config:
    """Return the default configuration: Postgres 16 on port 5432."""
    return Config()