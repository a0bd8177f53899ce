"""Exceptions raised while fetching, extracting and running Postgres."""

from __future__ import annotations


class EmbeddedPostgresError(Exception):
    """Base class for every error raised by this package."""


class ServerNotStartedError(EmbeddedPostgresError):
    """Raised when stopping a server that has not been started."""

    def __init__(self, message: str = "server has not been started") -> None:
        super().__init__(message)


class ServerAlreadyStartedError(EmbeddedPostgresError):
    """Raised when starting a server that is already running."""

    def __init__(self, message: str = "server is already started") -> None:
        super().__init__(message)


class _CauseError(EmbeddedPostgresError):
    prefix = ""

    def __init__(self, cause: object = None, *, message: str | None = None) -> None:
        self.cause = cause
        if message is None:
            message = f"{self.prefix}: {cause}"
        super().__init__(message)


class ExtractionError(_CauseError):
    """Raised when an archive of Postgres binaries cannot be extracted."""

    prefix = "unable to extract postgres archive"


class FetchError(_CauseError):
    """Raised when the Postgres binaries cannot be downloaded."""

    prefix = "error fetching postgres"


class DatabaseError(EmbeddedPostgresError):
    """Raised when initialising, starting or querying the database fails."""


def unable_to_extract_error(archive: str, destination: str, cause: object) -> ExtractionError:
    """Build the error for an archive that cannot be opened or extracted at all."""
    return ExtractionError(
        cause,
        message=(
            f"unable to extract postgres archive {archive} to {destination}, "
            "if running parallel tests, configure RuntimePath to isolate testing directories, "
            f"{cause}"
        ),
    )