"""Initialising the data directory and preparing the database for use."""

from __future__ import annotations

import os
import subprocess
import time
from typing import IO, Any, Callable

from pgembed.config import Config
from pgembed.errors import DatabaseError
from pgembed.logs import LOGS_UNAVAILABLE, read_logs_or_timeout
from pgembed.wire import connect

InitDatabase = Callable[[str, str, str, str, str, str, str, IO[Any]], None]
CreateDatabase = Callable[[int, str, str, str], None]

_RETRY_INTERVAL = 0.1


def _dsn(port: int, username: str, password: str, database: str) -> str:
    return f"host=localhost port={port} user={username} password={password} dbname={database} sslmode=disable"


def _read_log_file(log_file: IO[Any]) -> str:
    try:
        log_file.flush()
    except (OSError, ValueError):
        pass
    name = getattr(log_file, "name", None)
    if not isinstance(name, (str, bytes, os.PathLike)):
        return LOGS_UNAVAILABLE.decode()
    try:
        content = read_logs_or_timeout(name)
    except (OSError, TimeoutError) as err:
        content = LOGS_UNAVAILABLE + f" - {err}".encode()
    return content.decode("utf-8", errors="replace")


def create_password_file(runtime_path: str, password: str) -> str:
    """Write password to a private file in runtime_path and return its path."""
    location = os.path.join(runtime_path, "pwfile")
    try:
        fd = os.open(location, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as out:
            out.write(password.encode())
    except OSError as err:
        raise DatabaseError(f"unable to write password file to {location}") from err
    return location


def default_init_database(
    binary_extract_location: str,
    runtime_path: str,
    pg_data_dir: str,
    username: str,
    password: str,
    locale: str,
    encoding: str,
    log_file: IO[Any],
) -> None:
    """Run initdb to create a data directory with password authentication."""
    password_file = create_password_file(runtime_path, password)

    args = ["-A", "password", "-U", username, "-D", pg_data_dir, f"--pwfile={password_file}"]
    if locale:
        args.append(f"--locale={locale}")
    if encoding:
        args.append(f"--encoding={encoding}")

    binary = os.path.join(binary_extract_location, "bin", "initdb")
    command = [binary, *args]
    command_text = " ".join(command)

    reason: str | None = None
    try:
        result = subprocess.run(command, stdout=log_file, stderr=log_file, check=False)
    except OSError as err:
        reason = str(err)
    else:
        if result.returncode != 0:
            reason = f"exit status {result.returncode}"

    if reason is not None:
        logs = _read_log_file(log_file)
        raise DatabaseError(f"unable to init database using '{command_text}': {reason}\n{logs}")

    try:
        os.remove(password_file)
    except OSError as err:
        raise DatabaseError(f"unable to remove password file '{password_file}': {err}") from err


def _custom_database_error(database: str, err: Exception) -> DatabaseError:
    return DatabaseError(
        f"unable to connect to create database with custom name {database} with the following error: {err}"
    )


def default_create_database(port: int, username: str, password: str, database: str) -> None:
    """Create database unless it is the default "postgres" database."""
    if database == "postgres":
        return
    try:
        with connect(_dsn(port, username, password, "postgres")) as conn:
            conn.execute(f'CREATE DATABASE "{database}"')
    except (DatabaseError, OSError) as err:
        raise _custom_database_error(database, err) from err


def _health_check(port: int, database: str, username: str, password: str, timeout: float | None) -> None:
    with connect(_dsn(port, username, password, database), timeout) as conn:
        conn.execute("SELECT 1")


def health_check_database(port: int, database: str, username: str, password: str) -> None:
    """Connect to the database and run a trivial query, raising on any failure."""
    _health_check(port, database, username, password, None)


def health_check_database_or_timeout(config: Config) -> None:
    """Retry the health check until it passes or the start timeout runs out."""
    deadline = time.monotonic() + config.start_timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise DatabaseError("timed out waiting for database to become available")
        try:
            _health_check(config.port, config.database, config.username, config.password, remaining)
            return
        except (DatabaseError, OSError):
            time.sleep(min(_RETRY_INTERVAL, max(deadline - time.monotonic(), 0)))