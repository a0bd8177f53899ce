"""Lifecycle of one embedded Postgres server process."""

from __future__ import annotations

import os
import shutil
import socket
import subprocess
import sys
import threading
from dataclasses import replace
from typing import Any

from pgembed.cache_locator import CacheLocator, default_cache_locator
from pgembed.config import Config, default_config
from pgembed.decompression import decompress_tar_xz
from pgembed.errors import (
    DatabaseError,
    EmbeddedPostgresError,
    ServerAlreadyStartedError,
    ServerNotStartedError,
)
from pgembed.logs import LOGS_UNAVAILABLE, SyncedLogger, read_logs_or_timeout
from pgembed.prepare_database import (
    CreateDatabase,
    InitDatabase,
    default_create_database,
    default_init_database,
    health_check_database_or_timeout,
)
from pgembed.remote_fetch import RemoteFetchStrategy, default_remote_fetch_strategy
from pgembed.version_strategy import default_version_strategy

# Prevents concurrent servers from downloading or extracting the same binaries at once.
_download_lock = threading.Lock()


def encode_options(port: int, parameters: dict[str, str] | None) -> str:
    """Build the option string passed to postgres through pg_ctl -o."""
    options = [f"-p {port}"]
    # Values are double-quoted: they may hold spaces, and Windows only honours double quotes.
    options.extend(f'-c {key}="{value}"' for key, value in (parameters or {}).items())
    return " ".join(options)


def ensure_port_available(port: int) -> None:
    """Raise if something is already listening on the port on localhost."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            if os.name != "nt":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("localhost", port))
            sock.listen()
    except OSError as err:
        raise EmbeddedPostgresError(f"process already listening on port {port}") from err


def data_dir_is_valid(data_dir: str, version: str) -> bool:
    """Tell whether data_dir was initialised by a Postgres of the given version."""
    try:
        with open(os.path.join(data_dir, "PG_VERSION"), encoding="utf-8") as source:
            content = source.read()
    except (OSError, UnicodeDecodeError):
        return False
    if content.endswith("\n"):
        content = content[:-1]
    return version.startswith(content)


def platform_process_options(config: Config) -> dict[str, Any]:
    """Return subprocess keyword arguments that put the server in its own process group."""
    if not config.own_process_group:
        return {}
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    if sys.version_info >= (3, 11):
        return {"process_group": 0}
    return {"preexec_fn": os.setpgrp}


class EmbeddedPostgres:
    """Downloads, initialises, starts and stops one Postgres server."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        cache_locator: CacheLocator | None = None,
        remote_fetch_strategy: RemoteFetchStrategy | None = None,
        init_database: InitDatabase = default_init_database,
        create_database: CreateDatabase = default_create_database,
    ) -> None:
        self.config = config if config is not None else default_config()
        version_strategy = default_version_strategy(self.config)
        self.cache_locator = cache_locator or default_cache_locator(self.config.cache_path, version_strategy)
        self.remote_fetch_strategy = remote_fetch_strategy or default_remote_fetch_strategy(
            self.config.binary_repository_url, version_strategy, self.cache_locator
        )
        self.init_database = init_database
        self.create_database = create_database
        self.started = False
        self._logger: SyncedLogger | None = None

    @property
    def _pg_ctl(self) -> str:
        return os.path.join(self.config.binaries_path, "bin", "pg_ctl")

    def start(self) -> None:
        """Start the server; if it starts but cannot be prepared, stop it again."""
        if self.started:
            raise ServerAlreadyStartedError()

        ensure_port_available(self.config.port)

        if self._logger is not None:
            self._logger.close()
        try:
            self._logger = SyncedLogger(self.config.logger)
        except OSError as err:
            raise EmbeddedPostgresError("unable to create logger") from err

        cache_location, cache_exists = self.cache_locator()

        if not self.config.runtime_path:
            self.config = replace(
                self.config, runtime_path=os.path.join(os.path.dirname(cache_location), "extracted")
            )
        if not self.config.data_path:
            self.config = replace(self.config, data_path=os.path.join(self.config.runtime_path, "data"))

        try:
            shutil.rmtree(self.config.runtime_path)
        except FileNotFoundError:
            pass
        except OSError as err:
            raise EmbeddedPostgresError(
                f"unable to clean up runtime directory {self.config.runtime_path} with error: {err}"
            ) from err

        if not self.config.binaries_path:
            self.config = replace(self.config, binaries_path=self.config.runtime_path)

        self._download_and_extract_binary(cache_exists, cache_location)

        try:
            os.makedirs(self.config.runtime_path, exist_ok=True)
        except OSError as err:
            raise EmbeddedPostgresError(
                f"unable to create runtime directory {self.config.runtime_path} with error: {err}"
            ) from err

        reuse_data = data_dir_is_valid(self.config.data_path, self.config.version)
        if not reuse_data:
            self._clean_data_directory_and_init()

        self._start_postgres()
        self._logger.flush()
        self.started = True

        if not reuse_data:
            self._stop_on_failure(
                lambda: self.create_database(
                    self.config.port, self.config.username, self.config.password, self.config.database
                )
            )
        self._stop_on_failure(lambda: health_check_database_or_timeout(self.config))

    def _stop_on_failure(self, step) -> None:
        try:
            step()
        except Exception as err:
            try:
                self._stop_postgres()
            except EmbeddedPostgresError as stop_err:
                raise EmbeddedPostgresError(f"unable to stop database caused by error {err}") from stop_err
            self.started = False
            raise

    def _download_and_extract_binary(self, cache_exists: bool, cache_location: str) -> None:
        with _download_lock:
            if os.path.exists(self._pg_ctl):
                return
            if not cache_exists:
                self.remote_fetch_strategy()
            decompress_tar_xz(cache_location, self.config.binaries_path)

    def _clean_data_directory_and_init(self) -> None:
        try:
            shutil.rmtree(self.config.data_path)
        except FileNotFoundError:
            pass
        except OSError as err:
            raise EmbeddedPostgresError(
                f"unable to clean up data directory {self.config.data_path} with error: {err}"
            ) from err

        assert self._logger is not None
        with open(self._logger.path, "ab") as log_file:
            self.init_database(
                self.config.binaries_path,
                self.config.runtime_path,
                self.config.data_path,
                self.config.username,
                self.config.password,
                self.config.locale,
                self.config.encoding,
                log_file,
            )

    def _run_pg_ctl(self, *args: str) -> tuple[str, str | None]:
        assert self._logger is not None
        command = [self._pg_ctl, *args]
        with open(self._logger.path, "ab") as log_file:
            try:
                result = subprocess.run(
                    command,
                    stdout=log_file,
                    stderr=log_file,
                    check=False,
                    **platform_process_options(self.config),
                )
            except OSError as err:
                return " ".join(command), str(err)
        if result.returncode != 0:
            return " ".join(command), f"exit status {result.returncode}"
        return " ".join(command), None

    def _start_postgres(self) -> None:
        command, failure = self._run_pg_ctl(
            "start", "-w", "-D", self.config.data_path,
            "-o", encode_options(self.config.port, self.config.start_parameters),
        )
        if failure is None:
            return
        assert self._logger is not None
        try:
            self._logger.flush()
        except EmbeddedPostgresError:
            pass
        try:
            logs = read_logs_or_timeout(self._logger.path)
        except (OSError, TimeoutError):
            logs = LOGS_UNAVAILABLE
        raise DatabaseError(
            f"could not start postgres using {command}:\n{logs.decode('utf-8', errors='replace')}"
        )

    def _stop_postgres(self) -> None:
        command, failure = self._run_pg_ctl("stop", "-w", "-D", self.config.data_path)
        if failure is not None:
            raise DatabaseError(f"could not stop postgres using {command}: {failure}")

    def stop(self) -> None:
        """Stop the running server gracefully."""
        if not self.started:
            raise ServerNotStartedError()
        self._stop_postgres()
        self.started = False
        assert self._logger is not None
        self._logger.flush()

    def __enter__(self) -> EmbeddedPostgres:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.started:
            self.stop()