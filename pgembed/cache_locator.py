"""Locating the cached archive of Postgres binaries."""

from __future__ import annotations

import os
from typing import Callable

from pgembed.version_strategy import VersionStrategy

CacheLocator = Callable[[], "tuple[str, bool]"]

_CACHE_DIRECTORY_NAME = ".embedded-postgres-go"


def _default_cache_directory() -> str:
    home = os.path.expanduser("~")
    if home == "~":
        return _CACHE_DIRECTORY_NAME
    return os.path.join(home, _CACHE_DIRECTORY_NAME)


def default_cache_locator(cache_directory: str | None, version_strategy: VersionStrategy) -> CacheLocator:
    """Build a locator returning the archive's cache path and whether a file is there."""

    def locate() -> tuple[str, bool]:
        directory = cache_directory or _default_cache_directory()
        operating_system, architecture, version = version_strategy()
        location = os.path.join(
            directory,
            f"embedded-postgres-binaries-{operating_system}-{architecture}-{version}.txz",
        )
        exists = os.path.exists(location) and not os.path.isdir(location)
        return location, exists

    return locate