"""Downloading the Postgres binaries archive into the cache."""

from __future__ import annotations

import hashlib
import http.client
import io
import os
import tempfile
import urllib.error
import urllib.request
import zipfile
from typing import Callable

from pgembed.cache_locator import CacheLocator
from pgembed.errors import EmbeddedPostgresError, ExtractionError, FetchError
from pgembed.rename import rename_or_ignore
from pgembed.version_strategy import VersionStrategy

RemoteFetchStrategy = Callable[[], None]

_NETWORK_ERRORS = (OSError, http.client.HTTPException, ValueError)


def _fetch_checksum(url: str) -> bytes | None:
    try:
        with urllib.request.urlopen(url) as response:
            if response.status != 200:
                return None
            return response.read()
    except _NETWORK_ERRORS:
        return None


def default_remote_fetch_strategy(
    remote_fetch_host: str,
    version_strategy: VersionStrategy,
    cache_locator: CacheLocator,
) -> RemoteFetchStrategy:
    """Build a strategy that downloads the binaries for this platform into the cache."""

    def fetch() -> None:
        operating_system, architecture, version = version_strategy()
        name = f"embedded-postgres-binaries-{operating_system}-{architecture}"
        jar_url = f"{remote_fetch_host}/io/zonky/test/postgres/{name}/{version}/{name}-{version}.jar"

        try:
            response = urllib.request.urlopen(jar_url)
        except urllib.error.HTTPError as err:
            err.close()
            raise EmbeddedPostgresError(f"no version found matching {version}") from err
        except _NETWORK_ERRORS as err:
            raise EmbeddedPostgresError(f"unable to connect to {remote_fetch_host}") from err

        with response:
            if response.status != 200:
                raise EmbeddedPostgresError(f"no version found matching {version}")
            try:
                body = response.read()
            except _NETWORK_ERRORS as err:
                raise FetchError(err) from err

        expected = _fetch_checksum(f"{jar_url}.sha256")
        if expected is not None and expected != hashlib.sha256(body).hexdigest().encode():
            raise EmbeddedPostgresError("downloaded checksums do not match")

        decompress_response(body, cache_locator, jar_url)

    return fetch


def _write_to_cache(data: bytes, cache_location: str) -> None:
    directory = os.path.dirname(cache_location) or "."
    try:
        fd, temp_path = tempfile.mkstemp(prefix="temp_", dir=directory)
    except (OSError, ValueError) as err:
        raise ExtractionError(err) from err

    renamed = False
    try:
        with os.fdopen(fd, "wb") as out:
            out.write(data)
        rename_or_ignore(temp_path, cache_location)
        renamed = True
    except (OSError, ValueError) as err:
        raise ExtractionError(err) from err
    finally:
        if not renamed and os.path.exists(temp_path):
            os.remove(temp_path)


def decompress_response(body: bytes, cache_locator: CacheLocator, download_url: str) -> None:
    """Store the first .txz entry of the downloaded jar at the cache location."""
    try:
        archive = zipfile.ZipFile(io.BytesIO(body))
    except (zipfile.BadZipFile, ValueError) as err:
        raise FetchError(err) from err

    cache_location, _ = cache_locator()
    try:
        os.makedirs(os.path.dirname(cache_location) or ".", mode=0o755, exist_ok=True)
    except (OSError, ValueError) as err:
        raise ExtractionError(err) from err

    with archive:
        for entry in archive.infolist():
            if entry.is_dir() or not entry.filename.endswith(".txz"):
                continue
            try:
                data = archive.read(entry)
            except (zipfile.BadZipFile, OSError, ValueError) as err:
                raise ExtractionError(err) from err
            _write_to_cache(data, cache_location)
            return

    raise FetchError(
        message=f"error fetching postgres: cannot find binary in archive retrieved from {download_url}"
    )