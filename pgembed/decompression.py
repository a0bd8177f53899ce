"""Extracting a tar.xz archive of Postgres binaries."""

from __future__ import annotations

import lzma
import os
import shutil
import tarfile
import tempfile

from pgembed.errors import ExtractionError, unable_to_extract_error
from pgembed.rename import rename_or_ignore

_READ_ERRORS = (lzma.LZMAError, tarfile.TarError, EOFError, OSError, ValueError)


def _extract_member(tar: tarfile.TarFile, member: tarfile.TarInfo, temp_dir: str, extract_path: str) -> None:
    target = os.path.join(temp_dir, member.name)
    final = os.path.join(extract_path, member.name)

    os.makedirs(os.path.dirname(target), exist_ok=True)
    os.makedirs(os.path.dirname(final), exist_ok=True)

    if member.isdir():
        os.makedirs(final, mode=member.mode, exist_ok=True)
        return

    if member.isfile():
        source = tar.extractfile(member)
        fd = os.open(target, os.O_CREAT | os.O_RDWR | os.O_TRUNC, member.mode)
        with os.fdopen(fd, "wb") as out:
            if source is not None:
                shutil.copyfileobj(source, out)
    elif member.issym():
        if os.path.lexists(target):
            if os.path.isdir(target) and not os.path.islink(target):
                shutil.rmtree(target)
            else:
                os.remove(target)
        os.symlink(member.linkname, target)

    rename_or_ignore(target, final)


def decompress_tar_xz(path: str, extract_path: str) -> None:
    """Extract the tar.xz archive at path into extract_path via a temporary directory."""
    parent = os.path.dirname(extract_path) or "."
    try:
        temp_dir = tempfile.mkdtemp(prefix="temp_", dir=parent)
    except (OSError, ValueError) as err:
        raise unable_to_extract_error(path, extract_path, err) from err

    try:
        try:
            archive = open(path, "rb")
        except (OSError, ValueError) as err:
            raise unable_to_extract_error(path, extract_path, err) from err

        with archive:
            try:
                with lzma.open(archive) as stream, tarfile.open(fileobj=stream, mode="r|") as tar:
                    for member in tar:
                        _extract_member(tar, member, temp_dir, extract_path)
            except _READ_ERRORS as err:
                raise ExtractionError(err) from err
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)