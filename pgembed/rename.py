"""Renaming that tolerates a destination created by a concurrent process."""

from __future__ import annotations

import errno
import os


def rename_or_ignore(old_path: str | os.PathLike[str], new_path: str | os.PathLike[str]) -> None:
    """Rename old_path to new_path, doing nothing if new_path already exists.

    Only safe when an existing new_path is known to hold the same data as old_path.
    """
    old_path = os.fspath(old_path)
    new_path = os.fspath(new_path)

    try:
        new_stat = os.lstat(new_path)
    except OSError:
        new_stat = None

    if new_stat is not None and os.path.isdir(new_path) and not os.path.islink(new_path):
        old_stat = os.lstat(old_path)  # a missing source is reported first
        if new_path == old_path or not os.path.samestat(new_stat, old_stat):
            return

    try:
        os.rename(old_path, new_path)
    except OSError as err:
        if err.errno == errno.EEXIST:
            return
        raise