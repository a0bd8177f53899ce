"""Choosing which prebuilt Postgres binary matches this platform."""

from __future__ import annotations

import os
import platform
import re
import subprocess
import sys
from typing import Callable

from pgembed.config import Config

VersionStrategy = Callable[[], "tuple[str, str, str]"]

_MAJOR_MINOR = re.compile(r"\s*([+-]?\d+)\.\s*([+-]?\d+)")

_MACHINE_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "x86": "386",
    "ppc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
    "mips": "mips",
    "mips64": "mips64",
}

_PLATFORM_OS = {
    "win32": "windows",
    "cygwin": "windows",
    "darwin": "darwin",
    "linux": "linux",
}


def linux_machine_name() -> str:
    """Return the output of ``uname -m``, or an empty string if it cannot be run."""
    try:
        result = subprocess.run(["uname", "-m"], capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError):
        return ""
    return result.stdout.strip()


def should_use_alpine_linux_build() -> bool:
    """Tell whether this system is Alpine Linux."""
    return os.path.exists("/etc/alpine-release")


def current_platform() -> tuple[str, str]:
    """Return the running operating system and architecture in the binaries' naming."""
    system = sys.platform
    goos = _PLATFORM_OS.get(system)
    if goos is None:
        goos = next(
            (name for name in ("freebsd", "openbsd", "netbsd", "aix", "sunos") if system.startswith(name)),
            system,
        )
        if goos == "sunos":
            goos = "solaris"

    machine = platform.machine().lower()
    arch = _MACHINE_ARCH.get(machine)
    if arch is None:
        arch = "arm" if machine.startswith("arm") else machine
    return goos, arch


def _major_minor(version: str) -> tuple[int, int] | None:
    match = _MAJOR_MINOR.match(version)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def default_version_strategy(
    config: Config,
    goos: str | None = None,
    arch: str | None = None,
    linux_machine_name: Callable[[], str] = linux_machine_name,
    should_use_alpine_linux_build: Callable[[], bool] = should_use_alpine_linux_build,
) -> VersionStrategy:
    """Build a strategy returning (operating system, architecture, version) for the binaries."""
    if goos is None or arch is None:
        detected_os, detected_arch = current_platform()
        goos = detected_os if goos is None else goos
        arch = detected_arch if arch is None else arch

    def strategy() -> tuple[str, str, str]:
        resolved = arch
        if goos == "linux":
            if resolved == "arm64":
                resolved += "v8"
            elif resolved == "arm":
                machine = linux_machine_name()
                if machine.startswith("armv7"):
                    resolved += "32v7"
                elif machine.startswith("armv6"):
                    resolved += "32v6"
            if should_use_alpine_linux_build():
                resolved += "-alpine"

        # Builds for macOS on arm start at 14.2.
        if goos == "darwin" and resolved == "arm64":
            parsed = _major_minor(config.version)
            if parsed is not None and (parsed[0] < 14 or (parsed[0] == 14 and parsed[1] < 2)):
                resolved = "amd64"
            else:
                resolved += "v8"

        return goos, resolved, config.version

    return strategy