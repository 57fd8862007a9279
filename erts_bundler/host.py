"""Host environment detection.

Reports what the machine performing the build looks like (OS, CPU, libc) and
which Erlang/OTP runtime is installed on it. The target resolver compares
these values against a target definition to decide whether a build is a
cross-build.
"""

import os
import pathlib
import platform
import shutil
import subprocess
from typing import Protocol


class HostDetectionError(RuntimeError):
    """Raised when the host environment cannot be described."""


OTP_VERSION_ENV: str = "ERTS_BUNDLER_OTP_VERSION"

_OTP_VERSION_EVAL: str = (
    "{ok, V} = file:read_file(filename:join([code:root_dir(), \"releases\", "
    "erlang:system_info(otp_release), \"OTP_VERSION\"])), "
    "io:format(\"~s\", [V]), halt()."
)


class HostEnvironment(Protocol):
    """Collaborators the target resolver needs from the build host."""

    def current_os(self) -> str: ...

    def current_cpu(self) -> str: ...

    def libc_type(self) -> str | None: ...

    def otp_version(self) -> str: ...

    def is_dir(self, path: str) -> bool: ...


class SystemHost:
    """:class:`HostEnvironment` backed by the running interpreter and ``erl``."""

    def current_os(self) -> str:
        """Return the host OS tag (``darwin``, ``windows`` or ``linux``).

        :returns: OS tag.
        :raises HostDetectionError: If the OS is not supported.
        """

        return normalize_os(platform.system())

    def current_cpu(self) -> str:
        return normalize_cpu(platform.machine())

    def libc_type(self) -> str | None:
        """Return the host libc tag, or ``None`` when it has none we recognize.

        :returns: ``glibc``, ``musl`` or ``None``.
        """

        if platform.system() != "Linux":
            return None

        libc_name, _ = platform.libc_ver()
        if libc_name == "glibc":
            return "glibc"
        # musl ships no version symbol platform.libc_ver can read; look for its loader instead.
        if any(pathlib.Path("/lib").glob("ld-musl-*.so.1")) is True:
            return "musl"
        return None

    def otp_version(self) -> str:
        """Return the full version of the installed OTP runtime (e.g. ``26.2.1``).

        :returns: Version string.
        :raises HostDetectionError: If no runtime can be found or queried.
        """

        override: str | None = os.environ.get(OTP_VERSION_ENV)
        if override:
            return override.strip()

        erl: str | None = shutil.which("erl")
        if erl is None:
            raise HostDetectionError(
                f"Could not find 'erl' on PATH; install Erlang/OTP or set {OTP_VERSION_ENV}."
            )

        proc = subprocess.run(
            [erl, "-noshell", "-eval", _OTP_VERSION_EVAL],
            capture_output=True,
            text=True,
            check=False,
        )
        version: str = proc.stdout.strip()
        if proc.returncode != 0 or version == "":
            raise HostDetectionError(
                f"Could not read the installed OTP version (exit={proc.returncode}): "
                f"{proc.stderr.strip()}"
            )
        return version

    def is_dir(self, path: str) -> bool:
        return pathlib.Path(path).is_dir()


def normalize_os(system: str) -> str:
    """Map a ``platform.system()`` value to an OS tag.

    :param system: Value such as ``Linux`` or ``Darwin``.
    :returns: OS tag.
    :raises HostDetectionError: If the OS is not supported.
    """

    os_map: dict[str, str] = {
        "darwin": "darwin",
        "windows": "windows",
        "linux": "linux",
    }
    tag: str | None = os_map.get(system.lower())
    if tag is None:
        raise HostDetectionError(f"Unsupported host OS: {system!r}")
    return tag


def normalize_cpu(machine: str) -> str:
    """Map a ``platform.machine()`` value to a CPU tag.

    :param machine: Value such as ``AMD64`` or ``arm64``.
    :returns: CPU tag (unknown values are lowercased and passed through).
    """

    m: str = machine.lower()
    if m in ("x86_64", "amd64", "x64"):
        return "x86_64"
    if m in ("aarch64", "arm64"):
        return "aarch64"
    return m
