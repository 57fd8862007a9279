import subprocess

import pytest

from erts_bundler import host
from erts_bundler.host import HostDetectionError, SystemHost, normalize_cpu, normalize_os


@pytest.mark.parametrize(
    ("system", "expected"),
    [("Linux", "linux"), ("Darwin", "darwin"), ("Windows", "windows")],
)
def test_normalize_os(system: str, expected: str) -> None:
    assert normalize_os(system) == expected


def test_normalize_os_rejects_unknown() -> None:
    with pytest.raises(HostDetectionError):
        normalize_os("SunOS")


@pytest.mark.parametrize(
    ("machine", "expected"),
    [("AMD64", "x86_64"), ("x86_64", "x86_64"), ("arm64", "aarch64"), ("riscv64", "riscv64")],
)
def test_normalize_cpu(machine: str, expected: str) -> None:
    assert normalize_cpu(machine) == expected


def test_libc_is_none_off_linux(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(host.platform, "system", lambda: "Darwin")
    assert SystemHost().libc_type() is None


def test_glibc_detected_from_libc_ver(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(host.platform, "system", lambda: "Linux")
    monkeypatch.setattr(host.platform, "libc_ver", lambda: ("glibc", "2.36"))
    assert SystemHost().libc_type() == "glibc"


def test_otp_version_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(host.OTP_VERSION_ENV, " 26.2.1\n")
    assert SystemHost().otp_version() == "26.2.1"


def test_otp_version_requires_erl(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(host.OTP_VERSION_ENV, raising=False)
    monkeypatch.setattr(host.shutil, "which", lambda name: None)
    with pytest.raises(HostDetectionError, match="erl"):
        SystemHost().otp_version()


def test_otp_version_reads_erl_output(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(host.OTP_VERSION_ENV, raising=False)
    monkeypatch.setattr(host.shutil, "which", lambda name: "/usr/bin/erl")

    def fake_run(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        assert cmd[0] == "/usr/bin/erl"
        return subprocess.CompletedProcess(cmd, 0, stdout="27.0.1\n", stderr="")

    monkeypatch.setattr(host.subprocess, "run", fake_run)
    assert SystemHost().otp_version() == "27.0.1"
