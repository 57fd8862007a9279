"""Shared test fixtures."""

from dataclasses import dataclass, field

import pytest
import requests


@dataclass
class StubHost:
    """In-memory host environment."""

    os: str = "linux"
    cpu: str = "x86_64"
    libc: str | None = "glibc"
    version: str = "26.2.1"
    dirs: set[str] = field(default_factory=set)
    version_calls: int = 0

    def current_os(self) -> str:
        return self.os

    def current_cpu(self) -> str:
        return self.cpu

    def libc_type(self) -> str | None:
        return self.libc

    def otp_version(self) -> str:
        self.version_calls += 1
        return self.version

    def is_dir(self, path: str) -> bool:
        return path in self.dirs


class FakeResponse:
    def __init__(self, status_code: int, body: object) -> None:
        self.status_code = status_code
        self._body = body

    def json(self) -> object:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Replays scripted responses, one per ``get`` call, and records URLs."""

    def __init__(self, responses: list[object]) -> None:
        self._responses = list(responses)
        self.urls: list[str] = []
        self.headers: list[dict[str, str]] = []

    def get(self, url: str, *, headers: dict[str, str], timeout: float) -> FakeResponse:
        self.urls.append(url)
        self.headers.append(headers)
        if not self._responses:
            return FakeResponse(200, [])
        item = self._responses.pop(0)
        if isinstance(item, requests.RequestException):
            raise item
        return item  # type: ignore[return-value]


def release(tag: str, *assets: tuple[str, str]) -> dict[str, object]:
    return {
        "tag_name": tag,
        "assets": [{"name": name, "browser_download_url": url} for name, url in assets],
    }


@pytest.fixture
def linux_host() -> StubHost:
    return StubHost()


@pytest.fixture
def darwin_host() -> StubHost:
    return StubHost(os="darwin", cpu="aarch64", libc=None)
