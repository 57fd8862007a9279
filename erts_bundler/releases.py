"""Precompiled ERTS release lookup.

Precompiled runtimes are published as GitHub releases: POSIX builds (macOS and
Linux, glibc and musl) in one repository, Windows builds in the upstream OTP
repository. A lookup pages through the whole release list of the relevant
catalog, picks the asset matching the target's platform in every release, and
returns the download URL for the exact OTP version requested.

Nothing is cached; every lookup refetches the catalog. Callers that need
several versions should fetch once with :func:`fetch_releases` (or
:func:`fetch_all_versions`) and run :func:`match_version` against the result.
"""

from dataclasses import dataclass
import logging
import os

import requests

from erts_bundler import __version__


POSIX_RELEASES_URL: str = (
    "https://api.github.com/repos/burrito-elixir/erlang-builder/releases?per_page=100"
)
WINDOWS_RELEASES_URL: str = "https://api.github.com/repos/erlang/otp/releases?per_page=100"
GITHUB_TOKEN_ENV: str = "GITHUB_TOKEN"
VERSION_TAG_PREFIX: str = "OTP-"


class ReleaseNotFoundError(LookupError):
    """Raised when no precompiled ERTS matches a version/platform combination.

    :ivar available: Versions that do have an asset for the platform.
    """

    def __init__(self, message: str, *, available: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.available: tuple[str, ...] = available


@dataclass(frozen=True, slots=True)
class ReleaseAsset:
    """A downloadable file attached to a release.

    :ivar name: Asset file name (e.g. ``otp_26.0_linux_x86_64.tar.gz``).
    :ivar download_url: Browser download URL, if the catalog provided one.
    """

    name: str
    download_url: str | None


@dataclass(frozen=True, slots=True)
class Release:
    """One catalog entry.

    :ivar tag_name: Release tag (e.g. ``OTP-26.0``).
    :ivar assets: Assets in catalog order.
    """

    tag_name: str
    assets: tuple[ReleaseAsset, ...]

    @property
    def version(self) -> str:
        return self.tag_name.removeprefix(VERSION_TAG_PREFIX)


@dataclass(frozen=True, slots=True)
class CatalogConfig:
    """Release catalog settings.

    :ivar posix_url: Catalog for macOS and Linux targets.
    :ivar windows_url: Catalog for Windows targets.
    :ivar token: Optional GitHub token (raises the API rate limit).
    :ivar timeout: Per-request timeout in seconds.
    :ivar max_pages: Upper bound on pages fetched from one catalog.
    :ivar user_agent: ``User-Agent`` header value.
    """

    posix_url: str = POSIX_RELEASES_URL
    windows_url: str = WINDOWS_RELEASES_URL
    token: str | None = None
    timeout: float = 30.0
    max_pages: int = 100
    user_agent: str = f"erts-bundler/{__version__}"

    @classmethod
    def from_env(cls) -> "CatalogConfig":
        """Build a config, picking up ``GITHUB_TOKEN`` from the environment."""

        return cls(token=os.environ.get(GITHUB_TOKEN_ENV) or None)

    def url_for(self, target_os: str) -> str:
        if target_os == "windows":
            return self.windows_url
        return self.posix_url

    def headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.user_agent,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


def _default_logger() -> logging.Logger:
    return logging.getLogger("erts_bundler")


def fetch_release_pages(
    url: str,
    *,
    config: CatalogConfig | None = None,
    session: requests.Session | None = None,
    logger: logging.Logger | None = None,
) -> list[Release]:
    """Fetch every page of a release catalog.

    Pages are requested in order until one comes back empty. Each page is put
    in front of the releases collected so far. A failed request, non-200
    status, or unparseable body ends paging early and returns what was
    collected up to that point.

    :param url: Catalog URL (query string allowed; ``page`` is appended).
    :param config: Catalog settings.
    :param session: Optional HTTP session; a private one is used otherwise.
    :param logger: Optional logger.
    :returns: Releases from all pages fetched.
    """

    if config is None:
        config = CatalogConfig.from_env()
    if logger is None:
        logger = _default_logger()

    if session is not None:
        return _page_through(url, config=config, session=session, logger=logger)
    with requests.Session() as owned:
        return _page_through(url, config=config, session=owned, logger=logger)


def _page_through(
    url: str,
    *,
    config: CatalogConfig,
    session: requests.Session,
    logger: logging.Logger,
) -> list[Release]:
    sep: str = "&" if "?" in url else "?"
    releases: list[Release] = []

    for page in range(1, config.max_pages + 1):
        page_url: str = f"{url}{sep}page={page}"
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"erts-bundler[releases]: GET {page_url}")

        try:
            response = session.get(page_url, headers=config.headers(), timeout=config.timeout)
        except requests.RequestException as exc:
            logger.warning(
                f"erts-bundler[releases]: request for {page_url} failed ({exc}); "
                f"continuing with {len(releases)} releases"
            )
            return releases

        if response.status_code != 200:
            logger.warning(
                f"erts-bundler[releases]: {page_url} returned HTTP {response.status_code}; "
                f"continuing with {len(releases)} releases"
            )
            return releases

        try:
            body: object = response.json()
        except ValueError:
            body = None
        if not isinstance(body, list) or len(body) == 0:
            return releases

        page_releases: list[Release] = [
            release for release in map(_parse_release, body) if release is not None
        ]
        releases = page_releases + releases

    logger.warning(
        f"erts-bundler[releases]: stopped paging {url} after {config.max_pages} pages"
    )
    return releases


def _parse_release(record: object) -> Release | None:
    """Turn one JSON release object into a :class:`Release`.

    :param record: Decoded JSON value.
    :returns: Release, or ``None`` if the record has no usable tag.
    """

    if not isinstance(record, dict):
        return None
    tag_name: object = record.get("tag_name")
    if not isinstance(tag_name, str):
        return None

    assets: list[ReleaseAsset] = []
    raw_assets: object = record.get("assets")
    if isinstance(raw_assets, list):
        for raw in raw_assets:
            if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
                continue
            download_url: object = raw.get("browser_download_url")
            assets.append(
                ReleaseAsset(
                    name=raw["name"],
                    download_url=download_url if isinstance(download_url, str) else None,
                )
            )
    return Release(tag_name=tag_name, assets=tuple(assets))


def fetch_releases(
    target_os: str,
    *,
    config: CatalogConfig | None = None,
    session: requests.Session | None = None,
    logger: logging.Logger | None = None,
) -> list[Release]:
    """Fetch the catalog that serves ``target_os``."""

    if config is None:
        config = CatalogConfig.from_env()
    return fetch_release_pages(
        config.url_for(target_os), config=config, session=session, logger=logger
    )


def fetch_all_versions(
    *,
    config: CatalogConfig | None = None,
    session: requests.Session | None = None,
    logger: logging.Logger | None = None,
) -> dict[str, list[Release]]:
    """Fetch both catalogs.

    :returns: ``{"windows": [...], "posix": [...]}``.
    """

    if config is None:
        config = CatalogConfig.from_env()
    return {
        "windows": fetch_release_pages(
            config.windows_url, config=config, session=session, logger=logger
        ),
        "posix": fetch_release_pages(
            config.posix_url, config=config, session=session, logger=logger
        ),
    }


def platform_string(target_os: str, libc: str | None) -> str:
    """Return the substring that identifies a platform's asset in a release.

    :param target_os: OS tag.
    :param libc: libc tag (only meaningful for Linux).
    :returns: Asset name fragment.
    """

    if target_os == "windows":
        return "win64"
    if target_os == "darwin":
        return "darwin"
    if libc == "musl":
        return "musl_libc"
    return "linux"


def select_download_urls(
    releases: list[Release], platform: str
) -> list[tuple[str, str | None]]:
    """Pair every release's version with its first matching asset URL.

    :param releases: Catalog releases.
    :param platform: Asset name fragment from :func:`platform_string`.
    :returns: ``(version, url)`` pairs; ``url`` is ``None`` when nothing matched.
    """

    pairs: list[tuple[str, str | None]] = []
    for release in releases:
        url: str | None = None
        for asset in release.assets:
            if platform in asset.name:
                url = asset.download_url
                break
        pairs.append((release.version, url))
    return pairs


def match_version(
    releases: list[Release], target_os: str, libc: str | None, version: str
) -> str | None:
    """Find the download URL for an exact OTP version.

    :param releases: Catalog releases.
    :param target_os: OS tag.
    :param libc: libc tag.
    :param version: Exact OTP version (e.g. ``26.0``).
    :returns: Download URL, or ``None`` if no release matches.
    """

    platform: str = platform_string(target_os, libc)
    for candidate, url in select_download_urls(releases, platform):
        if candidate == version and url is not None:
            return url
    return None


def available_versions(
    releases: list[Release], target_os: str, libc: str | None
) -> list[str]:
    """List versions that have an asset for the platform, without duplicates."""

    platform: str = platform_string(target_os, libc)
    seen: dict[str, None] = {}
    for candidate, url in select_download_urls(releases, platform):
        if url is not None:
            seen.setdefault(candidate, None)
    return list(seen)


def fetch_version(
    target_os: str,
    libc: str | None,
    version: str,
    *,
    config: CatalogConfig | None = None,
    session: requests.Session | None = None,
    logger: logging.Logger | None = None,
) -> str | None:
    """Fetch the catalog and return the download URL for ``version``.

    Never raises for a missing version or an unreachable catalog.

    :returns: Download URL, or ``None``.
    """

    releases: list[Release] = fetch_releases(
        target_os, config=config, session=session, logger=logger
    )
    return match_version(releases, target_os, libc, version)


def resolve_version(
    target_os: str,
    libc: str | None,
    version: str,
    *,
    config: CatalogConfig | None = None,
    session: requests.Session | None = None,
    logger: logging.Logger | None = None,
) -> str:
    """Like :func:`fetch_version`, but raise when nothing matches.

    :returns: Download URL.
    :raises ReleaseNotFoundError: If no asset matches; lists available versions.
    """

    releases: list[Release] = fetch_releases(
        target_os, config=config, session=session, logger=logger
    )
    url: str | None = match_version(releases, target_os, libc, version)
    if url is not None:
        return url

    available: tuple[str, ...] = tuple(available_versions(releases, target_os, libc))
    platform: str = platform_string(target_os, libc)
    listing: str = ", ".join(available) if available else "none"
    raise ReleaseNotFoundError(
        f"No precompiled ERTS {version!r} for platform {platform!r}. "
        f"Available versions: {listing}. "
        f"Pick one of these, or set 'custom_erts' on the target.",
        available=available,
    )
