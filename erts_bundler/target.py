"""Target resolution helpers.

A build target is described by the user either as a legacy shorthand tag
(``"linux_musl"``) or as key/value pairs (``os``, ``cpu``, ``libc``,
``custom_erts`` and any extra qualifiers). :func:`resolve_target` turns that into
a canonical :class:`Target`, decides whether the build is a cross-build, and
decides where the ERTS for the target will come from.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import logging
import os
import urllib.parse

from erts_bundler.host import HostEnvironment, SystemHost


class ConfigurationError(ValueError):
    """Raised when a target definition cannot be resolved."""


@dataclass(frozen=True, slots=True)
class Runtime:
    """Use the ERTS of the runtime installed on the host."""


@dataclass(frozen=True, slots=True)
class Precompiled:
    """Fetch a precompiled ERTS of ``version`` from the release catalog.

    :ivar version: Full OTP version (e.g. ``26.2.1``).
    """

    version: str


@dataclass(frozen=True, slots=True)
class Local:
    """Use a local ERTS archive.

    :ivar path: Path to a ``.tar.gz`` archive.
    """

    path: str


@dataclass(frozen=True, slots=True)
class LocalUnpacked:
    """Use an already unpacked ERTS directory.

    :ivar path: Directory path.
    """

    path: str


@dataclass(frozen=True, slots=True)
class Url:
    """Download the ERTS archive from a custom location.

    :ivar url: Absolute URL.
    """

    url: str


ErtsSource = Runtime | Precompiled | Local | LocalUnpacked | Url


@dataclass(frozen=True, slots=True)
class Target:
    """Canonical build target.

    :ivar alias: Caller-chosen name of the target.
    :ivar cpu: CPU tag (e.g. ``x86_64``).
    :ivar os: OS tag: ``darwin``, ``windows`` or ``linux``.
    :ivar cross_build: ``True`` if ``(os, cpu, libc)`` differs from the host.
    :ivar qualifiers: Ordered ``(key, value)`` pairs; the first is always ``libc``.
    :ivar erts_source: Where the ERTS for this target comes from.
    :ivar debug: Build a debug flavor.
    """

    alias: str
    cpu: str
    os: str
    cross_build: bool
    qualifiers: tuple[tuple[str, object], ...]
    erts_source: ErtsSource
    debug: bool = False

    @property
    def libc(self) -> str | None:
        for key, value in self.qualifiers:
            if key == "libc":
                return value  # type: ignore[return-value]
        return None


ARCHIVE_SUFFIX: str = ".tar.gz"

_LEGACY_TARGETS: dict[str, tuple[tuple[str, str], ...]] = {
    "darwin": (("os", "darwin"), ("cpu", "x86_64")),
    "win64": (("os", "windows"), ("cpu", "x86_64")),
    "linux": (("os", "linux"), ("cpu", "x86_64"), ("libc", "glibc")),
    "linux_musl": (("os", "linux"), ("cpu", "x86_64"), ("libc", "musl")),
}

# Zig target names.
_OS_NAMES: dict[str, str] = {
    "darwin": "macos",
    "windows": "windows",
    "linux": "linux",
}
_LIBC_NAMES: dict[str, str] = {
    "glibc": "gnu",
    "musl": "musl",
}

_PRIMARY_FIELDS: frozenset[str] = frozenset({"os", "cpu", "debug"})

_UNSET: object = object()


def _default_logger() -> logging.Logger:
    return logging.getLogger("erts_bundler")


def legacy_targets() -> tuple[str, ...]:
    """Return the legacy shorthand target tags that are still accepted."""

    return tuple(_LEGACY_TARGETS)


def maybe_translate_legacy(
    tag: object, *, logger: logging.Logger | None = None
) -> object:
    """Translate a legacy target tag into key/value pairs, if it is one.

    Anything that is not a legacy tag is returned unchanged, so this can be
    applied to values nested inside other configuration.

    :param tag: Candidate legacy tag.
    :param logger: Optional logger for the deprecation warning.
    :returns: A list of ``(key, value)`` pairs, or ``tag`` itself.
    """

    if isinstance(tag, str) is False or tag not in _LEGACY_TARGETS:
        return tag

    translated: list[tuple[str, object]] = list(_LEGACY_TARGETS[tag])
    (logger or _default_logger()).warning(
        f"erts-bundler[build]: old-style build target {tag!r} is deprecated; "
        f"use the key/value form instead: {dict(translated)!r}"
    )
    return translated


def resolve_target(
    alias: str,
    definition: object,
    *,
    host: HostEnvironment | None = None,
    logger: logging.Logger | None = None,
) -> Target:
    """Resolve a user-supplied target definition into a :class:`Target`.

    :param alias: Name of the target within the build.
    :param definition: A legacy tag, a mapping, or a sequence of ``(key, value)`` pairs.
    :param host: Host environment; defaults to :class:`~erts_bundler.host.SystemHost`.
    :param logger: Optional logger for deprecation warnings.
    :returns: Resolved target.
    :raises ConfigurationError: If the definition is incomplete or malformed.
    """

    if host is None:
        host = SystemHost()
    if logger is None:
        logger = _default_logger()

    if isinstance(definition, str):
        if definition not in _LEGACY_TARGETS:
            raise ConfigurationError(
                f"Unrecognized legacy build target {definition!r} for target {alias!r}. "
                f"Known legacy targets: {', '.join(legacy_targets())}."
            )
        definition = maybe_translate_legacy(definition, logger=logger)

    pairs: list[tuple[str, object]] = _definition_pairs(alias, definition)

    # First occurrence of a repeated key wins.
    fields: dict[str, object] = {}
    libc: object = _UNSET
    custom_erts: object = _UNSET
    qualifiers: list[tuple[str, object]] = []
    for key, value in pairs:
        if key in _PRIMARY_FIELDS:
            fields.setdefault(key, value)
        elif key == "libc":
            if libc is _UNSET:
                libc = value
        elif key == "custom_erts":
            if custom_erts is _UNSET:
                custom_erts = value
        else:
            qualifiers.append((key, value))
    if libc is _UNSET:
        libc = None
    if custom_erts is _UNSET:
        custom_erts = None

    if not fields.get("os") or not fields.get("cpu"):
        raise ConfigurationError(
            f"Target {alias!r} must define AT LEAST 'os' and 'cpu'."
        )
    target_os: str = str(fields["os"])
    cpu: str = str(fields["cpu"])
    if target_os not in _OS_NAMES:
        raise ConfigurationError(
            f"Unsupported os {target_os!r} for target {alias!r}; "
            f"expected one of: {', '.join(_OS_NAMES)}."
        )
    debug: object = fields.get("debug")
    if debug is None:
        debug = False
    if isinstance(debug, bool) is False:
        raise ConfigurationError(
            f"'debug' for target {alias!r} must be a boolean, got {debug!r}."
        )

    # Only Linux targets carry a libc; fall back to the host's, then glibc.
    if target_os == "linux":
        if libc is None:
            libc = host.libc_type() or "glibc"
    else:
        libc = None

    cross_build: bool = (
        target_os != host.current_os()
        or cpu != host.current_cpu()
        or libc != host.libc_type()
    )
    erts_source: ErtsSource = _erts_source(
        alias=alias, custom_location=custom_erts, cross_build=cross_build, host=host
    )

    return Target(
        alias=alias,
        cpu=cpu,
        os=target_os,
        cross_build=cross_build,
        qualifiers=(("libc", libc), *qualifiers),
        erts_source=erts_source,
        debug=debug,
    )


def build_triplet(target: Target) -> str:
    """Build the Zig-style ``<cpu>-<os>[-<libc>]`` triplet for a target.

    :param target: Resolved target.
    :returns: Triplet such as ``x86_64-linux-gnu`` or ``aarch64-macos``.
    :raises ConfigurationError: If the target's os is not supported.
    """

    os_name: str | None = _OS_NAMES.get(target.os)
    if os_name is None:
        raise ConfigurationError(
            f"Unsupported os {target.os!r} for target {target.alias!r}; "
            f"expected one of: {', '.join(_OS_NAMES)}."
        )
    triplet: str = f"{target.cpu}-{os_name}"
    libc: str | None = target.libc
    if libc is None:
        return triplet
    return f"{triplet}-{_LIBC_NAMES.get(libc, libc)}"


def _definition_pairs(alias: str, definition: object) -> list[tuple[str, object]]:
    """Flatten a mapping or pair sequence into an ordered list of pairs.

    :param alias: Target alias (for error messages).
    :param definition: Key/value definition.
    :returns: ``(key, value)`` pairs in input order.
    :raises ConfigurationError: If the definition is not key/value shaped or a key is not a string.
    """

    items: list[object]
    if isinstance(definition, Mapping):
        items = list(definition.items())
    elif isinstance(definition, Sequence) and not isinstance(definition, (str, bytes)):
        items = list(definition)
    else:
        raise ConfigurationError(
            f"Target {alias!r} must be a legacy tag or key/value pairs, got {type(definition).__name__}."
        )

    pairs: list[tuple[str, object]] = []
    for item in items:
        if (
            not isinstance(item, Sequence)
            or isinstance(item, (str, bytes))
            or len(item) != 2
            or not isinstance(item[0], str)
        ):
            raise ConfigurationError(
                f"Target {alias!r} has a malformed entry {item!r}; expected (key, value)."
            )
        pairs.append((item[0], item[1]))
    return pairs


def _erts_source(
    *,
    alias: str,
    custom_location: object,
    cross_build: bool,
    host: HostEnvironment,
) -> ErtsSource:
    """Decide where the ERTS for a target comes from.

    :param alias: Target alias (for error messages).
    :param custom_location: Optional user-supplied ``custom_erts`` value.
    :param cross_build: Whether the target differs from the host.
    :param host: Host environment (directory probe and installed OTP version).
    :returns: ERTS source.
    :raises ConfigurationError: If ``custom_location`` cannot be classified.
    """

    if custom_location is None:
        if cross_build is True:
            return Precompiled(version=host.otp_version())
        return Runtime()

    if isinstance(custom_location, (str, os.PathLike)) is False:
        raise ConfigurationError(
            f"'custom_erts' for target {alias!r} must be a string, got {custom_location!r}."
        )
    location: str = os.fspath(custom_location)

    if _is_uri(location) is True:
        return Url(url=location)
    if location.endswith(ARCHIVE_SUFFIX) is True:
        return Local(path=location)
    if host.is_dir(location) is True:
        return LocalUnpacked(path=location)

    raise ConfigurationError(
        f"'custom_erts' for target {alias!r} was not a URL, a local path to a "
        f"{ARCHIVE_SUFFIX} archive, or a local path to a directory: {location!r}"
    )


def _is_uri(location: str) -> bool:
    """Check whether a string is an absolute URI with a host or path.

    :param location: Candidate location.
    :returns: ``True`` if it parses as an absolute URI.
    """

    try:
        parts = urllib.parse.urlsplit(location)
    except ValueError:
        return False
    # A one-letter scheme is a Windows drive ("C:/erts"), not a URI.
    if len(parts.scheme) < 2:
        return False
    return parts.netloc != "" or parts.path != ""
