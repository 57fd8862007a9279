"""Turn a target's ERTS source into a concrete location."""

import logging
from typing import assert_never

import requests

from erts_bundler.releases import CatalogConfig, resolve_version
from erts_bundler.target import Local, LocalUnpacked, Precompiled, Runtime, Target, Url


def resolve_erts_location(
    target: Target,
    *,
    config: CatalogConfig | None = None,
    session: requests.Session | None = None,
    logger: logging.Logger | None = None,
) -> str | None:
    """Return where the ERTS for ``target`` should be taken from.

    :param target: Resolved target.
    :param config: Catalog settings for precompiled lookups.
    :param session: Optional HTTP session for precompiled lookups.
    :param logger: Optional logger.
    :returns: A download URL or local path, or ``None`` to use the host runtime.
    :raises ReleaseNotFoundError: If a precompiled ERTS is not published for the target.
    """

    if logger is None:
        logger = logging.getLogger("erts_bundler")

    source = target.erts_source
    match source:
        case Runtime():
            return None
        case Precompiled(version=version):
            logger.info(
                f"erts-bundler[build]: looking up precompiled ERTS {version} for {target.alias}"
            )
            return resolve_version(
                target.os, target.libc, version, config=config, session=session, logger=logger
            )
        case Local(path=path) | LocalUnpacked(path=path):
            return path
        case Url(url=url):
            return url
        case _:
            assert_never(source)
