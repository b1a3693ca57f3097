"""
Package sources: the transports a package layout can be loaded from.

- OCISource: a registry artifact, pulled partially when possible
- TarballSource: a local .tar / .tar.zst archive
- URLSource: an archive behind http(s):// or sget://
- SplitTarballSource: an archive split into .partNNN shards
- ClusterSource: metadata of a package already deployed to a cluster
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from airlift.config import AirliftConfig
from airlift.errors import SourceError
from airlift.oci.package import PackageRemote
from airlift.oci.remote import RegistryRemote
from airlift.utils import is_url

from .base import (
    PackageOptions,
    PackageSource,
    is_valid_file_extension,
    name_from_metadata,
    package_suffix,
    rename_from_metadata,
    validate_package_integrity,
    validate_package_signature,
)
from .cluster import ClusterSource, DeployedPackageReader, KubectlSecretReader
from .oci import OCISource
from .split import SPLIT_MARKER, SplitTarballSource
from .tarball import TarballSource
from .url import URLSource


logger = logging.getLogger(__name__)


def identify(source: str) -> str:
    """
    Classify a package source string.

    Returns:
        The URL scheme for URLs, "split" for a .part000 shard, "tarball" for
        a recognized archive extension, otherwise ""
    """
    if is_url(source):
        return urlparse(source).scheme
    if SPLIT_MARKER in source:
        return "split"
    if is_valid_file_extension(source):
        return "tarball"
    return ""


def new_source(options: PackageOptions, config: Optional[AirliftConfig] = None) -> PackageSource:
    """
    Route options.package_source to the matching source.

    Raises:
        SourceError: If the source cannot be identified
    """
    config = config or AirliftConfig()
    source = options.package_source
    kind = identify(source)

    if kind == "oci":
        if options.shasum:
            source = f"{source}@sha256:{options.shasum}"
        remote = PackageRemote(RegistryRemote(source, config.get_arch(), insecure=config.insecure))
        result: PackageSource = OCISource(options, remote, config)
    elif kind == "tarball":
        result = TarballSource(options, config)
    elif kind in ("http", "https", "sget"):
        result = URLSource(options, config)
    elif kind == "split":
        result = SplitTarballSource(options, config)
    else:
        raise SourceError(f"could not identify source type for {source!r}")

    logger.debug(f"Using {type(result).__name__} for {source!r}")
    return result


def new_cluster_source(
    options: PackageOptions,
    config: Optional[AirliftConfig] = None,
    reader: Optional[DeployedPackageReader] = None,
) -> ClusterSource:
    return ClusterSource(options, config, reader)


__all__ = [
    "ClusterSource",
    "DeployedPackageReader",
    "identify",
    "is_valid_file_extension",
    "KubectlSecretReader",
    "name_from_metadata",
    "new_cluster_source",
    "new_source",
    "OCISource",
    "package_suffix",
    "PackageOptions",
    "PackageSource",
    "rename_from_metadata",
    "SplitTarballSource",
    "TarballSource",
    "URLSource",
    "validate_package_integrity",
    "validate_package_signature",
]
