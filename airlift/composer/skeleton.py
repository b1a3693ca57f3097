"""Fetch and cache component tarballs from published skeleton packages."""

import hashlib
import logging
import os
from pathlib import Path

from airlift.layout import COMPONENTS_DIR
from airlift.oci.package import PackageRemote
from airlift.utils import extract_archive


logger = logging.getLogger(__name__)


def fetch_skeleton_component(
    remote: PackageRemote,
    url: str,
    name: str,
    cache_dir: Path,
    working_dir: Path,
) -> str:
    """
    Materialize a remote component's files in the local cache.

    The component tarball is cached under <cache>/oci/blobs/sha256/<digest>
    and extracted (minus its leading <name>/ directory) into
    <cache>/oci/dirs/<digest>. A skeleton without a tarball for the component
    gets an empty directory keyed by sha256(url + name).

    Returns:
        The extraction directory relative to working_dir
    """
    root = remote.fetch_root()
    desc = root.locate(f"{COMPONENTS_DIR}/{name}.tar")

    cache = Path(cache_dir) / "oci"
    cache.mkdir(parents=True, exist_ok=True, mode=0o700)

    if desc.is_empty:
        key = hashlib.sha256((url + name).encode()).hexdigest()
        directory = cache / "dirs" / key
        logger.debug(f"Creating empty directory for remote component {name}: <cache>/oci/dirs/{key}")
        tarball = None
    else:
        tarball = cache / "blobs" / "sha256" / desc.encoded
        directory = cache / "dirs" / desc.encoded
        if not tarball.exists():
            logger.debug(f"Caching component {name} from {remote.reference}")
            remote.remote.copy_blob(desc, tarball)

    directory.mkdir(parents=True, exist_ok=True, mode=0o700)
    relative = os.path.relpath(directory.resolve(), Path(working_dir).resolve())

    if tarball is not None:
        extract_archive(tarball, directory, strip_components=1)

    return Path(relative).as_posix()
