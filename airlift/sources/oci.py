"""Package source for packages published to an OCI registry."""

import logging
import shutil
from pathlib import Path
from typing import Optional, Union

from airlift.config import AirliftConfig
from airlift.errors import SourceError
from airlift.filters import ComponentFilter
from airlift.layout import ALWAYS_PULL, SBOM_TAR, PackageLayout, read_definition_file
from airlift.oci.package import PackageRemote
from airlift.schemas import SKELETON_ARCH, PackageDefinition
from airlift.utils import write_archive

from .base import (
    PackageOptions,
    PackageSource,
    name_from_metadata,
    package_suffix,
    unarchive_components,
    validate_package_integrity,
)


logger = logging.getLogger(__name__)


class OCISource(PackageSource):
    """
    A package stored as an OCI artifact.

    load_package pulls only the layers the filtered components need; the
    result is a partial layout whenever that is fewer than every layer.
    """

    def __init__(self, options: PackageOptions, remote: PackageRemote, config: Optional[AirliftConfig] = None):
        super().__init__(options, config)
        self.remote = remote

    def load_package(
        self,
        dst: PackageLayout,
        component_filter: ComponentFilter,
        unarchive_all: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        logger.debug(f"Loading package from {self.options.package_source}")

        pkg = self.remote.fetch_definition()
        pkg.components = component_filter.apply(pkg)

        try:
            layers = self.remote.layers_from_requested_components(pkg.components)
        except SourceError as e:
            raise SourceError(f"unable to get published component image layers: {e}") from e

        root = self.remote.fetch_root()
        is_partial = len(layers) != len(root.layers)

        pulled = self.remote.pull_package(dst.base, self.config.oci_concurrency, layers)
        dst.set_from_layers(pulled)

        # Re-read so deprecated fields are migrated like any other load
        loaded, warnings = dst.read_definition()
        loaded.components = component_filter.apply(loaded)

        self.validate_loaded(dst, loaded, is_partial)

        if unarchive_all:
            unarchive_components(dst, loaded)

        return loaded, warnings

    def load_package_metadata(
        self,
        dst: PackageLayout,
        want_sbom: bool,
        skip_validation: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        paths = list(ALWAYS_PULL)
        if want_sbom:
            paths.append(SBOM_TAR)
        pulled = self.remote.pull_paths(paths, dst.base)
        dst.set_from_layers(pulled)

        pkg, warnings = dst.read_definition()
        self.validate_metadata(dst, pkg, want_sbom, skip_validation)

        if want_sbom and dst.sboms.path is not None:
            dst.sboms.unarchive()

        return pkg, warnings

    def collect(self, destination_dir: Union[str, Path]) -> Path:
        """Pull every layer, verify the full package and write it as one tarball."""
        tmp = self.config.make_temp_dir()
        try:
            pulled = self.remote.pull_package(tmp, self.config.oci_concurrency)
            loaded = PackageLayout(tmp)
            loaded.set_from_layers(pulled)

            pkg = read_definition_file(loaded.definition)
            validate_package_integrity(loaded, pkg.metadata.aggregate_checksum, False)

            # TODO: drop the reference suffix check once every skeleton records its build arch
            is_skeleton = pkg.is_skeleton or self.remote.reference.endswith(SKELETON_ARCH)
            name = name_from_metadata(pkg, is_skeleton, self.config) + package_suffix(pkg.metadata.uncompressed)
            target = Path(destination_dir) / name
            target.unlink(missing_ok=True)

            members = {
                path.relative_to(tmp).as_posix(): path
                for path in sorted(tmp.rglob("*"))
                if path.is_file()
            }
            write_archive(members, target)
            logger.info(f"Collected {self.remote.reference} into {target}")
            return target
        finally:
            shutil.rmtree(tmp, ignore_errors=True)
