"""Package source for local .tar and .tar.zst archives."""

import logging
import shutil
from pathlib import Path
from typing import Union

from airlift.filters import ComponentFilter
from airlift.layout import ALWAYS_PULL, SBOM_TAR, PackageLayout
from airlift.schemas import PackageDefinition
from airlift.utils import extract_archive

from .base import PackageSource, unarchive_components


logger = logging.getLogger(__name__)


class TarballSource(PackageSource):
    """A package archive on the local filesystem."""

    @property
    def path(self) -> Path:
        return Path(self.options.package_source)

    def load_package(
        self,
        dst: PackageLayout,
        component_filter: ComponentFilter,
        unarchive_all: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        logger.info(f"Loading package from {self.path}")
        self.verify_shasum(self.path)

        extracted = extract_archive(self.path, dst.base)
        dst.set_from_paths(extracted)

        pkg, warnings = dst.read_definition()
        pkg.components = component_filter.apply(pkg)

        self.validate_loaded(dst, pkg, is_partial=False)

        if unarchive_all:
            unarchive_components(dst, pkg)

        return pkg, warnings

    def load_package_metadata(
        self,
        dst: PackageLayout,
        want_sbom: bool,
        skip_validation: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        self.verify_shasum(self.path)

        wanted = set(ALWAYS_PULL)
        if want_sbom:
            wanted.add(SBOM_TAR)
        extracted = extract_archive(self.path, dst.base, select=lambda name: name in wanted)
        dst.set_from_paths(extracted)

        pkg, warnings = dst.read_definition()
        self.validate_metadata(dst, pkg, want_sbom, skip_validation)

        if want_sbom and dst.sboms.path is not None:
            dst.sboms.unarchive()

        return pkg, warnings

    def collect(self, destination_dir: Union[str, Path]) -> Path:
        target = Path(destination_dir) / self.path.name
        shutil.move(self.path, target)
        return target
