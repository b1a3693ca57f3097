"""Package source for archives split into .partNNN shards."""

import json
import logging
import re
import shutil
from pathlib import Path
from typing import Union

from airlift.errors import IntegrityError, SourceError
from airlift.filters import ComponentFilter
from airlift.layout import PackageLayout
from airlift.schemas import PackageDefinition, SplitPackageData
from airlift.utils import get_file_checksum

from .base import PackageOptions, PackageSource
from .tarball import TarballSource


logger = logging.getLogger(__name__)

SPLIT_MARKER = ".part000"
SHARD_SUFFIX = re.compile(r"\.part(\d+)")


def shard_index(path: Path) -> int:
    """Numeric shard position; .part1000 sorts after .part999."""
    return int(path.name.rsplit(".part", 1)[1])


class SplitTarballSource(PackageSource):
    """
    A package archive written as <archive>.part000 (JSON metadata) plus
    <archive>.part001.. data shards.
    """

    def collect(self, destination_dir: Union[str, Path]) -> Path:
        """
        Reassemble the shards into destination_dir and remove them.

        Raises:
            SourceError: If no shards exist or the metadata is unreadable
            IntegrityError: If the shard count or reassembled digest is wrong
        """
        source = Path(self.options.package_source)
        stem = source.name.replace(SPLIT_MARKER, "")
        shards = sorted(
            (p for p in source.parent.glob(f"{stem}.part*") if SHARD_SUFFIX.fullmatch(p.name[len(stem):])),
            key=shard_index,
        )
        if not shards:
            raise SourceError(f"unable to find any files matching pattern {source.parent / stem}.part*")

        try:
            meta = SplitPackageData.from_dict(json.loads(shards[0].read_text()))
        except (ValueError, AttributeError) as e:
            raise SourceError(f"unable to read split package metadata {shards[0]}: {e}") from e

        data_shards = shards[1:]
        if meta.count and len(data_shards) != meta.count:
            raise IntegrityError(f"expected {meta.count} package shards, found {len(data_shards)}")

        reassembled = Path(destination_dir) / stem
        with open(reassembled, "wb") as out:
            for shard in data_shards:
                with open(shard, "rb") as f:
                    shutil.copyfileobj(f, out)

        actual = get_file_checksum(reassembled)
        if actual != meta.sha256_sum:
            raise IntegrityError(
                f"package integrity check failed: expected {meta.sha256_sum}, got {actual}"
            )

        for shard in shards:
            shard.unlink()

        logger.info(f"Reassembled package to: {reassembled}")
        return reassembled

    def _delegate(self) -> TarballSource:
        tarball = self.collect(Path(self.options.package_source).parent)
        # The shasum described the shards, not the reassembled archive
        options = PackageOptions(
            package_source=str(tarball),
            public_key_path=self.options.public_key_path,
            sget_key_path=self.options.sget_key_path,
            optional_components=self.options.optional_components,
        )
        return TarballSource(options, self.config)

    def load_package(
        self,
        dst: PackageLayout,
        component_filter: ComponentFilter,
        unarchive_all: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        return self._delegate().load_package(dst, component_filter, unarchive_all)

    def load_package_metadata(
        self,
        dst: PackageLayout,
        want_sbom: bool,
        skip_validation: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        return self._delegate().load_package_metadata(dst, want_sbom, skip_validation)
