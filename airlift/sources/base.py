"""
Base class and shared validation for package sources.

A source materializes a package layout from one transport. Only one of
load_package, load_package_metadata and collect should be used per source
instance: loading has side effects on both the source and the destination.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import yaml

from airlift.config import AirliftConfig
from airlift.errors import (
    IntegrityError,
    NotLoadedError,
    PackageSignedButNoKeyError,
    SignatureError,
    SourceError,
)
from airlift.filters import ComponentFilter
from airlift.layout import CHECKSUMS_FILE, DEFINITION_FILE, SIGNATURE_FILE, PackageLayout
from airlift.schemas import INIT_KIND, PACKAGE_KIND, SKELETON_ARCH, PackageDefinition
from airlift.signing import verify_file
from airlift.utils import get_file_checksum, read_bytes_member


logger = logging.getLogger(__name__)

VALID_PACKAGE_EXTENSIONS = (".tar.zst", ".tar")


@dataclass
class PackageOptions:
    """
    How a package is addressed and verified.

    Attributes:
        package_source: OCI reference, URL, file path or deployed package name
        shasum: Expected SHA-256 of the artifact (tarball, URL, or OCI manifest)
        public_key_path: Public key for signature verification
        sget_key_path: Key passed to cosign for sget:// downloads
        optional_components: Comma-separated component selection request
    """
    package_source: str
    shasum: str = ""
    public_key_path: str = ""
    sget_key_path: str = ""
    optional_components: str = ""


class PackageSource(ABC):
    """
    A transport a package can be loaded from.

    Each source must implement:
    - load_package(): materialize the (filtered) package into a layout
    - load_package_metadata(): materialize only the definition and checksums
    - collect(): relocate the package to a single local tarball
    """

    def __init__(self, options: PackageOptions, config: Optional[AirliftConfig] = None):
        self.options = options
        self.config = config or AirliftConfig()

    @abstractmethod
    def load_package(
        self,
        dst: PackageLayout,
        component_filter: ComponentFilter,
        unarchive_all: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        """
        Load the package into dst, keeping only components the filter admits.

        Returns:
            (definition, warnings)
        """
        pass

    @abstractmethod
    def load_package_metadata(
        self,
        dst: PackageLayout,
        want_sbom: bool,
        skip_validation: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        """
        Load the definition (and optionally SBOMs) into dst.

        Returns:
            (definition, warnings)
        """
        pass

    @abstractmethod
    def collect(self, destination_dir: Union[str, Path]) -> Path:
        """
        Write the package as one tarball in destination_dir.

        Returns:
            Path of the tarball
        """
        pass

    def verify_shasum(self, path: Union[str, Path]) -> None:
        """
        Raises:
            IntegrityError: If the file digest differs from options.shasum
        """
        if not self.options.shasum:
            return
        actual = get_file_checksum(path)
        if actual != self.options.shasum:
            raise IntegrityError(f"shasum mismatch for {path}: expected {self.options.shasum}, got {actual}")

    def validate_loaded(self, dst: PackageLayout, pkg: PackageDefinition, is_partial: bool) -> None:
        """Migrate a legacy layout, then check integrity and signature of a current one."""
        dst.migrate_legacy(self.config.legacy_cutover_version)
        if dst.is_legacy_layout:
            logger.debug(f"{dst.base} uses the legacy layout, skipping checksum validation")
            return
        validate_package_integrity(dst, pkg.metadata.aggregate_checksum, is_partial)
        validate_package_signature(dst, self.options.public_key_path, self.config.insecure)

    def validate_metadata(self, dst: PackageLayout, pkg: PackageDefinition, want_sbom: bool, skip_validation: bool) -> None:
        """Metadata-only counterpart of validate_loaded; signed-but-no-key may be downgraded."""
        dst.migrate_legacy(self.config.legacy_cutover_version)
        if dst.is_legacy_layout:
            return
        if want_sbom:
            validate_package_integrity(dst, pkg.metadata.aggregate_checksum, True)
        try:
            validate_package_signature(dst, self.options.public_key_path, self.config.insecure)
        except PackageSignedButNoKeyError:
            if not skip_validation:
                raise
            logger.warning("The package was signed but no public key was provided, skipping signature validation")


def unarchive_components(dst: PackageLayout, pkg: PackageDefinition) -> None:
    """Expand every component tarball (creating empty dirs for content-less ones) and the SBOMs."""
    for component in pkg.components:
        try:
            dst.components.unarchive(component)
        except NotLoadedError:
            dst.components.create(component)
    if dst.sboms.path is not None:
        dst.sboms.unarchive()


def validate_package_integrity(layout: PackageLayout, aggregate_checksum: str, is_partial: bool) -> None:
    """
    Check checksums.txt against its recorded aggregate and every listed file.

    With is_partial, listed files missing from disk are tolerated; files
    present on disk must still match. Every tracked file other than the
    definition, checksums and signature must appear in checksums.txt.

    Raises:
        IntegrityError: On any mismatch or missing file
    """
    if not layout.checksums.exists():
        raise IntegrityError(f"unable to validate checksums, {CHECKSUMS_FILE} was not loaded")
    if not layout.definition.exists():
        raise IntegrityError(f"unable to validate checksums, {DEFINITION_FILE} was not loaded")

    actual = get_file_checksum(layout.checksums)
    if actual != aggregate_checksum:
        raise IntegrityError(f"invalid aggregate checksum: (expected: {aggregate_checksum}, received: {actual})")

    checked = set()
    for line in layout.checksums.read_text().splitlines():
        if not line.strip():
            continue
        parts = line.split(maxsplit=1)
        if len(parts) != 2:
            raise IntegrityError(f"invalid checksum line: {line}")
        expected, rel = parts[0], parts[1].strip()
        path = layout.base / rel
        if not path.exists():
            if is_partial:
                continue
            raise IntegrityError(f"unable to validate checksums - missing file: {rel}")
        if get_file_checksum(path) != expected:
            raise IntegrityError(f"checksum mismatch for {rel}")
        checked.add(rel)

    for rel in layout.files():
        if rel in (DEFINITION_FILE, CHECKSUMS_FILE, SIGNATURE_FILE):
            continue
        if rel not in checked:
            raise IntegrityError(f"unable to validate checksums - {rel} is not listed in {CHECKSUMS_FILE}")

    logger.debug(f"Validated checksums of {len(checked)} files in {layout.base}")


def validate_package_signature(layout: PackageLayout, public_key_path: str, insecure: bool = False) -> None:
    """
    Verify the detached signature over checksums.txt.

    Raises:
        PackageSignedButNoKeyError: If the package is signed and no key was given
        SignatureError: If a key was given for an unsigned package, or the
            signature does not verify
    """
    if insecure:
        return
    if public_key_path:
        logger.debug(f"Using public key {public_key_path!r} for signature validation")

    signed = layout.signature is not None and layout.signature.exists()
    if not signed and not public_key_path:
        return
    if not signed:
        raise SignatureError(
            "a key was provided but the package is not signed - the package may be corrupted "
            "or the --key flag was erroneously specified"
        )
    if not public_key_path:
        raise PackageSignedButNoKeyError()
    verify_file(layout.checksums, layout.signature, public_key_path)


def is_valid_file_extension(filename: str) -> bool:
    return str(filename).endswith(VALID_PACKAGE_EXTENSIONS)


def package_suffix(uncompressed: bool) -> str:
    return ".tar" if uncompressed else ".tar.zst"


def name_from_metadata(pkg: PackageDefinition, is_skeleton: bool = False, config: Optional[AirliftConfig] = None) -> str:
    """File name stem for a package: airlift-package-<name>-<arch>[-<version>]."""
    config = config or AirliftConfig()
    arch = SKELETON_ARCH if is_skeleton else config.get_arch(pkg.metadata.architecture, pkg.build.architecture)

    if pkg.kind == INIT_KIND:
        name = f"airlift-init-{arch}"
    elif pkg.kind == PACKAGE_KIND:
        name = f"airlift-package-{pkg.metadata.name}-{arch}"
    else:
        name = f"airlift-{pkg.kind.lower()}-{arch}"

    if pkg.build.differential:
        name = f"{name}-{pkg.build.differential_package_version}-differential-{pkg.metadata.version}"
    elif pkg.metadata.version:
        name = f"{name}-{pkg.metadata.version}"
    return name


def _identify_unknown_tarball(path: Path) -> Path:
    if not path.exists():
        raise FileNotFoundError(f"{path} does not exist")
    if path.suffix:
        if is_valid_file_extension(path.name):
            return path
        raise SourceError(f"{path} is not a supported tarball format {VALID_PACKAGE_EXTENSIONS}")

    with open(path, "rb") as f:
        magic = f.read(4)
    suffix = ".tar.zst" if magic == b"\x28\xb5\x2f\xfd" else ".tar"
    renamed = path.with_name(path.name + suffix)
    os.replace(path, renamed)
    return renamed


def rename_from_metadata(path: Union[str, Path]) -> Path:
    """
    Rename a downloaded tarball after the package it contains.

    Raises:
        SourceError: If the tarball has no airlift.yaml
    """
    path = _identify_unknown_tarball(Path(path))
    suffix = ".tar.zst" if path.name.endswith(".tar.zst") else ".tar"

    data = read_bytes_member(path, DEFINITION_FILE)
    pkg = None
    if data:
        try:
            document = yaml.safe_load(data)
            if not isinstance(document, dict):
                raise SourceError(f"{DEFINITION_FILE} in {str(path)!r} must be a mapping")
            pkg = PackageDefinition.from_dict(document)
        except (yaml.YAMLError, AttributeError, TypeError) as e:
            raise SourceError(f"invalid {DEFINITION_FILE} in {str(path)!r}: {e}") from e
    if pkg is None or not pkg.metadata.name:
        raise SourceError(f"{str(path)!r} does not contain a {DEFINITION_FILE}")

    target = path.with_name(name_from_metadata(pkg) + suffix)
    shutil.move(path, target)
    return target
