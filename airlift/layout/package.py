"""
PackageLayout - the file set of one package instance.

A layout is a value describing where every package file lives under a base
directory. Building one never touches disk; the opt-in setters
(add_images, add_sboms, add_signature) and set_from_paths/set_from_layers
decide which files are tracked, and files() enumerates them.

    <base>/
      airlift.yaml
      checksums.txt
      airlift.yaml.sig
      components/<name>.tar | components/<name>/
      images/{oci-layout,index.json,blobs/sha256/<hex>}
      sboms/ | sboms.tar
"""

import json
import logging
import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Union

import yaml
from packaging.version import InvalidVersion, Version

from airlift.config import DEFAULT_LEGACY_CUTOVER
from airlift.deprecated import migrate_component
from airlift.errors import LayoutError
from airlift.oci.types import (
    ANNOTATION_BASE_IMAGE_NAME,
    MEDIA_TYPE_IMAGE_CONFIG,
    MEDIA_TYPE_IMAGE_LAYER,
    MEDIA_TYPE_MANIFEST,
    OCI_LAYOUT_VERSION,
    Descriptor,
    Index,
    Manifest,
)
from airlift.schemas import PackageDefinition
from airlift.signing import sign_file
from airlift.transform import parse_image_ref
from airlift.utils import get_file_checksum, sha256_bytes, split_file, write_archive

from .components import Components
from .images import Images
from .sboms import SBOM_DIR, SBOM_TAR, SBOMs


logger = logging.getLogger(__name__)

DEFINITION_FILE = "airlift.yaml"
CHECKSUMS_FILE = "checksums.txt"
SIGNATURE_FILE = "airlift.yaml.sig"
COMPONENTS_DIR = "components"
IMAGES_DIR = "images"
OCI_LAYOUT_FILE = "oci-layout"
INDEX_JSON = "index.json"
IMAGES_BLOBS_DIR = "images/blobs/sha256"

LEGACY_IMAGES_TAR = "images.tar"

# Files every partial pull fetches, whatever components were requested
ALWAYS_PULL = [DEFINITION_FILE, CHECKSUMS_FILE, SIGNATURE_FILE]


class PackageLayout:
    """
    Paths of a package instance rooted at base.

    Attributes:
        base: Package root directory
        definition: airlift.yaml
        checksums: checksums.txt
        signature: airlift.yaml.sig, None when the package is unsigned
        components: Per-component directory/tarball registry
        images: OCI image layout paths, base None until add_images()
        sboms: SBOM directory or tarball, path None until add_sboms()
    """

    def __init__(self, base: Union[str, Path]):
        self.base = Path(base)
        self.definition = self.base / DEFINITION_FILE
        self.checksums = self.base / CHECKSUMS_FILE
        self.signature: Optional[Path] = None
        self.components = Components(self.base / COMPONENTS_DIR)
        self.images = Images()
        self.sboms = SBOMs()
        self._is_legacy = False

    @property
    def is_legacy_layout(self) -> bool:
        return self._is_legacy

    def add_signature(self, key_path: Optional[str]) -> "PackageLayout":
        if key_path:
            self.signature = self.base / SIGNATURE_FILE
        return self

    def add_images(self) -> "PackageLayout":
        self.images.base = self.base / IMAGES_DIR
        self.images.oci_layout = self.images.base / OCI_LAYOUT_FILE
        self.images.index = self.images.base / INDEX_JSON
        return self

    def add_sboms(self) -> "PackageLayout":
        self.sboms = SBOMs(self.base / SBOM_DIR)
        return self

    def set_from_layers(self, layers: Iterable[Descriptor]) -> None:
        self.set_from_paths([layer.title for layer in layers if layer.title])

    def set_from_paths(self, paths: Iterable[str]) -> None:
        """Track the recognized package files among paths (relative, posix)."""
        for rel in paths:
            path = PurePosixPath(rel)
            rel = path.as_posix()
            if rel == DEFINITION_FILE:
                self.definition = self.base / rel
            elif rel == SIGNATURE_FILE:
                self.signature = self.base / rel
            elif rel == CHECKSUMS_FILE:
                self.checksums = self.base / rel
            elif rel == SBOM_TAR:
                self.sboms.path = self.base / rel
            elif rel == f"{IMAGES_DIR}/{OCI_LAYOUT_FILE}":
                self.images.oci_layout = self.base / rel
            elif rel == f"{IMAGES_DIR}/{INDEX_JSON}":
                self.images.index = self.base / rel
            elif rel.startswith(IMAGES_BLOBS_DIR + "/"):
                if self.images.base is None:
                    self.images.base = self.base / IMAGES_DIR
                self.images.add_blob(path.name)
            elif rel.startswith(COMPONENTS_DIR + "/") and path.suffix == ".tar" and len(path.parts) == 2:
                self.components.register_tarball(path.stem, self.base / rel)
            else:
                logger.debug(f"ignoring path {rel}")

    def files(self) -> dict[str, Path]:
        """Every tracked file as {relative posix path: absolute path}."""
        tracked: list[Optional[Path]] = [
            self.definition,
            self.signature,
            self.checksums,
            self.images.oci_layout,
            self.images.index,
            *self.images.blobs,
            *self.components.tarballs.values(),
        ]
        if self.sboms.is_tarball:
            tracked.append(self.sboms.path)
        return {p.relative_to(self.base).as_posix(): p for p in tracked if p is not None}

    def read_definition(self) -> tuple[PackageDefinition, list[str]]:
        """
        Load airlift.yaml and migrate deprecated component fields.

        Returns:
            (definition, migration warnings)
        """
        pkg = read_definition_file(self.definition)
        warnings = []
        migrated = []
        for component in pkg.components:
            component, component_warnings = migrate_component(pkg.build, component)
            migrated.append(component)
            warnings.extend(component_warnings)
        pkg.components = migrated
        return pkg, warnings

    def write_definition(self, pkg: PackageDefinition) -> None:
        self.base.mkdir(parents=True, exist_ok=True)
        self.definition.write_text(yaml.safe_dump(pkg.to_dict(), sort_keys=False))

    def generate_checksums(self) -> str:
        """
        Write checksums.txt and return the aggregate checksum.

        Every tracked file except airlift.yaml, checksums.txt and the
        signature is listed as "<sha256>  <relative path>", sorted. The
        aggregate is the SHA-256 of checksums.txt itself.
        """
        excluded = {DEFINITION_FILE, CHECKSUMS_FILE, SIGNATURE_FILE}
        lines = sorted(
            f"{get_file_checksum(path)}  {rel}"
            for rel, path in self.files().items()
            if rel not in excluded
        )
        self.checksums.write_text("\n".join(lines) + "\n")
        return get_file_checksum(self.checksums)

    def sign_package(self, signing_key_path: str, password: Optional[str] = None) -> None:
        """Write a detached signature over checksums.txt."""
        if not signing_key_path:
            return
        self.add_signature(signing_key_path)
        sign_file(self.checksums, self.signature, signing_key_path, password)

    def archive_package(self, destination: Path, max_package_size_mb: int = 0) -> list[Path]:
        """
        Write every tracked file (and the SBOM directory, if expanded) into one archive.

        Args:
            destination: .tar or .tar.zst path
            max_package_size_mb: Split into .partNNN shards above this size (0 disables)

        Returns:
            Written files (the archive, or its shards)
        """
        members = dict(self.files())
        if self.sboms.path is not None and self.sboms.path.is_dir():
            for path in sorted(self.sboms.path.rglob("*")):
                if path.is_file():
                    members[path.relative_to(self.base).as_posix()] = path

        destination.parent.mkdir(parents=True, exist_ok=True)
        write_archive(members, destination)

        chunk_size = max_package_size_mb * 1000 * 1000
        if chunk_size and destination.stat().st_size > chunk_size:
            logger.info(f"Package is larger than {max_package_size_mb}MB, splitting into multiple files")
            return split_file(destination, chunk_size)
        return [destination]

    def migrate_legacy(self, cutover: str = DEFAULT_LEGACY_CUTOVER) -> None:
        """
        Convert a pre-checksum layout into the current one.

        Applies only when there is no checksums file, no signature, and the
        build version predates cutover. Adopts the flat sboms/ directory,
        converts a docker-save images.tar into the OCI image layout, and
        creates a directory for every component.
        """
        if self.checksums.exists() or self.signature is not None:
            return

        pkg = read_definition_file(self.definition)
        if not pkg.build.version:
            return
        try:
            build_version = Version(pkg.build.version)
            cutover_version = Version(cutover)
        except InvalidVersion as e:
            raise LayoutError("migrate legacy layout", self.definition, str(e)) from e
        if build_version >= cutover_version:
            return
        self._is_legacy = True

        legacy_sboms = self.base / SBOM_DIR
        if legacy_sboms.is_dir():
            self.add_sboms()
            logger.debug(f"Adopting legacy SBOM directory {legacy_sboms}")

        legacy_images = self.base / LEGACY_IMAGES_TAR
        if legacy_images.exists():
            self.add_images()
            logger.debug(f"Migrating {legacy_images} to {self.images.base}")
            tags = [image for component in pkg.components for image in component.images]
            self._convert_docker_archive(legacy_images, tags)
            legacy_images.unlink()

        for component in pkg.components:
            self.components.create(component)

    def _convert_docker_archive(self, archive: Path, tags: list[str]) -> dict[str, str]:
        """Load each tag from a docker-save tarball into the OCI layout; returns tag -> manifest digest."""
        self.images.blobs_dir.mkdir(parents=True, exist_ok=True)
        self.images.oci_layout.write_text(json.dumps({"imageLayoutVersion": OCI_LAYOUT_VERSION}))
        index = Index.from_bytes(self.images.index.read_bytes()) if self.images.index.exists() else Index()

        tag_to_digest = {}
        with tarfile.open(archive, "r:") as tar:
            entries = json.loads(_read_member(tar, "manifest.json"))
            for tag in tags:
                wanted = parse_image_ref(tag).reference
                entry = next(
                    (e for e in entries
                     if any(parse_image_ref(t).reference == wanted for t in e.get("RepoTags") or [])),
                    None,
                )
                if entry is None:
                    raise LayoutError("migrate legacy layout", archive, f"image {tag!r} not found in legacy archive")

                config = self._write_blob(_read_member(tar, entry["Config"]), MEDIA_TYPE_IMAGE_CONFIG)
                layers = [self._copy_layer(tar, name) for name in entry.get("Layers") or []]
                manifest = Manifest(config=config, layers=layers, media_type=MEDIA_TYPE_MANIFEST)
                manifest_desc = self._write_blob(
                    json.dumps(manifest.to_dict(), separators=(",", ":")).encode(), MEDIA_TYPE_MANIFEST
                )
                manifest_desc.annotations[ANNOTATION_BASE_IMAGE_NAME] = tag
                index.manifests.append(manifest_desc)

                self.images.add_image(manifest, manifest_desc.digest)
                tag_to_digest[tag] = manifest_desc.digest

        self.images.index.write_text(json.dumps(index.to_dict(), indent=2))
        return tag_to_digest

    def _write_blob(self, data: bytes, media_type: str) -> Descriptor:
        digest = sha256_bytes(data)
        (self.images.blobs_dir / digest).write_bytes(data)
        return Descriptor(media_type=media_type, digest=f"sha256:{digest}", size=len(data))

    def _copy_layer(self, tar: tarfile.TarFile, name: str) -> Descriptor:
        source = tar.extractfile(name)
        if source is None:
            raise LayoutError("migrate legacy layout", name, "layer is not a regular file")
        with tempfile.NamedTemporaryFile(dir=self.images.blobs_dir, delete=False) as tmp:
            shutil.copyfileobj(source, tmp)
            tmp_path = Path(tmp.name)
        digest = get_file_checksum(tmp_path)
        size = tmp_path.stat().st_size
        tmp_path.replace(self.images.blobs_dir / digest)
        return Descriptor(media_type=MEDIA_TYPE_IMAGE_LAYER, digest=f"sha256:{digest}", size=size)


def _read_member(tar: tarfile.TarFile, name: str) -> bytes:
    member = tar.extractfile(name)
    if member is None:
        raise LayoutError("read", name, "not a regular file in archive")
    return member.read()


def read_definition_file(path: Path) -> PackageDefinition:
    """Parse an airlift.yaml without running migrations."""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise LayoutError("read", path, f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise LayoutError("read", path, "package definition must be a mapping")
    return PackageDefinition.from_dict(data)
