"""
Package-aware operations on a registry artifact.

PackageRemote knows how airlift lays a package out as OCI layers: it reads
the definition and image index straight from the registry, works out which
layers a set of components needs, and pulls layer sets concurrently into a
directory.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, Optional

import yaml

from airlift.errors import SourceError
from airlift.layout import (
    ALWAYS_PULL,
    COMPONENTS_DIR,
    DEFINITION_FILE,
    IMAGES_BLOBS_DIR,
    IMAGES_DIR,
    INDEX_JSON,
    OCI_LAYOUT_FILE,
    SBOM_TAR,
)
from airlift.schemas import Component, PackageDefinition
from airlift.transform import parse_image_ref
from airlift.utils import ProgressPoller

from .remote import Remote
from .types import ANNOTATION_BASE_IMAGE_NAME, Descriptor, Index, Manifest, sum_descriptor_sizes


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class PackageRemote:
    """
    A package stored as an OCI artifact.

    Args:
        remote: Registry access for the artifact
        progress: Optional callback(bytes_written, bytes_expected) fed during pulls
    """

    def __init__(self, remote: Remote, progress: Optional[ProgressCallback] = None):
        self.remote = remote
        self.progress = progress

    @property
    def reference(self) -> str:
        return self.remote.reference

    def fetch_root(self) -> Manifest:
        return self.remote.fetch_root()

    def fetch_layer(self, desc: Descriptor) -> bytes:
        return self.remote.fetch_blob(desc)

    def _fetch_path(self, path: str) -> bytes:
        desc = self.fetch_root().locate(path)
        if desc.is_empty:
            raise SourceError(f"unable to find {path} in the manifest of {self.reference}")
        return self.fetch_layer(desc)

    def fetch_definition(self) -> PackageDefinition:
        """Read airlift.yaml directly from the artifact."""
        data = yaml.safe_load(self._fetch_path(DEFINITION_FILE))
        return PackageDefinition.from_dict(data or {})

    def fetch_images_index(self) -> Index:
        return Index.from_bytes(self._fetch_path(f"{IMAGES_DIR}/{INDEX_JSON}"))

    def fetch_manifest(self, desc: Descriptor) -> Manifest:
        return Manifest.from_bytes(self.fetch_layer(desc))

    def layers_from_requested_components(self, components: Iterable[Component]) -> list[Descriptor]:
        """
        Minimal layer set needed to deploy components.

        Covers each component tarball, the SBOM tarball when present, and, if
        any image is referenced, the image index, oci-layout and every blob of
        the referenced images.

        Raises:
            SourceError: If a component is not in the package
        """
        root = self.fetch_root()
        pkg = self.fetch_definition()
        known = set(pkg.component_names())

        layers: list[Descriptor] = []
        images: list[str] = []
        for component in components:
            if component.name not in known:
                raise SourceError(f"component {component.name} does not exist in this package")
            for image in component.images:
                if image not in images:
                    images.append(image)
            layers.append(root.locate(f"{COMPONENTS_DIR}/{component.name}.tar"))

        sboms = root.locate(SBOM_TAR)
        if not sboms.is_empty:
            layers.append(sboms)

        if images:
            layers.append(root.locate(f"{IMAGES_DIR}/{INDEX_JSON}"))
            layers.append(root.locate(f"{IMAGES_DIR}/{OCI_LAYOUT_FILE}"))
            index = self.fetch_images_index()
            for image in images:
                manifest_desc = _find_image(index, image)
                if manifest_desc is None:
                    raise SourceError(f"image {image} is not in the image index of {self.reference}")
                manifest = self.fetch_manifest(manifest_desc)
                layers.append(root.locate(f"{IMAGES_BLOBS_DIR}/{manifest_desc.encoded}"))
                layers.append(root.locate(f"{IMAGES_BLOBS_DIR}/{manifest.config.encoded}"))
                for layer in manifest.layers:
                    layers.append(root.locate(f"{IMAGES_BLOBS_DIR}/{layer.encoded}"))

        # Components with no content have no tarball
        return [layer for layer in layers if not layer.is_empty]

    def pull_package(
        self,
        destination: Path,
        concurrency: int,
        layers_to_pull: Optional[list[Descriptor]] = None,
    ) -> list[Descriptor]:
        """
        Pull layers into destination.

        With layers_to_pull None every layer is pulled; otherwise the listed
        layers plus the always-pulled metadata files.

        Returns:
            Descriptors that were written (those carrying a title)
        """
        root = self.fetch_root()
        if layers_to_pull is not None:
            wanted = list(layers_to_pull)
            for path in ALWAYS_PULL:
                desc = root.locate(path)
                if not desc.is_empty:
                    wanted.append(desc)
        else:
            wanted = list(root.layers)

        # De-duplicate shared blobs while keeping order
        seen = set()
        pulled = []
        for desc in wanted:
            if desc.title and desc.title not in seen:
                seen.add(desc.title)
                pulled.append(desc)

        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        total = sum_descriptor_sizes(pulled)

        logger.info(f"Pulling {self.reference} ({len(pulled)} layers)")
        with ProgressPoller(destination, total, self.progress):
            with ThreadPoolExecutor(max_workers=concurrency) as executor:
                # list() re-raises the first worker error
                list(executor.map(lambda d: self.remote.copy_blob(d, destination / d.title), pulled))
        logger.debug(f"Pulled {self.reference}")
        return pulled

    def pull_paths(self, paths: Iterable[str], destination: Path) -> list[Descriptor]:
        """Pull the named files that exist in the artifact, sequentially."""
        root = self.fetch_root()
        pulled = []
        for path in paths:
            desc = root.locate(path)
            if desc.is_empty:
                continue
            self.remote.copy_blob(desc, Path(destination) / desc.title)
            pulled.append(desc)
        return pulled

    def pull_package_metadata(self, destination: Path) -> list[Descriptor]:
        return self.pull_paths(ALWAYS_PULL, destination)

    def pull_package_sbom(self, destination: Path) -> list[Descriptor]:
        return self.pull_paths([SBOM_TAR], destination)


def _find_image(index: Index, image: str) -> Optional[Descriptor]:
    ref = parse_image_ref(image)
    for desc in index.manifests:
        name = desc.annotations.get(ANNOTATION_BASE_IMAGE_NAME, "")
        if name in (image, ref.reference):
            return desc
        # Older packages recorded docker.io images without the host
        if ref.host == "docker.io" and name == f"{ref.path}{ref.tag_or_digest}":
            return desc
        if image.startswith("docker.io/") and name == image[len("docker.io/"):]:
            return desc
    return None
