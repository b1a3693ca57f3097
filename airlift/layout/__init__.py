"""Package layout: the file set of a package instance on disk."""

from .components import ComponentPaths, Components, ComponentTarball
from .images import Images
from .package import (
    ALWAYS_PULL,
    CHECKSUMS_FILE,
    COMPONENTS_DIR,
    DEFINITION_FILE,
    IMAGES_BLOBS_DIR,
    IMAGES_DIR,
    INDEX_JSON,
    OCI_LAYOUT_FILE,
    SIGNATURE_FILE,
    PackageLayout,
    read_definition_file,
)
from .sboms import SBOM_DIR, SBOM_TAR, SBOMs

__all__ = [
    "ALWAYS_PULL",
    "CHECKSUMS_FILE",
    "COMPONENTS_DIR",
    "ComponentPaths",
    "Components",
    "ComponentTarball",
    "DEFINITION_FILE",
    "IMAGES_BLOBS_DIR",
    "IMAGES_DIR",
    "Images",
    "INDEX_JSON",
    "OCI_LAYOUT_FILE",
    "PackageLayout",
    "read_definition_file",
    "SBOM_DIR",
    "SBOM_TAR",
    "SBOMs",
    "SIGNATURE_FILE",
]
