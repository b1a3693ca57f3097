"""Image area of a package: an OCI image layout under images/."""

import re
from pathlib import Path
from typing import Optional

from airlift.oci.types import Manifest


_HEX64 = re.compile(r"^[0-9a-f]{64}$")


class Images:
    """Paths of the OCI layout, index and content-addressed blobs."""

    def __init__(self):
        self.base: Optional[Path] = None
        self.index: Optional[Path] = None
        self.oci_layout: Optional[Path] = None
        self.blobs: list[Path] = []

    @property
    def blobs_dir(self) -> Path:
        return self.base / "blobs" / "sha256"

    def add_blob(self, blob: str) -> None:
        """Register a blob by hex digest; anything that is not 64 hex characters is ignored."""
        if not _HEX64.match(blob):
            return
        path = self.blobs_dir / blob
        if path not in self.blobs:
            self.blobs.append(path)

    def add_image(self, manifest: Manifest, manifest_digest: str) -> None:
        """Register every blob of one image: layers, config and the manifest itself."""
        for layer in manifest.layers:
            self.add_blob(layer.encoded)
        self.add_blob(manifest.config.encoded)
        self.add_blob(manifest_digest.split(":", 1)[-1])
