"""SBOM area of a package: a sboms/ directory or a single sboms.tar."""

import logging
import shutil
from pathlib import Path
from typing import Optional

from airlift.utils import create_reproducible_tarball, extract_archive


logger = logging.getLogger(__name__)

SBOM_DIR = "sboms"
SBOM_TAR = "sboms.tar"


class SBOMs:
    def __init__(self, path: Optional[Path] = None):
        self.path = path

    @property
    def is_tarball(self) -> bool:
        return self.path is not None and self.path.suffix == ".tar"

    def _require(self) -> Path:
        if self.path is None or not self.path.exists():
            raise FileNotFoundError(f"SBOMs not found at {self.path}")
        return self.path

    def unarchive(self) -> None:
        """Expand sboms.tar into sboms/ (no-op when already a directory)."""
        path = self._require()
        if path.is_dir():
            return
        directory = path.parent / SBOM_DIR
        extract_archive(path, directory)
        self.path = directory
        path.unlink()

    def archive(self) -> None:
        """Collapse sboms/ into a reproducible sboms.tar (no-op when already a tarball)."""
        path = self._require()
        if not path.is_dir():
            return
        tarball = path.parent / SBOM_TAR
        logger.debug(f"Archiving SBOMs into {tarball}")
        create_reproducible_tarball(path, tarball)
        self.path = tarball
        shutil.rmtree(path)
