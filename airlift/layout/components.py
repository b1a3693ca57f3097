"""
Per-component storage inside a package layout.

A component is stored either as an expanded directory (while it is being
built or deployed) or as a reproducible <name>.tar (while at rest). The
registry keeps exactly one entry per name, so a component can never be
both at once.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from airlift.errors import LayoutError, NotLoadedError
from airlift.schemas import Component
from airlift.utils import create_reproducible_tarball, extract_archive, get_dir_size


logger = logging.getLogger(__name__)

TEMP_DIR = ".temp"
FILES_DIR = "files"
CHARTS_DIR = "charts"
VALUES_DIR = "values"
REPOS_DIR = "repos"
MANIFESTS_DIR = "manifests"
DATA_INJECTIONS_DIR = "data-injections"


@dataclass
class ComponentPaths:
    """Directory form of a component. Unused subdirectories are None."""
    base: Path
    temp: Optional[Path] = None
    files: Optional[Path] = None
    charts: Optional[Path] = None
    values: Optional[Path] = None
    repos: Optional[Path] = None
    manifests: Optional[Path] = None
    data_injections: Optional[Path] = None

    @classmethod
    def for_component(cls, base: Path, component: Component, with_temp: bool = False) -> "ComponentPaths":
        """Paths a component needs, given which resources it declares."""
        paths = cls(base=base)
        if with_temp:
            paths.temp = base / TEMP_DIR
        if component.files:
            paths.files = base / FILES_DIR
        if component.charts:
            paths.charts = base / CHARTS_DIR
            if any(chart.values_files for chart in component.charts):
                paths.values = base / VALUES_DIR
        if component.repos:
            paths.repos = base / REPOS_DIR
        if component.manifests:
            paths.manifests = base / MANIFESTS_DIR
        if component.data_injections:
            paths.data_injections = base / DATA_INJECTIONS_DIR
        return paths

    def directories(self) -> list[Path]:
        return [
            p for p in (
                self.temp,
                self.files,
                self.charts,
                self.values,
                self.repos,
                self.manifests,
                self.data_injections,
            )
            if p is not None
        ]


@dataclass(frozen=True)
class ComponentTarball:
    """Archived form of a component."""
    path: Path


ComponentEntry = Union[ComponentPaths, ComponentTarball]


class Components:
    """Registry of component storage under <package>/components."""

    def __init__(self, base: Optional[Path] = None):
        self.base = base
        self._entries: dict[str, ComponentEntry] = {}

    @property
    def dirs(self) -> dict[str, ComponentPaths]:
        return {k: v for k, v in self._entries.items() if isinstance(v, ComponentPaths)}

    @property
    def tarballs(self) -> dict[str, Path]:
        return {k: v.path for k, v in self._entries.items() if isinstance(v, ComponentTarball)}

    def get(self, name: str) -> Optional[ComponentEntry]:
        return self._entries.get(name)

    def register_tarball(self, name: str, path: Path) -> None:
        self._entries[name] = ComponentTarball(Path(path))

    def create(self, component: Component) -> ComponentPaths:
        """
        Create the directory form of a component.

        Raises:
            LayoutError: If the component is currently registered as a tarball
        """
        name = component.name
        if isinstance(self._entries.get(name), ComponentTarball):
            raise LayoutError(
                "create component paths",
                name,
                f"component tarball for {name!r} exists, use unarchive instead",
            )
        if self.base is None:
            raise LayoutError("create component paths", name, "components base is not set")

        paths = ComponentPaths.for_component(self.base / name, component, with_temp=True)
        paths.base.mkdir(parents=True, exist_ok=True)
        for directory in paths.directories():
            directory.mkdir(parents=True, exist_ok=True)

        self._entries[name] = paths
        return paths

    def archive(self, component: Component, cleanup_temp: bool = True) -> None:
        """
        Replace a component directory with <name>.tar.

        An empty directory is removed without producing a tarball.

        Raises:
            NotLoadedError: If the component has no directory entry
        """
        name = component.name
        entry = self._entries.get(name)
        if not isinstance(entry, ComponentPaths):
            raise NotLoadedError(name)

        base = entry.base
        if cleanup_temp and entry.temp is not None:
            shutil.rmtree(entry.temp, ignore_errors=True)

        if get_dir_size(base) > 0:
            tarball = base.with_name(f"{base.name}.tar")
            logger.debug(f"Archiving {name!r}")
            create_reproducible_tarball(base, tarball, prefix=name)
            self._entries[name] = ComponentTarball(tarball)
        else:
            logger.debug(f"Component {name!r} is empty, skipping archiving")
            del self._entries[name]

        shutil.rmtree(base, ignore_errors=True)

    def unarchive(self, component: Component) -> ComponentPaths:
        """
        Expand <name>.tar back into a directory.

        Idempotent: if the directory already exists, only the registry entry
        is switched.

        Raises:
            NotLoadedError: If no tarball is registered for the component
            FileNotFoundError: If the registered tarball is missing on disk
        """
        name = component.name
        entry = self._entries.get(name)
        if not isinstance(entry, ComponentTarball):
            raise NotLoadedError(name)
        if not entry.path.exists():
            raise FileNotFoundError(f"component tarball {entry.path} does not exist")

        paths = ComponentPaths.for_component(self.base / name, component)
        self._entries[name] = paths

        if paths.base.exists():
            logger.debug(f"Component {name!r} already unarchived")
            return paths

        logger.debug(f"Unarchiving {entry.path.name!r}")
        extract_archive(entry.path, self.base)
        os.remove(entry.path)
        return paths
