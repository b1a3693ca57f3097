"""
Import chain resolution.

A component may import a component of the same (or another) name from a
local package directory or a published skeleton package. Following those
imports yields a linear chain whose head is the component being created and
whose tail imports nothing. compose() folds the chain into one component.
"""

import copy
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from airlift.config import AirliftConfig
from airlift.deprecated import migrate_component
from airlift.errors import (
    AirliftError,
    AmbiguousComponentError,
    CircularImportError,
    ComponentNotFoundError,
    ImportChainError,
    MissingArchitectureError,
    RemoteImportError,
    ValidationError,
)
from airlift.layout import DEFINITION_FILE, read_definition_file
from airlift.oci.package import PackageRemote
from airlift.oci.remote import RegistryRemote
from airlift.schemas import SKELETON_ARCH, BuildData, Component, Constant, PackageDefinition, Variable

from .override import (
    compose_extensions,
    fix_paths,
    override_actions,
    override_deprecated,
    override_metadata,
    override_resources,
)
from .skeleton import fetch_skeleton_component


logger = logging.getLogger(__name__)

SKELETON_SUFFIX = "-skeleton"

RemoteFactory = Callable[[str], PackageRemote]


@dataclass(eq=False)
class Node:
    """
    One component in an import chain.

    Attributes:
        component: The component as defined in its package
        index: Position of the component in its package
        original_package_name: metadata.name of the package it came from
        relative_to_head: Directory of its package relative to the head
            package ("" for a component fetched from a skeleton)
        variables / constants: Package-level values of its package
    """
    component: Component
    index: int
    original_package_name: str
    relative_to_head: str
    variables: list[Variable] = field(default_factory=list)
    constants: list[Constant] = field(default_factory=list)
    chain: Optional["ImportChain"] = field(default=None, repr=False)

    @property
    def position(self) -> int:
        return self.chain.nodes.index(self)

    @property
    def prev(self) -> Optional["Node"]:
        pos = self.position
        return self.chain.nodes[pos - 1] if pos > 0 else None

    @property
    def next(self) -> Optional["Node"]:
        pos = self.position
        return self.chain.nodes[pos + 1] if pos + 1 < len(self.chain.nodes) else None

    @property
    def import_location(self) -> str:
        """Where this component was imported from, as written by the importer."""
        prev = self.prev
        if prev is not None and prev.component.import_.url:
            return prev.component.import_.url
        return self.relative_to_head

    def import_name(self) -> str:
        """Name looked up in the imported package."""
        return self.component.import_.name or self.component.name


def compatible_component(component: Component, arch: str, flavor: str) -> bool:
    """True if the component's only selector admits arch and flavor; empty matches all."""
    cluster_arch = component.only.cluster.architecture
    satisfies_arch = not cluster_arch or cluster_arch == arch
    satisfies_flavor = not component.only.flavor or component.only.flavor == flavor
    return satisfies_arch and satisfies_flavor


def validate_import(component: Component) -> None:
    """
    Check the shape of a component's import reference.

    Raises:
        ValidationError: If the reference is malformed
    """
    ref = component.import_
    reason = None
    if not ref.path and not ref.url:
        reason = "neither a path nor a URL was provided"
    elif ref.path and ref.url:
        reason = "both a path and a URL were provided"
    elif ref.path and posixpath.isabs(ref.path):
        reason = "path cannot be an absolute path"
    elif ref.url and not ref.url.startswith("oci://"):
        reason = "URL is not a valid OCI URL"
    elif ref.url and not ref.url.endswith(SKELETON_SUFFIX):
        reason = "OCI import URL must end with -skeleton"
    if reason:
        raise ValidationError(f"imported definition for {component.name} has been compromised: {reason}")


def _merge_by_name(first: list, second: list) -> list:
    names = {item.name for item in first}
    return list(first) + [item for item in second if item.name not in names]


class ImportChain:
    """
    Linear chain of imported components, head first.

    Build one with ImportChain.build() or new_import_chain().
    """

    def __init__(
        self,
        config: Optional[AirliftConfig] = None,
        working_dir: Union[str, Path] = ".",
        remote_factory: Optional[RemoteFactory] = None,
    ):
        self.config = config or AirliftConfig()
        self.working_dir = Path(working_dir)
        self.nodes: list[Node] = []
        self._remote_factory = remote_factory or self._default_remote
        self._remote: Optional[PackageRemote] = None

    @property
    def head(self) -> Optional[Node]:
        return self.nodes[0] if self.nodes else None

    @property
    def tail(self) -> Optional[Node]:
        return self.nodes[-1] if self.nodes else None

    def __len__(self) -> int:
        return len(self.nodes)

    def _default_remote(self, url: str) -> PackageRemote:
        return PackageRemote(RegistryRemote(url, SKELETON_ARCH, insecure=self.config.insecure))

    def append(
        self,
        component: Component,
        index: int,
        original_package_name: str,
        relative_to_head: str,
        variables: Optional[list[Variable]] = None,
        constants: Optional[list[Constant]] = None,
    ) -> Node:
        node = Node(
            component=component,
            index=index,
            original_package_name=original_package_name,
            relative_to_head=relative_to_head,
            variables=list(variables or []),
            constants=list(constants or []),
            chain=self,
        )
        self.nodes.append(node)
        return node

    def get_remote(self, url: str) -> PackageRemote:
        """Open (once) the skeleton package at url and make sure it exists."""
        if self._remote is not None:
            return self._remote
        remote = self._remote_factory(url)
        try:
            remote.fetch_root()
        except AirliftError as e:
            raise ImportChainError(f"published skeleton package for {url!r} does not exist: {e}") from e
        self._remote = remote
        return remote

    @classmethod
    def build(
        cls,
        head: Component,
        index: int,
        origin_package_name: str,
        arch: str,
        flavor: str = "",
        config: Optional[AirliftConfig] = None,
        working_dir: Union[str, Path] = ".",
        remote_factory: Optional[RemoteFactory] = None,
    ) -> "ImportChain":
        """
        Follow head's imports until a component imports nothing.

        Raises:
            MissingArchitectureError: If arch is empty
            ValidationError: If an import reference is malformed
            RemoteImportError: If a remote component imports anything
            CircularImportError: If a local import revisits a package
            ComponentNotFoundError / AmbiguousComponentError: If the imported
                package has zero or several matching components

        Every ImportChainError raised here carries the partial chain as
        its chain attribute.
        """
        chain = cls(config=config, working_dir=working_dir, remote_factory=remote_factory)
        try:
            chain._resolve(head, index, origin_package_name, arch, flavor)
        except AirliftError as e:
            e.chain = chain
            raise
        return chain

    def _resolve(self, head: Component, index: int, origin_package_name: str, arch: str, flavor: str) -> None:
        if not arch:
            raise MissingArchitectureError()

        self.append(head, index, origin_package_name, ".")
        history: list[str] = []

        node = self.head
        while node is not None:
            ref = node.component.import_
            is_local = bool(ref.path)
            is_remote = bool(ref.url)
            if not is_local and not is_remote:
                return

            validate_import(node.component)

            prev = node.prev
            if prev is not None and prev.component.import_.url:
                kind = "remote" if is_remote else "local"
                raise RemoteImportError(
                    f"detected malformed import chain, cannot import {kind} components from remote components"
                )

            if is_local:
                history.append(ref.path)
                relative = posixpath.normpath(posixpath.join(*history))
                if any(n.relative_to_head == relative for n in self.nodes):
                    raise CircularImportError(list(history))
                pkg = read_definition_file(self.working_dir / relative / DEFINITION_FILE)
                location = relative
            else:
                relative = ""
                pkg = self.get_remote(ref.url).fetch_definition()
                location = ref.url

            name = node.import_name()
            found = [
                (i, c) for i, c in enumerate(pkg.components)
                if c.name == name and compatible_component(c, arch, flavor)
            ]
            if not found:
                raise ComponentNotFoundError(name, location)
            if len(found) > 1:
                raise AmbiguousComponentError(name, location, arch)

            found_index, component = found[0]
            logger.debug(f"Component {node.component.name} imports {name} from {location}")
            self.append(component, found_index, pkg.metadata.name, relative, pkg.variables, pkg.constants)
            node = node.next

    def __str__(self) -> str:
        head = self.head
        if head.next is None:
            return f'component "{head.component.name}" imports nothing'

        def location(node: Node) -> str:
            return node.component.import_.path or node.component.import_.url

        parts = [f'component "{head.component.name}" imports "{head.import_name()}" in {location(head)}']
        node = head.next
        while node is not self.tail:
            parts.append(f'"{node.import_name()}" in {location(node)}')
            node = node.next
        return ", which imports ".join(parts)

    def contains_oci_import(self) -> bool:
        # Only the second-to-last node may import remotely
        prev = self.tail.prev
        return prev is not None and bool(prev.component.import_.url)

    def fetch_oci_skeleton(self) -> None:
        """Pull the remote tail's files into the cache and point the tail at them."""
        if not self.contains_oci_import():
            return
        node = self.tail.prev
        url = node.component.import_.url
        self.tail.relative_to_head = fetch_skeleton_component(
            self.get_remote(url),
            url,
            node.import_name(),
            self.config.cache_dir,
            self.working_dir,
        )

    def migrate(self, build: BuildData) -> list[str]:
        """Migrate deprecated fields on every node; returns the warnings produced."""
        warnings = []
        for node in self.nodes:
            node.component, node_warnings = migrate_component(build, node.component)
            warnings.extend(node_warnings)
        if warnings:
            warnings.append(f'Migrations were performed on the import chain of: "{self.head.component.name}"')
        return warnings

    def compose(self) -> Component:
        """
        Fold the chain into a single component.

        Raises:
            LocalOSRedefinitionError: If two nodes disagree on only.localOS
        """
        if len(self.nodes) == 1:
            return self.tail.component

        self.fetch_oci_skeleton()

        composed = Component(name="")
        for node in reversed(self.nodes):
            logger.debug(f"Composing {node.component.name} from {node.relative_to_head or node.import_location}")
            current = copy.deepcopy(node.component)
            fix_paths(current, node.relative_to_head)
            override_metadata(composed, current)
            override_deprecated(composed, current)
            override_resources(composed, current)
            override_actions(composed, current)
            compose_extensions(composed, current, node.relative_to_head)

        return composed

    def merge_variables(self, existing: Optional[list[Variable]] = None) -> list[Variable]:
        """Variables from every package in the chain; existing > head > tail."""
        merged: list[Variable] = []
        for node in reversed(self.nodes):
            merged = _merge_by_name(node.variables, merged)
        return _merge_by_name(existing or [], merged)

    def merge_constants(self, existing: Optional[list[Constant]] = None) -> list[Constant]:
        """Constants from every package in the chain; existing > head > tail."""
        merged: list[Constant] = []
        for node in reversed(self.nodes):
            merged = _merge_by_name(node.constants, merged)
        return _merge_by_name(existing or [], merged)


def new_import_chain(
    head: Component,
    index: int,
    origin_package_name: str,
    arch: str,
    flavor: str = "",
    config: Optional[AirliftConfig] = None,
    working_dir: Union[str, Path] = ".",
    remote_factory: Optional[RemoteFactory] = None,
) -> ImportChain:
    """Build the import chain for head; see ImportChain.build."""
    return ImportChain.build(
        head, index, origin_package_name, arch, flavor,
        config=config, working_dir=working_dir, remote_factory=remote_factory,
    )


def compose_package_component(
    pkg: PackageDefinition,
    component: Component,
    index: int,
    arch: str,
    flavor: str = "",
    config: Optional[AirliftConfig] = None,
    working_dir: Union[str, Path] = ".",
    remote_factory: Optional[RemoteFactory] = None,
) -> tuple[Component, ImportChain, list[str]]:
    """Resolve, migrate and compose one component of pkg."""
    chain = new_import_chain(
        component, index, pkg.metadata.name, arch, flavor,
        config=config, working_dir=working_dir, remote_factory=remote_factory,
    )
    logger.debug(str(chain))
    warnings = chain.migrate(pkg.build)
    return chain.compose(), chain, warnings
