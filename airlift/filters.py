"""
Component filters.

A filter takes a package definition and returns the components that survive.
Every package source applies the caller's filter the same way, so selection
behaves identically whether the package came from a registry, a tarball or
a cluster.

- Empty: keep everything
- ByLocalOS: drop components pinned to a different local OS
- BySelectState: comma-separated name globs, "-" prefix excludes
- Combine: apply several filters in sequence
"""

import copy
import enum
import functools
import re
from abc import ABC, abstractmethod
from typing import Optional

from airlift.errors import FilterError, LocalOSRequiredError
from airlift.schemas import Component, PackageDefinition


class ComponentFilter(ABC):
    """Abstract base class for component filters."""

    @abstractmethod
    def apply(self, pkg: PackageDefinition) -> list[Component]:
        """
        Select components from a package.

        Args:
            pkg: Package definition to filter (not modified)

        Returns:
            Surviving components, in their original order

        Raises:
            FilterError: If the filter cannot be applied
        """
        pass


class Empty(ComponentFilter):
    """Identity filter."""

    def apply(self, pkg: PackageDefinition) -> list[Component]:
        return list(pkg.components)


class ByLocalOS(ComponentFilter):
    """Keep components with no local OS pin or a pin equal to local_os."""

    def __init__(self, local_os: str):
        self.local_os = local_os

    def apply(self, pkg: PackageDefinition) -> list[Component]:
        if not self.local_os:
            raise LocalOSRequiredError()
        return [c for c in pkg.components if not c.only.local_os or c.only.local_os == self.local_os]


class SelectState(enum.Enum):
    UNKNOWN = "unknown"
    INCLUDED = "included"
    EXCLUDED = "excluded"


def _glob_char(pattern: str, i: int) -> tuple[Optional[str], int]:
    if i >= len(pattern) or pattern[i] in "-]":
        return None, i
    if pattern[i] == "\\":
        if i + 1 >= len(pattern):
            return None, i
        return pattern[i + 1], i + 2
    return pattern[i], i + 1


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> Optional["re.Pattern[str]"]:
    """
    Translate a slash-aware glob into a regex, or None if it is malformed.

    "*" and "?" never match "/". Classes are "[...]" with "^" negation,
    ranges "a-z" and backslash escapes.
    """
    out = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "\\":
            if i + 1 >= n:
                return None
            out.append(re.escape(pattern[i + 1]))
            i += 2
        elif c == "[":
            i += 1
            negate = i < n and pattern[i] == "^"
            if negate:
                i += 1
            ranges = []
            while i >= n or pattern[i] != "]" or not ranges:
                lo, i = _glob_char(pattern, i)
                if lo is None:
                    return None
                hi = lo
                if i < n and pattern[i] == "-":
                    hi, i = _glob_char(pattern, i + 1)
                    if hi is None:
                        return None
                ranges.append(re.escape(lo) if hi == lo else f"{re.escape(lo)}-{re.escape(hi)}")
            i += 1
            out.append(("[^" if negate else "[") + "".join(ranges) + "]")
        else:
            out.append(re.escape(c))
            i += 1
    try:
        return re.compile("".join(out) + r"\Z", re.DOTALL)
    except re.error:
        return None


def glob_match(pattern: str, name: str) -> bool:
    """Whole-name glob match; a malformed pattern matches nothing."""
    compiled = _compile_glob(pattern)
    return compiled is not None and compiled.match(name) is not None


def included_or_excluded(component_name: str, requested: list[str]) -> tuple[SelectState, str]:
    """
    Match a component name against requested globs.

    Exclusions ("-glob") are checked before inclusions, so an exclusion
    always beats an inclusion that also matches.

    Returns:
        (state, the request that decided it)
    """
    for request in requested:
        if request.startswith("-") and glob_match(request[1:], component_name):
            return SelectState.EXCLUDED, request
    for request in requested:
        if glob_match(request, component_name):
            return SelectState.INCLUDED, request
    return SelectState.UNKNOWN, ""


class BySelectState(ComponentFilter):
    """
    Keep components selected by a comma-separated request string.

    A blank request keeps everything. Otherwise only components an inclusion
    glob matches (and no exclusion glob matches) are kept.
    """

    def __init__(self, optional_components: str = ""):
        self.requested = [r.strip() for r in optional_components.split(",")] if optional_components else []

    @property
    def is_partial(self) -> bool:
        return len(self.requested) > 0 and self.requested[0] != ""

    def apply(self, pkg: PackageDefinition) -> list[Component]:
        if not self.is_partial:
            return list(pkg.components)

        result = []
        for component in pkg.components:
            state, _ = included_or_excluded(component.name, self.requested)
            if state == SelectState.INCLUDED:
                result.append(component)
        return result


class Combine(ComponentFilter):
    """Apply filters in order; each sees the previous filter's output."""

    def __init__(self, *filters: ComponentFilter):
        self.filters = filters

    def apply(self, pkg: PackageDefinition) -> list[Component]:
        result = copy.copy(pkg)
        for component_filter in self.filters:
            try:
                components = component_filter.apply(result)
            except Exception as e:
                raise FilterError(f"error applying filter {type(component_filter).__name__}: {e}") from e
            result = copy.copy(result)
            result.components = components
        return list(result.components)
