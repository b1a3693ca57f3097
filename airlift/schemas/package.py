"""
PackageDefinition schema - the airlift.yaml document at the root of a package.

Holds package metadata, the build record stamped at creation time, the
component list, and the package-level variables and constants.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .component import Component
from .serde import omit_empty, str_list


PACKAGE_KIND = "AirliftPackageConfig"
INIT_KIND = "AirliftInitConfig"

# Build migrations recorded once a deprecated field has been rewritten
MIGRATION_SCRIPTS_TO_ACTIONS = "scripts-to-actions"
MIGRATION_PLURALIZE_SET_VARIABLE = "pluralize-set-variable"

SKELETON_ARCH = "skeleton"


@dataclass
class Metadata:
    name: str = ""
    description: str = ""
    version: str = ""
    url: str = ""
    image: str = ""
    uncompressed: bool = False
    architecture: str = ""
    yolo: bool = False
    authors: str = ""
    documentation: str = ""
    source: str = ""
    vendor: str = ""
    aggregate_checksum: str = ""

    _KEYS = {
        "name": "name",
        "description": "description",
        "version": "version",
        "url": "url",
        "image": "image",
        "uncompressed": "uncompressed",
        "architecture": "architecture",
        "yolo": "yolo",
        "authors": "authors",
        "documentation": "documentation",
        "source": "source",
        "vendor": "vendor",
        "aggregate_checksum": "aggregateChecksum",
    }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Metadata":
        data = data or {}
        return cls(**{attr: data[key] for attr, key in cls._KEYS.items() if key in data})

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({key: getattr(self, attr) for attr, key in self._KEYS.items()})


@dataclass
class BuildData:
    """Facts recorded when the package was created."""
    terminal: str = ""
    user: str = ""
    architecture: str = ""
    timestamp: str = ""
    version: str = ""
    migrations: list[str] = field(default_factory=list)
    registry_overrides: dict[str, str] = field(default_factory=dict)
    differential: bool = False
    differential_package_version: str = ""
    differential_missing: list[str] = field(default_factory=list)
    last_non_breaking_version: str = ""
    flavor: str = ""

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "BuildData":
        data = data or {}
        return cls(
            terminal=data.get("terminal", ""),
            user=data.get("user", ""),
            architecture=data.get("architecture", ""),
            timestamp=data.get("timestamp", ""),
            version=data.get("version", ""),
            migrations=str_list(data.get("migrations")),
            registry_overrides=dict(data.get("registryOverrides") or {}),
            differential=bool(data.get("differential", False)),
            differential_package_version=data.get("differentialPackageVersion", ""),
            differential_missing=str_list(data.get("differentialMissing")),
            last_non_breaking_version=data.get("lastNonBreakingVersion", ""),
            flavor=data.get("flavor", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "terminal": self.terminal,
            "user": self.user,
            "architecture": self.architecture,
            "timestamp": self.timestamp,
            "version": self.version,
            "migrations": list(self.migrations),
            "registryOverrides": dict(self.registry_overrides),
            "differential": self.differential,
            "differentialPackageVersion": self.differential_package_version,
            "differentialMissing": list(self.differential_missing),
            "lastNonBreakingVersion": self.last_non_breaking_version,
            "flavor": self.flavor,
        })


@dataclass
class Variable:
    """Deploy-time variable. Identity is name."""
    name: str
    description: str = ""
    default: str = ""
    prompt: bool = False
    sensitive: bool = False
    auto_indent: bool = False
    pattern: str = ""
    type: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Variable":
        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            default=str(data.get("default", "") or ""),
            prompt=bool(data.get("prompt", False)),
            sensitive=bool(data.get("sensitive", False)),
            auto_indent=bool(data.get("autoIndent", False)),
            pattern=data.get("pattern", ""),
            type=data.get("type", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "name": self.name,
            "description": self.description,
            "default": self.default,
            "prompt": self.prompt,
            "sensitive": self.sensitive,
            "autoIndent": self.auto_indent,
            "pattern": self.pattern,
            "type": self.type,
        })


@dataclass
class Constant:
    """Create-time constant. Identity is name."""
    name: str
    value: str = ""
    description: str = ""
    auto_indent: bool = False
    pattern: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Constant":
        return cls(
            name=data.get("name", ""),
            value=str(data.get("value", "") or ""),
            description=data.get("description", ""),
            auto_indent=bool(data.get("autoIndent", False)),
            pattern=data.get("pattern", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "name": self.name,
            "value": self.value,
            "description": self.description,
            "autoIndent": self.auto_indent,
            "pattern": self.pattern,
        })


@dataclass
class PackageDefinition:
    """
    The package definition document.

    Attributes:
        kind: AirliftPackageConfig or AirliftInitConfig
        metadata: Name, version, architecture, aggregate checksum
        build: Build record (absent on source definitions)
        components: Ordered component list
        constants: Create-time constants
        variables: Deploy-time variables
    """
    kind: str = PACKAGE_KIND
    metadata: Metadata = field(default_factory=Metadata)
    build: BuildData = field(default_factory=BuildData)
    components: list[Component] = field(default_factory=list)
    constants: list[Constant] = field(default_factory=list)
    variables: list[Variable] = field(default_factory=list)

    @property
    def is_init_config(self) -> bool:
        return self.kind == INIT_KIND

    @property
    def is_skeleton(self) -> bool:
        return self.build.architecture == SKELETON_ARCH

    def component_names(self) -> list[str]:
        return [c.name for c in self.components]

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PackageDefinition":
        data = data or {}
        return cls(
            kind=data.get("kind", PACKAGE_KIND),
            metadata=Metadata.from_dict(data.get("metadata")),
            build=BuildData.from_dict(data.get("build")),
            components=[Component.from_dict(c) for c in data.get("components") or []],
            constants=[Constant.from_dict(c) for c in data.get("constants") or []],
            variables=[Variable.from_dict(v) for v in data.get("variables") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "build": self.build.to_dict(),
            "components": [c.to_dict() for c in self.components],
            "constants": [c.to_dict() for c in self.constants],
            "variables": [v.to_dict() for v in self.variables],
        })


@dataclass
class DifferentialData:
    """Images and repos already shipped by a reference package."""
    images: set[str] = field(default_factory=set)
    repos: set[str] = field(default_factory=set)
    package_version: str = ""


@dataclass(frozen=True)
class SplitPackageData:
    """Contents of the .part000 shard of a split archive."""
    sha256_sum: str
    bytes: int
    count: int

    @classmethod
    def from_dict(cls, data: dict) -> "SplitPackageData":
        return cls(
            sha256_sum=data.get("sha256Sum", ""),
            bytes=int(data.get("bytes", 0)),
            count=int(data.get("count", 0)),
        )
