"""
OCI descriptor, manifest and index records.

Packages are pushed as a single OCI artifact whose layers are the package
files; each layer's org.opencontainers.image.title annotation is the file's
path relative to the package root.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional


ANNOTATION_TITLE = "org.opencontainers.image.title"
ANNOTATION_BASE_IMAGE_NAME = "org.opencontainers.image.base.name"
ANNOTATION_REF_NAME = "org.opencontainers.image.ref.name"

MEDIA_TYPE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_INDEX = "application/vnd.oci.image.index.v1+json"
MEDIA_TYPE_DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
MEDIA_TYPE_IMAGE_CONFIG = "application/vnd.oci.image.config.v1+json"
MEDIA_TYPE_IMAGE_LAYER = "application/vnd.oci.image.layer.v1.tar"
MEDIA_TYPE_PACKAGE_LAYER = "application/vnd.airlift.layer.v1.blob"
MEDIA_TYPE_PACKAGE_CONFIG = "application/vnd.airlift.config.v1+json"

OCI_LAYOUT_VERSION = "1.0.0"


@dataclass
class Descriptor:
    """Content-addressed pointer to a blob."""
    media_type: str = ""
    digest: str = ""
    size: int = 0
    annotations: dict[str, str] = field(default_factory=dict)
    platform: Optional[dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        return not self.digest and self.size == 0

    @property
    def title(self) -> str:
        return self.annotations.get(ANNOTATION_TITLE, "")

    @property
    def encoded(self) -> str:
        """Hex part of the digest."""
        return self.digest.split(":", 1)[-1]

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Descriptor":
        data = data or {}
        return cls(
            media_type=data.get("mediaType", ""),
            digest=data.get("digest", ""),
            size=int(data.get("size", 0)),
            annotations=dict(data.get("annotations") or {}),
            platform=data.get("platform"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"mediaType": self.media_type, "digest": self.digest, "size": self.size}
        if self.annotations:
            out["annotations"] = dict(self.annotations)
        if self.platform:
            out["platform"] = dict(self.platform)
        return out


@dataclass
class Manifest:
    config: Descriptor = field(default_factory=Descriptor)
    layers: list[Descriptor] = field(default_factory=list)
    media_type: str = MEDIA_TYPE_MANIFEST
    annotations: dict[str, str] = field(default_factory=dict)

    def locate(self, path: str) -> Descriptor:
        """Layer whose title is path, or an empty descriptor."""
        for layer in self.layers:
            if layer.title == path:
                return layer
        return Descriptor()

    def sum_layers_size(self) -> int:
        return sum(layer.size for layer in self.layers)

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        return cls(
            config=Descriptor.from_dict(data.get("config")),
            layers=[Descriptor.from_dict(d) for d in data.get("layers") or []],
            media_type=data.get("mediaType", MEDIA_TYPE_MANIFEST),
            annotations=dict(data.get("annotations") or {}),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Manifest":
        return cls.from_dict(json.loads(data))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "schemaVersion": 2,
            "mediaType": self.media_type,
            "config": self.config.to_dict(),
            "layers": [layer.to_dict() for layer in self.layers],
        }
        if self.annotations:
            out["annotations"] = dict(self.annotations)
        return out


@dataclass
class Index:
    manifests: list[Descriptor] = field(default_factory=list)
    media_type: str = MEDIA_TYPE_INDEX

    @classmethod
    def from_dict(cls, data: dict) -> "Index":
        return cls(
            manifests=[Descriptor.from_dict(d) for d in data.get("manifests") or []],
            media_type=data.get("mediaType", MEDIA_TYPE_INDEX),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Index":
        return cls.from_dict(json.loads(data))

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": 2,
            "mediaType": self.media_type,
            "manifests": [m.to_dict() for m in self.manifests],
        }


def sum_descriptor_sizes(descriptors: list[Descriptor]) -> int:
    return sum(d.size for d in descriptors)
