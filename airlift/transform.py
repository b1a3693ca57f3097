"""
Reference parsing for container images and git repositories.

Image references are normalized the way docker does it (docker.io host,
library/ namespace, implicit :latest). Git URLs may carry a pinned ref
after an @ (tag, branch, full ref or commit hash).
"""

import re
from dataclasses import dataclass

from airlift.errors import ValidationError


DEFAULT_REGISTRY = "docker.io"
OFFICIAL_NAMESPACE = "library"

_PATH_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|[-]*)[a-z0-9]+)*$")
_TAG = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST = re.compile(r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$")
_HASH = re.compile(r"^[0-9a-f]{40}$")

GIT_URL_REGEX = re.compile(
    r"^(?P<proto>[a-z]+:\/\/)(?P<hostPath>.+?)\/(?P<repo>[\w\-\.]+?)?(?P<git>\.git)?"
    r"(?P<atRef>@(?P<force>\+)?(?P<ref>[\/\+\w\-\.]+))?"
    r"(?P<gitPath>\/(?P<gitPathId>info\/.*|git-upload-pack|git-receive-pack))?$"
)


@dataclass(frozen=True)
class ImageRef:
    """
    A normalized image reference.

    Attributes:
        host: Registry host (docker.io when omitted)
        path: Repository path inside the registry
        tag: Tag, "latest" when neither tag nor digest was given
        digest: sha256:... when pinned by digest
        reference: Fully normalized reference string
        tag_or_digest: ":<tag>" or "@<digest>" (digest wins when both are set)
    """
    host: str
    path: str
    tag: str
    digest: str
    reference: str
    tag_or_digest: str

    @property
    def name(self) -> str:
        return f"{self.host}/{self.path}"


def parse_image_ref(image: str) -> ImageRef:
    """
    Parse and normalize an image reference.

    Raises:
        ValidationError: If the reference is malformed
    """
    if not image or image != image.strip():
        raise ValidationError(f"unable to parse image ref {image!r}")

    remainder, digest = image, ""
    if "@" in remainder:
        remainder, digest = remainder.split("@", 1)
        if not _DIGEST.match(digest):
            raise ValidationError(f"unable to parse image ref {image!r}: invalid digest")

    tag = ""
    last_slash = remainder.rfind("/")
    last_colon = remainder.rfind(":")
    if last_colon > last_slash:
        remainder, tag = remainder[:last_colon], remainder[last_colon + 1:]
        if not _TAG.match(tag):
            raise ValidationError(f"unable to parse image ref {image!r}: invalid tag")

    parts = remainder.split("/")
    first = parts[0]
    if len(parts) > 1 and ("." in first or ":" in first or first == "localhost"):
        host, path_parts = first, parts[1:]
    else:
        host, path_parts = DEFAULT_REGISTRY, parts
        if len(path_parts) == 1:
            path_parts = [OFFICIAL_NAMESPACE] + path_parts

    for part in path_parts:
        if not _PATH_COMPONENT.match(part):
            raise ValidationError(f"unable to parse image ref {image!r}: invalid repository path")

    if not tag and not digest:
        tag = "latest"

    path = "/".join(path_parts)
    reference = f"{host}/{path}"
    if tag:
        reference += f":{tag}"
    if digest:
        reference += f"@{digest}"

    tag_or_digest = f"@{digest}" if digest else f":{tag}"
    return ImageRef(
        host=host,
        path=path,
        tag=tag,
        digest=digest,
        reference=reference,
        tag_or_digest=tag_or_digest,
    )


def git_url_split_ref(source_url: str) -> tuple[str, str]:
    """
    Split a git URL into (url without ref, ref).

    Raises:
        ValidationError: If the URL does not look like a git URL
    """
    match = GIT_URL_REGEX.match(source_url)
    if not match:
        raise ValidationError(f"unable to get extract the repoName from the url {source_url}")
    groups = {k: v or "" for k, v in match.groupdict().items()}
    no_ref = f"{groups['proto']}{groups['hostPath']}/{groups['repo']}{groups['git']}"
    return no_ref, groups["ref"]


def is_git_hash(ref: str) -> bool:
    return bool(_HASH.match(ref))


def parse_git_ref(ref: str) -> str:
    """Expand a short ref into a full reference name; bare names are tags."""
    if not is_git_hash(ref) and not ref.startswith("refs/"):
        return f"refs/tags/{ref}"
    return ref


def is_tag_ref(ref_name: str) -> bool:
    return ref_name.startswith("refs/tags/")
