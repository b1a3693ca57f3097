"""
OCI registry access.

Remote is the narrow interface the rest of airlift needs from a registry:
resolve the root manifest for a reference and fetch blobs by descriptor.
RegistryRemote implements it over the OCI distribution HTTP API with httpx,
including anonymous/basic bearer-token negotiation.
"""

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from airlift.errors import IntegrityError, SourceError
from airlift.schemas import SKELETON_ARCH
from airlift.utils import retry_with_backoff

from .types import (
    MEDIA_TYPE_DOCKER_MANIFEST,
    MEDIA_TYPE_DOCKER_MANIFEST_LIST,
    MEDIA_TYPE_INDEX,
    MEDIA_TYPE_MANIFEST,
    Descriptor,
    Index,
    Manifest,
)


logger = logging.getLogger(__name__)

OCI_URL_PREFIX = "oci://"

_MANIFEST_ACCEPT = ", ".join([
    MEDIA_TYPE_MANIFEST,
    MEDIA_TYPE_INDEX,
    MEDIA_TYPE_DOCKER_MANIFEST,
    MEDIA_TYPE_DOCKER_MANIFEST_LIST,
])
_AUTH_PARAM = re.compile(r'(\w+)="([^"]*)"')


class Remote(ABC):
    """A package artifact in a registry."""

    reference: str

    @abstractmethod
    def fetch_root(self) -> Manifest:
        """Resolve and return the artifact's root manifest (cached)."""
        pass

    @abstractmethod
    def fetch_blob(self, desc: Descriptor) -> bytes:
        """Fetch a blob and verify it against the descriptor."""
        pass

    def copy_blob(self, desc: Descriptor, dest: Path) -> None:
        """Write a blob to dest, creating parent directories."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.fetch_blob(desc))


def expected_sha256(desc: Descriptor) -> str:
    algorithm, _, expected = desc.digest.partition(":")
    if algorithm != "sha256":
        raise IntegrityError(f"unsupported digest algorithm {algorithm!r} for {desc.digest}")
    return expected


def check_digest(desc: Descriptor, actual: str, size: int) -> None:
    """Compare a computed sha256 hex digest and byte count against desc."""
    if actual != expected_sha256(desc):
        raise IntegrityError(f"digest mismatch for {desc.digest}: received sha256:{actual}")
    if desc.size and size != desc.size:
        raise IntegrityError(f"size mismatch for {desc.digest}: expected {desc.size}, received {size}")


def verify_blob(desc: Descriptor, data: bytes) -> bytes:
    check_digest(desc, hashlib.sha256(data).hexdigest(), len(data))
    return data


def parse_oci_url(url: str) -> tuple[str, str, str]:
    """
    Split oci://host/repo[:tag|@digest] into (host, repository, reference).

    Raises:
        SourceError: If the URL is not an oci:// reference
    """
    if not url.startswith(OCI_URL_PREFIX):
        raise SourceError(f"{url!r} is not an {OCI_URL_PREFIX} reference")
    rest = url[len(OCI_URL_PREFIX):]
    if "/" not in rest:
        raise SourceError(f"{url!r} is missing a repository")
    host, path = rest.split("/", 1)

    if "@" in path:
        repository, reference = path.split("@", 1)
        # A digest pins the reference; any tag alongside it is ignored
        if ":" in repository.rsplit("/", 1)[-1]:
            repository = repository.rsplit(":", 1)[0]
    elif ":" in path.rsplit("/", 1)[-1]:
        repository, reference = path.rsplit(":", 1)
    else:
        repository, reference = path, "latest"

    if not repository:
        raise SourceError(f"{url!r} is missing a repository")
    return host, repository, reference


class RegistryRemote(Remote):
    """
    Remote backed by an OCI distribution registry.

    Args:
        url: oci://host/repo:tag reference
        architecture: Platform selected when the reference is an index
        insecure: Use plain HTTP
        username / password: Optional registry credentials
        client: Optional preconfigured httpx.Client (tests inject a MockTransport)
    """

    def __init__(
        self,
        url: str,
        architecture: str,
        insecure: bool = False,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.host, self.repository, self.tag = parse_oci_url(url)
        sep = "@" if self.tag.startswith("sha256:") else ":"
        self.reference = f"{self.host}/{self.repository}{sep}{self.tag}"
        self.architecture = architecture
        self.scheme = "http" if insecure else "https"
        self.username = username
        self.password = password
        self._client = client or httpx.Client(timeout=60.0, follow_redirects=True)
        self._token: Optional[str] = None
        self._root: Optional[Manifest] = None

    def _url(self, kind: str, ref: str) -> str:
        return f"{self.scheme}://{self.host}/v2/{self.repository}/{kind}/{ref}"

    def _authenticate(self, challenge: str) -> None:
        scheme, _, params = challenge.partition(" ")
        if scheme.lower() != "bearer":
            if self.username is None:
                raise SourceError(f"registry {self.host} requires credentials")
            self._token = None
            return
        fields = dict(_AUTH_PARAM.findall(params))
        realm = fields.pop("realm", "")
        if not realm:
            raise SourceError(f"registry {self.host} sent an unusable auth challenge")
        auth = (self.username, self.password or "") if self.username else None
        response = self._client.get(realm, params=fields, auth=auth)
        response.raise_for_status()
        body = response.json()
        self._token = body.get("token") or body.get("access_token")

    def _get(self, url: str, headers: Optional[dict] = None, stream: bool = False) -> httpx.Response:
        """
        GET url, negotiating a bearer token on the first 401.

        With stream=True the body is left unread; the caller must close
        the response.
        """
        def send(request_headers: dict, auth) -> httpx.Response:
            request = self._client.build_request("GET", url, headers=request_headers)
            return self._client.send(request, auth=auth, stream=stream)

        def attempt() -> httpx.Response:
            request_headers = dict(headers or {})
            if self._token:
                request_headers["Authorization"] = f"Bearer {self._token}"
            auth = (self.username, self.password or "") if self.username and not self._token else None
            response = send(request_headers, auth)
            if response.status_code == 401 and "www-authenticate" in response.headers and not self._token:
                response.close()
                self._authenticate(response.headers["www-authenticate"])
                if self._token:
                    request_headers["Authorization"] = f"Bearer {self._token}"
                response = send(request_headers, auth)
            return response

        try:
            response = retry_with_backoff(attempt, retry_on=(httpx.TransportError,), logger=logger)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            e.response.close()
            raise SourceError(f"failed to fetch {url}: status {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise SourceError(f"failed to fetch {url}: {e}") from e
        return response

    def fetch_root(self) -> Manifest:
        if self._root is not None:
            return self._root

        response = self._get(self._url("manifests", self.tag), headers={"Accept": _MANIFEST_ACCEPT})
        content_type = response.headers.get("content-type", "").split(";")[0]
        body = response.content
        if content_type in (MEDIA_TYPE_INDEX, MEDIA_TYPE_DOCKER_MANIFEST_LIST) or b'"manifests"' in body[:4096]:
            index = Index.from_bytes(body)
            wanted = self.architecture
            chosen = None
            for desc in index.manifests:
                platform = desc.platform or {}
                if platform.get("architecture") == wanted:
                    chosen = desc
                    break
            if chosen is None:
                raise SourceError(
                    f"{self.url} has no manifest for architecture {wanted!r}"
                    + (" (is it a skeleton package?)" if wanted != SKELETON_ARCH else "")
                )
            response = self._get(self._url("manifests", chosen.digest), headers={"Accept": _MANIFEST_ACCEPT})
            body = verify_blob(chosen, response.content)

        self._root = Manifest.from_bytes(body)
        logger.debug(f"Resolved root manifest for {self.reference} ({len(self._root.layers)} layers)")
        return self._root

    def fetch_blob(self, desc: Descriptor) -> bytes:
        response = self._get(self._url("blobs", desc.digest))
        return verify_blob(desc, response.content)

    def copy_blob(self, desc: Descriptor, dest: Path) -> None:
        """Stream a blob to dest, hashing as it is written; dest is removed on failure."""
        expected_sha256(desc)
        dest.parent.mkdir(parents=True, exist_ok=True)
        url = self._url("blobs", desc.digest)
        response = self._get(url, stream=True)
        digest = hashlib.sha256()
        size = 0
        try:
            with open(dest, "wb") as f:
                for chunk in response.iter_bytes():
                    digest.update(chunk)
                    f.write(chunk)
                    size += len(chunk)
            check_digest(desc, digest.hexdigest(), size)
        except httpx.HTTPError as e:
            dest.unlink(missing_ok=True)
            raise SourceError(f"failed to fetch {url}: {e}") from e
        except IntegrityError:
            dest.unlink(missing_ok=True)
            raise
        finally:
            response.close()

    def close(self) -> None:
        self._client.close()
