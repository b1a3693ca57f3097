"""Package source for http(s):// and sget:// URLs."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Union

import httpx

from airlift.config import AirliftConfig
from airlift.errors import IntegrityError, SourceError
from airlift.filters import ComponentFilter
from airlift.layout import PackageLayout
from airlift.schemas import PackageDefinition
from airlift.utils import get_file_checksum, retry_with_backoff

from .base import PackageOptions, PackageSource, rename_from_metadata
from .tarball import TarballSource


logger = logging.getLogger(__name__)

SGET_PREFIX = "sget://"
DOWNLOAD_NAME = "airlift-package-url-unknown"


class URLSource(PackageSource):
    """
    A package archive served over HTTP(S), or fetched with cosign sget.

    Plain HTTP(S) downloads must be pinned with a shasum unless the config
    allows insecure transfers; sget verifies authenticity itself.
    """

    def __init__(
        self,
        options: PackageOptions,
        config: Optional[AirliftConfig] = None,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(options, config)
        self._client = client

    @property
    def url(self) -> str:
        return self.options.package_source

    def collect(self, destination_dir: Union[str, Path]) -> Path:
        """
        Download the package and rename it after its metadata.

        Raises:
            SourceError: If the URL is unpinned and insecure transfers are not allowed
            IntegrityError: If the download does not match the shasum
        """
        if not self.config.insecure and not self.options.shasum and not self.url.startswith(SGET_PREFIX):
            raise SourceError(
                "remote package provided without a shasum, use --insecure to ignore, or provide one w/ --shasum"
            )

        destination = Path(destination_dir) / DOWNLOAD_NAME
        if self.url.startswith(SGET_PREFIX):
            self._sget(destination)
        else:
            try:
                retry_with_backoff(
                    lambda: self._download(destination),
                    max_attempts=3,
                    retry_on=(httpx.TransportError,),
                    logger=logger,
                )
            except httpx.TransportError as e:
                raise SourceError(f"unable to download {self.url}: {e}") from e

        if self.options.shasum:
            actual = get_file_checksum(destination)
            if actual != self.options.shasum:
                raise IntegrityError(
                    f"shasum mismatch for {self.url}: expected {self.options.shasum}, got {actual}"
                )

        return rename_from_metadata(destination)

    def _download(self, destination: Path) -> None:
        logger.info(f"Downloading {self.url}")
        client = self._client or httpx.Client(timeout=60.0, follow_redirects=True)
        try:
            with client.stream("GET", self.url) as response:
                if response.status_code >= 400:
                    raise SourceError(f"unable to download {self.url}: HTTP {response.status_code}")
                with open(destination, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        finally:
            if self._client is None:
                client.close()

    def _sget(self, destination: Path) -> None:
        cosign = shutil.which("cosign")
        if cosign is None:
            raise SourceError("cosign is required to download sget:// packages")

        command = [cosign, "sget", "--output", str(destination)]
        if self.options.sget_key_path:
            command += ["--key", self.options.sget_key_path]
        command.append(self.url[len(SGET_PREFIX):])

        logger.debug(f"Executing: {' '.join(command)}")
        result = subprocess.run(command, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            error_msg = f"cosign sget failed with exit code {result.returncode}"
            if result.stderr:
                error_msg += f": {result.stderr[:500]}"
            raise SourceError(error_msg)

    def _delegate(self, tmp: Path) -> TarballSource:
        tarball = self.collect(tmp)
        options = PackageOptions(
            package_source=str(tarball),
            public_key_path=self.options.public_key_path,
            optional_components=self.options.optional_components,
        )
        return TarballSource(options, self.config)

    def load_package(
        self,
        dst: PackageLayout,
        component_filter: ComponentFilter,
        unarchive_all: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        tmp = self.config.make_temp_dir()
        try:
            return self._delegate(tmp).load_package(dst, component_filter, unarchive_all)
        finally:
            shutil.rmtree(tmp, ignore_errors=True)

    def load_package_metadata(
        self,
        dst: PackageLayout,
        want_sbom: bool,
        skip_validation: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        tmp = self.config.make_temp_dir()
        try:
            return self._delegate(tmp).load_package_metadata(dst, want_sbom, skip_validation)
        finally:
            shutil.rmtree(tmp, ignore_errors=True)
