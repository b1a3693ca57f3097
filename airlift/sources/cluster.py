"""
Package source for packages already deployed to a cluster.

Only metadata can be read back: a deployed package has no filesystem
artifact to load or collect.
"""

import base64
import binascii
import json
import logging
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from airlift.config import AirliftConfig
from airlift.errors import SourceError, ValidationError
from airlift.filters import ComponentFilter
from airlift.layout import PackageLayout
from airlift.schemas import PackageDefinition
from airlift.utils import dump_yaml

from .base import PackageOptions, PackageSource


logger = logging.getLogger(__name__)

PACKAGE_NAME_REGEX = re.compile(r"^[a-z0-9][a-z0-9-]*$")
SECRET_PREFIX = "airlift-package-"
STATE_NAMESPACE = "airlift"


class DeployedPackageReader(ABC):
    """Reads the definition of a deployed package from cluster state."""

    @abstractmethod
    def get_deployed_package(self, name: str) -> PackageDefinition:
        pass


class KubectlSecretReader(DeployedPackageReader):
    """
    Reads the airlift-package-<name> secret with kubectl.

    The secret's "data" key holds base64 JSON whose "data" field is the
    deployed package definition.
    """

    def __init__(self, namespace: str = STATE_NAMESPACE, kubectl: str = "kubectl"):
        self.namespace = namespace
        self.kubectl = kubectl

    def get_deployed_package(self, name: str) -> PackageDefinition:
        binary = shutil.which(self.kubectl)
        if binary is None:
            raise SourceError(f"{self.kubectl} is required to read deployed packages")

        command = [binary, "get", "secret", f"{SECRET_PREFIX}{name}", "-n", self.namespace, "-o", "json"]
        logger.debug(f"Executing: {' '.join(command)}")
        result = subprocess.run(command, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            error_msg = f"unable to read deployed package {name!r}"
            if result.stderr:
                error_msg += f": {result.stderr[:500]}"
            raise SourceError(error_msg)

        try:
            secret = json.loads(result.stdout)
            deployed = json.loads(base64.b64decode(secret["data"]["data"]))
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise SourceError(f"deployed package secret for {name!r} is malformed: {e}") from e

        if not isinstance(deployed, dict) or not isinstance(deployed.get("data"), dict):
            raise SourceError(f"deployed package secret for {name!r} does not hold a package definition")
        try:
            return PackageDefinition.from_dict(deployed["data"])
        except (AttributeError, TypeError) as e:
            raise SourceError(f"deployed package secret for {name!r} is malformed: {e}") from e


class ClusterSource(PackageSource):
    def __init__(
        self,
        options: PackageOptions,
        config: Optional[AirliftConfig] = None,
        reader: Optional[DeployedPackageReader] = None,
    ):
        if not PACKAGE_NAME_REGEX.match(options.package_source):
            raise ValidationError(f"invalid package name {options.package_source!r}")
        super().__init__(options, config)
        self.reader = reader or KubectlSecretReader()

    def load_package(
        self,
        dst: PackageLayout,
        component_filter: ComponentFilter,
        unarchive_all: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        raise NotImplementedError("loading a deployed package is not supported")

    def collect(self, destination_dir: Union[str, Path]) -> Path:
        raise NotImplementedError("collecting a deployed package is not supported")

    def load_package_metadata(
        self,
        dst: PackageLayout,
        want_sbom: bool,
        skip_validation: bool,
    ) -> tuple[PackageDefinition, list[str]]:
        pkg = self.reader.get_deployed_package(self.options.package_source)
        dst.base.mkdir(parents=True, exist_ok=True)
        dst.definition.write_text(dump_yaml(pkg.to_dict()))
        return pkg, []
