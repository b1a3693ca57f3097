"""
Configuration management for airlift.

Loads config.yaml from the airlift home directory ($AIRLIFT_HOME, default
~/.config/airlift). The resulting AirliftConfig is passed explicitly to the
composer, package sources and creator; nothing reads it from a global.
"""

import os
import platform
import tempfile
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from airlift.errors import AirliftError


DEFAULT_HOME = "~/.config/airlift"
CONFIG_FILE = "config.yaml"

# Layouts built before this release carry no checksums and no signature.
DEFAULT_LEGACY_CUTOVER = "v0.25.0"


class ConfigError(AirliftError):
    """Configuration validation error."""
    pass


@dataclass
class AirliftConfig:
    """
    Runtime configuration.

    Attributes:
        cache_path: Root of the local cache (remote skeleton components live under <cache>/oci)
        temp_directory: Parent for scratch directories, None for the system default
        oci_concurrency: Parallel layer copies during registry pulls
        insecure: Skip shasum requirements and signature checks; allow plain HTTP registries
        architecture: Target architecture when a definition does not pin one
        legacy_cutover_version: Build versions older than this use the legacy layout
        max_package_size_mb: Split archives larger than this (0 disables splitting)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "pretty" (rich) or "structured" (JSON)
        env_file: Optional dotenv file loaded into the environment
    """
    cache_path: str = "~/.airlift-cache"
    temp_directory: Optional[str] = None
    oci_concurrency: int = 3
    insecure: bool = False
    architecture: str = ""
    legacy_cutover_version: str = DEFAULT_LEGACY_CUTOVER
    max_package_size_mb: int = 0
    log_level: str = "INFO"
    log_format: str = "pretty"
    env_file: Optional[str] = None

    def __post_init__(self):
        if self.oci_concurrency < 1:
            raise ConfigError(f"oci_concurrency must be at least 1, got {self.oci_concurrency}")
        if self.max_package_size_mb < 0:
            raise ConfigError("max_package_size_mb cannot be negative")
        if self.log_format not in ("pretty", "structured"):
            raise ConfigError(f"log_format must be 'pretty' or 'structured', got {self.log_format!r}")

    @property
    def cache_dir(self) -> Path:
        return Path(self.cache_path).expanduser()

    @property
    def temp_dir(self) -> Optional[str]:
        if self.temp_directory:
            return str(Path(self.temp_directory).expanduser())
        return None

    def make_temp_dir(self, prefix: str = "airlift-") -> Path:
        """Create a scratch directory under the configured temp root."""
        parent = self.temp_dir
        if parent:
            Path(parent).mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=parent))

    def get_arch(self, *candidates: str) -> str:
        """
        Pick the target architecture.

        The first non-empty candidate wins, then the configured architecture,
        then the architecture of the running machine.
        """
        for arch in candidates:
            if arch:
                return arch
        if self.architecture:
            return self.architecture
        return runtime_arch()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AirliftConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def runtime_arch() -> str:
    """Map the interpreter's machine name onto OCI architecture names."""
    machine = platform.machine().lower()
    return {
        "x86_64": "amd64",
        "amd64": "amd64",
        "aarch64": "arm64",
        "arm64": "arm64",
    }.get(machine, machine)


def get_airlift_home() -> Path:
    """Return the airlift home directory."""
    return Path(os.environ.get("AIRLIFT_HOME", DEFAULT_HOME)).expanduser()


def load_config() -> AirliftConfig:
    """
    Load configuration from $AIRLIFT_HOME/config.yaml.

    Returns:
        Parsed AirliftConfig

    Raises:
        FileNotFoundError: If config.yaml does not exist
        ConfigError: If the YAML is invalid or has unknown keys
    """
    config_path = get_airlift_home() / CONFIG_FILE
    if not config_path.exists():
        raise FileNotFoundError(
            f"airlift config.yaml not found at {config_path}. Run 'airlift init' to create one."
        )

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    config = AirliftConfig.from_dict(data)

    if config.env_file:
        env_path = Path(config.env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path)

    # Environment wins over the file once dotenv has run
    if os.environ.get("AIRLIFT_ARCHITECTURE"):
        config.architecture = os.environ["AIRLIFT_ARCHITECTURE"]
    if os.environ.get("AIRLIFT_CACHE"):
        config.cache_path = os.environ["AIRLIFT_CACHE"]

    return config
