"""
airlift - Air-gapped deployment bundle packager

Composes multi-component package definitions across local and OCI-hosted
imports, and materializes signed, content-addressed package layouts from
registries, tarballs, URLs, split archives and live clusters.
"""

__version__ = "0.3.0"
__author__ = "Airlift Team"


__all__ = ["AirliftConfig", "load_config", "get_airlift_home"]

from .config import AirliftConfig, load_config, get_airlift_home
