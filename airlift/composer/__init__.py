"""Import chain resolution and component composition."""

from .chain import (
    ImportChain,
    Node,
    compatible_component,
    compose_package_component,
    new_import_chain,
    validate_import,
)
from .override import make_path_relative_to

__all__ = [
    "compatible_component",
    "compose_package_component",
    "ImportChain",
    "make_path_relative_to",
    "new_import_chain",
    "Node",
    "validate_import",
]
