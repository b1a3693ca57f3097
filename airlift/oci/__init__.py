"""
OCI records and registry access.

The package-level remote (partial pulls, component layer selection) lives in
airlift.oci.package; import it from there.
"""

from .types import (
    ANNOTATION_BASE_IMAGE_NAME,
    ANNOTATION_TITLE,
    Descriptor,
    Index,
    Manifest,
)

__all__ = [
    "ANNOTATION_BASE_IMAGE_NAME",
    "ANNOTATION_TITLE",
    "Descriptor",
    "Index",
    "Manifest",
]
