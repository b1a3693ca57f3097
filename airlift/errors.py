"""
Error classes for airlift.

The taxonomy follows where a failure originates:
- ValidationError: malformed user input (definitions, names, options)
- ImportChainError: import-chain resolution and composition
- IntegrityError: checksum and signature verification
- LayoutError: on-disk layout problems (wraps the operation and path)
- SourceError: package source routing and retrieval

Errors are exceptions, not values. The CLI catches at the boundary and
reports; library code lets them propagate.
"""

from pathlib import Path
from typing import Optional, Union


class AirliftError(Exception):
    """Base exception for airlift."""
    pass


class ValidationError(AirliftError):
    """
    Invalid user input.

    Examples:
    - import reference with both a path and a URL
    - absolute import path
    - cluster package name with illegal characters
    """
    pass


class ImportChainError(AirliftError):
    """Import chain could not be resolved or composed."""
    pass


class MissingArchitectureError(ImportChainError):
    """An import chain was requested without a target architecture."""

    def __init__(self):
        super().__init__("architecture must be provided")


class RemoteImportError(ImportChainError):
    """
    Illegal import topology.

    Only the head of a chain may import from a remote package; a component
    imported from a remote package may not import anything else.
    """
    pass


class ComponentNotFoundError(ImportChainError):
    """No component in the imported package satisfied the name and selector."""

    def __init__(self, name: str, location: str):
        self.name = name
        self.location = location
        super().__init__(f"component {name!r} not found in {location!r}")


class AmbiguousComponentError(ImportChainError):
    """More than one component in the imported package satisfied the match."""

    def __init__(self, name: str, location: str, arch: str):
        self.name = name
        self.location = location
        super().__init__(
            f"multiple components named {name!r} found in {location!r} satisfying {arch!r}"
        )


class CircularImportError(ImportChainError):
    """A local import revisits a path already present in the chain."""

    def __init__(self, trail: list[str]):
        self.trail = trail
        super().__init__(f"detected circular import chain: {' -> '.join(trail)}")


class LocalOSRedefinitionError(ImportChainError):
    """A component and its import disagree on the required local OS."""

    def __init__(self, component: str, existing: str, redefined: str):
        super().__init__(
            f'component {component!r}: "only.localOS" {existing!r} cannot be '
            f"redefined as {redefined!r} during compose"
        )


class IntegrityError(AirliftError):
    """
    Package contents failed verification.

    Raised for aggregate checksum mismatches, missing or unexpected files,
    and per-file digest mismatches.
    """
    pass


class SignatureError(IntegrityError):
    """Detached signature is missing, unexpected, or does not verify."""
    pass


class PackageSignedButNoKeyError(SignatureError):
    """
    Package carries a signature but no public key was supplied.

    Callers may downgrade this to a warning when validation is explicitly
    skipped.
    """

    def __init__(self):
        super().__init__(
            "package is signed but no key was provided - add a key with the --key flag "
            "or use the --insecure flag and run the command again"
        )


class LayoutError(AirliftError):
    """A layout operation failed on disk."""

    def __init__(self, op: str, path: Union[str, Path], reason: str):
        self.op = op
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{op} {path}: {reason}")


class NotLoadedError(LayoutError):
    """A component was used before its directory or tarball was registered."""

    def __init__(self, name: str, path: Optional[Union[str, Path]] = None):
        self.name = name
        super().__init__("load", path or name, f"component {name!r} is not loaded")


class SourceError(AirliftError):
    """A package source could not be identified or retrieved."""
    pass


class FilterError(AirliftError):
    """A component filter rejected its input."""
    pass


class LocalOSRequiredError(FilterError):
    """The local OS filter was built without an OS."""

    def __init__(self):
        super().__init__("localOS is required")
