"""Tests for airlift error classes.

Tests cover:
- Error hierarchy
- Structured attributes on chain and layout errors
- Messages
"""

from pathlib import Path

import pytest
from airlift.errors import (
    AirliftError,
    AmbiguousComponentError,
    CircularImportError,
    ComponentNotFoundError,
    FilterError,
    ImportChainError,
    IntegrityError,
    LayoutError,
    LocalOSRedefinitionError,
    LocalOSRequiredError,
    MissingArchitectureError,
    NotLoadedError,
    PackageSignedButNoKeyError,
    RemoteImportError,
    SignatureError,
    SourceError,
    ValidationError,
)


class TestAirliftError:
    """Tests for base AirliftError."""

    def test_is_exception(self):
        """AirliftError should be an Exception."""
        assert issubclass(AirliftError, Exception)

    def test_has_message(self):
        """AirliftError should have a message."""
        error = AirliftError("my message")
        assert str(error) == "my message"

    @pytest.mark.parametrize("cls", [
        ValidationError,
        ImportChainError,
        IntegrityError,
        LayoutError,
        SourceError,
        FilterError,
    ])
    def test_families_are_airlift_errors(self, cls):
        assert issubclass(cls, AirliftError)


class TestImportChainErrors:
    """Tests for import chain errors."""

    @pytest.mark.parametrize("cls", [
        MissingArchitectureError,
        RemoteImportError,
        ComponentNotFoundError,
        AmbiguousComponentError,
        CircularImportError,
        LocalOSRedefinitionError,
    ])
    def test_are_import_chain_errors(self, cls):
        assert issubclass(cls, ImportChainError)

    def test_missing_architecture_message(self):
        assert str(MissingArchitectureError()) == "architecture must be provided"

    def test_component_not_found_attributes(self):
        error = ComponentNotFoundError("web", "../base")
        assert error.name == "web"
        assert error.location == "../base"
        assert "'web'" in str(error)

    def test_ambiguous_component_mentions_arch(self):
        error = AmbiguousComponentError("web", "../base", "amd64")
        assert "amd64" in str(error)

    def test_circular_import_keeps_trail(self):
        error = CircularImportError(["a", "..", "a"])
        assert error.trail == ["a", "..", "a"]
        assert "a -> .. -> a" in str(error)

    def test_local_os_redefinition_message(self):
        error = LocalOSRedefinitionError("web", "linux", "windows")
        assert "'linux'" in str(error)
        assert "'windows'" in str(error)


class TestIntegrityErrors:
    """Tests for checksum and signature errors."""

    def test_signature_error_is_integrity_error(self):
        assert issubclass(SignatureError, IntegrityError)

    def test_signed_but_no_key_can_be_caught_as_signature_error(self):
        with pytest.raises(SignatureError):
            raise PackageSignedButNoKeyError()

    def test_signed_but_no_key_message(self):
        assert "--key" in str(PackageSignedButNoKeyError())


class TestLayoutError:
    """Tests for LayoutError."""

    def test_wraps_operation_and_path(self):
        error = LayoutError("create component paths", "components/web", "exists")
        assert error.op == "create component paths"
        assert error.path == Path("components/web")
        assert error.reason == "exists"
        assert str(error) == "create component paths components/web: exists"

    def test_not_loaded_is_layout_error(self):
        error = NotLoadedError("web")
        assert isinstance(error, LayoutError)
        assert error.name == "web"


class TestFilterError:
    """Tests for filter errors."""

    def test_local_os_required(self):
        error = LocalOSRequiredError()
        assert isinstance(error, FilterError)
        assert str(error) == "localOS is required"
