"""Tests for detached Ed25519 signatures."""

import pytest

from airlift.errors import SignatureError
from airlift.signing import generate_key_pair, sign_file, verify_file


def test_sign_and_verify(tmp_path, key_pair):
    private, public = key_pair
    target = tmp_path / "checksums.txt"
    target.write_text("abc  components/web.tar\n")
    signature = tmp_path / "airlift.yaml.sig"

    sign_file(target, signature, private)
    verify_file(target, signature, public)


def test_tampered_file_fails(tmp_path, key_pair):
    private, public = key_pair
    target = tmp_path / "checksums.txt"
    target.write_text("abc  components/web.tar\n")
    signature = tmp_path / "airlift.yaml.sig"
    sign_file(target, signature, private)

    target.write_text("def  components/web.tar\n")
    with pytest.raises(SignatureError, match="does not verify"):
        verify_file(target, signature, public)


def test_wrong_key_fails(tmp_path, key_pair):
    private, _ = key_pair
    other_private, other_public = tmp_path / "other.key", tmp_path / "other.pub"
    generate_key_pair(other_private, other_public)
    target = tmp_path / "checksums.txt"
    target.write_text("x\n")
    signature = tmp_path / "sig"
    sign_file(target, signature, private)

    with pytest.raises(SignatureError):
        verify_file(target, signature, other_public)


def test_password_protected_key(tmp_path):
    private, public = tmp_path / "k.key", tmp_path / "k.pub"
    generate_key_pair(private, public, password="hunter2")
    target = tmp_path / "f"
    target.write_text("x")

    with pytest.raises(SignatureError, match="unable to load signing key"):
        sign_file(target, tmp_path / "sig", private)

    sign_file(target, tmp_path / "sig", private, password="hunter2")
    verify_file(target, tmp_path / "sig", public)


def test_malformed_signature(tmp_path, key_pair):
    _, public = key_pair
    target = tmp_path / "f"
    target.write_text("x")
    signature = tmp_path / "sig"
    signature.write_text("not base64!!")

    with pytest.raises(SignatureError, match="malformed signature"):
        verify_file(target, signature, public)
