"""
Detached Ed25519 signatures over package files.

Keys are PEM files (PKCS8 private keys, optionally password protected, and
SubjectPublicKeyInfo public keys). The signature file holds the base64 of
the raw 64-byte signature.
"""

import base64
import binascii
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from airlift.errors import SignatureError


PathLike = Union[str, Path]


def generate_key_pair(private_path: PathLike, public_path: PathLike, password: Optional[str] = None) -> None:
    """Write a new Ed25519 key pair as PEM files."""
    key = Ed25519PrivateKey.generate()
    encryption = (
        serialization.BestAvailableEncryption(password.encode())
        if password else serialization.NoEncryption()
    )
    Path(private_path).write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    ))
    Path(public_path).write_bytes(key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))


def _load_private_key(path: PathLike, password: Optional[str]) -> Ed25519PrivateKey:
    try:
        key = serialization.load_pem_private_key(
            Path(path).read_bytes(),
            password=password.encode() if password else None,
        )
    except (ValueError, TypeError) as e:
        raise SignatureError(f"unable to load signing key {path}: {e}") from e
    if not isinstance(key, Ed25519PrivateKey):
        raise SignatureError(f"signing key {path} is not an Ed25519 key")
    return key


def _load_public_key(path: PathLike) -> Ed25519PublicKey:
    try:
        key = serialization.load_pem_public_key(Path(path).read_bytes())
    except ValueError as e:
        raise SignatureError(f"unable to load public key {path}: {e}") from e
    if not isinstance(key, Ed25519PublicKey):
        raise SignatureError(f"public key {path} is not an Ed25519 key")
    return key


def sign_file(target: PathLike, signature_path: PathLike, key_path: PathLike, password: Optional[str] = None) -> None:
    """Sign target and write the detached signature to signature_path."""
    key = _load_private_key(key_path, password)
    signature = key.sign(Path(target).read_bytes())
    Path(signature_path).write_text(base64.b64encode(signature).decode("ascii") + "\n")


def verify_file(target: PathLike, signature_path: PathLike, public_key_path: PathLike) -> None:
    """
    Verify a detached signature.

    Raises:
        SignatureError: If the signature is malformed or does not match
    """
    key = _load_public_key(public_key_path)
    try:
        signature = base64.b64decode(Path(signature_path).read_text().strip(), validate=True)
    except binascii.Error as e:
        raise SignatureError(f"malformed signature {signature_path}: {e}") from e
    try:
        key.verify(signature, Path(target).read_bytes())
    except InvalidSignature as e:
        raise SignatureError(f"signature {signature_path} does not verify against {public_key_path}") from e
