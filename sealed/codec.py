"""
Text encoding for RSA key material.

Public keys travel as base64 of their SubjectPublicKeyInfo DER encoding,
private keys as base64 of unencrypted PKCS#8 DER. The encode/decode functions
are synchronous; the export/import coroutines run them in a worker thread.
"""

import asyncio
import base64
import binascii

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from .primitives import ExportError, KeyImportError


def _b64decode(text: str) -> bytes:
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError, AttributeError) as e:
        raise KeyImportError("Key text is not valid base64") from e


def encode_public_key(public_key: RSAPublicKey) -> str:
    """Serialize an RSA public key to base64 SPKI DER"""
    try:
        der = public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ExportError(f"Could not export public key: {e}") from e
    return base64.b64encode(der).decode("ascii")


def decode_public_key(text: str) -> RSAPublicKey:
    """Deserialize base64 SPKI DER to an RSA public key"""
    der = _b64decode(text)
    try:
        key = serialization.load_der_public_key(der)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyImportError("Malformed public key encoding") from e
    if not isinstance(key, RSAPublicKey):
        raise KeyImportError("Public key is not an RSA key")
    return key


def encode_private_key(private_key: RSAPrivateKey) -> str:
    """Serialize an RSA private key to base64 PKCS#8 DER"""
    try:
        der = private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ExportError(f"Could not export private key: {e}") from e
    return base64.b64encode(der).decode("ascii")


def decode_private_key(text: str) -> RSAPrivateKey:
    """Deserialize base64 PKCS#8 DER to an RSA private key"""
    der = _b64decode(text)
    try:
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyImportError("Malformed private key encoding") from e
    if not isinstance(key, RSAPrivateKey):
        raise KeyImportError("Private key is not an RSA key")
    return key


async def export_public_key(public_key: RSAPublicKey) -> str:
    return await asyncio.to_thread(encode_public_key, public_key)


async def import_public_key(text: str) -> RSAPublicKey:
    return await asyncio.to_thread(decode_public_key, text)


async def export_private_key(private_key: RSAPrivateKey) -> str:
    return await asyncio.to_thread(encode_private_key, private_key)


async def import_private_key(text: str) -> RSAPrivateKey:
    return await asyncio.to_thread(decode_private_key, text)
