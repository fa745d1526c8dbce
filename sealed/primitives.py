"""
Cryptographic Primitives for End-to-End Encryption

This module provides the foundational cryptographic operations used by the
direct message scheme: RSA-OAEP for key transport and small payloads, and
AES-256-GCM for everything larger.
"""

import os
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537
AES_KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits for AES-GCM


class CryptoError(Exception):
    """Base exception for cryptographic errors"""
    pass


class KeyGenerationError(CryptoError):
    """The provider could not generate a key pair"""


class ExportError(CryptoError):
    """A key could not be serialized"""


class KeyImportError(CryptoError):
    """Key text is not valid base64 or not a valid RSA key encoding"""


class EncryptionError(CryptoError):
    """Encryption failed for a reason other than the payload"""


class DecryptionError(CryptoError):
    """Wrong key, corrupted or tampered ciphertext, or unknown format"""


class StorageError(CryptoError):
    """The local key store could not be read or written"""


class PublishError(CryptoError):
    """The public key could not be published to the directory"""


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None
    )


def generate_rsa_private_key() -> RSAPrivateKey:
    """
    Generate a 2048-bit RSA private key for OAEP/SHA-256 encryption.

    Returns:
        The private key; the public half is available via public_key()

    Raises:
        KeyGenerationError: If the backend rejects the parameters
    """
    try:
        return rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=RSA_KEY_SIZE
        )
    except (ValueError, TypeError) as e:
        raise KeyGenerationError(f"Key generation failed: {e}") from e


def max_oaep_plaintext(public_key: RSAPublicKey) -> int:
    """Largest plaintext RSA-OAEP/SHA-256 accepts for this key (190 for 2048 bits)"""
    digest_size = hashes.SHA256.digest_size
    return public_key.key_size // 8 - 2 * digest_size - 2


def rsa_encrypt(public_key: RSAPublicKey, plaintext: bytes) -> bytes:
    """
    Encrypt a short payload with RSA-OAEP (SHA-256, MGF1-SHA-256).

    Args:
        public_key: Recipient's RSA public key
        plaintext: At most max_oaep_plaintext(public_key) bytes

    Returns:
        Ciphertext, exactly key_size / 8 bytes long

    Raises:
        EncryptionError: If the key is not an RSA public key or the backend fails
    """
    if not isinstance(public_key, RSAPublicKey):
        raise EncryptionError("Recipient key is not an RSA public key")
    try:
        return public_key.encrypt(plaintext, _oaep())
    except ValueError as e:
        raise EncryptionError(f"RSA-OAEP encryption failed: {e}") from e


def rsa_decrypt(private_key: RSAPrivateKey, ciphertext: bytes) -> bytes:
    """
    Decrypt an RSA-OAEP ciphertext.

    Raises:
        DecryptionError: On a mismatched key or corrupted ciphertext
    """
    if not isinstance(private_key, RSAPrivateKey):
        raise DecryptionError("Local key is not an RSA private key")
    try:
        return private_key.decrypt(ciphertext, _oaep())
    except ValueError as e:
        raise DecryptionError("RSA-OAEP decryption failed") from e


def generate_aes_key() -> bytes:
    """Fresh random 256-bit AES key"""
    return AESGCM.generate_key(bit_length=AES_KEY_SIZE * 8)


def generate_nonce() -> bytes:
    """Fresh random 96-bit nonce"""
    return os.urandom(NONCE_SIZE)


def aes_gcm_encrypt(key: bytes, nonce: bytes, plaintext: bytes, associated_data: bytes = None) -> bytes:
    """
    Encrypt with AES-256-GCM.

    Args:
        key: 32-byte encryption key
        nonce: 12-byte nonce, never reused with the same key
        plaintext: Message to encrypt
        associated_data: Additional authenticated data

    Returns:
        ciphertext + tag (16 bytes)
    """
    try:
        return AESGCM(key).encrypt(nonce, plaintext, associated_data)
    except (ValueError, OverflowError) as e:
        raise EncryptionError(f"AES-GCM encryption failed: {e}") from e


def aes_gcm_decrypt(key: bytes, nonce: bytes, ciphertext: bytes, associated_data: bytes = None) -> bytes:
    """
    Decrypt and authenticate an AES-GCM ciphertext.

    Args:
        key: AES key (16, 24 or 32 bytes)
        nonce: Nonce used for encryption
        ciphertext: ciphertext + tag
        associated_data: Additional authenticated data

    Returns:
        Decrypted plaintext

    Raises:
        DecryptionError: If the key or nonce is malformed or the tag does not verify
    """
    try:
        aesgcm = AESGCM(key)
        return aesgcm.decrypt(nonce, ciphertext, associated_data)
    except InvalidTag as e:
        raise DecryptionError("AES-GCM authentication failed") from e
    except ValueError as e:
        raise DecryptionError(f"AES-GCM decryption failed: {e}") from e
