"""
Message encryption for direct messages.

Short messages are encrypted directly with the recipient's RSA key ("v1").
Anything above the RSA-OAEP plaintext ceiling goes through hybrid encryption
("v2"): a fresh AES-256-GCM key encrypts the message and the AES key itself
is wrapped with RSA-OAEP.

Wire format:
    v1:<base64(rsa_oaep(utf8(message)))>
    v2:<base64(u16be(len(wrapped_key)) u16be(len(nonce)) wrapped_key nonce aes_gcm_ciphertext_with_tag)>
"""

import asyncio
import base64
import binascii
import logging
import struct
from dataclasses import dataclass
from typing import Union

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from .primitives import (
    DecryptionError,
    EncryptionError,
    aes_gcm_decrypt,
    aes_gcm_encrypt,
    generate_aes_key,
    generate_nonce,
    rsa_decrypt,
    rsa_encrypt,
)

logger = logging.getLogger(__name__)

DIRECT_PREFIX = "v1:"
HYBRID_PREFIX = "v2:"

# Two big-endian u16 lengths: wrapped key, then nonce
_HEADER = struct.Struct(">HH")

# Line breaks and spaces inside the base64 payload are ignored
_WHITESPACE = str.maketrans("", "", " \t\n\r\f\v")


@dataclass(frozen=True)
class DirectCiphertext:
    """RSA-OAEP ciphertext of the whole message"""
    body: bytes

    def encode(self) -> str:
        return DIRECT_PREFIX + base64.b64encode(self.body).decode("ascii")


@dataclass(frozen=True)
class HybridCiphertext:
    """
    Envelope for messages encrypted under a one-time AES-GCM key.

    Attributes:
        wrapped_key: AES key encrypted with the recipient's RSA key
        nonce: AES-GCM nonce
        ciphertext: AES-GCM ciphertext with the tag appended
    """
    wrapped_key: bytes
    nonce: bytes
    ciphertext: bytes

    def to_bytes(self) -> bytes:
        header = _HEADER.pack(len(self.wrapped_key), len(self.nonce))
        return header + self.wrapped_key + self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, envelope: bytes) -> 'HybridCiphertext':
        if len(envelope) < _HEADER.size:
            raise DecryptionError("Envelope too short")
        key_len, nonce_len = _HEADER.unpack_from(envelope)
        body_start = _HEADER.size + key_len + nonce_len
        if len(envelope) < body_start:
            raise DecryptionError("Envelope lengths exceed payload")
        nonce_start = _HEADER.size + key_len
        return cls(
            wrapped_key=envelope[_HEADER.size:nonce_start],
            nonce=envelope[nonce_start:body_start],
            ciphertext=envelope[body_start:]
        )

    def encode(self) -> str:
        return HYBRID_PREFIX + base64.b64encode(self.to_bytes()).decode("ascii")


Ciphertext = Union[DirectCiphertext, HybridCiphertext]


def _b64decode(payload: str) -> bytes:
    try:
        return base64.b64decode(payload.translate(_WHITESPACE), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Ciphertext is not valid base64") from e


def parse_ciphertext(text: str) -> Ciphertext:
    """
    Decode a wire-format string into its ciphertext variant.

    Raises:
        DecryptionError: If the version prefix is unknown or the payload is malformed
    """
    if not isinstance(text, str):
        raise DecryptionError("Ciphertext must be text")
    if text.startswith(DIRECT_PREFIX):
        return DirectCiphertext(_b64decode(text[len(DIRECT_PREFIX):]))
    if text.startswith(HYBRID_PREFIX):
        return HybridCiphertext.from_bytes(_b64decode(text[len(HYBRID_PREFIX):]))
    raise DecryptionError("Unknown ciphertext version")


class MessageCipher:
    """
    Encrypts messages for a recipient's public key and decrypts with the local private key.

    The RSA and AES work runs in a worker thread so callers on the event
    loop are not blocked.
    """

    # RSA-OAEP/SHA-256 ceiling for a 2048-bit modulus: 256 - 2 * 32 - 2
    DIRECT_MAX_BYTES = 190

    async def encrypt(self, message: str, recipient_public_key: RSAPublicKey) -> str:
        """
        Encrypt a message for a recipient.

        Args:
            message: Plaintext message
            recipient_public_key: Recipient's RSA public key

        Returns:
            Wire-format ciphertext ("v1:..." or "v2:...")

        Raises:
            EncryptionError: If the key is unusable or the provider fails
        """
        return await asyncio.to_thread(self.encrypt_sync, message, recipient_public_key)

    async def decrypt(self, ciphertext: str, private_key: RSAPrivateKey) -> str:
        """
        Decrypt a wire-format ciphertext.

        Raises:
            DecryptionError: Unknown version, malformed payload, wrong key or tampering
        """
        return await asyncio.to_thread(self.decrypt_sync, ciphertext, private_key)

    def encrypt_sync(self, message: str, recipient_public_key: RSAPublicKey) -> str:
        if not isinstance(recipient_public_key, RSAPublicKey):
            raise EncryptionError("Recipient key is not an RSA public key")
        data = message.encode("utf-8")

        if len(data) <= self.DIRECT_MAX_BYTES:
            return DirectCiphertext(rsa_encrypt(recipient_public_key, data)).encode()

        aes_key = generate_aes_key()
        nonce = generate_nonce()
        envelope = HybridCiphertext(
            wrapped_key=rsa_encrypt(recipient_public_key, aes_key),
            nonce=nonce,
            ciphertext=aes_gcm_encrypt(aes_key, nonce, data)
        )
        logger.debug("Encrypted %d-byte message with hybrid envelope", len(data))
        return envelope.encode()

    def decrypt_sync(self, ciphertext: str, private_key: RSAPrivateKey) -> str:
        parsed = parse_ciphertext(ciphertext)

        if isinstance(parsed, DirectCiphertext):
            data = rsa_decrypt(private_key, parsed.body)
        elif isinstance(parsed, HybridCiphertext):
            aes_key = rsa_decrypt(private_key, parsed.wrapped_key)
            data = aes_gcm_decrypt(aes_key, parsed.nonce, parsed.ciphertext)
        else:
            raise DecryptionError(f"Unsupported ciphertext type: {type(parsed).__name__}")

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not valid UTF-8") from e
