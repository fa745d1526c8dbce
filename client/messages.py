"""
Turning typed messages into transport strings and back.

Transport strings are either a ciphertext ("v1:"/"v2:") or, when plaintext
fallback is allowed and the recipient never published a key, "PLAIN:"
followed by the message.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from sealed.cipher import MessageCipher
from sealed.codec import import_public_key
from sealed.primitives import CryptoError, EncryptionError

logger = logging.getLogger(__name__)

PLAIN_PREFIX = "PLAIN:"
UNREADABLE = "[Unable to decrypt]"


@dataclass
class ReadMessage:
    """
    A received message ready for display.

    Attributes:
        text: Plaintext, or a placeholder when it could not be decrypted
        encrypted: Whether the message arrived encrypted
        ok: False when decryption failed
    """
    text: str
    encrypted: bool
    ok: bool = True


async def compose_message(text: str, recipient_public_key: Optional[str], cipher: MessageCipher,
                          allow_plaintext: bool = False) -> str:
    """
    Prepare a message for sending.

    Args:
        text: Message typed by the user
        recipient_public_key: Recipient's published key (base64 SPKI), or None
        cipher: Message cipher
        allow_plaintext: Send unencrypted when the recipient has no key

    Returns:
        The string to hand to the transport

    Raises:
        EncryptionError: If the message can not be encrypted
    """
    if not recipient_public_key:
        if not allow_plaintext:
            raise EncryptionError("Recipient has not published a public key")
        logger.info("Recipient has no public key; sending unencrypted")
        return PLAIN_PREFIX + text

    try:
        public_key = await import_public_key(recipient_public_key)
    except CryptoError as e:
        raise EncryptionError("Recipient public key is invalid") from e
    return await cipher.encrypt(text, public_key)


async def read_message(content: Optional[str], private_key: Optional[RSAPrivateKey],
                       cipher: MessageCipher) -> ReadMessage:
    """Decode a received transport string. Never raises."""
    if not isinstance(content, str):
        return ReadMessage(text=UNREADABLE, encrypted=True, ok=False)

    if content.startswith(PLAIN_PREFIX):
        return ReadMessage(text=content[len(PLAIN_PREFIX):], encrypted=False)

    if private_key is None:
        return ReadMessage(text=UNREADABLE, encrypted=True, ok=False)

    try:
        return ReadMessage(text=await cipher.decrypt(content, private_key), encrypted=True)
    except CryptoError as e:
        logger.info("Could not decrypt message: %s", e)
        return ReadMessage(text=UNREADABLE, encrypted=True, ok=False)
