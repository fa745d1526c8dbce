"""
Cryptographic core for end-to-end encrypted direct messages.

Implements:
- RSA-OAEP (2048-bit, SHA-256) key pairs, one per user per device
- Direct RSA encryption for short messages, AES-GCM hybrid envelopes for long ones
- Base64 key encodings and a display-only recovery phrase
"""

from .primitives import (
    CryptoError,
    KeyGenerationError,
    ExportError,
    KeyImportError,
    EncryptionError,
    DecryptionError,
    StorageError,
    PublishError,
)
from .codec import export_public_key, import_public_key, export_private_key, import_private_key
from .cipher import MessageCipher, DirectCiphertext, HybridCiphertext, parse_ciphertext
from .keys import KeyPair, KeyPairManager, InitResult, PublicKeyPublisher, CallbackPublisher
from .store import PersistentKeyStore, InMemoryKeyStore, StoredPrivateKeyRecord
from .phrase import to_phrase, recovery_phrase

__all__ = [
    'CryptoError',
    'KeyGenerationError',
    'ExportError',
    'KeyImportError',
    'EncryptionError',
    'DecryptionError',
    'StorageError',
    'PublishError',
    'export_public_key',
    'import_public_key',
    'export_private_key',
    'import_private_key',
    'MessageCipher',
    'DirectCiphertext',
    'HybridCiphertext',
    'parse_ciphertext',
    'KeyPair',
    'KeyPairManager',
    'InitResult',
    'PublicKeyPublisher',
    'CallbackPublisher',
    'PersistentKeyStore',
    'InMemoryKeyStore',
    'StoredPrivateKeyRecord',
    'to_phrase',
    'recovery_phrase',
]
