"""
Device-local private key storage for the chat client.

Keeps one private key per user id in a SQLite file. Records can be sealed
at rest with a key derived from the user's passphrase.
"""

import asyncio
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sealed.codec import decode_private_key, encode_private_key
from sealed.primitives import CryptoError, StorageError
from sealed.store import PersistentKeyStore, StoredPrivateKeyRecord

logger = logging.getLogger(__name__)


class SQLiteKeyStore(PersistentKeyStore):
    """
    Private key store backed by a SQLite database on this device.

    Without a passphrase records hold the base64 PKCS#8 key as-is. With a
    passphrase every record is encrypted with AES-256-GCM under a
    PBKDF2-derived key; the salt lives in the same database.
    """

    SALT_LEN = 16
    NONCE_LEN = 12
    KDF_ITERATIONS = 100000

    def __init__(self, db_path: Path, passphrase: Optional[str] = None, timeout: float = 5.0):
        """
        Initialize key storage.

        Args:
            db_path: SQLite file to use; parent directories are created
            passphrase: Optional passphrase to seal records at rest
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._passphrase = passphrase
        self._encryption_key: Optional[bytes] = None
        self._initialized = False

    def derive_key(self, password: str, salt: bytes) -> bytes:
        """
        Derive encryption key from password using PBKDF2.

        Args:
            password: User's passphrase
            salt: Salt for key derivation

        Returns:
            32-byte encryption key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.KDF_ITERATIONS,
        )
        return kdf.derive(password.encode())

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and always close it"""
        db = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        try:
            with db:
                yield db
        finally:
            db.close()

    def _init_database(self):
        """Create tables and load (or create) the salt"""
        with self._connect() as db:
            db.execute("""
                CREATE TABLE IF NOT EXISTS private_keys (
                    user_id TEXT PRIMARY KEY,
                    sealed INTEGER NOT NULL,
                    key_data BLOB NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            db.execute("""
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                )
            """)

            if self._passphrase is not None:
                db.execute(
                    "INSERT OR IGNORE INTO metadata (key, value) VALUES ('salt', ?)",
                    (os.urandom(self.SALT_LEN),)
                )
                salt = db.execute("SELECT value FROM metadata WHERE key = 'salt'").fetchone()[0]
                self._encryption_key = self.derive_key(self._passphrase, salt)

        self._initialized = True

    def _ensure_initialized(self):
        if not self._initialized:
            self._init_database()

    def _encrypt(self, data: bytes, user_id: str) -> bytes:
        """Encrypt data with storage key, bound to the record's user id"""
        nonce = os.urandom(self.NONCE_LEN)
        aesgcm = AESGCM(self._encryption_key)
        ciphertext = aesgcm.encrypt(nonce, data, user_id.encode())
        return nonce + ciphertext

    def _decrypt(self, encrypted_data: bytes, user_id: str) -> bytes:
        """Decrypt data with storage key"""
        nonce = encrypted_data[:self.NONCE_LEN]
        ciphertext = encrypted_data[self.NONCE_LEN:]

        aesgcm = AESGCM(self._encryption_key)
        return aesgcm.decrypt(nonce, ciphertext, user_id.encode())

    def _select(self, db: sqlite3.Connection, user_id: str):
        return db.execute(
            "SELECT sealed, key_data FROM private_keys WHERE user_id = ?",
            (user_id,)
        ).fetchone()

    def _get(self, user_id: str) -> Optional[StoredPrivateKeyRecord]:
        self._ensure_initialized()
        with self._connect() as db:
            row = self._select(db, user_id)

        if row is None:
            return None
        return self._to_record(user_id, *row)

    def _to_record(self, user_id: str, sealed: int, key_data: bytes) -> StoredPrivateKeyRecord:
        if sealed:
            if self._encryption_key is None:
                raise StorageError(f"Key for {user_id} is sealed; a passphrase is required")
            try:
                key_data = self._decrypt(key_data, user_id)
            except (InvalidTag, ValueError) as e:
                raise StorageError(f"Could not unseal key for {user_id}") from e

        try:
            private_key = decode_private_key(bytes(key_data).decode("ascii"))
        except (CryptoError, UnicodeDecodeError) as e:
            raise StorageError(f"Stored key for {user_id} is corrupted") from e
        return StoredPrivateKeyRecord(user_id=user_id, private_key=private_key)

    def _serialize(self, user_id: str, private_key: RSAPrivateKey):
        try:
            key_data = encode_private_key(private_key).encode("ascii")
        except CryptoError as e:
            raise StorageError(f"Could not serialize key for {user_id}") from e

        sealed = self._encryption_key is not None
        if sealed:
            key_data = self._encrypt(key_data, user_id)
        return user_id, int(sealed), key_data, datetime.now(timezone.utc).isoformat()

    def _put(self, user_id: str, private_key: RSAPrivateKey):
        self._ensure_initialized()
        row = self._serialize(user_id, private_key)
        with self._connect() as db:
            db.execute(
                "INSERT OR REPLACE INTO private_keys (user_id, sealed, key_data, updated_at) VALUES (?, ?, ?, ?)",
                row
            )

    def _put_if_absent(self, user_id: str, private_key: RSAPrivateKey) -> Optional[StoredPrivateKeyRecord]:
        self._ensure_initialized()
        row = self._serialize(user_id, private_key)
        with self._connect() as db:
            inserted = db.execute(
                "INSERT OR IGNORE INTO private_keys (user_id, sealed, key_data, updated_at) VALUES (?, ?, ?, ?)",
                row
            ).rowcount
            existing = None if inserted else self._select(db, user_id)

        if existing is None:
            return None
        return self._to_record(user_id, *existing)

    async def get(self, user_id: str) -> Optional[StoredPrivateKeyRecord]:
        try:
            return await asyncio.to_thread(self._get, user_id)
        except sqlite3.Error as e:
            logger.error("Key store read failed: %s", e)
            raise StorageError(f"Could not read key store: {e}") from e

    async def put(self, user_id: str, private_key: RSAPrivateKey) -> None:
        try:
            await asyncio.to_thread(self._put, user_id, private_key)
        except sqlite3.Error as e:
            logger.error("Key store write failed: %s", e)
            raise StorageError(f"Could not write key store: {e}") from e
        logger.debug("Stored private key for %s", user_id)

    async def put_if_absent(self, user_id: str, private_key: RSAPrivateKey) -> Optional[StoredPrivateKeyRecord]:
        try:
            existing = await asyncio.to_thread(self._put_if_absent, user_id, private_key)
        except sqlite3.Error as e:
            logger.error("Key store write failed: %s", e)
            raise StorageError(f"Could not write key store: {e}") from e
        if existing is None:
            logger.debug("Stored private key for %s", user_id)
        else:
            logger.debug("Key for %s already stored; keeping it", user_id)
        return existing
