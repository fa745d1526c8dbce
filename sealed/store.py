"""
Device-local private key storage interface.

A store holds exactly one private key per user id; writing a second key
for the same user replaces the first.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey


@dataclass(frozen=True)
class StoredPrivateKeyRecord:
    user_id: str
    private_key: RSAPrivateKey


class PersistentKeyStore(ABC):
    """Durable, device-scoped map of user id to private key"""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[StoredPrivateKeyRecord]:
        """
        Look up the private key for a user.

        Returns:
            The stored record, or None if this device has no key for the user

        Raises:
            StorageError: If the store can not be read
        """

    @abstractmethod
    async def put(self, user_id: str, private_key: RSAPrivateKey) -> None:
        """
        Store (or replace) the private key for a user.

        Raises:
            StorageError: If the store can not be written
        """

    @abstractmethod
    async def put_if_absent(self, user_id: str, private_key: RSAPrivateKey) -> Optional[StoredPrivateKeyRecord]:
        """
        Store a private key only if the user has none yet.

        The check and the write are one atomic step for every writer sharing
        the underlying storage.

        Returns:
            None if the key was stored, otherwise the record already present

        Raises:
            StorageError: If the store can not be read or written
        """


class InMemoryKeyStore(PersistentKeyStore):
    """Process-local store, used by tests and short-lived tools"""

    def __init__(self):
        self._records: Dict[str, StoredPrivateKeyRecord] = {}

    async def get(self, user_id: str) -> Optional[StoredPrivateKeyRecord]:
        return self._records.get(user_id)

    async def put(self, user_id: str, private_key: RSAPrivateKey) -> None:
        self._records[user_id] = StoredPrivateKeyRecord(user_id, private_key)

    async def put_if_absent(self, user_id: str, private_key: RSAPrivateKey) -> Optional[StoredPrivateKeyRecord]:
        existing = self._records.get(user_id)
        if existing is not None:
            return existing
        self._records[user_id] = StoredPrivateKeyRecord(user_id, private_key)
        return None

    def __len__(self) -> int:
        return len(self._records)
