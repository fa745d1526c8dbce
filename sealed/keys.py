"""
Key pair management.

Each user has one long-lived RSA key pair per device. The private key stays
in the local store; the public key is published once, when the pair is
first generated, so other users can encrypt to it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Protocol

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from .codec import export_public_key
from .primitives import CryptoError, PublishError, generate_rsa_private_key
from .store import PersistentKeyStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPair:
    public_key: RSAPublicKey
    private_key: RSAPrivateKey

    @classmethod
    def from_private_key(cls, private_key: RSAPrivateKey) -> 'KeyPair':
        return cls(public_key=private_key.public_key(), private_key=private_key)


@dataclass(frozen=True)
class InitResult:
    """
    Outcome of KeyPairManager.initialize().

    Attributes:
        success: True when a usable key exists and, if newly created, was published
        key_pair: The local key pair; kept even when publishing failed
        created: True if this call generated the key pair
        published: True if this call published the public key
        error: The failure, when success is False
    """
    success: bool
    key_pair: Optional[KeyPair]
    created: bool = False
    published: bool = False
    error: Optional[CryptoError] = None


class PublicKeyPublisher(Protocol):
    """Port that makes a user's encoded public key visible to other users"""

    async def publish(self, encoded_public_key: str) -> None:
        ...


class CallbackPublisher:
    """Adapts an async callable to the PublicKeyPublisher port"""

    def __init__(self, callback: Callable[[str], Awaitable[None]]):
        self.callback = callback

    async def publish(self, encoded_public_key: str) -> None:
        await self.callback(encoded_public_key)


class KeyPairManager:
    """
    Generates key pairs and performs first-use initialization.

    Concurrent initialize() calls for the same user share a single in-flight
    task. Managers that share one store are kept apart by the store's
    put_if_absent(): only the writer that stores its key publishes it, and
    the others adopt the stored key.
    """

    def __init__(self, store: PersistentKeyStore):
        """
        Args:
            store: Local private key store
        """
        self.store = store
        self._in_flight: Dict[str, asyncio.Task] = {}

    async def generate_key_pair(self) -> KeyPair:
        """
        Generate a fresh 2048-bit RSA key pair.

        Raises:
            KeyGenerationError: If the provider fails
        """
        private_key = await asyncio.to_thread(generate_rsa_private_key)
        return KeyPair.from_private_key(private_key)

    async def load(self, user_id: str) -> Optional[KeyPair]:
        """Return the key pair stored on this device for a user, if any"""
        record = await self.store.get(user_id)
        if record is None:
            return None
        return KeyPair.from_private_key(record.private_key)

    async def initialize(self, user_id: str, publisher: PublicKeyPublisher) -> InitResult:
        """
        Make sure the user has a key pair on this device.

        Reuses a stored key if one exists; otherwise generates a pair, stores
        the private key, then publishes the public key.

        Args:
            user_id: Local user identity
            publisher: Where to publish a newly generated public key

        Returns:
            InitResult; never raises for crypto, storage or publish failures
        """
        task = self._in_flight.get(user_id)
        if task is None:
            task = asyncio.ensure_future(self._initialize(user_id, publisher))
            self._in_flight[user_id] = task

            def _clear(done: asyncio.Task) -> None:
                if self._in_flight.get(user_id) is done:
                    del self._in_flight[user_id]

            task.add_done_callback(_clear)
        else:
            logger.debug("Joining in-flight key initialization for %s", user_id)

        # A cancelled waiter must not cancel the shared task
        return await asyncio.shield(task)

    async def _initialize(self, user_id: str, publisher: PublicKeyPublisher) -> InitResult:
        try:
            existing = await self.load(user_id)
        except CryptoError as e:
            logger.error("Could not read local key for %s: %s", user_id, e)
            return InitResult(success=False, key_pair=None, error=e)

        if existing is not None:
            return InitResult(success=True, key_pair=existing)

        try:
            key_pair = await self.generate_key_pair()
            encoded_public_key = await export_public_key(key_pair.public_key)
            winner = await self.store.put_if_absent(user_id, key_pair.private_key)
        except CryptoError as e:
            logger.error("Key initialization failed for %s: %s", user_id, e)
            return InitResult(success=False, key_pair=None, error=e)

        if winner is not None:
            # Another writer on this device stored a key first
            logger.info("Key pair for %s was created concurrently; using the stored one", user_id)
            return InitResult(success=True, key_pair=KeyPair.from_private_key(winner.private_key))

        logger.info("Generated and stored new key pair for %s", user_id)

        try:
            await publisher.publish(encoded_public_key)
        except Exception as e:
            # Stored key is kept on publish failure
            error = e if isinstance(e, PublishError) else PublishError(str(e))
            if error is not e:
                error.__cause__ = e
            logger.warning("Publishing public key for %s failed: %s", user_id, e)
            return InitResult(success=False, key_pair=key_pair, created=True, error=error)

        return InitResult(success=True, key_pair=key_pair, created=True, published=True)
