"""
Tests for key pair generation and first-use initialization.
"""

import asyncio

from sealed.cipher import MessageCipher
from sealed.codec import encode_public_key, import_public_key
from sealed.keys import CallbackPublisher, KeyPairManager
from sealed.primitives import PublishError, StorageError
from sealed.store import InMemoryKeyStore


class RecordingPublisher:
    """Publisher that remembers what it was asked to publish"""

    def __init__(self, fail: bool = False, delay: float = 0):
        self.published = []
        self.fail = fail
        self.delay = delay

    async def publish(self, encoded_public_key: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("directory unreachable")
        self.published.append(encoded_public_key)


class BrokenStore(InMemoryKeyStore):
    async def put(self, user_id, private_key):
        raise StorageError("disk full")

    async def put_if_absent(self, user_id, private_key):
        raise StorageError("disk full")


def test_generate_key_pair():
    key_pair = asyncio.run(KeyPairManager(InMemoryKeyStore()).generate_key_pair())

    assert key_pair.private_key.key_size == 2048
    assert encode_public_key(key_pair.public_key) == encode_public_key(key_pair.private_key.public_key())
    assert key_pair.public_key.public_numbers().e == 65537


def test_initialize_creates_stores_and_publishes():
    store = InMemoryKeyStore()
    manager = KeyPairManager(store)
    publisher = RecordingPublisher()

    result = asyncio.run(manager.initialize("alice", publisher))

    assert result.success and result.created and result.published
    assert len(store) == 1
    assert publisher.published == [encode_public_key(result.key_pair.public_key)]
    stored = asyncio.run(store.get("alice"))
    assert stored.private_key is result.key_pair.private_key


def test_initialize_reuses_existing_key():
    store = InMemoryKeyStore()
    manager = KeyPairManager(store)
    publisher = RecordingPublisher()

    first = asyncio.run(manager.initialize("alice", publisher))
    second = asyncio.run(manager.initialize("alice", publisher))

    assert second.success
    assert not second.created and not second.published
    assert encode_public_key(second.key_pair.public_key) == encode_public_key(first.key_pair.public_key)
    assert len(publisher.published) == 1


def test_concurrent_initialize_generates_one_key():
    store = InMemoryKeyStore()
    manager = KeyPairManager(store)
    publisher = RecordingPublisher(delay=0.05)

    async def race():
        return await asyncio.gather(*[manager.initialize("alice", publisher) for _ in range(5)])

    results = asyncio.run(race())

    assert all(r.success for r in results)
    assert len(store) == 1
    assert len(publisher.published) == 1

    stored = asyncio.run(store.get("alice"))
    published_key = encode_public_key(stored.private_key.public_key())
    assert publisher.published[0] == published_key
    assert {encode_public_key(r.key_pair.public_key) for r in results} == {published_key}


def test_concurrent_initialize_for_different_users():
    store = InMemoryKeyStore()
    manager = KeyPairManager(store)
    publisher = RecordingPublisher()

    async def both():
        return await asyncio.gather(manager.initialize("alice", publisher), manager.initialize("bob", publisher))

    alice, bob = asyncio.run(both())

    assert alice.success and bob.success
    assert len(store) == 2
    assert len(set(publisher.published)) == 2


def test_publish_failure_keeps_local_key():
    store = InMemoryKeyStore()
    manager = KeyPairManager(store)

    result = asyncio.run(manager.initialize("alice", RecordingPublisher(fail=True)))

    assert not result.success
    assert isinstance(result.error, PublishError)
    assert result.key_pair is not None
    assert asyncio.run(store.get("alice")).private_key is result.key_pair.private_key

    # The kept key still decrypts messages sent to its public key
    cipher = MessageCipher()
    ciphertext = asyncio.run(cipher.encrypt("still readable", result.key_pair.public_key))
    assert asyncio.run(cipher.decrypt(ciphertext, result.key_pair.private_key)) == "still readable"

    # A later initialize reuses the key without publishing
    publisher = RecordingPublisher()
    again = asyncio.run(manager.initialize("alice", publisher))
    assert again.success and not again.created
    assert publisher.published == []


def test_storage_failure_does_not_publish():
    publisher = RecordingPublisher()
    result = asyncio.run(KeyPairManager(BrokenStore()).initialize("alice", publisher))

    assert not result.success
    assert result.key_pair is None
    assert isinstance(result.error, StorageError)
    assert publisher.published == []


def test_callback_publisher():
    received = []

    async def update_profile(public_key: str):
        received.append(public_key)

    result = asyncio.run(KeyPairManager(InMemoryKeyStore()).initialize("alice", CallbackPublisher(update_profile)))

    assert result.success
    imported = asyncio.run(import_public_key(received[0]))
    assert encode_public_key(imported) == encode_public_key(result.key_pair.public_key)


def test_load_returns_none_without_key():
    assert asyncio.run(KeyPairManager(InMemoryKeyStore()).load("nobody")) is None


def test_managers_sharing_a_store_publish_one_key():
    store = InMemoryKeyStore()
    publisher = RecordingPublisher(delay=0.05)

    async def race():
        return await asyncio.gather(
            KeyPairManager(store).initialize("alice", publisher),
            KeyPairManager(store).initialize("alice", publisher),
        )

    first, second = asyncio.run(race())

    assert first.success and second.success
    assert len(publisher.published) == 1
    assert [first.created, second.created].count(True) == 1

    stored_key = encode_public_key(asyncio.run(store.get("alice")).private_key.public_key())
    assert publisher.published == [stored_key]
    assert encode_public_key(first.key_pair.public_key) == stored_key
    assert encode_public_key(second.key_pair.public_key) == stored_key


def test_put_if_absent_keeps_first_key(key_pair, other_key_pair):
    store = InMemoryKeyStore()

    assert asyncio.run(store.put_if_absent("alice", key_pair.private_key)) is None
    existing = asyncio.run(store.put_if_absent("alice", other_key_pair.private_key))

    assert existing.private_key is key_pair.private_key
    assert asyncio.run(store.get("alice")).private_key is key_pair.private_key
