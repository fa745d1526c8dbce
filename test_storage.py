"""
Tests for the SQLite private key store.
"""

import asyncio
import sqlite3

import pytest

from client.storage import SQLiteKeyStore
from sealed.codec import encode_private_key
from sealed.keys import KeyPairManager
from sealed.primitives import StorageError


def test_missing_user_returns_none(tmp_path):
    store = SQLiteKeyStore(tmp_path / "keys.db")
    assert asyncio.run(store.get("alice")) is None


def test_put_get_roundtrip(tmp_path, key_pair):
    store = SQLiteKeyStore(tmp_path / "keys.db")
    asyncio.run(store.put("alice", key_pair.private_key))

    record = asyncio.run(store.get("alice"))
    assert record.user_id == "alice"
    assert encode_private_key(record.private_key) == encode_private_key(key_pair.private_key)


def test_put_overwrites(tmp_path, key_pair, other_key_pair):
    path = tmp_path / "keys.db"
    store = SQLiteKeyStore(path)
    asyncio.run(store.put("alice", key_pair.private_key))
    asyncio.run(store.put("alice", other_key_pair.private_key))

    record = asyncio.run(store.get("alice"))
    assert encode_private_key(record.private_key) == encode_private_key(other_key_pair.private_key)

    with sqlite3.connect(str(path)) as db:
        count = db.execute("SELECT COUNT(*) FROM private_keys WHERE user_id = 'alice'").fetchone()[0]
    assert count == 1


def test_records_persist_across_instances(tmp_path, key_pair):
    path = tmp_path / "keys.db"
    asyncio.run(SQLiteKeyStore(path, passphrase="pw").put("alice", key_pair.private_key))

    record = asyncio.run(SQLiteKeyStore(path, passphrase="pw").get("alice"))
    assert encode_private_key(record.private_key) == encode_private_key(key_pair.private_key)


def test_sealed_records_are_not_plaintext(tmp_path, key_pair):
    path = tmp_path / "keys.db"
    asyncio.run(SQLiteKeyStore(path, passphrase="correct horse").put("alice", key_pair.private_key))

    with sqlite3.connect(str(path)) as db:
        sealed, key_data = db.execute("SELECT sealed, key_data FROM private_keys").fetchone()
    assert sealed == 1
    assert encode_private_key(key_pair.private_key).encode() not in bytes(key_data)


def test_wrong_passphrase_raises(tmp_path, key_pair):
    path = tmp_path / "keys.db"
    asyncio.run(SQLiteKeyStore(path, passphrase="right").put("alice", key_pair.private_key))

    with pytest.raises(StorageError):
        asyncio.run(SQLiteKeyStore(path, passphrase="wrong").get("alice"))
    with pytest.raises(StorageError):
        asyncio.run(SQLiteKeyStore(path).get("alice"))


def test_corrupted_record_raises(tmp_path, key_pair):
    path = tmp_path / "keys.db"
    asyncio.run(SQLiteKeyStore(path).put("alice", key_pair.private_key))
    with sqlite3.connect(str(path)) as db:
        db.execute("UPDATE private_keys SET key_data = ? WHERE user_id = 'alice'", (b"garbage",))

    with pytest.raises(StorageError):
        asyncio.run(SQLiteKeyStore(path).get("alice"))


def test_unreadable_database_raises(tmp_path):
    path = tmp_path / "keys.db"
    path.write_bytes(b"this is not a sqlite database" * 10)

    with pytest.raises(StorageError):
        asyncio.run(SQLiteKeyStore(path).get("alice"))


def test_manager_with_sqlite_store(tmp_path):
    path = tmp_path / "keys.db"
    published = []

    class Publisher:
        async def publish(self, encoded_public_key):
            published.append(encoded_public_key)

    first = asyncio.run(KeyPairManager(SQLiteKeyStore(path, passphrase="pw")).initialize("alice", Publisher()))
    # A fresh manager, as after an application restart
    second = asyncio.run(KeyPairManager(SQLiteKeyStore(path, passphrase="pw")).initialize("alice", Publisher()))

    assert first.created and not second.created
    assert len(published) == 1
    assert encode_private_key(second.key_pair.private_key) == encode_private_key(first.key_pair.private_key)


def test_put_if_absent_keeps_existing_row(tmp_path, key_pair, other_key_pair):
    path = tmp_path / "keys.db"
    assert asyncio.run(SQLiteKeyStore(path, passphrase="pw").put_if_absent("alice", key_pair.private_key)) is None

    existing = asyncio.run(SQLiteKeyStore(path, passphrase="pw").put_if_absent("alice", other_key_pair.private_key))

    assert encode_private_key(existing.private_key) == encode_private_key(key_pair.private_key)
    record = asyncio.run(SQLiteKeyStore(path, passphrase="pw").get("alice"))
    assert encode_private_key(record.private_key) == encode_private_key(key_pair.private_key)


def test_concurrent_sessions_on_one_device_share_a_key(tmp_path):
    path = tmp_path / "keys.db"
    published = []

    class Publisher:
        async def publish(self, encoded_public_key):
            await asyncio.sleep(0.05)
            published.append(encoded_public_key)

    async def two_sessions():
        # Each session opens its own store and manager on the same file
        return await asyncio.gather(
            KeyPairManager(SQLiteKeyStore(path, passphrase="pw")).initialize("alice", Publisher()),
            KeyPairManager(SQLiteKeyStore(path, passphrase="pw")).initialize("alice", Publisher()),
        )

    first, second = asyncio.run(two_sessions())

    assert first.success and second.success
    assert len(published) == 1
    record = asyncio.run(SQLiteKeyStore(path, passphrase="pw").get("alice"))
    stored = encode_private_key(record.private_key)
    assert encode_private_key(first.key_pair.private_key) == stored
    assert encode_private_key(second.key_pair.private_key) == stored
