import asyncio
import os
import tempfile
import uuid

import pytest

# Must be set before server.database is imported
_db_dir = tempfile.mkdtemp(prefix="sealed-test-")
os.environ.setdefault("SEALED_DATABASE_URL", f"sqlite+aiosqlite:///{_db_dir}/directory.db")

from sealed.keys import KeyPair  # noqa: E402
from sealed.primitives import generate_rsa_private_key  # noqa: E402


@pytest.fixture(scope="session")
def key_pair() -> KeyPair:
    return KeyPair.from_private_key(generate_rsa_private_key())


@pytest.fixture(scope="session")
def other_key_pair() -> KeyPair:
    return KeyPair.from_private_key(generate_rsa_private_key())


@pytest.fixture(scope="session")
def directory_app():
    """The directory FastAPI app with its tables created"""
    from server.main import app, db

    asyncio.run(db.create_tables())
    return app


@pytest.fixture
def make_username():
    def _make(prefix: str = "user") -> str:
        return f"{prefix}_{uuid.uuid4().hex[:8]}"
    return _make
