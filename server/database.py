"""
Database models and operations for the public key directory.

Uses SQLAlchemy with SQLite for storing user accounts and their published
public keys. Private keys and messages never reach the server.
"""

import os
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, select, update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from passlib.context import CryptContext

Base = declarative_base()
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

DATABASE_URL = os.getenv("SEALED_DATABASE_URL", "sqlite+aiosqlite:///./directory.db")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """User account model"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    public_key = Column(Text, nullable=True)  # base64 SPKI RSA public key
    public_key_published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    is_active = Column(Boolean, default=True)

    def verify_password(self, password: str) -> bool:
        """Verify password against hash"""
        return pwd_context.verify(password, self.hashed_password)

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password"""
        return pwd_context.hash(password)


class PublishOutcome(Enum):
    STORED = "stored"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"
    NO_USER = "no_user"


class Database:
    """Database manager for async operations"""

    def __init__(self, database_url: str = DATABASE_URL):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy database URL
        """
        # No pooling: connections are not shared between event loops
        self.engine = create_async_engine(database_url, echo=False, poolclass=NullPool)
        self.async_session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self):
        """Create all tables"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def create_user(self, username: str, password: str) -> Optional[User]:
        """
        Create a new user account.

        Args:
            username: Unique username
            password: Plain text password (will be hashed)

        Returns:
            Created User object or None if username exists
        """
        async with self.async_session() as session:
            result = await session.execute(select(User).where(User.username == username))
            if result.scalar_one_or_none():
                return None

            user = User(
                username=username,
                hashed_password=User.hash_password(password)
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    async def get_user(self, username: str) -> Optional[User]:
        """
        Get user by username.

        Args:
            username: Username to look up

        Returns:
            User object or None if not found
        """
        async with self.async_session() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def authenticate_user(self, username: str, password: str) -> Optional[User]:
        """
        Authenticate a user.

        Args:
            username: Username
            password: Password to verify

        Returns:
            User object if authenticated, None otherwise
        """
        user = await self.get_user(username)
        if not user or not user.verify_password(password):
            return None
        return user

    async def set_public_key(self, username: str, public_key: str) -> PublishOutcome:
        """
        Record a user's public key. A key, once published, is never replaced.

        Args:
            username: Owner of the key
            public_key: Base64 SPKI public key

        Returns:
            What happened to the stored key
        """
        async with self.async_session() as session:
            result = await session.execute(select(User).where(User.username == username))
            user = result.scalar_one_or_none()
            if not user:
                return PublishOutcome.NO_USER

            # Conditional update keeps concurrent publishes write-once
            result = await session.execute(
                update(User)
                .where(User.id == user.id, User.public_key.is_(None))
                .values(public_key=public_key, public_key_published_at=_utcnow())
            )
            await session.commit()
            if result.rowcount == 1:
                return PublishOutcome.STORED

            stored = await session.scalar(select(User.public_key).where(User.id == user.id))
            if stored == public_key:
                return PublishOutcome.UNCHANGED
            return PublishOutcome.CONFLICT

    async def get_public_key(self, username: str) -> Optional[str]:
        """
        Get a user's published public key.

        Returns:
            Base64 SPKI key, or None if the user is unknown or has none
        """
        user = await self.get_user(username)
        if not user or not user.is_active:
            return None
        return user.public_key

    async def list_users(self) -> List[dict]:
        """
        List all active users.

        Returns:
            List of {"username", "has_key"} dictionaries
        """
        async with self.async_session() as session:
            result = await session.execute(
                select(User.username, User.public_key).where(User.is_active == True)  # noqa: E712
            )
            return [{"username": username, "has_key": bool(key)} for username, key in result.all()]
