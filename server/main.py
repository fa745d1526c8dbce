"""
FastAPI server for the public key directory.

This server:
- Handles user registration and authentication
- Stores each user's published RSA public key (write-once)
- Serves public keys to anyone who wants to encrypt to that user
It never sees private keys or message contents.
"""

import logging
from datetime import timedelta
from fastapi import FastAPI, HTTPException, Depends
from pydantic import BaseModel, Field
from contextlib import asynccontextmanager

from sealed.codec import import_public_key
from sealed.primitives import KeyImportError

from .database import Database, PublishOutcome
from .auth import create_access_token, current_username, Token, ACCESS_TOKEN_EXPIRE_MINUTES

logger = logging.getLogger(__name__)


# Pydantic models for API
class UserCredentials(BaseModel):
    username: str = Field(min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(min_length=1)


class PublicKeyUpload(BaseModel):
    public_key: str


class PublicKeyResponse(BaseModel):
    username: str
    public_key: str


db = Database()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    await db.create_tables()
    logger.info("Database initialized")
    yield
    logger.info("Server shutting down")


app = FastAPI(
    title="Public Key Directory",
    description="Public key directory for end-to-end encrypted direct messages",
    version="1.0.0",
    lifespan=lifespan
)


def _token_for(username: str) -> Token:
    access_token = create_access_token(
        data={"sub": username},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return Token(access_token=access_token, token_type="bearer", username=username)


@app.post("/api/register", response_model=Token)
async def register(user_data: UserCredentials):
    """Register a new user account. Keys are published separately."""
    user = await db.create_user(username=user_data.username, password=user_data.password)

    if not user:
        raise HTTPException(status_code=400, detail="Username already exists")

    logger.info("Registered user %s", user.username)
    return _token_for(user.username)


@app.post("/api/login", response_model=Token)
async def login(user_data: UserCredentials):
    """Authenticate a user and return JWT token"""
    user = await db.authenticate_user(user_data.username, user_data.password)

    if not user:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    return _token_for(user.username)


@app.put("/api/keys/{username}")
async def publish_key(username: str, upload: PublicKeyUpload, token_user: str = Depends(current_username)):
    """
    Publish the caller's public key.

    Only the owner may publish, the key must be an RSA public key, and a
    published key is never replaced by a different one.
    """
    if token_user != username:
        raise HTTPException(status_code=403, detail="Not authorized")

    try:
        await import_public_key(upload.public_key)
    except KeyImportError as e:
        raise HTTPException(status_code=422, detail=f"Invalid public key: {e}")

    outcome = await db.set_public_key(username, upload.public_key.strip())

    if outcome is PublishOutcome.NO_USER:
        raise HTTPException(status_code=404, detail="User not found")
    if outcome is PublishOutcome.CONFLICT:
        raise HTTPException(status_code=409, detail="A different public key is already published")

    if outcome is PublishOutcome.STORED:
        logger.info("Published public key for %s", username)
    return {"status": "success", "outcome": outcome.value}


@app.get("/api/keys/{username}", response_model=PublicKeyResponse)
async def get_key(username: str):
    """
    Get a user's public key (for encrypting messages to them).

    This is public - anyone can fetch a public key.
    """
    public_key = await db.get_public_key(username)

    if not public_key:
        raise HTTPException(status_code=404, detail="User not found or no public key published")

    return PublicKeyResponse(username=username, public_key=public_key)


@app.get("/api/users")
async def list_users():
    """List all registered users"""
    users = await db.list_users()
    return {"users": users}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
