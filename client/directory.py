"""
HTTP client for the public key directory.

The directory maps usernames to published public keys. This module also
provides DirectoryPublisher, the HTTP implementation of the
PublicKeyPublisher port used during key initialization.
"""

import logging
from typing import Dict, List, Optional

import httpx

from sealed.primitives import PublishError

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """The directory rejected a request or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _detail(response: httpx.Response) -> str:
    try:
        return response.json().get("detail", response.reason_phrase)
    except (ValueError, AttributeError):
        return response.reason_phrase


class DirectoryClient:
    """
    Async client for the directory service.
    """

    def __init__(self, server_url: str = "http://localhost:8000", timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize directory client.

        Args:
            server_url: Base URL of the directory service
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used to talk to an in-process app)
        """
        self.server_url = server_url.rstrip("/")
        self.http_client = httpx.AsyncClient(base_url=self.server_url, timeout=timeout, transport=transport)
        self.username: Optional[str] = None
        self.token: Optional[str] = None

    def _auth_headers(self) -> Dict[str, str]:
        if not self.token:
            raise DirectoryError("Not logged in")
        return {"Authorization": f"Bearer {self.token}"}

    async def _authenticate(self, path: str, username: str, password: str):
        try:
            response = await self.http_client.post(path, json={"username": username, "password": password})
        except httpx.HTTPError as e:
            raise DirectoryError(f"Directory unreachable: {e}") from e

        if response.status_code != 200:
            raise DirectoryError(_detail(response), response.status_code)

        try:
            data = response.json()
            self.token = data["access_token"]
            self.username = data["username"]
        except (ValueError, KeyError, TypeError) as e:
            raise DirectoryError("Malformed directory response") from e

    async def register(self, username: str, password: str):
        """Create an account and keep its access token"""
        await self._authenticate("/api/register", username, password)
        logger.info("Registered %s", username)

    async def login(self, username: str, password: str):
        """Log in and keep the access token"""
        await self._authenticate("/api/login", username, password)
        logger.info("Logged in as %s", username)

    async def fetch_public_key(self, username: str) -> Optional[str]:
        """
        Get a user's published public key.

        Args:
            username: User to look up

        Returns:
            Base64 SPKI public key, or None if the user has not published one
        """
        try:
            response = await self.http_client.get(f"/api/keys/{username}")
        except httpx.HTTPError as e:
            raise DirectoryError(f"Directory unreachable: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise DirectoryError(_detail(response), response.status_code)
        try:
            return response.json()["public_key"]
        except (ValueError, KeyError, TypeError) as e:
            raise DirectoryError(f"Malformed directory response for {username}") from e

    async def publish_public_key(self, encoded_public_key: str):
        """
        Publish the logged-in user's public key.

        Raises:
            PublishError: If the directory does not accept the key
        """
        try:
            response = await self.http_client.put(
                f"/api/keys/{self.username}",
                json={"public_key": encoded_public_key},
                headers=self._auth_headers()
            )
        except (httpx.HTTPError, DirectoryError) as e:
            raise PublishError(f"Could not publish public key: {e}") from e

        if response.status_code != 200:
            raise PublishError(f"Directory rejected public key: {_detail(response)}")
        logger.info("Published public key for %s", self.username)

    async def list_users(self) -> List[Dict]:
        """List registered users and whether each has a published key"""
        try:
            response = await self.http_client.get("/api/users")
        except httpx.HTTPError as e:
            raise DirectoryError(f"Directory unreachable: {e}") from e

        if response.status_code != 200:
            raise DirectoryError(_detail(response), response.status_code)
        try:
            return response.json()["users"]
        except (ValueError, KeyError, TypeError) as e:
            raise DirectoryError("Malformed directory response") from e

    async def aclose(self):
        await self.http_client.aclose()


class DirectoryPublisher:
    """PublicKeyPublisher that writes to the directory service"""

    def __init__(self, directory: DirectoryClient):
        self.directory = directory

    async def publish(self, encoded_public_key: str) -> None:
        await self.directory.publish_public_key(encoded_public_key)
