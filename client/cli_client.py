#!/usr/bin/env python3
"""
CLI Client for End-to-End Encrypted Direct Messages

Provides a command-line interface for:
- User registration and login against the public key directory
- One-time key setup (generate, store locally, publish public key)
- Encrypting a message for another user and decrypting received ones
- Showing the recovery phrase and private key backup
"""

import asyncio
import getpass
import logging
import sys
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout

from sealed.cipher import MessageCipher
from sealed.codec import export_private_key
from sealed.keys import KeyPair, KeyPairManager
from sealed.phrase import recovery_phrase
from sealed.primitives import CryptoError

from .config import Config
from .directory import DirectoryClient, DirectoryError, DirectoryPublisher
from .messages import compose_message, read_message
from .session import ensure_encryption
from .storage import SQLiteKeyStore

logger = logging.getLogger(__name__)

HELP = """Commands:
  /encrypt <username> <message> - Encrypt a message for a user
  /decrypt <ciphertext> - Decrypt a message sent to you
  /users - List users and whether they have published a key
  /phrase - Show your recovery phrase
  /backup - Show your exported private key
  /quit - Quit application"""


class SecureMessagingClient:
    """
    End-to-end encryption client for direct messages.
    """

    def __init__(self, config: Optional[Config] = None, directory: Optional[DirectoryClient] = None):
        """
        Initialize the client.

        Args:
            config: Client configuration
            directory: Directory client; created from config if omitted
        """
        self.config = config or Config()
        self.directory = directory or DirectoryClient(self.config.SERVER_URL, timeout=self.config.HTTP_TIMEOUT)
        self.cipher = MessageCipher()
        self.manager: Optional[KeyPairManager] = None
        self.key_pair: Optional[KeyPair] = None
        self.username: Optional[str] = None
        self.running = False

    async def register(self, username: str, password: str) -> bool:
        """Register a new account, then set up encryption"""
        try:
            await self.directory.register(username, password)
        except DirectoryError as e:
            print(f"Registration failed: {e}")
            return False
        print(f"Registration successful! Welcome, {username}")
        await self._start_session(username, password)
        return True

    async def login(self, username: str, password: str) -> bool:
        """Log in to an existing account, then set up encryption"""
        try:
            await self.directory.login(username, password)
        except DirectoryError as e:
            print(f"Login failed: {e}")
            return False
        print(f"Login successful! Welcome back, {username}")
        await self._start_session(username, password)
        return True

    async def _start_session(self, username: str, password: str):
        self.username = username
        store = SQLiteKeyStore(
            self.config.key_store_path(username),
            passphrase=password,
            timeout=self.config.STORE_TIMEOUT
        )
        self.manager = KeyPairManager(store)
        result = await ensure_encryption(username, self.directory, self.manager, DirectoryPublisher(self.directory))
        self.key_pair = result.key_pair

        if result.success:
            print("Encryption ready" + (" (new keys generated)" if result.created else ""))
        elif self.key_pair is not None:
            print("Encryption keys created, but your public key could not be published yet")
        else:
            print("Encryption not initialized; you will not be able to read encrypted messages")

    async def encrypt_for(self, peer: str, message: str) -> str:
        """
        Encrypt a message for a user.

        Raises:
            EncryptionError: If the peer has no key (and plaintext is not allowed)
            DirectoryError: If the directory can not be reached
        """
        peer_key = await self.directory.fetch_public_key(peer)
        return await compose_message(message, peer_key, self.cipher, allow_plaintext=self.config.ALLOW_PLAINTEXT)

    async def decrypt(self, content: str) -> str:
        """Decrypt a received message, or return a placeholder"""
        private_key = self.key_pair.private_key if self.key_pair else None
        return (await read_message(content, private_key, self.cipher)).text

    async def list_users(self):
        """List all registered users"""
        try:
            users = await self.directory.list_users()
        except DirectoryError as e:
            print(f"Failed to list users: {e}")
            return
        print("Registered users:")
        for user in users:
            marker = "key published" if user["has_key"] else "no key"
            print(f"  - {user['username']} ({marker})")

    async def show_phrase(self):
        if not self.key_pair:
            print("No encryption keys found on this device.")
            return
        print("Write this down and keep it safe:")
        print(f"  {await recovery_phrase(self.key_pair.private_key)}")

    async def show_backup(self):
        if not self.key_pair:
            print("No encryption keys found on this device.")
            return
        print(await export_private_key(self.key_pair.private_key))

    async def run_interactive(self):
        """Run interactive session"""
        self.running = True
        session = PromptSession()
        print()
        print(HELP)
        print()

        try:
            while self.running:
                try:
                    with patch_stdout():
                        user_input = await session.prompt_async(f"[{self.username}] > ")
                    if user_input.strip():
                        await self._handle_command(user_input.strip())
                except KeyboardInterrupt:
                    break
                except EOFError:
                    break
        finally:
            self.running = False
            await self.directory.aclose()

    async def _handle_command(self, command: str):
        """Handle slash commands"""
        parts = command.split(maxsplit=2)
        cmd = parts[0].lower()

        if cmd == "/encrypt" and len(parts) == 3:
            try:
                print(await self.encrypt_for(parts[1], parts[2]))
            except (CryptoError, DirectoryError) as e:
                print(f"Could not encrypt: {e}")
        elif cmd == "/decrypt" and len(parts) >= 2:
            print(await self.decrypt(command.split(maxsplit=1)[1]))
        elif cmd == "/users":
            await self.list_users()
        elif cmd == "/phrase":
            await self.show_phrase()
        elif cmd == "/backup":
            await self.show_backup()
        elif cmd == "/quit":
            self.running = False
        elif cmd == "/help":
            print(HELP)
        else:
            print("Unknown command. Type /help for help.")


async def main():
    """Main entry point"""
    config = Config()
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    client = SecureMessagingClient(config)

    print("=" * 50)
    print("End-to-End Encrypted Direct Messages")
    print("=" * 50)
    print()

    while True:
        print("1. Register")
        print("2. Login")
        print("3. Quit")
        choice = input("Choose an option: ").strip()

        if choice == "1":
            username = input("Username: ").strip()
            password = getpass.getpass("Password: ")
            if await client.register(username, password):
                break
        elif choice == "2":
            username = input("Username: ").strip()
            password = getpass.getpass("Password: ")
            if await client.login(username, password):
                break
        elif choice == "3":
            await client.directory.aclose()
            return
        else:
            print("Invalid choice")

    await client.run_interactive()
    print("\nGoodbye!")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(0)


if __name__ == "__main__":
    run()
