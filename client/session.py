"""
Encryption setup at the start of an authenticated session.
"""

import logging

from sealed.codec import export_public_key
from sealed.keys import InitResult, KeyPairManager, PublicKeyPublisher
from sealed.primitives import CryptoError, PublishError

from .directory import DirectoryClient, DirectoryError

logger = logging.getLogger(__name__)


async def ensure_encryption(user_id: str, directory: DirectoryClient, manager: KeyPairManager,
                            publisher: PublicKeyPublisher) -> InitResult:
    """
    Make encryption usable for the logged-in user.

    If the directory already has the user's public key, only the local
    private key is loaded. Otherwise keys are initialized, which generates
    and publishes a key pair unless this device already holds one; in that
    case the existing public key is published again.

    Never raises: failures are logged and returned with success=False.
    """
    try:
        return await _ensure_encryption(user_id, directory, manager, publisher)
    except Exception as e:
        logger.exception("Encryption not initialized for %s", user_id)
        error = e if isinstance(e, CryptoError) else CryptoError(str(e))
        if error is not e:
            error.__cause__ = e
        return InitResult(success=False, key_pair=None, error=error)


async def _ensure_encryption(user_id: str, directory: DirectoryClient, manager: KeyPairManager,
                             publisher: PublicKeyPublisher) -> InitResult:
    try:
        published = await directory.fetch_public_key(user_id)
    except DirectoryError as e:
        logger.warning("Encryption not initialized for %s: %s", user_id, e)
        return InitResult(success=False, key_pair=None)

    if published:
        try:
            key_pair = await manager.load(user_id)
        except CryptoError as e:
            logger.warning("Encryption not initialized for %s: %s", user_id, e)
            return InitResult(success=False, key_pair=None, error=e)
        if key_pair is None:
            logger.warning("Public key for %s is published but this device has no private key", user_id)
        return InitResult(success=key_pair is not None, key_pair=key_pair)

    result = await manager.initialize(user_id, publisher)
    if not result.success or result.created:
        if not result.success:
            logger.warning("Encryption not initialized for %s: %s", user_id, result.error)
        return result

    # Local key exists but was never published
    try:
        await publisher.publish(await export_public_key(result.key_pair.public_key))
    except Exception as e:
        logger.warning("Re-publishing public key for %s failed: %s", user_id, e)
        error = e if isinstance(e, CryptoError) else PublishError(str(e))
        return InitResult(success=False, key_pair=result.key_pair, error=error)

    logger.info("Re-published existing public key for %s", user_id)
    return InitResult(success=True, key_pair=result.key_pair, published=True)
