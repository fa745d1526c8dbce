"""
Recovery phrase shown to users as a backup reminder for their private key.

The phrase is display-only: pairs of characters from the exported key are
summed into a 64-word list, which loses information, so a key can not be
rebuilt from it.
"""

from typing import List

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .codec import export_private_key

PHRASE_LENGTH = 24

WORD_LIST = (
    'dance', 'flow', 'rhythm', 'heart', 'soul', 'breath', 'move', 'sacred',
    'tribe', 'circle', 'gather', 'pulse', 'wave', 'spiral', 'earth', 'fire',
    'water', 'air', 'spirit', 'unity', 'peace', 'love', 'joy', 'grace',
    'light', 'sound', 'vibration', 'harmony', 'balance', 'center', 'ground', 'rise',
    'expand', 'release', 'surrender', 'trust', 'open', 'receive', 'give', 'share',
    'connect', 'embrace', 'honor', 'respect', 'listen', 'speak', 'silence', 'presence',
    'moment', 'eternal', 'infinite', 'cosmic', 'divine', 'human', 'nature', 'wild',
    'free', 'authentic', 'true', 'real', 'deep', 'wide', 'high', 'vast',
)


def to_phrase(exported_private_key: str) -> List[str]:
    """
    Map an exported private key to recovery words.

    Args:
        exported_private_key: Base64 PKCS#8 text from export_private_key()

    Returns:
        Up to PHRASE_LENGTH words
    """
    words = []
    for i in range(0, len(exported_private_key), 2):
        chunk = exported_private_key[i:i + 2]
        second = ord(chunk[1]) if len(chunk) > 1 else 0
        words.append(WORD_LIST[(ord(chunk[0]) + second) % len(WORD_LIST)])
        if len(words) == PHRASE_LENGTH:
            break
    return words


async def recovery_phrase(private_key: RSAPrivateKey) -> str:
    """Space-separated recovery phrase for a private key"""
    exported = await export_private_key(private_key)
    return " ".join(to_phrase(exported))
