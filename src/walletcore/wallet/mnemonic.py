"""
BIP39 mnemonic generation, validation and seed derivation.
"""

from __future__ import annotations

import hashlib
import secrets
import unicodedata
from functools import lru_cache

from mnemonic import Mnemonic

from walletcore.constants import PBKDF2_ROUNDS, SEED_LENGTH
from walletcore.errors import InvalidMnemonic, InvalidWordCount

# word count -> entropy bits
WORD_COUNT_STRENGTH = {12: 128, 24: 256}
VALID_WORD_COUNTS = (12, 15, 18, 21, 24)


@lru_cache(maxsize=1)
def get_wordlist() -> tuple[str, ...]:
    """English BIP39 wordlist (2048 words)."""
    return tuple(Mnemonic("english").wordlist)


@lru_cache(maxsize=1)
def _word_index() -> dict[str, int]:
    return {word: i for i, word in enumerate(get_wordlist())}


def _normalize(text: str) -> str:
    return unicodedata.normalize("NFKD", text)


def entropy_to_mnemonic(entropy: bytes) -> str:
    """
    Map entropy to words: entropy bits followed by the first len/32 bits of
    SHA256(entropy), split into 11-bit groups.
    """
    if len(entropy) not in (16, 20, 24, 28, 32):
        raise ValueError(f"Entropy must be 16-32 bytes in steps of 4, got {len(entropy)}")

    entropy_bits = len(entropy) * 8
    checksum_bits = entropy_bits // 32
    checksum = hashlib.sha256(entropy).digest()[0] >> (8 - checksum_bits)

    combined = (int.from_bytes(entropy, "big") << checksum_bits) | checksum
    word_count = (entropy_bits + checksum_bits) // 11

    wordlist = get_wordlist()
    words = [
        wordlist[(combined >> (11 * (word_count - 1 - i))) & 0x7FF] for i in range(word_count)
    ]
    return " ".join(words)


def generate_mnemonic(word_count: int = 24) -> str:
    """
    Generate a BIP39 mnemonic from secure entropy.

    Args:
        word_count: Number of words (12 or 24)

    Returns:
        BIP39 mnemonic phrase

    Raises:
        InvalidWordCount: for any other word count
    """
    strength = WORD_COUNT_STRENGTH.get(word_count)
    if strength is None:
        raise InvalidWordCount(word_count)

    return entropy_to_mnemonic(secrets.token_bytes(strength // 8))


def mnemonic_to_entropy(mnemonic: str) -> bytes:
    """Recover entropy from a mnemonic, raising InvalidMnemonic on any defect."""
    if not isinstance(mnemonic, str):
        raise InvalidMnemonic("Mnemonic must be a string")

    words = _normalize(mnemonic).split()
    if len(words) not in VALID_WORD_COUNTS:
        raise InvalidMnemonic(f"Invalid word count: {len(words)}")

    index = _word_index()
    combined = 0
    for word in words:
        position = index.get(word)
        if position is None:
            raise InvalidMnemonic("Mnemonic contains a word outside the BIP39 wordlist")
        combined = (combined << 11) | position

    total_bits = len(words) * 11
    checksum_bits = total_bits // 33
    entropy_bits = total_bits - checksum_bits

    entropy = (combined >> checksum_bits).to_bytes(entropy_bits // 8, "big")
    checksum = combined & ((1 << checksum_bits) - 1)
    expected = hashlib.sha256(entropy).digest()[0] >> (8 - checksum_bits)

    if checksum != expected:
        raise InvalidMnemonic("Mnemonic checksum mismatch")

    return entropy


def validate_mnemonic(mnemonic: str) -> bool:
    """Return True for a well-formed mnemonic. Never raises."""
    try:
        mnemonic_to_entropy(mnemonic)
    except InvalidMnemonic:
        return False
    return True


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """
    Convert BIP39 mnemonic to a 64-byte seed.

    PBKDF2-HMAC-SHA512, 2048 rounds, salt "mnemonic" + passphrase, both
    NFKD-normalised.
    """
    if not validate_mnemonic(mnemonic):
        raise InvalidMnemonic("Invalid mnemonic phrase")

    mnemonic_bytes = " ".join(_normalize(mnemonic).split()).encode("utf-8")
    salt = _normalize("mnemonic" + passphrase).encode("utf-8")

    return hashlib.pbkdf2_hmac(
        "sha512", mnemonic_bytes, salt, PBKDF2_ROUNDS, dklen=SEED_LENGTH
    )
