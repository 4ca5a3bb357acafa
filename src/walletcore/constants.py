"""
Bitcoin protocol constants used by the derivation and signing engine.
"""

from __future__ import annotations

# Standard P2PKH dust limit in Bitcoin Core.
# A change output is only created when change is strictly above this value.
STANDARD_DUST_LIMIT = 546  # satoshis
DEFAULT_DUST_THRESHOLD = STANDARD_DUST_LIMIT

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

HARDENED_OFFSET = 0x80000000
MAX_INDEX = 0xFFFFFFFF

SIGHASH_ALL = 0x01

DEFAULT_TX_VERSION = 2
DEFAULT_SEQUENCE = 0xFFFFFFFF
DEFAULT_LOCKTIME = 0

# BIP39
PBKDF2_ROUNDS = 2048
SEED_LENGTH = 64

# Size estimate constants (vbytes), see walletcore.tx.fees
TX_OVERHEAD_VSIZE = 10
LEGACY_INPUT_VSIZE = 180
SEGWIT_INPUT_VSIZE = 148
OUTPUT_VSIZE = 34
