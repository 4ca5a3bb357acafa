"""
Shared fixtures: the BIP39 "abandon ... about" wallet used across the
BIP44/49/84 reference vectors.
"""

import pytest

from walletcore.models import NetworkType
from walletcore.wallet.bip32 import HDKey
from walletcore.wallet.mnemonic import mnemonic_to_seed

TEST_MNEMONIC = "abandon " * 11 + "about"


@pytest.fixture
def test_mnemonic() -> str:
    return TEST_MNEMONIC


@pytest.fixture
def seed(test_mnemonic: str) -> bytes:
    return mnemonic_to_seed(test_mnemonic)


@pytest.fixture
def master_key(seed: bytes) -> HDKey:
    return HDKey.from_seed(seed, NetworkType.MAINNET)
