"""
Collaborator interfaces.

- ChainDataProvider: UTXO lookup, fee estimates and broadcast
- SeedStore: at-rest storage of seeds and mnemonics
- InMemorySeedStore: unencrypted process-local SeedStore
"""

from walletcore.backends.base import (
    ChainDataProvider,
    InMemorySeedStore,
    SeedStore,
    broadcast,
)

__all__ = [
    "ChainDataProvider",
    "InMemorySeedStore",
    "SeedStore",
    "broadcast",
]
