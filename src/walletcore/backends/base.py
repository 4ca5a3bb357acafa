"""
Interfaces of the external collaborators the engine talks to.

The chain-data provider (UTXO lookup, fee estimates, broadcast) and the
seed store (encrypted at-rest storage) live outside this package; only
their shape is defined here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from loguru import logger

from walletcore.errors import BroadcastError
from walletcore.models import UTXO


class ChainDataProvider(ABC):
    """
    Abstract chain-data provider.
    Implementations return snapshots; the engine never caches or retries.
    """

    @abstractmethod
    async def get_utxos(self, addresses: list[str]) -> list[UTXO]:
        """Get UTXOs for given addresses"""

    @abstractmethod
    async def get_fee_estimates(self) -> dict[int, int]:
        """Fee snapshot: {target_blocks: sat/vbyte}"""

    @abstractmethod
    async def estimate_fee(self, target_blocks: int) -> int:
        """Estimate fee in sat/vbyte for target confirmation blocks"""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    async def close(self) -> None:
        """Close provider connection"""
        pass


class SeedStore(ABC):
    """
    Secure storage for seeds and mnemonics, keyed by wallet id.
    Access gating (e.g. biometrics) is the implementation's concern.
    """

    @abstractmethod
    async def store_seed(self, wallet_id: str, seed: bytes) -> None: ...

    @abstractmethod
    async def retrieve_seed(self, wallet_id: str) -> bytes | None: ...

    @abstractmethod
    async def store_mnemonic(self, wallet_id: str, mnemonic: str) -> None: ...

    @abstractmethod
    async def retrieve_mnemonic(self, wallet_id: str) -> str | None: ...

    @abstractmethod
    async def delete_wallet_data(self, wallet_id: str) -> None: ...


class InMemorySeedStore(SeedStore):
    """Process-local store, for offline use and tests. Nothing is encrypted."""

    def __init__(self) -> None:
        self._seeds: dict[str, bytes] = {}
        self._mnemonics: dict[str, str] = {}

    async def store_seed(self, wallet_id: str, seed: bytes) -> None:
        self._seeds[wallet_id] = bytes(seed)

    async def retrieve_seed(self, wallet_id: str) -> bytes | None:
        return self._seeds.get(wallet_id)

    async def store_mnemonic(self, wallet_id: str, mnemonic: str) -> None:
        self._mnemonics[wallet_id] = mnemonic

    async def retrieve_mnemonic(self, wallet_id: str) -> str | None:
        return self._mnemonics.get(wallet_id)

    async def delete_wallet_data(self, wallet_id: str) -> None:
        self._seeds.pop(wallet_id, None)
        self._mnemonics.pop(wallet_id, None)


async def broadcast(provider: ChainDataProvider, tx_hex: str) -> str:
    """
    Relay a signed transaction through the provider.

    Raises:
        BroadcastError: the provider failed or returned no txid
    """
    try:
        txid = await provider.broadcast_transaction(tx_hex)
    except BroadcastError:
        raise
    except Exception as e:
        logger.error(f"Broadcast failed: {e}")
        raise BroadcastError(str(e), getattr(e, "status_code", 0)) from e

    if not txid:
        raise BroadcastError("Provider returned no txid")

    logger.info(f"Broadcast transaction {txid}")
    return txid
