"""
Wallet orchestration: accounts, address derivation and the send flow.

Derivation path: m/{purpose}'/{coin_type}'/{account}'/{change}/{index}
- purpose: 44 / 49 / 84 by script scheme
- change: 0 (external/receive), 1 (internal/change)
- index: address index

The seed is fetched from the SeedStore per operation, held in a
SecretBytes and wiped as soon as the keys it unlocks are derived.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass

from loguru import logger

from walletcore.backends.base import ChainDataProvider, SeedStore, broadcast
from walletcore.config import Settings
from walletcore.constants import DEFAULT_DUST_THRESHOLD
from walletcore.errors import (
    InvalidMnemonic,
    MissingPrivateKey,
    UnsupportedAddressFormat,
    WalletError,
)
from walletcore.keymaterial import SecretBytes
from walletcore.models import UTXO, Account, DerivationScheme, NetworkType
from walletcore.tx.coin_selection import (
    SelectionStrategy,
    build_from_plan,
    select_and_build_plan,
)
from walletcore.tx.fees import FeePreset, fee_rate_for_preset
from walletcore.tx.signing import SigningInput, sign_transaction
from walletcore.wallet.address import encode_address
from walletcore.wallet.bip32 import HDKey
from walletcore.wallet.derivation import DerivationPath, address_path, build_path
from walletcore.wallet.mnemonic import generate_mnemonic, mnemonic_to_seed, validate_mnemonic

DEFAULT_GAP_LIMIT = 20


def derive_account_xpub(
    seed: bytes,
    scheme: DerivationScheme = DerivationScheme.NATIVE_SEGWIT,
    network: NetworkType = NetworkType.MAINNET,
    account_index: int = 0,
) -> str:
    """Extended public key of m/purpose'/coin_type'/account_index'."""
    master = HDKey.from_seed(seed, network)
    account_key = master.derive(build_path(scheme, network, account_index))
    xpub = account_key.to_base58(private=False)
    master.wipe()
    account_key.wipe()
    return xpub


def _check_key_network(key: HDKey, network: NetworkType) -> None:
    # signet/regtest keys serialize with testnet versions
    if key.network.is_mainnet != NetworkType(network).is_mainnet:
        raise UnsupportedAddressFormat(
            f"Extended key is for {key.network.value}, not {NetworkType(network).value}"
        )


def derive_address_from_xpub(
    xpub: str,
    index: int,
    scheme: DerivationScheme = DerivationScheme.NATIVE_SEGWIT,
    network: NetworkType | None = None,
    change: bool = False,
) -> str:
    """
    Address at {change}/{index} below an account xpub. Works watch-only:
    both segments are non-hardened.

    network may be omitted only for mainnet xpubs; tpub strings are shared
    by testnet, signet and regtest and need it spelled out.
    """
    account_key = HDKey.from_base58(xpub)
    if network is None:
        if not account_key.network.is_mainnet:
            raise UnsupportedAddressFormat(
                "Extended key is valid for testnet, signet and regtest; network is required"
            )
        network = account_key.network
    _check_key_network(account_key, network)

    key = account_key.derive_child(1 if change else 0).derive_child(index)
    return encode_address(key.get_public_key_bytes(), scheme, network)


def derive_xprv(xprv: str, path: DerivationPath | str) -> str:
    """Derive an extended private key below xprv ("m" denotes xprv itself)."""
    key = HDKey.from_base58(xprv)
    child = key.derive(path)
    result = child.to_base58(private=True)
    key.wipe()
    child.wipe()
    return result


def derive_xpub(extended_key: str, path: DerivationPath | str) -> str:
    """
    Derive an extended public key below an xprv or xpub. Hardened segments
    below an xpub raise HardenedDerivationRequiresPrivateKey.
    """
    key = HDKey.from_base58(extended_key)
    child = key.derive(path)
    result = child.to_base58(private=False)
    key.wipe()
    child.wipe()
    return result


@dataclass(frozen=True)
class SendResult:
    txid: str
    tx_hex: str
    fee: int
    change: int
    broadcast: bool


class WalletService:
    """
    Wallet service for one stored seed.

    Address derivation runs from account xpubs and never touches the seed.
    Signing unlocks the seed for the duration of one send.
    """

    def __init__(
        self,
        seed_store: SeedStore,
        wallet_id: str,
        provider: ChainDataProvider | None = None,
        network: NetworkType = NetworkType.MAINNET,
        scheme: DerivationScheme = DerivationScheme.NATIVE_SEGWIT,
        dust_threshold: int = DEFAULT_DUST_THRESHOLD,
        bip69: bool = False,
        parallel_signing: bool = False,
        fee_preset: FeePreset = FeePreset.NORMAL,
        word_count: int = 24,
        account_index: int = 0,
    ):
        self.seed_store = seed_store
        self.wallet_id = wallet_id
        self.provider = provider
        self.network = NetworkType(network)
        self.scheme = DerivationScheme(scheme)
        self.dust_threshold = dust_threshold
        self.bip69 = bip69
        self.parallel_signing = parallel_signing
        self.fee_preset = fee_preset
        self.word_count = word_count
        self.account_index = account_index

        # address -> (account path, change, index)
        self.address_cache: dict[str, tuple[str, int, int]] = {}

    @classmethod
    def from_settings(
        cls,
        seed_store: SeedStore,
        wallet_id: str,
        provider: ChainDataProvider | None = None,
        settings: Settings | None = None,
    ) -> WalletService:
        settings = settings or Settings()
        return cls(
            seed_store,
            wallet_id,
            provider=provider,
            network=settings.network,
            scheme=settings.scheme,
            dust_threshold=settings.dust_threshold,
            bip69=settings.bip69_ordering,
            parallel_signing=settings.parallel_signing,
            fee_preset=FeePreset.from_name(settings.fee_preset),
            word_count=settings.word_count,
            account_index=settings.account_index,
        )

    async def create_wallet(self, word_count: int | None = None, passphrase: str = "") -> str:
        """Generate a mnemonic, store it with its seed, and return it."""
        mnemonic = generate_mnemonic(word_count or self.word_count)
        await self.import_wallet(mnemonic, passphrase)
        return mnemonic

    async def import_wallet(self, mnemonic: str, passphrase: str = "") -> None:
        if not validate_mnemonic(mnemonic):
            raise InvalidMnemonic("Mnemonic failed validation")

        with SecretBytes(mnemonic_to_seed(mnemonic, passphrase)) as seed:
            await self.seed_store.store_seed(self.wallet_id, seed.reveal())
        await self.seed_store.store_mnemonic(self.wallet_id, mnemonic)
        logger.info(f"Stored seed for wallet {self.wallet_id}")

    async def delete_wallet(self) -> None:
        await self.seed_store.delete_wallet_data(self.wallet_id)
        self.address_cache.clear()
        logger.info(f"Deleted wallet data for {self.wallet_id}")

    @asynccontextmanager
    async def unlocked(self) -> AsyncIterator[HDKey]:
        """Master key for the stored seed; seed and key are wiped on exit."""
        raw_seed = await self.seed_store.retrieve_seed(self.wallet_id)
        if raw_seed is None:
            raise WalletError(f"No seed stored for wallet {self.wallet_id}")

        with SecretBytes(raw_seed) as seed:
            master = HDKey.from_seed(seed.reveal(), self.network)
        try:
            yield master
        finally:
            master.wipe()

    async def create_account(
        self,
        account_index: int | None = None,
        scheme: DerivationScheme | None = None,
        label: str = "",
    ) -> Account:
        if account_index is None:
            account_index = self.account_index
        scheme = DerivationScheme(scheme or self.scheme)
        path = build_path(scheme, self.network, account_index)

        async with self.unlocked() as master:
            account_key = master.derive(path)
            xpub = account_key.to_base58(private=False)
            account_key.wipe()

        account = Account(
            wallet_id=self.wallet_id,
            label=label or f"Account {account_index}",
            xpub=xpub,
            derivation_path=str(path),
            scheme=scheme,
            network=self.network,
            account_index=account_index,
        )
        logger.info(f"Created account {account.derivation_path} ({scheme.value})")
        return account

    def _check_account(self, account: Account) -> None:
        if account.network != self.network:
            raise ValueError(
                f"Account is for {account.network.value}, service is {self.network.value}"
            )

    def derive_address(self, account: Account, index: int, change: bool = False) -> str:
        """Get address for account/{change}/{index}"""
        return self.derive_addresses(account, start=index, count=1, change=change)[0]

    def derive_change_address(self, account: Account, index: int) -> str:
        """Get internal (change) address"""
        return self.derive_address(account, index, change=True)

    def derive_addresses(
        self,
        account: Account,
        start: int = 0,
        count: int = DEFAULT_GAP_LIMIT,
        change: bool = False,
        parallel: bool = False,
    ) -> list[str]:
        """
        Addresses start..start+count-1 on one chain of the account, in index
        order. parallel=True derives on a thread pool.
        """
        self._check_account(account)
        if count < 0 or start < 0:
            raise ValueError("start and count must be non-negative")

        chain = 1 if change else 0
        chain_key = HDKey.from_base58(account.xpub, account.network).derive_child(chain)

        def derive(index: int) -> str:
            pubkey = chain_key.derive_child(index).get_public_key_bytes()
            return encode_address(pubkey, account.scheme, account.network)

        indices = range(start, start + count)
        if parallel and count > 1:
            with ThreadPoolExecutor() as pool:
                addresses = list(pool.map(derive, indices))
        else:
            addresses = [derive(i) for i in indices]

        for index, address in zip(indices, addresses, strict=True):
            self.address_cache[address] = (account.derivation_path, chain, index)

        return addresses

    def path_for_address(self, address: str) -> DerivationPath | None:
        """Full path of an address derived earlier by this service."""
        if address not in self.address_cache:
            return None
        account_path, change, index = self.address_cache[address]
        return address_path(DerivationPath.parse(account_path), bool(change), index)

    def _signing_input(self, master: HDKey, utxo: UTXO, path: DerivationPath) -> SigningInput:
        key = master.derive(path)
        return SigningInput(utxo=utxo, private_key=key.private_key)

    async def signing_input_for(self, utxo: UTXO, path: DerivationPath | str) -> SigningInput:
        if isinstance(path, str):
            path = DerivationPath.parse(path)
        async with self.unlocked() as master:
            return self._signing_input(master, utxo, path)

    def _require_provider(self) -> ChainDataProvider:
        if self.provider is None:
            raise WalletError("No chain-data provider configured")
        return self.provider

    async def estimate_fee_for_preset(self, preset: FeePreset | None = None) -> int:
        preset = preset or self.fee_preset
        estimates = await self._require_provider().get_fee_estimates()
        rate = fee_rate_for_preset(estimates, preset)
        logger.debug(f"Fee rate for {preset.label}: {rate} sat/vB")
        return rate

    async def sync_account(
        self, account: Account, gap_limit: int = DEFAULT_GAP_LIMIT
    ) -> list[UTXO]:
        """
        Fetch UTXOs of an account from the provider.
        Scans both chains until gap_limit consecutive unused addresses.
        """
        provider = self._require_provider()
        utxos: list[UTXO] = []

        for change in (False, True):
            consecutive_empty = 0
            index = 0

            while consecutive_empty < gap_limit:
                addresses = self.derive_addresses(account, index, gap_limit, change=change)
                found = await provider.get_utxos(addresses)

                by_address: dict[str, list[UTXO]] = {addr: [] for addr in addresses}
                for utxo in found:
                    if utxo.address in by_address:
                        by_address[utxo.address].append(utxo)

                for address in addresses:
                    if by_address[address]:
                        consecutive_empty = 0
                        utxos.extend(by_address[address])
                    else:
                        consecutive_empty += 1
                    if consecutive_empty >= gap_limit:
                        break

                index += gap_limit

        logger.info(f"Synced account {account.derivation_path}: {len(utxos)} UTXOs")
        return utxos

    async def send(
        self,
        account: Account,
        utxos: Sequence[UTXO],
        recipient: str,
        amount: int,
        fee_rate: int | None = None,
        preset: FeePreset | None = None,
        change_index: int = 0,
        strategy: SelectionStrategy = SelectionStrategy.LARGEST_FIRST,
        min_confirmations: int = 0,
        broadcast_tx: bool = True,
    ) -> SendResult:
        """
        Plan, build, sign and (optionally) broadcast a payment.

        UTXOs must belong to addresses this service has derived for the
        account (derive_addresses or sync_account).

        Raises:
            InsufficientFunds, ChangeAddressRequired: from coin selection
            MissingPrivateKey: a selected UTXO's address is unknown
            BroadcastError: the provider rejected the transaction
        """
        self._check_account(account)

        if fee_rate is None:
            fee_rate = await self.estimate_fee_for_preset(preset)

        change_address = self.derive_change_address(account, change_index)
        plan = select_and_build_plan(
            utxos,
            recipient,
            amount,
            fee_rate,
            change_address=change_address,
            strategy=strategy,
            dust_threshold=self.dust_threshold,
            min_confirmations=min_confirmations,
        )

        tx = build_from_plan(plan, network=self.network, bip69=self.bip69)

        by_outpoint = {(u.txid, u.vout): u for u in plan.inputs}
        ordered = [by_outpoint[(inp.txid, inp.vout)] for inp in tx.inputs]

        paths = []
        for i, utxo in enumerate(ordered):
            path = self.path_for_address(utxo.address)
            if path is None:
                raise MissingPrivateKey(i)
            paths.append(path)

        async with self.unlocked() as master:
            signing_inputs = [
                self._signing_input(master, utxo, path)
                for utxo, path in zip(ordered, paths, strict=True)
            ]
            signed = sign_transaction(
                tx, signing_inputs, expected_fee=plan.fee, parallel=self.parallel_signing
            )

        tx_hex = signed.hex()
        txid = signed.txid
        if broadcast_tx:
            txid = await broadcast(self._require_provider(), tx_hex)

        logger.info(
            f"Sent {amount} sats to {recipient}: fee {plan.fee}, change {plan.change}, txid {txid}"
        )
        return SendResult(
            txid=txid, tx_hex=tx_hex, fee=plan.fee, change=plan.change, broadcast=broadcast_tx
        )

    async def close(self) -> None:
        if self.provider is not None:
            await self.provider.close()
