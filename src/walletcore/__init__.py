"""
walletcore - HD key derivation and Bitcoin transaction engine

Mnemonic -> BIP32 key tree -> addresses (P2PKH, P2SH-P2WPKH, P2WPKH) ->
coin selection -> unsigned transaction -> signed transaction.
"""

__version__ = "0.3.0"

from walletcore.constants import DEFAULT_DUST_THRESHOLD, STANDARD_DUST_LIMIT
from walletcore.errors import (
    BroadcastError,
    ChangeAddressRequired,
    HardenedDerivationRequiresPrivateKey,
    InsufficientFunds,
    InvalidDerivationPath,
    InvalidMnemonic,
    InvalidWordCount,
    MalformedSerialization,
    MissingPrivateKey,
    TransactionBuildError,
    TransactionSigningError,
    UnknownPurpose,
    UnsupportedAddressFormat,
    UnsupportedScheme,
    WalletError,
)
from walletcore.models import UTXO, Account, DerivationScheme, FeeEstimate, NetworkType
from walletcore.tx.builder import TxInput, TxOutput, UnsignedTransaction, build_transaction
from walletcore.tx.coin_selection import (
    SelectionStrategy,
    SpendPlan,
    build_from_plan,
    select_and_build_plan,
)
from walletcore.tx.fees import FeePreset, calculate_fee, estimate_vsize
from walletcore.tx.signing import (
    SignedTransaction,
    SigningInput,
    SigningState,
    TransactionSigner,
    sign_transaction,
)
from walletcore.wallet.address import address_to_scriptpubkey, encode_address
from walletcore.wallet.bip32 import HDKey
from walletcore.wallet.derivation import DerivationPath, build_path, scheme_from_purpose
from walletcore.wallet.mnemonic import generate_mnemonic, mnemonic_to_seed, validate_mnemonic
from walletcore.wallet.service import (
    WalletService,
    derive_account_xpub,
    derive_address_from_xpub,
    derive_xprv,
    derive_xpub,
)

__all__ = [
    "Account",
    "BroadcastError",
    "ChangeAddressRequired",
    "DEFAULT_DUST_THRESHOLD",
    "DerivationPath",
    "DerivationScheme",
    "FeeEstimate",
    "FeePreset",
    "HDKey",
    "HardenedDerivationRequiresPrivateKey",
    "InsufficientFunds",
    "InvalidDerivationPath",
    "InvalidMnemonic",
    "InvalidWordCount",
    "MalformedSerialization",
    "MissingPrivateKey",
    "NetworkType",
    "STANDARD_DUST_LIMIT",
    "SelectionStrategy",
    "SignedTransaction",
    "SigningInput",
    "SigningState",
    "SpendPlan",
    "TransactionBuildError",
    "TransactionSigner",
    "TransactionSigningError",
    "TxInput",
    "TxOutput",
    "UTXO",
    "UnknownPurpose",
    "UnsignedTransaction",
    "UnsupportedAddressFormat",
    "UnsupportedScheme",
    "WalletError",
    "WalletService",
    "address_to_scriptpubkey",
    "build_from_plan",
    "build_path",
    "build_transaction",
    "calculate_fee",
    "derive_account_xpub",
    "derive_address_from_xpub",
    "derive_xprv",
    "derive_xpub",
    "encode_address",
    "estimate_vsize",
    "generate_mnemonic",
    "mnemonic_to_seed",
    "scheme_from_purpose",
    "select_and_build_plan",
    "sign_transaction",
    "validate_mnemonic",
]
