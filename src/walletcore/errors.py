"""
Exception hierarchy for the key-derivation and signing engine.

Every failure in the engine is a local, synchronous condition reported to the
caller. None of them is ever replaced by a fallback value.
"""

from __future__ import annotations


class WalletError(Exception):
    """Base class for all engine errors."""


class InvalidMnemonic(WalletError, ValueError):
    """Mnemonic failed word-count, wordlist or checksum validation."""


class InvalidWordCount(WalletError, ValueError):
    """Requested mnemonic length is not 12 or 24 words."""

    def __init__(self, word_count: int):
        self.word_count = word_count
        super().__init__(f"word_count must be 12 or 24, got {word_count}")


class InvalidDerivationPath(WalletError, ValueError):
    """Derivation path text or index is malformed."""


class HardenedDerivationRequiresPrivateKey(WalletError):
    """Hardened child requested from a public-only (neutered) key."""


class UnsupportedScheme(WalletError, ValueError):
    """Common base for unknown purposes and unsupported address formats."""


class UnknownPurpose(UnsupportedScheme):
    """BIP43 purpose value has no matching derivation scheme."""

    def __init__(self, purpose: int):
        self.purpose = purpose
        super().__init__(f"Unknown derivation purpose: {purpose}")


class UnsupportedAddressFormat(UnsupportedScheme):
    """Address or script cannot be mapped to a supported script type."""


class MalformedSerialization(WalletError, ValueError):
    """Base58Check, bech32, extended key or raw transaction failed to decode."""


class InsufficientFunds(WalletError):
    """Selected inputs cannot cover the requested outputs plus fee."""

    def __init__(self, shortfall: int, available: int = 0, required: int = 0):
        self.shortfall = shortfall
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient funds: need {shortfall} more sats "
            f"(have {available}, need {required})"
        )


class ChangeAddressRequired(WalletError):
    """Change above the dust threshold is due but no change address was given."""

    def __init__(self, change: int):
        self.change = change
        super().__init__(f"Change of {change} sats requires a change address")


class TransactionBuildError(WalletError):
    """Transaction skeleton is structurally invalid."""


class TransactionSigningError(WalletError):
    """Signature hash or signature assembly failed."""


class MissingPrivateKey(TransactionSigningError):
    """An input has no private key available for signing."""

    def __init__(self, input_index: int):
        self.input_index = input_index
        super().__init__(f"No private key for input {input_index}")


class BroadcastError(WalletError):
    """The broadcast collaborator rejected or failed to relay a transaction."""

    def __init__(self, message: str, status_code: int = 0):
        self.message = message
        self.status_code = status_code
        super().__init__(f"{message} (status: {status_code})")
