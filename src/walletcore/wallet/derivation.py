"""
BIP44/49/84 derivation paths and the purpose <-> script-scheme mapping.

Account path: m/{purpose}'/{coin_type}'/{account}'
Address path: m/{purpose}'/{coin_type}'/{account}'/{change}/{index}
- purpose: 44 (legacy P2PKH), 49 (P2SH-P2WPKH), 84 (P2WPKH)
- coin_type: 0 (mainnet), 1 (testnet, signet, regtest)
- change: 0 (external/receive), 1 (internal/change)
"""

from __future__ import annotations

from dataclasses import dataclass

from walletcore.constants import HARDENED_OFFSET, MAX_INDEX
from walletcore.errors import InvalidDerivationPath, UnknownPurpose
from walletcore.models import DerivationScheme, NetworkType

PURPOSE_BY_SCHEME: dict[DerivationScheme, int] = {
    DerivationScheme.LEGACY: 44,
    DerivationScheme.P2SH_SEGWIT: 49,
    DerivationScheme.NATIVE_SEGWIT: 84,
}

COIN_TYPE_BY_NETWORK: dict[NetworkType, int] = {
    NetworkType.MAINNET: 0,
    NetworkType.TESTNET: 1,
    NetworkType.SIGNET: 1,
    NetworkType.REGTEST: 1,
}


@dataclass(frozen=True)
class PathSegment:
    index: int
    hardened: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.index < HARDENED_OFFSET:
            raise InvalidDerivationPath(f"Segment index out of range: {self.index}")

    @property
    def raw_index(self) -> int:
        """Index as serialized in BIP32 (hardened flag in the top bit)."""
        return self.index + HARDENED_OFFSET if self.hardened else self.index

    @classmethod
    def from_raw(cls, raw_index: int) -> PathSegment:
        if not 0 <= raw_index <= MAX_INDEX:
            raise InvalidDerivationPath(f"Child index out of range: {raw_index}")
        if raw_index >= HARDENED_OFFSET:
            return cls(raw_index - HARDENED_OFFSET, hardened=True)
        return cls(raw_index)

    def __str__(self) -> str:
        return f"{self.index}'" if self.hardened else str(self.index)


@dataclass(frozen=True)
class DerivationPath:
    """Ordered BIP32 path from the master key, e.g. m/84'/0'/0'/0/5."""

    segments: tuple[PathSegment, ...] = ()

    @classmethod
    def parse(cls, path: str) -> DerivationPath:
        """
        Parse path notation. ' or h marks hardened segments; the leading m
        is required.
        """
        if not isinstance(path, str):
            raise InvalidDerivationPath("Path must be a string")

        parts = path.strip().split("/")
        if parts[0] != "m":
            raise InvalidDerivationPath(f"Path must start with 'm': {path!r}")

        segments = []
        for part in parts[1:]:
            hardened = part.endswith(("'", "h", "H"))
            index_str = part[:-1] if hardened else part
            if not index_str.isdigit():
                raise InvalidDerivationPath(f"Invalid path segment {part!r} in {path!r}")
            segments.append(PathSegment(int(index_str), hardened))

        return cls(tuple(segments))

    def __str__(self) -> str:
        return "/".join(["m", *(str(s) for s in self.segments)])

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def depth(self) -> int:
        return len(self.segments)

    def child(self, index: int, hardened: bool = False) -> DerivationPath:
        return DerivationPath((*self.segments, PathSegment(index, hardened)))

    def extend(self, other: DerivationPath) -> DerivationPath:
        return DerivationPath(self.segments + other.segments)

    def relative_to(self, parent: DerivationPath) -> DerivationPath:
        """Segments below parent; fails when parent is not a prefix."""
        n = len(parent.segments)
        if self.segments[:n] != parent.segments:
            raise InvalidDerivationPath(f"{parent} is not a prefix of {self}")
        return DerivationPath(self.segments[n:])


def purpose_for_scheme(scheme: DerivationScheme) -> int:
    return PURPOSE_BY_SCHEME[DerivationScheme(scheme)]


def coin_type_for_network(network: NetworkType) -> int:
    return COIN_TYPE_BY_NETWORK[NetworkType(network)]


def scheme_from_purpose(purpose: int) -> DerivationScheme:
    """
    Inverse of purpose_for_scheme. Unsupported purposes (including 86,
    Taproot) raise UnknownPurpose; add a new scheme rather than a fallback.
    """
    for scheme, value in PURPOSE_BY_SCHEME.items():
        if value == purpose:
            return scheme
    raise UnknownPurpose(purpose)


def build_path(
    scheme: DerivationScheme, network: NetworkType, account_index: int = 0
) -> DerivationPath:
    """m/purpose'/coin_type'/account_index'"""
    return DerivationPath(
        (
            PathSegment(purpose_for_scheme(scheme), hardened=True),
            PathSegment(coin_type_for_network(network), hardened=True),
            PathSegment(account_index, hardened=True),
        )
    )


def address_path(
    account_path: DerivationPath, is_change: bool, address_index: int
) -> DerivationPath:
    """Append /{0|1}/{address_index} (both non-hardened)."""
    return account_path.child(1 if is_change else 0).child(address_index)


def default_derivation_path(network: NetworkType) -> DerivationPath:
    """First native segwit account, the wallet's default."""
    return build_path(DerivationScheme.NATIVE_SEGWIT, network, 0)


def scheme_from_path(path: DerivationPath | str) -> DerivationScheme:
    """
    Re-derive the scheme of a stored account or address path. The purpose
    and coin-type segments must be hardened.
    """
    if isinstance(path, str):
        path = DerivationPath.parse(path)
    if len(path.segments) < 3:
        raise InvalidDerivationPath(f"Path too short for a BIP44-style account: {path}")

    purpose, coin_type, account = path.segments[:3]
    if not (purpose.hardened and coin_type.hardened and account.hardened):
        raise InvalidDerivationPath(f"Purpose, coin type and account must be hardened: {path}")
    for segment in path.segments[3:]:
        if segment.hardened:
            raise InvalidDerivationPath(f"Change and address index must not be hardened: {path}")

    return scheme_from_purpose(purpose.index)
