"""
BIP32 HD key derivation.
Implements private and public (watch-only) child derivation and the
extended key (xprv/xpub/tprv/tpub) serialization.
"""

from __future__ import annotations

import hashlib
import hmac

from coincurve import PrivateKey, PublicKey

from walletcore.codec import base58check_decode, base58check_encode, hash160
from walletcore.constants import HARDENED_OFFSET, MAX_INDEX, SECP256K1_N
from walletcore.errors import (
    HardenedDerivationRequiresPrivateKey,
    InvalidDerivationPath,
    MalformedSerialization,
)
from walletcore.models import DerivationScheme, NetworkType
from walletcore.wallet.derivation import DerivationPath

# (private, public) version bytes
EXTENDED_KEY_VERSIONS: dict[NetworkType, tuple[bytes, bytes]] = {
    NetworkType.MAINNET: (bytes.fromhex("0488ade4"), bytes.fromhex("0488b21e")),
    NetworkType.TESTNET: (bytes.fromhex("04358394"), bytes.fromhex("043587cf")),
    NetworkType.SIGNET: (bytes.fromhex("04358394"), bytes.fromhex("043587cf")),
    NetworkType.REGTEST: (bytes.fromhex("04358394"), bytes.fromhex("043587cf")),
}

# version -> (network, is_private); signet/regtest share testnet versions
_VERSION_LOOKUP: dict[bytes, tuple[NetworkType, bool]] = {
    bytes.fromhex("0488ade4"): (NetworkType.MAINNET, True),
    bytes.fromhex("0488b21e"): (NetworkType.MAINNET, False),
    bytes.fromhex("04358394"): (NetworkType.TESTNET, True),
    bytes.fromhex("043587cf"): (NetworkType.TESTNET, False),
}

WIF_PREFIX: dict[NetworkType, int] = {
    NetworkType.MAINNET: 0x80,
    NetworkType.TESTNET: 0xEF,
    NetworkType.SIGNET: 0xEF,
    NetworkType.REGTEST: 0xEF,
}

EXTENDED_KEY_LENGTH = 78


class HDKey:
    """
    Hierarchical Deterministic Key for Bitcoin.
    Implements BIP32 derivation.

    A key without a private part ("neutered") can only derive
    non-hardened children.
    """

    def __init__(
        self,
        private_key: PrivateKey | None,
        chain_code: bytes,
        depth: int = 0,
        child_index: int = 0,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        network: NetworkType = NetworkType.MAINNET,
        public_key: PublicKey | None = None,
    ):
        if private_key is None and public_key is None:
            raise ValueError("HDKey needs a private or a public key")
        if len(chain_code) != 32:
            raise ValueError(f"Chain code must be 32 bytes, got {len(chain_code)}")

        self._private_key = private_key
        self._public_key = public_key if public_key is not None else private_key.public_key
        self.chain_code = chain_code
        self.depth = depth
        self.child_index = child_index
        self.parent_fingerprint = parent_fingerprint
        self.network = NetworkType(network)

    @property
    def private_key(self) -> PrivateKey | None:
        """Return the coincurve PrivateKey instance (None when neutered)."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @property
    def is_private(self) -> bool:
        return self._private_key is not None

    @property
    def identifier(self) -> bytes:
        return hash160(self.get_public_key_bytes())

    @property
    def fingerprint(self) -> bytes:
        return self.identifier[:4]

    @property
    def is_hardened(self) -> bool:
        return self.child_index >= HARDENED_OFFSET

    @classmethod
    def from_seed(cls, seed: bytes, network: NetworkType = NetworkType.MAINNET) -> HDKey:
        """Create master HD key from seed"""
        if not 16 <= len(seed) <= 64:
            raise ValueError(f"Seed must be 16-64 bytes, got {len(seed)}")

        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        private_key = PrivateKey(key_bytes)

        return cls(private_key, chain_code, depth=0, network=network)

    def derive(self, path: DerivationPath | str) -> HDKey:
        """
        Derive descendant key from a path (e.g., "m/84'/0'/0'/0/0").
        ' or h indicates hardened derivation. "m" returns this key.
        """
        if isinstance(path, str):
            path = DerivationPath.parse(path)

        key = self
        for segment in path.segments:
            key = key.derive_child(segment.index, hardened=segment.hardened)
        return key

    def derive_child(self, index: int, hardened: bool = False) -> HDKey:
        """Derive a child key at the given index"""
        if hardened:
            if not 0 <= index < HARDENED_OFFSET:
                raise InvalidDerivationPath(f"Hardened index out of range: {index}")
            index += HARDENED_OFFSET
        elif not 0 <= index <= MAX_INDEX:
            raise InvalidDerivationPath(f"Child index out of range: {index}")

        if index >= HARDENED_OFFSET:
            if self._private_key is None:
                raise HardenedDerivationRequiresPrivateKey(
                    f"Cannot derive hardened child {index - HARDENED_OFFSET}' from a public key"
                )
            data = b"\x00" + self._private_key.secret + index.to_bytes(4, "big")
        else:
            data = self.get_public_key_bytes() + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        offset_int = int.from_bytes(key_offset, "big")
        if offset_int >= SECP256K1_N:
            raise ValueError(f"Invalid child key at index {index}")

        child_kwargs = {
            "depth": self.depth + 1,
            "child_index": index,
            "parent_fingerprint": self.fingerprint,
            "network": self.network,
        }

        if self._private_key is not None:
            parent_key_int = int.from_bytes(self._private_key.secret, "big")
            child_key_int = (parent_key_int + offset_int) % SECP256K1_N

            if child_key_int == 0:
                raise ValueError(f"Invalid child key at index {index}")

            child_private_key = PrivateKey(child_key_int.to_bytes(32, "big"))
            return HDKey(child_private_key, child_chain, **child_kwargs)

        try:
            child_public_key = self._public_key.add(key_offset)
        except ValueError as e:
            raise ValueError(f"Invalid child key at index {index}") from e
        return HDKey(None, child_chain, public_key=child_public_key, **child_kwargs)

    def neuter(self) -> HDKey:
        """Public-only copy of this key."""
        return HDKey(
            None,
            self.chain_code,
            depth=self.depth,
            child_index=self.child_index,
            parent_fingerprint=self.parent_fingerprint,
            network=self.network,
            public_key=self._public_key,
        )

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        if self._private_key is None:
            raise ValueError("Key is neutered; no private key")
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)

    def get_address(self, scheme: DerivationScheme = DerivationScheme.NATIVE_SEGWIT) -> str:
        """Get the address of this key for the given script scheme"""
        from walletcore.wallet.address import encode_address

        return encode_address(self.get_public_key_bytes(), scheme, self.network)

    def to_wif(self, compressed: bool = True) -> str:
        """Export the private key in Wallet Import Format."""
        payload = bytes([WIF_PREFIX[self.network]]) + self.get_private_key_bytes()
        if compressed:
            payload += b"\x01"
        return base58check_encode(payload)

    def serialize(self, private: bool | None = None) -> bytes:
        """
        78-byte BIP32 serialization:
        version(4) | depth(1) | parent fingerprint(4) | child index(4) |
        chain code(32) | key(33)
        """
        if private is None:
            private = self.is_private
        if private and self._private_key is None:
            raise ValueError("Cannot serialize xprv of a public key")

        priv_version, pub_version = EXTENDED_KEY_VERSIONS[self.network]
        if private:
            version = priv_version
            key_data = b"\x00" + self._private_key.secret
        else:
            version = pub_version
            key_data = self.get_public_key_bytes()

        return (
            version
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_index.to_bytes(4, "big")
            + self.chain_code
            + key_data
        )

    def to_base58(self, private: bool | None = None) -> str:
        return base58check_encode(self.serialize(private))

    @classmethod
    def from_base58(cls, text: str, network: NetworkType | None = None) -> HDKey:
        """
        Parse an xprv/xpub/tprv/tpub string.

        Signet and regtest share the testnet version bytes, so a tprv/tpub
        parses as TESTNET unless network says otherwise. A network whose
        version bytes differ from the string's raises MalformedSerialization.
        """
        data = base58check_decode(text)
        if len(data) != EXTENDED_KEY_LENGTH:
            raise MalformedSerialization(
                f"Extended key must be {EXTENDED_KEY_LENGTH} bytes, got {len(data)}"
            )

        version = data[0:4]
        if version not in _VERSION_LOOKUP:
            raise MalformedSerialization(f"Unknown extended key version: {version.hex()}")
        family, is_private = _VERSION_LOOKUP[version]
        if network is not None:
            network = NetworkType(network)
            if version not in EXTENDED_KEY_VERSIONS[network]:
                raise MalformedSerialization(
                    f"Extended key version {version.hex()} is not valid for {network.value}"
                )
        else:
            network = family

        depth = data[4]
        parent_fingerprint = data[5:9]
        child_index = int.from_bytes(data[9:13], "big")
        chain_code = data[13:45]
        key_data = data[45:78]

        if depth == 0 and (parent_fingerprint != b"\x00\x00\x00\x00" or child_index != 0):
            raise MalformedSerialization("Master key with non-zero parent fingerprint or index")

        try:
            if is_private:
                if key_data[0] != 0x00:
                    raise MalformedSerialization("Private key data must start with 0x00")
                secret_int = int.from_bytes(key_data[1:], "big")
                if not 0 < secret_int < SECP256K1_N:
                    raise MalformedSerialization("Private key out of range")
                return cls(
                    PrivateKey(key_data[1:]),
                    chain_code,
                    depth=depth,
                    child_index=child_index,
                    parent_fingerprint=parent_fingerprint,
                    network=network,
                )

            if key_data[0] not in (0x02, 0x03):
                raise MalformedSerialization("Public key data must be compressed")
            return cls(
                None,
                chain_code,
                depth=depth,
                child_index=child_index,
                parent_fingerprint=parent_fingerprint,
                network=network,
                public_key=PublicKey(key_data),
            )
        except ValueError as e:
            if isinstance(e, MalformedSerialization):
                raise
            raise MalformedSerialization(f"Invalid key in extended key: {e}") from e

    def wipe(self) -> None:
        """Drop the private key reference; the key behaves as neutered afterwards."""
        self._private_key = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HDKey):
            return NotImplemented
        # version bytes carry the network family; signet/regtest keys equal testnet ones
        return self.is_private == other.is_private and self.serialize() == other.serialize()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"HDKey(depth={self.depth}, child_index={self.child_index}, "
            f"fingerprint={self.fingerprint.hex()}, network={self.network.value}, "
            f"private={self.is_private})"
        )
