"""
Bitcoin address generation and scriptPubKey utilities.

Supported script types:
- P2PKH (legacy, BIP44):          1... / m... / n...
- P2SH-P2WPKH (nested, BIP49):    3... / 2...
- P2WPKH (native segwit, BIP84):  bc1q... / tb1q... / bcrt1q...
- P2WSH (decode only):            bc1q... (62 chars)
"""

from __future__ import annotations

from walletcore.codec import (
    base58check_decode,
    base58check_encode,
    bech32_decode_segwit,
    bech32_encode_segwit,
    bech32_hrp,
    hash160,
)
from walletcore.errors import MalformedSerialization, UnsupportedAddressFormat
from walletcore.models import DerivationScheme, NetworkType

# OP codes used in standard output scripts
OP_0 = 0x00
OP_DUP = 0x76
OP_HASH160 = 0xA9
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_CHECKSIG = 0xAC

P2PKH_VERSION: dict[NetworkType, int] = {
    NetworkType.MAINNET: 0x00,
    NetworkType.TESTNET: 0x6F,
    NetworkType.SIGNET: 0x6F,
    NetworkType.REGTEST: 0x6F,
}

P2SH_VERSION: dict[NetworkType, int] = {
    NetworkType.MAINNET: 0x05,
    NetworkType.TESTNET: 0xC4,
    NetworkType.SIGNET: 0xC4,
    NetworkType.REGTEST: 0xC4,
}

BECH32_HRP: dict[NetworkType, str] = {
    NetworkType.MAINNET: "bc",
    NetworkType.TESTNET: "tb",
    NetworkType.SIGNET: "tb",
    NetworkType.REGTEST: "bcrt",
}

__all__ = [
    "address_to_scriptpubkey",
    "encode_address",
    "encode_legacy",
    "encode_native_segwit",
    "encode_p2sh_segwit",
    "hash160",
    "is_valid_address",
    "p2pkh_script",
    "p2sh_script",
    "p2wpkh_redeem_script",
    "p2wpkh_script",
    "scheme_for_scriptpubkey",
    "scriptpubkey_for_pubkey",
]


def _check_pubkey(pubkey: bytes) -> None:
    if len(pubkey) != 33 or pubkey[0] not in (0x02, 0x03):
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-hash> OP_EQUALVERIFY OP_CHECKSIG"""
    return bytes([OP_DUP, OP_HASH160, 0x14]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def p2sh_script(script_hash: bytes) -> bytes:
    """OP_HASH160 <20-byte-hash> OP_EQUAL"""
    return bytes([OP_HASH160, 0x14]) + script_hash + bytes([OP_EQUAL])


def p2wpkh_script(pubkey_hash: bytes) -> bytes:
    """OP_0 <20-byte-hash>"""
    return bytes([OP_0, 0x14]) + pubkey_hash


def p2wpkh_redeem_script(pubkey: bytes) -> bytes:
    """Witness program wrapped by a P2SH-P2WPKH output: 0x00 0x14 <hash160(pubkey)>."""
    _check_pubkey(pubkey)
    return p2wpkh_script(hash160(pubkey))


def encode_legacy(pubkey: bytes, network: NetworkType = NetworkType.MAINNET) -> str:
    """P2PKH: Base58Check(version | hash160(pubkey))"""
    _check_pubkey(pubkey)
    return base58check_encode(bytes([P2PKH_VERSION[NetworkType(network)]]) + hash160(pubkey))


def encode_p2sh_segwit(pubkey: bytes, network: NetworkType = NetworkType.MAINNET) -> str:
    """P2SH-P2WPKH: Base58Check(version | hash160(0x00 0x14 | hash160(pubkey)))"""
    script_hash = hash160(p2wpkh_redeem_script(pubkey))
    return base58check_encode(bytes([P2SH_VERSION[NetworkType(network)]]) + script_hash)


def encode_native_segwit(pubkey: bytes, network: NetworkType = NetworkType.MAINNET) -> str:
    """
    Convert compressed public key to P2WPKH (native segwit) address.
    BIP173 bech32 encoding, witness version 0.
    """
    _check_pubkey(pubkey)
    return bech32_encode_segwit(BECH32_HRP[NetworkType(network)], 0, hash160(pubkey))


_ENCODERS = {
    DerivationScheme.LEGACY: encode_legacy,
    DerivationScheme.P2SH_SEGWIT: encode_p2sh_segwit,
    DerivationScheme.NATIVE_SEGWIT: encode_native_segwit,
}


def encode_address(
    pubkey: bytes, scheme: DerivationScheme, network: NetworkType = NetworkType.MAINNET
) -> str:
    return _ENCODERS[DerivationScheme(scheme)](pubkey, network)


def scriptpubkey_for_pubkey(pubkey: bytes, scheme: DerivationScheme) -> bytes:
    """Output script paying to pubkey under the given scheme."""
    _check_pubkey(pubkey)
    scheme = DerivationScheme(scheme)
    if scheme is DerivationScheme.LEGACY:
        return p2pkh_script(hash160(pubkey))
    if scheme is DerivationScheme.P2SH_SEGWIT:
        return p2sh_script(hash160(p2wpkh_redeem_script(pubkey)))
    return p2wpkh_script(hash160(pubkey))


def _bech32_network(hrp: str) -> list[NetworkType]:
    return [net for net, value in BECH32_HRP.items() if value == hrp]


def address_to_scriptpubkey(address: str, network: NetworkType | None = None) -> bytes:
    """
    Convert a Bitcoin address to scriptPubKey.

    When network is given, addresses of another network are rejected.

    Raises:
        UnsupportedAddressFormat: unknown version, witness version, network
            mismatch, or a string that is not a valid address at all
    """
    if not isinstance(address, str) or not address:
        raise UnsupportedAddressFormat(f"Not an address: {address!r}")

    if network is not None:
        network = NetworkType(network)

    # Bech32 (SegWit) addresses
    lowered = address.lower()
    if lowered.startswith(("bc1", "tb1", "bcrt1")):
        try:
            hrp = bech32_hrp(address)
            witver, witprog = bech32_decode_segwit(hrp, address)
        except MalformedSerialization as e:
            raise UnsupportedAddressFormat(f"Invalid bech32 address: {address}") from e

        if network is not None and network not in _bech32_network(hrp):
            raise UnsupportedAddressFormat(f"Address {address} is not a {network.value} address")

        if witver == 0:
            if len(witprog) == 20:
                return p2wpkh_script(witprog)
            if len(witprog) == 32:
                # P2WSH: OP_0 <32-byte-scripthash>
                return bytes([OP_0, 0x20]) + witprog

        raise UnsupportedAddressFormat(f"Unsupported witness version: {witver}")

    # Base58 addresses (legacy)
    try:
        decoded = base58check_decode(address)
    except MalformedSerialization as e:
        raise UnsupportedAddressFormat(f"Invalid base58 address: {address}") from e

    if len(decoded) != 21:
        raise UnsupportedAddressFormat(f"Invalid address payload length: {len(decoded)}")

    version = decoded[0]
    payload = decoded[1:]

    p2pkh_nets = [net for net, v in P2PKH_VERSION.items() if v == version]
    p2sh_nets = [net for net, v in P2SH_VERSION.items() if v == version]

    if network is not None and network not in p2pkh_nets + p2sh_nets:
        raise UnsupportedAddressFormat(f"Address {address} is not a {network.value} address")
    if p2pkh_nets:
        return p2pkh_script(payload)
    if p2sh_nets:
        return p2sh_script(payload)

    raise UnsupportedAddressFormat(f"Unknown address version: {version}")


def scheme_for_scriptpubkey(script: bytes) -> DerivationScheme:
    """
    Classify a single-key output script. P2SH outputs are assumed to wrap
    P2WPKH, the only P2SH form this wallet creates.
    """
    if len(script) == 25 and script[:3] == bytes([OP_DUP, OP_HASH160, 0x14]) and script[
        23:
    ] == bytes([OP_EQUALVERIFY, OP_CHECKSIG]):
        return DerivationScheme.LEGACY
    if len(script) == 23 and script[:2] == bytes([OP_HASH160, 0x14]) and script[22] == OP_EQUAL:
        return DerivationScheme.P2SH_SEGWIT
    if len(script) == 22 and script[:2] == bytes([OP_0, 0x14]):
        return DerivationScheme.NATIVE_SEGWIT
    raise UnsupportedAddressFormat(f"Unsupported scriptPubKey: {script.hex()}")


def is_valid_address(address: str, network: NetworkType | None = None) -> bool:
    try:
        address_to_scriptpubkey(address, network)
    except UnsupportedAddressFormat:
        return False
    return True
