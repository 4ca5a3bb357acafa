"""
Bitcoin transaction signing for P2PKH, P2SH-P2WPKH and P2WPKH inputs.

Signing moves a transaction through Unsigned -> PartiallySigned -> FullySigned.
Each step returns a new SignedTransaction value; only a fully signed
transaction can be serialized. Key and signature bytes are never logged.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum

from coincurve import PrivateKey, PublicKey
from loguru import logger

from walletcore.codec import (
    encode_varint,
    hash160,
    hash256,
    int32_le,
    push_data,
    uint32_le,
    uint64_le,
)
from walletcore.constants import SIGHASH_ALL
from walletcore.errors import MissingPrivateKey, TransactionBuildError, TransactionSigningError
from walletcore.models import UTXO, DerivationScheme
from walletcore.tx.builder import UnsignedTransaction
from walletcore.tx.coin_selection import utxo_scheme
from walletcore.wallet.address import p2pkh_script, p2wpkh_redeem_script, scriptpubkey_for_pubkey


class SigningState(str, Enum):
    UNSIGNED = "unsigned"
    PARTIALLY_SIGNED = "partially-signed"
    FULLY_SIGNED = "fully-signed"


@dataclass(frozen=True)
class SigningInput:
    """What the signer needs for one input: the UTXO it spends and its key."""

    utxo: UTXO
    private_key: PrivateKey | None
    scheme: DerivationScheme | None = None

    @property
    def resolved_scheme(self) -> DerivationScheme:
        return self.scheme if self.scheme is not None else utxo_scheme(self.utxo)

    def __repr__(self) -> str:
        return (
            f"SigningInput(utxo={self.utxo.outpoint}, value={self.utxo.value}, "
            f"has_key={self.private_key is not None})"
        )


@dataclass(frozen=True)
class InputSignature:
    """scriptSig and witness stack filling one input slot."""

    index: int
    script_sig: bytes = b""
    witness: tuple[bytes, ...] = ()

    def __repr__(self) -> str:
        return f"InputSignature(index={self.index}, witness_items={len(self.witness)})"


def legacy_sighash(
    tx: UnsignedTransaction,
    input_index: int,
    script_code: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Original signature hash: the transaction with every scriptSig emptied
    except the signed input's, which carries the previous output script,
    followed by the 4-byte sighash type.
    """
    if not 0 <= input_index < len(tx.inputs):
        raise TransactionSigningError("Input index out of range")
    if sighash_type != SIGHASH_ALL:
        raise TransactionSigningError(f"Unsupported sighash type: {sighash_type}")

    script_sigs = [b""] * len(tx.inputs)
    script_sigs[input_index] = script_code
    return hash256(tx.serialize(script_sigs) + uint32_le(sighash_type))


def bip143_sighash(
    tx: UnsignedTransaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    BIP143 witness v0 signature hash (SIGHASH_ALL).

    Preimage: version | hashPrevouts | hashSequence | outpoint |
    scriptCode | value | nSequence | hashOutputs | nLockTime | sighash type
    """
    if not 0 <= input_index < len(tx.inputs):
        raise TransactionSigningError("Input index out of range")
    if sighash_type != SIGHASH_ALL:
        raise TransactionSigningError(f"Unsupported sighash type: {sighash_type}")

    try:
        hash_prevouts = hash256(b"".join(inp.serialize_outpoint() for inp in tx.inputs))
        hash_sequence = hash256(b"".join(uint32_le(inp.sequence) for inp in tx.inputs))
        hash_outputs = hash256(b"".join(out.serialize() for out in tx.outputs))

        target_input = tx.inputs[input_index]

        preimage = (
            int32_le(tx.version)
            + hash_prevouts
            + hash_sequence
            + target_input.serialize_outpoint()
            + encode_varint(len(script_code))
            + script_code
            + uint64_le(value)
            + uint32_le(target_input.sequence)
            + hash_outputs
            + uint32_le(tx.locktime)
            + uint32_le(sighash_type)
        )
    except TransactionBuildError as e:
        raise TransactionSigningError(f"Failed to compute sighash: {e}") from e

    return hash256(preimage)


def create_p2wpkh_script_code(pubkey_bytes: bytes) -> bytes:
    """Create the scriptCode for P2WPKH signing (BIP 143).

    For P2WPKH, the scriptCode is the P2PKH script:
    OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG

    Returns 25 bytes (without length prefix - the preimage serialization adds that).
    """
    return p2pkh_script(hash160(pubkey_bytes))


def signature_hash(
    tx: UnsignedTransaction,
    input_index: int,
    utxo: UTXO,
    scheme: DerivationScheme,
    pubkey: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """Sighash for the input, picking legacy or BIP143 by scheme."""
    if scheme is DerivationScheme.LEGACY:
        script_code = utxo.scriptpubkey_bytes or p2pkh_script(hash160(pubkey))
        return legacy_sighash(tx, input_index, script_code, sighash_type)
    return bip143_sighash(
        tx, input_index, create_p2wpkh_script_code(pubkey), utxo.value, sighash_type
    )


def sign_input(
    tx: UnsignedTransaction,
    input_index: int,
    signing_input: SigningInput,
    sighash_type: int = SIGHASH_ALL,
) -> InputSignature:
    """
    Sign one input with ECDSA over secp256k1.

    coincurve signs with RFC6979 deterministic nonces and returns a low-S
    DER signature; the sighash type byte is appended.

    Raises:
        MissingPrivateKey: the input has no key
        TransactionSigningError: the key does not own the UTXO, or the UTXO
            is not the outpoint at input_index
    """
    private_key = signing_input.private_key
    if private_key is None:
        raise MissingPrivateKey(input_index)
    if not 0 <= input_index < len(tx.inputs):
        raise TransactionSigningError("Input index out of range")

    utxo = signing_input.utxo
    tx_input = tx.inputs[input_index]
    if (tx_input.txid, tx_input.vout) != (utxo.txid, utxo.vout):
        raise TransactionSigningError(
            f"Input {input_index} spends {tx_input.txid}:{tx_input.vout}, not {utxo.outpoint}"
        )

    scheme = signing_input.resolved_scheme
    pubkey = private_key.public_key.format(compressed=True)
    if utxo.scriptpubkey and scriptpubkey_for_pubkey(pubkey, scheme) != utxo.scriptpubkey_bytes:
        raise TransactionSigningError(f"Key for input {input_index} does not match its UTXO script")

    sighash = signature_hash(tx, input_index, utxo, scheme, pubkey, sighash_type)

    # Sign the pre-hashed sighash (it's already SHA256d)
    # coincurve's sign() with hasher=None skips hashing
    signature = private_key.sign(sighash, hasher=None) + bytes([sighash_type])

    if scheme is DerivationScheme.LEGACY:
        result = InputSignature(input_index, script_sig=push_data(signature) + push_data(pubkey))
    elif scheme is DerivationScheme.P2SH_SEGWIT:
        result = InputSignature(
            input_index,
            script_sig=push_data(p2wpkh_redeem_script(pubkey)),
            witness=create_witness_stack(signature, pubkey),
        )
    else:
        result = InputSignature(input_index, witness=create_witness_stack(signature, pubkey))

    logger.debug(f"Signed input {input_index} ({scheme.value})")
    return result


def create_witness_stack(signature: bytes, pubkey_bytes: bytes) -> tuple[bytes, ...]:
    return (signature, pubkey_bytes)


def verify_input_signature(
    tx: UnsignedTransaction,
    input_index: int,
    utxo: UTXO,
    scheme: DerivationScheme,
    signature: bytes,
    pubkey: bytes,
) -> bool:
    """Check a DER signature (with sighash byte) against the input's sighash."""
    if not signature:
        return False
    sighash_type = signature[-1]
    try:
        sighash = signature_hash(tx, input_index, utxo, scheme, pubkey, sighash_type)
        return PublicKey(pubkey).verify(signature[:-1], sighash, hasher=None)
    except (ValueError, TransactionSigningError):
        return False


@dataclass(frozen=True)
class SignedTransaction:
    """Unsigned transaction plus the per-input signature slots filled so far."""

    tx: UnsignedTransaction
    signatures: tuple[InputSignature | None, ...]

    @classmethod
    def empty(cls, tx: UnsignedTransaction) -> SignedTransaction:
        return cls(tx, (None,) * len(tx.inputs))

    @property
    def signed_count(self) -> int:
        return sum(1 for s in self.signatures if s is not None)

    @property
    def state(self) -> SigningState:
        signed = self.signed_count
        if signed == 0:
            return SigningState.UNSIGNED
        if signed < len(self.signatures):
            return SigningState.PARTIALLY_SIGNED
        return SigningState.FULLY_SIGNED

    @property
    def is_complete(self) -> bool:
        return self.state is SigningState.FULLY_SIGNED

    @property
    def has_witness(self) -> bool:
        return any(s is not None and s.witness for s in self.signatures)

    def with_signature(self, signature: InputSignature) -> SignedTransaction:
        if not 0 <= signature.index < len(self.signatures):
            raise TransactionSigningError(f"Signature index out of range: {signature.index}")
        slots = list(self.signatures)
        slots[signature.index] = signature
        return replace(self, signatures=tuple(slots))

    def _require_complete(self) -> tuple[InputSignature, ...]:
        if not self.is_complete:
            raise TransactionSigningError(
                f"Transaction is {self.state.value}: "
                f"{self.signed_count}/{len(self.signatures)} inputs signed"
            )
        return tuple(s for s in self.signatures if s is not None)

    def serialize(self) -> bytes:
        """Final wire format, BIP144 marker/flag and witnesses when any input is segwit."""
        signatures = self._require_complete()
        tx = self.tx
        script_sigs = [s.script_sig for s in signatures]

        if not self.has_witness:
            return tx.serialize(script_sigs)

        parts = [int32_le(tx.version), b"\x00\x01", encode_varint(len(tx.inputs))]
        for inp, script_sig in zip(tx.inputs, script_sigs, strict=True):
            parts.append(inp.serialize_outpoint())
            parts.append(encode_varint(len(script_sig)) + script_sig)
            parts.append(uint32_le(inp.sequence))

        parts.append(encode_varint(len(tx.outputs)))
        parts.extend(out.serialize() for out in tx.outputs)

        for sig in signatures:
            parts.append(encode_varint(len(sig.witness)))
            for item in sig.witness:
                parts.append(encode_varint(len(item)) + item)

        parts.append(uint32_le(tx.locktime))
        return b"".join(parts)

    def hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        """Calculate txid (double SHA256 of non-witness data)."""
        signatures = self._require_complete()
        return hash256(self.tx.serialize([s.script_sig for s in signatures]))[::-1].hex()

    @property
    def wtxid(self) -> str:
        return hash256(self.serialize())[::-1].hex()


class TransactionSigner:
    """
    Signs an unsigned transaction input by input.

    The value invariant (inputs cover outputs plus fee) is checked on
    construction, before any signature is produced.
    """

    def __init__(
        self,
        tx: UnsignedTransaction,
        signing_inputs: Sequence[SigningInput],
        expected_fee: int | None = None,
    ):
        if len(signing_inputs) != len(tx.inputs):
            raise TransactionSigningError(
                f"Got {len(signing_inputs)} signing inputs for {len(tx.inputs)} tx inputs"
            )

        for i, (tx_input, signing_input) in enumerate(zip(tx.inputs, signing_inputs, strict=True)):
            utxo = signing_input.utxo
            if (tx_input.txid, tx_input.vout) != (utxo.txid, utxo.vout):
                raise TransactionSigningError(f"Signing input {i} does not match tx input {i}")

        total_in = sum(s.utxo.value for s in signing_inputs)
        total_out = tx.total_output_value
        fee = total_in - total_out
        if fee < 0:
            raise TransactionSigningError(
                f"Outputs ({total_out}) exceed inputs ({total_in})"
            )
        if expected_fee is not None and fee != expected_fee:
            raise TransactionSigningError(
                f"Inputs minus outputs is {fee} sats, expected fee {expected_fee}"
            )

        self.tx = tx
        self.fee = fee
        self._signing_inputs = tuple(signing_inputs)
        self._signed = SignedTransaction.empty(tx)

    @property
    def state(self) -> SigningState:
        return self._signed.state

    @property
    def signed(self) -> SignedTransaction:
        return self._signed

    def sign_input(self, index: int) -> SignedTransaction:
        if not 0 <= index < len(self._signing_inputs):
            raise TransactionSigningError(
                f"Input index {index} out of range for {len(self._signing_inputs)} inputs"
            )
        signature = sign_input(self.tx, index, self._signing_inputs[index])
        self._signed = self._signed.with_signature(signature)
        return self._signed

    def sign_all(self, parallel: bool = False, max_workers: int | None = None) -> SignedTransaction:
        """
        Sign every unsigned input. With parallel=True inputs are signed on a
        thread pool; results are merged back in input order.
        """
        pending = [i for i, s in enumerate(self._signed.signatures) if s is None]

        for i in pending:
            if self._signing_inputs[i].private_key is None:
                raise MissingPrivateKey(i)

        if parallel and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                results = list(
                    pool.map(lambda i: sign_input(self.tx, i, self._signing_inputs[i]), pending)
                )
        else:
            results = [sign_input(self.tx, i, self._signing_inputs[i]) for i in pending]

        signed = self._signed
        for signature in sorted(results, key=lambda s: s.index):
            signed = signed.with_signature(signature)
        self._signed = signed

        logger.info(
            f"Signed {len(pending)} inputs, tx {signed.txid} ({len(signed.serialize())} bytes)"
        )
        return signed


def sign_transaction(
    tx: UnsignedTransaction,
    signing_inputs: Sequence[SigningInput],
    expected_fee: int | None = None,
    parallel: bool = False,
) -> SignedTransaction:
    return TransactionSigner(tx, signing_inputs, expected_fee).sign_all(parallel=parallel)
