"""
Unsigned transaction construction and raw (de)serialization.

Wire format (BIP144 when any witness is present):
  version(4 LE) [marker 0x00 flag 0x01]
  varint(n_in)  { txid reversed(32) | vout(4 LE) | varint(len) scriptSig | sequence(4 LE) }
  varint(n_out) { value(8 LE) | varint(len) scriptPubKey }
  [witness stacks, one per input]
  locktime(4 LE)

Inputs and outputs keep the order they are supplied in. BIP69 sorting is
only applied when explicitly requested.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from walletcore.codec import (
    encode_varint,
    hash256,
    int32_le,
    read_varint,
    uint32_le,
    uint64_le,
)
from walletcore.constants import DEFAULT_LOCKTIME, DEFAULT_SEQUENCE, DEFAULT_TX_VERSION
from walletcore.errors import MalformedSerialization, TransactionBuildError
from walletcore.models import UTXO, NetworkType
from walletcore.wallet.address import address_to_scriptpubkey

MAX_MONEY = 21_000_000 * 100_000_000


@dataclass(frozen=True)
class TxInput:
    """Outpoint being spent. txid is in RPC (big-endian display) order."""

    txid: str
    vout: int
    sequence: int = DEFAULT_SEQUENCE

    def __post_init__(self) -> None:
        try:
            txid_bytes = bytes.fromhex(self.txid)
        except ValueError as e:
            raise TransactionBuildError(f"Invalid txid: {self.txid!r}") from e
        if len(txid_bytes) != 32:
            raise TransactionBuildError(f"txid must be 32 bytes, got {len(txid_bytes)}")
        if not 0 <= self.vout <= 0xFFFFFFFF:
            raise TransactionBuildError(f"vout out of range: {self.vout}")
        if not 0 <= self.sequence <= 0xFFFFFFFF:
            raise TransactionBuildError(f"sequence out of range: {self.sequence}")

    @classmethod
    def from_utxo(cls, utxo: UTXO, sequence: int = DEFAULT_SEQUENCE) -> TxInput:
        return cls(txid=utxo.txid, vout=utxo.vout, sequence=sequence)

    @property
    def txid_le(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1]

    def serialize_outpoint(self) -> bytes:
        """Serialize outpoint (txid:vout)."""
        return self.txid_le + uint32_le(self.vout)


@dataclass(frozen=True)
class TxOutput:
    """
    Output paying value sats. Either script_pubkey or address must be set;
    build_transaction resolves the address to a script.
    """

    value: int
    script_pubkey: bytes = b""
    address: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.value <= MAX_MONEY:
            raise TransactionBuildError(f"Output value out of range: {self.value}")

    def serialize(self) -> bytes:
        """Serialize a transaction output."""
        if not self.script_pubkey:
            raise TransactionBuildError(f"Output to {self.address!r} has no scriptPubKey")
        return uint64_le(self.value) + encode_varint(len(self.script_pubkey)) + self.script_pubkey


@dataclass(frozen=True)
class UnsignedTransaction:
    version: int
    inputs: tuple[TxInput, ...]
    outputs: tuple[TxOutput, ...]
    locktime: int = DEFAULT_LOCKTIME

    @property
    def total_output_value(self) -> int:
        return sum(out.value for out in self.outputs)

    def serialize(self, script_sigs: Sequence[bytes] | None = None) -> bytes:
        """
        Legacy (non-witness) serialization. script_sigs, when given, supplies
        one scriptSig per input; unsigned inputs carry an empty script.
        """
        if script_sigs is None:
            script_sigs = [b""] * len(self.inputs)
        if len(script_sigs) != len(self.inputs):
            raise TransactionBuildError("One scriptSig per input is required")

        parts = [int32_le(self.version), encode_varint(len(self.inputs))]
        for inp, script_sig in zip(self.inputs, script_sigs, strict=True):
            parts.append(inp.serialize_outpoint())
            parts.append(encode_varint(len(script_sig)) + script_sig)
            parts.append(uint32_le(inp.sequence))

        parts.append(encode_varint(len(self.outputs)))
        parts.extend(out.serialize() for out in self.outputs)
        parts.append(uint32_le(self.locktime))
        return b"".join(parts)

    @property
    def txid(self) -> str:
        """Double SHA256 of the non-witness serialization, display order."""
        return hash256(self.serialize())[::-1].hex()

    def hex(self) -> str:
        return self.serialize().hex()


def _bip69_input_key(inp: TxInput) -> tuple[bytes, int]:
    return bytes.fromhex(inp.txid), inp.vout


def _bip69_output_key(out: TxOutput) -> tuple[int, bytes]:
    return out.value, out.script_pubkey


def build_transaction(
    inputs: Sequence[TxInput | UTXO],
    outputs: Sequence[TxOutput],
    locktime: int = DEFAULT_LOCKTIME,
    version: int = DEFAULT_TX_VERSION,
    network: NetworkType | None = None,
    bip69: bool = False,
) -> UnsignedTransaction:
    """
    Assemble an unsigned transaction skeleton.

    Args:
        inputs: Outpoints to spend (UTXOs are converted with the default sequence)
        outputs: Outputs with a scriptPubKey or an address to resolve
        locktime: nLockTime
        version: nVersion
        network: When set, output addresses must belong to this network
        bip69: Sort inputs and outputs lexicographically (BIP69)

    Raises:
        TransactionBuildError: no inputs, no outputs, bad field values
        UnsupportedAddressFormat: an output address cannot be resolved
    """
    if not inputs:
        raise TransactionBuildError("Transaction needs at least one input")
    if not outputs:
        raise TransactionBuildError("Transaction needs at least one output")
    if not 0 <= locktime <= 0xFFFFFFFF:
        raise TransactionBuildError(f"locktime out of range: {locktime}")

    tx_inputs = [TxInput.from_utxo(i) if isinstance(i, UTXO) else i for i in inputs]

    outpoints = [(i.txid, i.vout) for i in tx_inputs]
    if len(set(outpoints)) != len(outpoints):
        raise TransactionBuildError("Duplicate input outpoint")

    tx_outputs = []
    for out in outputs:
        if out.address:
            script = address_to_scriptpubkey(out.address, network)
            if out.script_pubkey and out.script_pubkey != script:
                raise TransactionBuildError(
                    f"scriptPubKey does not match address {out.address}"
                )
            tx_outputs.append(TxOutput(out.value, script, out.address))
        elif out.script_pubkey:
            tx_outputs.append(out)
        else:
            raise TransactionBuildError("Output has neither address nor scriptPubKey")

    if bip69:
        tx_inputs.sort(key=_bip69_input_key)
        tx_outputs.sort(key=_bip69_output_key)

    tx = UnsignedTransaction(
        version=version,
        inputs=tuple(tx_inputs),
        outputs=tuple(tx_outputs),
        locktime=locktime,
    )
    logger.debug(
        f"Built unsigned tx: {len(tx.inputs)} inputs, {len(tx.outputs)} outputs, "
        f"{tx.total_output_value} sats out"
    )
    return tx


@dataclass
class ParsedTransaction:
    """Raw transaction split into its fields."""

    tx: UnsignedTransaction
    script_sigs: list[bytes]
    witnesses: list[list[bytes]] = field(default_factory=list)

    @property
    def has_witness(self) -> bool:
        return any(self.witnesses)


def deserialize_transaction(raw: bytes) -> ParsedTransaction:
    """Parse legacy or BIP144 serialized transactions."""
    try:
        offset = 0
        version = int.from_bytes(raw[0:4], "little", signed=True)
        offset += 4

        has_witness = False
        if raw[offset] == 0x00 and raw[offset + 1] == 0x01:
            has_witness = True
            offset += 2

        input_count, offset = read_varint(raw, offset)
        inputs: list[TxInput] = []
        script_sigs: list[bytes] = []

        for _ in range(input_count):
            txid = raw[offset : offset + 32][::-1].hex()
            offset += 32
            vout = int.from_bytes(raw[offset : offset + 4], "little")
            offset += 4
            script_len, offset = read_varint(raw, offset)
            script_sigs.append(raw[offset : offset + script_len])
            offset += script_len
            sequence = int.from_bytes(raw[offset : offset + 4], "little")
            offset += 4
            inputs.append(TxInput(txid, vout, sequence))

        output_count, offset = read_varint(raw, offset)
        outputs: list[TxOutput] = []

        for _ in range(output_count):
            value = int.from_bytes(raw[offset : offset + 8], "little")
            offset += 8
            script_len, offset = read_varint(raw, offset)
            outputs.append(TxOutput(value, raw[offset : offset + script_len]))
            offset += script_len

        witnesses: list[list[bytes]] = []
        if has_witness:
            for _ in range(input_count):
                stack_count, offset = read_varint(raw, offset)
                stack = []
                for _ in range(stack_count):
                    item_len, offset = read_varint(raw, offset)
                    stack.append(raw[offset : offset + item_len])
                    offset += item_len
                witnesses.append(stack)

        if offset + 4 != len(raw):
            raise ValueError(f"Unexpected length: parsed {offset + 4} of {len(raw)} bytes")
        locktime = int.from_bytes(raw[offset : offset + 4], "little")

    except (IndexError, ValueError, TransactionBuildError) as e:
        if isinstance(e, MalformedSerialization):
            raise
        raise MalformedSerialization(f"Failed to parse transaction: {e}") from e

    tx = UnsignedTransaction(version, tuple(inputs), tuple(outputs), locktime)
    return ParsedTransaction(tx=tx, script_sigs=script_sigs, witnesses=witnesses)
