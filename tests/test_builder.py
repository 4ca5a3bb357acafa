"""
Tests for unsigned transaction construction and raw (de)serialization.
"""

import pytest

from walletcore.errors import (
    MalformedSerialization,
    TransactionBuildError,
    UnsupportedAddressFormat,
)
from walletcore.models import UTXO, NetworkType
from walletcore.tx.builder import (
    TxInput,
    TxOutput,
    build_transaction,
    deserialize_transaction,
)

# BIP143 native P2WPKH example, unsigned
BIP143_UNSIGNED_HEX = (
    "0100000002fff7f7881a8099afa6940d42d1e7f6362bec38171ea3edf433541db4e4ad969f00000000"
    "00eeffffffef51e1b804cc89d182d279655c3aa89e815b1b309fe287d9b2b55d57b90ec68a01000000"
    "00ffffffff02202cb206000000001976a9148280b37df378db99f66f85c95a783a76ac7a6d5988ac90"
    "93510d000000001976a9143bde42dbee7e4dbe6a21b2d50ce2f0167faa815988ac11000000"
)

TXID_A = "aa" * 32
TXID_B = "bb" * 32
RECIPIENT = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"


class TestTxInput:
    def test_outpoint_little_endian(self):
        txid = "00" * 31 + "01"
        inp = TxInput(txid, 2)
        assert inp.serialize_outpoint() == b"\x01" + b"\x00" * 31 + b"\x02\x00\x00\x00"

    def test_invalid_txid(self):
        with pytest.raises(TransactionBuildError):
            TxInput("zz" * 32, 0)
        with pytest.raises(TransactionBuildError):
            TxInput("aa" * 31, 0)

    def test_from_utxo(self):
        utxo = UTXO(txid=TXID_A, vout=3, value=1000)
        inp = TxInput.from_utxo(utxo)
        assert (inp.txid, inp.vout, inp.sequence) == (TXID_A, 3, 0xFFFFFFFF)


class TestTxOutput:
    def test_negative_value(self):
        with pytest.raises(TransactionBuildError):
            TxOutput(-1, b"\x00")

    def test_serialize_requires_script(self):
        with pytest.raises(TransactionBuildError):
            TxOutput(1000, address=RECIPIENT).serialize()


class TestBuildTransaction:
    def test_resolves_addresses(self):
        tx = build_transaction([TxInput(TXID_A, 0)], [TxOutput(5000, address=RECIPIENT)])
        assert tx.outputs[0].script_pubkey.hex() == "0014751e76e8199196d454941c45d1b3a323f1433bd6"
        assert tx.version == 2
        assert tx.locktime == 0

    def test_preserves_order(self):
        inputs = [TxInput(TXID_B, 0), TxInput(TXID_A, 1)]
        outputs = [TxOutput(9000, address=RECIPIENT), TxOutput(1000, b"\x51")]
        tx = build_transaction(inputs, outputs)
        assert [i.txid for i in tx.inputs] == [TXID_B, TXID_A]
        assert [o.value for o in tx.outputs] == [9000, 1000]

    def test_bip69_on_request(self):
        inputs = [TxInput(TXID_B, 0), TxInput(TXID_A, 1), TxInput(TXID_A, 0)]
        outputs = [TxOutput(9000, b"\x51"), TxOutput(1000, b"\x52")]
        tx = build_transaction(inputs, outputs, bip69=True)
        assert [(i.txid, i.vout) for i in tx.inputs] == [(TXID_A, 0), (TXID_A, 1), (TXID_B, 0)]
        assert [o.value for o in tx.outputs] == [1000, 9000]

    def test_accepts_utxos(self):
        tx = build_transaction([UTXO(txid=TXID_A, vout=0, value=10_000)], [TxOutput(1, b"\x51")])
        assert tx.inputs[0].txid == TXID_A

    def test_duplicate_outpoint(self):
        with pytest.raises(TransactionBuildError):
            build_transaction([TxInput(TXID_A, 0), TxInput(TXID_A, 0)], [TxOutput(1, b"\x51")])

    def test_empty_inputs_or_outputs(self):
        with pytest.raises(TransactionBuildError):
            build_transaction([], [TxOutput(1, b"\x51")])
        with pytest.raises(TransactionBuildError):
            build_transaction([TxInput(TXID_A, 0)], [])

    def test_output_network_checked(self):
        with pytest.raises(UnsupportedAddressFormat):
            build_transaction(
                [TxInput(TXID_A, 0)],
                [TxOutput(1000, address=RECIPIENT)],
                network=NetworkType.TESTNET,
            )

    def test_script_address_mismatch(self):
        with pytest.raises(TransactionBuildError):
            build_transaction(
                [TxInput(TXID_A, 0)], [TxOutput(1000, script_pubkey=b"\x51", address=RECIPIENT)]
            )

    def test_output_without_destination(self):
        with pytest.raises(TransactionBuildError):
            build_transaction([TxInput(TXID_A, 0)], [TxOutput(1000)])

    def test_bip143_layout(self):
        """Rebuilding the BIP143 example from its fields reproduces its bytes."""
        tx = build_transaction(
            [
                TxInput(
                    "9f96ade4b41d5433f4eda31e1738ec2b36f6e7d1420d94a6af99801a88f7f7ff",
                    0,
                    0xFFFFFFEE,
                ),
                TxInput("8ac60eb9575db5b2d987e29f301b5b819ea83a5c6579d282d189cc04b8e151ef", 1),
            ],
            [
                TxOutput(
                    112340000, bytes.fromhex("76a9148280b37df378db99f66f85c95a783a76ac7a6d5988ac")
                ),
                TxOutput(
                    223450000, bytes.fromhex("76a9143bde42dbee7e4dbe6a21b2d50ce2f0167faa815988ac")
                ),
            ],
            locktime=17,
            version=1,
        )
        assert tx.hex() == BIP143_UNSIGNED_HEX


class TestDeserializeTransaction:
    # A minimal segwit transaction: one input with an empty witness stack
    SAMPLE_TX_HEX = (
        "02000000"  # version
        "0001"  # marker + flag (segwit)
        "01"  # input count
        "0000000000000000000000000000000000000000000000000000000000000000"  # prev txid
        "00000000"  # prev vout
        "00"  # scriptSig length (empty for segwit)
        "ffffffff"  # sequence
        "01"  # output count
        "0000000000000000"  # value (0 sats)
        "16"  # scriptPubKey length
        "0014751e76e8199196d454941c45d1b3a323f1433bd6"  # P2WPKH scriptPubKey
        "00"  # witness stack count for input 0
        "00000000"  # locktime
    )

    def test_segwit_sample(self):
        parsed = deserialize_transaction(bytes.fromhex(self.SAMPLE_TX_HEX))
        assert parsed.tx.version == 2
        assert len(parsed.tx.inputs) == 1
        assert parsed.tx.outputs[0].value == 0
        assert len(parsed.tx.outputs[0].script_pubkey) == 22
        assert parsed.witnesses == [[]]
        assert not parsed.has_witness

    def test_legacy_round_trip(self):
        parsed = deserialize_transaction(bytes.fromhex(BIP143_UNSIGNED_HEX))
        tx = parsed.tx
        assert tx.version == 1
        assert tx.locktime == 0x11
        assert tx.inputs[0].sequence == 0xFFFFFFEE
        assert tx.inputs[1].vout == 1
        assert tx.outputs[0].value == 112340000
        assert tx.hex() == BIP143_UNSIGNED_HEX

    def test_truncated(self):
        raw = bytes.fromhex(BIP143_UNSIGNED_HEX)
        with pytest.raises(MalformedSerialization):
            deserialize_transaction(raw[:-10])

    def test_trailing_bytes(self):
        raw = bytes.fromhex(BIP143_UNSIGNED_HEX) + b"\x00"
        with pytest.raises(MalformedSerialization):
            deserialize_transaction(raw)

    def test_txid_display_order(self):
        tx = deserialize_transaction(bytes.fromhex(BIP143_UNSIGNED_HEX)).tx
        assert tx.inputs[0].txid == (
            "9f96ade4b41d5433f4eda31e1738ec2b36f6e7d1420d94a6af99801a88f7f7ff"
        )
