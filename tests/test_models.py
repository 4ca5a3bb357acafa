"""
Tests for the pydantic data models.
"""

import pytest
from pydantic import ValidationError

from walletcore.models import UTXO, Account, DerivationScheme, FeeEstimate, NetworkType


class TestUTXO:
    def test_txid_normalised(self):
        utxo = UTXO(txid="AB" * 32, vout=1, value=1000)
        assert utxo.txid == "ab" * 32
        assert utxo.outpoint == "ab" * 32 + ":1"

    def test_invalid_txid(self):
        with pytest.raises(ValidationError):
            UTXO(txid="ab" * 31, vout=0, value=1000)

    def test_negative_value(self):
        with pytest.raises(ValidationError):
            UTXO(txid="ab" * 32, vout=0, value=-1)

    def test_scriptpubkey_must_be_hex(self):
        with pytest.raises(ValidationError):
            UTXO(txid="ab" * 32, vout=0, value=1, scriptpubkey="xyz")

    def test_frozen(self):
        utxo = UTXO(txid="ab" * 32, vout=0, value=1000)
        with pytest.raises(ValidationError):
            utxo.value = 5

    def test_from_esplora(self):
        utxo = UTXO.from_api(
            {
                "txid": "cd" * 32,
                "vout": 2,
                "value": 5000,
                "status": {"confirmed": True, "block_height": 812345},
            }
        )
        assert utxo.confirmations == 1
        assert utxo.block_height == 812345

    def test_from_flat(self):
        utxo = UTXO.from_api(
            {
                "txid": "cd" * 32,
                "vout": 0,
                "value": 5000,
                "confirmations": 12,
                "scriptPubKey": "0014" + "00" * 20,
            }
        )
        assert utxo.confirmations == 12
        assert utxo.scriptpubkey_bytes == bytes.fromhex("0014" + "00" * 20)


class TestAccount:
    def test_json_round_trip(self):
        account = Account(
            xpub="xpub-placeholder",
            derivation_path="m/84'/0'/0'",
            scheme=DerivationScheme.NATIVE_SEGWIT,
            network=NetworkType.MAINNET,
            account_index=0,
        )
        restored = Account.from_json(account.to_json())
        assert restored == account
        assert restored.id == account.id

    def test_account_index_not_hardened(self):
        with pytest.raises(ValidationError):
            Account(
                xpub="x",
                derivation_path="m",
                scheme="legacy",
                network="mainnet",
                account_index=0x80000000,
            )


class TestFeeEstimate:
    def test_fee_rate_key(self):
        assert FeeEstimate.from_api({"feeRate": 12.4}).sat_per_vbyte == 12

    def test_esplora_map(self):
        estimate = FeeEstimate.from_api({"1": 30.5, "3": 12.1, "6": 4.0}, target_blocks=4)
        assert estimate.sat_per_vbyte == 12
        assert estimate.target_blocks == 4

    def test_minimum_one(self):
        assert FeeEstimate.from_api({"sat_per_vbyte": 0.2}).sat_per_vbyte == 1

    def test_unrecognised_payload(self):
        with pytest.raises(ValueError):
            FeeEstimate.from_api({"error": "down"})


class TestEnums:
    def test_segwit_flags(self):
        assert not DerivationScheme.LEGACY.is_segwit
        assert DerivationScheme.P2SH_SEGWIT.is_segwit
        assert NetworkType.MAINNET.is_mainnet
        assert not NetworkType.REGTEST.is_mainnet
