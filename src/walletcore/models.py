"""
Core data models using Pydantic for validation and serialization.

These are the values exchanged with external collaborators (chain-data
provider, storage, UI): UTXO snapshots, accounts and fee estimates.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"

    @property
    def is_mainnet(self) -> bool:
        return self is NetworkType.MAINNET


class DerivationScheme(str, Enum):
    """Script type family of an account."""

    LEGACY = "legacy"  # BIP44, P2PKH
    P2SH_SEGWIT = "p2sh-segwit"  # BIP49, P2SH-P2WPKH
    NATIVE_SEGWIT = "native-segwit"  # BIP84, P2WPKH

    @property
    def is_segwit(self) -> bool:
        return self is not DerivationScheme.LEGACY


class UTXO(BaseModel):
    """Unspent output snapshot supplied by the chain-data provider."""

    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0, le=0xFFFFFFFF)
    address: str = ""
    value: int = Field(..., ge=0)
    scriptpubkey: str = ""
    confirmations: int = Field(default=0, ge=0)
    block_height: int | None = None

    model_config = {"frozen": True}

    @field_validator("txid")
    @classmethod
    def normalize_txid(cls, v: str) -> str:
        return v.lower()

    @field_validator("scriptpubkey")
    @classmethod
    def validate_scriptpubkey(cls, v: str) -> str:
        try:
            bytes.fromhex(v)
        except ValueError as e:
            raise ValueError(f"scriptpubkey must be hex: {e}") from e
        return v.lower()

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"

    @property
    def scriptpubkey_bytes(self) -> bytes:
        return bytes.fromhex(self.scriptpubkey)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> UTXO:
        """
        Parse a UTXO from an Esplora-style or flat JSON object.

        Esplora reports confirmation status under ``status`` rather than a
        confirmation count; a confirmed output counts as one confirmation.
        """
        status = data.get("status") or {}
        if status.get("block_height") is not None:
            confirmations = 1 if status.get("confirmed") else 0
        else:
            confirmations = int(data.get("confirmations", 0))

        return cls(
            txid=data["txid"],
            vout=int(data["vout"]),
            address=data.get("address", ""),
            value=int(data["value"]),
            scriptpubkey=data.get("scriptpubkey") or data.get("scriptPubKey") or "",
            confirmations=confirmations,
            block_height=status.get("block_height", data.get("block_height")),
        )


class Account(BaseModel):
    """
    A BIP44-style account: one xpub at m/purpose'/coin'/account'.

    The next-address counter lives with the caller; this model is immutable.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    wallet_id: str = ""
    label: str = ""
    xpub: str
    derivation_path: str
    scheme: DerivationScheme
    network: NetworkType
    account_index: int = Field(..., ge=0, lt=0x80000000)

    model_config = {"frozen": True}

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> Account:
        return cls.model_validate_json(data)


class FeeEstimate(BaseModel):
    """Fee rate in sat/vB for a confirmation target."""

    sat_per_vbyte: int = Field(..., ge=1)
    target_blocks: int | None = Field(default=None, ge=1)

    @classmethod
    def from_api(cls, data: dict[str, Any], target_blocks: int | None = None) -> FeeEstimate:
        """
        Accept the response shapes seen from fee APIs: ``feeRate``,
        ``sat_per_vbyte``, ``satPerVByte``, or an Esplora ``{target: rate}``
        map. Unrecognised payloads raise instead of guessing a rate.
        """
        for key in ("feeRate", "sat_per_vbyte", "satPerVByte"):
            if data.get(key) is not None:
                return cls(sat_per_vbyte=max(1, round(data[key])), target_blocks=target_blocks)

        blocks = data.get("blocks", data)
        rates: dict[int, float] = {}
        for key, rate in blocks.items():
            try:
                rates[int(key)] = float(rate)
            except (TypeError, ValueError):
                continue
        if not rates:
            raise ValueError(f"Unrecognised fee estimate payload: {sorted(data)}")

        target = target_blocks or min(rates)
        eligible = [t for t in rates if t <= target]
        chosen = max(eligible) if eligible else min(rates)
        return cls(sat_per_vbyte=max(1, round(rates[chosen])), target_blocks=target)
