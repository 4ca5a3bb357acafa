"""
UTXO selection, fee computation and change policy.

Invariant of every returned plan:
    sum(inputs) == sum(outputs) + fee
and a change output is present iff change > dust_threshold. Change at or
below the threshold is added to the fee.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from walletcore.constants import DEFAULT_DUST_THRESHOLD
from walletcore.errors import ChangeAddressRequired, InsufficientFunds, TransactionBuildError
from walletcore.models import UTXO, DerivationScheme, NetworkType
from walletcore.tx.builder import TxOutput, UnsignedTransaction, build_transaction
from walletcore.tx.fees import calculate_fee, estimate_vsize
from walletcore.wallet.address import address_to_scriptpubkey, scheme_for_scriptpubkey


class SelectionStrategy(str, Enum):
    MANUAL = "manual"  # spend exactly the UTXOs given, in the given order
    LARGEST_FIRST = "largest-first"  # accumulate largest UTXOs until covered


@dataclass(frozen=True)
class SpendPlan:
    """Result of coin selection"""

    inputs: tuple[UTXO, ...]
    outputs: tuple[TxOutput, ...]
    fee: int
    change: int
    fee_rate: int
    vsize: int

    @property
    def total_input(self) -> int:
        return sum(u.value for u in self.inputs)

    @property
    def total_output(self) -> int:
        return sum(o.value for o in self.outputs)

    @property
    def has_change(self) -> bool:
        return self.change > 0

    @property
    def input_schemes(self) -> list[DerivationScheme]:
        return [utxo_scheme(u) for u in self.inputs]


def utxo_scheme(utxo: UTXO) -> DerivationScheme:
    """Script scheme of a UTXO, from its scriptPubKey or else its address."""
    if utxo.scriptpubkey:
        return scheme_for_scriptpubkey(utxo.scriptpubkey_bytes)
    return scheme_for_scriptpubkey(address_to_scriptpubkey(utxo.address))


def _finalize(
    selected: Sequence[UTXO],
    recipient: str,
    amount: int,
    fee_rate: int,
    change_address: str | None,
    dust_threshold: int,
) -> SpendPlan:
    schemes = [utxo_scheme(u) for u in selected]
    total = sum(u.value for u in selected)

    fee_with_change = calculate_fee(schemes, 2, fee_rate)
    change = total - amount - fee_with_change

    if change > dust_threshold:
        if not change_address:
            raise ChangeAddressRequired(change)
        outputs = (
            TxOutput(value=amount, address=recipient),
            TxOutput(value=change, address=change_address),
        )
        plan = SpendPlan(
            inputs=tuple(selected),
            outputs=outputs,
            fee=fee_with_change,
            change=change,
            fee_rate=fee_rate,
            vsize=estimate_vsize(schemes, 2),
        )
    else:
        fee_without_change = calculate_fee(schemes, 1, fee_rate)
        required = amount + fee_without_change
        if total < required:
            raise InsufficientFunds(required - total, available=total, required=required)

        fee = total - amount
        excess = fee - fee_without_change
        if excess > 0:
            logger.warning(f"Change of {excess} sats is at or below dust, adding it to the fee")
        plan = SpendPlan(
            inputs=tuple(selected),
            outputs=(TxOutput(value=amount, address=recipient),),
            fee=fee,
            change=0,
            fee_rate=fee_rate,
            vsize=estimate_vsize(schemes, 1),
        )

    if plan.total_input != plan.total_output + plan.fee:
        raise TransactionBuildError("Spend plan does not balance")
    return plan


def select_and_build_plan(
    utxos: Sequence[UTXO],
    recipient: str,
    amount: int,
    fee_rate: int,
    change_address: str | None = None,
    strategy: SelectionStrategy = SelectionStrategy.LARGEST_FIRST,
    dust_threshold: int = DEFAULT_DUST_THRESHOLD,
    min_confirmations: int = 0,
) -> SpendPlan:
    """
    Select inputs and lay out outputs for a payment of amount sats.

    Args:
        utxos: Candidate UTXOs (manual mode: exactly the UTXOs to spend)
        recipient: Destination address
        amount: Amount to pay in sats
        fee_rate: Fee rate in sat/vB
        change_address: Where change goes when it exceeds the dust threshold
        strategy: MANUAL or LARGEST_FIRST
        dust_threshold: Change at or below this is folded into the fee
        min_confirmations: Largest-first only considers UTXOs with this many confirmations

    Raises:
        InsufficientFunds: inputs cannot cover amount + fee
        ChangeAddressRequired: change is due but change_address is missing
        ValueError: amount or fee rate out of range
    """
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")
    if amount < dust_threshold:
        raise ValueError(f"Amount {amount} is below the dust threshold {dust_threshold}")
    if fee_rate < 1:
        raise ValueError(f"Fee rate must be at least 1 sat/vB, got {fee_rate}")

    strategy = SelectionStrategy(strategy)

    if strategy is SelectionStrategy.MANUAL:
        if not utxos:
            raise InsufficientFunds(amount, available=0, required=amount)
        logger.debug(f"Manual selection: {len(utxos)} UTXOs")
        return _finalize(utxos, recipient, amount, fee_rate, change_address, dust_threshold)

    eligible = [u for u in utxos if u.confirmations >= min_confirmations]
    eligible.sort(key=lambda u: u.value, reverse=True)

    selected: list[UTXO] = []
    total = 0
    for utxo in eligible:
        selected.append(utxo)
        total += utxo.value
        fee = calculate_fee([utxo_scheme(u) for u in selected], 1, fee_rate)
        if total >= amount + fee:
            break

    if not selected:
        raise InsufficientFunds(amount, available=0, required=amount)

    logger.debug(
        f"Largest-first selection: {len(selected)} of {len(eligible)} UTXOs, {total} sats"
    )
    return _finalize(selected, recipient, amount, fee_rate, change_address, dust_threshold)


def build_from_plan(
    plan: SpendPlan, network: NetworkType | None = None, bip69: bool = False
) -> UnsignedTransaction:
    """Unsigned transaction spending plan.inputs to plan.outputs."""
    return build_transaction(plan.inputs, plan.outputs, network=network, bip69=bip69)
