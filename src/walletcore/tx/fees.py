"""
Fee presets and transaction size estimation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import TYPE_CHECKING

from walletcore.constants import (
    LEGACY_INPUT_VSIZE,
    OUTPUT_VSIZE,
    SEGWIT_INPUT_VSIZE,
    TX_OVERHEAD_VSIZE,
)
from walletcore.models import DerivationScheme

if TYPE_CHECKING:
    from walletcore.backends.base import ChainDataProvider


class FeePreset(Enum):
    """Fee preset options mapped to confirmation targets."""

    SLOW = (6, "Slow")
    NORMAL = (3, "Normal")
    FAST = (1, "Fast")

    def __init__(self, target_blocks: int, label: str):
        self.target_blocks = target_blocks
        self.label = label

    @classmethod
    def from_name(cls, name: str) -> FeePreset:
        try:
            return cls[name.upper()]
        except KeyError as e:
            raise ValueError(f"Unknown fee preset: {name}") from e


INPUT_VSIZE: dict[DerivationScheme, int] = {
    DerivationScheme.LEGACY: LEGACY_INPUT_VSIZE,
    DerivationScheme.P2SH_SEGWIT: SEGWIT_INPUT_VSIZE,
    DerivationScheme.NATIVE_SEGWIT: SEGWIT_INPUT_VSIZE,
}


def estimate_vsize(input_schemes: Iterable[DerivationScheme], output_count: int) -> int:
    """
    Estimate virtual size in vbytes.

    Overhead: 10 vbytes
    Legacy inputs: ~180 vbytes each, segwit inputs: ~148 vbytes each
    Outputs: 34 vbytes each
    """
    if output_count < 0:
        raise ValueError(f"output_count cannot be negative: {output_count}")

    vsize = TX_OVERHEAD_VSIZE
    for scheme in input_schemes:
        vsize += INPUT_VSIZE[DerivationScheme(scheme)]
    vsize += output_count * OUTPUT_VSIZE
    return vsize


def calculate_fee(
    input_schemes: Iterable[DerivationScheme], output_count: int, fee_rate: int
) -> int:
    """Fee in sats for the estimated size at fee_rate sat/vB."""
    if fee_rate < 1:
        raise ValueError(f"Fee rate must be at least 1 sat/vB, got {fee_rate}")
    return estimate_vsize(input_schemes, output_count) * fee_rate


def fee_rate_for_preset(estimates: Mapping[int, int], preset: FeePreset) -> int:
    """
    Pick the rate for a preset from a provider snapshot {target_blocks: sat/vB}.
    Uses the exact target, else the closest faster target available.
    """
    if not estimates:
        raise ValueError("Fee estimate snapshot is empty")

    target = preset.target_blocks
    if target in estimates:
        return int(estimates[target])

    faster = [t for t in estimates if t <= target]
    chosen = max(faster) if faster else min(estimates)
    return int(estimates[chosen])


async def estimate_fee(provider: ChainDataProvider, target_blocks: int) -> int:
    """Fee rate in sat/vB for target_blocks, from the chain-data provider."""
    return await provider.estimate_fee(target_blocks)
