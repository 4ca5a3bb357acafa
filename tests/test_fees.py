"""
Tests for fee presets and size estimation.
"""

from unittest.mock import AsyncMock

import pytest

from walletcore.backends.base import ChainDataProvider
from walletcore.models import DerivationScheme
from walletcore.tx.fees import (
    FeePreset,
    calculate_fee,
    estimate_fee,
    estimate_vsize,
    fee_rate_for_preset,
)

SEGWIT = DerivationScheme.NATIVE_SEGWIT
LEGACY = DerivationScheme.LEGACY


class TestFeePreset:
    def test_targets(self):
        assert FeePreset.SLOW.target_blocks == 6
        assert FeePreset.NORMAL.target_blocks == 3
        assert FeePreset.FAST.target_blocks == 1
        assert FeePreset.FAST.label == "Fast"

    def test_from_name(self):
        assert FeePreset.from_name("slow") is FeePreset.SLOW
        with pytest.raises(ValueError):
            FeePreset.from_name("ludicrous")


class TestEstimateVsize:
    def test_one_segwit_input_two_outputs(self):
        assert estimate_vsize([SEGWIT], 2) == 10 + 148 + 68

    def test_legacy_input(self):
        assert estimate_vsize([LEGACY], 1) == 10 + 180 + 34

    def test_mixed(self):
        assert estimate_vsize([LEGACY, DerivationScheme.P2SH_SEGWIT, SEGWIT], 3) == (
            10 + 180 + 148 + 148 + 102
        )

    def test_negative_outputs(self):
        with pytest.raises(ValueError):
            estimate_vsize([SEGWIT], -1)


class TestCalculateFee:
    def test_linear_in_rate(self):
        assert calculate_fee([SEGWIT], 2, 10) == 2260
        assert calculate_fee([SEGWIT], 2, 20) == 2 * calculate_fee([SEGWIT], 2, 10)

    def test_rate_must_be_positive(self):
        with pytest.raises(ValueError):
            calculate_fee([SEGWIT], 2, 0)


class TestFeeRateForPreset:
    ESTIMATES = {1: 40, 3: 20, 6: 8, 144: 1}

    def test_exact_target(self):
        assert fee_rate_for_preset(self.ESTIMATES, FeePreset.NORMAL) == 20

    def test_closest_faster_target(self):
        assert fee_rate_for_preset({1: 40, 2: 30, 12: 5}, FeePreset.NORMAL) == 30

    def test_only_slower_targets(self):
        assert fee_rate_for_preset({12: 5, 25: 3}, FeePreset.FAST) == 5

    def test_empty_snapshot(self):
        with pytest.raises(ValueError):
            fee_rate_for_preset({}, FeePreset.SLOW)


@pytest.mark.asyncio
async def test_estimate_fee_asks_provider():
    provider = AsyncMock(spec=ChainDataProvider)
    provider.estimate_fee.return_value = 12

    assert await estimate_fee(provider, 3) == 12
    provider.estimate_fee.assert_awaited_once_with(3)
