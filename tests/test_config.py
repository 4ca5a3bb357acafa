"""
Tests for environment-driven settings.
"""

import pytest
from pydantic import ValidationError

from walletcore.config import Settings, get_settings
from walletcore.models import DerivationScheme, NetworkType


class TestSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = get_settings()
        assert settings.network is NetworkType.MAINNET
        assert settings.scheme is DerivationScheme.NATIVE_SEGWIT
        assert settings.dust_threshold == 546
        assert settings.word_count == 24
        assert not settings.bip69_ordering

    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("WALLETCORE_NETWORK", "regtest")
        monkeypatch.setenv("WALLETCORE_SCHEME", "legacy")
        monkeypatch.setenv("WALLETCORE_DUST_THRESHOLD", "1000")
        settings = Settings()
        assert settings.network is NetworkType.REGTEST
        assert settings.scheme is DerivationScheme.LEGACY
        assert settings.dust_threshold == 1000

    def test_invalid_word_count(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("WALLETCORE_WORD_COUNT", "18")
        with pytest.raises(ValidationError):
            Settings()
