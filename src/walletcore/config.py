"""
Configuration management using pydantic-settings.

Only the CLI and WalletService read these; engine functions take their
parameters as arguments.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from walletcore.constants import DEFAULT_DUST_THRESHOLD
from walletcore.models import DerivationScheme, NetworkType


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WALLETCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    network: NetworkType = NetworkType.MAINNET
    scheme: DerivationScheme = DerivationScheme.NATIVE_SEGWIT
    account_index: int = Field(default=0, ge=0, lt=0x80000000)

    word_count: Literal[12, 24] = 24
    dust_threshold: int = Field(default=DEFAULT_DUST_THRESHOLD, ge=0)
    fee_preset: Literal["slow", "normal", "fast"] = "normal"
    bip69_ordering: bool = False
    parallel_signing: bool = False

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()
