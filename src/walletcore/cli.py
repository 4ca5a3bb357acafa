"""
walletcore CLI - Generate mnemonics, derive keys and addresses, sign offline.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import typer
from loguru import logger

from walletcore.backends.base import InMemorySeedStore
from walletcore.config import get_settings
from walletcore.errors import WalletError
from walletcore.models import UTXO, DerivationScheme, NetworkType
from walletcore.tx.coin_selection import SelectionStrategy
from walletcore.wallet.mnemonic import generate_mnemonic, mnemonic_to_seed, validate_mnemonic
from walletcore.wallet.service import (
    WalletService,
    derive_account_xpub,
    derive_address_from_xpub,
)

app = typer.Typer(
    name="wallet-core",
    help="HD wallet key derivation and offline transaction signing",
    add_completion=False,
)


def setup_logging(level: str | None = None) -> None:
    """Configure loguru logging. Without a level, WALLETCORE_LOG_LEVEL applies."""
    level = level or get_settings().log_level
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_mnemonic(mnemonic: str | None, mnemonic_file: Path | None) -> str:
    if mnemonic_file:
        if not mnemonic_file.exists():
            logger.error(f"Mnemonic file not found: {mnemonic_file}")
            raise typer.Exit(1)
        mnemonic = mnemonic_file.read_text().strip()

    if not mnemonic:
        logger.error("Mnemonic required. Use --mnemonic, --mnemonic-file, or MNEMONIC env var")
        raise typer.Exit(1)
    return mnemonic


def _resolve(
    network: NetworkType | None, scheme: DerivationScheme | None
) -> tuple[NetworkType, DerivationScheme]:
    settings = get_settings()
    return network or settings.network, scheme or settings.scheme


@app.command()
def generate(
    word_count: int | None = typer.Option(None, "--words", "-w", help="Number of words (12 or 24)"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Generate a new BIP39 mnemonic phrase."""
    setup_logging(log_level)

    try:
        mnemonic = generate_mnemonic(word_count or get_settings().word_count)
    except WalletError as e:
        logger.error(f"Failed to generate mnemonic: {e}")
        raise typer.Exit(1)

    typer.echo("\n" + "=" * 80)
    typer.echo("GENERATED MNEMONIC - WRITE THIS DOWN AND KEEP IT SAFE!")
    typer.echo("=" * 80)
    typer.echo(f"\n{mnemonic}\n")
    typer.echo("=" * 80)
    typer.echo("\nThis mnemonic controls your Bitcoin funds.")
    typer.echo("Store it securely offline - NEVER share it with anyone!")
    typer.echo("=" * 80 + "\n")


@app.command()
def validate(
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(
        None, "--mnemonic-file", "-f", help="Path to mnemonic file"
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Check a mnemonic's word count, wordlist membership and checksum."""
    setup_logging(log_level)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    if not validate_mnemonic(mnemonic):
        logger.error("Mnemonic is invalid")
        raise typer.Exit(1)
    typer.echo("Mnemonic is valid")


@app.command()
def xpub(
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    passphrase: str = typer.Option("", "--passphrase", envvar="MNEMONIC_PASSPHRASE"),
    network: NetworkType | None = typer.Option(None, "--network", "-n"),
    scheme: DerivationScheme | None = typer.Option(None, "--scheme", "-s"),
    account: int | None = typer.Option(None, "--account", "-a", help="Account index"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Print the account extended public key."""
    setup_logging(log_level)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)
    network, scheme = _resolve(network, scheme)

    try:
        seed = mnemonic_to_seed(mnemonic, passphrase)
        if account is None:
            account = get_settings().account_index
        typer.echo(derive_account_xpub(seed, scheme, network, account))
    except WalletError as e:
        logger.error(f"Failed to derive xpub: {e}")
        raise typer.Exit(1)


@app.command()
def addresses(
    account_xpub: str = typer.Option(..., "--xpub", "-x", help="Account extended public key"),
    network: NetworkType | None = typer.Option(None, "--network", "-n"),
    scheme: DerivationScheme | None = typer.Option(None, "--scheme", "-s"),
    start: int = typer.Option(0, "--start"),
    count: int = typer.Option(10, "--count", "-c"),
    change: bool = typer.Option(False, "--change", help="Internal (change) chain"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """List addresses derived from an account xpub (watch-only)."""
    setup_logging(log_level)
    network, scheme = _resolve(network, scheme)

    try:
        for index in range(start, start + count):
            address = derive_address_from_xpub(account_xpub, index, scheme, network, change)
            typer.echo(f"{index}\t{address}")
    except WalletError as e:
        logger.error(f"Failed to derive addresses: {e}")
        raise typer.Exit(1)


@app.command()
def send(
    utxo_file: Path = typer.Option(..., "--utxos", "-u", help="JSON file with a list of UTXOs"),
    recipient: str = typer.Option(..., "--to", "-t", help="Destination address"),
    amount: int = typer.Option(..., "--amount", help="Amount in sats"),
    fee_rate: int = typer.Option(..., "--fee-rate", help="Fee rate in sat/vB"),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    passphrase: str = typer.Option("", "--passphrase", envvar="MNEMONIC_PASSPHRASE"),
    network: NetworkType | None = typer.Option(None, "--network", "-n"),
    scheme: DerivationScheme | None = typer.Option(None, "--scheme", "-s"),
    account: int | None = typer.Option(None, "--account", "-a", help="Account index"),
    change_index: int = typer.Option(0, "--change-index", help="Change address index"),
    gap_limit: int = typer.Option(20, "--gap-limit", help="Addresses scanned per chain"),
    strategy: SelectionStrategy = typer.Option(SelectionStrategy.LARGEST_FIRST, "--strategy"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Build and sign a payment offline; prints the raw transaction hex."""
    setup_logging(log_level)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)
    network, scheme = _resolve(network, scheme)

    if not utxo_file.exists():
        logger.error(f"UTXO file not found: {utxo_file}")
        raise typer.Exit(1)

    try:
        utxos = [UTXO.from_api(item) for item in json.loads(utxo_file.read_text())]
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"Failed to read UTXOs: {e}")
        raise typer.Exit(1)

    try:
        result = asyncio.run(
            _sign_offline(
                mnemonic,
                passphrase,
                network,
                scheme,
                account,
                utxos,
                recipient,
                amount,
                fee_rate,
                change_index,
                gap_limit,
                strategy,
            )
        )
    except (WalletError, ValueError) as e:
        logger.error(f"Failed to build transaction: {e}")
        raise typer.Exit(1)

    typer.echo(result)


async def _sign_offline(
    mnemonic: str,
    passphrase: str,
    network: NetworkType,
    scheme: DerivationScheme,
    account_index: int | None,
    utxos: list[UTXO],
    recipient: str,
    amount: int,
    fee_rate: int,
    change_index: int,
    gap_limit: int,
    strategy: SelectionStrategy,
) -> str:
    settings = get_settings().model_copy(update={"network": network, "scheme": scheme})
    service = WalletService.from_settings(InMemorySeedStore(), "offline", settings=settings)
    try:
        await service.import_wallet(mnemonic, passphrase)
        account = await service.create_account(account_index)

        service.derive_addresses(account, 0, gap_limit)
        service.derive_addresses(account, 0, max(gap_limit, change_index + 1), change=True)

        result = await service.send(
            account,
            utxos,
            recipient,
            amount,
            fee_rate=fee_rate,
            change_index=change_index,
            strategy=strategy,
            broadcast_tx=False,
        )
        logger.info(f"Signed {result.txid}: fee {result.fee} sats, change {result.change} sats")
        return result.tx_hex
    finally:
        await service.delete_wallet()


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
