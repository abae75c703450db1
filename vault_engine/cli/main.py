"""
Command-line interface for the vault strategy engine.

Usage:
    # Dry-run 48 hourly cycles through a price path
    vault-engine simulate --cycles 48 --prices 2000,1980,2100 --deposit 1000

    # Print the last persisted snapshot
    vault-engine status

    # Show the validated settings loaded from config/config.yaml
    vault-engine show-config
"""
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Tuple

import click
import yaml
from pydantic import ValidationError

from vault_engine import __version__
from vault_engine.adapters import (
    AssetLedger,
    InMemoryYieldSource,
    StaticFundingRateFeed,
    StaticPriceFeed,
)
from vault_engine.core.access import Principal
from vault_engine.core.exceptions import CapitalSafetyError, PriceValidationError
from vault_engine.core.settings import EngineSettings
from vault_engine.core.strategy_engine import EnginePrincipals, StrategyEngine
from vault_engine.monitoring import EngineSnapshot, SnapshotStore, build_snapshot
from vault_engine.utils.clock import ManualClock
from vault_engine.utils.config import Config, get_config
from vault_engine.utils.fixed_point import bps_mul, format_wad, to_wad
from vault_engine.utils.logging_config import configure_root_logging
from vault_engine.vault import PooledVault

logger = logging.getLogger('CLI')

FEED_DECIMALS = 8
DEPOSITOR = 'depositor'


def parse_prices_callback(ctx, param, value) -> Tuple[Decimal, ...]:
    """
    Parse a comma- or space-separated price path.

    Examples:
        '2000,1980,2100'  -> (Decimal('2000'), Decimal('1980'), Decimal('2100'))
        '2000 1980'       -> (Decimal('2000'), Decimal('1980'))
    """
    prices = []
    for part in value.replace(',', ' ').split():
        try:
            price = Decimal(part)
        except InvalidOperation:
            raise click.BadParameter(f"'{part}' is not a number")
        if price <= 0:
            raise click.BadParameter(f"prices must be positive, got {part}")
        prices.append(price)

    if not prices:
        raise click.BadParameter("at least one price is required")
    return tuple(prices)


def _load_config(config_file: Optional[str]) -> Config:
    return Config(config_file=config_file) if config_file else get_config()


def _raw_price(price: Decimal) -> int:
    return int(price * 10 ** FEED_DECIMALS)


def _print_snapshot(snapshot: EngineSnapshot) -> None:
    click.echo("=" * 60)
    click.echo(f"ENGINE SNAPSHOT (cycle {snapshot.cycle_count}, t={snapshot.taken_at})")
    click.echo("=" * 60)
    click.echo(f"Volatility:         {snapshot.volatility_band} "
               f"({snapshot.volatility_accumulator_bps} bps)")
    click.echo(f"Total value:        {format_wad(snapshot.total_value)}")
    click.echo(f"High-water mark:    {format_wad(snapshot.high_water_mark)}")
    click.echo(f"Allocation:         {snapshot.current_allocation.safe_bps}/"
               f"{snapshot.current_allocation.growth_bps} bps "
               f"(target {snapshot.target_allocation.safe_bps}/"
               f"{snapshot.target_allocation.growth_bps})")
    click.echo(f"Hedge:              {'active' if snapshot.hedge.active else 'none'} "
               f"size={format_wad(snapshot.hedge.hedge_size)} "
               f"realized={format_wad(snapshot.hedge.realized_pnl)}")
    click.echo(f"Compounds:          {snapshot.compound_count} "
               f"(harvested {format_wad(snapshot.total_harvested)})")

    if snapshot.circuit_breaker_active:
        click.echo(click.style("✗ Circuit breaker ACTIVE", fg='red'))
    elif snapshot.paused:
        click.echo(click.style("✗ Engine paused", fg='yellow'))
    else:
        click.echo(click.style("✓ Execution allowed", fg='green'))
    click.echo("=" * 60)


@click.group()
@click.version_option(version=__version__, prog_name='vault-engine')
@click.option('--log-level', default=None, help='Log level (default: from config)')
@click.option('--log-file/--no-log-file', default=False, help='Also write the shared log file')
def cli(log_level: Optional[str], log_file: bool):
    """
    Vault Engine - Autonomous capital allocation between two yield venues.
    """
    configure_root_logging(log_level or get_config().log_level, log_to_file=log_file)


@cli.command()
@click.option('--cycles', default=24, show_default=True, help='Number of cycles to run')
@click.option('--interval', default=3_600, show_default=True, help='Seconds between cycles')
@click.option(
    '--prices',
    default='2000',
    callback=parse_prices_callback,
    help='Price path, one price per cycle; the last price repeats',
)
@click.option('--deposit', default='1000', show_default=True, help='Initial vault deposit')
@click.option('--reward-bps', default=2, show_default=True,
              help='Rewards accrued per cycle, in bps of each venue value')
@click.option('--growth-return-bps', default=0, show_default=True,
              help='Mark-to-market return applied to the growth venue each cycle')
@click.option('--withdrawal-delay', default=0, show_default=True,
              help='Seconds before venue withdrawals settle')
@click.option('--config', 'config_file', default=None, help='Path to config YAML')
@click.option('--snapshot/--no-snapshot', default=False, help='Persist the final snapshot')
def simulate(
    cycles: int,
    interval: int,
    prices: Tuple[Decimal, ...],
    deposit: str,
    reward_bps: int,
    growth_return_bps: int,
    withdrawal_delay: int,
    config_file: Optional[str],
    snapshot: bool,
):
    """
    Run the engine against in-memory venues.

    Example:
        vault-engine simulate --cycles 12 --prices "2000 1900 1750 1800"
    """
    config = _load_config(config_file)
    try:
        settings = EngineSettings.from_config(config)
    except ValidationError as e:
        click.echo(click.style(f"✗ Invalid engine settings: {e}", fg='red'))
        raise click.Abort()

    clock = ManualClock()
    feed = StaticPriceFeed(clock, decimals=FEED_DECIMALS, initial_price=_raw_price(prices[0]))
    safe = InMemoryYieldSource('safe', clock, withdrawal_delay_seconds=withdrawal_delay)
    growth = InMemoryYieldSource('growth', clock, withdrawal_delay_seconds=withdrawal_delay)
    ledger = AssetLedger()
    principals = EnginePrincipals()

    engine = StrategyEngine.build(
        settings, feed, safe, growth, ledger, principals,
        funding_feed=StaticFundingRateFeed(), clock=clock,
    )
    vault = PooledVault(engine, ledger, principals.vault)

    amount = to_wad(deposit)
    ledger.credit(DEPOSITOR, amount)
    vault.deposit(DEPOSITOR, amount)

    keeper = Principal('keeper')
    click.echo(f"Simulating {cycles} cycles, deposit={format_wad(amount)}")

    for i in range(cycles):
        clock.advance(interval)
        feed.set_price(_raw_price(prices[min(i, len(prices) - 1)]))
        growth.apply_return_bps(growth_return_bps)
        for venue in (safe, growth):
            venue.accrue_rewards(bps_mul(venue.total_value(), reward_bps))

        try:
            report = engine.execute_cycle(keeper)
        except (CapitalSafetyError, PriceValidationError) as e:
            click.echo(click.style(f"[{i + 1:>3}] ✗ {type(e).__name__}: {e}", fg='red'))
            if engine.check_recovery():
                click.echo(click.style(f"[{i + 1:>3}] ✓ Circuit breaker reset", fg='green'))
            continue
        click.echo(f"[{i + 1:>3}] {report.summary()}")

    click.echo(
        f"Final: total={format_wad(engine.total_managed_value())}, "
        f"price/share={format_wad(vault.price_per_share(), places=6)}, "
        f"bounties={format_wad(ledger.balance_of(keeper.name))}"
    )

    if snapshot:
        store = SnapshotStore(config.snapshot_file)
        path = store.save(build_snapshot(engine))
        click.echo(click.style(f"✓ Snapshot written to {path}", fg='green'))


@cli.command()
@click.option('--snapshot-file', default=None, help='Snapshot path (default: from config)')
def status(snapshot_file: Optional[str]):
    """
    Print the last persisted engine snapshot.

    Example:
        vault-engine status --snapshot-file state/engine_snapshot.json
    """
    path = Path(snapshot_file) if snapshot_file else get_config().snapshot_file
    store = SnapshotStore(path, backup_enabled=False)

    try:
        snapshot = store.load()
    except ValueError as e:
        click.echo(click.style(f"✗ Snapshot unreadable: {e}", fg='red'))
        raise click.Abort()

    if snapshot is None:
        click.echo(click.style(f"✗ No snapshot found at {path}", fg='yellow'))
        click.echo("\nRun: vault-engine simulate --snapshot")
        return

    _print_snapshot(snapshot)


@cli.command('show-config')
@click.option('--config', 'config_file', default=None, help='Path to config YAML')
def show_config(config_file: Optional[str]):
    """
    Print validated engine settings.

    Example:
        vault-engine show-config --config config/config.yaml
    """
    try:
        settings = EngineSettings.from_config(_load_config(config_file))
    except ValidationError as e:
        click.echo(click.style(f"✗ Invalid engine settings: {e}", fg='red'))
        raise click.Abort()

    click.echo(yaml.safe_dump({'engine': settings.model_dump()}, sort_keys=False))


if __name__ == '__main__':
    cli()
