"""
Command line interface for the holder rewards bot.
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from holder_rewards.core.config import LAMPORTS_PER_SOL, Settings, load_settings
from holder_rewards.core.database import Database
from holder_rewards.core.exceptions import ConfigurationError, HolderRewardsException
from holder_rewards.core.logging import get_logger, setup_logging
from holder_rewards.scheduler.cycle import CycleOutcome
from holder_rewards.scheduler.main import create_runtime, main as run_bot
from holder_rewards.services.reporting import LedgerReporter
from holder_rewards.storage import create_ledger_store

console = Console()
logger = get_logger(__name__)
app = typer.Typer(name="holder-rewards", help="Holder rewards distribution bot")


def _settings() -> Settings:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        console.print(f"❌ {e.message}")
        for error in e.details.get("errors", []):
            console.print(f"   {error}")
        raise typer.Exit(1)

    setup_logging(settings)
    return settings


def _sol(lamports: int) -> str:
    return f"{lamports / LAMPORTS_PER_SOL:.4f}"


@app.command()
def run(once: bool = typer.Option(False, "--once", help="Run a single cycle and exit")):
    """Run distribution cycles on the configured interval."""
    settings = _settings()

    try:
        report = asyncio.run(run_bot(settings, once=once))
    except HolderRewardsException as e:
        logger.error("Bot run failed", code=e.code, error=e.message)
        console.print(f"❌ {e.message}")
        raise typer.Exit(1)

    if once and report is not None:
        console.print(f"Cycle finished: [bold]{report.outcome.value}[/bold]")
        if report.outcome == CycleOutcome.FAILED:
            raise typer.Exit(1)


@app.command()
def retry(distribution_id: str):
    """Retry the pending transfers of a distribution."""
    settings = _settings()

    async def _retry():
        runtime = await create_runtime(settings)
        try:
            return await runtime.engine.retry_pending(distribution_id)
        finally:
            await runtime.close()

    try:
        result = asyncio.run(_retry())
    except HolderRewardsException as e:
        logger.error("Retry failed", distribution_id=distribution_id, code=e.code, error=e.message)
        console.print(f"❌ {e.message}")
        raise typer.Exit(1)

    if result.planned_transfers == 0 and not result.aborted:
        console.print("Nothing pending to retry")
        return

    console.print(
        f"Retry {result.distribution_id}: {result.successful_transfers} succeeded, "
        f"{result.failed_transfers} failed"
    )
    if not result.success:
        raise typer.Exit(1)


@app.command()
def status(limit: int = typer.Option(10, help="Number of recent rows to show")):
    """Show ledger totals and recent activity."""
    settings = _settings()

    async def _status():
        async with create_ledger_store(settings) as store:
            reporter = LedgerReporter(store)
            return (
                await reporter.stats(),
                await reporter.recent_conversions(limit),
                await reporter.recent_distributions(limit),
            )

    try:
        stats, conversions, distributions = asyncio.run(_status())
    except HolderRewardsException as e:
        logger.error("Status query failed", code=e.code, error=e.message)
        console.print(f"❌ {e.message}")
        raise typer.Exit(1)

    summary = Table(title="Ledger Summary")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", style="green")
    summary.add_row("SOL converted", _sol(stats.total_converted_input))
    summary.add_row("Reward tokens received", str(stats.total_converted_output))
    summary.add_row("Reward tokens distributed", str(stats.total_distributed))
    summary.add_row("Distributions", str(stats.distribution_count))
    summary.add_row("Last distribution", stats.last_activity.isoformat() if stats.last_activity else "-")
    console.print(summary)

    conversion_table = Table(title="Recent Conversions")
    for column in ("ID", "Time", "SOL in", "Out", "Status", "Tx"):
        conversion_table.add_column(column)
    for conversion in conversions:
        conversion_table.add_row(
            str(conversion.id),
            conversion.timestamp.strftime("%Y-%m-%d %H:%M"),
            _sol(conversion.input_amount),
            str(conversion.output_amount),
            conversion.status.value,
            conversion.tx_reference or conversion.error or "-",
        )
    console.print(conversion_table)

    distribution_table = Table(title="Recent Distributions")
    for column in ("ID", "Time", "Amount", "Holders", "Status"):
        distribution_table.add_column(column)
    for distribution in distributions:
        distribution_table.add_row(
            distribution.distribution_id,
            distribution.timestamp.strftime("%Y-%m-%d %H:%M"),
            str(distribution.total_amount),
            str(distribution.holder_count),
            distribution.status.value,
        )
    console.print(distribution_table)


@app.command()
def rewards(wallet: str, limit: int = typer.Option(20, help="Number of recent transfers to show")):
    """Show rewards received by a wallet."""
    settings = _settings()

    async def _rewards():
        async with create_ledger_store(settings) as store:
            return await LedgerReporter(store).wallet_rewards(wallet, recent=limit)

    try:
        summary = asyncio.run(_rewards())
    except HolderRewardsException as e:
        logger.error("Rewards query failed", wallet=wallet, code=e.code, error=e.message)
        console.print(f"❌ {e.message}")
        raise typer.Exit(1)

    console.print(f"Wallet: [bold]{summary.address}[/bold]")
    console.print(f"Total received: {summary.total_received} across {summary.transfer_count} transfers")

    table = Table(title="Recent Transfers")
    for column in ("Distribution", "Amount", "Tx"):
        table.add_column(column)
    for allocation in summary.recent:
        table.add_row(allocation.distribution_id, str(allocation.amount), allocation.tx_reference or "-")
    console.print(table)


@app.command("init-db")
def init_db(database_url: Optional[str] = typer.Option(None, help="Override DATABASE_URL")):
    """Create the ledger tables."""
    settings = _settings()
    url = database_url or settings.database_url

    async def _init():
        database = Database.from_settings(settings) if url == settings.database_url else Database(url)
        await database.init()
        try:
            await database.create_tables()
            return await database.health_check()
        finally:
            await database.close()

    if url == "memory://":
        console.print("In-memory ledger needs no initialization")
        return

    if asyncio.run(_init()):
        console.print("✅ Database initialized successfully!")
    else:
        console.print("❌ Database health check failed!")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
