"""
CLI interface for NexusPay.
"""

import click
import uvicorn
from loguru import logger
from rich.console import Console
from rich.table import Table

from nexuspay.config.settings import settings
from nexuspay.ramp.fees import FeeCalculator
from nexuspay.ramp.types import PaymentMethod, UserTier
from nexuspay.utils.logging import setup_logging

console = Console()

PAYMENT_METHODS = [method.value for method in PaymentMethod]
TIERS = [tier.value for tier in UserTier]


@click.group()
@click.version_option(version=settings.app_version)
def app():
    """NexusPay ramp and webhook relay CLI."""
    setup_logging("nexuspay-cli", settings.logging.level, enable_json=settings.logging.json_logs)


@app.command()
@click.option("--host", default=settings.app_host, help="Host to bind to")
@click.option("--port", default=settings.app_port, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--webhooks-only", is_flag=True, help="Serve only the callback relay routes")
def serve(host: str, port: int, reload: bool, webhooks_only: bool):
    """Start the API server."""
    target = "nexuspay.webhooks.api:create_standalone_app" if webhooks_only else "nexuspay.api.main:create_app"
    logger.info(f"Starting {'webhook relay' if webhooks_only else settings.app_name} on {host}:{port}")
    uvicorn.run(
        target,
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.logging.level.lower(),
    )


@app.group()
def db():
    """Database management commands."""


@db.command("init")
@click.option("--reset", is_flag=True, help="Drop existing tables first")
def db_init(reset: bool):
    """Create database tables."""
    from nexuspay.core.database import get_db_manager

    manager = get_db_manager()
    if reset:
        click.confirm("Drop all ramp data?", abort=True)
        manager.drop_tables()
    manager.create_tables()
    health = manager.health_check()
    console.print(f"[green]Tables created[/green] ({health['dialect']}, {health['status']})")


@app.group()
def fees():
    """Fee engine commands."""


@fees.command("quote")
@click.argument("amount", type=float)
@click.option("--method", "payment_method", type=click.Choice(PAYMENT_METHODS), default="bank_transfer")
@click.option("--tier", default=UserTier.TIER_1.value, help="Loyalty tier (unknown tiers get no loyalty discount)")
def fees_quote(amount: float, payment_method: str, tier: str):
    """Show the fee breakdown for AMOUNT."""
    if amount <= 0:
        raise click.BadParameter("amount must be greater than 0", param_hint="AMOUNT")

    breakdown = FeeCalculator().calculate_fees(amount, payment_method, tier)

    table = Table(title=f"Fees for {amount:,.2f} via {payment_method} ({tier})")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    table.add_row("Fee percentage", f"{breakdown.fee_percentage}%")
    table.add_row("Fee amount", f"{breakdown.fee_amount:,.2f}")
    table.add_row("Total amount", f"{breakdown.total_amount:,.2f}")
    console.print(table)


@fees.command("savings")
@click.argument("amount", type=float)
@click.argument("current_tier")
@click.argument("next_tier")
def fees_savings(amount: float, current_tier: str, next_tier: str):
    """Compare bank-transfer fees for AMOUNT between two tiers."""
    projection = FeeCalculator().calculate_potential_savings(amount, current_tier, next_tier)

    table = Table(title=f"Savings on {amount:,.2f} moving {current_tier} -> {next_tier}")
    table.add_column("Current fees", justify="right")
    table.add_column("Potential fees", justify="right")
    table.add_column("Savings", justify="right", style="green")
    table.add_row(
        f"{projection.current_fees:,.2f}",
        f"{projection.potential_fees:,.2f}",
        f"{projection.savings:,.2f}",
    )
    console.print(table)


@app.command()
def check():
    """Validate application and webhook relay configuration."""
    from nexuspay.webhooks.config import WebhookConfig

    results = {
        "application": settings.validate_configuration(),
        "webhook relay": WebhookConfig().validate(),
    }

    failed = False
    for name, result in results.items():
        status = "[green]valid[/green]" if result["valid"] else "[red]invalid[/red]"
        console.print(f"{name}: {status}")
        for error in result["errors"]:
            console.print(f"  [red]error[/red] {error}")
        for warning in result["warnings"]:
            console.print(f"  [yellow]warning[/yellow] {warning}")
        failed = failed or not result["valid"]

    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    app()
