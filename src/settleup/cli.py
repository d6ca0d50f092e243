"""CLI for SettleUp using Typer."""

import logging
import sys
from decimal import Decimal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .db import Database
from .models import BalanceResult, ManualExchangeRate
from .providers import JsonDataProvider
from .service import BalanceService

app = typer.Typer(
    name="settleup",
    help="Work out who owes whom from shared expenses",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def format_money(amount: Decimal, currency: str) -> str:
    """Format an amount with thousands separators and its currency code."""
    return f"{amount:,.2f} {currency}"


@app.command()
def balances(
    data: Path = typer.Option(
        ..., "--data", "-d", help="JSON file with expenses and settlements"
    ),
    simplified: bool = typer.Option(
        False, "--simplified", "-s", help="Show the simplified payment plan"
    ),
    currency: str | None = typer.Option(
        None, "--currency", help="Target currency (defaults to SETTLEUP_DEFAULT_CURRENCY)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show who owes whom.

    The direct view lists every pair with the expenses behind it; use
    --simplified for the shortest payment plan that settles everyone.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = BalanceService(settings, db)

        provider = JsonDataProvider(data)
        result = service.load_balances(
            provider,
            simplified=simplified,
            target_currency=currency.upper() if currency else None,
        )

        if result is None:
            console.print("\n[bold red]Failed to load balances[/bold red]")
            sys.exit(1)

        display_balances(result, simplified)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def rate(
    from_currency: str = typer.Argument(..., help="Source currency code"),
    to_currency: str = typer.Argument(..., help="Target currency code"),
    manual_rate: float | None = typer.Option(
        None, "--manual-rate", help="Hand-entered FROM->TO rate to use instead"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show the exchange rate between two currencies."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = BalanceService(settings, db)

        manual = (
            ManualExchangeRate(
                from_currency=from_currency.upper(),
                to_currency=to_currency.upper(),
                rate=Decimal(str(manual_rate)),
            )
            if manual_rate
            else None
        )
        value = service.converter.get_exchange_rate(
            from_currency.upper(), to_currency.upper(), manual
        )
        console.print(
            f"1 {from_currency.upper()} = [bold]{value}[/bold] {to_currency.upper()}"
        )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def convert(
    amount: str = typer.Argument(..., help="Amount to convert"),
    from_currency: str = typer.Argument(..., help="Source currency code"),
    to_currency: str = typer.Argument(..., help="Target currency code"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Convert an amount between currencies."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = BalanceService(settings, db)

        converted = service.converter.convert_amount(
            Decimal(amount), from_currency.upper(), to_currency.upper()
        )
        console.print(
            f"{format_money(Decimal(amount), from_currency.upper())} = "
            f"[bold]{format_money(converted, to_currency.upper())}[/bold]"
        )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


def display_balances(result: BalanceResult, simplified: bool):
    """Display balances in a table, with expense breakdowns in the direct view."""
    title = "Simplified Payments" if simplified else "Balances"

    if not result.balances:
        console.print("\n[green]✓ Everyone is settled up[/green]")
    else:
        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("From", style="cyan")
        table.add_column("To", style="cyan")
        table.add_column("Amount", justify="right")

        for entry in result.balances:
            table.add_row(
                entry.from_person.name or "Unknown",
                entry.to_person.name or "Unknown",
                format_money(entry.amount, entry.currency),
            )

        console.print()
        console.print(table)

    if not simplified:
        for entry in result.balances:
            if not entry.expenses:
                continue
            console.print(
                f"\n[bold]{entry.from_person.name} → {entry.to_person.name}[/bold]"
            )
            for contribution in entry.expenses:
                console.print(
                    f"  {str(contribution.expense_date or ''):<10}  "
                    f"{contribution.description:<30} "
                    f"[dim]share {contribution.split_amount:,.2f} "
                    f"of {contribution.amount:,.2f}[/dim]"
                )

    console.print()
    console.print("[bold]Summary:[/bold]")
    console.print(
        f"  Total expenses: {format_money(result.total_expenses, result.currency)}"
    )
    console.print(f"  Entries: {len(result.balances)}")


if __name__ == "__main__":
    app()
