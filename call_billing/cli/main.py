"""
CLI interface for Call Billing.

Provides command-line access to call usage, bills and billing history.
"""

import logging
import sqlite3
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from call_billing.config.loader import BillingPlan, load_plan_config
from call_billing.core.billing import (
    UsageStatus,
    format_minutes,
    per_call_billable_minutes,
    total_billable_minutes
)
from call_billing.core.billing_period import MonthlyBill, compute_monthly_bill
from call_billing.core.date_filters import (
    filter_calls_by_date,
    range_label,
    range_options,
    range_to_day_count
)
from call_billing.core.period_close import close_billing_periods
from call_billing.core.stats import CallStats, compute_call_stats
from call_billing.storage.db import DEFAULT_DB_PATH
from call_billing.storage.models import CallRecord
from call_billing.storage.repository import CallRepository, initialize_schema, insert_calls

app = typer.Typer()
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1

STATUS_COLORS = {
    UsageStatus.SUCCESS: "green",
    UsageStatus.WARNING: "yellow",
    UsageStatus.DANGER: "red",
}

DB_OPTION = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to SQLite database file")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to billing plan YAML file")
RANGE_OPTION = typer.Option(
    "30",
    "--range",
    "-r",
    help=f"Date range: {', '.join(range_options())} or any number of days"
)


def get_repository(db_path: str) -> CallRepository:
    return CallRepository(db_path)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=level,
        stream=sys.stderr,
    )


def _resolve_plan(config_path: Optional[str], account_id: str) -> BillingPlan:
    if config_path is None:
        return BillingPlan()
    return load_plan_config(config_path).get_plan(account_id)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


def _handle_db_error(e: sqlite3.OperationalError) -> None:
    if "no such table" in str(e).lower():
        console.print("\n[bold yellow]No call data found[/]")
        console.print("Run `call-billing init` to initialize the database\n")
        sys.exit(EXIT_CODE_FAIL)
    _fail(str(e))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable DEBUG logging")
):
    """Call Billing CLI."""
    _setup_logging(verbose)
    if ctx.invoked_subcommand is None:
        console.print("Call Billing - Use --help to see available commands")


@app.command()
def init(db: str = DB_OPTION):
    """Initialize the Call Billing database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_OK)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("import-calls")
def import_calls(
    account: str = typer.Argument(..., help="Account the calls belong to"),
    path: Path = typer.Argument(..., help="YAML or JSON file with a list of calls"),
    db: str = DB_OPTION
):
    """Import call records from a YAML or JSON file."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw_calls = yaml.safe_load(f)
        if not isinstance(raw_calls, list):
            _fail(f"{path} must contain a list of calls")

        calls = []
        for index, item in enumerate(raw_calls):
            if not isinstance(item, dict):
                _fail(f"calls[{index}] must be a mapping")
            calls.append(CallRecord.from_dict(item, f"calls[{index}]"))

        count = insert_calls(calls, account, db)
        console.print(f"[green]✓[/] Imported {count} call(s) for {account}")
        sys.exit(EXIT_CODE_OK)
    except sqlite3.OperationalError as e:
        _handle_db_error(e)
    except (OSError, yaml.YAMLError, ValueError, sqlite3.Error) as e:
        _fail(str(e))


@app.command()
def calls(
    account: str = typer.Argument(..., help="Account to list calls for"),
    date_range: str = RANGE_OPTION,
    db: str = DB_OPTION
):
    """List calls in a date range with their billable minutes."""
    try:
        repository = get_repository(db)
        all_calls = repository.get_calls(account, days=0)
        selected = filter_calls_by_date(all_calls, date_range)
    except sqlite3.OperationalError as e:
        _handle_db_error(e)
    except (ValueError, sqlite3.Error) as e:
        _fail(str(e))

    console.print(f"\n[bold]Calls for {account}[/bold] - {range_label(date_range)}")

    if not selected:
        console.print("\n[dim]No calls in this date range.[/]\n")
        sys.exit(EXIT_CODE_OK)

    table = Table()
    table.add_column("Call")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Billable", justify="right")
    for call in selected:
        table.add_row(
            call.call_id,
            call.start_time.strftime("%Y-%m-%d %H:%M"),
            call.status.value,
            _format_duration(call.duration_seconds),
            format_minutes(per_call_billable_minutes(call.duration_seconds))
        )
    console.print(table)
    console.print(f"Total billable: {format_minutes(total_billable_minutes(selected))}\n")
    sys.exit(EXIT_CODE_OK)


@app.command()
def usage(
    account: str = typer.Argument(..., help="Account to bill"),
    config: Optional[str] = CONFIG_OPTION,
    db: str = DB_OPTION
):
    """Show plan usage and the bill for the current billing period."""
    try:
        plan = _resolve_plan(config, account)
        repository = get_repository(db)
        account_calls = repository.get_calls(account, days=0)
        bill = compute_monthly_bill(account_calls, plan)
    except sqlite3.OperationalError as e:
        _handle_db_error(e)
    except (OSError, yaml.YAMLError, ValueError, sqlite3.Error) as e:
        _fail(str(e))

    _display_monthly_bill(account, bill)
    sys.exit(EXIT_CODE_OK)


@app.command()
def stats(
    account: str = typer.Argument(..., help="Account to summarize"),
    date_range: str = RANGE_OPTION,
    config: Optional[str] = CONFIG_OPTION,
    db: str = DB_OPTION
):
    """Show call totals and charges for a date range."""
    try:
        plan = _resolve_plan(config, account)
        repository = get_repository(db)
        days = range_to_day_count(date_range)
        result = compute_call_stats(repository.get_calls(account, days=days), plan)
    except sqlite3.OperationalError as e:
        _handle_db_error(e)
    except (OSError, yaml.YAMLError, ValueError, sqlite3.Error) as e:
        _fail(str(e))

    _display_call_stats(account, range_label(date_range), result)
    sys.exit(EXIT_CODE_OK)


@app.command("close-periods")
def close_periods(
    config: str = typer.Option(..., "--config", "-c", help="Path to billing plan YAML file"),
    db: str = DB_OPTION
):
    """Save billing history for accounts whose billing period ended yesterday."""
    try:
        plan_config = load_plan_config(config)
        repository = get_repository(db)
        unplanned = [a for a in repository.list_accounts() if a not in plan_config.accounts]
        saved = close_billing_periods(plan_config, repository)
    except sqlite3.OperationalError as e:
        _handle_db_error(e)
    except (OSError, yaml.YAMLError, ValueError, sqlite3.Error) as e:
        _fail(str(e))

    for account in unplanned:
        console.print(f"[yellow]Warning:[/] {account} has calls but no billing plan; skipped")

    console.print(f"[green]✓[/] Saved {saved} billing record(s)")
    sys.exit(EXIT_CODE_OK)


@app.command()
def history(
    account: str = typer.Argument(..., help="Account to show billing history for"),
    db: str = DB_OPTION
):
    """Show saved billing history, newest month first."""
    try:
        records = get_repository(db).get_billing_history(account)
    except sqlite3.OperationalError as e:
        _handle_db_error(e)
    except sqlite3.Error as e:
        _fail(str(e))

    if not records:
        console.print(f"\n[dim]No billing history for {account}.[/]\n")
        sys.exit(EXIT_CODE_OK)

    table = Table(title=f"Billing history for {account}")
    table.add_column("Month")
    table.add_column("Minutes", justify="right")
    table.add_column("Included", justify="right")
    table.add_column("Overage", justify="right")
    table.add_column("Total", justify="right")
    for record in records:
        table.add_row(
            record.billing_month,
            f"{record.total_minutes:,}",
            f"{record.included_minutes:,}",
            f"{record.overage_minutes:,}",
            _format_currency(record.total_charge)
        )
    console.print(table)
    sys.exit(EXIT_CODE_OK)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def _display_monthly_bill(account: str, bill: MonthlyBill):
    """Display the monthly bill in a clean, financial format."""
    color = STATUS_COLORS[bill.usage_status]

    console.print(f"\n[bold]Monthly Plan Usage - {account}[/bold]")
    console.print(f"Billing period: {bill.period.label}")
    console.print("-" * 40)
    console.print(
        f"Used: {format_minutes(bill.billable_minutes)} / "
        f"{format_minutes(bill.included_minutes)} "
        f"[{color}]({bill.usage_percentage}%)[/]"
    )
    if bill.is_overage:
        console.print(
            f"[red]+{format_minutes(bill.overage_minutes)} overage[/] "
            f"at {_format_currency(bill.overage_rate)}/min"
        )
    else:
        console.print(f"Remaining: {format_minutes(bill.remaining_minutes)}")

    console.print(f"Monthly charge: {_format_currency(bill.monthly_charge)}")
    console.print(f"Overage charge: {_format_currency(bill.overage_charge)}")
    console.print(f"[bold]Total this period: {_format_currency(bill.total_monthly_bill)}[/bold]\n")


def _display_call_stats(account: str, label: str, result: CallStats):
    """Display call statistics for a date range."""
    console.print(f"\n[bold]Call Statistics - {account}[/bold] ({label})")
    console.print("-" * 40)
    console.print(f"Total calls: {result.total_calls:,}")
    console.print(f"Total duration: {_format_duration(result.total_duration)}")
    console.print(f"Billable minutes: {format_minutes(result.billable_minutes)}")
    console.print(
        f"Successful: {result.breakdown.successful}  "
        f"Transferred: {result.breakdown.transferred}  "
        f"Failed: {result.breakdown.failed}"
    )
    console.print(f"Total cost: {_format_currency(result.total_cost)}")
    if result.overage_minutes:
        console.print(
            f"[red]Overage: {format_minutes(result.overage_minutes)} "
            f"({_format_currency(result.overage_charge)})[/]"
        )
    console.print()


if __name__ == "__main__":
    app()
