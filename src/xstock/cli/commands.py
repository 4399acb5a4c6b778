"""CLI command definitions for the stock screening report generator."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from config import Config
from xstock.domain.errors import XStockError
from xstock.domain.models.stock import CompositeStockRecord
from xstock.domain.services import volatility as volatility_service
from xstock.settings.loader import load_settings
from xstock.utils.logging import configure_logging
from xstock.workflows.aggregator import BuildFailure
from xstock.workflows.pipeline import PipelineResult, ReportPipeline

console = Console()
app = typer.Typer(help="Aggregate A-share data into categorized Excel stock reports.")


@dataclass
class AppContext:
    """Holds reusable process-wide objects for CLI commands."""

    config: Config


@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: Optional[bool] = typer.Option(
        None,
        "--debug/--no-debug",
        help="Temporarily toggle verbose logging without touching environment variables.",
    ),
) -> None:
    """Attach configuration to Typer and configure logging."""
    config = load_settings(debug_override=debug)
    configure_logging(debug=config.debug)
    ctx.obj = AppContext(config=config)


def _pipeline(ctx: typer.Context, interval: Optional[str] = None, sequential: bool = False) -> ReportPipeline:
    if ctx.obj is None:
        raise typer.Exit(code=1)
    config = load_settings(
        debug_override=ctx.obj.config.debug,
        interval_override=interval,
        parallel_override=False if sequential else None,
    )
    return ReportPipeline(config)


def _read_codes(codes: List[str], from_file: Optional[Path]) -> List[str]:
    collected = list(codes)
    if from_file is not None:
        for line in from_file.read_text(encoding="utf-8").splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                collected.append(line)
    return collected


@app.command()
def export(
    ctx: typer.Context,
    codes: Optional[List[str]] = typer.Argument(None, help="Secucodes, e.g. 600000.SH 000001.SZ"),
    from_file: Optional[Path] = typer.Option(
        None, "--from-file", exists=True, dir_okay=False, help="Text file with one secucode per line."
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Workbook path (default: OUTPUT_DIR/xstock_<date>.xlsx)."),
    emit_json: bool = typer.Option(False, "--json", help="Also persist records and failures to JSON."),
    interval: Optional[str] = typer.Option(None, "--interval", help="Volatility interval: DAY, WEEK, MONTH or YEAR."),
    sequential: bool = typer.Option(False, "--sequential", help="Fetch each security's data one call at a time."),
) -> None:
    """Build records for every code, classify them and write the workbook."""
    all_codes = _read_codes(codes or [], from_file)
    if not all_codes:
        console.print("[red]No security codes given.[/red]")
        raise typer.Exit(code=2)

    with _pipeline(ctx, interval, sequential) as pipeline:
        config = pipeline.context.config
        console.rule(f"Building {len(all_codes)} securities")
        with console.status("[bold cyan]Fetching and aggregating..."):
            result = pipeline.run(all_codes)

        _print_views(result)
        if result.failures:
            _print_failures(result.failures)
        if not result.records:
            console.print("[bold red]No security could be built; nothing exported.[/bold red]")
            raise typer.Exit(code=1)

        config.ensure_directories()
        target = output or config.output_dir / f"xstock_{date.today():%Y%m%d}.xlsx"
        pipeline.export(result, target)
        console.print(f"Workbook available at {target}")
        if emit_json:
            state_path = pipeline.persist_state(result, target.with_suffix(".json"))
            console.print(f"State saved to {state_path}")


@app.command()
def inspect(
    ctx: typer.Context,
    code: str = typer.Argument(..., help="Secucode, e.g. 600000.SH"),
    interval: Optional[str] = typer.Option(None, "--interval", help="Volatility interval."),
) -> None:
    """Build a single record and print its key fields."""
    with _pipeline(ctx, interval) as pipeline:
        try:
            identity = pipeline.context.eastmoney.fetch_stock_identity(code.strip().upper())
            record = pipeline.context.aggregator.build(identity)
        except (XStockError, ValueError) as exc:
            console.print(f"[bold red]{code}: {exc}[/bold red]")
            raise typer.Exit(code=1) from exc
    _print_record(record)


@app.command()
def volatility(
    ctx: typer.Context,
    code: str = typer.Argument(..., help="Secucode, e.g. 600000.SH"),
    interval: str = typer.Option("YEAR", "--interval", help="Volatility interval."),
) -> None:
    """Print the historical volatility of one security."""
    with _pipeline(ctx) as pipeline:
        try:
            series = pipeline.context.eniu.fetch_price_history(code.strip().upper())
            value = volatility_service.estimate(series, interval)
        except (XStockError, ValueError) as exc:
            console.print(f"[bold red]{code}: {exc}[/bold red]")
            raise typer.Exit(code=1) from exc
    console.print(f"{code} {interval.upper()} volatility over {len(series)} prices: [bold]{value:.4f}[/bold]")


@app.command()
def managers(
    ctx: typer.Context,
    fund_type: str = typer.Option("all", "--type", help="all, gp (equity), hh (mixed), zq (bond) or sy (income)."),
    sort_column: str = typer.Option(
        "penavgrowth", "--sort", help="abbname, jjgspy, totaldays, netnav or penavgrowth."
    ),
    order: str = typer.Option("desc", "--order", help="asc or desc."),
    page: int = typer.Option(1, "--page", min=1, help="Result page to fetch."),
) -> None:
    """List one page of the Tiantian Fund manager ranking."""
    with _pipeline(ctx) as pipeline:
        try:
            rows = pipeline.context.eastmoney.fetch_fund_managers(fund_type, sort_column, order, page=page)
        except (XStockError, ValueError) as exc:
            console.print(f"[bold red]{exc}[/bold red]")
            raise typer.Exit(code=1) from exc

    table = Table(show_header=True, header_style="bold magenta", title="Fund Managers")
    table.add_column("Name")
    table.add_column("Company")
    table.add_column("Days", justify="right")
    table.add_column("Best Return %", justify="right")
    table.add_column("Best Fund")
    table.add_column("Scale (亿元)", justify="right")
    for manager in rows:
        table.add_row(
            manager.name,
            manager.company_name,
            str(manager.working_days),
            f"{manager.current_best_return:.2f}",
            f"{manager.current_best_fund_name} ({manager.current_best_fund_code})",
            f"{manager.current_fund_scale:.2f}",
        )
    console.print(table)


@app.command()
def plan(ctx: typer.Context) -> None:
    """Display the per-security aggregation steps for quick operator reference."""
    with _pipeline(ctx) as pipeline:
        table = Table(title="Aggregation Steps")
        table.add_column("Step", style="cyan")
        table.add_column("Description")
        for idx, step in enumerate(pipeline.describe_steps(), start=1):
            table.add_row(str(idx), step)
    console.print(table)


def _print_views(result: PipelineResult) -> None:
    table = Table(show_header=True, header_style="bold magenta", title="Report Views")
    table.add_column("View")
    table.add_column("Stocks", justify="right")
    for name, records in result.views.items():
        table.add_row(name, str(len(records)))
    console.print(table)


def _print_failures(failures: List[BuildFailure]) -> None:
    table = Table(show_header=True, header_style="bold red", title="Skipped Securities")
    table.add_column("Code")
    table.add_column("Step")
    table.add_column("Reason")
    for failure in failures:
        table.add_row(failure.security_code, failure.step or "?", failure.reason)
    console.print(table)


def _print_record(record: CompositeStockRecord) -> None:
    """Pretty-print a short record summary for operators."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key")
    table.add_column("Value")

    latest = record.financial_history[0] if record.financial_history else None
    table.add_row("Code", record.security_code)
    table.add_row("Name", record.name)
    table.add_row("Industry", record.industry)
    table.add_row("Price", f"{record.price:.2f}")
    table.add_row("ROE", "N/A" if record.roe is None else f"{record.roe:.2f}")
    table.add_row("Fair Price", f"{record.fair_price:.2f}" if record.has_fair_price else "undetermined")
    table.add_row("Volatility", f"{record.volatility:.4f}")
    table.add_row("Valuation Score", f"{record.valuation_status.score:.2f}")
    for name, label in record.valuation_status.multiples.items():
        table.add_row(f"  {name}", label)
    eps = "N/A" if latest is None or latest.eps is None else f"{latest.eps:.3f}"
    table.add_row("Latest EPS", eps if latest is None else f"{eps} ({latest.report_date})")
    table.add_row("Next Disclosure", record.next_disclosure_date or "N/A")
    table.add_row("Ratings", str(len(record.ratings)))
    table.add_row("Forecasts", ", ".join(f"{f.year}: {f.eps}" for f in record.forecasts) or "N/A")

    console.print(table)
