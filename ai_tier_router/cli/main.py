"""
CLI interface for AI Tier Router.

Provides command-line access to routing, credits and usage reporting.
"""

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ai_tier_router.core.complexity import ComplexityAnalyzer
from ai_tier_router.core.credits import CreditGate
from ai_tier_router.core.logging import configure_logging
from ai_tier_router.core.request import Context, ExecutionResult, Request
from ai_tier_router.core.tiers import RequestKind
from ai_tier_router.sdk.openai_client import build_router
from ai_tier_router.storage.db import DEFAULT_DB_PATH, initialize_schema
from ai_tier_router.storage.repository import SqliteCreditLedger, UsageRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DB_OPTION = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the SQLite database")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
):
    """AI Tier Router CLI."""
    configure_logging(log_level, json_output=json_logs)
    if ctx.invoked_subcommand is None:
        console.print("AI Tier Router - Use --help to see available commands")


@app.command()
def init(db: str = DB_OPTION):
    """Initialize the AI Tier Router database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def analyze(prompt: str = typer.Argument(..., help="Prompt to score")):
    """Show the complexity score and matched factors for a prompt."""
    score = ComplexityAnalyzer().analyze(prompt)

    console.print(f"\n[bold]Score:[/bold] {score.score}")
    console.print(f"[bold]Tier:[/bold] {score.tier.value}")
    console.print(f"[bold]Confidence:[/bold] {score.confidence:.2f}")

    if score.factors:
        table = Table(title="Factors")
        table.add_column("#", justify="right")
        table.add_column("Factor")
        for index, factor in enumerate(score.factors, start=1):
            table.add_row(str(index), factor)
        console.print(table)
    else:
        console.print("\n[dim]No complexity factors matched.[/]")


@app.command()
def route(
    prompt: str = typer.Argument(..., help="Prompt to route"),
    caller: str = typer.Option(..., "--caller", "-c", help="Caller identity to charge"),
    kind: RequestKind = typer.Option(RequestKind.GENERAL, "--kind", "-k", help="Request kind"),
    department: Optional[str] = typer.Option(None, "--department", "-d", help="Department context"),
    force_high_tier: bool = typer.Option(False, "--force-high-tier", help="Serve at the thinker tier"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to router YAML config"),
    db: str = DB_OPTION,
):
    """Route a prompt through the tiered models."""
    try:
        request = Request(
            prompt=prompt,
            caller_id=caller,
            request_kind=kind,
            context=Context(department=department) if department else None,
            force_high_tier=force_high_tier,
        )
        result = asyncio.run(_execute(request, config, db))
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_result(result)
    sys.exit(EXIT_CODE_PASS if result.success else EXIT_CODE_FAIL)


async def _execute(request: Request, config_path: Optional[str], db_path: str) -> ExecutionResult:
    async with build_router(config_path, db_path) as engine:
        return await engine.execute(request)


def _display_result(result: ExecutionResult):
    """Display an execution result."""
    status = "[green]success[/]" if result.success else "[red]failed[/]"
    console.print(f"\n[bold]Status:[/bold] {status}")
    console.print(f"[bold]Tier:[/bold] {result.tier.value}" + (" (escalated)" if result.escalated else ""))
    if result.model:
        console.print(f"[bold]Model:[/bold] {result.model}")
    console.print(f"[bold]Credits charged:[/bold] {result.credits_charged}")
    console.print(f"[bold]Elapsed:[/bold] {result.elapsed_ms}ms")

    if result.success:
        console.print(f"\n{result.content}")
    else:
        console.print(f"\n[red]{result.error_kind.value if result.error_kind else 'error'}:[/] {result.error}")


@app.command()
def credits(
    caller: str = typer.Argument(..., help="Caller identity"),
    add: Optional[int] = typer.Option(None, "--add", "-a", help="Credits to add"),
    db: str = DB_OPTION,
):
    """Show or top up a caller's credit balance."""
    try:
        initialize_schema(db)
        gate = CreditGate(SqliteCreditLedger(db))
        if add is not None:
            balance = asyncio.run(gate.add(caller, add))
            console.print(f"[green]✓[/] Added {add} credits")
        else:
            balance = asyncio.run(gate.balance(caller))
        console.print(f"[bold]{caller}[/bold] balance: {balance}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def usage(
    caller: str = typer.Argument(..., help="Caller identity"),
    db: str = DB_OPTION,
):
    """Show usage statistics for a caller."""
    try:
        initialize_schema(db)
        stats = UsageRepository(db).get_usage_stats(caller)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if stats["total_requests"] == 0:
        console.print(f"\n[bold yellow]No usage recorded for {caller}[/]")
        sys.exit(EXIT_CODE_PASS)

    console.print(f"\n[bold]Usage for {caller}[/bold]")
    console.print("-" * 40)
    console.print(f"Total requests: {stats['total_requests']}")
    console.print(f"Credits used: {stats['total_credits_used']}")
    console.print(f"Success rate: {stats['success_rate']:.1%}")

    for title, counts in (("By tier", stats["by_tier"]), ("By kind", stats["by_kind"])):
        table = Table(title=title)
        table.add_column("Name")
        table.add_column("Requests", justify="right")
        for name, count in counts.items():
            table.add_row(name, str(count))
        console.print(table)

    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
