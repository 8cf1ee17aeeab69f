# display.py
# All terminal output for plan runs.
#
# The engine never formats strings itself; it calls named functions here.
# Everything in this module only reads plan state.
#
# Colour language:
#   cyan    : suites / section rules
#   green   : passed
#   red     : failures, response errors
#   yellow  : skips, schema mismatches

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from api_plan.models import Result, TestPlan, TestRun

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


def suite_start(name: str, parent: str | None = None) -> None:
    console.print()
    via = f" [dim](via {escape(parent)})[/dim]" if parent else ""
    console.print(Rule(f"[cyan]SUITE {escape(name)}[/cyan]{via}", style="cyan"))


def step_result(test: TestRun) -> None:
    if test.error is None:
        mark = "[bold green]✓[/bold green]"
    else:
        mark = "[bold red]✗[/bold red]"
    status = test.response.status_code if test.response is not None else "—"
    console.print(
        f"  {mark} [bold white]{test.method.upper():<6}[/bold white] {escape(test.path)}"
        f"  [dim]{escape(test.name)} → {status}[/dim]"
    )


def skipping(count: int) -> None:
    console.print(f"  [yellow]↳ Skipping {count} test(s)…[/yellow]")


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def log_errors(plan: TestPlan) -> None:
    """Schema mismatches first, then response errors, for every executed test."""
    console.print()
    console.print(Rule("[cyan]SchemaMismatches[/cyan]", style="cyan"))
    for test in plan.results:
        if test.schema_error is None:
            continue
        console.print(f"[cyan]{escape(test.path)}: {escape(test.name)}[/cyan]")
        console.print(f"[yellow]{escape(str(test.schema_error))}[/yellow]")

    console.print(Rule("[cyan]Errors[/cyan]", style="cyan"))
    for test in plan.results:
        if test.response_error is None:
            continue
        console.print(f"[cyan]{escape(test.path)}: {escape(test.name)}[/cyan]")
        if test.response is not None:
            console.print(f"[red]Response Status Code: {test.response.status_code}[/red]")
        console.print(f"[red]{escape(_mono(str(test.response_error), 2000))}[/red]")
    console.print(Rule(style="cyan"))


def print_summary(plan: TestPlan) -> None:
    counts = plan.result_counts
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Result", width=16)
    table.add_column("Count", justify="right", width=8)

    rows = [
        (Result.PASSED, counts[Result.PASSED], "green"),
        (Result.FAILED, counts[Result.FAILED], "red"),
        (Result.SKIPPED, counts[Result.SKIPPED], "yellow"),
        (Result.SCHEMA_MISMATCH, counts[Result.SCHEMA_MISMATCH], "yellow"),
        (Result.TOTAL, counts[Result.TOTAL], "cyan"),
        (Result.FUZZ_FAILS, len(plan.new_failures), "red"),
        (Result.FUZZ_TOTAL, counts[Result.FUZZ_TOTAL], "cyan"),
    ]
    for result, count, color in rows:
        table.add_row(f"[{color}]{result.value}[/{color}]", f"[{color}]{count}[/{color}]")

    console.print()
    console.print(
        Panel(
            table,
            title=_label("SUMMARY", "cyan"),
            border_style="dim",
            padding=(0, 1),
        )
    )


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
