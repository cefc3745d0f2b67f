"""
Rich-based terminal rendering of EV opportunities.

Provides:
- An opportunities table sorted by EV
- Explanation bullets for the best opportunity
- Run summary and scheduled job status
- A live-updating view for scheduler mode
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ev_bets.betting.ev_calculator import EVOpportunity, generate_explanation

logger = logging.getLogger(__name__)


def _ev_style(ev_percent: float) -> str:
    if ev_percent >= 10:
        return "bold green"
    if ev_percent >= 5:
        return "green"
    if ev_percent >= 0:
        return "yellow"
    return "red"


def _rate_style(rate: float) -> str:
    return "green" if rate >= 60 else "yellow" if rate >= 40 else "red"


def _validation_text(opportunity: EVOpportunity) -> str:
    validation = opportunity.validation
    if not validation:
        return "[dim]--[/dim]"

    kind = validation.get("kind")
    if kind == "btts":
        rate = validation.get("combined_rate", 0)
        style = _rate_style(rate)
        return f"[{style}]BTTS {rate}%[/{style}]"
    if kind == "match_result":
        return (
            f"H {validation.get('home_win_rate', 0)}% "
            f"D {validation.get('draw_rate', 0)}% "
            f"A {validation.get('away_win_rate', 0)}%"
        )

    rate = validation.get("hit_rate", 0)
    style = _rate_style(rate)
    return (
        f"[{style}]{validation.get('hits', 0)}/"
        f"{validation.get('matches_checked', 0)} ({rate}%)[/{style}]"
    )


def render_opportunities_table(
    opportunities: Sequence[EVOpportunity],
    title: str = "EV Opportunities",
    limit: Optional[int] = None,
) -> Table:
    """Opportunities table, highest EV first."""
    table = Table(
        title=title,
        show_header=True,
        header_style="bold cyan",
        border_style="dim",
        expand=True,
    )

    table.add_column("Fixture", style="white", no_wrap=True)
    table.add_column("Market", style="white")
    table.add_column("Selection", style="white")
    table.add_column("Book", style="dim")
    table.add_column("Odds", justify="right")
    table.add_column("Fair", justify="right")
    table.add_column("EV", justify="right")
    table.add_column("Books", justify="right", style="dim")
    table.add_column("Hist.", justify="center")

    ranked = sorted(opportunities, key=lambda o: o.ev_percent, reverse=True)
    if limit is not None:
        ranked = ranked[:limit]

    if not ranked:
        table.add_row("[dim]No opportunities found[/dim]", "", "", "", "", "", "", "", "")
        return table

    for opp in ranked:
        best = opp.best_ev
        fixture = (
            f"{opp.home_team} vs {opp.away_team}"
            if opp.home_team and opp.away_team
            else opp.fixture_id
        )
        selection = opp.selection
        if opp.line is not None and f"{opp.line:g}" not in selection:
            selection = f"{selection} {opp.line:g}"
        style = _ev_style(best.ev_percent)

        table.add_row(
            fixture[:30],
            opp.market[:24],
            selection[:30],
            best.target_book_name[:12],
            f"{best.offered_odds:.2f}",
            f"{best.fair_odds:.2f}",
            f"[{style}]{best.ev_percent:+.1f}%[/{style}]",
            str(opp.book_count),
            _validation_text(opp),
        )

    return table


def render_explanation(opportunity: EVOpportunity) -> Panel:
    """Explanation bullets for one opportunity."""
    lines = [f"- {bullet}" for bullet in generate_explanation(opportunity)]
    return Panel(
        Text("\n".join(lines)),
        title=opportunity.summary(),
        border_style="green",
    )


def render_run_summary(result: Any) -> Panel:
    """Counts and errors of one pipeline run."""
    lines = [
        f"[bold]Fixtures:[/bold] {result.fixtures_processed}",
        f"[bold]Opportunities:[/bold] [green]{result.opportunities_found}[/green]",
    ]
    if result.duration_seconds is not None:
        lines.append(f"[bold]Duration:[/bold] {result.duration_seconds:.1f}s")
    if result.errors:
        lines.append(f"[bold]Errors:[/bold] [red]{len(result.errors)}[/red]")
        lines.extend(f"  [red]{error}[/red]" for error in result.errors[:5])

    return Panel(Text.from_markup("\n".join(lines)), title="Run", border_style="cyan")


def render_job_status(job_status: dict[str, dict]) -> Table:
    table = Table(
        show_header=True,
        header_style="dim",
        border_style="dim",
        expand=True,
        box=None,
    )

    table.add_column("Job", style="white")
    table.add_column("Status", justify="center")
    table.add_column("Last Run", justify="right")
    table.add_column("Next Run", justify="right")

    for job_id, status in job_status.items():
        last_status = status.get("last_status", "pending")
        if last_status == "success":
            status_text = "[green]OK[/green]"
        elif last_status == "error":
            status_text = "[red]ERR[/red]"
        else:
            status_text = "[dim]--[/dim]"

        last_run = status.get("last_run")
        last_str = last_run.strftime("%H:%M:%S") if last_run else "[dim]never[/dim]"
        next_run = status.get("next_run")
        next_str = next_run.strftime("%H:%M:%S") if next_run else "[dim]paused[/dim]"

        table.add_row(status.get("name", job_id)[:20], status_text, last_str, next_str)

    return table


class TerminalDashboard:
    """
    Terminal output for the CLI.

    `print_run` is used by single-pass mode; `run` keeps a live view of
    the scheduler's latest results until shutdown.

    Example:
        >>> dashboard = TerminalDashboard(store, scheduler)
        >>> await dashboard.run(shutdown_event)
    """

    def __init__(
        self,
        store: Any,
        scheduler: Optional[Any] = None,
        console: Optional[Console] = None,
        limit: int = 25,
    ):
        self.store = store
        self.scheduler = scheduler
        self.console = console or Console()
        self.limit = limit
        self._running = False

    def print_run(self, result: Any, opportunities: Sequence[EVOpportunity]) -> None:
        """Print a run summary, the table and the best opportunity's bullets."""
        self.console.print(render_run_summary(result))
        self.console.print(render_opportunities_table(opportunities, limit=self.limit))
        if opportunities:
            best = max(opportunities, key=lambda o: o.ev_percent)
            self.console.print(render_explanation(best))

    def _latest_opportunities(self) -> list[EVOpportunity]:
        if self.scheduler is None:
            return []
        result = self.scheduler.get_last_result()
        if result is None:
            return []
        return self.store.get_opportunities(result.opportunity_ids)

    def _render_header(self) -> Panel:
        now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        status_parts = ["[bold white]EV BETS[/bold white]", "[dim]|[/dim]", f"[cyan]{now}[/cyan]"]

        if self.scheduler:
            status = self.scheduler.get_status()
            running = (
                "[green]Scheduler: Running[/green]"
                if self.scheduler.is_running
                else "[red]Scheduler: Stopped[/red]"
            )
            status_parts.extend(["[dim]|[/dim]", running])
            status_parts.extend([
                "[dim]|[/dim]",
                f"Fixtures: {status['fixtures_processed']}",
                f"Opportunities: {status['opportunities_found']}",
            ])
            if status["last_error"]:
                status_parts.extend(["[dim]|[/dim]", f"[red]{status['last_error'][:60]}[/red]"])

        return Panel(Text.from_markup(" ".join(status_parts)), style="bold", border_style="blue")

    def _build_layout(self) -> Layout:
        layout = Layout()
        layout.split(
            Layout(name="header", size=3),
            Layout(name="main", ratio=1),
            Layout(name="footer", size=6),
        )
        return layout

    def _update_layout(self, layout: Layout) -> None:
        opportunities = self._latest_opportunities()
        main = [render_opportunities_table(opportunities, limit=self.limit)]
        if opportunities:
            main.append(render_explanation(max(opportunities, key=lambda o: o.ev_percent)))

        layout["header"].update(self._render_header())
        layout["main"].update(Group(*main))
        if self.scheduler:
            layout["footer"].update(
                Panel(
                    render_job_status(self.scheduler.get_job_status()),
                    title="Scheduled Jobs",
                    border_style="blue",
                )
            )
        else:
            layout["footer"].update(
                Panel("[dim]Scheduler not running[/dim]", title="Jobs", border_style="dim")
            )

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """
        Start the live view with auto-refresh.

        Args:
            shutdown_event: Event to signal shutdown
        """
        self._running = True
        layout = self._build_layout()

        logger.info("Starting terminal dashboard...")

        with Live(layout, console=self.console, refresh_per_second=1, screen=True):
            while not shutdown_event.is_set():
                try:
                    self._update_layout(layout)
                    await asyncio.sleep(1)
                except Exception as e:
                    logger.error(f"Dashboard update error: {e}")
                    await asyncio.sleep(5)

        self._running = False
        logger.info("Terminal dashboard stopped")

    async def stop(self) -> None:
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running
