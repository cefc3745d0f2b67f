"""
Terminal output for EV Bets.

Example:
    >>> from ev_bets.dashboard import TerminalDashboard
    >>> dashboard = TerminalDashboard(store, scheduler)
    >>> await dashboard.run(shutdown_event)
"""

from .terminal import (
    TerminalDashboard,
    render_explanation,
    render_job_status,
    render_opportunities_table,
    render_run_summary,
)

__all__ = [
    "TerminalDashboard",
    "render_explanation",
    "render_job_status",
    "render_opportunities_table",
    "render_run_summary",
]
