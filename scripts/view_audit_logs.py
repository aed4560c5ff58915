#!/usr/bin/env python3
"""
Utility script to view recent audit logs and security events.
Usage: python -m scripts.view_audit_logs [limit]
"""

import sys

from rich import print as rprint
from rich.console import Console
from rich.table import Table
from sqlmodel import Session, col, select

from campusgate.audit.models import AuditLog, SecurityEvent, Severity
from campusgate.auth.database import get_engine
from campusgate.config import settings


console = Console()

SEVERITY_STYLE = {
    Severity.LOW: "green",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "red",
    Severity.CRITICAL: "bold red",
}


def _shorten(text, width: int = 50) -> str:
    if not text:
        return ""
    return text if len(text) <= width else text[: width - 3] + "..."


def view_logs(limit: int = 20):
    engine = get_engine(settings.DATABASE_URL)

    with Session(engine) as session:
        logs = session.exec(
            select(AuditLog).order_by(col(AuditLog.timestamp).desc()).limit(limit)
        ).all()
        events = session.exec(
            select(SecurityEvent).order_by(col(SecurityEvent.timestamp).desc()).limit(limit)
        ).all()

    rprint(f"[green]Connected to {engine.url.render_as_string(hide_password=True)}[/green]")

    table = Table(title=f"Audit Logs (Limit: {limit})")
    table.add_column("Time", style="cyan", no_wrap=True)
    table.add_column("Action", style="magenta")
    table.add_column("User", style="yellow")
    table.add_column("IP", style="blue")
    table.add_column("Status", style="green")
    table.add_column("Details", style="white")

    for row in logs:
        table.add_row(
            row.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            row.action,
            row.user_email or row.user_id or "-",
            row.ip_address,
            row.status.value,
            _shorten(row.details),
        )

    if logs:
        console.print(table)
    else:
        rprint("[yellow]No audit logs found.[/yellow]")

    table = Table(title=f"Security Events (Limit: {limit})")
    table.add_column("Time", style="cyan", no_wrap=True)
    table.add_column("Event", style="magenta")
    table.add_column("Severity")
    table.add_column("User", style="yellow")
    table.add_column("IP", style="blue")
    table.add_column("Details", style="white")

    for row in events:
        style = SEVERITY_STYLE.get(row.severity, "white")
        table.add_row(
            row.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            row.event_type,
            f"[{style}]{row.severity.value}[/{style}]",
            row.user_email or row.user_id or "-",
            row.ip_address,
            _shorten(row.details),
        )

    if events:
        console.print(table)
    else:
        rprint("[yellow]No security events found.[/yellow]")

    rprint(f"\n[dim]Showing {len(logs)} audit logs and {len(events)} security events.[/dim]")


if __name__ == "__main__":
    limit = 20
    if len(sys.argv) > 1:
        try:
            limit = int(sys.argv[1])
        except ValueError:
            rprint(f"[red]Invalid limit: {sys.argv[1]}[/red]")
            sys.exit(1)

    view_logs(limit)
