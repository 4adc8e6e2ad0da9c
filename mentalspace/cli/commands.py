"""CLI commands for MentalSpace scheduling."""

import asyncio
from datetime import date, datetime, time
from typing import List, Optional
from zoneinfo import ZoneInfo

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mentalspace.config import get_settings

app = typer.Typer(
    name="mentalspace",
    help="Appointment and recurring series scheduling for a mental-health practice",
    add_completion=False,
)
console = Console()


def _parse_date(value: str, option: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        console.print(f"[red]Invalid date for {option}: {value}. Use YYYY-MM-DD[/red]")
        raise typer.Exit(1)


@app.command()
def preview(
    pattern: str = typer.Option("Weekly", "--pattern", "-p", help="Weekly, Biweekly, Monthly or Custom"),
    start_date: str = typer.Option(..., "--start-date", "-s", help="First eligible date (YYYY-MM-DD)"),
    start_time: str = typer.Option("09:00", "--start-time", "-t", help="Wall-clock start (HH:MM)"),
    duration: int = typer.Option(50, "--duration", "-d", help="Session length in minutes"),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Number of occurrences"),
    end_date: Optional[str] = typer.Option(None, "--end-date", "-e", help="Last eligible date"),
    day_of_week: Optional[str] = typer.Option(None, "--day-of-week", help="Anchor weekday, e.g. Monday"),
    day_of_month: Optional[int] = typer.Option(None, "--day-of-month", help="Monthly anchor day"),
    week_of_month: Optional[int] = typer.Option(None, "--week-of-month", help="Monthly Nth weekday (5 = last)"),
    interval_days: Optional[int] = typer.Option(None, "--interval-days", help="Custom step in days"),
    skip: List[str] = typer.Option([], "--skip", help="Date to skip; may be repeated"),
):
    """Show the dates a recurrence would produce without booking anything."""
    from mentalspace.scheduling import RecurrenceRule, preview_dates

    settings = get_settings()
    try:
        rule = RecurrenceRule(
            recurrence_pattern=pattern,
            start_date=_parse_date(start_date, "--start-date"),
            start_time=time.fromisoformat(start_time),
            duration_minutes=duration,
            number_of_occurrences=count,
            end_date=_parse_date(end_date, "--end-date") if end_date else None,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
            use_week_of_month=week_of_month is not None,
            week_of_month=week_of_month,
            interval_days=interval_days,
            exceptions=[
                {"date": _parse_date(d, "--skip"), "reason": "Skipped"} for d in skip
            ],
        )
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid recurrence: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    if count is not None and count > settings.max_series_occurrences:
        console.print(
            f"[red]Invalid recurrence: --count may not exceed {settings.max_series_occurrences}[/red]"
        )
        raise typer.Exit(1)

    days = preview_dates(rule, ZoneInfo(settings.practice_timezone), settings.max_series_occurrences)

    table = Table(title=f"{rule.recurrence_pattern.value} series preview")
    table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("Weekday")
    table.add_column("Time")
    for i, day in enumerate(days, 1):
        table.add_row(str(i), day.isoformat(), day.strftime("%A"), rule.start_time.strftime("%H:%M"))
    console.print(table)
    console.print(f"{len(days)} occurrence(s)")


@app.command("complete-series")
def complete_series(
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Treat this ISO timestamp as now"),
):
    """Mark active series with no remaining future appointments as Completed."""
    from mentalspace.core.database import session_scope
    from mentalspace.scheduling import RecurringAppointmentService

    now = None
    if as_of:
        try:
            now = datetime.fromisoformat(as_of)
        except ValueError:
            console.print(f"[red]Invalid timestamp: {as_of}[/red]")
            raise typer.Exit(1)

    async def _run() -> int:
        async with session_scope() as session:
            completed = await RecurringAppointmentService(session).complete_exhausted_series(now)
            return len(completed)

    count = asyncio.run(_run())
    console.print(f"[green]Completed {count} series[/green]")


@app.command("init-db")
def init_database():
    """Create tables and seed the first admin when configured."""
    from mentalspace.core.database import init_db

    asyncio.run(init_db())
    console.print("[green]Database initialized[/green]")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting MentalSpace API server on {host}:{port}")
    uvicorn.run(
        "mentalspace.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version():
    """Show version information."""
    from mentalspace import __version__

    console.print(f"MentalSpace Scheduling v{__version__}")


if __name__ == "__main__":
    app()
