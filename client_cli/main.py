from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional
from pathlib import Path
import json
import os

import typer
from rich.console import Console
from rich.table import Table
import httpx


app = typer.Typer()
console = Console()
trace_console = Console(stderr=True)


def iter_events(lines: Iterator[Any]) -> Iterator[Dict[str, Any]]:
    """Decode ``data: <json>`` lines of an event stream into payloads."""
    for raw_line in lines:
        if not raw_line:
            continue
        line = raw_line.decode("utf-8") if isinstance(raw_line, (bytes, bytearray)) else raw_line
        line = line.strip()
        if not line.startswith("data:"):
            continue
        try:
            yield json.loads(line[len("data:"):].strip())
        except json.JSONDecodeError:
            # Not JSON; ignore
            continue


def day_table(day: Dict[str, Any], preserved: bool = False) -> Table:
    title = f"Day {day.get('dayNumber')} - {day.get('city', '')} ({day.get('date', '')})"
    if preserved:
        title += " (kept)"
    table = Table(title=title, title_justify="left")
    table.add_column("Time", style="cyan", no_wrap=True)
    table.add_column("Place", style="bold")
    table.add_column("Category")
    table.add_column("Min", justify="right")
    table.add_column("Then")
    for place in day.get("places", []):
        leg = place.get("transportToNext") or {}
        then = f"{leg.get('mode')} {leg.get('duration')} min" if leg else ""
        table.add_row(
            place.get("startTime") or "-",
            place.get("name", ""),
            place.get("category", ""),
            str(place.get("duration", "")),
            then,
        )
    return table


@app.command()
def cli(
    smart: bool = typer.Option(False, "--smart", help="Keep past days and regenerate from now on."),
    legacy: bool = typer.Option(False, "--legacy", help="Skip the two-phase planner and go day by day."),
    existing: Optional[Path] = typer.Option(
        None, "--existing", help="JSON file with previously generated days (a list or {\"days\": [...]})."
    ),
    visited: Optional[List[str]] = typer.Option(None, "--visited", "-v", help="A place already visited."),
    now: Optional[str] = typer.Option(None, "--now", help="Pretend the current time is this ISO-8601 value."),
    output_file: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the trip as JSON."),
) -> None:
    orchestrator_url = os.getenv("ORCHESTRATOR_URL", "http://localhost:3002")
    url = f"{orchestrator_url.rstrip('/')}/generate-itinerary-stream"
    headers = {"Accept": "text/event-stream", "Content-Type": "application/json"}
    if os.getenv("ORCHESTRATOR_API_KEY"):
        headers["X-API-KEY"] = os.environ["ORCHESTRATOR_API_KEY"]

    existing_days: List[Dict[str, Any]] = []
    if existing:
        try:
            loaded = json.loads(existing.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            trace_console.print(f"Could not read {existing}: {e}", style="bold red")
            raise typer.Exit(code=1)
        existing_days = loaded.get("days", []) if isinstance(loaded, dict) else loaded

    body: Dict[str, Any] = {
        "smartRegeneration": smart,
        "existingDays": existing_days,
        "useTwoPhase": not legacy,
        "visitedPlaces": visited or [],
    }
    if now:
        body["currentTime"] = now

    days: Dict[int, Dict[str, Any]] = {}
    summary: Optional[Dict[str, Any]] = None
    failed = False
    with console.status("Planning your trip..."):
        try:
            with httpx.stream("POST", url, json=body, headers=headers, timeout=None) as resp:
                resp.raise_for_status()
                for payload in iter_events(resp.iter_lines()):
                    ptype = payload.get("type")
                    if ptype == "progress":
                        progress = payload.get("progress") or {}
                        trace_console.print(
                            f"{payload.get('phase')}: {payload.get('message')} "
                            f"({progress.get('current')}/{progress.get('total')})",
                            style="dim",
                        )
                    elif ptype == "day":
                        day = payload.get("day") or {}
                        days[day.get("dayNumber")] = day
                        console.print(day_table(day, preserved=bool(payload.get("preserved"))))
                    elif ptype == "complete":
                        summary = payload.get("summary") or {}
                        break
                    elif ptype == "error":
                        trace_console.print(payload.get("error", "Unknown error"), style="bold red")
                        failed = True
                        break
                    # ignore other types
        except httpx.HTTPError as e:
            trace_console.print(f"Request failed: {e}", style="bold red")
            raise typer.Exit(code=1)

    if summary is not None:
        console.print(
            f"AI days: {summary.get('aiGeneratedCount', 0)}, fallback days: {summary.get('fallbackCount', 0)}, "
            f"kept: {summary.get('preservedCount', 0)}",
            style="green",
        )
        for dup in summary.get("duplicates", []):
            console.print(f"Repeated: {dup.get('location')} on days {dup.get('days')}", style="yellow")
        if summary.get("deadlineExceeded"):
            console.print("Ran out of time; some days use fallback plans.", style="yellow")

    if output_file and days:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        trip = {"days": [days[n] for n in sorted(days)], "summary": summary}
        output_file.write_text(json.dumps(trip, indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"Saved trip to {output_file}", style="green")

    if failed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
