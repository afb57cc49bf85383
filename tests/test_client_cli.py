from rich.console import Console

from client_cli.main import day_table, iter_events


def test_iter_events_skips_noise():
    lines = [b"", b": keep-alive", b'data: {"type": "progress"}', "data: not json", 'data: {"type": "complete"}']
    assert [e["type"] for e in iter_events(iter(lines))] == ["progress", "complete"]


def test_day_table_lists_places():
    day = {
        "dayNumber": 2,
        "city": "Lisbon",
        "date": "2025-11-22",
        "places": [
            {"name": "Castle", "category": "landmark", "duration": 90, "startTime": "09:00",
             "transportToNext": {"mode": "walk", "duration": 15}},
            {"name": "Zoo", "category": "zoo", "duration": 120},
        ],
    }
    console = Console(record=True, width=120)
    console.print(day_table(day, preserved=True))
    text = console.export_text()
    assert "Day 2 - Lisbon (2025-11-22) (kept)" in text
    assert "walk 15 min" in text
    assert "Zoo" in text
