#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
from io import StringIO

from rich.console import Console

from cadence.apps_implementation.events import Event
from cadence.apps_implementation.occurrences import Occurrence, OccurrenceStatus
from cadence.interactive.display import display_occurrences, occurrences_table

OCCURRENCES = [
    Occurrence(datetime.date(2024, 1, 1), OccurrenceStatus.REGULAR),
    Occurrence(datetime.date(2024, 1, 8), OccurrenceStatus.EXCLUDED),
    Occurrence(datetime.date(2024, 1, 15), OccurrenceStatus.MODIFIED, "substitute-1"),
]


def _render(**kwargs) -> str:
    console = Console(file=StringIO(), width=120)
    display_occurrences(OCCURRENCES, console=console, **kwargs)
    return console.file.getvalue()


def test_table_rows_and_caption():

    table = occurrences_table(OCCURRENCES)
    assert table.row_count == 3
    assert table.caption == "2 active of 3"


def test_excluded_rows_can_be_hidden():

    table = occurrences_table(OCCURRENCES, show_excluded=False)
    assert table.row_count == 2


def test_substitute_events_are_described():

    substitute = Event(
        name="Yoga",
        location="Gym",
        starts_at=datetime.datetime(2024, 1, 15, 9, 0),
        created_by_id="organiser-1",
        event_id="substitute-1",
    )
    output = _render(substitutes={"substitute-1": substitute}, title="Yoga")
    assert "2024-01-15" in output
    assert "Monday" in output
    assert "'Yoga' starting at: 2024-01-15 09:00 (location: Gym)" in output


def test_missing_substitute_falls_back_to_id():

    output = _render()
    assert "substitute-1" in output
    assert "excluded" in output
