#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from rich.console import Console
from rich.table import Table

from cadence.apps_implementation.events import Event, EventId
from cadence.apps_implementation.occurrences import (
    Occurrence,
    OccurrenceStatus,
    count_active,
)

STATUS_STYLES = {
    OccurrenceStatus.REGULAR: "white",
    OccurrenceStatus.MODIFIED: "yellow",
    OccurrenceStatus.EXCLUDED: "strike dim",
}


def occurrences_table(
    occurrences: list[Occurrence],
    substitutes: dict[EventId, Event] | None = None,
    title: str | None = None,
    show_excluded: bool = True,
) -> Table:
    """Build a rich table of projected occurrences with the following format

    ┏━━━━━━━━━━━━┳━━━━━━━━━┳━━━━━━━━━━┳━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┓
    ┃ Date       ┃ Weekday ┃ Status   ┃ Substitute event              ┃
    ┡━━━━━━━━━━━━╇━━━━━━━━━╇━━━━━━━━━━╇━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┩

    Excluded dates are struck through rather than dropped so they can be
    reviewed and restored.
    """  # noqa

    substitutes = substitutes or {}
    table = Table(
        title=title,
        show_header=True,
        header_style="bold magenta",
        caption=f"{count_active(occurrences)} active of {len(occurrences)}",
    )
    table.add_column("Date", style="cyan", no_wrap=True)
    table.add_column("Weekday", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Substitute event")

    for occurrence in occurrences:
        if not show_excluded and not occurrence.active:
            continue
        substitute = ""
        if occurrence.substitute_event_id is not None:
            event = substitutes.get(occurrence.substitute_event_id)
            substitute = str(event) if event else occurrence.substitute_event_id
        table.add_row(
            occurrence.date.isoformat(),
            occurrence.date.strftime("%A"),
            str(occurrence.status),
            substitute,
            style=STATUS_STYLES[occurrence.status],
        )
    return table


def display_occurrences(
    occurrences: list[Occurrence],
    substitutes: dict[EventId, Event] | None = None,
    title: str | None = None,
    show_excluded: bool = True,
    console: Console | None = None,
):
    console = console or Console()
    console.print(
        occurrences_table(
            occurrences,
            substitutes=substitutes,
            title=title,
            show_excluded=show_excluded,
        )
    )
