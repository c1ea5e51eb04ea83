#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
from pathlib import Path

import polars as pl
import pytest
from polars.exceptions import NoDataError

from cadence.apps_implementation.events import Event
from cadence.apps_implementation.recurring_events import (
    create_series,
    exclude_date,
    get_series,
    modify_occurrence,
)
from cadence.apps_implementation.time_utils import RecurrencePattern
from cadence.simulation.database_schemas import DatabaseNamespace
from cadence.simulation.execution_context import (
    ExecutionContext,
    UniqueConstraintError,
    get_current_context,
    new_context,
)


def test_unique_columns_are_enforced(execution_context: ExecutionContext):

    execution_context.add_to_database(
        DatabaseNamespace.EVENTS, [{"event_id": "event-1", "name": "a"}]
    )
    with pytest.raises(UniqueConstraintError) as exc_info:
        execution_context.add_to_database(
            DatabaseNamespace.EVENTS, [{"event_id": "event-1", "name": "b"}]
        )
    assert exc_info.value.column == "event_id"
    assert execution_context.get_database(DatabaseNamespace.EVENTS).height == 1


def test_duplicates_within_one_write_are_rejected(
    execution_context: ExecutionContext,
):

    with pytest.raises(UniqueConstraintError):
        execution_context.add_to_database(
            DatabaseNamespace.EVENTS,
            [{"event_id": "event-1"}, {"event_id": "event-1"}],
        )
    assert execution_context.get_database(DatabaseNamespace.EVENTS).is_empty()


def test_unknown_columns_are_rejected(execution_context: ExecutionContext):

    with pytest.raises(KeyError):
        execution_context.add_to_database(
            DatabaseNamespace.EVENTS, [{"event_id": "event-1", "colour": "red"}]
        )


def test_remove_and_replace_missing_rows(execution_context: ExecutionContext):

    predicate = pl.col("event_id") == "missing"
    with pytest.raises(NoDataError):
        execution_context.remove_from_database(DatabaseNamespace.EVENTS, predicate)
    with pytest.raises(NoDataError):
        execution_context.replace_in_database(
            DatabaseNamespace.EVENTS, predicate, {"event_id": "missing"}
        )


def test_replace_in_database(execution_context: ExecutionContext):

    execution_context.add_to_database(
        DatabaseNamespace.EVENTS,
        [{"event_id": "event-1", "name": "a"}, {"event_id": "event-2", "name": "b"}],
    )
    execution_context.replace_in_database(
        DatabaseNamespace.EVENTS,
        pl.col("event_id") == "event-1",
        {"event_id": "event-1", "name": "c"},
    )
    database = execution_context.get_database(DatabaseNamespace.EVENTS)
    assert sorted(database["name"].to_list()) == ["b", "c"]
    with pytest.raises(UniqueConstraintError):
        execution_context.replace_in_database(
            DatabaseNamespace.EVENTS,
            pl.col("event_id") == "event-1",
            {"event_id": "event-2"},
        )


def test_new_context_restores_previous_context(execution_context: ExecutionContext):

    other = ExecutionContext()
    with new_context(other):
        assert get_current_context() is other
    assert get_current_context() is execution_context


def test_save_and_load(
    tmp_path: Path, template_event: Event, mondays: RecurrencePattern
):

    series = create_series(template_event.event_id, mondays, "organiser-1")
    exclude_date(series.series_id, datetime.date(2024, 1, 8), "organiser-1")
    series = modify_occurrence(
        series.series_id,
        datetime.date(2024, 1, 15),
        {"start_time": datetime.time(9, 0)},
        "organiser-1",
    )
    store_path = tmp_path / "store.json"
    get_current_context().save(store_path)

    with new_context(ExecutionContext.load(store_path)):
        loaded = get_series(series.series_id)
    assert loaded.pattern == series.pattern
    assert loaded.overlay == series.overlay
    assert loaded.version == series.version
    assert loaded.created_at == series.created_at
