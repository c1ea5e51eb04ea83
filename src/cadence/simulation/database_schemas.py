#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from enum import StrEnum, auto

import polars as pl

from cadence.apps_implementation.time_utils import Frequency


class DatabaseNamespace(StrEnum):
    """Namespace for each database"""

    EVENTS = auto()
    RECURRING_EVENTS = auto()


EVENTS_SCHEMA = {
    "event_id": pl.String,
    "name": pl.String,
    "description": pl.String,
    "location": pl.String,
    "category": pl.String,
    "starts_at": pl.Datetime,
    "ends_at": pl.Datetime,
    "created_by_id": pl.String,
    "recurrent_event_id": pl.String,
    "original_starts_at": pl.Datetime,
    "created_at": pl.Datetime,
    "updated_at": pl.Datetime,
}

# the pattern fields are flattened into the series record
RECURRING_EVENTS_SCHEMA = {
    "series_id": pl.String,
    "parent_event_id": pl.String,
    "frequency": pl.Enum([str(x) for x in Frequency]),
    "interval": pl.Int32,
    "days_of_week": pl.List(pl.UInt8),
    "day_of_month": pl.UInt8,
    "month_of_year": pl.UInt8,
    "end_date": pl.Date,
    "count": pl.Int32,
    "excluded_dates": pl.List(pl.Date),
    "modified_occurrences": pl.List(
        pl.Struct(
            {
                "date": pl.Date,
                "substitute_event_id": pl.String,
            }
        )
    ),
    "created_by_id": pl.String,
    "created_at": pl.Datetime,
    "updated_at": pl.Datetime,
    "version": pl.Int32,
}

DATABASE_SCHEMAS = {
    DatabaseNamespace.EVENTS: EVENTS_SCHEMA,
    DatabaseNamespace.RECURRING_EVENTS: RECURRING_EVENTS_SCHEMA,
}

UNIQUE_COLUMNS = {
    DatabaseNamespace.EVENTS: ("event_id",),
    # at most one series per template event
    DatabaseNamespace.RECURRING_EVENTS: ("series_id", "parent_event_id"),
}
