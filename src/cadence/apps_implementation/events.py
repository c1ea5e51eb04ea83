#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The event records that recurring series are built from. Template events and the
substitute events created for modified occurrences both live here."""

import datetime
import logging
import uuid
from collections.abc import Mapping
from typing import Any, Self

import polars as pl
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from cadence.apps_implementation.exceptions import InvalidInputError, NotFoundError
from cadence.apps_implementation.time_utils import now_
from cadence.simulation.utils import find_records

DEFAULT_EVENT_DURATION_MINUTES = 60

EventId = str

logger = logging.getLogger(__name__)


class Event(BaseModel):
    """A calendar event.

    Parameters
    ----------
    created_by_id
        The user who owns the event. Only this user may attach a recurring
        series to it.
    recurrent_event_id
        Set on substitute events: the `event_id` of the template event whose
        occurrence this event replaces.
    original_starts_at
        For substitute events, the start of the occurrence that was replaced. It
        differs from `starts_at` if the occurrence was moved.
    """

    name: str
    description: str = ""
    location: str = ""
    category: str = "general"
    starts_at: datetime.datetime
    ends_at: datetime.datetime | None = None
    created_by_id: str
    event_id: EventId | None = None
    recurrent_event_id: EventId | None = None
    original_starts_at: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    @model_validator(mode="after")
    def _check_end(self) -> Self:
        if self.ends_at is not None and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self

    @property
    def duration(self) -> datetime.timedelta:
        if self.ends_at is None:
            return datetime.timedelta(minutes=DEFAULT_EVENT_DURATION_MINUTES)
        return self.ends_at - self.starts_at

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(**data)

    def __str__(self) -> str:
        starts_at_str = self.starts_at.strftime("%Y-%m-%d %H:%M")
        display = f"'{self.name}' starting at: {starts_at_str}"
        if self.location:
            display += f" (location: {self.location})"
        return display


class EventOverrides(BaseModel):
    """Fields of a single occurrence that may differ from the template event.
    Fields left unset are copied from the template."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    description: str | None = None
    location: str | None = None
    start_time: datetime.time | None = None
    end_time: datetime.time | None = None

    @model_validator(mode="after")
    def _check_times(self) -> Self:
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.end_time <= self.start_time
        ):
            raise ValueError("end_time must be after start_time")
        return self


def validate_overrides(data: EventOverrides | Mapping[str, Any]) -> EventOverrides:
    if isinstance(data, EventOverrides):
        return data
    try:
        return EventOverrides.model_validate(dict(data))
    except ValidationError as e:
        raise InvalidInputError(f"Invalid occurrence overrides: {e}") from e


def get_event_ids() -> set[EventId]:
    """Return the IDs of the events existing in the database."""
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import get_current_context

    events = get_current_context().get_database(namespace=DatabaseNamespace.EVENTS)
    return set(events["event_id"].to_list())


def add_event(event: Event) -> EventId:
    """Store a new event and return its ID.

    Notes
    -----
    If the end time is not given, the event is assumed to last
    `DEFAULT_EVENT_DURATION_MINUTES`.
    """
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import get_current_context

    if event.ends_at is None:
        logger.warning("Event end time not specified, default duration will be assumed")
        event.ends_at = event.starts_at + datetime.timedelta(
            minutes=DEFAULT_EVENT_DURATION_MINUTES
        )
    if event.event_id is None:
        event.event_id = str(uuid.uuid4())
    timestamp = now_()
    event.created_at = event.created_at or timestamp
    event.updated_at = timestamp
    get_current_context().add_to_database(
        namespace=DatabaseNamespace.EVENTS,
        rows=[event.model_dump()],
    )
    logger.debug(f"Added event {event.event_id}")
    return event.event_id


def get_event_by_id(event_id: EventId) -> Event:
    """Retrieve the event with `event_id`.

    Raises
    ------
    NotFoundError if `event_id` does not exist.
    """
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import get_current_context

    raw_records = find_records(
        get_current_context().get_database(namespace=DatabaseNamespace.EVENTS),
        "event_id",
        event_id,
    )
    if not raw_records:
        raise NotFoundError(f"No event with ID {event_id} was found.")
    assert len(raw_records) == 1
    return Event.from_dict(raw_records[0])


def update_event(event_id: EventId, **fields: Any) -> Event:
    """Overwrite the given fields of an existing event.

    Raises
    ------
    NotFoundError if `event_id` does not exist.
    InvalidInputError if the updated event is not valid.
    """
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import get_current_context

    context = get_current_context()
    with context.transaction():
        event = get_event_by_id(event_id)
        try:
            updated = Event.model_validate(
                {**event.model_dump(), **fields, "event_id": event_id}
            )
        except ValidationError as e:
            raise InvalidInputError(f"Invalid event update: {e}") from e
        updated.updated_at = now_()
        context.replace_in_database(
            namespace=DatabaseNamespace.EVENTS,
            predicate=pl.col("event_id") == event_id,
            row=updated.model_dump(),
        )
    logger.debug(f"Updated fields {sorted(fields)} of event {event_id}")
    return updated
