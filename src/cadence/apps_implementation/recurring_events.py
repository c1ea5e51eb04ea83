#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Recurring series: a template event, the pattern it repeats on and the
exclusions and modified occurrences layered on top.

Every mutation is authorised against the user who created the series and is
persisted as a single atomic replace of the series record."""

import datetime
import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any, Self

import polars as pl
from polars.exceptions import NoDataError
from pydantic import BaseModel, Field

from cadence.apps_implementation.events import (
    Event,
    EventId,
    EventOverrides,
    add_event,
    get_event_by_id,
    update_event,
    validate_overrides,
)
from cadence.apps_implementation.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from cadence.apps_implementation.overlay import Overlay
from cadence.apps_implementation.time_utils import (
    RecurrencePattern,
    as_date,
    now_,
    occurs_on,
    validate_pattern,
)
from cadence.simulation.utils import find_records

SeriesId = str

PATTERN_FIELDS = tuple(RecurrencePattern.model_fields)

logger = logging.getLogger(__name__)


class RecurringEvent(BaseModel):
    """A recurring series.

    Parameters
    ----------
    parent_event_id
        The template event. Its start date is the start of the series and its
        content is copied into substitute events.
    version
        Incremented on every write. Pass it back as `expected_version` to
        `update_series` to detect concurrent edits.
    """

    series_id: SeriesId
    parent_event_id: EventId
    pattern: RecurrencePattern
    overlay: Overlay = Field(default_factory=Overlay)
    created_by_id: str
    created_at: datetime.datetime
    updated_at: datetime.datetime
    version: int = 1

    def to_record(self) -> dict[str, Any]:
        """Flatten the series to the layout of the `RECURRING_EVENTS` table."""
        pattern = self.pattern.model_dump()
        pattern["frequency"] = str(pattern["frequency"])
        pattern["days_of_week"] = list(pattern["days_of_week"])
        return {
            "series_id": self.series_id,
            "parent_event_id": self.parent_event_id,
            **pattern,
            **self.overlay.model_dump(),
            "created_by_id": self.created_by_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            series_id=data["series_id"],
            parent_event_id=data["parent_event_id"],
            pattern=RecurrencePattern(
                **{f: data[f] for f in PATTERN_FIELDS if data.get(f) is not None}
            ),
            overlay=Overlay.from_dict(data),
            created_by_id=data["created_by_id"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            version=data["version"],
        )


def _series_predicate(series_id: SeriesId) -> pl.Expr:
    return pl.col("series_id") == series_id


def get_series(series_id: SeriesId) -> RecurringEvent:
    """Retrieve a series by ID.

    Raises
    ------
    NotFoundError if there is no such series.
    """
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import get_current_context

    raw_records = find_records(
        get_current_context().get_database(DatabaseNamespace.RECURRING_EVENTS),
        "series_id",
        series_id,
    )
    if not raw_records:
        raise NotFoundError(f"Recurring event {series_id} not found")
    return RecurringEvent.from_dict(raw_records[0])


def get_series_by_parent(parent_event_id: EventId) -> RecurringEvent | None:
    """Return the series attached to a template event, if there is one."""
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import get_current_context

    raw_records = find_records(
        get_current_context().get_database(DatabaseNamespace.RECURRING_EVENTS),
        "parent_event_id",
        parent_event_id,
    )
    if not raw_records:
        return None
    return RecurringEvent.from_dict(raw_records[0])


def get_series_start(series: RecurringEvent) -> datetime.date:
    """The date of the first occurrence candidate: the template event's start date.

    Raises
    ------
    NotFoundError if the template event no longer exists.
    """
    return get_event_by_id(series.parent_event_id).starts_at.date()


def _authorise(series: RecurringEvent, user_id: str) -> None:
    if series.created_by_id != user_id:
        raise ForbiddenError(
            f"User {user_id} is not authorised to change recurring event "
            f"{series.series_id}"
        )


def _save(series: RecurringEvent) -> RecurringEvent:
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import get_current_context

    series.version += 1
    series.updated_at = now_()
    get_current_context().replace_in_database(
        namespace=DatabaseNamespace.RECURRING_EVENTS,
        predicate=_series_predicate(series.series_id),
        row=series.to_record(),
    )
    return series


def create_series(
    parent_event_id: EventId,
    pattern: RecurrencePattern | Mapping[str, Any],
    user_id: str,
) -> RecurringEvent:
    """Make a template event recur.

    Raises
    ------
    InvalidInputError if `pattern` is not valid.
    NotFoundError if the template event does not exist.
    ForbiddenError if `user_id` did not create the template event.
    ConflictError if the template event already has a series.
    """
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import (
        UniqueConstraintError,
        get_current_context,
    )

    pattern = validate_pattern(pattern)
    parent = get_event_by_id(parent_event_id)
    if parent.created_by_id != user_id:
        raise ForbiddenError(
            f"User {user_id} is not authorised to make event {parent_event_id} recur"
        )
    timestamp = now_()
    series = RecurringEvent(
        series_id=str(uuid.uuid4()),
        parent_event_id=parent_event_id,
        pattern=pattern,
        created_by_id=user_id,
        created_at=timestamp,
        updated_at=timestamp,
    )
    try:
        get_current_context().add_to_database(
            namespace=DatabaseNamespace.RECURRING_EVENTS,
            rows=[series.to_record()],
        )
    except UniqueConstraintError as e:
        raise ConflictError(
            f"A recurring event already exists for event {parent_event_id}"
        ) from e
    logger.info(
        f"Created recurring event {series.series_id} for event {parent_event_id} "
        f"({pattern.frequency}, every {pattern.interval})"
    )
    return series


def update_series(
    series_id: SeriesId,
    user_id: str,
    pattern: RecurrencePattern | Mapping[str, Any] | None = None,
    excluded_dates: Iterable[datetime.date] | None = None,
    expected_version: int | None = None,
) -> RecurringEvent:
    """Replace the pattern and/or the excluded dates of a series.

    Parameters
    ----------
    pattern
        Either a complete pattern, which replaces the current one, or a mapping of
        pattern fields merged onto the current pattern. The result is validated
        before anything is written.
    excluded_dates
        Replaces the excluded dates wholesale. Modified occurrences on these dates
        are detached. Dates the (updated) pattern does not generate are ignored,
        as in `exclude_date`.
    expected_version
        If given, the update is rejected unless the stored series still has this
        version. If omitted, the last write wins.

    Raises
    ------
    NotFoundError, ForbiddenError, InvalidInputError
    ConflictError if `expected_version` is stale.
    """
    from cadence.simulation.execution_context import get_current_context

    with get_current_context().transaction():
        series = get_series(series_id)
        _authorise(series, user_id)
        if expected_version is not None and expected_version != series.version:
            raise ConflictError(
                f"Recurring event {series_id} is at version {series.version}, "
                f"expected {expected_version}"
            )
        if pattern is not None:
            if isinstance(pattern, RecurrencePattern):
                series.pattern = pattern
            else:
                series.pattern = series.pattern.merge(pattern)
        if excluded_dates is not None:
            series_start = get_series_start(series)
            kept, dropped = [], []
            for d in map(as_date, excluded_dates):
                if occurs_on(series.pattern, series_start, d):
                    kept.append(d)
                else:
                    dropped.append(d)
            if dropped:
                logger.warning(
                    f"Ignoring excluded dates {dropped} which are not occurrences "
                    f"of recurring event {series_id}"
                )
            series.overlay.replace_exclusions(kept)
        _save(series)
    logger.info(f"Updated recurring event {series_id} to version {series.version}")
    return series


def delete_series(series_id: SeriesId, user_id: str) -> bool:
    """Delete a series and its overlay. The template event and any substitute
    events are kept."""
    from cadence.simulation.database_schemas import DatabaseNamespace
    from cadence.simulation.execution_context import get_current_context

    context = get_current_context()
    with context.transaction():
        series = get_series(series_id)
        _authorise(series, user_id)
        try:
            context.remove_from_database(
                namespace=DatabaseNamespace.RECURRING_EVENTS,
                predicate=_series_predicate(series_id),
            )
        except NoDataError as e:
            raise NotFoundError(f"Recurring event {series_id} not found") from e
    logger.info(f"Deleted recurring event {series_id}")
    return True


def exclude_date(
    series_id: SeriesId, date: datetime.date, user_id: str
) -> RecurringEvent:
    """Skip the occurrence on `date`.

    Notes
    -----
    1. Excluding a date the series does not generate leaves the series unchanged.
    2. Excluding a modified occurrence detaches its substitute event, which is
    not deleted.
    """
    from cadence.simulation.execution_context import get_current_context

    date = as_date(date)
    with get_current_context().transaction():
        series = get_series(series_id)
        _authorise(series, user_id)
        if not occurs_on(series.pattern, get_series_start(series), date):
            logger.warning(
                f"{date} is not an occurrence of recurring event {series_id}, "
                "nothing to exclude"
            )
            return series
        if not series.overlay.exclude(date):
            logger.debug(f"{date} already excluded from recurring event {series_id}")
            return series
        _save(series)
    logger.info(f"Excluded {date} from recurring event {series_id}")
    return series


def include_date(
    series_id: SeriesId, date: datetime.date, user_id: str
) -> RecurringEvent:
    """Restore a previously excluded occurrence. No-op if `date` is not excluded."""
    from cadence.simulation.execution_context import get_current_context

    date = as_date(date)
    with get_current_context().transaction():
        series = get_series(series_id)
        _authorise(series, user_id)
        if not series.overlay.include(date):
            logger.debug(f"{date} is not excluded from recurring event {series_id}")
            return series
        _save(series)
    logger.info(f"Included {date} in recurring event {series_id}")
    return series


def _substitute_times(
    template: Event, date: datetime.date, overrides: EventOverrides
) -> tuple[datetime.datetime, datetime.datetime]:
    start_time = overrides.start_time or template.starts_at.time()
    starts_at = datetime.datetime.combine(date, start_time)
    if overrides.end_time is not None:
        ends_at = datetime.datetime.combine(date, overrides.end_time)
    else:
        ends_at = starts_at + template.duration
    if ends_at <= starts_at:
        raise InvalidInputError(
            f"Occurrence on {date} would end at {ends_at:%H:%M}, "
            f"before it starts at {starts_at:%H:%M}"
        )
    return starts_at, ends_at


def _create_substitute(
    template: Event, date: datetime.date, overrides: EventOverrides, user_id: str
) -> EventId:
    starts_at, ends_at = _substitute_times(template, date, overrides)
    substitute = Event(
        name=overrides.name if overrides.name is not None else template.name,
        description=(
            overrides.description
            if overrides.description is not None
            else template.description
        ),
        location=(
            overrides.location if overrides.location is not None else template.location
        ),
        category=template.category,
        starts_at=starts_at,
        ends_at=ends_at,
        created_by_id=user_id,
        recurrent_event_id=template.event_id,
        original_starts_at=datetime.datetime.combine(date, template.starts_at.time()),
    )
    return add_event(substitute)


def _update_substitute(
    substitute_id: EventId, date: datetime.date, overrides: EventOverrides
) -> None:
    fields: dict[str, Any] = overrides.model_dump(
        exclude_none=True, exclude={"start_time", "end_time"}
    )
    if overrides.start_time is not None or overrides.end_time is not None:
        current = get_event_by_id(substitute_id)
        fields["starts_at"], fields["ends_at"] = _substitute_times(
            current, date, overrides
        )
    update_event(substitute_id, **fields)


def modify_occurrence(
    series_id: SeriesId,
    date: datetime.date,
    overrides: EventOverrides | Mapping[str, Any],
    user_id: str,
) -> RecurringEvent:
    """Replace the content of the occurrence on `date` with a standalone event.

    The first call for a date creates the substitute event from the template,
    applying `overrides`. Later calls update that substitute event. If `date`
    was excluded it is restored.

    Raises
    ------
    NotFoundError if the series or its template event does not exist.
    ForbiddenError if `user_id` did not create the series.
    InvalidInputError if `overrides` is invalid or the series does not occur on
    `date`.
    """
    from cadence.simulation.execution_context import get_current_context

    date = as_date(date)
    overrides = validate_overrides(overrides)
    with get_current_context().transaction():
        series = get_series(series_id)
        _authorise(series, user_id)
        template = get_event_by_id(series.parent_event_id)
        if not occurs_on(series.pattern, template.starts_at.date(), date):
            raise InvalidInputError(
                f"{date} is not an occurrence of recurring event {series_id}"
            )
        substitute_id = series.overlay.substitute_for(date)
        if substitute_id is not None:
            try:
                _update_substitute(substitute_id, date, overrides)
            except NotFoundError:
                logger.warning(
                    f"Substitute event {substitute_id} for {date} no longer exists, "
                    "creating a new one"
                )
                substitute_id = None
        if substitute_id is None:
            substitute_id = _create_substitute(template, date, overrides, user_id)
            logger.info(
                f"Created substitute event {substitute_id} for {date} of "
                f"recurring event {series_id}"
            )
        if series.overlay.set_modification(date, substitute_id):
            _save(series)
    return series


def clear_modification(
    series_id: SeriesId, date: datetime.date, user_id: str
) -> RecurringEvent:
    """Revert a modified occurrence to the template. The substitute event is kept."""
    from cadence.simulation.execution_context import get_current_context

    date = as_date(date)
    with get_current_context().transaction():
        series = get_series(series_id)
        _authorise(series, user_id)
        if not series.overlay.clear_modification(date):
            logger.debug(f"{date} is not modified in recurring event {series_id}")
            return series
        _save(series)
    logger.info(f"Cleared modification on {date} of recurring event {series_id}")
    return series
