#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Per-series exclusions and modified occurrences, layered on top of the dates a
recurrence pattern generates."""

import datetime
import logging
from typing import Any, Self

from pydantic import BaseModel, Field, field_serializer

from cadence.apps_implementation.events import EventId

logger = logging.getLogger(__name__)


class Overlay(BaseModel):
    """The mutable state of a series.

    Parameters
    ----------
    excluded_dates
        Dates suppressed from the series. They are still reported by projections,
        tagged as excluded.
    modified_occurrences
        Maps an occurrence date to the ID of the standalone event replacing the
        template for that date.

    Notes
    -----
    1. A date is never both excluded and modified. Excluding a modified date drops
    the mapping but does not delete the substitute event.
    2. Every mutator returns `True` if the overlay changed.
    """

    excluded_dates: set[datetime.date] = Field(default_factory=set)
    modified_occurrences: dict[datetime.date, EventId] = Field(default_factory=dict)

    def is_excluded(self, date: datetime.date) -> bool:
        return date in self.excluded_dates

    def substitute_for(self, date: datetime.date) -> EventId | None:
        return self.modified_occurrences.get(date)

    def exclude(self, date: datetime.date) -> bool:
        if date in self.excluded_dates:
            return False
        if (substitute_id := self.modified_occurrences.pop(date, None)) is not None:
            logger.info(
                f"Detached substitute event {substitute_id} from excluded date {date}"
            )
        self.excluded_dates.add(date)
        return True

    def include(self, date: datetime.date) -> bool:
        if date not in self.excluded_dates:
            return False
        self.excluded_dates.remove(date)
        return True

    def set_modification(
        self, date: datetime.date, substitute_event_id: EventId
    ) -> bool:
        previous = self.modified_occurrences.get(date)
        if previous == substitute_event_id and date not in self.excluded_dates:
            return False
        if previous is not None and previous != substitute_event_id:
            # the previous substitute event is left for the event owner to clean up
            logger.info(
                f"Substitute event {previous} for {date} replaced by "
                f"{substitute_event_id}"
            )
        self.excluded_dates.discard(date)
        self.modified_occurrences[date] = substitute_event_id
        return True

    def clear_modification(self, date: datetime.date) -> bool:
        return self.modified_occurrences.pop(date, None) is not None

    def replace_exclusions(self, dates: list[datetime.date]) -> None:
        """Replace the exclusion set wholesale."""
        self.excluded_dates = set()
        for date in dates:
            self.exclude(date)

    @field_serializer("excluded_dates")
    def serialise_excluded_dates(
        self, excluded_dates: set[datetime.date]
    ) -> list[datetime.date]:
        return sorted(excluded_dates)

    @field_serializer("modified_occurrences")
    def serialise_modified_occurrences(
        self, modified_occurrences: dict[datetime.date, EventId]
    ) -> list[dict[str, Any]]:
        return [
            {"date": date, "substitute_event_id": event_id}
            for date, event_id in sorted(modified_occurrences.items())
        ]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Inverse of `model_dump`."""
        return cls(
            excluded_dates=set(data.get("excluded_dates") or []),
            modified_occurrences={
                m["date"]: m["substitute_event_id"]
                for m in data.get("modified_occurrences") or []
            },
        )
