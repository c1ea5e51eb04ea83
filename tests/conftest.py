#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
from typing import Iterator

import pytest

from cadence.apps_implementation.events import Event, add_event
from cadence.apps_implementation.time_utils import Frequency, RecurrencePattern
from cadence.simulation.execution_context import ExecutionContext, new_context

ORGANISER = "organiser-1"


@pytest.fixture(scope="function", autouse=True)
def execution_context() -> Iterator[ExecutionContext]:
    """Autouse fixture which gives every test a fresh, empty store."""
    test_context = ExecutionContext()
    with new_context(test_context):
        yield test_context


@pytest.fixture
def template_event() -> Event:
    """A one hour event on Monday 1st January 2024, owned by `ORGANISER`."""
    event = Event(
        name="Yoga in the park",
        description="Bring a mat.",
        location="Central Park",
        category="sports",
        starts_at=datetime.datetime(2024, 1, 1, 18, 0),
        ends_at=datetime.datetime(2024, 1, 1, 19, 0),
        created_by_id=ORGANISER,
    )
    add_event(event)
    return event


@pytest.fixture
def mondays() -> RecurrencePattern:
    return RecurrencePattern(frequency=Frequency.WEEKLY, days_of_week=(1,))
