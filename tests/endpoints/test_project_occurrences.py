#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
from pathlib import Path

import pytest
from hydra import compose, initialize_config_module
from omegaconf import DictConfig, OmegaConf

from cadence.apps_implementation.events import Event
from cadence.apps_implementation.exceptions import InvalidInputError, NotFoundError
from cadence.apps_implementation.recurring_events import (
    create_series,
    exclude_date,
    modify_occurrence,
)
from cadence.apps_implementation.time_utils import DateRange, RecurrencePattern
from cadence.endpoints.project_occurrences import project_occurrences, resolve_window
from cadence.simulation.execution_context import ExecutionContext

ORGANISER = "organiser-1"


def _window_config(**overrides) -> DictConfig:
    return OmegaConf.create(
        {"month": None, "window_start": None, "window_end": None, **overrides}
    )


def _compose(*overrides: str) -> DictConfig:
    with initialize_config_module(config_module="cadence.configs", version_base=None):
        return compose(config_name="project_occurrences", overrides=list(overrides))


def test_resolve_window_from_month():

    assert resolve_window(_window_config(month="2024-02")) == DateRange(
        datetime.date(2024, 2, 1), datetime.date(2024, 2, 29)
    )


def test_resolve_window_from_bounds():

    cfg = _window_config(window_start="2024-01-03", window_end="2024-03-01")
    assert resolve_window(cfg) == DateRange(
        datetime.date(2024, 1, 3), datetime.date(2024, 3, 1)
    )


@pytest.mark.parametrize(
    "overrides",
    [
        {},
        {"window_start": "2024-01-03"},
        {"month": "January"},
        {"window_start": "2024-01-03", "window_end": "tomorrow"},
    ],
)
def test_resolve_window_invalid(overrides: dict):

    with pytest.raises(InvalidInputError):
        resolve_window(_window_config(**overrides))


def test_project_occurrences_end_to_end(
    tmp_path: Path,
    execution_context: ExecutionContext,
    template_event: Event,
    mondays: RecurrencePattern,
    capsys: pytest.CaptureFixture,
):

    series = create_series(template_event.event_id, mondays, ORGANISER)
    exclude_date(series.series_id, datetime.date(2024, 1, 8), ORGANISER)
    modify_occurrence(
        series.series_id, datetime.date(2024, 1, 15), {"location": "Gym"}, ORGANISER
    )
    store_path = tmp_path / "store.json"
    execution_context.save(store_path)

    cfg = _compose(
        f"store_path='{store_path}'",
        f"series_id='{series.series_id}'",
        "month='2024-01'",
    )
    project_occurrences(cfg)
    output = capsys.readouterr().out
    assert "Yoga in the park" in output
    assert "2024-01-29" in output
    assert "excluded" in output
    assert "modified" in output
    assert "4 active of 5" in output


def test_project_occurrences_unknown_series(
    tmp_path: Path, execution_context: ExecutionContext
):

    store_path = tmp_path / "store.json"
    execution_context.save(store_path)
    cfg = _compose(
        f"store_path='{store_path}'", "series_id=missing", "month='2024-01'"
    )
    with pytest.raises(NotFoundError):
        project_occurrences(cfg)
