#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
import logging

import hydra
from omegaconf import DictConfig, OmegaConf

from cadence.apps_implementation.events import Event, EventId, get_event_by_id
from cadence.apps_implementation.exceptions import InvalidInputError, RecurrenceError
from cadence.apps_implementation.occurrences import Occurrence, project
from cadence.apps_implementation.recurring_events import get_series
from cadence.apps_implementation.time_utils import DateRange, month_range
from cadence.interactive.display import display_occurrences
from cadence.simulation.execution_context import ExecutionContext, new_context

logger = logging.getLogger(__name__)


def resolve_window(cfg: DictConfig) -> DateRange:
    """Read the projection window from `month` or `window_start`/`window_end`."""
    if cfg.month:
        try:
            year, month = (int(part) for part in str(cfg.month).split("-"))
            return month_range(year, month)
        except ValueError as e:
            raise InvalidInputError(
                f"Invalid month {cfg.month!r}, expected YYYY-MM"
            ) from e
    if cfg.window_start is None or cfg.window_end is None:
        raise InvalidInputError(
            "Either `month` or both `window_start` and `window_end` must be set"
        )
    try:
        return DateRange(
            start=datetime.date.fromisoformat(str(cfg.window_start)),
            end=datetime.date.fromisoformat(str(cfg.window_end)),
        )
    except ValueError as e:
        raise InvalidInputError(f"Invalid window: {e}") from e


def load_substitutes(occurrences: list[Occurrence]) -> dict[EventId, Event]:
    substitutes = {}
    for occurrence in occurrences:
        if occurrence.substitute_event_id is None:
            continue
        try:
            substitutes[occurrence.substitute_event_id] = get_event_by_id(
                occurrence.substitute_event_id
            )
        except RecurrenceError:
            logger.warning(
                f"Substitute event {occurrence.substitute_event_id} for "
                f"{occurrence.date} is missing from the store"
            )
    return substitutes


@hydra.main(
    config_name="project_occurrences",
    config_path="pkg://cadence.configs",
    version_base=None,
)
def project_occurrences(cfg: DictConfig):
    if cfg.debug:
        logger.info(OmegaConf.to_yaml(cfg, resolve=True))
    window = resolve_window(cfg)
    context = ExecutionContext.load(cfg.store_path)
    with new_context(context):
        try:
            series = get_series(cfg.series_id)
            occurrences = project(cfg.series_id, window.start, window.end)
            parent = get_event_by_id(series.parent_event_id)
        except RecurrenceError as e:
            logger.error(
                f"Could not project recurring event {cfg.series_id} [{e.kind}]: {e}"
            )
            raise
        substitutes = load_substitutes(occurrences)
    logger.info(
        f"Projected {len(occurrences)} occurrences of {cfg.series_id} "
        f"between {window.start} and {window.end}"
    )
    display_occurrences(
        occurrences,
        substitutes=substitutes,
        title=f"{parent.name}: {window.start} to {window.end}",
        show_excluded=cfg.show_excluded,
    )


if __name__ == "__main__":
    project_occurrences()
