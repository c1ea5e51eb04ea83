#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from typing import Any

import polars as pl


def exact_match_filter_dataframe(
    dataframe: pl.DataFrame, column_name: str, value: Any
) -> pl.DataFrame:
    """Filter dataframe by exact matching value on 1 column

    Parameters
    ----------
        dataframe:      Dataframe to filter
        column_name:    Name of column
        value:          Value to match against, `None` matches nulls

    Returns
    -------
        Filtered dataframe

    """
    if value is None:
        return dataframe.filter(pl.col(column_name).is_null())
    return dataframe.filter(pl.col(column_name) == value)


def find_records(
    dataframe: pl.DataFrame, column_name: str, value: Any
) -> list[dict[str, Any]]:
    """Return the rows whose `column_name` equals `value`, as dictionaries."""
    return exact_match_filter_dataframe(dataframe, column_name, value).to_dicts()
