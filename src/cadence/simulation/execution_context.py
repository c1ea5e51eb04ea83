#
# For licensing see accompanying LICENSE file.
# Copyright (C) 2024-2025 Apple Inc. All Rights Reserved.
#
import contextlib
import copy
import datetime
import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterator, Self, cast

import polars as pl
from polars.exceptions import NoDataError

from cadence.simulation.database_schemas import (
    DATABASE_SCHEMAS,
    UNIQUE_COLUMNS,
    DatabaseNamespace,
)

logger = logging.getLogger(__name__)


class UniqueConstraintError(ValueError):
    """Raised when a write would duplicate the value of a unique column."""

    def __init__(self, namespace: DatabaseNamespace, column: str, values: set[Any]):
        self.namespace = namespace
        self.column = column
        self.values = values
        super().__init__(
            f"Duplicate value(s) {sorted(map(str, values))} for unique column "
            f"{column!r} in namespace {namespace}"
        )


def _encode(value: Any) -> Any:
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, list):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


def _decode(value: Any, dtype: Any) -> Any:
    if value is None:
        return None
    if isinstance(dtype, type):
        dtype = dtype()
    if isinstance(dtype, pl.Datetime):
        return datetime.datetime.fromisoformat(value)
    if isinstance(dtype, pl.Date):
        return datetime.date.fromisoformat(value)
    if isinstance(dtype, pl.List):
        return [_decode(v, dtype.inner) for v in value]
    if isinstance(dtype, pl.Struct):
        return {f.name: _decode(value.get(f.name), f.dtype) for f in dtype.fields}
    return value


class ExecutionContext:
    """In-memory store holding one table per `DatabaseNamespace`.

    1. Tables are polars dataframes with the schemas declared in `database_schemas`.
    2. Columns listed in `UNIQUE_COLUMNS` are enforced on every write, so uniqueness
    does not depend on callers checking before writing.
    3. All writes hold a re-entrant lock. Callers that read a record, change it and
    write it back should do so inside `transaction()` so the update is atomic.

    One should instantiate this class as a global variable
    for all tools to access without taking ExecutionContext as function argument
    """

    dbs_schemas: dict[DatabaseNamespace, dict[str, Any]] = DATABASE_SCHEMAS
    unique_columns: dict[DatabaseNamespace, tuple[str, ...]] = UNIQUE_COLUMNS

    def __init__(self):
        self._dbs: dict[DatabaseNamespace, pl.DataFrame] = {
            namespace: pl.DataFrame(schema=self.dbs_schemas[namespace])
            for namespace in self.dbs_schemas
        }
        self._lock = threading.RLock()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[Self]:
        """Hold the store lock for a read-modify-write sequence."""
        with self._lock:
            yield self

    def to_dict(self) -> dict[str, Any]:
        """Serializes to a JSON-compatible dictionary, reversible with `from_dict`."""
        return {
            "_dbs": {
                str(namespace): [_encode(record) for record in database.to_dicts()]
                for namespace, database in self._dbs.items()
            },
        }

    @classmethod
    def from_dict(cls, serialized_dict: dict[str, Any]) -> Self:
        """Load a serialized dict produced by to_dict."""
        execution_context = cls()
        for namespace_name, serialized_records in serialized_dict["_dbs"].items():
            namespace = DatabaseNamespace(namespace_name)
            schema = cls.dbs_schemas[namespace]
            records = [
                {k: _decode(v, schema[k]) for k, v in record.items()}
                for record in serialized_records
            ]
            execution_context._dbs[namespace] = pl.DataFrame(records, schema=schema)
        return execution_context

    def save(self, path: Path | str) -> None:
        with open(path, "w") as f_out:
            json.dump(self.to_dict(), f_out, indent=2)
        logger.debug(f"Store written to {path}")

    @classmethod
    def load(cls, path: Path | str) -> Self:
        with open(path) as f_in:
            return cls.from_dict(json.load(f_in))

    def get_database(self, namespace: DatabaseNamespace) -> pl.DataFrame:
        """Get a database given the namespace

        Note that the database returned is a subview of the original database.
        Please treat it as an immutable object to avoid unintended effect.
        Use add / remove / replace functions to modify database if needed.
        """
        return self._dbs[namespace]

    def _check_columns(
        self, namespace: DatabaseNamespace, rows: list[dict[str, Any]]
    ) -> None:
        rows_column_names = {x for row in rows for x in row.keys()}
        schema_column_names = set(self.dbs_schemas[namespace].keys())
        if rows_column_names - schema_column_names:
            raise KeyError(
                f"Only column names {schema_column_names} are allowed for namespace "
                f"{namespace}. "
                f"Found unknown column name {rows_column_names - schema_column_names}"
            )

    def _check_unique(
        self,
        namespace: DatabaseNamespace,
        existing: pl.DataFrame,
        rows: list[dict[str, Any]],
    ) -> None:
        for column in self.unique_columns.get(namespace, ()):
            seen = set(existing.get_column(column).to_list())
            duplicates = set()
            for row in rows:
                value = row.get(column)
                if value is None:
                    continue
                if value in seen:
                    duplicates.add(value)
                seen.add(value)
            if duplicates:
                raise UniqueConstraintError(namespace, column, duplicates)

    def add_to_database(
        self,
        namespace: DatabaseNamespace,
        rows: list[dict[str, Any]],
    ) -> None:
        """Add multiple rows to a database.

        Parameters
        ----------
        namespace
            Database namespace
        rows
            List of rows to be added, each item should be a Dict of column and value

        Raises
        ------
        KeyError:   When provided column names in rows does not match given schema
        UniqueConstraintError: When a row duplicates the value of a unique column
        """
        self._check_columns(namespace, rows)
        rows = copy.deepcopy(rows)
        with self._lock:
            self._check_unique(namespace, self._dbs[namespace], rows)
            self._dbs[namespace] = self._dbs[namespace].vstack(
                pl.DataFrame(rows, schema=self.dbs_schemas[namespace])
            )

    def remove_from_database(
        self,
        namespace: DatabaseNamespace,
        predicate: pl.Expr,
    ) -> None:
        """Remove multiple rows from a database.

        Parameters
        ----------
        namespace
            Database namespace
        predicate
            A polars predicate that evaluates to boolean, used to identify the rows to remove

        Raises
        ------
        NoDataError: If no matching rows where found
        """
        with self._lock:
            if self._dbs[namespace].filter(predicate).is_empty():
                raise NoDataError(f"No db entry matching {predicate=} found")
            self._dbs[namespace] = self._dbs[namespace].filter(~predicate)

    def replace_in_database(
        self,
        namespace: DatabaseNamespace,
        predicate: pl.Expr,
        row: dict[str, Any],
    ) -> None:
        """Atomically swap the rows matching `predicate` for `row`.

        Raises
        ------
        NoDataError: If no matching rows where found
        UniqueConstraintError: If `row` clashes with a row that is not replaced
        """
        self._check_columns(namespace, [row])
        row = copy.deepcopy(row)
        with self._lock:
            database = self._dbs[namespace]
            if database.filter(predicate).is_empty():
                raise NoDataError(f"No db entry matching {predicate=} found")
            remaining = database.filter(~predicate)
            self._check_unique(namespace, remaining, [row])
            self._dbs[namespace] = remaining.vstack(
                pl.DataFrame([row], schema=self.dbs_schemas[namespace])
            )


def _create_global_execution_context() -> ExecutionContext:
    """Set up the global execution context lazily."""
    execution_context = ExecutionContext()
    globals()["_global_execution_context"] = execution_context
    return execution_context


def get_current_context() -> ExecutionContext:
    """Getter for global execution context variable

    Returns
        global execution context object

    """
    # `global _global_execution_context` fails under pytest-xdist workers, so the
    # variable is looked up explicitly and created on first use
    global_execution_context = globals().get("_global_execution_context")
    if global_execution_context is None:
        return _create_global_execution_context()

    return cast(ExecutionContext, global_execution_context)


def set_current_context(execution_context: ExecutionContext) -> None:
    """Setter for global execution context variable"""
    globals()["_global_execution_context"] = execution_context


@contextlib.contextmanager
def new_context(context: ExecutionContext) -> Iterator[ExecutionContext]:
    """Handy context manager which patches _global_execution_context with context,
    and reverts after context exit

    Parameters
    ----------
    context
        Context to apply
    """
    original_context = get_current_context()
    try:
        set_current_context(context)
        yield context
    # Release resource even when exceptions are raised
    finally:
        # Reset original context
        set_current_context(original_context)
