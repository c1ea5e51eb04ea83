#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from enum import StrEnum, auto


class ErrorKind(StrEnum):
    NOT_FOUND = auto()
    FORBIDDEN = auto()
    CONFLICT = auto()
    INVALID_INPUT = auto()


class RecurrenceError(Exception):
    """Base class for all errors raised by the recurring events API."""

    kind: ErrorKind


class NotFoundError(RecurrenceError):
    kind = ErrorKind.NOT_FOUND


class ForbiddenError(RecurrenceError):
    kind = ErrorKind.FORBIDDEN


class ConflictError(RecurrenceError):
    kind = ErrorKind.CONFLICT


class InvalidInputError(RecurrenceError):
    kind = ErrorKind.INVALID_INPUT
