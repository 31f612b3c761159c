from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_ARG = "INVALID_ARG"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INTERNAL = "INTERNAL"


class ServiceError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str = "Internal error") -> None:
        super().__init__(message)
        self.message = message


class InvalidArgError(ServiceError):
    kind = ErrorKind.INVALID_ARG


class UnauthorizedError(ServiceError):
    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(ServiceError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(ServiceError):
    kind = ErrorKind.ALREADY_EXISTS


class InternalError(ServiceError):
    kind = ErrorKind.INTERNAL
