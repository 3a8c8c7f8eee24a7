"""Errors shared by the controllers."""

from __future__ import annotations

from http import HTTPStatus


class RequeueAfterError(Exception):
    """Signals that an operation is not finished and should be retried later."""

    def __init__(self, requeue_after: float, cause: BaseException | str) -> None:
        self.requeue_after = float(requeue_after)
        self.cause = cause
        super().__init__(str(cause))
        if isinstance(cause, BaseException):
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.cause} (requeue after {self.requeue_after:g}s)"


class GoogleAPIError(Exception):
    """An error answered by a Google Cloud API, carrying the HTTP status code."""

    def __init__(self, code: int, message: str = "") -> None:
        self.code = int(code)
        self.message = message
        super().__init__(f"googleapi: Error {self.code}: {message}".rstrip(": "))

    @property
    def is_not_found(self) -> bool:
        return self.code == HTTPStatus.NOT_FOUND

    @property
    def is_conflict(self) -> bool:
        return self.code == HTTPStatus.CONFLICT