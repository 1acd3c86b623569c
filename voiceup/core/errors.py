"""Typed failures raised by the chat core.

Every service operation either returns a typed result or raises one of these.
``operation`` names the user-level action that failed so callers can log it
without parsing messages.
"""
from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

class VoiceUpError(Exception):
    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"Failed to {self.operation}: {self.message}"
        return self.message

class NotAuthenticatedError(VoiceUpError):
    def __init__(self, message: str = "No authenticated user", **kw: Any) -> None:
        super().__init__(message, **kw)

class BackendQueryError(VoiceUpError):
    pass

class RecordNotFoundError(BackendQueryError):
    pass

class ConflictError(BackendQueryError):
    pass

class PermissionDeniedError(VoiceUpError):
    pass

class InvalidRequestError(VoiceUpError):
    pass

class StorageError(VoiceUpError):
    pass

class UnexpectedError(VoiceUpError):
    pass

def operation(name: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Stamp ``name`` on typed errors raised by the wrapped coroutine.

    Anything that is not a :class:`VoiceUpError` is wrapped in
    :class:`UnexpectedError`. Errors that already carry an operation keep it,
    so the innermost action is reported.
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await fn(*args, **kwargs)
            except VoiceUpError as exc:
                if exc.operation is None:
                    exc.operation = name
                raise
            except Exception as exc:
                raise UnexpectedError(repr(exc), operation=name) from exc

        return wrapper

    return decorator
