# asset_catalog/errors.py
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Type

import asyncpg
from botocore.exceptions import ClientError

# Server-side errors, client/protocol errors and dropped connections
DATABASE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class CatalogError(Exception):
    """Base class for errors surfaced by the catalog engine"""

    kind = "CatalogError"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        """Structured form returned to callers"""
        data: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.context:
            data["context"] = {k: str(v) for k, v in self.context.items()}
        return data

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class InvalidInput(CatalogError):
    """Malformed or empty names and path segments"""

    kind = "InvalidInput"


class Conflict(CatalogError):
    """A unique constraint lost a race against a concurrent writer"""

    kind = "Conflict"


class StorageUnavailable(CatalogError):
    """A backing store could not be reached"""

    kind = "StorageUnavailable"


class StorageWriteFailed(CatalogError):
    """The object store rejected a write or retries were exhausted"""

    kind = "StorageWriteFailed"

    def __init__(self, message: str, last_error: Optional[BaseException] = None, **context: Any):
        if last_error is not None:
            context.setdefault("cause", describe_error(last_error))
        super().__init__(message, **context)
        self.last_error = last_error


class CatalogWriteFailed(CatalogError):
    """The relational store rejected the catalog row after upload"""

    kind = "CatalogWriteFailed"


class NotFound(CatalogError):
    """Lookup against a missing or archived entry"""

    kind = "NotFound"


def describe_error(exc: BaseException) -> str:
    """Render a low-level error without request details or credentials."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "Unknown")
        message = error.get("Message", "")
        return f"{type(exc).__name__}[{code}]: {message}".rstrip(": ")
    if isinstance(exc, CatalogError):
        return f"{exc.kind}: {exc.message}"
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


@contextmanager
def database_errors(error_class: Type[CatalogError], message: str,
                    **context: Any) -> Iterator[None]:
    """Re-raise driver and connection errors as ``error_class``"""
    try:
        yield
    except DATABASE_ERRORS as e:
        raise error_class(message, cause=describe_error(e), **context) from e
