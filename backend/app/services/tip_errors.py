"""Error taxonomy shared by the tip validator, repository, query engine and callers.

Validation problems are caller-correctable and carry every issue with its
path; not-found and already-exists are distinct outcomes, not failures of the
input; storage errors are not caller-correctable and wrap the driver error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

PathPart = Union[str, int]


@dataclass(frozen=True)
class ValidationIssue:
    path: tuple[PathPart, ...]
    message: str

    @property
    def field(self) -> str:
        return ".".join(str(p) for p in self.path) if self.path else "payload"

    def as_dict(self) -> dict[str, Any]:
        return {"field": self.field, "path": list(self.path), "message": self.message}

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class TipValidationError(ValueError):
    def __init__(self, issues: list[ValidationIssue]):
        self.issues = list(issues)
        summary = "; ".join(str(i) for i in self.issues[:5])
        if len(self.issues) > 5:
            summary += f" (+{len(self.issues) - 5} more)"
        super().__init__(f"{len(self.issues)} validation issue(s): {summary}")

    def as_list(self) -> list[dict[str, Any]]:
        return [issue.as_dict() for issue in self.issues]


class TipNotFoundError(LookupError):
    def __init__(self, what: str, key: str):
        self.what = what
        self.key = key
        super().__init__(f"No {what} found for '{key}'")


class TipsAlreadyExistError(Exception):
    def __init__(self, date_iso: str):
        self.date_iso = date_iso
        super().__init__(
            f"Tips for {date_iso} already exist. Delete them first or save with overwrite."
        )


class TipStorageError(RuntimeError):
    def __init__(self, operation: str, context: str, cause: BaseException | None = None):
        self.operation = operation
        self.context = context
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage failure during {operation} ({context}){detail}")


class CorruptedPayloadError(TipStorageError):
    """Stored rows for a date no longer form a valid payload."""

    def __init__(self, date_iso: str, validation: TipValidationError):
        self.validation = validation
        super().__init__("load_by_date", f"date={date_iso}", validation)
