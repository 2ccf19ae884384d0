"""
Domain errors for the letter pipeline.

Routers translate these into HTTP responses; core code never raises
HTTPException for workflow or generation failures.
"""
from __future__ import annotations

from typing import Optional


class EOfficeError(Exception):
    """Base class for all domain errors."""

    code: str = "EOFFICE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class GenerationError(EOfficeError):
    """A PDF could not be produced. No partial document is ever returned."""

    code = "GENERATION_FAILED"


class PreconditionError(EOfficeError):
    """A workflow action was attempted in the wrong state; nothing was mutated."""

    code = "PRECONDITION_FAILED"


class NotFoundError(EOfficeError):
    """Unknown letter, user or letter type."""

    code = "NOT_FOUND"


class CounterContentionError(EOfficeError):
    """The sequence counter could not be incremented within the retry budget."""

    code = "COUNTER_CONTENTION"
