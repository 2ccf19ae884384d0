"""
Storage adapter interface for E-Office letters.
Defines the contract the workflow and routers rely on.
"""

from typing import Protocol, List, Dict, Any, Optional

from eoffice.models import Letter, LetterType, Profile


class CounterStore(Protocol):
    """Per-bucket letter sequence."""

    def next_value(self, key: str) -> int:
        """
        Atomically increment the counter `key` (created at 0 when missing)
        and return the new value. Two callers never receive the same value
        for the same key, and no value is skipped.

        Raises:
            CounterContentionError when the increment could not be committed
            within the adapter's retry budget.
        """
        ...

    def peek_value(self, key: str) -> int:
        """Current value of `key` without incrementing (0 when missing)."""
        ...


class LetterRepository(Protocol):
    def create_letter(self, letter: Letter) -> Letter:
        """Insert a new letter. Returns it with version=1."""
        ...

    def get_letter(self, letter_id: str) -> Optional[Letter]:
        ...

    def save_letter(self, letter: Letter) -> Letter:
        """
        Persist `letter` if the stored version still equals `letter.version`.

        Returns the letter with its version bumped.

        Raises:
            PreconditionError(LETTER_MODIFIED) when someone else saved first.
            NotFoundError(LETTER_NOT_FOUND) when the row is gone.
        """
        ...

    def list_letters(self, *, unit_code: Optional[str] = None) -> List[Letter]:
        ...


class IdentityDirectory(Protocol):
    def get_profile(self, uid: str) -> Optional[Profile]:
        """Normalized profile, or None for an unknown id."""
        ...

    def upsert_user(self, uid: str, record: Dict[str, Any]) -> None:
        """Store a raw user record in whatever shape the source uses."""
        ...


class LetterTypeCatalog(Protocol):
    def get_letter_type(self, code: str) -> Optional[LetterType]:
        ...

    def list_letter_types(self) -> List[LetterType]:
        ...

    def upsert_letter_type(self, record: Dict[str, Any]) -> LetterType:
        ...


class StorageAdapter(CounterStore, LetterRepository, IdentityDirectory, LetterTypeCatalog, Protocol):
    """Everything one backend provides; the SQLite adapter implements all of it."""
