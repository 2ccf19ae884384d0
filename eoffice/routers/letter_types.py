from typing import List

from fastapi import APIRouter, Depends

from eoffice.core.errors import NotFoundError
from eoffice.deps import get_storage
from eoffice.models import LetterType

router = APIRouter(prefix="/letter-types", tags=["letter-types"])


@router.get("", response_model=List[LetterType])
def list_letter_types(storage=Depends(get_storage)):
    """Reference list for the letter-type dropdown."""
    return storage.list_letter_types()


@router.get("/{code}", response_model=LetterType)
def get_letter_type(code: str, storage=Depends(get_storage)):
    letter_type = storage.get_letter_type(code)
    if letter_type is None:
        raise NotFoundError(f"Letter type '{code}' not found", code="LETTER_TYPE_NOT_FOUND")
    return letter_type
