from fastapi import APIRouter, Depends

from eoffice.core.workflow import ApprovalService
from eoffice.deps import get_service
from eoffice.models import VerificationSummary

router = APIRouter(prefix="/public", tags=["public"])


@router.get("/verify/{letter_id}", response_model=VerificationSummary)
def verify_letter(letter_id: str, service: ApprovalService = Depends(get_service)):
    """Landing data for the QR code printed on approved letters. No auth."""
    return service.verify(letter_id)
