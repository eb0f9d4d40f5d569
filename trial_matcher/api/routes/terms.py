"""Term review API routes."""
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from trial_matcher.config.logging_config import get_logger
from trial_matcher.exceptions import TermValidationError
from trial_matcher.storage.term_repository import (
    ApprovedTerm,
    TermSubmissionResult,
    get_term_repository,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/terms", tags=["Terms"])


class UnknownTermRequest(BaseModel):
    """Fields are optional here so missing ones get the domain error message."""
    term: Optional[str] = None
    type: Optional[str] = None
    context: Optional[str] = None


@router.post("/unknown", response_model=TermSubmissionResult, response_model_exclude_none=True)
async def submit_unknown_term(request: UnknownTermRequest):
    """
    Submit a patient-entered term the matcher did not recognize.

    Returns:
        Confirmation, or the current review status if the term was seen before
    """
    try:
        return await get_term_repository().submit_unknown_term(
            request.term, request.type, request.context
        )
    except TermValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/approved", response_model=List[ApprovedTerm])
async def list_approved_terms(
    type: Optional[str] = Query(None, description="Filter by 'condition' or 'treatment'"),
):
    """Approved terms with their synonyms, ordered by term."""
    return await get_term_repository().list_approved_terms(type)
