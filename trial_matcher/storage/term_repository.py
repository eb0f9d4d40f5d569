"""Term Repository: patient-entered terms submitted for admin review."""

import json
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select

from trial_matcher.config.logging_config import get_logger
from trial_matcher.exceptions import TermValidationError
from trial_matcher.models.enums import TermStatus, TermType
from trial_matcher.storage.database import get_db
from trial_matcher.storage.models import PendingTermModel

logger = get_logger(__name__)


class TermSubmissionResult(BaseModel):
    success: bool = True
    message: str
    status: Optional[str] = None


class ApprovedTerm(BaseModel):
    term: str
    type: TermType
    synonyms: List[str] = Field(default_factory=list)


def _parse_synonyms(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Corrupted synonym list, treating as empty", raw=raw)
        return []
    return [str(s) for s in parsed] if isinstance(parsed, list) else []


def validate_term_submission(term: Optional[str], term_type: Optional[str]) -> TermType:
    """
    Validate a submission's required fields.

    Raises:
        TermValidationError: Missing term/type or an unknown type
    """
    if not term or not term.strip() or not term_type:
        raise TermValidationError("Missing required fields: term and type")
    try:
        return TermType(term_type)
    except ValueError:
        raise TermValidationError('Invalid type. Must be "condition" or "treatment"')


class TermRepository:
    """Async repository for the pending_terms table."""

    async def submit_unknown_term(
        self,
        term: Optional[str],
        term_type: Optional[str],
        context: Optional[str] = None,
    ) -> TermSubmissionResult:
        """Record a term for review unless the same (term, type) already exists."""
        validated_type = validate_term_submission(term, term_type)
        normalized = term.lower().strip()

        async with get_db() as session:
            stmt = select(PendingTermModel).where(
                PendingTermModel.term == normalized,
                PendingTermModel.type == validated_type.value,
            )
            existing = (await session.execute(stmt)).scalar_one_or_none()

            if existing:
                logger.info("Term already submitted", term=normalized, status=existing.status)
                return TermSubmissionResult(message="Term already submitted", status=existing.status)

            session.add(PendingTermModel(
                term=normalized,
                type=validated_type.value,
                context=context or None,
                status=TermStatus.PENDING.value,
            ))

        logger.info("Term submitted for review", term=normalized, type=validated_type.value)
        return TermSubmissionResult(message="Term submitted for review")

    async def list_approved_terms(self, term_type: Optional[str] = None) -> List[ApprovedTerm]:
        """Approved terms ordered by term, optionally filtered by type."""
        async with get_db() as session:
            stmt = select(PendingTermModel).where(
                PendingTermModel.status == TermStatus.APPROVED.value
            )
            if term_type:
                stmt = stmt.where(PendingTermModel.type == term_type)
            stmt = stmt.order_by(PendingTermModel.term.asc())
            rows = (await session.execute(stmt)).scalars().all()

            return [
                ApprovedTerm(term=row.term, type=row.type, synonyms=_parse_synonyms(row.synonyms))
                for row in rows
            ]

    async def review_term(
        self,
        term_id: int,
        approved: bool,
        synonyms: Optional[List[str]] = None,
    ) -> bool:
        """
        Approve (with synonyms) or reject a pending term. Returns False if unknown.

        Admin and seeding entry point; there is no HTTP route for it, since
        approving a term changes matching for every patient.
        """
        async with get_db() as session:
            row = await session.get(PendingTermModel, term_id)
            if row is None:
                return False
            row.status = (TermStatus.APPROVED if approved else TermStatus.REJECTED).value
            row.synonyms = json.dumps(synonyms or []) if approved else None
            row.reviewed_at = datetime.now(timezone.utc)

        logger.info("Term reviewed", term_id=term_id, approved=approved)
        return True


# Global instance
_term_repository: Optional[TermRepository] = None


def get_term_repository() -> TermRepository:
    """Get or create global TermRepository."""
    global _term_repository
    if _term_repository is None:
        _term_repository = TermRepository()
    return _term_repository
