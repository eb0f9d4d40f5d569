"""Enumerations shared across matching, storage and the API."""
from enum import Enum


class ExclusionStrength(str, Enum):
    """Whether satisfying a criterion is required or disqualifying."""
    INCLUSION = "inclusion"
    EXCLUSION = "exclusion"


class EligibilityStatus(str, Enum):
    """Aggregate verdict for one trial."""
    ELIGIBLE = "eligible"
    INELIGIBLE = "ineligible"
    NEEDS_REVIEW = "needs_review"


class TermType(str, Enum):
    """Kind of patient-entered term."""
    CONDITION = "condition"
    TREATMENT = "treatment"


class TermStatus(str, Enum):
    """Review state of a submitted term."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MatchMethod(str, Enum):
    """How a criterion outcome was decided."""
    EXACT = "exact"
    SYNONYM = "synonym"
    FUZZY = "fuzzy"
    AI_SEMANTIC = "ai_semantic"
    AI_ERROR = "ai_error"
    NO_MATCH = "no_match"
    MISSING_DATA = "missing_data"
