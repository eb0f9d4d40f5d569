"""Eligibility matching: lexical overlap, result models and the matcher pipeline."""
from trial_matcher.matching.overlap import arrays_overlap
from trial_matcher.matching.results import (
    CriterionMatchResult,
    TrialEligibilityResult,
    PatientMatchResults,
)
from trial_matcher.matching.engine import (
    ConfidenceThresholds,
    EligibilityMatcher,
    TrialCriterion,
    build_synonym_index,
)

__all__ = [
    "arrays_overlap",
    "CriterionMatchResult",
    "TrialEligibilityResult",
    "PatientMatchResults",
    "ConfidenceThresholds",
    "EligibilityMatcher",
    "TrialCriterion",
    "build_synonym_index",
]
