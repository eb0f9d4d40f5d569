"""Result models for eligibility matching.

Three immutable levels:
- CriterionMatchResult: one criterion evaluated against one trial
- TrialEligibilityResult: every criterion outcome for one trial
- PatientMatchResults: every trial outcome for one patient run

Aggregation is a pure fold over already-computed criterion outcomes; nothing
here calls the lexical matcher or the semantic client.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from trial_matcher.models.enums import EligibilityStatus, ExclusionStrength, MatchMethod


class CriterionMatchResult(BaseModel):
    """Outcome of matching a patient against a single criterion."""

    model_config = ConfigDict(frozen=True)

    criterion_id: str
    nct_id: str
    matches: bool
    confidence: float = 1.0
    exclusion_strength: ExclusionStrength = ExclusionStrength.EXCLUSION
    reasoning: Optional[str] = None
    requires_ai: bool = False
    match_method: Optional[MatchMethod] = None
    raw_text: str = ""
    patient_value: str = ""

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return min(1.0, max(0.0, value))

    @property
    def causes_ineligibility(self) -> bool:
        """Failed inclusion or matched exclusion."""
        if self.exclusion_strength == ExclusionStrength.INCLUSION:
            return not self.matches
        return self.matches

    @property
    def status_label(self) -> str:
        if self.exclusion_strength == ExclusionStrength.INCLUSION:
            return "Meets inclusion requirement" if self.matches else "Fails inclusion requirement"
        return "Matches exclusion criterion" if self.matches else "Does not match exclusion"

    def to_json(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["causes_ineligibility"] = self.causes_ineligibility
        return data


class TrialEligibilityResult(BaseModel):
    """Aggregate verdict for one trial."""

    model_config = ConfigDict(frozen=True)

    nct_id: str
    status: EligibilityStatus
    matched_criteria: Tuple[CriterionMatchResult, ...] = ()
    failure_reasons: Tuple[str, ...] = ()

    @classmethod
    def from_criteria(
        cls,
        nct_id: str,
        criteria: Iterable[CriterionMatchResult],
        review_threshold: float = 0.5,
    ) -> "TrialEligibilityResult":
        """
        Fold criterion outcomes into a trial verdict.

        A trial is ineligible when some criterion causes ineligibility. Any
        oracle-backed criterion below ``review_threshold`` sends the trial to
        review instead, whether or not it would otherwise be ineligible.
        """
        criteria = tuple(criteria)

        failure_reasons = []
        for c in criteria:
            if c.causes_ineligibility:
                label = c.raw_text or c.criterion_id
                if c.exclusion_strength == ExclusionStrength.INCLUSION:
                    failure_reasons.append(f"Failed inclusion: {label}")
                else:
                    failure_reasons.append(f"Matched exclusion: {label}")

        has_ineligibility = bool(failure_reasons)
        has_low_confidence = any(
            c.requires_ai and c.confidence < review_threshold for c in criteria
        )

        if has_low_confidence:
            status = EligibilityStatus.NEEDS_REVIEW
        elif has_ineligibility:
            status = EligibilityStatus.INELIGIBLE
        else:
            status = EligibilityStatus.ELIGIBLE

        return cls(
            nct_id=nct_id,
            status=status,
            matched_criteria=criteria,
            failure_reasons=tuple(failure_reasons),
        )

    def get_confidence_score(self) -> float:
        """Mean criterion confidence; 1.0 when no criteria were evaluated."""
        if not self.matched_criteria:
            return 1.0
        total = sum(c.confidence for c in self.matched_criteria)
        return round(total / len(self.matched_criteria), 3)

    def get_ineligibility_criteria(self) -> List[CriterionMatchResult]:
        return [c for c in self.matched_criteria if c.causes_ineligibility]

    def get_failed_inclusions(self) -> List[CriterionMatchResult]:
        return [
            c for c in self.matched_criteria
            if c.exclusion_strength == ExclusionStrength.INCLUSION and not c.matches
        ]

    def get_matched_exclusions(self) -> List[CriterionMatchResult]:
        return [
            c for c in self.matched_criteria
            if c.exclusion_strength == ExclusionStrength.EXCLUSION and c.matches
        ]

    def get_flagged_criteria(self) -> List[CriterionMatchResult]:
        """Criteria decided by the semantic oracle."""
        return [c for c in self.matched_criteria if c.requires_ai]

    def to_json(self) -> Dict[str, Any]:
        return {
            "nct_id": self.nct_id,
            "status": self.status.value,
            "confidence_score": self.get_confidence_score(),
            "matched_criteria": [c.to_json() for c in self.matched_criteria],
            "failure_reasons": list(self.failure_reasons),
        }


class PatientMatchResults(BaseModel):
    """
    Complete matching output for one patient run.

    A trial may appear only once across all three buckets; construction with
    a repeated ``nct_id`` (in the same bucket or in different ones) raises
    ``ValidationError``. ``from_trial_results`` never produces that.
    """

    model_config = ConfigDict(frozen=True)

    patient_response: Any = None
    eligible_trials: Tuple[TrialEligibilityResult, ...] = ()
    ineligible_trials: Tuple[TrialEligibilityResult, ...] = ()
    needs_review_trials: Tuple[TrialEligibilityResult, ...] = ()
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_disjoint(self) -> "PatientMatchResults":
        seen = set()
        for trial in self.eligible_trials + self.ineligible_trials + self.needs_review_trials:
            if trial.nct_id in seen:
                raise ValueError(f"Trial {trial.nct_id} appears more than once across buckets")
            seen.add(trial.nct_id)
        return self

    @classmethod
    def from_trial_results(
        cls,
        patient_response: Any,
        trial_results: Iterable[TrialEligibilityResult],
    ) -> "PatientMatchResults":
        """Bucket trial results by status, best-scoring eligible/review trials first."""
        buckets: Dict[EligibilityStatus, List[TrialEligibilityResult]] = {
            EligibilityStatus.ELIGIBLE: [],
            EligibilityStatus.INELIGIBLE: [],
            EligibilityStatus.NEEDS_REVIEW: [],
        }
        for result in trial_results:
            buckets[result.status].append(result)

        # sorted() is stable, so equal scores keep evaluation order
        by_score = TrialEligibilityResult.get_confidence_score
        return cls(
            patient_response=patient_response,
            eligible_trials=tuple(sorted(buckets[EligibilityStatus.ELIGIBLE], key=by_score, reverse=True)),
            ineligible_trials=tuple(buckets[EligibilityStatus.INELIGIBLE]),
            needs_review_trials=tuple(sorted(buckets[EligibilityStatus.NEEDS_REVIEW], key=by_score, reverse=True)),
        )

    def get_total_trials_evaluated(self) -> int:
        return len(self.eligible_trials) + len(self.ineligible_trials) + len(self.needs_review_trials)

    def get_summary(self) -> Dict[str, Any]:
        total = self.get_total_trials_evaluated()
        eligible = len(self.eligible_trials)
        return {
            "total_evaluated": total,
            "eligible": eligible,
            "ineligible": len(self.ineligible_trials),
            "needs_review": len(self.needs_review_trials),
            "eligibility_rate": round(eligible / total * 100, 1) if total > 0 else 0,
        }

    def to_json(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "summary": self.get_summary(),
            "eligible_trials": [t.to_json() for t in self.eligible_trials],
            "needs_review_trials": [t.to_json() for t in self.needs_review_trials],
            "ineligible_trials": [t.to_json() for t in self.ineligible_trials],
            "patient_response": self.patient_response,
        }
