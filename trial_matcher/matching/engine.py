"""Eligibility Matcher: folds a patient's answers and trial criteria into verdicts.

Each criterion runs through a cascade, cheapest first:
1. Missing data: patient gave nothing for the criterion's category
2. Exact lexical overlap
3. Approved-term synonym overlap
4. Fuzzy lexical overlap (substring / shared word)
5. Semantic oracle, when a client is configured
6. No match

Only step 5 suspends. Criteria of one trial are evaluated concurrently, and
trials are evaluated concurrently in bounded chunks.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from trial_matcher.config.logging_config import get_logger
from trial_matcher.matching.collection_utils import chunk, group_by, unique
from trial_matcher.matching.overlap import arrays_overlap
from trial_matcher.matching.results import (
    CriterionMatchResult,
    PatientMatchResults,
    TrialEligibilityResult,
)
from trial_matcher.models.enums import ExclusionStrength, MatchMethod, TermType
from trial_matcher.reasoning.semantic_client import SemanticMatchClient, SemanticQuery

logger = get_logger(__name__)

_MATCH_TYPES = {
    TermType.CONDITION: "medical condition",
    TermType.TREATMENT: "medication or treatment",
}

_PATIENT_FIELDS = {
    TermType.CONDITION: "conditions",
    TermType.TREATMENT: "treatments",
}


class ConfidenceThresholds(BaseModel):
    """Confidence cut-offs. ``review`` flags AI verdicts, ``ignore`` drops weak ones."""

    model_config = ConfigDict(frozen=True)

    review: float = 0.5
    ignore: float = 0.3


class TrialCriterion(BaseModel):
    """One eligibility criterion of one trial."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    criterion_id: str
    nct_id: str
    category: TermType
    terms: List[str] = Field(default_factory=list)
    exclusion_strength: ExclusionStrength = ExclusionStrength.EXCLUSION
    raw_text: str = ""

    @field_validator("terms", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return value
        # Blank terms would substring-match everything in fuzzy mode
        return [v for v in value if v is not None and str(v).strip()]


def build_synonym_index(approved_terms: Iterable[Any]) -> Dict[str, List[str]]:
    """
    Map each normalized term to everything it is interchangeable with.

    Accepts objects or mappings with ``term`` and ``synonyms``. Links are made
    in both directions, so a synonym also resolves back to its term.
    """
    index: Dict[str, List[str]] = {}

    def link(a: str, b: str) -> None:
        bucket = index.setdefault(a, [])
        if b != a and b not in bucket:
            bucket.append(b)

    for entry in approved_terms:
        if isinstance(entry, Mapping):
            term, synonyms = entry.get("term"), entry.get("synonyms")
        else:
            term, synonyms = getattr(entry, "term", None), getattr(entry, "synonyms", None)
        if not term:
            continue
        term = str(term).lower().strip()
        index.setdefault(term, [])
        for synonym in synonyms or []:
            synonym = str(synonym).lower().strip()
            if not synonym:
                continue
            link(term, synonym)
            link(synonym, term)

    return index


def _patient_terms(patient_response: Mapping[str, Any], category: TermType) -> List[str]:
    raw = patient_response.get(_PATIENT_FIELDS[category])
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]
    cleaned = [str(v).strip() for v in raw if v is not None and str(v).strip()]
    return unique(cleaned, key=str.lower)


class EligibilityMatcher:
    """
    Evaluates trial criteria against a patient's questionnaire answers.

    Without a semantic client the cascade stops after fuzzy matching.
    """

    def __init__(
        self,
        semantic_client: Optional[SemanticMatchClient] = None,
        synonyms: Optional[Mapping[str, Sequence[str]]] = None,
        thresholds: Optional[ConfidenceThresholds] = None,
        max_concurrent_trials: int = 25,
    ):
        self.semantic_client = semantic_client
        self.synonyms = {k.lower().strip(): list(v) for k, v in (synonyms or {}).items()}
        self.thresholds = thresholds or ConfidenceThresholds()
        self.max_concurrent_trials = max_concurrent_trials

    def _expand_synonyms(self, terms: Iterable[str]) -> List[str]:
        expanded = []
        for term in terms:
            expanded.extend(self.synonyms.get(term.lower().strip(), []))
        return unique(expanded)

    async def evaluate_criterion(
        self,
        criterion: TrialCriterion,
        patient_response: Mapping[str, Any],
    ) -> CriterionMatchResult:
        """Run the matching cascade for a single criterion."""
        patient_terms = _patient_terms(patient_response, criterion.category)
        criterion_label = ", ".join(criterion.terms)
        patient_label = ", ".join(patient_terms)

        def result(matches: bool, confidence: float, method: MatchMethod, reasoning: str, **extra) -> CriterionMatchResult:
            return CriterionMatchResult(
                criterion_id=criterion.criterion_id,
                nct_id=criterion.nct_id,
                matches=matches,
                confidence=confidence,
                exclusion_strength=criterion.exclusion_strength,
                reasoning=reasoning,
                match_method=method,
                raw_text=criterion.raw_text,
                patient_value=f"Patient: {patient_label}" if patient_terms else f"No {criterion.category.value} reported",
                **extra,
            )

        if not patient_terms:
            return result(False, 0.5, MatchMethod.MISSING_DATA, f"Missing patient {criterion.category.value} data")

        if arrays_overlap(criterion.terms, patient_terms):
            return result(True, 0.95, MatchMethod.EXACT, f"Direct match with criterion: {criterion_label}")

        synonyms = self._expand_synonyms(patient_terms)
        if synonyms and arrays_overlap(criterion.terms, synonyms):
            return result(True, 0.85, MatchMethod.SYNONYM, f"Synonym match with criterion: {criterion_label}")

        if arrays_overlap(criterion.terms, patient_terms, fuzzy=True):
            return result(True, 0.85, MatchMethod.FUZZY, f"Partial term match with criterion: {criterion_label}")

        if self.semantic_client is not None and criterion.terms:
            match_type = _MATCH_TYPES[criterion.category]
            queries = [
                SemanticQuery(patient_term=p, criterion_term=c, match_type=match_type)
                for p in patient_terms
                for c in criterion.terms
            ]
            verdicts = await self.semantic_client.batch_semantic_match(queries)

            failed = [v for v in verdicts if v.error]
            if failed:
                logger.warning(
                    "Semantic matching failed for criterion",
                    criterion_id=criterion.criterion_id,
                    nct_id=criterion.nct_id,
                    failures=len(failed),
                )
                return result(
                    False, 0.0, MatchMethod.AI_ERROR,
                    f"AI analysis unavailable: {failed[0].reasoning}",
                    requires_ai=True,
                )

            accepted = [v for v in verdicts if v.match and v.confidence >= self.thresholds.ignore]
            if accepted:
                best = max(accepted, key=lambda v: v.confidence)
                return result(
                    True, best.confidence, MatchMethod.AI_SEMANTIC,
                    f"AI semantic analysis. Criterion: {criterion_label}. {best.reasoning}".strip(),
                    requires_ai=True,
                )

        return result(False, 0.9, MatchMethod.NO_MATCH, f"No match found. Criterion required: {criterion_label}")

    async def evaluate_trial(
        self,
        nct_id: str,
        criteria: Sequence[TrialCriterion],
        patient_response: Mapping[str, Any],
    ) -> TrialEligibilityResult:
        """Evaluate every criterion of one trial concurrently."""
        outcomes = await asyncio.gather(*(
            self.evaluate_criterion(criterion, patient_response) for criterion in criteria
        ))
        return TrialEligibilityResult.from_criteria(
            nct_id, outcomes, review_threshold=self.thresholds.review
        )

    async def match_patient(
        self,
        patient_response: Mapping[str, Any],
        criteria: Iterable[Any],
    ) -> PatientMatchResults:
        """
        Evaluate a patient against every trial the criteria belong to.

        Args:
            patient_response: Questionnaire answers (``conditions``, ``treatments``)
            criteria: TrialCriterion objects or mappings that validate as one

        Returns:
            PatientMatchResults with trials bucketed by status
        """
        parsed = [
            c if isinstance(c, TrialCriterion) else TrialCriterion.model_validate(c)
            for c in criteria
        ]
        by_trial = group_by(parsed, "nct_id")

        logger.info(
            "Matching patient against trials",
            trials=len(by_trial),
            criteria=len(parsed),
            semantic=self.semantic_client is not None,
        )

        trial_results: List[TrialEligibilityResult] = []
        for batch in chunk(list(by_trial.items()), self.max_concurrent_trials):
            trial_results.extend(await asyncio.gather(*(
                self.evaluate_trial(nct_id, trial_criteria, patient_response)
                for nct_id, trial_criteria in batch
            )))

        results = PatientMatchResults.from_trial_results(dict(patient_response), trial_results)
        logger.info("Patient matching complete", **results.get_summary())
        return results
