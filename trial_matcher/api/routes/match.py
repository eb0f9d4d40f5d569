"""Semantic and patient matching API routes."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from trial_matcher.config.logging_config import get_logger
from trial_matcher.config.settings import get_settings
from trial_matcher.matching.engine import (
    ConfidenceThresholds,
    EligibilityMatcher,
    TrialCriterion,
    build_synonym_index,
)
from trial_matcher.reasoning.oracle import AnthropicOracle
from trial_matcher.reasoning.semantic_client import (
    SemanticClientConfig,
    SemanticMatchClient,
    SemanticMatchResult,
    SemanticQuery,
)
from trial_matcher.storage.term_repository import get_term_repository

logger = get_logger(__name__)

router = APIRouter(prefix="/match", tags=["Match"])

NOT_CONFIGURED = "Semantic matching is not configured"


class MatchRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    patient_term: Optional[str] = None
    criterion_term: Optional[str] = None
    match_type: Optional[str] = None


class BatchMatchRequest(BaseModel):
    queries: Optional[List[Dict[str, Any]]] = None


class PatientMatchRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    patient_response: Dict[str, Any]
    criteria: List[Dict[str, Any]]


# Global instance
_semantic_client: Optional[SemanticMatchClient] = None


def get_semantic_client() -> Optional[SemanticMatchClient]:
    """Get or create the global semantic client; None without an API key."""
    global _semantic_client
    if _semantic_client is None:
        settings = get_settings()
        if not settings.anthropic_api_key:
            return None
        _semantic_client = SemanticMatchClient(
            api_key=settings.anthropic_api_key,
            model=settings.semantic_model,
            config=SemanticClientConfig(
                persist_to_storage=settings.persist_semantic_cache,
                max_entries=settings.semantic_cache_max_entries,
                max_tokens=settings.oracle_max_tokens,
                temperature=settings.oracle_temperature,
            ),
            oracle=AnthropicOracle(
                settings.anthropic_api_key,
                timeout=settings.oracle_timeout_seconds,
                api_version=settings.anthropic_version,
            ),
        )
    return _semantic_client


async def shutdown_semantic_client() -> None:
    """Close and forget the global client."""
    global _semantic_client
    if _semantic_client is not None:
        await _semantic_client.close()
        _semantic_client = None


def _require(client: Optional[SemanticMatchClient]) -> SemanticMatchClient:
    if client is None:
        raise HTTPException(status_code=503, detail=NOT_CONFIGURED)
    return client


@router.post("", response_model=SemanticMatchResult)
async def semantic_match(
    request: MatchRequest,
    client: Optional[SemanticMatchClient] = Depends(get_semantic_client),
):
    """Ask the oracle whether a patient term falls under a criterion term."""
    client = _require(client)
    if not request.patient_term:
        raise HTTPException(status_code=400, detail="Missing required field: patient_term")
    if not request.criterion_term:
        raise HTTPException(status_code=400, detail="Missing required field: criterion_term")

    return await client.semantic_match(
        request.patient_term, request.criterion_term, request.match_type
    )


@router.post("/batch")
async def batch_semantic_match(
    request: BatchMatchRequest,
    client: Optional[SemanticMatchClient] = Depends(get_semantic_client),
):
    """Run up to ``max_batch_queries`` semantic matches concurrently."""
    client = _require(client)
    queries = request.queries
    max_queries = get_settings().max_batch_queries

    if queries is None:
        raise HTTPException(status_code=400, detail="Missing required field: queries (array)")
    if not queries:
        raise HTTPException(status_code=400, detail="Queries array cannot be empty")
    if len(queries) > max_queries:
        raise HTTPException(status_code=400, detail=f"Maximum {max_queries} queries per batch request")

    parsed = []
    for i, raw in enumerate(queries):
        try:
            query = SemanticQuery.model_validate(raw)
        except ValidationError:
            query = None
        if query is None or not query.patient_term or not query.criterion_term:
            raise HTTPException(
                status_code=400,
                detail=f"Query at index {i} missing patient_term or criterion_term",
            )
        parsed.append(query)

    results = await client.batch_semantic_match(parsed)
    return {"results": [r.model_dump() for r in results]}


@router.get("/cache/stats")
async def get_cache_stats(client: Optional[SemanticMatchClient] = Depends(get_semantic_client)):
    return _require(client).get_cache_stats()


@router.delete("/cache")
async def clear_cache(client: Optional[SemanticMatchClient] = Depends(get_semantic_client)):
    _require(client).clear_cache()
    logger.info("Semantic cache cleared via API")
    return {"message": "Cache cleared"}


@router.post("/patient")
async def match_patient(
    request: PatientMatchRequest,
    client: Optional[SemanticMatchClient] = Depends(get_semantic_client),
):
    """
    Evaluate a patient against every trial the submitted criteria belong to.

    Approved-term synonyms are loaded from storage. Without an API key the
    matcher runs lexical steps only.
    """
    try:
        criteria = [TrialCriterion.model_validate(c) for c in request.criteria]
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid criteria: {e.error_count()} error(s)")

    settings = get_settings()
    approved = await get_term_repository().list_approved_terms()
    matcher = EligibilityMatcher(
        # Each patient run gets its own cache
        semantic_client=client.fork() if client is not None else None,
        synonyms=build_synonym_index(approved),
        thresholds=ConfidenceThresholds(
            review=settings.confidence_review,
            ignore=settings.confidence_ignore,
        ),
        max_concurrent_trials=settings.max_concurrent_trials,
    )

    results = await matcher.match_patient(request.patient_response, criteria)
    return results.to_json()
