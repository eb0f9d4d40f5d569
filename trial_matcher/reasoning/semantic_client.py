"""Semantic Match Client: cached access to the semantic similarity oracle.

Exact and fuzzy lexical matching cannot relate "breast cancer" to "malignant
tumors"; this client asks the oracle instead. Verdicts are cached per
normalized (patient term, criterion term, match type) triple so a patient run
pays for each distinct pair once.

Runtime failures never raise. Transport, status, parse and any unexpected
oracle failures come back as results with ``error=True``, ``match=False``
and zero confidence, and are never cached, so the next call for the same
pair retries.
"""

import asyncio
import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from trial_matcher.config.logging_config import get_logger
from trial_matcher.exceptions import (
    AuthenticationError,
    OracleAPIError,
    OracleResponseError,
    OracleTransportError,
)
from trial_matcher.reasoning.oracle import AnthropicOracle, SemanticOracle
from trial_matcher.reasoning.prompt_loader import get_prompt_loader
from trial_matcher.reasoning.response_cache import (
    CachedVerdict,
    SemanticMatchCache,
    make_cache_key,
)

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_MATCH_TYPE = "medical term"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class SemanticClientConfig(BaseModel):
    """Options for SemanticMatchClient."""
    persist_to_storage: bool = False
    max_entries: Optional[int] = None
    max_tokens: int = 500
    temperature: float = 0.3


class SemanticMatchResult(BaseModel):
    """Verdict returned by semantic_match."""

    model_config = ConfigDict(frozen=True)

    match: bool
    confidence: float
    reasoning: str = ""
    from_cache: bool = False
    error: bool = False


class SemanticQuery(BaseModel):
    """One entry of a batch request; accepts snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    patient_term: str
    criterion_term: str
    match_type: str = DEFAULT_MATCH_TYPE


class VerdictStore(Protocol):
    """Persistent backing for cached verdicts."""

    async def save(self, key: str, verdict: CachedVerdict) -> None:
        ...

    async def load_all(self) -> Dict[str, CachedVerdict]:
        ...

    async def clear(self) -> int:
        ...


def _error_result(reasoning: str) -> SemanticMatchResult:
    return SemanticMatchResult(match=False, confidence=0.0, reasoning=reasoning, error=True)


def parse_verdict(response_text: str) -> CachedVerdict:
    """
    Extract and validate the JSON verdict embedded in oracle text.

    Raises:
        OracleResponseError: No JSON object, or fields of the wrong type
    """
    found = _JSON_OBJECT.search(response_text or "")
    if not found:
        raise OracleResponseError("No JSON found in response")

    try:
        parsed = json.loads(found.group(0))
    except json.JSONDecodeError as e:
        raise OracleResponseError(f"Invalid JSON: {e.msg}") from e

    if not isinstance(parsed, dict):
        raise OracleResponseError("Invalid response structure")

    match = parsed.get("match")
    confidence = parsed.get("confidence")
    reasoning = parsed.get("reasoning")
    if (
        not isinstance(match, bool)
        or isinstance(confidence, bool)
        or not isinstance(confidence, (int, float))
        or not isinstance(reasoning, str)
    ):
        raise OracleResponseError("Invalid response structure")

    return CachedVerdict(
        match=match,
        confidence=min(1.0, max(0.0, float(confidence))),
        reasoning=reasoning,
    )


class SemanticMatchClient:
    """
    Cached semantic matching against the oracle.

    One instance per patient run is the intended scope: the cache is private
    to the instance, and it is shared across every criterion of the run.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        config: Optional[SemanticClientConfig] = None,
        oracle: Optional[SemanticOracle] = None,
        store: Optional[VerdictStore] = None,
    ):
        if not api_key:
            raise AuthenticationError("Anthropic API key is required")

        self._api_key = api_key
        self._model = model
        self.config = config or SemanticClientConfig()
        self._oracle = oracle or AnthropicOracle(api_key)
        self._cache = SemanticMatchCache(max_entries=self.config.max_entries)

        if self.config.persist_to_storage and store is None:
            from trial_matcher.storage.cache_repository import SemanticCacheRepository
            store = SemanticCacheRepository()
        self._store = store if self.config.persist_to_storage else None

        logger.info(
            "Semantic match client initialized",
            model=model,
            persist_to_storage=self.config.persist_to_storage,
        )

    async def semantic_match(
        self,
        patient_term: str,
        criterion_term: str,
        match_type: str = DEFAULT_MATCH_TYPE,
    ) -> SemanticMatchResult:
        """
        Ask whether a patient term falls under a criterion term.

        Args:
            patient_term: The patient's condition or treatment
            criterion_term: The trial criterion's term
            match_type: What kind of term is compared (e.g. "medical condition")

        Returns:
            SemanticMatchResult; ``from_cache`` is set on a cache hit and
            ``error`` on any oracle failure
        """
        match_type = match_type or DEFAULT_MATCH_TYPE
        key = make_cache_key(patient_term, criterion_term, match_type)

        cached = self._cache.get(key)
        if cached is not None:
            self._cache.stats.hits += 1
            return SemanticMatchResult(**cached.model_dump(), from_cache=True)

        self._cache.stats.misses += 1

        try:
            prompt = get_prompt_loader().load(
                "semantic_match.txt",
                {
                    "patient_term": patient_term,
                    "criterion_term": criterion_term,
                    "match_type": match_type,
                },
            )
            response_text = await self._oracle.complete(
                prompt,
                model=self._model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
            verdict = parse_verdict(response_text)
        except OracleTransportError as e:
            logger.warning("Semantic match transport failure", key=key, error=str(e))
            return _error_result(f"API error: {e}")
        except OracleAPIError as e:
            logger.warning("Semantic match API error", key=key, status_code=e.status_code, error=e.message)
            return _error_result(f"API error: {e.message}")
        except OracleResponseError as e:
            logger.warning("Semantic match parse failure", key=key, error=str(e))
            return _error_result(f"Parse error: {e}")
        except Exception as e:
            # Anything else from the oracle or prompt rendering still stays in-band
            logger.warning("Semantic match failed unexpectedly", key=key, error=str(e), exc_info=True)
            return _error_result(f"API error: {type(e).__name__}: {e}")

        self._cache.set(key, verdict)
        await self._persist(key, verdict)

        logger.debug("Semantic match cached", key=key, match=verdict.match, confidence=verdict.confidence)
        return SemanticMatchResult(**verdict.model_dump(), from_cache=False)

    async def batch_semantic_match(
        self,
        queries: Iterable[Union[SemanticQuery, Mapping[str, Any]]],
    ) -> List[SemanticMatchResult]:
        """Run every query concurrently; results follow input order."""
        parsed = [
            q if isinstance(q, SemanticQuery) else SemanticQuery.model_validate(q)
            for q in queries
        ]
        return list(await asyncio.gather(*(
            self.semantic_match(q.patient_term, q.criterion_term, q.match_type)
            for q in parsed
        )))

    async def _persist(self, key: str, verdict: CachedVerdict) -> None:
        if self._store is None:
            return
        try:
            await self._store.save(key, verdict)
        except Exception as e:
            logger.warning("Failed to persist semantic verdict", key=key, error=str(e))

    async def load_persisted_cache(self) -> int:
        """Restore persisted verdicts into memory; returns the number loaded."""
        if self._store is None:
            return 0
        entries = await self._store.load_all()
        for key, verdict in entries.items():
            self._cache.set(key, verdict)
        logger.info("Semantic cache restored", entries=len(entries))
        return len(entries)

    async def clear_persisted_cache(self) -> int:
        """Drop persisted verdicts; the in-memory cache is left alone."""
        if self._store is None:
            return 0
        return await self._store.clear()

    def fork(self) -> "SemanticMatchClient":
        """
        New client for another patient run.

        Shares this client's oracle, model, config and store; starts with an
        empty cache and zeroed stats.
        """
        return SemanticMatchClient(
            self._api_key,
            model=self._model,
            config=self.config,
            oracle=self._oracle,
            store=self._store,
        )

    async def close(self) -> None:
        """Release the oracle's connection pool, if it holds one."""
        close = getattr(self._oracle, "close", None)
        if close is not None:
            await close()

    def get_model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        self._model = model

    def clear_cache(self) -> None:
        """Drop every cached verdict and reset hit/miss counters."""
        self._cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        stats = self._cache.stats
        return {
            "size": len(self._cache),
            "hits": stats.hits,
            "misses": stats.misses,
            "hit_rate": stats.hit_rate,
        }
