"""Semantic Cache Repository: persists semantic verdicts across restarts."""

from datetime import datetime, timezone
from typing import Dict

from sqlalchemy import delete, select

from trial_matcher.config.logging_config import get_logger
from trial_matcher.reasoning.response_cache import CachedVerdict
from trial_matcher.storage.database import get_db
from trial_matcher.storage.models import SemanticCacheEntryModel

logger = get_logger(__name__)


class SemanticCacheRepository:
    """Stores the same key → verdict mapping the in-memory cache holds."""

    async def save(self, key: str, verdict: CachedVerdict) -> None:
        async with get_db() as session:
            existing = await session.get(SemanticCacheEntryModel, key)
            if existing:
                existing.match = verdict.match
                existing.confidence = verdict.confidence
                existing.reasoning = verdict.reasoning
                existing.cached_at = datetime.now(timezone.utc)
            else:
                session.add(SemanticCacheEntryModel(
                    cache_key=key,
                    match=verdict.match,
                    confidence=verdict.confidence,
                    reasoning=verdict.reasoning,
                ))

    async def load_all(self) -> Dict[str, CachedVerdict]:
        async with get_db() as session:
            rows = (await session.execute(select(SemanticCacheEntryModel))).scalars().all()
            entries = {}
            for row in rows:
                try:
                    entries[row.cache_key] = CachedVerdict(
                        match=row.match,
                        confidence=row.confidence,
                        reasoning=row.reasoning or "",
                    )
                except ValueError as e:
                    logger.warning("Skipping corrupted cache entry", key=row.cache_key, error=str(e))
            return entries

    async def clear(self) -> int:
        async with get_db() as session:
            result = await session.execute(delete(SemanticCacheEntryModel))
            deleted = result.rowcount or 0

        logger.info("Persisted semantic cache cleared", deleted=deleted)
        return deleted
