"""Semantic matching against the Claude oracle, with caching."""
from trial_matcher.reasoning.oracle import AnthropicOracle, SemanticOracle
from trial_matcher.reasoning.semantic_client import (
    DEFAULT_MODEL,
    SemanticClientConfig,
    SemanticMatchClient,
    SemanticMatchResult,
    SemanticQuery,
)

__all__ = [
    "AnthropicOracle",
    "SemanticOracle",
    "DEFAULT_MODEL",
    "SemanticClientConfig",
    "SemanticMatchClient",
    "SemanticMatchResult",
    "SemanticQuery",
]
