"""Pytest fixtures for the test suite."""
import asyncio
import json
import re
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from trial_matcher.config.settings import get_settings
from trial_matcher.reasoning.semantic_client import SemanticMatchClient
from trial_matcher.storage.database import close_db, init_db

_PATIENT_TERM = re.compile(r'Patient\'s [^:]+: "(.*)"')
_CRITERION_TERM = re.compile(r'Trial Criterion: "(.*)"')


def terms_from_prompt(prompt: str) -> Tuple[str, str]:
    """Recover (patient term, criterion term) from a rendered semantic prompt."""
    return _PATIENT_TERM.search(prompt).group(1), _CRITERION_TERM.search(prompt).group(1)


def verdict_json(match: bool, confidence: float, reasoning: str = "test reasoning") -> str:
    """Oracle reply text with a JSON verdict wrapped in prose."""
    body = json.dumps({"match": match, "confidence": confidence, "reasoning": reasoning})
    return f"Here is my analysis:\n{body}\nHope this helps."


OracleReply = Union[str, Exception]


class FakeOracle:
    """
    In-process SemanticOracle.

    Replies are looked up by (patient term, criterion term); unknown pairs get
    ``default``. A reply that is an Exception is raised instead of returned.
    ``delays`` lets a test control completion order.
    """

    def __init__(
        self,
        replies: Optional[Dict[Tuple[str, str], OracleReply]] = None,
        default: OracleReply = None,
        delays: Optional[Dict[Tuple[str, str], float]] = None,
    ):
        self.replies = replies or {}
        self.default = default if default is not None else verdict_json(False, 0.1, "unrelated")
        self.delays = delays or {}
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, prompt: str, model: str, max_tokens: int, temperature: float) -> str:
        pair = terms_from_prompt(prompt)
        self.calls.append({
            "pair": pair,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if pair in self.delays:
            await asyncio.sleep(self.delays[pair])
        reply = self.replies.get(pair, self.default)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up mock environment variables for testing."""
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-anthropic-key")
    monkeypatch.setenv("PERSIST_SEMANTIC_CACHE", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def semantic_client(fake_oracle) -> SemanticMatchClient:
    """Semantic client wired to the fake oracle."""
    return SemanticMatchClient("test-anthropic-key", oracle=fake_oracle)


@pytest.fixture
def make_semantic_client() -> Callable[..., SemanticMatchClient]:
    def _make(oracle: FakeOracle, **kwargs) -> SemanticMatchClient:
        return SemanticMatchClient("test-anthropic-key", oracle=oracle, **kwargs)
    return _make


@pytest_asyncio.fixture
async def test_db(tmp_path, monkeypatch):
    """Fresh SQLite database per test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    get_settings.cache_clear()
    await close_db()
    await init_db()
    yield
    await close_db()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def api_client(test_db, semantic_client):
    """HTTP client against the app, with the semantic client overridden."""
    from trial_matcher.api.routes.match import get_semantic_client
    from trial_matcher.main import app

    app.dependency_overrides[get_semantic_client] = lambda: semantic_client
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
