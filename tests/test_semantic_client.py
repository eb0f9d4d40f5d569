"""Tests for the cached semantic match client."""

import pytest

from conftest import FakeOracle, verdict_json
from trial_matcher.exceptions import (
    AuthenticationError,
    OracleAPIError,
    OracleResponseError,
    OracleTransportError,
)
from trial_matcher.reasoning.prompt_loader import PromptLoader
from trial_matcher.reasoning.response_cache import CachedVerdict, make_cache_key
from trial_matcher.reasoning.semantic_client import (
    DEFAULT_MODEL,
    SemanticClientConfig,
    SemanticMatchClient,
    SemanticQuery,
    parse_verdict,
)


class InMemoryStore:
    def __init__(self, fail=False):
        self.entries = {}
        self.fail = fail

    async def save(self, key, verdict):
        if self.fail:
            raise RuntimeError("disk full")
        self.entries[key] = verdict

    async def load_all(self):
        return dict(self.entries)

    async def clear(self):
        count = len(self.entries)
        self.entries.clear()
        return count


class TestConstruction:
    @pytest.mark.parametrize("key", ["", None])
    def test_missing_api_key(self, key):
        with pytest.raises(AuthenticationError):
            SemanticMatchClient(key, oracle=FakeOracle())

    def test_model_get_and_set(self, semantic_client):
        assert semantic_client.get_model() == DEFAULT_MODEL
        semantic_client.set_model("claude-haiku-test")
        assert semantic_client.get_model() == "claude-haiku-test"


class TestSemanticMatch:
    @pytest.mark.asyncio
    async def test_successful_match(self):
        oracle = FakeOracle({("breast cancer", "malignant tumors"): verdict_json(True, 0.92, "a tumor")})
        client = SemanticMatchClient("key", oracle=oracle)

        result = await client.semantic_match("breast cancer", "malignant tumors", "medical condition")

        assert result.match is True
        assert result.confidence == 0.92
        assert result.reasoning == "a tumor"
        assert result.from_cache is False
        assert result.error is False
        assert oracle.calls[0]["model"] == DEFAULT_MODEL
        assert oracle.calls[0]["max_tokens"] == 500
        assert oracle.calls[0]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_second_identical_call_is_cached(self, semantic_client, fake_oracle):
        first = await semantic_client.semantic_match("asthma", "COPD")
        second = await semantic_client.semantic_match("  ASTHMA ", "copd")

        assert fake_oracle.call_count == 1
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.match == first.match
        assert semantic_client.get_cache_stats() == {"size": 1, "hits": 1, "misses": 1, "hit_rate": 0.5}

    @pytest.mark.asyncio
    async def test_match_type_is_part_of_the_key(self, semantic_client, fake_oracle):
        await semantic_client.semantic_match("asthma", "copd", "condition")
        await semantic_client.semantic_match("asthma", "copd", "treatment")
        assert fake_oracle.call_count == 2

    @pytest.mark.asyncio
    async def test_clear_cache_forces_new_call(self, semantic_client, fake_oracle):
        await semantic_client.semantic_match("asthma", "copd")
        semantic_client.clear_cache()

        assert semantic_client.get_cache_stats() == {"size": 0, "hits": 0, "misses": 0, "hit_rate": 0.0}
        result = await semantic_client.semantic_match("asthma", "copd")
        assert result.from_cache is False
        assert fake_oracle.call_count == 2

    @pytest.mark.asyncio
    async def test_set_model_keeps_cache(self, semantic_client, fake_oracle):
        await semantic_client.semantic_match("asthma", "copd")
        semantic_client.set_model("other-model")
        result = await semantic_client.semantic_match("asthma", "copd")
        assert result.from_cache is True
        assert fake_oracle.call_count == 1

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self):
        oracle = FakeOracle(default=verdict_json(True, 1.7))
        client = SemanticMatchClient("key", oracle=oracle)
        assert (await client.semantic_match("a", "b")).confidence == 1.0

    @pytest.mark.asyncio
    async def test_transport_failure_is_not_cached(self):
        oracle = FakeOracle(default=OracleTransportError("connection refused"))
        client = SemanticMatchClient("key", oracle=oracle)

        result = await client.semantic_match("asthma", "copd")

        assert result.error is True
        assert result.match is False
        assert result.confidence == 0.0
        assert result.reasoning == "API error: connection refused"
        assert client.get_cache_stats()["size"] == 0

        oracle.default = verdict_json(True, 0.8)
        retry = await client.semantic_match("asthma", "copd")
        assert retry.error is False
        assert retry.from_cache is False
        assert oracle.call_count == 2

    @pytest.mark.asyncio
    async def test_api_error_uses_message(self):
        oracle = FakeOracle(default=OracleAPIError("invalid x-api-key", status_code=401))
        client = SemanticMatchClient("key", oracle=oracle)

        result = await client.semantic_match("asthma", "copd")

        assert result.error is True
        assert result.reasoning == "API error: invalid x-api-key"
        assert client.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [
        "I cannot answer that.",
        '{"match": "yes", "confidence": 0.9, "reasoning": "x"}',
        '{"match": true, "confidence": "high", "reasoning": "x"}',
        '{"match": true, "confidence": 0.9}',
    ])
    async def test_unparseable_reply(self, reply):
        client = SemanticMatchClient("key", oracle=FakeOracle(default=reply))

        result = await client.semantic_match("asthma", "copd")

        assert result.error is True
        assert result.match is False
        assert result.confidence == 0.0
        assert result.reasoning.startswith("Parse error: ")
        assert client.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_response_error_from_oracle(self):
        client = SemanticMatchClient("key", oracle=FakeOracle(default=OracleResponseError("Empty content")))
        result = await client.semantic_match("asthma", "copd")
        assert result.reasoning == "Parse error: Empty content"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc", [
        ConnectionError("reset"),
        TimeoutError("read timed out"),
        RuntimeError("oracle bug"),
    ])
    async def test_unexpected_oracle_exception_is_in_band(self, exc):
        oracle = FakeOracle(default=exc)
        client = SemanticMatchClient("key", oracle=oracle)

        result = await client.semantic_match("breast cancer", "malignant tumors")

        assert result.error is True
        assert result.match is False
        assert result.confidence == 0.0
        assert result.reasoning == f"API error: {type(exc).__name__}: {exc}"
        assert client.get_cache_stats()["size"] == 0

        oracle.default = verdict_json(True, 0.9)
        retry = await client.semantic_match("breast cancer", "malignant tumors")
        assert retry.error is False
        assert oracle.call_count == 2

    @pytest.mark.asyncio
    async def test_prompt_failure_is_in_band(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "trial_matcher.reasoning.semantic_client.get_prompt_loader",
            lambda: PromptLoader(tmp_path),
        )
        oracle = FakeOracle()
        client = SemanticMatchClient("key", oracle=oracle)

        result = await client.semantic_match("asthma", "copd")

        assert result.error is True
        assert result.reasoning.startswith("API error: FileNotFoundError")
        assert oracle.call_count == 0


class TestBatchSemanticMatch:
    @pytest.mark.asyncio
    async def test_results_follow_input_order(self):
        oracle = FakeOracle(
            replies={
                ("slow", "x"): verdict_json(True, 0.9, "slow"),
                ("fast", "x"): verdict_json(False, 0.2, "fast"),
                ("medium", "x"): verdict_json(True, 0.6, "medium"),
            },
            delays={("slow", "x"): 0.05, ("medium", "x"): 0.02},
        )
        client = SemanticMatchClient("key", oracle=oracle)

        results = await client.batch_semantic_match([
            {"patient_term": "slow", "criterion_term": "x"},
            SemanticQuery(patient_term="fast", criterion_term="x"),
            {"patientTerm": "medium", "criterionTerm": "x"},
        ])

        assert [r.reasoning for r in results] == ["slow", "fast", "medium"]
        assert [c["pair"][0] for c in oracle.calls] == ["slow", "fast", "medium"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(self):
        oracle = FakeOracle(
            replies={("bad", "x"): OracleTransportError("timeout")},
            default=verdict_json(True, 0.9),
        )
        client = SemanticMatchClient("key", oracle=oracle)

        results = await client.batch_semantic_match([
            {"patient_term": "good", "criterion_term": "x"},
            {"patient_term": "bad", "criterion_term": "x"},
        ])

        assert [r.error for r in results] == [False, True]

    @pytest.mark.asyncio
    async def test_unexpected_exception_does_not_abort_batch(self):
        oracle = FakeOracle(
            replies={("bad", "x"): ConnectionError("reset")},
            default=verdict_json(True, 0.9),
        )
        client = SemanticMatchClient("key", oracle=oracle)

        results = await client.batch_semantic_match([
            {"patient_term": "bad", "criterion_term": "x"},
            {"patient_term": "good", "criterion_term": "x"},
        ])

        assert [r.error for r in results] == [True, False]

    @pytest.mark.asyncio
    async def test_empty_batch(self, semantic_client):
        assert await semantic_client.batch_semantic_match([]) == []


class TestPersistence:
    @pytest.mark.asyncio
    async def test_verdicts_written_to_store(self):
        store = InMemoryStore()
        client = SemanticMatchClient(
            "key",
            config=SemanticClientConfig(persist_to_storage=True),
            oracle=FakeOracle(default=verdict_json(True, 0.7)),
            store=store,
        )
        await client.semantic_match("Asthma", "COPD", "condition")
        assert list(store.entries) == [make_cache_key("asthma", "copd", "condition")]

    @pytest.mark.asyncio
    async def test_store_failure_does_not_change_result(self):
        client = SemanticMatchClient(
            "key",
            config=SemanticClientConfig(persist_to_storage=True),
            oracle=FakeOracle(default=verdict_json(True, 0.7)),
            store=InMemoryStore(fail=True),
        )
        result = await client.semantic_match("asthma", "copd")
        assert result.error is False
        assert result.match is True

    @pytest.mark.asyncio
    async def test_load_persisted_cache(self):
        store = InMemoryStore()
        store.entries[make_cache_key("asthma", "copd", "medical term")] = CachedVerdict(
            match=True, confidence=0.6, reasoning="stored"
        )
        oracle = FakeOracle()
        client = SemanticMatchClient(
            "key",
            config=SemanticClientConfig(persist_to_storage=True),
            oracle=oracle,
            store=store,
        )

        assert await client.load_persisted_cache() == 1
        result = await client.semantic_match("asthma", "copd")
        assert result.from_cache is True
        assert result.reasoning == "stored"
        assert oracle.call_count == 0

        assert await client.clear_persisted_cache() == 1
        assert store.entries == {}

    @pytest.mark.asyncio
    async def test_store_ignored_when_persistence_off(self):
        store = InMemoryStore()
        client = SemanticMatchClient("key", oracle=FakeOracle(), store=store)
        await client.semantic_match("asthma", "copd")
        assert store.entries == {}
        assert await client.load_persisted_cache() == 0


class TestFork:
    @pytest.mark.asyncio
    async def test_fork_has_own_cache_and_shares_oracle(self, semantic_client, fake_oracle):
        semantic_client.set_model("claude-run-model")
        await semantic_client.semantic_match("asthma", "copd")

        run_client = semantic_client.fork()
        result = await run_client.semantic_match("asthma", "copd")

        assert result.from_cache is False
        assert fake_oracle.call_count == 2
        assert fake_oracle.calls[1]["model"] == "claude-run-model"
        assert run_client.get_cache_stats() == {"size": 1, "hits": 0, "misses": 1, "hit_rate": 0.0}
        assert semantic_client.get_cache_stats()["misses"] == 1


class TestParseVerdict:
    def test_extracts_embedded_json(self):
        verdict = parse_verdict('Sure! {"match": false, "confidence": 0.1, "reasoning": "no"} Done.')
        assert verdict == CachedVerdict(match=False, confidence=0.1, reasoning="no")

    def test_no_json(self):
        with pytest.raises(OracleResponseError):
            parse_verdict("nothing here")
