"""
Tests for LLM tie-break arbitration.

The OpenAI client is a Mock; oracle behaviour is scripted.
"""

import json
from unittest.mock import Mock

import httpx
import openai
import pytest

from registry_resolver.domain.models import Candidate, Query
from registry_resolver.entity_resolution import arbitration
from registry_resolver.entity_resolution.arbitration import (
    ArbitrationStatus,
    OpenAIArbitrationOracle,
    TieBreakArbitrator,
    build_prompt,
)
from registry_resolver.entity_resolution.normalizer import normalize_query
from registry_resolver.entity_resolution.scoring import ScoredCandidate
from registry_resolver.exceptions import OracleError
from tests.conftest import ScriptedOracle, make_entry


@pytest.fixture
def query():
    return normalize_query(Query(name="Acme Supply", email="buyer@acme.com"))


@pytest.fixture
def shortlist():
    return [
        ScoredCandidate(
            Candidate(entry=make_entry("A1", "Acme Supply", email="sales@acme.com")), score=0.80, cosine=0.75
        ),
        ScoredCandidate(
            Candidate(entry=make_entry("A2", "Acme Supply West", email="west@acme.com")),
            score=0.79,
            cosine=0.73,
        ),
    ]


def chat_response(content: str):
    response = Mock()
    response.choices = [Mock(message=Mock(content=content))]
    return response


class TestBuildPrompt:
    """Tests for build_prompt()."""

    def test_contains_only_shortlist(self, query, shortlist):
        prompt = build_prompt(query, shortlist[:1])
        assert [c["id"] for c in prompt["candidates"]] == ["A1"]
        assert prompt["query"]["name"] == "acme supply"
        assert prompt["query"]["domain"] == "acme.com"

    def test_serializable(self, query, shortlist):
        json.dumps(build_prompt(query, shortlist))


class TestOpenAIArbitrationOracle:
    """Tests for OpenAIArbitrationOracle."""

    def test_valid_response(self, query, shortlist):
        client = Mock()
        client.chat.completions.create.return_value = chat_response(
            '{"selected_id": "A2", "reason": "west coast branch"}'
        )
        oracle = OpenAIArbitrationOracle(client=client, model="test-model")

        decision = oracle.arbitrate(build_prompt(query, shortlist), timeout=5.0)

        assert decision.selected_id == "A2"
        assert decision.reason == "west coast branch"
        kwargs = client.chat.completions.create.call_args[1]
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["timeout"] == 5.0

    def test_malformed_then_valid(self, query, shortlist):
        client = Mock()
        client.chat.completions.create.side_effect = [
            chat_response("I think it's A1"),
            chat_response('{"selected_id": "A1", "reason": "same name"}'),
        ]
        oracle = OpenAIArbitrationOracle(client=client, max_attempts=2)

        assert oracle.arbitrate(build_prompt(query, shortlist)).selected_id == "A1"
        assert client.chat.completions.create.call_count == 2

    def test_malformed_twice_fails(self, query, shortlist):
        client = Mock()
        client.chat.completions.create.return_value = chat_response('{"choice": "A1"}')
        oracle = OpenAIArbitrationOracle(client=client, max_attempts=2)

        with pytest.raises(OracleError):
            oracle.arbitrate(build_prompt(query, shortlist))
        assert client.chat.completions.create.call_count == 2

    def test_timeout_is_oracle_error(self, query, shortlist):
        client = Mock()
        client.chat.completions.create.side_effect = openai.APITimeoutError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
        oracle = OpenAIArbitrationOracle(client=client)

        with pytest.raises(OracleError, match="timed out"):
            oracle.arbitrate(build_prompt(query, shortlist), timeout=1.0)
        assert client.chat.completions.create.call_count == 1

    def test_timeout_capped_by_default(self, query, shortlist):
        client = Mock()
        client.chat.completions.create.return_value = chat_response('{"selected_id": "NONE"}')
        oracle = OpenAIArbitrationOracle(client=client, timeout_seconds=3.0)

        oracle.arbitrate(build_prompt(query, shortlist), timeout=60.0)
        assert client.chat.completions.create.call_args[1]["timeout"] == 3.0

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            OpenAIArbitrationOracle(client=Mock(), max_attempts=0)

    def test_missing_api_key(self, query, shortlist, monkeypatch):
        def missing_key(timeout=None):
            raise ValueError("OPENAI_API_KEY not set in .env file")

        monkeypatch.setattr(arbitration, "get_openai_client", missing_key)
        oracle = OpenAIArbitrationOracle()

        with pytest.raises(OracleError, match="OPENAI_API_KEY"):
            oracle.arbitrate(build_prompt(query, shortlist))

    def test_empty_choices(self, query, shortlist):
        client = Mock()
        client.chat.completions.create.return_value = Mock(choices=[])
        oracle = OpenAIArbitrationOracle(client=client)

        with pytest.raises(OracleError, match="Malformed"):
            oracle.arbitrate(build_prompt(query, shortlist))


class TestTieBreakArbitrator:
    """Tests for TieBreakArbitrator."""

    def test_selected(self, query, shortlist):
        outcome = TieBreakArbitrator(ScriptedOracle("A2")).arbitrate(query, shortlist)
        assert outcome.status is ArbitrationStatus.SELECTED
        assert outcome.selected.identifier == "A2"
        assert outcome.reason == "closest match"

    def test_abstain_token(self, query, shortlist):
        outcome = TieBreakArbitrator(ScriptedOracle("none")).arbitrate(query, shortlist)
        assert outcome.status is ArbitrationStatus.ABSTAINED
        assert outcome.selected is None

    def test_unknown_identifier_is_abstention(self, query, shortlist):
        outcome = TieBreakArbitrator(ScriptedOracle("C999")).arbitrate(query, shortlist)
        assert outcome.status is ArbitrationStatus.ABSTAINED

    def test_oracle_error_is_failure(self, query, shortlist):
        outcome = TieBreakArbitrator(ScriptedOracle(OracleError("down"))).arbitrate(query, shortlist)
        assert outcome.status is ArbitrationStatus.FAILED
        assert "down" in outcome.reason

    def test_unexpected_oracle_exception_is_failure(self, query, shortlist):
        oracle = ScriptedOracle(RuntimeError("connection reset"))
        outcome = TieBreakArbitrator(oracle).arbitrate(query, shortlist)
        assert outcome.status is ArbitrationStatus.FAILED
        assert outcome.selected is None
        assert "connection reset" in outcome.reason

    def test_no_oracle(self, query, shortlist):
        outcome = TieBreakArbitrator(None).arbitrate(query, shortlist)
        assert outcome.status is ArbitrationStatus.FAILED

    def test_oracle_sees_shortlist_only(self, query, shortlist):
        oracle = ScriptedOracle("A1")
        TieBreakArbitrator(oracle).arbitrate(query, shortlist, timeout=2.0)
        assert [c["id"] for c in oracle.prompts[0]["candidates"]] == ["A1", "A2"]
