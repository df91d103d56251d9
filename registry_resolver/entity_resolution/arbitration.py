"""
Tie-break Arbitration (LLM).

Used only for ambiguous decisions. The oracle sees the normalized query and
the shortlisted candidates (never the registry) and must pick exactly one
candidate identifier or answer "NONE". Any identifier outside the shortlist
counts as abstention. Oracle failures never reach the caller: the arbitrator
reports them and the resolver falls back to the top-scored candidate.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import openai
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from registry_resolver.config import Settings
from registry_resolver.constants import ARBITRATION_ABSTAIN_TOKEN, ARBITRATION_MODEL
from registry_resolver.domain.models import NormalizedQuery
from registry_resolver.embeddings.openai_client import get_openai_client
from registry_resolver.entity_resolution.scoring import ScoredCandidate
from registry_resolver.exceptions import OracleError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a deterministic resolver. Choose exactly one candidate id from the "
    f'provided candidates or answer "{ARBITRATION_ABSTAIN_TOKEN}". Base your choice ONLY on '
    "the provided fields; do not infer new facts. Respond with JSON: "
    '{"selected_id": "...", "reason": "..."}'
)


class ArbitrationDecision(BaseModel):
    """Strict schema of the oracle's answer."""

    model_config = ConfigDict(extra="forbid")

    selected_id: str = Field(min_length=1)
    reason: str = ""


def build_prompt(query: NormalizedQuery, shortlist: list[ScoredCandidate]) -> dict[str, Any]:
    """Prompt payload: the query fields and only the shortlisted candidates."""
    return {
        "query": {
            "kind": query.kind.value,
            "name": query.name,
            "email": query.email,
            "sender_email": query.sender_email,
            "domain": query.domain,
            "phone_digits": query.phone_digits,
            "job_title": query.job_title,
            "company": query.company,
            "city": query.city,
            "state": query.state,
        },
        "candidates": [
            {
                "id": s.identifier,
                "name": s.name,
                "aliases": sorted(s.candidate.entry.aliases),
                "email": s.candidate.entry.email,
                "domain": s.candidate.entry.email_domain,
                "phone_digits": s.candidate.entry.phone_digits,
                "city": s.candidate.entry.address.get("city"),
                "state": s.candidate.entry.address.get("state"),
                "score": round(s.score, 4),
            }
            for s in shortlist
        ],
    }


class ArbitrationOracle(ABC):
    """Abstract reasoning oracle."""

    @abstractmethod
    def arbitrate(self, prompt: dict[str, Any], timeout: float | None = None) -> ArbitrationDecision:
        """
        Ask the oracle for a decision.

        Args:
            prompt: Output of build_prompt()
            timeout: Upper bound in seconds for the whole call

        Returns:
            Validated decision (selected_id may be the abstain token)

        Raises:
            OracleError: Oracle unavailable, timed out or malformed answer
        """
        ...


class OpenAIArbitrationOracle(ArbitrationOracle):
    """Oracle backed by an OpenAI chat model in JSON mode."""

    def __init__(
        self,
        client=None,
        model: str = ARBITRATION_MODEL,
        timeout_seconds: float = 20.0,
        max_attempts: int = 2,
    ):
        """
        Args:
            client: OpenAI client (created lazily from settings when None)
            model: Chat model name
            timeout_seconds: Default per-request timeout
            max_attempts: Calls allowed before a malformed answer counts as failure
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._client = client
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIArbitrationOracle:
        return cls(
            model=settings.arbitration_model,
            timeout_seconds=settings.arbitration_timeout_seconds,
            max_attempts=settings.arbitration_max_attempts,
        )

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = get_openai_client(timeout=self.timeout_seconds)
            except ValueError as e:
                raise OracleError(f"Arbitration client unavailable: {e}") from e
        return self._client

    def arbitrate(self, prompt: dict[str, Any], timeout: float | None = None) -> ArbitrationDecision:
        effective = self.timeout_seconds if timeout is None else min(timeout, self.timeout_seconds)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(prompt, sort_keys=True)},
        ]

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    response_format={"type": "json_object"},
                    temperature=0,
                    timeout=effective,
                )
            except openai.APITimeoutError as e:
                raise OracleError(f"Arbitration timed out after {effective:.1f}s") from e
            except openai.OpenAIError as e:
                raise OracleError(f"Arbitration request failed: {e}") from e

            try:
                content = response.choices[0].message.content or ""
            except (IndexError, AttributeError, TypeError) as e:
                raise OracleError(f"Malformed arbitration response: {e!r}") from e

            try:
                return ArbitrationDecision.model_validate_json(content)
            except ValidationError as e:
                last_error = e
                logger.warning(
                    f"Malformed arbitration response (attempt {attempt}/{self.max_attempts}): "
                    f"{content[:200]!r}"
                )

        raise OracleError(f"Arbitration response failed validation: {last_error}")


class ArbitrationStatus(Enum):
    """How an arbitration attempt ended."""

    SELECTED = "selected"
    ABSTAINED = "abstained"
    FAILED = "failed"


@dataclass(frozen=True)
class ArbitrationOutcome:
    """Result of a tie-break."""

    status: ArbitrationStatus
    selected: ScoredCandidate | None = None
    reason: str = ""


class TieBreakArbitrator:
    """Constrains the oracle to the shortlist and turns every failure into an outcome."""

    def __init__(self, oracle: ArbitrationOracle | None = None):
        self.oracle = oracle

    def arbitrate(
        self,
        query: NormalizedQuery,
        shortlist: list[ScoredCandidate],
        timeout: float | None = None,
    ) -> ArbitrationOutcome:
        """
        Choose among the shortlisted candidates.

        Args:
            query: Normalized query
            shortlist: Top candidates (at most three)
            timeout: Remaining time budget in seconds

        Returns:
            ArbitrationOutcome (never raises for oracle problems)
        """
        if self.oracle is None:
            return ArbitrationOutcome(ArbitrationStatus.FAILED, reason="no arbitration oracle configured")

        try:
            decision = self.oracle.arbitrate(build_prompt(query, shortlist), timeout=timeout)
        except OracleError as e:
            logger.warning(f"Arbitration failed, falling back to top candidate: {e}")
            return ArbitrationOutcome(ArbitrationStatus.FAILED, reason=str(e))
        except Exception as e:
            logger.warning(
                f"Arbitration oracle raised {type(e).__name__}, falling back to top candidate: {e}"
            )
            return ArbitrationOutcome(ArbitrationStatus.FAILED, reason=f"{type(e).__name__}: {e}")

        selected_id = decision.selected_id.strip()
        if selected_id.upper() == ARBITRATION_ABSTAIN_TOKEN:
            logger.info(f"Arbitration abstained: {decision.reason}")
            return ArbitrationOutcome(ArbitrationStatus.ABSTAINED, reason=decision.reason)

        for scored in shortlist:
            if scored.identifier == selected_id:
                logger.info(f"Arbitration selected {selected_id}: {decision.reason}")
                return ArbitrationOutcome(ArbitrationStatus.SELECTED, scored, decision.reason)

        logger.warning(f"Arbitration chose {selected_id!r}, which is not a shortlisted candidate")
        return ArbitrationOutcome(
            ArbitrationStatus.ABSTAINED,
            reason=f"selected unknown identifier {selected_id!r}",
        )
