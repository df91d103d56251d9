"""
Pytest configuration and shared fixtures for registry_resolver tests.

No test touches the network: embeddings come from deterministic fakes, the
arbitration oracle is scripted, and Neo4j drivers are mocks.
"""

import hashlib
import math
import os
import re

import pytest

from registry_resolver.domain.models import EntityKind, RegistryEntry
from registry_resolver.embeddings.provider import EmbeddingProvider
from registry_resolver.entity_resolution.arbitration import ArbitrationDecision, ArbitrationOracle
from registry_resolver.exceptions import OracleError, ProviderError
from registry_resolver.registry.memory import InMemoryRegistry

# Set test environment variables if not already set
if not os.getenv("NEO4J_URI"):
    os.environ["NEO4J_URI"] = "bolt://localhost:7687"
if not os.getenv("NEO4J_USER"):
    os.environ["NEO4J_USER"] = "neo4j"
if not os.getenv("NEO4J_DATABASE"):
    os.environ["NEO4J_DATABASE"] = "neo4j"

FAKE_DIMENSION = 64


def make_entry(identifier: str, name: str, **kwargs) -> RegistryEntry:
    """Build a registry entry with sensible defaults."""
    kwargs.setdefault("kind", EntityKind.CUSTOMER)
    if "aliases" in kwargs:
        kwargs["aliases"] = frozenset(kwargs["aliases"])
    return RegistryEntry(identifier=identifier, name=name, **kwargs)


def unit_vector(cosine: float) -> list[float]:
    """2-D unit vector whose cosine with [1, 0] is exactly `cosine`."""
    return [cosine, math.sqrt(max(0.0, 1.0 - cosine * cosine))]


class FakeEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic embedding provider.

    Hashes character trigrams into a fixed-size vector, so similar strings
    get similar vectors. Records every call and can be told to fail.
    """

    def __init__(self, dimension: int = FAKE_DIMENSION, fail: bool = False):
        self.dimension = dimension
        self.fail = fail
        self.calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    @property
    def model(self) -> str:
        return "fake-trigram"

    def vector(self, text: str) -> list[float]:
        values = [0.0] * self.dimension
        collapsed = re.sub(r"\s+", " ", text.lower())
        padded = f"  {collapsed}  "
        for i in range(len(padded) - 2):
            digest = hashlib.md5(padded[i : i + 3].encode("utf-8")).digest()
            values[int.from_bytes(digest[:4], "big") % self.dimension] += 1.0
        norm = math.sqrt(sum(v * v for v in values)) or 1.0
        return [v / norm for v in values]

    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise ProviderError("embedding provider unavailable")
        return self.vector(text)

    def embed_batch(self, texts: list[str]) -> list[list[float] | None]:
        self.batch_calls.append(list(texts))
        if self.fail:
            raise ProviderError("embedding provider unavailable")
        return [self.vector(t) if t else None for t in texts]


class StaticEmbeddingProvider(EmbeddingProvider):
    """Returns the same vector for every text."""

    def __init__(self, vector: list[float]):
        self._vector = list(vector)
        self.calls: list[str] = []

    @property
    def model(self) -> str:
        return "static"

    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        self.calls.append(text)
        return list(self._vector)

    def embed_batch(self, texts: list[str]) -> list[list[float] | None]:
        return [list(self._vector) for _ in texts]


class ScriptedOracle(ArbitrationOracle):
    """
    Oracle that replays scripted answers.

    Each answer is a selected id (str) or an exception instance to raise.
    """

    def __init__(self, *answers, reason: str = "closest match"):
        self.answers = list(answers)
        self.reason = reason
        self.prompts: list[dict] = []

    def arbitrate(self, prompt: dict, timeout: float | None = None) -> ArbitrationDecision:
        self.prompts.append(prompt)
        if not self.answers:
            raise OracleError("no scripted answer left")
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return ArbitrationDecision(selected_id=answer, reason=self.reason)


@pytest.fixture
def fake_provider():
    """Deterministic trigram embedding provider."""
    return FakeEmbeddingProvider()


@pytest.fixture
def sample_entries():
    """A small customer/contact registry."""
    return [
        make_entry(
            "C100",
            "Acme Widgets",
            email="orders@acmewidgets.com",
            phone="(555) 123-4567",
            phone_digits="5551234567",
            address={"city": "Dallas", "state": "TX"},
            external_ids={"asi": "40001"},
        ),
        make_entry(
            "C200",
            "Creative Marketing Specialists",
            email="info@cmspromo.com",
            aliases=["CMS Promo"],
        ),
        make_entry("C300", "Blue Ridge Apparel", email="sales@blueridge.com"),
        make_entry(
            "C400",
            "Globex Corporation",
            email="purchasing@globex.com",
            alt_email="ap@globex.com",
        ),
        make_entry("C500", "Inactive Trading", email="old@inactive.com", active=False),
        make_entry(
            "P100",
            "Jane Buyer",
            kind=EntityKind.CONTACT,
            email="jane@globex.com",
            job_title="Senior Purchasing Manager",
            company="Globex Corporation",
        ),
    ]


@pytest.fixture
def registry(sample_entries):
    """In-memory registry over sample_entries."""
    return InMemoryRegistry(sample_entries)


class MockRecord:
    """Mock Neo4j record for testing."""

    def __init__(self, data: dict):
        self._data = data

    def __getitem__(self, key):
        return self._data[key]

    def get(self, key, default=None):
        return self._data.get(key, default)

    def __contains__(self, key):
        return key in self._data


class MockResult:
    """
    Mock Neo4j result.

    Accepts a list of dict records, a single dict record, or None.
    """

    def __init__(self, records: list[dict] | dict | None = None):
        if records is None:
            self._records = []
        elif isinstance(records, dict):
            self._records = [MockRecord(records)]
        else:
            self._records = [r if isinstance(r, MockRecord) else MockRecord(r) for r in records]

    def __iter__(self):
        return iter(self._records)

    def single(self):
        """Return the first record or None if empty (matches Neo4j API)."""
        return self._records[0] if self._records else None
