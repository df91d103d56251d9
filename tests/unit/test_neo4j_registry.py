"""
Unit tests for registry_resolver.registry.neo4j_registry module.

Uses a mocked driver/session; no database needed.
"""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from neo4j.exceptions import ServiceUnavailable

from registry_resolver.domain.models import EntityKind
from registry_resolver.exceptions import StorageError
from registry_resolver.registry.base import LookupField, SearchScope, VectorFilter
from registry_resolver.registry.neo4j_registry import (
    Neo4jRegistry,
    entry_to_properties,
    node_to_entry,
)
from tests.conftest import MockResult, make_entry


def node(identifier="C100", name="Acme Widgets", **props):
    return {"identifier": identifier, "name": name, "kind": "customer", **props}


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def driver(session):
    driver = MagicMock()
    driver.session.return_value.__enter__.return_value = session
    return driver


@pytest.fixture
def neo4j_registry(driver):
    return Neo4jRegistry(driver, database="neo4j")


class TestEntryConversion:
    """Tests for entry_to_properties() and node_to_entry()."""

    def test_properties_include_lookup_keys(self):
        entry = make_entry(
            "C100",
            "Acme Widgets",
            aliases=["Acme"],
            email="Orders@AcmeWidgets.com",
            alt_email="ap@acme.com",
            phone="(555) 123-4567",
            external_ids={"ASI": "40001"},
            address={"city": "Dallas"},
        )
        props = entry_to_properties(entry)

        assert props["email"] == "orders@acmewidgets.com"
        assert props["email_domains"] == ["acme.com", "acmewidgets.com"]
        assert props["name_keys"] == ["acme", "acme widget"]
        assert props["search_names"] == ["acme widgets", "acme"]
        assert props["external_ids"] == ["asi:40001"]
        assert props["phone_digits"] == "5551234567"
        assert props["address_json"] == '{"city": "Dallas"}'
        assert props["kind"] == "customer"

    def test_node_to_entry(self):
        entry = node_to_entry(
            node(
                aliases=["Acme"],
                email="orders@acmewidgets.com",
                external_ids=["asi:40001"],
                address_json='{"city": "Dallas"}',
                embedding=[0.1, 0.2],
                verified=True,
                last_verified_method="exact",
            )
        )
        assert entry.identifier == "C100"
        assert entry.aliases == frozenset({"Acme"})
        assert entry.external_ids == {"asi": "40001"}
        assert entry.address == {"city": "Dallas"}
        assert entry.embedding == [0.1, 0.2]
        assert entry.active is True
        assert entry.verification.verified is True
        assert entry.verification.last_verified_method == "exact"

    def test_node_to_entry_contact(self):
        entry = node_to_entry(node("P1", "Jane Buyer", kind="contact", active=False))
        assert entry.kind is EntityKind.CONTACT
        assert entry.active is False


class TestNeo4jRegistry:
    """Tests for Neo4jRegistry queries."""

    def test_invalid_label_rejected(self, driver):
        with pytest.raises(ValueError):
            Neo4jRegistry(driver, label="Entry; DROP")

    def test_exact_lookup(self, neo4j_registry, session):
        session.run.return_value = MockResult([{"e": node()}])

        hits = neo4j_registry.exact_lookup(LookupField.EMAIL, "orders@acmewidgets.com", limit=5)

        assert [e.identifier for e in hits] == ["C100"]
        query = session.run.call_args[0][0]
        assert "e.alt_email" in query
        assert "e.active <> false" in query
        assert session.run.call_args[1] == {"value": "orders@acmewidgets.com", "limit": 5}

    def test_exact_lookup_name_key(self, neo4j_registry, session):
        session.run.return_value = MockResult()
        assert neo4j_registry.exact_lookup(LookupField.NAME_KEY, "acme widget") == []
        assert "$value IN e.name_keys" in session.run.call_args[0][0]

    def test_lexical_search_lowercases_term(self, neo4j_registry, session):
        session.run.return_value = MockResult([{"e": node()}])
        neo4j_registry.lexical_search("  ACME ")
        assert session.run.call_args[1]["term"] == "acme"

    def test_lexical_domain_scope(self, neo4j_registry, session):
        session.run.return_value = MockResult()
        neo4j_registry.lexical_search("globex.com", SearchScope.EMAIL_DOMAIN)
        assert "e.email_domains" in session.run.call_args[0][0]

    def test_lexical_search_matches_normalized_names(self, neo4j_registry, session):
        session.run.return_value = MockResult([{"e": node("C1", "Smith & Sons Supply Co")}])

        hits = neo4j_registry.lexical_search("Smith &  Sons")

        assert [e.identifier for e in hits] == ["C1"]
        assert "e.search_names" in session.run.call_args[0][0]
        assert session.run.call_args[1]["term"] == "smith and sons"

    def test_lexical_search_blank_term_skips_query(self, neo4j_registry, session):
        assert neo4j_registry.lexical_search("   ") == []
        session.run.assert_not_called()

    def test_vector_search_converts_score(self, neo4j_registry, session):
        session.run.return_value = MockResult([{"e": node(), "score": 0.95}])

        results = neo4j_registry.vector_search([0.1, 0.2], limit=3)

        assert results[0][0].identifier == "C100"
        assert results[0][1] == pytest.approx(0.9)
        params = session.run.call_args[1]
        assert params["fetch"] == 3
        assert params["domain"] is None

    def test_filtered_vector_search_over_fetches(self, neo4j_registry, session):
        session.run.return_value = MockResult()
        neo4j_registry.vector_search([0.1], VectorFilter(domain="acme.com"), limit=5)
        params = session.run.call_args[1]
        assert params["fetch"] == 20
        assert params["domain"] == "acme.com"
        assert params["name_hint"] is None

    def test_vector_search_name_hint_is_normalized(self, neo4j_registry, session):
        session.run.return_value = MockResult()
        neo4j_registry.vector_search([0.1], VectorFilter(domain="acme.com", name_hint="Smith & Sons"))
        assert session.run.call_args[1]["name_hint"] == "smith and sons"
        assert "e.search_names" in session.run.call_args[0][0]

    def test_record_verification(self, neo4j_registry, session):
        session.run.return_value = MockResult({"updated": 1})
        neo4j_registry.record_verification("C100", "exact", 1.0, datetime.now(UTC))
        assert session.run.call_args[1]["method"] == "exact"

    def test_record_verification_unknown(self, neo4j_registry, session):
        session.run.return_value = MockResult({"updated": 0})
        with pytest.raises(StorageError):
            neo4j_registry.record_verification("NOPE", "exact", 1.0, datetime.now(UTC))

    def test_driver_error_becomes_storage_error(self, neo4j_registry, session):
        session.run.side_effect = ServiceUnavailable("connection refused")
        with pytest.raises(StorageError):
            neo4j_registry.exact_lookup(LookupField.IDENTIFIER, "C100")

    def test_embedding_stats(self, neo4j_registry, session):
        session.run.return_value = MockResult({"total": 10, "with_embedding": 7})
        stats = neo4j_registry.embedding_stats(EntityKind.CUSTOMER)
        assert stats.total == 10
        assert stats.without_embedding == 3
        assert session.run.call_args[1]["kind"] == "customer"

    def test_iter_entries(self, neo4j_registry, session):
        session.run.return_value = MockResult([{"e": node("C1")}, {"e": node("C2")}])
        assert [e.identifier for e in neo4j_registry.iter_entries()] == ["C1", "C2"]

    def test_upsert_entries_batches(self, neo4j_registry, session):
        entries = [make_entry(f"C{i}", f"Entry {i}") for i in range(5)]
        assert neo4j_registry.upsert_entries(entries, batch_size=2) == 5
        assert session.run.call_count == 3
