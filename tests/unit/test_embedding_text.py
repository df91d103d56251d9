"""
Unit tests for registry_resolver.embeddings.text module.
"""

from registry_resolver.domain.models import EntityKind, Query
from registry_resolver.embeddings.text import entry_embedding_text, query_embedding_text
from registry_resolver.entity_resolution.normalizer import normalize_query
from tests.conftest import make_entry


def test_customer_entry_text():
    entry = make_entry(
        "C100",
        "Acme Widgets",
        aliases=["Acme", "AWI"],
        email="Orders@AcmeWidgets.com",
        phone="(555) 123-4567",
        address={"city": "Dallas", "state": "TX"},
    )
    assert entry_embedding_text(entry) == "acme widgets | awi acme | acmewidgets.com | dallas tx | 5551234567"


def test_customer_entry_text_omits_empty_parts():
    assert entry_embedding_text(make_entry("C1", "Blue Ridge Apparel")) == "blue ridge apparel"


def test_contact_entry_text():
    entry = make_entry(
        "P1",
        "Jane Buyer",
        kind=EntityKind.CONTACT,
        email="jane@globex.com",
        job_title="Purchasing Manager",
        company="Globex",
    )
    assert entry_embedding_text(entry) == "jane buyer | purchasing manager | globex | jane@globex.com | globex.com"


def test_customer_query_text():
    query = normalize_query(
        Query(name="Acme Widgets", sender_email="Jane@AcmeWidgets.com", city="Dallas", state="TX")
    )
    assert query_embedding_text(query) == "acme widgets | jane@acmewidgets.com | acmewidgets.com | dallas tx"


def test_contact_query_text():
    query = normalize_query(
        Query(kind=EntityKind.CONTACT, name="Jane Buyer", email="jane@globex.com", job_title="Buyer")
    )
    assert query_embedding_text(query) == "jane buyer | buyer | jane@globex.com | globex.com"


def test_entry_and_query_projections_agree():
    """A query carrying the same facts as an entry projects to the same text."""
    entry = make_entry("C1", "Acme Widgets", address={"city": "Dallas", "state": "TX"})
    query = normalize_query(Query(name="ACME  Widgets", city="Dallas", state="tx"))
    assert entry_embedding_text(entry) == query_embedding_text(query)
