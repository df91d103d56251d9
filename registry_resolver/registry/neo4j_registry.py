"""
Neo4j-backed registry.

Entries are stored as nodes of one label (RegistryEntry by default) with a
vector index over their embedding. Derived lookup properties (name_keys,
search_names, email_domains, external_ids as "scheme:number") are written by
upsert_entries() so exact lookups stay index-friendly.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Any

from neo4j.exceptions import DriverError, Neo4jError

from registry_resolver.constants import CANDIDATE_LIMIT, EXACT_LOOKUP_LIMIT
from registry_resolver.domain.models import EntityKind, RegistryEntry, VerificationState
from registry_resolver.entity_resolution.normalizer import name_key, normalize_phone, normalize_text
from registry_resolver.exceptions import StorageError
from registry_resolver.registry.base import (
    EmbeddingStats,
    LookupField,
    Registry,
    SearchScope,
    VectorFilter,
    format_external_id,
    search_names,
)

logger = logging.getLogger(__name__)

# Labels and index names are interpolated into Cypher; restrict them
ALLOWED_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Over-fetch factor for filtered vector searches (filtering happens after the index)
FILTERED_FETCH_FACTOR = 4

_EXACT_CONDITIONS = {
    LookupField.IDENTIFIER: "e.identifier = $value",
    LookupField.EXTERNAL_ID: "$value IN e.external_ids",
    LookupField.EMAIL: "(toLower(e.email) = $value OR toLower(e.alt_email) = $value)",
    LookupField.DOMAIN: "$value IN e.email_domains",
    LookupField.NAME_KEY: "$value IN e.name_keys",
    LookupField.PHONE: "e.phone_digits = $value",
}


def _validate_name(value: str, what: str) -> str:
    if not ALLOWED_NAME_PATTERN.match(value):
        raise ValueError(f"Invalid {what}: '{value}'")
    return value


def entry_to_properties(entry: RegistryEntry) -> dict[str, Any]:
    """Flatten an entry into node properties, including derived lookup keys."""
    domains = sorted({e.split("@")[1] for e in entry.emails if "@" in e})
    return {
        "identifier": entry.identifier,
        "name": entry.name,
        "kind": entry.kind.value,
        "aliases": sorted(entry.aliases),
        "email": entry.email.strip().lower() if entry.email else None,
        "alt_email": entry.alt_email.strip().lower() if entry.alt_email else None,
        "phone": entry.phone,
        "phone_digits": entry.phone_digits or normalize_phone(entry.phone),
        "address_json": json.dumps(entry.address, sort_keys=True) if entry.address else None,
        "external_ids": sorted(format_external_id(k, v) for k, v in entry.external_ids.items()),
        "job_title": entry.job_title,
        "company": entry.company,
        "active": entry.active,
        "name_keys": sorted({k for k in (name_key(n) for n in entry.names) if k}),
        "search_names": search_names(entry),
        "email_domains": domains,
    }


def node_to_entry(node: Any) -> RegistryEntry:
    """Build a RegistryEntry from a node (or any mapping of its properties)."""
    props = dict(node)
    external_ids = {}
    for value in props.get("external_ids") or []:
        scheme, _, number = value.partition(":")
        external_ids[scheme] = number

    verified_at = props.get("last_verified_at")
    if verified_at is not None and hasattr(verified_at, "to_native"):
        verified_at = verified_at.to_native()

    return RegistryEntry(
        identifier=props["identifier"],
        name=props.get("name") or props["identifier"],
        kind=EntityKind(props.get("kind") or EntityKind.CUSTOMER.value),
        aliases=frozenset(props.get("aliases") or []),
        email=props.get("email"),
        alt_email=props.get("alt_email"),
        phone=props.get("phone"),
        phone_digits=props.get("phone_digits"),
        address=json.loads(props["address_json"]) if props.get("address_json") else {},
        external_ids=external_ids,
        job_title=props.get("job_title"),
        company=props.get("company"),
        embedding=list(props["embedding"]) if props.get("embedding") else None,
        embedding_text_hash=props.get("embedding_text_hash"),
        active=props.get("active", True) is not False,
        verification=VerificationState(
            verified=bool(props.get("verified", False)),
            last_verified_at=verified_at,
            last_verified_method=props.get("last_verified_method"),
            verification_confidence=props.get("verification_confidence"),
        ),
    )


class Neo4jRegistry(Registry):
    """Registry stored in Neo4j, searched with a vector index."""

    def __init__(
        self,
        driver,
        database: str | None = None,
        label: str = "RegistryEntry",
        vector_index: str = "registry_entry_embedding",
    ):
        """
        Args:
            driver: Neo4j driver instance (owned by the caller)
            database: Neo4j database name
            label: Node label of registry entries
            vector_index: Name of the vector index over the embedding property
        """
        self.driver = driver
        self.database = database
        self.label = _validate_name(label, "label")
        self.vector_index = _validate_name(vector_index, "index name")

    def _run(self, query: str, **params) -> list:
        try:
            with self.driver.session(database=self.database) as session:
                return list(session.run(query, **params))
        except (Neo4jError, DriverError) as e:
            raise StorageError(f"Neo4j query failed: {e}") from e

    def exact_lookup(
        self,
        field: LookupField,
        value: str,
        limit: int = EXACT_LOOKUP_LIMIT,
    ) -> list[RegistryEntry]:
        query = f"""
        MATCH (e:{self.label})
        WHERE e.active <> false AND {_EXACT_CONDITIONS[field]}
        RETURN e
        ORDER BY e.identifier
        LIMIT $limit
        """
        return [node_to_entry(r["e"]) for r in self._run(query, value=value, limit=limit)]

    def lexical_search(
        self,
        term: str,
        scope: SearchScope = SearchScope.ALL,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[RegistryEntry]:
        if scope is SearchScope.EMAIL_DOMAIN:
            needle = term.strip().lower()
            condition = "any(d IN coalesce(e.email_domains, []) WHERE d CONTAINS $term)"
        else:
            needle = normalize_text(term) or ""
            condition = (
                "(any(n IN coalesce(e.search_names, []) WHERE n CONTAINS $term) "
                "OR toLower(coalesce(e.email, '')) CONTAINS $term "
                "OR toLower(coalesce(e.alt_email, '')) CONTAINS $term)"
            )
        if not needle:
            return []
        query = f"""
        MATCH (e:{self.label})
        WHERE e.active <> false AND {condition}
        RETURN e
        ORDER BY size(e.name), e.identifier
        LIMIT $limit
        """
        return [node_to_entry(r["e"]) for r in self._run(query, term=needle, limit=limit)]

    def vector_search(
        self,
        embedding: list[float],
        filter: VectorFilter | None = None,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[tuple[RegistryEntry, float]]:
        filtered = filter is not None and not filter.empty
        fetch = limit * FILTERED_FETCH_FACTOR if filtered else limit
        query = f"""
        CALL db.index.vector.queryNodes($index_name, $fetch, $embedding)
        YIELD node AS e, score
        WHERE e:{self.label} AND e.active <> false
          AND ($domain IS NULL AND $name_hint IS NULL
               OR ($domain IS NOT NULL AND $domain IN coalesce(e.email_domains, []))
               OR ($name_hint IS NOT NULL
                   AND any(n IN coalesce(e.search_names, []) WHERE n CONTAINS $name_hint)))
        RETURN e, score
        ORDER BY score DESC
        LIMIT $limit
        """
        records = self._run(
            query,
            index_name=self.vector_index,
            fetch=fetch,
            embedding=list(embedding),
            domain=filter.domain if filtered else None,
            name_hint=normalize_text(filter.name_hint) if filtered else None,
            limit=limit,
        )
        # The cosine index reports (1 + cos) / 2; convert back to raw cosine
        return [(node_to_entry(r["e"]), 2.0 * float(r["score"]) - 1.0) for r in records]

    def record_verification(
        self,
        identifier: str,
        method: str,
        confidence: float,
        verified_at: datetime,
    ) -> None:
        query = f"""
        MATCH (e:{self.label} {{identifier: $identifier}})
        SET e.verified = true,
            e.last_verified_at = $verified_at,
            e.last_verified_method = $method,
            e.verification_confidence = $confidence
        RETURN count(e) AS updated
        """
        records = self._run(
            query,
            identifier=identifier,
            verified_at=verified_at,
            method=method,
            confidence=confidence,
        )
        if not records or records[0]["updated"] == 0:
            raise StorageError(f"Unknown registry entry: {identifier}")

    def iter_entries(self, kind: EntityKind | None = None) -> Iterator[RegistryEntry]:
        query = f"""
        MATCH (e:{self.label})
        WHERE $kind IS NULL OR e.kind = $kind
        RETURN e
        ORDER BY e.identifier
        """
        for record in self._run(query, kind=kind.value if kind else None):
            yield node_to_entry(record["e"])

    def update_embedding(self, identifier: str, embedding: list[float], text_hash: str) -> None:
        query = f"""
        MATCH (e:{self.label} {{identifier: $identifier}})
        SET e.embedding = $embedding,
            e.embedding_text_hash = $text_hash
        """
        self._run(query, identifier=identifier, embedding=list(embedding), text_hash=text_hash)

    def embedding_stats(self, kind: EntityKind | None = None) -> EmbeddingStats:
        query = f"""
        MATCH (e:{self.label})
        WHERE $kind IS NULL OR e.kind = $kind
        RETURN count(e) AS total, count(e.embedding) AS with_embedding
        """
        records = self._run(query, kind=kind.value if kind else None)
        if not records:
            return EmbeddingStats(total=0, with_embedding=0)
        return EmbeddingStats(total=records[0]["total"], with_embedding=records[0]["with_embedding"])

    def upsert_entries(self, entries: Iterable[RegistryEntry], batch_size: int = 1000) -> int:
        """
        Bulk-load entries (content fields only; embeddings and verification are kept).

        Callers holding a CachedRegistry in front of this one must invalidate it afterwards.
        """
        rows = [entry_to_properties(e) for e in entries]
        query = f"""
        UNWIND $batch AS row
        MERGE (e:{self.label} {{identifier: row.identifier}})
        SET e += row,
            e.loaded_at = datetime()
        """
        for i in range(0, len(rows), batch_size):
            batch = rows[i : i + batch_size]
            self._run(query, batch=batch)
            if (i // batch_size + 1) % 10 == 0:
                logger.info(f"  Processed {i + len(batch)}/{len(rows)} entries...")
        logger.info(f"Upserted {len(rows)} {self.label} nodes")
        return len(rows)
