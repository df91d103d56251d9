"""
Neo4j constraint and index creation for registry entries.
"""

import logging

from registry_resolver.constants import EMBEDDING_DIMENSION

logger = logging.getLogger(__name__)


def _run_constraints(
    driver,
    constraints: list[str],
    database: str | None = None,
    log: logging.Logger | None = None,
) -> None:
    """
    Run a list of constraint/index creation statements.

    Args:
        driver: Neo4j driver instance
        constraints: List of Cypher constraint statements
        database: Neo4j database name
        log: Logger instance (defaults to module logger)
    """
    if log is None:
        log = logger

    with driver.session(database=database) as session:
        for constraint in constraints:
            try:
                session.run(constraint)
                log.info(f"✓ Created: {constraint[:50]}...")
            except Exception as e:
                error_str = str(e).lower()
                # Constraint already exists - this is fine
                if "already exists" in error_str or "equivalent" in error_str:
                    log.debug(f"Constraint already exists: {constraint[:50]}")
                else:
                    log.warning(f"⚠ Warning creating constraint: {e}")


def create_registry_constraints(
    driver,
    database: str | None = None,
    label: str = "RegistryEntry",
    vector_index: str = "registry_entry_embedding",
    dimension: int = EMBEDDING_DIMENSION,
    logger: logging.Logger | None = None,
) -> None:
    """
    Create the uniqueness constraint, lookup indexes and vector index for registry entries.

    Args:
        driver: Neo4j driver instance
        database: Neo4j database name
        label: Node label of registry entries
        vector_index: Name of the cosine vector index over e.embedding
        dimension: Embedding dimension
        logger: Optional logger instance
    """
    constraints = [
        (
            f"CREATE CONSTRAINT {label.lower()}_identifier IF NOT EXISTS "
            f"FOR (e:{label}) REQUIRE e.identifier IS UNIQUE"
        ),
        f"CREATE INDEX {label.lower()}_email IF NOT EXISTS FOR (e:{label}) ON (e.email)",
        f"CREATE INDEX {label.lower()}_phone IF NOT EXISTS FOR (e:{label}) ON (e.phone_digits)",
        f"CREATE INDEX {label.lower()}_kind IF NOT EXISTS FOR (e:{label}) ON (e.kind)",
        (
            f"CREATE VECTOR INDEX {vector_index} IF NOT EXISTS "
            f"FOR (e:{label}) ON (e.embedding) "
            f"OPTIONS {{indexConfig: {{`vector.dimensions`: {dimension}, "
            f"`vector.similarity_function`: 'cosine'}}}}"
        ),
    ]
    _run_constraints(driver, constraints, database=database, log=logger)
