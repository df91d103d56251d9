"""Neo4j driver creation."""

import logging

from neo4j import GraphDatabase

from registry_resolver.config import get_neo4j_password, get_neo4j_uri, get_neo4j_user

logger = logging.getLogger(__name__)


def get_neo4j_driver(uri: str | None = None, user: str | None = None, password: str | None = None):
    """
    Create a Neo4j driver from explicit arguments or settings.

    Raises:
        ValueError: If no password is given and NEO4J_PASSWORD is not set
    """
    uri = uri or get_neo4j_uri()
    user = user or get_neo4j_user()
    password = password or get_neo4j_password()
    return GraphDatabase.driver(uri, auth=(user, password))


def verify_connection(driver) -> bool:
    """Return True when the driver can reach the server."""
    try:
        driver.verify_connectivity()
        return True
    except Exception as e:
        logger.error(f"Neo4j connection failed: {e}")
        return False
