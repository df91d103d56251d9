"""Neo4j connection and utilities."""

from registry_resolver.neo4j.connection import (
    get_neo4j_driver,
    verify_connection,
)
from registry_resolver.neo4j.constraints import create_registry_constraints

__all__ = [
    "get_neo4j_driver",
    "verify_connection",
    "create_registry_constraints",
]
