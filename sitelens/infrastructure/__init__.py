# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

- cache/ - Report cache adapters (Valkey/Redis)
- repositories/ - Event log adapters (PostgreSQL, CSV, in-memory)
"""

from sitelens.infrastructure.cache import ValkeyCache, check_valkey_connection, get_valkey_cache
from sitelens.infrastructure.repositories import (
    CsvEventLog,
    InMemoryEventLog,
    PostgreSQLEventLog,
    check_postgresql_connection,
)

__all__ = [
    # Cache
    "ValkeyCache",
    "check_valkey_connection",
    "get_valkey_cache",
    # Event logs
    "CsvEventLog",
    "InMemoryEventLog",
    "PostgreSQLEventLog",
    "check_postgresql_connection",
]
