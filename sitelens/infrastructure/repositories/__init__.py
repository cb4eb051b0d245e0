# ==============================================================================
# Event Log Adapters
# ==============================================================================
"""
Adapters implementing the EventLog interface from base/event_log.py.

Currently supported:
- PostgreSQL (postgresql.py)
- In-memory and CSV files (memory.py)
"""

from sitelens.infrastructure.repositories.memory import CsvEventLog, InMemoryEventLog
from sitelens.infrastructure.repositories.postgresql import (
    PostgreSQLEventLog,
    check_postgresql_connection,
)

__all__ = [
    "CsvEventLog",
    "InMemoryEventLog",
    "PostgreSQLEventLog",
    "check_postgresql_connection",
]
