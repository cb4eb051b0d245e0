# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the ports of the ports-and-adapters architecture.

- EventLog: read access to the raw event store
- Cache: optional report cache
"""

from sitelens.base.cache import Cache
from sitelens.base.event_log import EPOCH, EventFilters, EventLog

__all__ = [
    "Cache",
    "EPOCH",
    "EventFilters",
    "EventLog",
]
