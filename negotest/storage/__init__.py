"""Storage backends for negotest"""

from .trace_store import TraceStore

__all__ = [
    "TraceStore",
]
