"""Thread synchronization between a provider driver and the local cache."""

from .engine import GuardSet, SyncResult, ThreadSyncEngine, ThreadSyncOutcome

__all__ = ["GuardSet", "SyncResult", "ThreadSyncEngine", "ThreadSyncOutcome"]
