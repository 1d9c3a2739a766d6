"""Core Module Initialization."""

from src.core.store import Store

from src.core.syncer import FullStateSyncer  # isort:skip
from src.core.sched import ReconciliationScheduler

__all__ = [
    "FullStateSyncer",
    "ReconciliationScheduler",
    "Store",
]
