"""Lifecycle services: scanning, marking, consensus, relocation and expiry."""

from .consensus import ConsensusEvaluator, EligibilityPolicy
from .engine import LifecycleEngine, MediaListing, MediaQuery
from .ledger import MarkLedger, MarkResult
from .permanence import PermanenceGuard, PersistResult
from .reaper import GracePeriodReaper, ReapReport
from .scanner import LibraryScanner, ScanReport
from .transitions import TransitionExecutor, TransitionOutcome, TransitionResult
from .watcher import LibraryWatcher

__all__ = [
    "ConsensusEvaluator",
    "EligibilityPolicy",
    "GracePeriodReaper",
    "LibraryScanner",
    "LibraryWatcher",
    "LifecycleEngine",
    "MarkLedger",
    "MarkResult",
    "MediaListing",
    "MediaQuery",
    "PermanenceGuard",
    "PersistResult",
    "ReapReport",
    "ScanReport",
    "TransitionExecutor",
    "TransitionOutcome",
    "TransitionResult",
]
