"""
In-memory per-auction record stores.
Each auction's record is guarded by its own lock; records are immutable and
replaced wholesale, so readers never observe a half-applied update.
"""
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from .errors import AuctionNotFoundError
from .models import BidConfig, BidStatus

T = TypeVar("T")


class KeyLocks:
    """
    Registry of one re-entrant lock per key.
    The registry lock only protects the dict and is released before a key lock is acquired.
    Entries are never dropped, so every caller for a key shares one lock object.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._lock = threading.Lock()  # Protects the _locks dict

    def lock_for(self, key: str) -> threading.RLock:
        with self._lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for `key` for the duration of the block."""
        lock = self.lock_for(key)
        with lock:
            yield


class RecordStore(Generic[T]):
    """Mapping from auction id to an immutable record with per-key atomic replace."""

    def __init__(self, locks: Optional[KeyLocks] = None):
        self.locks = locks or KeyLocks()
        self._records: Dict[str, T] = {}
        self._lock = threading.Lock()  # Protects the _records dict itself

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            return self._records.get(key)

    def require(self, key: str) -> T:
        record = self.get(key)
        if record is None:
            raise AuctionNotFoundError(key)
        return record

    def put(self, key: str, record: T):
        with self.locks.hold(key):
            with self._lock:
                self._records[key] = record

    def update(self, key: str, func: Callable[[Optional[T]], T]) -> T:
        """Replace the record for `key` with func(current) while holding the key lock."""
        with self.locks.hold(key):
            record = func(self.get(key))
            with self._lock:
                self._records[key] = record
            return record

    def pop(self, key: str) -> Optional[T]:
        with self.locks.hold(key):
            with self._lock:
                return self._records.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._records

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def items(self) -> List[Tuple[str, T]]:
        """Point-in-time copy of all records."""
        with self._lock:
            return list(self._records.items())


class ConfigStore(RecordStore[BidConfig]):
    """BidConfig per auction, written by the configuration collaborator."""


class StatusStore(RecordStore[BidStatus]):
    """BidStatus per auction, written only by the scheduler."""
