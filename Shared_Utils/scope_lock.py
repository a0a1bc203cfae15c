import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List


class ScopeLockRegistry:
    """
    Single-flight guard for matching runs.

    One asyncio.Lock per account; a run holds the locks of every account in
    its scope, so two runs whose scopes overlap never interleave. Locks are
    always taken in sorted order to avoid deadlock between overlapping scopes.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, account: str) -> asyncio.Lock:
        lock = self._locks.get(account)
        if lock is None:
            lock = self._locks[account] = asyncio.Lock()
        return lock

    @staticmethod
    def normalize(accounts: Iterable[str]) -> List[str]:
        return sorted({a.strip().lower() for a in accounts if a and a.strip()})

    def is_locked(self, accounts: Iterable[str]) -> bool:
        return any(self._lock_for(a).locked() for a in self.normalize(accounts))

    @asynccontextmanager
    async def hold(self, accounts: Iterable[str]):
        acquired = []
        try:
            for account in self.normalize(accounts):
                lock = self._lock_for(account)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
