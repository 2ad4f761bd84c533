"""
SEEN-CONTRACT DEDUPLICATOR

Process-wide record of contract addresses already scanned.
Entries never expire: a contract is resolved at most once per process.
"""

from typing import Dict, Set
import threading


class SeenContracts:
    """
    Tracks scanned contract addresses across all chain workers.
    """

    def __init__(self):
        self._seen: Set[str] = set()
        self._lock = threading.Lock()

        # Stats
        self.stats = {
            'added': 0,
            'duplicates': 0
        }

    @staticmethod
    def _key(address: str) -> str:
        return address.lower()

    def mark_if_new(self, address: str) -> bool:
        """
        Atomically record an address.

        Returns:
            True if the address was not seen before (caller should process it)
        """
        key = self._key(address)
        with self._lock:
            if key in self._seen:
                self.stats['duplicates'] += 1
                return False
            self._seen.add(key)
            self.stats['added'] += 1
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def get_stats(self) -> Dict:
        with self._lock:
            return {**self.stats, 'size': len(self._seen)}
