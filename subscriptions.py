"""
Subscription Registry

Maps a subscriber scope (chat + thread) to its filters. Filters are
kept in insertion order because the /list reply is read by people.
Resident in memory only.
"""
import logging
import threading
from typing import Dict, List, Optional, Tuple

from models import Subscription, SubscriberScope

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """Thread-safe registry of filters per subscriber scope."""

    def __init__(self):
        # dict-as-ordered-set: {scope: {Subscription: None}}
        self._filters: Dict[SubscriberScope, Dict[Subscription, None]] = {}
        self._lock = threading.Lock()

    def add_filter(self, scope: SubscriberScope, threshold: float,
                   ticker: Optional[str], chain: str) -> int:
        """
        Add a filter to the scope.

        Returns:
            Number of filters the scope holds afterwards (unchanged for a duplicate)
        """
        subscription = Subscription(eth_threshold=threshold, ticker=ticker, chain=chain)
        with self._lock:
            filters = self._filters.setdefault(scope, {})
            filters[subscription] = None
            size = len(filters)

        logger.info(f"Subscribed {scope.key} to {subscription.describe()}")
        return size

    def remove_filter(self, scope: SubscriberScope, threshold: float,
                      ticker: Optional[str], chain: str) -> bool:
        """Delete the exactly matching filter. Returns False if it was not there."""
        try:
            subscription = Subscription(eth_threshold=threshold, ticker=ticker, chain=chain)
        except ValueError:
            return False

        with self._lock:
            filters = self._filters.get(scope)
            if not filters or subscription not in filters:
                return False
            del filters[subscription]
            if not filters:
                del self._filters[scope]

        logger.info(f"Unsubscribed {scope.key} from {subscription.describe()}")
        return True

    def list(self, scope: SubscriberScope) -> List[Subscription]:
        with self._lock:
            return list(self._filters.get(scope, {}))

    def all_scopes(self) -> List[Tuple[SubscriberScope, Tuple[Subscription, ...]]]:
        """Snapshot of every scope and its filters, safe to iterate while others mutate."""
        with self._lock:
            return [(scope, tuple(filters)) for scope, filters in self._filters.items()]

    def scope_count(self) -> int:
        with self._lock:
            return len(self._filters)
