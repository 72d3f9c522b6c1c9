"""
Time-bounded cache for the last metadata fetch.

Valid entries are served without locking. On a miss only one caller runs the
refresh; callers that miss while it is running wait for its outcome instead
of opening their own upstream connection.
"""
import threading
from collections import namedtuple

from icyproxy.config import CACHE_TTL_MS, log_debug

CacheEntry = namedtuple('CacheEntry', ['data', 'stored_at'])

EMPTY_ENTRY = CacheEntry(None, 0)


class _Flight:
    """One refresh in progress, shared by every caller that missed meanwhile."""

    def __init__(self):
        self._done = threading.Event()
        self._result = None
        self._error = None

    def finish(self, result=None, error=None):
        self._result = result
        self._error = error
        self._done.set()

    def wait(self):
        self._done.wait()
        if self._error is not None:
            raise self._error
        return self._result


class MetadataCache:

    def __init__(self, ttl_ms=CACHE_TTL_MS):
        self.ttl_ms = ttl_ms
        self.entry = EMPTY_ENTRY
        self._lock = threading.Lock()
        self._flight = None

    def is_fresh(self, entry, now):
        return entry.data is not None and (now - entry.stored_at) < self.ttl_ms

    def get(self, now):
        """Cached data if still valid at ``now`` (epoch ms), else None."""
        entry = self.entry
        if self.is_fresh(entry, now):
            return entry.data
        return None

    def get_or_refresh(self, now, refresh):
        """
        Return cached data, or the result of ``refresh()`` on a miss.

        A successful refresh replaces the entry with ``stored_at=now``. A
        failing one leaves the entry as it was and its exception is raised to
        every caller that was waiting on it.
        """
        data = self.get(now)
        if data is not None:
            return data

        with self._lock:
            # Someone may have refreshed while we waited for the lock
            data = self.get(now)
            if data is not None:
                return data

            flight = self._flight
            leader = flight is None
            if leader:
                flight = self._flight = _Flight()

        if not leader:
            log_debug("Joining in-flight metadata refresh")
            return flight.wait()

        data = None
        error = None
        try:
            data = refresh()
        except BaseException as e:
            error = e
            raise
        finally:
            # Always release the slot, or later callers would wait forever
            with self._lock:
                if error is None:
                    self.entry = CacheEntry(data, now)
                self._flight = None
            flight.finish(result=data, error=error)
        return data
