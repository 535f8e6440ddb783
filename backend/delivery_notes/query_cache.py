"""
Query cache: deduplicated, cache-backed reads and invalidating writes.

KEYS:
A query is addressed by a tuple key such as ("products",) or ("products", 5).
Invalidation and removal match by prefix, so invalidating ("products",)
also marks ("products", 5) stale.

ENTRY LIFECYCLE:
    absent -> loading -> fresh -> stale -> loading -> fresh
                 |                                      |
                 +-> absent (failure, nothing cached)   +-> evicted

- fresh:   data younger than stale_time and not invalidated; served as-is
- stale:   older than stale_time or invalidated; the next access refetches,
           and invalidation refetches immediately for observed keys
- evicted: gc_time elapsed with no observers; the entry is dropped

Concurrent reads of the same key share one in-flight fetch. A reader that
is cancelled stops waiting but does not cancel the shared fetch.

Mutations never touch cached data before their write completes; a failed
mutation leaves the cache as it was and re-raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_STALE_TIME = 60 * 5
DEFAULT_GC_TIME = 60 * 30

QueryFn = Callable[[], Awaitable[Any]]
MutationFn = Callable[[Any], Awaitable[Any]]
Listener = Callable[["QueryResult"], None]


class EntryState(str, Enum):
    LOADING = "loading"
    FRESH = "fresh"
    STALE = "stale"


class QueryStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class MutationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


def normalize_key(key: Any) -> tuple:
    if isinstance(key, tuple):
        return key
    if isinstance(key, list):
        return tuple(key)
    return (key,)


def matches_key(key: tuple, prefix: tuple) -> bool:
    return key[:len(prefix)] == prefix


@dataclass(frozen=True)
class QueryResult:
    status: QueryStatus
    data: Any = None
    error: Optional[BaseException] = None
    is_fetching: bool = False
    is_stale: bool = False
    enabled: bool = True

    @property
    def is_success(self) -> bool:
        return self.status is QueryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is QueryStatus.ERROR

    @property
    def is_pending(self) -> bool:
        return self.status is QueryStatus.PENDING


DISABLED_RESULT = QueryResult(status=QueryStatus.IDLE, enabled=False)


class _Entry:
    def __init__(self, key: tuple):
        self.key = key
        self.data: Any = None
        self.has_data = False
        self.error: Optional[BaseException] = None
        self.updated_at: Optional[float] = None
        self.invalidated = False
        # Bumped on every invalidation; a fetch that started before the bump
        # completes as stale
        self.generation = 0
        self.inflight: Optional[asyncio.Future] = None
        self.fetch_fn: Optional[QueryFn] = None
        self.idle_since: Optional[float] = None
        self.gc_handle: Optional[asyncio.TimerHandle] = None


def _consume_exception(task: asyncio.Future) -> None:
    # Every reader may have been cancelled; keep asyncio from reporting the
    # failure as never retrieved (it is recorded on the entry)
    if not task.cancelled():
        task.exception()


class QueryClient:
    def __init__(
        self,
        *,
        stale_time: float = DEFAULT_STALE_TIME,
        gc_time: float = DEFAULT_GC_TIME,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_time = stale_time
        self.gc_time = gc_time
        self._clock = clock
        self._entries: dict[tuple, _Entry] = {}
        self._observers: dict[tuple, set[QueryObserver]] = {}

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **kwargs: Any) -> "QueryClient":
        return cls(
            stale_time=float(config.get("QUERY_STALE_TIME_SECONDS", DEFAULT_STALE_TIME)),
            gc_time=float(config.get("QUERY_GC_TIME_SECONDS", DEFAULT_GC_TIME)),
            **kwargs,
        )

    # --- inspection ---

    def keys(self) -> list[tuple]:
        return list(self._entries)

    def get_query_state(self, key: Any) -> Optional[EntryState]:
        """Lifecycle state of a key; None when absent or evicted."""
        entry = self._entries.get(normalize_key(key))
        if entry is None:
            return None
        if entry.inflight is not None:
            return EntryState.LOADING
        return EntryState.STALE if self._is_stale(entry) else EntryState.FRESH

    def get_query_data(self, key: Any) -> Any:
        entry = self._entries.get(normalize_key(key))
        return entry.data if entry is not None and entry.has_data else None

    def _is_stale(self, entry: _Entry, stale_time: Optional[float] = None) -> bool:
        if not entry.has_data or entry.invalidated:
            return True
        window = self.stale_time if stale_time is None else stale_time
        return self._clock() - entry.updated_at >= window

    # --- reads ---

    async def fetch_query(
        self,
        key: Any,
        fn: QueryFn,
        *,
        enabled: bool = True,
        stale_time: Optional[float] = None,
    ) -> Any:
        """
        Return data for key, fetching with fn unless a fresh copy is cached.

        A disabled query never calls fn and returns None. Fetch errors
        propagate to every caller sharing the fetch.
        """
        if not enabled:
            return None
        key = normalize_key(key)
        entry = self._entries.get(key)
        if entry is not None and entry.inflight is None and not self._is_stale(entry, stale_time):
            self._mark_idle(key)
            return entry.data
        try:
            return await self._fetch(key, fn)
        finally:
            self._mark_idle(key)

    async def _fetch(self, key: tuple, fn: QueryFn) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry(key)
        self._cancel_gc(entry)
        entry.fetch_fn = fn
        if entry.inflight is None:
            entry.inflight = asyncio.ensure_future(self._run_fetch(entry, fn, entry.generation))
            entry.inflight.add_done_callback(_consume_exception)
            self._notify(key)
        return await asyncio.shield(entry.inflight)

    async def _run_fetch(self, entry: _Entry, fn: QueryFn, generation: int) -> Any:
        try:
            data = await fn()
        except Exception as exc:
            entry.inflight = None
            entry.error = exc
            if not entry.has_data and self._entries.get(entry.key) is entry:
                # Nothing to fall back on: the key goes back to absent
                del self._entries[entry.key]
            logger.warning("Query %r failed: %s", entry.key, exc)
            self._notify(entry.key)
            raise
        entry.inflight = None
        entry.data = data
        entry.has_data = True
        entry.error = None
        entry.updated_at = self._clock()
        entry.invalidated = entry.generation != generation
        self._notify(entry.key)
        return data

    # --- invalidation ---

    async def invalidate_queries(self, prefix: Any = ()) -> int:
        """
        Mark every entry under prefix stale and refetch the observed ones.

        Returns the number of entries marked. Refetch failures are recorded on
        the entries (and visible through their observers), not raised here.
        """
        prefix = normalize_key(prefix)
        matched = [entry for key, entry in self._entries.items() if matches_key(key, prefix)]
        for entry in matched:
            entry.invalidated = True
            entry.generation += 1
            self._notify(entry.key)

        observed = [entry.key for entry in matched if self._observers.get(entry.key)]
        if observed:
            await asyncio.gather(*(self._refetch_observed(key) for key in observed))
        return len(matched)

    async def _refetch_observed(self, key: tuple) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        fn = entry.fetch_fn
        if fn is None:
            observer = next(iter(self._observers.get(key, ())), None)
            if observer is None:
                return
            fn = observer.fn
        try:
            if entry.inflight is not None:
                # The running fetch started before the invalidation
                await asyncio.shield(entry.inflight)
            entry = self._entries.get(key)
            if entry is None or self._is_stale(entry):
                await self._fetch(key, fn)
        except Exception:
            logger.debug("Refetch of %r after invalidation failed", key)

    def remove_queries(self, prefix: Any = ()) -> int:
        prefix = normalize_key(prefix)
        keys = [key for key in self._entries if matches_key(key, prefix)]
        for key in keys:
            entry = self._entries.pop(key)
            self._cancel_gc(entry)
            self._notify(key)
        return len(keys)

    # --- garbage collection ---

    def collect_garbage(self) -> int:
        """Evict every unobserved entry idle for at least gc_time."""
        now = self._clock()
        return sum(1 for key in list(self._entries) if self._evict_if_idle(key, now))

    def _evict_if_idle(self, key: tuple, now: Optional[float] = None) -> bool:
        entry = self._entries.get(key)
        if entry is None or self._observers.get(key) or entry.inflight is not None:
            return False
        if entry.idle_since is None:
            return False
        now = self._clock() if now is None else now
        if now - entry.idle_since < self.gc_time:
            return False
        del self._entries[key]
        self._cancel_gc(entry)
        logger.debug("Evicted query %r", key)
        return True

    def _mark_idle(self, key: tuple) -> None:
        entry = self._entries.get(key)
        if entry is None or self._observers.get(key):
            return
        entry.idle_since = self._clock()
        self._cancel_gc(entry)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        entry.gc_handle = loop.call_later(self.gc_time, self._gc_timer, key)

    def _gc_timer(self, key: tuple) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.gc_handle = None
        if self._evict_if_idle(key) or entry.idle_since is None or self._observers.get(key):
            return
        # Timer fired a little early relative to the clock; wait out the rest
        remaining = max(self.gc_time - (self._clock() - entry.idle_since), 0.0)
        entry.gc_handle = asyncio.get_running_loop().call_later(remaining, self._gc_timer, key)

    def _cancel_gc(self, entry: _Entry) -> None:
        if entry.gc_handle is not None:
            entry.gc_handle.cancel()
            entry.gc_handle = None

    # --- observers ---

    def _attach(self, observer: "QueryObserver") -> None:
        self._observers.setdefault(observer.key, set()).add(observer)
        entry = self._entries.get(observer.key)
        if entry is not None:
            entry.idle_since = None
            self._cancel_gc(entry)

    def _detach(self, observer: "QueryObserver") -> None:
        observers = self._observers.get(observer.key)
        if observers is None:
            return
        observers.discard(observer)
        if not observers:
            del self._observers[observer.key]
            self._mark_idle(observer.key)

    def _notify(self, key: tuple) -> None:
        for observer in list(self._observers.get(key, ())):
            observer._on_update()

    def _result_for(self, key: tuple, fallback_error: Optional[BaseException], stale_time: Optional[float]) -> QueryResult:
        entry = self._entries.get(key)
        if entry is None:
            if fallback_error is not None:
                return QueryResult(status=QueryStatus.ERROR, error=fallback_error, is_stale=True)
            return QueryResult(status=QueryStatus.IDLE, is_stale=True)

        is_fetching = entry.inflight is not None
        if entry.error is not None:
            status = QueryStatus.ERROR
        elif entry.has_data:
            status = QueryStatus.SUCCESS
        else:
            status = QueryStatus.PENDING
        return QueryResult(
            status=status,
            data=entry.data if entry.has_data else None,
            error=entry.error,
            is_fetching=is_fetching,
            is_stale=self._is_stale(entry, stale_time),
        )


class QueryObserver:
    """
    A subscribed reader of one key.

    A disabled observer (enabled=False) never fetches and always reports
    an idle result with no data and no error.
    """

    def __init__(
        self,
        client: QueryClient,
        key: Any,
        fn: QueryFn,
        *,
        enabled: bool = True,
        stale_time: Optional[float] = None,
    ):
        self.client = client
        self.key = normalize_key(key)
        self.fn = fn
        self.enabled = enabled
        self.stale_time = stale_time
        self._listeners: list[Listener] = []
        self._subscribed = False
        self._error: Optional[BaseException] = None

    @property
    def result(self) -> QueryResult:
        if not self.enabled:
            return DISABLED_RESULT
        return self.client._result_for(self.key, self._error, self.stale_time)

    @property
    def data(self) -> Any:
        return self.result.data

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def subscribe(self) -> QueryResult:
        """Start observing; fetches when the key is absent or stale."""
        if not self.enabled:
            # Disabled observers never fetch, so they never hold a key live
            self._subscribed = True
            return self.result
        if not self._subscribed:
            self._subscribed = True
            self.client._attach(self)
        state = self.client.get_query_state(self.key)
        if state is None or state is EntryState.LOADING:
            return await self._fetch()
        entry = self.client._entries.get(self.key)
        if entry is not None and self.client._is_stale(entry, self.stale_time):
            return await self._fetch()
        return self.result

    def unsubscribe(self) -> None:
        if self._subscribed:
            self._subscribed = False
            if self.enabled:
                self.client._detach(self)

    async def refetch(self) -> QueryResult:
        if not self.enabled:
            return self.result
        return await self._fetch()

    async def _fetch(self) -> QueryResult:
        try:
            await self.client._fetch(self.key, self.fn)
            self._error = None
        except Exception as exc:
            # Surfaced through result; the cache keeps nothing for this key
            self._error = exc
            self._on_update()
        return self.result

    def _on_update(self) -> None:
        result = self.result
        for listener in list(self._listeners):
            listener(result)


InvalidationKeys = Union[Iterable[Any], Callable[[Any, Any], Iterable[Any]]]


class Mutation:
    """
    A write followed by invalidation of the keys it affects.

    invalidates is either a list of key prefixes or a callable receiving
    (variables, result) and returning them.
    """

    def __init__(self, client: QueryClient, fn: MutationFn, *, invalidates: InvalidationKeys = ()):
        self.client = client
        self.fn = fn
        self.invalidates = invalidates
        self.status = MutationStatus.IDLE
        self.data: Any = None
        self.error: Optional[BaseException] = None

    @property
    def is_pending(self) -> bool:
        return self.status is MutationStatus.PENDING

    @property
    def is_success(self) -> bool:
        return self.status is MutationStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is MutationStatus.ERROR

    def _keys_for(self, variables: Any, result: Any) -> list[tuple]:
        keys = self.invalidates(variables, result) if callable(self.invalidates) else self.invalidates
        return [normalize_key(key) for key in keys]

    async def mutate(self, variables: Any = None) -> Any:
        self.status = MutationStatus.PENDING
        self.error = None
        try:
            result = await self.fn(variables)
        except Exception as exc:
            self.status = MutationStatus.ERROR
            self.error = exc
            logger.warning("Mutation failed: %s", exc)
            raise
        self.data = result
        for key in self._keys_for(variables, result):
            await self.client.invalidate_queries(key)
        self.status = MutationStatus.SUCCESS
        return result

    def reset(self) -> None:
        self.status = MutationStatus.IDLE
        self.data = None
        self.error = None
