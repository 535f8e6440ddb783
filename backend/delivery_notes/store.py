"""
Store handle: the single shared entry point to the local relational store.

One Store is constructed explicitly at process start and passed to every
repository. Statements run on one dedicated worker thread, each call inside
its own application context (and therefore its own session), so the store
is never touched by two threads at once and callers simply await results.

Cancelling an awaiting task only stops the wait; a statement already
submitted still runs to completion.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from flask import Flask

from .services.concurrency import run_with_retry
from .services.schema_service import init_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreNotReadyError(RuntimeError):
    """Raised when the store is used before init() or after close()."""


class Store:
    def __init__(self, app: Flask):
        self.app = app
        self.schema_version = 0
        self._executor: ThreadPoolExecutor | None = None
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def init(self) -> int:
        """Open the store and bring its schema up to date. Idempotent."""
        if self._ready:
            return self.schema_version
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="store")
        self.schema_version = await self._submit(init_schema)
        self._ready = True
        logger.debug("Store ready (schema version %d)", self.schema_version)
        return self.schema_version

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a service-layer callable against the store and await its result."""
        if not self._ready:
            raise StoreNotReadyError("Store used before init()")
        return await self._submit(fn, *args, **kwargs)

    async def close(self) -> None:
        self._ready = False
        executor, self._executor = self._executor, None
        if executor is not None:
            # Lets statements already handed to the worker finish
            await asyncio.get_running_loop().run_in_executor(None, executor.shutdown)
            logger.debug("Store closed")

    async def __aenter__(self) -> "Store":
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, functools.partial(self._invoke, fn, *args, **kwargs))
        # A cancelled caller must not pull a queued statement off the worker
        return await asyncio.shield(future)

    def _invoke(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self.app.app_context():
            return run_with_retry(lambda: fn(*args, **kwargs))
