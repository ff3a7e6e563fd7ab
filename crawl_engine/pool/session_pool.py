"""
Bounded pool of reusable fetch sessions (browser tabs or HTTP sessions).

The pool is an owned resource: the crawl engine creates one per backend type
and passes it into the crawl. Sessions are reused LIFO, reset to a blank state
on release and recreated after heavy use or a long lifetime.
"""
import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List

from loguru import logger

from crawl_engine.interfaces import CrawlEngineError, IFetchBackend


@dataclass
class PooledSession:
    """A backend session with usage metadata."""
    session: Any
    created_at: float = field(default_factory=time.time)
    last_used: float = field(default_factory=time.time)
    usage_count: int = 0
    max_usage: int = 50
    max_lifetime: float = 3600

    def is_expired(self) -> bool:
        """Check if session should be recreated."""
        current_time = time.time()
        return (
            self.usage_count >= self.max_usage or
            (current_time - self.created_at) >= self.max_lifetime
        )


class SessionPool:
    """
    Session pool bounded by ``max_sessions``.

    ``acquire()`` hands out an idle session, creates one while under the cap,
    or waits for a release. A release whose reset fails or times out destroys
    the session and frees its slot, so waiters always make progress.
    """

    def __init__(self, backend: IFetchBackend, max_sessions: int = 5,
                 reset_timeout_s: float = 10.0, max_usage: int = 50,
                 max_lifetime_s: float = 3600):
        if max_sessions <= 0:
            raise ValueError("max_sessions must be positive")

        self.backend = backend
        self.max_sessions = max_sessions
        self.reset_timeout_s = reset_timeout_s
        self.max_usage = max_usage
        self.max_lifetime_s = max_lifetime_s

        self._idle: List[PooledSession] = []
        self._total = 0
        self._in_use = 0
        self._created = 0
        self._destroyed = 0
        self._peak_in_use = 0
        self._closed = False
        self._condition = asyncio.Condition()

    async def acquire(self) -> PooledSession:
        """Get an idle session or create one if under the cap."""
        async with self._condition:
            while True:
                if self._closed:
                    raise CrawlEngineError("Session pool is closed")
                if self._idle:
                    pooled = self._idle.pop()
                    break
                if self._total < self.max_sessions:
                    # Reserve the slot before the slow create
                    self._total += 1
                    pooled = None
                    break
                await self._condition.wait()

            self._in_use += 1
            self._peak_in_use = max(self._peak_in_use, self._in_use)

        if pooled is None:
            try:
                raw = await self.backend.create_session()
            except BaseException:
                async with self._condition:
                    self._total -= 1
                    self._in_use -= 1
                    self._condition.notify()
                raise
            pooled = PooledSession(session=raw, max_usage=self.max_usage,
                                   max_lifetime=self.max_lifetime_s)
            self._created += 1
            logger.debug(f"Created new session ({self._total}/{self.max_sessions})")
        else:
            logger.debug(f"Reusing session (usage: {pooled.usage_count})")

        pooled.usage_count += 1
        pooled.last_used = time.time()
        return pooled

    async def release(self, pooled: PooledSession) -> None:
        """
        Reset the session and return it to the idle set.

        The session is destroyed instead when it is expired, when the reset
        fails or exceeds ``reset_timeout_s``, when the idle set is full, or
        when the pool has been closed.
        """
        reusable = not self._closed and not pooled.is_expired()

        if reusable:
            try:
                await asyncio.wait_for(self.backend.reset_session(pooled.session),
                                       timeout=self.reset_timeout_s)
            except asyncio.TimeoutError:
                logger.warning(f"Session reset timed out after {self.reset_timeout_s}s, destroying session")
                reusable = False
            except Exception as e:
                logger.warning(f"Session reset failed, destroying session: {e}")
                reusable = False
        else:
            logger.debug(f"Retiring session after {pooled.usage_count} uses")

        async with self._condition:
            self._in_use -= 1
            if reusable and not self._closed and len(self._idle) < self.max_sessions:
                self._idle.append(pooled)
                self._condition.notify()
                return
            self._total -= 1
            self._condition.notify()

        await self._destroy(pooled)

    async def _destroy(self, pooled: PooledSession) -> None:
        self._destroyed += 1
        try:
            await asyncio.wait_for(self.backend.destroy_session(pooled.session),
                                   timeout=self.reset_timeout_s)
        except Exception as e:
            logger.warning(f"Error destroying session: {e}")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Any]:
        """
        Context manager for pooled sessions.
        Usage: async with pool.session() as session:
        """
        pooled = await self.acquire()
        try:
            yield pooled.session
        finally:
            await self.release(pooled)

    async def close_all(self) -> None:
        """Destroy idle sessions and refuse further acquisitions."""
        async with self._condition:
            self._closed = True
            idle, self._idle = self._idle, []
            self._total -= len(idle)
            self._condition.notify_all()

        for pooled in idle:
            await self._destroy(pooled)
        logger.info(f"Session pool closed ({len(idle)} idle sessions destroyed)")

    @property
    def in_use(self) -> int:
        return self._in_use

    def get_stats(self) -> Dict[str, Any]:
        """Get session pool statistics."""
        return {
            "max_sessions": self.max_sessions,
            "total_sessions": self._total,
            "idle": len(self._idle),
            "in_use": self._in_use,
            "peak_in_use": self._peak_in_use,
            "created": self._created,
            "destroyed": self._destroyed,
            "closed": self._closed,
        }
