"""
Per-model request throttling.

A ``ModelThrottle`` enforces a minimum spacing between successive request
initiations against the same model id. It is owned by whoever builds the
model client and passed in explicitly, so tests can substitute
``NullThrottle``.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from .llm_constants import MODEL_DELAYS, DEFAULT_MODEL_DELAY

logger = logging.getLogger(__name__)


class ModelThrottle:
    """
    Minimum-delay limiter keyed by model id.

    Concurrent callers waiting on the same model id are serialized through a
    per-model lock; callers on different model ids never wait for each other.
    The "last call" time is stamped just before control returns to the
    caller, so the throttle bounds how often requests start, not how often
    they finish.
    """

    def __init__(
        self,
        delays: Optional[Dict[str, float]] = None,
        default_delay: float = DEFAULT_MODEL_DELAY,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the throttle.

        Args:
            delays: Seconds between calls per model id (default: tier table)
            default_delay: Delay for model ids missing from the table
            clock: Monotonic clock returning seconds
            sleep: Coroutine used to wait
        """
        self._delays = dict(MODEL_DELAYS if delays is None else delays)
        self._default_delay = default_delay
        self._clock = clock
        self._sleep = sleep
        self._last_call: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def delay_for(self, model_id: str) -> float:
        """Return the minimum spacing in seconds for a model id."""
        return self._delays.get(model_id.replace("models/", ""), self._default_delay)

    def last_call(self, model_id: str) -> Optional[float]:
        """Clock value of the most recent initiation for a model id, if any."""
        return self._last_call.get(model_id)

    def _lock_for(self, model_id: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if loop is not self._loop:
            # Locks cannot be shared across event loops
            self._locks = {}
            self._loop = loop
        lock = self._locks.get(model_id)
        if lock is None:
            lock = self._locks[model_id] = asyncio.Lock()
        return lock

    async def wait(self, model_id: str) -> None:
        """
        Block until the model's delay has elapsed since its previous call.

        Args:
            model_id: Model identifier the caller is about to request
        """
        async with self._lock_for(model_id):
            previous = self._last_call.get(model_id)
            if previous is not None:
                remaining = self.delay_for(model_id) - (self._clock() - previous)
                if remaining > 0:
                    logger.debug(f"Throttling {model_id} for {remaining:.2f}s")
                    await self._sleep(remaining)
            self._last_call[model_id] = self._clock()


class NullThrottle(ModelThrottle):
    """Throttle that never waits; still records call times."""

    def __init__(self):
        super().__init__(delays={}, default_delay=0.0)

    async def wait(self, model_id: str) -> None:
        self._last_call[model_id] = self._clock()
