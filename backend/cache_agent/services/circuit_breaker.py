"""Circuit breaker helper for partition store operations."""

from __future__ import annotations

import logging
import time
from functools import wraps
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class _Unavailable:
    def __repr__(self) -> str:
        return "UNAVAILABLE"


# Returned by protected calls that did not reach the backend. Distinct from
# None, which a backend may legitimately answer (e.g. a hash miss).
UNAVAILABLE: Any = _Unavailable()


class CircuitBreaker:
    """Fail fast while the backing store is unavailable.

    After a failure the circuit stays open for ``timeout_seconds``; protected
    calls return ``UNAVAILABLE`` in that window so callers use their fallback.
    """

    def __init__(self, timeout_seconds: float) -> None:
        self._timeout_seconds = timeout_seconds
        self._open_until = 0.0

    def is_open(self) -> bool:
        return time.monotonic() < self._open_until

    def open(self) -> None:
        self._open_until = time.monotonic() + self._timeout_seconds

    def close(self) -> None:
        self._open_until = 0.0

    def protect(
        self, func: Callable[..., Awaitable[Any]]
    ) -> Callable[..., Awaitable[Any]]:
        """Wrap a coroutine function so backend errors open the circuit."""

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            if self.is_open():
                return UNAVAILABLE
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                logger.warning(
                    "Partition store circuit breaker opened for %s",
                    func.__name__,
                    exc_info=exc,
                )
                self.open()
                return UNAVAILABLE
            self.close()
            return result

        return wrapper


__all__ = ["UNAVAILABLE", "CircuitBreaker"]
