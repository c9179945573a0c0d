"""
Request bookkeeping for concurrent loads.

This module provides:
- InFlightSet: per-key in-flight markers that drop duplicate requests
  instead of queueing them
- RequestGuard: generation counters that let a caller tell whether the
  response it just received still belongs to the current request
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator


class InFlightSet:
    """
    Set of keys with a request currently in flight.

    There is no queueing: a second request for a key that is already in
    flight is told to drop itself.

    Usage:
        async with in_flight.hold(account_id) as acquired:
            if not acquired:
                return current_value
            result = await fetch()
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def try_acquire(self, key: str) -> bool:
        """Mark key as in flight. Returns False if it already was."""
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: str) -> None:
        self._keys.discard(key)

    def clear(self) -> None:
        self._keys.clear()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[bool]:
        """
        Hold key for the duration of the block.

        Yields True if this caller acquired the key, False if another request
        already holds it. The key is released on exit only by its holder.
        """
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)


@dataclass(frozen=True)
class RequestToken:
    """Identifies one issued request within a RequestGuard scope."""

    scope: str
    generation: int


class RequestGuard:
    """
    Generation counters per scope.

    Issuing a token bumps the scope's generation; only the most recently
    issued token of a scope is current. Invalidating a scope bumps the
    generation without issuing, which orphans every outstanding token.
    """

    def __init__(self) -> None:
        self._generations: dict[str, int] = {}

    def issue(self, scope: str) -> RequestToken:
        generation = self._generations.get(scope, 0) + 1
        self._generations[scope] = generation
        return RequestToken(scope=scope, generation=generation)

    def invalidate(self, scope: str) -> None:
        self._generations[scope] = self._generations.get(scope, 0) + 1

    def invalidate_all(self) -> None:
        for scope in self._generations:
            self._generations[scope] += 1

    def is_current(self, token: RequestToken) -> bool:
        return self._generations.get(token.scope, 0) == token.generation

    def generation(self, scope: str) -> int:
        return self._generations.get(scope, 0)
