"""Per-scope mutual exclusion for reconciliation.

Only one commit may be in flight per scope: two change-sets computed from
the same baseline would otherwise race and persist duplicate or gapped
order values. The registry hands out one InFlightToken per scope; the
token travels with the reconcile call and is released when the outcome is
observed. Different scopes never block each other.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from itertools import count

from toonshelf.collection.models import Scope
from toonshelf.core.exceptions import ConcurrentEditRejected

logger = logging.getLogger(__name__)

__all__ = ["InFlightToken", "InFlightRegistry"]

_serial = count(1)


@dataclass(eq=False)
class InFlightToken:
    """Proof that the holder owns the scope's single commit slot.

    Attributes:
        scope: Scope the token guards.
        serial: Process-unique token number (for logs).
        released: Set once the slot is given back.
        cancelled: Set when the holder abandons the commit; the metadata
            batch is never issued for a cancelled token.

    """

    scope: Scope
    serial: int = field(default_factory=lambda: next(_serial))
    released: bool = False
    cancelled: bool = False

    @property
    def active(self) -> bool:
        return not self.released and not self.cancelled

    def cancel(self) -> None:
        if not self.cancelled:
            logger.info("Commit #%d for %s cancelled by caller", self.serial, self.scope)
        self.cancelled = True


class InFlightRegistry:
    """Tracks which scopes have a commit in flight."""

    def __init__(self) -> None:
        self._tokens: dict[Scope, InFlightToken] = {}

    def is_busy(self, scope: Scope) -> bool:
        return scope in self._tokens

    def acquire(self, scope: Scope) -> InFlightToken:
        """Claim the scope's commit slot.

        Raises:
            ConcurrentEditRejected: If another commit holds the slot.

        """
        holder = self._tokens.get(scope)
        if holder is not None:
            raise ConcurrentEditRejected(
                f"Commit #{holder.serial} is still in flight for {scope}",
                scope=scope,
            )
        token = InFlightToken(scope=scope)
        self._tokens[scope] = token
        logger.debug("Acquired commit #%d for %s", token.serial, scope)
        return token

    def release(self, token: InFlightToken) -> None:
        """Give the slot back; releasing twice is a no-op."""
        if token.released:
            return
        token.released = True
        if self._tokens.get(token.scope) is token:
            del self._tokens[token.scope]
            logger.debug("Released commit #%d for %s", token.serial, token.scope)

    def owns(self, token: InFlightToken) -> bool:
        return self._tokens.get(token.scope) is token and not token.released

    @asynccontextmanager
    async def hold(self, scope: Scope) -> AsyncIterator[InFlightToken]:
        """Hold the scope's slot for the duration of a block."""
        token = self.acquire(scope)
        try:
            yield token
        finally:
            self.release(token)
