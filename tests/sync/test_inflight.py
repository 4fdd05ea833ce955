"""Tests for the per-scope in-flight registry."""

import pytest

from toonshelf.collection.models import Scope
from toonshelf.core.exceptions import ConcurrentEditRejected
from toonshelf.sync.inflight import InFlightRegistry

SCOPE = Scope.images("c1", "e1")


class TestInFlightRegistry:
    def test_second_acquire_rejected(self) -> None:
        registry = InFlightRegistry()
        token = registry.acquire(SCOPE)
        with pytest.raises(ConcurrentEditRejected) as exc_info:
            registry.acquire(SCOPE)
        assert exc_info.value.scope == SCOPE
        assert registry.owns(token)

    def test_other_scopes_are_independent(self) -> None:
        registry = InFlightRegistry()
        registry.acquire(SCOPE)
        other = registry.acquire(Scope.images("c1", "e2"))
        assert other.active

    def test_release_frees_scope_and_is_idempotent(self) -> None:
        registry = InFlightRegistry()
        token = registry.acquire(SCOPE)
        registry.release(token)
        registry.release(token)
        assert not registry.is_busy(SCOPE)
        assert not token.active
        assert not registry.owns(token)
        assert registry.acquire(SCOPE).serial != token.serial

    def test_stale_release_does_not_evict_new_holder(self) -> None:
        registry = InFlightRegistry()
        old = registry.acquire(SCOPE)
        registry.release(old)
        new = registry.acquire(SCOPE)
        registry.release(old)
        assert registry.owns(new)

    def test_cancel_keeps_slot_until_release(self) -> None:
        registry = InFlightRegistry()
        token = registry.acquire(SCOPE)
        token.cancel()
        assert token.cancelled
        assert not token.active
        assert registry.is_busy(SCOPE)

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self) -> None:
        registry = InFlightRegistry()
        with pytest.raises(RuntimeError):
            async with registry.hold(SCOPE) as token:
                assert registry.owns(token)
                raise RuntimeError("boom")
        assert not registry.is_busy(SCOPE)
