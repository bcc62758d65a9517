from __future__ import annotations

import asyncio
import logging

import pytest

from bt_azure_tools.core.errors import GrantStateError
from bt_azure_tools.features.grants.scoped import (
    GrantState,
    ReleaseStatus,
    RestorePolicy,
    ScopedPrivilegeGrant,
    acquire_grant,
)


class _Target:
    """A single mutable value with a log of restore calls."""

    def __init__(self, value: str | None) -> None:
        self.value = value
        self.restores: list[str | None] = []

    async def read(self) -> str | None:
        return self.value

    async def apply(self, previous: str | None) -> str:
        self.value = "elevated"
        return self.value

    async def restore(self, previous: str | None, applied: str | None) -> None:
        self.restores.append(previous)
        self.value = previous


async def _acquire(target: _Target, **kwargs) -> ScopedPrivilegeGrant[str]:
    return await acquire_grant(
        "test-grant",
        read_current=target.read,
        apply=target.apply,
        restore=target.restore,
        **kwargs,
    )


async def test_release_restores_previous_state_once() -> None:
    target = _Target("alice")
    grant = await _acquire(target)

    assert grant.state is GrantState.APPLIED
    assert grant.previous == "alice"
    assert grant.applied == "elevated"

    first = await grant.release()
    second = await grant.release()

    assert first.status is ReleaseStatus.RESTORED
    assert first.ok
    assert second.status is ReleaseStatus.NOOP
    assert target.restores == ["alice"]
    assert target.value == "alice"
    assert grant.state is GrantState.RESTORED


async def test_absent_previous_state_is_left_alone_by_default() -> None:
    target = _Target(None)
    grant = await _acquire(target)

    outcome = await grant.release()

    assert outcome.status is ReleaseStatus.NOTHING_TO_RESTORE
    assert target.restores == []
    assert target.value == "elevated"


async def test_absent_previous_state_can_still_be_restored() -> None:
    target = _Target(None)
    grant = await _acquire(target, restore_when_absent=True)

    outcome = await grant.release()

    assert outcome.status is ReleaseStatus.RESTORED
    assert target.restores == [None]


async def test_suppressed_grant_keeps_applied_state() -> None:
    target = _Target("alice")
    grant = await _acquire(target)

    grant.suppress()
    outcome = await grant.release()

    assert outcome.status is ReleaseStatus.SUPPRESSED
    assert target.restores == []
    assert (await grant.release()).status is ReleaseStatus.NOOP


async def test_advisory_release_reports_then_explicit_restore_acts() -> None:
    target = _Target("rule-a")
    grant = await _acquire(target, policy=RestorePolicy.ADVISORY)

    advisory = await grant.release()
    assert advisory.status is ReleaseStatus.ADVISORY
    assert advisory.applied == "elevated"
    assert target.restores == []

    restored = await grant.restore()
    again = await grant.restore()

    assert restored.status is ReleaseStatus.RESTORED
    assert again.status is ReleaseStatus.NOOP
    assert target.restores == ["rule-a"]


async def test_restore_failure_is_reported_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    async def failing_restore(previous, applied) -> None:
        raise RuntimeError("server unavailable")

    grant = await acquire_grant(
        "sql-admin",
        read_current=_Target("alice").read,
        apply=_Target("alice").apply,
        restore=failing_restore,
    )

    with caplog.at_level(logging.WARNING):
        outcome = await grant.release()

    assert outcome.status is ReleaseStatus.FAILED
    assert not outcome.ok
    assert isinstance(outcome.error, RuntimeError)
    assert grant.state is GrantState.APPLIED
    assert any(record.getMessage() == "grant.restore.failed" for record in caplog.records)
    assert (await grant.release()).status is ReleaseStatus.NOOP


async def test_apply_twice_is_rejected() -> None:
    target = _Target("alice")
    grant = await _acquire(target)

    with pytest.raises(GrantStateError):
        await grant.apply(target.read, target.apply)


async def test_failed_apply_puts_previous_back_before_raising() -> None:
    target = _Target("alice")
    applied_seen: list[str | None] = []

    async def partial_apply(previous):
        target.value = "elevated"
        raise RuntimeError("forbidden")

    async def restore(previous, applied):
        applied_seen.append(applied)
        await target.restore(previous, applied)

    grant = ScopedPrivilegeGrant("test-grant", restore=restore)
    with pytest.raises(RuntimeError, match="forbidden"):
        await grant.apply(target.read, partial_apply)

    assert target.value == "alice"
    assert target.restores == ["alice"]
    assert applied_seen == [None]
    assert grant.state is GrantState.RESTORED
    assert (await grant.release()).status is ReleaseStatus.NOOP
    assert target.restores == ["alice"]


async def test_cancelled_apply_restores_even_when_advisory() -> None:
    target = _Target("alice")

    async def cancelled_apply(previous):
        target.value = "elevated"
        raise asyncio.CancelledError()

    grant = ScopedPrivilegeGrant("test-grant", restore=target.restore, policy=RestorePolicy.ADVISORY)
    with pytest.raises(asyncio.CancelledError):
        await grant.apply(target.read, cancelled_apply)

    assert target.value == "alice"
    assert target.restores == ["alice"]


async def test_failed_apply_without_previous_restores_nothing() -> None:
    target = _Target(None)

    async def broken_apply(previous):
        raise RuntimeError("forbidden")

    grant = ScopedPrivilegeGrant("test-grant", restore=target.restore)
    with pytest.raises(RuntimeError):
        await grant.apply(target.read, broken_apply)

    assert target.restores == []
    assert (await grant.release()).status is ReleaseStatus.NOOP


async def test_context_manager_restores_when_body_raises() -> None:
    target = _Target("alice")
    grant = await _acquire(target)

    with pytest.raises(ValueError):
        async with grant:
            raise ValueError("work failed")

    assert target.restores == ["alice"]


async def test_cancellation_does_not_interrupt_restore() -> None:
    started = asyncio.Event()
    proceed = asyncio.Event()
    restored: list[str | None] = []

    async def slow_restore(previous, applied) -> None:
        started.set()
        await proceed.wait()
        restored.append(previous)

    target = _Target("alice")
    grant = await acquire_grant(
        "sql-admin",
        read_current=target.read,
        apply=target.apply,
        restore=slow_restore,
    )

    releaser = asyncio.create_task(grant.release())
    await started.wait()
    releaser.cancel()
    await asyncio.sleep(0)
    proceed.set()

    with pytest.raises(asyncio.CancelledError):
        await releaser

    assert restored == ["alice"]
    assert grant.state is GrantState.RESTORED
