"""Temporary privilege grants that put prior state back when released.

A grant reads the current state, applies a new one and remembers both. On
release it either restores the previous state (``RestorePolicy.AUTOMATIC``) or
only reports what was left in place (``RestorePolicy.ADVISORY``) so the caller
can decide. Restoration runs at most once per grant, never raises, and is not
interrupted by cancellation of the releasing task.

If ``apply`` fails part way (including by cancellation) the previous state is
put back before the error propagates, whatever the policy. ``restore`` then
receives ``applied=None``.

Typical use::

    grant = await acquire_grant(
        "sql-admin",
        read_current=lambda: admins.get_admin(server),
        apply=lambda previous: admins.set_admin(server, operator),
        restore=lambda previous, applied: admins.set_admin(server, previous),
        policy=RestorePolicy.AUTOMATIC,
    )
    async with grant:
        ...
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.errors import GrantStateError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ReadCurrent = Callable[[], Awaitable[T | None]]
Apply = Callable[[T | None], Awaitable[T]]
Restore = Callable[[T | None, T | None], Awaitable[None]]


class GrantState(str, enum.Enum):
    UNAPPLIED = "unapplied"
    APPLIED = "applied"
    RESTORED = "restored"
    SUPPRESSED = "suppressed"


class RestorePolicy(str, enum.Enum):
    AUTOMATIC = "automatic"
    ADVISORY = "advisory"


class ReleaseStatus(str, enum.Enum):
    RESTORED = "restored"
    NOTHING_TO_RESTORE = "nothing_to_restore"
    SUPPRESSED = "suppressed"
    ADVISORY = "advisory"
    FAILED = "failed"
    NOOP = "noop"


@dataclass(frozen=True, slots=True)
class ReleaseOutcome:
    grant_name: str
    status: ReleaseStatus
    applied: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status is not ReleaseStatus.FAILED


class ScopedPrivilegeGrant(Generic[T]):
    """One temporary change of state with a recorded way back."""

    def __init__(
        self,
        name: str,
        *,
        restore: Restore[T],
        policy: RestorePolicy = RestorePolicy.AUTOMATIC,
        restore_when_absent: bool = False,
    ) -> None:
        self.name = name
        self.policy = policy
        self.restore_when_absent = restore_when_absent
        self._restore = restore
        self._state = GrantState.UNAPPLIED
        self._previous: T | None = None
        self._applied: T | None = None
        self._released = False
        self._restore_attempted = False

    @property
    def state(self) -> GrantState:
        return self._state

    @property
    def previous(self) -> T | None:
        return self._previous

    @property
    def applied(self) -> T | None:
        return self._applied

    async def apply(self, read_current: ReadCurrent[T], apply: Apply[T]) -> None:
        """Capture the current state, then apply the new one."""
        if self._state is not GrantState.UNAPPLIED:
            raise GrantStateError(f"Grant '{self.name}' is already {self._state.value}.")
        previous = await read_current()
        self._previous = previous
        try:
            applied = await apply(previous)
        except BaseException as exc:
            await self._undo_partial_apply(exc)
            raise
        self._applied = applied
        self._state = GrantState.APPLIED
        logger.info(
            "grant.applied",
            extra=log_context(grant=self.name, policy=self.policy.value, had_previous=previous is not None),
        )

    async def _undo_partial_apply(self, exc: BaseException) -> None:
        self._state = GrantState.APPLIED
        self._released = True
        logger.warning(
            "grant.apply.failed",
            extra=log_context(grant=self.name, error=f"{type(exc).__name__}: {exc}"),
        )
        await self._restore_once()

    def suppress(self) -> None:
        """Keep the applied state; a later release restores nothing."""
        if self._state is GrantState.APPLIED and not self._restore_attempted:
            self._state = GrantState.SUPPRESSED
            logger.info("grant.suppressed", extra=log_context(grant=self.name))

    async def release(self) -> ReleaseOutcome:
        """Apply the restore policy. Only the first call has any effect."""
        if self._released or self._state is not GrantState.APPLIED:
            first = not self._released
            self._released = True
            if first and self._state is GrantState.SUPPRESSED:
                return self._outcome(ReleaseStatus.SUPPRESSED)
            return self._outcome(ReleaseStatus.NOOP)
        self._released = True

        if self.policy is RestorePolicy.ADVISORY:
            logger.info("grant.release.advisory", extra=log_context(grant=self.name))
            return self._outcome(ReleaseStatus.ADVISORY)
        return await self._restore_once()

    async def restore(self) -> ReleaseOutcome:
        """Restore now, regardless of policy. Used to act on advisory grants."""
        self._released = True
        if self._state is not GrantState.APPLIED or self._restore_attempted:
            return self._outcome(ReleaseStatus.NOOP)
        return await self._restore_once()

    async def _restore_once(self) -> ReleaseOutcome:
        self._restore_attempted = True
        if self._previous is None and not self.restore_when_absent:
            self._state = GrantState.RESTORED
            logger.info("grant.release.nothing_to_restore", extra=log_context(grant=self.name))
            return self._outcome(ReleaseStatus.NOTHING_TO_RESTORE)

        task, interrupted = await _run_to_completion(self._restore(self._previous, self._applied))
        if task.cancelled():
            error: BaseException | None = asyncio.CancelledError()
        else:
            error = task.exception()

        if error is None:
            self._state = GrantState.RESTORED
            logger.info("grant.restored", extra=log_context(grant=self.name))
            outcome = self._outcome(ReleaseStatus.RESTORED)
        else:
            logger.warning(
                "grant.restore.failed",
                extra=log_context(grant=self.name, error=f"{type(error).__name__}: {error}"),
            )
            outcome = self._outcome(ReleaseStatus.FAILED, error=error)

        if interrupted:
            raise asyncio.CancelledError()
        return outcome

    def _outcome(self, status: ReleaseStatus, *, error: BaseException | None = None) -> ReleaseOutcome:
        return ReleaseOutcome(grant_name=self.name, status=status, applied=self._applied, error=error)

    async def __aenter__(self) -> ScopedPrivilegeGrant[T]:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.release()
        return False


async def _run_to_completion(awaitable: Awaitable[None]) -> tuple[asyncio.Future[None], bool]:
    """Drive ``awaitable`` to the end even if the current task is cancelled.

    Returns the finished task and whether a cancellation arrived meanwhile.
    """
    task = asyncio.ensure_future(awaitable)
    interrupted = False
    while not task.done():
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            interrupted = True
    return task, interrupted


async def acquire_grant(
    name: str,
    *,
    read_current: ReadCurrent[T],
    apply: Apply[T],
    restore: Restore[T],
    policy: RestorePolicy = RestorePolicy.AUTOMATIC,
    restore_when_absent: bool = False,
) -> ScopedPrivilegeGrant[T]:
    """Create a grant and apply it. Raises whatever ``read_current``/``apply`` raise."""
    grant: ScopedPrivilegeGrant[T] = ScopedPrivilegeGrant(
        name,
        restore=restore,
        policy=policy,
        restore_when_absent=restore_when_absent,
    )
    await grant.apply(read_current, apply)
    return grant


__all__ = [
    "GrantState",
    "ReleaseOutcome",
    "ReleaseStatus",
    "RestorePolicy",
    "ScopedPrivilegeGrant",
    "acquire_grant",
]
