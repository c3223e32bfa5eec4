# -*- coding: utf-8 -*-

# Token Relay
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Single-flight access token refresh.

When several requests fail with an expired token at the same time, only
one refresh call is made. Every failed request waits for that call and
then replays itself once with the new token.

State machine:

    IDLE ──(expired failure)──> REFRESHING ──(refresh settles)──> SETTLED
      ^                                                              │
      └───────────────────(grace period elapses)─────────────────────┘

- IDLE: no refresh known; the next expired failure starts one
- REFRESHING: a refresh call is in flight; failures join it
- SETTLED: the refresh finished; failures that were sent with the token it
  replaced reuse its outcome, anything else starts a new refresh

Cycle creation and session updates are serialized with asyncio.Lock;
waiters are woken together through the cycle's asyncio.Event.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from loguru import logger

from tokenrelay.config import REFRESH_GRACE_PERIOD
from tokenrelay.exceptions import ClientError, RefreshFailure
from tokenrelay.models import TokenPayload
from tokenrelay.token_state import TokenState

RefreshCall = Callable[[str], Awaitable[TokenPayload]]


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    SETTLED = "settled"


@dataclass
class RefreshCycle:
    """
    One refresh attempt and everyone waiting on it.

    Attributes:
        stale_token: Access token the refresh replaces
        done: Set once the refresh succeeded or failed
        access_token: New access token on success
        error: Terminal failure otherwise
        waiters: Number of requests that attached to this cycle
    """
    stale_token: Optional[str]
    done: asyncio.Event = field(default_factory=asyncio.Event)
    access_token: Optional[str] = None
    error: Optional[RefreshFailure] = None
    waiters: int = 0

    @property
    def settled(self) -> bool:
        return self.done.is_set()

    def accepts(self, stale_token: Optional[str]) -> bool:
        """An in-flight cycle accepts everyone; a settled one only its own stale token."""
        return not self.settled or stale_token == self.stale_token


class RefreshCoordinator:
    """
    Coalesces concurrent expired-token failures into one refresh call.

    Attributes:
        token_state: Session updated on refresh success or cleared on failure
        grace_period: Seconds a settled cycle stays joinable
        refresh_count: Number of refresh calls issued so far

    Example:
        >>> coordinator = RefreshCoordinator(state, client.call_refresh_endpoint)
        >>> new_token = await coordinator.await_refresh(stale_token="A1")
    """

    def __init__(
        self,
        token_state: TokenState,
        refresh_call: RefreshCall,
        grace_period: float = REFRESH_GRACE_PERIOD,
    ):
        """
        Initializes the coordinator.

        Args:
            token_state: Session state shared with the client
            refresh_call: Coroutine function performing the refresh request.
                          Receives the refresh token, returns the new tokens.
            grace_period: Seconds to keep a settled cycle joinable (0 = none)
        """
        self.token_state = token_state
        self.grace_period = grace_period
        self.refresh_count = 0
        self._refresh_call = refresh_call
        self._lock = asyncio.Lock()
        self._cycle: Optional[RefreshCycle] = None
        self._task: Optional[asyncio.Task] = None
        self._reset_handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> RefreshState:
        if self._cycle is None:
            return RefreshState.IDLE
        if self._cycle.settled:
            return RefreshState.SETTLED
        return RefreshState.REFRESHING

    async def await_refresh(self, stale_token: Optional[str]) -> str:
        """
        Starts or joins a refresh and waits for its outcome.

        Args:
            stale_token: Access token the failed request was sent with

        Returns:
            The new access token

        Raises:
            RefreshFailure: If the refresh failed (the session is already cleared)
        """
        async with self._lock:
            cycle = self._cycle
            if cycle is not None and cycle.accepts(stale_token):
                logger.debug(f"Joining {self.state.value} token refresh")
            else:
                cycle = self._start_cycle(stale_token)
            cycle.waiters += 1

        await cycle.done.wait()

        if cycle.error is not None:
            raise cycle.error
        return cycle.access_token

    async def force_refresh(self) -> str:
        """
        Refreshes the current access token.

        Joins a refresh that is already in flight instead of starting
        a second one.

        Returns:
            New access token
        """
        return await self.await_refresh(self.token_state.access_token or None)

    def _start_cycle(self, stale_token: Optional[str]) -> RefreshCycle:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

        cycle = RefreshCycle(stale_token=stale_token)
        self._cycle = cycle
        # Own task so the refresh outlives any single waiter
        self._task = asyncio.get_running_loop().create_task(self._run(cycle))
        logger.info("Access token expired, refreshing")
        return cycle

    async def _run(self, cycle: RefreshCycle) -> None:
        try:
            payload = await self._call_refresh()
        except asyncio.CancelledError:
            self._cancel(cycle)
            raise
        except Exception as e:
            async with self._lock:
                self._fail(cycle, self._as_refresh_failure(e))
        else:
            async with self._lock:
                self.token_state.update_tokens(payload.access_token, payload.refresh_token)
                cycle.access_token = payload.access_token
                logger.info(f"Token refreshed, replaying {cycle.waiters} request(s)")
                self._settle(cycle)

    async def _call_refresh(self) -> TokenPayload:
        refresh_token = self.token_state.refresh_token
        if not refresh_token:
            raise RefreshFailure("No refresh token available, please log in again")
        self.refresh_count += 1
        return await self._refresh_call(refresh_token)

    @staticmethod
    def _as_refresh_failure(error: Exception) -> RefreshFailure:
        if isinstance(error, RefreshFailure):
            return error
        status_code = error.status_code if isinstance(error, ClientError) else None
        body = error.body if isinstance(error, ClientError) else None
        failure = RefreshFailure(f"Token refresh failed: {error}", status_code=status_code, body=body)
        failure.__cause__ = error
        return failure

    def _fail(self, cycle: RefreshCycle, failure: RefreshFailure) -> None:
        logger.warning(f"{failure.message}; clearing session for {cycle.waiters} waiting request(s)")
        self.token_state.clear()
        cycle.error = failure
        self._settle(cycle)

    def _settle(self, cycle: RefreshCycle) -> None:
        cycle.done.set()
        if self.grace_period > 0:
            loop = asyncio.get_running_loop()
            self._reset_handle = loop.call_later(self.grace_period, self._reset, cycle)
        else:
            self._reset(cycle)

    def _reset(self, cycle: RefreshCycle) -> None:
        if self._cycle is cycle:
            self._cycle = None
            self._reset_handle = None
            logger.debug("Refresh grace period over, coordinator idle")

    @staticmethod
    def _cancel(cycle: RefreshCycle) -> None:
        # The session stays; only the waiters are released
        if cycle.settled:
            return
        logger.info(f"Token refresh cancelled, releasing {cycle.waiters} waiting request(s)")
        cycle.error = RefreshFailure("Token refresh was cancelled")
        cycle.done.set()

    async def close(self) -> None:
        """
        Cancels any refresh still in flight and the grace timer.

        Waiters of a cancelled refresh get RefreshFailure. The stored
        session is left untouched.
        """
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        # A task cancelled before its first step never runs its handler
        if self._cycle is not None:
            self._cancel(self._cycle)

        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        self._cycle = None
