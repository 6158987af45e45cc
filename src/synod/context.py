"""
Run context - deadline, cancellation and concurrency for one process run.

Every external call (reasoning completion, memory query, tool call, remote
agent send) goes through `RunContext.call`, which:
- holds a slot of the runtime-wide semaphore
- applies min(invocation timeout, remaining run budget)
- races the call against the run's cancellation event
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from synod.errors import Cancelled, ProviderTimeout, ProviderUnavailable, SynodError

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_INVOCATION_TIMEOUT = 120.0


class RunContext:
    """
    Per-run execution state shared by every invocation of that run.

    Args:
        semaphore: Runtime-wide bound on in-flight invocations
        invocation_timeout: Timeout applied to each external call
        run_timeout: Total budget for the run (None = unbounded)
        retry_backoff: Delay before the single retry of a retryable failure
        process: Process name, bound into log context
    """

    def __init__(
        self,
        semaphore: asyncio.Semaphore | None = None,
        invocation_timeout: float = DEFAULT_INVOCATION_TIMEOUT,
        run_timeout: float | None = None,
        retry_backoff: float = 1.0,
        process: str | None = None,
    ) -> None:
        self.semaphore = semaphore or asyncio.Semaphore(8)
        self.invocation_timeout = invocation_timeout
        self.retry_backoff = retry_backoff
        self.process = process
        self._cancel_event = asyncio.Event()
        self._deadline = (
            asyncio.get_running_loop().time() + run_timeout if run_timeout is not None else None
        )

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation; in-flight calls abort with Cancelled."""
        if not self._cancel_event.is_set():
            logger.info("Run cancellation requested", process=self.process)
        self._cancel_event.set()

    def remaining(self) -> float | None:
        """Seconds left in the run budget (None when unbounded)."""
        if self._deadline is None:
            return None
        return self._deadline - asyncio.get_running_loop().time()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        """Raise Cancelled if the run was cancelled or its deadline has passed."""
        if self.cancelled:
            raise Cancelled("run was cancelled")
        if self.expired():
            raise Cancelled("run deadline exceeded")

    def timeout(self, override: float | None = None) -> float:
        """Effective timeout for the next call."""
        timeout = self.invocation_timeout if override is None else override
        remaining = self.remaining()
        if remaining is not None:
            timeout = min(timeout, max(remaining, 0.0))
        return timeout

    async def call(
        self,
        factory: Callable[[], Awaitable[T]],
        on_timeout: Callable[[str], SynodError],
        timeout: float | None = None,
    ) -> T:
        """
        Run one external call under the semaphore, timeout and cancellation.

        Args:
            factory: Zero-arg callable returning the awaitable to run
            on_timeout: Builds the error raised when the call times out
            timeout: Per-call timeout overriding the invocation timeout

        Raises:
            Cancelled: The run was cancelled or its deadline passed
        """
        self.check()
        async with self.semaphore:
            self.check()
            effective = self.timeout(timeout)
            remaining = self.remaining()
            task = asyncio.ensure_future(factory())
            waiter = asyncio.ensure_future(self._cancel_event.wait())
            try:
                done, _pending = await asyncio.wait(
                    {task, waiter},
                    timeout=effective,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            except asyncio.CancelledError:
                task.cancel()
                raise
            finally:
                waiter.cancel()

            if task in done:
                return task.result()

            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            self.check()
            if remaining is not None and remaining <= effective:
                raise Cancelled("run deadline exceeded")
            raise on_timeout(f"timed out after {effective:.1f}s")

    async def sleep(self, seconds: float) -> None:
        """Sleep unless cancelled first; never sleeps past the deadline."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, max(remaining, 0.0))
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        self.check()

    async def with_retry(self, operation: Callable[[], Awaitable[T]], **log_context: Any) -> T:
        """
        Run an operation, retrying once after backoff on a retryable error.

        Cancelled and non-retryable errors (e.g. ProviderRejected) propagate
        immediately.
        """
        try:
            return await operation()
        except Cancelled:
            raise
        except SynodError as e:
            if not e.retryable:
                raise
            logger.warning(
                "Retryable failure, retrying once",
                process=self.process,
                error=str(e),
                error_type=type(e).__name__,
                backoff=self.retry_backoff,
                **log_context,
            )
        await self.sleep(self.retry_backoff)
        return await operation()

    async def call_provider(
        self,
        factory: Callable[[], Awaitable[T]],
        provider: str,
        **log_context: Any,
    ) -> T:
        """
        `call` a provider capability with the single retry.

        Timeouts raise ProviderTimeout; exceptions outside the error taxonomy
        are reported as ProviderUnavailable.
        """

        async def attempt() -> T:
            try:
                return await self.call(
                    factory, on_timeout=lambda msg: ProviderTimeout(msg, provider)
                )
            except SynodError:
                raise
            except Exception as e:
                raise ProviderUnavailable(f"{type(e).__name__}: {e}", provider) from e

        return await self.with_retry(attempt, provider=provider, **log_context)
