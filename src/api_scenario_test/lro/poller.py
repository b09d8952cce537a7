"""Bounded poll loop driving an LRO strategy to completion."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional
import logging

from ..core.errors import LroTimeoutError
from .models import LroOperationStep
from .strategies import LroStrategy

logger = logging.getLogger(__name__)


class LroPoller:
    """Polls a strategy until terminal, then sends its final request.

    Polling stops with :class:`LroTimeoutError` after ``max_polls`` polls or
    ``timeout_seconds`` of wall-clock time, whichever comes first. A
    ``Retry-After`` header on the latest response replaces the default
    interval for the next wait.
    """

    def __init__(self,
                 strategy: LroStrategy,
                 polling_interval: float = 10.0,
                 max_polls: int = 360,
                 timeout_seconds: float = 3600.0,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 on_poll: Optional[Callable[[LroOperationStep], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.strategy = strategy
        self.polling_interval = polling_interval
        self.max_polls = max_polls
        self.timeout_seconds = timeout_seconds
        self.sleep = sleep
        self.on_poll = on_poll
        self.clock = clock
        self.polls = 0

    def _next_delay(self, remaining: float) -> float:
        retry_after = self.strategy.current.result.lro_info.retry_after
        delay = retry_after if retry_after is not None else self.polling_interval
        return max(0.0, min(delay, remaining))

    async def run(self) -> LroOperationStep:
        start = self.clock()
        url = self.strategy.initial.spec.url

        while not self.strategy.is_terminal():
            elapsed = self.clock() - start
            if self.polls >= self.max_polls:
                raise LroTimeoutError(
                    f"Operation {url} not terminal after {self.polls} polls",
                    polls=self.polls, elapsed_seconds=elapsed)
            if elapsed >= self.timeout_seconds:
                raise LroTimeoutError(
                    f"Operation {url} not terminal after {elapsed:.1f}s",
                    polls=self.polls, elapsed_seconds=elapsed)

            delay = self._next_delay(self.timeout_seconds - elapsed)
            if delay > 0:
                await self.sleep(delay)

            current = await self.strategy.poll()
            self.polls += 1
            logger.debug(f"Poll #{self.polls} {current.spec.url} -> {current.result.status_code} "
                         f"status={current.result.operation_status}")
            if self.on_poll:
                self.on_poll(current)

        logger.debug(f"Operation {url} terminal after {self.polls} poll(s)")
        return await self.strategy.send_final_request()
