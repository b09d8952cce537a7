"""Polling strategies for the two long-running operation conventions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Union
import logging

from ..core.errors import FinalGetUrlUndeterminedError, LroContractError, PollingUrlUndeterminedError
from .models import (
    FinalStateVia,
    LroOperationStep,
    LroResponseInfo,
    SendOperation,
    TERMINAL_STATES,
)

logger = logging.getLogger(__name__)


class LroStrategy(ABC):
    """Tracks one asynchronous operation from its initiating response to a terminal state.

    The initial result is never terminal, so at least one poll is always
    made. Each poll replaces :attr:`current`; earlier polls are dropped.
    """

    def __init__(self, initial: LroOperationStep, send: SendOperation):
        if not initial.result.lro_info.has_tracking_metadata:
            raise LroContractError(
                f"Expected tracking headers on the initiating response of "
                f"{initial.spec.method} {initial.spec.url} for {type(self).__name__}")
        self.initial = initial
        self.current = initial
        self.send = send
        self.last_known_polling_url: Optional[str] = None

    @abstractmethod
    def is_terminal(self) -> bool:
        pass

    @abstractmethod
    def _next_polling_url(self, info: LroResponseInfo) -> Optional[str]:
        pass

    async def poll(self) -> LroOperationStep:
        if not self.last_known_polling_url:
            raise PollingUrlUndeterminedError("Unable to determine polling url")

        spec = self.current.spec.as_get(self.last_known_polling_url)
        result = await self.send(spec)

        self.last_known_polling_url = self._next_polling_url(result.lro_info) or self.last_known_polling_url
        self.current = LroOperationStep(spec=spec, result=result)
        return self.current

    @abstractmethod
    async def send_final_request(self) -> LroOperationStep:
        pass

    async def _send_final_get(self, url: Optional[str] = None) -> LroOperationStep:
        spec = self.initial.spec.as_get(url)
        logger.debug(f"Sending final GET {spec.url}")
        result = await self.send(spec)
        self.current = LroOperationStep(spec=spec, result=result)
        return self.current


class AzureAsyncOperationStrategy(LroStrategy):
    """Polls the URL from ``Azure-AsyncOperation`` (or ``Operation-Location``)."""

    def __init__(self, initial: LroOperationStep, send: SendOperation,
                 final_state_via: Union[FinalStateVia, str, None] = None):
        super().__init__(initial, send)
        if not isinstance(final_state_via, FinalStateVia):
            final_state_via = FinalStateVia.parse(final_state_via)
        self.final_state_via = final_state_via
        info = initial.result.lro_info
        self.last_known_polling_url = info.azure_async_operation or info.operation_location

    def _next_polling_url(self, info: LroResponseInfo) -> Optional[str]:
        return info.azure_async_operation or info.operation_location

    def is_terminal(self) -> bool:
        if self.current is self.initial:
            return False
        status = self.current.result.lro_info.status or "succeeded"
        return status.lower() in TERMINAL_STATES

    def _should_perform_final_get(self) -> bool:
        initial_info = self.initial.result.lro_info
        status = self.current.result.lro_info.status
        if status and status.lower() != "succeeded":
            return False
        if initial_info.request_method == "DELETE":
            return False
        if initial_info.request_method != "PUT" and not initial_info.location:
            return False
        return True

    async def send_final_request(self) -> LroOperationStep:
        if not self._should_perform_final_get():
            return self.current

        initial_info = self.initial.result.lro_info
        if initial_info.request_method == "PUT":
            return await self._send_final_get()

        if self.final_state_via == FinalStateVia.ORIGINAL_URI:
            return await self._send_final_get()
        if self.final_state_via == FinalStateVia.AZURE_ASYNC_OPERATION:
            return self.current

        location = self.current.result.lro_info.location or initial_info.location
        if not location:
            raise FinalGetUrlUndeterminedError("Couldn't determine final GET URL from location")
        return await self._send_final_get(location)


class LocationStrategy(LroStrategy):
    """Polls the ``Location`` header until the service stops answering 202."""

    def __init__(self, initial: LroOperationStep, send: SendOperation):
        super().__init__(initial, send)
        self.last_known_polling_url = initial.result.lro_info.location

    def _next_polling_url(self, info: LroResponseInfo) -> Optional[str]:
        return info.location

    def is_terminal(self) -> bool:
        if self.current is self.initial:
            return False
        return self.current.result.status_code != 202

    async def send_final_request(self) -> LroOperationStep:
        return self.current


def create_lro_strategy(initial: LroOperationStep,
                        send: SendOperation,
                        final_state_via: Union[FinalStateVia, str, None] = None) -> Optional[LroStrategy]:
    """Pick the strategy matching the initiating response, or None when it is not tracked."""
    info = initial.result.lro_info
    if info.azure_async_operation or info.operation_location:
        return AzureAsyncOperationStrategy(initial, send, final_state_via)
    if info.location:
        return LocationStrategy(initial, send)
    return None
