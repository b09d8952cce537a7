"""Data models for long-running operation tracking."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)

TERMINAL_STATES = ("succeeded", "failed", "canceled", "cancelled")

AZURE_ASYNC_OPERATION_HEADER = "azure-asyncoperation"
OPERATION_LOCATION_HEADER = "operation-location"
LOCATION_HEADER = "location"
RETRY_AFTER_HEADER = "retry-after"


class FinalStateVia(Enum):
    """Where the final resource state is read once polling is terminal."""
    LOCATION = "location"
    ORIGINAL_URI = "original-uri"
    AZURE_ASYNC_OPERATION = "azure-async-operation"

    @classmethod
    def parse(cls, value: Optional[str]) -> "FinalStateVia":
        if not value:
            return cls.LOCATION
        try:
            return cls(value.lower())
        except ValueError:
            logger.debug(f"Unrecognized final-state-via '{value}', reading final state from location")
            return cls.LOCATION


@dataclass
class LroRequestSpec:
    """A request that can be (re)sent while tracking an operation."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    def as_get(self, url: Optional[str] = None) -> "LroRequestSpec":
        """Same request turned into a body-less GET, optionally against ``url``."""
        return replace(self, method="GET", url=url or self.url, headers=dict(self.headers), body=None)


@dataclass
class LroResponseInfo:
    """Tracking metadata extracted from one response."""
    request_method: str
    status_code: int
    azure_async_operation: Optional[str] = None
    operation_location: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None
    retry_after: Optional[float] = None

    @property
    def has_tracking_metadata(self) -> bool:
        return bool(self.azure_async_operation or self.operation_location or self.location)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


@dataclass
class LroResult:
    """A response received while tracking an operation."""
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    request_method: str = "GET"

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    @property
    def operation_status(self) -> Optional[str]:
        """``status`` of the body, else ``properties.provisioningState``."""
        if isinstance(self.body, dict):
            status = self.body.get("status")
            if status is None and isinstance(self.body.get("properties"), dict):
                status = self.body["properties"].get("provisioningState")
            if status is not None:
                return str(status)
        return None

    @property
    def lro_info(self) -> LroResponseInfo:
        return LroResponseInfo(
            request_method=self.request_method.upper(),
            status_code=self.status_code,
            azure_async_operation=self.header(AZURE_ASYNC_OPERATION_HEADER),
            operation_location=self.header(OPERATION_LOCATION_HEADER),
            location=self.header(LOCATION_HEADER),
            status=self.operation_status,
            retry_after=_parse_retry_after(self.header(RETRY_AFTER_HEADER)),
        )


@dataclass
class LroOperationStep:
    """The request/response pair currently tracked by a strategy."""
    spec: LroRequestSpec
    result: LroResult


SendOperation = Callable[[LroRequestSpec], Awaitable[LroResult]]
