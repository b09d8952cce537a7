"""Long-running operation tracking."""

from .models import (
    FinalStateVia,
    LroOperationStep,
    LroRequestSpec,
    LroResponseInfo,
    LroResult,
    TERMINAL_STATES,
)
from .strategies import AzureAsyncOperationStrategy, LocationStrategy, LroStrategy, create_lro_strategy
from .poller import LroPoller

__all__ = [
    "FinalStateVia",
    "LroOperationStep",
    "LroRequestSpec",
    "LroResponseInfo",
    "LroResult",
    "TERMINAL_STATES",
    "LroStrategy",
    "AzureAsyncOperationStrategy",
    "LocationStrategy",
    "create_lro_strategy",
    "LroPoller",
]
