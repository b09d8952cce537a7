# src/api_scenario_test/core/__init__.py
"""Core components shared by the loader, runner and transports."""

from .errors import (
    ScenarioTestError,
    DefinitionError,
    ResolutionError,
    NotFoundError,
    OperationNotFoundError,
    AmbiguousExampleError,
    UnboundExampleError,
    UnsupportedParameterTypeError,
    DuplicateStepError,
    PatchApplicationError,
    LroContractError,
    PollingUrlUndeterminedError,
    FinalGetUrlUndeterminedError,
    LroTimeoutError,
    StepExecutionError,
    VariableError,
)
from .variables import VariableScope, is_secret_key
from .files import FileLoader, normalize_path
from .patch import apply_patch, to_json_patch
from .body import BodyTransformer, deep_merge
from .config import (
    Config,
    ConfigValidator,
    HttpConfig,
    LroConfig,
    RunConfig,
    MonitoringConfig,
    OutputConfig,
)

__all__ = [
    # Errors
    "ScenarioTestError",
    "DefinitionError",
    "ResolutionError",
    "NotFoundError",
    "OperationNotFoundError",
    "AmbiguousExampleError",
    "UnboundExampleError",
    "UnsupportedParameterTypeError",
    "DuplicateStepError",
    "PatchApplicationError",
    "LroContractError",
    "PollingUrlUndeterminedError",
    "FinalGetUrlUndeterminedError",
    "LroTimeoutError",
    "StepExecutionError",
    "VariableError",

    # Variables and files
    "VariableScope",
    "is_secret_key",
    "FileLoader",
    "normalize_path",

    # Payload helpers
    "apply_patch",
    "to_json_patch",
    "BodyTransformer",
    "deep_merge",

    # Configuration
    "Config",
    "ConfigValidator",
    "HttpConfig",
    "LroConfig",
    "RunConfig",
    "MonitoringConfig",
    "OutputConfig",
]
