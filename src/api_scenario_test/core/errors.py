# src/api_scenario_test/core/errors.py
"""Exception hierarchy for loading and running API test scenarios."""

from __future__ import annotations

from typing import Any, Iterable, Optional


class ScenarioTestError(Exception):
    """Base class for all errors raised by api_scenario_test."""
    pass


class DefinitionError(ScenarioTestError):
    """The test definition document is malformed."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        self.file_path = file_path
        if file_path:
            message = f"{message} ({file_path})"
        super().__init__(message)


class ResolutionError(ScenarioTestError):
    """A step references something that cannot be resolved at load time."""

    def __init__(self, message: str, step: Optional[str] = None):
        self.step = step
        if step:
            message = f"Step '{step}': {message}"
        super().__init__(message)


class NotFoundError(ResolutionError):
    """A referenced resource producer does not exist or cannot be reused."""
    pass


class OperationNotFoundError(NotFoundError):
    """No operation with the given operationId is known to the catalog."""
    pass


class AmbiguousExampleError(ResolutionError):
    """More than one operation declares the same example file."""
    pass


class UnboundExampleError(ResolutionError):
    """No operation declares the example file."""
    pass


class UnsupportedParameterTypeError(ResolutionError):
    """A template parameter without a value is not string typed."""
    pass


class DuplicateStepError(ResolutionError):
    """Step names must be unique within a scope."""
    pass


class PatchApplicationError(ResolutionError):
    """A patch list could not be applied to its target document."""

    def __init__(self, message: str, step: Optional[str] = None, target: Optional[str] = None):
        self.target = target
        if target:
            message = f"{message} (target: {target})"
        super().__init__(message, step)


class LroContractError(ScenarioTestError):
    """A long-running operation response lacks the metadata needed to track it."""
    pass


class PollingUrlUndeterminedError(LroContractError):
    """No polling URL has ever been returned by the service."""
    pass


class FinalGetUrlUndeterminedError(LroContractError):
    """The final GET URL could not be derived from the location headers."""
    pass


class LroTimeoutError(ScenarioTestError):
    """Polling stopped because the poll limits were exceeded."""

    def __init__(self, message: str, polls: int = 0, elapsed_seconds: float = 0.0):
        self.polls = polls
        self.elapsed_seconds = elapsed_seconds
        super().__init__(message)


class StepExecutionError(ScenarioTestError):
    """Transport level failure while executing a step."""

    def __init__(self,
                 message: str,
                 step: Optional[str] = None,
                 status_code: Optional[int] = None,
                 body: Any = None):
        self.step = step
        self.status_code = status_code
        self.body = body
        if step:
            message = f"Step '{step}': {message}"
        super().__init__(message)


class VariableError(ScenarioTestError):
    """Required variables are missing before a run starts."""

    def __init__(self, missing: Iterable[str], scope: Optional[str] = None):
        self.missing = sorted(missing)
        names = ", ".join(f"'{name}'" for name in self.missing)
        message = f"Missing required variable(s) {names}"
        if scope:
            message += f" for {scope}"
        super().__init__(message + ", please set variable values in the env file.")
