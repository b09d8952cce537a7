"""Runner clients executing resolved steps."""

from .base import (
    ArmDeploymentTracking,
    RunnerClient,
    StepResult,
    TestScenarioClientRequest,
    TestStepEnv,
)
from .http import HttpRunnerClient
from .recording import RecordingRunnerClient

__all__ = [
    "ArmDeploymentTracking",
    "RunnerClient",
    "StepResult",
    "TestScenarioClientRequest",
    "TestStepEnv",
    "HttpRunnerClient",
    "RecordingRunnerClient",
]
