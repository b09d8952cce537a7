"""Execution client contract that scenarios are run against."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from ..core.variables import VariableScope

if TYPE_CHECKING:
    from ..scenarios.models import ArmTemplateStep, RawCallStep, RestCallStep


@dataclass
class TestScenarioClientRequest:
    """A fully resolved request for one step."""
    __test__ = False

    method: str
    path: str
    query: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass
class StepResult:
    """Final response of a step, after any long-running operation completed."""
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    polls: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class ArmDeploymentTracking:
    """Identifies one template deployment made during a run."""
    deployment_name: str
    step: str
    subscription_id: Optional[str] = None
    resource_group_name: Optional[str] = None


@dataclass
class TestStepEnv:
    """Variables visible to one step plus the deployments made so far."""
    __test__ = False

    env: VariableScope
    arm_deployments: List[ArmDeploymentTracking] = field(default_factory=list)


class RunnerClient(ABC):
    """Capability set a scenario is executed against, independent of transport.

    Implementations perform (or record) the network action. For operations
    marked long-running they drive an LRO strategy to a terminal state
    before returning.
    """

    @abstractmethod
    async def create_resource_group(self, subscription_id: str, resource_group_name: str,
                                    location: str) -> None:
        pass

    @abstractmethod
    async def delete_resource_group(self, subscription_id: str, resource_group_name: str) -> None:
        pass

    @abstractmethod
    async def send_example_request(self, request: TestScenarioClientRequest, step: RestCallStep,
                                   step_env: TestStepEnv) -> StepResult:
        pass

    @abstractmethod
    async def send_arm_template_deployment(self, template: Dict[str, Any], params: Dict[str, Any],
                                           tracking: ArmDeploymentTracking, step: ArmTemplateStep,
                                           step_env: TestStepEnv) -> StepResult:
        pass

    @abstractmethod
    async def send_raw_request(self, request: TestScenarioClientRequest, step: RawCallStep,
                               step_env: TestStepEnv) -> StepResult:
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "RunnerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
