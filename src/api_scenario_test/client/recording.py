"""Runner client that records calls instead of sending them."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Union, TYPE_CHECKING
import logging

from .base import (
    ArmDeploymentTracking,
    RunnerClient,
    StepResult,
    TestScenarioClientRequest,
    TestStepEnv,
)

if TYPE_CHECKING:
    from ..scenarios.models import ArmTemplateStep, RawCallStep, RestCallStep

logger = logging.getLogger(__name__)

ScriptedResponse = Union[StepResult, Exception, List[Union[StepResult, Exception]]]


class RecordingRunnerClient(RunnerClient):
    """Records every call and answers with scripted or default responses.

    ``responses`` maps a step name to a :class:`StepResult`, an exception to
    raise, or a list of either consumed one call at a time. Steps without
    a scripted response get the expected status code and payload of the
    step itself, so a dry run exercises the whole variable flow.
    """

    def __init__(self, responses: Optional[Dict[str, ScriptedResponse]] = None):
        self.responses: Dict[str, ScriptedResponse] = dict(responses or {})
        self.calls: List[Dict[str, Any]] = []
        self.resource_groups: List[str] = []

    def calls_for(self, action: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["action"] == action]

    def _scripted(self, step_name: str) -> Optional[StepResult]:
        scripted = self.responses.get(step_name)
        if isinstance(scripted, list):
            scripted = scripted.pop(0) if scripted else None
        if isinstance(scripted, Exception):
            raise scripted
        return scripted

    async def create_resource_group(self, subscription_id: str, resource_group_name: str,
                                    location: str) -> None:
        self.calls.append({
            "action": "create_resource_group",
            "subscription_id": subscription_id,
            "resource_group_name": resource_group_name,
            "location": location,
        })
        self.resource_groups.append(resource_group_name)
        self._scripted("createResourceGroup")

    async def delete_resource_group(self, subscription_id: str, resource_group_name: str) -> None:
        self.calls.append({
            "action": "delete_resource_group",
            "subscription_id": subscription_id,
            "resource_group_name": resource_group_name,
        })
        if resource_group_name in self.resource_groups:
            self.resource_groups.remove(resource_group_name)
        self._scripted("deleteResourceGroup")

    async def send_example_request(self, request: TestScenarioClientRequest, step: RestCallStep,
                                   step_env: TestStepEnv) -> StepResult:
        self.calls.append({"action": "send_example_request", "step": step.step, "request": request})
        logger.debug(f"Recorded {request.method} {request.path} for step {step.step}")
        return self._scripted(step.step) or StepResult(
            status_code=step.status_code,
            body=copy.deepcopy(step.response_expected),
        )

    async def send_arm_template_deployment(self, template: Dict[str, Any], params: Dict[str, Any],
                                           tracking: ArmDeploymentTracking, step: ArmTemplateStep,
                                           step_env: TestStepEnv) -> StepResult:
        self.calls.append({
            "action": "send_arm_template_deployment",
            "step": step.step,
            "template": template,
            "params": params,
            "tracking": tracking,
        })
        scripted = self._scripted(step.step)
        if scripted is not None:
            return scripted
        outputs = {
            name: {"type": output.get("type", "string"), "value": f"{{{{{name}}}}}"}
            for name, output in (template.get("outputs") or {}).items()
        }
        return StepResult(status_code=200, body={"properties": {"provisioningState": "Succeeded",
                                                               "outputs": outputs}})

    async def send_raw_request(self, request: TestScenarioClientRequest, step: RawCallStep,
                               step_env: TestStepEnv) -> StepResult:
        self.calls.append({"action": "send_raw_request", "step": step.step, "request": request})
        return self._scripted(step.step) or StepResult(status_code=step.status_code)
