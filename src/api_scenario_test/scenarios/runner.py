"""Scenario execution orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Any, List, Mapping, Optional, Set, Union
from urllib.parse import quote
import logging
import time

import jsonpointer

from ..client.base import (
    ArmDeploymentTracking,
    RunnerClient,
    StepResult,
    TestScenarioClientRequest,
    TestStepEnv,
)
from ..core.config import RunConfig
from ..core.errors import StepExecutionError, VariableError
from ..core.variables import VariableScope
from ..monitoring.metrics import RunMetrics
from .loader import RESOURCE_GROUP_SCOPE
from .models import (
    ArmTemplateStep,
    RawCallStep,
    RestCallStep,
    StepKind,
    TestDefinitionFile,
    TestScenario,
    TestStep,
)
from .naming import default_resource_group_name, generate_run_id

logger = logging.getLogger(__name__)


@dataclass
class _TestScope:
    """Resource scope shared by the scenarios of one definition (or owned by one)."""
    env: VariableScope
    subscription_id: Optional[str] = None
    resource_group_name: Optional[str] = None
    created: bool = False
    executed_prepare_steps: Set[str] = field(default_factory=set)
    arm_deployments: List[ArmDeploymentTracking] = field(default_factory=list)


class ScenarioRunner:
    """Executes resolved scenarios through a runner client."""

    def __init__(self,
                 client: RunnerClient,
                 env: Optional[Union[VariableScope, Mapping[str, Any]]] = None,
                 run_config: Optional[RunConfig] = None,
                 metrics: Optional[RunMetrics] = None,
                 run_id: Optional[str] = None):
        """Initialize scenario runner."""
        self.client = client
        self.env = env if isinstance(env, VariableScope) else VariableScope(env)
        self.run_config = run_config or RunConfig()
        self.metrics = metrics
        self.run_id = run_id or generate_run_id()

        self._shared_scopes: Dict[int, _TestScope] = {}
        self._created_scopes: List[_TestScope] = []

        logger.info(f"Initialized scenario runner with run id: {self.run_id}")

    def check_required_variables(self, scenario: TestScenario) -> None:
        """Fail before any network call when a required variable has no value."""
        file_variables = scenario.test_def.variables if scenario.test_def else None
        env = self.env.derive(file_variables, scenario.variables)
        missing = env.missing(scenario.required_variables)
        if missing:
            raise VariableError(missing, scope=f"scenario '{scenario.name}'")

    async def run_definition(self, test_def: TestDefinitionFile, cleanup: bool = True) -> List[Dict[str, Any]]:
        """Run every scenario of a definition; one failing scenario never stops the others."""
        results = []
        try:
            for scenario in test_def.test_scenarios:
                try:
                    results.append(await self.run_scenario(scenario))
                except VariableError as e:
                    logger.error(f"Scenario {scenario.name} not started: {e}")
                    results.append(self._not_started_result(scenario, e))
        finally:
            if cleanup:
                await self.clean_all_test_scope()
        return results

    async def run_scenario(self, scenario: TestScenario) -> Dict[str, Any]:
        """Execute a complete scenario."""
        logger.info(f"Starting execution of scenario: {scenario.name}")
        self.check_required_variables(scenario)

        start_time = time.time()
        step_results: List[Dict[str, Any]] = []
        scope: Optional[_TestScope] = None
        error: Optional[str] = None

        try:
            scope = await self._prepare_scope(scenario)
        except Exception as e:
            logger.error(f"Failed to prepare test scope for {scenario.name}: {e}")
            error = str(e)

        if scope is not None:
            error = await self._run_steps(scenario, scope, step_results)

        total_time = time.time() - start_time
        results = self._generate_results(scenario, scope, step_results, total_time, error)
        if self.metrics:
            self.metrics.record_scenario(scenario.name, results["status"] == "passed")

        logger.info(f"Scenario {scenario.name} {results['status']} in {total_time:.2f} seconds")
        return results

    async def _prepare_scope(self, scenario: TestScenario) -> _TestScope:
        test_def = scenario.test_def
        if scenario.share_test_scope and test_def is not None and id(test_def) in self._shared_scopes:
            return self._shared_scopes[id(test_def)]

        scope = _TestScope(env=self.env.derive(test_def.variables if test_def else None))

        if test_def is not None and test_def.scope == RESOURCE_GROUP_SCOPE:
            scope.subscription_id = scope.env.get("subscriptionId")
            resource_group_name = scope.env.get("resourceGroupName")
            if self.run_config.from_step is not None:
                # Replaying into a group created by an earlier run
                if not resource_group_name:
                    raise VariableError(["resourceGroupName"], scope=f"replay of scenario '{scenario.name}'")
            else:
                if not resource_group_name:
                    resource_group_name = default_resource_group_name(self.run_id)
                # Every created scope owns a distinct group
                if self._created_scopes:
                    resource_group_name = f"{resource_group_name}-{len(self._created_scopes)}"
                await self.client.create_resource_group(
                    scope.subscription_id, resource_group_name, scope.env.get("location"))
                scope.created = True
                self._created_scopes.append(scope)
            scope.resource_group_name = resource_group_name
            scope.env.set("resourceGroupName", resource_group_name, "string")

        if scenario.share_test_scope and test_def is not None:
            self._shared_scopes[id(test_def)] = scope
        return scope

    async def _run_steps(self, scenario: TestScenario, scope: _TestScope,
                         step_results: List[Dict[str, Any]]) -> Optional[str]:
        from_step = self.run_config.from_step
        to_step = self.run_config.to_step
        in_range = from_step is None

        for i, step in enumerate(scenario.resolved_steps):
            if not in_range:
                if step.step != from_step:
                    logger.debug(f"Skipping step {step.step} before replay start {from_step}")
                    continue
                in_range = True

            if step.is_scope_prepare_step and step.step in scope.executed_prepare_steps:
                logger.debug(f"Prepare step {step.step} already executed in shared scope")
                continue

            logger.info(f"Executing step {i+1}/{len(scenario.resolved_steps)}: {step.step}")
            step_start_time = time.time()
            try:
                result = await self._execute_step(step, scenario, scope)
            except Exception as e:
                duration = time.time() - step_start_time
                logger.error(f"Step {step.step} failed: {e}")
                step_results.append({
                    "step_index": i,
                    "step_name": step.step,
                    "kind": step.kind.value,
                    "execution_time": duration,
                    "status": "failed",
                    "status_code": getattr(e, "status_code", None),
                    "error": str(e),
                })
                self._record_step(step, "failed", duration)
                return f"Step {step.step} failed: {e}"

            duration = time.time() - step_start_time
            if step.is_scope_prepare_step:
                scope.executed_prepare_steps.add(step.step)
            step_results.append({
                "step_index": i,
                "step_name": step.step,
                "kind": step.kind.value,
                "execution_time": duration,
                "status": "success",
                "status_code": result.status_code,
                "polls": result.polls,
            })
            self._record_step(step, "success", duration)
            logger.info(f"Step {step.step} completed with status {result.status_code}")

            if to_step is not None and step.step == to_step:
                logger.info(f"Stopping after step {to_step}")
                break

        if not in_range:
            logger.warning(f"Replay start step {from_step} not found in scenario {scenario.name}")
        return None

    def _record_step(self, step: TestStep, status: str, duration: float) -> None:
        if self.metrics:
            self.metrics.record_step(step.kind.value, status, duration)

    def _step_env(self, step: TestStep, scenario: TestScenario, scope: _TestScope) -> VariableScope:
        env = scope.env.derive(scenario.variables, step.variables)
        for name in env.keys():
            value = env.get(name)
            if isinstance(value, str):
                env.set(name, env.resolve_string(value), env.type_of(name))
        return env

    async def _execute_step(self, step: TestStep, scenario: TestScenario, scope: _TestScope) -> StepResult:
        """Execute a single scenario step."""
        env = self._step_env(step, scenario, scope)
        step_env = TestStepEnv(env=env, arm_deployments=scope.arm_deployments)

        if step.kind == StepKind.REST_CALL:
            return await self._execute_rest_call(step, step_env, scope)
        elif step.kind == StepKind.ARM_TEMPLATE_DEPLOYMENT:
            return await self._execute_arm_template(step, step_env, scope)
        elif step.kind == StepKind.RAW_CALL:
            return await self._execute_raw_call(step, step_env)
        else:
            raise StepExecutionError(f"Unknown step kind: {step.kind}", step=step.step)

    def build_request(self, step: RestCallStep, env: VariableScope) -> TestScenarioClientRequest:
        """Build the request of a RestCall step, env values winning over example values."""
        operation = step.operation
        path = operation.path_template
        query: Dict[str, Any] = {}
        headers: Dict[str, str] = {}
        body: Any = None

        for param in operation.iter_parameters():
            name = param.get("name")
            location = param.get("in")
            if location == "body":
                body = env.resolve_object_values(step.request_parameters.get(name))
                continue

            value = env.get(name)
            if value is None:
                value = step.request_parameters.get(name)
            value = env.resolve_object_values(value)

            if location == "path":
                if value is None:
                    raise StepExecutionError(f"No value for path parameter '{name}'", step=step.step)
                text = str(value)
                if not param.get("x-ms-skip-url-encoding"):
                    text = quote(text, safe="")
                path = path.replace(f"{{{name}}}", text)
            elif location == "query":
                if value is not None:
                    query[name] = value
            elif location == "header":
                if value is not None:
                    headers[name] = str(value)

        return TestScenarioClientRequest(method=operation.method, path=path, query=query,
                                         headers=headers, body=body)

    async def _execute_rest_call(self, step: RestCallStep, step_env: TestStepEnv,
                                 scope: _TestScope) -> StepResult:
        request = self.build_request(step, step_env.env)
        result = await self.client.send_example_request(request, step, step_env)

        for name, output in step.output_variables.items():
            try:
                value = jsonpointer.resolve_pointer(result.body, output.from_response)
            except jsonpointer.JsonPointerException as e:
                raise StepExecutionError(
                    f"Cannot read output variable '{name}' from {output.from_response}: {e}",
                    step=step.step, status_code=result.status_code, body=result.body) from e
            scope.env.set(name, value)
            logger.debug(f"Output variable {name} set from step {step.step}")
        return result

    def build_template_parameters(self, step: ArmTemplateStep, env: VariableScope) -> Dict[str, Any]:
        """Deployment parameters from the parameters file, then from the env."""
        params: Dict[str, Any] = {}
        file_params = (step.arm_template_parameters_payload or {}).get("parameters") or {}
        for name, entry in file_params.items():
            params[name] = env.resolve_object_values(entry)

        for name in (step.arm_template_payload.get("parameters") or {}):
            if name not in params and env.get(name) is not None:
                params[name] = {"value": env.get(name)}
        return params

    async def _execute_arm_template(self, step: ArmTemplateStep, step_env: TestStepEnv,
                                    scope: _TestScope) -> StepResult:
        env = step_env.env
        tracking = ArmDeploymentTracking(
            deployment_name=step.step,
            step=step.step,
            subscription_id=env.get("subscriptionId"),
            resource_group_name=env.get("resourceGroupName"),
        )
        params = self.build_template_parameters(step, env)
        result = await self.client.send_arm_template_deployment(
            step.arm_template_payload, params, tracking, step, step_env)
        scope.arm_deployments.append(tracking)

        outputs = {}
        if isinstance(result.body, dict):
            outputs = (result.body.get("properties") or {}).get("outputs") or {}
        for name, output in outputs.items():
            if isinstance(output, dict) and "value" in output:
                scope.env.set(name, output["value"], output.get("type"))
        return result

    async def _execute_raw_call(self, step: RawCallStep, step_env: TestStepEnv) -> StepResult:
        env = step_env.env
        request = TestScenarioClientRequest(
            method=step.method,
            path=env.resolve_string(step.raw_url),
            headers={k: str(v) for k, v in env.resolve_object_values(step.request_headers).items()},
            body=env.resolve_object_values(step.request_body),
        )
        result = await self.client.send_raw_request(request, step, step_env)
        if result.status_code != step.status_code:
            raise StepExecutionError(f"Expected status code {step.status_code}, got {result.status_code}",
                                     step=step.step, status_code=result.status_code, body=result.body)
        return result

    async def clean_all_test_scope(self) -> None:
        """Delete every resource group created by this runner."""
        if self.run_config.skip_cleanup or self.run_config.is_partial:
            logger.warning("Skipping cleanup of test scopes")
            return

        for scope in self._created_scopes:
            try:
                await self.client.delete_resource_group(scope.subscription_id, scope.resource_group_name)
            except Exception as e:
                logger.warning(f"Failed to delete resource group {scope.resource_group_name}: {e}")
        self._created_scopes = []
        self._shared_scopes = {}

    def _not_started_result(self, scenario: TestScenario, error: Exception) -> Dict[str, Any]:
        return self._generate_results(scenario, None, [], 0.0, str(error))

    def _generate_results(self, scenario: TestScenario, scope: Optional[_TestScope],
                          step_results: List[Dict[str, Any]], total_time: float,
                          error: Optional[str]) -> Dict[str, Any]:
        """Generate final scenario results."""
        failed = len([r for r in step_results if r.get("status") == "failed"])
        return {
            "scenario_name": scenario.name,
            "scenario_description": scenario.description,
            "run_id": self.run_id,
            "resource_group_name": scope.resource_group_name if scope else None,
            "status": "failed" if error or failed else "passed",
            "error": error,
            "total_execution_time": total_time,
            "steps_total": len(scenario.resolved_steps),
            "steps_executed": len(step_results),
            "steps_successful": len([r for r in step_results if r.get("status") == "success"]),
            "steps_failed": failed,
            "step_results": step_results,
            "variables": scope.env.to_dict(mask_secrets=True) if scope else {},
            "timestamp": time.time(),
        }


def generate_report(results: Union[Dict[str, Any], List[Dict[str, Any]]]) -> str:
    """Generate a summary report of scenario execution."""
    if isinstance(results, list):
        return "\n\n".join(generate_report(r) for r in results)

    lines = []
    lines.append("=" * 80)
    lines.append(f"SCENARIO EXECUTION REPORT: {results['scenario_name']}")
    lines.append("=" * 80)
    lines.append("")

    lines.append(f"Description: {results['scenario_description']}")
    lines.append(f"Run Id: {results['run_id']}")
    if results.get("resource_group_name"):
        lines.append(f"Resource Group: {results['resource_group_name']}")
    lines.append(f"Status: {results['status'].upper()}")
    lines.append(f"Total Execution Time: {results['total_execution_time']:.2f} seconds")
    lines.append(f"Steps Executed: {results['steps_executed']}/{results['steps_total']}")
    lines.append(f"Steps Successful: {results['steps_successful']}")
    lines.append(f"Steps Failed: {results['steps_failed']}")
    lines.append("")

    lines.append("STEP RESULTS:")
    lines.append("-" * 40)
    for step_result in results['step_results']:
        status = step_result['status'].upper()
        name = step_result['step_name']
        exec_time = step_result['execution_time']
        lines.append(f"  {status:<8} {name:<30} ({exec_time:.2f}s)")

        if step_result.get('polls'):
            lines.append(f"           → {step_result['polls']} LRO polls")

        if step_result.get('status') == 'failed' and 'error' in step_result:
            lines.append(f"           → Error: {step_result['error']}")

    if results.get("error") and not results['step_results']:
        lines.append(f"  Not started: {results['error']}")

    return "\n".join(lines)
