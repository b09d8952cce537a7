"""Live HTTP runner client built on httpx."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING
import logging

import httpx

from ..core.config import HttpConfig, LroConfig, RunConfig
from ..core.errors import StepExecutionError
from ..core.variables import VariableScope
from ..lro.models import LroOperationStep, LroRequestSpec, LroResult
from ..lro.poller import LroPoller
from ..lro.strategies import create_lro_strategy
from .base import (
    ArmDeploymentTracking,
    RunnerClient,
    StepResult,
    TestScenarioClientRequest,
    TestStepEnv,
)

if TYPE_CHECKING:
    from ..monitoring.metrics import RunMetrics
    from ..scenarios.models import ArmTemplateStep, RawCallStep, RestCallStep

logger = logging.getLogger(__name__)

FAILED_STATES = ("failed", "canceled", "cancelled")


class HttpRunnerClient(RunnerClient):
    """Executes steps against a live resource-management endpoint.

    Authorization uses the ``bearerToken`` variable when present, otherwise
    a token is acquired once with the client-credentials flow from
    ``tenantId``, ``client_id`` and ``client_secret``.
    """

    def __init__(self,
                 env: Optional[VariableScope] = None,
                 http_config: Optional[HttpConfig] = None,
                 lro_config: Optional[LroConfig] = None,
                 run_config: Optional[RunConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 metrics: Optional["RunMetrics"] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.env = env or VariableScope()
        self.http_config = http_config or HttpConfig()
        self.lro_config = lro_config or LroConfig()
        self.run_config = run_config or RunConfig()
        self.metrics = metrics
        self.sleep = sleep
        self._token: Optional[str] = None
        self._client = httpx.AsyncClient(
            timeout=self.http_config.timeout,
            verify=self.http_config.verify_ssl,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return self.http_config.base_url.rstrip("/") + "/" + path.lstrip("/")

    def _resource_group_url(self, subscription_id: str, resource_group_name: str) -> str:
        return self._url(f"/subscriptions/{subscription_id}/resourcegroups/{resource_group_name}"
                         f"?api-version={self.http_config.resource_group_api_version}")

    async def _acquire_token(self, env: VariableScope) -> Optional[str]:
        bearer = env.get("bearerToken") or self.env.get("bearerToken")
        if bearer:
            return bearer
        if self._token:
            return self._token

        tenant_id = env.get("tenantId") or self.env.get("tenantId")
        client_id = env.get("client_id") or self.env.get("client_id")
        client_secret = env.get("client_secret") or self.env.get("client_secret")
        if not (tenant_id and client_id and client_secret):
            logger.debug("No credentials available, sending requests without Authorization")
            return None

        url = f"{self.http_config.authority_host.rstrip('/')}/{tenant_id}/oauth2/token"
        try:
            response = await self._client.post(url, data={
                "grant_type": "client_credentials",
                "client_id": client_id,
                "client_secret": client_secret,
                "resource": self.http_config.token_resource,
            })
            response.raise_for_status()
            self._token = response.json()["access_token"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise StepExecutionError(f"AAD auth failed: {e}") from e

        logger.info("Acquired access token with client credentials")
        return self._token

    async def _headers(self, env: VariableScope, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = await self._acquire_token(env)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update({k: str(v) for k, v in extra.items()})
        return headers

    async def _send(self, spec: LroRequestSpec) -> LroResult:
        try:
            response = await self._client.request(
                spec.method,
                spec.url,
                headers=spec.headers,
                json=spec.body,
            )
        except httpx.HTTPError as e:
            raise StepExecutionError(f"{spec.method} {spec.url} failed: {e}") from e

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        logger.debug(f"{spec.method} {spec.url} -> {response.status_code}")
        return LroResult(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=body,
            request_method=spec.method,
        )

    def _on_poll(self, _step: LroOperationStep) -> None:
        if self.metrics is not None:
            self.metrics.record_lro_poll()

    async def _execute(self, spec: LroRequestSpec, step_name: Optional[str],
                       long_running: bool, final_state_via: Optional[str] = None,
                       accept_status: Optional[int] = None) -> StepResult:
        result = await self._send(spec)
        if not 200 <= result.status_code < 300 and result.status_code != accept_status:
            raise StepExecutionError(f"{spec.method} {spec.url} returned {result.status_code}",
                                     step=step_name, status_code=result.status_code, body=result.body)

        if not long_running:
            return StepResult(status_code=result.status_code, headers=result.headers, body=result.body)

        initial = LroOperationStep(spec=spec, result=result)
        strategy = create_lro_strategy(initial, self._send, final_state_via or self.lro_config.final_state_via)
        if strategy is None:
            return StepResult(status_code=result.status_code, headers=result.headers, body=result.body)

        poller = LroPoller(
            strategy,
            polling_interval=self.lro_config.polling_interval,
            max_polls=self.lro_config.max_polls,
            timeout_seconds=self.lro_config.timeout_seconds,
            sleep=self.sleep,
            on_poll=self._on_poll,
        )
        final = await poller.run()
        final_result = final.result

        if not 200 <= final_result.status_code < 300:
            raise StepExecutionError(f"Long running operation {spec.url} ended with {final_result.status_code}",
                                     step=step_name, status_code=final_result.status_code,
                                     body=final_result.body)
        status = final_result.operation_status
        if status and status.lower() in FAILED_STATES:
            raise StepExecutionError(f"Long running operation {spec.url} ended with status {status}",
                                     step=step_name, status_code=final_result.status_code,
                                     body=final_result.body)

        return StepResult(status_code=final_result.status_code, headers=final_result.headers,
                          body=final_result.body, polls=poller.polls)

    async def create_resource_group(self, subscription_id: str, resource_group_name: str,
                                    location: str) -> None:
        logger.info(f"Creating resource group {resource_group_name} in {location}")
        spec = LroRequestSpec(
            method="PUT",
            url=self._resource_group_url(subscription_id, resource_group_name),
            headers=await self._headers(self.env),
            body={"location": location},
        )
        await self._execute(spec, "createResourceGroup", long_running=False)

    async def delete_resource_group(self, subscription_id: str, resource_group_name: str) -> None:
        if self.run_config.is_partial:
            logger.info(f"Skipping deletion of resource group {resource_group_name} during partial replay")
            return
        logger.info(f"Deleting resource group {resource_group_name}")
        spec = LroRequestSpec(
            method="DELETE",
            url=self._resource_group_url(subscription_id, resource_group_name),
            headers=await self._headers(self.env),
        )
        await self._execute(spec, "deleteResourceGroup", long_running=True)

    async def send_example_request(self, request: TestScenarioClientRequest, step: RestCallStep,
                                   step_env: TestStepEnv) -> StepResult:
        url = httpx.URL(self._url(request.path)).copy_merge_params(
            {k: str(v) for k, v in request.query.items()})
        spec = LroRequestSpec(
            method=request.method,
            url=str(url),
            headers=await self._headers(step_env.env, request.headers),
            body=request.body,
        )
        operation = step.operation
        return await self._execute(spec, step.step,
                                   long_running=bool(operation and operation.long_running),
                                   final_state_via=operation.final_state_via if operation else None)

    async def send_arm_template_deployment(self, template: Dict[str, Any], params: Dict[str, Any],
                                           tracking: ArmDeploymentTracking, step: ArmTemplateStep,
                                           step_env: TestStepEnv) -> StepResult:
        subscription_id = tracking.subscription_id or step_env.env.get("subscriptionId")
        resource_group_name = tracking.resource_group_name or step_env.env.get("resourceGroupName")
        path = (f"/subscriptions/{subscription_id}/resourcegroups/{resource_group_name}"
                f"/providers/Microsoft.Resources/deployments/{tracking.deployment_name}"
                f"?api-version={self.http_config.resource_group_api_version}")
        spec = LroRequestSpec(
            method="PUT",
            url=self._url(path),
            headers=await self._headers(step_env.env),
            body={
                "properties": {
                    "mode": "Incremental",
                    "template": template,
                    "parameters": params,
                }
            },
        )
        logger.info(f"Deploying ARM template for step {step.step} as {tracking.deployment_name}")
        return await self._execute(spec, step.step, long_running=True, final_state_via="original-uri")

    async def send_raw_request(self, request: TestScenarioClientRequest, step: RawCallStep,
                               step_env: TestStepEnv) -> StepResult:
        url = httpx.URL(self._url(request.path))
        if request.query:
            url = url.copy_merge_params({k: str(v) for k, v in request.query.items()})
        spec = LroRequestSpec(
            method=request.method,
            url=str(url),
            headers=await self._headers(step_env.env, request.headers),
            body=request.body,
        )
        return await self._execute(spec, step.step, long_running=False, accept_status=step.status_code)
