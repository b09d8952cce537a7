"""Binds raw definition steps to catalog operations and payloads."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from ..catalog.catalog import OperationCatalog
from ..catalog.resource import get_resource_type
from ..core.body import BodyTransformer, deep_merge
from ..core.errors import (
    AmbiguousExampleError,
    DefinitionError,
    DuplicateStepError,
    NotFoundError,
    OperationNotFoundError,
    ResolutionError,
    UnboundExampleError,
    UnsupportedParameterTypeError,
)
from ..core.files import FileLoader, normalize_path
from ..core.patch import apply_patch
from .models import (
    ArmTemplateStep,
    OutputVariable,
    RawCallStep,
    RestCallStep,
    StepKind,
    TestDefinitionFile,
    TestScenario,
    TestStep,
)

logger = logging.getLogger(__name__)

REST_CALL_KEYS = ("exampleFile", "resourceName", "operationId")


def parse_step_kind(raw_step: Any) -> StepKind:
    """Decide the step variant from the keys present in a raw step."""
    if not isinstance(raw_step, dict):
        raise DefinitionError(f"Step must be a mapping: {raw_step!r}")
    if "armTemplateDeployment" in raw_step:
        return StepKind.ARM_TEMPLATE_DEPLOYMENT
    if any(key in raw_step for key in REST_CALL_KEYS):
        return StepKind.REST_CALL
    if "rawUrl" in raw_step:
        return StepKind.RAW_CALL
    raise DefinitionError(f"Unknown step type: {raw_step!r}")


@dataclass
class LoadContext:
    """Load-time state shared while resolving the steps of one definition.

    ``step_tracking`` holds the names of one scope (prepare steps plus a
    single scenario). ``resource_tracking`` spans the whole load pass and
    maps a resource name to its latest producer.
    """
    test_def: TestDefinitionFile
    step_tracking: Dict[str, TestStep] = field(default_factory=dict)
    resource_tracking: Dict[str, TestStep] = field(default_factory=dict)
    scenario: Optional[TestScenario] = None


class StepResolver:
    """Turns one raw step into a fully bound step."""

    def __init__(self,
                 catalog: OperationCatalog,
                 file_loader: FileLoader,
                 body_transformer: Optional[BodyTransformer] = None):
        self.catalog = catalog
        self.file_loader = file_loader
        self.body_transformer = body_transformer or BodyTransformer(catalog.resolve_schema)

    async def resolve(self, raw_step: Dict[str, Any], ctx: LoadContext,
                      kind: Optional[StepKind] = None) -> TestStep:
        kind = kind or parse_step_kind(raw_step)

        name = raw_step.get("step")
        if not name:
            raise DefinitionError(f'Property "step" as step name is required: {raw_step!r}',
                                  file_path=ctx.test_def.file_path)
        if name in ctx.step_tracking:
            raise DuplicateStepError(f"Duplicated step name: {name}", step=name)

        if kind == StepKind.REST_CALL:
            step = await self._resolve_rest_call(raw_step, name, ctx)
        elif kind == StepKind.ARM_TEMPLATE_DEPLOYMENT:
            step = await self._resolve_arm_template(raw_step, name, ctx)
        else:
            step = self._resolve_raw_call(raw_step, name)

        ctx.step_tracking[name] = step
        logger.debug(f"Resolved {kind.value} step '{name}'")
        return step

    def _definition_relative(self, ctx: LoadContext, path: str) -> str:
        return os.path.join(os.path.dirname(ctx.test_def.file_path), path)

    async def _load_json(self, path: str, name: str) -> Any:
        try:
            return await self.file_loader.load_json(path)
        except (ValueError, FileNotFoundError) as e:
            raise DefinitionError(f"Step '{name}': {e}") from e

    # RestCall

    async def _resolve_rest_call(self, raw: Dict[str, Any], name: str, ctx: LoadContext) -> RestCallStep:
        output_variables = {}
        for var_name, mapping in (raw.get("outputVariables") or {}).items():
            if not isinstance(mapping, dict) or "fromResponse" not in mapping:
                raise DefinitionError(f"Step '{name}': output variable '{var_name}' needs 'fromResponse'")
            output_variables[var_name] = OutputVariable(from_response=mapping["fromResponse"])

        step = RestCallStep(
            step=name,
            variables=dict(raw.get("variables") or {}),
            resource_name=raw.get("resourceName"),
            example_file=raw.get("exampleFile"),
            operation_id=raw.get("operationId") or "",
            status_code=int(raw.get("statusCode", 200)),
            output_variables=output_variables,
            resource_update=list(raw.get("resourceUpdate") or []),
            request_update=list(raw.get("requestUpdate") or []),
            response_update=list(raw.get("responseUpdate") or []),
        )

        if step.operation_id:
            try:
                step.operation = self.catalog.resolve_operation(step.operation_id)
            except OperationNotFoundError as e:
                raise OperationNotFoundError(f"Operation not found for {step.operation_id}", step=name) from e

        if step.example_file is not None:
            await self._bind_example_file(step, ctx)
        else:
            self._bind_resource_producer(step, ctx)

        if step.resource_update:
            self._apply_resource_update(step)
        if step.request_update:
            step.request_parameters = apply_patch(step.request_parameters, step.request_update,
                                                  step=name, target="requestParameters")
        if step.response_update:
            step.response_expected = apply_patch(step.response_expected, step.response_update,
                                                 step=name, target="responseExpected")

        if step.resource_name is not None:
            # A later producer replaces the earlier one; this models resource mutation
            ctx.resource_tracking[step.resource_name] = step
        return step

    async def _bind_example_file(self, step: RestCallStep, ctx: LoadContext) -> None:
        example_path = self._definition_relative(ctx, step.example_file)
        example = await self._load_json(example_path, step.step)

        step.request_parameters = example.get("parameters") or {}
        response = (example.get("responses") or {}).get(str(step.status_code)) or {}
        step.response_expected = response.get("body")

        op_map = self.catalog.resolve_example(normalize_path(self.file_loader.resolve_path(example_path)))
        if not step.operation_id:
            if not op_map:
                raise UnboundExampleError(
                    f"Example file is not referenced by any operation: {step.example_file}", step=step.step)
            if len(op_map) > 1:
                raise AmbiguousExampleError(
                    f"Example file is referenced by multiple operations: {', '.join(sorted(op_map))} "
                    f"{step.example_file}", step=step.step)
            operation, example_name = next(iter(op_map.values()))
            step.operation = operation
            step.operation_id = operation.operation_id
            step.example_id = example_name
        elif step.operation_id in op_map:
            step.example_id = op_map[step.operation_id][1]

        step.resource_type = get_resource_type(step.operation.path_template)

    def _bind_resource_producer(self, step: RestCallStep, ctx: LoadContext) -> None:
        if step.resource_name is None:
            raise NotFoundError('RestCall step must specify "exampleFile" or "resourceName"', step=step.step)

        if step.operation is not None and step.operation.method != "PUT":
            raise ResolutionError('resourceUpdate could only be used with "PUT" operation', step=step.step)

        producer = ctx.resource_tracking.get(step.resource_name)
        if producer is None:
            raise NotFoundError(f"Unknown resourceName: {step.resource_name}", step=step.step)
        if not isinstance(producer, RestCallStep):
            raise NotFoundError(
                f"Cannot use resourceName from non restCall step: {step.resource_name}", step=step.step)
        if producer.operation is None or producer.operation.method != "PUT":
            raise NotFoundError(
                f"Resource '{step.resource_name}' was last produced by a non PUT operation "
                f"in step '{producer.step}'", step=step.step)

        step.request_parameters = copy.deepcopy(producer.request_parameters)
        step.response_expected = copy.deepcopy(producer.response_expected)
        step.example_id = producer.example_id
        step.resource_type = producer.resource_type
        if not step.operation_id:
            step.operation_id = producer.operation_id
            step.operation = producer.operation

    def _apply_resource_update(self, step: RestCallStep) -> None:
        operation = step.operation
        target = copy.deepcopy(step.response_expected) if step.response_expected is not None else {}
        body_param = operation.body_param_name(self.catalog)
        if body_param is not None and body_param in step.request_parameters:
            target = deep_merge(target, step.request_parameters[body_param])

        target = apply_patch(target, step.resource_update, step=step.step, target="resourceUpdate")

        schema = operation.response_schema(step.status_code)
        if body_param is not None:
            step.request_parameters[body_param] = self.body_transformer.response_to_request(
                target, schema, operation.spec_path)
        step.response_expected = self.body_transformer.request_to_response(
            target, schema, operation.spec_path)

    # ArmTemplateDeployment

    async def _resolve_arm_template(self, raw: Dict[str, Any], name: str,
                                    ctx: LoadContext) -> ArmTemplateStep:
        step = ArmTemplateStep(
            step=name,
            arm_template_deployment=raw["armTemplateDeployment"],
            arm_template_parameters=raw.get("armTemplateParameters"),
            variables=dict(raw.get("variables") or {}),
        )
        step.arm_template_payload = await self._load_json(
            self._definition_relative(ctx, step.arm_template_deployment), name)

        defined = set()
        if step.arm_template_parameters is not None:
            step.arm_template_parameters_payload = await self._load_json(
                self._definition_relative(ctx, step.arm_template_parameters), name)
            defined = set((step.arm_template_parameters_payload.get("parameters") or {}).keys())

        required = ctx.scenario.required_variables if ctx.scenario is not None \
            else ctx.test_def.required_variables
        for param_name, param in (step.arm_template_payload.get("parameters") or {}).items():
            if param_name in defined or "defaultValue" in param:
                continue
            if str(param.get("type", "")).lower() != "string":
                raise UnsupportedParameterTypeError(
                    f"Only string type is supported in arm template params, please specify "
                    f"defaultValue or add it in arm template parameter file with "
                    f"armTemplateParameters: {param_name}", step=name)
            if param_name not in required:
                required.append(param_name)
        return step

    # RawCall

    def _resolve_raw_call(self, raw: Dict[str, Any], name: str) -> RawCallStep:
        return RawCallStep(
            step=name,
            raw_url=raw["rawUrl"],
            method=str(raw.get("method", "GET")).upper(),
            variables=dict(raw.get("variables") or {}),
            request_headers=dict(raw.get("requestHeaders") or {}),
            request_body=raw.get("requestBody"),
            status_code=int(raw.get("statusCode", 200)),
        )
