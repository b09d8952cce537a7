"""YAML test definition parser."""

from __future__ import annotations

import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional, Union
import logging

from ..catalog.catalog import OperationCatalog
from ..core.body import BodyTransformer
from ..core.errors import DefinitionError
from ..core.files import FileLoader
from .models import TestDefinitionFile, TestScenario, StepKind
from .naming import file_name_from_path
from .resolver import LoadContext, StepResolver, REST_CALL_KEYS, parse_step_kind

logger = logging.getLogger(__name__)

RESOURCE_GROUP_SCOPE = "ResourceGroup"
RESOURCE_GROUP_VARIABLES = ["subscriptionId", "location"]


def _unique(names: List[str]) -> List[str]:
    result: List[str] = []
    for name in names:
        if name not in result:
            result.append(name)
    return result


class ScenarioLoader:
    """Loads test definition files and resolves their steps against a catalog."""

    def __init__(self,
                 catalog: OperationCatalog,
                 file_loader: Optional[FileLoader] = None,
                 body_transformer: Optional[BodyTransformer] = None):
        """Initialize scenario loader."""
        self.catalog = catalog
        self.file_loader = file_loader or FileLoader()
        self.resolver = StepResolver(catalog, self.file_loader, body_transformer)

    @staticmethod
    def parse_step_kind(raw_step: Any) -> StepKind:
        return parse_step_kind(raw_step)

    async def load(self, definition_path: Union[str, Path]) -> TestDefinitionFile:
        """Load a test definition from a YAML file."""
        logger.info(f"Loading test definition from: {definition_path}")

        content = await self.file_loader.load(definition_path)
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise DefinitionError(f"Invalid YAML in test definition: {e}",
                                  file_path=str(definition_path)) from e

        if not self.validate_definition(data):
            raise DefinitionError("Invalid test definition structure", file_path=str(definition_path))

        return await self._create_definition_from_data(data, definition_path)

    def validate_definition(self, data: Any) -> bool:
        """Validate test definition structure."""
        if not isinstance(data, dict):
            logger.error("Test definition must be a mapping")
            return False

        if "testScenarios" not in data:
            logger.error("Missing required field: testScenarios")
            return False

        if "scope" in data and not isinstance(data["scope"], str):
            logger.error("scope must be a string")
            return False

        if not self._validate_name_list(data.get("requiredVariables", []), "requiredVariables"):
            return False

        if not isinstance(data.get("variables", {}), dict):
            logger.error("variables must be a dictionary")
            return False

        prepare_steps = data.get("prepareSteps", [])
        if not isinstance(prepare_steps, list):
            logger.error("prepareSteps must be a list")
            return False
        for i, step_data in enumerate(prepare_steps):
            if not self._validate_step(step_data, f"prepareSteps[{i}]"):
                return False

        scenarios = data["testScenarios"]
        if not isinstance(scenarios, list):
            logger.error("testScenarios must be a list")
            return False

        for i, scenario_data in enumerate(scenarios):
            if not self._validate_scenario(scenario_data, i):
                return False

        logger.debug(f"Test definition validation passed with {len(scenarios)} scenario(s)")
        return True

    def _validate_name_list(self, value: Any, field_name: str) -> bool:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            logger.error(f"{field_name} must be a list of strings")
            return False
        return True

    def _validate_scenario(self, scenario_data: Any, index: int) -> bool:
        """Validate a single scenario."""
        if not isinstance(scenario_data, dict):
            logger.error(f"testScenarios[{index}]: scenario must be a mapping")
            return False

        if "description" not in scenario_data:
            logger.error(f"testScenarios[{index}]: missing 'description' field")
            return False

        if "shareTestScope" in scenario_data and not isinstance(scenario_data["shareTestScope"], bool):
            logger.error(f"testScenarios[{index}]: shareTestScope must be a boolean")
            return False

        if not isinstance(scenario_data.get("variables", {}), dict):
            logger.error(f"testScenarios[{index}]: variables must be a dictionary")
            return False

        if not self._validate_name_list(scenario_data.get("requiredVariables", []),
                                        f"testScenarios[{index}].requiredVariables"):
            return False

        steps = scenario_data.get("steps")
        if not isinstance(steps, list):
            logger.error(f"testScenarios[{index}]: steps must be a list")
            return False

        for i, step_data in enumerate(steps):
            if not self._validate_step(step_data, f"testScenarios[{index}].steps[{i}]"):
                return False
        return True

    def _validate_step(self, step_data: Any, location: str) -> bool:
        """Validate a single step."""
        if not isinstance(step_data, dict):
            logger.error(f"{location}: step must be a mapping")
            return False

        if "step" not in step_data:
            logger.error(f"{location}: missing 'step' field")
            return False

        groups = [
            "armTemplateDeployment" in step_data,
            any(key in step_data for key in REST_CALL_KEYS),
            "rawUrl" in step_data,
        ]
        if sum(groups) == 0:
            logger.error(f"{location}: unknown step type, expected one of "
                         f"armTemplateDeployment, exampleFile/resourceName/operationId or rawUrl")
            return False
        if sum(groups) > 1:
            logger.error(f"{location}: step mixes keys of different step types")
            return False

        for patch_field in ("resourceUpdate", "requestUpdate", "responseUpdate"):
            if not isinstance(step_data.get(patch_field, []), list):
                logger.error(f"{location}: {patch_field} must be a list")
                return False

        if not isinstance(step_data.get("outputVariables", {}), dict):
            logger.error(f"{location}: outputVariables must be a dictionary")
            return False

        return True

    async def _create_definition_from_data(self, data: Dict[str, Any],
                                           definition_path: Union[str, Path]) -> TestDefinitionFile:
        """Create a TestDefinitionFile from validated data."""
        test_def = TestDefinitionFile(
            file_path=self.file_loader.relative_path(definition_path),
            scope=data.get("scope", RESOURCE_GROUP_SCOPE),
            required_variables=_unique(list(data.get("requiredVariables", []))),
            variables=dict(data.get("variables") or {}),
        )

        if test_def.scope == RESOURCE_GROUP_SCOPE:
            test_def.required_variables = _unique(test_def.required_variables + RESOURCE_GROUP_VARIABLES)

        ctx = LoadContext(test_def=test_def)
        for raw_step in data.get("prepareSteps") or []:
            step = await self.resolver.resolve(raw_step, ctx, self.parse_step_kind(raw_step))
            step.is_scope_prepare_step = True
            test_def.prepare_steps.append(step)
        prepare_tracking = dict(ctx.step_tracking)

        stem = file_name_from_path(definition_path)
        for index, raw_scenario in enumerate(data["testScenarios"]):
            scenario = TestScenario(
                name=raw_scenario.get("name") or f"{stem}_{index}",
                description=raw_scenario["description"],
                share_test_scope=raw_scenario.get("shareTestScope", True),
                variables=dict(raw_scenario.get("variables") or {}),
                required_variables=_unique(list(raw_scenario.get("requiredVariables", []))
                                           + test_def.required_variables),
                resolved_steps=list(test_def.prepare_steps),
                test_def=test_def,
            )
            ctx.scenario = scenario
            ctx.step_tracking = dict(prepare_tracking)

            for raw_step in raw_scenario["steps"]:
                step = await self.resolver.resolve(raw_step, ctx, self.parse_step_kind(raw_step))
                scenario.steps.append(step)
                scenario.resolved_steps.append(step)

            if not scenario.validate():
                raise DefinitionError(f"Invalid scenario after resolution: {scenario.name}",
                                      file_path=test_def.file_path)
            test_def.test_scenarios.append(scenario)
            logger.info(f"Loaded scenario: {scenario.name} with {len(scenario.resolved_steps)} steps")

        logger.info(f"Successfully loaded test definition {test_def.file_path} "
                    f"with {len(test_def.test_scenarios)} scenario(s)")
        return test_def

    async def write_definition_file(self, path: Union[str, Path], raw: Dict[str, Any]) -> None:
        """Dump a raw test definition to YAML."""
        content = yaml.safe_dump(raw, sort_keys=False, default_flow_style=False)
        await self.file_loader.write_file(path, content)
        logger.info(f"Wrote test definition to {path}")
