"""Data models for test definitions, scenarios and steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Union
from enum import Enum

from ..catalog.models import OperationDescriptor


class StepKind(Enum):
    """Types of scenario steps."""
    REST_CALL = "restCall"
    ARM_TEMPLATE_DEPLOYMENT = "armTemplateDeployment"
    RAW_CALL = "rawCall"


@dataclass
class OutputVariable:
    """Maps a response value to a run variable."""
    from_response: str


@dataclass
class RestCallStep:
    """A request built from an example file or a previous resource producer."""
    step: str
    kind: StepKind = field(default=StepKind.REST_CALL, init=False)
    variables: Dict[str, Any] = field(default_factory=dict)
    resource_name: Optional[str] = None
    example_file: Optional[str] = None
    operation_id: str = ""
    operation: Optional[OperationDescriptor] = None
    request_parameters: Dict[str, Any] = field(default_factory=dict)
    response_expected: Any = None
    example_id: str = ""
    resource_type: str = ""
    status_code: int = 200
    output_variables: Dict[str, OutputVariable] = field(default_factory=dict)
    resource_update: List[Dict[str, Any]] = field(default_factory=list)
    request_update: List[Dict[str, Any]] = field(default_factory=list)
    response_update: List[Dict[str, Any]] = field(default_factory=list)
    is_scope_prepare_step: bool = False

    def validate(self) -> bool:
        """A resolved RestCall must be bound to an operation."""
        return bool(self.step) and self.operation is not None and bool(self.operation_id)


@dataclass
class ArmTemplateStep:
    """Deployment of an ARM template into the resource scope."""
    step: str
    arm_template_deployment: str
    kind: StepKind = field(default=StepKind.ARM_TEMPLATE_DEPLOYMENT, init=False)
    variables: Dict[str, Any] = field(default_factory=dict)
    arm_template_parameters: Optional[str] = None
    arm_template_payload: Dict[str, Any] = field(default_factory=dict)
    arm_template_parameters_payload: Optional[Dict[str, Any]] = None
    is_scope_prepare_step: bool = False

    def validate(self) -> bool:
        return bool(self.step) and bool(self.arm_template_deployment)


@dataclass
class RawCallStep:
    """A request whose URL, method, headers and body are fully caller-specified."""
    step: str
    raw_url: str
    kind: StepKind = field(default=StepKind.RAW_CALL, init=False)
    method: str = "GET"
    variables: Dict[str, Any] = field(default_factory=dict)
    request_headers: Dict[str, str] = field(default_factory=dict)
    request_body: Any = None
    status_code: int = 200
    is_scope_prepare_step: bool = False

    def validate(self) -> bool:
        return bool(self.step) and bool(self.raw_url)


TestStep = Union[RestCallStep, ArmTemplateStep, RawCallStep]


@dataclass
class TestScenario:
    """One ordered sequence of steps sharing a resource scope."""
    __test__ = False

    name: str
    description: str
    share_test_scope: bool = True
    variables: Dict[str, Any] = field(default_factory=dict)
    required_variables: List[str] = field(default_factory=list)
    steps: List[TestStep] = field(default_factory=list)
    resolved_steps: List[TestStep] = field(default_factory=list)
    test_def: Optional["TestDefinitionFile"] = field(default=None, repr=False, compare=False)

    def validate(self) -> bool:
        """Validate scenario configuration."""
        if not self.name:
            return False

        for step in self.resolved_steps:
            if not step.validate():
                return False

        return True

    def get_step(self, name: str) -> Optional[TestStep]:
        for step in self.resolved_steps:
            if step.step == name:
                return step
        return None

    def step_names(self) -> List[str]:
        return [step.step for step in self.resolved_steps]


@dataclass
class TestDefinitionFile:
    """A loaded test definition document."""
    __test__ = False

    file_path: str
    scope: str = "ResourceGroup"
    required_variables: List[str] = field(default_factory=list)
    variables: Dict[str, Any] = field(default_factory=dict)
    prepare_steps: List[TestStep] = field(default_factory=list)
    test_scenarios: List[TestScenario] = field(default_factory=list)

    def all_steps(self) -> List[TestStep]:
        """Prepare steps followed by every scenario's own steps."""
        steps = list(self.prepare_steps)
        for scenario in self.test_scenarios:
            steps.extend(scenario.steps)
        return steps

    def get_scenario(self, name: str) -> Optional[TestScenario]:
        for scenario in self.test_scenarios:
            if scenario.name == name:
                return scenario
        return None
