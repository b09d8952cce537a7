"""Test definition loading and scenario execution."""

from .models import (
    StepKind,
    OutputVariable,
    RestCallStep,
    ArmTemplateStep,
    RawCallStep,
    TestStep,
    TestScenario,
    TestDefinitionFile,
)
from .loader import ScenarioLoader
from .resolver import StepResolver, LoadContext, parse_step_kind
from .runner import ScenarioRunner, generate_report

__all__ = [
    "StepKind",
    "OutputVariable",
    "RestCallStep",
    "ArmTemplateStep",
    "RawCallStep",
    "TestStep",
    "TestScenario",
    "TestDefinitionFile",
    "ScenarioLoader",
    "StepResolver",
    "LoadContext",
    "parse_step_kind",
    "ScenarioRunner",
    "generate_report",
]
