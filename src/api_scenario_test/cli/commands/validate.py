"""Definition and configuration validation commands."""

import asyncio
import typer
import yaml
from pathlib import Path
from typing import List, Optional

from ...core.config import Config, ConfigValidator
from ...core.errors import ScenarioTestError
from ...scenarios.models import RestCallStep, ArmTemplateStep, RawCallStep
from ..utils import load_definition, load_yaml_file

app = typer.Typer()


def _describe_step(step) -> str:
    if isinstance(step, RestCallStep):
        target = step.operation.operation_id if step.operation else step.operation_id
        extra = f" example={step.example_id}" if step.example_id else ""
        return f"restCall {target}{extra}"
    if isinstance(step, ArmTemplateStep):
        return f"armTemplateDeployment {step.arm_template_deployment}"
    if isinstance(step, RawCallStep):
        return f"rawCall {step.method} {step.raw_url}"
    return step.kind.value


@app.command()
def definition(
    definition_file: Path = typer.Argument(..., help="Path to test definition YAML file"),
    spec: Optional[List[Path]] = typer.Option(None, "--spec", "-s", help="API spec JSON file (repeatable)"),
    reference: Optional[List[Path]] = typer.Option(None, "--reference", "-r",
                                                   help="Extra document used only to resolve $ref"),
):
    """Validate a test definition and print its scenario graph."""
    typer.echo(f"Validating definition: {definition_file}")

    if not definition_file.exists():
        typer.echo(f"❌ Definition file not found: {definition_file}", err=True)
        raise typer.Exit(1)

    try:
        catalog, test_def = asyncio.run(load_definition(definition_file, spec, reference))
    except ScenarioTestError as e:
        typer.echo(f"❌ Definition validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("✅ Definition validation successful!")
    typer.echo(f"  Scope: {test_def.scope}")
    typer.echo(f"  Prepare Steps: {len(test_def.prepare_steps)}")
    typer.echo(f"  Scenarios: {len(test_def.test_scenarios)}")

    for scenario in test_def.test_scenarios:
        typer.echo(f"\n  Scenario: {scenario.name}")
        typer.echo(f"    Description: {scenario.description}")
        typer.echo(f"    Shared Scope: {scenario.share_test_scope}")
        typer.echo(f"    Required Variables: {', '.join(scenario.required_variables) or '-'}")
        for i, step in enumerate(scenario.resolved_steps):
            marker = " (prepare)" if step.is_scope_prepare_step else ""
            typer.echo(f"    {i+1}. {step.step}: {_describe_step(step)}{marker}")

    coverage = catalog.calculate_operation_coverage(test_def)
    typer.echo(f"\nOperation Coverage: {coverage.covered}/{coverage.total} ({coverage.coverage:.1%})")
    for operation_id in coverage.uncovered_operations:
        typer.echo(f"  ⚠️  Not covered: {operation_id}")


@app.command()
def config(
    config_file: Path = typer.Argument(..., help="Path to configuration file"),
):
    """Validate a configuration file."""
    typer.echo(f"Validating config: {config_file}")

    if not config_file.exists():
        typer.echo(f"❌ Configuration file not found: {config_file}", err=True)
        raise typer.Exit(1)

    try:
        config_data = load_yaml_file(config_file)

        if not ConfigValidator.validate(config_data):
            typer.echo("❌ Configuration validation failed", err=True)
            raise typer.Exit(1)

        config = Config(config_path=config_file)
    except yaml.YAMLError as e:
        typer.echo(f"❌ YAML parsing error: {e}", err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.echo(f"❌ Configuration validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("✅ Configuration validation successful!")

    for section in ["http", "lro", "run", "monitoring", "output"]:
        if section in config_data:
            typer.echo(f"  {section.title()} Config: ✅")
        else:
            typer.echo(f"  {section.title()} Config: Using defaults")

    typer.echo("\nEffective Configuration:")
    for section_name, section_data in config.to_dict().items():
        typer.echo(f"  {section_name}:")
        for key, value in section_data.items():
            typer.echo(f"    {key}: {value}")
