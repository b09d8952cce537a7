"""Run command for executing test scenarios."""

import typer
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import yaml
import rich.console
import rich.table

from ...client import HttpRunnerClient, RecordingRunnerClient, RunnerClient
from ...core import Config, FileLoader, ScenarioTestError, VariableScope
from ...monitoring import RunMetrics
from ...scenarios import ScenarioRunner, generate_report
from ...scenarios.naming import results_file_name
from ..utils import apply_config_logging, format_duration, load_definition, load_yaml_file

app = typer.Typer()
logger = logging.getLogger(__name__)
console = rich.console.Console()


def _results_table(results: List[Dict[str, Any]]) -> rich.table.Table:
    table = rich.table.Table(show_header=True, header_style="bold magenta")
    table.add_column("Scenario", style="cyan")
    table.add_column("Step")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Code", justify="right")
    table.add_column("Time", justify="right")

    for result in results:
        if not result["step_results"]:
            table.add_row(result["scenario_name"], "-", "-", "[red]NOT STARTED[/red]", "-", "-")
        for step_result in result["step_results"]:
            status = step_result["status"]
            style = "green" if status == "success" else "red"
            table.add_row(
                result["scenario_name"],
                step_result["step_name"],
                step_result["kind"],
                f"[{style}]{status.upper()}[/{style}]",
                str(step_result.get("status_code") or "-"),
                format_duration(step_result["execution_time"]),
            )
    return table


async def run_definition_async(
    definition_path: Path,
    spec_files: Optional[List[Path]] = None,
    env_path: Optional[Path] = None,
    config_path: Optional[Path] = None,
    output_dir: Optional[Path] = None,
    dry_run: bool = False,
    skip_cleanup: bool = False,
    from_step: Optional[str] = None,
    to_step: Optional[str] = None,
    scenario_name: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Async function to run the scenarios of a definition."""
    # Load configuration
    config = Config(config_path=config_path) if config_path else Config()
    if skip_cleanup:
        config.run.skip_cleanup = True
    if from_step:
        config.run.from_step = from_step
    if to_step:
        config.run.to_step = to_step
    apply_config_logging(config)

    env = VariableScope(load_yaml_file(env_path) if env_path else None)

    # Setup output directory
    output_dir = output_dir or config.output.output_dir

    _, test_def = await load_definition(definition_path, spec_files)
    scenarios = test_def.test_scenarios
    if scenario_name:
        scenario = test_def.get_scenario(scenario_name)
        if scenario is None:
            raise typer.BadParameter(f"Scenario not found: {scenario_name}")
        scenarios = [scenario]

    typer.echo(f"Loaded definition: {test_def.file_path}")
    typer.echo(f"Scenarios: {len(scenarios)}")

    metrics = RunMetrics(
        job_name=config.monitoring.job_name,
        pushgateway_url=config.monitoring.prometheus_pushgateway,
    )

    client: RunnerClient
    if dry_run:
        typer.echo("Dry run - requests are recorded, nothing is sent")
        client = RecordingRunnerClient()
    else:
        client = HttpRunnerClient(
            env=env,
            http_config=config.http,
            lro_config=config.lro,
            run_config=config.run,
            metrics=metrics,
        )

    results = []
    async with client:
        runner = ScenarioRunner(client, env, run_config=config.run, metrics=metrics)
        try:
            for scenario in scenarios:
                runner.check_required_variables(scenario)
            typer.echo("Starting scenario execution...")
            for scenario in scenarios:
                results.append(await runner.run_scenario(scenario))
        finally:
            await runner.clean_all_test_scope()

    console.print(_results_table(results))
    typer.echo("\n" + generate_report(results))

    # Save detailed results
    file_loader = FileLoader(output_dir)
    for result in results:
        results_file = results_file_name(result["scenario_name"])
        await file_loader.write_file(results_file, yaml.safe_dump(result, default_flow_style=False))
        typer.echo(f"\nDetailed results saved to: {file_loader.resolve_path(results_file)}")

    metrics.push()
    return results


@app.command()
def scenario(
    definition_file: Path = typer.Argument(..., help="Path to test definition YAML file"),
    spec: Optional[List[Path]] = typer.Option(None, "--spec", "-s", help="API spec JSON file (repeatable)"),
    env: Optional[Path] = typer.Option(None, "--env", "-e", help="YAML file with variable values"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Run only the named scenario"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Record requests without sending them"),
    skip_cleanup: bool = typer.Option(False, "--skip-cleanup", help="Keep created resource groups"),
    from_step: Optional[str] = typer.Option(None, "--from", help="Start execution at this step"),
    to_step: Optional[str] = typer.Option(None, "--to", help="Stop execution after this step"),
):
    """Run the scenarios of a test definition."""
    try:
        results = asyncio.run(run_definition_async(
            definition_file, spec, env, config, output, dry_run,
            skip_cleanup, from_step, to_step, name))
    except KeyboardInterrupt:
        typer.echo("\nScenario execution interrupted by user")
        raise typer.Exit(130)
    except (ScenarioTestError, FileNotFoundError, ValueError) as e:
        typer.echo(f"Error executing scenario: {e}", err=True)
        raise typer.Exit(1)

    if any(result["status"] != "passed" for result in results):
        raise typer.Exit(1)
