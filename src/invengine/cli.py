"""
Command-line interface for invengine

Provides CLI commands for:
- Running an investigation: invengine investigate "API responses are slow"
- Checking a plan file: invengine validate-plan --plan-file plan.json
- Managing configuration: invengine config --show
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from pydantic import ValidationError

from . import __version__
from .config import get_config
from .controller import create_controller
from .exceptions import InvestigationError
from .models import (
    INVESTIGATION_TYPES,
    ExportedReport,
    InvestigationOptions,
    InvestigationPlan,
    InvestigationProblem,
    InvestigationResponse,
)
from .observability import initialize_observability
from .validation import validate_plan


@click.group()
@click.version_option(version=__version__, prog_name="invengine")
def cli():
    """invengine - AI-assisted root-cause investigations over telemetry"""


def _echo_progress(response: InvestigationResponse) -> None:
    progress = response.progress
    if progress is None:
        return
    click.echo(
        f"[{response.status}] phases {progress.completed_phases}/{progress.total_phases}, "
        f"queries {progress.completed_queries}/{progress.total_queries} "
        f"({progress.failed_queries} failed) - {progress.completion_percentage:.0f}%"
    )


async def _run_investigation(
    description: str,
    investigation_type: Optional[str],
    max_time: Optional[float],
    export_format: Optional[str] = None,
) -> tuple[InvestigationResponse, Optional[ExportedReport]]:
    config = get_config()
    initialize_observability(config.telemetry)
    controller = create_controller(config)

    problem = InvestigationProblem(description=description, type=investigation_type)
    response = await controller.start_investigation(
        problem, InvestigationOptions(max_execution_time=max_time)
    )

    plan = response.plan
    click.echo(f"🔍 Investigation {response.investigation_id}")
    click.echo("=" * 50)
    click.echo(f"Type: {plan.detected_type} (plan source: {plan.source})")
    click.echo(f"Phases: {len(plan.phases)}, queries: {plan.total_queries}")
    for i, phase in enumerate(plan.phases, 1):
        click.echo(f"  {i}. {phase.name} ({len(phase.queries)} queries)")

    # One extra call covers a plan with no phases
    for _ in range(len(plan.phases) + 1):
        response = await controller.continue_investigation(response.investigation_id)
        _echo_progress(response)
        if response.status == "completed":
            break

    report = None
    if export_format and response.status == "completed":
        report = await controller.export_investigation(
            response.investigation_id, export_format
        )
    return response, report


@cli.command()
@click.argument("problem")
@click.option(
    "--type",
    "investigation_type",
    type=click.Choice(list(INVESTIGATION_TYPES)),
    default=None,
    help="Skip classification and use this investigation type",
)
@click.option("--max-time", type=float, default=None, help="Execution budget in minutes")
@click.option(
    "--export-format",
    type=click.Choice(["json", "markdown", "html"]),
    default=None,
    help="Export the report in this format",
)
@click.option("--output", type=click.Path(), default=None, help="Write the export here")
def investigate(
    problem: str,
    investigation_type: Optional[str],
    max_time: Optional[float],
    export_format: Optional[str],
    output: Optional[str],
):
    """Run an investigation for PROBLEM from start to finish"""
    try:
        response, report = asyncio.run(
            _run_investigation(problem, investigation_type, max_time, export_format)
        )
    except (InvestigationError, ValidationError) as e:
        click.echo(f"❌ Investigation failed: {e}", err=True)
        sys.exit(1)

    result = response.result
    if result is None:
        click.echo("❌ Investigation did not complete", err=True)
        sys.exit(1)

    rca = result.root_cause_analysis
    click.echo("\n📋 Result")
    click.echo("=" * 50)
    click.echo(f"Primary Cause: {rca.primary_cause.description}")
    click.echo(f"Confidence: {rca.primary_cause.confidence * 100:.1f}%")
    click.echo(f"Summary: {result.summary}")

    if result.recommendations.immediate:
        click.echo("\nImmediate Actions:")
        for i, action in enumerate(result.recommendations.immediate, 1):
            click.echo(f"  {i}. {action.action}")

    if report is not None:
        if output:
            Path(output).write_text(report.content, encoding="utf-8")
            click.echo(f"\n💾 Report written to {output} ({report.mime_type})")
        else:
            click.echo(report.content)


@cli.command("validate-plan")
@click.option(
    "--plan-file",
    type=click.Path(exists=True),
    required=True,
    help="JSON file containing an investigation plan",
)
def validate_plan_command(plan_file: str):
    """Check an investigation plan for structural problems"""
    try:
        with open(plan_file, encoding="utf-8") as f:
            plan = InvestigationPlan.model_validate(json.load(f))
    except (json.JSONDecodeError, ValidationError) as e:
        click.echo(f"❌ Could not read plan: {e}", err=True)
        sys.exit(1)

    validation = validate_plan(plan, get_config())

    if validation.is_valid:
        click.echo(f"✅ Plan is valid ({len(plan.phases)} phases, {plan.total_queries} queries)")
    else:
        click.echo("❌ Plan is invalid:")
        for issue in validation.issues:
            click.echo(f"  - {issue}")

    for suggestion in validation.suggestions:
        click.echo(f"💡 {suggestion}")

    if not validation.is_valid:
        sys.exit(1)


@cli.command()
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option("--format", type=click.Choice(["yaml", "json"]), default="yaml", help="Output format")
def config(show: bool, format: str):
    """Manage invengine configuration"""
    if show:
        try:
            config_dict = get_config().model_dump(mode="json")

            click.echo("🔧 Current invengine Configuration")
            click.echo("=" * 40)

            if format == "yaml":
                click.echo(yaml.dump(config_dict, default_flow_style=False, indent=2))
            elif format == "json":
                click.echo(json.dumps(config_dict, indent=2))

        except Exception as e:
            click.echo(f"❌ Failed to load configuration: {e}", err=True)
    else:
        click.echo("Use --show to display current configuration")
        click.echo("Available options:")
        click.echo("  --show          Show current configuration")
        click.echo("  --format yaml   Output in YAML format (default)")
        click.echo("  --format json   Output in JSON format")


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == "__main__":
    main()
