"""
apiforge — Command Line Interface
==================================

What:  Operator commands over a freshly built container.
How:   click group; each command builds a container with in-memory
       providers (no database needed), so the output reflects exactly the
       endpoints the app would register.
Who:   Developers and CI (`apiforge docs openapi -o docs/api/openapi.json`).

Commands:
    apiforge generate <resource> [--ops list,get,...] [--version v1] [--public]
    apiforge analyze
    apiforge docs [openapi|postman|markdown] [-o PATH] [--no-examples]
    apiforge health
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from apiforge.config import settings as default_settings
from apiforge.container import Container, build_container
from apiforge.exceptions import ApiError, ConfigurationError
from apiforge.providers.memory import InMemoryProvider
from apiforge.services.crud_generator import OPERATIONS, GenerateOptions
from apiforge.services.docs_generator import DOC_FORMATS

logger = logging.getLogger(__name__)


def _container() -> Container:
    settings = default_settings.model_copy(update={"persistence_backend": "memory"})
    return build_container(settings)


@click.group()
@click.option("--log-level", default="WARNING", show_default=True, help="Logging level for the run")
def cli(log_level: str) -> None:
    """Generate, inspect and document the REST API."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )


@cli.command()
@click.argument("resource")
@click.option("--ops", default=",".join(OPERATIONS), show_default=True, help="Comma-separated operations")
@click.option("--version", "api_version", default="v1", show_default=True)
@click.option("--public", is_flag=True, help="Generate without the auth stage")
def generate(resource: str, ops: str, api_version: str, public: bool) -> None:
    """Generate CRUD endpoints for RESOURCE and list them."""
    container = _container()
    if resource not in container.providers:
        container.providers.register(resource, InMemoryProvider(resource))
    operations = [op.strip() for op in ops.split(",") if op.strip()]

    click.echo(f"Generating CRUD endpoints for: {resource}\n")
    try:
        descriptors = container.generator.generate(
            resource,
            operations,
            GenerateOptions(auth_required=not public, version=api_version, overwrite=True),
        )
    except (ValueError, ConfigurationError, ApiError) as e:
        raise click.ClickException(str(e))

    click.echo(f"Endpoints generated for {resource}:")
    for descriptor in descriptors:
        flags = " ".join(name for name in descriptor.stage_names if name != "rate_limit")
        click.echo(f"  {descriptor.method:<7}{descriptor.full_path:<40}{flags}")


@cli.command()
def analyze() -> None:
    """Print endpoint statistics and recommendations."""
    container = _container()
    analysis = container.analyzer.analyze(container.registry)

    click.echo("API Analysis Report\n")
    click.echo(f"Total Endpoints: {analysis.total_endpoints}")
    click.echo(f"Secured: {analysis.secured_endpoints}")
    click.echo(f"Public: {analysis.public_endpoints}")
    click.echo(f"Validated: {analysis.validated_endpoints}")
    click.echo(f"Undocumented: {analysis.undocumented_endpoints}")

    click.echo("\nEndpoints by Method:")
    for method, count in analysis.by_method.items():
        click.echo(f"  {method}: {count}")
    click.echo("\nEndpoints by Version:")
    for version, count in analysis.by_version.items():
        click.echo(f"  {version}: {count}")

    if analysis.recommendations:
        click.echo("\nRecommendations:")
        for index, hint in enumerate(analysis.recommendations, start=1):
            click.echo(f"  {index}. {hint}")


@cli.command()
@click.argument("format", default="openapi", type=click.Choice(DOC_FORMATS))
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="File to write (default: <docs_output_dir>/api-docs.*)")
@click.option("--no-examples", is_flag=True, help="Omit response examples")
@click.option("--stdout", "to_stdout", is_flag=True, help="Print instead of writing a file")
def docs(format: str, output: Optional[Path], no_examples: bool, to_stdout: bool) -> None:
    """Generate API documentation in FORMAT."""
    container = _container()
    content = container.docs.generate(container.registry.all(), format, include_examples=not no_examples)
    if to_stdout:
        click.echo(content)
        return
    path = output or Path(container.settings.docs_output_dir) / container.docs.default_filename(format)
    container.docs.save(content, path)
    click.echo(f"Documentation generated ({format}): {path}")


@cli.command()
def health() -> None:
    """Report endpoint coverage and middleware wiring."""
    container = _container()
    report = container.health_report()

    click.echo(f"API Status: {report.status.upper()}\n")
    click.echo("Endpoints:")
    click.echo(f"  Total: {report.endpoints.total}")
    click.echo(f"  Healthy: {report.endpoints.healthy}")
    click.echo(f"  Errors: {report.endpoints.errors}")

    click.echo("\nMiddleware Status:")
    for label, enabled in (
        ("Authentication", report.middleware.auth),
        ("Validation", report.middleware.validation),
        ("Error Handling", report.middleware.error_handling),
        ("Versioning", report.middleware.versioning),
    ):
        click.echo(f"  {label}: {'yes' if enabled else 'no'}")

    click.echo("\nDocumentation:")
    click.echo(f"  Generated: {'yes' if report.documentation.generated else 'no'}")
    click.echo(f"  Coverage: {report.documentation.coverage:.1f}%")


def main() -> None:
    try:
        cli(standalone_mode=True)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
