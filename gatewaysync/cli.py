"""CLI entry point for gatewaysync."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import load_definition, load_environment
from .connectors import (
    AWSAPIDiscovery,
    DeployerError,
    RollbackError,
    get_deployer,
)


def _fail(message: str, code: int = 1):
    click.echo(click.style("Error: ", fg="red", bold=True) + message)
    sys.exit(code)


def _read_reference(reference: str) -> str:
    """Reference given inline, or ``@path`` to read it from a file."""
    if reference.startswith("@"):
        return Path(reference[1:]).read_text(encoding="utf-8").strip()
    return reference


@click.group()
@click.version_option(version=__version__, prog_name="gatewaysync")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    envvar="GATEWAYSYNC_CONFIG",
    help="YAML file with gateway environment settings",
)
@click.option(
    "--gateway",
    "-g",
    default="AWS",
    show_default=True,
    help="Gateway type",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.pass_context
def cli(ctx, config_path: Optional[str], gateway: str, verbose: bool):
    """gatewaysync - deploy API definitions to external API gateways.

    \b
    Environment settings come from --config and the AWS_REGION,
    AWS_API_STAGE, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and
    AWS_PROFILE environment variables.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["gateway"] = gateway
    ctx.obj["verbose"] = verbose


def _deployer(ctx, connect: bool = True):
    try:
        deployer = get_deployer(ctx.obj["gateway"])
        if connect:
            deployer.init(load_environment(ctx.obj["config_path"]))
        return deployer
    except DeployerError as e:
        _fail(str(e))


def _definition(path: str):
    try:
        return load_definition(path)
    except DeployerError as e:
        _fail(str(e))


@cli.command()
@click.argument("definition_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--reference",
    "-r",
    help="Reference of an earlier deployment (or @file); omit for a first deployment",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    help="Write the new deployment reference to this file",
)
@click.pass_context
def deploy(ctx, definition_path: str, reference: Optional[str], output: Optional[str]):
    """Deploy an API definition to the gateway.

    \b
    Example:
        gatewaysync -c aws.yaml deploy orders.yaml -o orders.ref
        gatewaysync -c aws.yaml deploy orders.yaml -r @orders.ref -o orders.ref
    """
    deployer = _deployer(ctx)
    definition = _definition(definition_path)

    validation = deployer.validate(definition)
    if not validation.valid:
        for error in validation.errors:
            click.echo(click.style("  - ", fg="red") + error)
        _fail("API definition is not valid for this gateway")

    try:
        new_reference = deployer.deploy(
            deployer.transform(definition),
            _read_reference(reference) if reference else None,
        )
    except RollbackError as e:
        _fail(f"{e}\nThe API may still exist on the gateway and needs manual cleanup.", code=2)
    except DeployerError as e:
        _fail(str(e))

    if output:
        Path(output).write_text(new_reference + "\n", encoding="utf-8")
    click.echo(click.style("Deployed: ", fg="green", bold=True) + deployer.get_execution_url(new_reference))
    if not output:
        click.echo(new_reference)


@cli.command()
@click.argument("reference")
@click.option("--delete", is_flag=True, help="Also delete the API from the gateway")
@click.pass_context
def undeploy(ctx, reference: str, delete: bool):
    """Remove a deployment (REFERENCE or @file)."""
    deployer = _deployer(ctx)
    try:
        deployer.undeploy(_read_reference(reference), delete=delete)
    except DeployerError as e:
        _fail(str(e))
    click.echo(click.style("Undeployed", fg="green", bold=True) + (" and deleted" if delete else ""))


@cli.command()
@click.argument("definition_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx, definition_path: str):
    """Check whether the gateway can host an API definition."""
    deployer = _deployer(ctx, connect=False)
    result = deployer.validate(_definition(definition_path))
    if result.valid:
        click.echo(click.style("Valid", fg="green", bold=True))
        return
    for error in result.errors:
        click.echo(click.style("  - ", fg="red") + error)
    sys.exit(1)


@cli.command()
@click.argument("definition_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def transform(ctx, definition_path: str):
    """Print the API definition as it will be deployed."""
    deployer = _deployer(ctx, connect=False)
    transformed = deployer.transform(_definition(definition_path))
    click.echo(yaml.safe_dump(transformed.model_dump(exclude_none=True), sort_keys=False))


@cli.command()
@click.argument("reference")
@click.pass_context
def url(ctx, reference: str):
    """Print the invocation URL of a deployment (REFERENCE or @file)."""
    deployer = _deployer(ctx)
    try:
        click.echo(deployer.get_execution_url(_read_reference(reference)))
    except DeployerError as e:
        _fail(str(e))


@cli.command()
@click.option("--organization", help="Organization to assign discovered APIs to")
@click.option("--json", "as_json", is_flag=True, help="Print discovered APIs as JSON")
@click.pass_context
def discover(ctx, organization: Optional[str], as_json: bool):
    """List REST APIs that already exist on the gateway."""
    deployer = _deployer(ctx)
    try:
        discovered = AWSAPIDiscovery(deployer.reconciler.transport).discover(organization)
    except DeployerError as e:
        _fail(str(e))

    if as_json:
        click.echo(json.dumps([
            {
                "definition": api.definition.model_dump(exclude={"swagger_definition"}, exclude_none=True),
                "stage": api.stage,
                "reference": api.reference,
            }
            for api in discovered
        ], indent=2))
        return

    table = Table(title=f"{len(discovered)} API(s) on {deployer.gateway_type}")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Stage")
    table.add_column("Endpoint")
    for api in discovered:
        table.add_row(
            api.definition.id,
            api.definition.name,
            api.definition.version,
            api.stage or "",
            api.definition.production_endpoint() or "",
        )
    Console().print(table)


main = cli


if __name__ == "__main__":
    cli()
