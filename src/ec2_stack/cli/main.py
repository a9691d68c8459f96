"""CLI entrypoint for ec2-stack."""

import logging
import sys

import click
from rich.table import Table

from ec2_stack.cli.errors import FATAL_ERRORS, report_error, report_warnings
from ec2_stack.cli.store import StackStore
from ec2_stack.cli.ui import console, err_console, report_step
from ec2_stack.config.paths import resolve_stack_path, stack_name_from
from ec2_stack.core.deployments.aws_ec2 import check_stack, create_session
from ec2_stack.core.deployments.aws_ec2.deploy import create_stack, destroy_stack
from ec2_stack.core.settings import StackDefaults, get_defaults


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Create and delete EC2 instances with DNS records from stack files."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for name in ("botocore", "boto3", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
    ctx.obj = get_defaults()


@cli.command()
@click.argument("name")
@click.pass_obj
def create(defaults: StackDefaults, name: str) -> None:
    """Create the stack NAME."""
    store = StackStore(resolve_stack_path(name, defaults.stacks_dir), defaults)
    stack_name = stack_name_from(name)
    try:
        config = store.load()
        console.print(f"[cyan]Creating stack {stack_name} from {store.path}[/cyan]")
        config = create_stack(
            config,
            stack_name,
            defaults,
            persist=store.save,
            reporter=report_step,
            config_dir=store.path.parent,
        )
    except FATAL_ERRORS as exc:
        report_error(exc)
        sys.exit(1)

    console.print(f"[green]Stack {stack_name} created.[/green]")
    if config.vm is not None and config.vm.ssh_command:
        console.print(f"[bold]{config.vm.ssh_command}[/bold]")


@cli.command()
@click.argument("name")
@click.pass_obj
def delete(defaults: StackDefaults, name: str) -> None:
    """Delete the stack NAME."""
    store = StackStore(resolve_stack_path(name, defaults.stacks_dir), defaults)
    stack_name = stack_name_from(name)
    try:
        config = store.load(validate=False) if store.exists() else None
        if config is None:
            err_console.print(
                f"[yellow]Stack file {store.path} not found, deleting compute stack "
                f"{stack_name} in {defaults.region} only.[/yellow]"
            )
        elif not config.has_resources():
            err_console.print(
                f"[yellow]Stack file {store.path} records no resources, only the compute "
                f"stack {stack_name} is checked.[/yellow]"
            )
        console.print(f"[cyan]Deleting stack {stack_name}[/cyan]")
        report = destroy_stack(
            config, stack_name, defaults, persist=store.save, reporter=report_step
        )
    except FATAL_ERRORS as exc:
        report_error(exc)
        sys.exit(1)

    report_warnings(report.warnings)
    if report.clean:
        console.print(f"[green]Stack {stack_name} deleted.[/green]")
    else:
        console.print(
            f"[yellow]Stack {stack_name} deleted with {len(report.warnings)} warning(s).[/yellow]"
        )


@cli.command()
@click.argument("name")
@click.pass_obj
def status(defaults: StackDefaults, name: str) -> None:
    """Show whether the resources of stack NAME still exist."""
    store = StackStore(resolve_stack_path(name, defaults.stacks_dir), defaults)
    stack_name = stack_name_from(name)
    try:
        config = store.load(validate=False)
        region = config.vm.region if config.vm is not None else defaults.region
        session = create_session(region, defaults.aws_profile)
        results = check_stack(session, config, stack_name)
    except FATAL_ERRORS as exc:
        report_error(exc)
        sys.exit(1)

    table = Table(title=f"Stack {stack_name}", show_header=True, header_style="bold cyan")
    table.add_column("Resource", style="white", no_wrap=True)
    table.add_column("Status", style="white", no_wrap=True)
    for resource, state in results.items():
        table.add_row(resource, _style_status(state))
    console.print(table)


def _style_status(state: str) -> str:
    if state.startswith("present"):
        return f"[green]{state}[/green]"
    if state == "not set":
        return f"[dim]{state}[/dim]"
    if state == "missing":
        return f"[red]{state}[/red]"
    return f"[yellow]{state}[/yellow]"


def main() -> None:
    """Run the CLI."""
    cli()
