"""
armkit CLI entry point.
"""
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from armkit import __version__
from armkit.engine.resolver import Resolution
from armkit.errors import ArmkitError
from armkit.loader import LOADERS, load_deployment
from armkit.reporters import markdown, template


def _print_summary_table(resolution: Resolution, no_color: bool) -> None:
    """Print a rich summary table to stderr."""
    tbl = Table(title="Deployment Summary", show_header=True, header_style="bold")
    tbl.add_column("#", style="dim", width=4)
    tbl.add_column("Name", width=40)
    tbl.add_column("Type", width=45)
    tbl.add_column("Depends on")

    for i, d in enumerate(resolution.order, 1):
        deps = sorted(dep.qualified_name for dep in resolution.dependencies_of(d.resource_id))
        tbl.add_row(str(i), d.name, d.type, ", ".join(deps) or "-")

    Console(stderr=True, no_color=no_color).print(tbl)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(__version__)
@click.pass_context
def cli(ctx):
    """armkit: build ARM deployment templates from declarative resource configs."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit()


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--location", "-l",
    default=None,
    help="Deployment location; overrides 'location' in the file.",
)
@click.option(
    "--format", "output_format",
    type=click.Choice(["json", "markdown"], case_sensitive=False),
    default="json",
    show_default=True,
    help="json writes the ARM template, markdown a deployment plan.",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    default=None,
    help="Write output to this file (default: stdout).",
)
@click.option(
    "--summary",
    is_flag=True,
    default=False,
    help="Print the terminal summary table only, do not write output.",
)
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable rich terminal color output.",
)
def build(
    path: str,
    location: Optional[str],
    output_format: str,
    output: Optional[str],
    summary: bool,
    no_color: bool,
) -> None:
    """
    Build the deployment described in PATH.
    """
    stderr = Console(stderr=True, no_color=no_color)

    # 1. Load and finalize every resource config
    try:
        deployment = load_deployment(path, location)
    except ArmkitError as exc:
        stderr.print(f"[red]Invalid deployment:[/red] {exc}")
        sys.exit(2)

    # 2. Build and resolve dependencies
    try:
        resolution = deployment.resolve()
    except ArmkitError as exc:
        stderr.print(f"[red]Build failed:[/red] {exc}")
        sys.exit(2)

    stderr.print(
        f"Resolved [bold]{len(resolution.order)}[/bold] resources "
        f"for [bold]{deployment.location}[/bold]."
    )

    if summary or output:
        _print_summary_table(resolution, no_color)

    # 3. Render
    if not summary:
        if output_format.lower() == "markdown":
            content = markdown.build_report(resolution, path)
        else:
            content = template.build_report(resolution.order, resolution)

        if output:
            with open(output, "w", encoding="utf-8", newline="\n") as fh:
                fh.write(content)
            stderr.print(f"Output written to [bold]{output}[/bold]")
        else:
            click.echo(content)

    sys.exit(0)


@cli.command()
def kinds() -> None:
    """List the resource kinds a deployment file can declare."""
    for kind in sorted(LOADERS):
        click.echo(kind)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
