"""taskgraph CLI entrypoint."""

import asyncio
import sys
from pathlib import Path

import click

from .config.loader import ConfigError, create_default_config, load_config
from .config.models import TaskGraphConfig
from .executors.command import CommandExecutor, DryRunExecutor
from .observability.progress import ProgressReporter, write_status
from .scheduler.errors import GraphCycleError
from .scheduler.graph import TaskGraph
from .tasks.loader import TaskLoadError, load_tasks
from .tasks.models import ExecutionReport
from .utils.logging import setup_logging

CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
}


def _load_graph(task_file: Path) -> TaskGraph:
    try:
        return TaskGraph.from_descriptors(load_tasks(task_file))
    except TaskLoadError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


def _load_config_or_default(config_path: Path) -> TaskGraphConfig:
    if not config_path.exists():
        return TaskGraphConfig()
    try:
        return load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        sys.exit(1)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "--config",
    "-c",
    default=".taskgraph/config.yml",
    help="Path to configuration file",
    type=click.Path(exists=False, path_type=Path),
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.pass_context
def cli(ctx: click.Context, config: Path, verbose: bool) -> None:
    """taskgraph - run dependent tasks in bounded parallel rounds."""
    setup_logging(level="DEBUG" if verbose else "WARNING")

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration",
)
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Create a default configuration file."""
    config_path: Path = ctx.obj["config_path"]

    if config_path.exists() and not force:
        click.echo(f"Configuration already exists: {config_path}")
        click.echo("Use --force to overwrite")
        sys.exit(1)

    try:
        create_default_config(config_path)
    except OSError as e:
        click.echo(f"✗ Failed to create configuration: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Created configuration: {config_path}")


@cli.command()
@click.argument("task_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(task_file: Path) -> None:
    """Check a task file for structural problems."""
    graph = _load_graph(task_file)
    issues = graph.validate()

    if issues:
        for issue in issues:
            click.echo(f"✗ {issue}")
        sys.exit(1)

    click.echo(f"✓ {len(graph)} tasks, no issues found")


@cli.command()
@click.argument("task_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def order(task_file: Path) -> None:
    """Show execution order, dependency levels and critical path."""
    graph = _load_graph(task_file)

    try:
        topo_order = graph.topological_sort()
    except GraphCycleError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    click.echo("Order:")
    for index, task_id in enumerate(topo_order, start=1):
        click.echo(f"  {index}. {task_id}")

    click.echo("Levels:")
    for index, batch in enumerate(graph.parallel_batches(), start=1):
        click.echo(f"  {index}. {', '.join(batch)}")

    path, cost = graph.critical_path()
    if path:
        click.echo(f"Critical path: {' → '.join(path)} (cost {cost:g})")


@cli.command()
@click.argument("task_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--max-parallel",
    "-p",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum tasks per round (overrides config)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Mark every task successful without running commands",
)
@click.option(
    "--report",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write a Markdown status report to this path",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Only print the final summary",
)
@click.pass_context
def run(
    ctx: click.Context,
    task_file: Path,
    max_parallel: int | None,
    dry_run: bool,
    report: Path | None,
    quiet: bool,
) -> None:
    """Execute every task in TASK_FILE."""
    config = _load_config_or_default(ctx.obj["config_path"])
    verbose: bool = ctx.obj["verbose"]

    setup_logging(
        level="DEBUG" if verbose else config.logging.level,
        log_dir=config.logging.log_dir,
        rotation_mb=config.logging.rotation_mb,
        retention_days=config.logging.retention_days,
        use_colors=verbose,
        console=verbose,
    )

    graph = _load_graph(task_file)

    if dry_run:
        executor = DryRunExecutor()
    else:
        executor = CommandExecutor(
            timeout_sec=config.executor.timeout_sec,
            working_dir=config.executor.working_dir,
            shell=config.executor.shell,
        )

    reporter = ProgressReporter(echo=None if quiet else click.echo)
    reporter.attach(graph.events)

    try:
        result = asyncio.run(
            graph.execute(executor, max_parallel=max_parallel or config.scheduler.max_parallel)
        )
    except GraphCycleError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    finally:
        reporter.detach()

    if report is not None:
        write_status(report, graph, result)

    _echo_summary(result)
    sys.exit(0 if result.success else 1)


def _echo_summary(report: ExecutionReport) -> None:
    mark = "✓" if report.success else "✗"
    click.echo(
        f"{mark} {report.completed_count} completed, {report.failed_count} failed, "
        f"{report.skipped_count} skipped in {report.total_duration:.2f}s "
        f"({report.rounds} rounds)"
    )
    for task_id, task_result in report.results.items():
        if task_result.error:
            click.echo(f"  {task_id}: {task_result.error}")


if __name__ == "__main__":
    cli()
