"""Main CLI entry point for oversight."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler

from oversight.config.manager import ConfigManager
from oversight.config.schema import GlobalConfig, OversightConfig
from oversight.engine.accountability import STATUS_APPROVED, AccountabilityEngine
from oversight.errors import ConfigurationError
from oversight.output.formatter import get_formatter


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(storage_dir: str | None) -> OversightConfig:
    formatter = get_formatter()
    try:
        config = ConfigManager.get_config()
    except ConfigurationError as e:
        formatter.print_error(str(e))
        raise SystemExit(1)

    if storage_dir:
        engine_config = config.engine.model_copy(update={"storage_dir": storage_dir})
        config = config.model_copy(update={"engine": engine_config})
    return config


def _read_json(path: Path) -> Any:
    formatter = get_formatter()
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        formatter.print_error(f"Could not read {path}: {e}")
        raise SystemExit(1)


async def _open_engine(config: OversightConfig) -> AccountabilityEngine:
    engine = AccountabilityEngine(config)
    await engine.initialize()
    return engine


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("--no-color", is_flag=True, help="Disable colors")
@click.option("--storage-dir", type=click.Path(file_okay=False), help="Engine state directory")
@click.version_option(package_name="oversight-engine")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, no_color: bool, storage_dir: str | None) -> None:
    """Oversight - verification and rating for autonomous agents.

    \b
    Examples:
        oversight process task.json --context sprint.json --agent coder-1
        oversight leaderboard -n 5
        oversight agent coder-1
        oversight stats
    """
    try:
        settings = ConfigManager.get_config().global_
    except ConfigurationError:
        # Reported by the subcommand once the formatter exists
        settings = GlobalConfig()
    verbose = verbose or settings.verbose

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["storage_dir"] = storage_dir
    ctx.obj["json"] = settings.output_format == "json"

    _configure_logging(verbose)
    get_formatter(color=settings.color and not no_color, verbose=verbose)


@cli.command()
@click.argument("task_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-c", "--context", "context_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Sprint context JSON",
)
@click.option("-a", "--agent", "agent_id", default="agent", show_default=True, help="Agent id")
@click.option("--json", "output_json", is_flag=True, help="JSON output")
@click.pass_context
def process(
    ctx: click.Context,
    task_file: Path,
    context_file: Path | None,
    agent_id: str,
    output_json: bool,
) -> None:
    """Verify, improve and rate one task (or a list of tasks)."""
    config = _load_config(ctx.obj["storage_dir"])
    task_data = _read_json(task_file)
    context_data = _read_json(context_file) if context_file else {}

    tasks = task_data if isinstance(task_data, list) else [task_data]
    results = asyncio.run(_run_process(config, agent_id, tasks, context_data))

    formatter = get_formatter()
    if output_json or ctx.obj["json"]:
        formatter.print_json([r.to_dict() for r in results])
    else:
        for result in results:
            formatter.print_task_result(result)

    if any(r.status != STATUS_APPROVED for r in results):
        raise SystemExit(1)


async def _run_process(
    config: OversightConfig,
    agent_id: str,
    tasks: list[Any],
    context_data: dict,
) -> list:
    engine = await _open_engine(config)
    try:
        return await engine.process_batch([(agent_id, task, context_data) for task in tasks])
    finally:
        await engine.shutdown()


@cli.command()
@click.option("-n", "--limit", default=10, show_default=True, help="Number of agents")
@click.option("--json", "output_json", is_flag=True, help="JSON output")
@click.pass_context
def leaderboard(ctx: click.Context, limit: int, output_json: bool) -> None:
    """Show the highest rated agents."""
    config = _load_config(ctx.obj["storage_dir"])
    engine = asyncio.run(_open_engine(config))
    performers = engine.get_top_performers(limit)
    formatter = get_formatter()

    if output_json or ctx.obj["json"]:
        formatter.print_json(performers)
    elif not performers:
        formatter.print_warning("No rated agents yet")
    else:
        formatter.print_leaderboard(performers)


@cli.command()
@click.argument("agent_id")
@click.option("--json", "output_json", is_flag=True, help="JSON output")
@click.pass_context
def agent(ctx: click.Context, agent_id: str, output_json: bool) -> None:
    """Show an agent's rating, trend and recommendations."""
    config = _load_config(ctx.obj["storage_dir"])
    engine = asyncio.run(_open_engine(config))
    stats = engine.rating_system.get_agent_stats(agent_id)
    recommendations = engine.get_agent_recommendations(agent_id)
    formatter = get_formatter()

    if output_json or ctx.obj["json"]:
        formatter.print_json({"stats": stats, "recommendations": recommendations})
    else:
        formatter.print_agent(stats, recommendations)


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="JSON output")
@click.pass_context
def stats(ctx: click.Context, output_json: bool) -> None:
    """Show engine and verification statistics."""
    config = _load_config(ctx.obj["storage_dir"])
    engine = asyncio.run(_open_engine(config))
    engine_stats = engine.get_stats()
    failures = engine.analytics.get_failure_stats()
    formatter = get_formatter()

    if output_json or ctx.obj["json"]:
        formatter.print_json({**engine_stats, "failures": failures})
    else:
        formatter.print_stats(engine_stats, failures)


@cli.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Show current configuration."""
    formatter = get_formatter()
    try:
        current = ConfigManager.get_config()
    except ConfigurationError as e:
        formatter.print_error(str(e))
        raise SystemExit(1)
    formatter.print_json(current.model_dump(by_alias=True))


if __name__ == "__main__":
    cli()
