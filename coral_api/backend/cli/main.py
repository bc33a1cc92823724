#!/usr/bin/env python3
"""
Coral Demographic Parameters API – command line entry point.

Commands:
1. ``serve``    run the REST API with uvicorn
2. ``analyze``  run the offline analysis pipeline and write the cached
   tables, figures and reports the API serves
3. ``summary``  fit the population model and print λ, elasticity and
   heterogeneity tables
4. ``doctor``   check the runtime dependencies
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from coral_api.backend.cli import check_deps
from coral_api.backend.core.pipeline.orchestrator import AnalysisPipeline
from coral_api.backend.core.utils.config import apply_env_overrides, get_default_config, load_config
from coral_api.backend.core.utils.logging_setup import configure_from_config, setup_logging

console = Console()
logger = logging.getLogger(__name__)


def print_banner():
    """Print the project banner."""
    banner = """
╔══════════════════════════════════════════════════════════════════════════════╗
║     Acropora palmata Demographic Parameters                                  ║
║                                                                              ║
║     Survival, growth and matrix population models                            ║
║     for coral restoration planning                                           ║
╚══════════════════════════════════════════════════════════════════════════════╝
    """
    console.print(banner, style="bold blue")


def _load(config: str | None, output_dir: str | None = None) -> dict:
    cfg = load_config(config) if config else get_default_config()
    cfg = apply_env_overrides(cfg)
    configure_from_config(cfg, click.get_current_context().obj.get("log_level"))
    if output_dir:
        cfg["output_dir"] = str(Path(output_dir))
    return cfg


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    default=None,
    help="Path to configuration file (built-in defaults when omitted).",
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output.")
@click.option("--debug", is_flag=True, default=False, help="Enable debug mode with additional logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool):
    """Demographic parameters for Acropora palmata."""
    log_level = logging.DEBUG if debug else (logging.INFO if verbose else None)
    setup_logging(log_level or logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    # Explicit flags win over the config file level.
    ctx.obj["log_level"] = log_level


@cli.command()
@config_option
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", "-p", type=int, default=8000, show_default=True, help="Bind port.")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes (development).")
def serve(config: str | None, host: str, port: int, reload: bool):
    """Run the REST API."""
    import uvicorn

    cfg = _load(config)
    if config:
        os.environ["CORAL_CONFIG"] = str(Path(config).resolve())
    # The server process applies its logging config on startup.
    log_level = click.get_current_context().obj.get("log_level")
    if log_level is not None:
        os.environ["LOG_LEVEL"] = logging.getLevelName(log_level)
    logger.info("Starting API in %s mode", cfg["api"]["environment"])
    console.print(f"[bold cyan]Serving on http://{host}:{port}/api[/bold cyan]")
    uvicorn.run("coral_api.backend.api.app:app", host=host, port=port, reload=reload)


@cli.command()
@config_option
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(),
    default=None,
    help="Directory for output files (config ``output_dir`` when omitted).",
)
@click.option(
    "--stage",
    "-s",
    type=click.Choice(["all", "population", "meta", "report"]),
    default="all",
    help="Pipeline stage to run.",
)
@click.option("--n-boot", type=int, default=None, help="Bootstrap replicates for λ.")
@click.pass_context
def analyze(ctx: click.Context, config: str | None, output_dir: str | None, stage: str, n_boot: int | None):
    """
    Run the offline analysis pipeline.

    Writes the analysis tables to ``<output_dir>/analysis``; point
    ``CORAL_ANALYSIS_DIR`` at that directory to serve them from the API.
    """
    print_banner()

    try:
        console.print("\n[bold cyan]Loading configuration...[/bold cyan]")
        cfg = _load(config, output_dir)
        if n_boot is not None:
            cfg["population"]["bootstrap_replicates"] = n_boot
        console.print(f"  Output directory: {cfg['output_dir']}")
        console.print(f"  Pipeline stage: {stage}")

        pipeline = AnalysisPipeline(cfg)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            if stage == "all":
                task = progress.add_task("[cyan]Running full pipeline...", total=None)
                results = pipeline.run_full_pipeline()
            elif stage == "population":
                task = progress.add_task("[cyan]Fitting matrix population model...", total=None)
                pipeline.run_population_model()
                pipeline.run_scenarios()
                results = pipeline.build_results()
            elif stage == "meta":
                task = progress.add_task("[cyan]Running meta-analysis...", total=None)
                pipeline.run_meta_analysis()
                results = pipeline.build_results()
            else:
                task = progress.add_task("[cyan]Generating report...", total=None)
                pipeline.run_population_model()
                pipeline.run_meta_analysis()
                pipeline.generate_report()
                results = pipeline.build_results()
            progress.update(task, completed=True)

        console.print("\n[bold green]Pipeline completed successfully![/bold green]")
        pipeline.print_summary(results)

    except FileNotFoundError as e:
        console.print(f"\n[bold red]Configuration error:[/bold red] {e}")
        logger.exception("Configuration file not found")
        raise SystemExit(1) from e

    except Exception as e:
        console.print(f"\n[bold red]Pipeline error:[/bold red] {e}")
        logger.exception("Pipeline failed with error")
        if ctx.obj.get("debug"):
            raise
        raise SystemExit(1) from e


@cli.command()
@config_option
@click.option("--n-boot", type=int, default=None, help="Bootstrap replicates (live default when omitted).")
def summary(config: str | None, n_boot: int | None):
    """Print λ, elasticity and heterogeneity for the loaded data."""
    cfg = _load(config)
    pop_cfg = cfg["population"]
    pop_cfg["bootstrap_replicates"] = n_boot or pop_cfg.get("live_bootstrap_replicates", 200)

    pipeline = AnalysisPipeline(cfg)
    store = pipeline.load_data()
    if store.using_mock_data:
        console.print("[yellow]Using MOCK DATA – figures do not reflect real observations[/yellow]")
    pipeline.run_population_model()
    pipeline.run_scenarios()
    pipeline.run_meta_analysis()
    pipeline.print_summary(pipeline.build_results())


@cli.command()
def doctor():
    """Check that every runtime dependency is installed."""
    raise SystemExit(check_deps.main(console))


if __name__ == "__main__":
    cli()
