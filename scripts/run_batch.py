#!/usr/bin/env python3
"""
Command-line interface for running job count batches.

Uses typer for clean CLI with subcommands.
"""

import sys
import time
from pathlib import Path
from typing import Optional

import typer

# Add project root to path so we can import jobmeter
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from jobmeter.contexts.scraping import HTMLCountExtractor, JobCountScraper, UnknownCategoryError, count_combinations
from jobmeter.contexts.scraping.orchestration import setup_logger, start_jitter_seconds
from jobmeter.contexts.storage import get_store_and_registry
from jobmeter.utils import load_scraper_config

app = typer.Typer(
    add_completion=False,
    help="Job market count batch orchestration",
)


@app.command("run")
def run_command(
    category: Optional[str] = typer.Argument(
        None,
        help="Category slug to measure (e.g., java). Use --all to measure every active category.",
    ),
    all_categories: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Measure every active category in one batch",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-w",
        help="Filter groups processed in parallel (default: batch.workers from config)",
        min=1,
    ),
    jitter_minutes: float = typer.Option(
        0.0,
        "--jitter-minutes",
        "-j",
        help="Wait a random 0..M minutes before starting (for scheduled runs)",
        min=0.0,
    ),
):
    """
    Run a measurement batch with logging to timestamped files.

    Examples:

        # Measure one category
        $ run_batch.py run java

        # Measure every active category, as a cron job would
        $ run_batch.py run --all --jitter-minutes 30

        # Process filter groups with 4 workers (still one polite request channel)
        $ run_batch.py run python -w 4
    """
    if (category is None) == (not all_categories):
        typer.secho("Error: give a CATEGORY or --all (not both)", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)

    config = load_scraper_config()
    if workers is not None:
        config.batch.workers = workers

    log_file = setup_logger()
    typer.echo(f"Logging to: {log_file}")

    delay = start_jitter_seconds(jitter_minutes)
    if delay > 0:
        typer.echo(f"Waiting {delay / 60:.1f} minutes before starting")
        time.sleep(delay)

    store, registry = get_store_and_registry()
    scraper = JobCountScraper(registry, store, HTMLCountExtractor(config.extractor), config)

    try:
        summary = scraper.run_batch_for_all() if all_categories else scraper.run_batch(category)
    except UnknownCategoryError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        typer.secho("\n\nInterrupted by user", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=130)

    typer.echo(summary.describe())

    # Exit with error code if anything failed or the batch stopped early
    if summary.failed > 0 or not summary.completed:
        raise typer.Exit(code=1)


@app.command("plan")
def plan_command(
    category: Optional[str] = typer.Argument(None, help="Category slug (default: every active category)"),
):
    """Show how many combinations a batch would measure."""
    _, registry = get_store_and_registry()

    if category is not None:
        found = registry.find_category(category)
        if found is None:
            typer.secho(f"Error: Unknown category: {category}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        n_categories = 1 if found.active else 0
    else:
        n_categories = len(registry.active_categories())

    n_cities = len(registry.active_cities())
    total = count_combinations(n_categories, n_cities)
    typer.secho(f"{total} combinations", fg=typer.colors.BLUE, bold=True)
    typer.echo(f"  {n_categories} categories x 4 metrics x {n_cities + 1} locations x 4 levels x 4 salary ranges")


@app.command("history")
def history_command(
    category: str = typer.Argument(..., help="Category slug"),
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Only show the last D days", min=1),
):
    """Print stored job counts for a category."""
    store, _ = get_store_and_registry()
    df = store.export_history_df(category, days=days)
    if df.empty:
        typer.echo(f"No records for {category}")
        return
    typer.echo(df.drop(columns=["id"]).to_string(index=False))


if __name__ == "__main__":
    app()
