"""CLI entry point for the results store."""

import asyncio
import json
import logging
import sys
from pathlib import Path

import typer

from boostsec.results_store.config import find_config, load_config, load_known_issues
from boostsec.results_store.errors import ResultsStoreError
from boostsec.results_store.history.local import LocalHistory
from boostsec.results_store.models.history import HistoryDataPoint
from boostsec.results_store.models.store_config import StoreConfig
from boostsec.results_store.session import ReportSession

# Configure logging - force reconfiguration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)
logger = logging.getLogger(__name__)

app = typer.Typer()


@app.command()
def history(
    history_path: Path = typer.Option(..., help="Path to the history file"),  # noqa: B008
    limit: int | None = typer.Option(None, help="Number of most recent entries"),
) -> None:
    """Print the retained history entries."""
    local_history = LocalHistory(history_path, limit)

    try:
        entries = asyncio.run(local_history.read_history())
    except (ResultsStoreError, ValueError, OSError) as e:
        logger.error(f"Failed to read history: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    output = [
        {
            "name": entry.name,
            "uuid": entry.uuid,
            "timestamp": entry.timestamp,
            "test_results": len(entry.test_results),
        }
        for entry in entries
    ]
    typer.echo(json.dumps(output, indent=2))


@app.command()
def merge(
    dumps: list[Path] = typer.Argument(..., help="Dump archives to merge"),  # noqa: B008
    config: Path | None = typer.Option(  # noqa: B008
        None,
        help="Path to a YAML config file, looked up in the current directory if omitted",
    ),
    history_path: Path | None = typer.Option(  # noqa: B008
        None, help="History file to append the merged run to"
    ),
    output: Path | None = typer.Option(  # noqa: B008
        None, help="Also write the summary JSON to this file"
    ),
) -> None:
    """Merge dump archives from several shards into one run."""
    logger.info(f"Merging {len(dumps)} dumps")

    if config is None:
        config = find_config(Path.cwd())
        if config is not None:
            logger.info(f"Using config file {config}")

    try:
        summary = asyncio.run(_merge(dumps, config, history_path))
    except Exception as e:
        logger.exception("Merge failed")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    rendered = json.dumps(summary, indent=2)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(rendered)
    typer.echo(rendered)


async def _merge(
    dumps: list[Path], config_file: Path | None, history_path: Path | None
) -> dict:
    """Restore dumps into a fresh session and summarize the merged run."""
    config = await load_config(config_file) if config_file else StoreConfig()
    if history_path is not None:
        config = config.model_copy(update={"history_path": history_path})
    # The merged run is persisted to history, never dumped again.
    config = config.model_copy(update={"dump": None})

    known = (
        await load_known_issues(config.known_issues_path)
        if config.known_issues_path
        else []
    )

    session = ReportSession(config, known=known)
    await session.start()
    restored = await session.restore_state(dumps)

    store = session.store
    statistic = store.tests_statistic()
    environments = {
        environment: len(store.test_results_by_environment(environment))
        for environment in store.all_environments()
    }
    entry: HistoryDataPoint = await session.done()

    return {
        "report": config.name,
        "uuid": entry.uuid,
        "dumps": restored,
        "statistic": statistic.model_dump(),
        "environments": environments,
    }


if __name__ == "__main__":  # pragma: no cover
    app()
