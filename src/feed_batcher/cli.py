from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from pydantic import ValidationError

from .config import BatcherSettings, get_settings
from .driver import FeedDriver
from .errors import DeliveryExhaustedError, SourceError
from .ledger import ErrorLedger
from .logging_setup import configure_logging
from .models import RunSummary
from .sinks import ConsoleSink
from .sources import XmlFeedSource

app = typer.Typer(help="Stream a product feed to a sink in size-bounded batches")

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _build_settings(**overrides) -> BatcherSettings:
    base = get_settings().model_dump()
    base.update({k: v for k, v in overrides.items() if v is not None})
    return BatcherSettings(**base)


def _on_signal(driver: FeedDriver, sig: signal.Signals) -> None:
    typer.echo(f"\n{sig.name} received. Initiating graceful shutdown...", err=True)
    driver.shutdown_soon()


async def _run_with_signals(driver: FeedDriver) -> RunSummary:
    loop = asyncio.get_running_loop()
    installed = []
    for sig in _SIGNALS:
        try:
            loop.add_signal_handler(sig, _on_signal, driver, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on Windows event loops
            logger.debug(f"Signal handler for {sig.name} not installed")
    try:
        return await driver.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@app.command("run")
def run(
    feed_path: Path = typer.Argument(..., help="Path to the RSS/Atom XML feed"),
    max_batch_size: Optional[int] = typer.Option(
        None, "--max-batch-size", help="Maximum batch size in bytes (default: 5MB)"
    ),
    safety_margin: Optional[int] = typer.Option(
        None, "--safety-margin", help="Bytes kept free below the batch size (default: 1024)"
    ),
    max_retries: Optional[int] = typer.Option(
        None, "--max-retries", help="Sink calls per batch before giving up (default: 3)"
    ),
    retry_delay_ms: Optional[int] = typer.Option(
        None, "--retry-delay", help="Base backoff in ms, doubled per attempt (default: 1000)"
    ),
    min_batch_interval_ms: Optional[int] = typer.Option(
        None, "--min-interval", help="Minimum ms between successful sends (default: 0)"
    ),
    continue_on_failure: Optional[bool] = typer.Option(
        None,
        "--continue-on-failure/--abort-on-failure",
        help="Keep going after a batch exhausts its retries",
    ),
    dead_letter: Optional[Path] = typer.Option(
        None, "--dead-letter", help="Append failed batches to this NDJSON file"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="TRACE, DEBUG, INFO, WARNING or ERROR (default: INFO)"
    ),
    log_json: Optional[bool] = typer.Option(None, "--json/--no-json", help="Structured logs"),
):
    """Process a feed file and deliver its products in batches."""
    try:
        settings = _build_settings(
            max_batch_size=max_batch_size,
            safety_margin=safety_margin,
            max_retries=max_retries,
            retry_delay_ms=retry_delay_ms,
            min_batch_interval_ms=min_batch_interval_ms,
            continue_on_failure=continue_on_failure,
            log_level=log_level,
            log_json=log_json,
        )
    except ValidationError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(1)

    configure_logging(settings.log_level, settings.log_json)

    if not feed_path.is_file():
        typer.echo(f"Error: File not found: {feed_path}", err=True)
        raise typer.Exit(1)

    size_mb = feed_path.stat().st_size / (1024 * 1024)
    typer.echo(f"Processing XML file: {feed_path} ({size_mb:.2f}MB)")

    driver = FeedDriver(XmlFeedSource(feed_path), ConsoleSink(), settings=settings)
    try:
        summary = asyncio.run(_run_with_signals(driver))
    except DeliveryExhaustedError as e:
        typer.echo(f"Fatal error: {e}", err=True)
        typer.echo("\nErrors encountered during processing:", err=True)
        for idx, rec in enumerate(e.failures, start=1):
            typer.echo(f"  {idx}. Batch {rec.sequence}: {rec.error}", err=True)
        raise typer.Exit(1)
    except SourceError as e:
        typer.echo(f"Fatal error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        if dead_letter is not None and driver.ledger:
            driver.ledger.write_ndjson(dead_letter)

    typer.echo(json.dumps(summary.to_dict(), indent=2))
    typer.echo(f"\nProcessing complete! Total products processed: {summary.processed}")


@app.command("dead-letters")
def dead_letters(
    path: Path = typer.Argument(..., help="NDJSON file written by --dead-letter"),
    limit: int = typer.Option(100, "--limit", help="Maximum entries to show"),
):
    """List batches that failed delivery in earlier runs."""
    for rec in ErrorLedger.read_ndjson(path, max_records=limit):
        typer.echo(json.dumps(rec.to_dict()))


if __name__ == "__main__":
    app()
