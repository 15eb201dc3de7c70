"""
Feed driver: pulls records from a source, batches them and owns shutdown.

State machine (one-way):

    RUNNING --end of stream--------------------------> STOPPED
    RUNNING --shutdown--> DRAINING --final flush-----> STOPPED

Records arriving outside RUNNING are ignored. A shutdown request takes effect
between completed offers: a delivery already in flight finishes first, then the
partial group is flushed exactly once. A fatal error stops the run at once: a
pending drain is cancelled rather than flushed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

from loguru import logger

from .accumulator import BatchAccumulator
from .clock import Clock, MonotonicClock
from .config import BatcherSettings, get_settings
from .errors import DeliveryExhaustedError, FeedBatcherError, SourceError, describe_error
from .ledger import ErrorLedger
from .metrics import RECORDS_TOTAL, RunMetrics
from .models import DeliveryResult, DriverState, Product, RunSummary
from .pipeline import DeliveryPipeline, RetryPolicy
from .sinks import SinkLike
from .sources import TEXT_KEY, RawRecord, RecordSource

# Google Merchant feeds use <g:id>/<g:description>; plain RSS/Atom use bare tags.
ID_KEYS = ("g:id", "id")
TITLE_KEYS = ("title",)
DESCRIPTION_KEYS = ("g:description", "description", "summary")


def _text(value: Any) -> str:
    """Unwrap text-holder values ({"$text": ...} maps, element-like objects)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return _text(value.get(TEXT_KEY))
    inner = getattr(value, "text", None)
    if isinstance(inner, str):
        return inner
    return str(value)


def _first(raw: Mapping[str, Any], keys) -> str:
    for key in keys:
        value = _text(raw.get(key)).strip()
        if value:
            return value
    return ""


def extract_product(raw: Mapping[str, Any]) -> Product:
    """Build a Product from a raw field map.

    Missing fields become empty strings; check ``is_batchable`` before use.
    """
    return Product(
        id=_first(raw, ID_KEYS),
        title=_first(raw, TITLE_KEYS),
        description=_first(raw, DESCRIPTION_KEYS),
    )


class FeedDriver:
    """
    Drives one run: source -> accumulator -> delivery pipeline -> sink.

    Example:
        driver = FeedDriver(XmlFeedSource("feed.xml"), ConsoleSink())
        loop.add_signal_handler(signal.SIGTERM, driver.shutdown_soon)
        summary = await driver.run()
    """

    def __init__(
        self,
        source: RecordSource,
        sink: SinkLike,
        *,
        settings: Optional[BatcherSettings] = None,
        clock: Optional[Clock] = None,
        ledger: Optional[ErrorLedger] = None,
    ):
        self._settings = settings or get_settings()
        self._source = source
        self._clock = clock or MonotonicClock()
        self._ledger = ledger if ledger is not None else ErrorLedger()
        self._metrics = RunMetrics()

        s = self._settings
        self._pipeline = DeliveryPipeline(
            sink,
            ledger=self._ledger,
            retry_policy=RetryPolicy(max_retries=s.max_retries, retry_delay_ms=s.retry_delay_ms),
            min_send_interval_ms=s.min_batch_interval_ms,
            clock=self._clock,
            metrics=self._metrics,
        )
        self._accumulator = BatchAccumulator(
            self._deliver,
            max_batch_size=s.max_batch_size,
            safety_margin=s.safety_margin,
        )

        # Counters (owned here; summary() hands out snapshots)
        self.processed = 0
        self.skipped = 0
        self.batches_sent = 0
        self._sequence = 0

        self._state = DriverState.RUNNING
        self._shutdown_task: Optional[asyncio.Task] = None
        self._aborted = False
        self._last_progress = self._clock.now()

    # --------------- properties

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def ledger(self) -> ErrorLedger:
        return self._ledger

    @property
    def accumulator(self) -> BatchAccumulator:
        return self._accumulator

    @property
    def metrics(self) -> RunMetrics:
        return self._metrics

    def summary(self) -> RunSummary:
        return RunSummary(
            processed=self.processed,
            skipped=self.skipped,
            batches_sent=self.batches_sent,
            errors=len(self._ledger),
            state=self._state,
            failures=self._ledger.entries,
            shutdown_requested=self._shutdown_task is not None,
        )

    # --------------- record handling

    async def handle(self, raw: RawRecord) -> Optional[DeliveryResult]:
        """Process one raw record. Returns the result of any group it sealed."""
        if self._state is not DriverState.RUNNING:
            logger.debug(f"Ignoring record while {self._state.value}")
            return None

        product = extract_product(raw)
        if not product.is_batchable:
            self.skipped += 1
            RECORDS_TOTAL.labels(status="skipped").inc()
            logger.debug(
                f"Skipping product without id or title: "
                f"id={product.id or 'missing'} title={product.title or 'missing'}"
            )
            return None
        if not product.is_encodable:
            self.skipped += 1
            RECORDS_TOTAL.labels(status="skipped").inc()
            logger.warning(f"Skipping product {product.id!r}: text cannot be encoded as UTF-8")
            return None

        result = await self._accumulator.offer(product)
        self.processed += 1
        RECORDS_TOTAL.labels(status="processed").inc()
        self._maybe_log_progress()
        return result

    async def _deliver(self, group) -> DeliveryResult:
        self._sequence += 1
        result = await self._pipeline.send(group, self._sequence)
        if result.delivered:
            self.batches_sent += 1
        return result

    def _check(self, result: Optional[DeliveryResult]) -> None:
        if result is None or result.delivered:
            return
        if self._settings.continue_on_failure:
            logger.warning(
                f"Continuing after losing batch {result.sequence} "
                f"({result.record_count} products); see error ledger"
            )
            return
        raise DeliveryExhaustedError(self._ledger.entries)

    # --------------- run / shutdown

    async def run(self) -> RunSummary:
        """Consume the source to completion (or until shutdown)."""
        s = self._settings
        self._metrics.start()
        logger.info(
            f"Starting feed processing: max_batch_size={s.max_batch_size} "
            f"safety_margin={s.safety_margin} max_retries={s.max_retries}"
        )

        try:
            it = iter(self._source)
            while self._state is DriverState.RUNNING:
                try:
                    raw = next(it)
                except StopIteration:
                    break
                except SourceError:
                    raise
                except Exception as e:
                    raise SourceError(describe_error(e)) from e

                self._check(await self.handle(raw))
                # parsing never suspends; give signal handlers a turn per record
                await asyncio.sleep(0)

            if self._shutdown_task is None:
                self._check(await self._accumulator.flush())
            if self._shutdown_task is not None:
                await self._shutdown_task
        except asyncio.CancelledError:
            self._abort()
            raise
        except Exception as e:
            self._abort()
            await self._reap_shutdown()
            reason = e if isinstance(e, FeedBatcherError) else describe_error(e)
            logger.error(f"Feed processing aborted: {reason}")
            raise
        finally:
            self._source.close()

        self._state = DriverState.STOPPED
        self._log_completion()
        return self.summary()

    def _abort(self) -> None:
        """Stop for good: no drain flush may reach the sink after a fatal error."""
        self._aborted = True
        self._state = DriverState.STOPPED
        self._source.pause()
        if self._shutdown_task is not None and not self._shutdown_task.done():
            self._shutdown_task.cancel()

    async def _reap_shutdown(self) -> None:
        task = self._shutdown_task
        if task is None:
            return
        # collect the outcome so a cancelled or failed drain is never left unobserved
        await asyncio.gather(task, return_exceptions=True)

    def shutdown_soon(self) -> Optional[asyncio.Task]:
        """Schedule a graceful shutdown; safe to use as a signal handler."""
        if self._state is not DriverState.RUNNING:
            return self._shutdown_task
        self._state = DriverState.DRAINING
        self._source.pause()
        self._shutdown_task = asyncio.ensure_future(self._drain())
        return self._shutdown_task

    async def shutdown(self) -> RunSummary:
        """Request shutdown and wait for the final flush. No-op once draining/stopped."""
        task = self.shutdown_soon()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                # cancelled by a fatal error in run(), which reports it
                if not self._aborted:
                    raise
        return self.summary()

    async def _drain(self) -> None:
        logger.info("Graceful shutdown initiated")
        try:
            if self._accumulator.pending or self._accumulator.busy:
                logger.info(
                    f"Sending partial batch before shutdown (products={self._accumulator.pending})"
                )
            self._check(await self._accumulator.flush())
        finally:
            self._state = DriverState.STOPPED
        logger.info(
            f"Shutdown complete: processed={self.processed} batches_sent={self.batches_sent}"
        )

    # --------------- logging

    def _maybe_log_progress(self) -> None:
        s = self._settings
        if not s.show_progress:
            return
        now = self._clock.now()
        if now - self._last_progress < s.progress_interval_sec:
            return
        self._last_progress = now
        logger.info(
            f"Processing progress: processed={self.processed} batches_sent={self.batches_sent} "
            f"pending={self._accumulator.pending} skipped={self.skipped}"
        )

    def _log_completion(self) -> None:
        logger.success(
            f"Processing complete: processed={self.processed} batches_sent={self.batches_sent} "
            f"skipped={self.skipped} errors={len(self._ledger)}"
        )
        if self._settings.enable_metrics:
            logger.bind(**self._metrics.snapshot()).info(
                f"Processing metrics: {self._metrics.snapshot()}"
            )
        if self._ledger:
            logger.warning(f"Processing completed with errors (count={len(self._ledger)})")
