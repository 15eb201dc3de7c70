"""
Delivery pipeline: sends sealed groups to the sink.

Each group gets up to ``max_retries`` sink calls with exponential backoff
between them. A rate limiter enforces a minimum interval after the previous
successful send and applies before every attempt, retries included. A group
that fails every attempt is recorded in the ErrorLedger and reported back as
an undelivered DeliveryResult; the pipeline itself never raises for sink
errors.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional, Sequence

from loguru import logger

from .clock import Clock, MonotonicClock
from .errors import describe_error
from .ledger import ErrorLedger
from .metrics import DELIVERY_ATTEMPTS_TOTAL, RunMetrics
from .models import DeliveryAttempt, DeliveryResult, FailureRecord, Product
from .sinks import SinkLike, call_sink
from .sizing import encode_group


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_retries: Total sink calls per group (first try included)
        retry_delay_ms: Base delay before the first retry
        multiplier: Growth factor per attempt (1s, 2s, 4s... by default)
    """

    max_retries: int = 3
    retry_delay_ms: float = 1000.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must be >= 0")

    def backoff_ms(self, attempt: int) -> float:
        """Delay after the failed 0-based ``attempt``."""
        return self.retry_delay_ms * (self.multiplier**attempt)

    def total_backoff_ms(self) -> float:
        """Sum of all delays when every attempt fails."""
        return sum(self.backoff_ms(a) for a in range(self.max_retries - 1))


class RateLimiter:
    """Minimum interval between successful sends."""

    def __init__(self, min_interval_ms: float = 0, clock: Optional[Clock] = None):
        if min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0")
        self._interval = min_interval_ms / 1000.0
        self._clock = clock or MonotonicClock()
        self._last_sent: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    async def wait(self) -> float:
        """Sleep until the interval has elapsed. Returns seconds waited."""
        if not self.enabled or self._last_sent is None:
            return 0.0
        remaining = self._interval - (self._clock.now() - self._last_sent)
        if remaining <= 0:
            return 0.0
        logger.debug(f"Rate limit: waiting {remaining * 1000:.0f} ms before next send")
        await self._clock.sleep(remaining)
        return remaining

    def mark_sent(self) -> None:
        self._last_sent = self._clock.now()


class DeliveryPipeline:
    """Retry/backoff/rate-limit protocol in front of a sink.

    Example:
        ledger = ErrorLedger()
        pipeline = DeliveryPipeline(sink, ledger=ledger)
        result = await pipeline.send(group, sequence=1)
        if not result.delivered:
            ...
    """

    def __init__(
        self,
        sink: SinkLike,
        *,
        ledger: ErrorLedger,
        retry_policy: Optional[RetryPolicy] = None,
        min_send_interval_ms: float = 0,
        clock: Optional[Clock] = None,
        metrics: Optional[RunMetrics] = None,
    ):
        self._sink = sink
        self._ledger = ledger
        self._policy = retry_policy or RetryPolicy()
        self._clock = clock or MonotonicClock()
        self._limiter = RateLimiter(min_send_interval_ms, self._clock)
        self._metrics = metrics or RunMetrics()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    @property
    def metrics(self) -> RunMetrics:
        return self._metrics

    async def send(self, group: Sequence[Product], sequence: int) -> DeliveryResult:
        payload = encode_group(group)
        size = len(payload)
        count = len(group)
        max_retries = self._policy.max_retries
        last_error: Optional[BaseException] = None

        for attempt in range(max_retries):
            await self._limiter.wait()
            try:
                await call_sink(self._sink, payload)
            except Exception as exc:
                last_error = exc
                DELIVERY_ATTEMPTS_TOTAL.labels(outcome="failure").inc()
                backoff = self._policy.backoff_ms(attempt) if attempt < max_retries - 1 else 0.0
                log = logger.bind(**asdict(DeliveryAttempt(sequence, attempt, backoff)))
                log.warning(
                    f"Batch send failed: batch={sequence} attempt={attempt + 1}/{max_retries} "
                    f"error={describe_error(exc)}"
                )
                if backoff:
                    log.debug(f"Retrying after backoff ({backoff:.0f} ms)")
                    await self._clock.sleep(backoff / 1000.0)
                continue

            self._limiter.mark_sent()
            DELIVERY_ATTEMPTS_TOTAL.labels(outcome="success").inc()
            self._metrics.record_batch(size, count)
            logger.bind(sequence=sequence, attempt=attempt).info(
                f"Batch sent successfully: batch={sequence} products={count} "
                f"size_mb={size / (1024 * 1024):.2f} attempt={attempt + 1}"
            )
            return DeliveryResult(
                sequence=sequence,
                delivered=True,
                attempts=attempt + 1,
                size_bytes=size,
                record_count=count,
            )

        failure = FailureRecord(
            sequence=sequence,
            error=describe_error(last_error) if last_error else "unknown error",
            timestamp=self._clock.utc_now().isoformat(),
            record_count=count,
        )
        self._ledger.append(failure)
        self._metrics.record_failure()
        logger.bind(sequence=sequence).error(
            f"Batch send failed after all retries: batch={sequence} "
            f"attempts={max_retries} error={failure.error}"
        )
        return DeliveryResult(
            sequence=sequence,
            delivered=False,
            attempts=max_retries,
            size_bytes=size,
            record_count=count,
            failure=failure,
        )
