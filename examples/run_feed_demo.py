"""
Demo script for the FeedDriver.

Feeds synthetic products through a flaky sink to show size-bounded batching,
retries with backoff and a graceful shutdown half way through the stream.
"""

import asyncio
import random

from loguru import logger

from feed_batcher import BatcherSettings, FeedDriver, IterableSource


class FlakySink:
    """Sink that fails roughly one call in four."""

    def __init__(self, failure_rate: float = 0.25):
        self.failure_rate = failure_rate
        self.batches = 0

    async def call(self, payload: bytes) -> None:
        await asyncio.sleep(0.01)  # simulate I/O latency
        if random.random() < self.failure_rate:
            raise ConnectionError("simulated sink hiccup")
        self.batches += 1
        logger.info(f"FlakySink accepted batch #{self.batches} ({len(payload) / 1024:.1f} KB)")


def products(n: int):
    for i in range(n):
        yield {
            "g:id": f"SKU-{i:05d}",
            "title": f"Demo product {i}",
            "g:description": "lorem ipsum " * random.randint(10, 400),
        }


async def main():
    settings = BatcherSettings(
        max_batch_size=256 * 1024,
        retry_delay_ms=50,
        max_retries=5,
        min_batch_interval_ms=20,
        show_progress=True,
        progress_interval_sec=0.5,
    )
    driver = FeedDriver(IterableSource(products(5_000)), FlakySink(), settings=settings)

    run = asyncio.create_task(driver.run())

    # Ask for a graceful stop while the stream is still being consumed
    await asyncio.sleep(1.0)
    logger.info("🛑 Requesting shutdown")
    driver.shutdown_soon()

    summary = await run
    logger.info(f"✅ Demo complete: {summary.to_dict()}")


if __name__ == "__main__":
    asyncio.run(main())
