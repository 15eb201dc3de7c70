"""
Feed Batcher

Streams product records from a feed and delivers them to a sink in groups
that stay under a byte ceiling, with bounded retries, exponential backoff,
rate limiting and a graceful draining shutdown.

Usage:
    from feed_batcher import FeedDriver, XmlFeedSource, ConsoleSink

    driver = FeedDriver(XmlFeedSource("feed.xml"), ConsoleSink())
    summary = await driver.run()
"""

from .accumulator import BatchAccumulator
from .clock import Clock, MonotonicClock
from .config import BatcherSettings, get_settings
from .driver import FeedDriver, extract_product
from .errors import ConfigurationError, DeliveryExhaustedError, FeedBatcherError, SourceError
from .ledger import ErrorLedger
from .models import DeliveryResult, DriverState, FailureRecord, Product, RunSummary
from .pipeline import DeliveryPipeline, RateLimiter, RetryPolicy
from .sinks import CollectingSink, ConsoleSink, Sink
from .sizing import encode_group, estimate
from .sources import IterableSource, RecordSource, XmlFeedSource

__version__ = "1.0.0"
__all__ = [
    # models
    "Product",
    "DriverState",
    "DeliveryResult",
    "FailureRecord",
    "RunSummary",
    # core
    "encode_group",
    "estimate",
    "BatchAccumulator",
    "DeliveryPipeline",
    "RetryPolicy",
    "RateLimiter",
    "ErrorLedger",
    "FeedDriver",
    "extract_product",
    # edges
    "RecordSource",
    "IterableSource",
    "XmlFeedSource",
    "Sink",
    "ConsoleSink",
    "CollectingSink",
    "Clock",
    "MonotonicClock",
    # config / errors
    "BatcherSettings",
    "get_settings",
    "FeedBatcherError",
    "ConfigurationError",
    "SourceError",
    "DeliveryExhaustedError",
]
