from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from .config import DEFAULT_MAX_BATCH_SIZE, DEFAULT_SAFETY_MARGIN
from .errors import ConfigurationError
from .models import DeliveryResult, Product
from .sizing import grown_size

EMPTY_GROUP_SIZE = 2  # "[]"

DeliverFn = Callable[[List[Product]], Awaitable[DeliveryResult]]


class BatchAccumulator:
    """
    Packs products into groups whose encoded size stays under a byte ceiling.

    The ceiling is ``max_batch_size - safety_margin`` (exclusive). A product that
    would push the current group to the ceiling seals the group first; the
    sealed group is handed to ``deliver`` before the product starts the next
    one. An empty group accepts any product, so a single oversized product is
    delivered on its own.

    Usage:

        acc = BatchAccumulator(deliver=driver_deliver)
        for product in products:
            await acc.offer(product)   # may suspend while a group is delivered
        await acc.flush()              # final partial group
    """

    def __init__(
        self,
        deliver: DeliverFn,
        *,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        safety_margin: int = DEFAULT_SAFETY_MARGIN,
    ):
        if max_batch_size <= 0:
            raise ConfigurationError("max_batch_size must be > 0")
        if safety_margin <= 0:
            raise ConfigurationError("safety_margin must be > 0")
        if safety_margin >= max_batch_size:
            raise ConfigurationError("safety_margin must be smaller than max_batch_size")

        self._deliver = deliver
        self._max_batch_size = max_batch_size
        self._safety_margin = safety_margin

        self._group: List[Product] = []
        self._size = EMPTY_GROUP_SIZE

        # offer/flush never interleave; at most one group is sealing
        self._lock = asyncio.Lock()

    @property
    def ceiling(self) -> int:
        return self._max_batch_size - self._safety_margin

    @property
    def pending(self) -> int:
        return len(self._group)

    @property
    def pending_bytes(self) -> int:
        """Encoded size of the current group."""
        return self._size

    @property
    def busy(self) -> bool:
        """True while an offer or flush is in progress."""
        return self._lock.locked()

    async def offer(self, product: Product) -> Optional[DeliveryResult]:
        """Add a product, delivering the current group first if it would not fit.

        Returns the result of the sealed group's delivery, or None if nothing
        was sealed.
        """
        async with self._lock:
            result = None
            candidate = grown_size(self._size, len(self._group), product)

            if candidate >= self.ceiling and self._group:
                result = await self._seal_and_deliver()
                candidate = grown_size(self._size, 0, product)

            if candidate >= self.ceiling:
                logger.warning(
                    f"Product {product.id!r} alone exceeds the batch ceiling "
                    f"({candidate} >= {self.ceiling} bytes); sending it as its own batch"
                )

            self._group.append(product)
            self._size = candidate
            return result

    async def flush(self) -> Optional[DeliveryResult]:
        """Deliver whatever is accumulated. No-op when empty."""
        async with self._lock:
            if not self._group:
                return None
            return await self._seal_and_deliver()

    async def _seal_and_deliver(self) -> DeliveryResult:
        group = self._group
        # reset before delivering: the group is never re-sent from here
        self._group = []
        self._size = EMPTY_GROUP_SIZE
        return await self._deliver(group)
