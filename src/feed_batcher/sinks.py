"""
Sink adapters.

A sink is anything that accepts the encoded group bytes: a plain callable, a
coroutine function, or an object exposing ``call(payload)``. Any exception it
raises is treated as a transient failure by the delivery pipeline.
"""

from __future__ import annotations

import inspect
from typing import Awaitable, Callable, List, Optional, Protocol, Union

import typer

from .sizing import decode_group

ONE_MEGABYTE = 1_048_576.0


class Sink(Protocol):
    """Protocol for delivery sinks (sync or async ``call``)."""

    def call(self, payload: bytes) -> Optional[Awaitable[None]]:
        ...


SinkLike = Union[Sink, Callable[[bytes], Optional[Awaitable[None]]]]


async def call_sink(sink: SinkLike, payload: bytes) -> None:
    """Invoke a sync or async sink and wait for it to finish."""
    fn = getattr(sink, "call", sink)
    result = fn(payload)
    if inspect.isawaitable(result):
        await result


class ConsoleSink:
    """Prints a short receipt per batch; the default sink of the CLI."""

    def __init__(self) -> None:
        self.batch_num = 0

    def call(self, payload: bytes) -> None:
        self.batch_num += 1
        products = decode_group(payload)
        size_mb = len(payload) / ONE_MEGABYTE
        typer.secho(f"Received batch{self.batch_num:>4}", bold=True)
        typer.echo(f"Size: {size_mb:>10.2f}MB")
        typer.echo(f"Products: {len(products):>8}")
        typer.echo("")


class CollectingSink:
    """Keeps every payload in memory. Handy for examples and tests."""

    def __init__(self) -> None:
        self.payloads: List[bytes] = []

    async def call(self, payload: bytes) -> None:
        self.payloads.append(payload)

    @property
    def groups(self):
        return [decode_group(p) for p in self.payloads]
