"""Stage interface and the per-run context stages receive.

A stage accepts one message type and produces another. Stages declare both
types so a workflow can check the chain when it is built rather than on
every message. Stages hold configuration only; nothing carries over from one
invocation to the next.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, ClassVar

from textflow.errors import TransportError
from textflow.generator import Generator, collect_stream
from textflow.models import StageMessage


class RunContext:
    """Per-run state shared by the stages of one workflow run.

    Owns the in-flight generator call so it can be cancelled from outside the
    run. A cancelled or timed-out call raises TransportError, which the
    calling stage treats like any other primary-path failure. Once cancelled,
    later calls in the same context fail immediately.

    A chunked run gives each chunk a ``child()`` context; cancelling the
    parent cancels every child and its in-flight call.

    Args:
        call_timeout: Seconds allowed per generator call; None for no limit.
        on_fragment: Called with each streamed reply fragment as it arrives.
    """

    def __init__(
        self,
        call_timeout: float | None = None,
        on_fragment: Callable[[str], None] | None = None,
    ) -> None:
        self.call_timeout = call_timeout
        self.on_fragment = on_fragment
        self._cancelled = False
        self._in_flight: asyncio.Future | None = None
        self._children: list[RunContext] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def child(self) -> RunContext:
        """A fresh context with the same settings, cancelled along with this one."""
        ctx = RunContext(call_timeout=self.call_timeout, on_fragment=self.on_fragment)
        if self._cancelled:
            ctx._cancelled = True
        else:
            self._children.append(ctx)
        return ctx

    def cancel(self) -> None:
        """Cancel the in-flight generator call and any later ones."""
        self._cancelled = True
        if self._in_flight is not None and not self._in_flight.done():
            self._in_flight.cancel()
        children, self._children = self._children, []
        for ctx in children:
            ctx.cancel()

    async def call(self, generator: Generator, prompt: str, streaming: bool = False) -> str:
        """Run one generator call and return the full reply text."""
        if self._cancelled:
            raise TransportError("Run cancelled before generator call")

        if streaming:
            coro = collect_stream(generator.stream(prompt), self.on_fragment)
        else:
            coro = generator.generate(prompt)

        task = asyncio.ensure_future(coro)
        self._in_flight = task
        try:
            return await asyncio.wait_for(task, self.call_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(
                "Generator call timed out", {"timeout": self.call_timeout}
            ) from e
        except asyncio.CancelledError:
            if self._cancelled:
                raise TransportError("Generator call cancelled") from None
            raise
        finally:
            self._in_flight = None


class Stage(ABC):
    """One step of a workflow."""

    stage_id: ClassVar[str] = "stage"
    input_type: ClassVar[type] = object
    output_type: ClassVar[type] = StageMessage

    @property
    def id(self) -> str:
        return self.stage_id

    @abstractmethod
    async def handle(self, message: Any, context: RunContext) -> StageMessage:
        """Process ``message`` and return this stage's output message."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"
