"""Drive a message through a workflow graph and record what each stage produced."""

from __future__ import annotations

import logging
import time
from typing import Any

from textflow.errors import WorkflowAborted
from textflow.graph import WorkflowGraph
from textflow.models import StageMessage, WorkflowEvent
from textflow.stage import RunContext

log = logging.getLogger(__name__)


class WorkflowRun:
    """Append-only event log of one run, plus the terminal output once finished."""

    def __init__(self) -> None:
        self._events: list[WorkflowEvent] = []
        self.output: StageMessage | None = None
        self.stage_timings: dict[str, float] = {}

    @property
    def events(self) -> tuple[WorkflowEvent, ...]:
        return tuple(self._events)

    @property
    def completed(self) -> bool:
        return self.output is not None

    def record(self, stage_id: str, payload: StageMessage) -> WorkflowEvent:
        event = WorkflowEvent(stage_id=stage_id, payload=payload, sequence=len(self._events))
        self._events.append(event)
        return event

    def payload(self, stage_id: str) -> StageMessage | None:
        for event in self._events:
            if event.stage_id == stage_id:
                return event.payload
        return None


class WorkflowRunner:
    def __init__(self, graph: WorkflowGraph) -> None:
        self.graph = graph

    async def run(self, message: Any, context: RunContext | None = None) -> WorkflowRun:
        """Feed ``message`` to the first stage and each output to the next.

        Raises:
            WorkflowAborted: a stage raised. Events recorded before it remain
                on ``exc.run``.
        """
        if context is None:
            context = RunContext()

        run = WorkflowRun()
        current = message
        for stage in self.graph.stages:
            stage_start = time.time()
            try:
                current = await stage.handle(current, context)
            except Exception as e:
                log.error("Stage %s raised %s: %s", stage.id, type(e).__name__, e)
                raise WorkflowAborted(stage.id, run, e) from e

            run.stage_timings[stage.id] = round(time.time() - stage_start, 3)
            run.record(stage.id, current)
            log.debug("Stage %s completed in %ss", stage.id, run.stage_timings[stage.id])

        run.output = current
        return run
