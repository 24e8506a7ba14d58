"""Exceptions raised by textflow workflows.

Recoverable kinds (TransportError, ExtractionError) are caught inside a
stage's primary path and turned into a fallback invocation. StageFailure and
WorkflowAborted are fatal and reach the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from textflow.runner import WorkflowRun


class TextflowError(Exception):
    """Base exception for all textflow errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InputError(TextflowError):
    """Input is empty or blank. Stages short-circuit this to a neutral result."""


class ExtractionError(TextflowError):
    """No usable JSON object could be recovered from a generator reply."""


class TransportError(TextflowError):
    """The generator call failed, timed out, or was cancelled."""


class StageFailure(TextflowError):
    """A stage's fallback path failed. Unrecoverable."""

    def __init__(self, stage_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Fallback for stage '{stage_id}' failed: {cause}",
            {"stage_id": stage_id, "cause": type(cause).__name__},
        )
        self.stage_id = stage_id


class WorkflowBuildError(TextflowError):
    """A workflow chain could not be constructed."""


class WorkflowAborted(TextflowError):
    """A stage raised and the run stopped.

    `run` holds the events recorded before the failing stage; they remain
    valid. No event exists for the failing stage itself.
    """

    def __init__(self, stage_id: str, run: WorkflowRun, cause: BaseException) -> None:
        super().__init__(
            f"Workflow aborted at stage '{stage_id}': {cause}",
            {"stage_id": stage_id, "completed_stages": len(run.events)},
        )
        self.stage_id = stage_id
        self.run = run
        self.cause = cause


# Error kinds that send a stage to its fallback path.
RECOVERABLE_ERRORS: tuple[type[TextflowError], ...] = (TransportError, ExtractionError)
