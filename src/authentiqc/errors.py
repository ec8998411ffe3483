"""Exception taxonomy shared by the task runner, collaborators and API.

Input errors are raised synchronously before a task exists. Analysis and
repository errors happen inside a running flow and end up recorded on the
task as a structured ``TaskError``. Store errors signal programming mistakes
(a duplicate id or an illegal status transition), never a dismissal race.
"""

from __future__ import annotations

from typing import Literal

ErrorKind = Literal["analysis", "repository", "unexpected"]


class InputValidationError(ValueError):
    """Rejected user input; the task was never created."""


class AnalysisError(RuntimeError):
    """The AI vision service could not produce a profile or report."""


class RepositoryError(RuntimeError):
    """The product repository failed to read or write."""


class DuplicateTaskError(ValueError):
    """A task with the same id is already in the store."""


class InvalidTransitionError(ValueError):
    """A patch would move a task out of a terminal state or break its outcome."""


class TaskNotReadyError(RuntimeError):
    """The task has no completed result to hydrate from."""


def error_kind_for(exc: BaseException) -> ErrorKind:
    """Map a flow failure onto the kind recorded on the task."""
    if isinstance(exc, AnalysisError):
        return "analysis"
    if isinstance(exc, RepositoryError):
        return "repository"
    return "unexpected"
