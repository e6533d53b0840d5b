"""Error taxonomy for pipeline runs and pipeline construction.

Run-time failures derive from ``PipelineError`` and are converted into a
``Failed`` action outcome by the action wrapper.  ``OrderingViolation`` is
a programmer error and is raised while a Stage or Pipeline is being built,
never during a run.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for run-time pipeline failures."""


class ActionFailure(PipelineError):
    """An action reached ``Failed``.

    Parameters
    ----------
    message:
        Short human-readable reason.
    diagnostics:
        Captured diagnostic output (build logs, backend error text).
    """

    def __init__(self, message: str, *, diagnostics: str = "") -> None:
        super().__init__(message)
        self.diagnostics = diagnostics or message


class SourceFetchError(ActionFailure):
    """Auth or network failure talking to the source collaborator."""


class BuildFailure(ActionFailure):
    """The build sandbox exited non-zero."""

    def __init__(
        self, message: str, *, exit_code: int, diagnostics: str = ""
    ) -> None:
        super().__init__(message, diagnostics=diagnostics)
        self.exit_code = exit_code


class DeployFailure(ActionFailure):
    """The storage backend rejected a write (permission, quota)."""


class InvalidationFailure(ActionFailure):
    """The CDN rejected an invalidation request."""


class ActionTimeout(ActionFailure):
    """An action exceeded its wall-clock budget."""


class OrderingViolation(ValueError):
    """A Stage or Pipeline was constructed with conflicting ordering."""


class PipelineBusyError(RuntimeError):
    """``Pipeline.run()`` was called while a run is already in flight."""


class InvalidTransitionError(RuntimeError):
    """Raised when a requested action status transition is not valid."""
