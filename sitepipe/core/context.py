"""Run context — the state one pipeline run shares with its actions.

Holds the run's artifact table, the abort signal, and the ordered log of
action status transitions.  Each run gets a fresh context; nothing here
outlives the run.
"""

from __future__ import annotations

import threading

from sitepipe.core.artifact_table import ArtifactTable
from sitepipe.core.errors import InvalidTransitionError
from sitepipe.models.actions import VALID_TRANSITIONS, ActionStatus, RunEvent


class RunContext:
    """Per-run shared state.

    Parameters
    ----------
    run_id:
        Identifier of the run.
    artifacts:
        The run's artifact table.  A new one is created if not provided.
    """

    def __init__(self, run_id: str, artifacts: ArtifactTable | None = None) -> None:
        self.run_id = run_id
        self.artifacts = artifacts or ArtifactTable(run_id)
        self._abort = threading.Event()
        self._lock = threading.Lock()
        self._events: list[RunEvent] = []
        self._statuses: dict[str, ActionStatus] = {}

    # ------------------------------------------------------------------
    # Abort
    # ------------------------------------------------------------------

    def abort(self) -> None:
        """Stop launching new run-order groups; in-flight actions finish."""
        self._abort.set()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def status(self, action_name: str) -> ActionStatus:
        with self._lock:
            return self._statuses.get(action_name, ActionStatus.PENDING)

    def transition(
        self,
        action_name: str,
        stage_name: str,
        run_order: int,
        target: ActionStatus,
    ) -> RunEvent:
        """Move an action to *target*, recording the transition."""
        with self._lock:
            current = self._statuses.get(action_name, ActionStatus.PENDING)
            allowed = VALID_TRANSITIONS.get(current, set())
            if target not in allowed:
                raise InvalidTransitionError(
                    f"Cannot transition {action_name} from {current.value} to {target.value}. "
                    f"Allowed: {[s.value for s in allowed]}"
                )
            event = RunEvent(
                sequence=len(self._events) + 1,
                action_name=action_name,
                stage_name=stage_name,
                run_order=run_order,
                from_status=current,
                to_status=target,
            )
            self._events.append(event)
            self._statuses[action_name] = target
            return event

    @property
    def events(self) -> list[RunEvent]:
        with self._lock:
            return list(self._events)
