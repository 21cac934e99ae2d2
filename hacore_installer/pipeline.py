from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .errors import ConfigError
from .state_store import is_step_completed, mark_step_completed

logger = logging.getLogger(__name__)


class Step(Protocol):
    """One stage of the install. Must be safe to run again on a finished host."""

    step_id: str

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]
    skipped_steps: List[str]


def _check_bounds(steps: Sequence[Step], *bounds: Optional[str]) -> None:
    step_ids = [s.step_id for s in steps]
    for bound in bounds:
        if bound is not None and bound not in step_ids:
            raise ConfigError(f"Unknown step_id {bound!r} (known: {', '.join(step_ids)})")


def run_pipeline(
    *,
    state: Dict[str, Any],
    steps: Sequence[Step],
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
) -> PipelineResult:
    """Run steps in order, skipping those an interrupted run already completed.

    execution.finished is set only when the whole list ran (no stop_after);
    ensure_defaults() then treats the next invocation as a fresh pass, where
    each step decides for itself whether its resource already exists.

    A failing step is recorded under execution.errors together with its
    step_id and the exception propagates; completed_steps is left as is so
    the next run resumes at the failed step.
    """

    _check_bounds(steps, start_at, stop_after)

    exe = state.setdefault("execution", {})
    exe["finished"] = False
    ran: List[str] = []
    skipped: List[str] = []

    started = start_at is None

    for step in steps:
        if not started:
            if step.step_id == start_at:
                started = True
            else:
                continue

        exe["current_step"] = step.step_id

        if (not force) and is_step_completed(state, step.step_id):
            logger.info("Skipping step %s (already completed)", step.step_id)
            skipped.append(step.step_id)
        else:
            logger.info("==> Running step %s", step.step_id)
            try:
                state = step.run(state)
            except Exception as e:
                exe = state.setdefault("execution", {})
                exe.setdefault("errors", []).append({"step": step.step_id, "error": str(e)})
                raise
            exe = state.setdefault("execution", {})
            mark_step_completed(state, step.step_id)
            ran.append(step.step_id)

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    exe["current_step"] = None
    exe["finished"] = stop_after is None
    return PipelineResult(state=state, ran_steps=ran, skipped_steps=skipped)
