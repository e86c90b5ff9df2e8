# File: schemagen/phases.py
"""
SchemaGen - Phase Runner
==========================
Executes an ordered list of generation phases over a shared
``GenerationContext``.

Ordering is fixed at construction: phases are sorted topologically by
their declared dependencies, ties broken by registration order, so the
same registration always yields the same execution order.  Duplicate
ids, unknown dependencies and cycles raise ``PhaseRegistrationError``
before anything runs.

Run state machine::

    run:    PENDING → RUNNING → COMPLETED | FAILED
    phase:  SCHEDULED → RUNNING → COMPLETED | SKIPPED | FAILED

A phase whose ``run`` raises is marked FAILED, nothing it returned is
merged, later phases stay SCHEDULED and the runner raises
``PhaseExecutionError``.  There are no retries.  Cancellation is
cooperative and only observed between phases.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from schemagen.context import GenerationContext, StructuredLogger
from schemagen.errors import (
    GenerationCancelledError,
    PhaseExecutionError,
    PhaseRegistrationError,
)
from schemagen.utils import Timer

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.phases")


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


class RunState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PhaseState(str, Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Phase definitions
# ---------------------------------------------------------------------------


class Phase:
    """
    One step of the generation pipeline.

    Subclasses set ``id``, ``depends_on`` and ``outputs`` and implement
    ``run``.  ``run`` returns a mapping whose keys must all be listed in
    ``outputs``; the runner merges it into the context.
    """

    id: str = ""
    depends_on: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()
    description: str = ""

    def should_run(self, context: GenerationContext) -> bool:
        return True

    def run(self, context: GenerationContext) -> Mapping[str, Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        deps: str = ", ".join(self.depends_on) or "-"
        return f"<Phase {self.id} deps=[{deps}] outputs={list(self.outputs)}>"


class FunctionPhase(Phase):
    """A ``Phase`` built from plain callables."""

    def __init__(
        self,
        id: str,
        run: Callable[[GenerationContext], Mapping[str, Any]],
        *,
        depends_on: Sequence[str] = (),
        outputs: Sequence[str] = (),
        should_run: Optional[Callable[[GenerationContext], bool]] = None,
        description: str = "",
    ) -> None:
        self.id = id
        self.depends_on = tuple(depends_on)
        self.outputs = tuple(outputs)
        self.description = description
        self._run = run
        self._should_run = should_run

    def should_run(self, context: GenerationContext) -> bool:
        if self._should_run is None:
            return True
        return self._should_run(context)

    def run(self, context: GenerationContext) -> Mapping[str, Any]:
        return self._run(context)


@dataclass(slots=True)
class PhaseHook:
    """
    Callbacks around one phase.

    ``before(context)`` runs before ``run``; ``after(context, output)`` sees
    the output before it is merged; ``on_error(context, exc)`` observes a
    failure (the failure still propagates).
    """

    before: Optional[Callable[[GenerationContext], None]] = None
    after: Optional[Callable[[GenerationContext, Mapping[str, Any]], None]] = None
    on_error: Optional[Callable[[GenerationContext, BaseException], None]] = None


class CancellationToken:
    """Cooperative cancellation flag checked before each phase."""

    __slots__ = ("_cancelled", "reason")

    def __init__(self) -> None:
        self._cancelled: bool = False
        self.reason: str = ""

    def cancel(self, reason: str = "") -> None:
        self._cancelled = True
        self.reason = reason

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled


# ---------------------------------------------------------------------------
# Run records
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class PhaseMetrics:
    """Timing and outcome for a single phase."""

    phase_id: str
    state: PhaseState = PhaseState.SCHEDULED
    elapsed_seconds: float = 0.0
    keys_written: List[str] = field(default_factory=list)
    detail: str = ""


@dataclass(slots=True)
class PipelineRun:
    """State of one ``PhaseRunner.run`` invocation."""

    order: List[str]
    state: RunState = RunState.PENDING
    metrics: Dict[str, PhaseMetrics] = field(default_factory=dict)
    failed_phase: Optional[str] = None
    error: Optional[BaseException] = None

    def __post_init__(self) -> None:
        if not self.metrics:
            self.metrics = {pid: PhaseMetrics(phase_id=pid) for pid in self.order}

    @property
    def phase_states(self) -> Dict[str, PhaseState]:
        return {pid: self.metrics[pid].state for pid in self.order}

    def state_of(self, phase_id: str) -> PhaseState:
        return self.metrics[phase_id].state

    @property
    def executed(self) -> List[str]:
        return [pid for pid in self.order if self.metrics[pid].state == PhaseState.COMPLETED]

    @property
    def skipped(self) -> List[str]:
        return [pid for pid in self.order if self.metrics[pid].state == PhaseState.SKIPPED]

    @property
    def total_elapsed_seconds(self) -> float:
        return sum(m.elapsed_seconds for m in self.metrics.values())


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class PhaseRunner:
    """
    Validates, orders and executes phases.

    Usage::

        runner = PhaseRunner([AnalysisPhase(), PlanPhase()])
        run = runner.run(context)
        assert run.state is RunState.COMPLETED
    """

    def __init__(
        self,
        phases: Sequence[Phase],
        hooks: Optional[Mapping[str, Sequence[PhaseHook]]] = None,
    ) -> None:
        self._phases: Dict[str, Phase] = {}
        for phase in phases:
            if not phase.id:
                raise PhaseRegistrationError(f"Phase {phase!r} has no id.")
            if phase.id in self._phases:
                raise PhaseRegistrationError(
                    f"Duplicate phase id '{phase.id}'.",
                    context={"phase": phase.id},
                )
            self._phases[phase.id] = phase

        self._order: List[str] = self._sort(list(self._phases.values()))
        self._hooks: Dict[str, List[PhaseHook]] = {}
        for phase_id, phase_hooks in (hooks or {}).items():
            for hook in phase_hooks:
                self.add_hook(phase_id, hook)

        logger.debug("Phase order: %s", " → ".join(self._order))

    # -----------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------

    @staticmethod
    def _sort(phases: List[Phase]) -> List[str]:
        """
        Kahn's algorithm with a min-heap on registration index.

        Among phases whose dependencies are satisfied, the one registered
        first runs first.  O((V + E) log V).
        """
        index: Dict[str, int] = {p.id: i for i, p in enumerate(phases)}
        in_degree: Dict[str, int] = {p.id: 0 for p in phases}
        dependants: Dict[str, List[str]] = {p.id: [] for p in phases}

        for phase in phases:
            for dep in phase.depends_on:
                if dep not in index:
                    raise PhaseRegistrationError(
                        f"Phase '{phase.id}' depends on unregistered phase '{dep}'.",
                        context={"phase": phase.id, "dependency": dep},
                    )
                if dep == phase.id:
                    raise PhaseRegistrationError(
                        f"Phase '{phase.id}' depends on itself.",
                        context={"phase": phase.id, "cycle": [phase.id]},
                    )
            for dep in set(phase.depends_on):
                dependants[dep].append(phase.id)
                in_degree[phase.id] += 1

        ready: List[Tuple[int, str]] = [
            (index[pid], pid) for pid, deg in in_degree.items() if deg == 0
        ]
        heapq.heapify(ready)
        order: List[str] = []

        while ready:
            _, pid = heapq.heappop(ready)
            order.append(pid)
            for nxt in dependants[pid]:
                in_degree[nxt] -= 1
                if in_degree[nxt] == 0:
                    heapq.heappush(ready, (index[nxt], nxt))

        if len(order) != len(phases):
            placed: Set[str] = set(order)
            cycle: List[str] = [p.id for p in phases if p.id not in placed]
            raise PhaseRegistrationError(
                f"Dependency cycle among phases: {', '.join(cycle)}.",
                context={"cycle": cycle},
            )
        return order

    @property
    def order(self) -> List[str]:
        return list(self._order)

    @property
    def phases(self) -> List[Phase]:
        return [self._phases[pid] for pid in self._order]

    def get(self, phase_id: str) -> Optional[Phase]:
        return self._phases.get(phase_id)

    def add_hook(self, phase_id: str, hook: PhaseHook) -> None:
        if phase_id not in self._phases:
            raise PhaseRegistrationError(
                f"Hook registered for unknown phase '{phase_id}'.",
                context={"phase": phase_id},
            )
        self._hooks.setdefault(phase_id, []).append(hook)

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def run(
        self,
        context: GenerationContext,
        cancellation: Optional[CancellationToken] = None,
    ) -> PipelineRun:
        """
        Execute every phase in order.

        Raises ``PhaseExecutionError`` when a phase fails and
        ``GenerationCancelledError`` when *cancellation* is set; in both
        cases the run record is attached as ``error.run``.
        """
        record = PipelineRun(order=list(self._order))
        record.state = RunState.RUNNING
        run_log: StructuredLogger = context.logger
        run_log.info("run.started", phases=len(self._order))

        for phase_id in self._order:
            if cancellation is not None and cancellation.is_cancelled:
                record.state = RunState.FAILED
                error = GenerationCancelledError(phase_id)
                record.failed_phase = phase_id
                record.error = error
                run_log.warning("run.cancelled", phase=phase_id, reason=cancellation.reason)
                error.run = record
                raise error

            self._run_phase(self._phases[phase_id], context, record)

        record.state = RunState.COMPLETED
        run_log.info(
            "run.completed",
            executed=len(record.executed),
            skipped=len(record.skipped),
        )
        return record

    def _run_phase(
        self,
        phase: Phase,
        context: GenerationContext,
        record: PipelineRun,
    ) -> None:
        metric: PhaseMetrics = record.metrics[phase.id]
        phase_log: StructuredLogger = context.logger.bind(phase=phase.id)
        hooks: List[PhaseHook] = self._hooks.get(phase.id, [])
        timer = Timer(phase.id)

        try:
            with timer:
                if not phase.should_run(context):
                    metric.state = PhaseState.SKIPPED
                else:
                    metric.state = PhaseState.RUNNING
                    phase_log.debug("phase.started")
                    for hook in hooks:
                        if hook.before is not None:
                            hook.before(context)

                    output: Mapping[str, Any] = phase.run(context) or {}
                    for hook in hooks:
                        if hook.after is not None:
                            hook.after(context, output)

                    metric.keys_written = context.commit(phase.id, output, phase.outputs)
        except Exception as exc:
            metric.elapsed_seconds = timer.elapsed
            metric.state = PhaseState.FAILED
            metric.detail = f"{type(exc).__name__}: {exc}"
            record.state = RunState.FAILED
            record.failed_phase = phase.id
            for hook in hooks:
                if hook.on_error is not None:
                    hook.on_error(context, exc)
            phase_log.error("phase.failed", error=metric.detail)
            error = PhaseExecutionError(phase.id, exc)
            error.run = record
            record.error = error
            raise error from exc

        metric.elapsed_seconds = timer.elapsed
        if metric.state == PhaseState.SKIPPED:
            phase_log.info("phase.skipped")
            return

        metric.state = PhaseState.COMPLETED
        phase_log.info(
            "phase.completed",
            keys=metric.keys_written,
            elapsed=round(timer.elapsed, 6),
        )

    def __repr__(self) -> str:
        return f"<PhaseRunner {' → '.join(self._order)}>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "CancellationToken",
    "FunctionPhase",
    "Phase",
    "PhaseHook",
    "PhaseMetrics",
    "PhaseRunner",
    "PhaseState",
    "PipelineRun",
    "RunState",
]

logger.debug("schemagen.phases loaded.")
