"""
Simulation Engine — side-effect-free dry run of a workflow.

Starting at the trigger, each node emits one event and picks its next
edge: linear kinds follow their first outgoing edge, condition nodes use
``pick_condition_branch``, split nodes roll against ``percentageA``.
Reaching an exit completes the run. The walk is bounded by a step guard
so graphs with loops that bypassed the connection validator still end.

The only non-determinism is the split roll and the event timestamps;
both come from the injectable ``rng`` and ``clock``.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging import getLogger
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sequence_builder.config import get_builder_config
from sequence_builder.workflow.condition import ContextLike, as_context, pick_condition_branch
from sequence_builder.workflow.workflow_model import (
    NodeKind,
    WorkflowEdge,
    WorkflowGraph,
    ensure_all_kinds,
)

logger = getLogger(__name__)


class SimulationEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    type: str
    message: str
    created_at: str
    level: Literal["info", "warning", "error"] = "info"


class SimulationResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    visited_node_ids: List[str] = Field(default_factory=list)
    visited_edge_ids: List[str] = Field(default_factory=list)
    events: List[SimulationEvent] = Field(default_factory=list)
    completed: bool = False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Run:
    graph: WorkflowGraph
    context: Any
    rng: Any
    clock: Callable[[], datetime]
    step: int = 0
    visited_node_ids: List[str] = field(default_factory=list)
    visited_edge_ids: List[str] = field(default_factory=list)
    events: List[SimulationEvent] = field(default_factory=list)
    completed: bool = False

    def emit(self, node, type_: str, message: str, level: str = "info") -> None:
        self.events.append(SimulationEvent(
            id=f"e_{node.id}_{self.step}",
            node_id=node.id,
            type=type_,
            message=message,
            created_at=self.clock().isoformat(),
            level=level,
        ))

    def outgoing(self, node_id: str) -> List[WorkflowEdge]:
        return [e for e in self.graph.edges if e.source == node_id]

    def first_outgoing(self, node_id: str) -> Optional[WorkflowEdge]:
        edges = self.outgoing(node_id)
        return edges[0] if edges else None

    def outgoing_on(self, node_id: str, handle: str) -> Optional[WorkflowEdge]:
        """Edge on ``handle``, else the first outgoing edge."""
        edges = self.outgoing(node_id)
        for edge in edges:
            if edge.source_handle == handle:
                return edge
        return edges[0] if edges else None


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ============================================================================
# Per-kind steps
# ============================================================================


def _step_trigger(node, run: _Run) -> Optional[WorkflowEdge]:
    run.emit(node, "trigger", "Trigger fired.")
    return run.first_outgoing(node.id)


def _step_send_email(node, run: _Run) -> Optional[WorkflowEdge]:
    run.emit(node, "send_email", f"Would send email: {node.config.subject or 'Untitled'}")
    return run.first_outgoing(node.id)


def _step_wait(node, run: _Run) -> Optional[WorkflowEdge]:
    cfg = node.config
    run.emit(node, "wait", f"Wait {_format_number(cfg.duration or 1)} {cfg.unit or 'days'}")
    return run.first_outgoing(node.id)


def _step_condition(node, run: _Run) -> Optional[WorkflowEdge]:
    decision = pick_condition_branch(node.config, run.context)
    if decision.matched:
        run.emit(node, "condition", f"Condition matched {decision.label}.")
    else:
        run.emit(node, "condition", "Condition fell through to Else.")
    return run.outgoing_on(node.id, decision.handle)


def _step_split(node, run: _Run) -> Optional[WorkflowEdge]:
    clamped_a = max(0.0, min(100.0, float(node.config.percentage_a)))
    roll = run.rng.random() * 100
    branch = "a" if roll < clamped_a else "b"
    run.emit(node, "split", f"Split selected variant {branch.upper()}.")
    return run.outgoing_on(node.id, branch)


def _step_webhook(node, run: _Run) -> Optional[WorkflowEdge]:
    run.emit(node, "webhook", f"Would call {node.config.url or 'URL missing'}")
    return run.first_outgoing(node.id)


def _step_exit(node, run: _Run) -> Optional[WorkflowEdge]:
    run.emit(node, "exit", "Workflow completed.")
    run.completed = True
    return None


_STEPS: Dict[NodeKind, Callable[[Any, _Run], Optional[WorkflowEdge]]] = {
    NodeKind.TRIGGER: _step_trigger,
    NodeKind.SEND_EMAIL: _step_send_email,
    NodeKind.WAIT: _step_wait,
    NodeKind.CONDITION: _step_condition,
    NodeKind.SPLIT: _step_split,
    NodeKind.WEBHOOK: _step_webhook,
    NodeKind.EXIT: _step_exit,
}
ensure_all_kinds(_STEPS, "simulate_workflow")


# ============================================================================
# Entry point
# ============================================================================


def simulate_workflow(
    graph: WorkflowGraph,
    context: ContextLike = None,
    *,
    rng: Optional[Any] = None,
    clock: Optional[Callable[[], datetime]] = None,
    max_steps: Optional[int] = None,
) -> SimulationResult:
    """Dry-run ``graph`` against a synthetic contact ``context``.

    Args:
        graph: Workflow to walk.
        context: ``ConditionContext`` or a mapping with the same keys.
        rng: Object with a ``random()`` method; defaults to ``random``.
        clock: Returns the timestamp stamped on each event.
        max_steps: Step guard; defaults to the configured guard.

    Never raises on graph shape: an incomplete run is reported through
    ``completed = False`` and a warning or error event.
    """
    limit = max_steps or get_builder_config().simulation_step_guard
    run = _Run(
        graph=graph,
        context=as_context(context),
        rng=rng if rng is not None else random,
        clock=clock or _utc_now,
    )

    trigger = graph.get_trigger_node()
    if trigger is None:
        run.events.append(SimulationEvent(
            id="simulation_no_trigger",
            type="error",
            level="error",
            message="No trigger node found.",
            created_at=run.clock().isoformat(),
        ))
        logger.info(f"Simulation of workflow {graph.id} aborted: no trigger")
        return SimulationResult(events=run.events)

    nodes = graph.node_map()
    current: Optional[str] = trigger.id

    while current is not None and run.step < limit:
        run.step += 1
        node = nodes.get(current)
        if node is None:
            run.events.append(SimulationEvent(
                id=f"simulation_missing_node_{current}",
                edge_id=run.visited_edge_ids[-1] if run.visited_edge_ids else None,
                type="warning",
                level="warning",
                message=f"Connection points to missing node {current}; simulation stopped.",
                created_at=run.clock().isoformat(),
            ))
            current = None
            break
        run.visited_node_ids.append(node.id)

        next_edge = _STEPS[node.node_kind](node, run)
        if run.completed:
            break
        if next_edge is None:
            run.events.append(SimulationEvent(
                id=f"simulation_dead_end_{node.id}",
                node_id=node.id,
                type="warning",
                level="warning",
                message=f'Node "{node.title}" has no outgoing connection; simulation stopped.',
                created_at=run.clock().isoformat(),
            ))
            current = None
            break
        run.visited_edge_ids.append(next_edge.id)
        current = next_edge.target

    if not run.completed and current is not None and run.step >= limit:
        run.events.append(SimulationEvent(
            id="simulation_guard",
            type="warning",
            level="warning",
            message="Simulation stopped by loop guard.",
            created_at=run.clock().isoformat(),
        ))

    logger.info(
        f"Simulated workflow {graph.id}: {len(run.visited_node_ids)} nodes, "
        f"completed={run.completed}"
    )
    return SimulationResult(
        visited_node_ids=run.visited_node_ids,
        visited_edge_ids=run.visited_edge_ids,
        events=run.events,
        completed=run.completed,
    )
