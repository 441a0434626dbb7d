"""
Pre-built Workflow Templates.

Factory functions that return ready-made ``WorkflowGraph`` objects.
``create_starter_graph`` is the minimal valid graph (one trigger wired
to one exit) and is what the normalizer falls back to when a stored
document has no nodes.
"""

from __future__ import annotations

from logging import getLogger
from typing import Callable, Dict, List, Optional

from sequence_builder.workflow.condition import ELSE_HANDLE, IF_HANDLE
from sequence_builder.workflow.ids import create_node_id
from sequence_builder.workflow.nodes import create_node
from sequence_builder.workflow.workflow_model import (
    ConditionClause,
    ConditionConfig,
    ConditionRule,
    EdgeData,
    NodeKind,
    NodeMeta,
    WaitConfig,
    WorkflowEdge,
    WorkflowGraph,
)

logger = getLogger(__name__)


class _GraphBuilder:
    """Collects nodes and edges for a template."""

    def __init__(self) -> None:
        self.nodes: List = []
        self.edges: List[WorkflowEdge] = []

    def add(self, kind: NodeKind, x: float, y: float, nid: Optional[str] = None,
            title: Optional[str] = None, config=None):
        node = create_node(
            kind, position={"x": x, "y": y},
            node_id=nid or create_node_id(kind.value), title=title, config=config,
        )
        self.nodes.append(node)
        return node

    def edge(self, src, tgt, handle: str = "out", label: Optional[str] = None) -> None:
        branch = handle if handle not in ("out", "") else None
        self.edges.append(WorkflowEdge(
            id=f"edge_{src.id}_{tgt.id}",
            source=src.id, target=tgt.id,
            source_handle=handle, target_handle="in",
            label=label, data=EdgeData(branch=branch),
        ))


# ============================================================================
# Starter graph
# ============================================================================


def create_starter_graph(name: str = "Untitled workflow") -> WorkflowGraph:
    """Trigger → Exit."""
    b = _GraphBuilder()
    trigger = b.add(NodeKind.TRIGGER, 360, 80)
    exit_node = b.add(NodeKind.EXIT, 360, 240)
    b.edge(trigger, exit_node)
    return WorkflowGraph(
        name=name,
        nodes=b.nodes,
        edges=b.edges,
        settings={"snapToGrid": True, "gridSize": 24},
    )


# ============================================================================
# Welcome Journey
# ============================================================================


def create_welcome_template(name: str = "Welcome Journey") -> WorkflowGraph:
    """Trigger → Send Email → Wait → Exit."""
    b = _GraphBuilder()
    trigger = b.add(NodeKind.TRIGGER, 360, 80)
    email = b.add(NodeKind.SEND_EMAIL, 360, 240)
    wait = b.add(NodeKind.WAIT, 360, 400)
    exit_node = b.add(NodeKind.EXIT, 360, 560)

    email.meta = NodeMeta(enrollment_count=0)
    wait.meta = NodeMeta(enrollment_count=0)

    b.edge(trigger, email)
    b.edge(email, wait)
    b.edge(wait, exit_node)

    return WorkflowGraph(
        name=name,
        nodes=b.nodes,
        edges=b.edges,
        settings={"snapToGrid": True, "gridSize": 24},
    )


# ============================================================================
# Engagement Follow-up
# ============================================================================


def create_engagement_template(name: str = "Engagement Follow-up") -> WorkflowGraph:
    """Email, wait, then branch on opens.

    Topology::
        Trigger → Intro Email → Wait 2d → Opened?
          [If]   → Follow-up Email → Exit
          [Else] → Exit (no reply)

    Both branches end at an exit, so the graph compiles to the
    legacy runner without truncation.
    """
    b = _GraphBuilder()
    trigger = b.add(NodeKind.TRIGGER, 360, 80)
    intro = b.add(NodeKind.SEND_EMAIL, 360, 244, title="Intro Email")
    wait = b.add(NodeKind.WAIT, 360, 408, title="Wait 2 days",
                 config=WaitConfig(duration=2, unit="days"))
    check = b.add(NodeKind.CONDITION, 360, 572, title="Opened?",
                  config=ConditionConfig(clauses=[
                      ConditionClause(id=IF_HANDLE, rule=ConditionRule.EMAIL_OPENED),
                  ]))
    follow_up = b.add(NodeKind.SEND_EMAIL, 100, 736, title="Follow-up Email")
    done = b.add(NodeKind.EXIT, 100, 900, title="Exit")
    no_reply = b.add(NodeKind.EXIT, 620, 736, title="Exit (no reply)")

    b.edge(trigger, intro)
    b.edge(intro, wait)
    b.edge(wait, check)
    b.edge(check, follow_up, handle=IF_HANDLE, label="If")
    b.edge(check, no_reply, handle=ELSE_HANDLE, label="Else")
    b.edge(follow_up, done)

    return WorkflowGraph(name=name, nodes=b.nodes, edges=b.edges)


# ============================================================================
# Template Registry
# ============================================================================

ALL_TEMPLATES: Dict[str, Callable[..., WorkflowGraph]] = {
    "starter": create_starter_graph,
    "welcome_journey": create_welcome_template,
    "engagement_follow_up": create_engagement_template,
}


def get_template(template_name: str, name: Optional[str] = None) -> WorkflowGraph:
    """Build a fresh copy of a named template.

    Raises:
        KeyError: If no template has that name.
    """
    factory = ALL_TEMPLATES.get(template_name)
    if factory is None:
        raise KeyError(f"Unknown workflow template: {template_name}")
    graph = factory(name) if name else factory()
    logger.info(f"Template '{template_name}' instantiated as workflow {graph.id}")
    return graph
