"""
Workflow Inspector — publish checklist and a structured report of how a
WorkflowGraph compiles to the runner's legacy flow.

``build_publish_checklist`` gates publishing: every item must pass,
including the one that surfaces FATAL compiler diagnostics.
``inspect_workflow`` bundles the checklist with per-node and per-edge
detail, the compile result, and topology validation for display.
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from sequence_builder.workflow.condition import get_condition_branches
from sequence_builder.workflow.nodes import NodeRegistry, get_node_registry
from sequence_builder.workflow.workflow_compiler import CompileResult, compile_graph
from sequence_builder.workflow.workflow_model import NodeKind, WorkflowGraph

logger = getLogger(__name__)


class ReviewItem(BaseModel):
    id: str
    label: str
    passed: bool
    detail: str


# ====================================================================
# Publish checklist
# ====================================================================


def build_publish_checklist(
    graph: WorkflowGraph,
    compiled: Optional[CompileResult] = None,
) -> List[ReviewItem]:
    """Pre-publish review items, in display order."""
    compiled = compiled or compile_graph(graph)
    reachable = graph.reachable_from_trigger()
    triggers = [n for n in graph.nodes if n.node_kind is NodeKind.TRIGGER]

    invalid_emails = [
        n for n in graph.nodes
        if n.node_kind is NodeKind.SEND_EMAIL
        and (not n.config.subject.strip() or not n.config.body.strip())
    ]

    invalid_conditions = []
    for node in graph.nodes:
        if node.node_kind is not NodeKind.CONDITION:
            continue
        handles = {e.source_handle for e in graph.get_edges_from(node.id)}
        if any(b.handle not in handles for b in get_condition_branches(node.config)):
            invalid_conditions.append(node)

    disconnected = [
        n for n in graph.nodes
        if n.node_kind is not NodeKind.TRIGGER and not graph.get_edges_to(n.id)
    ]
    unreachable = [n for n in graph.nodes if n.id not in reachable]
    exit_reachable = any(n.id in reachable for n in graph.get_exit_nodes())

    registry = get_node_registry()
    unsupported = [n for n in graph.nodes if not registry.require(n.kind).supports_runner]
    fatal = compiled.fatal

    return [
        ReviewItem(
            id="trigger",
            label="Workflow has a trigger block",
            passed=len(triggers) == 1,
            detail="Ready" if len(triggers) == 1 else "Add exactly one trigger node.",
        ),
        ReviewItem(
            id="exit",
            label="At least one reachable exit path",
            passed=exit_reachable,
            detail="Ready" if exit_reachable else "Connect a path to an Exit block.",
        ),
        ReviewItem(
            id="emails",
            label="All email blocks have subject and body",
            passed=not invalid_emails,
            detail="Ready" if not invalid_emails
            else f"{len(invalid_emails)} email block(s) need subject/body content.",
        ),
        ReviewItem(
            id="conditions",
            label="Condition nodes map If / Else If / Else branches",
            passed=not invalid_conditions,
            detail="Ready" if not invalid_conditions
            else f"{len(invalid_conditions)} condition block(s) are missing one or more branch connections.",
        ),
        ReviewItem(
            id="connections",
            label="All non-trigger nodes are connected",
            passed=not disconnected,
            detail="Ready" if not disconnected
            else f"{len(disconnected)} node(s) are not connected to an inbound path.",
        ),
        ReviewItem(
            id="unreachable",
            label="No unreachable nodes on the canvas",
            passed=not unreachable,
            detail="Ready" if not unreachable
            else f"{len(unreachable)} node(s) are unreachable from the trigger.",
        ),
        ReviewItem(
            id="runner",
            label="Runner-compatible blocks only (email/wait/condition/exit)",
            passed=not unsupported,
            detail="Ready" if not unsupported
            else f"{len(unsupported)} block(s) need runner support before publish (split/webhook).",
        ),
        ReviewItem(
            id="compile",
            label="Compiles to the runner flow without blocking errors",
            passed=not fatal,
            detail="Ready" if not fatal else "; ".join(d.message for d in fatal),
        ),
    ]


def can_publish_workflow(graph: WorkflowGraph) -> bool:
    return all(item.passed for item in build_publish_checklist(graph))


# ====================================================================
# Inspection report
# ====================================================================


def inspect_workflow(
    graph: WorkflowGraph,
    registry: Optional[NodeRegistry] = None,
) -> Dict[str, Any]:
    """Inspect a workflow and produce the publish report.

    Returns a dict containing:
        - ``summary``    : High-level stats
        - ``nodes``      : Per-node detail list
        - ``edges``      : Per-edge detail list
        - ``compile``    : Legacy steps and diagnostics
        - ``checklist``  : Publish review items
        - ``validation`` : Topology invariant check
    """
    reg = registry or get_node_registry()
    errors = graph.validate_graph()
    compiled = compile_graph(graph)
    checklist = build_publish_checklist(graph, compiled)
    reachable = graph.reachable_from_trigger()
    nodes = graph.node_map()

    node_details = []
    for node in graph.nodes:
        node_type = reg.require(node.kind)
        connected = {e.source_handle or "out" for e in graph.get_edges_from(node.id)}
        ports = node_type.get_output_ports(node.config)
        node_details.append({
            "id": node.id,
            "kind": node.kind,
            "title": node.title,
            "category": node_type.category,
            "supports_runner": node_type.supports_runner,
            "reachable": node.id in reachable,
            "incoming": len(graph.get_edges_to(node.id)),
            "output_ports": [
                {"id": p.id, "label": p.label, "connected": p.id in connected}
                for p in ports
            ],
        })

    edge_details = []
    for edge in graph.edges:
        source = nodes.get(edge.source)
        target = nodes.get(edge.target)
        edge_details.append({
            "id": edge.id,
            "source": edge.source,
            "source_title": source.title if source else None,
            "target": edge.target,
            "target_title": target.title if target else None,
            "handle": edge.source_handle,
            "label": edge.label,
        })

    publishable = all(item.passed for item in checklist)
    logger.debug(
        f"Inspected workflow {graph.id}: {len(errors)} validation errors, publishable={publishable}"
    )

    return {
        "summary": {
            "workflow_name": graph.name,
            "workflow_id": graph.id,
            "total_nodes": len(graph.nodes),
            "total_edges": len(graph.edges),
            "compiled_steps": len(compiled.steps),
            "fatal_count": len(compiled.fatal),
            "advisory_count": len(compiled.advisory),
            "is_valid": not errors,
            "can_publish": publishable,
        },
        "nodes": node_details,
        "edges": edge_details,
        "compile": {
            "steps": compiled.to_flow(),
            "diagnostics": [d.model_dump(mode="json") for d in compiled.diagnostics],
        },
        "checklist": [item.model_dump() for item in checklist],
        "validation": {
            "valid": not errors,
            "errors": errors,
        },
    }
