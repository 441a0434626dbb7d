"""
Legacy Flow — the linear step list understood by the execution runner.

The runner knows four step types (``send_email``, ``wait``,
``condition``, ``stop``) and four condition rules. Workflow records keep
this flow for the runner and embed the full graph document under
``settings["workflow_graph"]``. Records saved before the graph editor
existed only have the flow; ``legacy_flow_to_graph`` rebuilds a linear
graph from it.
"""

from __future__ import annotations

from enum import Enum
from logging import getLogger
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from sequence_builder.workflow.condition import ELSE_HANDLE, IF_HANDLE
from sequence_builder.workflow.ids import create_edge_id, create_node_id
from sequence_builder.workflow.nodes import create_node
from sequence_builder.workflow.normalizer import normalize_graph
from sequence_builder.workflow.workflow_model import (
    ConditionClause,
    ConditionConfig,
    ConditionRule,
    EdgeData,
    NodeKind,
    SendEmailConfig,
    WaitConfig,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowStatus,
)

logger = getLogger(__name__)

GRAPH_SETTINGS_KEY = "workflow_graph"


class LegacyRule(str, Enum):
    HAS_REPLIED = "has_replied"
    EMAIL_DOMAIN_CONTAINS = "email_domain_contains"
    COMPANY_CONTAINS = "company_contains"
    JOB_TITLE_CONTAINS = "job_title_contains"


class LegacyStep(BaseModel):
    """One runner instruction. ``config`` uses the runner's snake_case keys."""

    id: str
    name: str
    type: Literal["send_email", "wait", "condition", "stop"]
    config: Dict[str, Any] = Field(default_factory=dict)


def stop_step(step_id: str) -> LegacyStep:
    return LegacyStep(id=step_id, name="Stop", type="stop", config={})


# legacy rule → (graph rule, property key, comparator)
_RULE_IMPORT = {
    LegacyRule.HAS_REPLIED: (ConditionRule.EMAIL_OPENED, "", "exists"),
    LegacyRule.EMAIL_DOMAIN_CONTAINS: (ConditionRule.USER_PROPERTY, "email_domain", "contains"),
    LegacyRule.COMPANY_CONTAINS: (ConditionRule.USER_PROPERTY, "company", "contains"),
    LegacyRule.JOB_TITLE_CONTAINS: (ConditionRule.USER_PROPERTY, "job_title", "contains"),
}

_STEP_SPACING_X = 280
_STEP_BASE_X = 420
_ROW_Y = 120


def _parse_steps(flow: Any) -> List[LegacyStep]:
    steps: List[LegacyStep] = []
    for index, item in enumerate(flow if isinstance(flow, (list, tuple)) else []):
        if isinstance(item, LegacyStep):
            steps.append(item)
            continue
        if not isinstance(item, Mapping):
            continue
        try:
            steps.append(LegacyStep.model_validate({
                "id": str(item.get("id") or create_node_id("step")),
                "name": str(item.get("name") or ""),
                "type": item.get("type"),
                "config": item.get("config") if isinstance(item.get("config"), Mapping) else {},
            }))
        except ValidationError:
            logger.warning(f"Skipping legacy step #{index}: unsupported type {item.get('type')!r}")
    return steps


def _legacy_rule(value: Any) -> LegacyRule:
    try:
        return LegacyRule(str(value or ""))
    except ValueError:
        return LegacyRule.HAS_REPLIED


def _step_node(step: LegacyStep, x: float):
    cfg = step.config
    position = {"x": x, "y": _ROW_Y}

    if step.type == "send_email":
        return create_node(
            NodeKind.SEND_EMAIL, position=position, node_id=step.id,
            title=step.name or "Send Email",
            config=SendEmailConfig(
                subject=str(cfg.get("subject") or ""),
                body=str(cfg.get("body") or ""),
                sender_config_id=str(cfg.get("sender_config_id") or ""),
                template_id=str(cfg.get("template_id") or ""),
                personalization_tokens=["{first_name}", "{company}", "{sender_name}"],
                thread_with_previous=cfg.get("thread_with_previous") is not False,
            ),
        )

    if step.type == "wait":
        unit = str(cfg.get("unit") or "days")
        try:
            duration = float(cfg.get("duration") or 1)
        except (TypeError, ValueError):
            duration = 1
        return create_node(
            NodeKind.WAIT, position=position, node_id=step.id,
            title=step.name or "Wait",
            config=WaitConfig(
                duration=duration,
                unit=unit if unit in ("minutes", "hours", "days") else "days",
                randomized=False,
                random_max_minutes=0,
                time_window_start="09:00",
                time_window_end="18:00",
            ),
        )

    rule, property_key, comparator = _RULE_IMPORT[_legacy_rule(cfg.get("rule"))]
    return create_node(
        NodeKind.CONDITION, position=position, node_id=step.id,
        title=step.name or "Condition",
        config=ConditionConfig(clauses=[ConditionClause(
            id=IF_HANDLE,
            rule=rule,
            property_key=property_key,
            comparator=comparator,
            value=str(cfg.get("value") or ""),
        )]),
    )


def legacy_flow_to_graph(
    flow: Any,
    workflow_id: Optional[str] = None,
    name: Optional[str] = None,
    status: Optional[str] = None,
) -> WorkflowGraph:
    """Rebuild a linear graph from a legacy step list.

    Trigger → step 1 → … → step n → Exit. Condition steps get an ``if``
    and an ``else`` edge; an action of ``stop`` routes that branch to
    the exit instead of the next step.
    """
    steps = [s for s in _parse_steps(flow) if s.type != "stop"]

    trigger = create_node(NodeKind.TRIGGER, position={"x": 120, "y": _ROW_Y})
    step_nodes = [
        _step_node(step, _STEP_BASE_X + index * _STEP_SPACING_X)
        for index, step in enumerate(steps)
    ]
    exit_node = create_node(
        NodeKind.EXIT, position={"x": _STEP_BASE_X + len(steps) * _STEP_SPACING_X, "y": _ROW_Y},
    )

    def _edge(src: str, tgt: str, handle: Optional[str] = None, label: Optional[str] = None):
        return WorkflowEdge(
            id=create_edge_id(src, tgt), source=src, target=tgt,
            source_handle=handle, label=label, data=EdgeData(branch=handle),
        )

    edges: List[WorkflowEdge] = []
    first = step_nodes[0].id if step_nodes else exit_node.id
    edges.append(_edge(trigger.id, first))

    for index, step in enumerate(steps):
        current = step_nodes[index].id
        nxt = step_nodes[index + 1].id if index + 1 < len(step_nodes) else exit_node.id
        if step.type == "condition":
            if_target = exit_node.id if step.config.get("if_true") == "stop" else nxt
            else_target = exit_node.id if step.config.get("if_false") == "stop" else nxt
            edges.append(_edge(current, if_target, IF_HANDLE, "If"))
            edges.append(_edge(current, else_target, ELSE_HANDLE, "Else"))
        else:
            edges.append(_edge(current, nxt))

    try:
        workflow_status = WorkflowStatus(str(status or "draft"))
    except ValueError:
        workflow_status = WorkflowStatus.DRAFT

    graph = WorkflowGraph(
        name=name or "Untitled workflow",
        status=workflow_status,
        nodes=[trigger, *step_nodes, exit_node],
        edges=edges,
    )
    if workflow_id:
        graph.id = workflow_id
    logger.info(f"Imported legacy flow into workflow {graph.id}: {len(steps)} steps")
    return graph


def extract_graph_from_workflow(record: Mapping[str, Any]) -> WorkflowGraph:
    """Graph for a stored workflow record.

    Prefers the embedded graph document; falls back to importing the
    legacy ``flow``.
    """
    settings = record.get("settings")
    payload = settings.get(GRAPH_SETTINGS_KEY) if isinstance(settings, Mapping) else None
    name = str(record.get("name") or "Untitled workflow")
    if payload:
        return normalize_graph(payload, name)
    return legacy_flow_to_graph(
        record.get("flow") or [],
        workflow_id=record.get("id"),
        name=name,
        status=record.get("status"),
    )


def with_graph_in_settings(
    settings: Optional[Mapping[str, Any]], graph: WorkflowGraph,
) -> Dict[str, Any]:
    """Copy of ``settings`` with the graph document embedded."""
    merged = dict(settings or {})
    merged[GRAPH_SETTINGS_KEY] = graph.to_document()
    return merged
