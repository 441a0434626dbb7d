"""Shared fixtures: compact graph builders and a deterministic clock/rng."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

import pytest

from sequence_builder.workflow.condition import normalize_condition_config
from sequence_builder.workflow.workflow_model import (
    WorkflowEdge,
    WorkflowGraph,
    parse_node,
)

FIXED_NOW = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def make_node(node_id: str, kind: str, title: Optional[str] = None, **config: Any):
    if kind == "condition":
        config = normalize_condition_config(config).model_dump(by_alias=True)
    return parse_node({
        "id": node_id,
        "kind": kind,
        "title": title or node_id,
        "config": config,
    })


def make_edge(source: str, target: str, handle: Optional[str] = None,
              edge_id: Optional[str] = None) -> WorkflowEdge:
    return WorkflowEdge(
        id=edge_id or f"{source}-{target}",
        source=source,
        target=target,
        source_handle=handle,
    )


def make_graph(nodes: List, edges: List[WorkflowEdge], name: str = "Test workflow") -> WorkflowGraph:
    return WorkflowGraph(id="wf_test", name=name, nodes=nodes, edges=edges)


class FixedRandom:
    """``random()`` always returns the same value."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def linear_graph() -> WorkflowGraph:
    """trigger → email → wait → exit"""
    return make_graph(
        [
            make_node("t", "trigger"),
            make_node("email", "send_email", subject="Hello", body="Hi there"),
            make_node("wait", "wait", duration=2, unit="days"),
            make_node("done", "exit"),
        ],
        [
            make_edge("t", "email"),
            make_edge("email", "wait"),
            make_edge("wait", "done"),
        ],
    )


@pytest.fixture
def job_title_condition():
    return make_node(
        "cond", "condition",
        clauses=[
            {"propertyKey": "job_title", "comparator": "contains", "value": "chief"},
            {"propertyKey": "job_title", "comparator": "contains", "value": "manager"},
        ],
    )


@pytest.fixture
def branching_graph(job_title_condition) -> WorkflowGraph:
    """trigger → cond; if → exec email → exit, else_if_1 → mgr email → exit, else → exit"""
    return make_graph(
        [
            make_node("t", "trigger"),
            job_title_condition,
            make_node("exec", "send_email", subject="For executives", body="..."),
            make_node("mgr", "send_email", subject="For managers", body="..."),
            make_node("done", "exit"),
        ],
        [
            make_edge("t", "cond"),
            make_edge("cond", "exec", "if"),
            make_edge("cond", "mgr", "else_if_1"),
            make_edge("cond", "done", "else"),
            make_edge("exec", "done"),
            make_edge("mgr", "done"),
        ],
    )
