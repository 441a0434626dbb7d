"""
Identifier factories for workflows, nodes, and edges.

Identifiers are never reused within a session: each call draws
fresh randomness.
"""

from __future__ import annotations

import uuid


def _suffix(length: int = 8) -> str:
    return uuid.uuid4().hex[:length]


def create_workflow_id() -> str:
    return f"wf_{_suffix(12)}"


def create_node_id(kind: str) -> str:
    return f"{kind}_{_suffix(10)}"


def create_edge_id(source: str, target: str) -> str:
    return f"edge_{source}_{target}_{_suffix(6)}"
