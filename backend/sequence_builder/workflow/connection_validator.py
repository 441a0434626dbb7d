"""
Connection Validator — decide whether a proposed edge may be added.

``make_edge_from_connection`` is pure: it inspects the current nodes and
edges and either returns a fully formed ``WorkflowEdge`` (with a derived
label) or raises ``InvalidConnectionError``. Checks run in a fixed order
and the first failing check determines the reason.
"""

from __future__ import annotations

from enum import Enum
from logging import getLogger
from typing import Iterable, List, Optional

from sequence_builder.workflow.condition import (
    get_condition_branch_label,
    is_condition_branch_handle,
)
from sequence_builder.workflow.ids import create_edge_id
from sequence_builder.workflow.nodes import get_node_registry
from sequence_builder.workflow.nodes.logic_nodes import SPLIT_HANDLES
from sequence_builder.workflow.workflow_model import (
    EdgeData,
    NodeKind,
    WorkflowEdge,
    creates_cycle,
)

logger = getLogger(__name__)


class ConnectionRejection(str, Enum):
    MISSING_ENDPOINT = "missing_endpoint"
    UNKNOWN_NODE = "unknown_node"
    EXIT_HAS_NO_OUTPUT = "exit_has_no_output"
    TRIGGER_HAS_NO_INPUT = "trigger_has_no_input"
    SELF_LOOP = "self_loop"
    DUPLICATE = "duplicate"
    CYCLE = "cycle"
    INVALID_CONDITION_BRANCH = "invalid_condition_branch"
    CONDITION_BRANCH_IN_USE = "condition_branch_in_use"
    INVALID_SPLIT_BRANCH = "invalid_split_branch"
    SPLIT_BRANCH_IN_USE = "split_branch_in_use"
    TARGET_HAS_INPUT = "target_has_input"


class InvalidConnectionError(ValueError):
    """A connection request was rejected. ``str(exc)`` is user-displayable."""

    def __init__(self, reason: ConnectionRejection, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


def _reject(reason: ConnectionRejection, message: str) -> InvalidConnectionError:
    logger.warning(f"Connection rejected ({reason.value}): {message}")
    return InvalidConnectionError(reason, message)


def edge_label_for(source_node, source_handle: Optional[str]) -> Optional[str]:
    """Derived label for an edge leaving ``source_node`` on ``source_handle``."""
    node_type = get_node_registry().get(source_node.kind)
    if node_type is None:
        return None
    return node_type.edge_label(source_node.config, source_handle)


def _handle_in_use(edges: List[WorkflowEdge], source: str, handle: str) -> bool:
    return any(e.source == source and (e.source_handle or "") == handle for e in edges)


def make_edge_from_connection(
    source: Optional[str],
    target: Optional[str],
    source_handle: Optional[str],
    target_handle: Optional[str],
    nodes: Iterable,
    edges: Iterable[WorkflowEdge],
) -> WorkflowEdge:
    """Validate a proposed connection and build the edge.

    Raises:
        InvalidConnectionError: If any connection rule is violated.
    """
    nodes = list(nodes)
    edges = list(edges)

    if not source or not target:
        raise _reject(
            ConnectionRejection.MISSING_ENDPOINT,
            "Connection requires source and target.",
        )

    node_by_id = {n.id: n for n in nodes}
    source_node = node_by_id.get(source)
    target_node = node_by_id.get(target)
    if source_node is None or target_node is None:
        raise _reject(
            ConnectionRejection.UNKNOWN_NODE,
            "Connection endpoint no longer exists.",
        )

    if source_node.node_kind is NodeKind.EXIT:
        raise _reject(
            ConnectionRejection.EXIT_HAS_NO_OUTPUT,
            "Exit nodes cannot have outgoing connections.",
        )
    if target_node.node_kind is NodeKind.TRIGGER:
        raise _reject(
            ConnectionRejection.TRIGGER_HAS_NO_INPUT,
            "Trigger nodes cannot receive incoming connections.",
        )
    if source == target:
        raise _reject(ConnectionRejection.SELF_LOOP, "Self loops are not allowed.")

    handle = source_handle or ""
    if any(
        e.source == source and e.target == target and (e.source_handle or "") == handle
        for e in edges
    ):
        raise _reject(ConnectionRejection.DUPLICATE, "This connection already exists.")

    if creates_cycle(edges, source, target):
        raise _reject(ConnectionRejection.CYCLE, "This connection would create a loop.")

    if source_node.node_kind is NodeKind.CONDITION:
        if not is_condition_branch_handle(source_node.config, handle):
            raise _reject(
                ConnectionRejection.INVALID_CONDITION_BRANCH,
                "Condition blocks must connect from If / Else If / Else outputs.",
            )
        if _handle_in_use(edges, source, handle):
            label = get_condition_branch_label(source_node.config, handle) or handle
            raise _reject(
                ConnectionRejection.CONDITION_BRANCH_IN_USE,
                f'Condition branch "{label}" is already connected.',
            )

    if source_node.node_kind is NodeKind.SPLIT:
        if handle not in SPLIT_HANDLES:
            raise _reject(
                ConnectionRejection.INVALID_SPLIT_BRANCH,
                "Split blocks must use Variant A/B outputs.",
            )
        if _handle_in_use(edges, source, handle):
            raise _reject(
                ConnectionRejection.SPLIT_BRANCH_IN_USE,
                f"Split {handle.upper()} branch already connected.",
            )

    if target_node.node_kind is not NodeKind.EXIT and any(e.target == target for e in edges):
        raise _reject(
            ConnectionRejection.TARGET_HAS_INPUT,
            "Only one incoming edge is allowed per node.",
        )

    return WorkflowEdge(
        id=create_edge_id(source, target),
        source=source,
        target=target,
        source_handle=source_handle or None,
        target_handle=target_handle or None,
        label=edge_label_for(source_node, source_handle),
        animated=True,
        data=EdgeData(branch=source_handle or None, highlighted=False),
    )


def is_valid_connection(
    source: Optional[str],
    target: Optional[str],
    source_handle: Optional[str],
    target_handle: Optional[str],
    nodes: Iterable,
    edges: Iterable[WorkflowEdge],
) -> bool:
    """``True`` if ``make_edge_from_connection`` would succeed."""
    try:
        make_edge_from_connection(source, target, source_handle, target_handle, nodes, edges)
    except InvalidConnectionError:
        return False
    return True
