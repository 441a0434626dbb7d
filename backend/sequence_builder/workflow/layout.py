"""
Automatic layout — depth rows and branch lanes.

Breadth-first from the trigger: depth picks the row, the branch handle
shifts the lane (If / A to the left, Else / B to the right). Nodes the
walk never reaches are lined up along the top row.
"""

from __future__ import annotations

from collections import deque
from typing import Dict, List, Optional

from sequence_builder.config import get_builder_config
from sequence_builder.workflow.condition import else_if_index
from sequence_builder.workflow.workflow_model import NodePosition, WorkflowEdge, WorkflowGraph

BASE_X = 360.0
BASE_Y = 80.0

_LEFT_HANDLES = ("if", "yes", "a")
_RIGHT_HANDLES = ("else", "no", "b")


def _branch_rank(handle: Optional[str]) -> int:
    if handle in _LEFT_HANDLES:
        return 1
    index = else_if_index(handle or "")
    if index is not None:
        return 10 + index
    if handle in _RIGHT_HANDLES:
        return 90
    return 100


def sort_outgoing_by_branch(edges: List[WorkflowEdge]) -> List[WorkflowEdge]:
    """If, Else If 1..n, Else, then plain edges. Stable."""
    return sorted(edges, key=lambda e: _branch_rank(e.source_handle))


def _lane_offset(handle: Optional[str], index: int, total: int) -> int:
    if handle in _LEFT_HANDLES:
        return -1
    if handle in _RIGHT_HANDLES:
        return 1
    if total <= 1:
        return 0
    if total == 2:
        return -1 if index == 0 else 1
    return index - total // 2


def auto_layout(
    graph: WorkflowGraph,
    spacing_x: Optional[float] = None,
    spacing_y: Optional[float] = None,
) -> List:
    """Return copies of ``graph.nodes`` with computed positions.

    Node order and everything but ``position`` are preserved.
    """
    config = get_builder_config()
    dx = spacing_x or config.layout_spacing_x
    dy = spacing_y or config.layout_spacing_y

    trigger = graph.get_trigger_node()
    if trigger is None:
        return [
            node.model_copy(update={"position": NodePosition(
                x=BASE_X + (index % 3) * dx,
                y=BASE_Y + (index // 3) * dy,
            )})
            for index, node in enumerate(graph.nodes)
        ]

    depth: Dict[str, int] = {}
    lane: Dict[str, int] = {}
    queue = deque([(trigger.id, 0, 0)])
    while queue:
        node_id, d, row_lane = queue.popleft()
        if node_id in depth:
            continue
        depth[node_id] = d
        lane[node_id] = row_lane

        outgoing = sort_outgoing_by_branch(graph.get_edges_from(node_id))
        for index, edge in enumerate(outgoing):
            queue.append((
                edge.target,
                d + 1,
                row_lane + _lane_offset(edge.source_handle, index, len(outgoing)),
            ))

    placed = []
    orphan_lane = 0
    for node in graph.nodes:
        if node.id in depth:
            position = NodePosition(x=BASE_X + lane[node.id] * dx, y=BASE_Y + depth[node.id] * dy)
        else:
            orphan_lane += 1
            position = NodePosition(x=BASE_X + orphan_lane * dx, y=BASE_Y)
        placed.append(node.model_copy(update={"position": position}))
    return placed
