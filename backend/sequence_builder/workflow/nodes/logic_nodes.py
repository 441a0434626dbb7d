"""
Logic Nodes — multi-way conditions and A/B splits.

These nodes route contacts without side effects. Their outgoing
edges are keyed by branch handle, one edge per handle.
"""

from __future__ import annotations

from typing import Any, List, Optional

from sequence_builder.workflow.condition import (
    create_default_clause,
    get_condition_branch_label,
    get_condition_branches,
    normalize_condition_config,
)
from sequence_builder.workflow.nodes.base import BaseNode, OutputPort, register_node
from sequence_builder.workflow.workflow_model import ConditionConfig, NodeKind, SplitConfig

SPLIT_HANDLES = ("a", "b")


@register_node
class ConditionNodeType(BaseNode):
    """If / Else If … / Else branching on contact state.

    Output ports are dynamic: one per clause plus the implicit ``else``.
    """

    node_type = NodeKind.CONDITION
    label = "Condition"
    description = "Branch flow by behavior or attributes."
    category = "logic"
    icon = "git-branch"

    output_ports = [
        OutputPort(id="if", label="If", description="First clause matched"),
        OutputPort(id="else", label="Else", description="No clause matched"),
    ]

    def create_default_config(self) -> ConditionConfig:
        return ConditionConfig(clauses=[create_default_clause(0)])

    def coerce_config(self, raw: Any) -> ConditionConfig:
        return normalize_condition_config(raw)

    def get_dynamic_output_ports(self, config: Any) -> Optional[List[OutputPort]]:
        return [
            OutputPort(id=b.handle, label=b.label)
            for b in get_condition_branches(config)
        ]

    def edge_label(self, config: Any, handle: Optional[str]) -> Optional[str]:
        if not handle:
            return None
        return get_condition_branch_label(config, handle)


@register_node
class SplitNodeType(BaseNode):
    """Random A/B split. Variant A is taken ``percentage_a`` % of the time."""

    node_type = NodeKind.SPLIT
    label = "A/B Split"
    description = "Split traffic for A/B testing."
    category = "logic"
    icon = "shuffle"
    supports_runner = False

    output_ports = [
        OutputPort(id="a", label="Variant A"),
        OutputPort(id="b", label="Variant B"),
    ]

    def create_default_config(self) -> SplitConfig:
        return SplitConfig(percentage_a=50, percentage_b=50)

    def edge_label(self, config: Any, handle: Optional[str]) -> Optional[str]:
        if handle == "a":
            return "Variant A"
        if handle == "b":
            return "Variant B"
        return None
