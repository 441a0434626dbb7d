"""
Entry & Exit Nodes — the graph's single entry point and its terminals.
"""

from __future__ import annotations

from sequence_builder.workflow.nodes.base import BaseNode, register_node
from sequence_builder.workflow.workflow_model import NodeKind


@register_node
class TriggerNodeType(BaseNode):
    """Enrollment entry point. Exactly one per graph; never a target."""

    node_type = NodeKind.TRIGGER
    label = "Trigger"
    description = "Entry point for enrollment events."
    category = "entry"
    icon = "play-circle"
    accepts_input = False


@register_node
class ExitNodeType(BaseNode):
    """Terminal node. Never a source; may receive many edges."""

    node_type = NodeKind.EXIT
    label = "Exit"
    description = "End workflow execution."
    category = "entry"
    icon = "bell-ring"
    output_ports = []
