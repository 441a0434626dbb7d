"""
Workflow Nodes Package.

Auto-registers every node kind into the global NodeRegistry.
Import this package to ensure all kinds are available.
"""

from logging import getLogger

from sequence_builder.workflow.nodes.base import (
    BaseNode,
    NodeRegistry,
    OutputPort,
    get_node_registry,
    register_node,
)

# Import all node modules to trigger registration
from sequence_builder.workflow.nodes import entry_nodes    # noqa: F401
from sequence_builder.workflow.nodes import action_nodes   # noqa: F401
from sequence_builder.workflow.nodes import logic_nodes    # noqa: F401

get_node_registry().check_complete()


def create_node(kind, position=None, node_id=None, title=None, config=None):
    """Build a node of ``kind`` with that kind's default config."""
    return get_node_registry().require(kind).create(
        position=position, node_id=node_id, title=title, config=config,
    )


def register_all_nodes() -> None:
    """Ensure all node kinds are registered and log the count."""
    registry = get_node_registry()
    registry.check_complete()
    getLogger(__name__).info(
        f"Workflow node kinds registered: {len(registry.list_all())}"
    )


__all__ = [
    "BaseNode",
    "NodeRegistry",
    "OutputPort",
    "create_node",
    "get_node_registry",
    "register_all_nodes",
    "register_node",
]
