"""
Node Registry — per-kind metadata and factories.

Every ``NodeKind`` has exactly one ``BaseNode`` subclass registered with
``@register_node``. A node class describes how the kind looks in the
block library (label, description, ports), what its default config is,
and how edges leaving it are labelled. Graph data itself lives in
``workflow_model``; these classes hold no per-instance state.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel

from sequence_builder.workflow.workflow_model import (
    NODE_MODELS,
    NodeKind,
    NodePosition,
    NodeStatus,
    config_model_for,
    ensure_all_kinds,
)

logger = getLogger(__name__)


@dataclass(frozen=True)
class OutputPort:
    """A source handle on a node."""

    id: str
    label: str = ""
    description: str = ""


class BaseNode:
    """Describes one node kind."""

    node_type: ClassVar[NodeKind]
    label: ClassVar[str] = ""
    description: ClassVar[str] = ""
    category: ClassVar[str] = "action"
    icon: ClassVar[str] = ""
    supports_runner: ClassVar[bool] = True
    accepts_input: ClassVar[bool] = True
    output_ports: ClassVar[List[OutputPort]] = [OutputPort(id="out")]

    @classmethod
    def config_model(cls) -> Type[BaseModel]:
        return config_model_for(cls.node_type)

    def create_default_config(self) -> BaseModel:
        return self.config_model()()

    def get_dynamic_output_ports(self, config: Any) -> Optional[List[OutputPort]]:
        """Ports derived from config. ``None`` means use ``output_ports``."""
        return None

    def get_output_ports(self, config: Any) -> List[OutputPort]:
        dynamic = self.get_dynamic_output_ports(config)
        return list(self.output_ports) if dynamic is None else dynamic

    def edge_label(self, config: Any, handle: Optional[str]) -> Optional[str]:
        """Label for an edge leaving ``handle``; ``None`` for plain edges."""
        return None

    @property
    def has_output(self) -> bool:
        return bool(self.output_ports)

    def create(
        self,
        position: Optional[Dict[str, float]] = None,
        node_id: Optional[str] = None,
        title: Optional[str] = None,
        config: Any = None,
        status: NodeStatus = NodeStatus.DRAFT,
    ):
        """Instantiate a node of this kind with the default config."""
        model = NODE_MODELS[self.node_type]
        pos = position or {}
        if config is None:
            config = self.create_default_config()
        elif not isinstance(config, BaseModel):
            config = self.coerce_config(config)
        return model(
            id=node_id or "",
            title=title or self.label,
            position=NodePosition(x=pos.get("x", 0), y=pos.get("y", 0)),
            status=status,
            config=config,
        )

    def coerce_config(self, raw: Any) -> BaseModel:
        """Validate a raw config mapping for this kind."""
        return self.config_model().model_validate(dict(raw or {}))

    def to_dict(self, config: Any = None) -> Dict[str, Any]:
        """Serialize for the block library."""
        ports = self.get_output_ports(config) if config is not None else self.output_ports
        return {
            "node_type": self.node_type.value,
            "label": self.label,
            "description": self.description,
            "category": self.category,
            "icon": self.icon,
            "supports_runner": self.supports_runner,
            "accepts_input": self.accepts_input,
            "output_ports": [
                {"id": p.id, "label": p.label, "description": p.description}
                for p in ports
            ],
        }


class NodeRegistry:
    """Kind → node class instance."""

    def __init__(self) -> None:
        self._nodes: Dict[NodeKind, BaseNode] = {}

    def register(self, node: BaseNode) -> None:
        kind = NodeKind(node.node_type)
        if kind in self._nodes:
            logger.warning(f"Node type '{kind.value}' re-registered by {type(node).__name__}")
        self._nodes[kind] = node

    def get(self, kind: Any) -> Optional[BaseNode]:
        try:
            return self._nodes.get(NodeKind(kind))
        except ValueError:
            return None

    def require(self, kind: Any) -> BaseNode:
        node = self.get(kind)
        if node is None:
            raise KeyError(f"Unknown node type: {kind}")
        return node

    def list_all(self) -> List[BaseNode]:
        return [self._nodes[k] for k in NodeKind if k in self._nodes]

    def check_complete(self) -> None:
        ensure_all_kinds(self._nodes, "NodeRegistry")


_registry = NodeRegistry()


def register_node(cls: Type[BaseNode]) -> Type[BaseNode]:
    """Class decorator: instantiate and add to the global registry."""
    _registry.register(cls())
    return cls


def get_node_registry() -> NodeRegistry:
    """Return the global node-kind registry."""
    return _registry
