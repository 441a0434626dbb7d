"""
Workflow Data Models — nodes, edges, and the graph.

These are the serializable data structures that describe a
user-designed automation sequence. Persisted documents use
camelCase keys (``sourceHandle``, ``percentageA`` …); Python
attributes are snake_case and either spelling is accepted on input.

Nodes form a tagged union on ``kind``: every kind has its own model
and typed config, and ``NODE_MODELS`` must cover every ``NodeKind``.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from sequence_builder.workflow.ids import create_edge_id, create_node_id, create_workflow_id


class NodeKind(str, Enum):
    TRIGGER = "trigger"
    SEND_EMAIL = "send_email"
    WAIT = "wait"
    CONDITION = "condition"
    SPLIT = "split"
    WEBHOOK = "webhook"
    EXIT = "exit"


class NodeStatus(str, Enum):
    """Informational only; never read by the compiler or simulator."""
    DRAFT = "draft"
    LIVE = "live"
    ERROR = "error"


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    LIVE = "live"
    PAUSED = "paused"
    ARCHIVED = "archived"


class ConditionRule(str, Enum):
    USER_PROPERTY = "user_property"
    EMAIL_OPENED = "email_opened"
    EMAIL_CLICKED = "email_clicked"
    TAG_EXISTS = "tag_exists"
    CUSTOM_EVENT = "custom_event"


Comparator = Literal["equals", "contains", "exists"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _ConfigModel(BaseModel):
    """Base for kind-specific configs. Unknown keys pass through untouched."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow",
    )


# ============================================================================
# Kind-specific configuration payloads
# ============================================================================


class TriggerConfig(_ConfigModel):
    trigger_type: Literal["list_joined", "manual", "custom_event"] = "list_joined"
    list_id: Optional[str] = None
    event_name: Optional[str] = None


class SendEmailConfig(_ConfigModel):
    subject: str = ""
    body: str = ""
    sender_config_id: Optional[str] = None
    template_id: Optional[str] = None
    personalization_tokens: List[str] = Field(default_factory=list)
    thread_with_previous: bool = True


class WaitConfig(_ConfigModel):
    duration: float = 1
    unit: Literal["minutes", "hours", "days"] = "days"
    time_window_start: Optional[str] = None
    time_window_end: Optional[str] = None
    randomized: bool = False
    random_max_minutes: Optional[int] = None


class ConditionClause(_ConfigModel):
    """One testable predicate of a condition node.

    ``id`` doubles as the branch handle (``if``, ``else_if_1`` …).
    ``property_key``/``comparator`` only matter for ``user_property``;
    ``value`` holds the tag or event name for ``tag_exists``/``custom_event``.
    """

    id: str = "if"
    rule: ConditionRule = ConditionRule.EMAIL_OPENED
    property_key: str = ""
    comparator: Comparator = "exists"
    value: str = ""


class ConditionConfig(_ConfigModel):
    clauses: List[ConditionClause] = Field(
        default_factory=lambda: [ConditionClause()]
    )


class SplitConfig(_ConfigModel):
    percentage_a: float = 50
    percentage_b: float = 50


class WebhookConfig(_ConfigModel):
    url: str = ""
    method: Literal["GET", "POST"] = "POST"
    payload_template: Optional[str] = None


class ExitConfig(_ConfigModel):
    reason: Literal["completed", "condition_met", "manual"] = "completed"


# ============================================================================
# Nodes
# ============================================================================


class NodePosition(BaseModel):
    x: float = 0
    y: float = 0


class NodeMeta(_ConfigModel):
    """Display-only runtime counters."""

    enrollment_count: Optional[int] = None
    last_error: Optional[str] = None


class _NodeBase(_CamelModel):
    """Fields shared by every node kind."""

    id: str = ""
    title: str = ""
    position: NodePosition = Field(default_factory=NodePosition)
    status: NodeStatus = NodeStatus.DRAFT
    meta: Optional[NodeMeta] = None

    def model_post_init(self, context: Any) -> None:
        if not self.id:
            self.id = create_node_id(self.kind)

    @property
    def node_kind(self) -> NodeKind:
        return NodeKind(self.kind)


class TriggerNode(_NodeBase):
    kind: Literal["trigger"] = "trigger"
    config: TriggerConfig = Field(default_factory=TriggerConfig)


class SendEmailNode(_NodeBase):
    kind: Literal["send_email"] = "send_email"
    config: SendEmailConfig = Field(default_factory=SendEmailConfig)


class WaitNode(_NodeBase):
    kind: Literal["wait"] = "wait"
    config: WaitConfig = Field(default_factory=WaitConfig)


class ConditionNode(_NodeBase):
    kind: Literal["condition"] = "condition"
    config: ConditionConfig = Field(default_factory=ConditionConfig)


class SplitNode(_NodeBase):
    kind: Literal["split"] = "split"
    config: SplitConfig = Field(default_factory=SplitConfig)


class WebhookNode(_NodeBase):
    kind: Literal["webhook"] = "webhook"
    config: WebhookConfig = Field(default_factory=WebhookConfig)


class ExitNode(_NodeBase):
    kind: Literal["exit"] = "exit"
    config: ExitConfig = Field(default_factory=ExitConfig)


WorkflowNode = Annotated[
    Union[
        TriggerNode,
        SendEmailNode,
        WaitNode,
        ConditionNode,
        SplitNode,
        WebhookNode,
        ExitNode,
    ],
    Field(discriminator="kind"),
]

NODE_MODELS = {
    NodeKind.TRIGGER: TriggerNode,
    NodeKind.SEND_EMAIL: SendEmailNode,
    NodeKind.WAIT: WaitNode,
    NodeKind.CONDITION: ConditionNode,
    NodeKind.SPLIT: SplitNode,
    NodeKind.WEBHOOK: WebhookNode,
    NodeKind.EXIT: ExitNode,
}


def ensure_all_kinds(table: Dict[NodeKind, Any], owner: str) -> None:
    """Fail at import time if a per-kind dispatch table misses a kind."""
    missing = [k.value for k in NodeKind if k not in table]
    if missing:
        raise RuntimeError(f"{owner} does not handle node kind(s): {', '.join(missing)}")


CONFIG_MODELS = {
    NodeKind.TRIGGER: TriggerConfig,
    NodeKind.SEND_EMAIL: SendEmailConfig,
    NodeKind.WAIT: WaitConfig,
    NodeKind.CONDITION: ConditionConfig,
    NodeKind.SPLIT: SplitConfig,
    NodeKind.WEBHOOK: WebhookConfig,
    NodeKind.EXIT: ExitConfig,
}

ensure_all_kinds(NODE_MODELS, "NODE_MODELS")
ensure_all_kinds(CONFIG_MODELS, "CONFIG_MODELS")

_node_adapter: TypeAdapter = TypeAdapter(WorkflowNode)


def parse_node(data: Any) -> "WorkflowNode":
    """Validate a node dict (either key spelling) into its kind's model."""
    return _node_adapter.validate_python(data)


def config_model_for(kind: Union[NodeKind, str]):
    """Return the config model class used by nodes of ``kind``."""
    return CONFIG_MODELS[NodeKind(kind)]


def merge_config(config: BaseModel, patch: Dict[str, Any]) -> BaseModel:
    """Return a validated copy of ``config`` with ``patch`` applied.

    Patch keys may use either the attribute name or the camelCase alias.
    """
    model = type(config)
    alias_to_name = {
        (f.alias or name): name for name, f in model.model_fields.items()
    }
    current = config.model_dump()
    for key, value in patch.items():
        current[alias_to_name.get(key, key)] = value
    return model.model_validate(current)


# ============================================================================
# Edges
# ============================================================================


class EdgeData(_ConfigModel):
    branch: Optional[str] = None
    highlighted: bool = False


class WorkflowEdge(_CamelModel):
    """A directed edge between two nodes.

    ``source_handle`` selects the branch port on condition
    (``if`` / ``else_if_n`` / ``else``) and split (``a`` / ``b``) nodes.
    """

    id: str = ""
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    label: Optional[str] = None
    animated: bool = True
    data: EdgeData = Field(default_factory=EdgeData)

    def model_post_init(self, context: Any) -> None:
        if not self.id:
            self.id = create_edge_id(self.source, self.target)


# ============================================================================
# Traversal helpers
# ============================================================================


def has_path(edges: Iterable[WorkflowEdge], start_id: str, target_id: str) -> bool:
    """Depth-first reachability over ``edges``."""
    adjacency: Dict[str, List[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source, []).append(edge.target)

    stack = [start_id]
    visited: Set[str] = set()
    while stack:
        current = stack.pop()
        if current == target_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(adjacency.get(current, []))
    return False


def creates_cycle(edges: Iterable[WorkflowEdge], source_id: str, target_id: str) -> bool:
    """Would adding ``source → target`` close a loop?"""
    return has_path(edges, target_id, source_id)


# ============================================================================
# Graph
# ============================================================================


class WorkflowGraph(_CamelModel):
    """A complete automation sequence.

    Node order only affects rendering. ``settings`` and ``runtime_map``
    are opaque to the core.
    """

    id: str = Field(default_factory=create_workflow_id)
    name: str = "Untitled workflow"
    status: WorkflowStatus = WorkflowStatus.DRAFT
    version: int = 1
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)
    runtime_map: Dict[str, Any] = Field(default_factory=dict)

    def get_node(self, node_id: str) -> Optional["WorkflowNode"]:
        """Find a node by ID."""
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def get_edge(self, edge_id: str) -> Optional[WorkflowEdge]:
        for e in self.edges:
            if e.id == edge_id:
                return e
        return None

    def get_edges_from(self, node_id: str) -> List[WorkflowEdge]:
        """Get all edges originating from a node."""
        return [e for e in self.edges if e.source == node_id]

    def get_edges_to(self, node_id: str) -> List[WorkflowEdge]:
        """Get all edges pointing to a node."""
        return [e for e in self.edges if e.target == node_id]

    def get_trigger_node(self) -> Optional[TriggerNode]:
        """First node of kind ``trigger``."""
        for n in self.nodes:
            if n.kind == NodeKind.TRIGGER.value:
                return n
        return None

    def get_exit_nodes(self) -> List[ExitNode]:
        return [n for n in self.nodes if n.kind == NodeKind.EXIT.value]

    def node_map(self) -> Dict[str, "WorkflowNode"]:
        return {n.id: n for n in self.nodes}

    def reachable_from_trigger(self) -> Set[str]:
        """IDs of every node reachable from the trigger (trigger included)."""
        trigger = self.get_trigger_node()
        if trigger is None:
            return set()

        adjacency: Dict[str, List[str]] = {}
        for edge in self.edges:
            adjacency.setdefault(edge.source, []).append(edge.target)

        visited: Set[str] = set()
        stack = [trigger.id]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            stack.extend(t for t in adjacency.get(current, []) if t not in visited)
        return visited

    def has_cycle(self) -> bool:
        adjacency: Dict[str, List[str]] = {n.id: [] for n in self.nodes}
        for edge in self.edges:
            adjacency.setdefault(edge.source, []).append(edge.target)

        visiting: Set[str] = set()
        done: Set[str] = set()

        for root in adjacency:
            if root in done:
                continue
            # iterative DFS: (node, iterator over successors)
            stack = [(root, iter(adjacency.get(root, [])))]
            visiting.add(root)
            while stack:
                node_id, successors = stack[-1]
                advanced = False
                for nxt in successors:
                    if nxt in visiting:
                        return True
                    if nxt not in done:
                        visiting.add(nxt)
                        stack.append((nxt, iter(adjacency.get(nxt, []))))
                        advanced = True
                        break
                if not advanced:
                    stack.pop()
                    visiting.discard(node_id)
                    done.add(node_id)
        return False

    def validate_graph(self) -> List[str]:
        """Validate the graph topology.

        Returns a list of invariant violations (empty = valid). Graphs
        built through the connection validator never produce any; loaded
        graphs may.
        """
        from sequence_builder.workflow.condition import is_condition_branch_handle

        errors: List[str] = []
        nodes = self.node_map()

        triggers = [n for n in self.nodes if n.kind == NodeKind.TRIGGER.value]
        if len(triggers) == 0:
            errors.append("Workflow must have exactly one Trigger node.")
        elif len(triggers) > 1:
            errors.append("Workflow must have exactly one Trigger node (found multiple).")

        if len(nodes) != len(self.nodes):
            errors.append("Node identifiers must be unique.")

        seen_edges: Set[tuple] = set()
        used_handles: Set[tuple] = set()
        incoming: Dict[str, int] = {}
        for edge in self.edges:
            source = nodes.get(edge.source)
            target = nodes.get(edge.target)
            if source is None:
                errors.append(f"Edge {edge.id} references unknown source node: {edge.source}")
            if target is None:
                errors.append(f"Edge {edge.id} references unknown target node: {edge.target}")
            if source is None or target is None:
                continue

            key = (edge.source, edge.target, edge.source_handle or "")
            if key in seen_edges:
                errors.append(f"Duplicate edge {edge.source} → {edge.target}.")
            seen_edges.add(key)

            if source.kind == NodeKind.EXIT.value:
                errors.append(f"Exit node '{source.title}' ({source.id}) has an outgoing edge.")
            if target.kind == NodeKind.TRIGGER.value:
                errors.append(f"Trigger node '{target.title}' ({target.id}) has an incoming edge.")
            if edge.source == edge.target:
                errors.append(f"Node '{source.title}' ({source.id}) connects to itself.")

            handle = edge.source_handle or ""
            if source.kind == NodeKind.CONDITION.value:
                if not is_condition_branch_handle(source.config, handle):
                    errors.append(
                        f"Condition node '{source.title}' has an edge on unknown branch '{handle}'."
                    )
            if source.kind == NodeKind.SPLIT.value and handle not in ("a", "b"):
                errors.append(
                    f"Split node '{source.title}' has an edge on unknown variant '{handle}'."
                )
            if source.kind in (NodeKind.CONDITION.value, NodeKind.SPLIT.value):
                handle_key = (edge.source, handle)
                if handle_key in used_handles:
                    errors.append(
                        f"Branch '{handle}' of '{source.title}' has more than one connection."
                    )
                used_handles.add(handle_key)

            incoming[edge.target] = incoming.get(edge.target, 0) + 1

        for node_id, count in incoming.items():
            node = nodes[node_id]
            if count > 1 and node.kind != NodeKind.EXIT.value:
                errors.append(
                    f"Node '{node.title}' ({node.id}) has {count} incoming edges; only one is allowed."
                )

        if self.has_cycle():
            errors.append("Workflow graph contains a loop.")

        return errors

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the persisted JSON document (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
