"""
Builder Session — one editable workflow with selection, clipboard and
bounded undo/redo.

Each editor owns its own ``BuilderSession``; there is no module-level
instance. Mutations come in two flavours:

* tracked  — content changes (add/remove/update/connect/paste/layout).
  The pre-mutation state is snapshotted onto the undo stack and the
  redo stack is cleared.
* live     — high-frequency position updates while dragging. Applied in
  place, never recorded, but they still mark the session dirty.

Every operation that touches the graph bumps ``revision``. Operations
that would break a graph invariant raise before anything changes.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging import getLogger
from typing import Any, Callable, Deque, Dict, Iterable, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sequence_builder.config import BuilderConfig, get_builder_config
from sequence_builder.workflow.condition import ContextLike, is_condition_branch_handle
from sequence_builder.workflow.connection_validator import (
    InvalidConnectionError,
    edge_label_for,
    make_edge_from_connection,
)
from sequence_builder.workflow.ids import create_edge_id, create_node_id
from sequence_builder.workflow.layout import auto_layout as layout_nodes
from sequence_builder.workflow.nodes import create_node, get_node_registry
from sequence_builder.workflow.normalizer import coerce_config
from sequence_builder.workflow.simulation import (
    SimulationEvent,
    SimulationResult,
    simulate_workflow,
)
from sequence_builder.workflow.templates import create_starter_graph
from sequence_builder.workflow.workflow_compiler import compile_graph
from sequence_builder.workflow.workflow_inspector import build_publish_checklist
from sequence_builder.workflow.workflow_model import (
    EdgeData,
    NodeKind,
    NodeMeta,
    NodePosition,
    NodeStatus,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowStatus,
    merge_config,
)

logger = getLogger(__name__)

_NODE_PATCH_FIELDS = ("title", "position", "status", "meta")


@dataclass
class HistorySnapshot:
    graph: WorkflowGraph
    selected_node_ids: List[str]
    selected_edge_ids: List[str]


@dataclass
class Clipboard:
    """Induced subgraph of the last copied selection."""

    nodes: List = field(default_factory=list)
    edges: List[WorkflowEdge] = field(default_factory=list)


@dataclass(frozen=True)
class NodeChange:
    """A rendering-surface event for one node."""

    type: Literal["position", "remove", "select", "dimensions"]
    id: str
    position: Optional[Dict[str, float]] = None


@dataclass(frozen=True)
class EdgeChange:
    type: Literal["remove", "select"]
    id: str


class SaveSnapshot(BaseModel):
    """Immutable payload handed to the persistence collaborator."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    graph: Dict[str, Any]
    compiled_flow: List[Dict[str, Any]] = Field(default_factory=list)
    compile_errors: List[str] = Field(default_factory=list)
    checklist_pass: bool = False


def _position(value: Any) -> NodePosition:
    if isinstance(value, NodePosition):
        return value
    return NodePosition.model_validate(dict(value or {}))


def _clause_handle_map(
    old_ids: List[str], raw_clauses: Any, config: Any,
) -> Dict[str, str]:
    """Old clause handle → handle of the same clause after re-normalization.

    A patched clause is matched by the id it carries; a clause without a
    known id inherits the old clause at its position unless another
    clause already claimed that one. Old handles missing from the result
    lost their clause.
    """
    if not isinstance(raw_clauses, (list, tuple)) or not raw_clauses:
        return {}
    known = set(old_ids)
    claimed = []
    for raw in raw_clauses:
        clause_id = raw.get("id") if isinstance(raw, Mapping) else getattr(raw, "id", None)
        claimed.append(clause_id if clause_id in known else None)

    taken = {c for c in claimed if c is not None}
    remap: Dict[str, str] = {}
    for index, (clause_id, clause) in enumerate(zip(claimed, config.clauses)):
        if clause_id is None and index < len(old_ids) and old_ids[index] not in taken:
            clause_id = old_ids[index]
            taken.add(clause_id)
        if clause_id is not None and clause_id not in remap:
            remap[clause_id] = clause.id
    return remap


class BuilderSession:
    """Editing state for a single workflow graph."""

    def __init__(
        self,
        graph: Optional[WorkflowGraph] = None,
        config: Optional[BuilderConfig] = None,
    ) -> None:
        self._config = config or get_builder_config()
        limit = self._config.history_limit
        self._graph: WorkflowGraph = (graph or create_starter_graph()).model_copy(deep=True)
        self._selected_node_ids: List[str] = []
        self._selected_edge_ids: List[str] = []
        self._clipboard: Optional[Clipboard] = None
        self._past: Deque[HistorySnapshot] = deque(maxlen=limit)
        self._future: Deque[HistorySnapshot] = deque(maxlen=limit)
        self._dirty = False
        self._revision = 0
        self._last_saved_at: Optional[datetime] = None
        self._simulation: Optional[SimulationResult] = None
        self._runtime_events: List[SimulationEvent] = []

    # ========================================================================
    # Read access
    # ========================================================================

    @property
    def graph(self) -> WorkflowGraph:
        return self._graph

    @property
    def selected_node_ids(self) -> List[str]:
        return list(self._selected_node_ids)

    @property
    def selected_edge_ids(self) -> List[str]:
        return list(self._selected_edge_ids)

    @property
    def clipboard(self) -> Optional[Clipboard]:
        return self._clipboard

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def last_saved_at(self) -> Optional[datetime]:
        return self._last_saved_at

    @property
    def simulation(self) -> Optional[SimulationResult]:
        return self._simulation

    @property
    def runtime_events(self) -> List[SimulationEvent]:
        return list(self._runtime_events)

    @property
    def history_depth(self) -> int:
        return len(self._past)

    def can_undo(self) -> bool:
        return bool(self._past)

    def can_redo(self) -> bool:
        return bool(self._future)

    # ========================================================================
    # Internals
    # ========================================================================

    def _snapshot(self) -> HistorySnapshot:
        return HistorySnapshot(
            graph=self._graph.model_copy(deep=True),
            selected_node_ids=list(self._selected_node_ids),
            selected_edge_ids=list(self._selected_edge_ids),
        )

    def _restore(self, snapshot: HistorySnapshot) -> None:
        self._graph = snapshot.graph.model_copy(deep=True)
        self._selected_node_ids = list(snapshot.selected_node_ids)
        self._selected_edge_ids = list(snapshot.selected_edge_ids)

    def _working_copy(self) -> WorkflowGraph:
        return self._graph.model_copy(deep=True)

    def _commit(
        self,
        graph: WorkflowGraph,
        action: str,
        node_ids: Optional[Iterable[str]] = None,
        edge_ids: Optional[Iterable[str]] = None,
    ) -> None:
        """Record the current state, then install ``graph``.

        ``node_ids``/``edge_ids`` replace the selection when given;
        otherwise the selection is pruned to ids that still exist.
        """
        self._past.append(self._snapshot())
        self._future.clear()
        self._graph = graph

        if node_ids is not None:
            self._selected_node_ids = list(node_ids)
        else:
            present = {n.id for n in graph.nodes}
            self._selected_node_ids = [i for i in self._selected_node_ids if i in present]
        if edge_ids is not None:
            self._selected_edge_ids = list(edge_ids)
        else:
            present = {e.id for e in graph.edges}
            self._selected_edge_ids = [i for i in self._selected_edge_ids if i in present]

        self._dirty = True
        self._revision += 1
        logger.debug(f"[{graph.id}] {action} (revision {self._revision})")

    def _touch_live(self) -> None:
        self._dirty = True
        self._revision += 1

    def _require_node(self, graph: WorkflowGraph, node_id: str):
        node = graph.get_node(node_id)
        if node is None:
            raise KeyError(f"Unknown node: {node_id}")
        return node

    def _require_edge(self, graph: WorkflowGraph, edge_id: str) -> WorkflowEdge:
        edge = graph.get_edge(edge_id)
        if edge is None:
            raise KeyError(f"Unknown edge: {edge_id}")
        return edge

    # ========================================================================
    # Whole-graph operations
    # ========================================================================

    def set_graph(
        self,
        graph: WorkflowGraph,
        reset_history: bool = True,
        mark_dirty: bool = False,
    ) -> None:
        """Load a graph wholesale (untracked). Clears selection and simulation."""
        self._graph = graph.model_copy(deep=True)
        self._selected_node_ids = []
        self._selected_edge_ids = []
        self._simulation = None
        self._runtime_events = []
        if reset_history:
            self._past.clear()
            self._future.clear()
        self._dirty = mark_dirty
        self._revision += 1
        logger.info(f"Loaded workflow {graph.id} ({len(graph.nodes)} nodes)")

    def replace_graph(
        self,
        graph: WorkflowGraph,
        node_ids: Optional[Sequence[str]] = None,
        edge_ids: Optional[Sequence[str]] = None,
    ) -> None:
        """Bulk structural replace (tracked)."""
        self._commit(
            graph.model_copy(deep=True), "replace graph",
            node_ids=list(node_ids or []), edge_ids=list(edge_ids or []),
        )

    def update_graph_meta(
        self,
        name: Optional[str] = None,
        status: Optional[WorkflowStatus] = None,
        version: Optional[int] = None,
    ) -> None:
        graph = self._working_copy()
        if name is not None:
            graph.name = name
        if status is not None:
            graph.status = WorkflowStatus(status)
        if version is not None:
            graph.version = version
        self._commit(graph, "update graph meta")

    def set_selection(self, node_ids: Iterable[str], edge_ids: Iterable[str]) -> None:
        """Replace the selection. Not recorded in history."""
        node_ids, edge_ids = list(node_ids), list(edge_ids)
        if set(node_ids) == set(self._selected_node_ids) and set(edge_ids) == set(self._selected_edge_ids):
            return
        self._selected_node_ids = node_ids
        self._selected_edge_ids = edge_ids

    # ========================================================================
    # Nodes
    # ========================================================================

    def add_node(
        self,
        node_or_kind: Any,
        position: Optional[Dict[str, float]] = None,
        title: Optional[str] = None,
        config: Any = None,
    ):
        """Add a node (or a fresh node of a kind) and select it.

        Raises:
            ValueError: Adding a second trigger, or reusing a node id.
        """
        if isinstance(node_or_kind, (str, NodeKind)):
            node = create_node(node_or_kind, position=position, title=title, config=config)
        else:
            node = node_or_kind.model_copy(deep=True)

        if node.node_kind is NodeKind.TRIGGER and self._graph.get_trigger_node() is not None:
            raise ValueError("This workflow already has a trigger block.")
        if self._graph.get_node(node.id) is not None:
            raise ValueError(f"Node id already in use: {node.id}")

        graph = self._working_copy()
        graph.nodes.append(node)
        self._commit(graph, f"add node {node.id}", node_ids=[node.id], edge_ids=[])
        return node

    def update_node(self, node_id: str, **patch: Any):
        """Patch ``title``, ``position``, ``status`` or ``meta`` of a node."""
        unknown = set(patch) - set(_NODE_PATCH_FIELDS)
        if unknown:
            raise ValueError(f"Cannot patch node field(s): {', '.join(sorted(unknown))}")

        graph = self._working_copy()
        node = self._require_node(graph, node_id)
        if "title" in patch:
            node.title = str(patch["title"])
        if "position" in patch:
            node.position = _position(patch["position"])
        if "status" in patch:
            node.status = NodeStatus(patch["status"])
        if "meta" in patch:
            meta = patch["meta"]
            node.meta = meta if meta is None or isinstance(meta, NodeMeta) else NodeMeta.model_validate(meta)
        self._commit(graph, f"update node {node_id}")
        return node

    def update_node_config(self, node_id: str, patch: Dict[str, Any]):
        """Merge ``patch`` into a node's config.

        Condition configs are re-normalized. Edges follow their clause to
        its new handle; edges whose clause was removed are dropped and the
        rest relabelled.
        """
        graph = self._working_copy()
        node = self._require_node(graph, node_id)

        if node.node_kind is NodeKind.CONDITION:
            old_ids = [c.id for c in node.config.clauses]
            merged = node.config.model_dump(by_alias=True)
            merged.update(patch)
            node.config = coerce_config(NodeKind.CONDITION, merged)
            remap = _clause_handle_map(old_ids, merged.get("clauses"), node.config)

            kept = []
            for edge in graph.edges:
                if edge.source == node_id:
                    handle = edge.source_handle or ""
                    if handle in remap:
                        handle = remap[handle]
                    elif handle in old_ids or not is_condition_branch_handle(node.config, handle):
                        logger.info(f"Dropping edge {edge.id}: branch {edge.source_handle!r} removed")
                        continue
                    if handle != edge.source_handle:
                        edge.source_handle = handle
                        edge.data.branch = handle
                    edge.label = edge_label_for(node, handle)
                kept.append(edge)
            graph.edges = kept
        else:
            node.config = merge_config(node.config, patch)

        self._commit(graph, f"update config of {node_id}")
        return node

    def move_node(self, node_id: str, position: Dict[str, float]) -> None:
        """Live drag update: in place, not recorded."""
        node = self._require_node(self._graph, node_id)
        new_position = _position(position)
        if node.position == new_position:
            return
        node.position = new_position
        self._touch_live()

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it."""
        graph = self._working_copy()
        self._require_node(graph, node_id)
        graph.nodes = [n for n in graph.nodes if n.id != node_id]
        graph.edges = [e for e in graph.edges if e.source != node_id and e.target != node_id]
        self._commit(graph, f"remove node {node_id}")

    # ========================================================================
    # Edges
    # ========================================================================

    def connect(
        self,
        source: Optional[str],
        target: Optional[str],
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
    ) -> WorkflowEdge:
        """Validate and add a connection; selects the new edge.

        Raises:
            InvalidConnectionError: The graph is left untouched.
        """
        edge = make_edge_from_connection(
            source, target, source_handle, target_handle,
            self._graph.nodes, self._graph.edges,
        )
        graph = self._working_copy()
        graph.edges.append(edge)
        self._commit(graph, f"connect {source} → {target}", node_ids=[], edge_ids=[edge.id])
        return edge

    def add_edge(self, edge: WorkflowEdge) -> WorkflowEdge:
        """Add a pre-built edge after running it through the connection rules.

        The edge keeps its id; its label is derived when empty.
        """
        if self._graph.get_edge(edge.id) is not None:
            raise ValueError(f"Edge id already in use: {edge.id}")
        validated = make_edge_from_connection(
            edge.source, edge.target, edge.source_handle, edge.target_handle,
            self._graph.nodes, self._graph.edges,
        )
        accepted = edge.model_copy(deep=True, update={"label": edge.label or validated.label})
        graph = self._working_copy()
        graph.edges.append(accepted)
        self._commit(graph, f"add edge {accepted.id}", node_ids=[], edge_ids=[accepted.id])
        return accepted

    def reconnect(
        self,
        edge_id: str,
        source: Optional[str] = None,
        target: Optional[str] = None,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
    ) -> WorkflowEdge:
        """Move an edge's endpoints. Omitted endpoints stay as they are.

        Raises:
            KeyError: Unknown edge.
            InvalidConnectionError: The original edge is kept.
        """
        old = self._require_edge(self._graph, edge_id)
        remaining = [e for e in self._graph.edges if e.id != edge_id]
        edge = make_edge_from_connection(
            source or old.source,
            target or old.target,
            source_handle if source_handle is not None else old.source_handle,
            target_handle if target_handle is not None else old.target_handle,
            self._graph.nodes,
            remaining,
        )
        graph = self._working_copy()
        graph.edges = [e for e in graph.edges if e.id != edge_id] + [edge]
        self._commit(graph, f"reconnect {edge_id} → {edge.id}", node_ids=[], edge_ids=[edge.id])
        return edge

    def remove_edge(self, edge_id: str) -> None:
        graph = self._working_copy()
        self._require_edge(graph, edge_id)
        graph.edges = [e for e in graph.edges if e.id != edge_id]
        self._commit(graph, f"remove edge {edge_id}")

    def remove_selection(self) -> None:
        """Delete selected nodes, selected edges, and edges touching removed nodes."""
        if not self._selected_node_ids and not self._selected_edge_ids:
            return
        nodes = set(self._selected_node_ids)
        edges = set(self._selected_edge_ids)
        graph = self._working_copy()
        graph.nodes = [n for n in graph.nodes if n.id not in nodes]
        graph.edges = [
            e for e in graph.edges
            if e.id not in edges and e.source not in nodes and e.target not in nodes
        ]
        self._commit(graph, "remove selection", node_ids=[], edge_ids=[])

    # ========================================================================
    # Rendering-surface events
    # ========================================================================

    def apply_node_changes(self, changes: Iterable[NodeChange]) -> None:
        """Position changes are live; any removal makes the batch tracked."""
        actionable = [
            c for c in changes
            if c.type == "remove" or (c.type == "position" and c.position is not None)
        ]
        if not actionable:
            return
        tracked = any(c.type == "remove" for c in actionable)
        graph = self._working_copy() if tracked else self._graph

        mutated = False
        for change in actionable:
            if change.type == "remove":
                before = len(graph.nodes)
                graph.nodes = [n for n in graph.nodes if n.id != change.id]
                mutated = mutated or len(graph.nodes) != before
                continue
            node = graph.get_node(change.id)
            new_position = _position(change.position)
            if node is not None and node.position != new_position:
                node.position = new_position
                mutated = True

        if not mutated:
            return
        if tracked:
            present = {n.id for n in graph.nodes}
            graph.edges = [e for e in graph.edges if e.source in present and e.target in present]
            self._commit(graph, "apply node changes")
        else:
            self._touch_live()

    def apply_edge_changes(self, changes: Iterable[EdgeChange]) -> None:
        removed = {c.id for c in changes if c.type == "remove"}
        if not removed & {e.id for e in self._graph.edges}:
            return
        graph = self._working_copy()
        graph.edges = [e for e in graph.edges if e.id not in removed]
        self._commit(graph, "apply edge changes")

    # ========================================================================
    # Clipboard
    # ========================================================================

    def copy_selection(self) -> Optional[Clipboard]:
        """Copy selected nodes plus the edges between them."""
        selected = set(self._selected_node_ids)
        nodes = [n.model_copy(deep=True) for n in self._graph.nodes if n.id in selected]
        if not nodes:
            return None
        ids = {n.id for n in nodes}
        edges = [
            e.model_copy(deep=True) for e in self._graph.edges
            if e.source in ids and e.target in ids
        ]
        self._clipboard = Clipboard(nodes=nodes, edges=edges)
        return self._clipboard

    def paste_clipboard(self) -> Optional[Clipboard]:
        """Paste the clipboard with fresh ids, offset, and select it.

        Trigger nodes are never pasted; a graph keeps a single entry point.
        """
        if self._clipboard is None:
            return None

        offset = self._config.paste_offset
        id_map: Dict[str, str] = {}
        pasted_nodes = []
        for node in self._clipboard.nodes:
            if node.node_kind is NodeKind.TRIGGER:
                logger.info(f"Skipping trigger {node.id} on paste")
                continue
            new_id = create_node_id(node.kind)
            id_map[node.id] = new_id
            pasted_nodes.append(node.model_copy(deep=True, update={
                "id": new_id,
                "position": NodePosition(x=node.position.x + offset, y=node.position.y + offset),
            }))

        pasted_edges = []
        for edge in self._clipboard.edges:
            source, target = id_map.get(edge.source), id_map.get(edge.target)
            if source is None or target is None:
                continue
            pasted_edges.append(edge.model_copy(deep=True, update={
                "id": create_edge_id(source, target),
                "source": source,
                "target": target,
                "data": EdgeData(branch=edge.data.branch, highlighted=False),
            }))

        if not pasted_nodes:
            return None

        graph = self._working_copy()
        graph.nodes.extend(pasted_nodes)
        graph.edges.extend(pasted_edges)
        self._commit(
            graph, f"paste {len(pasted_nodes)} nodes",
            node_ids=[n.id for n in pasted_nodes],
            edge_ids=[e.id for e in pasted_edges],
        )
        return Clipboard(nodes=pasted_nodes, edges=pasted_edges)

    # ========================================================================
    # History
    # ========================================================================

    def undo(self) -> bool:
        if not self._past:
            return False
        previous = self._past.pop()
        self._future.append(self._snapshot())
        self._restore(previous)
        self._dirty = True
        self._revision += 1
        logger.debug(f"[{self._graph.id}] undo (revision {self._revision})")
        return True

    def redo(self) -> bool:
        if not self._future:
            return False
        upcoming = self._future.pop()
        self._past.append(self._snapshot())
        self._restore(upcoming)
        self._dirty = True
        self._revision += 1
        logger.debug(f"[{self._graph.id}] redo (revision {self._revision})")
        return True

    # ========================================================================
    # Layout & insertion
    # ========================================================================

    def auto_layout(self) -> None:
        """Tidy up node positions (tracked)."""
        graph = self._working_copy()
        graph.nodes = layout_nodes(
            graph,
            spacing_x=self._config.layout_spacing_x,
            spacing_y=self._config.layout_spacing_y,
        )
        self._commit(graph, "auto layout")

    def insert_node_after(
        self,
        kind: Any,
        source_node_id: str,
        source_handle: str = "out",
        title: Optional[str] = None,
        config: Any = None,
    ):
        """Insert a new node on ``source_node_id``'s ``source_handle``.

        The edge that occupied that handle is re-pointed: source → new →
        old target. The graph is then laid out again and the new node
        selected.

        Raises:
            KeyError: Unknown source node.
            ValueError: Inserting a trigger.
            InvalidConnectionError: The source handle cannot take the node.
        """
        self._require_node(self._graph, source_node_id)
        node = create_node(kind, title=title, config=config)
        if node.node_kind is NodeKind.TRIGGER:
            raise ValueError("Trigger blocks cannot be inserted after another block.")

        graph = self._working_copy()
        graph.nodes.append(node)

        def _on_handle(edge: WorkflowEdge) -> bool:
            if edge.source != source_node_id:
                return False
            if source_handle == "out":
                return edge.source_handle in (None, "", "out")
            return (edge.source_handle or "") == source_handle

        displaced = next((e for e in graph.edges if _on_handle(e)), None)
        if displaced is not None:
            graph.edges = [e for e in graph.edges if e.id != displaced.id]

        graph.edges.append(make_edge_from_connection(
            source_node_id, node.id, source_handle, "in", graph.nodes, graph.edges,
        ))

        registry = get_node_registry()
        if displaced is not None and registry.require(node.kind).has_output:
            try:
                graph.edges.append(make_edge_from_connection(
                    node.id, displaced.target, "out", displaced.target_handle or "in",
                    graph.nodes, graph.edges,
                ))
            except InvalidConnectionError as exc:
                logger.warning(f"Could not re-attach {displaced.target} after insert: {exc}")

        graph.nodes = layout_nodes(
            graph,
            spacing_x=self._config.layout_spacing_x,
            spacing_y=self._config.layout_spacing_y,
        )
        self._commit(graph, f"insert {node.kind} after {source_node_id}", node_ids=[node.id], edge_ids=[])
        return graph.get_node(node.id)

    # ========================================================================
    # Simulation
    # ========================================================================

    def run_simulation(
        self,
        context: ContextLike = None,
        rng: Optional[Any] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> SimulationResult:
        """Dry-run the current graph and highlight the visited path."""
        result = simulate_workflow(
            self._graph, context, rng=rng, clock=clock,
            max_steps=self._config.simulation_step_guard,
        )
        self._simulation = result
        self._runtime_events = list(result.events)
        self.highlight_execution_path(result)
        return result

    def clear_simulation(self) -> None:
        self._simulation = None
        self._runtime_events = []
        self.clear_execution_highlight()

    def highlight_execution_path(self, result: SimulationResult) -> None:
        visited = set(result.visited_edge_ids)
        for edge in self._graph.edges:
            edge.data.highlighted = edge.id in visited

    def clear_execution_highlight(self) -> None:
        for edge in self._graph.edges:
            edge.data.highlighted = False

    # ========================================================================
    # Persistence
    # ========================================================================

    def build_save_snapshot(self) -> SaveSnapshot:
        compiled = compile_graph(self._graph, max_steps=self._config.compile_step_guard)
        checklist = build_publish_checklist(self._graph, compiled)
        return SaveSnapshot(
            graph=self._graph.to_document(),
            compiled_flow=compiled.to_flow(),
            compile_errors=compiled.errors,
            checklist_pass=all(item.passed for item in checklist),
        )

    def save(self, persist: Callable[[SaveSnapshot], Any]) -> SaveSnapshot:
        """Hand a snapshot to ``persist`` once.

        On failure the session stays dirty and the error propagates; the
        caller decides whether to retry.
        """
        snapshot = self.build_save_snapshot()
        try:
            persist(snapshot)
        except Exception:
            logger.exception(f"Saving workflow {self._graph.id} failed; session stays dirty")
            raise
        self.mark_saved()
        logger.info(f"Saved workflow {self._graph.id} at revision {self._revision}")
        return snapshot

    def mark_saved(self, saved_at: Optional[datetime] = None) -> None:
        self._dirty = False
        self._last_saved_at = saved_at or datetime.now(timezone.utc)
