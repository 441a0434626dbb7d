"""
Graph Normalizer — turn any stored value into a valid ``WorkflowGraph``.

Stored documents may come from older schemas or be hand-edited. The
normalizer never raises: unknown kinds become ``wait`` nodes, invalid
config fields fall back to defaults, legacy ``yes``/``no`` condition
handles become ``if``/``else``, and edges pointing at missing nodes are
dropped. Topology is otherwise left as stored; the compiler and
simulator guard against loops that slipped through.
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, List, Mapping, Optional, Set

from pydantic import BaseModel, ValidationError

from sequence_builder.workflow.condition import get_condition_branch_label
from sequence_builder.workflow.ids import create_edge_id
from sequence_builder.workflow.nodes import get_node_registry
from sequence_builder.workflow.templates import create_starter_graph
from sequence_builder.workflow.workflow_model import (
    NODE_MODELS,
    EdgeData,
    NodeKind,
    NodeMeta,
    NodePosition,
    NodeStatus,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowStatus,
)

logger = getLogger(__name__)

_LEGACY_HANDLES = {"yes": "if", "no": "else"}
_LEGACY_LABELS = {"yes", "no"}

NODE_SPACING_X = 280
DEFAULT_NODE_Y = 120


def _to_object(value: Any) -> Dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def _to_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _to_number(value: Any, fallback: float) -> float:
    if isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    if number != number or number in (float("inf"), float("-inf")):
        return fallback
    return number


def _to_kind(value: Any) -> NodeKind:
    try:
        return NodeKind(_text(value).strip().lower())
    except ValueError:
        return NodeKind.WAIT


def _to_status(value: Any) -> NodeStatus:
    try:
        return NodeStatus(_text(value).strip().lower())
    except ValueError:
        return NodeStatus.DRAFT


def _to_workflow_status(value: Any) -> WorkflowStatus:
    try:
        return WorkflowStatus(_text(value).strip().lower())
    except ValueError:
        return WorkflowStatus.DRAFT


def coerce_config(kind: NodeKind, raw: Any) -> BaseModel:
    """Validate ``raw`` as ``kind``'s config, dropping fields that fail.

    Condition configs go through clause normalization instead.
    """
    node_type = get_node_registry().require(kind)
    row = _to_object(raw)
    if kind is NodeKind.CONDITION:
        return node_type.coerce_config(row)

    model = node_type.config_model()
    spellings: Dict[str, Set[str]] = {}
    for name, field in model.model_fields.items():
        both = {name, field.alias or name}
        for key in both:
            spellings[key] = both

    for _ in range(len(row) + 1):
        try:
            return model.model_validate(row)
        except ValidationError as exc:
            bad: Set[str] = set()
            for err in exc.errors():
                if err.get("loc"):
                    loc = str(err["loc"][0])
                    bad |= spellings.get(loc, {loc})
            if not bad or not bad & set(row):
                break
            row = {k: v for k, v in row.items() if k not in bad}
    return node_type.create_default_config()


def _coerce_meta(raw: Any) -> Optional[NodeMeta]:
    row = _to_object(raw)
    if not row:
        return None
    try:
        return NodeMeta.model_validate(row)
    except ValidationError:
        return None


def _normalize_nodes(raw_nodes: List[Any]) -> List:
    registry = get_node_registry()
    nodes = []
    seen: Set[str] = set()

    for index, item in enumerate(raw_nodes):
        row = _to_object(item)
        kind = _to_kind(row.get("kind"))
        if row.get("kind") is not None and _text(row.get("kind")).strip().lower() != kind.value:
            logger.warning(
                f"Node {row.get('id')!r} has unknown kind {row.get('kind')!r}; treating as wait"
            )

        node_id = _text(row.get("id")).strip() or f"node_{index + 1}"
        if node_id in seen:
            suffix = 2
            while f"{node_id}_{suffix}" in seen:
                suffix += 1
            logger.warning(f"Duplicate node id {node_id!r} renamed to {node_id}_{suffix}")
            node_id = f"{node_id}_{suffix}"
        seen.add(node_id)

        position = _to_object(row.get("position"))
        node = NODE_MODELS[kind](
            id=node_id,
            title=_text(row.get("title")).strip() or registry.require(kind).label,
            position=NodePosition(
                x=_to_number(position.get("x"), index * NODE_SPACING_X),
                y=_to_number(position.get("y"), DEFAULT_NODE_Y),
            ),
            status=_to_status(row.get("status")),
            config=coerce_config(kind, row.get("config")),
            meta=_coerce_meta(row.get("meta")),
        )
        nodes.append(node)

    return nodes


def _normalize_edges(raw_edges: List[Any], nodes: List) -> List[WorkflowEdge]:
    node_by_id = {n.id: n for n in nodes}
    edges: List[WorkflowEdge] = []
    seen_ids: Set[str] = set()

    for item in raw_edges:
        row = _to_object(item)
        source = _text(row.get("source")).strip()
        target = _text(row.get("target")).strip()
        if source not in node_by_id or target not in node_by_id:
            logger.warning(
                f"Dropping edge {row.get('id')!r}: endpoint missing ({source!r} → {target!r})"
            )
            continue

        data = _to_object(row.get("data"))
        source_handle = _text(row.get("sourceHandle", row.get("source_handle"))).strip() or None
        target_handle = _text(row.get("targetHandle", row.get("target_handle"))).strip() or None
        branch = data.get("branch") if isinstance(data.get("branch"), str) else None

        source_node = node_by_id[source]
        is_condition = source_node.node_kind is NodeKind.CONDITION
        if is_condition:
            source_handle = _LEGACY_HANDLES.get(source_handle, source_handle)
            branch = _LEGACY_HANDLES.get(branch, branch)

        raw_label = _text(row.get("label")).strip()
        label: Optional[str] = raw_label or None
        stale = raw_label.lower() in _LEGACY_LABELS
        if is_condition and source_handle and (not raw_label or stale):
            label = get_condition_branch_label(source_node.config, source_handle)

        edge_id = _text(row.get("id")).strip() or create_edge_id(source, target)
        if edge_id in seen_ids:
            edge_id = create_edge_id(source, target)
        seen_ids.add(edge_id)

        data["branch"] = branch
        data["highlighted"] = bool(data.get("highlighted", False))
        try:
            edge_data = EdgeData.model_validate(data)
        except ValidationError:
            edge_data = EdgeData(branch=branch)

        edges.append(WorkflowEdge(
            id=edge_id,
            source=source,
            target=target,
            source_handle=source_handle,
            target_handle=target_handle,
            label=label,
            animated=row.get("animated") is not False,
            data=edge_data,
        ))

    return edges


def normalize_graph(value: Any, fallback_name: str = "Untitled workflow") -> WorkflowGraph:
    """Normalize a stored graph document. Never raises.

    Input without any nodes yields a fresh starter graph.
    """
    raw = _to_object(value)
    raw_nodes = _to_list(raw.get("nodes"))
    if not raw_nodes:
        graph = create_starter_graph(_text(raw.get("name")).strip() or fallback_name)
        if raw.get("id"):
            graph.id = _text(raw["id"])
        return graph

    nodes = _normalize_nodes(raw_nodes)
    edges = _normalize_edges(_to_list(raw.get("edges")), nodes)

    version = int(_to_number(raw.get("version"), 1))
    graph = WorkflowGraph(
        name=_text(raw.get("name")).strip() or fallback_name,
        status=_to_workflow_status(raw.get("status")),
        version=version if version >= 1 else 1,
        nodes=nodes,
        edges=edges,
        settings=_to_object(raw.get("settings")),
        runtime_map=_to_object(raw.get("runtimeMap", raw.get("runtime_map"))),
    )
    if raw.get("id"):
        graph.id = _text(raw["id"])

    logger.debug(
        f"Normalized workflow {graph.id}: {len(nodes)} nodes, "
        f"{len(edges)}/{len(_to_list(raw.get('edges')))} edges kept"
    )
    return graph
