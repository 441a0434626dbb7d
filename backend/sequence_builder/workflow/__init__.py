"""
Workflow Engine — visual email-sequence builder core.

Provides the graph model, editing rules, compilation to the legacy
runner flow, and dry-run simulation behind the visual node-edge editor.

Architecture:
    nodes/               — BaseNode registry, one class per node kind
    workflow_model       — Graph, node and edge data models
    condition            — Clause normalization and branch selection
    normalizer           — Stored/legacy documents → valid WorkflowGraph
    connection_validator — Edge-creation rules
    workflow_compiler    — WorkflowGraph → legacy step list + diagnostics
    simulation           — Side-effect-free dry run
    layout               — Automatic positioning
    workflow_inspector   — Publish checklist and inspection report
    builder_session      — Selection, clipboard, undo/redo
    legacy_flow          — Legacy step model and import
    templates            — Starter graph and built-in templates
"""

from sequence_builder.workflow.nodes.base import (
    BaseNode,
    NodeRegistry,
    OutputPort,
    get_node_registry,
)
from sequence_builder.workflow.nodes import create_node
from sequence_builder.workflow.workflow_model import (
    NodeKind,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowNode,
)
from sequence_builder.workflow.condition import (
    ConditionContext,
    normalize_condition_config,
    pick_condition_branch,
)
from sequence_builder.workflow.normalizer import normalize_graph
from sequence_builder.workflow.connection_validator import (
    ConnectionRejection,
    InvalidConnectionError,
    make_edge_from_connection,
)
from sequence_builder.workflow.workflow_compiler import (
    CompileResult,
    Diagnostic,
    DiagnosticSeverity,
    WorkflowCompiler,
    compile_graph,
)
from sequence_builder.workflow.simulation import SimulationResult, simulate_workflow
from sequence_builder.workflow.layout import auto_layout
from sequence_builder.workflow.workflow_inspector import (
    build_publish_checklist,
    can_publish_workflow,
    inspect_workflow,
)
from sequence_builder.workflow.builder_session import BuilderSession, SaveSnapshot
from sequence_builder.workflow.legacy_flow import (
    LegacyStep,
    extract_graph_from_workflow,
    legacy_flow_to_graph,
    with_graph_in_settings,
)
from sequence_builder.workflow.templates import create_starter_graph, get_template

__all__ = [
    "BaseNode",
    "NodeRegistry",
    "OutputPort",
    "get_node_registry",
    "create_node",
    "NodeKind",
    "WorkflowEdge",
    "WorkflowGraph",
    "WorkflowNode",
    "ConditionContext",
    "normalize_condition_config",
    "pick_condition_branch",
    "normalize_graph",
    "ConnectionRejection",
    "InvalidConnectionError",
    "make_edge_from_connection",
    "CompileResult",
    "Diagnostic",
    "DiagnosticSeverity",
    "WorkflowCompiler",
    "compile_graph",
    "SimulationResult",
    "simulate_workflow",
    "auto_layout",
    "build_publish_checklist",
    "can_publish_workflow",
    "inspect_workflow",
    "BuilderSession",
    "SaveSnapshot",
    "LegacyStep",
    "extract_graph_from_workflow",
    "legacy_flow_to_graph",
    "with_graph_in_settings",
    "create_starter_graph",
    "get_template",
]
