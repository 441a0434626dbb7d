"""
Workflow Compiler — degrade a WorkflowGraph into the runner's legacy flow.

The execution runner only understands a linear list of ``send_email``,
``wait``, binary ``condition`` and ``stop`` steps. The compiler walks the
graph from the trigger and emits one step per node, recording what could
not be carried over:

    FATAL     the flow had to stop early (always followed by a stop step)
    ADVISORY  a lossy mapping happened but the flow is still usable

Usage::

    result = compile_graph(graph)
    flow = result.to_flow()
    if result.has_fatal:
        ...
"""

from __future__ import annotations

from enum import Enum
from logging import getLogger
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from sequence_builder.config import get_builder_config
from sequence_builder.workflow.condition import (
    ELSE_HANDLE,
    IF_HANDLE,
    normalize_condition_config,
)
from sequence_builder.workflow.legacy_flow import LegacyRule, LegacyStep, stop_step
from sequence_builder.workflow.workflow_model import (
    ConditionClause,
    ConditionRule,
    NodeKind,
    WorkflowEdge,
    WorkflowGraph,
    ensure_all_kinds,
)

logger = getLogger(__name__)

_LEGACY_IF_HANDLES = (IF_HANDLE, "yes")
_LEGACY_ELSE_HANDLES = (ELSE_HANDLE, "no")

# keyword in propertyKey → legacy rule, checked in order
_PROPERTY_KEYWORDS: Tuple[Tuple[str, LegacyRule], ...] = (
    ("domain", LegacyRule.EMAIL_DOMAIN_CONTAINS),
    ("company", LegacyRule.COMPANY_CONTAINS),
    ("job", LegacyRule.JOB_TITLE_CONTAINS),
)

_UNSUPPORTED_RULE_MESSAGES = {
    ConditionRule.EMAIL_OPENED: "Email opened condition is not yet supported by runner; fallback uses has_replied.",
    ConditionRule.EMAIL_CLICKED: "Email clicked condition is not yet supported by runner; fallback uses has_replied.",
    ConditionRule.TAG_EXISTS: "Tag based condition is not yet supported by runner; fallback uses has_replied.",
    ConditionRule.CUSTOM_EVENT: "Custom event condition is not yet supported by runner; fallback uses has_replied.",
}


class DiagnosticSeverity(str, Enum):
    FATAL = "fatal"
    ADVISORY = "advisory"


class Diagnostic(BaseModel):
    severity: DiagnosticSeverity
    code: str
    message: str
    node_id: Optional[str] = None


class CompileResult(BaseModel):
    """Compiled steps plus everything that was lost on the way."""

    steps: List[LegacyStep] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)

    @property
    def fatal(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is DiagnosticSeverity.FATAL]

    @property
    def advisory(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is DiagnosticSeverity.ADVISORY]

    @property
    def has_fatal(self) -> bool:
        return any(d.severity is DiagnosticSeverity.FATAL for d in self.diagnostics)

    @property
    def errors(self) -> List[str]:
        """All diagnostic messages in emission order."""
        return [d.message for d in self.diagnostics]

    def to_flow(self) -> List[Dict[str, Any]]:
        return [step.model_dump() for step in self.steps]


def map_clause_to_legacy(clause: ConditionClause) -> Tuple[LegacyRule, str, Optional[str]]:
    """Best-effort mapping of a clause onto a legacy rule.

    Returns ``(rule, value, advisory_message)``. Only ``user_property``
    clauses whose key mentions domain/company/job survive; everything
    else falls back to ``has_replied`` with an empty value.
    """
    rule = ConditionRule(clause.rule)
    if rule is ConditionRule.USER_PROPERTY:
        prop = clause.property_key.lower()
        for keyword, legacy_rule in _PROPERTY_KEYWORDS:
            if keyword in prop:
                return legacy_rule, clause.value, None
        return (
            LegacyRule.HAS_REPLIED,
            "",
            f'Condition property "{prop or "unknown"}" is not supported by the current runner.',
        )
    return LegacyRule.HAS_REPLIED, "", _UNSUPPORTED_RULE_MESSAGES[rule]


# ============================================================================
# Walk state
# ============================================================================


class _Walk:
    """Mutable state of one compilation pass."""

    def __init__(self, graph: WorkflowGraph) -> None:
        self.graph = graph
        self.nodes = graph.node_map()
        self.steps: List[LegacyStep] = []
        self.diagnostics: List[Diagnostic] = []
        self.finished = False

    def outgoing(self, node_id: str) -> List[WorkflowEdge]:
        return [e for e in self.graph.edges if e.source == node_id]

    def fatal(self, code: str, message: str, node_id: Optional[str] = None) -> None:
        self.diagnostics.append(Diagnostic(
            severity=DiagnosticSeverity.FATAL, code=code, message=message, node_id=node_id,
        ))

    def advise(self, code: str, message: str, node_id: Optional[str] = None) -> None:
        self.diagnostics.append(Diagnostic(
            severity=DiagnosticSeverity.ADVISORY, code=code, message=message, node_id=node_id,
        ))

    def stop(self, step_id: str) -> None:
        self.steps.append(stop_step(step_id))
        self.finished = True

    def fallback_stop_id(self, default: str) -> str:
        return f"{self.steps[-1].id}_stop" if self.steps else default


# Handler: (compiler, node, walk) → id of the next node, or None when the
# walk has ended (the handler is responsible for the closing stop step).
_Handler = Callable[["WorkflowCompiler", Any, _Walk], Optional[str]]


class WorkflowCompiler:
    """Compile a WorkflowGraph → legacy step list.

    The compiler is pure: the same graph always yields the same steps,
    step ids and diagnostics.
    """

    def __init__(self, graph: WorkflowGraph, max_steps: Optional[int] = None) -> None:
        self._graph = graph
        self._max_steps = max_steps or get_builder_config().compile_step_guard

    # ========================================================================
    # Compilation
    # ========================================================================

    def compile(self) -> CompileResult:
        walk = _Walk(self._graph)
        trigger = self._graph.get_trigger_node()

        if trigger is None:
            walk.fatal("missing_trigger", "No trigger node found.")
            walk.stop("stop")
            return self._finish(walk)

        current = self._follow(trigger, walk)
        visited = set()
        guard = 0

        while current is not None and not walk.finished:
            if guard >= self._max_steps:
                walk.fatal(
                    "step_guard",
                    "Compilation guard reached while resolving graph path.",
                    current,
                )
                break
            guard += 1

            if current in visited:
                walk.fatal("loop", "Loop detected while compiling workflow.", current)
                walk.stop(f"{current}_stop")
                break
            visited.add(current)

            node = walk.nodes.get(current)
            if node is None:
                walk.fatal("missing_node", f"Connected node {current} no longer exists.")
                break

            # ── Dispatch on kind ──
            handler = _HANDLERS[node.node_kind]
            current = handler(self, node, walk)

        if not walk.steps or walk.steps[-1].type != "stop":
            walk.stop(walk.fallback_stop_id(f"{trigger.id}_stop"))
        return self._finish(walk)

    def _finish(self, walk: _Walk) -> CompileResult:
        result = CompileResult(steps=walk.steps, diagnostics=walk.diagnostics)
        logger.info(
            f"Compiled workflow {self._graph.id}: {len(result.steps)} steps, "
            f"{len(result.fatal)} fatal, {len(result.advisory)} advisory"
        )
        return result

    def _follow(self, node, walk: _Walk) -> Optional[str]:
        """Target of ``node``'s first outgoing edge; records a dead end."""
        outgoing = walk.outgoing(node.id)
        if outgoing:
            return outgoing[0].target
        walk.advise(
            "dead_end",
            f'Node "{node.title}" has no outgoing connection; the flow stops here.',
            node.id,
        )
        walk.stop(f"{node.id}_stop")
        return None

    # ========================================================================
    # Per-kind handlers
    # ========================================================================

    def _compile_send_email(self, node, walk: _Walk) -> Optional[str]:
        cfg = node.config
        walk.steps.append(LegacyStep(
            id=node.id,
            name=node.title or "Send email",
            type="send_email",
            config={
                "sender_config_id": cfg.sender_config_id or "",
                "template_id": cfg.template_id or "",
                "subject": cfg.subject,
                "body": cfg.body,
                "thread_with_previous": cfg.thread_with_previous is not False,
            },
        ))
        return self._follow(node, walk)

    def _compile_wait(self, node, walk: _Walk) -> Optional[str]:
        cfg = node.config
        walk.steps.append(LegacyStep(
            id=node.id,
            name=node.title or "Wait",
            type="wait",
            config={"duration": cfg.duration or 1, "unit": cfg.unit or "days"},
        ))
        return self._follow(node, walk)

    def _compile_condition(self, node, walk: _Walk) -> Optional[str]:
        config = normalize_condition_config(node.config)
        outgoing = walk.outgoing(node.id)

        def _edge_on(handles) -> Optional[WorkflowEdge]:
            for handle in handles:
                for edge in outgoing:
                    if edge.source_handle == handle:
                        return edge
            return None

        if_edge = _edge_on(_LEGACY_IF_HANDLES)
        else_edge = _edge_on(_LEGACY_ELSE_HANDLES)

        if len(config.clauses) > 1:
            walk.advise(
                "else_if_dropped",
                f'Condition node "{node.title}" uses else-if branches; '
                f"legacy flow fallback only preserves If/Else behavior.",
                node.id,
            )
        if if_edge is None or else_edge is None:
            walk.advise(
                "branch_unconnected",
                f'Condition node "{node.title}" must connect both If and Else outputs.',
                node.id,
            )

        if_node = walk.nodes.get(if_edge.target) if if_edge else None
        else_node = walk.nodes.get(else_edge.target) if else_edge else None
        if_stop = if_node is None or if_node.node_kind is NodeKind.EXIT
        else_stop = else_node is None or else_node.node_kind is NodeKind.EXIT

        rule, value, advisory = map_clause_to_legacy(config.clauses[0])
        if advisory:
            walk.advise("rule_fallback", advisory, node.id)

        walk.steps.append(LegacyStep(
            id=node.id,
            name=node.title or "Condition",
            type="condition",
            config={
                "rule": rule.value,
                "value": value,
                "if_true": "stop" if if_stop else "continue",
                "if_false": "stop" if else_stop else "continue",
            },
        ))

        continue_targets = []
        if not if_stop:
            continue_targets.append(if_node.id)
        if not else_stop:
            continue_targets.append(else_node.id)

        if len(set(continue_targets)) > 1:
            walk.fatal(
                "divergent_branches",
                f'Condition node "{node.title}" has divergent continue branches '
                f"that are not representable in linear runner.",
                node.id,
            )
            walk.stop(f"{node.id}_stop")
            return None

        if not continue_targets:
            walk.stop(f"{node.id}_stop")
            return None
        return continue_targets[0]

    def _compile_unsupported(self, node, walk: _Walk) -> Optional[str]:
        walk.fatal(
            "unsupported_node",
            f"Node type {node.kind} is not supported by the current automation runner.",
            node.id,
        )
        walk.stop(f"{node.id}_stop")
        return None

    def _compile_exit(self, node, walk: _Walk) -> Optional[str]:
        walk.stop(node.id)
        return None

    def _compile_trigger(self, node, walk: _Walk) -> Optional[str]:
        # only reachable through a corrupted edge into the trigger
        walk.fatal("loop", "Loop detected while compiling workflow.", node.id)
        walk.stop(f"{node.id}_stop")
        return None


_HANDLERS: Dict[NodeKind, _Handler] = {
    NodeKind.TRIGGER: WorkflowCompiler._compile_trigger,
    NodeKind.SEND_EMAIL: WorkflowCompiler._compile_send_email,
    NodeKind.WAIT: WorkflowCompiler._compile_wait,
    NodeKind.CONDITION: WorkflowCompiler._compile_condition,
    NodeKind.SPLIT: WorkflowCompiler._compile_unsupported,
    NodeKind.WEBHOOK: WorkflowCompiler._compile_unsupported,
    NodeKind.EXIT: WorkflowCompiler._compile_exit,
}
ensure_all_kinds(_HANDLERS, "WorkflowCompiler")


def compile_graph(graph: WorkflowGraph, max_steps: Optional[int] = None) -> CompileResult:
    """Compile ``graph`` to the legacy flow. Never raises on graph shape."""
    return WorkflowCompiler(graph, max_steps=max_steps).compile()
