"""
Condition Resolver — clause normalization and branch selection.

A condition node holds an ordered clause list. Clause ``0`` owns the
``if`` handle, later clauses own ``else_if_<n>`` handles, and an implicit
``else`` branch always exists. Branch selection walks the clauses in
order and returns the first match, falling through to ``else``.

The same functions back the normalizer, the connection validator,
edge labels, and the simulator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sequence_builder.workflow.workflow_model import (
    ConditionClause,
    ConditionConfig,
    ConditionRule,
)

IF_HANDLE = "if"
ELSE_HANDLE = "else"

_ELSE_IF_RE = re.compile(r"else_if_([1-9][0-9]*)")
_RULES = {r.value for r in ConditionRule}
_COMPARATORS = ("equals", "contains", "exists")


class ConditionContext(BaseModel):
    """Synthetic contact state a condition is evaluated against."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_properties: Dict[str, Any] = Field(default_factory=dict)
    opened: bool = False
    clicked: bool = False
    tags: List[str] = Field(default_factory=list)
    custom_events: List[str] = Field(default_factory=list)


ContextLike = Union[ConditionContext, Mapping[str, Any], None]


def as_context(value: ContextLike) -> ConditionContext:
    if isinstance(value, ConditionContext):
        return value
    return ConditionContext.model_validate(dict(value or {}))


# ============================================================================
# Handles & labels
# ============================================================================


def condition_handle_for_clause(index: int) -> str:
    return IF_HANDLE if index <= 0 else f"else_if_{index}"


def condition_label_for_clause(index: int) -> str:
    return "If" if index <= 0 else f"Else If {index}"


def else_if_index(handle: str) -> Optional[int]:
    """``else_if_3`` → 3; anything else (incl. ``else_if_0``) → None."""
    match = _ELSE_IF_RE.fullmatch(handle or "")
    return int(match.group(1)) if match else None


def condition_label_for_handle(handle: str, fallback_index: int = 0) -> str:
    if handle == IF_HANDLE:
        return "If"
    if handle == ELSE_HANDLE:
        return "Else"
    index = else_if_index(handle)
    if index is not None:
        return f"Else If {index}"
    return condition_label_for_clause(fallback_index)


def _next_else_if_handle(used: Set[str]) -> str:
    index = 1
    while f"else_if_{index}" in used:
        index += 1
    return f"else_if_{index}"


def create_default_clause(index: int = 0) -> ConditionClause:
    return ConditionClause(
        id=condition_handle_for_clause(index),
        rule=ConditionRule.EMAIL_OPENED,
        comparator="exists",
        value="",
    )


def create_next_else_if_clause(existing: List[ConditionClause]) -> ConditionClause:
    """Default clause on the lowest ``else_if_<n>`` handle not yet taken."""
    used = {c.id for c in existing}
    handle = _next_else_if_handle(used)
    return create_default_clause(else_if_index(handle) or len(existing))


# ============================================================================
# Normalization
# ============================================================================


def _to_mapping(value: Any) -> Dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def _pick(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, ConditionRule):
        return value.value
    return str(value)


def _normalize_clause(raw: Any) -> ConditionClause:
    row = _to_mapping(raw)
    rule = _text(row.get("rule")).strip().lower()
    comparator = _text(row.get("comparator")).strip().lower()
    property_key = _text(_pick(row, "propertyKey", "property_key")).strip()
    if rule not in _RULES:
        # a bare property clause is a user_property test
        rule = ConditionRule.USER_PROPERTY if property_key else ConditionRule.EMAIL_OPENED
    return ConditionClause(
        id=_text(row.get("id")).strip(),
        rule=rule,
        property_key=property_key,
        comparator=comparator if comparator in _COMPARATORS else "exists",
        value=_text(row.get("value")),
    )


def normalize_condition_config(value: Any) -> ConditionConfig:
    """Turn any clause-like payload into a valid ``ConditionConfig``.

    Accepts a ``{"clauses": [...]}`` payload, a legacy flat
    ``rule``/``propertyKey``/``comparator``/``value`` payload, or junk.
    Clause 0 always gets ``if``. A later clause keeps its supplied
    ``else_if_<n>`` handle when it is well-formed, unused, and
    ``n < len(clauses)``; otherwise it takes the lowest free handle. The
    resulting handle set is therefore always ``else_if_1 … else_if_(n-1)``.
    """
    row = _to_mapping(value)
    raw_clauses = row.get("clauses")
    if isinstance(raw_clauses, (list, tuple)) and raw_clauses:
        clauses = [_normalize_clause(c) for c in raw_clauses]
    else:
        clauses = [_normalize_clause({
            "rule": row.get("rule"),
            "propertyKey": _pick(row, "propertyKey", "property_key"),
            "comparator": row.get("comparator"),
            "value": row.get("value"),
        })]

    if not clauses:
        clauses = [create_default_clause(0)]

    total = len(clauses)
    used: Set[str] = {IF_HANDLE}
    normalized: List[ConditionClause] = []
    for index, clause in enumerate(clauses):
        if index == 0:
            normalized.append(clause.model_copy(update={"id": IF_HANDLE}))
            continue

        preferred = clause.id
        preferred_index = else_if_index(preferred)
        if preferred_index is not None and preferred_index < total and preferred not in used:
            handle = preferred
        else:
            handle = _next_else_if_handle(used)
        used.add(handle)
        normalized.append(clause.model_copy(update={"id": handle}))

    return ConditionConfig(clauses=normalized)


# ============================================================================
# Branches
# ============================================================================


@dataclass(frozen=True)
class ConditionBranch:
    handle: str
    label: str
    kind: str  # "if" | "else_if" | "else"
    clause_index: Optional[int]
    clause: Optional[ConditionClause]


def get_condition_branches(config: Any) -> List[ConditionBranch]:
    """All branches of a condition node, ``else`` last."""
    normalized = normalize_condition_config(config)
    branches = [
        ConditionBranch(
            handle=clause.id,
            label=condition_label_for_handle(clause.id, index),
            kind="if" if index == 0 else "else_if",
            clause_index=index,
            clause=clause,
        )
        for index, clause in enumerate(normalized.clauses)
    ]
    branches.append(ConditionBranch(
        handle=ELSE_HANDLE, label="Else", kind="else",
        clause_index=None, clause=None,
    ))
    return branches


def get_condition_branch_label(config: Any, handle: str) -> Optional[str]:
    for branch in get_condition_branches(config):
        if branch.handle == handle:
            return branch.label
    return None


def is_condition_branch_handle(config: Any, handle: str) -> bool:
    return any(b.handle == handle for b in get_condition_branches(config))


# ============================================================================
# Evaluation
# ============================================================================


def _lookup_property(properties: Mapping[str, Any], key: str) -> str:
    if key in properties:
        return _text(properties[key])
    lowered = key.lower()
    for name, value in properties.items():
        if str(name).lower() == lowered:
            return _text(value)
    return ""


def _contains_casefold(items: List[str], expected: str) -> bool:
    return any(_text(item).strip().lower() == expected for item in items)


def evaluate_clause(clause: ConditionClause, context: ContextLike) -> bool:
    """Evaluate one clause. Pure and deterministic."""
    ctx = as_context(context)
    rule = ConditionRule(clause.rule)

    if rule is ConditionRule.EMAIL_OPENED:
        return bool(ctx.opened)
    if rule is ConditionRule.EMAIL_CLICKED:
        return bool(ctx.clicked)
    if rule is ConditionRule.TAG_EXISTS:
        expected = clause.value.strip().lower()
        return bool(expected) and _contains_casefold(ctx.tags, expected)
    if rule is ConditionRule.CUSTOM_EVENT:
        expected = clause.value.strip().lower()
        return bool(expected) and _contains_casefold(ctx.custom_events, expected)

    key = clause.property_key.strip()
    if not key:
        return False
    current = _lookup_property(ctx.user_properties, key).lower()
    expected = clause.value.lower()
    if clause.comparator == "equals":
        return current == expected
    if clause.comparator == "contains":
        return expected in current
    return len(current) > 0


@dataclass(frozen=True)
class BranchMatch:
    handle: str
    label: str
    clause_index: Optional[int]
    matched: bool


def pick_condition_branch(config: Any, context: ContextLike) -> BranchMatch:
    """Handle of the first clause that matches, else ``else``."""
    ctx = as_context(context)
    normalized = normalize_condition_config(config)
    for index, clause in enumerate(normalized.clauses):
        if evaluate_clause(clause, ctx):
            return BranchMatch(
                handle=clause.id,
                label=condition_label_for_handle(clause.id, index),
                clause_index=index,
                matched=True,
            )
    return BranchMatch(handle=ELSE_HANDLE, label="Else", clause_index=None, matched=False)
