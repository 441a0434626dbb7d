"""Property-based tests for graph invariants.

- Normalizing junk always yields the starter graph shape
- Condition handles are always if, else_if_1 .. else_if_(n-1) with no gaps
- A rejected connection never changes the graph
- Nothing can connect into a trigger
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from sequence_builder.workflow.builder_session import BuilderSession
from sequence_builder.workflow.condition import else_if_index, normalize_condition_config
from sequence_builder.workflow.connection_validator import (
    ConnectionRejection,
    InvalidConnectionError,
    make_edge_from_connection,
)
from sequence_builder.workflow.normalizer import normalize_graph
from sequence_builder.workflow.workflow_model import WorkflowEdge, WorkflowGraph, parse_node

handle_st = st.one_of(
    st.sampled_from(["if", "else", "else_if_0", "else_if_1", "else_if_2", "else_if_5", "yes", ""]),
    st.from_regex(r"else_if_[0-9]{1,2}", fullmatch=True),
    st.text(max_size=8),
)

junk_st = st.one_of(
    st.none(),
    st.integers(),
    st.text(max_size=20),
    st.lists(st.integers(), max_size=5),
    st.fixed_dictionaries({"nodes": st.one_of(st.just([]), st.text(max_size=5), st.none())}),
)

kind_st = st.sampled_from(["send_email", "wait", "condition", "split", "webhook", "exit", "trigger"])


def _chain(length: int) -> WorkflowGraph:
    """trigger → w0 → … → w(length-1)"""
    nodes = [parse_node({"id": "t", "kind": "trigger"})]
    nodes += [parse_node({"id": f"w{i}", "kind": "wait"}) for i in range(length)]
    ids = [n.id for n in nodes]
    edges = [WorkflowEdge(id=f"{a}-{b}", source=a, target=b) for a, b in zip(ids, ids[1:])]
    return WorkflowGraph(id="wf_prop", nodes=nodes, edges=edges)


class TestNormalizeGraphProperties:

    @given(raw=junk_st)
    def test_junk_yields_starter_graph(self, raw) -> None:
        graph = normalize_graph(raw)
        assert sorted(n.kind for n in graph.nodes) == ["exit", "trigger"]
        assert len(graph.edges) == 1
        assert graph.validate_graph() == []


class TestConditionHandleProperties:

    @given(ids=st.lists(handle_st, min_size=1, max_size=8))
    def test_handles_have_no_gaps(self, ids) -> None:
        config = normalize_condition_config({"clauses": [{"id": i} for i in ids]})
        handles = [c.id for c in config.clauses]
        assert handles[0] == "if"
        assert sorted(else_if_index(h) for h in handles[1:]) == list(range(1, len(ids)))

    @given(ids=st.lists(handle_st, min_size=1, max_size=8))
    def test_normalization_is_idempotent(self, ids) -> None:
        once = normalize_condition_config({"clauses": [{"id": i} for i in ids]})
        assert normalize_condition_config(once) == once


class TestConnectionProperties:

    @settings(max_examples=50)
    @given(data=st.data(), length=st.integers(min_value=2, max_value=8))
    def test_cycle_rejection_leaves_graph_unchanged(self, data, length) -> None:
        session = BuilderSession(_chain(length))
        upstream = data.draw(st.integers(min_value=0, max_value=length - 2))
        downstream = data.draw(st.integers(min_value=upstream + 1, max_value=length - 1))
        before = session.graph.model_copy(deep=True)

        with pytest.raises(InvalidConnectionError) as info:
            session.connect(f"w{downstream}", f"w{upstream}")

        assert info.value.reason is ConnectionRejection.CYCLE
        assert len(session.graph.nodes) == len(before.nodes)
        assert len(session.graph.edges) == len(before.edges)
        assert session.revision == 0

    @given(kind=kind_st, handle=st.one_of(st.none(), handle_st))
    def test_nothing_connects_into_a_trigger(self, kind, handle) -> None:
        trigger = parse_node({"id": "t", "kind": "trigger"})
        source = parse_node({"id": "src", "kind": kind})
        with pytest.raises(InvalidConnectionError) as info:
            make_edge_from_connection("src", "t", handle, None, [trigger, source], [])
        if kind == "exit":
            assert info.value.reason is ConnectionRejection.EXIT_HAS_NO_OUTPUT
        else:
            assert info.value.reason is ConnectionRejection.TRIGGER_HAS_NO_INPUT
