"""Tests for auto_layout."""

from __future__ import annotations

from sequence_builder.workflow.layout import BASE_X, BASE_Y, auto_layout, sort_outgoing_by_branch

from conftest import make_edge, make_graph, make_node

DX, DY = 100.0, 50.0


def _positions(nodes):
    return {n.id: (n.position.x, n.position.y) for n in nodes}


def test_linear_chain_is_a_single_column(linear_graph):
    placed = _positions(auto_layout(linear_graph, spacing_x=DX, spacing_y=DY))
    assert placed == {
        "t": (BASE_X, BASE_Y),
        "email": (BASE_X, BASE_Y + DY),
        "wait": (BASE_X, BASE_Y + 2 * DY),
        "done": (BASE_X, BASE_Y + 3 * DY),
    }


def test_branches_fan_out_by_handle(branching_graph):
    placed = _positions(auto_layout(branching_graph, spacing_x=DX, spacing_y=DY))
    assert placed["cond"] == (BASE_X, BASE_Y + DY)
    assert placed["exec"] == (BASE_X - DX, BASE_Y + 2 * DY)
    assert placed["mgr"] == (BASE_X, BASE_Y + 2 * DY)
    assert placed["done"] == (BASE_X + DX, BASE_Y + 2 * DY)


def test_unreached_nodes_sit_on_the_top_row():
    graph = make_graph(
        [make_node("t", "trigger"), make_node("x", "exit"), make_node("loose", "wait")],
        [make_edge("t", "x")],
    )
    placed = _positions(auto_layout(graph, spacing_x=DX, spacing_y=DY))
    assert placed["loose"] == (BASE_X + DX, BASE_Y)


def test_grid_without_trigger():
    graph = make_graph([make_node(f"w{i}", "wait") for i in range(4)], [])
    placed = _positions(auto_layout(graph, spacing_x=DX, spacing_y=DY))
    assert placed["w2"] == (BASE_X + 2 * DX, BASE_Y)
    assert placed["w3"] == (BASE_X, BASE_Y + DY)


def test_input_graph_is_not_mutated(linear_graph):
    before = _positions(linear_graph.nodes)
    placed = auto_layout(linear_graph, spacing_x=DX, spacing_y=DY)
    assert _positions(linear_graph.nodes) == before
    assert [n.id for n in placed] == [n.id for n in linear_graph.nodes]


def test_sort_outgoing_by_branch():
    edges = [
        make_edge("c", "d", "else"),
        make_edge("c", "b", "else_if_2"),
        make_edge("c", "a", "if"),
        make_edge("c", "x", "else_if_1"),
    ]
    assert [e.source_handle for e in sort_outgoing_by_branch(edges)] == [
        "if", "else_if_1", "else_if_2", "else",
    ]
