"""Tests for the publish checklist and the inspection report."""

from __future__ import annotations

from sequence_builder.workflow.workflow_inspector import (
    build_publish_checklist,
    can_publish_workflow,
    inspect_workflow,
)

from conftest import make_edge, make_graph, make_node

CHECKLIST_ORDER = [
    "trigger", "exit", "emails", "conditions",
    "connections", "unreachable", "runner", "compile",
]


def _items(graph):
    return {item.id: item for item in build_publish_checklist(graph)}


class TestChecklist:

    def test_order_and_ready_state(self, linear_graph):
        items = build_publish_checklist(linear_graph)
        assert [i.id for i in items] == CHECKLIST_ORDER
        assert all(i.passed for i in items)
        assert {i.detail for i in items} == {"Ready"}
        assert can_publish_workflow(linear_graph)

    def test_email_without_body(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("e", "send_email", subject="Hi"), make_node("x", "exit")],
            [make_edge("t", "e"), make_edge("e", "x")],
        )
        item = _items(graph)["emails"]
        assert item.passed is False
        assert item.detail == "1 email block(s) need subject/body content."
        assert not can_publish_workflow(graph)

    def test_condition_missing_branch(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("c", "condition"), make_node("x", "exit")],
            [make_edge("t", "c"), make_edge("c", "x", "if")],
        )
        items = _items(graph)
        assert items["conditions"].passed is False
        assert items["compile"].passed is True

    def test_disconnected_and_unreachable(self, linear_graph):
        linear_graph.nodes.append(make_node("stray", "wait"))
        items = _items(linear_graph)
        assert items["connections"].detail == "1 node(s) are not connected to an inbound path."
        assert items["unreachable"].detail == "1 node(s) are unreachable from the trigger."

    def test_missing_trigger(self):
        items = _items(make_graph([make_node("x", "exit")], []))
        assert items["trigger"].passed is False
        assert items["exit"].passed is False
        assert items["compile"].detail == "No trigger node found."

    def test_two_triggers(self, linear_graph):
        linear_graph.nodes.append(make_node("t2", "trigger"))
        assert _items(linear_graph)["trigger"].detail == "Add exactly one trigger node."

    def test_split_blocks_publish(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("s", "split"),
             make_node("a", "exit"), make_node("b", "exit")],
            [make_edge("t", "s"), make_edge("s", "a", "a"), make_edge("s", "b", "b")],
        )
        items = _items(graph)
        assert items["runner"].passed is False
        assert items["compile"].passed is False
        assert "not supported by the current automation runner" in items["compile"].detail


class TestInspectionReport:

    def test_report_sections(self, branching_graph):
        report = inspect_workflow(branching_graph)
        assert set(report) == {"summary", "nodes", "edges", "compile", "checklist", "validation"}
        summary = report["summary"]
        assert summary["total_nodes"] == 5
        assert summary["total_edges"] == 6
        assert summary["is_valid"] is True
        assert summary["advisory_count"] == 1

    def test_condition_ports(self, branching_graph):
        report = inspect_workflow(branching_graph)
        cond = next(n for n in report["nodes"] if n["id"] == "cond")
        assert [(p["id"], p["label"], p["connected"]) for p in cond["output_ports"]] == [
            ("if", "If", True),
            ("else_if_1", "Else If 1", True),
            ("else", "Else", True),
        ]
        assert cond["category"] == "logic"

    def test_edges_carry_titles(self, linear_graph):
        report = inspect_workflow(linear_graph)
        first = report["edges"][0]
        assert (first["source_title"], first["target_title"]) == ("t", "email")

    def test_validation_errors_are_reported(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("a", "wait"), make_node("b", "wait")],
            [make_edge("t", "a"), make_edge("a", "b"), make_edge("b", "a")],
        )
        report = inspect_workflow(graph)
        assert report["validation"]["valid"] is False
        assert "Workflow graph contains a loop." in report["validation"]["errors"]
        assert report["summary"]["can_publish"] is False

    def test_compile_section_is_json_ready(self, linear_graph):
        compiled = inspect_workflow(linear_graph)["compile"]
        assert [s["type"] for s in compiled["steps"]] == ["send_email", "wait", "stop"]
        assert compiled["diagnostics"] == []
