"""Tests for simulate_workflow."""

from __future__ import annotations

import pytest

from sequence_builder.workflow.simulation import simulate_workflow

from conftest import FIXED_NOW, FixedRandom, make_edge, make_graph, make_node


def _messages(result):
    return [e.message for e in result.events]


class TestLinearRun:

    def test_completes_at_exit(self, linear_graph, fixed_clock):
        result = simulate_workflow(linear_graph, clock=fixed_clock)
        assert result.completed is True
        assert result.visited_node_ids == ["t", "email", "wait", "done"]
        assert result.visited_edge_ids == ["t-email", "email-wait", "wait-done"]
        assert _messages(result) == [
            "Trigger fired.",
            "Would send email: Hello",
            "Wait 2 days",
            "Workflow completed.",
        ]

    def test_events_are_stamped_by_the_clock(self, linear_graph, fixed_clock):
        result = simulate_workflow(linear_graph, clock=fixed_clock)
        assert {e.created_at for e in result.events} == {FIXED_NOW.isoformat()}
        assert [e.id for e in result.events] == ["e_t_1", "e_email_2", "e_wait_3", "e_done_4"]
        assert all(e.level == "info" for e in result.events)

    def test_untitled_email(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("e", "send_email"), make_node("x", "exit")],
            [make_edge("t", "e"), make_edge("e", "x")],
        )
        assert "Would send email: Untitled" in _messages(simulate_workflow(graph))

    def test_result_serializes_camel_case(self, linear_graph):
        document = simulate_workflow(linear_graph).model_dump(by_alias=True)
        assert set(document) == {"visitedNodeIds", "visitedEdgeIds", "events", "completed"}
        assert "nodeId" in document["events"][0]


class TestConditionRouting:

    @pytest.mark.parametrize("job_title,path,message", [
        ("Chief Technology Officer", ["t", "cond", "exec", "done"], "Condition matched If."),
        ("Regional Manager", ["t", "cond", "mgr", "done"], "Condition matched Else If 1."),
        ("Software Developer", ["t", "cond", "done"], "Condition fell through to Else."),
    ])
    def test_job_title_paths(self, branching_graph, job_title, path, message):
        result = simulate_workflow(branching_graph, {"userProperties": {"job_title": job_title}})
        assert result.visited_node_ids == path
        assert message in _messages(result)
        assert result.completed

    def test_unconnected_branch_falls_back_to_first_edge(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("c", "condition"), make_node("x", "exit")],
            [make_edge("t", "c"), make_edge("c", "x", "if")],
        )
        result = simulate_workflow(graph, {"opened": False})
        assert result.visited_node_ids == ["t", "c", "x"]
        assert result.completed


class TestSplitAndWebhook:

    @pytest.fixture
    def split_graph(self):
        return make_graph(
            [
                make_node("t", "trigger"),
                make_node("s", "split", percentage_a=30, percentage_b=70),
                make_node("a_exit", "exit"),
                make_node("b_exit", "exit"),
            ],
            [
                make_edge("t", "s"),
                make_edge("s", "a_exit", "a"),
                make_edge("s", "b_exit", "b"),
            ],
        )

    @pytest.mark.parametrize("roll,variant", [(0.0, "a"), (0.29, "a"), (0.3, "b"), (0.99, "b")])
    def test_variant_pick(self, split_graph, roll, variant):
        result = simulate_workflow(split_graph, rng=FixedRandom(roll))
        assert result.visited_node_ids[-1] == f"{variant}_exit"
        assert f"Split selected variant {variant.upper()}." in _messages(result)

    def test_percentage_is_clamped(self, split_graph):
        split_graph.get_node("s").config.percentage_a = 250
        result = simulate_workflow(split_graph, rng=FixedRandom(0.999))
        assert result.visited_node_ids[-1] == "a_exit"

    def test_webhook_is_not_called(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("h", "webhook", url="https://hooks.example.com/x"),
             make_node("x", "exit")],
            [make_edge("t", "h"), make_edge("h", "x")],
        )
        result = simulate_workflow(graph)
        assert "Would call https://hooks.example.com/x" in _messages(result)
        assert result.completed


class TestIncompleteRuns:

    def test_missing_trigger(self):
        result = simulate_workflow(make_graph([make_node("x", "exit")], []))
        assert result.completed is False
        assert result.visited_node_ids == []
        assert len(result.events) == 1
        assert result.events[0].level == "error"
        assert result.events[0].message == "No trigger node found."

    def test_loop_hits_step_guard(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("a", "wait"), make_node("b", "wait")],
            [make_edge("t", "a"), make_edge("a", "b"), make_edge("b", "a")],
        )
        result = simulate_workflow(graph)
        assert result.completed is False
        assert len(result.visited_node_ids) == 48
        assert result.events[-1].level == "warning"
        assert result.events[-1].message == "Simulation stopped by loop guard."

    def test_custom_step_guard(self, linear_graph):
        result = simulate_workflow(linear_graph, max_steps=2)
        assert result.completed is False
        assert result.visited_node_ids == ["t", "email"]
        assert result.events[-1].message == "Simulation stopped by loop guard."

    def test_edge_to_missing_node_warns(self):
        graph = make_graph([make_node("t", "trigger")], [make_edge("t", "ghost")])
        result = simulate_workflow(graph)
        assert result.completed is False
        assert result.visited_node_ids == ["t"]
        warning = result.events[-1]
        assert warning.level == "warning"
        assert warning.edge_id == "t-ghost"
        assert "ghost" in warning.message
        assert len(result.events) == 2

    def test_dead_end_warns(self):
        graph = make_graph(
            [make_node("t", "trigger"), make_node("w", "wait")],
            [make_edge("t", "w")],
        )
        result = simulate_workflow(graph)
        assert result.completed is False
        assert result.events[-1].level == "warning"
        assert result.events[-1].node_id == "w"
