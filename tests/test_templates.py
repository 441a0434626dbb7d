"""Tests for the built-in workflow templates."""

from __future__ import annotations

import pytest

from sequence_builder.workflow.templates import (
    ALL_TEMPLATES,
    create_engagement_template,
    create_starter_graph,
    create_welcome_template,
    get_template,
)
from sequence_builder.workflow.workflow_inspector import can_publish_workflow


class TestStarterGraph:

    def test_trigger_wired_to_exit(self):
        graph = create_starter_graph()
        trigger = graph.get_trigger_node()
        exits = graph.get_exit_nodes()
        assert len(graph.nodes) == 2
        assert len(exits) == 1
        assert [(e.source, e.target) for e in graph.edges] == [(trigger.id, exits[0].id)]

    def test_fresh_ids_each_call(self):
        first, second = create_starter_graph(), create_starter_graph()
        assert first.id != second.id
        assert {n.id for n in first.nodes}.isdisjoint({n.id for n in second.nodes})


class TestNamedTemplates:

    def test_welcome_journey_shape(self):
        graph = create_welcome_template()
        assert [n.kind for n in graph.nodes] == ["trigger", "send_email", "wait", "exit"]
        assert graph.name == "Welcome Journey"

    def test_engagement_shape(self):
        graph = create_engagement_template()
        condition = next(n for n in graph.nodes if n.kind == "condition")
        handles = sorted(e.source_handle for e in graph.get_edges_from(condition.id))
        assert handles == ["else", "if"]
        assert len(graph.get_exit_nodes()) == 2

    @pytest.mark.parametrize("template_name", sorted(ALL_TEMPLATES))
    def test_every_template_is_valid_and_publishable(self, template_name):
        graph = get_template(template_name)
        assert graph.validate_graph() == []
        assert can_publish_workflow(graph)

    def test_custom_name(self):
        assert get_template("welcome_journey", name="Hello").name == "Hello"

    def test_unknown_template(self):
        with pytest.raises(KeyError):
            get_template("does_not_exist")
