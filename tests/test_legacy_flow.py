"""Tests for importing runner step lists and reading stored workflow records."""

from __future__ import annotations

import pytest

from sequence_builder.workflow.legacy_flow import (
    GRAPH_SETTINGS_KEY,
    extract_graph_from_workflow,
    legacy_flow_to_graph,
    with_graph_in_settings,
)
from sequence_builder.workflow.templates import create_welcome_template
from sequence_builder.workflow.workflow_compiler import compile_graph
from sequence_builder.workflow.workflow_model import ConditionRule, WorkflowStatus

FLOW = [
    {"id": "s1", "name": "Intro", "type": "send_email",
     "config": {"subject": "Hi {first_name}", "body": "Welcome", "thread_with_previous": False}},
    {"id": "s2", "name": "Pause", "type": "wait", "config": {"duration": 3, "unit": "hours"}},
    {"id": "s3", "name": "Acme?", "type": "condition",
     "config": {"rule": "company_contains", "value": "Acme", "if_true": "continue", "if_false": "stop"}},
    {"id": "s4", "name": "Pitch", "type": "send_email", "config": {"subject": "Offer", "body": "..."}},
    {"id": "s5", "name": "Stop", "type": "stop", "config": {}},
]


@pytest.fixture
def imported():
    return legacy_flow_to_graph(FLOW, workflow_id="wf_legacy", name="Imported", status="live")


class TestLegacyFlowImport:

    def test_linear_layout(self, imported):
        kinds = [n.kind for n in imported.nodes]
        assert kinds == ["trigger", "send_email", "wait", "condition", "send_email", "exit"]
        assert [n.position.x for n in imported.nodes] == [120, 420, 700, 980, 1260, 1540]
        assert {n.position.y for n in imported.nodes} == {120}

    def test_record_fields(self, imported):
        assert imported.id == "wf_legacy"
        assert imported.name == "Imported"
        assert imported.status is WorkflowStatus.LIVE

    def test_step_configs(self, imported):
        email = imported.get_node("s1")
        assert email.title == "Intro"
        assert email.config.subject == "Hi {first_name}"
        assert email.config.thread_with_previous is False
        wait = imported.get_node("s2")
        assert (wait.config.duration, wait.config.unit) == (3, "hours")

    def test_condition_rule_and_branches(self, imported):
        clause = imported.get_node("s3").config.clauses[0]
        assert clause.rule is ConditionRule.USER_PROPERTY
        assert (clause.property_key, clause.value) == ("company", "Acme")

        exit_id = imported.get_exit_nodes()[0].id
        edges = {e.source_handle: e for e in imported.get_edges_from("s3")}
        assert edges["if"].target == "s4"
        assert edges["else"].target == exit_id
        assert (edges["if"].label, edges["else"].label) == ("If", "Else")

    def test_recompiles_to_same_steps(self, imported):
        result = compile_graph(imported)
        assert result.has_fatal is False
        assert [s.id for s in result.steps[:-1]] == ["s1", "s2", "s3", "s4"]
        condition = result.steps[2].config
        assert condition == {"rule": "company_contains", "value": "Acme",
                             "if_true": "continue", "if_false": "stop"}

    def test_unknown_rule_becomes_opened_check(self):
        graph = legacy_flow_to_graph([{"id": "c", "type": "condition", "config": {"rule": "??"}}])
        assert graph.get_node("c").config.clauses[0].rule is ConditionRule.EMAIL_OPENED

    def test_unsupported_steps_are_skipped(self):
        graph = legacy_flow_to_graph([{"id": "x", "type": "sms"}, {"id": "w", "type": "wait"}, "junk"])
        assert [n.kind for n in graph.nodes] == ["trigger", "wait", "exit"]

    def test_empty_flow(self):
        graph = legacy_flow_to_graph(None, status="bogus")
        assert [n.kind for n in graph.nodes] == ["trigger", "exit"]
        assert len(graph.edges) == 1
        assert graph.status is WorkflowStatus.DRAFT


class TestWorkflowRecords:

    def test_prefers_embedded_graph(self):
        template = create_welcome_template()
        record = {
            "id": "wf_1",
            "name": "Stored",
            "flow": FLOW,
            "settings": with_graph_in_settings({"timezone": "UTC"}, template),
        }
        graph = extract_graph_from_workflow(record)
        assert graph.id == template.id
        assert [n.id for n in graph.nodes] == [n.id for n in template.nodes]

    def test_falls_back_to_flow(self):
        graph = extract_graph_from_workflow({"id": "wf_2", "name": "Old", "flow": FLOW, "settings": {}})
        assert graph.id == "wf_2"
        assert graph.get_node("s3") is not None

    def test_with_graph_in_settings_copies(self):
        settings = {"timezone": "UTC"}
        merged = with_graph_in_settings(settings, create_welcome_template())
        assert settings == {"timezone": "UTC"}
        assert merged["timezone"] == "UTC"
        assert merged[GRAPH_SETTINGS_KEY]["nodes"]
