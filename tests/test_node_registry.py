"""Tests for the node-kind registry and per-kind dispatch tables."""

from __future__ import annotations

import pytest

from sequence_builder.workflow.nodes import create_node, get_node_registry, register_all_nodes
from sequence_builder.workflow.workflow_model import (
    ConditionConfig,
    NodeKind,
    ensure_all_kinds,
)


@pytest.fixture
def registry():
    return get_node_registry()


class TestRegistry:

    def test_every_kind_is_registered(self, registry):
        registry.check_complete()
        assert [n.node_type for n in registry.list_all()] == list(NodeKind)

    def test_register_all_nodes_is_idempotent(self, registry):
        register_all_nodes()
        assert len(registry.list_all()) == len(NodeKind)

    def test_lookup_by_string(self, registry):
        assert registry.get("wait").label == "Wait"
        assert registry.get("teleport") is None

    def test_require_unknown(self, registry):
        with pytest.raises(KeyError):
            registry.require("teleport")

    @pytest.mark.parametrize("kind,runner", [
        ("send_email", True), ("wait", True), ("condition", True),
        ("exit", True), ("split", False), ("webhook", False),
    ])
    def test_runner_support(self, registry, kind, runner):
        assert registry.require(kind).supports_runner is runner

    def test_exit_has_no_output(self, registry):
        assert registry.require("exit").has_output is False
        assert registry.require("trigger").accepts_input is False


class TestPortsAndLabels:

    def test_condition_ports_follow_clauses(self, registry):
        config = ConditionConfig.model_validate({"clauses": [{"id": "if"}, {"id": "else_if_1"}]})
        ports = registry.require("condition").get_output_ports(config)
        assert [p.id for p in ports] == ["if", "else_if_1", "else"]

    def test_split_labels(self, registry):
        split = registry.require("split")
        assert split.edge_label(None, "a") == "Variant A"
        assert split.edge_label(None, "out") is None

    def test_plain_edges_have_no_label(self, registry):
        assert registry.require("wait").edge_label(None, "out") is None

    def test_to_dict(self, registry):
        described = registry.require("split").to_dict()
        assert described["node_type"] == "split"
        assert [p["id"] for p in described["output_ports"]] == ["a", "b"]


class TestCreateNode:

    def test_defaults(self):
        node = create_node(NodeKind.SEND_EMAIL, position={"x": 5, "y": 6})
        assert node.id.startswith("send_email_")
        assert node.title == "Send Email"
        assert node.config.subject
        assert (node.position.x, node.position.y) == (5, 6)

    def test_condition_config_is_normalized(self):
        node = create_node("condition", config={"clauses": [{"id": "else_if_7"}, {}]})
        assert [c.id for c in node.config.clauses] == ["if", "else_if_1"]

    def test_explicit_id_and_title(self):
        node = create_node("exit", node_id="finish", title="Done")
        assert (node.id, node.title) == ("finish", "Done")


def test_ensure_all_kinds_reports_missing():
    with pytest.raises(RuntimeError, match="split"):
        ensure_all_kinds({k: None for k in NodeKind if k is not NodeKind.SPLIT}, "table")
