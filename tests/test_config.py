"""Tests for BuilderConfig environment loading."""

from __future__ import annotations

from sequence_builder.config import BuilderConfig, get_builder_config


class TestBuilderConfig:

    def test_defaults(self):
        config = BuilderConfig()
        assert config.compile_step_guard == 64
        assert config.simulation_step_guard == 48
        assert config.history_limit == 100
        assert config.paste_offset == 44.0

    def test_environment_overrides(self):
        config = BuilderConfig.get_default_instance({
            "SEQUENCE_BUILDER_COMPILE_STEP_GUARD": "10",
            "SEQUENCE_BUILDER_PASTE_OFFSET": "12.5",
        })
        assert config.compile_step_guard == 10
        assert config.paste_offset == 12.5
        assert config.history_limit == 100

    def test_unparseable_values_are_ignored(self):
        config = BuilderConfig.get_default_instance({
            "SEQUENCE_BUILDER_HISTORY_LIMIT": "lots",
            "SEQUENCE_BUILDER_LAYOUT_SPACING_X": "",
        })
        assert config.history_limit == 100
        assert config.layout_spacing_x == 260.0

    def test_non_positive_guards_fall_back(self):
        config = BuilderConfig(compile_step_guard=0, history_limit=-5)
        assert config.compile_step_guard == 64
        assert config.history_limit == 100

    def test_shared_default_instance(self):
        assert get_builder_config() is get_builder_config()

    def test_names(self):
        assert BuilderConfig.get_config_name() == "builder"
