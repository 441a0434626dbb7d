"""
Builder Configuration.

Traversal guards, history depth, paste offset and layout spacing
used by the builder session, compiler and simulator.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import Mapping, Optional

from sequence_builder.config.env_utils import read_env_defaults

logger = getLogger(__name__)


@dataclass
class BuilderConfig:
    """Limits and spacing for one editor session."""

    compile_step_guard: int = 64
    simulation_step_guard: int = 48
    history_limit: int = 100
    paste_offset: float = 44.0
    layout_spacing_x: float = 260.0
    layout_spacing_y: float = 164.0

    _ENV_MAP = {
        "compile_step_guard": "SEQUENCE_BUILDER_COMPILE_STEP_GUARD",
        "simulation_step_guard": "SEQUENCE_BUILDER_SIMULATION_STEP_GUARD",
        "history_limit": "SEQUENCE_BUILDER_HISTORY_LIMIT",
        "paste_offset": "SEQUENCE_BUILDER_PASTE_OFFSET",
        "layout_spacing_x": "SEQUENCE_BUILDER_LAYOUT_SPACING_X",
        "layout_spacing_y": "SEQUENCE_BUILDER_LAYOUT_SPACING_Y",
    }

    def __post_init__(self) -> None:
        for name in ("compile_step_guard", "simulation_step_guard", "history_limit"):
            if getattr(self, name) < 1:
                fallback = self.__dataclass_fields__[name].default
                logger.warning(f"BuilderConfig.{name} must be >= 1; using {fallback}")
                setattr(self, name, fallback)

    @classmethod
    def get_default_instance(
        cls, environ: Optional[Mapping[str, str]] = None,
    ) -> "BuilderConfig":
        defaults = read_env_defaults(cls._ENV_MAP, cls.__dataclass_fields__, environ)
        return cls(**defaults)

    @classmethod
    def get_config_name(cls) -> str:
        return "builder"

    @classmethod
    def get_display_name(cls) -> str:
        return "Sequence Builder"


_config_instance: Optional[BuilderConfig] = None


def get_builder_config() -> BuilderConfig:
    """Return the environment-derived default config (read once)."""
    global _config_instance
    if _config_instance is None:
        _config_instance = BuilderConfig.get_default_instance()
    return _config_instance
