"""
Builder configuration.
"""

from sequence_builder.config.builder_config import BuilderConfig, get_builder_config

__all__ = ["BuilderConfig", "get_builder_config"]
