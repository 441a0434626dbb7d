"""
Sequence Builder — core of the visual automation-sequence editor.

Computes only; never performs I/O. See ``sequence_builder.workflow``.
"""

__version__ = "0.1.0"
