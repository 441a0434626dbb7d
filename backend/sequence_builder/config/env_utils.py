"""
Environment helpers for config dataclasses.

Reads ``_ENV_MAP`` entries (field name → env var) and coerces the raw
strings to each dataclass field's declared default type.
"""

from __future__ import annotations

import os
from dataclasses import MISSING, Field
from logging import getLogger
from typing import Any, Dict, Mapping, Optional

logger = getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if isinstance(default, int):
        return int(raw.strip())
    if isinstance(default, float):
        return float(raw.strip())
    return raw


def read_env_defaults(
    env_map: Mapping[str, str],
    fields: Mapping[str, Field],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Collect constructor kwargs from environment variables.

    Variables that are unset are skipped. Values that fail to parse are
    skipped with a warning so the dataclass default applies.
    """
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for field_name, env_name in env_map.items():
        raw = env.get(env_name)
        if raw is None or raw == "":
            continue
        field = fields.get(field_name)
        if field is None:
            continue
        default = field.default if field.default is not MISSING else None
        try:
            values[field_name] = _coerce(raw, default)
        except ValueError:
            logger.warning(
                f"Ignoring {env_name}={raw!r}: cannot parse as {type(default).__name__}"
            )
    return values
