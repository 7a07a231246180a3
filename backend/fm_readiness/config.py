"""
Audit configuration — single source of truth for defaults, supported computed
sources, preset conversion conventions and readiness weights.

Import from here in services and routes rather than hardcoding values.
Per-run choices travel in an explicit ``AuditSettings`` value; nothing in the
engine reads a process-wide "active profile".
"""
from __future__ import annotations

import logging
import os
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from fm_readiness.models.field_schema import ReadPolicy, ScoreMode

# Load .env in dev (no-op when the file is missing)
load_dotenv()

logger = logging.getLogger("fm-readiness-config")


# ── Run defaults ───────────────────────────────────────────────────────────────

AUDIT_DEFAULTS: dict[str, object] = {
    # Score every declared field unless a caller narrows to required/unique only
    "score_mode": ScoreMode.ALL_EDITABLE,

    # Primary source first, then alias parameters in declaration order
    "read_policy": ReadPolicy.PRIMARY_THEN_ALIASES,

    # Shown in reports when no checklist / preset name is known
    "profile_name": "readiness_checklist.json",

    # Fixed precision for floating-point parameter values ("12.50")
    "numeric_precision": 2,

    # Phase-1 resolution runs inline unless more workers are configured
    "resolve_workers": 1,
}


# ── Computed sources ───────────────────────────────────────────────────────────
# Identifiers hosts are expected to answer. The engine never implements the
# spatial / level logic itself; it only forwards the key to a capability.

COMPUTED_SOURCE_IDS: list[str] = [
    "Element.UniqueId",
    "Element.TypeName",
    "Element.LevelName",
    "Element.RoomOrSpace",
    "Space.Name",
    "Space.Number",
    "Space.LevelName",
    "Level.Name",
    "Level.Elevation",
]


# ── Preset conversion ──────────────────────────────────────────────────────────

PRESET_COMPONENT_TABLE = "Component"
PRESET_TYPE_TABLE = "Type"
PRESET_DEFAULT_GROUP = "Other"
PRESET_FM_OPS_GROUP = "FMOps"
# Type-scoped fields from the Type table are merged into this group
PRESET_TYPE_MERGE_GROUP = "MakeModel"


# ── Field validation ───────────────────────────────────────────────────────────

# Accepted layouts for fields tagged with the "date" rule
DATE_FORMATS: list[str] = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y-%m-%dT%H:%M:%S",
]

# Weighted readiness: required fields dominate the overall percentage
READINESS_WEIGHTS: dict[str, float] = {
    "required": 0.70,
    "optional": 0.30,
}


# ── Per-run settings ───────────────────────────────────────────────────────────

class AuditSettings(BaseModel):
    """Explicit configuration threaded into every audit run."""
    model_config = {"frozen": True}

    profile_name: str = Field(default=str(AUDIT_DEFAULTS["profile_name"]))
    score_mode: ScoreMode = ScoreMode.ALL_EDITABLE
    read_policy: ReadPolicy = ReadPolicy.PRIMARY_THEN_ALIASES
    resolve_workers: int = Field(default=1, ge=1)

    @classmethod
    def from_env(cls, profile_name: Optional[str] = None) -> "AuditSettings":
        """Build settings from FM_* environment variables, falling back to AUDIT_DEFAULTS."""
        return cls(
            profile_name=profile_name or str(AUDIT_DEFAULTS["profile_name"]),
            score_mode=_env_setting("FM_DEFAULT_SCORE_MODE", ScoreMode, AUDIT_DEFAULTS["score_mode"]),
            read_policy=_env_setting("FM_DEFAULT_READ_POLICY", ReadPolicy, AUDIT_DEFAULTS["read_policy"]),
            resolve_workers=max(1, _env_setting("FM_PARALLEL_RESOLVE_WORKERS", int, AUDIT_DEFAULTS["resolve_workers"])),
        )


def _env_setting(var: str, parse: Callable[[str], Any], default: Any) -> Any:
    raw = os.getenv(var)
    if raw is None or not raw.strip():
        return default
    try:
        return parse(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring invalid {var}={raw!r}; using default {default!r}")
        return default


# ── HTTP host ──────────────────────────────────────────────────────────────────

# Access-log lines for requests at or above this duration are logged as WARNING
SLOW_REQUEST_MS: float = _env_setting("FM_SLOW_REQUEST_MS", float, 2000.0)
