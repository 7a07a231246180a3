"""
Audit profile loading — checklist payloads, preset payloads, bundled profile
files, and the explicit profile resolver that replaces any "active preset"
process state.

Two payload formats are accepted:

  Checklist  {category: {"groups": {group: {"fields": [
                 {"key", "label", "scope", "required", "rules",
                  "source": {"type": builtin|name|sharedGuid|computed, "id"|"value"},
                  "aliases", "defaultValue", "dataType"}]}}}}

  Preset     {"name", "categories": [...],
              "tables": {"Component": {"fields": [...]}, "Type": {"fields": [...]}},
              "fmOpsExtensions": {"fields": [...]}}
             each field: cobieKey, label, scope, dataType, required, revitParam,
             revitBuiltIn, aliasParams, rules, group, defaultValue, computed{source}

Both are validated with pydantic at this boundary; the engine never sees raw
payloads.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from fm_readiness.config import (
    AUDIT_DEFAULTS,
    COMPUTED_SOURCE_IDS,
    PRESET_COMPONENT_TABLE,
    PRESET_DEFAULT_GROUP,
    PRESET_FM_OPS_GROUP,
    PRESET_TYPE_MERGE_GROUP,
    PRESET_TYPE_TABLE,
)
from fm_readiness.models.field_schema import (
    AuditProfile,
    BuiltinSource,
    CategoryConfig,
    ComputedSource,
    FieldDescriptor,
    FieldScope,
    GroupConfig,
    NamedParameterSource,
    SharedParameterSource,
)
from fm_readiness.services.perf_monitor import timed

logger = logging.getLogger("fm-readiness-loader")

PROFILE_LOAD_ERROR = "Could not load the audit profile."
PRESET_NAME_PREFIX = "Preset: "

# Bundled checklist / preset files shipped with the package
BUNDLED_PROFILE_DIR = Path(__file__).resolve().parent.parent / "profiles"


# ── Checklist payload ─────────────────────────────────────────────────────────

class ChecklistSourcePayload(BaseModel):
    type: str = "name"
    id: Optional[str] = None
    value: Optional[str] = None


class ChecklistFieldPayload(BaseModel):
    model_config = {"populate_by_name": True}

    key: str = ""
    label: str = ""
    scope: str = "instance"
    source: ChecklistSourcePayload = Field(default_factory=ChecklistSourcePayload)
    required: Optional[bool] = None
    rules: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)
    default_value: Optional[str] = Field(None, alias="defaultValue")
    data_type: str = Field("string", alias="dataType")


class ChecklistGroupPayload(BaseModel):
    fields: List[ChecklistFieldPayload] = Field(default_factory=list)


class ChecklistCategoryPayload(BaseModel):
    groups: Dict[str, ChecklistGroupPayload] = Field(default_factory=dict)


# ── Preset payload ────────────────────────────────────────────────────────────

class PresetComputedPayload(BaseModel):
    source: Optional[str] = None


class PresetFieldPayload(BaseModel):
    model_config = {"populate_by_name": True}

    cobie_key: Optional[str] = Field(None, alias="cobieKey")
    label: Optional[str] = None
    scope: Optional[str] = "instance"
    data_type: Optional[str] = Field("string", alias="dataType")
    required: Optional[bool] = None
    revit_param: Optional[str] = Field(None, alias="revitParam")
    revit_built_in: Optional[str] = Field(None, alias="revitBuiltIn")
    alias_params: List[str] = Field(default_factory=list, alias="aliasParams")
    rules: List[str] = Field(default_factory=list)
    group: Optional[str] = None
    default_value: Optional[str] = Field(None, alias="defaultValue")
    computed: Optional[PresetComputedPayload] = None


class PresetTablePayload(BaseModel):
    description: Optional[str] = None
    fields: List[Optional[PresetFieldPayload]] = Field(default_factory=list)


class PresetPayload(BaseModel):
    model_config = {"populate_by_name": True}

    name: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    tables: Dict[str, PresetTablePayload] = Field(default_factory=dict)
    fm_ops_extensions: Optional[PresetTablePayload] = Field(None, alias="fmOpsExtensions")


# ── Conversion helpers ────────────────────────────────────────────────────────

def _parse_scope(scope: Optional[str]) -> FieldScope:
    # "either" and unknown scopes read from the instance
    return FieldScope.TYPE if (scope or "").strip().lower() == "type" else FieldScope.INSTANCE


def _clean(values: List[str]) -> Tuple[str, ...]:
    return tuple(v for v in values if v and v.strip())


def _computed_source(field_key: str, source_id: str) -> ComputedSource:
    if source_id not in COMPUTED_SOURCE_IDS:
        logger.info(f"Field '{field_key}': computed source '{source_id}' must be supplied by the host")
    return ComputedSource(source_id=source_id)


def _checklist_source(field_key: str, source: ChecklistSourcePayload) -> Tuple[Any, ...]:
    kind = (source.type or "").strip().lower()
    ref = (source.id or source.value or "").strip()
    if not ref:
        return ()
    if kind == "builtin":
        return (BuiltinSource(id=ref),)
    if kind == "name":
        return (NamedParameterSource(name=ref),)
    if kind == "sharedguid":
        return (SharedParameterSource(guid=ref),)
    if kind == "computed":
        return (_computed_source(field_key, ref),)
    logger.warning(f"Field '{field_key}': unknown source type '{source.type}' — field will not resolve")
    return ()


def _checklist_field(group_name: str, payload: ChecklistFieldPayload) -> FieldDescriptor:
    return FieldDescriptor(
        key=payload.key,
        label=payload.label,
        scope=_parse_scope(payload.scope),
        required=payload.required,
        sources=_checklist_source(payload.key, payload.source),
        aliases=_clean(payload.aliases),
        rules=_clean(payload.rules),
        group=group_name,
        default_value=payload.default_value,
        data_type=payload.data_type or "string",
    )


@timed
def load_checklist(payload: Union[str, Dict[str, Any]], name: str = "") -> AuditProfile:
    """
    Build an AuditProfile from a checklist payload (JSON text or parsed dict).

    Raises:
        ValidationError: malformed payload or duplicate keys within a category
        ValueError: JSON text that does not parse
    """
    data = json.loads(payload) if isinstance(payload, str) else payload
    categories: Dict[str, CategoryConfig] = {}
    for category_key, raw_category in (data or {}).items():
        category = ChecklistCategoryPayload.model_validate(raw_category or {})
        groups = {
            group_name: GroupConfig(fields=tuple(_checklist_field(group_name, f) for f in group.fields))
            for group_name, group in category.groups.items()
        }
        categories[category_key] = CategoryConfig(groups=groups)

    profile = AuditProfile(name=name or str(AUDIT_DEFAULTS["profile_name"]), categories=categories)
    logger.info(f"Loaded checklist '{profile.name}': {len(categories)} categories")
    return profile


def _preset_field(payload: PresetFieldPayload, default_group: str) -> FieldDescriptor:
    group = payload.group or default_group
    sources: List[Any] = []
    aliases = list(_clean(payload.alias_params))

    if payload.computed is not None and payload.computed.source:
        sources.append(_computed_source(payload.cobie_key or "", payload.computed.source))

    if payload.revit_built_in:
        sources.append(BuiltinSource(id=payload.revit_built_in))
    elif payload.revit_param:
        sources.append(NamedParameterSource(name=payload.revit_param))
    elif aliases:
        # First alias stands in as the primary parameter
        sources.append(NamedParameterSource(name=aliases.pop(0)))

    return FieldDescriptor(
        key=payload.cobie_key or "",
        label=payload.label or "",
        scope=_parse_scope(payload.scope),
        required=payload.required,
        sources=tuple(sources),
        aliases=tuple(aliases),
        rules=_clean(payload.rules),
        group=group,
        default_value=payload.default_value,
        data_type=payload.data_type or "string",
    )


def _table_fields(preset: PresetPayload, table_name: str) -> List[PresetFieldPayload]:
    table = preset.tables.get(table_name)
    if table is None:
        return []
    return [f for f in table.fields if f is not None and f.cobie_key]


def _extension_fields(preset: PresetPayload) -> List[PresetFieldPayload]:
    if preset.fm_ops_extensions is None:
        return []
    return [f for f in preset.fm_ops_extensions.fields if f is not None and f.cobie_key]


def preset_groups(preset: PresetPayload) -> Dict[str, List[FieldDescriptor]]:
    """Component-table fields plus FM-ops extensions, grouped by their ``group``."""
    grouped: Dict[str, List[FieldDescriptor]] = {}
    for payload in _table_fields(preset, PRESET_COMPONENT_TABLE):
        f = _preset_field(payload, PRESET_DEFAULT_GROUP)
        grouped.setdefault(f.group, []).append(f)
    for payload in _extension_fields(preset):
        f = _preset_field(payload, PRESET_FM_OPS_GROUP)
        grouped.setdefault(f.group, []).append(f)
    return grouped


@timed
def load_preset(payload: Union[str, Dict[str, Any]], display_name: Optional[str] = None) -> AuditProfile:
    """
    Convert a preset payload into an AuditProfile.

    Every listed category receives the same groups; Type-table fields with
    scope "type" are appended to the MakeModel group unless their key is
    already declared anywhere in the category.
    """
    data = json.loads(payload) if isinstance(payload, str) else payload
    preset = PresetPayload.model_validate(data or {})

    grouped = preset_groups(preset)
    type_fields = [
        _preset_field(p, PRESET_TYPE_MERGE_GROUP)
        for p in _table_fields(preset, PRESET_TYPE_TABLE) + _extension_fields(preset)
        if (p.scope or "").strip().lower() == "type" and p.cobie_key
    ]

    groups: Dict[str, List[FieldDescriptor]] = {name: list(fields) for name, fields in grouped.items()}
    merge_group = groups.setdefault(PRESET_TYPE_MERGE_GROUP, [])
    existing = {f.key for fields in groups.values() for f in fields}
    for f in type_fields:
        if f.key in existing:
            continue
        merge_group.append(f.model_copy(update={"group": PRESET_TYPE_MERGE_GROUP}))
        existing.add(f.key)

    config = CategoryConfig(groups={name: GroupConfig(fields=tuple(fields)) for name, fields in groups.items()})
    categories = {category: config for category in preset.categories if category}

    name = display_name or f"{PRESET_NAME_PREFIX}{preset.name or 'Unnamed'}"
    logger.info(
        f"Converted preset '{preset.name}': {len(categories)} categories, "
        f"{len(config.all_fields())} fields per category"
    )
    return AuditProfile(name=name, categories=categories)


# ── Bundled files ─────────────────────────────────────────────────────────────

class ProfileStore:
    """Reads checklist and preset JSON files from a directory (``presets/`` for presets)."""

    def __init__(self, directory: Union[str, Path, None] = None):
        self.directory = Path(directory) if directory is not None else BUNDLED_PROFILE_DIR

    def _path(self, file_name: str, *subdirs: str) -> Optional[Path]:
        for candidate in (self.directory.joinpath(*subdirs, file_name), self.directory / file_name):
            if candidate.is_file():
                return candidate
        return None

    def load_checklist(self, file_name: Optional[str] = None) -> Optional[AuditProfile]:
        file_name = file_name or str(AUDIT_DEFAULTS["profile_name"])
        path = self._path(file_name, "presets")
        if path is None:
            logger.warning(f"Checklist file not found: {file_name}")
            return None
        return load_checklist(path.read_text(encoding="utf-8"), name=file_name)

    def load_preset(self, file_name: str) -> Optional[AuditProfile]:
        path = self._path(file_name, "presets")
        if path is None:
            logger.warning(f"Preset file not found: {file_name}")
            return None
        return load_preset(path.read_text(encoding="utf-8"))

    def available(self) -> List[str]:
        """File names of every bundled checklist and preset, sorted."""
        if not self.directory.is_dir():
            return []
        return sorted(p.name for p in self.directory.rglob("*.json"))


# ── Profile resolution ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProfileResolution:
    ok: bool
    profile: Optional[AuditProfile] = None
    profile_name: str = ""
    error: str = ""


PresetLoader = Callable[[str], Optional[AuditProfile]]
ChecklistLoader = Callable[[], Optional[AuditProfile]]


class ProfileResolver:
    """
    Picks the audit profile for one run.

    The requested preset wins when it loads and yields at least one category;
    otherwise the default checklist is used. Loader failures are logged and
    treated as "not available"; when neither source loads, the resolution
    carries ``ok=False`` and an error message.
    """

    def __init__(self, preset_loader: Optional[PresetLoader], checklist_loader: Optional[ChecklistLoader]):
        self.preset_loader = preset_loader
        self.checklist_loader = checklist_loader

    def resolve(self, preset_id: Optional[str] = None, display_name: Optional[str] = None) -> ProfileResolution:
        if preset_id and preset_id.strip() and self.preset_loader is not None:
            profile = self._safe_load(lambda: self.preset_loader(preset_id), f"preset '{preset_id}'")
            if profile is not None and profile.categories:
                if display_name and display_name.strip():
                    profile = profile.model_copy(update={"name": display_name.strip()})
                logger.info(f"Resolved audit profile from preset: {profile.name}")
                return ProfileResolution(ok=True, profile=profile, profile_name=profile.name)
            logger.warning(f"Preset '{preset_id}' unavailable — falling back to default checklist")

        if self.checklist_loader is not None:
            profile = self._safe_load(self.checklist_loader, "default checklist")
            if profile is not None:
                logger.info(f"Resolved audit profile from checklist: {profile.name}")
                return ProfileResolution(ok=True, profile=profile, profile_name=profile.name)

        logger.error(PROFILE_LOAD_ERROR)
        return ProfileResolution(ok=False, error=PROFILE_LOAD_ERROR)

    @staticmethod
    def _safe_load(load: Callable[[], Optional[AuditProfile]], what: str) -> Optional[AuditProfile]:
        try:
            return load()
        except (ValidationError, ValueError, OSError) as e:
            logger.warning(f"Failed to load {what}: {e}")
            return None
