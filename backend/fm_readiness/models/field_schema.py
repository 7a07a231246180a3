"""
Audit profile schema — field descriptors, value sources and category configs.

An AuditProfile is the in-memory form of one readiness checklist:

    category key  →  group name  →  ordered FieldDescriptor list

Everything here is frozen once built. Loaders (see services/schema_loader.py)
turn raw checklist / preset payloads into these models; the audit engine only
ever reads them.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Dict, FrozenSet, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator


class FieldScope(str, Enum):
    INSTANCE = "instance"
    TYPE = "type"


class ScoreMode(str, Enum):
    """Which declared fields count toward a readiness score."""
    REQUIRED_ONLY = "RequiredOnly"   # required or unique fields only
    ALL_EDITABLE = "AllEditable"     # every declared field


class ReadPolicy(str, Enum):
    """How far the resolver walks past the primary source."""
    PRIMARY_ONLY = "PrimaryOnly"
    PRIMARY_THEN_ALIASES = "PrimaryThenAliases"
    FIRST_AVAILABLE = "FirstAvailable"


# ── Value sources ─────────────────────────────────────────────────────────────

class BuiltinSource(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["builtin"] = "builtin"
    id: str

    @property
    def tag(self) -> str:
        return f"builtin:{self.id}"


class NamedParameterSource(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["name"] = "name"
    name: str

    @property
    def tag(self) -> str:
        return f"param:{self.name}"


class SharedParameterSource(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["sharedGuid"] = "sharedGuid"
    guid: str

    @property
    def tag(self) -> str:
        return f"shared:{self.guid}"


class ComputedSource(BaseModel):
    """Resolved by a host capability keyed by ``source_id`` (e.g. "Element.LevelName")."""
    model_config = {"frozen": True}

    kind: Literal["computed"] = "computed"
    source_id: str

    @property
    def tag(self) -> str:
        return f"computed:{self.source_id}"


ValueSource = Annotated[
    Union[BuiltinSource, NamedParameterSource, SharedParameterSource, ComputedSource],
    Field(discriminator="kind"),
]

# Primary source precedence when a descriptor declares more than one
_PRIMARY_ORDER = (BuiltinSource, SharedParameterSource, NamedParameterSource)


# ── Field descriptor ──────────────────────────────────────────────────────────

class FieldDescriptor(BaseModel):
    """
    One auditable field.

    ``sources`` holds every declared source (computed and primary kinds); the
    resolver picks the computed one first and then exactly one primary one.
    ``aliases`` are named parameters tried in order when the read policy allows.
    """
    model_config = {"frozen": True}

    key: str = Field(..., min_length=1)
    label: str = ""
    scope: FieldScope = FieldScope.INSTANCE
    required: Optional[bool] = Field(None, description="Explicit flag; None = derive from rules")
    sources: Tuple[ValueSource, ...] = ()
    aliases: Tuple[str, ...] = ()
    rules: Tuple[str, ...] = ()
    group: str = "Other"
    default_value: Optional[str] = None
    data_type: str = "string"

    @property
    def display_label(self) -> str:
        return self.label or self.key

    @property
    def computed_source(self) -> Optional[ComputedSource]:
        for source in self.sources:
            if isinstance(source, ComputedSource):
                return source
        return None

    @property
    def primary_source(self) -> Optional[Union[BuiltinSource, SharedParameterSource, NamedParameterSource]]:
        for kind in _PRIMARY_ORDER:
            for source in self.sources:
                if isinstance(source, kind):
                    return source
        return None

    def has_rule(self, rule: str) -> bool:
        if not rule or not rule.strip():
            return False
        wanted = rule.lower()
        return any(r.lower() == wanted for r in self.rules if r)

    @property
    def is_required(self) -> bool:
        # Explicit flag wins; otherwise "optional" beats "required"; default is required.
        if self.required is not None:
            return self.required
        if self.has_rule("optional"):
            return False
        return True

    @property
    def is_unique(self) -> bool:
        return self.has_rule("unique")


# ── Groups, categories, profile ───────────────────────────────────────────────

class GroupConfig(BaseModel):
    model_config = {"frozen": True}

    fields: Tuple[FieldDescriptor, ...] = ()


class CategoryConfig(BaseModel):
    model_config = {"frozen": True}

    groups: Dict[str, GroupConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _keys_unique_within_category(self) -> "CategoryConfig":
        seen: set = set()
        for group_name, group in self.groups.items():
            for f in group.fields:
                if f.key in seen:
                    raise ValueError(f"Duplicate field key '{f.key}' (group '{group_name}')")
                seen.add(f.key)
        return self

    @property
    def is_usable(self) -> bool:
        return any(group.fields for group in self.groups.values())

    def iter_fields(self) -> Iterator[Tuple[str, FieldDescriptor]]:
        """Yield (group_name, field) in declaration order."""
        for group_name, group in self.groups.items():
            for f in group.fields:
                yield group_name, f

    def all_fields(self) -> List[FieldDescriptor]:
        return [f for _, f in self.iter_fields()]


class AuditProfile(BaseModel):
    """One audit profile: a name plus category-scoped rules."""
    model_config = {"frozen": True}

    name: str = ""
    categories: Dict[str, CategoryConfig] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not any(cfg.is_usable for cfg in self.categories.values())

    def config_for(self, category_key: Optional[str]) -> Optional[CategoryConfig]:
        """CategoryConfig for a key, or None when the category is not audited."""
        if not category_key:
            return None
        config = self.categories.get(category_key)
        if config is None or not config.is_usable:
            return None
        return config

    def unique_field_keys(self) -> List[str]:
        keys: Dict[str, None] = {}
        for config in self.categories.values():
            for f in config.all_fields():
                if f.is_unique:
                    keys[f.key] = None
        return list(keys)

    def unique_keys_for(self, category_key: Optional[str]) -> FrozenSet[str]:
        """Keys tagged "unique" in this category's own fields."""
        config = self.config_for(category_key)
        if config is None:
            return frozenset()
        return frozenset(f.key for f in config.all_fields() if f.is_unique)
