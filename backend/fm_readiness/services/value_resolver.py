"""
Value resolver — produces one value per (asset, field) from layered sources.

Resolution order (first success wins):
  1. Computed source via the host capability          → "computed:<id>"
  2. One primary source: builtin > shared guid > named → "builtin:<id>" / "shared:<guid>" / "param:<name>"
  3. Alias parameters in declaration order, when the
     read policy is PrimaryThenAliases or FirstAvailable → "alias:<name>"
  4. Declared default value                            → "default"

Anything else is unresolved (ok=False). Raw values are normalized to a
canonical string before they leave this module so that uniqueness and
validation comparisons do not depend on how the host stores them.

Host capability errors never escape: they are logged, counted and treated as
"not present" for that one field.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional

from fm_readiness.config import AUDIT_DEFAULTS
from fm_readiness.models.field_schema import (
    FieldDescriptor,
    FieldScope,
    NamedParameterSource,
    ReadPolicy,
)
from fm_readiness.services.asset_records import AssetId, ComputedResolver
from fm_readiness.services.perf_monitor import tracker

logger = logging.getLogger("fm-readiness-resolver")

NUMERIC_PRECISION: int = int(AUDIT_DEFAULTS["numeric_precision"])


@dataclass(frozen=True)
class ResolvedValue:
    ok: bool
    value: Optional[str] = None
    source_tag: str = ""


UNRESOLVED = ResolvedValue(ok=False)


@dataclass(frozen=True)
class AuditedAsset:
    """Identity and labels of one asset that entered a category's scoring pass."""
    asset_id: AssetId
    category_key: str
    category: str = ""
    family_name: str = ""
    type_name: str = ""


@dataclass(frozen=True)
class ResolvedAsset:
    """Phase-1 output for one asset: identity plus field key → ResolvedValue."""
    asset: AuditedAsset
    values: Mapping[str, ResolvedValue] = field(default_factory=dict)


def _format_number(number: float) -> Optional[str]:
    if math.isnan(number) or math.isinf(number):
        return None
    return f"{number:.{NUMERIC_PRECISION}f}"


def normalize_raw_value(raw: Any, data_type: str = "string") -> Optional[str]:
    """
    Canonical string form of a raw parameter value, or None when blank.

    bool → "1"/"0", int → "42", float/Decimal → "12.50", date → "2024-05-01",
    datetime → "2024-05-01T08:30:00". Strings pass through verbatim unless the
    field's data type is "number", in which case numeric-looking text is
    reformatted to the same fixed precision as float storage.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        return "1" if raw else "0"
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, (float, Decimal)):
        return _format_number(float(raw))
    if isinstance(raw, datetime):
        return raw.strftime("%Y-%m-%dT%H:%M:%S")
    if isinstance(raw, date):
        return raw.isoformat()

    text = raw if isinstance(raw, str) else str(raw)
    if not text.strip():
        return None
    if (data_type or "").lower() == "number":
        try:
            return _format_number(float(text.strip())) or text
        except ValueError:
            return text
    return text


class ValueResolver:
    """Resolves FieldDescriptors against one asset and its linked type record."""

    def __init__(
        self,
        computed_resolver: Optional[ComputedResolver] = None,
        read_policy: ReadPolicy = ReadPolicy.PRIMARY_THEN_ALIASES,
    ):
        self.computed_resolver = computed_resolver
        self.read_policy = read_policy

    # ── public ────────────────────────────────────────────────────────────────

    def resolve(self, asset: Any, type_asset: Optional[Any], field: FieldDescriptor) -> ResolvedValue:
        target = type_asset if field.scope == FieldScope.TYPE else asset
        if target is None:
            return UNRESOLVED

        computed = field.computed_source
        if computed is not None and computed.source_id:
            value = self._computed_value(asset, computed.source_id, field)
            if value is not None:
                return ResolvedValue(True, value, computed.tag)

        primary = field.primary_source
        if primary is not None:
            value = self._lookup(target, primary, field)
            if value is not None:
                return ResolvedValue(True, value, primary.tag)

        if self.read_policy != ReadPolicy.PRIMARY_ONLY:
            for alias in field.aliases:
                if not alias or not alias.strip():
                    continue
                value = self._lookup(target, NamedParameterSource(name=alias), field)
                if value is not None:
                    return ResolvedValue(True, value, f"alias:{alias}")

        if field.default_value is not None and field.default_value.strip():
            return ResolvedValue(True, field.default_value, "default")

        return UNRESOLVED

    def resolve_all(
        self,
        asset: Any,
        type_asset: Optional[Any],
        fields: Iterable[FieldDescriptor],
    ) -> Dict[str, ResolvedValue]:
        return {f.key: self.resolve(asset, type_asset, f) for f in fields}

    # ── capability calls ──────────────────────────────────────────────────────

    def _computed_value(self, asset: Any, source_id: str, field: FieldDescriptor) -> Optional[str]:
        if self.computed_resolver is None:
            return None
        try:
            ok, raw = self.computed_resolver(asset, source_id)
            return normalize_raw_value(raw, field.data_type) if ok else None
        except Exception as e:
            tracker.record_capability_error("computed")
            logger.warning(
                f"Computed source '{source_id}' failed for asset {asset.asset_id}: {e}",
                extra={"asset_id": asset.asset_id},
            )
            return None

    def _lookup(self, target: Any, source: Any, field: FieldDescriptor) -> Optional[str]:
        # Host values are converted here too; a failing __str__ is a host failure
        try:
            return normalize_raw_value(target.lookup(source), field.data_type)
        except Exception as e:
            tracker.record_capability_error("lookup")
            logger.warning(
                f"Lookup {source.tag} failed for field '{field.key}' on asset "
                f"{target.asset_id}: {e}",
                extra={"asset_id": target.asset_id},
            )
            return None
