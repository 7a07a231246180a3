"""
Readiness scoring — per-field pass/fail, per-group and per-asset scores, and
collection aggregates under a selectable ScoreMode.

Counting rule (per field, per asset):
    counted  = mode == AllEditable  OR  required  OR  unique
    failed   = duplicate  OR  (missing AND (mode == AllEditable OR required))

A unique-but-optional field under RequiredOnly is therefore counted but can
only fail through the duplicate path.

    group score   = 1 - failed / counted          (1.0 when nothing counted)
    overall score = same ratio over ALL counted fields of the asset
                    (field-weighted, not a mean of group scores)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from fm_readiness.models.field_schema import AuditProfile, CategoryConfig, FieldScope, ScoreMode
from fm_readiness.services.asset_records import AssetId
from fm_readiness.services.uniqueness_detector import duplicate_fields_by_asset
from fm_readiness.services.value_resolver import AuditedAsset, ResolvedValue

logger = logging.getLogger("fm-readiness-scoring")

REASON_DUPLICATE = "duplicate"


def clamp01(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


@dataclass(frozen=True)
class FieldDiagnostic:
    field_key: str
    field_label: str
    group: str
    scope: str
    required: bool
    reason: Optional[str] = None     # "duplicate" | None (missing)

    @property
    def summary(self) -> str:
        text = f"[{self.group}] {self.field_label}"
        return f"{text} (dup)" if self.reason == REASON_DUPLICATE else text


@dataclass
class AssetScore:
    asset: AuditedAsset
    overall_score: float
    group_scores: Dict[str, float]
    counted: int
    failed: int
    diagnostics: List[FieldDiagnostic] = field(default_factory=list)

    @property
    def fully_ready(self) -> bool:
        return self.failed == 0


@dataclass
class ScoringResult:
    asset_scores: List[AssetScore] = field(default_factory=list)
    average_score: float = 1.0
    fully_ready_count: int = 0
    group_averages: Dict[str, float] = field(default_factory=dict)
    assets_with_missing_data: int = 0
    assets_with_missing_type_data: int = 0
    missing_param_counts: Dict[str, int] = field(default_factory=dict)
    missing_type_param_counts: Dict[str, int] = field(default_factory=dict)


class ScoringEngine:
    """Scores resolved assets against their CategoryConfig."""

    def score_asset(
        self,
        asset: AuditedAsset,
        config: CategoryConfig,
        values: Mapping[str, ResolvedValue],
        duplicate_keys: Set[str],
        mode: ScoreMode,
    ) -> AssetScore:
        score_all = mode == ScoreMode.ALL_EDITABLE
        group_scores: Dict[str, float] = {}
        diagnostics: List[FieldDiagnostic] = []
        seen: Set[Tuple[str, Optional[str]]] = set()
        total_counted = 0
        total_failed = 0

        for group_name, group in config.groups.items():
            if not group.fields:
                continue

            counted = 0
            failed = 0
            for f in group.fields:
                is_required = f.is_required
                if not (score_all or is_required or f.is_unique):
                    continue

                counted += 1
                resolved = values.get(f.key)
                is_missing = resolved is None or not resolved.ok or not (resolved.value or "").strip()
                is_duplicate = f.is_unique and f.key in duplicate_keys
                if not (is_duplicate or (is_missing and (score_all or is_required))):
                    continue

                failed += 1
                reason = REASON_DUPLICATE if is_duplicate else None
                # Validated configs never repeat a key; unvalidated ones
                # (model_construct) still emit one diagnostic per field.
                dedup_key = (f.key or f.label, reason)
                if dedup_key in seen:
                    continue
                seen.add(dedup_key)
                diagnostics.append(FieldDiagnostic(
                    field_key=f.key,
                    field_label=f.display_label,
                    group=group_name,
                    scope=f.scope.value,
                    required=is_required,
                    reason=reason,
                ))

            group_scores[group_name] = clamp01(1.0 - failed / counted) if counted else 1.0
            total_counted += counted
            total_failed += failed

        overall = clamp01(1.0 - total_failed / total_counted) if total_counted else 1.0
        return AssetScore(
            asset=asset,
            overall_score=overall,
            group_scores=group_scores,
            counted=total_counted,
            failed=total_failed,
            diagnostics=diagnostics,
        )

    def score(
        self,
        assets: Sequence[AuditedAsset],
        profile: AuditProfile,
        value_maps: Mapping[AssetId, Mapping[str, ResolvedValue]],
        violations: Mapping[str, Sequence[AssetId]],
        mode: ScoreMode,
    ) -> ScoringResult:
        """
        Score every asset whose category is configured and whose values were
        resolved. Assets of unconfigured categories are excluded from all counts.
        """
        result = ScoringResult()
        duplicates_by_asset = duplicate_fields_by_asset(violations)
        group_sums: Dict[str, float] = {}
        group_counts: Dict[str, int] = {}
        score_sum = 0.0

        for asset in assets:
            config = profile.config_for(asset.category_key)
            if config is None or asset.asset_id not in value_maps:
                continue

            asset_score = self.score_asset(
                asset,
                config,
                value_maps[asset.asset_id],
                duplicates_by_asset.get(asset.asset_id, set()),
                mode,
            )
            result.asset_scores.append(asset_score)
            score_sum += asset_score.overall_score

            for group_name, group_score in asset_score.group_scores.items():
                group_sums[group_name] = group_sums.get(group_name, 0.0) + group_score
                group_counts[group_name] = group_counts.get(group_name, 0) + 1

            if asset_score.fully_ready:
                result.fully_ready_count += 1
            else:
                result.assets_with_missing_data += 1
                if any(d.scope == FieldScope.TYPE.value for d in asset_score.diagnostics):
                    result.assets_with_missing_type_data += 1

            for diag in asset_score.diagnostics:
                counts = (
                    result.missing_type_param_counts
                    if diag.scope == FieldScope.TYPE.value
                    else result.missing_param_counts
                )
                param_key = f"[{diag.group}] {diag.field_label}"
                counts[param_key] = counts.get(param_key, 0) + 1

        scored = len(result.asset_scores)
        result.average_score = score_sum / scored if scored else 1.0
        result.group_averages = {
            name: group_sums[name] / group_counts[name] if group_counts[name] else 1.0
            for name in group_sums
        }
        logger.info(
            f"Scored {scored} asset(s) in {mode.value} mode: "
            f"{result.fully_ready_count} fully ready, average {result.average_score:.3f}"
        )
        return result
