"""
Readiness audit pipeline — resolve → uniqueness → score → assemble.

Phase ordering is strict: uniqueness detection only starts once every asset's
values are resolved, and scoring only starts once the complete violation set
exists. Phase 1 may fan out over a thread pool (resolution is independent per
asset); its results are merged in input order into one read-only mapping
before phase 2 runs.

Nothing raises across this boundary. Missing / empty profiles and missing
asset collections produce an empty report with explicit zero counts.
"""
from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fm_readiness.config import AuditSettings
from fm_readiness.models.audit_report import AuditReport
from fm_readiness.models.field_schema import AuditProfile
from fm_readiness.services.asset_records import AssetId, ComputedResolver
from fm_readiness.services.perf_monitor import tracker
from fm_readiness.services.report_assembler import ReportAssembler
from fm_readiness.services.scoring_engine import ScoringEngine
from fm_readiness.services.uniqueness_detector import UniquenessDetector
from fm_readiness.services.value_resolver import (
    AuditedAsset,
    ResolvedAsset,
    ResolvedValue,
    ValueResolver,
)

logger = logging.getLogger("fm-readiness-audit")


class AuditEngine:
    """Stateless between runs; every run builds its own resolver and result maps."""

    def __init__(self, computed_resolver: Optional[ComputedResolver] = None):
        self.computed_resolver = computed_resolver
        self.detector = UniquenessDetector()
        self.scorer = ScoringEngine()
        self.assembler = ReportAssembler()

    def run_full_audit(
        self,
        assets: Optional[Iterable[Any]],
        profile: Optional[AuditProfile],
        settings: Optional[AuditSettings] = None,
    ) -> AuditReport:
        settings = settings or AuditSettings()
        profile_name = (profile.name if profile is not None and profile.name else settings.profile_name)
        audit_id = uuid.uuid4().hex[:12]
        log_extra = {"audit_id": audit_id, "profile": profile_name}

        if assets is None or profile is None or profile.is_empty:
            logger.warning("Audit skipped: no usable category rules or no assets", extra=log_extra)
            return self.assembler.empty_report(settings, profile_name)

        start = time.perf_counter()
        asset_list = list(assets)

        # Phase 1: resolve every field of every configured asset
        t0 = time.perf_counter()
        resolver = ValueResolver(self.computed_resolver, settings.read_policy)
        resolved = self._resolve_phase(asset_list, profile, resolver, settings.resolve_workers)
        value_maps: Mapping[AssetId, Mapping[str, ResolvedValue]] = MappingProxyType(
            {r.asset.asset_id: r.values for r in resolved}
        )
        self._record_phase("resolve", t0, log_extra)

        # Phase 2: uniqueness over the complete phase-1 result
        t0 = time.perf_counter()
        asset_unique_keys = {
            r.asset.asset_id: profile.unique_keys_for(r.asset.category_key) for r in resolved
        }
        violations = self.detector.detect(profile.unique_field_keys(), value_maps, asset_unique_keys)
        self._record_phase("uniqueness", t0, log_extra)

        # Phase 3: score with the final violation set
        t0 = time.perf_counter()
        scoring = self.scorer.score(
            [r.asset for r in resolved], profile, value_maps, violations, settings.score_mode
        )
        self._record_phase("score", t0, log_extra)

        t0 = time.perf_counter()
        report = self.assembler.assemble(settings, scoring, violations, profile_name)
        self._record_phase("assemble", t0, log_extra)

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        tracker.record_audit_complete(duration_ms, report.total_audited_assets)
        logger.info(
            f"Audit complete: {report.total_audited_assets} audited, "
            f"{report.fully_ready_assets} fully ready, "
            f"average readiness {report.average_readiness_score * 100:.0f}%",
            extra={**log_extra, "duration_ms": duration_ms},
        )
        return report

    # ── phase 1 ───────────────────────────────────────────────────────────────

    def _resolve_phase(
        self,
        assets: List[Any],
        profile: AuditProfile,
        resolver: ValueResolver,
        workers: int,
    ) -> List[ResolvedAsset]:
        if workers > 1 and len(assets) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                # map() yields in submission order, so the merge keeps input order
                outcomes = list(executor.map(lambda a: self._resolve_asset(a, profile, resolver), assets))
        else:
            outcomes = [self._resolve_asset(a, profile, resolver) for a in assets]

        merged: List[ResolvedAsset] = []
        seen: Dict[AssetId, None] = {}
        for outcome in outcomes:
            if outcome is None:
                continue
            asset_id = outcome.asset.asset_id
            if asset_id in seen:
                logger.warning(f"Duplicate asset id {asset_id} in input — keeping first occurrence")
                continue
            seen[asset_id] = None
            merged.append(outcome)
        return merged

    def _resolve_asset(
        self,
        asset: Any,
        profile: AuditProfile,
        resolver: ValueResolver,
    ) -> Optional[ResolvedAsset]:
        config = profile.config_for(asset.category_key)
        if config is None:
            return None

        type_record = self._type_record(asset)
        family_name = asset.family_name or (type_record.family_name if type_record is not None else "")
        type_name = asset.type_name or (type_record.type_name if type_record is not None else "")
        audited = AuditedAsset(
            asset_id=asset.asset_id,
            category_key=asset.category_key,
            category=asset.category_name or asset.category_key,
            family_name=family_name or "",
            type_name=type_name or "",
        )
        values = resolver.resolve_all(asset, type_record, config.all_fields())
        return ResolvedAsset(asset=audited, values=MappingProxyType(values))

    @staticmethod
    def _type_record(asset: Any) -> Optional[Any]:
        try:
            return asset.type_record()
        except Exception as e:
            tracker.record_capability_error("type_record")
            logger.warning(
                f"Type record lookup failed for asset {asset.asset_id}: {e}",
                extra={"asset_id": asset.asset_id},
            )
            return None

    @staticmethod
    def _record_phase(phase: str, t0: float, log_extra: Dict[str, Any]) -> None:
        duration_ms = round((time.perf_counter() - t0) * 1000, 2)
        tracker.record_phase_duration(phase, duration_ms)
        logger.debug(f"Phase {phase} done", extra={**log_extra, "phase": phase, "duration_ms": duration_ms})
