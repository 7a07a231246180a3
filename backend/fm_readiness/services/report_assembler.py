"""Shapes scoring output into the frozen AuditReport handed to callers."""
import logging
from typing import Mapping, Optional, Sequence

from fm_readiness.config import AuditSettings
from fm_readiness.models.audit_report import AssetAuditResult, AuditReport, MissingFieldInfo
from fm_readiness.services.asset_records import AssetId
from fm_readiness.services.scoring_engine import AssetScore, ScoringResult

logger = logging.getLogger("fm-readiness-report")


class ReportAssembler:
    """
    Packages already-computed numbers; performs no scoring of its own.
    Asset rows keep the order in which the scoring pass produced them, which is
    the input collection order.
    """

    def empty_report(self, settings: AuditSettings, profile_name: Optional[str] = None) -> AuditReport:
        return AuditReport(
            profile_name=profile_name if profile_name is not None else settings.profile_name,
            score_mode=settings.score_mode,
            read_policy=settings.read_policy,
        )

    def assemble(
        self,
        settings: AuditSettings,
        scoring: ScoringResult,
        violations: Mapping[str, Sequence[AssetId]],
        profile_name: Optional[str] = None,
    ) -> AuditReport:
        report = AuditReport(
            profile_name=profile_name if profile_name is not None else settings.profile_name,
            score_mode=settings.score_mode,
            read_policy=settings.read_policy,
            total_audited_assets=len(scoring.asset_scores),
            fully_ready_assets=scoring.fully_ready_count,
            average_readiness_score=scoring.average_score,
            assets_with_missing_data=scoring.assets_with_missing_data,
            assets_with_missing_type_data=scoring.assets_with_missing_type_data,
            missing_param_counts=dict(scoring.missing_param_counts),
            missing_type_param_counts=dict(scoring.missing_type_param_counts),
            average_group_scores=dict(scoring.group_averages),
            uniqueness_violations={key: tuple(ids) for key, ids in violations.items()},
            asset_results=tuple(self._asset_row(s) for s in scoring.asset_scores),
        )
        logger.debug(f"Assembled report: {report.total_audited_assets} asset row(s)")
        return report

    @staticmethod
    def _asset_row(score: AssetScore) -> AssetAuditResult:
        return AssetAuditResult(
            asset_id=score.asset.asset_id,
            category=score.asset.category or score.asset.category_key,
            family=score.asset.family_name,
            type_name=score.asset.type_name,
            missing_count=score.failed,
            readiness_score=score.overall_score,
            missing_params=", ".join(d.summary for d in score.diagnostics),
            group_scores=dict(score.group_scores),
            missing_fields=tuple(
                MissingFieldInfo(
                    field_key=d.field_key,
                    field_label=d.field_label,
                    group=d.group,
                    scope=d.scope,
                    required=d.required,
                    reason=d.reason,
                )
                for d in score.diagnostics
            ),
        )
