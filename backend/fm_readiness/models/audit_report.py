"""
Audit report contract.

Every caller (HTTP routes, exporters, UI bridges) receives this exact shape so
it can render results without branching on payload layout. Reports are frozen
once assembled; two runs over unchanged inputs produce equal reports.
"""
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from fm_readiness.models.field_schema import ReadPolicy, ScoreMode

AssetIdValue = Union[int, str]


class MissingFieldInfo(BaseModel):
    model_config = {"frozen": True}

    field_key: str
    field_label: str
    group: str
    scope: str = "instance"
    required: bool = True
    reason: Optional[str] = None        # "duplicate" | None (missing)


class AssetAuditResult(BaseModel):
    model_config = {"frozen": True}

    asset_id: AssetIdValue
    category: str = ""
    family: str = ""
    type_name: str = ""
    missing_count: int = 0
    readiness_score: float = 1.0
    missing_params: str = ""            # "[Identity] Barcode, [Location] Room (dup)"
    group_scores: Dict[str, float] = Field(default_factory=dict)
    missing_fields: Tuple[MissingFieldInfo, ...] = ()


class AuditReport(BaseModel):
    model_config = {"frozen": True, "json_schema_extra": {
        "example": {
            "profile_name": "Preset: COBie Core",
            "score_mode": "AllEditable",
            "total_audited_assets": 2,
            "fully_ready_assets": 1,
            "average_readiness_score": 0.5,
            "average_group_scores": {"Identity": 0.5},
            "uniqueness_violations": {},
        }
    }}

    profile_name: str = ""
    score_mode: ScoreMode = ScoreMode.ALL_EDITABLE
    read_policy: ReadPolicy = ReadPolicy.PRIMARY_THEN_ALIASES

    total_audited_assets: int = 0
    fully_ready_assets: int = 0
    average_readiness_score: float = 1.0

    assets_with_missing_data: int = 0
    assets_with_missing_type_data: int = 0
    missing_param_counts: Dict[str, int] = Field(default_factory=dict)
    missing_type_param_counts: Dict[str, int] = Field(default_factory=dict)

    average_group_scores: Dict[str, float] = Field(default_factory=dict)
    uniqueness_violations: Dict[str, Tuple[AssetIdValue, ...]] = Field(default_factory=dict)
    asset_results: Tuple[AssetAuditResult, ...] = ()

    def top_missing(self, limit: int = 5, scope: str = "instance") -> List[Tuple[str, int]]:
        """Most frequent missing parameters, highest count first (ties keep report order)."""
        counts = self.missing_type_param_counts if scope == "type" else self.missing_param_counts
        ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        return ranked[:limit]
