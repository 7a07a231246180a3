"""
Audit Routes — run readiness audits over posted asset payloads.

POST /api/audit/run       — full three-phase audit, returns the AuditReport
POST /api/audit/resolve   — per-field values, validation errors and weighted
                            readiness for a single asset
GET  /api/audit/profiles  — bundled checklist / preset files
"""
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field, ValidationError

from fm_readiness.config import AuditSettings
from fm_readiness.models.field_schema import ReadPolicy, ScoreMode
from fm_readiness.services.asset_records import InMemoryAssetRecord, in_memory_computed_resolver
from fm_readiness.services.audit_engine import AuditEngine
from fm_readiness.services.field_validation import (
    calculate_readiness_score,
    collect_field_values,
    validate_field_values,
)
from fm_readiness.services.schema_loader import (
    ProfileResolution,
    ProfileResolver,
    ProfileStore,
    load_checklist,
    load_preset,
)
from fm_readiness.services.value_resolver import ValueResolver

router = APIRouter(prefix="/api/audit", tags=["Readiness Audit"])
logger = logging.getLogger("fm-readiness-api")

INLINE_PRESET_ID = "inline"

_engine = AuditEngine(computed_resolver=in_memory_computed_resolver())
_store = ProfileStore()


# ─── Pydantic schemas ────────────────────────────────────────────────────────

class TypeRecordPayload(BaseModel):
    id: Optional[Union[int, str]] = None
    family_name: str = ""
    type_name: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    shared_params: Dict[str, Any] = Field(default_factory=dict)
    builtins: Dict[str, Any] = Field(default_factory=dict)


class AssetPayload(BaseModel):
    id: Union[int, str]
    category: str = Field(..., description="Category key matched against the profile")
    category_name: Optional[str] = None
    family_name: str = ""
    type_name: str = ""
    unique_id: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    shared_params: Dict[str, Any] = Field(default_factory=dict)
    builtins: Dict[str, Any] = Field(default_factory=dict)
    computed: Dict[str, Any] = Field(default_factory=dict, description="Precomputed values by source id")
    type_record: Optional[TypeRecordPayload] = None

    def to_record(self) -> InMemoryAssetRecord:
        linked = None
        if self.type_record is not None:
            t = self.type_record
            linked = InMemoryAssetRecord(
                asset_id=t.id if t.id is not None else f"type:{self.id}",
                category_key=self.category,
                family_name=t.family_name,
                type_name=t.type_name,
                params=t.params,
                shared_params=t.shared_params,
                builtins=t.builtins,
            )
        return InMemoryAssetRecord(
            asset_id=self.id,
            category_key=self.category,
            category_name=self.category_name or self.category,
            family_name=self.family_name,
            type_name=self.type_name,
            unique_id=self.unique_id,
            params=self.params,
            shared_params=self.shared_params,
            builtins=self.builtins,
            computed=self.computed,
            linked_type=linked,
        )


class ProfileSelection(BaseModel):
    """Inline checklist wins; then inline preset or bundled preset file; then the bundled default checklist."""
    checklist: Optional[Dict[str, Any]] = None
    preset: Optional[Dict[str, Any]] = None
    preset_file: Optional[str] = None
    profile_name: Optional[str] = None
    read_policy: Optional[ReadPolicy] = None


class AuditRunRequest(ProfileSelection):
    score_mode: Optional[ScoreMode] = None
    resolve_workers: Optional[int] = Field(None, ge=1)
    assets: List[AssetPayload] = Field(default_factory=list)


class ResolveRequest(ProfileSelection):
    asset: AssetPayload


# ─── Helpers ─────────────────────────────────────────────────────────────────

def _resolve_profile(req: ProfileSelection) -> ProfileResolution:
    if req.checklist is not None:
        try:
            profile = load_checklist(req.checklist, name=req.profile_name or "")
        except (ValidationError, ValueError) as e:
            raise HTTPException(status_code=422, detail=f"Invalid checklist: {e}")
        return ProfileResolution(ok=True, profile=profile, profile_name=profile.name)

    if req.preset is not None:
        preset_id = INLINE_PRESET_ID
        preset_loader = lambda _id: load_preset(req.preset)  # noqa: E731
    else:
        preset_id = req.preset_file
        preset_loader = _store.load_preset

    resolver = ProfileResolver(preset_loader=preset_loader, checklist_loader=_store.load_checklist)
    resolution = resolver.resolve(preset_id=preset_id, display_name=req.profile_name)
    if not resolution.ok:
        raise HTTPException(status_code=422, detail=resolution.error)
    return resolution


def _settings_for(req: ProfileSelection, profile_name: str, **overrides: Any) -> AuditSettings:
    settings = AuditSettings.from_env(profile_name=profile_name)
    updates = {k: v for k, v in dict(read_policy=req.read_policy, **overrides).items() if v is not None}
    return settings.model_copy(update=updates) if updates else settings


# ─── Endpoints ───────────────────────────────────────────────────────────────

@router.post("/run")
def run_audit(body: AuditRunRequest, request: Request):
    """Audit every posted asset against the selected profile."""
    resolution = _resolve_profile(body)
    settings = _settings_for(
        body,
        resolution.profile_name,
        score_mode=body.score_mode,
        resolve_workers=body.resolve_workers,
    )
    request_id = getattr(request.state, "request_id", None)
    logger.info(
        f"Audit requested: {len(body.assets)} assets, profile '{resolution.profile_name}'",
        extra={"request_id": request_id, "profile": resolution.profile_name},
    )

    report = _engine.run_full_audit([a.to_record() for a in body.assets], resolution.profile, settings)
    return report.model_dump(mode="json")


@router.post("/resolve")
def resolve_asset(body: ResolveRequest):
    """Resolved values with source tags, validation errors and weighted readiness for one asset."""
    resolution = _resolve_profile(body)
    settings = _settings_for(body, resolution.profile_name)

    config = resolution.profile.config_for(body.asset.category)
    if config is None:
        raise HTTPException(
            status_code=404,
            detail=f"Category '{body.asset.category}' is not audited by profile '{resolution.profile_name}'",
        )

    record = body.asset.to_record()
    fields = config.all_fields()
    resolver = ValueResolver(in_memory_computed_resolver(), settings.read_policy)
    values = collect_field_values(resolver, record, record.type_record(), fields)
    errors = validate_field_values(fields, values)
    score = calculate_readiness_score(fields, values, errors)

    return {
        "asset_id": body.asset.id,
        "profile_name": resolution.profile_name,
        "read_policy": settings.read_policy.value,
        "values": [asdict(v) for v in values.values()],
        "validation_errors": [asdict(e) for e in errors],
        "readiness": score.to_dict(),
    }


@router.get("/profiles")
def list_profiles():
    return {"profiles": _store.available()}
