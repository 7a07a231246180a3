"""
Per-asset field validation and weighted readiness.

Complements the audit score: where the audit answers "how complete is this
asset across the profile", this module answers "is this one asset ready for
handover" — required fields populated, date fields parseable, and a 70/30
required/optional weighted percentage.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fm_readiness.config import DATE_FORMATS, READINESS_WEIGHTS
from fm_readiness.models.field_schema import FieldDescriptor
from fm_readiness.services.value_resolver import ResolvedValue, ValueResolver

logger = logging.getLogger("fm-readiness-validation")

RULE_REQUIRED = "required"
RULE_DATE = "date"


def is_valid_date(value: Optional[str]) -> bool:
    """Blank values pass (missing is a "required" concern, not a format one)."""
    if value is None or not value.strip():
        return True
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
            return True
        except ValueError:
            continue
    return False


@dataclass(frozen=True)
class FieldValueResult:
    field_key: str
    label: str
    value: Optional[str]
    has_value: bool
    source: Optional[str]
    required: bool
    group: str = "Other"
    data_type: str = "string"


@dataclass(frozen=True)
class FieldValidationError:
    field_key: str
    label: str
    rule: str
    message: str


def collect_field_values(
    resolver: ValueResolver,
    asset: Any,
    type_asset: Optional[Any],
    fields: Iterable[FieldDescriptor],
) -> Dict[str, FieldValueResult]:
    """Resolve every field for one asset, keyed by field key in declaration order."""
    results: Dict[str, FieldValueResult] = {}
    for f in fields:
        resolved: ResolvedValue = resolver.resolve(asset, type_asset, f)
        has_value = resolved.ok and bool((resolved.value or "").strip())
        results[f.key] = FieldValueResult(
            field_key=f.key,
            label=f.display_label,
            value=resolved.value if resolved.ok else None,
            has_value=has_value,
            source=resolved.source_tag or None,
            required=f.is_required,
            group=f.group,
            data_type=f.data_type,
        )
    return results


def validate_field_values(
    fields: Iterable[FieldDescriptor],
    values: Mapping[str, FieldValueResult],
) -> List[FieldValidationError]:
    errors: List[FieldValidationError] = []
    for f in fields:
        result = values.get(f.key)
        if result is None:
            continue

        if f.is_required and not result.has_value:
            errors.append(FieldValidationError(
                field_key=f.key,
                label=f.display_label,
                rule=RULE_REQUIRED,
                message=f"Required field '{f.display_label}' is missing",
            ))

        if f.has_rule(RULE_DATE) and result.has_value and not is_valid_date(result.value):
            errors.append(FieldValidationError(
                field_key=f.key,
                label=f.display_label,
                rule=RULE_DATE,
                message=f"Field '{f.display_label}' has invalid date format (expected YYYY-MM-DD)",
            ))
    return errors


@dataclass
class ReadinessScore:
    """
    Weighted handover readiness for one asset, in percent.

        required_score = populated_required / total_required * 100   (100 when none)
        optional_score = populated_optional / total_optional * 100   (100 when none)
        overall        = 0.7 * required_score + 0.3 * optional_score
        cobie_ready    = every required field populated AND no validation errors
    """
    total_required: int = 0
    populated_required: int = 0
    total_optional: int = 0
    populated_optional: int = 0
    validation_errors: int = 0
    errors: List[FieldValidationError] = field(default_factory=list)

    @property
    def required_score(self) -> float:
        if not self.total_required:
            return 100.0
        return self.populated_required / self.total_required * 100

    @property
    def optional_score(self) -> float:
        if not self.total_optional:
            return 100.0
        return self.populated_optional / self.total_optional * 100

    @property
    def overall_score(self) -> float:
        return (
            self.required_score * READINESS_WEIGHTS["required"]
            + self.optional_score * READINESS_WEIGHTS["optional"]
        )

    @property
    def cobie_ready(self) -> bool:
        return self.populated_required == self.total_required and self.validation_errors == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_required": self.total_required,
            "populated_required": self.populated_required,
            "total_optional": self.total_optional,
            "populated_optional": self.populated_optional,
            "validation_errors": self.validation_errors,
            "required_score": round(self.required_score, 2),
            "optional_score": round(self.optional_score, 2),
            "overall_score": round(self.overall_score, 2),
            "cobie_ready": self.cobie_ready,
        }


def calculate_readiness_score(
    fields: Iterable[FieldDescriptor],
    values: Mapping[str, FieldValueResult],
    errors: Optional[List[FieldValidationError]] = None,
) -> ReadinessScore:
    score = ReadinessScore(errors=list(errors or []))
    for f in fields:
        populated = f.key in values and values[f.key].has_value
        if f.is_required:
            score.total_required += 1
            score.populated_required += int(populated)
        else:
            score.total_optional += 1
            score.populated_optional += int(populated)

    score.validation_errors = len(score.errors)
    logger.debug(
        f"Readiness {score.overall_score:.1f}% "
        f"({score.populated_required}/{score.total_required} required, "
        f"{score.populated_optional}/{score.total_optional} optional)"
    )
    return score
