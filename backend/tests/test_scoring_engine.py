"""
test_scoring_engine.py — Unit tests for ScoringEngine.

Tests cover:
  - Counting / failure rules under RequiredOnly and AllEditable
  - Duplicates always fail, regardless of mode or optional tagging
  - Vacuous groups score 1.0
  - Field-weighted overall score (not a mean of group scores)
  - Collection aggregates: average, fully-ready count, group means,
    missing-parameter counts split by scope
  - Monotonicity between the two modes
"""

import pytest

from conftest import make_profile, named_field
from fm_readiness.models.field_schema import (
    BuiltinSource,
    CategoryConfig,
    FieldDescriptor,
    FieldScope,
    GroupConfig,
    ScoreMode,
)
from fm_readiness.services.value_resolver import UNRESOLVED, AuditedAsset, ResolvedValue


def _asset(aid, category="Doors"):
    return AuditedAsset(asset_id=aid, category_key=category, category=category)


def _values(**present):
    """Keyword args → {key: ResolvedValue}; None means unresolved."""
    return {
        k: ResolvedValue(True, v, f"param:{k}") if v is not None else UNRESOLVED
        for k, v in present.items()
    }


# ===========================================================================
# Class 1: Per-asset scoring
# ===========================================================================

class TestScoreAsset:

    def test_present_and_missing_required_barcode(self, scoring_engine, barcode_profile):
        """One required field: present → 1.0, blank → 0.0."""
        config = barcode_profile.config_for("Doors")
        full = scoring_engine.score_asset(_asset(1), config, _values(FM_Barcode="A100"), set(), ScoreMode.ALL_EDITABLE)
        empty = scoring_engine.score_asset(_asset(2), config, _values(FM_Barcode=None), set(), ScoreMode.ALL_EDITABLE)
        assert (full.overall_score, full.fully_ready) == (1.0, True)
        assert (empty.overall_score, empty.fully_ready) == (0.0, False)
        assert empty.diagnostics[0].summary == "[Identity] FM_Barcode"
        assert empty.diagnostics[0].reason is None

    def test_optional_missing_not_counted_under_required_only(self, scoring_engine):
        profile = make_profile({"Identity": [
            named_field("Tag", rules=("required",)),
            named_field("Notes", rules=("optional",)),
        ]})
        score = scoring_engine.score_asset(
            _asset(1), profile.config_for("Doors"), _values(Tag="T1", Notes=None), set(), ScoreMode.REQUIRED_ONLY
        )
        assert (score.counted, score.failed, score.overall_score) == (1, 0, 1.0)

    def test_optional_missing_fails_under_all_editable(self, scoring_engine):
        """AllEditable: 2 counted, 1 failed → 1 - 1/2 = 0.5."""
        profile = make_profile({"Identity": [
            named_field("Tag", rules=("required",)),
            named_field("Notes", rules=("optional",)),
        ]})
        score = scoring_engine.score_asset(
            _asset(1), profile.config_for("Doors"), _values(Tag="T1", Notes=None), set(), ScoreMode.ALL_EDITABLE
        )
        assert (score.counted, score.failed, score.overall_score) == (2, 1, 0.5)

    @pytest.mark.parametrize("mode", list(ScoreMode))
    def test_duplicate_always_fails_even_when_optional(self, scoring_engine, mode):
        profile = make_profile({"Identity": [named_field("Barcode", rules=("optional", "unique"))]})
        score = scoring_engine.score_asset(
            _asset(1), profile.config_for("Doors"), _values(Barcode="B1"), {"Barcode"}, mode
        )
        assert score.failed == 1
        assert score.overall_score == 0.0
        assert score.diagnostics[0].reason == "duplicate"
        assert score.diagnostics[0].summary == "[Identity] Barcode (dup)"

    def test_duplicate_key_ignored_when_field_is_not_unique_here(self, scoring_engine):
        """A key flagged through another category's unique rule does not fail an untagged field."""
        profile = make_profile({"Identity": [named_field("Tag")]}, category="Windows")
        score = scoring_engine.score_asset(
            _asset(2, "Windows"), profile.config_for("Windows"), _values(Tag="X"), {"Tag"}, ScoreMode.ALL_EDITABLE
        )
        assert (score.failed, score.overall_score) == (0, 1.0)
        assert score.diagnostics == []

    def test_repeated_key_in_unvalidated_config_yields_one_diagnostic(self, scoring_engine):
        """model_construct skips the key check; both copies fail but only one diagnostic is kept."""
        tag = named_field("Tag")
        config = CategoryConfig.model_construct(groups={"Identity": GroupConfig(fields=(tag, tag))})
        score = scoring_engine.score_asset(_asset(1), config, _values(Tag=None), set(), ScoreMode.ALL_EDITABLE)
        assert score.failed == 2
        assert [d.summary for d in score.diagnostics] == ["[Identity] Tag"]

    def test_unique_optional_missing_under_required_only_is_counted_but_passes(self, scoring_engine):
        """Counted through the unique rule; a missing value cannot fail it in RequiredOnly."""
        profile = make_profile({"Identity": [named_field("Barcode", rules=("optional", "unique"))]})
        score = scoring_engine.score_asset(
            _asset(1), profile.config_for("Doors"), _values(Barcode=None), set(), ScoreMode.REQUIRED_ONLY
        )
        assert (score.counted, score.failed, score.overall_score) == (1, 0, 1.0)

    def test_all_optional_group_is_vacuously_complete_under_required_only(self, scoring_engine):
        profile = make_profile({
            "Identity": [named_field("Tag", rules=("required",))],
            "Notes": [named_field("Comments", rules=("optional",), group="Notes")],
        })
        score = scoring_engine.score_asset(
            _asset(1), profile.config_for("Doors"), _values(Tag=None, Comments=None), set(), ScoreMode.REQUIRED_ONLY
        )
        assert score.group_scores["Notes"] == 1.0
        assert score.group_scores["Identity"] == 0.0

    def test_overall_is_field_weighted_not_group_mean(self, scoring_engine):
        """
        Big: 3 required, all present. Small: 1 required, missing.
        Overall = 1 - 1/4 = 0.75 (a group mean would give 0.5).
        """
        profile = make_profile({
            "Big": [named_field(k, rules=("required",), group="Big") for k in ("A", "B", "C")],
            "Small": [named_field("D", rules=("required",), group="Small")],
        })
        score = scoring_engine.score_asset(
            _asset(1), profile.config_for("Doors"), _values(A="1", B="2", C="3", D=None), set(), ScoreMode.ALL_EDITABLE
        )
        assert score.group_scores == {"Big": 1.0, "Small": 0.0}
        assert score.overall_score == pytest.approx(0.75)

    def test_explicit_required_flag_beats_optional_rule(self, scoring_engine):
        profile = make_profile({"Identity": [named_field("Tag", rules=("optional",), required=True)]})
        score = scoring_engine.score_asset(
            _asset(1), profile.config_for("Doors"), _values(Tag=None), set(), ScoreMode.REQUIRED_ONLY
        )
        assert score.failed == 1

    def test_untagged_field_defaults_to_required(self, scoring_engine):
        profile = make_profile({"Identity": [named_field("Tag")]})
        score = scoring_engine.score_asset(
            _asset(1), profile.config_for("Doors"), _values(Tag=None), set(), ScoreMode.REQUIRED_ONLY
        )
        assert score.failed == 1
        assert score.diagnostics[0].required is True


# ===========================================================================
# Class 2: Collection aggregates
# ===========================================================================

class TestScoreCollection:

    def test_collection_average_and_fully_ready_count(self, scoring_engine, barcode_profile):
        """Scores 1.0 and 0.0 → average 0.5, one fully ready."""
        assets = [_asset(1), _asset(2)]
        maps = {1: _values(FM_Barcode="A100"), 2: _values(FM_Barcode=None)}
        result = scoring_engine.score(assets, barcode_profile, maps, {}, ScoreMode.ALL_EDITABLE)
        assert [s.overall_score for s in result.asset_scores] == [1.0, 0.0]
        assert result.average_score == 0.5
        assert result.fully_ready_count == 1
        assert result.assets_with_missing_data == 1
        assert result.missing_param_counts == {"[Identity] FM_Barcode": 1}

    def test_unconfigured_category_is_excluded_from_all_counts(self, scoring_engine, barcode_profile):
        assets = [_asset(1), _asset(2, category="Furniture")]
        maps = {1: _values(FM_Barcode="A"), 2: _values(FM_Barcode=None)}
        result = scoring_engine.score(assets, barcode_profile, maps, {}, ScoreMode.ALL_EDITABLE)
        assert [s.asset.asset_id for s in result.asset_scores] == [1]
        assert result.average_score == 1.0

    def test_no_scored_assets_averages_to_one(self, scoring_engine, barcode_profile):
        result = scoring_engine.score([], barcode_profile, {}, {}, ScoreMode.ALL_EDITABLE)
        assert (result.average_score, result.fully_ready_count, result.group_averages) == (1.0, 0, {})

    def test_group_average_only_over_assets_with_that_group(self, scoring_engine):
        profile = make_profile({"Identity": [named_field("Tag")]}, category="Doors")
        windows = make_profile({
            "Identity": [named_field("Tag")],
            "Glazing": [named_field("Pane", group="Glazing")],
        }, category="Windows")
        merged = profile.model_copy(update={"categories": {**profile.categories, **windows.categories}})
        assets = [_asset(1), _asset(2, category="Windows")]
        maps = {1: _values(Tag="A"), 2: _values(Tag=None, Pane="P")}
        result = scoring_engine.score(assets, merged, maps, {}, ScoreMode.ALL_EDITABLE)
        assert result.group_averages == {"Identity": 0.5, "Glazing": 1.0}

    def test_type_scope_failures_counted_separately(self, scoring_engine):
        profile = make_profile({
            "Identity": [named_field("Tag")],
            "MakeModel": [FieldDescriptor(
                key="Manufacturer",
                scope=FieldScope.TYPE,
                sources=(BuiltinSource(id="ALL_MODEL_MANUFACTURER"),),
                group="MakeModel",
            )],
        })
        assets = [_asset(1), _asset(2)]
        maps = {1: _values(Tag="A", Manufacturer=None), 2: _values(Tag=None, Manufacturer="Acme")}
        result = scoring_engine.score(assets, profile, maps, {}, ScoreMode.ALL_EDITABLE)
        assert result.assets_with_missing_data == 2
        assert result.assets_with_missing_type_data == 1
        assert result.missing_type_param_counts == {"[MakeModel] Manufacturer": 1}
        assert result.missing_param_counts == {"[Identity] Tag": 1}

    def test_duplicates_from_violation_set_fail_only_flagged_assets(self, scoring_engine, unique_barcode_profile):
        """A100, A100, B200 with violations {FM_Barcode: [1, 2]} → 0.0, 0.0, 1.0."""
        assets = [_asset(1), _asset(2), _asset(3)]
        maps = {1: _values(FM_Barcode="A100"), 2: _values(FM_Barcode="A100"), 3: _values(FM_Barcode="B200")}
        result = scoring_engine.score(
            assets, unique_barcode_profile, maps, {"FM_Barcode": [1, 2]}, ScoreMode.ALL_EDITABLE
        )
        assert [s.overall_score for s in result.asset_scores] == [0.0, 0.0, 1.0]
        assert result.missing_param_counts == {"[Identity] FM_Barcode": 2}


# ===========================================================================
# Class 3: Mode monotonicity
# ===========================================================================

class TestMonotonicity:

    @pytest.mark.parametrize("present", [
        dict(AssetTag="T", Barcode=None, Room=None, Manufacturer="M", Comments=None),
        dict(AssetTag=None, Barcode="B", Room="R", Manufacturer=None, Comments="c"),
        dict(AssetTag="T", Barcode="B", Room="R", Manufacturer="M", Comments=None),
        dict(AssetTag=None, Barcode=None, Room=None, Manufacturer=None, Comments=None),
    ])
    def test_all_editable_never_raises_group_score_or_shrinks_denominator(
        self, scoring_engine, door_profile, present
    ):
        config = door_profile.config_for("Doors")
        values = _values(**present)
        required_only = scoring_engine.score_asset(_asset(1), config, values, set(), ScoreMode.REQUIRED_ONLY)
        all_editable = scoring_engine.score_asset(_asset(1), config, values, set(), ScoreMode.ALL_EDITABLE)
        for group, score in all_editable.group_scores.items():
            assert score <= required_only.group_scores[group]
        assert all_editable.counted >= required_only.counted
