"""
conftest.py — Shared pytest fixtures for the FM readiness backend test suite.

No host model, database or network fixtures are defined here. Assets are
plain ``InMemoryAssetRecord`` values and profiles are built in code, so every
test exercises the engine classes in isolation.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``fm_readiness.*`` imports resolve regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any package imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from fm_readiness.models.field_schema import (  # noqa: E402
    AuditProfile,
    BuiltinSource,
    CategoryConfig,
    ComputedSource,
    FieldDescriptor,
    FieldScope,
    GroupConfig,
    NamedParameterSource,
)
from fm_readiness.services.asset_records import InMemoryAssetRecord  # noqa: E402


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def named_field(key, param=None, rules=(), group="Identity", **kwargs):
    """FieldDescriptor reading one named parameter (defaults to the key)."""
    label = kwargs.pop("label", key)
    return FieldDescriptor(
        key=key,
        label=label,
        sources=(NamedParameterSource(name=param or key),),
        rules=tuple(rules),
        group=group,
        **kwargs,
    )


def make_profile(groups, category="Doors", name="test-profile"):
    """Single-category profile from {group_name: [FieldDescriptor, ...]}."""
    return AuditProfile(
        name=name,
        categories={
            category: CategoryConfig(groups={g: GroupConfig(fields=tuple(fs)) for g, fs in groups.items()}),
        },
    )


def make_asset(asset_id, category="Doors", params=None, **kwargs):
    category_name = kwargs.pop("category_name", category)
    return InMemoryAssetRecord(
        asset_id=asset_id,
        category_key=category,
        category_name=category_name,
        params=params or {},
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def audit_engine():
    """AuditEngine wired to the dict-backed computed capability."""
    from fm_readiness.services.audit_engine import AuditEngine
    from fm_readiness.services.asset_records import in_memory_computed_resolver
    return AuditEngine(computed_resolver=in_memory_computed_resolver())


@pytest.fixture(scope="session")
def scoring_engine():
    from fm_readiness.services.scoring_engine import ScoringEngine
    return ScoringEngine()


@pytest.fixture(scope="session")
def detector():
    from fm_readiness.services.uniqueness_detector import UniquenessDetector
    return UniquenessDetector()


@pytest.fixture
def resolver():
    """ValueResolver with the dict-backed computed capability, PrimaryThenAliases."""
    from fm_readiness.services.value_resolver import ValueResolver
    from fm_readiness.services.asset_records import in_memory_computed_resolver
    return ValueResolver(computed_resolver=in_memory_computed_resolver())


@pytest.fixture(autouse=True)
def _reset_tracker():
    """Tracker is a process singleton; isolate its counters per test."""
    from fm_readiness.services.perf_monitor import tracker
    tracker.reset()
    yield
    tracker.reset()


# ---------------------------------------------------------------------------
# Shared sample profile and assets
# ---------------------------------------------------------------------------

@pytest.fixture
def barcode_profile():
    """One required field FM_Barcode (named parameter) in group Identity."""
    return make_profile({"Identity": [named_field("FM_Barcode", rules=("required",))]})


@pytest.fixture
def unique_barcode_profile():
    """FM_Barcode tagged required + unique."""
    return make_profile({"Identity": [named_field("FM_Barcode", rules=("required", "unique"))]})


@pytest.fixture
def door_profile():
    """
    Mixed profile over category "Doors":

      Identity   AssetTag (required, unique; aliases Legacy_Tag, Old_Barcode)
                 Barcode  (optional, unique)
      Location   Room     (computed Element.RoomOrSpace, required)
      MakeModel  Manufacturer (type scope, builtin, required)
      Notes      Comments (optional)
    """
    return make_profile({
        "Identity": [
            named_field(
                "AssetTag",
                param="FM_AssetTag",
                rules=("required", "unique"),
                aliases=("Legacy_Tag", "Old_Barcode"),
                label="Asset Tag",
            ),
            named_field("Barcode", param="FM_Barcode", rules=("optional", "unique")),
        ],
        "Location": [
            FieldDescriptor(
                key="Room",
                label="Room / Space",
                sources=(ComputedSource(source_id="Element.RoomOrSpace"),),
                rules=("required",),
                group="Location",
            ),
        ],
        "MakeModel": [
            FieldDescriptor(
                key="Manufacturer",
                scope=FieldScope.TYPE,
                sources=(BuiltinSource(id="ALL_MODEL_MANUFACTURER"),),
                rules=("required",),
                group="MakeModel",
            ),
        ],
        "Notes": [named_field("Comments", rules=("optional",), group="Notes")],
    })


@pytest.fixture
def door_type():
    return InMemoryAssetRecord(
        asset_id="T1",
        category_key="Doors",
        family_name="Single Flush",
        type_name="0915 x 2134mm",
        builtins={"ALL_MODEL_MANUFACTURER": "Acme Doors"},
    )


@pytest.fixture
def complete_door(door_type):
    """Door with every field of ``door_profile`` populated."""
    return make_asset(
        101,
        params={"FM_AssetTag": "D-101", "FM_Barcode": "BC-101", "Comments": "ok"},
        computed={"Element.RoomOrSpace": "Room 1.01"},
        linked_type=door_type,
    )
