"""
Host capability interfaces for the audit engine, plus a dict-backed adapter.

The engine never talks to a CAD/BIM model directly. It consumes:

  - AssetRecord       — one audited entity with a raw-value lookup and an
                        optional linked type record
  - ComputedResolver  — ``(asset, source_id) -> (ok, value)`` for derived
                        values such as level or room containment
  - AssetSource       — ordered asset collection for a set of categories

InMemoryAssetRecord / in_memory_computed_resolver() implement these over plain
dicts; the HTTP routes and the test suite use them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

from fm_readiness.models.field_schema import (
    BuiltinSource,
    NamedParameterSource,
    SharedParameterSource,
)

AssetId = Union[int, str]


class AssetRecord(Protocol):
    asset_id: AssetId
    category_key: str
    category_name: str
    family_name: str
    type_name: str

    def lookup(self, source: Any) -> Any:
        """Raw value for a builtin / named / shared source, or None when not present."""
        ...

    def type_record(self) -> Optional["AssetRecord"]:
        ...


ComputedResolver = Callable[[Any, str], Tuple[bool, Optional[str]]]
ComputedHandler = Callable[[Any], Optional[Any]]


class AssetSource(Protocol):
    def assets_for(self, category_keys: Iterable[str]) -> List[AssetRecord]:
        ...


class ComputedRegistry:
    """
    Maps computed source ids to host-supplied handlers.

    A handler takes the asset and returns the value or None. Ids without a
    handler go to ``fallback`` when one is given, else resolve as not present.
    """

    def __init__(
        self,
        handlers: Optional[Dict[str, ComputedHandler]] = None,
        fallback: Optional[ComputedResolver] = None,
    ):
        self._handlers: Dict[str, ComputedHandler] = dict(handlers or {})
        self._fallback = fallback

    def register(self, source_id: str, handler: ComputedHandler) -> None:
        self._handlers[source_id] = handler

    def supports(self, source_id: str) -> bool:
        return source_id in self._handlers

    def __call__(self, asset: Any, source_id: str) -> Tuple[bool, Optional[str]]:
        if not source_id:
            return False, None
        handler = self._handlers.get(source_id)
        if handler is None:
            if self._fallback is not None:
                return self._fallback(asset, source_id)
            return False, None
        value = handler(asset)
        if value is None:
            return False, None
        return True, value


@dataclass(frozen=True)
class InMemoryAssetRecord:
    """Asset or type record held as plain mappings (JSON payloads, fixtures)."""
    asset_id: AssetId
    category_key: str = ""
    category_name: str = ""
    family_name: str = ""
    type_name: str = ""
    unique_id: str = ""
    params: Mapping[str, Any] = field(default_factory=dict)
    shared_params: Mapping[str, Any] = field(default_factory=dict)
    builtins: Mapping[str, Any] = field(default_factory=dict)
    computed: Mapping[str, Any] = field(default_factory=dict)
    linked_type: Optional["InMemoryAssetRecord"] = None

    def lookup(self, source: Any) -> Any:
        if isinstance(source, BuiltinSource):
            return self.builtins.get(source.id)
        if isinstance(source, SharedParameterSource):
            wanted = source.guid.strip().lower()
            for guid, value in self.shared_params.items():
                if guid.strip().lower() == wanted:
                    return value
            return None
        if isinstance(source, NamedParameterSource):
            return self.params.get(source.name)
        return None

    def type_record(self) -> Optional["InMemoryAssetRecord"]:
        return self.linked_type


@dataclass
class InMemoryAssetSource:
    """Ordered collection filtered by category key, preserving input order."""
    records: List[InMemoryAssetRecord] = field(default_factory=list)

    def assets_for(self, category_keys: Iterable[str]) -> List[InMemoryAssetRecord]:
        wanted = set(category_keys)
        return [r for r in self.records if r.category_key in wanted]


def _precomputed_value(asset: InMemoryAssetRecord, source_id: str) -> Tuple[bool, Optional[str]]:
    value = asset.computed.get(source_id)
    if value is None:
        return False, None
    return True, value


def _type_name(asset: InMemoryAssetRecord) -> Optional[str]:
    linked = asset.type_record()
    if linked is not None and linked.type_name:
        return linked.type_name
    return asset.type_name or None


def in_memory_computed_resolver() -> ComputedRegistry:
    """
    Computed capability for InMemoryAssetRecord.

    Element.UniqueId and Element.TypeName come from record attributes; every
    other id (level, room/space, ...) is read from the record's precomputed
    ``computed`` mapping, filled in by whatever host produced the payload.
    """
    return ComputedRegistry(
        handlers={
            "Element.UniqueId": lambda asset: asset.unique_id or None,
            "Element.TypeName": _type_name,
        },
        fallback=_precomputed_value,
    )
