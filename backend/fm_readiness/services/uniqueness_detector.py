"""Cross-asset uniqueness checks for fields tagged with the "unique" rule."""
import logging
from typing import AbstractSet, Dict, Iterable, List, Mapping, Optional, Set

from fm_readiness.services.asset_records import AssetId
from fm_readiness.services.value_resolver import ResolvedValue

logger = logging.getLogger("fm-readiness-uniqueness")


class UniquenessDetector:
    """
    Groups asset ids by resolved value per unique field and flags shared values.

    Blank or unresolved values are skipped: a missing value is a "missing"
    concern for the scoring pass, not a duplicate. Comparison is exact string
    equality on the already-normalized value (case-sensitive, no trimming).
    """

    def detect(
        self,
        unique_field_keys: Iterable[str],
        value_maps: Mapping[AssetId, Mapping[str, ResolvedValue]],
        asset_unique_keys: Optional[Mapping[AssetId, AbstractSet[str]]] = None,
    ) -> Dict[str, List[AssetId]]:
        """
        Return {field_key: [asset_id, ...]} for every field with at least one
        shared value. Ids keep the input collection order; fields without a
        violation are absent from the result.

        When ``asset_unique_keys`` is given, an asset only takes part in the
        check for keys its own category tags "unique"; assets missing from the
        mapping take part in none.
        """
        keys = list(dict.fromkeys(k for k in unique_field_keys if k))
        buckets: Dict[str, Dict[str, List[AssetId]]] = {k: {} for k in keys}

        for asset_id, values in value_maps.items():
            own_keys = None if asset_unique_keys is None else asset_unique_keys.get(asset_id, frozenset())
            for key in keys:
                if own_keys is not None and key not in own_keys:
                    continue
                resolved = values.get(key)
                if resolved is None or not resolved.ok:
                    continue
                if resolved.value is None or not resolved.value.strip():
                    continue
                buckets[key].setdefault(resolved.value, []).append(asset_id)

        violations: Dict[str, List[AssetId]] = {}
        for key in keys:
            flagged: Set[AssetId] = set()
            for ids in buckets[key].values():
                if len(ids) > 1:
                    flagged.update(ids)
            if flagged:
                violations[key] = [aid for aid in value_maps if aid in flagged]

        if violations:
            logger.info(
                f"Uniqueness: {sum(len(v) for v in violations.values())} duplicate entries "
                f"across {len(violations)} field(s)"
            )
        return violations


def duplicate_fields_by_asset(violations: Mapping[str, Iterable[AssetId]]) -> Dict[AssetId, Set[str]]:
    """Invert {field_key: ids} into {asset_id: {field_key, ...}} for per-asset scoring."""
    by_asset: Dict[AssetId, Set[str]] = {}
    for field_key, ids in violations.items():
        for aid in ids:
            by_asset.setdefault(aid, set()).add(field_key)
    return by_asset
