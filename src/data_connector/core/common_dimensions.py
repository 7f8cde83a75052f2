"""
Common-Dimension Finder - shared grouping columns across datasets.

Surfaces columns that several datasets share as a likely dimension (region,
category, order date...) even when no relationship has been confirmed. This is
an exploratory signal for manual relationship creation, not a join proposal.

A column qualifies when either:
- its normalized name is (or ends with) a known dimension term, or
- it has low cardinality and its values overlap a near-named column in at
  least two other datasets
"""

import re
from collections.abc import Sequence

import structlog

from data_connector.core.config_loader import EngineConfig
from data_connector.core.fingerprint import ColumnFingerprinter
from data_connector.core.models import ColumnFingerprint, ColumnType, CommonDimension, Dataset
from data_connector.core.relationship_detector import match_score, name_similarity
from data_connector.core.type_aliases import FingerprintIndex

logger = structlog.get_logger()

DIMENSION_TERMS = (
    "region",
    "category",
    "subcategory",
    "country",
    "state",
    "province",
    "city",
    "segment",
    "department",
    "channel",
    "territory",
    "market",
    "division",
    "brand",
)
DATE_TERMS = ("date", "year", "quarter", "month", "week", "day", "period")

NEAR_NAME_THRESHOLD = 0.8

_SEPARATORS = re.compile(r"[_\-\s]")
_TOKEN = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+")


def normalize_dimension_name(name: str) -> str:
    """Case-fold, strip separators and a trailing id/key/code (``Region_ID`` -> ``region``)."""
    normalized = _SEPARATORS.sub("", name.casefold())
    for suffix in ("id", "key", "code"):
        if normalized.endswith(suffix) and len(normalized) > len(suffix):
            normalized = normalized[: -len(suffix)]
    return normalized


def _name_tokens(name: str) -> list[str]:
    tokens = [token.lower() for token in _TOKEN.findall(name)]
    while len(tokens) > 1 and tokens[-1] in ("id", "key", "code"):
        tokens.pop()
    return tokens


def vocabulary_term(name: str) -> str | None:
    """
    Dimension term a column name maps to, or None.

    Matches the whole normalized name or its last word (``sales_region``,
    ``OrderDate``), so ``capacity`` does not map to ``city``.
    """
    normalized = normalize_dimension_name(name)
    tokens = _name_tokens(name)
    last = tokens[-1] if tokens else ""
    for term in DIMENSION_TERMS + DATE_TERMS:
        if normalized == term or last == term:
            return term
    return None


class CommonDimensionFinder:
    """
    Finds dimensions shared by two or more datasets.

    Example:
        >>> finder = CommonDimensionFinder()
        >>> [dim.dimension for dim in finder.find([sales, targets])]
        ['region']
    """

    def __init__(self, config: EngineConfig | None = None, fingerprinter: ColumnFingerprinter | None = None):
        self.config = config or EngineConfig()
        self.fingerprinter = fingerprinter or ColumnFingerprinter(self.config)

    def _is_low_cardinality(self, fingerprint: ColumnFingerprint) -> bool:
        return (
            fingerprint.type != ColumnType.BOOLEAN
            and bool(fingerprint.value_set)
            and fingerprint.cardinality_ratio <= self.config.dimension_max_cardinality_ratio
        )

    def _value_partners(
        self,
        dataset: Dataset,
        fingerprint: ColumnFingerprint,
        datasets: Sequence[Dataset],
        index: dict[str, dict[str, ColumnFingerprint]],
    ) -> list[tuple[str, str]]:
        partners = []
        for other in datasets:
            if other.id == dataset.id:
                continue
            for other_fp in index[other.id].values():
                if not self._is_low_cardinality(other_fp):
                    continue
                if name_similarity(fingerprint.column_name, other_fp.column_name) < NEAR_NAME_THRESHOLD:
                    continue
                if match_score(fingerprint.value_set, other_fp.value_set) >= self.config.dimension_min_value_overlap:
                    partners.append((other.id, other_fp.column_name))
                    break
        return partners

    def find(
        self,
        datasets: Sequence[Dataset],
        fingerprints: FingerprintIndex | None = None,
    ) -> list[CommonDimension]:
        """
        Group dimension-like columns by dimension key across datasets.

        Args:
            datasets: Dataset snapshots
            fingerprints: Optional precomputed dataset_id -> column -> fingerprint

        Returns:
            Entries shared by 2+ datasets, most widely shared first
        """
        if len(datasets) < 2:
            return []

        index: dict[str, dict[str, ColumnFingerprint]] = dict(fingerprints or {})
        for dataset in datasets:
            if dataset.id not in index:
                index[dataset.id] = self.fingerprinter.fingerprint_dataset(dataset)

        groups: dict[str, list[tuple[str, str]]] = {}
        reasons: dict[str, str] = {}

        def add(key: str, member: tuple[str, str], reason: str) -> None:
            members = groups.setdefault(key, [])
            if member not in members:
                members.append(member)
            reasons.setdefault(key, reason)

        for dataset in datasets:
            for column in dataset.columns:
                term = vocabulary_term(column.name)
                if term is not None:
                    add(term, (dataset.id, column.name), f"'{term}' is a common dimension name")
                    continue

                fingerprint = index[dataset.id].get(column.name)
                key = normalize_dimension_name(column.name)
                if fingerprint is None or len(key) <= 2 or not self._is_low_cardinality(fingerprint):
                    continue

                partners = self._value_partners(dataset, fingerprint, datasets, index)
                if len(partners) < 2:
                    continue

                group_key = min([key] + [normalize_dimension_name(col) for _, col in partners])
                reason = "Low-cardinality columns with overlapping values across datasets"
                add(group_key, (dataset.id, column.name), reason)
                for partner in partners:
                    add(group_key, partner, reason)

        order = {dataset.id: position for position, dataset in enumerate(datasets)}
        results = []
        for key, members in groups.items():
            dataset_ids = sorted({dataset_id for dataset_id, _ in members}, key=order.__getitem__)
            if len(dataset_ids) < 2:
                continue
            results.append(
                CommonDimension(
                    dimension=key,
                    datasets=dataset_ids,
                    columns=sorted(members, key=lambda member: (order[member[0]], member[1])),
                    reason=reasons[key],
                )
            )

        results.sort(key=lambda dim: (-len(dim.datasets), dim.dimension))
        logger.debug("common_dimensions_found", datasets=len(datasets), dimensions=len(results))
        return results


def find_common_dimensions(
    datasets: Sequence[Dataset],
    config: EngineConfig | None = None,
) -> list[CommonDimension]:
    """Module-level shortcut for ``CommonDimensionFinder(config).find``."""
    return CommonDimensionFinder(config).find(datasets)
