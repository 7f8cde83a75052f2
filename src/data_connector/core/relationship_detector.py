"""
Relationship Detector - Automatic Join Candidate Discovery

This module detects candidate relationships between datasets by:
- Scoring column-name similarity (edit distance and key-naming patterns)
- Recognizing table-name foreign key patterns (customer_id in Orders -> id in Customers)
- Measuring value overlap between column fingerprints
- Inferring cardinality from per-column uniqueness

No foreign keys are declared anywhere, so every candidate is advisory: the
output is a ranked list meant for human confirmation.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from data_connector.core.batching import (
    CancellationToken,
    ProgressCallback,
    check_cancelled,
    report_progress,
)
from data_connector.core.config_loader import EngineConfig
from data_connector.core.fingerprint import ColumnFingerprinter
from data_connector.core.models import (
    ColumnFingerprint,
    ColumnType,
    Dataset,
    JoinSuggestion,
    Relationship,
    RelationshipType,
)
from data_connector.core.type_aliases import FingerprintIndex
from data_connector.core.values import normalize_value

logger = structlog.get_logger()

COMMON_KEY_TOKENS = ("id", "key", "code", "no", "num", "number", "ref", "reference")
FK_SUFFIXES = ("id", "key", "code", "no", "num", "ref")

_SEPARATORS = re.compile(r"[_\-\s]")
_FILE_EXTENSION = re.compile(r"\.(csv|tsv|xlsx?|json|parquet)$", re.IGNORECASE)

# Tight pattern: avoids false positives like valid, fluid, paid, barcode
_ID_LIKE = re.compile(
    r"(?i:^(id|key|code|pk)$|[_\-\s](id|key|code|no|num|ref|pk)$)"
    r"|[a-z0-9](Id|ID|Key|Code|No|Num|Ref)$"
)


def _normalize_name(name: str) -> str:
    return _SEPARATORS.sub("", name).lower()


def _normalize_table_name(name: str) -> str:
    return re.sub(r"[_\-\s.]", "", _FILE_EXTENSION.sub("", name.strip()).lower())


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def _strip_token(name: str, token: str) -> str:
    if name.endswith(token):
        return name[: -len(token)]
    if name.startswith(token):
        return name[len(token) :]
    return name


def name_similarity(name_a: str, name_b: str) -> float:
    """
    Score how alike two column names are, in [0, 1].

    Separators (``_``, ``-``, whitespace) are stripped and case is folded.

    Scoring:
    - identical: 1.0
    - one contains the other (customerid / id): 0.8
    - both carry the same key token (prefix or suffix) and the remaining
      bases are equal: 0.9, or one base contains the other: 0.7
    - otherwise edit-distance similarity ``s`` discounted to ``0.6 * s``
      when ``s > 0.6``, else 0
    """
    n1 = _normalize_name(name_a)
    n2 = _normalize_name(name_b)
    if not n1 or not n2:
        return 0.0

    if n1 == n2:
        return 1.0

    if n1 in n2 or n2 in n1:
        return 0.8

    for token in COMMON_KEY_TOKENS:
        both_suffix = n1.endswith(token) and n2.endswith(token)
        both_prefix = n1.startswith(token) and n2.startswith(token)
        if both_suffix or both_prefix:
            base1 = _strip_token(n1, token)
            base2 = _strip_token(n2, token)
            if base1 == base2:
                return 0.9
            if base1 and base2 and (base1 in base2 or base2 in base1):
                return 0.7

    distance = levenshtein(n1, n2)
    similarity = 1 - distance / max(len(n1), len(n2))
    return similarity * 0.6 if similarity > 0.6 else 0.0


def semantic_similarity(column_a: str, column_b: str, dataset_name_a: str, dataset_name_b: str) -> float:
    """
    Recognize foreign-key naming that refers to the other dataset's name.

    Returns 0.95 for ``{table}_id`` (or ``fk_{table}``) against ``id`` /
    ``{table}_id`` in the dataset named ``{table}``, 0.90 for the same
    pattern against the singular form of the dataset name (``product_id`` in
    Orders -> ``id`` in Products), and 0 otherwise.
    """
    n1 = _normalize_name(column_a)
    n2 = _normalize_name(column_b)
    table1 = _normalize_table_name(dataset_name_a)
    table2 = _normalize_table_name(dataset_name_b)

    for suffix in FK_SUFFIXES:
        if n1 in (table2 + suffix, "fk" + table2) and n2 in (suffix, table2 + suffix):
            return 0.95
        if n2 in (table1 + suffix, "fk" + table1) and n1 in (suffix, table1 + suffix):
            return 0.95

    singular1 = table1[:-1] if table1.endswith("s") else table1
    singular2 = table2[:-1] if table2.endswith("s") else table2

    for suffix in FK_SUFFIXES:
        if n1 == singular2 + suffix and n2 in (suffix, singular2 + suffix):
            return 0.90
        if n2 == singular1 + suffix and n1 in (suffix, singular1 + suffix):
            return 0.90

    return 0.0


def is_id_like(column_name: str) -> bool:
    """
    Check if column name suggests an identifier using tight pattern matching.

    Matches ``id``/``key``/``code`` exactly, separator-delimited suffixes
    (``customer_id``, ``region code``) and camelCase suffixes (``customerId``).
    """
    return bool(_ID_LIKE.search(column_name.strip()))


def types_compatible(type_a: ColumnType, type_b: ColumnType) -> bool:
    """Identical types, or a string/number mix (ids exported as text)."""
    if type_a == type_b:
        return True
    return {type_a, type_b} == {ColumnType.STRING, ColumnType.NUMBER}


def match_score(values_a: frozenset[str], values_b: frozenset[str]) -> float:
    """
    Value-overlap score ``|A & B| / min(|A|, |B|)``.

    Taking the smaller set as denominator lets a small dimension key that is
    fully contained in a larger fact column score 1.0.
    """
    if not values_a or not values_b:
        return 0.0
    return len(values_a & values_b) / min(len(values_a), len(values_b))


def infer_relationship_type(
    fingerprint_a: ColumnFingerprint,
    fingerprint_b: ColumnFingerprint,
    near_unique_ratio: float = 0.95,
) -> RelationshipType:
    """
    Cardinality from uniqueness: both near-unique -> one-to-one, exactly one
    near-unique -> one-to-many, neither -> many-to-many.
    """
    a_unique = fingerprint_a.cardinality_ratio >= near_unique_ratio
    b_unique = fingerprint_b.cardinality_ratio >= near_unique_ratio
    if a_unique and b_unique:
        return RelationshipType.ONE_TO_ONE
    if a_unique or b_unique:
        return RelationshipType.ONE_TO_MANY
    return RelationshipType.MANY_TO_MANY


def _suggestion_text(column_a: str, column_b: str, confidence: float, score: float) -> str:
    if confidence > 0.7:
        return f"Highly recommended join: {column_a} ↔ {column_b} ({score * 100:.0f}% value match)"
    if confidence > 0.5:
        return f"Potential join candidate: {column_a} ↔ {column_b}. Verify data compatibility."
    return "Possible relationship detected. Review values before joining."


def _rank_key(rel: Relationship) -> tuple[float, int, float]:
    return (-rel.match_score, -rel.matching_values, -rel.name_similarity)


@dataclass
class _ColumnPair:
    dataset_a: Dataset
    dataset_b: Dataset
    fingerprint_a: ColumnFingerprint
    fingerprint_b: ColumnFingerprint


class RelationshipDetector:
    """
    Detects candidate relationships between all dataset pairs.

    Example:
        >>> detector = RelationshipDetector()
        >>> candidates = detector.detect_relationships([orders, customers])
        >>> str(candidates[0])
        'orders.customer_id → customers.id (one-to-many, score=1.00, conf=0.92)'
    """

    def __init__(self, config: EngineConfig | None = None, fingerprinter: ColumnFingerprinter | None = None):
        self.config = config or EngineConfig()
        self.fingerprinter = fingerprinter or ColumnFingerprinter(self.config)

    def _passes_prefilter(self, pair: _ColumnPair, name_score: float) -> bool:
        fp_a, fp_b = pair.fingerprint_a, pair.fingerprint_b

        if ColumnType.BOOLEAN in (fp_a.type, fp_b.type):
            return False
        if not fp_a.value_set or not fp_b.value_set:
            return False
        if not types_compatible(fp_a.type, fp_b.type):
            return False

        if name_score >= self.config.min_name_similarity:
            return True

        # Value overlap is always checked for key-like columns regardless of name
        if is_id_like(fp_a.column_name) or is_id_like(fp_b.column_name):
            return True
        near_unique = self.config.near_unique_ratio
        return fp_a.cardinality_ratio >= near_unique or fp_b.cardinality_ratio >= near_unique

    def score_column_pair(self, pair: _ColumnPair) -> Relationship | None:
        """
        Score one column pair; returns a candidate or None when filtered out.
        """
        fp_a, fp_b = pair.fingerprint_a, pair.fingerprint_b
        name_score = name_similarity(fp_a.column_name, fp_b.column_name)
        semantic_score = semantic_similarity(
            fp_a.column_name, fp_b.column_name, pair.dataset_a.name, pair.dataset_b.name
        )
        best_name_score = max(name_score, semantic_score)

        if not self._passes_prefilter(pair, best_name_score):
            return None

        matching = len(fp_a.value_set & fp_b.value_set)
        if matching == 0:
            return None

        score = match_score(fp_a.value_set, fp_b.value_set)
        confidence = 0.6 * score + 0.4 * best_name_score
        if confidence < self.config.min_confidence:
            return None

        rel_type = infer_relationship_type(fp_a, fp_b, self.config.near_unique_ratio)

        # One-to-many: "from" is the referencing (non-unique) side
        from_fp, to_fp = fp_a, fp_b
        if rel_type == RelationshipType.ONE_TO_MANY and fp_a.cardinality_ratio >= self.config.near_unique_ratio:
            from_fp, to_fp = fp_b, fp_a

        return Relationship(
            from_dataset=from_fp.dataset_id,
            to_dataset=to_fp.dataset_id,
            from_column=from_fp.column_name,
            to_column=to_fp.column_name,
            type=rel_type,
            match_score=score,
            confidence=confidence,
            matching_values=matching,
            auto_join_recommended=(
                score >= self.config.auto_join_min_score and matching >= self.config.auto_join_min_matches
            ),
            name_similarity=best_name_score,
            total_values=len(fp_a.value_set | fp_b.value_set),
            suggestion=_suggestion_text(from_fp.column_name, to_fp.column_name, confidence, score),
        )

    def detect_pair(
        self,
        dataset_a: Dataset,
        dataset_b: Dataset,
        fingerprints_a: dict[str, ColumnFingerprint],
        fingerprints_b: dict[str, ColumnFingerprint],
    ) -> list[Relationship]:
        """Ranked top-N candidates between two datasets."""
        candidates = []
        for col_a in dataset_a.columns:
            fp_a = fingerprints_a.get(col_a.name)
            if fp_a is None:
                continue
            for col_b in dataset_b.columns:
                fp_b = fingerprints_b.get(col_b.name)
                if fp_b is None:
                    continue
                candidate = self.score_column_pair(_ColumnPair(dataset_a, dataset_b, fp_a, fp_b))
                if candidate is not None:
                    candidates.append(candidate)

        candidates.sort(key=_rank_key)
        return candidates[: self.config.max_candidates_per_pair]

    def detect_relationships(
        self,
        datasets: Sequence[Dataset],
        fingerprints: FingerprintIndex | None = None,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[Relationship]:
        """
        Auto-detect candidate relationships between every dataset pair.

        Strategy:
        1. Fingerprint each dataset (or reuse caller-supplied fingerprints)
        2. For each unordered dataset pair, score every column pair
        3. Keep the top-N candidates per pair
        4. Rank all candidates by match score, matching values, name similarity

        Args:
            datasets: Dataset snapshots (fewer than 2 yields [])
            fingerprints: Optional precomputed dataset_id -> column -> fingerprint
            on_progress: Called after each dataset pair
            cancel: Checked between dataset pairs

        Returns:
            Ranked list of candidate relationships
        """
        if len(datasets) < 2:
            logger.debug("relationship_detection_skipped", reason="insufficient_datasets", datasets=len(datasets))
            return []

        index: dict[str, dict[str, ColumnFingerprint]] = dict(fingerprints or {})
        for dataset in datasets:
            if dataset.id not in index:
                index[dataset.id] = self.fingerprinter.fingerprint_dataset(dataset)

        pairs = [(i, j) for i in range(len(datasets)) for j in range(i + 1, len(datasets))]
        relationships: list[Relationship] = []

        for done, (i, j) in enumerate(pairs):
            check_cancelled(cancel, "detect", done, len(pairs))
            ds_a, ds_b = datasets[i], datasets[j]
            relationships.extend(self.detect_pair(ds_a, ds_b, index[ds_a.id], index[ds_b.id]))
            report_progress(on_progress, "detect", done + 1, len(pairs), list(relationships))

        relationships.sort(key=_rank_key)

        logger.info(
            "relationships_detected",
            datasets=len(datasets),
            pairs=len(pairs),
            candidates=len(relationships),
            auto_join=sum(1 for rel in relationships if rel.auto_join_recommended),
        )
        return relationships

    def detect_primary_key(self, dataset: Dataset) -> str | None:
        """
        Detect primary key column in a dataset.

        Strategy:
        1. Column must be 100% unique over normalized values
        2. Column must have no null values
        3. Prefer id-like column names

        Returns:
            Primary key column name or None
        """
        if dataset.row_count == 0:
            return None

        def is_unique_key(col_name: str, col_type: ColumnType) -> bool:
            keys = [normalize_value(row.get(col_name), col_type) for row in dataset.rows]
            return None not in keys and len(set(keys)) == len(keys)

        id_pattern_cols = [col for col in dataset.columns if is_id_like(col.name)]
        for col in id_pattern_cols:
            if is_unique_key(col.name, col.type):
                return col.name

        for col in dataset.columns:
            if col.type != ColumnType.BOOLEAN and is_unique_key(col.name, col.type):
                return col.name

        return None

    def suggest_join_key(self, dataset_a: Dataset, dataset_b: Dataset) -> Relationship | None:
        """Best candidate between two datasets, or None."""
        candidates = self.detect_relationships([dataset_a, dataset_b])
        return candidates[0] if candidates else None

    def generate_join_suggestions(
        self,
        datasets: Sequence[Dataset],
        relationships: list[Relationship] | None = None,
    ) -> list[JoinSuggestion]:
        """
        Group candidates per dataset pair into a primary suggestion plus alternatives.

        Pairs keep the order in which their best candidate ranks.
        """
        if relationships is None:
            relationships = self.detect_relationships(datasets)
        names = {dataset.id: dataset.name for dataset in datasets}

        by_pair: dict[tuple[str, str], list[Relationship]] = {}
        for rel in relationships:
            by_pair.setdefault(rel.pair_key, []).append(rel)

        suggestions = []
        for rels in by_pair.values():
            primary = rels[0]
            name_a = names.get(primary.from_dataset, primary.from_dataset)
            name_b = names.get(primary.to_dataset, primary.to_dataset)
            if primary.auto_join_recommended:
                explanation = (
                    f"Recommended: Join {name_a} and {name_b} using {primary.from_column} ↔ "
                    f"{primary.to_column}. {primary.match_score * 100:.0f}% match confidence."
                )
            elif primary.match_score > 0.4:
                explanation = (
                    f"Potential join between {name_a} and {name_b}. Review data compatibility before joining."
                )
            else:
                explanation = "Weak relationship detected. Consider manual column mapping or data transformation."
            suggestions.append(JoinSuggestion(primary=primary, alternatives=rels[1:4], explanation=explanation))

        return suggestions


def detect_relationships(
    datasets: Sequence[Dataset],
    fingerprints: FingerprintIndex | None = None,
    config: EngineConfig | None = None,
) -> list[Relationship]:
    """Module-level shortcut for ``RelationshipDetector(config).detect_relationships``."""
    return RelationshipDetector(config).detect_relationships(datasets, fingerprints)
