"""Relationship discovery, schema classification, validation and joins across uploaded datasets."""

from data_connector.core.batching import BatchProgress, CancellationToken
from data_connector.core.common_dimensions import CommonDimensionFinder, find_common_dimensions
from data_connector.core.config_loader import EngineConfig, load_engine_config
from data_connector.core.exceptions import (
    DataConnectorError,
    InvalidColumnReferenceError,
    OperationCancelledError,
    SchemaTypeConflictError,
)
from data_connector.core.fingerprint import ColumnFingerprinter, fingerprint_all
from data_connector.core.fingerprint_cache import FingerprintCache, compute_dataset_version
from data_connector.core.join_engine import JoinEngine, merge_datasets
from data_connector.core.models import (
    ColumnFingerprint,
    ColumnInfo,
    ColumnType,
    CommonDimension,
    CompositeView,
    Dataset,
    JoinType,
    Relationship,
    RelationshipType,
    SchemaDetectionResult,
    SchemaType,
    ValidationResult,
)
from data_connector.core.promotion import has_circular_dependency, promote_candidate
from data_connector.core.relationship_detector import RelationshipDetector, detect_relationships
from data_connector.core.relationship_validator import RelationshipValidator, validate_relationship
from data_connector.core.schema_classifier import SchemaClassifier, classify_schema, detect_schema
from data_connector.logging_config import configure_logging

__all__ = [
    "BatchProgress",
    "CancellationToken",
    "classify_schema",
    "ColumnFingerprint",
    "ColumnFingerprinter",
    "ColumnInfo",
    "ColumnType",
    "CommonDimension",
    "CommonDimensionFinder",
    "CompositeView",
    "compute_dataset_version",
    "configure_logging",
    "DataConnectorError",
    "Dataset",
    "detect_relationships",
    "detect_schema",
    "EngineConfig",
    "find_common_dimensions",
    "fingerprint_all",
    "FingerprintCache",
    "has_circular_dependency",
    "InvalidColumnReferenceError",
    "JoinEngine",
    "JoinType",
    "load_engine_config",
    "merge_datasets",
    "OperationCancelledError",
    "promote_candidate",
    "Relationship",
    "RelationshipDetector",
    "RelationshipType",
    "RelationshipValidator",
    "SchemaClassifier",
    "SchemaDetectionResult",
    "SchemaType",
    "SchemaTypeConflictError",
    "validate_relationship",
    "ValidationResult",
]
