"""Type aliases for consistent type annotations across codebase."""

from typing import Any

# Row-level types
Record = dict[str, Any]
NormalizedKey = str

# Fingerprint lookup: dataset_id -> column_name -> fingerprint
FingerprintIndex = dict[str, dict[str, Any]]
