"""Configuration and result models for the reconciliation system."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from enum import Enum
import os
import uuid

import pandas as pd


class DataType(str, Enum):
    """Declared data type of a mapped field."""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class Side(str, Enum):
    """Origin of a row."""
    SOURCE = "source"
    TARGET = "target"


class MatchStatus(str, Enum):
    """Classification of a reconciliation result."""
    MATCHED = "matched"
    CONFLICT = "conflict"
    ORPHAN = "orphan"


class MatchAlgorithm(str, Enum):
    """Labels of the comparison algorithms."""
    EXACT = "exact"
    LEVENSHTEIN = "levenshtein"
    JARO_WINKLER = "jaro-winkler"
    TOKEN_SET = "token-set"
    PARTIAL = "partial"
    MULTI_ALGORITHM = "multi-algorithm"


def new_result_id() -> str:
    """Generate a process-unique opaque identifier."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class FieldMapping:
    """Pairing of a source field with a target field."""
    id: str
    source_field: str
    target_field: str
    is_key: bool = False
    data_type: DataType = DataType.STRING

    def __post_init__(self):
        """Coerce the data type to its enum."""
        object.__setattr__(self, 'data_type', DataType(self.data_type))

    def field_for(self, side: Union[Side, str]) -> str:
        """Return the field name used on the given side."""
        return self.source_field if Side(side) is Side.SOURCE else self.target_field

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        """
        Build a mapping from a camelCase or snake_case record.

        Args:
            data: Mapping record, e.g. {'sourceField': ..., 'isKey': True}

        Returns:
            FieldMapping: Parsed mapping
        """
        def pick(*names, default=None):
            for name in names:
                if name in data:
                    return data[name]
            return default

        source_field = pick('source_field', 'sourceField')
        target_field = pick('target_field', 'targetField')
        return cls(
            id=str(pick('id', default=f'{source_field}->{target_field}')),
            source_field=source_field,
            target_field=target_field,
            is_key=bool(pick('is_key', 'isKey', default=False)),
            data_type=pick('data_type', 'dataType', default=DataType.STRING),
        )


@dataclass(frozen=True)
class ReconciliationConfig:
    """Field mappings and matching parameters for one reconciliation run."""
    mappings: List[FieldMapping]
    fuzzy_threshold: float = 0.8
    strategy: Optional[str] = None

    def __post_init__(self):
        """Parse mapping records and validate the threshold."""
        object.__setattr__(
            self,
            'mappings',
            [
                m if isinstance(m, FieldMapping) else FieldMapping.from_dict(m)
                for m in self.mappings
            ]
        )
        if not 0 < self.fuzzy_threshold <= 1:
            raise ValueError(
                f"fuzzy_threshold must be in (0, 1], got {self.fuzzy_threshold}"
            )

    @property
    def key_mappings(self) -> List[FieldMapping]:
        """Mappings that make up the composite key, in declaration order."""
        return [m for m in self.mappings if m.is_key]


@dataclass(frozen=True)
class CacheConfig:
    """Capacity and time-to-live of a memoization cache."""
    max_size: int = 5000
    ttl: float = 600.0  # seconds

    def __post_init__(self):
        """Reject non-positive capacity or time to live."""
        if self.max_size < 1:
            raise ValueError(f"max_size must be positive, got {self.max_size}")
        if self.ttl <= 0:
            raise ValueError(f"ttl must be positive, got {self.ttl}")

    @classmethod
    def from_env(cls, max_size: int = 5000, ttl: float = 600.0) -> "CacheConfig":
        """
        Build a cache configuration from environment overrides.

        Reads RECONCILER_CACHE_MAX_SIZE and RECONCILER_CACHE_TTL_SECONDS,
        falling back to the given defaults.

        Returns:
            CacheConfig: Validated configuration
        """
        max_size = int(os.getenv("RECONCILER_CACHE_MAX_SIZE", str(max_size)))
        ttl = float(os.getenv("RECONCILER_CACHE_TTL_SECONDS", str(ttl)))
        return cls(max_size=max_size, ttl=ttl)


@dataclass
class ComparisonResult:
    """Score of a single string comparison with its traceability data."""
    score: float
    algorithm: MatchAlgorithm
    normalized1: str
    normalized2: str
    original1: str
    original2: str


@dataclass
class CompositeKeyComparison:
    """Positional comparison of two composite keys."""
    matches: bool
    score: float
    details: List[ComparisonResult] = field(default_factory=list)


@dataclass
class MatchMetadata:
    """Audit information attached to a matched pair."""
    algorithm: MatchAlgorithm
    normalized_keys: Optional[Dict[str, List[str]]] = None
    original_keys: Optional[Dict[str, List[str]]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, omitting absent key lists."""
        payload: Dict[str, Any] = {'algorithm': self.algorithm.value}
        if self.normalized_keys is not None:
            payload['normalizedKeys'] = self.normalized_keys
        if self.original_keys is not None:
            payload['originalKeys'] = self.original_keys
        return payload


@dataclass
class MatchResult:
    """Outcome for one source row, one target row, or a pair of them."""
    status: MatchStatus
    source_row: Optional[Dict[str, Any]] = None
    target_row: Optional[Dict[str, Any]] = None
    confidence_score: float = 0.0
    differences: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    metadata: Optional[MatchMetadata] = None
    source_index: Optional[int] = None
    target_index: Optional[int] = None
    id: str = field(default_factory=new_result_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys; rows are included only when present."""
        payload: Dict[str, Any] = {
            'id': self.id,
            'status': self.status.value,
            'confidenceScore': self.confidence_score,
            'differences': self.differences,
        }
        if self.source_row is not None:
            payload['sourceRow'] = self.source_row
        if self.target_row is not None:
            payload['targetRow'] = self.target_row
        if self.metadata is not None:
            payload['metadata'] = self.metadata.to_dict()
        return payload


@dataclass
class OrphanCounts:
    """Orphaned rows per side."""
    source: int = 0
    target: int = 0


@dataclass
class ReconciliationSummary:
    """Aggregate counts over all results of a run."""
    total: int = 0
    matched: int = 0
    conflicts: int = 0
    orphans: OrphanCounts = field(default_factory=OrphanCounts)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the counts, nesting orphans by side."""
        return {
            'total': self.total,
            'matched': self.matched,
            'conflicts': self.conflicts,
            'orphans': {'source': self.orphans.source, 'target': self.orphans.target},
        }


@dataclass
class ReconciliationResult:
    """Summary plus the ordered list of results of a run."""
    summary: ReconciliationSummary
    results: List[MatchResult]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the summary and every result in order."""
        return {
            'summary': self.summary.to_dict(),
            'results': [result.to_dict() for result in self.results],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """
        Flatten the results into one row per result.

        Row fields are prefixed with ``source.`` or ``target.``.

        Returns:
            pd.DataFrame: Flattened results
        """
        records = []
        for result in self.results:
            record = {
                'id': result.id,
                'status': result.status.value,
                'confidence_score': result.confidence_score,
                'source_index': result.source_index,
                'target_index': result.target_index,
                'algorithm': result.metadata.algorithm.value if result.metadata else None,
                'difference_fields': '; '.join(result.differences),
            }
            for prefix, row in (('source', result.source_row), ('target', result.target_row)):
                for col, val in (row or {}).items():
                    record[f'{prefix}.{col}'] = val
            records.append(record)
        return pd.DataFrame.from_records(records)
