"""
Dataset Reconciler
==================

Reconciles two independently sourced tabular datasets by matching rows
across a declared field mapping, classifying each row as matched,
conflicting or orphaned, and reporting per-field discrepancies.

Key Features:
- Exact and fuzzy matching strategies behind a common interface
- Multi-algorithm string similarity (Levenshtein, Jaro-Winkler, token set, partial)
- Rule-table-driven normalization of addresses, company names, phones and emails
- Time- and size-bounded memoization of expensive comparisons
"""

from reconciler.core.engine import ReconciliationEngine, ReconciliationCancelled
from reconciler.core.keys import InvalidRowError, build_key
from reconciler.core.scorer import SimilarityScorer
from reconciler.core.strategies import (
    ExactMatchStrategy,
    FuzzyMatchStrategy,
    MatchStrategy,
    register_strategy,
)

from reconciler.config.models import (
    CacheConfig,
    FieldMapping,
    MatchStatus,
    ReconciliationConfig,
    ReconciliationResult,
)

__version__ = "1.0.0"
