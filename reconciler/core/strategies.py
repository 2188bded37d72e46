"""Strategies for finding the counterpart of a source row among target rows."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Type

from reconciler.config.models import (
    CompositeKeyComparison,
    FieldMapping,
    MatchAlgorithm,
    MatchMetadata,
    MatchResult,
    MatchStatus,
    Side,
)
from reconciler.config.rules import DEFAULT_THRESHOLDS, GOOD_ENOUGH_THRESHOLD
from reconciler.core.keys import build_key, join_key, key_mappings
from reconciler.core.scorer import SimilarityScorer


@dataclass(frozen=True)
class MatchOptions:
    """Per-run parameters handed to a strategy."""
    mappings: List[FieldMapping]
    threshold: float = DEFAULT_THRESHOLDS['FUZZY_MEDIUM']


class MatchStrategy(ABC):
    """
    Contract shared by all strategies.

    A strategy looks at one source row at a time and returns the best target
    row it can find among those not yet claimed. Claims are never revisited,
    so the overall assignment is greedy in source order.
    """

    name: str = ''

    def __init__(self, scorer: Optional[SimilarityScorer] = None):
        self.scorer = scorer

    @abstractmethod
    def match(
        self,
        source_row: Mapping[str, Any],
        target_rows: Sequence[Mapping[str, Any]],
        matched_target_indices: Set[int],
        options: MatchOptions
    ) -> Optional[MatchResult]:
        """
        Find the counterpart of a source row.

        Args:
            source_row: Row to match
            target_rows: All target rows
            matched_target_indices: Target indices already claimed
            options: Mappings and threshold

        Returns:
            Optional[MatchResult]: Match carrying target_row and
            target_index, or None when nothing qualifies
        """
        pass


class ExactMatchStrategy(MatchStrategy):
    """First unclaimed target whose joined composite key is string-equal."""

    name = 'exact'

    def match(
        self,
        source_row: Mapping[str, Any],
        target_rows: Sequence[Mapping[str, Any]],
        matched_target_indices: Set[int],
        options: MatchOptions
    ) -> Optional[MatchResult]:
        keys = key_mappings(options.mappings)
        if not keys:
            return None

        source_key = build_key(source_row, keys, Side.SOURCE)
        joined_source_key = join_key(source_key)

        for index, target_row in enumerate(target_rows):
            if index in matched_target_indices:
                continue

            target_key = build_key(target_row, keys, Side.TARGET)
            if join_key(target_key) == joined_source_key:
                return MatchResult(
                    status=MatchStatus.MATCHED,
                    source_row=source_row,
                    target_row=target_row,
                    confidence_score=1.0,
                    metadata=MatchMetadata(
                        algorithm=MatchAlgorithm.EXACT,
                        original_keys={'source': source_key, 'target': target_key}
                    ),
                    target_index=index,
                )

        return None


class FuzzyMatchStrategy(MatchStrategy):
    """Highest-scoring unclaimed target whose composite key clears the threshold."""

    name = 'fuzzy'

    def __init__(self, scorer: Optional[SimilarityScorer] = None):
        super().__init__(scorer or SimilarityScorer())

    def match(
        self,
        source_row: Mapping[str, Any],
        target_rows: Sequence[Mapping[str, Any]],
        matched_target_indices: Set[int],
        options: MatchOptions
    ) -> Optional[MatchResult]:
        keys = key_mappings(options.mappings)
        if not keys:
            return None

        source_key = build_key(source_row, keys, Side.SOURCE)

        best_index = -1
        best_key: List[str] = []
        best_comparison: Optional[CompositeKeyComparison] = None

        for index, target_row in enumerate(target_rows):
            if index in matched_target_indices:
                continue

            target_key = build_key(target_row, keys, Side.TARGET)
            comparison = self.scorer.compare_composite_keys(
                source_key, target_key, options.threshold
            )

            # Strict '>' keeps the lowest index on ties
            if comparison.matches and (
                    best_comparison is None or comparison.score > best_comparison.score):
                best_index = index
                best_key = target_key
                best_comparison = comparison

                if comparison.score >= GOOD_ENOUGH_THRESHOLD:
                    break

        if best_comparison is None:
            return None

        details = best_comparison.details
        return MatchResult(
            status=MatchStatus.MATCHED,
            source_row=source_row,
            target_row=target_rows[best_index],
            confidence_score=best_comparison.score,
            metadata=MatchMetadata(
                algorithm=details[0].algorithm if details else MatchAlgorithm.MULTI_ALGORITHM,
                normalized_keys={
                    'source': [d.normalized1 for d in details],
                    'target': [d.normalized2 for d in details],
                },
                original_keys={'source': source_key, 'target': best_key},
            ),
            target_index=best_index,
        )


STRATEGIES: Dict[str, Type[MatchStrategy]] = {
    ExactMatchStrategy.name: ExactMatchStrategy,
    FuzzyMatchStrategy.name: FuzzyMatchStrategy,
}


def register_strategy(name: str, strategy_class: Type[MatchStrategy]) -> None:
    """
    Register a new strategy type.

    Args:
        name: Name to register the strategy under
        strategy_class: Strategy class to register
    """
    STRATEGIES[name] = strategy_class


def create_strategy(name: str, scorer: Optional[SimilarityScorer] = None) -> MatchStrategy:
    """
    Create a strategy instance.

    Args:
        name: Name of the strategy type
        scorer: Scorer shared with the strategy

    Returns:
        MatchStrategy: Configured strategy

    Raises:
        ValueError: If strategy type not found
    """
    strategy_class = STRATEGIES.get(name)
    if not strategy_class:
        raise ValueError(f"Unknown match strategy: {name}")

    return strategy_class(scorer=scorer)
