"""Reconciliation of two tabular datasets across a field mapping."""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Union
import logging
import threading
import time

import pandas as pd

from reconciler.config.models import (
    CacheConfig,
    FieldMapping,
    MatchResult,
    MatchStatus,
    ReconciliationConfig,
    ReconciliationResult,
    ReconciliationSummary,
    Side,
    new_result_id,
)
from reconciler.core.keys import ensure_row
from reconciler.core.normalizer import to_text
from reconciler.core.scorer import SimilarityScorer
from reconciler.core.strategies import MatchOptions, MatchStrategy, create_strategy

Rows = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


class ReconciliationCancelled(RuntimeError):
    """Raised when a run is cancelled or runs out of time."""


class ReconciliationEngine:
    """
    Matches source rows to target rows and classifies every row.

    For each source row, in input order, the active strategy picks a target
    among those not claimed yet. Matched pairs become ``matched`` or
    ``conflict`` depending on their non-key fields; rows left over on
    either side become orphans.
    """

    def __init__(
        self,
        strategy: str = 'exact',
        scorer: Optional[SimilarityScorer] = None,
        cache_config: Optional[CacheConfig] = None,
        clear_cache: bool = True,
        id_factory: Callable[[], str] = new_result_id
    ):
        """
        Initialize the reconciliation engine.

        Args:
            strategy: Name of the matching strategy ('exact' or 'fuzzy')
            scorer: Memoized scorer shared with the strategies
            cache_config: Cache settings used when no scorer is given
            clear_cache: Whether to empty the scorer caches at the start
                of every run
            id_factory: Generates result identifiers
        """
        self.scorer = scorer or SimilarityScorer(cache_config)
        self.clear_cache = clear_cache
        self.id_factory = id_factory
        self.strategy: MatchStrategy = create_strategy(strategy, self.scorer)

        self._initialize_logging()

    def _initialize_logging(self) -> None:
        """Setup logging configuration."""
        self.logger = logging.getLogger(__name__)
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter(
                    '%(asctime)s - %(levelname)s - %(message)s'
                )
            )
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def set_strategy(self, strategy: str) -> None:
        """Switch the matching strategy."""
        self.strategy = create_strategy(strategy, self.scorer)

    def reconcile(
        self,
        source_rows: Rows,
        target_rows: Rows,
        config: ReconciliationConfig,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None
    ) -> ReconciliationResult:
        """
        Reconcile two datasets.

        Args:
            source_rows: Source rows, as mappings or a DataFrame
            target_rows: Target rows, as mappings or a DataFrame
            config: Field mappings, fuzzy threshold and optional strategy
                override
            cancel_event: Checked once per source row; cancels when set
            timeout: Time budget in seconds, checked once per source row

        Returns:
            ReconciliationResult: Summary and per-row results

        Raises:
            InvalidRowError: If a row is not a field->value mapping
            ReconciliationCancelled: If cancelled or out of time
            ValueError: If the strategy override is unknown
        """
        start_time = time.monotonic()
        deadline = start_time + timeout if timeout is not None else None

        source = self._prepare_rows(source_rows, Side.SOURCE)
        target = self._prepare_rows(target_rows, Side.TARGET)

        strategy = self.strategy
        if config.strategy is not None and config.strategy != strategy.name:
            strategy = create_strategy(config.strategy, self.scorer)

        if self.clear_cache:
            self.scorer.clear()

        if not config.key_mappings:
            self.logger.warning(
                "No key mapping configured. Every row will be reported as an orphan."
            )

        self.logger.info(
            f"Reconciling {len(source)} source rows against {len(target)} "
            f"target rows using {strategy.name} strategy"
        )

        options = MatchOptions(mappings=config.mappings, threshold=config.fuzzy_threshold)
        results: List[MatchResult] = []
        matched_target_indices: Set[int] = set()
        matched_source_indices: Set[int] = set()

        for source_index, source_row in enumerate(source):
            self._check_cancelled(cancel_event, deadline, source_index)

            match = strategy.match(source_row, target, matched_target_indices, options)

            if match is not None:
                matched_target_indices.add(match.target_index)
                matched_source_indices.add(source_index)

                differences = self.find_differences(source_row, match.target_row, config.mappings)
                match.status = MatchStatus.CONFLICT if differences else MatchStatus.MATCHED
                match.differences = differences
                match.source_index = source_index
                match.id = self.id_factory()
                results.append(match)

                self.logger.debug(
                    f"Source row {source_index} -> target row {match.target_index} "
                    f"({match.status.value}, confidence {match.confidence_score:.3f})"
                )
            else:
                results.append(MatchResult(
                    id=self.id_factory(),
                    status=MatchStatus.ORPHAN,
                    source_row=source_row,
                    source_index=source_index,
                ))
                self.logger.debug(f"Source row {source_index} has no counterpart")

        for target_index, target_row in enumerate(target):
            if target_index not in matched_target_indices:
                results.append(MatchResult(
                    id=self.id_factory(),
                    status=MatchStatus.ORPHAN,
                    target_row=target_row,
                    target_index=target_index,
                ))

        result = self.calculate_summary(results)

        summary = result.summary
        self.logger.info(
            f"Reconciliation completed in {time.monotonic() - start_time:.2f} seconds: "
            f"{summary.matched} matched, {summary.conflicts} conflicts, "
            f"{summary.orphans.source} source orphans, {summary.orphans.target} target orphans"
        )

        return result

    def _prepare_rows(self, rows: Rows, side: Side) -> List[Mapping[str, Any]]:
        """Materialize rows and validate their shape."""
        if isinstance(rows, pd.DataFrame):
            # Nullable dtypes keep integer columns with gaps from turning into floats
            rows = rows.convert_dtypes().to_dict(orient='records')

        return [ensure_row(row, side, index) for index, row in enumerate(rows)]

    def _check_cancelled(
        self,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
        source_index: int
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ReconciliationCancelled(
                f"Reconciliation cancelled before source row {source_index}"
            )
        if deadline is not None and time.monotonic() >= deadline:
            raise ReconciliationCancelled(
                f"Reconciliation timed out before source row {source_index}"
            )

    @staticmethod
    def find_differences(
        source: Mapping[str, Any],
        target: Mapping[str, Any],
        mappings: List[FieldMapping]
    ) -> Dict[str, Dict[str, Any]]:
        """
        Compare the non-key fields of a matched pair.

        Args:
            source: Source row
            target: Target row
            mappings: All field mappings

        Returns:
            Dict: source field -> {'source': raw value, 'target': raw value}
            for every non-key field whose trimmed text differs
        """
        differences = {}

        for mapping in mappings:
            if mapping.is_key:
                continue

            source_value = source.get(mapping.source_field)
            target_value = target.get(mapping.target_field)

            if to_text(source_value).strip() != to_text(target_value).strip():
                differences[mapping.source_field] = {
                    'source': source_value,
                    'target': target_value,
                }

        return differences

    @staticmethod
    def calculate_summary(results: List[MatchResult]) -> ReconciliationResult:
        """Aggregate per-status and per-side counts."""
        summary = ReconciliationSummary(total=len(results))

        for result in results:
            if result.status is MatchStatus.MATCHED:
                summary.matched += 1
            elif result.status is MatchStatus.CONFLICT:
                summary.conflicts += 1
            elif result.source_row is not None:
                summary.orphans.source += 1
            else:
                summary.orphans.target += 1

        return ReconciliationResult(summary=summary, results=results)
