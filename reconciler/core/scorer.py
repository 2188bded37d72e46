"""Memoized scoring of field values and composite keys."""

from typing import Callable, Dict, List, Optional, Union
import time

from reconciler.config.models import (
    CacheConfig,
    ComparisonResult,
    CompositeKeyComparison,
    MatchAlgorithm,
)
from reconciler.core import similarity
from reconciler.core.cache import MemoCache, memoize

VARIATION_CACHE_SIZE = 3000


class SimilarityScorer:
    """
    Owns the caches around the expensive similarity comparisons.

    One scorer is meant to live for one reconciliation run; ``clear()``
    empties every cache so independent runs never share results.
    """

    def __init__(
        self,
        cache_config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the scorer and its caches.

        Args:
            cache_config: Capacity and TTL of the caches (read from the
                environment when omitted)
            clock: Source of timestamps for cache expiry
        """
        config = cache_config or CacheConfig.from_env()
        variation_config = CacheConfig(
            max_size=min(config.max_size, VARIATION_CACHE_SIZE),
            ttl=config.ttl
        )

        self.caches: Dict[str, MemoCache] = {
            'multi_algorithm_match': MemoCache.from_config(config, 'multi_algorithm_match', clock),
            'variation_match': MemoCache.from_config(variation_config, 'variation_match', clock),
            'smart_compare': MemoCache.from_config(config, 'smart_compare', clock),
            'compare_composite_keys': MemoCache.from_config(config, 'compare_composite_keys', clock),
        }

        self.multi_algorithm_match = memoize(
            similarity.multi_algorithm_match,
            cache=self.caches['multi_algorithm_match']
        )
        self.variation_match = memoize(
            self._variation_match,
            cache=self.caches['variation_match']
        )
        self.smart_compare = memoize(
            self._smart_compare,
            cache=self.caches['smart_compare']
        )
        self.compare_composite_keys = memoize(
            self._compare_composite_keys,
            cache=self.caches['compare_composite_keys']
        )

    def _variation_match(
        self,
        str1: str,
        str2: str,
        threshold: float = similarity.DEFAULT_THRESHOLD
    ) -> ComparisonResult:
        return similarity.variation_match(
            str1, str2, threshold, compare=self.multi_algorithm_match
        )

    def _smart_compare(
        self,
        str1: str,
        str2: str,
        threshold: float = similarity.DEFAULT_THRESHOLD,
        use_variations: bool = True,
        algorithm: Union[MatchAlgorithm, str] = MatchAlgorithm.MULTI_ALGORITHM
    ) -> ComparisonResult:
        return similarity.smart_compare(
            str1,
            str2,
            threshold,
            use_variations,
            algorithm,
            variations=self.variation_match,
            blend=self.multi_algorithm_match
        )

    def _compare_composite_keys(
        self,
        key1: List[str],
        key2: List[str],
        threshold: float = similarity.DEFAULT_THRESHOLD
    ) -> CompositeKeyComparison:
        return similarity.compare_composite_keys(
            key1, key2, threshold, compare=self.smart_compare
        )

    def clear(self) -> None:
        """Empty every cache."""
        for cache in self.caches.values():
            cache.clear()

    def stats(self) -> Dict[str, int]:
        """Number of live entries per cache."""
        return {name: len(cache) for name, cache in self.caches.items()}
