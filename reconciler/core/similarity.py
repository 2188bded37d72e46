"""String similarity algorithms and composite key comparison."""

from dataclasses import replace
from typing import Callable, Dict, List, Optional, Union
import Levenshtein

from reconciler.config.models import (
    ComparisonResult,
    CompositeKeyComparison,
    MatchAlgorithm,
)
from reconciler.config.rules import (
    ALGORITHM_WEIGHTS,
    DEFAULT_THRESHOLDS,
    JARO_BOOST_THRESHOLD,
    JARO_PREFIX_SCALE,
    MAX_PREFIX_LENGTH,
    PERFECT_MATCH_THRESHOLD,
)
from reconciler.core.normalizer import generate_variations, smart_normalize

DEFAULT_THRESHOLD = DEFAULT_THRESHOLDS['FUZZY_MEDIUM']


def levenshtein_distance(str1: str, str2: str) -> int:
    """Minimum number of single-character insertions, deletions and substitutions."""
    return Levenshtein.distance(str1, str2)


def similarity(str1: str, str2: str) -> float:
    """
    Calculate edit-distance similarity between two strings.

    Args:
        str1: First string
        str2: Second string

    Returns:
        float: 1.0 for identical strings, 0.0 when exactly one is empty
    """
    if str1 == str2:
        return 1.0
    if not str1 or not str2:
        return 0.0

    return 1 - levenshtein_distance(str1, str2) / max(len(str1), len(str2))


def fuzzy_match(str1: str, str2: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    """Check if two strings are similar enough."""
    return similarity(str1, str2) >= threshold


def jaro(str1: str, str2: str) -> float:
    """Jaro similarity, tolerant to transpositions."""
    if str1 == str2:
        return 1.0
    if not str1 or not str2:
        return 0.0

    len1, len2 = len(str1), len(str2)
    match_distance = max(len1, len2) // 2 - 1

    str1_matches = [False] * len1
    str2_matches = [False] * len2
    matches = 0

    for i, char in enumerate(str1):
        start = max(0, i - match_distance)
        end = min(i + match_distance + 1, len2)
        for j in range(start, end):
            if str2_matches[j] or str2[j] != char:
                continue
            str1_matches[i] = True
            str2_matches[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, char in enumerate(str1):
        if not str1_matches[i]:
            continue
        while not str2_matches[k]:
            k += 1
        if char != str2[k]:
            transpositions += 1
        k += 1

    return (
        matches / len1 +
        matches / len2 +
        (matches - transpositions / 2) / matches
    ) / 3


def jaro_winkler(
    str1: str,
    str2: str,
    prefix_scale: float = JARO_PREFIX_SCALE
) -> float:
    """Jaro similarity boosted by the length of the common prefix."""
    jaro_score = jaro(str1, str2)
    if jaro_score < JARO_BOOST_THRESHOLD:
        return jaro_score

    prefix = 0
    for char1, char2 in zip(str1[:MAX_PREFIX_LENGTH], str2[:MAX_PREFIX_LENGTH]):
        if char1 != char2:
            break
        prefix += 1

    return jaro_score + prefix * prefix_scale * (1 - jaro_score)


def token_set_ratio(str1: str, str2: str) -> float:
    """Similarity that ignores word order ("Smith John" vs "John Smith")."""
    if str1 == str2:
        return 1.0
    if not str1 or not str2:
        return 0.0

    set1 = ' '.join(sorted(str1.lower().split()))
    set2 = ' '.join(sorted(str2.lower().split()))
    if set1 == set2:
        return 1.0

    return similarity(set1, set2)


def partial_ratio(str1: str, str2: str) -> float:
    """Best similarity of the shorter string against any window of the longer."""
    if str1 == str2:
        return 1.0
    if not str1 or not str2:
        return 0.0

    if len(str1) <= len(str2):
        shorter, longer = str1.lower(), str2.lower()
    else:
        shorter, longer = str2.lower(), str1.lower()

    if shorter in longer:
        return len(shorter) / len(longer)

    width = len(shorter)
    return max(
        similarity(shorter, longer[i:i + width])
        for i in range(len(longer) - width + 1)
    )


ALGORITHMS: Dict[MatchAlgorithm, Callable[[str, str], float]] = {
    MatchAlgorithm.LEVENSHTEIN: similarity,
    MatchAlgorithm.JARO_WINKLER: jaro_winkler,
    MatchAlgorithm.TOKEN_SET: token_set_ratio,
    MatchAlgorithm.PARTIAL: partial_ratio,
}


def multi_algorithm_match(str1: str, str2: str) -> ComparisonResult:
    """
    Blend all four algorithms over the smart-normalized inputs.

    Args:
        str1: First string
        str2: Second string

    Returns:
        ComparisonResult: Weighted score with normalized and original strings
    """
    normalized1 = smart_normalize(str1)
    normalized2 = smart_normalize(str2)

    score = sum(
        ALGORITHMS[algorithm](normalized1, normalized2) * ALGORITHM_WEIGHTS[algorithm.value]
        for algorithm in ALGORITHMS
    )

    return ComparisonResult(
        score=score,
        algorithm=MatchAlgorithm.MULTI_ALGORITHM,
        normalized1=normalized1,
        normalized2=normalized2,
        original1=str1,
        original2=str2,
    )


def variation_match(
    str1: str,
    str2: str,
    threshold: float = DEFAULT_THRESHOLD,
    compare: Optional[Callable[[str, str], ComparisonResult]] = None
) -> ComparisonResult:
    """
    Best multi-algorithm score over every pair of generated variations.

    Stops at the first pair scoring at least the perfect-match threshold.
    The threshold argument only takes part in cache keys.

    Args:
        str1: First string
        str2: Second string
        threshold: Caller's match threshold
        compare: Pair scorer, defaults to multi_algorithm_match

    Returns:
        ComparisonResult: Best comparison, carrying the unvaried originals
    """
    compare = compare or multi_algorithm_match
    best: Optional[ComparisonResult] = None

    for v1 in generate_variations(str1):
        for v2 in generate_variations(str2):
            result = compare(v1, v2)

            if best is None or result.score > best.score:
                best = replace(result, original1=str1, original2=str2)

            if result.score >= PERFECT_MATCH_THRESHOLD:
                return best

    return best


def smart_compare(
    str1: str,
    str2: str,
    threshold: float = DEFAULT_THRESHOLD,
    use_variations: bool = True,
    algorithm: Union[MatchAlgorithm, str] = MatchAlgorithm.MULTI_ALGORITHM,
    variations: Optional[Callable[..., ComparisonResult]] = None,
    blend: Optional[Callable[[str, str], ComparisonResult]] = None
) -> ComparisonResult:
    """
    Main entry point for comparing two field values.

    Args:
        str1: First string
        str2: Second string
        threshold: Caller's match threshold
        use_variations: Whether to score across generated variations
        algorithm: A single algorithm to use instead of the blend
        variations: Variation scorer, defaults to variation_match
        blend: Multi-algorithm scorer, defaults to multi_algorithm_match

    Returns:
        ComparisonResult: Comparison result

    Raises:
        ValueError: If the algorithm is unknown
    """
    algorithm = MatchAlgorithm(algorithm)

    if algorithm in ALGORITHMS:
        normalized1 = smart_normalize(str1)
        normalized2 = smart_normalize(str2)
        return ComparisonResult(
            score=ALGORITHMS[algorithm](normalized1, normalized2),
            algorithm=algorithm,
            normalized1=normalized1,
            normalized2=normalized2,
            original1=str1,
            original2=str2,
        )
    if algorithm is not MatchAlgorithm.MULTI_ALGORITHM:
        raise ValueError(f"Algorithm {algorithm.value} cannot be used for scoring")

    if use_variations:
        return (variations or variation_match)(str1, str2, threshold)
    return (blend or multi_algorithm_match)(str1, str2)


def compare_composite_keys(
    key1: List[str],
    key2: List[str],
    threshold: float = DEFAULT_THRESHOLD,
    compare: Optional[Callable[..., ComparisonResult]] = None
) -> CompositeKeyComparison:
    """
    Average the smart comparison of two composite keys position by position.

    Args:
        key1: First composite key
        key2: Second composite key
        threshold: Minimum average score to declare a match
        compare: Component comparison, defaults to smart_compare

    Returns:
        CompositeKeyComparison: No match with score 0 on a length mismatch
    """
    if len(key1) != len(key2) or not key1:
        return CompositeKeyComparison(matches=False, score=0.0)

    compare = compare or smart_compare
    details = [compare(part1, part2, threshold) for part1, part2 in zip(key1, key2)]
    average = sum(d.score for d in details) / len(details)

    return CompositeKeyComparison(
        matches=average >= threshold,
        score=average,
        details=details,
    )


def compare_composite_keys_basic(
    key1: List[str],
    key2: List[str],
    threshold: float = DEFAULT_THRESHOLD
) -> CompositeKeyComparison:
    """Cheaper composite comparison using plain similarity of normalized parts."""
    if len(key1) != len(key2) or not key1:
        return CompositeKeyComparison(matches=False, score=0.0)

    total = sum(
        similarity(smart_normalize(part1), smart_normalize(part2))
        for part1, part2 in zip(key1, key2)
    )
    average = total / len(key1)
    return CompositeKeyComparison(matches=average >= threshold, score=average)
