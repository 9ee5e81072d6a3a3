"""
Peak comparison and structural classification.

Two blocks "match" when their peaks coincide. Three matching rules exist:

- direct: peak positions compared as-is. Used for every pair at 10 fractions
  and for the (0, 1) and (2, 3) pairs at 16 fractions.
- grouped: peak positions compared after mapping onto coarser groups. Used for
  every other pair at 16 fractions.
- adjacent: at 10 fractions only, the ordered pair (4, 5) also matches when
  block 4 peaks at position 5 and block 5 at position 4. This exception is
  directional on purpose.

Classification runs the comparator over six fixed block pairs:

    type2 = flag01 or flag23 or flag45
    type3 = flag01 and flag23 and flag45
    type1 = type2 and the type-1 rank pattern
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .layout import (
    ADJACENT_PAIR,
    ADJACENT_POSITIONS,
    COMPARED_PAIRS,
    DIRECT_PAIRS,
    LOW_RESOLUTION,
    TYPE1_RANK_PATTERNS,
)
from .peaks import TOP_RANK, ProteinProfile, build_profile

logger = logging.getLogger(__name__)

CLASS_NAMES = ('type1', 'type2', 'type3')


class Comparison(str, Enum):
    """Outcome of comparing two blocks' peaks."""
    EQUAL = 'equal'
    NOT_EQUAL = 'not_equal'
    NO_DATA = 'no_data'


def comparison_rule(n_fractions: int, block_a: int, block_b: int) -> str:
    """Name of the matching rule ('direct' or 'grouped') used for a pair."""
    if n_fractions == LOW_RESOLUTION or frozenset({block_a, block_b}) in DIRECT_PAIRS:
        return 'direct'
    return 'grouped'


def _overlaps(peak_a: tuple, peak_b: tuple) -> bool:
    if len(peak_a) == 1 and len(peak_b) == 1:
        return peak_a[0] == peak_b[0]
    return not set(peak_a).isdisjoint(peak_b)


def adjacent_match(profile: ProteinProfile, block_a: int, block_b: int) -> bool:
    """True when the directional adjacent-fraction exception applies."""
    if (block_a, block_b) != ADJACENT_PAIR:
        return False
    if comparison_rule(profile.n_fractions, block_a, block_b) != 'direct':
        return False
    peak_a = profile.peaks[block_a]
    peak_b = profile.peaks[block_b]
    if peak_a is None or peak_b is None:
        return False
    position_a, position_b = ADJACENT_POSITIONS
    return position_a in peak_a and position_b in peak_b


def compare_peaks(profile: ProteinProfile, block_a: int, block_b: int) -> Comparison:
    """
    Decide whether two blocks of one protein peak at the same place.

    Args:
        profile: Protein working state
        block_a: First block index (0-5)
        block_b: Second block index (0-5)

    Returns:
        Comparison.NO_DATA if either block has no data, otherwise EQUAL or
        NOT_EQUAL under the rule for this pair
    """
    if profile.peaks[block_a] is None or profile.peaks[block_b] is None:
        return Comparison.NO_DATA

    if comparison_rule(profile.n_fractions, block_a, block_b) == 'direct':
        if _overlaps(profile.peaks[block_a], profile.peaks[block_b]):
            return Comparison.EQUAL
        if adjacent_match(profile, block_a, block_b):
            return Comparison.EQUAL
        return Comparison.NOT_EQUAL

    grouped = profile.grouped_peaks
    if _overlaps(grouped[block_a], grouped[block_b]):
        return Comparison.EQUAL
    return Comparison.NOT_EQUAL


def matches_rank_pattern(ranks: np.ndarray, n_fractions: int) -> bool:
    """
    Type-1 rank test: for some sample, the fixed upper and lower fractions
    are both the top-ranked fraction of their block.
    """
    for sample_pattern in TYPE1_RANK_PATTERNS[n_fractions]:
        if all(
            any(ranks[index] == TOP_RANK for index in alternatives)
            for alternatives in sample_pattern
        ):
            return True
    return False


@dataclass
class Classification:
    """Classification of one protein."""
    accession: str
    comparisons: dict = field(default_factory=dict)
    rank_pattern: bool = False

    def flag(self, block_a: int, block_b: int) -> bool:
        return self.comparisons.get((block_a, block_b)) == Comparison.EQUAL

    @property
    def type2(self) -> bool:
        return self.flag(0, 1) or self.flag(2, 3) or self.flag(4, 5)

    @property
    def type3(self) -> bool:
        return self.flag(0, 1) and self.flag(2, 3) and self.flag(4, 5)

    @property
    def type1(self) -> bool:
        return self.type2 and self.rank_pattern

    def is_member(self, class_name: str) -> bool:
        if class_name not in CLASS_NAMES:
            raise ValueError(
                f"Unknown class: {class_name}. Must be one of: {CLASS_NAMES}"
            )
        return getattr(self, class_name)


def classify_profile(profile: ProteinProfile) -> Classification:
    """Run every fixed pair comparison and the rank test for one protein."""
    comparisons = {
        pair: compare_peaks(profile, *pair)
        for pair in COMPARED_PAIRS
    }
    return Classification(
        accession=profile.accession,
        comparisons=comparisons,
        rank_pattern=matches_rank_pattern(profile.ranks, profile.n_fractions),
    )


def _classify_record(args: tuple) -> Classification:
    """Worker entry point: (accession, intensities, n_fractions)."""
    accession, intensities, n_fractions = args
    return classify_profile(build_profile(accession, intensities, n_fractions))


def classify_store(store, workers: int = 1) -> dict[str, Classification]:
    """
    Classify every protein of a quantification store.

    Proteins are independent, so with workers > 1 they are classified in a
    process pool. The result keeps the store's protein order.

    Args:
        store: QuantificationStore
        workers: Number of worker processes

    Returns:
        Dict of accession -> Classification
    """
    tasks = [
        (accession, np.asarray(store.get_intensities(accession)), store.n_fractions)
        for accession in store
    ]

    if workers > 1 and len(tasks) > 1:
        logger.info(f"Classifying {len(tasks)} proteins with {workers} workers...")
        chunksize = max(1, len(tasks) // (workers * 4))
        with ProcessPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(_classify_record, tasks, chunksize=chunksize))
    else:
        logger.info(f"Classifying {len(tasks)} proteins...")
        results = [_classify_record(task) for task in tasks]

    classifications = {c.accession: c for c in results}

    for class_name in CLASS_NAMES:
        n = sum(c.is_member(class_name) for c in classifications.values())
        logger.info(f"  {class_name}: {n} proteins")

    return classifications


def select_class(
    classifications: dict[str, Classification],
    class_name: str,
) -> list[str]:
    """Accessions belonging to a class, in catalog order."""
    return [
        accession for accession, c in classifications.items()
        if c.is_member(class_name)
    ]

