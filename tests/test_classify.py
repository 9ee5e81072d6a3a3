"""Tests for peak comparison and classification."""

import numpy as np
import pytest

from layermap.classify import (
    Classification,
    Comparison,
    adjacent_match,
    classify_profile,
    classify_store,
    compare_peaks,
    comparison_rule,
    matches_rank_pattern,
    select_class,
)
from layermap.layout import COMPARED_PAIRS
from layermap.peaks import build_profile
from layermap.quantification import QuantificationStore


def make_intensities(peaks: dict, n_fractions: int = 10) -> np.ndarray:
    """Record with value 1.0 everywhere and 5.0 at each block's peak positions.

    Blocks not named in `peaks` are left missing.
    """
    intensities = np.full(6 * n_fractions, np.nan)
    for block, positions in peaks.items():
        start = block * n_fractions
        intensities[start:start + n_fractions] = 1.0
        for p in positions:
            intensities[start + p] = 5.0
    return intensities


def make_profile(peaks: dict, n_fractions: int = 10, accession: str = 'P1'):
    return build_profile(accession, make_intensities(peaks, n_fractions), n_fractions)


class TestComparisonRule:
    """Tests for choosing direct vs grouped comparison."""

    def test_low_resolution_always_direct(self):
        """Test that every pair is compared directly at 10 fractions."""
        for pair in COMPARED_PAIRS:
            assert comparison_rule(10, *pair) == 'direct'

    def test_high_resolution_direct_pairs(self):
        """Test that (0, 1) and (2, 3) stay direct at 16 fractions, in either order."""
        assert comparison_rule(16, 0, 1) == 'direct'
        assert comparison_rule(16, 3, 2) == 'direct'

    def test_high_resolution_grouped_pairs(self):
        """Test that other pairs are grouped at 16 fractions."""
        for pair in [(1, 2), (1, 4), (3, 4), (4, 5)]:
            assert comparison_rule(16, *pair) == 'grouped'


class TestComparePeaks:
    """Tests for the peak comparator."""

    def test_scenario_a_same_fraction(self):
        """Test identical peaks at fraction 3 in s1 upper and lower."""
        profile = make_profile({0: [2], 1: [2]})
        assert compare_peaks(profile, 0, 1) == Comparison.EQUAL

    def test_different_positions(self):
        """Test that different single peaks do not match."""
        profile = make_profile({0: [2], 1: [3]})
        assert compare_peaks(profile, 0, 1) == Comparison.NOT_EQUAL

    def test_overlapping_tied_peaks(self):
        """Test that any shared position among tied peaks is a match."""
        profile = make_profile({2: [1, 6], 3: [6, 8]})
        assert compare_peaks(profile, 2, 3) == Comparison.EQUAL

    def test_no_data(self):
        """Test that a block without data gives NO_DATA."""
        profile = make_profile({0: [2]})
        assert compare_peaks(profile, 0, 1) == Comparison.NO_DATA
        assert compare_peaks(profile, 1, 0) == Comparison.NO_DATA

    def test_scenario_b_all_zero(self):
        """Test that all-zero blocks tie everywhere and therefore match."""
        profile = build_profile('P1', np.zeros(60), 10)
        assert profile.peaks[0] == tuple(range(10))
        assert compare_peaks(profile, 0, 1) == Comparison.EQUAL

    def test_scenario_c_grouped_mismatch(self):
        """Test 16 fractions: positions 5 and 15 fall in groups 2 and 8."""
        profile = make_profile({1: [5], 2: [15]}, n_fractions=16)
        assert profile.grouped_peaks[1] == (2,)
        assert profile.grouped_peaks[2] == (8,)
        assert compare_peaks(profile, 1, 2) == Comparison.NOT_EQUAL

    def test_grouped_match(self):
        """Test 16 fractions: neighbouring slots in one group match."""
        profile = make_profile({1: [8], 2: [9]}, n_fractions=16)
        assert compare_peaks(profile, 1, 2) == Comparison.EQUAL

    def test_direct_pair_not_grouped(self):
        """Test 16 fractions: the (0, 1) pair compares raw positions."""
        profile = make_profile({0: [8], 1: [9]}, n_fractions=16)
        assert compare_peaks(profile, 0, 1) == Comparison.NOT_EQUAL

    def test_scenario_d_adjacent_exception(self):
        """Test 10 fractions: s3 upper at 5 and s3 lower at 4 count as equal."""
        profile = make_profile({4: [5], 5: [4]})
        assert adjacent_match(profile, 4, 5)
        assert compare_peaks(profile, 4, 5) == Comparison.EQUAL

    def test_adjacent_exception_is_directional(self):
        """Test that the exception does not apply to the reversed order or positions."""
        profile = make_profile({4: [5], 5: [4]})
        assert compare_peaks(profile, 5, 4) == Comparison.NOT_EQUAL

        swapped = make_profile({4: [4], 5: [5]})
        assert compare_peaks(swapped, 4, 5) == Comparison.NOT_EQUAL

    def test_adjacent_exception_only_for_pair_45(self):
        """Test that other pairs peaking at 5 and 4 do not match."""
        profile = make_profile({2: [5], 3: [4]})
        assert not adjacent_match(profile, 2, 3)
        assert compare_peaks(profile, 2, 3) == Comparison.NOT_EQUAL

    def test_adjacent_exception_not_used_when_grouped(self):
        """Test 16 fractions: the (4, 5) pair uses groups, not the exception."""
        profile = make_profile({4: [5], 5: [4]}, n_fractions=16)
        assert not adjacent_match(profile, 4, 5)

    def test_symmetry_outside_exception(self):
        """Test that comparison is symmetric for every pair except (4, 5)."""
        rng = np.random.default_rng(3)
        for n_fractions in (10, 16):
            for _ in range(30):
                intensities = rng.integers(0, 4, size=6 * n_fractions).astype(float)
                intensities[rng.random(6 * n_fractions) < 0.1] = np.nan
                profile = build_profile('P1', intensities, n_fractions)
                for a in range(6):
                    for b in range(6):
                        if {a, b} == {4, 5}:
                            continue
                        assert compare_peaks(profile, a, b) == compare_peaks(profile, b, a)


class TestRankPattern:
    """Tests for the type-1 rank test."""

    def test_low_resolution_sample1(self):
        """Test 10 fractions: fraction 7 on top in both s1 layers."""
        ranks = np.full(60, -1)
        ranks[6] = 9
        ranks[16] = 9
        assert matches_rank_pattern(ranks, 10)

    def test_low_resolution_sample3_alternative(self):
        """Test 10 fractions: s3 lower may top at either fraction 5 or 6."""
        ranks = np.full(60, -1)
        ranks[45] = 9
        ranks[55] = 9
        assert matches_rank_pattern(ranks, 10)

    def test_one_layer_not_enough(self):
        """Test that only the upper layer on top does not qualify."""
        ranks = np.full(60, -1)
        ranks[25] = 9
        assert not matches_rank_pattern(ranks, 10)

    def test_high_resolution(self):
        """Test 16 fractions: s2 positions 41 and 57."""
        ranks = np.full(96, -1)
        ranks[41] = 9
        ranks[57] = 9
        assert matches_rank_pattern(ranks, 16)


class TestClassification:
    """Tests for type 1/2/3 membership."""

    def test_type2_from_one_pair(self):
        """Test that one matching sample pair makes type 2 but not type 3."""
        result = classify_profile(make_profile({0: [2], 1: [2]}))
        assert result.type2
        assert not result.type3
        assert not result.type1

    def test_type3_needs_all_pairs(self):
        """Test that all three matching sample pairs make type 3."""
        result = classify_profile(make_profile({0: [2], 1: [2], 2: [3], 3: [3], 4: [7], 5: [7]}))
        assert result.type2
        assert result.type3

    def test_type1_adjacent_exception_and_rank(self):
        """Test type 1 via the (4, 5) exception plus the s3 rank pattern."""
        result = classify_profile(make_profile({4: [5], 5: [4]}))
        assert result.flag(4, 5)
        assert result.rank_pattern
        assert result.type1
        assert result.type2

    def test_rank_pattern_without_match_is_not_type1(self):
        """Test that the rank pattern alone does not make type 1."""
        result = Classification('P1', comparisons={}, rank_pattern=True)
        assert not result.type2
        assert not result.type1

    def test_no_data_is_not_a_match(self):
        """Test that NO_DATA flags are false."""
        result = classify_profile(make_profile({0: [2]}))
        assert result.comparisons[(0, 1)] == Comparison.NO_DATA
        assert not result.flag(0, 1)
        assert not result.type2

    def test_all_pairs_compared(self):
        """Test that every fixed pair has an outcome."""
        result = classify_profile(make_profile({0: [1]}))
        assert set(result.comparisons) == set(COMPARED_PAIRS)

    def test_type1_subset_of_type2(self):
        """Test type1 implies type2 over random profiles."""
        rng = np.random.default_rng(11)
        for n_fractions in (10, 16):
            for _ in range(100):
                intensities = rng.integers(0, 3, size=6 * n_fractions).astype(float)
                result = classify_profile(build_profile('P1', intensities, n_fractions))
                if result.type1:
                    assert result.type2
                if result.type3:
                    assert result.type2

    def test_unknown_class(self):
        """Test that unknown class names are rejected."""
        result = Classification('P1')
        with pytest.raises(ValueError, match="Unknown class"):
            result.is_member('type4')


class TestClassifyStore:
    """Tests for catalog-wide classification."""

    def _store(self):
        store = QuantificationStore()
        store.add('MATCH', 10 ** make_intensities({0: [2], 1: [2]}))
        store.add('NOMATCH', 10 ** make_intensities({0: [2], 1: [3]}))
        store.add('TYPE1', 10 ** make_intensities({4: [5], 5: [4]}))
        return store

    def test_classify_and_select(self):
        """Test classification of a small catalog and class selection."""
        classifications = classify_store(self._store())

        assert list(classifications) == ['MATCH', 'NOMATCH', 'TYPE1']
        assert select_class(classifications, 'type2') == ['MATCH', 'TYPE1']
        assert select_class(classifications, 'type1') == ['TYPE1']
        assert select_class(classifications, 'type3') == []

    def test_parallel_matches_serial(self):
        """Test that process-pool classification gives the same result."""
        store = self._store()
        serial = classify_store(store, workers=1)
        parallel = classify_store(store, workers=2)

        assert list(parallel) == list(serial)
        for accession in serial:
            assert parallel[accession].comparisons == serial[accession].comparisons
            assert parallel[accession].rank_pattern == serial[accession].rank_pattern
