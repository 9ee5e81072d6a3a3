"""
Ranking and peak location within sample-layer blocks.

Ranks count down from 9 (the block's highest value) in tie groups: a group of
k equal values shares one rank and uses up k rank levels. Slots that are
missing, or fall below the tenth level, get rank -1.

Peaks are the positions holding a block's maximum log intensity. At 16
fractions, peaks are additionally mapped onto coarser groups so they can be
compared with the same geometric rules as 10-fraction data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .layout import (
    GROUP_PAIRED_LIMIT,
    GROUP_TAIL_OFFSET,
    HIGH_RESOLUTION,
    N_BLOCKS,
    block_slice,
    check_fraction_count,
    record_length,
)

TOP_RANK = 9
MISSING_RANK = -1

Peak = Optional[tuple]


def rank_block(values: np.ndarray) -> np.ndarray:
    """
    Rank one block of log intensities.

    Args:
        values: Log intensities of one block, NaN where missing

    Returns:
        Integer ranks in {-1, 0..9}, same length as the block
    """
    values = np.asarray(values, dtype=float)
    ranks = np.full(len(values), MISSING_RANK, dtype=int)

    candidates = ~np.isnan(values)
    level = TOP_RANK
    while level >= 0 and candidates.any():
        current = values[candidates].max()
        tied = candidates & (values == current)
        ranks[tied] = level
        candidates &= ~tied
        level -= int(tied.sum())

    return ranks


def rank_record(intensities: np.ndarray, n_fractions: int) -> np.ndarray:
    """Rank every block of a record independently."""
    intensities = np.asarray(intensities, dtype=float)
    ranks = np.full(record_length(n_fractions), MISSING_RANK, dtype=int)
    for block in range(N_BLOCKS):
        window = block_slice(block, n_fractions)
        ranks[window] = rank_block(intensities[window])
    return ranks


def locate_peak(values: np.ndarray) -> Peak:
    """
    Positions holding the block maximum, or None if the block has no data.

    Ties return every tied position in ascending order.
    """
    values = np.asarray(values, dtype=float)
    if np.isnan(values).all():
        return None
    top = np.nanmax(values)
    return tuple(int(p) for p in np.flatnonzero(values == top))


def locate_peaks(intensities: np.ndarray, n_fractions: int) -> tuple:
    """Peak of every block of a record."""
    intensities = np.asarray(intensities, dtype=float)
    return tuple(
        locate_peak(intensities[block_slice(block, n_fractions)])
        for block in range(N_BLOCKS)
    )


def group_position(position: int) -> int:
    """Map a 16-slot position onto its comparison group."""
    if position < GROUP_PAIRED_LIMIT:
        return position // 2
    return position - GROUP_TAIL_OFFSET


def group_peak(peak: Peak) -> Peak:
    # Duplicates are kept: overlap tests do not care
    if peak is None:
        return None
    return tuple(group_position(p) for p in peak)


@dataclass(frozen=True)
class ProteinProfile:
    """
    Derived working state for one protein.

    Built fresh for every protein and never shared, so classification of one
    protein cannot see another protein's peaks or ranks.
    """
    accession: str
    n_fractions: int
    intensities: np.ndarray
    ranks: np.ndarray
    peaks: tuple
    grouped_peaks: Optional[tuple] = None

    def block_intensities(self, block: int) -> np.ndarray:
        return self.intensities[block_slice(block, self.n_fractions)]

    def block_ranks(self, block: int) -> np.ndarray:
        return self.ranks[block_slice(block, self.n_fractions)]


def build_profile(
    accession: str,
    intensities: np.ndarray,
    n_fractions: int,
) -> ProteinProfile:
    """
    Compute ranks, peaks and (at 16 fractions) grouped peaks for a protein.

    Args:
        accession: Protein accession
        intensities: Log-intensity record
        n_fractions: 10 or 16

    Returns:
        ProteinProfile for this protein
    """
    check_fraction_count(n_fractions)
    intensities = np.asarray(intensities, dtype=float)
    if len(intensities) != record_length(n_fractions):
        raise ValueError(
            f"Record for {accession} has {len(intensities)} slots, "
            f"expected {record_length(n_fractions)}"
        )

    peaks = locate_peaks(intensities, n_fractions)
    grouped = None
    if n_fractions == HIGH_RESOLUTION:
        grouped = tuple(group_peak(peak) for peak in peaks)

    return ProteinProfile(
        accession=accession,
        n_fractions=n_fractions,
        intensities=intensities,
        ranks=rank_record(intensities, n_fractions),
        peaks=peaks,
        grouped_peaks=grouped,
    )
