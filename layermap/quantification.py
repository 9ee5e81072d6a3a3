"""
Quantification store for per-protein fraction abundances.

Each protein owns one record: a flat array of raw peak areas indexed by
block * n_fractions + fraction. Missing measurements are NaN. Log intensities
are derived once, when the record enters the store, and are read-only from
then on.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

import numpy as np

from .layout import (
    GAP,
    HIGH_RESOLUTION,
    LOW_RESOLUTION,
    N_BLOCKS,
    REMAP_ROLES,
    check_fraction_count,
    record_length,
)

logger = logging.getLogger(__name__)


def log_transform(areas: np.ndarray) -> np.ndarray:
    """
    Log10-transform raw areas.

    A missing area stays NaN, an area of exactly 0 maps to intensity 0 and
    anything else maps to log10(area).

    Args:
        areas: Raw areas, NaN where not measured

    Returns:
        Array of log intensities, same shape as the input
    """
    areas = np.asarray(areas, dtype=float)
    result = np.full(areas.shape, np.nan)

    measured = ~np.isnan(areas)
    positive = measured & (areas > 0)
    result[measured & (areas == 0)] = 0.0
    result[positive] = np.log10(areas[positive])

    return result


def remap_record(record: np.ndarray) -> np.ndarray:
    """
    Re-index a 10-fraction record into the 16-slot physical layout.

    Every block's 10 real values land on the slots named in REMAP_ROLES, the
    remaining 6 slots of the block are NaN. Slots are filled back to front so
    the last source fraction always lands on the last real slot.

    Args:
        record: Record of length 60 (six blocks of 10)

    Returns:
        Record of length 96 (six blocks of 16)

    Raises:
        ValueError: If the record is not a 10-fraction record
    """
    record = np.asarray(record, dtype=float)
    if len(record) != record_length(LOW_RESOLUTION):
        raise ValueError(
            f"Can only remap a {record_length(LOW_RESOLUTION)}-slot record, "
            f"got {len(record)} slots"
        )

    remapped = np.full(record_length(HIGH_RESOLUTION), np.nan)

    for block in range(N_BLOCKS):
        src_start = block * LOW_RESOLUTION
        dst_start = block * HIGH_RESOLUTION
        for slot in range(HIGH_RESOLUTION - 1, -1, -1):
            role = REMAP_ROLES[slot]
            if role is GAP:
                continue
            remapped[dst_start + slot] = record[src_start + role]

    return remapped


def _frozen(values: np.ndarray) -> np.ndarray:
    values = np.array(values, dtype=float)
    values.flags.writeable = False
    return values


@dataclass
class QuantificationStore:
    """
    Raw areas and log intensities for every protein of one run.

    Records are kept in the order proteins were first seen.
    """
    n_fractions: int = LOW_RESOLUTION
    areas: dict[str, np.ndarray] = field(default_factory=dict)
    intensities: dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        check_fraction_count(self.n_fractions)

    def __len__(self) -> int:
        return len(self.areas)

    def __contains__(self, accession: str) -> bool:
        return accession in self.areas

    def __iter__(self) -> Iterator[str]:
        return iter(self.areas)

    @property
    def accessions(self) -> list[str]:
        return list(self.areas)

    def add(self, accession: str, areas: np.ndarray) -> None:
        """Store one protein's complete record and derive its log intensities."""
        expected = record_length(self.n_fractions)
        if len(areas) != expected:
            raise ValueError(
                f"Record for {accession} has {len(areas)} slots, expected {expected}"
            )
        self.areas[accession] = _frozen(areas)
        self.intensities[accession] = _frozen(log_transform(areas))

    def get_areas(self, accession: str) -> np.ndarray:
        return self.areas[accession]

    def get_intensities(self, accession: str) -> np.ndarray:
        return self.intensities[accession]

    def remapped(self) -> QuantificationStore:
        """
        Return a 16-fraction copy of this store.

        Log intensities are recomputed from the remapped raw areas, which gives
        the same values as remapping the intensities directly.

        Raises:
            ValueError: If the store is already in the 16-fraction layout
        """
        if self.n_fractions != LOW_RESOLUTION:
            raise ValueError("Store is already remapped to 16 fractions")

        result = QuantificationStore(n_fractions=HIGH_RESOLUTION)
        for accession, areas in self.areas.items():
            result.add(accession, remap_record(areas))

        logger.info(f"Remapped {len(result)} proteins to {HIGH_RESOLUTION} fractions")
        return result
