"""
Tabular output: area and rank grids, peak listings and the classification
table.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .classify import CLASS_NAMES, Classification
from .layout import BLOCK_LABELS, COMPARED_PAIRS, N_BLOCKS, block_slice

logger = logging.getLogger(__name__)


def _format_value(value) -> str:
    if isinstance(value, (float, np.floating)):
        if np.isnan(value):
            return '-1'
        return f"{value:.15g}"
    return str(value)


def format_grid(values: np.ndarray, n_fractions: int) -> str:
    """
    Render a record as six tab-separated rows of n_fractions values.

    Missing values print as -1.
    """
    values = np.asarray(values)
    lines = []
    for block in range(N_BLOCKS):
        row = values[block_slice(block, n_fractions)]
        lines.append('\t'.join(_format_value(v) for v in row) + '\n')
    return ''.join(lines)


def format_peaks(peaks: tuple) -> str:
    """One line per block: label, then 1-based peak fraction numbers."""
    lines = []
    for label, peak in zip(BLOCK_LABELS, peaks):
        if peak is None:
            text = 'no data'
        else:
            text = ','.join(str(p + 1) for p in peak)
        lines.append(f"{label}\t{text}\n")
    return ''.join(lines)


def classification_table(classifications: dict[str, Classification]) -> pd.DataFrame:
    """One row per protein: comparison outcome per pair plus class membership."""
    rows = []
    for accession, c in classifications.items():
        row = {'accession': accession}
        for a, b in COMPARED_PAIRS:
            row[f"pair_{a}{b}"] = c.comparisons[(a, b)].value
        row['rank_pattern'] = c.rank_pattern
        for class_name in CLASS_NAMES:
            row[class_name] = c.is_member(class_name)
        rows.append(row)

    columns = (
        ['accession']
        + [f"pair_{a}{b}" for a, b in COMPARED_PAIRS]
        + ['rank_pattern', *CLASS_NAMES]
    )
    return pd.DataFrame(rows, columns=columns)


def write_table(df: pd.DataFrame, output_path: Path, output_format: str = 'tsv') -> Path:
    """Write a table as parquet, csv or tsv."""
    output_path = Path(output_path)
    if output_format == 'parquet':
        df.to_parquet(output_path, index=False)
    elif output_format == 'csv':
        df.to_csv(output_path, index=False)
    elif output_format == 'tsv':
        df.to_csv(output_path, sep='\t', index=False)
    else:
        raise ValueError(f"Unknown output format: {output_format}")
    logger.info(f"Saved {len(df)} rows to {output_path}")
    return output_path
