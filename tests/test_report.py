"""Tests for tabular output."""

import numpy as np
import pandas as pd
import pytest

from layermap.classify import classify_profile
from layermap.peaks import build_profile
from layermap.report import (
    classification_table,
    format_grid,
    format_peaks,
    write_table,
)


def _classifications():
    intensities = np.full(60, np.nan)
    intensities[0:10] = 1.0
    intensities[10:20] = 1.0
    intensities[2] = 3.0
    intensities[12] = 3.0
    profile = build_profile('P1', intensities, 10)
    return {'P1': classify_profile(profile)}


class TestFormatGrid:
    """Tests for 6 x N grid output."""

    def test_grid_shape(self):
        """Test six rows of ten tab-separated values."""
        text = format_grid(np.arange(60), 10)
        lines = text.splitlines()

        assert len(lines) == 6
        assert all(len(line.split('\t')) == 10 for line in lines)
        assert lines[1].split('\t')[0] == '10'
        assert text.endswith('\n')

    def test_missing_prints_sentinel(self):
        """Test that missing areas print as -1."""
        values = np.full(96, np.nan)
        values[0] = 1500.0
        lines = format_grid(values, 16).splitlines()

        assert lines[0].split('\t')[0] == '1500'
        assert lines[0].split('\t')[1] == '-1'
        assert len(lines[0].split('\t')) == 16

    def test_rank_grid(self):
        """Test integer rank grids."""
        ranks = np.full(60, -1)
        ranks[0] = 9
        lines = format_grid(ranks, 10).splitlines()
        assert lines[0].startswith('9\t-1')


class TestFormatPeaks:
    """Tests for peak listing."""

    def test_labels_and_positions(self):
        """Test one labelled line per block with 1-based fractions."""
        text = format_peaks(((2,), (2, 5), None, None, None, (0,)))
        lines = text.splitlines()

        assert len(lines) == 6
        assert lines[0] == 's1 upper\t3'
        assert lines[1] == 's1 lower\t3,6'
        assert lines[2] == 's2 upper\tno data'
        assert lines[5] == 's3 lower\t1'


class TestClassificationTable:
    """Tests for the classification table."""

    def test_columns_and_values(self):
        """Test one row per protein with pair outcomes and classes."""
        df = classification_table(_classifications())

        assert list(df.columns) == [
            'accession', 'pair_01', 'pair_12', 'pair_14', 'pair_23', 'pair_34',
            'pair_45', 'rank_pattern', 'type1', 'type2', 'type3',
        ]
        row = df.iloc[0]
        assert row['accession'] == 'P1'
        assert row['pair_01'] == 'equal'
        assert row['pair_23'] == 'no_data'
        assert row['type2']
        assert not row['type3']

    @pytest.mark.parametrize("output_format,sep", [('tsv', '\t'), ('csv', ',')])
    def test_write_text_formats(self, tmp_path, output_format, sep):
        """Test writing delimited tables."""
        df = classification_table(_classifications())
        path = write_table(df, tmp_path / f"classes.{output_format}", output_format)

        loaded = pd.read_csv(path, sep=sep)
        assert list(loaded['accession']) == ['P1']

    def test_write_parquet(self, tmp_path):
        """Test writing a parquet table."""
        df = classification_table(_classifications())
        path = write_table(df, tmp_path / 'classes.parquet', 'parquet')

        loaded = pd.read_parquet(path)
        assert loaded['type2'].tolist() == [True]

    def test_unknown_format(self, tmp_path):
        """Test that unknown formats are rejected."""
        with pytest.raises(ValueError, match="Unknown output format"):
            write_table(pd.DataFrame(), tmp_path / 'x.xlsx', 'xlsx')
