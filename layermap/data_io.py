"""Data I/O module for loading fraction quantification and accession tables."""

import csv
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pandas as pd

from .layout import (
    LAYER_TAGS,
    LOW_RESOLUTION,
    SAMPLE_TAGS,
    linear_index,
    record_length,
)
from .quantification import QuantificationStore

logger = logging.getLogger(__name__)

QUANT_COLUMNS = ['sample', 'layer', 'fraction', 'accession', 'area']
ACCESSION_COLUMNS = ['accession', 'description']

FRACTION_PATTERN = re.compile(r'^\d{2}$')
# "<name> OS=Homo sapiens OX=9606 GN=..." (UniProt FASTA header style)
DESCRIPTION_PATTERN = re.compile(r'^(?P<name>.+?)\s+OS=Homo\b')


class MalformedRecordError(ValueError):
    """A quantification or accession line could not be parsed."""


class AccessionLookupError(LookupError):
    """An accession could not be resolved to a protein name."""


class AccessionNotFoundError(AccessionLookupError):
    def __init__(self, accession: str):
        super().__init__(f"{accession}: not found")
        self.accession = accession


class DescriptionFormatError(AccessionLookupError):
    def __init__(self, accession: str, description: str):
        super().__init__(
            f"{accession}: description does not match '<name> OS=Homo ...': "
            f"{description!r}"
        )
        self.accession = accession


@dataclass
class QuantRecord:
    """One parsed quantification line."""
    sample: int
    layer: str
    fraction: int
    accession: str
    area: float


def _read_tab_delimited(filepath: Path, columns: list[str]) -> pd.DataFrame:
    """
    Read a headerless tab-delimited file as strings, wrapping parser errors.

    Blank lines are dropped, but the index keeps the 0-based physical line of
    every remaining row so diagnostics can name the line in the file.
    """
    try:
        df = pd.read_csv(
            filepath,
            sep='\t',
            header=None,
            names=columns,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
            quoting=csv.QUOTE_NONE,
        )
    except pd.errors.ParserError as e:
        raise MalformedRecordError(f"{filepath}: {e}") from e
    except pd.errors.EmptyDataError:
        return pd.DataFrame(columns=columns)

    if df.empty:
        return df
    # Extra leading fields would otherwise become an implicit index
    if not isinstance(df.index, pd.RangeIndex):
        raise MalformedRecordError(
            f"{filepath}: expected {len(columns)} tab-separated fields per line, "
            f"found more"
        )

    blank = df.apply(lambda col: col.fillna('').str.strip().eq('')).all(axis=1)
    return df[~blank]


def parse_record(fields: list, line_number: int, source: str = '<input>') -> QuantRecord:
    """
    Parse one quantification line.

    Args:
        fields: sample tag, layer tag, 2-digit fraction, accession, area
        line_number: 1-based line number for diagnostics
        source: File name for diagnostics

    Returns:
        QuantRecord

    Raises:
        MalformedRecordError: If any field does not parse
    """
    where = f"{source}, line {line_number}"
    fields = [f.strip() if isinstance(f, str) else '' for f in fields]
    if len(fields) != len(QUANT_COLUMNS) or not all(fields):
        raise MalformedRecordError(
            f"{where}: expected {len(QUANT_COLUMNS)} non-empty tab-separated fields"
        )
    sample_tag, layer_tag, fraction_text, accession, area_text = fields

    if sample_tag not in SAMPLE_TAGS:
        raise MalformedRecordError(
            f"{where}: unknown sample tag {sample_tag!r} "
            f"(expected one of {sorted(SAMPLE_TAGS)})"
        )
    if layer_tag not in LAYER_TAGS:
        raise MalformedRecordError(
            f"{where}: unknown layer tag {layer_tag!r} "
            f"(expected one of {sorted(LAYER_TAGS)})"
        )
    if not FRACTION_PATTERN.match(fraction_text) or not (
        1 <= int(fraction_text) <= LOW_RESOLUTION
    ):
        raise MalformedRecordError(
            f"{where}: fraction {fraction_text!r} is not a 2-digit number "
            f"in 01..{LOW_RESOLUTION:02d}"
        )
    try:
        area = float(area_text)
    except ValueError:
        raise MalformedRecordError(f"{where}: area {area_text!r} is not a number") from None
    if not math.isfinite(area) or area < 0:
        raise MalformedRecordError(f"{where}: area {area_text!r} must be non-negative")

    return QuantRecord(
        sample=SAMPLE_TAGS[sample_tag],
        layer=LAYER_TAGS[layer_tag],
        fraction=int(fraction_text),
        accession=accession,
        area=area,
    )


def load_quantification(filepath: Path) -> QuantificationStore:
    """
    Load a fraction quantification file into a 10-fraction store.

    The file is tab-delimited without header: sample tag (s1/s2/s3), layer
    tag (u/l), 2-digit fraction number, protein accession and peak area.
    Blank lines are skipped. The protein catalog keeps first-seen order and
    positions without a measurement stay missing.

    Args:
        filepath: Path to the quantification file

    Returns:
        QuantificationStore in the 10-fraction layout

    Raises:
        MalformedRecordError: If any line does not parse
    """
    filepath = Path(filepath)
    df = _read_tab_delimited(filepath, QUANT_COLUMNS)

    records = [
        parse_record(list(row), line_index + 1, filepath.name)
        for line_index, *row in df.itertuples(index=True, name=None)
    ]

    catalog = list(dict.fromkeys(r.accession for r in records))
    areas = {
        accession: np.full(record_length(LOW_RESOLUTION), np.nan)
        for accession in catalog
    }

    n_duplicates = 0
    for record in records:
        index = linear_index(record.sample, record.layer, record.fraction)
        if not np.isnan(areas[record.accession][index]):
            n_duplicates += 1
        areas[record.accession][index] = record.area

    if n_duplicates:
        logger.warning(
            f"{n_duplicates} duplicate measurements in {filepath.name}; "
            f"the last value was kept"
        )

    store = QuantificationStore(n_fractions=LOW_RESOLUTION)
    for accession in catalog:
        store.add(accession, areas[accession])

    logger.info(f"Loaded {len(records)} measurements for {len(store)} proteins from {filepath}")
    return store


@dataclass
class AccessionTable:
    """Protein accession -> free-text description."""
    descriptions: dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.descriptions)

    def __contains__(self, accession: str) -> bool:
        return accession in self.descriptions

    def describe(self, accession: str) -> str:
        """
        Protein name extracted from the accession's description.

        Raises:
            AccessionNotFoundError: If the accession is not in the table
            DescriptionFormatError: If the description lacks the organism suffix
        """
        if accession not in self.descriptions:
            raise AccessionNotFoundError(accession)
        description = self.descriptions[accession]
        match = DESCRIPTION_PATTERN.match(description)
        if match is None:
            raise DescriptionFormatError(accession, description)
        return match.group('name')


def load_accession_table(filepath: Path) -> AccessionTable:
    """
    Load a tab-delimited accession table (accession, description).

    Raises:
        MalformedRecordError: If a line lacks either field
    """
    filepath = Path(filepath)
    df = _read_tab_delimited(filepath, ACCESSION_COLUMNS)

    table = AccessionTable()
    for line_index, accession, description in df.itertuples(index=True, name=None):
        accession = accession.strip() if isinstance(accession, str) else ''
        description = description.strip() if isinstance(description, str) else ''
        if not accession or not description:
            raise MalformedRecordError(
                f"{filepath.name}, line {line_index + 1}: expected accession and description"
            )
        table.descriptions[accession] = description

    logger.info(f"Loaded {len(table)} accession descriptions from {filepath}")
    return table
