"""
LayerMap: peak classification and heat maps for fractionated gradients

Ingests mass-spectrometry peak areas for proteins measured across three samples,
each split into an upper and a lower layer of 10 (or, remapped, 16) fractions.
Proteins are classified by where their abundance peaks, and rendered as
rank-colored heat maps.
"""

__version__ = "0.1.0"

from .data_io import (
    load_quantification,
    load_accession_table,
    AccessionTable,
    MalformedRecordError,
    AccessionLookupError,
    AccessionNotFoundError,
    DescriptionFormatError,
)
from .quantification import (
    QuantificationStore,
    log_transform,
    remap_record,
)
from .peaks import (
    rank_block,
    rank_record,
    locate_peak,
    locate_peaks,
    group_position,
    build_profile,
    ProteinProfile,
)
from .classify import (
    Comparison,
    Classification,
    compare_peaks,
    classify_profile,
    classify_store,
    select_class,
)
from .colors import color_for_rank
