"""
Fixed layout of the fractionated gradient.

Three biological samples, each split into an upper and a lower layer, give six
sample-layer blocks. Each block holds either 10 fractions (as measured) or 16
slots (the physical fraction layout of the instrument, with gaps).

Block order is fixed:
    0 = s1 upper, 1 = s1 lower, 2 = s2 upper,
    3 = s2 lower, 4 = s3 upper, 5 = s3 lower

All instrument-specific constants live here as named tables so they can be
inspected and tested on their own.
"""

from __future__ import annotations

SAMPLE_TAGS = {'s1': 1, 's2': 2, 's3': 3}
LAYER_TAGS = {'u': 'upper', 'l': 'lower'}
LAYERS = ('upper', 'lower')

LOW_RESOLUTION = 10
HIGH_RESOLUTION = 16
SUPPORTED_FRACTION_COUNTS = (LOW_RESOLUTION, HIGH_RESOLUTION)

BLOCKS = (
    (1, 'upper'),
    (1, 'lower'),
    (2, 'upper'),
    (2, 'lower'),
    (3, 'upper'),
    (3, 'lower'),
)
N_BLOCKS = len(BLOCKS)
BLOCK_LABELS = tuple(f"s{sample} {layer}" for sample, layer in BLOCKS)

# Blocks drawn and framed together: (upper, lower) of each sample
SAMPLE_PAIRS = ((0, 1), (2, 3), (4, 5))

# ============================================================================
# Fraction remapping (10 measured fractions -> 16 physical slots)
# ============================================================================

GAP = None

# Role of each of the 16 destination slots: source fraction (0-based) or a gap
REMAP_ROLES = (0, GAP, 1, GAP, 2, GAP, 3, GAP, 4, 5, GAP, 6, GAP, 7, 8, 9)

# ============================================================================
# Peak comparison
# ============================================================================

# Pairs classified for every protein, in output order
COMPARED_PAIRS = ((0, 1), (1, 2), (1, 4), (2, 3), (3, 4), (4, 5))

# Pairs compared position-for-position even at 16 fractions ("purple box")
DIRECT_PAIRS = frozenset({frozenset({0, 1}), frozenset({2, 3})})

# Directional adjacent-fraction tolerance ("orange box"): only for the ordered
# pair (4, 5), A peaking at position 5 and B at position 4 counts as coincident
ADJACENT_PAIR = (4, 5)
ADJACENT_POSITIONS = (5, 4)

# Grouper: positions below the limit collapse in twos, the tail shifts down
GROUP_PAIRED_LIMIT = 12
GROUP_TAIL_OFFSET = 7

# ============================================================================
# Type-1 rank pattern
# ============================================================================

# For each fraction count: alternatives of (upper, lower) record indices per
# sample. A sample matches when one index of every group holds rank 9; type 1
# needs any one sample to match.
TYPE1_RANK_PATTERNS = {
    LOW_RESOLUTION: (
        ((6,), (16,)),
        ((25,), (35,)),
        ((45,), (54, 55)),
    ),
    HIGH_RESOLUTION: (
        ((11,), (27,)),
        ((41,), (57,)),
        ((72,), (88, 89)),
    ),
}


def check_fraction_count(n_fractions: int) -> int:
    """Validate a fraction count, returning it unchanged."""
    if n_fractions not in SUPPORTED_FRACTION_COUNTS:
        raise ValueError(
            f"Unsupported fraction count: {n_fractions}. "
            f"Must be one of: {SUPPORTED_FRACTION_COUNTS}"
        )
    return n_fractions


def record_length(n_fractions: int) -> int:
    return N_BLOCKS * check_fraction_count(n_fractions)


def block_index(sample: int, layer: str) -> int:
    """Block index (0-5) of a sample number and layer name."""
    if sample not in SAMPLE_TAGS.values():
        raise ValueError(f"Unknown sample: {sample}")
    if layer not in LAYERS:
        raise ValueError(f"Unknown layer: {layer}")
    return (sample - 1) * len(LAYERS) + LAYERS.index(layer)


def linear_index(
    sample: int,
    layer: str,
    fraction_number: int,
    n_fractions: int = LOW_RESOLUTION,
) -> int:
    """Position of a 1-based fraction number within a whole record.

    Equivalent to sample offset (0, 20, 40) + layer offset (0, 10) +
    fraction - 1 for 10 fractions, scaled by the block width otherwise.
    """
    if not 1 <= fraction_number <= n_fractions:
        raise ValueError(
            f"Fraction number {fraction_number} outside 1..{n_fractions}"
        )
    return block_index(sample, layer) * n_fractions + fraction_number - 1


def block_slice(block: int, n_fractions: int) -> slice:
    """Slice selecting one sample-layer block from a record."""
    if not 0 <= block < N_BLOCKS:
        raise ValueError(f"Block index must be 0-{N_BLOCKS - 1}, got {block}")
    start = block * n_fractions
    return slice(start, start + n_fractions)
