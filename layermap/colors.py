"""Rank-to-color lookup for heat-map cells."""

from matplotlib.colors import LinearSegmentedColormap

from .peaks import MISSING_RANK, TOP_RANK

# Warm (top rank) to cool (rank 0); a lookup, never interpolated
RANK_COLORS = {
    9: '#FF0000',
    8: '#FF4500',
    7: '#FF8C00',
    6: '#FFA500',
    5: '#FFD700',
    4: '#FFFF00',
    3: '#ADFF2F',
    2: '#7FFF00',
    1: '#32CD32',
    0: '#008000',
}
MISSING_COLOR = '#C0C0C0'


def color_for_rank(rank: int) -> str:
    """Hex color of a rank; gray for -1 (missing or outside the top ten)."""
    if rank == MISSING_RANK:
        return MISSING_COLOR
    try:
        return RANK_COLORS[int(rank)]
    except KeyError:
        raise ValueError(f"Rank must be -1 or 0-{TOP_RANK}, got {rank}") from None


def rank_colormap() -> LinearSegmentedColormap:
    """Continuous colormap through the rank colors, rank 0 at the low end."""
    return LinearSegmentedColormap.from_list(
        'layermap_ranks',
        [RANK_COLORS[rank] for rank in range(TOP_RANK + 1)],
    )
