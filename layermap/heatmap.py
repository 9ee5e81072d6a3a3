"""
Heat-map rendering for classified proteins.

Each protein is drawn as six rows (one per sample-layer block) of colored
fraction cells, grouped into the three sample pairs. A pair whose peaks
coincide is framed, with the frame color naming the rule that matched.

Figures are built with matplotlib's object API (no pyplot state), so rendering
is safe to call from worker processes.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

import numpy as np
from matplotlib.cm import ScalarMappable
from matplotlib.colors import Normalize
from matplotlib.figure import Figure
from matplotlib.patches import Rectangle

from .classify import Comparison, adjacent_match, compare_peaks, comparison_rule
from .colors import MISSING_COLOR, RANK_COLORS, color_for_rank, rank_colormap
from .layout import BLOCK_LABELS, N_BLOCKS, SAMPLE_PAIRS
from .peaks import MISSING_RANK, TOP_RANK, ProteinProfile

logger = logging.getLogger(__name__)

FRAME_COLORS = {
    'direct': '#800080',
    'grouped': '#0000FF',
    'adjacent': '#FFA500',
}

DEFAULT_RENDER = {
    'cell_width': 0.35,
    'cell_height': 0.35,
    'pair_gap': 0.4,
    'frame_pairs': True,
    'annotate': False,
    'format': 'svg',
}


def output_name(accession: str, suffix: str) -> str:
    """File name for an accession, with path-unsafe characters replaced."""
    return f"{re.sub(r'[^A-Za-z0-9_.-]', '_', accession)}.{suffix}"


def cleanup_stale_outputs(output_dir: Path, suffix: str) -> int:
    """Remove artifacts of a previous run from the output directory."""
    output_dir = Path(output_dir)
    if not output_dir.exists():
        return 0
    removed = 0
    for path in output_dir.glob(f"*.{suffix}"):
        if path.is_file():
            path.unlink()
            removed += 1
    if removed:
        logger.info(f"Removed {removed} stale .{suffix} files from {output_dir}")
    return removed


def frame_rule(profile: ProteinProfile, block_a: int, block_b: int) -> Optional[str]:
    """Rule that matched a pair, or None if its peaks do not coincide."""
    if compare_peaks(profile, block_a, block_b) != Comparison.EQUAL:
        return None
    if adjacent_match(profile, block_a, block_b) and set(
        profile.peaks[block_a]
    ).isdisjoint(profile.peaks[block_b]):
        return 'adjacent'
    return comparison_rule(profile.n_fractions, block_a, block_b)


def _row_offsets(pair_gap: float) -> list[float]:
    # Top of each block's row in cell units, with a gap between sample pairs
    return [block + (block // 2) * pair_gap for block in range(N_BLOCKS)]


def _draw_cells(ax, y: float, ranks, intensities=None, annotate: bool = False) -> None:
    for position, rank in enumerate(ranks):
        ax.add_patch(Rectangle(
            (position, y), 1, 1,
            facecolor=color_for_rank(rank),
            edgecolor='white',
            linewidth=0.5,
        ))
        if annotate and intensities is not None and not np.isnan(intensities[position]):
            ax.text(
                position + 0.5, y + 0.5, f"{intensities[position]:.1f}",
                ha='center', va='center', fontsize=5,
            )


def _finish_axes(ax, width: float, height: float) -> None:
    ax.set_xlim(-0.1, width + 0.1)
    ax.set_ylim(height + 0.1, -0.1)
    ax.set_aspect('equal')
    ax.axis('off')


def render_protein(
    profile: ProteinProfile,
    output_path: Path,
    title: Optional[str] = None,
    cell_width: float = DEFAULT_RENDER['cell_width'],
    cell_height: float = DEFAULT_RENDER['cell_height'],
    pair_gap: float = DEFAULT_RENDER['pair_gap'],
    frame_pairs: bool = DEFAULT_RENDER['frame_pairs'],
    annotate: bool = DEFAULT_RENDER['annotate'],
) -> Path:
    """
    Draw one protein's heat map.

    Args:
        profile: Protein working state (ranks, peaks, intensities)
        output_path: Destination; the suffix selects the file format
        title: Figure title, defaults to the accession
        cell_width: Cell width in inches
        cell_height: Cell height in inches
        pair_gap: Gap between sample pairs, in cell heights
        frame_pairs: Frame sample pairs whose peaks coincide
        annotate: Print the log intensity inside each cell

    Returns:
        Path written
    """
    output_path = Path(output_path)
    n = profile.n_fractions
    offsets = _row_offsets(pair_gap)
    height = offsets[-1] + 1

    fig = Figure(figsize=(cell_width * (n + 4), cell_height * (height + 2)))
    ax = fig.add_subplot(111)

    for block in range(N_BLOCKS):
        y = offsets[block]
        _draw_cells(ax, y, profile.block_ranks(block), profile.block_intensities(block), annotate)
        ax.text(-0.3, y + 0.5, BLOCK_LABELS[block], ha='right', va='center', fontsize=7)

    if frame_pairs:
        for block_a, block_b in SAMPLE_PAIRS:
            rule = frame_rule(profile, block_a, block_b)
            if rule is None:
                continue
            ax.add_patch(Rectangle(
                (0, offsets[block_a]), n, 2,
                fill=False,
                edgecolor=FRAME_COLORS[rule],
                linewidth=2,
            ))

    _finish_axes(ax, n, height)
    ax.set_title(title or profile.accession, fontsize=8)
    fig.savefig(output_path, bbox_inches='tight')
    logger.debug(f"Rendered {profile.accession} -> {output_path}")
    return output_path


def render_layered(
    profiles: list[ProteinProfile],
    block: int,
    output_path: Path,
    titles: Optional[dict] = None,
    cell_width: float = DEFAULT_RENDER['cell_width'],
    cell_height: float = DEFAULT_RENDER['cell_height'],
    annotate: bool = DEFAULT_RENDER['annotate'],
) -> Path:
    """
    Draw one block of several proteins stacked for side-by-side comparison.

    Args:
        profiles: Proteins to stack, top to bottom
        block: Sample-layer block index (0-5) shown for every protein
        output_path: Destination; the suffix selects the file format
        titles: Optional accession -> row label mapping

    Returns:
        Path written
    """
    if not profiles:
        raise ValueError("No proteins to layer")
    if not 0 <= block < N_BLOCKS:
        raise ValueError(f"Block index must be 0-{N_BLOCKS - 1}, got {block}")

    output_path = Path(output_path)
    titles = titles or {}
    n = profiles[0].n_fractions

    fig = Figure(figsize=(cell_width * (n + 8), cell_height * (len(profiles) + 2)))
    ax = fig.add_subplot(111)

    for row, profile in enumerate(profiles):
        _draw_cells(ax, row, profile.block_ranks(block), profile.block_intensities(block), annotate)
        label = titles.get(profile.accession, profile.accession)
        ax.text(-0.3, row + 0.5, label, ha='right', va='center', fontsize=7)

    _finish_axes(ax, n, len(profiles))
    ax.set_title(BLOCK_LABELS[block], fontsize=8)
    fig.savefig(output_path, bbox_inches='tight')
    logger.debug(f"Rendered {len(profiles)} layered proteins -> {output_path}")
    return output_path


def render_legend(output_path: Path, style: str = 'stepwise') -> Path:
    """
    Draw the rank color legend.

    Args:
        output_path: Destination; the suffix selects the file format
        style: 'stepwise' (ten rank buckets plus missing) or 'continuous'

    Returns:
        Path written
    """
    output_path = Path(output_path)

    if style == 'stepwise':
        fig = Figure(figsize=(5, 1))
        ax = fig.add_subplot(111)
        ranks = list(range(TOP_RANK, -1, -1)) + [MISSING_RANK]
        for i, rank in enumerate(ranks):
            ax.add_patch(Rectangle(
                (i, 0), 1, 1,
                facecolor=RANK_COLORS.get(rank, MISSING_COLOR),
                edgecolor='white',
            ))
            label = 'n/a' if rank == MISSING_RANK else str(rank)
            ax.text(i + 0.5, 1.3, label, ha='center', va='center', fontsize=7)
        _finish_axes(ax, len(ranks), 1.6)
    elif style == 'continuous':
        fig = Figure(figsize=(5, 1))
        ax = fig.add_subplot(111)
        mappable = ScalarMappable(norm=Normalize(vmin=0, vmax=TOP_RANK), cmap=rank_colormap())
        fig.colorbar(mappable, cax=ax, orientation='horizontal', label='rank')
    else:
        raise ValueError(f"Unknown legend style: {style}")

    fig.savefig(output_path, bbox_inches='tight')
    logger.info(f"Saved {style} legend to {output_path}")
    return output_path
