"""Command-line interface for LayerMap.

LayerMap: peak classification and heat maps for fractionated gradients.

Classifies proteins by where their abundance peaks across the upper and lower
layers of three fractionated samples, and renders rank-colored heat maps.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import yaml

from . import __version__
from .classify import CLASS_NAMES, classify_store, select_class
from .data_io import (
    AccessionLookupError,
    MalformedRecordError,
    load_accession_table,
    load_quantification,
)
from .heatmap import (
    DEFAULT_RENDER,
    cleanup_stale_outputs,
    output_name,
    render_layered,
    render_legend,
    render_protein,
)
from .layout import HIGH_RESOLUTION, N_BLOCKS, SUPPORTED_FRACTION_COUNTS, check_fraction_count
from .peaks import build_profile
from .quantification import QuantificationStore
from .report import classification_table, format_grid, format_peaks, write_table

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def load_config(config_path: Path | None) -> dict:
    """Load configuration from YAML file or return defaults."""
    defaults = {
        'data': {
            'fraction_count': 10,
        },
        'classification': {
            'workers': 1,
        },
        'render': {
            **DEFAULT_RENDER,
            'clean': True,
        },
        'output': {
            'format': 'tsv',
        },
    }

    if config_path and config_path.exists():
        with open(config_path) as f:
            user_config = yaml.safe_load(f) or {}
        # Deep merge user config over defaults
        defaults = _deep_merge(defaults, user_config)

    return defaults


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override dict into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_store(input_path: Path, n_fractions: int) -> QuantificationStore:
    """Load quantification data, remapping to 16 fractions if requested."""
    check_fraction_count(n_fractions)
    store = load_quantification(input_path)
    if n_fractions == HIGH_RESOLUTION:
        store = store.remapped()
    return store


def _fraction_count(args: argparse.Namespace, config: dict) -> int:
    if getattr(args, 'fractions', None):
        return args.fractions
    n_fractions = config['data'].get('fraction_count', 10)
    try:
        return check_fraction_count(n_fractions)
    except ValueError as e:
        raise ValueError(f"data.fraction_count in config: {e}") from None


def generate_run_metadata(
    config: dict,
    store: QuantificationStore,
    class_counts: dict,
    input_files: list[str],
) -> dict:
    """Generate run metadata JSON for reproducibility and provenance."""
    return {
        'version': __version__,
        'processing_date': datetime.now(timezone.utc).isoformat(),
        'source_files': input_files,
        'fraction_count': store.n_fractions,
        'n_proteins': len(store),
        'class_counts': class_counts,
        'processing_parameters': {
            'data': config.get('data', {}),
            'classification': config.get('classification', {}),
        },
    }


def cmd_classify(args: argparse.Namespace) -> int:
    """Classify every protein and write the classification table."""
    config = load_config(Path(args.config) if args.config else None)
    store = load_store(Path(args.input), _fraction_count(args, config))

    classifications = classify_store(
        store, workers=config['classification'].get('workers', 1)
    )

    output_path = Path(args.output)
    output_format = config['output'].get('format', 'tsv')
    write_table(classification_table(classifications), output_path, output_format)

    class_counts = {
        name: len(select_class(classifications, name)) for name in CLASS_NAMES
    }
    metadata = generate_run_metadata(
        config=config,
        store=store,
        class_counts=class_counts,
        input_files=[str(args.input)],
    )
    metadata_output = output_path.with_suffix('.metadata.json')
    with open(metadata_output, 'w') as f:
        json.dump(metadata, f, indent=2, default=str)
    logger.info(f"Saved run metadata to {metadata_output}")

    return 0


def _selection(args: argparse.Namespace) -> str | None:
    if args.all:
        return 'all'
    if args.accession:
        return 'accession'
    if args.layer:
        return 'layer'
    for name in CLASS_NAMES:
        if getattr(args, name):
            return name
    return None


def _parse_layer(layer: list[str]) -> tuple[int, list[str]]:
    block_text, accession_text = layer
    try:
        block = int(block_text)
    except ValueError:
        raise ValueError(f"Block index must be an integer, got {block_text!r}") from None
    if not 0 <= block < N_BLOCKS:
        raise ValueError(f"Block index must be 0-{N_BLOCKS - 1}, got {block}")
    accessions = [a.strip() for a in accession_text.split(',') if a.strip()]
    if not accessions:
        raise ValueError("No accessions given to layer")
    return block, accessions


def _prepare_output_dir(output_dir: Path, suffix: str, clean: bool) -> None:
    """Create the output directory, removing stale artifacts when `clean` is set.

    Called only once a selection is known to render something.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    if clean:
        cleanup_stale_outputs(output_dir, suffix)


def cmd_render(args: argparse.Namespace) -> int:
    """Render heat maps for the selected proteins."""
    selection = _selection(args)
    if selection is None:
        logger.info("No selection given - nothing to render")
        return 0

    config = load_config(Path(args.config) if args.config else None)
    render_config = config['render']
    suffix = render_config.get('format', 'svg')

    layer_block = None
    if selection == 'layer':
        try:
            layer_block, layer_accessions = _parse_layer(args.layer)
        except ValueError as e:
            logger.error(str(e))
            return 2

    store = load_store(Path(args.input), _fraction_count(args, config))
    table = load_accession_table(Path(args.accessions)) if args.accessions else None

    output_dir = Path(args.output_dir)
    clean = render_config.get('clean', True) and not args.no_clean

    cell_options = {
        'cell_width': render_config.get('cell_width', DEFAULT_RENDER['cell_width']),
        'cell_height': render_config.get('cell_height', DEFAULT_RENDER['cell_height']),
        'annotate': render_config.get('annotate', DEFAULT_RENDER['annotate']),
    }

    # Single accession: any lookup failure is fatal
    if selection == 'accession':
        accession = args.accession
        if accession not in store:
            print(f"{accession}: not found", file=sys.stderr)
            return 1
        try:
            title = table.describe(accession) if table else accession
        except AccessionLookupError as e:
            print(str(e), file=sys.stderr)
            return 1
        _prepare_output_dir(output_dir, suffix, clean)
        render_protein(
            build_profile(accession, store.get_intensities(accession), store.n_fractions),
            output_dir / output_name(accession, suffix),
            title=title,
            pair_gap=render_config.get('pair_gap', DEFAULT_RENDER['pair_gap']),
            frame_pairs=render_config.get('frame_pairs', DEFAULT_RENDER['frame_pairs']),
            **cell_options,
        )
        logger.info(f"Rendered {accession} to {output_dir}")
        return 0

    if selection == 'layer':
        profiles = []
        titles = {}
        for accession in layer_accessions:
            if accession not in store:
                logger.warning(f"{accession}: not found - skipped")
                continue
            profiles.append(
                build_profile(accession, store.get_intensities(accession), store.n_fractions)
            )
            if table:
                try:
                    titles[accession] = table.describe(accession)
                except AccessionLookupError as e:
                    logger.warning(str(e))
        if not profiles:
            logger.error("None of the layered accessions were found")
            return 1
        _prepare_output_dir(output_dir, suffix, clean)
        output_path = output_dir / f"layered_block{layer_block}.{suffix}"
        render_layered(profiles, layer_block, output_path, titles=titles, **cell_options)
        logger.info(f"Rendered {len(profiles)} layered proteins to {output_path}")
        return 0

    if selection == 'all':
        selected = store.accessions
    else:
        classifications = classify_store(
            store, workers=config['classification'].get('workers', 1)
        )
        selected = select_class(classifications, selection)

    logger.info(f"Rendering {len(selected)} proteins ({selection})...")
    _prepare_output_dir(output_dir, suffix, clean)

    # Batch selections: a failed lookup skips that protein only
    failures = []
    for accession in selected:
        title = accession
        if table:
            try:
                title = table.describe(accession)
            except AccessionLookupError as e:
                logger.error(f"Skipping {e}")
                failures.append(accession)
                continue
        render_protein(
            build_profile(accession, store.get_intensities(accession), store.n_fractions),
            output_dir / output_name(accession, suffix),
            title=title,
            pair_gap=render_config.get('pair_gap', DEFAULT_RENDER['pair_gap']),
            frame_pairs=render_config.get('frame_pairs', DEFAULT_RENDER['frame_pairs']),
            **cell_options,
        )

    logger.info(f"Rendered {len(selected) - len(failures)} proteins to {output_dir}")
    if failures:
        logger.warning(f"{len(failures)} proteins skipped after failed lookups")

    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Print area and rank grids and peak positions for one protein."""
    config = load_config(Path(args.config) if args.config else None)
    store = load_store(Path(args.input), _fraction_count(args, config))

    accession = args.accession
    if accession not in store:
        print(f"{accession}: not found", file=sys.stderr)
        return 1

    show_all = not (args.areas or args.ranks or args.peaks)
    profile = build_profile(accession, store.get_intensities(accession), store.n_fractions)

    if args.areas or show_all:
        sys.stdout.write(format_grid(store.get_areas(accession), store.n_fractions))
    if args.ranks or show_all:
        sys.stdout.write(format_grid(profile.ranks, store.n_fractions))
    if args.peaks or show_all:
        sys.stdout.write(format_peaks(profile.peaks))

    return 0


def cmd_legend(args: argparse.Namespace) -> int:
    """Render the rank color legend."""
    render_legend(Path(args.output), style=args.style)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='layermap',
        description='LayerMap: peak classification and heat maps for fractionated gradients\n\n'
                    'Ranks fraction abundances per sample layer, compares peak positions\n'
                    'between layers and classifies proteins into type 1/2/3.\n\n'
                    'Primary usage:\n'
                    '  layermap classify -i quant.tsv -o classes.tsv\n'
                    '  layermap render -i quant.tsv -a accessions.tsv -o maps/ --type2',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    def add_input_options(sub):
        sub.add_argument('-i', '--input', required=True,
                         help='Quantification TSV (sample, layer, fraction, accession, area)')
        sub.add_argument('-c', '--config', help='Configuration YAML file')
        sub.add_argument('--fractions', type=int, choices=SUPPORTED_FRACTION_COUNTS,
                         help='Fractions per layer (16 remaps the 10 measured fractions)')

    classify_parser = subparsers.add_parser(
        'classify',
        help='Classify every protein and write a table',
    )
    add_input_options(classify_parser)
    classify_parser.add_argument('-o', '--output', required=True, help='Output table path')

    render_parser = subparsers.add_parser(
        'render',
        help='Render heat maps for selected proteins',
        description='Render one heat map per selected protein. Without a selection '
                    'nothing is rendered.',
    )
    add_input_options(render_parser)
    render_parser.add_argument('-a', '--accessions', help='Accession description TSV')
    render_parser.add_argument('-o', '--output-dir', required=True, help='Output directory')
    render_parser.add_argument('--no-clean', action='store_true',
                               help='Keep existing files in the output directory')
    selection = render_parser.add_mutually_exclusive_group()
    selection.add_argument('--all', action='store_true', help='All proteins')
    selection.add_argument('-e', '--accession', help='A single protein')
    selection.add_argument('--type1', action='store_true', help='Type 1 proteins')
    selection.add_argument('--type2', action='store_true', help='Type 2 proteins')
    selection.add_argument('--type3', action='store_true', help='Type 3 proteins')
    selection.add_argument('--layer', nargs=2, metavar=('BLOCK', 'ACCESSIONS'),
                           help='Stack one block (0-5) of comma-separated proteins')

    show_parser = subparsers.add_parser('show', help='Print grids and peaks for one protein')
    add_input_options(show_parser)
    show_parser.add_argument('-e', '--accession', required=True, help='Protein accession')
    show_parser.add_argument('--areas', action='store_true', help='Print raw areas')
    show_parser.add_argument('--ranks', action='store_true', help='Print ranks')
    show_parser.add_argument('--peaks', action='store_true', help='Print peak positions')

    legend_parser = subparsers.add_parser('legend', help='Render the color legend')
    legend_parser.add_argument('-o', '--output', required=True, help='Output image path')
    legend_parser.add_argument('--style', choices=['stepwise', 'continuous'],
                               default='stepwise')

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    try:
        if args.command == 'classify':
            return cmd_classify(args)
        elif args.command == 'render':
            return cmd_render(args)
        elif args.command == 'show':
            return cmd_show(args)
        elif args.command == 'legend':
            return cmd_legend(args)
        else:
            parser.print_help()
            return 1
    except MalformedRecordError as e:
        logger.error(f"Load error: {e}")
        return 2
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 2


if __name__ == '__main__':
    sys.exit(main())
