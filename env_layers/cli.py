#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Main entry point for the environmental layer extraction pipeline.

This script acquires the requested layers, prunes correlated layers,
samples the retained layers at point locations and exports the table to
a CSV file. It also lists catalog layers and manages the local cache.
"""
import sys
import time
import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

from env_layers import __version__
from env_layers.core.config import (
    DEFAULT_CACHE_DIR, DEFAULT_CORRELATION_THRESHOLD, DEFAULT_OUTPUT_DIR,
    PipelineConfig, parse_layer_spec
)
from env_layers.core.exceptions import ConfigurationError, EnvLayersError
from env_layers.core.logging_config import setup_logging, get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        help="Also write the log to this file"
    )


def _add_acquisition_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to a YAML configuration file; command-line values override it"
    )

    parser.add_argument(
        "--layers",
        nargs="+",
        metavar="ID[@VERSION]",
        help="Layer identifiers in priority order (earlier layers win correlated pairs)"
    )

    parser.add_argument(
        "--bbox",
        nargs=4,
        type=float,
        metavar=("XMIN", "YMIN", "XMAX", "YMAX"),
        help="Study area bounding box in the layers' spatial reference"
    )

    parser.add_argument(
        "--cache-dir",
        help=f"Directory for cached layers (default: {DEFAULT_CACHE_DIR})"
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--source",
        help="Directory holding <layer_id>/<version>.tif or <layer_id>.tif files"
    )
    source.add_argument(
        "--url",
        help="Base URL of an HTTP layer service"
    )

    parser.add_argument(
        "--n-jobs",
        type=int,
        help="Number of parallel layer fetches"
    )

    parser.add_argument(
        "--threshold", "-t",
        type=float,
        help=f"Absolute correlation above which a layer is dropped "
             f"(default: {DEFAULT_CORRELATION_THRESHOLD})"
    )


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Acquire environmental raster layers, prune correlated layers "
                    "and extract values at point locations."
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Environmental Layer Extraction Pipeline v{__version__}"
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')
    subparsers.required = True

    # Extract command
    extract_parser = subparsers.add_parser('extract', help='Extract layer values at points')
    _add_acquisition_arguments(extract_parser)

    extract_parser.add_argument(
        "--points", "-p",
        required=True,
        help="CSV file with id, x/lon and y/lat columns"
    )

    extract_parser.add_argument(
        "--output", "-o",
        help="Path to output CSV file (default: output/extraction.csv)"
    )

    extract_parser.add_argument(
        "--no-select",
        action="store_true",
        help="Keep every layer instead of pruning correlated layers"
    )

    extract_parser.add_argument(
        "--precision",
        type=int,
        help="Round sampled values to this many decimal digits"
    )

    extract_parser.add_argument(
        "--drop-incomplete",
        action="store_true",
        help="Drop points with a missing value in any layer"
    )

    extract_parser.add_argument(
        "--save-metadata", "-m",
        action="store_true",
        help="Save metadata about the stack and extraction run"
    )

    extract_parser.add_argument(
        "--save-correlation",
        help="Write the correlation matrix to this CSV file"
    )
    _add_common_arguments(extract_parser)

    # Correlate command
    correlate_parser = subparsers.add_parser(
        'correlate', help='Compute layer correlations and report retained layers'
    )
    _add_acquisition_arguments(correlate_parser)

    correlate_parser.add_argument(
        "--output", "-o",
        help="Write the correlation matrix to this CSV file"
    )
    _add_common_arguments(correlate_parser)

    # List layers command
    list_parser = subparsers.add_parser('list-layers', help='List layers in a catalog')

    list_parser.add_argument(
        "--catalog",
        required=True,
        help="YAML catalog file"
    )

    list_parser.add_argument(
        "--unit",
        help="Only list layers with this unit"
    )

    list_parser.add_argument(
        "--name-contains",
        help="Only list layers whose id or description contains this text"
    )
    _add_common_arguments(list_parser)

    # Cache command
    cache_parser = subparsers.add_parser('cache', help='Inspect or clean the layer cache')

    cache_parser.add_argument(
        "--cache-dir",
        help=f"Cache directory (default: {DEFAULT_CACHE_DIR})"
    )

    action = cache_parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--list", action="store_true", help="List cached layers")
    action.add_argument("--clear", action="store_true", help="Remove every cached layer")
    action.add_argument("--evict", metavar="ID[@VERSION]", help="Remove one cached layer")
    _add_common_arguments(cache_parser)

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """
    Build the run configuration from a config file and/or arguments.

    Raises
    ------
    ConfigurationError
        If required parameters are missing or invalid.
    """
    overrides: Dict[str, Any] = {
        "layers": args.layers,
        "bbox": args.bbox,
        "threshold": args.threshold,
        "cache_dir": args.cache_dir,
        "n_jobs": args.n_jobs,
    }
    if getattr(args, "precision", None) is not None:
        overrides["precision"] = args.precision
    if getattr(args, "no_select", False):
        overrides["select_layers"] = False
    if getattr(args, "drop_incomplete", False):
        overrides["drop_incomplete"] = True

    if args.config:
        return PipelineConfig.from_yaml(args.config, overrides=overrides)

    params = {k: v for k, v in overrides.items() if v is not None}
    if "layers" not in params or "bbox" not in params:
        raise ConfigurationError("--layers and --bbox are required without --config")
    return PipelineConfig(**params)


def build_provider(args: argparse.Namespace):
    """Create the layer provider selected on the command line."""
    from env_layers.acquisition.providers import HttpLayerProvider, LocalDirectoryProvider

    if args.source:
        return LocalDirectoryProvider(args.source)
    if args.url:
        return HttpLayerProvider(args.url)
    raise ConfigurationError("One of --source or --url is required")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function to run the extraction pipeline.
    """
    try:
        args = parse_arguments(argv)
    except SystemExit as e:
        return int(e.code or 0)

    # Setup logging
    setup_logging(log_level=args.log_level, log_file=args.log_file)

    commands = {
        'extract': extract_command,
        'correlate': correlate_command,
        'list-layers': list_layers_command,
        'cache': cache_command,
    }

    try:
        return commands[args.command](args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    except EnvLayersError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.exception(f"Error during {args.command}: {str(e)}")
        return 1


def extract_command(args: argparse.Namespace) -> int:
    """
    Extract layer values at points and export them to CSV.

    Parameters
    ----------
    args : argparse.Namespace
        Command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from env_layers.core.io import export_table, load_points, save_correlation_matrix, save_metadata
    from env_layers.pipeline import run_pipeline

    config = build_config(args)
    provider = build_provider(args)

    output = Path(args.output) if args.output else DEFAULT_OUTPUT_DIR / "extraction.csv"

    logger.info(f"Starting extraction for layers {config.layer_names}")
    start_time = time.time()

    points = load_points(args.points)
    result = run_pipeline(config, provider, points)

    export_table(result.rows, result.stack.band_names, output)

    if args.save_correlation:
        if result.matrix is None:
            logger.warning("No correlation matrix computed; skipping --save-correlation")
        else:
            save_correlation_matrix(result.matrix, args.save_correlation)

    if args.save_metadata:
        save_metadata(
            result.stack,
            result.requested,
            result.rows,
            output.with_suffix('.json'),
            matrix=result.matrix,
            extra={
                'bbox': list(config.bbox),
                'threshold': config.threshold,
                'select_layers': config.select_layers,
                'precision': config.precision,
                'drop_incomplete': config.drop_incomplete,
            },
        )

    elapsed_time = time.time() - start_time
    logger.info(f"Extraction completed in {elapsed_time:.2f} seconds")
    logger.info(f"Extracted {len(result.stack)} layers for {len(result.rows)} points to {output}")
    return 0


def correlate_command(args: argparse.Namespace) -> int:
    """
    Compute correlations between the requested layers.

    Prints the retained layers, one per line, in priority order.
    """
    from env_layers.acquisition.cache import RasterCache
    from env_layers.core.io import save_correlation_matrix
    from env_layers.pipeline import acquire_layers, build_correlation
    from env_layers.processing.correlation import select_non_redundant

    config = build_config(args)
    provider = build_provider(args)

    cache = RasterCache(config.cache_dir, provider)
    grids = acquire_layers(cache, config)
    matrix = build_correlation(grids)
    retained = select_non_redundant(matrix, config.threshold)

    if args.output:
        save_correlation_matrix(matrix, args.output)

    for a, b, r in matrix.high_pairs(config.threshold):
        logger.info(f"High correlation: {a} ~ {b} (r = {r:.3f})")

    for name in retained:
        print(name)
    return 0


def list_layers_command(args: argparse.Namespace) -> int:
    """List catalog layers matching the filters as tab-separated lines."""
    from env_layers.acquisition.catalog import YamlCatalog

    unit = args.unit
    text = args.name_contains.lower() if args.name_contains else None

    def matches(layer) -> bool:
        if unit is not None and layer.unit != unit:
            return False
        if text is not None and text not in layer.id.lower() \
                and text not in layer.description.lower():
            return False
        return True

    layers = YamlCatalog(args.catalog).list(matches)
    for layer in layers:
        resolution = "" if layer.resolution is None else f"{layer.resolution:g}"
        print("\t".join([layer.reference, layer.unit, resolution, layer.description]))

    logger.info(f"{len(layers)} layers matched")
    return 0


def cache_command(args: argparse.Namespace) -> int:
    """List, clear or evict entries of the local layer cache."""
    from env_layers.acquisition.cache import RasterCache

    cache_dir = Path(args.cache_dir) if args.cache_dir else DEFAULT_CACHE_DIR
    # Listing and eviction never reach the provider
    cache = RasterCache(cache_dir, provider=None)

    if args.list:
        for entry in cache.entries():
            print(f"{entry['layer_id']}@{entry['version']}\t{entry['size']}\t{entry['path']}")
        return 0

    if args.clear:
        removed = cache.clear()
        print(f"Removed {removed} entries")
        return 0

    layer_id, version = parse_layer_spec(args.evict)
    if not cache.evict(layer_id, version):
        logger.warning(f"{layer_id}@{version} is not cached")
        return 1
    print(f"Evicted {layer_id}@{version}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
