import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import CHOICES, COMPRESSION_METHODS, SELECTION_METHODS, SicomoreConfig, load_config
from .pipeline import run_sicomore_analysis

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def validate_file_path(file_path: str, file_type: str) -> Path:
    """Validate if file exists and has correct extension."""
    path = Path(file_path)
    if not path.is_file():
        logger.error(f"{file_type} file does not exist: {file_path}")
        sys.exit(1)

    valid_extensions = {
        'predictors': ('.csv', '.tsv', '.txt'),
        'response': ('.csv', '.tsv', '.txt'),
        'config': ('.json', '.yml', '.yaml')
    }

    if file_type in valid_extensions and path.suffix.lower() not in valid_extensions[file_type]:
        logger.error(f"Invalid {file_type} file format: {file_path}. Expected extensions: {valid_extensions[file_type]}")
        sys.exit(1)

    return path


def setup_argument_parser() -> argparse.ArgumentParser:
    """Set up the argument parser with organized argument groups."""
    parser = argparse.ArgumentParser(
        prog="sicomore",
        description=(
            "SICOMORE: Selection of Interaction effects in COmpressed Multiple Omics REpresentations.\n"
            "Links a phenotype to groups of correlated predictors found by hierarchical clustering "
            "and sparse regression, and tests interactions between groups of different datasets."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        epilog="Example: sicomore --response pheno.csv --predictors snps.csv metagenome.csv --output-dir results/"
    )

    # Input File Arguments
    input_group = parser.add_argument_group('Required Input Files')
    input_group.add_argument(
        "--response", required=True, type=str,
        help="Path to the phenotype table (CSV/TSV, samples in rows)."
    )
    input_group.add_argument(
        "--predictors", required=True, nargs='+', type=str,
        help="Paths to one or more predictor matrices (CSV/TSV, samples in rows, variables in columns)."
    )

    # Optional Arguments
    optional_group = parser.add_argument_group('Optional Parameters')
    optional_group.add_argument(
        "--response-column", type=str, default=None,
        help="Phenotype column in the response table. Defaults to the first column."
    )
    optional_group.add_argument(
        "--names", nargs='+', type=str, default=None,
        help="Dataset names, one per predictor matrix. Defaults to the file names."
    )
    optional_group.add_argument(
        "--method", type=str, choices=SELECTION_METHODS, default=None,
        help="Group selection method (overrides the configuration file)."
    )
    optional_group.add_argument(
        "--choice", type=str, choices=CHOICES, default=None,
        help="Rule picking the sparsity parameter from the cross-validation curve."
    )
    optional_group.add_argument(
        "--compression", type=str, choices=COMPRESSION_METHODS, default=None,
        help="Function compressing each group into one supervariable."
    )
    optional_group.add_argument(
        "--output-dir", type=str, default="sicomore_results",
        help="Directory to save results and intermediate files."
    )
    optional_group.add_argument(
        "--export-format", type=str, choices=["json", "pickle"], default="json",
        help="Format for saving results."
    )
    optional_group.add_argument(
        "--no-plots", action="store_true",
        help="Do not write interaction heatmaps."
    )

    # Configuration Arguments
    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument(
        "--config", type=str, default=None,
        help="Optional JSON or YAML config file with advanced parameters."
    )
    config_group.add_argument(
        "--verbose", action="store_true",
        help="Log solver details."
    )
    config_group.add_argument(
        "--version", action="version", version=f"SICOMORE {__version__}",
        help="Show program's version number and exit."
    )

    return parser


def build_config(args: argparse.Namespace) -> SicomoreConfig:
    """Load the configuration file and apply command-line overrides."""
    overrides = {}
    for key in ('method', 'choice', 'compression'):
        value = getattr(args, key)
        if value is not None:
            overrides[key] = value
    if args.no_plots:
        overrides['generate_plots'] = False

    config_path = validate_file_path(args.config, 'config') if args.config else None
    try:
        return load_config(str(config_path) if config_path else None, **overrides)
    except (ValueError, OSError) as e:
        logger.error(f"Error loading config file: {e}")
        sys.exit(1)


def main(argv: Optional[List[str]] = None):
    """Main function to orchestrate the SICOMORE pipeline."""
    parser = setup_argument_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        response_path = validate_file_path(args.response, 'response')
        predictor_paths = [validate_file_path(p, 'predictors') for p in args.predictors]

        logger.info("Starting SICOMORE pipeline")
        logger.info(f"Response: {response_path}")
        for path in predictor_paths:
            logger.info(f"Predictors: {path}")
        logger.info(f"Output directory: {args.output_dir}")

        config = build_config(args)

        run_sicomore_analysis(
            response_path=str(response_path),
            predictor_paths=[str(p) for p in predictor_paths],
            response_column=args.response_column,
            names=args.names,
            output_dir=args.output_dir,
            export_format=args.export_format,
            config=config
        )

        logger.info("SICOMORE pipeline completed successfully")

    except KeyboardInterrupt:
        logger.error("Pipeline interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
