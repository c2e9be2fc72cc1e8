# Entry point for the spreadsheet route enrichment run.
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from route_enricher.config import ConfigError, find_default_config, load_config
from route_enricher.logging_utils import get_logger, set_level
from route_enricher.pipeline import run as run_pipeline

logger = get_logger(__name__)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Fill distance/duration cells for start (S) / destination (D) rows in every "
            "spreadsheet of the drop folder, then write logs and send the run report."
        )
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Path to the YAML or JSON run configuration. Defaults to config.yaml/.yml/.json in CWD.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Extract and resolve pairs but do not write cells, save or archive files.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args(argv)


def run(argv: list[str]) -> int:
    """Complete processing pipeline. Returns the process exit code."""
    args = parse_args(argv)
    if args.verbose:
        set_level(logging.DEBUG)

    config_path = Path(args.config) if args.config else find_default_config()
    if config_path is None:
        logger.error("No configuration file given and none found (config.yaml, config.yml, config.json).")
        return 1

    logger.info(f"Loading configuration from: {config_path}")
    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    ctx = run_pipeline(config, dry_run=args.dry_run)
    if ctx.exit_code:
        logger.warning(f"Run finished with {len(ctx.system_errors)} system error(s).")
    else:
        logger.info("Processing complete!")
    return ctx.exit_code


def cli() -> None:
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    cli()
