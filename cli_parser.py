"""Command-line argument parser for the REE transmission analysis pipeline."""

import argparse
from pathlib import Path

from constants import FIT_MODELS, HIGH_LINES, NORMALIZATION_MODES, OBSERVABLE_KINDS


def parse_args(argv=None):
    """Parse command line arguments."""
    p = argparse.ArgumentParser(
        description="Dual-energy photopeak analysis of REE transmission simulations",
        epilog=(
            "Command-line options override the matching keys of the YAML "
            "configuration; every override is logged."
        ),
    )
    default_cfg = Path(__file__).resolve().with_name("config.yaml")
    p.add_argument(
        "--config",
        "-c",
        default=str(default_cfg),
        help="Path to YAML configuration file (default: config.yaml)",
    )
    p.add_argument(
        "--input-dir",
        "-i",
        dest="input_dir",
        default=str(Path.cwd()),
        help=(
            "Directory holding one energy-deposit dataset per concentration "
            "(default: current directory)"
        ),
    )
    p.add_argument(
        "--output_dir",
        "-o",
        default="results",
        help=(
            "Directory under which to create a timestamped analysis folder "
            "(override with --job-id; default: results)"
        ),
    )
    p.add_argument(
        "--job-id",
        help="Name of the results folder instead of the UTC timestamp",
    )
    p.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace an existing results folder of the same name",
    )
    p.add_argument(
        "--high-line",
        choices=sorted(HIGH_LINES),
        help=(
            "High-energy photopeak: 779 keV (+/-20 keV window) or 1408 keV "
            "(+/-25 keV window). Providing this option overrides `lines.high_line` in config.yaml"
        ),
    )
    p.add_argument(
        "--observable",
        choices=list(OBSERVABLE_KINDS),
        help="Observable to calibrate and grade. Overrides `analysis.observable`",
    )
    p.add_argument(
        "--fit-model",
        choices=list(FIT_MODELS),
        help="Calibration curve model. Overrides `analysis.fit_model`",
    )
    p.add_argument(
        "--normalization",
        choices=list(NORMALIZATION_MODES),
        help=(
            "Scale net counts to the reference event count ('events') or use "
            "them as measured ('raw'). Overrides `analysis.normalization`"
        ),
    )
    p.add_argument(
        "--max-workers",
        type=int,
        help="Threads used to load samples. Overrides `pipeline.max_workers`",
    )
    p.add_argument(
        "--palette",
        help="Color palette for plots. Overrides `plotting.color_scheme`",
    )
    p.add_argument(
        "--diagnose",
        action="store_true",
        help="Run the Eu-152 peak search on every loaded spectrum",
    )
    p.add_argument(
        "--no-plots",
        action="store_true",
        help="Do not write plots",
    )
    p.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (overrides `pipeline.log_level`)",
    )

    args = p.parse_args(argv)

    if args.max_workers is not None and args.max_workers < 1:
        p.error("--max-workers must be at least 1")

    return args
