"""
pipeline_init.py

Pipeline initialization and configuration setup for analyze.py.

This module handles:
- Git commit and CLI hashing
- CLI argument parsing and path conversion
- Configuration loading and CLI overrides
- Logging setup
"""

import sys
import logging
import hashlib
import json
import subprocess
from pathlib import Path
from datetime import datetime, timezone

import jsonschema
import yaml

from cli_parser import parse_args
from io_utils import load_config
from utils import to_native
from analysis_helpers import PipelineTimer
from reporting import start_warning_capture


def get_git_commit():
    """Get the current git commit hash, or 'unknown' if not in a git repo."""
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            encoding="utf-8",
            stderr=subprocess.DEVNULL,
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def compute_cli_hash(argv=None):
    """Compute SHA256 hash of the CLI arguments."""
    cli_args = [sys.argv[0]] + (list(argv) if argv is not None else sys.argv[1:])
    return hashlib.sha256(" ".join(cli_args).encode("utf-8")).hexdigest()


def convert_args_to_paths(args):
    """Convert CLI argument paths to Path objects."""
    args.config = Path(args.config)
    args.input_dir = Path(args.input_dir)
    args.output_dir = Path(args.output_dir)
    return args


def apply_config_overrides(cfg, args):
    """Apply all CLI argument overrides to the configuration."""

    def _log_override(section, key, new_val):
        prev = cfg.get(section, {}).get(key)
        if prev is not None and prev != new_val:
            logging.info(
                f"Overriding {section}.{key}={prev!r} with {new_val!r} from CLI"
            )

    def _set(section, key, new_val):
        if new_val is None:
            return
        _log_override(section, key, new_val)
        cfg.setdefault(section, {})[key] = new_val

    if args.high_line is not None:
        lines = cfg.setdefault("lines", {})
        if "high" in lines and lines.get("high_line") != args.high_line:
            # explicit window was written for the previous line
            logging.info("Dropping lines.high in favour of --high-line %s", args.high_line)
            lines.pop("high")
    _set("lines", "high_line", args.high_line)
    _set("analysis", "observable", args.observable)
    _set("analysis", "fit_model", args.fit_model)
    _set("analysis", "normalization", args.normalization)
    _set("pipeline", "max_workers", args.max_workers)
    _set("pipeline", "job_id", args.job_id)
    _set("plotting", "color_scheme", args.palette)

    if args.diagnose:
        _set("analysis", "diagnose", True)
    if args.no_plots:
        _set("plotting", "enabled", False)
    if args.debug:
        _set("pipeline", "log_level", "DEBUG")

    return cfg


def setup_logging(cfg):
    """Configure logging based on config settings."""
    log_level = cfg.get("pipeline", {}).get("log_level", "INFO")
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level, format="%(levelname)s:%(name)s:%(message)s"
    )
    logging.getLogger().setLevel(numeric_level)
    start_warning_capture()


def init_pipeline(argv=None):
    """
    Initialize the pipeline with all necessary setup.

    Returns:
        tuple: (args, cfg, timer, metadata_dict)
            - args: Parsed CLI arguments
            - cfg: Configuration dictionary with overrides applied
            - timer: PipelineTimer instance
            - metadata_dict: Dictionary with hashes and metadata
    """
    cli_sha256 = compute_cli_hash(argv)
    commit = get_git_commit()

    args = parse_args(argv)
    timer = PipelineTimer(logging.getLogger("analyze.timer"))

    args = convert_args_to_paths(args)

    with timer.section("load_config"):
        try:
            cfg = load_config(args.config)
        except OSError as e:
            logging.error("Could not load config '%s': %s", args.config, e)
            sys.exit(1)
        except (ValueError, yaml.YAMLError, jsonschema.exceptions.ValidationError) as e:
            logging.error("Invalid config '%s': %s", args.config, e)
            sys.exit(1)

    cfg = apply_config_overrides(cfg, args)

    now_str = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")

    setup_logging(cfg)

    cfg_sha256 = hashlib.sha256(
        json.dumps(to_native(cfg), sort_keys=True).encode("utf-8")
    ).hexdigest()

    metadata = {
        "cli_sha256": cli_sha256,
        "commit": commit,
        "cfg_sha256": cfg_sha256,
        "timestamp": now_str,
    }

    return args, cfg, timer, metadata
