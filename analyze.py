#!/usr/bin/env python3
"""
analyze.py

Dual-Energy REE Transmission Analysis Pipeline
==============================================

Usage:
    python analyze.py \
        --config     config.yaml \
        --input-dir  simulations/ \
        --output_dir results \
        [--high-line 1408] [--observable R] [--fit-model exponential]

This script performs the following steps:

  1. Load configuration (YAML) and apply command-line overrides.
  2. Resolve the samples (one energy-deposit dataset per REE concentration)
     and the 0 % reference sample.
  3. Load the reference, integrate its low-energy (122 keV) and high-energy
     (779 or 1408 keV) photopeaks with sideband background subtraction.
     -> The run stops with exit status 1 if the reference is unusable.
  4. Load every other sample on a thread pool and compute T, L, R, delta
     and Q against the reference.
  5. Fit the calibration curve of the selected observable (linear or
     exponential) and invert it for every sample.
  6. Compare the candidate observables by calibration precision.
  7. Grade every sample by its Z-score against the reference and derive
     the observed and theoretical LOD/LOQ.
  8. Write summary.json, results.csv, observable_comparison.csv,
     config_used.json and plots under `output_dir/<timestamp>/`.
"""

import sys
import logging

from calibration_stage import (
    DEFAULT_COMPARE_KINDS,
    compare_observables,
    inverse_estimates,
    run_calibration_stage,
)
from analysis_helpers import _fit_domain
from data_loading import resolve_samples
from detectability_stage import run_detectability_stage
from peak_finder import diagnose_spectrum
from pipeline_init import init_pipeline
from sample_stage import ReferenceUnavailable, run_sample_stage, settings_from_config
from summary_stage import build_and_write_summary

logger = logging.getLogger("analyze")


def main(argv=None):
    args, cfg, timer, metadata = init_pipeline(argv)

    # ────────────────────────────────────────────────────────────
    # 1. Samples and reference
    # ────────────────────────────────────────────────────────────
    try:
        samples = resolve_samples(cfg, args.input_dir)
        settings = settings_from_config(cfg)
    except ValueError as e:
        logger.error("Invalid sample configuration: %s", e)
        sys.exit(1)

    if not samples:
        logger.error("No datasets found in %s", args.input_dir)
        sys.exit(1)
    logger.info("Found %d samples in %s", len(samples), args.input_dir)

    with timer.section("samples"):
        try:
            reference, results = run_sample_stage(
                samples,
                settings,
                max_workers=cfg.get("pipeline", {}).get("max_workers"),
            )
        except ReferenceUnavailable as e:
            logger.error("%s", e)
            sys.exit(1)

    diagnostics = []
    if cfg["analysis"].get("diagnose", False):
        with timer.section("diagnose"):
            high_key = str(cfg["lines"].get("high_line"))
            for r in results:
                if r.spectrum is not None:
                    diagnostics.append(diagnose_spectrum(r.spectrum, high_line=high_key))

    # ────────────────────────────────────────────────────────────
    # 2. Calibration
    # ────────────────────────────────────────────────────────────
    kind = cfg["analysis"].get("observable", "Q")
    with timer.section("calibration"):
        model, calibration = run_calibration_stage(results, cfg)
        inverse_rows = inverse_estimates(results, model, kind) if model is not None else []
        comparison = compare_observables(
            results,
            cfg["analysis"].get("compare_observables", DEFAULT_COMPARE_KINDS),
            domain=_fit_domain(cfg),
        )

    # ────────────────────────────────────────────────────────────
    # 3. Detectability
    # ────────────────────────────────────────────────────────────
    with timer.section("detectability"):
        detectability = run_detectability_stage(results, reference, cfg, calibration=model)

    # ────────────────────────────────────────────────────────────
    # 4. Summary, tables and plots
    # ────────────────────────────────────────────────────────────
    with timer.section("summary"):
        try:
            summary, out_dir = build_and_write_summary(
                args=args,
                cfg=cfg,
                reference=reference,
                results=results,
                calibration_model=model,
                calibration=calibration,
                inverse_rows=inverse_rows,
                comparison=comparison,
                detectability=detectability,
                spectrum_diagnostics=diagnostics,
                now_str=metadata["timestamp"],
                cfg_sha256=metadata["cfg_sha256"],
                commit=metadata["commit"],
                cli_sha256=metadata["cli_sha256"],
                cli_args=list(argv) if argv is not None else sys.argv[1:],
                timings=timer.as_dict(),
            )
        except FileExistsError as e:
            logger.error("%s; pass --overwrite to replace it", e)
            sys.exit(1)

    timer.report()
    print(f"Analysis complete. Results written to -> {out_dir}")
    return 0


if __name__ == "__main__":
    main()
