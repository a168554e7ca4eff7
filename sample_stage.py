"""
sample_stage.py

Per-sample stage of the transmission pipeline.

The reference (0 %) sample is loaded first and frozen into a
:class:`ReferenceContext`. Every other sample is then loaded, integrated
and turned into observables on a thread pool, each worker reading the
shared reference context without modifying it. A sample that cannot be
loaded becomes a skipped :class:`SampleResult`; the batch continues.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from analysis_helpers import _float_with_default, resolve_lines
from constants import (
    DEFAULT_BIN_COUNT,
    DEFAULT_ENERGY_COLUMN,
    DEFAULT_ENERGY_MAX_KEV,
    DEFAULT_ENERGY_MIN_KEV,
    OBSERVABLE_KINDS,
    RATIO_L_HIGH_FLOOR,
    PeakLine,
)
from data_loading import DatasetError, EnergyUnit, SampleSpec
from observables import Observable, blank_uncertainty, compute_observables
from peaks import PeakMeasurement, integrate_peak, normalization_factor
from spectrum import Spectrum, load_spectrum

logger = logging.getLogger(__name__)

__all__ = [
    "ReferenceUnavailable",
    "AnalysisSettings",
    "ReferenceContext",
    "SampleResult",
    "settings_from_config",
    "load_reference",
    "analyze_sample",
    "run_sample_stage",
]


class ReferenceUnavailable(RuntimeError):
    """Raised when the reference sample cannot anchor the analysis."""


@dataclass(frozen=True)
class AnalysisSettings:
    low_line: PeakLine
    high_line: PeakLine
    bin_count: int = DEFAULT_BIN_COUNT
    energy_min: float = DEFAULT_ENERGY_MIN_KEV
    energy_max: float = DEFAULT_ENERGY_MAX_KEV
    energy_column: str = DEFAULT_ENERGY_COLUMN
    unit: EnergyUnit = EnergyUnit.MEV
    normalized: bool = False
    ratio_floor: float = RATIO_L_HIGH_FLOOR


def settings_from_config(cfg: Mapping[str, Any]) -> AnalysisSettings:
    """Build :class:`AnalysisSettings` from a validated configuration."""
    low, high = resolve_lines(cfg)
    hist = cfg.get("histogram", {})
    dataset = cfg.get("dataset", {})
    analysis = cfg.get("analysis", {})
    return AnalysisSettings(
        low_line=low,
        high_line=high,
        bin_count=int(hist.get("bin_count", DEFAULT_BIN_COUNT)),
        energy_min=_float_with_default(hist.get("energy_min_keV"), DEFAULT_ENERGY_MIN_KEV),
        energy_max=_float_with_default(hist.get("energy_max_keV"), DEFAULT_ENERGY_MAX_KEV),
        energy_column=dataset.get("energy_column", DEFAULT_ENERGY_COLUMN),
        unit=EnergyUnit.parse(dataset["energy_unit"]),
        normalized=analysis.get("normalization", "raw") == "events",
        ratio_floor=_float_with_default(analysis.get("ratio_floor"), RATIO_L_HIGH_FLOOR),
    )


@dataclass(frozen=True)
class ReferenceContext:
    """Measurements of the reference sample shared by every other sample."""

    sample: SampleSpec
    entries: float
    low: PeakMeasurement
    high: PeakMeasurement
    spectrum: Spectrum = field(repr=False)
    observables: Mapping[str, Observable] = field(default_factory=dict, repr=False)

    def observable(self, kind: str) -> Observable:
        return self.observables[kind]

    def blank_uncertainty(self, kind: str) -> Optional[float]:
        """Counting spread of the reference value of ``kind`` (the blank sigma)."""
        return blank_uncertainty(self.low, self.high, kind)

    def to_dict(self) -> dict:
        return {
            "sample": self.sample.label,
            "file": str(self.sample.path),
            "concentration": self.sample.concentration,
            "entries": self.entries,
            "low": self.low.to_dict(),
            "high": self.high.to_dict(),
            "observables": {
                k: {"value": o.value, "uncertainty": o.uncertainty, "reason": o.reason}
                for k, o in self.observables.items()
            },
        }


@dataclass
class SampleResult:
    """Outcome of one sample; filled in by the later stages."""

    label: str
    path: Path
    concentration: float
    sweep: str
    reference: bool = False
    status: str = "ok"
    reason: Optional[str] = None
    entries: Optional[float] = None
    low: Optional[PeakMeasurement] = None
    high: Optional[PeakMeasurement] = None
    observables: Dict[str, Observable] = field(default_factory=dict)
    spectrum: Optional[Spectrum] = field(default=None, repr=False)
    z: Optional[float] = None
    z_normalized: Optional[float] = None
    verdict: Any = None
    events_factor: Optional[float] = None
    estimate: Optional[float] = None
    estimate_error: Optional[float] = None
    bias: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def skipped(cls, sample: SampleSpec, reason: str) -> "SampleResult":
        return cls(
            label=sample.label,
            path=sample.path,
            concentration=sample.concentration,
            sweep=sample.sweep,
            reference=sample.reference,
            status="skipped",
            reason=reason,
        )

    def to_record(self, kinds=OBSERVABLE_KINDS) -> dict:
        """Flatten the result into a single row for the report tables."""
        rec = {
            "sample": self.label,
            "file": Path(self.path).name,
            "concentration": self.concentration,
            "sweep": self.sweep,
            "reference": self.reference,
            "status": self.status,
            "reason": self.reason,
            "entries": self.entries,
        }
        for tag, peak in (("low", self.low), ("high", self.high)):
            peak = peak or PeakMeasurement(0.0, 0.0)
            rec[f"{tag}_raw"] = peak.raw_counts if self.ok else None
            rec[f"{tag}_background"] = peak.background if self.ok else None
            rec[f"{tag}_net"] = peak.net_counts if self.ok else None
            rec[f"{tag}_error"] = peak.error if self.ok else None
            rec[f"{tag}_valid"] = peak.valid if self.ok else None
        rec["normalization"] = self.low.normalization if self.low else None
        for kind in kinds:
            obs = self.observables.get(kind)
            rec[kind] = obs.value if obs else None
            rec[f"err_{kind}"] = obs.uncertainty if obs else None
        rec["z"] = self.z
        rec["z_normalized"] = self.z_normalized
        rec["verdict"] = self.verdict.label if self.verdict is not None else None
        rec["events_factor"] = self.events_factor
        rec["estimate"] = self.estimate
        rec["estimate_error"] = self.estimate_error
        rec["bias"] = self.bias
        return rec


def _measure(spectrum, settings, normalization=1.0):
    low = integrate_peak(
        spectrum,
        settings.low_line.energy_keV,
        settings.low_line.half_width_keV,
        normalization=normalization,
    )
    high = integrate_peak(
        spectrum,
        settings.high_line.energy_keV,
        settings.high_line.half_width_keV,
        normalization=normalization,
    )
    return low, high


def _load(sample, settings, source):
    return load_spectrum(
        sample.path,
        settings.bin_count,
        settings.energy_min,
        settings.energy_max,
        energy_column=settings.energy_column,
        unit=settings.unit,
        source=source,
    )


def load_reference(sample: SampleSpec | None, settings: AnalysisSettings, *, source=None) -> ReferenceContext:
    """Load and integrate the reference sample.

    Raises
    ------
    ReferenceUnavailable
        If there is no reference, it cannot be loaded, or either photopeak
        has non-positive net counts.
    """
    if sample is None:
        raise ReferenceUnavailable("No reference (0 %) sample in the input")
    try:
        spectrum = _load(sample, settings, source)
    except DatasetError as e:
        raise ReferenceUnavailable(f"Reference {sample.path} unavailable: {e}") from e

    low, high = _measure(spectrum, settings)
    for name, peak in (("low", low), ("high", high)):
        if peak.net_counts <= 0:
            raise ReferenceUnavailable(
                f"Reference {sample.path.name} has non-positive net counts "
                f"({peak.net_counts:.1f}) in the {name}-energy peak at {peak.center:g} keV"
            )
        if not peak.valid:
            logger.warning(
                "Reference %s-energy peak at %g keV is not significant (net %.1f +/- %.1f)",
                name,
                peak.center,
                peak.net_counts,
                peak.error,
            )

    # Provisional context so the reference can be compared with itself
    ctx = ReferenceContext(sample, spectrum.entries, low, high, spectrum)
    obs = compute_observables(
        low,
        high,
        ctx,
        concentration=sample.concentration,
        normalized=settings.normalized,
        ratio_floor=settings.ratio_floor,
    )
    logger.info(
        "Reference %s: %d events, N_low=%.1f +/- %.1f, N_high=%.1f +/- %.1f",
        sample.label,
        spectrum.entries,
        low.net_counts,
        low.error,
        high.net_counts,
        high.error,
    )
    return ReferenceContext(sample, spectrum.entries, low, high, spectrum, obs)


def reference_result(reference: ReferenceContext) -> SampleResult:
    """Return the :class:`SampleResult` row of the reference sample itself."""
    s = reference.sample
    return SampleResult(
        label=s.label,
        path=s.path,
        concentration=s.concentration,
        sweep=s.sweep,
        reference=True,
        entries=reference.entries,
        low=reference.low,
        high=reference.high,
        observables=dict(reference.observables),
        spectrum=reference.spectrum,
    )


def analyze_sample(
    sample: SampleSpec,
    settings: AnalysisSettings,
    reference: ReferenceContext,
    *,
    source=None,
) -> SampleResult:
    """Load ``sample`` and compute its observables against ``reference``."""
    try:
        spectrum = _load(sample, settings, source)
    except DatasetError as e:
        logger.warning("Skipping sample %s: %s", sample.label, e)
        return SampleResult.skipped(sample, str(e))

    f = normalization_factor(spectrum.entries, reference.entries)
    low, high = _measure(spectrum, settings, f)
    for peak in (low, high):
        if not peak.valid:
            logger.debug(
                "%s: peak at %g keV not significant (net %.1f +/- %.1f)",
                sample.label,
                peak.center,
                peak.net_counts,
                peak.error,
            )
    obs = compute_observables(
        low,
        high,
        reference,
        concentration=sample.concentration,
        normalized=settings.normalized,
        ratio_floor=settings.ratio_floor,
    )
    return SampleResult(
        label=sample.label,
        path=sample.path,
        concentration=sample.concentration,
        sweep=sample.sweep,
        reference=sample.reference,
        entries=spectrum.entries,
        low=low,
        high=high,
        observables=obs,
        spectrum=spectrum,
    )


def run_sample_stage(
    samples: List[SampleSpec],
    settings: AnalysisSettings,
    *,
    max_workers: int | None = None,
    source=None,
) -> tuple[ReferenceContext, List[SampleResult]]:
    """Analyse every sample and return ``(reference, results)``.

    Results are ordered by concentration and include the reference row.
    :class:`ReferenceUnavailable` propagates to the caller.
    """
    ref_sample = next((s for s in samples if s.reference), None)
    reference = load_reference(ref_sample, settings, source=source)

    others = [s for s in samples if s is not ref_sample]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(analyze_sample, s, settings, reference, source=source)
            for s in others
        ]
        results = [fut.result() for fut in futures]

    results.append(reference_result(reference))
    results.sort(key=lambda r: (r.concentration, not r.reference))
    n_skipped = sum(1 for r in results if not r.ok)
    logger.info(
        "Analysed %d samples (%d skipped)", len(results), n_skipped
    )
    return reference, results
