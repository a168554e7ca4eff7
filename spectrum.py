"""
Spectrum construction.

Implements:
- Fixed-range, fixed-bin-count energy histograms (keV)
- Explicit underflow/overflow bookkeeping
- Loading a spectrum from a per-sample dataset
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from constants import (
    DEFAULT_BIN_COUNT,
    DEFAULT_ENERGY_COLUMN,
    DEFAULT_ENERGY_MAX_KEV,
    DEFAULT_ENERGY_MIN_KEV,
)
from data_loading import EnergyUnit, read_energies

logger = logging.getLogger(__name__)

__all__ = ["Spectrum", "build_spectrum", "load_spectrum"]


@dataclass(frozen=True, eq=False)
class Spectrum:
    """Energy-deposit histogram over ``[energy_min, energy_max)`` in keV.

    ``entries`` counts every record filled, including those that landed in
    ``underflow`` (below ``energy_min``) or ``overflow`` (at or above
    ``energy_max``), so ``counts.sum() + underflow + overflow == entries``.
    """

    counts: np.ndarray
    energy_min: float
    energy_max: float
    entries: float
    underflow: float = 0.0
    overflow: float = 0.0
    label: str = ""
    _edges: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.energy_max > self.energy_min:
            raise ValueError("energy_max must be larger than energy_min")
        counts = np.array(self.counts, dtype=float)
        if counts.ndim != 1 or counts.size == 0:
            raise ValueError("counts must be a non-empty 1-D array")
        counts.setflags(write=False)
        object.__setattr__(self, "counts", counts)
        edges = np.linspace(self.energy_min, self.energy_max, counts.size + 1)
        edges.setflags(write=False)
        object.__setattr__(self, "_edges", edges)

    @classmethod
    def from_counts(
        cls,
        counts,
        energy_min: float,
        energy_max: float,
        *,
        underflow: float = 0.0,
        overflow: float = 0.0,
        label: str = "",
    ) -> "Spectrum":
        """Wrap pre-binned counts; ``entries`` is derived from the contents."""
        counts = np.asarray(counts, dtype=float)
        entries = float(counts.sum()) + float(underflow) + float(overflow)
        return cls(
            counts,
            float(energy_min),
            float(energy_max),
            entries,
            float(underflow),
            float(overflow),
            label,
        )

    @property
    def bin_count(self) -> int:
        return int(self.counts.size)

    @property
    def bin_width(self) -> float:
        return (self.energy_max - self.energy_min) / self.bin_count

    @property
    def edges(self) -> np.ndarray:
        return self._edges

    @property
    def centers(self) -> np.ndarray:
        return 0.5 * (self._edges[:-1] + self._edges[1:])

    def find_bin(self, energy: float) -> int:
        """Return the 0-based bin index containing ``energy``.

        Values below the range give ``-1`` and values at or above the upper
        edge give ``bin_count``.
        """
        if energy < self.energy_min:
            return -1
        if energy >= self.energy_max:
            return self.bin_count
        idx = int(math.floor((energy - self.energy_min) / self.bin_width))
        return min(idx, self.bin_count - 1)

    def integral(self, first: int, last: int) -> float:
        """Sum of bins ``first..last`` inclusive, clamped to the histogram."""
        lo = max(int(first), 0)
        hi = min(int(last), self.bin_count - 1)
        if hi < lo:
            return 0.0
        return float(self.counts[lo : hi + 1].sum())


def build_spectrum(
    energies_keV,
    bin_count: int = DEFAULT_BIN_COUNT,
    energy_min: float = DEFAULT_ENERGY_MIN_KEV,
    energy_max: float = DEFAULT_ENERGY_MAX_KEV,
    *,
    label: str = "",
) -> Spectrum:
    """Histogram ``energies_keV`` with ``bin_count`` equal-width bins."""
    if int(bin_count) <= 0:
        raise ValueError("bin_count must be positive")
    e = np.asarray(energies_keV, dtype=float)
    e = e[np.isfinite(e)]
    below = e < energy_min
    above = e >= energy_max
    inside = e[~(below | above)]
    edges = np.linspace(energy_min, energy_max, int(bin_count) + 1)
    counts, _ = np.histogram(inside, bins=edges)
    return Spectrum(
        counts.astype(float),
        float(energy_min),
        float(energy_max),
        float(e.size),
        float(below.sum()),
        float(above.sum()),
        label,
    )


def load_spectrum(
    dataset_source: str | Path,
    bin_count: int = DEFAULT_BIN_COUNT,
    energy_min: float = DEFAULT_ENERGY_MIN_KEV,
    energy_max: float = DEFAULT_ENERGY_MAX_KEV,
    *,
    energy_column: str = DEFAULT_ENERGY_COLUMN,
    unit: EnergyUnit | str = EnergyUnit.MEV,
    source: Any = None,
) -> Spectrum:
    """Read one dataset and return its energy spectrum.

    Energies are converted from the declared ``unit`` to keV before binning.
    ``DataSourceUnavailable`` and ``EmptyDataset`` from
    :func:`data_loading.read_energies` propagate to the caller.
    """
    energies = read_energies(dataset_source, column=energy_column, unit=unit, source=source)
    spec = build_spectrum(
        energies, bin_count, energy_min, energy_max, label=Path(dataset_source).stem
    )
    if spec.underflow or spec.overflow:
        logger.debug(
            "%s: %d underflow, %d overflow of %d entries",
            spec.label,
            spec.underflow,
            spec.overflow,
            spec.entries,
        )
    logger.info("Loaded %d events from %s", spec.entries, dataset_source)
    return spec
