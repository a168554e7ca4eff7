"""
data_loading.py

Access to the per-sample simulation datasets.

This module handles:
- Reading the energy-deposit column of a dataset (plain CSV or the
  simulation toolkit's CSV ntuple export)
- Converting energies from the declared unit to keV
- Building the list of samples (concentration, sweep, reference flag)
  from the configuration or from the files found in the input directory
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from constants import DEFAULT_ENERGY_COLUMN, DEFAULT_FINE_SWEEP_MAX
from utils import format_concentration

logger = logging.getLogger(__name__)

__all__ = [
    "DatasetError",
    "DataSourceUnavailable",
    "EmptyDataset",
    "EnergyUnit",
    "CsvEnergySource",
    "read_energies",
    "SampleSpec",
    "parse_concentration",
    "discover_samples",
    "samples_from_config",
    "resolve_samples",
]


class DatasetError(RuntimeError):
    """Base class for dataset access failures."""


class DataSourceUnavailable(DatasetError):
    """Raised when a dataset cannot be opened or lacks the energy column."""


class EmptyDataset(DatasetError):
    """Raised when a dataset holds no usable energy records."""


class EnergyUnit(str, Enum):
    MEV = "MeV"
    KEV = "keV"

    @property
    def to_keV(self) -> float:
        return 1000.0 if self is EnergyUnit.MEV else 1.0

    @classmethod
    def parse(cls, value: "EnergyUnit | str") -> "EnergyUnit":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for unit in cls:
            if unit.value.lower() == text:
                return unit
        raise ValueError(f"Unknown energy unit '{value}' (expected MeV or keV)")


_NTUPLE_COLUMN = re.compile(r"^#column\s+\S+\s+(\S+)")


def _ntuple_columns(path: Path) -> Optional[List[str]]:
    """Return column names of a CSV ntuple export, or ``None`` for plain CSV."""
    columns = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if not line.startswith("#"):
                break
            m = _NTUPLE_COLUMN.match(line.strip())
            if m:
                columns.append(m.group(1))
    return columns or None


class CsvEnergySource:
    """
    Dataset source for energy-deposit tables stored as CSV.

    Two layouts are understood:

    * a plain CSV with a header row (``Energy`` or any other column name),
    * the CSV ntuple written by the simulation's analysis manager, where the
      column names are declared in ``#column <type> <name>`` comment lines
      and the data rows carry no header.

    The handle returned by :meth:`open` is the parsed table; :meth:`close`
    releases it.
    """

    def open(self, identifier: str | Path) -> pd.DataFrame:
        path = Path(identifier)
        if not path.is_file():
            raise DataSourceUnavailable(f"Dataset not found: {path}")
        try:
            columns = _ntuple_columns(path)
            if columns is not None:
                df = pd.read_csv(path, comment="#", header=None, names=columns)
            else:
                df = pd.read_csv(path)
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
            raise DataSourceUnavailable(f"Could not read dataset {path}: {e}") from e
        df.attrs["source"] = str(path)
        return df

    def read_values(self, handle: pd.DataFrame, column_name: str) -> np.ndarray:
        if column_name not in handle.columns:
            source = handle.attrs.get("source", "<dataset>")
            raise DataSourceUnavailable(
                f"Column '{column_name}' missing from {source} "
                f"(available: {list(handle.columns)})"
            )
        values = pd.to_numeric(handle[column_name], errors="coerce").to_numpy(dtype=float)
        finite = np.isfinite(values)
        n_bad = int((~finite).sum())
        if n_bad:
            logger.debug(
                "Dropped %d non-numeric values from %s",
                n_bad,
                handle.attrs.get("source", "<dataset>"),
            )
        return values[finite]

    def close(self, handle: pd.DataFrame) -> None:
        handle.attrs.clear()


def read_energies(
    identifier: str | Path,
    *,
    column: str = DEFAULT_ENERGY_COLUMN,
    unit: EnergyUnit | str = EnergyUnit.MEV,
    source: Any = None,
) -> np.ndarray:
    """Return the energy column of ``identifier`` in keV.

    Raises
    ------
    DataSourceUnavailable
        If the dataset cannot be opened or ``column`` is absent.
    EmptyDataset
        If zero records are read.
    """
    unit = EnergyUnit.parse(unit)
    source = source or CsvEnergySource()
    handle = source.open(identifier)
    try:
        if len(handle) == 0:
            raise EmptyDataset(f"No records in {identifier}")
        values = source.read_values(handle, column)
    finally:
        source.close(handle)
    if values.size == 0:
        raise EmptyDataset(f"No usable '{column}' values in {identifier}")
    return values * unit.to_keV


@dataclass(frozen=True)
class SampleSpec:
    """One per-concentration dataset of the sweep."""

    path: Path
    concentration: float
    sweep: str = "fine"
    reference: bool = False

    @property
    def label(self) -> str:
        return format_concentration(self.concentration)


# e.g. Eu152_REE_0p002.csv -> 0.002 mass fraction -> 0.2 %
_FRACTION_NAME = re.compile(r"_REE_(\d+)p(\d+)", re.IGNORECASE)


def parse_concentration(name: str) -> Optional[float]:
    """Return the REE concentration in % encoded in a dataset file name."""
    m = _FRACTION_NAME.search(name)
    if not m:
        return None
    fraction = float(f"{m.group(1)}.{m.group(2)}")
    return round(fraction * 100.0, 10)


def _sweep_for(concentration: float, fine_max: float) -> str:
    return "fine" if concentration <= fine_max else "coarse"


def discover_samples(
    input_dir: str | Path,
    *,
    pattern: str = "*.csv",
    fine_sweep_max: float = DEFAULT_FINE_SWEEP_MAX,
) -> List[SampleSpec]:
    """Build samples from the dataset files found in ``input_dir``.

    Files whose names do not encode a concentration are ignored.
    """
    input_dir = Path(input_dir)
    samples = []
    for path in sorted(input_dir.glob(pattern)):
        conc = parse_concentration(path.stem)
        if conc is None:
            logger.debug("Ignoring %s: no concentration in file name", path.name)
            continue
        samples.append(
            SampleSpec(
                path=path,
                concentration=conc,
                sweep=_sweep_for(conc, fine_sweep_max),
                reference=conc == 0.0,
            )
        )
    return sorted(samples, key=lambda s: s.concentration)


def samples_from_config(
    entries: Iterable[Mapping[str, Any]],
    input_dir: str | Path,
    *,
    fine_sweep_max: float = DEFAULT_FINE_SWEEP_MAX,
) -> List[SampleSpec]:
    """Build samples from the ``samples`` list of the configuration."""
    input_dir = Path(input_dir)
    samples = []
    for entry in entries:
        conc = float(entry["concentration"])
        path = Path(entry["file"])
        if not path.is_absolute():
            path = input_dir / path
        samples.append(
            SampleSpec(
                path=path,
                concentration=conc,
                sweep=entry.get("sweep") or _sweep_for(conc, fine_sweep_max),
                reference=bool(entry.get("reference", False)),
            )
        )
    return samples


def resolve_samples(cfg: Mapping[str, Any], input_dir: str | Path) -> List[SampleSpec]:
    """Return the samples of the run with exactly one reference flagged.

    The reference is the sample marked ``reference: true`` or, failing that,
    the one at 0 % concentration.
    """
    analysis = cfg.get("analysis", {})
    fine_max = float(analysis.get("fine_sweep_max", DEFAULT_FINE_SWEEP_MAX))
    entries = cfg.get("samples")
    if entries:
        samples = samples_from_config(entries, input_dir, fine_sweep_max=fine_max)
    else:
        pattern = cfg.get("dataset", {}).get("file_pattern", "*.csv")
        samples = discover_samples(input_dir, pattern=pattern, fine_sweep_max=fine_max)

    flagged = [s for s in samples if s.reference]
    if len(flagged) > 1:
        raise ValueError(
            "More than one reference sample: "
            + ", ".join(str(s.path.name) for s in flagged)
        )
    if not flagged:
        zero = [s for s in samples if s.concentration == 0.0]
        if zero:
            ref = zero[0]
            samples = [
                SampleSpec(s.path, s.concentration, s.sweep, s is ref) for s in samples
            ]
    return samples
