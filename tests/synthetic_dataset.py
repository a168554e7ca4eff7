import numpy as np
import pandas as pd
from scipy.stats import norm

from spectrum import Spectrum


LOW_KEV = 121.78
HIGH_KEV = 778.90
LOW_SIGMA = 3.0
HIGH_SIGMA = 5.0


def gaussian_counts(edges, mu, sigma, area):
    """Expected counts per bin of a Gaussian peak with total ``area``."""
    cdf = norm.cdf(np.asarray(edges, dtype=float), loc=mu, scale=sigma)
    return area * np.diff(cdf)


def expected_counts(
    concentration,
    *,
    bin_count=1600,
    energy_min=0.0,
    energy_max=1600.0,
    background=1000.0,
    low_area=12500.0,
    high_area=20000.0,
    mu_low=0.1,
):
    """Return ``(edges, counts)`` of a flat background plus the two lines.

    The low-energy peak decays as ``exp(-mu_low*C)`` with concentration
    ``C``; the high-energy peak does not change.
    """
    edges = np.linspace(energy_min, energy_max, bin_count + 1)
    counts = np.full(bin_count, float(background))
    counts += gaussian_counts(edges, LOW_KEV, LOW_SIGMA, low_area * np.exp(-mu_low * concentration))
    counts += gaussian_counts(edges, HIGH_KEV, HIGH_SIGMA, high_area)
    return edges, counts


def synthetic_spectrum(concentration=0.0, **kwargs):
    """Deterministic spectrum holding the expected counts."""
    edges, counts = expected_counts(concentration, **kwargs)
    return Spectrum.from_counts(counts, edges[0], edges[-1], label=f"{concentration:g}%")


def poisson_spectrum(concentration=0.0, *, rng, **kwargs):
    """Spectrum with Poisson fluctuations around the expected counts."""
    edges, counts = expected_counts(concentration, **kwargs)
    return Spectrum.from_counts(rng.poisson(counts).astype(float), edges[0], edges[-1])


def synthetic_energies(concentration=0.0, **kwargs):
    """Event energies in keV reproducing the rounded expected counts."""
    edges, counts = expected_counts(concentration, **kwargs)
    centers = 0.5 * (edges[:-1] + edges[1:])
    return np.repeat(centers, np.rint(counts).astype(int))


def write_dataset(path, concentration=0.0, *, unit="MeV", ntuple=False, **kwargs):
    """Write a CSV dataset with an ``Energy`` column and return its path.

    With ``ntuple=True`` the file mimics the simulation's CSV ntuple export
    (comment header declaring the columns, no header row).
    """
    energies = synthetic_energies(concentration, **kwargs)
    if unit == "MeV":
        energies = energies / 1000.0
    if ntuple:
        with open(path, "w", encoding="utf-8") as f:
            f.write("#class tools::wcsv::ntuple\n")
            f.write("#title Scoring\n")
            f.write("#separator 44\n")
            f.write("#vector_separator 59\n")
            f.write("#column double Energy\n")
            for e in energies:
                f.write(f"{float(e)!r}\n")
    else:
        pd.DataFrame({"Energy": energies}).to_csv(path, index=False)
    return path


def small_kwargs():
    """Reduced statistics for datasets written to disk."""
    return {"background": 20.0, "low_area": 3000.0, "high_area": 4000.0, "mu_low": 0.1}
