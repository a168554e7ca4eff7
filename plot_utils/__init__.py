# -----------------------------------------------------
# plot_utils
# -----------------------------------------------------

import numpy as np
import matplotlib as _mpl

_mpl.use("Agg")
import matplotlib.pyplot as plt

from color_schemes import COLOR_SCHEMES, apply_palette
from .paths import get_targets

__all__ = [
    "plot_calibration",
    "plot_zscore",
    "plot_spectra",
    "plot_detectability",
]


def _palette(config):
    plotting = (config or {}).get("plotting", config or {})
    name = str(plotting.get("color_scheme", plotting.get("palette", "default")))
    if name not in COLOR_SCHEMES:
        name = "default"
    return apply_palette(name)


def _errorbar_kwargs(color=None, *, label=None):
    """Return styling options for visible error bars."""

    kwargs = {
        "fmt": "o",
        "capsize": 3,
        "capthick": 1,
        "elinewidth": 1,
        "barsabove": True,
    }
    if color is not None:
        kwargs["color"] = color
        kwargs["markerfacecolor"] = color
        kwargs["markeredgecolor"] = color
    if label is not None:
        kwargs["label"] = label
    return kwargs


def _save(fig, config, out_png):
    targets = get_targets(config, out_png)
    for p in targets.values():
        fig.savefig(p, dpi=150)
    plt.close(fig)
    return targets


def plot_calibration(results, model, kind, out_png="calibration.png", config=None):
    """Plot observable ``kind`` versus concentration with the fitted curve.

    Parameters
    ----------
    results : list of SampleResult
        Per-sample results; skipped and undefined points are left out.
    model : CalibrationModel or None
        Fitted curve drawn over the fit domain when given.
    kind : str
        Observable key in ``SampleResult.observables``.
    """
    palette = _palette(config)
    pts = [
        (r.concentration, r.observables[kind].value, r.observables[kind].uncertainty, r.reference)
        for r in results
        if r.ok and kind in r.observables and r.observables[kind].defined
    ]

    fig, ax = plt.subplots(figsize=(8, 5))
    if pts:
        c, y, s, ref = (np.array(v) for v in zip(*pts))
        ax.errorbar(c[~ref], y[~ref], yerr=s[~ref], **_errorbar_kwargs(palette["low_line"], label="Samples"))
        if ref.any():
            ax.errorbar(c[ref], y[ref], yerr=s[ref], **_errorbar_kwargs(palette["reference"], label="Reference"))
        if model is not None:
            grid = np.linspace(float(c.min()), float(c.max()), 200)
            label = (
                f"{model.model}: theta0={model.params[0]:.4g}, theta1={model.params[1]:.4g}"
            )
            ax.plot(grid, model.predict(grid), color=palette["fit"], label=label)
        ax.legend()
    ax.set_xlabel("REE concentration (%)")
    ax.set_ylabel(kind)
    ax.set_title(f"Calibration of {kind}")
    ax.grid(alpha=0.3)
    plt.tight_layout()
    return _save(fig, config, out_png)


def plot_zscore(
    results,
    out_png="zscore.png",
    config=None,
    *,
    detection_sigma=3.0,
    quantification_sigma=10.0,
):
    """Plot |Z| of every graded sample with the decision thresholds."""
    palette = _palette(config)
    graded = [r for r in results if r.ok and not r.reference and r.z is not None]

    fig, ax = plt.subplots(figsize=(8, 5))
    if graded:
        labels = [r.label for r in graded]
        z = np.abs([r.z for r in graded])
        colors = [palette[r.verdict.label] for r in graded]
        ax.bar(range(len(z)), z, color=colors)
        ax.set_xticks(range(len(z)))
        ax.set_xticklabels(labels, rotation=45, ha="right")
        ax.set_yscale("log")
    ax.axhline(detection_sigma, color=palette["threshold"], ls="--", label=f"{detection_sigma:g} sigma (detection)")
    ax.axhline(quantification_sigma, color=palette["threshold"], ls=":", label=f"{quantification_sigma:g} sigma (quantification)")
    ax.set_xlabel("Sample")
    ax.set_ylabel("|Z|")
    ax.set_title("Significance against the reference")
    ax.legend()
    plt.tight_layout()
    return _save(fig, config, out_png)


def plot_spectra(results, lines, out_png="spectra.png", config=None):
    """Overlay the spectra of all loaded samples and mark the integration windows.

    ``lines`` is an iterable of ``PeakLine`` objects.
    """
    palette = _palette(config)
    loaded = [r for r in results if r.spectrum is not None]

    fig, ax = plt.subplots(figsize=(10, 6))
    cmap = plt.get_cmap("viridis")
    for i, r in enumerate(loaded):
        spec = r.spectrum
        color = palette["reference"] if r.reference else cmap(i / max(len(loaded) - 1, 1))
        ax.step(spec.centers, spec.counts, where="mid", color=color, lw=0.8, label=r.label)
    for line, key in zip(lines, ("low_line", "high_line")):
        lo = line.energy_keV - line.half_width_keV
        hi = line.energy_keV + line.half_width_keV
        ax.axvspan(lo, hi, color=palette[key], alpha=0.15)
    ax.set_yscale("log")
    ax.set_xlabel("Energy (keV)")
    ax.set_ylabel("Counts per bin")
    ax.set_title("Transmitted spectra")
    if loaded:
        ax.legend(fontsize="small", ncol=2)
    plt.tight_layout()
    return _save(fig, config, out_png)


def plot_detectability(results, limits, out_png="detectability.png", config=None):
    """Plot the verdict of each sample against concentration with LOD/LOQ.

    ``limits`` is the summary of :func:`detectability_stage.run_detectability_stage`.
    """
    palette = _palette(config)
    graded = [r for r in results if r.ok and not r.reference and r.verdict is not None]

    fig, ax = plt.subplots(figsize=(8, 4))
    for r in graded:
        ax.scatter(
            r.concentration,
            int(r.verdict),
            color=palette[r.verdict.label],
            marker="s" if r.sweep == "fine" else "o",
            s=60,
        )
    for key, style in (("lod", "--"), ("loq", ":")):
        for source, alpha in (("observed", 1.0), ("theoretical", 0.5)):
            val = (limits or {}).get(f"{key}_{source}")
            if val is not None and np.isfinite(val):
                ax.axvline(
                    val,
                    color=palette["threshold"],
                    ls=style,
                    alpha=alpha,
                    label=f"{key.upper()} {source} = {val:.3g}%",
                )
    if graded and min(r.concentration for r in graded) > 0:
        ax.set_xscale("log")
    ax.set_yticks([0, 1, 2])
    ax.set_yticklabels(["not detectable", "detectable", "quantifiable"])
    ax.set_ylim(-0.5, 2.5)
    ax.set_xlabel("REE concentration (%)")
    ax.set_title("Detectability")
    handles, _ = ax.get_legend_handles_labels()
    if handles:
        ax.legend(fontsize="small")
    plt.tight_layout()
    return _save(fig, config, out_png)
