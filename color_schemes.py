# Color palettes for plotting
# Each scheme maps element names to matplotlib color names.

import matplotlib.pyplot as plt
from matplotlib import cycler

COLOR_SCHEMES = {
    "default": {
        "low_line": "tab:blue",
        "high_line": "tab:red",
        "reference": "black",
        "fit": "tab:orange",
        "hist": "gray",
        "not_detectable": "tab:gray",
        "detectable": "tab:olive",
        "quantifiable": "tab:green",
        "threshold": "tab:red",
    },
    "colorblind": {
        "low_line": "#0072B2",  # blue
        "high_line": "#D55E00",  # orange-red
        "reference": "black",
        "fit": "#E69F00",
        "hist": "gray",
        "not_detectable": "#999999",
        "detectable": "#56B4E9",
        "quantifiable": "#009E73",  # green
        "threshold": "#D55E00",
    },
    "grayscale": {
        "low_line": "black",
        "high_line": "dimgray",
        "reference": "black",
        "fit": "gray",
        "hist": "lightgray",
        "not_detectable": "lightgray",
        "detectable": "gray",
        "quantifiable": "black",
        "threshold": "dimgray",
    },
}


def apply_palette(name: str = "default") -> dict:
    """Apply the color palette ``name`` to Matplotlib.

    This sets :data:`matplotlib.pyplot.rcParams['axes.prop_cycle']` so that
    subsequent plots use the palette's colors in order.

    Parameters
    ----------
    name : str, optional
        Name of the palette in :data:`COLOR_SCHEMES`.  Defaults to
        ``"default"``.

    Returns
    -------
    dict
        The palette dictionary that was applied.
    """

    palette = COLOR_SCHEMES.get(str(name), COLOR_SCHEMES["default"])
    plt.rcParams["axes.prop_cycle"] = cycler("color", list(palette.values()))
    return palette


__all__ = ["COLOR_SCHEMES", "apply_palette"]
