import numpy as np
import pytest

from constants import (
    EU152_LINES_KEV,
    EXP_OVERFLOW_DOUBLE,
    HIGH_LINES,
    LOW_LINE,
    safe_exp,
)


def test_safe_exp_clipping():
    values = np.array([-2 * EXP_OVERFLOW_DOUBLE, 0.0, 2 * EXP_OVERFLOW_DOUBLE])
    out = safe_exp(values)
    assert np.all(np.isfinite(out))
    assert out[0] == pytest.approx(np.exp(-EXP_OVERFLOW_DOUBLE))
    assert out[1] == 1.0
    assert out[-1] == pytest.approx(np.exp(EXP_OVERFLOW_DOUBLE))


def test_line_windows():
    assert LOW_LINE.energy_keV == EU152_LINES_KEV["122"]
    assert LOW_LINE.half_width_keV == 12.0
    assert HIGH_LINES["779"].half_width_keV == 20.0
    assert HIGH_LINES["1408"].half_width_keV == 25.0
    assert HIGH_LINES["1408"].energy_keV == pytest.approx(1408.01)
