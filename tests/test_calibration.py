import math

import numpy as np
import pytest

from calibration import (
    CalibrationFitError,
    InsufficientPoints,
    fit_calibration,
    fit_exponential,
    fit_linear,
)
from observables import Observable


def _line_points(c, a=2.0, b=0.5, sigma=0.1):
    return [(x, a + b * x, sigma) for x in c]


def test_zero_noise_linear_fit_recovers_parameters():
    model = fit_linear(_line_points([0.0, 1.0, 2.0, 3.0, 4.0]))
    assert model.params[0] == pytest.approx(2.0)
    assert model.params[1] == pytest.approx(0.5)
    assert model.chi2 == pytest.approx(0.0, abs=1e-12)
    assert model.ndf == 3
    assert model.n_points == 5
    assert model.errors[1] > 0
    assert model.slope == pytest.approx(0.5)


def test_linear_fit_unscaled_covariance():
    # for equal sigma the slope variance is sigma^2 / sum((c - mean)^2)
    c = np.array([0.0, 1.0, 2.0, 3.0])
    model = fit_linear(_line_points(c, sigma=0.2))
    expected = 0.2 / math.sqrt(np.sum((c - c.mean()) ** 2))
    assert model.errors[1] == pytest.approx(expected)


def test_points_filtered():
    points = _line_points([0.0, 1.0, 2.0]) + [
        (3.0, None, 0.1),
        (4.0, float("nan"), 0.1),
        (5.0, 4.5, 0.0),
        (6.0, 5.0, float("inf")),
    ]
    model = fit_linear(points)
    assert model.n_points == 3


def test_domain_restricts_points():
    points = _line_points([0.0, 1.0, 2.0, 3.0, 10.0])
    model = fit_linear(points, domain=(None, 3.0))
    assert model.n_points == 4
    assert model.fit_domain == (None, 3.0)
    with pytest.raises(InsufficientPoints):
        fit_linear(points, domain=(2.5, None))


def test_insufficient_points_is_fit_error():
    with pytest.raises(CalibrationFitError):
        fit_linear(_line_points([0.0, 1.0]))


def test_accepts_observables():
    obs = [Observable("Q", 2.0 + 0.5 * c, 0.1, concentration=c) for c in (0.0, 1.0, 2.0)]
    obs.append(Observable.undefined("Q", "no counts", concentration=3.0))
    model = fit_linear(obs, observable="Q")
    assert model.n_points == 3
    assert model.observable == "Q"


def test_exponential_fit():
    c = np.array([0.0, 1.0, 2.0, 3.0, 5.0])
    y = 0.625 * np.exp(-0.1 * c)
    points = [(ci, yi, 0.01) for ci, yi in zip(c, y)]
    model = fit_exponential(points)
    assert model.params[0] == pytest.approx(0.625, rel=1e-6)
    assert model.params[1] == pytest.approx(0.1, rel=1e-5)
    assert model.chi2 == pytest.approx(0.0, abs=1e-8)
    assert model.predict(2.0) == pytest.approx(0.625 * math.exp(-0.2), rel=1e-6)
    assert model.slope == pytest.approx(-0.0625, rel=1e-5)


def test_dispatch_rejects_unknown_model():
    with pytest.raises(ValueError):
        fit_calibration(_line_points([0.0, 1.0, 2.0]), "cubic")


def test_linear_inverse():
    model = fit_linear(_line_points([0.0, 1.0, 2.0, 3.0]))
    c, sigma = model.invert(3.0, 0.05)
    assert c == pytest.approx(2.0)
    assert sigma == pytest.approx(0.1)
    assert model.invert(None) == (None, None)


def test_exponential_inverse():
    c = np.array([0.0, 1.0, 2.0, 4.0])
    points = [(ci, 2.0 * math.exp(-0.3 * ci), 0.01) for ci in c]
    model = fit_exponential(points)
    y = 2.0 * math.exp(-0.3 * 1.5)
    c_est, sigma = model.invert(y, 0.02)
    assert c_est == pytest.approx(1.5, rel=1e-5)
    assert sigma == pytest.approx(0.02 / (0.3 * y), rel=1e-4)
    assert model.invert(-1.0, 0.1) == (None, None)


def test_to_dict_is_plain():
    d = fit_linear(_line_points([0.0, 1.0, 2.0])).to_dict()
    assert d["model"] == "linear"
    assert isinstance(d["cov"], list)
    assert d["ndf"] == 1
