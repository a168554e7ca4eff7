import logging
import math
import time
from contextlib import contextmanager
from typing import Any, Mapping

from constants import (
    DEFAULT_HIGH_LINE,
    HIGH_LINES,
    LOW_LINE,
    PeakLine,
)

logger = logging.getLogger(__name__)


class PipelineTimer:
    """Simple helper to time major sections of the analysis pipeline."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)
        self._start = time.perf_counter()
        self._sections: list[tuple[str, float]] = []

    @contextmanager
    def section(self, name: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self._sections.append((name, duration))
            self.logger.info("%s took %.2f s", name, duration)

    def as_dict(self) -> dict[str, float]:
        return {name: duration for name, duration in self._sections}

    def report(self):
        if not self._sections:
            return
        total = time.perf_counter() - self._start
        lines = [f"Pipeline timing summary (total {total:.2f} s):"]
        lines.extend(f"  - {name}: {duration:.2f} s" for name, duration in self._sections)
        self.logger.info("\n".join(lines))


def _safe_float(value: Any) -> float | None:
    """Return ``value`` coerced to ``float`` when it is finite."""

    try:
        if value is None:
            return None
        coerced = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(coerced):
        return None
    return coerced


def _float_with_default(value: Any, default: float) -> float:
    """Return ``value`` as ``float`` or ``default`` when coercion fails."""

    coerced = _safe_float(value)
    return default if coerced is None else coerced


def _line_from_cfg(entry: Mapping[str, Any] | None, default: PeakLine) -> PeakLine:
    if not entry:
        return default
    return PeakLine(
        _float_with_default(entry.get("energy_keV"), default.energy_keV),
        _float_with_default(entry.get("half_width_keV"), default.half_width_keV),
    )


def resolve_lines(cfg: Mapping[str, Any]) -> tuple[PeakLine, PeakLine]:
    """Return the ``(low, high)`` photopeaks selected by ``cfg['lines']``.

    ``lines.high_line`` picks one of the built-in high-energy lines; explicit
    ``lines.low`` / ``lines.high`` entries override energy and half-width.
    """
    lines_cfg = cfg.get("lines", {})
    key = str(lines_cfg.get("high_line", DEFAULT_HIGH_LINE))
    if key not in HIGH_LINES:
        raise ValueError(f"Unknown high-energy line '{key}' (expected one of {sorted(HIGH_LINES)})")
    low = _line_from_cfg(lines_cfg.get("low"), LOW_LINE)
    high = _line_from_cfg(lines_cfg.get("high"), HIGH_LINES[key])
    return low, high


def _fit_domain(cfg: Mapping[str, Any]) -> tuple[float | None, float | None] | None:
    """Return ``analysis.fit_range`` as a ``(lo, hi)`` tuple or ``None``."""
    fit_range = cfg.get("analysis", {}).get("fit_range")
    if not fit_range:
        return None
    lo, hi = fit_range
    return _safe_float(lo), _safe_float(hi)
