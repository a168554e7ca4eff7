import logging
from copy import deepcopy
from typing import Any, Dict, List, Mapping, Sequence


DEFAULT_DIAGNOSTICS: Dict[str, Any] = {
    "calibration_fit_valid": None,
    "n_samples": 0,
    "n_samples_ok": 0,
    "n_samples_skipped": 0,
    "skipped_samples": [],
    "n_entries_loaded": 0,
    "n_entries_out_of_range": 0,
    "selected_analysis_modes": {},
    "warnings": [],
}


class _WarningCapture(logging.Handler):
    """Logging handler that stores warning messages."""

    def __init__(self):
        super().__init__(level=logging.WARNING)
        self.messages: List[str] = []

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - simple
        self.messages.append(record.getMessage())


_warning_handler: _WarningCapture | None = None


def start_warning_capture() -> None:
    """Begin collecting warning messages from the root logger."""
    global _warning_handler
    if _warning_handler is None:
        _warning_handler = _WarningCapture()
        logging.getLogger().addHandler(_warning_handler)


def get_captured_warnings() -> List[str]:
    """Return and clear captured warning messages."""
    global _warning_handler
    if _warning_handler is None:
        return []
    logging.getLogger().removeHandler(_warning_handler)
    msgs = list(_warning_handler.messages)
    _warning_handler = None
    return msgs


def build_diagnostics(
    results: Sequence[Any],
    calibration: Mapping[str, Any] | None,
    cfg: Mapping[str, Any],
) -> Dict[str, Any]:
    """Return a diagnostics dictionary for the run."""

    diagnostics = deepcopy(DEFAULT_DIAGNOSTICS)

    if calibration:
        diagnostics["calibration_fit_valid"] = calibration.get("error") is None

    skipped = [r for r in results if not r.ok]
    diagnostics["n_samples"] = len(results)
    diagnostics["n_samples_ok"] = len(results) - len(skipped)
    diagnostics["n_samples_skipped"] = len(skipped)
    diagnostics["skipped_samples"] = [
        {"sample": r.label, "reason": r.reason} for r in skipped
    ]

    spectra = [r.spectrum for r in results if r.spectrum is not None]
    diagnostics["n_entries_loaded"] = int(sum(s.entries for s in spectra))
    diagnostics["n_entries_out_of_range"] = int(
        sum(s.underflow + s.overflow for s in spectra)
    )

    analysis = cfg.get("analysis", {})
    diagnostics["selected_analysis_modes"] = {
        "observable": analysis.get("observable"),
        "fit_model": analysis.get("fit_model"),
        "normalization": analysis.get("normalization"),
        "high_line": cfg.get("lines", {}).get("high_line"),
        "energy_unit": cfg.get("dataset", {}).get("energy_unit"),
    }

    diagnostics["warnings"] = get_captured_warnings()

    return diagnostics


__all__ = [
    "DEFAULT_DIAGNOSTICS",
    "start_warning_capture",
    "get_captured_warnings",
    "build_diagnostics",
]
