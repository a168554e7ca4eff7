# io_utils.py
from pathlib import Path
import shutil
import json
import yaml
import logging
from datetime import datetime, timezone
from dataclasses import dataclass, field, asdict
from collections.abc import Mapping
from typing import Any, Iterator

import jsonschema
import pandas as pd

from constants import FIT_MODELS, NORMALIZATION_MODES, OBSERVABLE_KINDS, HIGH_LINES
from reporting import DEFAULT_DIAGNOSTICS
from utils import to_native


logger = logging.getLogger(__name__)


@dataclass
class Summary(Mapping[str, Any]):
    """Summary information written to ``summary.json``."""

    timestamp: str | None = None
    config_used: str | None = None
    config_sha256: str | None = None
    git_commit: str | None = None
    cli_sha256: str | None = None
    cli_args: list[str] = field(default_factory=list)
    lines: dict = field(default_factory=dict)
    reference: dict = field(default_factory=dict)
    samples: list = field(default_factory=list)
    calibration: dict = field(default_factory=dict)
    inverse_estimates: list = field(default_factory=list)
    observable_comparison: dict = field(default_factory=dict)
    detectability: dict = field(default_factory=dict)
    spectrum_diagnostics: list = field(default_factory=list)
    analysis: dict = field(default_factory=dict)
    diagnostics: dict | None = None

    def __getitem__(self, key: str) -> Any:  # type: ignore[override]
        return getattr(self, key)

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(asdict(self))

    def __len__(self) -> int:  # type: ignore[override]
        return len(asdict(self))

    def get(self, key: str, default=None) -> Any:
        return getattr(self, key, default)

    def __setitem__(self, key: str, value: Any) -> None:
        setattr(self, key, value)


_LINE_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "energy_keV": {"type": "number", "exclusiveMinimum": 0},
        "half_width_keV": {"type": "number", "exclusiveMinimum": 0},
    },
    "required": ["energy_keV", "half_width_keV"],
}

_NULLABLE_NUMBER = {"type": ["number", "null"]}

CONFIG_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "pipeline": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "log_level": {"type": "string"},
                "max_workers": {"type": ["integer", "null"], "minimum": 1},
                "job_id": {"type": ["string", "null"]},
            },
            "required": ["log_level"],
        },
        "dataset": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "energy_unit": {"type": "string", "enum": ["MeV", "keV"]},
                "energy_column": {"type": "string"},
                "file_pattern": {"type": "string"},
            },
            "required": ["energy_unit"],
        },
        "histogram": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "bin_count": {"type": "integer", "minimum": 1},
                "energy_min_keV": {"type": "number"},
                "energy_max_keV": {"type": "number"},
            },
            "required": ["bin_count", "energy_min_keV", "energy_max_keV"],
        },
        "lines": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "high_line": {"type": "string", "enum": sorted(HIGH_LINES)},
                "low": _LINE_SCHEMA,
                "high": _LINE_SCHEMA,
            },
            "required": ["high_line"],
        },
        "analysis": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "observable": {"type": "string", "enum": list(OBSERVABLE_KINDS)},
                "fit_model": {"type": "string", "enum": list(FIT_MODELS)},
                "normalization": {"type": "string", "enum": list(NORMALIZATION_MODES)},
                "fit_range": {
                    "type": ["array", "null"],
                    "items": _NULLABLE_NUMBER,
                    "minItems": 2,
                    "maxItems": 2,
                },
                "fine_sweep_max": {"type": "number", "minimum": 0},
                "ratio_floor": {"type": "number", "minimum": 0},
                "detection_sigma": {"type": "number", "exclusiveMinimum": 0},
                "quantification_sigma": {"type": "number", "exclusiveMinimum": 0},
                "compare_observables": {
                    "type": "array",
                    "items": {"type": "string", "enum": list(OBSERVABLE_KINDS)},
                },
                "diagnose": {"type": "boolean"},
            },
            "required": ["observable", "fit_model", "normalization"],
        },
        "samples": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "file": {"type": "string"},
                    "concentration": {"type": "number", "minimum": 0},
                    "sweep": {"type": "string", "enum": ["fine", "coarse"]},
                    "reference": {"type": "boolean"},
                },
                "required": ["file", "concentration"],
            },
        },
        "plotting": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "plot_save_formats": {"type": "array", "items": {"type": "string"}},
                "color_scheme": {"type": "string"},
            },
            "required": ["plot_save_formats"],
        },
    },
    "required": [
        "pipeline",
        "dataset",
        "histogram",
        "lines",
        "analysis",
    ],
}


class _UniqueKeyLoader(yaml.SafeLoader):
    pass


def _construct_mapping(loader, node, deep=False):
    mapping = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ValueError(f"Duplicate key '{key}' in configuration")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


_UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping
)


def load_config(config_path):
    """Load a configuration mapping or YAML file and validate it."""

    if isinstance(config_path, Mapping):
        cfg = dict(config_path)
    else:
        path = Path(config_path)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        if path.suffix not in {".yaml", ".yml"}:
            raise ValueError("Config file must be YAML")
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.load(f, Loader=_UniqueKeyLoader) or {}

    validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
    missing = []
    for err in validator.iter_errors(cfg):
        if err.validator == "required":
            key = err.message.split("'")[1]
            dotted = ".".join([str(p) for p in err.absolute_path] + [key])
            missing.append(dotted)
    if missing:
        raise ValueError("Missing required keys: " + ", ".join(missing))

    jsonschema.validate(cfg, CONFIG_SCHEMA)

    hist = cfg["histogram"]
    if not hist["energy_max_keV"] > hist["energy_min_keV"]:
        raise ValueError("histogram.energy_max_keV must exceed histogram.energy_min_keV")

    fit_range = cfg["analysis"].get("fit_range")
    if fit_range is not None:
        lo, hi = fit_range
        if lo is not None and hi is not None and lo > hi:
            raise ValueError("analysis.fit_range must be [low, high]")

    refs = [s for s in cfg.get("samples") or [] if s.get("reference")]
    if len(refs) > 1:
        raise ValueError("At most one sample may be flagged as reference")

    cfg.setdefault("plotting", {"plot_save_formats": ["png"]})

    return cfg


def write_summary(
    output_dir: str | Path,
    summary_dict: Mapping[str, Any] | Summary,
    timestamp: str | None = None,
) -> Path:
    """Write ``summary_dict`` to ``summary.json`` and return the results folder."""

    output_path = Path(output_dir)

    if timestamp is None and output_path.is_dir():
        results_folder = output_path
    else:
        if timestamp is None:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        results_folder = output_path / timestamp
        if results_folder.exists():
            raise FileExistsError(f"Results folder already exists: {results_folder}")
        results_folder.mkdir(parents=True, exist_ok=False)

    summary_path = results_folder / "summary.json"

    sanitized = to_native(summary_dict)

    if "diagnostics" not in sanitized or sanitized["diagnostics"] is None:
        sanitized["diagnostics"] = to_native(DEFAULT_DIAGNOSTICS)

    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(sanitized, f, indent=4)

    logger.info(f"Wrote summary JSON to {summary_path}")
    return results_folder


def write_table(output_dir, name, records, columns=None):
    """Write a list of flat records to ``<output_dir>/<name>`` as CSV."""
    df = pd.DataFrame.from_records(list(records), columns=columns)
    dest = Path(output_dir) / name
    df.to_csv(dest, index=False)
    logger.info(f"Wrote {len(df)} rows to {dest}")
    return dest


def copy_config(output_dir, config_path, *, exist_ok=False):
    """
    Copy the used config into the results folder as ``config_used.json``.

    Parameters
    ----------
    output_dir : Path or str
        Directory where ``config_used.json`` should be placed.
        The directory will be created if needed.
    config_path : Path, str or dict
        Configuration file to copy or configuration dictionary.
    exist_ok : bool, optional
        If ``True``, allow ``output_dir`` to already exist.

    Returns
    -------
    Path
        Destination of the copied config.
    """

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=exist_ok)

    dest_path = output_path / "config_used.json"
    if isinstance(config_path, (str, Path)):
        shutil.copyfile(Path(config_path), dest_path)
        logger.info(f"Copied config {config_path} -> {dest_path}")
    else:
        sanitized = to_native(config_path)
        with open(dest_path, "w", encoding="utf-8") as f:
            json.dump(sanitized, f, indent=4)
        logger.info(f"Wrote config to {dest_path}")
    return dest_path
