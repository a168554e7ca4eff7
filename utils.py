# utils.py

import numpy as np
import math
from dataclasses import is_dataclass, asdict
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

import pandas as pd

__all__ = [
    "to_native",
    "format_concentration",
]


def to_native(obj):
    """
    Recursively convert NumPy scalar types to native Python types
    (int, float) so that JSON serialization works.
    """
    if isinstance(obj, dict):
        return {to_native(k): to_native(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [to_native(x) for x in obj]
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_native(asdict(obj))
    if isinstance(obj, Enum):
        return obj.name.lower()
    if isinstance(obj, Path):
        return str(obj)
    if obj is pd.NA:
        return None
    elif isinstance(obj, (pd.Series, pd.Index)):
        return [to_native(x) for x in obj.tolist()]
    if isinstance(obj, datetime):
        if obj.tzinfo is not None and obj.tzinfo.utcoffset(obj) == timedelta(0):
            return obj.strftime("%Y-%m-%dT%H:%M:%SZ")
        return obj.isoformat()
    if isinstance(obj, np.ndarray):
        # Convert array into list of native types
        return [to_native(x) for x in obj.tolist()]

    if isinstance(obj, np.generic):
        obj = obj.item()

    if isinstance(obj, float):
        if math.isnan(obj) or not math.isfinite(obj):
            return None

    return obj


def format_concentration(value) -> str:
    """Return ``value`` in percent as a compact label, e.g. ``0.05%``."""
    if value is None:
        return "?"
    return f"{float(value):g}%"
