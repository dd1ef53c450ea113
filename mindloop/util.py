from __future__ import annotations

import math
from typing import Any


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def as_float(value: Any, default: float = 0.0) -> float:
    """Coerce a loosely-typed observation value to a finite float."""
    if value is None or isinstance(value, bool):
        return default
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    return f if math.isfinite(f) else default
