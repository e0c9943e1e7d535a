"""Ingress normalization for loosely shaped form values.

Form fields reach the API as a bare string, a list of strings, or picker
objects such as ``{"id": "it", "name": "IT"}``. These helpers collapse every
shape into one canonical form once, at the request boundary.
"""

from __future__ import annotations

import math
from typing import Any


def coerce_label(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, dict):
        for key in ("name", "id"):
            label = coerce_label(value.get(key))
            if label:
                return label
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def normalize_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items: list[str] = []
        for item in value:
            label = coerce_label(item)
            if label:
                items.append(label)
        return items
    label = coerce_label(value)
    return [label] if label else []


def normalize_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        joined = ", ".join(normalize_text_list(value))
        return joined or None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return coerce_label(value)


def normalize_optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        stripped = value.strip().replace(",", "")
        if not stripped:
            return None
        try:
            parsed = float(stripped)
        except ValueError:
            return None
        return int(parsed) if math.isfinite(parsed) else None
    return None


def normalize_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False
