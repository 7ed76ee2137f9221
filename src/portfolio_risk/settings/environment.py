"""Environment variable parsing helpers."""

from __future__ import annotations

import math
import os
from collections.abc import Mapping


def parse_env_str(name: str, default: str = "", *, environ: Mapping[str, str] | None = None) -> str:
    source = os.environ if environ is None else environ
    value = source.get(name)
    if value is None:
        return default
    return str(value).strip()


TRUTHY_VALUES = frozenset({"1", "true", "yes", "on", "y"})


def parse_bool(value: object, default: bool = False) -> bool:
    """Interpret flags that arrive as strings, numbers or booleans."""
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        return text in TRUTHY_VALUES if text else default
    return bool(value)


def parse_env_bool(
    name: str,
    default: bool = False,
    *,
    environ: Mapping[str, str] | None = None,
) -> bool:
    raw = parse_env_str(name, "", environ=environ)
    if not raw:
        return default
    return parse_bool(raw, default)


def parse_env_int(
    name: str,
    default: int,
    minimum: int,
    maximum: int,
    *,
    environ: Mapping[str, str] | None = None,
) -> int:
    raw = parse_env_str(name, "", environ=environ)
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        return default
    return max(minimum, min(parsed, maximum))


def parse_env_optional_int(name: str, *, environ: Mapping[str, str] | None = None) -> int | None:
    raw = parse_env_str(name, "", environ=environ)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_env_float(
    name: str,
    default: float,
    minimum: float,
    maximum: float,
    *,
    environ: Mapping[str, str] | None = None,
) -> float:
    raw = parse_env_str(name, "", environ=environ)
    if not raw:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if not math.isfinite(parsed):
        return default
    return max(minimum, min(parsed, maximum))
