from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


LOG_LEVEL = os.environ.get("SEATPLANNER_LOG_LEVEL", "INFO").upper()

# Comma-separated; "*" allows any origin (local dev).
CORS_ORIGINS = [o.strip() for o in os.environ.get("SEATPLANNER_CORS_ORIGINS", "*").split(",") if o.strip()]

# Sitting beside the same guest this many times counts as over-exposure.
ADJACENCY_THRESHOLD = _int_env("SEATPLANNER_ADJACENCY_THRESHOLD", 2)
