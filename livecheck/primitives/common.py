"""
livecheck — Common Primitives

Shared base model and clock helpers used across the verification engine.
"""

from __future__ import annotations

import hashlib
import time

from pydantic import BaseModel


def monotonic_now() -> float:
    """Monotonic clock reading in seconds. Used for record timestamps."""
    return time.monotonic()


def short_digest(value: str) -> str:
    """Stable 16-char hex digest, safe for file names."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


# ─── Base Models ──────────────────────────────────────────────────


class LiveCheckModel(BaseModel):
    """Base model for all livecheck records."""

    model_config = {"populate_by_name": True, "from_attributes": True}
