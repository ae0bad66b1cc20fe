"""
Research utilities (non-stable API).

Only price_impact is retained for post-hoc analysis of a pool's depth. This is NOT part of
the stable, production-facing API and may change without notice.
"""
from __future__ import annotations

from .price_impact import (
    ImpactPoint,
    scan_price_impact,
    impact_frame,
    summarize_price_impact,
)

__all__ = [
    "ImpactPoint",
    "scan_price_impact",
    "impact_frame",
    "summarize_price_impact",
]
