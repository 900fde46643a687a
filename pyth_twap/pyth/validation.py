from __future__ import annotations

import math
from dataclasses import dataclass

from .aggregate import TwapResult


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: str
    validated_updates: int


def validate_result(result: TwapResult, rel_tolerance: float = 1e-9) -> ValidationResult:
    """Sanity-check an aggregate before it is reported or stored.

    - All scaled values are finite.
    - low <= open, close, twap <= high (within a tolerance relative to the price range).
    - open_slot <= close_slot.
    """
    if result.count <= 0:
        return ValidationResult(False, "no updates aggregated", 0)

    for col in ("open", "high", "low", "close", "twap"):
        if not math.isfinite(getattr(result, col)):
            return ValidationResult(False, f"non-finite {col}", 0)

    tolerance = rel_tolerance * max(1.0, abs(result.high), abs(result.low))
    if result.low > result.high + tolerance:
        return ValidationResult(False, f"low {result.low} above high {result.high}", 0)

    for col in ("open", "close", "twap"):
        v = getattr(result, col)
        if v < result.low - tolerance or v > result.high + tolerance:
            return ValidationResult(False, f"{col} {v} outside [{result.low}, {result.high}]", 0)

    if result.open_slot > result.close_slot:
        return ValidationResult(
            False, f"open slot {result.open_slot} after close slot {result.close_slot}", 0
        )

    return ValidationResult(True, "validated", result.count)
