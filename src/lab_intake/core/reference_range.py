# ============================================================================
# src/lab_intake/core/reference_range.py
# ============================================================================
"""
Reference range evaluation.

A catalogued range is authoritative: when both bounds exist the value is
judged against them and the extraction source's own flag is ignored. Without
a complete range the source's flag is trusted as-is.
"""

from typing import Optional


def is_abnormal(
    value: float,
    min_value: Optional[float],
    max_value: Optional[float],
    asserted_abnormal: bool = False
) -> bool:
    """
    Decide whether a test value is abnormal.

    Args:
        value: Measured value
        min_value: Lower reference bound (None if not catalogued)
        max_value: Upper reference bound (None if not catalogued)
        asserted_abnormal: Flag reported by the extraction source

    Returns:
        True if abnormal
    """
    if min_value is None or max_value is None:
        return asserted_abnormal

    # NaN compares False both ways, so it is never inside the range
    return not (min_value <= value <= max_value)


def format_reference_range(
    min_value: Optional[float],
    max_value: Optional[float]
) -> Optional[str]:
    """Render a range as "min - max", or None when incomplete."""
    if min_value is None or max_value is None:
        return None
    return f"{min_value:g} - {max_value:g}"
