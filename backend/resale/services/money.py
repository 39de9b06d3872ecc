# Overview: Integer-yen arithmetic shared by every cost calculation.

"""
Money invariants (authoritative)

- Every currency value is an int in the smallest denomination (yen).
- Floats never cross a service boundary.
- There is exactly one rounding rule: half-up to the nearest integer,
  applied to an exact rational numerator / denominator. Any calculation
  that needs to round goes through round_half_up().
"""

from __future__ import annotations


class InvalidAmount(ValueError):
    """Raised when a negative or non-integer currency value is supplied."""
    pass


def require_amount(value, field: str = "amount") -> int:
    """
    Normalize an optional currency value.

    None means "not entered" and counts as 0. Negative values, floats and
    bools are rejected.
    """
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{field} must be an integer amount, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"{field} cannot be negative (got {value})")
    return value


def round_half_up(numerator: int, denominator: int = 1) -> int:
    """
    Round numerator / denominator half-up to the nearest integer.

    Exact integer arithmetic: (n + d // 2) // d. For an odd denominator
    there is no exact half, so this is plain nearest-integer rounding.
    """
    numerator = require_amount(numerator, "numerator")
    if isinstance(denominator, bool) or not isinstance(denominator, int) or denominator <= 0:
        raise ValueError(f"denominator must be a positive integer, got {denominator!r}")
    return (numerator + (denominator // 2)) // denominator


def apply_bps(amount: int, bps: int) -> int:
    """Return amount * bps / 10000, rounded half-up."""
    return round_half_up(require_amount(amount) * require_amount(bps, "bps"), 10_000)


def apply_percent(amount: int, percent: int) -> int:
    """Return amount * percent / 100, rounded half-up."""
    return round_half_up(require_amount(amount) * require_amount(percent, "percent"), 100)
