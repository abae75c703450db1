"""
Fixed-point arithmetic for the vault strategy engine.

All amounts handled by the engine are integers in base units with 18
decimals (WAD). Ratios are expressed in basis points (1 bps = 0.01%).
Every division floors, and subtraction that could go negative is
clamped at zero via safe_sub().

Example:
    from vault_engine.utils.fixed_point import bps_mul, to_wad

    bounty = bps_mul(to_wad('100'), 50)   # 0.5 WAD
"""
from decimal import Decimal
from typing import Union

BPS = 10_000
WAD = 10 ** 18


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute floor(a * b / denominator) without intermediate rounding.

    Raises:
        ZeroDivisionError: If denominator is zero
    """
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    return (a * b) // denominator


def bps_mul(amount: int, bps: int) -> int:
    """Return amount scaled by a basis-point fraction."""
    return mul_div(amount, bps, BPS)


def bps_of(part: int, whole: int) -> int:
    """
    Share of part in whole, in basis points.

    Returns 0 when whole is zero.
    """
    if whole == 0:
        return 0
    return mul_div(part, BPS, whole)


def wad_mul(a: int, b: int) -> int:
    """Multiply two WAD-scaled numbers."""
    return mul_div(a, b, WAD)


def wad_div(a: int, b: int) -> int:
    """Divide two WAD-scaled numbers."""
    return mul_div(a, WAD, b)


def safe_sub(a: int, b: int) -> int:
    """Subtract b from a, flooring at zero."""
    return a - b if a > b else 0


def abs_diff(a: int, b: int) -> int:
    """Absolute difference of two integers."""
    return a - b if a >= b else b - a


def sqrt(value: int) -> int:
    """
    Integer floor square root (Newton's method).

    Raises:
        ValueError: If value is negative
    """
    if value < 0:
        raise ValueError(f"sqrt of negative value: {value}")
    if value < 2:
        return value

    x = value
    y = (x + 1) // 2
    while y < x:
        x = y
        y = (x + value // x) // 2
    return x


def to_wad(value: Union[Decimal, str, int, float]) -> int:
    """
    Convert a human-readable amount into WAD base units.

    Floats are routed through str() so 0.1 becomes exactly 0.1 WAD.

    Examples:
        >>> to_wad('1.5')
        1500000000000000000
    """
    if isinstance(value, float):
        value = str(value)
    return int(Decimal(value) * WAD)


def from_wad(amount: int) -> Decimal:
    """Convert WAD base units into a Decimal for display and logging."""
    return Decimal(amount) / Decimal(WAD)


def format_wad(amount: int, places: int = 4) -> str:
    """Format a WAD amount for log lines, e.g. '1,234.5000'."""
    return f"{from_wad(amount):,.{places}f}"


def scale_to_wad(value: int, decimals: int) -> int:
    """Rescale an integer with the given decimals into 18-decimal WAD."""
    if decimals == 18:
        return value
    if decimals < 18:
        return value * 10 ** (18 - decimals)
    return value // 10 ** (decimals - 18)
