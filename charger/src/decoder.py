"""
Pure decoder that converts an encoded demand reading into signed kilowatts.

The meter reports instantaneous demand as a fixed-width unsigned hex field.
Net export (solar surplus) shows up as a value near the top of the unsigned
range, so the sign is recovered from the field's bit width: when the sign bit
is set, the magnitude is ``max_unsigned - raw`` and the result is negated.
The scaled value is ``signed_raw * multiplier / divisor`` with zero
multipliers and divisors replaced by 1.

This is a pure module: no I/O, no clock, no logging of its own beyond
warnings about corrected inputs.

CHANGELOG:
- 2026-10-18: Round written hex width up to the 24/32-bit meter field width
- 2026-10-18: Remove decode_or_default; callers skip cycles without a reading
- 2026-10-18: Derive sign boundary from field bit width instead of leading digit
- 2026-10-18: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import logging

from charger.src.models import TelemetrySample

logger = logging.getLogger(__name__)

DEFAULT_BIT_WIDTH: int = 32
"""Bit width assumed when the field width is unknown."""

FIELD_WIDTHS: tuple[int, ...] = (24, 32)
"""Widths the meter encodes demand in; written digits are rounded up to one."""


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def field_width(digit_count: int) -> int:
    """Smallest meter field width that holds *digit_count* hex digits.

    Leading zeros are sometimes dropped, so ``0x9c4`` is still a 24-bit
    field and its top digit says nothing about the sign.
    """
    written = digit_count * 4
    for width in FIELD_WIDTHS:
        if written <= width:
            return width
    return written


def parse_hex_field(text: str) -> tuple[int, int]:
    """Parse a ``0x``-prefixed hex field into ``(value, bit_width)``.

    The bit width is the meter field width the written digits fit in (see
    :func:`field_width`), so ``0x001738`` and ``0x9c4`` are 24-bit fields
    and ``0xfffffe0c`` a 32-bit one.  Decimal text without a prefix is
    accepted and given :data:`DEFAULT_BIT_WIDTH`.

    Raises:
        ValueError: If *text* is not a non-negative integer literal.
    """
    cleaned = text.strip()
    if cleaned[:2].lower() == "0x":
        digits = cleaned[2:]
        if not digits:
            raise ValueError(f"Empty hex field: {text!r}")
        value = int(digits, 16)
        if value < 0:
            raise ValueError(f"Negative field value: {text!r}")
        return value, field_width(len(digits))

    value = int(cleaned, 10)
    if value < 0:
        raise ValueError(f"Negative field value: {text!r}")
    return value, DEFAULT_BIT_WIDTH


def _to_signed(raw: int, bit_width: int) -> int:
    """Recover a signed quantity from a fixed-width unsigned encoding."""
    max_unsigned = (1 << bit_width) - 1
    raw &= max_unsigned
    if raw >= 1 << (bit_width - 1):
        return -(max_unsigned - raw)
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode(
    raw_demand: int,
    multiplier: int,
    divisor: int,
    bit_width: int = DEFAULT_BIT_WIDTH,
) -> float:
    """Decode an encoded demand value into kilowatts.

    Args:
        raw_demand: Encoded demand as an unsigned integer.
        multiplier: Scaling multiplier; 0 is treated as 1.
        divisor: Scaling divisor; 0 is treated as 1.
        bit_width: Width of the encoded field in bits.

    Returns:
        Signed demand in kW.  Positive means importing from the grid,
        negative means exporting.
    """
    if multiplier == 0:
        logger.debug("Multiplier is 0, using 1")
        multiplier = 1
    if divisor == 0:
        logger.debug("Divisor is 0, using 1")
        divisor = 1

    signed_raw = _to_signed(raw_demand, bit_width)
    return (signed_raw * multiplier) / divisor


def decode_sample(sample: TelemetrySample) -> float:
    """Decode a :class:`TelemetrySample` using its own field width."""
    return decode(
        sample.demand_raw,
        sample.multiplier,
        sample.divisor,
        bit_width=sample.demand_bits,
    )

