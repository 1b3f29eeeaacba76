"""
Low-cost tariff window evaluation.

A single daily window expressed in whole hours.  When ``start_hour`` is
greater than ``end_hour`` the window wraps midnight (23 -> 7 covers 23:00
through 06:59).  A window with equal bounds covers the whole day.

CHANGELOG:
- 2026-10-18: Drop window_active; the controller evaluates the hour directly
- 2026-10-18: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations


def in_low_cost_window(hour: int, start_hour: int, end_hour: int) -> bool:
    """Return True if *hour* (0-23) falls inside the low-cost window."""
    if start_hour >= end_hour:
        return hour < end_hour or hour >= start_hour
    return start_hour <= hour < end_hour

