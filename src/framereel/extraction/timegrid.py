"""Sample timestamps for interval-based frame extraction."""

from __future__ import annotations

import math

from framereel.errors import InvalidInputError


def time_grid(duration_s: float, interval_s: float) -> list[float]:
    """Return ``0, interval_s, 2*interval_s, ...`` strictly before *duration_s*.

    Each timestamp is computed as ``k * interval_s`` rather than by repeated
    addition, so long videos do not accumulate floating-point drift.

    Parameters
    ----------
    duration_s:
        Video duration in seconds.  Must be a positive finite number.
    interval_s:
        Spacing between samples in seconds.  Must be a positive finite number.

    Returns
    -------
    list[float]
        Strictly increasing timestamps bounded by ``[0, duration_s)``.

    Raises
    ------
    InvalidInputError
        If either argument is non-positive or non-finite.
    """
    if not math.isfinite(interval_s) or interval_s <= 0:
        raise InvalidInputError(f"interval must be a positive number of seconds, got {interval_s!r}")
    if not math.isfinite(duration_s) or duration_s <= 0:
        raise InvalidInputError(f"duration must be a positive finite number, got {duration_s!r}")

    timestamps: list[float] = []
    k = 0
    while True:
        ts = k * interval_s
        if ts >= duration_s:
            break
        timestamps.append(float(ts))
        k += 1
    return timestamps
