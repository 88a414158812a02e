"""Animation helpers handed to draw callbacks as ``ctx.utils``.

Provides math helpers, easing functions and a frame-based ``interpolate()``.
Everything here is a pure function of its arguments, so draw callbacks that
use it stay deterministic across preview and offline workers.

Usage:
    def title(ctx):
        y = ctx.utils.interpolate(ctx.local_frame, [0, 15], [40, 0],
                                  easing=Easing.ease_out_cubic)
        alpha = ctx.utils.clamp(ctx.local_progress * 4, 0, 1)
"""

import math
from enum import Enum
from typing import Callable

from framecast.utils.seeded_random import SeededSequence


# =============================================================================
# Math Helpers
# =============================================================================


def lerp(start: float, end: float, t: float) -> float:
    """Linear blend between start and end."""
    return start * (1 - t) + end * t


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def remap(value: float, low1: float, high1: float, low2: float, high2: float) -> float:
    """Map value from [low1, high1] onto [low2, high2] (no clamping)."""
    if high1 == low1:
        return low2
    return low2 + (high2 - low2) * (value - low1) / (high1 - low1)


def to_rad(degrees: float) -> float:
    return degrees * (math.pi / 180)


# =============================================================================
# Easing Functions (t in 0-1)
# =============================================================================


def linear(t: float) -> float:
    """Linear easing (no easing)."""
    return t


def ease_in_quad(t: float) -> float:
    return t * t


def ease_out_quad(t: float) -> float:
    return t * (2 - t)


def ease_in_out_quad(t: float) -> float:
    if t < 0.5:
        return 2 * t * t
    return -1 + (4 - 2 * t) * t


def ease_in_cubic(t: float) -> float:
    return t * t * t


def ease_out_cubic(t: float) -> float:
    t -= 1
    return t * t * t + 1


def ease_in_out_cubic(t: float) -> float:
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


def ease_in_sine(t: float) -> float:
    return 1 - math.cos((t * math.pi) / 2)


def ease_out_sine(t: float) -> float:
    return math.sin((t * math.pi) / 2)


def ease_in_out_sine(t: float) -> float:
    return -(math.cos(math.pi * t) - 1) / 2


def ease_out_expo(t: float) -> float:
    return 1 if t == 1 else 1 - 2 ** (-10 * t)


def ease_in_elastic(t: float) -> float:
    if t == 0 or t == 1:
        return t
    return -(2 ** (10 * (t - 1))) * math.sin((t - 1 - 0.3 / 4) * (2 * math.pi) / 0.3)


def ease_out_elastic(t: float) -> float:
    if t == 0 or t == 1:
        return t
    return 2 ** (-10 * t) * math.sin((t - 0.3 / 4) * (2 * math.pi) / 0.3) + 1


def ease_out_bounce(t: float) -> float:
    n1 = 7.5625
    d1 = 2.75
    if t < 1 / d1:
        return n1 * t * t
    if t < 2 / d1:
        t -= 1.5 / d1
        return n1 * t * t + 0.75
    if t < 2.5 / d1:
        t -= 2.25 / d1
        return n1 * t * t + 0.9375
    t -= 2.625 / d1
    return n1 * t * t + 0.984375


def ease_out_back(t: float) -> float:
    """Ease out with overshoot."""
    c1 = 1.70158
    c3 = c1 + 1
    return 1 + c3 * (t - 1) ** 3 + c1 * (t - 1) ** 2


class Easing:
    """Collection of easing functions."""

    linear = staticmethod(linear)
    ease_in_quad = staticmethod(ease_in_quad)
    ease_out_quad = staticmethod(ease_out_quad)
    ease_in_out_quad = staticmethod(ease_in_out_quad)
    ease_in_cubic = staticmethod(ease_in_cubic)
    ease_out_cubic = staticmethod(ease_out_cubic)
    ease_in_out_cubic = staticmethod(ease_in_out_cubic)
    ease_in_sine = staticmethod(ease_in_sine)
    ease_out_sine = staticmethod(ease_out_sine)
    ease_in_out_sine = staticmethod(ease_in_out_sine)
    ease_out_expo = staticmethod(ease_out_expo)
    ease_in_elastic = staticmethod(ease_in_elastic)
    ease_out_elastic = staticmethod(ease_out_elastic)
    ease_out_bounce = staticmethod(ease_out_bounce)
    ease_out_back = staticmethod(ease_out_back)


# Easing name -> function lookup for JSON/string-based configuration
EASING_FUNCTIONS: dict[str, Callable[[float], float]] = {
    name: getattr(Easing, name)
    for name in vars(Easing)
    if not name.startswith("_")
}


def get_easing_function(name: str) -> Callable[[float], float]:
    """Get an easing function by name.

    Raises:
        ValueError: If the easing name is not recognized
    """
    fn = EASING_FUNCTIONS.get(name)
    if fn is None:
        raise ValueError(
            f"Unknown easing function: {name}. "
            f"Available: {', '.join(EASING_FUNCTIONS.keys())}"
        )
    return fn


# =============================================================================
# Core Interpolation
# =============================================================================


class ExtrapolateType(Enum):
    """How to handle values outside the input range."""

    CLAMP = "clamp"
    EXTEND = "extend"


def interpolate(
    frame: float,
    input_range: list[float],
    output_range: list[float],
    *,
    easing: Callable[[float], float] = linear,
    extrapolate: ExtrapolateType = ExtrapolateType.CLAMP,
) -> float:
    """Interpolate a value across a piecewise input/output mapping.

    Examples:
        interpolate(50, [0, 100], [0, 1])  # -> 0.5
        interpolate(75, [0, 50, 100], [0, 1, 0])  # -> 0.5
    """
    if len(input_range) != len(output_range):
        raise ValueError("input_range and output_range must have the same length")
    if len(input_range) < 2:
        raise ValueError("input_range must have at least 2 values")
    for i in range(1, len(input_range)):
        if input_range[i] <= input_range[i - 1]:
            raise ValueError("input_range must be monotonically increasing")

    if extrapolate == ExtrapolateType.CLAMP:
        if frame <= input_range[0]:
            return output_range[0]
        if frame >= input_range[-1]:
            return output_range[-1]

    segment_idx = len(input_range) - 2
    for i in range(1, len(input_range)):
        if frame <= input_range[i]:
            segment_idx = i - 1
            break

    seg_start = input_range[segment_idx]
    seg_end = input_range[segment_idx + 1]
    t = (frame - seg_start) / (seg_end - seg_start)

    out_start = output_range[segment_idx]
    out_end = output_range[segment_idx + 1]
    return out_start + (out_end - out_start) * easing(t)


def interpolate_keyframes(
    frame: float,
    keyframes: list[dict],
    *,
    easing_name: str = "linear",
    default_value: float = 0.0,
) -> float:
    """Interpolate ``{"frame": n, "value": v}`` keyframes at ``frame``."""
    if not keyframes:
        return default_value

    sorted_kf = sorted(keyframes, key=lambda kf: kf.get("frame", 0))
    input_range = [float(kf.get("frame", 0)) for kf in sorted_kf]
    output_range = [float(kf.get("value", default_value)) for kf in sorted_kf]

    if len(input_range) < 2:
        return output_range[0]

    return interpolate(
        frame,
        input_range,
        output_range,
        easing=get_easing_function(easing_name),
    )


class AnimationUtils:
    """Namespace object exposed to draw callbacks as ``ctx.utils``."""

    lerp = staticmethod(lerp)
    clamp = staticmethod(clamp)
    remap = staticmethod(remap)
    to_rad = staticmethod(to_rad)
    interpolate = staticmethod(interpolate)
    interpolate_keyframes = staticmethod(interpolate_keyframes)
    easing = Easing

    @staticmethod
    def seeded_random(seed: int) -> SeededSequence:
        return SeededSequence(seed)


UTILS = AnimationUtils()
