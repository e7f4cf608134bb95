# colors.py — Deterministic chart palette
"""
colors.py — Color Assignment Utility

generate_colors(n) returns exactly n colors, always the same for a given n:
the first ten come from a fixed palette, the rest step the hue by the
golden angle (137.5 degrees) so no hue repeats.
"""

from __future__ import annotations

from tools.coercion import format_number


# =============================================================================
# CONSTANTS
# =============================================================================

BASE_PALETTE = [
    "rgba(99, 102, 241, 0.8)",
    "rgba(168, 85, 247, 0.8)",
    "rgba(236, 72, 153, 0.8)",
    "rgba(251, 146, 60, 0.8)",
    "rgba(34, 197, 94, 0.8)",
    "rgba(59, 130, 246, 0.8)",
    "rgba(249, 115, 22, 0.8)",
    "rgba(20, 184, 166, 0.8)",
    "rgba(244, 63, 94, 0.8)",
    "rgba(132, 204, 22, 0.8)",
]

GOLDEN_ANGLE = 137.5
EXTRA_SATURATION = "70%"
EXTRA_LIGHTNESS = "60%"
EXTRA_ALPHA = 0.8


# =============================================================================
# PALETTE
# =============================================================================

def golden_angle_hue(index: int) -> float:
    """Hue in degrees for the color at position `index`."""
    return (index * GOLDEN_ANGLE) % 360


def generate_colors(count: int) -> list[str]:
    """
    Generate `count` chart colors.

    Args:
        count: Number of colors wanted (<= 0 yields an empty list)

    Returns:
        Base palette prefix, followed by hsla() colors for positions
        10, 11, ... when more than ten are needed
    """
    if count <= 0:
        return []

    if count <= len(BASE_PALETTE):
        return BASE_PALETTE[:count]

    extra = [
        f"hsla({format_number(golden_angle_hue(i))}, {EXTRA_SATURATION}, "
        f"{EXTRA_LIGHTNESS}, {EXTRA_ALPHA})"
        for i in range(len(BASE_PALETTE), count)
    ]
    return BASE_PALETTE + extra
