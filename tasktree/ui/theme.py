"""One Monokai color theme for the tasktree widgets.

Widgets reference these constants via f-string interpolation in their CSS
and pass them as Rich styles when rendering rows, so this module is the only
place colors are defined.

Nesting depth gets a distinct accent color: the first levels come from a
fixed palette, deeper levels are generated with the golden ratio method.
"""

import colorsys

from tasktree.models import TaskStatus


# ============================================================================
# BASE COLORS
# ============================================================================

BACKGROUND = "#272822"  # Main background (dark charcoal)
FOREGROUND = "#F8F8F2"  # Primary text (off-white)
SELECTION = "#49483E"   # Cursor row background
COMMENT = "#75715E"     # Secondary text and expand markers
BORDER = "#3E3D32"      # Borders and dividers


# ============================================================================
# DEPTH COLORS
# ============================================================================

LEVEL_COLORS = [
    "#66D9EF",  # Depth 0: Cyan
    "#A6E22E",  # Depth 1: Green
    "#F92672",  # Depth 2: Pink
    "#F3C300",  # Depth 3: Vivid Yellow
    "#875692",  # Depth 4: Strong Purple
    "#F38400",  # Depth 5: Vivid Orange
    "#A1CAF1",  # Depth 6: Very Light Blue
    "#BE0032",  # Depth 7: Vivid Red
]

LEVEL_0_COLOR = LEVEL_COLORS[0]


# ============================================================================
# STATUS COLORS
# ============================================================================

STATUS_COLORS = {
    TaskStatus.NEW_TASK: FOREGROUND,
    TaskStatus.IN_PROGRESS: "#E6DB74",
    TaskStatus.PAUSED: "#FD971F",
    TaskStatus.SUCCESSFULLY_COMPLETED: COMMENT,
    TaskStatus.CANCELLED: COMMENT,
}

STATUS_MARKERS = {
    TaskStatus.NEW_TASK: "[ ]",
    TaskStatus.IN_PROGRESS: "[~]",
    TaskStatus.PAUSED: "[=]",
    TaskStatus.SUCCESSFULLY_COMPLETED: "[✓]",
    TaskStatus.CANCELLED: "[x]",
}

DISCARDED_COLOR = SELECTION

HOVER_OPACITY = "20"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def generate_hsl_color(level: int) -> str:
    """Generate a color for depths beyond LEVEL_COLORS.

    Steps through hue space by the golden ratio conjugate with fixed
    saturation and lightness, so consecutive depths stay distinguishable.

    Args:
        level: Nesting depth

    Returns:
        Hex color string (e.g. '#a1b2c3')
    """
    golden_ratio_conjugate = 0.618033988749895
    hue = (0.5 + level * golden_ratio_conjugate) % 1.0

    # colorsys uses HLS ordering
    r, g, b = colorsys.hls_to_rgb(hue, 0.6, 0.8)
    return f"#{int(r * 255):02x}{int(g * 255):02x}{int(b * 255):02x}"


def get_level_color(level: int) -> str:
    """Get the accent color for a nesting depth.

    Args:
        level: Nesting depth, 0 for root tasks

    Returns:
        Hex color string; FOREGROUND for negative depths
    """
    if level < 0:
        return FOREGROUND
    if level < len(LEVEL_COLORS):
        return LEVEL_COLORS[level]
    return generate_hsl_color(level)


def with_alpha(color: str, alpha: str) -> str:
    """Append a two-digit hex alpha channel to a hex color."""
    return f"{color}{alpha}"
