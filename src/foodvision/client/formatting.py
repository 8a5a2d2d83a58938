"""Display helpers shared by the session and the presentation API."""

from __future__ import annotations

LOADING_COLD = "Waking up server (first request)..."
LOADING_WARM = "Processing..."


def format_probability(probability: float) -> str:
    """Render a 0-1 probability as a percentage with one decimal, e.g. ``87.3%``."""
    return f"{probability * 100:.1f}%"


def format_processing_time(seconds: float) -> str:
    return f"{seconds:.3f}"


def loading_message(warmed: bool) -> str:
    """Copy shown while a classification is in flight."""
    return LOADING_WARM if warmed else LOADING_COLD
