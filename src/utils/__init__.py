"""
Utilities package.

Provides shared utilities for the looking-time pipeline:
- cache: fixed-path fit cache for Bayesian models
- figure_style: Matplotlib styling for manuscript figures
- helpers: Data I/O and table formatting
"""
from .figure_style import apply_style, get_color_palette, save_figure
