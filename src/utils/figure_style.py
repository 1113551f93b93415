#!/usr/bin/env python3
"""
Figure styling configuration for the tutorial manuscript.

This module sets matplotlib defaults to match the article style used by
Quarto. Import this module at the start of any script that generates
figures for the manuscript.

Usage
-----
from utils.figure_style import apply_style
apply_style()
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import matplotlib

matplotlib.use('Agg')

import matplotlib.pyplot as plt

# Style parameters matching LaTeX article class
FONT_FAMILY = 'serif'
FONT_SIZE = 10
TITLE_SIZE = 11
LABEL_SIZE = 10
TICK_SIZE = 9
LEGEND_SIZE = 9

# Figure dimensions (inches) for single-column layout
FIG_WIDTH_SINGLE = 6.5
FIG_HEIGHT_SINGLE = 4.5

# DPI for saved figures
DPI = 300

# Trial types first, then a neutral sequence
PALETTES = {
    'default': ['#1b6ca8', '#d1495b', '#66a182', '#edae49', '#595959'],
    'trial_type': ['#d1495b', '#1b6ca8'],
    'engine': ['#595959', '#1b6ca8'],
}


def apply_style():
    """Apply consistent figure styling for manuscript figures."""
    plt.rcParams.update({
        # Font settings
        'font.family': FONT_FAMILY,
        'font.size': FONT_SIZE,

        # Title and labels
        'axes.titlesize': TITLE_SIZE,
        'axes.labelsize': LABEL_SIZE,

        # Ticks
        'xtick.labelsize': TICK_SIZE,
        'ytick.labelsize': TICK_SIZE,

        # Legend
        'legend.fontsize': LEGEND_SIZE,
        'legend.framealpha': 0.9,

        # Figure size (default)
        'figure.figsize': (FIG_WIDTH_SINGLE, FIG_HEIGHT_SINGLE),
        'figure.dpi': 100,
        'savefig.dpi': DPI,

        # Grid
        'axes.grid': True,
        'grid.alpha': 0.3,

        # Spines
        'axes.spines.top': False,
        'axes.spines.right': False,
    })


def get_color_palette(name: str = 'default') -> list[str]:
    """Return a named color palette."""
    if name not in PALETTES:
        raise KeyError(f"Unknown palette: '{name}'. Available: {', '.join(PALETTES)}")
    return list(PALETTES[name])


def annotate_panel(ax, label: str, x: float = -0.08, y: float = 1.04) -> None:
    """Put a bold panel label such as '3-6 mo' in the upper-left corner."""
    ax.text(x, y, label, transform=ax.transAxes, fontweight='bold', va='bottom')


def save_figure(
    fig,
    output_path: Path,
    formats: Optional[Iterable[str]] = None,
) -> list[Path]:
    """
    Save a figure in one or more formats next to ``output_path``.

    Parameters
    ----------
    fig : matplotlib.figure.Figure
        Figure to save
    output_path : Path
        Target path; the suffix is replaced per format
    formats : iterable of str, optional
        File formats (default: png)

    Returns
    -------
    list[Path]
        Written files
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    written = []
    for fmt in formats or ['png']:
        path = output_path.with_suffix(f'.{fmt}')
        fig.savefig(path, bbox_inches='tight')
        written.append(path)
    return written
