"""
Plots of the QA histograms saved by :class:`HistogramRegistry`.

One figure is written per top-level histogram group (``Events``, ``Tracks``,
...) with a grid of panels: 1D histograms as step plots, profiles as markers
and 2D histograms as colour maps.
"""

import math
from pathlib import Path
from typing import Optional, Union

import matplotlib.pyplot as plt
import matplotlib.ticker as mticker
import numpy as np
from matplotlib.colors import LogNorm

from event_track_qa.config.logging_config import get_logger
from event_track_qa.qa.histogram_registry import HistogramRegistry

plt.rcParams["text.usetex"] = False

# Palette for overlaid series
HIGH_CONTRAST_COLORS: list[str] = [
    "dodgerblue",
    "crimson",
    "forestgreen",
    "darkorange",
    "dimgrey",
    "purple",
]

SINGLE_COLUMN_WIDTH = 8.5
DOUBLE_COLUMN_WIDTH = 12.0
GOLDEN_RATIO = 1.618

FONT_SIZES = {"tiny": 8, "small": 10, "normal": 12, "large": 14, "xlarge": 16}
LINE_WIDTHS = {"thin": 0.5, "normal": 1.0, "thick": 2.0}

# Panels per figure before the group is split
MAX_PANELS_PER_FIGURE = 16


def set_science_style() -> None:
    """Configure matplotlib for QA summary plots"""
    plt.style.use("seaborn-v0_8-paper")
    plt.rcParams.update(
        {
            "font.size": FONT_SIZES["normal"],
            "axes.labelsize": FONT_SIZES["small"],
            "axes.titlesize": FONT_SIZES["small"],
            "xtick.labelsize": FONT_SIZES["tiny"],
            "ytick.labelsize": FONT_SIZES["tiny"],
            "figure.dpi": 150,
        }
    )


def get_figure_size(width: str = "single", ratio: Optional[float] = None) -> tuple[float, float]:
    w = SINGLE_COLUMN_WIDTH if width == "single" else DOUBLE_COLUMN_WIDTH
    r = ratio if ratio is not None else GOLDEN_RATIO
    return (w, w / r)


def _draw_1d(ax, data: dict, color: str) -> None:
    counts = np.asarray(data["counts"], dtype=float)
    edges = np.asarray(data["bin_edges"][0], dtype=float)
    if data["kind"] == "profile":
        centers = 0.5 * (edges[:-1] + edges[1:])
        means = np.asarray(data["means"], dtype=float)
        filled = counts > 0
        ax.plot(centers[filled], means[filled], "o", color=color, markersize=2)
        ax.set_xscale("log" if edges[0] > 0 else "linear")
    else:
        ax.stairs(
            counts,
            edges,
            fill=True,
            color=color,
            alpha=0.7,
            linewidth=LINE_WIDTHS["normal"],
        )
        if counts.any():
            ax.set_yscale("log")
            ax.yaxis.set_minor_formatter(mticker.NullFormatter())
    labels = data.get("bin_labels")
    if labels:
        centers = 0.5 * (edges[:-1] + edges[1:])
        ax.set_xticks(centers)
        ax.set_xticklabels(labels, fontsize=FONT_SIZES["tiny"])
    ax.set_xlabel(data["axis_titles"][0])


def _draw_2d(ax, data: dict) -> None:
    counts = np.asarray(data["counts"], dtype=float)
    x_edges = np.asarray(data["bin_edges"][0], dtype=float)
    y_edges = np.asarray(data["bin_edges"][1], dtype=float)
    norm = LogNorm() if counts.max(initial=0.0) > 0 else None
    masked = np.ma.masked_where(counts <= 0, counts)
    ax.pcolormesh(x_edges, y_edges, masked.T, norm=norm, cmap="viridis")
    ax.set_xlabel(data["axis_titles"][0])
    ax.set_ylabel(data["axis_titles"][1])


def plot_histogram_group(
    hist_data: dict,
    paths: list[str],
    output_plot_path: Union[str, Path],
    title: str,
) -> Path:
    """
    Draw a grid of QA histograms into one figure.

    Args:
        hist_data: Histogram dictionary as written by HistogramRegistry.save
        paths: Histogram paths to draw, one panel each
        output_plot_path: Where to save the PNG
        title: Figure title

    Returns:
        Path of the written figure
    """
    logger = get_logger(__name__)
    output_plot_path = Path(output_plot_path)

    ncols = max(1, int(math.ceil(math.sqrt(len(paths)))))
    nrows = max(1, int(math.ceil(len(paths) / ncols)))
    fig_width, fig_height = get_figure_size(width="double", ratio=16 / 9)
    if nrows > 3:
        fig_height *= (nrows / 3.0) ** 0.5

    fig, axes = plt.subplots(nrows, ncols, figsize=(fig_width, fig_height), squeeze=False)
    axes = axes.flatten()

    for i, path in enumerate(paths):
        ax = axes[i]
        data = hist_data[path]
        if len(data["bin_edges"]) == 2:
            _draw_2d(ax, data)
        else:
            _draw_1d(ax, data, HIGH_CONTRAST_COLORS[i % len(HIGH_CONTRAST_COLORS)])
        ax.set_title(path.split("/", 1)[-1], fontsize=FONT_SIZES["small"])
        ax.grid(True, linestyle="--", alpha=0.6)

    for ax in axes[len(paths):]:
        ax.axis("off")

    fig.suptitle(title, fontsize=FONT_SIZES["large"])
    plt.tight_layout(rect=[0, 0, 1, 0.96])

    output_plot_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fig.savefig(output_plot_path, dpi=150, bbox_inches="tight")
        logger.info(f"Saved QA plot to {output_plot_path}")
    finally:
        plt.close(fig)
    return output_plot_path


def create_qa_plots(
    histograms: Union[HistogramRegistry, str, Path],
    output_dir: Union[str, Path],
) -> list[Path]:
    """
    Write one summary figure per histogram group.

    Args:
        histograms: A registry or the path of a saved histogram JSON file
        output_dir: Directory receiving the PNG files

    Returns:
        Paths of the written figures
    """
    logger = get_logger(__name__)
    if not isinstance(histograms, HistogramRegistry):
        histograms, _ = HistogramRegistry.load(histograms)
    hist_data = histograms.to_dict()
    output_dir = Path(output_dir)

    groups: dict[str, list[str]] = {}
    for path in hist_data:
        group = path.rsplit("/", 1)[0] if "/" in path else "Other"
        groups.setdefault(group, []).append(path)

    set_science_style()
    written = []
    for group, paths in groups.items():
        for chunk_start in range(0, len(paths), MAX_PANELS_PER_FIGURE):
            chunk = paths[chunk_start:chunk_start + MAX_PANELS_PER_FIGURE]
            suffix = f"_{chunk_start // MAX_PANELS_PER_FIGURE}" if len(paths) > MAX_PANELS_PER_FIGURE else ""
            file_name = group.replace("/", "_") + suffix + ".png"
            written.append(
                plot_histogram_group(hist_data, chunk, output_dir / file_name, group)
            )

    logger.info(f"Created {len(written)} QA plots in {output_dir}")
    return written
