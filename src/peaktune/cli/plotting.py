"""Sweep plot export using matplotlib."""

from pathlib import Path

import matplotlib
import matplotlib.pyplot as plt

from ..config.constants import DEFAULT_PLOT_DPI, PLOT_Y_LIMITS_DBM
from ..sweep import SweepResult
from ..utils.units import from_hz, get_unit_multiplier

# Set matplotlib to non-interactive backend
matplotlib.use("Agg")

# Dark theme matching the terminal UI
PLOT_COLORS = {
    "bg": "#1e1e1e",
    "fg": "#d4d4d4",
    "grid": "#3c3c3c",
    "trace": "#4fc1ff",
    "best": "#f44747",
}


def export_sweep_plot(
    result: SweepResult,
    output_path: str | Path,
    freq_unit: str = "MHz",
    dpi: int = DEFAULT_PLOT_DPI,
    y_limits: tuple[float, float] | None = PLOT_Y_LIMITS_DBM,
) -> Path:
    """
    Save peak power versus frequency for one sweep.

    Args:
        result: Sweep (or auto-tune) result to plot
        output_path: Image path; the format follows the suffix
        freq_unit: Unit for the frequency axis
        dpi: Output resolution
        y_limits: Fixed power axis (dBm), or None to autoscale

    Returns:
        Path of the written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    freqs = result.frequencies() / get_unit_multiplier(freq_unit)
    powers = result.powers()

    fig, ax = plt.subplots(figsize=(10, 5))
    fig.patch.set_facecolor(PLOT_COLORS["bg"])
    ax.set_facecolor(PLOT_COLORS["bg"])

    ax.plot(
        freqs,
        powers,
        marker="o",
        markersize=3,
        linewidth=1.5,
        color=PLOT_COLORS["trace"],
        label="Peak power",
    )

    best = result.best_sample
    if best is not None:
        ax.scatter(
            [from_hz(best.frequency_hz, freq_unit)],
            [best.power_dbm],
            s=60,
            color=PLOT_COLORS["best"],
            zorder=3,
            label=f"Best ({best.power_dbm:.2f} dBm)",
        )

    if y_limits is not None:
        ax.set_ylim(*y_limits)

    fg_color = PLOT_COLORS["fg"]
    grid_color = PLOT_COLORS["grid"]
    ax.set_xlabel(f"Frequency ({freq_unit})", color=fg_color)
    ax.set_ylabel("Power (dBm)", color=fg_color)
    ax.set_title("Peak Power Sweep", color=fg_color, pad=15)
    ax.tick_params(colors=fg_color)
    ax.grid(True, alpha=0.2, color=grid_color, linestyle="-", linewidth=0.5)
    legend = ax.legend(edgecolor=grid_color, labelcolor=fg_color)
    legend.get_frame().set_facecolor(PLOT_COLORS["bg"])

    for spine in ax.spines.values():
        spine.set_edgecolor(grid_color)

    plt.tight_layout()
    plt.savefig(
        output_path,
        dpi=dpi,
        facecolor=fig.get_facecolor(),
        edgecolor="none",
        bbox_inches="tight",
    )
    plt.close(fig)
    return output_path
