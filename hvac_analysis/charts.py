"""
Static charts for the analysis report.

Renders with the non-interactive Agg backend and writes PNG files next to the
report; nothing is shown on screen.
"""

import logging
from pathlib import Path
from typing import List, Union

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from .pipeline import AnalysisResult  # noqa: E402
from .records import DayType  # noqa: E402

logger = logging.getLogger(__name__)

TYPE_COLORS = {
    DayType.NORMAL: 'steelblue',
    DayType.AWAY: 'gray',
    DayType.HIGH_LOAD: 'darkorange',
}


def plot_temperature_response(result: AnalysisResult, path: Union[str, Path]) -> Path:
    """Daily consumption vs minimum temperature with the fitted model curve."""
    path = Path(path)
    fig, ax = plt.subplots(figsize=(12, 7))

    for day_type, color in TYPE_COLORS.items():
        days = [d for d in result.days_of_type(day_type) if d.temp_min is not None]
        if not days:
            continue
        ax.scatter([d.temp_min for d in days], [d.home_kwh for d in days],
                   c=color, alpha=0.7, s=40, label=f"{day_type.value} ({len(days)})")

    anomalies = {a.date for a in result.anomalies}
    flagged = [d for d in result.days if d.date in anomalies]
    if flagged:
        ax.scatter([d.temp_min for d in flagged], [d.home_kwh for d in flagged],
                   facecolors='none', edgecolors='red', s=120, linewidths=1.5, label='Anomaly')

    if result.prediction_curve:
        temps, predicted = zip(*result.prediction_curve)
        ax.plot(temps, predicted, color='black', linewidth=2, linestyle='--',
                label=f"Model ({result.model.global_model.name})")

    ax.set_xlabel('Daily Minimum Temperature (°F)')
    ax.set_ylabel('Home Consumption (kWh/day)')
    ax.set_title('Temperature Response', fontweight='bold')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return path


def plot_residual_timeline(result: AnalysisResult, path: Union[str, Path],
                           sigma: float = 1.5) -> Path:
    """Residuals over time with the anomaly band."""
    path = Path(path)
    modeled = sorted(result.modeled_days, key=lambda m: m.date)
    fig, ax = plt.subplots(figsize=(14, 6))

    if modeled:
        dates = [m.date for m in modeled]
        residuals = np.array([m.residual_kwh for m in modeled])
        colors = ['red' if abs(m.z_score) > sigma else 'steelblue' for m in modeled]
        ax.bar(dates, residuals, color=colors, alpha=0.8)

        stats = result.residual_stats
        band = sigma * stats.stddev
        ax.axhspan(stats.mean - band, stats.mean + band, color='green', alpha=0.1,
                   label=f"±{sigma}σ ({band:.1f} kWh)")
        ax.axhline(y=stats.mean, color='green', linestyle='--', alpha=0.7)

    ax.set_xlabel('Date')
    ax.set_ylabel('Actual - Expected (kWh)')
    ax.set_title('Model Residuals', fontweight='bold')
    ax.legend()
    ax.grid(True, alpha=0.3)
    plt.setp(ax.xaxis.get_majorticklabels(), rotation=45, ha='right')

    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return path


def save_charts(result: AnalysisResult, output_dir: Union[str, Path]) -> List[Path]:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = [
        plot_temperature_response(result, output_dir / 'temperature-response.png'),
        plot_residual_timeline(result, output_dir / 'residual-timeline.png',
                               sigma=result.config.anomaly_sigma),
    ]
    for path in paths:
        logger.info(f"Chart saved: {path}")
    return paths
