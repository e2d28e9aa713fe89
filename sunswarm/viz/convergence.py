# sunswarm/viz/convergence.py
"""
CONVERGENCE PLOT: Best Objective and Best Variables per Step
============================================================

Two stacked panels drawn from the history table
(OptimizerPso.history_dataframe()):

    top:     Objective of the best particle at each step
    bottom:  each variable of that best position at each step

Step 0 is the baseline (first particle of the first step).
"""

import logging
import os
from typing import Optional

import matplotlib.pyplot as plt
import pandas as pd

logger = logging.getLogger(__name__)


def plot_convergence(
    df: pd.DataFrame,
    outpath: str,
    title: str = "Particle Swarm Optimization",
    objective_label: Optional[str] = None,
) -> None:
    """
    Plot the best objective and best variables per step and save to file.

    Parameters:
    -----------
    df : pd.DataFrame
        History table with 'Step', 'Objective', variable columns and
        optional 'Individual<k>' columns (ignored here)
    outpath : str
        Where to save the PNG
    title : str
        Figure title
    objective_label : Optional[str]
        Y label of the objective panel (default 'Objective')

    Example:
    --------
    >>> df = optimizer.history_dataframe(labels=problem.labels, transform=problem.to_degrees)
    >>> plot_convergence(df, "artifacts/convergence.png")
    """
    if len(df) == 0:
        raise ValueError("History is empty: run at least one step before plotting")
    for col in ('Step', 'Objective'):
        if col not in df.columns:
            raise ValueError(f"Column '{col}' not found in DataFrame. Available: {df.columns.tolist()}")

    variables = [c for c in df.columns if c not in ('Step', 'Objective') and not c.startswith('Individual')]

    fig, (ax_obj, ax_var) = plt.subplots(2, 1, figsize=(10, 8), sharex=True)

    ax_obj.plot(df['Step'], df['Objective'], marker='o', color='darkred', linewidth=2)
    ax_obj.set_ylabel(objective_label or 'Objective', fontsize=12, fontweight='bold')
    ax_obj.set_title(title, fontsize=14, fontweight='bold', pad=20)
    ax_obj.grid(True, alpha=0.3, linestyle='--')

    for col in variables:
        ax_var.plot(df['Step'], df[col], marker='s', linewidth=1.5, label=col)
    ax_var.set_xlabel('Step', fontsize=12, fontweight='bold')
    ax_var.set_ylabel('Best position', fontsize=12, fontweight='bold')
    ax_var.grid(True, alpha=0.3, linestyle='--')
    if variables:
        ax_var.legend(loc='best', fontsize=10, framealpha=0.9)

    os.makedirs(os.path.dirname(outpath) if os.path.dirname(outpath) else '.', exist_ok=True)

    plt.tight_layout()
    plt.savefig(outpath, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info("Convergence plot saved to: %s", outpath)
