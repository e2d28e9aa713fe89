# sunswarm/viz/replay.py
"""
SWARM REPLAY: Animated Particle Positions per Step
==================================================

Replays swarm_of_steps as a Plotly animation: one frame per recorded step,
particles as markers in two chosen dimensions, the swarm best as a star.

WHY PLOTLY?
-----------
- Frames + slider give step-by-step replay for free
- Hover shows each particle's fitness
- Exports to standalone HTML
"""

import logging
import os
from typing import Callable, Optional, Sequence

import numpy as np
import plotly.graph_objects as go

from ..history import StepLog

logger = logging.getLogger(__name__)


def _frame_data(swarm, dims, transform):
    points = np.array([transform(p.position) for p in swarm.particles])
    texts = [
        'unevaluated' if p.fitness is None else f'fitness={p.fitness:.5g}'
        for p in swarm.particles
    ]
    best = np.asarray(transform(swarm.best_position))
    return [
        go.Scatter(
            x=points[:, dims[0]], y=points[:, dims[1]],
            mode='markers',
            marker=dict(size=9, color='steelblue', line=dict(width=1, color='black')),
            name='Particles',
            text=texts,
            hoverinfo='text',
        ),
        go.Scatter(
            x=[best[dims[0]]], y=[best[dims[1]]],
            mode='markers',
            marker=dict(size=16, color='red', symbol='star'),
            name='Swarm best',
        ),
    ]


def create_swarm_replay_figure(
    swarm_of_steps: StepLog,
    dims: Sequence[int] = (0, 1),
    labels: Optional[Sequence[str]] = None,
    transform: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    title: str = "Swarm Replay",
) -> go.Figure:
    """
    Build an animated figure from recorded swarm snapshots.

    Parameters:
    -----------
    swarm_of_steps : StepLog
        optimizer.swarm_of_steps
    dims : Sequence[int]
        The two variables to plot; a one-dimensional swarm is drawn against zero
    labels : Optional[Sequence[str]]
        Axis titles per variable
    transform : Optional[Callable]
        Normalized position → display units
    title : str
        Plot title

    Returns:
    --------
    go.Figure
    """
    snapshots = list(swarm_of_steps.written())
    if not snapshots:
        raise ValueError("No swarm snapshots recorded yet")

    dimension = snapshots[0][1].dimension
    if transform is None:
        transform = lambda position: np.asarray(position, dtype=float)
    if dimension == 1:
        # pad with a zero coordinate so there is something to put on y
        base = transform
        transform = lambda position: np.append(base(position), 0.0)
        dims = (0, 1)

    frames = [
        go.Frame(data=_frame_data(swarm, dims, transform), name=str(step + 1))
        for step, swarm in snapshots
    ]

    fig = go.Figure(data=frames[0].data, frames=frames)

    def axis_title(k):
        if labels is not None and k < len(labels):
            return labels[k]
        return f'Var{k + 1}'

    fig.update_layout(
        title=dict(text=title, font=dict(size=16)),
        xaxis=dict(title=axis_title(dims[0])),
        yaxis=dict(title=axis_title(dims[1]) if dimension > 1 else ''),
        updatemenus=[dict(
            type='buttons',
            showactive=False,
            buttons=[dict(label='Play', method='animate',
                          args=[None, dict(frame=dict(duration=500, redraw=True), fromcurrent=True)])],
        )],
        sliders=[dict(
            currentvalue=dict(prefix='Step '),
            steps=[dict(method='animate', label=f.name,
                        args=[[f.name], dict(mode='immediate', frame=dict(duration=0, redraw=True))])
                   for f in frames],
        )],
        margin=dict(l=40, r=20, t=60, b=40),
    )
    return fig


def save_swarm_replay(fig: go.Figure, outpath: str) -> None:
    os.makedirs(os.path.dirname(outpath) if os.path.dirname(outpath) else '.', exist_ok=True)
    fig.write_html(outpath)
    logger.info("Swarm replay saved to: %s", outpath)
