# sunswarm/viz - Visualization Tools
"""
VIZ: Visualization of Optimization Runs
=======================================

This package provides:
- convergence: best objective/variables per step (matplotlib)
- replay: animated swarm positions per step (Plotly)
"""

from .convergence import plot_convergence
from .replay import create_swarm_replay_figure, save_swarm_replay

__all__ = ['plot_convergence', 'create_swarm_replay_figure', 'save_swarm_replay']
