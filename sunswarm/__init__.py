# sunswarm - Particle Swarm Optimization for Solar Design
"""
SUNSWARM: A Constrained Particle Swarm Optimizer for Solar Layouts
==================================================================

This package provides:
- A problem-agnostic PSO core (particles, swarm, nominal convergence)
- A driver with constraint handling, write-once step history and
  cooperative cancellation (sync and asyncio evaluators)
- Concrete solar problems (tilt angles, array layout)
- History tables and plots for replay

ARCHITECTURE:
-------------
    geometry.py       Rectangle primitive
    constraints.py    Feasibility predicates (rectangle, circle, polygon)
    kernel/           Fitness sentinel, Particle, Swarm
    history.py        Fixed-capacity step logs + DataFrame export
    config.py         PsoParams, SearchMethod, ObjectiveFunctionType
    optimizer.py      OptimizerPso driver
    model.py          Host design model (SolarPanel, Foundation, PvModel)
    problems/         Tilt angle and array layout problems
    viz/              Convergence plot (matplotlib), swarm replay (Plotly)
"""

from .config import ObjectiveFunctionType, PsoParams, SearchMethod
from .constraints import CircularBound, Constraint, PolygonalBound, RectangularBound
from .geometry import Rectangle
from .history import HistoryWriteError, StepLog
from .kernel import InvalidFitnessError, Particle, Swarm, UnevaluatedFitnessError
from .optimizer import OptimizerPso, OptimizerStateError, ResultWriter, RunState

__version__ = "0.1.0"

__all__ = [
    'ObjectiveFunctionType', 'PsoParams', 'SearchMethod',
    'CircularBound', 'Constraint', 'PolygonalBound', 'RectangularBound',
    'Rectangle',
    'HistoryWriteError', 'StepLog',
    'InvalidFitnessError', 'Particle', 'Swarm', 'UnevaluatedFitnessError',
    'OptimizerPso', 'OptimizerStateError', 'ResultWriter', 'RunState',
]
