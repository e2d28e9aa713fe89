# sunswarm/problems - Concrete Design Problems
"""
PROBLEMS: Solar Design Searches Built on the Generic Optimizer
==============================================================

Each problem knows how to:
- map a normalized position to design units (to_design_units)
- describe a result in those units (describe)
- write the winner back into the host model (apply_best)

Available Problems:
-------------------
- tilt_angle:    one tilt angle per existing rack
- array_layout:  tilt, inter-row spacing and rows per rack of a whole field

USAGE:
------
    from sunswarm.problems import SolarPanelTiltAngleProblem

    problem = SolarPanelTiltAngleProblem(foundation.solar_panels)
    optimizer = problem.build_optimizer(simulate, PsoParams(swarm_size=10))
    optimizer.run(show_progress=True)
"""

from .array_layout import SolarPanelArrayProblem
from .tilt_angle import SolarPanelTiltAngleProblem

__all__ = ['SolarPanelArrayProblem', 'SolarPanelTiltAngleProblem']
