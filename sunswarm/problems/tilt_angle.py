# sunswarm/problems/tilt_angle.py
"""
TILT ANGLE PROBLEM: One Tilt Angle per Solar Panel Rack
=======================================================

PURPOSE:
--------
Find the tilt angles of a set of existing racks that maximize the host's
objective (daily/yearly output or profit). Each rack contributes one
dimension to the search:

    normalized p in [0, 1)   ──▶   tilt = (2p − 1) · π/2     (radians, −90° .. 90°)

WORKFLOW:
---------
1. Build the problem from the racks that sit on a foundation
2. build_optimizer() wires the mapping, the write-back and the host's
   simulation into an OptimizerPso; the current tilts seed particle 0
3. run() the optimizer
4. On normal completion apply_best() writes the winning tilts into the racks

The racks are borrowed: nothing is written to them before the run ends.
"""

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..config import ObjectiveFunctionType, PsoParams
from ..model import SolarPanel
from ..optimizer import OptimizerPso

logger = logging.getLogger(__name__)

HALF_PI = np.pi / 2


class SolarPanelTiltAngleProblem:
    """
    Tilt angle search over a fixed set of racks.

    Parameters:
    -----------
    solar_panels : Sequence[SolarPanel]
        Racks whose tilt angles are optimized (at least one)
    objective_function_type : ObjectiveFunctionType
        What the fitness means; only used for units in reports
    """

    def __init__(
        self,
        solar_panels: Sequence[SolarPanel],
        objective_function_type: ObjectiveFunctionType = ObjectiveFunctionType.DAILY_TOTAL_OUTPUT,
    ):
        if len(solar_panels) == 0:
            raise ValueError("At least one solar panel is needed to optimize tilt angles")
        self.solar_panels: List[SolarPanel] = list(solar_panels)
        self.objective_function_type = ObjectiveFunctionType(objective_function_type)

    @property
    def dimension(self) -> int:
        return len(self.solar_panels)

    @property
    def labels(self) -> List[Optional[str]]:
        return [sp.label for sp in self.solar_panels]

    def to_design_units(self, position: np.ndarray) -> np.ndarray:
        """Normalized position → tilt angles in radians."""
        return (2.0 * np.asarray(position, dtype=float) - 1.0) * HALF_PI

    def to_degrees(self, position: np.ndarray) -> np.ndarray:
        return np.degrees(self.to_design_units(position))

    def normalize(self, tilt_angles: Sequence[float]) -> np.ndarray:
        """Tilt angles in radians → normalized position (clipped to the search box)."""
        p = (np.asarray(tilt_angles, dtype=float) / HALF_PI + 1.0) / 2.0
        return np.clip(p, 0.0, np.nextafter(1.0, 0.0))

    def initial_position(self) -> np.ndarray:
        return self.normalize([sp.tilt_angle for sp in self.solar_panels])

    def panels_for(self, tilt_angles: Sequence[float]) -> List[SolarPanel]:
        """Copies of the racks carrying the given tilt angles (radians)."""
        panels = []
        for sp, angle in zip(self.solar_panels, tilt_angles):
            panel = sp.copy()
            panel.tilt_angle = float(angle)
            panels.append(panel)
        return panels

    def translate(self, position: np.ndarray) -> List[SolarPanel]:
        return self.panels_for(self.to_design_units(position))

    def apply_best(self, best_position: np.ndarray) -> None:
        """Write the winning tilt angles into the borrowed racks."""
        for sp, angle in zip(self.solar_panels, self.to_design_units(best_position)):
            sp.tilt_angle = float(angle)
        logger.info("Applied tilt angles: %s", ', '.join(f'{a:.3f}°' for a in self.to_degrees(best_position)))

    def describe(self, design: np.ndarray, fitness: float) -> str:
        angles = ', '.join(f'{np.degrees(a):.3f}°' for a in design)
        return f'F({angles}) = {fitness:.5f} {self.objective_function_type.unit}'

    def build_optimizer(
        self,
        simulate: Callable[[List[SolarPanel]], float],
        params: Optional[PsoParams] = None,
        rng: Optional[np.random.Generator] = None,
        seed_current_design: bool = True,
    ) -> OptimizerPso:
        """
        Wire this problem into an optimizer.

        Parameters:
        -----------
        simulate : Callable[[List[SolarPanel]], float]
            Host simulation scoring a set of racks (may return an awaitable)
        params : Optional[PsoParams]
            Run settings
        rng : Optional[np.random.Generator]
            Random source
        seed_current_design : bool
            Start particle 0 at the racks' current tilt angles
        """
        optimizer = OptimizerPso(
            lambda design: simulate(self.panels_for(design)),
            self,
            self.dimension,
            params,
            rng=rng,
            to_design_units=self.to_design_units,
            describe=self.describe,
        )
        if seed_current_design:
            optimizer.seed_initial_position(self.initial_position())
        return optimizer
