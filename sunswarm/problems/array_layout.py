# sunswarm/problems/array_layout.py
"""
ARRAY LAYOUT PROBLEM: Tilt, Row Spacing and Rack Depth of a PV Field
====================================================================

PURPOSE:
--------
Lay out a whole solar panel array inside a field and search for the layout
that maximizes the host's objective. A layout has three genes:

    gene 0   tilt angle          [minimum_tilt_angle, maximum_tilt_angle]   radians
    gene 1   inter-row spacing   [minimum_inter_row_spacing, maximum_...]   meters
    gene 2   rows per rack       [minimum_rows_per_rack, maximum_...]       integer (floored)

THE LAYOUT RULE:
----------------
Racks are straight rows filling the bounding rectangle of the field polygon
(minus a margin on every side):

    zonal        racks run along x, stacked along y every inter_row_spacing
    meridional   racks run along y, stacked along x every inter_row_spacing

A rack is (rows per rack) modules deep. Its footprint across the stacking
axis is depth · |cos(tilt)|; a rack is only placed if that footprint fits.

TRADE-OFF:
----------
- Steeper tilt: more yield per module, longer shadows
- Tighter spacing: more racks, more mutual shading
- Deeper racks: fewer racks, taller structures

FEASIBLE WINDOW:
----------------
An optional Constraint over (tilt in degrees, spacing in meters) restricts
the search further, e.g. RectangularBound(cx=20, cy=5, width=40, height=6)
only accepts tilts in (0°, 40°) and spacings in (2 m, 8 m).
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from ..config import ObjectiveFunctionType, PsoParams
from ..constraints import Constraint, PolygonalBound
from ..geometry import Rectangle
from ..model import DEFAULT_PV_MODEL, Foundation, Orientation, PvModel, RowAxis, SolarPanel
from ..optimizer import OptimizerPso

logger = logging.getLogger(__name__)

HALF_PI = np.pi / 2


class SolarPanelArrayProblem:
    """
    Array layout search on one field of a foundation.

    Parameters:
    -----------
    foundation : Foundation
        Host model; its solar_panels are replaced by the winning layout
    field : PolygonalBound
        Field outline in foundation coordinates (meters)
    pv_model : PvModel
        Module dimensions
    row_axis : RowAxis
        Direction the racks run
    orientation : Orientation
        Module orientation on the rack
    margin : float
        Clearance kept from the field bounds (meters)
    feasible_window : Optional[Constraint]
        Extra constraint over (tilt degrees, spacing meters)
    """

    dimension = 3
    labels = ['Tilt Angle', 'Inter-Row Spacing', 'Rows Per Rack']

    def __init__(
        self,
        foundation: Foundation,
        field: PolygonalBound,
        pv_model: PvModel = DEFAULT_PV_MODEL,
        row_axis: RowAxis = RowAxis.zonal,
        orientation: Orientation = Orientation.landscape,
        margin: float = 0.0,
        minimum_tilt_angle: float = -HALF_PI,
        maximum_tilt_angle: float = HALF_PI,
        minimum_inter_row_spacing: float = 2.0,
        maximum_inter_row_spacing: float = 10.0,
        minimum_rows_per_rack: int = 1,
        maximum_rows_per_rack: int = 6,
        feasible_window: Optional[Constraint] = None,
        objective_function_type: ObjectiveFunctionType = ObjectiveFunctionType.DAILY_TOTAL_OUTPUT,
    ):
        if maximum_tilt_angle <= minimum_tilt_angle:
            raise ValueError(f"tilt range is empty: [{minimum_tilt_angle}, {maximum_tilt_angle}]")
        if minimum_inter_row_spacing <= 0 or maximum_inter_row_spacing <= minimum_inter_row_spacing:
            raise ValueError(
                f"inter-row spacing range is invalid: [{minimum_inter_row_spacing}, {maximum_inter_row_spacing}]"
            )
        if minimum_rows_per_rack < 1 or maximum_rows_per_rack < minimum_rows_per_rack:
            raise ValueError(f"rows per rack range is invalid: [{minimum_rows_per_rack}, {maximum_rows_per_rack}]")
        if margin < 0:
            raise ValueError(f"margin must be non-negative, got {margin}")

        self.foundation = foundation
        self.field = field
        self.pv_model = pv_model
        self.row_axis = row_axis
        self.orientation = orientation
        self.margin = margin
        self.minimum_tilt_angle = minimum_tilt_angle
        self.maximum_tilt_angle = maximum_tilt_angle
        self.minimum_inter_row_spacing = minimum_inter_row_spacing
        self.maximum_inter_row_spacing = maximum_inter_row_spacing
        self.minimum_rows_per_rack = minimum_rows_per_rack
        self.maximum_rows_per_rack = maximum_rows_per_rack
        self.feasible_window = feasible_window
        self.objective_function_type = ObjectiveFunctionType(objective_function_type)

        self.bounds: Rectangle = field.bounds()
        self.solar_rack_count = 0
        self.solar_panel_count = 0

    # ------------------------------------------------------------------
    # gene mapping
    # ------------------------------------------------------------------

    def to_design_units(self, position: np.ndarray) -> np.ndarray:
        """Normalized genes → (tilt radians, spacing meters, rows per rack)."""
        p = np.asarray(position, dtype=float)
        tilt = p[0] * (self.maximum_tilt_angle - self.minimum_tilt_angle) + self.minimum_tilt_angle
        spacing = p[1] * (self.maximum_inter_row_spacing - self.minimum_inter_row_spacing) \
            + self.minimum_inter_row_spacing
        # every integer in the range gets an equal share of [0, 1)
        count = self.maximum_rows_per_rack - self.minimum_rows_per_rack + 1
        rows = np.floor(p[2] * count) + self.minimum_rows_per_rack
        rows = min(max(rows, self.minimum_rows_per_rack), self.maximum_rows_per_rack)
        return np.array([tilt, spacing, rows])

    def to_display(self, position: np.ndarray) -> np.ndarray:
        """Like to_design_units but with the tilt in degrees (for tables and plots)."""
        design = self.to_design_units(position)
        design[0] = np.degrees(design[0])
        return design

    @staticmethod
    def constraint_point(design: np.ndarray) -> Tuple[float, float]:
        return float(np.degrees(design[0])), float(design[1])

    def _module_depth(self) -> float:
        return self.pv_model.length if self.orientation is Orientation.portrait else self.pv_model.width

    def _module_run(self) -> float:
        return self.pv_model.width if self.orientation is Orientation.portrait else self.pv_model.length

    def initial_position(self) -> Optional[np.ndarray]:
        """
        Normalized genes of the racks currently on the foundation.

        Needs at least two racks (the spacing is read from the first pair);
        returns None otherwise.
        """
        racks = self.foundation.solar_panels
        if len(racks) < 2:
            return None
        first, second = racks[0], racks[1]
        tilt = (first.tilt_angle - self.minimum_tilt_angle) / (self.maximum_tilt_angle - self.minimum_tilt_angle)
        if self.row_axis is RowAxis.meridional:
            spacing = abs(first.cx - second.cx)
        else:
            spacing = abs(first.cy - second.cy)
        spacing = (spacing - self.minimum_inter_row_spacing) / \
            (self.maximum_inter_row_spacing - self.minimum_inter_row_spacing)
        rows = max(1, round(first.ly / self._module_depth()))
        count = self.maximum_rows_per_rack - self.minimum_rows_per_rack + 1
        rows = (rows - self.minimum_rows_per_rack + 0.5) / count
        return np.clip(np.array([tilt, spacing, rows], dtype=float), 0.0, np.nextafter(1.0, 0.0))

    # ------------------------------------------------------------------
    # layout
    # ------------------------------------------------------------------

    def layout(self, tilt_angle: float, inter_row_spacing: float, rows_per_rack: int) -> List[SolarPanel]:
        """
        Fill the field bounds with racks.

        Returns:
        --------
        List[SolarPanel]
            New racks (ids 'rack-0', 'rack-1', ...); also updates
            solar_rack_count and solar_panel_count
        """
        rows_per_rack = int(rows_per_rack)
        depth = rows_per_rack * self._module_depth()
        footprint = depth * abs(np.cos(tilt_angle))
        b = self.bounds
        m = self.margin

        if self.row_axis is RowAxis.meridional:
            run_length = b.height - 2 * m
            stack_min, stack_max = b.min_x + m, b.max_x - m
        else:
            run_length = b.width - 2 * m
            stack_min, stack_max = b.min_y + m, b.max_y - m
        run_center = b.center[1] if self.row_axis is RowAxis.meridional else b.center[0]

        racks: List[SolarPanel] = []
        modules_per_row = int(np.floor(run_length / self._module_run())) if run_length > 0 else 0
        if modules_per_row > 0:
            position = stack_min + 0.5 * footprint
            while position + 0.5 * footprint <= stack_max + 1e-9:
                if self.row_axis is RowAxis.meridional:
                    cx, cy, lx, ly = position, run_center, depth, run_length
                else:
                    cx, cy, lx, ly = run_center, position, run_length, depth
                racks.append(SolarPanel(
                    id=f'rack-{len(racks)}',
                    cx=cx,
                    cy=cy,
                    lx=lx,
                    ly=ly,
                    tilt_angle=float(tilt_angle),
                    orientation=self.orientation,
                ))
                position += inter_row_spacing

        self.solar_rack_count = len(racks)
        self.solar_panel_count = len(racks) * modules_per_row * rows_per_rack
        return racks

    def translate(self, position: np.ndarray) -> List[SolarPanel]:
        tilt, spacing, rows = self.to_design_units(position)
        return self.layout(tilt, spacing, int(rows))

    def apply_best(self, best_position: np.ndarray) -> None:
        """Replace the foundation's racks with the winning layout."""
        racks = self.translate(best_position)
        self.foundation.solar_panels = racks
        logger.info(
            "Applied layout %s: rack count %d, panel count %d",
            self.describe(self.to_design_units(best_position)),
            self.solar_rack_count, self.solar_panel_count,
        )

    def describe(self, design: np.ndarray, fitness: Optional[float] = None) -> str:
        s = f'F({np.degrees(design[0]):.3f}°, {design[1]:.3f}m, {int(design[2])})'
        if fitness is None:
            return s
        return f'{s} = {fitness:.5f} {self.objective_function_type.unit}'

    def build_optimizer(
        self,
        simulate: Callable[[List[SolarPanel]], float],
        params: Optional[PsoParams] = None,
        rng: Optional[np.random.Generator] = None,
        seed_current_design: bool = True,
    ) -> OptimizerPso:
        """
        Wire this problem into an optimizer.

        simulate receives the racks of a candidate layout and returns its
        fitness (or an awaitable of it).
        """
        def evaluate(design: np.ndarray):
            tilt, spacing, rows = design
            return simulate(self.layout(tilt, spacing, int(rows)))

        optimizer = OptimizerPso(
            evaluate,
            self,
            self.dimension,
            params,
            rng=rng,
            constraint=self.feasible_window,
            to_design_units=self.to_design_units,
            constraint_point=self.constraint_point,
            describe=self.describe,
        )
        if seed_current_design:
            initial = self.initial_position()
            if initial is not None:
                optimizer.seed_initial_position(initial)
        return optimizer
