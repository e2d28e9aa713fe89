# SolarPanel, PvModel, Foundation (dataclasses) - the host design model the optimizer writes into

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional


class Orientation(Enum):
    landscape = 'Landscape'
    portrait = 'Portrait'


class RowAxis(Enum):
    zonal = 'Zonal'            # rows run east-west, stacked along y
    meridional = 'Meridional'  # rows run north-south, stacked along x


@dataclass(frozen=True)
class PvModel:
    """PV module datasheet dimensions (meters)."""
    name: str
    width: float
    length: float


@dataclass
class SolarPanel:
    """
    A solar panel rack on a foundation.

    cx, cy are the rack center in meters relative to the foundation center;
    lx, ly its extents; tilt_angle is in radians.
    """
    id: str
    cx: float
    cy: float
    lx: float
    ly: float
    tilt_angle: float = 0.0
    orientation: Orientation = Orientation.landscape
    label: Optional[str] = None

    def copy(self) -> "SolarPanel":
        return replace(self)


@dataclass
class Foundation:
    """Foundation slab carrying solar panels. lx, ly in meters."""
    id: str
    lx: float
    ly: float
    solar_panels: List[SolarPanel] = field(default_factory=list)


DEFAULT_PV_MODEL = PvModel(name='SPR-X21-335-BLK', width=1.046, length=1.558)
