# sunswarm/config.py
"""
Run configuration and defaults for particle swarm optimization.

Stored run settings are kept compact: ``to_dict(compress=True)`` drops every
field that still has its default value and ``from_dict`` fills them back in.
"""

from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, Dict, Optional


class SearchMethod(IntEnum):
    """How particles move once velocities are updated."""
    GLOBAL_SEARCH_UNIFORM_SELECTION = 1
    LOCAL_SEARCH_RANDOM_OPTIMIZATION = 2


class ObjectiveFunctionType(IntEnum):
    """What the host's fitness callback measures."""
    DAILY_TOTAL_OUTPUT = 1
    YEARLY_TOTAL_OUTPUT = 2
    DAILY_AVERAGE_OUTPUT = 3
    YEARLY_AVERAGE_OUTPUT = 4
    DAILY_PROFIT = 5
    YEARLY_PROFIT = 6

    @property
    def unit(self) -> str:
        if self in (ObjectiveFunctionType.DAILY_PROFIT, ObjectiveFunctionType.YEARLY_PROFIT):
            return 'dollars'
        return 'kWh'


_ENUM_FIELDS = {
    'search_method': SearchMethod,
    'objective_function_type': ObjectiveFunctionType,
}


@dataclass
class PsoParams:
    """
    Settings for one optimization run.

    Swarm:
    ------
    swarm_size : int
        Number of particles
    maximum_steps : int
        Hard cap on the number of steps (generations)

    Convergence:
    ------------
    convergence_threshold : float
        Relative spread below which the swarm counts as nominally converged

    Motion:
    -------
    search_method : SearchMethod
        Global search or local search around the swarm best
    local_search_radius : float
        Ball radius (normalized units) used by local search
    vmax : Optional[float]
        Per-component velocity clamp (None disables it)
    inertia, cognitive_coefficient, social_coefficient : float
        The w, c1, c2 of the velocity update

    Constraint handling:
    --------------------
    max_constraint_retries : int
        Random resamples tried when a constraint rejects a candidate

    Misc:
    -----
    objective_function_type : ObjectiveFunctionType
        What the fitness means (used for units in reports)
    seed : Optional[int]
        Seed for the default random generator
    """
    swarm_size: int = 20
    maximum_steps: int = 5
    convergence_threshold: float = 0.01
    search_method: SearchMethod = SearchMethod.GLOBAL_SEARCH_UNIFORM_SELECTION
    local_search_radius: float = 0.1
    vmax: Optional[float] = 0.01
    inertia: float = 0.8
    cognitive_coefficient: float = 0.1
    social_coefficient: float = 0.1
    max_constraint_retries: int = 10
    objective_function_type: ObjectiveFunctionType = ObjectiveFunctionType.DAILY_TOTAL_OUTPUT
    seed: Optional[int] = field(default=None)

    def __post_init__(self):
        self.search_method = SearchMethod(self.search_method)
        self.objective_function_type = ObjectiveFunctionType(self.objective_function_type)

    def validate(self) -> "PsoParams":
        """Raise ValueError for settings a run cannot use. Returns self."""
        if self.swarm_size <= 0:
            raise ValueError(f"swarm_size must be positive, got {self.swarm_size}")
        if self.maximum_steps <= 0:
            raise ValueError(f"maximum_steps must be positive, got {self.maximum_steps}")
        if self.convergence_threshold < 0:
            raise ValueError(f"convergence_threshold must be non-negative, got {self.convergence_threshold}")
        if self.local_search_radius <= 0:
            raise ValueError(f"local_search_radius must be positive, got {self.local_search_radius}")
        if self.vmax is not None and self.vmax <= 0:
            raise ValueError(f"vmax must be positive or None, got {self.vmax}")
        if self.max_constraint_retries < 0:
            raise ValueError(f"max_constraint_retries must be non-negative, got {self.max_constraint_retries}")
        return self

    def to_dict(self, compress: bool = False) -> Dict[str, Any]:
        """
        Plain-dict form (enums become ints, so it is JSON friendly).

        With compress=True, fields equal to their default are left out.
        """
        defaults = PsoParams()
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if compress and value == getattr(defaults, f.name):
                continue
            if f.name in _ENUM_FIELDS:
                value = int(value)
            result[f.name] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PsoParams":
        """Inverse of to_dict(); missing fields take their defaults, unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown PSO parameter(s): {sorted(unknown)}")
        return cls(**data)


DEFAULT_PARAMS = PsoParams()
