# sunswarm/kernel/swarm.py
"""
SWARM: A Fixed-Size Population of Particles
===========================================

PURPOSE:
--------
The swarm owns the particles of one run plus the best position/fitness that
ANY of them has observed. It also owns the "nominal convergence" test.

NOMINAL CONVERGENCE:
--------------------
A cheap proxy for "the front of the population has stopped spreading out".
It does NOT look at fitness. For each dimension i:

    m     = min(max(2, size // 2), size)      first m particles, by index
    mean  = average of position[i] over those m particles
    fail  if any |position[i] / mean - 1| > threshold

When mean == 0 the relative test would divide by zero, so the absolute
deviation |position[i] - mean| is compared against the threshold instead.

The sample is the first m particles in population order, not the fittest m.
"""

from typing import Iterator, List, Optional

import numpy as np

from .fitness import UNEVALUATED, Fitness
from .particle import Particle, fittest


class Swarm:
    """
    Population of particles plus the swarm-wide best.

    Parameters:
    -----------
    size : int
        Number of particles (fixed for the run, must be positive)
    dimension : int
        Number of design variables (must be positive)
    rng : np.random.Generator
        Random source passed to every particle
    """

    def __init__(self, size: int, dimension: int, rng: np.random.Generator):
        if size <= 0:
            raise ValueError(f"size must be positive, got {size}")
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.particles: List[Particle] = [Particle(dimension, rng) for _ in range(size)]
        self.best_position = np.zeros(dimension)
        self.best_fitness: Fitness = UNEVALUATED

    @property
    def size(self) -> int:
        return len(self.particles)

    @property
    def dimension(self) -> int:
        return len(self.best_position)

    def __len__(self) -> int:
        return len(self.particles)

    def __iter__(self) -> Iterator[Particle]:
        return iter(self.particles)

    def fittest(self) -> Optional[Particle]:
        return fittest(self.particles)

    def update_bests(self) -> bool:
        """
        Absorb the latest round of fitness scores.

        Every evaluated particle that beat its own record moves its personal
        best to its current position. The fittest particle then replaces the
        swarm best if it beats it.

        Returns:
            True if the swarm best improved
        """
        for p in self.particles:
            p.absorb_fitness()

        best = self.fittest()
        if best is None:
            return False
        if self.best_fitness is UNEVALUATED or best.fitness > self.best_fitness:
            self.best_position = best.position.copy()
            self.best_fitness = best.fitness
            return True
        return False

    def is_nominally_converged(self, convergence_threshold: float) -> bool:
        m = min(max(2, self.size // 2), self.size)
        front = np.array([p.position for p in self.particles[:m]])
        for i in range(self.dimension):
            values = front[:, i]
            mean = values.mean()
            if mean == 0:
                deviation = np.abs(values - mean)
            else:
                deviation = np.abs(values / mean - 1.0)
            if np.any(deviation > convergence_threshold):
                return False
        return True

    def copy(self) -> "Swarm":
        """Deep copy used for step snapshots."""
        clone = Swarm.__new__(Swarm)
        clone.particles = [p.copy() for p in self.particles]
        clone.best_position = self.best_position.copy()
        clone.best_fitness = self.best_fitness
        return clone

    def positions(self) -> np.ndarray:
        """(size, dimension) array of current positions."""
        return np.array([p.position for p in self.particles])

    def __repr__(self) -> str:
        fit = "unevaluated" if self.best_fitness is UNEVALUATED else f"{self.best_fitness:.5g}"
        return f"Swarm(size={self.size}, dimension={self.dimension}, best_fitness={fit})"
