# sunswarm/kernel/particle.py
"""
PARTICLE: One Candidate Solution Plus Its Search Memory
=======================================================

A particle carries:
- position:       where it is now, normalized to [0, 1) per dimension
- velocity:       how it is moving
- best_position:  the best place it has personally seen
- fitness:        the score of the current position (None until scored)

The optimizer never destroys particles during a run; it mutates them in
place every step and takes deep copies for the history.

CONVENTION:
-----------
Higher fitness is better. Callers that want to minimize should negate their
objective before returning it.
"""

from typing import Optional

import numpy as np

from .fitness import UNEVALUATED, Fitness, UnevaluatedFitnessError, is_evaluated


class Particle:
    """
    A single particle of the swarm.

    Parameters:
    -----------
    dimension : int
        Number of design variables (must be positive)
    rng : np.random.Generator
        Random source for the initial position and velocity

    Example:
    --------
    >>> rng = np.random.default_rng(seed=42)
    >>> p = Particle(3, rng)
    >>> p.position.shape
    (3,)
    >>> p.fitness is None
    True
    """

    def __init__(self, dimension: int, rng: np.random.Generator):
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.position = rng.random(dimension)
        # with no evaluation history, the start is trivially the best seen
        self.best_position = self.position.copy()
        self.velocity = 0.1 * rng.standard_normal(dimension)
        self.fitness: Fitness = UNEVALUATED
        self.best_fitness: Fitness = UNEVALUATED

    @property
    def dimension(self) -> int:
        return len(self.position)

    def copy(self) -> "Particle":
        """Independent clone: no array is shared with the original."""
        clone = Particle.__new__(Particle)
        clone.position = self.position.copy()
        clone.best_position = self.best_position.copy()
        clone.velocity = self.velocity.copy()
        clone.fitness = self.fitness
        clone.best_fitness = self.best_fitness
        return clone

    def compare(self, other: "Particle") -> int:
        """
        Compare by fitness: +1 if self is fitter, -1 if other is, 0 if tied.

        Raises:
            UnevaluatedFitnessError: If either particle has not been scored
        """
        if not is_evaluated(self.fitness) or not is_evaluated(other.fitness):
            raise UnevaluatedFitnessError(
                "Cannot compare particles before both have been evaluated "
                f"(fitness {self.fitness!r} vs {other.fitness!r})"
            )
        if self.fitness > other.fitness:
            return 1
        if self.fitness < other.fitness:
            return -1
        return 0

    def absorb_fitness(self) -> bool:
        """Promote the current position to personal best if it improved. Returns True if it did."""
        if not is_evaluated(self.fitness):
            return False
        if self.best_fitness is UNEVALUATED or self.fitness > self.best_fitness:
            self.best_position = self.position.copy()
            self.best_fitness = self.fitness
            return True
        return False

    def reset_fitness(self) -> None:
        self.fitness = UNEVALUATED

    def __repr__(self) -> str:
        pos = np.array2string(self.position, precision=4, separator=', ')
        fit = "unevaluated" if self.fitness is UNEVALUATED else f"{self.fitness:.5g}"
        return f"Particle(position={pos}, fitness={fit})"


def fittest(particles) -> Optional[Particle]:
    """The fittest evaluated particle, or None if none has been scored."""
    best = None
    for p in particles:
        if not is_evaluated(p.fitness):
            continue
        if best is None or p.compare(best) > 0:
            best = p
    return best
