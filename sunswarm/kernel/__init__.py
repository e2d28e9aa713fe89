# sunswarm/kernel - Problem-agnostic swarm core
"""
KERNEL: THE PROBLEM-AGNOSTIC FOUNDATION
=======================================

Particles and swarms know nothing about solar panels. They live in a
normalized [0, 1)^d box and only need:
- a random source
- fitness values supplied from outside

The PROBLEMS (tilt angle, array layout) map that box to design units;
the kernel plumbing is the same for every one of them.
"""

from .fitness import UNEVALUATED, InvalidFitnessError, UnevaluatedFitnessError
from .particle import Particle
from .swarm import Swarm

__all__ = [
    'UNEVALUATED',
    'InvalidFitnessError',
    'UnevaluatedFitnessError',
    'Particle',
    'Swarm',
]
