# sunswarm/kernel/fitness.py
"""Fitness values, the not-evaluated state, and the errors around them."""

import math
import numbers
from typing import Any, Optional

# A fitness that has not been computed yet. Evaluated fitness is always a
# finite float, so "not scored" is a distinct value rather than a magic NaN.
UNEVALUATED = None

Fitness = Optional[float]


class UnevaluatedFitnessError(RuntimeError):
    """Raised when fitness is compared before the host has scored it."""
    pass


class InvalidFitnessError(ValueError):
    """Raised when an evaluator returns something that is not a usable score."""
    pass


def is_evaluated(fitness: Fitness) -> bool:
    return fitness is not UNEVALUATED


def check_fitness(value: Any) -> float:
    """
    Validate a score returned by an evaluator.

    Returns:
        The score as a float

    Raises:
        InvalidFitnessError: If value is None, not a real number, NaN or infinite
    """
    if value is UNEVALUATED:
        raise InvalidFitnessError("Evaluator returned None, which is reserved for 'not evaluated'")
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidFitnessError(f"Evaluator must return a real number, got {type(value).__name__}: {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidFitnessError(f"Evaluator returned a non-finite score: {value!r}")
    return value
