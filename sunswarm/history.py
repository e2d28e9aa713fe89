# sunswarm/history.py
"""
HISTORY: Write-Once Step Logs for Replay and Plotting
=====================================================

PURPOSE:
--------
Every step of a run leaves a trace that graphs, replays and undo need:

    best_position_of_steps[0 .. maximum_steps]     (slot 0 = baseline)
    best_fitness_of_steps [0 .. maximum_steps]
    swarm_of_steps        [0 .. maximum_steps - 1]

A StepLog is a fixed-capacity array of slots. A slot reads as None until the
step that owns it runs; after that it is frozen. Writing a slot twice, or
outside the capacity, is an error.

TABLE EXPORT:
-------------
history_to_dataframe() flattens the logs into one row per populated best
slot, the shape the evolution graph consumes:

    Step | <variable columns> | Objective | Individual1 | Individual2 | ...
"""

import copy
from typing import Callable, Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar

import numpy as np
import pandas as pd

T = TypeVar('T')


class HistoryWriteError(RuntimeError):
    """Raised when a history slot is written twice."""
    pass


class StepLog(Generic[T]):
    """
    Fixed-capacity, write-once log indexed by step number.

    Parameters:
    -----------
    capacity : int
        Number of slots
    name : str
        Used in error messages
    """

    def __init__(self, capacity: int, name: str = 'log'):
        if capacity < 0:
            raise ValueError(f"capacity must be non-negative, got {capacity}")
        self.name = name
        self._slots: List[Optional[T]] = [None] * capacity

    @property
    def capacity(self) -> int:
        return len(self._slots)

    @property
    def count(self) -> int:
        """Number of written slots."""
        return sum(1 for s in self._slots if s is not None)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._slots):
            raise IndexError(f"{self.name}: step {index} outside [0, {len(self._slots)})")

    def record(self, index: int, value: T) -> None:
        """Write a snapshot into an empty slot."""
        self._check_index(index)
        if value is None:
            raise ValueError(f"{self.name}: cannot record None at step {index}")
        if self._slots[index] is not None:
            raise HistoryWriteError(f"{self.name}: step {index} has already been recorded")
        if isinstance(value, np.ndarray):
            value = value.copy()
            value.setflags(write=False)
        self._slots[index] = value

    def __getitem__(self, index: int) -> Optional[T]:
        self._check_index(index)
        value = self._slots[index]
        # hand out copies of mutable snapshots so the log stays frozen
        if value is not None and not isinstance(value, (np.ndarray, float, int)):
            return copy.deepcopy(value)
        return value

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[Optional[T]]:
        for i in range(len(self._slots)):
            yield self[i]

    def written(self) -> Iterator[Tuple[int, T]]:
        """(step, snapshot) pairs for populated slots, in step order."""
        for i, value in enumerate(self._slots):
            if value is not None:
                yield i, self[i]

    def to_list(self) -> List[Optional[T]]:
        """Dense list with None for unexecuted slots."""
        return list(self)

    def __repr__(self) -> str:
        return f"StepLog({self.name!r}, {self.count}/{self.capacity} written)"


def history_to_dataframe(
    best_position_of_steps: StepLog,
    best_fitness_of_steps: StepLog,
    swarm_of_steps: StepLog,
    labels: Optional[Sequence[Optional[str]]] = None,
    transform: Optional[Callable[[np.ndarray], np.ndarray]] = None,
) -> pd.DataFrame:
    """
    Flatten run history into a table, one row per populated best slot.

    Parameters:
    -----------
    best_position_of_steps, best_fitness_of_steps, swarm_of_steps : StepLog
        Logs kept by the optimizer
    labels : Optional[Sequence[Optional[str]]]
        Column name per variable; blank or missing labels fall back to Var1, Var2, ...
    transform : Optional[Callable]
        Maps a normalized position to display units (e.g. degrees). Identity by default.

    Returns:
    --------
    pd.DataFrame
        Columns: Step, one per variable, Objective, then Individual1.. for the
        swarm that produced that best (row 0 is the baseline and has none)
    """
    if transform is None:
        transform = lambda position: np.asarray(position)

    rows = []
    for step, position in best_position_of_steps.written():
        values = np.asarray(transform(position), dtype=float)
        row = {'Step': step}
        for k, v in enumerate(values):
            key = f'Var{k + 1}'
            if labels is not None and k < len(labels) and labels[k] and labels[k].strip():
                key = labels[k].strip()
            row[key] = v
        row['Objective'] = best_fitness_of_steps[step] if step < best_fitness_of_steps.capacity else None

        # the swarm of step s produced the best recorded at slot s + 1
        if step > 0 and step - 1 < swarm_of_steps.capacity:
            swarm = swarm_of_steps[step - 1]
            if swarm is not None:
                counter = 0
                for particle in swarm.particles:
                    for v in np.asarray(transform(particle.position), dtype=float):
                        counter += 1
                        row[f'Individual{counter}'] = v
        rows.append(row)

    return pd.DataFrame(rows)
