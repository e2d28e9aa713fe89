# sunswarm/optimizer.py
"""
OPTIMIZER: THE PARTICLE SWARM DRIVER
====================================

PURPOSE:
--------
Turn a swarm and a fitness callback into a search. One call to step() is one
generation:

    1. Map each particle to design units, reject infeasible candidates
       (resample, then fall back to the last feasible position)
    2. Evaluate the whole batch through the host's callback
    3. Update personal and swarm bests
    4. Record snapshots (swarm, best position, best fitness)
    5. Move every particle (velocity + position update)
    6. Run the nominal convergence test
    7. Decide whether the run is over

STATE MACHINE:
--------------
    RUNNING ──▶ CONVERGED    nominal convergence reached    apply_best() called
            ──▶ EXHAUSTED    step budget used up            apply_best() called
            ──▶ STOPPED      stop() requested               no write-back
            ──▶ FAILED       evaluator raised               no write-back, error re-raised

stop() is cooperative: it is honoured between steps. A step already waiting
on its evaluation batch finishes first.

VELOCITY UPDATE:
----------------
    v ← w·v + c1·r1·(personal_best − x) + c2·r2·(swarm_best − x)
    v ← clip(v, −vmax, vmax)                     (when vmax is set)
    x ← clamp(x + v, [0, 1))

Local search aims at x + v projected into the ball of radius
local_search_radius around swarm_best, and moves at most that radius toward
it. Particles already inside the ball stay inside; particles outside close in
by at most one radius per step. The stored velocity is the move made.

WRITE-BACK:
-----------
The optimizer never knows what the numbers mean. The result writer injected
at construction (anything with apply_best(best_position)) maps the winning
normalized position back into the host model, exactly once per run.
"""

import asyncio
import inspect
import logging
import threading
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from .config import PsoParams, SearchMethod
from .constraints import Constraint
from .history import StepLog, history_to_dataframe
from .kernel.fitness import check_fitness, is_evaluated
from .kernel.swarm import Swarm

logger = logging.getLogger(__name__)

# largest float strictly below 1.0, so clamped positions stay in [0, 1)
_UPPER = float(np.nextafter(1.0, 0.0))

Evaluator = Callable[[np.ndarray], Union[float, Awaitable[float]]]


class OptimizerStateError(RuntimeError):
    """Raised when the optimizer is driven in a way its state does not allow."""
    pass


class RunState(Enum):
    RUNNING = 'running'
    CONVERGED = 'converged'
    EXHAUSTED = 'exhausted'
    STOPPED = 'stopped'
    FAILED = 'failed'


class ResultWriter(Protocol):
    """Writes the winning normalized position back into the host model."""

    def apply_best(self, best_position: np.ndarray) -> None:
        ...


def clamp_unit(x: np.ndarray) -> np.ndarray:
    return np.clip(x, 0.0, _UPPER)


def default_constraint_point(design_position: np.ndarray) -> Tuple[float, float]:
    """First two design coordinates; one-dimensional problems use y = 0."""
    x = float(design_position[0])
    y = float(design_position[1]) if len(design_position) > 1 else 0.0
    return x, y


def default_describe(design_position: np.ndarray, fitness: float) -> str:
    values = ', '.join(f'{v:.3f}' for v in np.asarray(design_position, dtype=float))
    return f'F({values}) = {fitness:.5f}'


class OptimizerPso:
    """
    Constrained particle swarm optimizer.

    Parameters:
    -----------
    evaluate : Callable[[np.ndarray], float | Awaitable[float]]
        Fitness of a position in design units. Higher is better. Errors propagate.
    result_writer : ResultWriter
        Receives the best normalized position once the run completes normally
    dimension : int
        Number of design variables
    params : Optional[PsoParams]
        Run settings (defaults if None)
    rng : Optional[np.random.Generator]
        Random source; default is np.random.default_rng(params.seed)
    constraint : Optional[Constraint]
        Feasibility test applied before evaluation
    to_design_units : Optional[Callable]
        Maps a normalized position to design units (identity by default)
    constraint_point : Optional[Callable]
        Maps a design-unit position to the (x, y) point the constraint checks
    describe : Optional[Callable]
        Formats (design_position, fitness) for log messages

    Example:
    --------
    >>> class Keep:
    ...     def apply_best(self, best_position):
    ...         self.best = best_position
    >>> opt = OptimizerPso(lambda x: -float(np.sum((x - 0.3) ** 2)), Keep(), dimension=2,
    ...                    params=PsoParams(swarm_size=10, maximum_steps=20, seed=1))
    >>> state = opt.run()
    >>> state in (RunState.CONVERGED, RunState.EXHAUSTED)
    True
    """

    def __init__(
        self,
        evaluate: Evaluator,
        result_writer: ResultWriter,
        dimension: int,
        params: Optional[PsoParams] = None,
        *,
        rng: Optional[np.random.Generator] = None,
        constraint: Optional[Constraint] = None,
        to_design_units: Optional[Callable[[np.ndarray], np.ndarray]] = None,
        constraint_point: Optional[Callable[[np.ndarray], Tuple[float, float]]] = None,
        describe: Optional[Callable[[np.ndarray, float], str]] = None,
    ):
        self.params = (params if params is not None else PsoParams()).validate()
        self.evaluate = evaluate
        self.result_writer = result_writer
        self.rng = rng if rng is not None else np.random.default_rng(self.params.seed)
        self.constraint = constraint
        self.to_design_units = to_design_units if to_design_units is not None else (lambda x: x.copy())
        self.constraint_point = constraint_point if constraint_point is not None else default_constraint_point
        self.describe = describe if describe is not None else default_describe

        self.swarm = Swarm(self.params.swarm_size, dimension, self.rng)

        self.maximum_steps = self.params.maximum_steps
        self.convergence_threshold = self.params.convergence_threshold
        self.search_method = self.params.search_method
        self.local_search_radius = self.params.local_search_radius

        self.outside_step_counter = 0
        self.compute_counter = 0
        self.step_count = 0
        self.converged = False
        self.state = RunState.RUNNING

        self.best_position_of_steps: StepLog[np.ndarray] = StepLog(self.maximum_steps + 1, 'best_position_of_steps')
        self.best_fitness_of_steps: StepLog[float] = StepLog(self.maximum_steps + 1, 'best_fitness_of_steps')
        self.swarm_of_steps: StepLog[Swarm] = StepLog(self.maximum_steps, 'swarm_of_steps')

        # last position of each particle that passed the constraint and was scored
        self._last_feasible: List[Optional[np.ndarray]] = [None] * self.swarm.size
        self._stop_requested = threading.Event()
        self._lock = threading.Lock()
        self._in_step = False

    # ------------------------------------------------------------------
    # convenience views
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return self.swarm.dimension

    @property
    def best_position(self) -> np.ndarray:
        return self.swarm.best_position.copy()

    @property
    def best_fitness(self) -> Optional[float]:
        return self.swarm.best_fitness

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING

    def should_terminate(self) -> bool:
        return self.outside_step_counter >= self.maximum_steps

    def seed_initial_position(self, position: Sequence[float]) -> None:
        """Place an existing design as particle 0 before the first step."""
        if self.step_count > 0:
            raise OptimizerStateError("Initial position can only be seeded before the first step")
        position = np.asarray(position, dtype=float)
        if position.shape != (self.dimension,):
            raise ValueError(f"Expected a position of length {self.dimension}, got shape {position.shape}")
        first = self.swarm.particles[0]
        first.position = clamp_unit(position)
        first.best_position = first.position.copy()

    def describe_best(self) -> str:
        if not is_evaluated(self.swarm.best_fitness):
            return 'no evaluated particle yet'
        return self.describe(self.to_design_units(self.swarm.best_position.copy()), self.swarm.best_fitness)

    # ------------------------------------------------------------------
    # cancellation
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """
        Request cancellation. Safe to call from another thread.

        Between steps the run moves to STOPPED at once; during a step the
        current batch completes first. A finished run is left as it is.
        """
        with self._lock:
            self._stop_requested.set()
            if self.state is RunState.RUNNING and not self._in_step:
                self.state = RunState.STOPPED
                logger.info("Optimization stopped after %d step(s)", self.step_count)

    # ------------------------------------------------------------------
    # one step
    # ------------------------------------------------------------------

    def _is_feasible(self, position: np.ndarray) -> bool:
        if self.constraint is None:
            return True
        x, y = self.constraint_point(self.to_design_units(position.copy()))
        return bool(self.constraint.contains(x, y))

    def _select_candidates(self) -> List[int]:
        """
        Apply the constraint to every particle.

        Returns the indices of particles to evaluate this step. A rejected
        particle gets up to max_constraint_retries uniform resamples; if none
        is feasible it returns to its last feasible position and keeps that
        fitness without a new evaluation.
        """
        selected = []
        for i, particle in enumerate(self.swarm.particles):
            if self._is_feasible(particle.position):
                selected.append(i)
                continue
            for _ in range(self.params.max_constraint_retries):
                candidate = self.rng.random(self.dimension)
                if self._is_feasible(candidate):
                    particle.position = candidate
                    selected.append(i)
                    break
            else:
                prior = self._last_feasible[i]
                if prior is not None:
                    particle.position = prior.copy()
                    logger.warning(
                        "Step %d, particle %d: no feasible candidate after %d retries, keeping prior position",
                        self.step_count + 1, i, self.params.max_constraint_retries,
                    )
                else:
                    logger.warning(
                        "Step %d, particle %d: no feasible candidate after %d retries, skipped this step",
                        self.step_count + 1, i, self.params.max_constraint_retries,
                    )
        return selected

    def _enter_step(self) -> bool:
        """
        Claim the next step. Returns False if the run was stopped, so the
        run loops can end quietly when stop() lands between their state
        check and the step itself.
        """
        with self._lock:
            if self.state is RunState.STOPPED:
                return False
            if self.state is not RunState.RUNNING:
                raise OptimizerStateError(f"Cannot step an optimizer in state {self.state.value!r}")
            self._in_step = True
            return True

    def _prepare_batch(self) -> Tuple[List[int], List[np.ndarray]]:
        indices = self._select_candidates()
        designs = [self.to_design_units(self.swarm.particles[i].position.copy()) for i in indices]
        return indices, designs

    def _fail(self, error: Exception) -> None:
        with self._lock:
            self.state = RunState.FAILED
            self._in_step = False
        logger.error("Evaluation failed at step %d: %s", self.step_count + 1, error)

    def _evaluate_batch(self, designs: List[np.ndarray]) -> List[Any]:
        scores = []
        for design in designs:
            score = self.evaluate(design)
            if inspect.isawaitable(score):
                if inspect.iscoroutine(score):
                    score.close()
                raise OptimizerStateError("Evaluator returned an awaitable; use astep()/run_async()")
            scores.append(score)
        return scores

    def _complete_step(self, indices: List[int], raw_scores: Sequence[Any]) -> None:
        # validate the whole batch before touching any particle
        scores = [check_fitness(s) for s in raw_scores]
        step = self.step_count
        particles = self.swarm.particles

        for i, score in zip(indices, scores):
            particle = particles[i]
            particle.fitness = score
            self._last_feasible[i] = particle.position.copy()
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Step %d, particle %d : %s", step + 1, i,
                    self.describe(self.to_design_units(particle.position.copy()), score),
                )
        self.compute_counter += len(indices)

        if step == 0:
            self._record_baseline(indices)

        self.swarm.update_bests()
        self.swarm_of_steps.record(step, self.swarm.copy())
        if is_evaluated(self.swarm.best_fitness):
            self.best_position_of_steps.record(step + 1, self.swarm.best_position)
            self.best_fitness_of_steps.record(step + 1, self.swarm.best_fitness)

        self._move_swarm()

        if self.swarm.is_nominally_converged(self.convergence_threshold):
            self.outside_step_counter = 0
            self.converged = True
        else:
            self.outside_step_counter += 1

        self.step_count += 1
        logger.debug(
            "Step %d done: %d evaluation(s), best %s, outside steps %d",
            self.step_count, len(indices), self.describe_best(), self.outside_step_counter,
        )

        with self._lock:
            self._in_step = False
            if self._stop_requested.is_set():
                self.state = RunState.STOPPED
                logger.info("Optimization stopped after %d step(s)", self.step_count)
                return
        if self.converged:
            self._finish(RunState.CONVERGED)
        elif self.should_terminate() or self.step_count >= self.maximum_steps:
            self._finish(RunState.EXHAUSTED)

    def _record_baseline(self, indices: List[int]) -> None:
        """Slot 0: the first particle of the first step, the fittest of the 'zeroth' swarm."""
        if not indices:
            return
        # indices are ascending, so this is particle 0 whenever it was scored
        first = self.swarm.particles[indices[0]]
        self.best_position_of_steps.record(0, first.position)
        self.best_fitness_of_steps.record(0, first.fitness)

    def _move_swarm(self) -> None:
        p = self.params
        local = self.search_method is SearchMethod.LOCAL_SEARCH_RANDOM_OPTIMIZATION
        # without any scored particle there is no swarm best to be attracted to
        has_swarm_best = is_evaluated(self.swarm.best_fitness)
        swarm_best = self.swarm.best_position

        for particle in self.swarm.particles:
            r1 = self.rng.random(self.dimension)
            r2 = self.rng.random(self.dimension)
            velocity = (
                p.inertia * particle.velocity
                + p.cognitive_coefficient * r1 * (particle.best_position - particle.position)
            )
            if has_swarm_best:
                velocity += p.social_coefficient * r2 * (swarm_best - particle.position)
            if p.vmax is not None:
                velocity = np.clip(velocity, -p.vmax, p.vmax)

            if local:
                before = particle.position
                particle.position = self._local_move(before, velocity, swarm_best if has_swarm_best else None)
                # the velocity is the move actually made
                particle.velocity = particle.position - before
            else:
                particle.velocity = velocity
                particle.position = clamp_unit(particle.position + velocity)

    def _local_move(self, position: np.ndarray, velocity: np.ndarray,
                    center: Optional[np.ndarray]) -> np.ndarray:
        """
        Local search move: aim at position + velocity projected into the ball
        around the swarm best, then travel at most local_search_radius
        toward that target. A particle already in the ball stays in it.
        """
        radius = self.local_search_radius
        target = position + velocity
        if center is not None:
            offset = target - center
            distance = np.linalg.norm(offset)
            if distance > radius:
                target = center + offset * (radius / distance)
        step = target - position
        length = np.linalg.norm(step)
        if length > radius:
            step = step * (radius / length)
        return clamp_unit(position + step)

    def _finish(self, state: RunState) -> None:
        self.state = state
        if state is RunState.CONVERGED:
            logger.info("Converged after %d step(s), %d evaluation(s)", self.step_count, self.compute_counter)
        else:
            logger.info("Maximum number of steps reached (%d), %d evaluation(s)", self.step_count, self.compute_counter)
        if not is_evaluated(self.swarm.best_fitness):
            logger.warning("No particle was ever evaluated; nothing to apply")
            return
        logger.info("Best: %s", self.describe_best())
        self.result_writer.apply_best(self.swarm.best_position.copy())

    def _run_step(self) -> None:
        try:
            indices, designs = self._prepare_batch()
            raw_scores = self._evaluate_batch(designs)
            self._complete_step(indices, raw_scores)
        except Exception as e:
            self._fail(e)
            raise

    async def _run_step_async(self) -> None:
        try:
            indices, designs = self._prepare_batch()
            raw_scores = await self._gather_batch(designs)
            self._complete_step(indices, raw_scores)
        except Exception as e:
            self._fail(e)
            raise

    async def _gather_batch(self, designs: List[np.ndarray]) -> List[Any]:
        """
        Start every evaluation, then await them together.

        If the evaluator raises while the batch is being started, the
        coroutines already created are closed. If one evaluation fails, the
        others are cancelled and collected before the error propagates.
        """
        pending = []
        try:
            for design in designs:
                pending.append(self.evaluate(design))
        except Exception:
            for result in pending:
                if inspect.iscoroutine(result):
                    result.close()
            raise

        tasks = [asyncio.ensure_future(_resolve(result)) for result in pending]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def step(self) -> RunState:
        """Run one generation with a synchronous evaluator. Returns the state afterwards."""
        if not self._enter_step():
            raise OptimizerStateError("Cannot step an optimizer in state 'stopped'")
        self._run_step()
        return self.state

    async def astep(self) -> RunState:
        """
        Run one generation, awaiting the evaluation batch as a unit.

        The evaluator may return floats or awaitables; all of them are
        gathered before any particle moves.
        """
        if not self._enter_step():
            raise OptimizerStateError("Cannot step an optimizer in state 'stopped'")
        await self._run_step_async()
        return self.state

    # ------------------------------------------------------------------
    # whole runs
    # ------------------------------------------------------------------

    def run(self, show_progress: bool = False) -> RunState:
        """
        Step until the run leaves RUNNING. Returns the terminal state.

        A stop() from another thread ends the loop with STOPPED, also when it
        arrives between two steps.
        """
        with tqdm(total=self.maximum_steps, desc="PSO", disable=not show_progress) as bar:
            while self.is_running:
                if not self._enter_step():
                    break
                self._run_step()
                bar.update(1)
                if is_evaluated(self.swarm.best_fitness):
                    bar.set_postfix(best=f'{self.swarm.best_fitness:.5g}')
        return self.state

    async def run_async(self, show_progress: bool = False) -> RunState:
        """Like run(), awaiting each step's evaluation batch."""
        with tqdm(total=self.maximum_steps, desc="PSO", disable=not show_progress) as bar:
            while self.is_running:
                if not self._enter_step():
                    break
                await self._run_step_async()
                bar.update(1)
                if is_evaluated(self.swarm.best_fitness):
                    bar.set_postfix(best=f'{self.swarm.best_fitness:.5g}')
        return self.state

    def history_dataframe(
        self,
        labels: Optional[Sequence[Optional[str]]] = None,
        transform: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    ) -> pd.DataFrame:
        """Per-step table of the run so far (see history.history_to_dataframe)."""
        return history_to_dataframe(
            self.best_position_of_steps,
            self.best_fitness_of_steps,
            self.swarm_of_steps,
            labels=labels,
            transform=transform,
        )


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
