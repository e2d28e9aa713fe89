# File: tests/test_optimizer.py
"""
Test the PSO driver end to end.

WHY THESE TESTS?
---------------
The driver owns everything a host relies on:
1. Termination (convergence or step budget) and a single write-back
2. Cancellation that never leaves a half-written step behind
3. Evaluator failures that stop the run without corrupting history
4. Positions that never leave [0, 1), whatever the coefficients
5. Constraints that keep infeasible candidates away from the evaluator
6. Identical trajectories for sync and asyncio evaluators
"""

import asyncio
import inspect

import numpy as np
import pytest

from sunswarm.config import PsoParams, SearchMethod
from sunswarm.constraints import RectangularBound
from sunswarm.kernel import InvalidFitnessError
from sunswarm.optimizer import OptimizerPso, OptimizerStateError, RunState


class RecordingWriter:
    """Result writer that remembers every write-back."""

    def __init__(self):
        self.calls = []

    def apply_best(self, best_position):
        self.calls.append(np.array(best_position, copy=True))


def sphere(x):
    """Maximum 0 at x = (0.3, 0.3, ...)."""
    return -float(np.sum((np.asarray(x) - 0.3) ** 2))


# =============================================================================
# TERMINATION
# =============================================================================

def test_step_budget_exhaustion():
    """
    Constant objective, tiny threshold: the swarm never converges, so the run
    ends after exactly maximum_steps steps with one write-back.
    """
    writer = RecordingWriter()
    params = PsoParams(swarm_size=6, maximum_steps=5, convergence_threshold=1e-12, seed=3)
    opt = OptimizerPso(lambda x: 1.0, writer, dimension=2, params=params)

    state = opt.run()

    assert state is RunState.EXHAUSTED
    assert opt.step_count == 5
    assert opt.outside_step_counter == 5
    assert opt.should_terminate()
    assert opt.converged is False
    assert opt.compute_counter == 30
    assert len(writer.calls) == 1
    np.testing.assert_array_equal(writer.calls[0], opt.best_position)

    assert opt.best_position_of_steps.count == 6
    assert opt.best_fitness_of_steps.count == 6
    assert opt.swarm_of_steps.count == 5

    print(f"✓ Exhausted after {opt.step_count} steps, {opt.compute_counter} evaluations")


def test_single_particle_converges_on_first_step():
    """
    A swarm of one is always nominally converged.
    """
    writer = RecordingWriter()
    params = PsoParams(swarm_size=1, maximum_steps=10, seed=0)
    opt = OptimizerPso(sphere, writer, dimension=2, params=params)

    assert opt.step() is RunState.CONVERGED
    assert opt.converged is True
    assert opt.outside_step_counter == 0
    assert len(writer.calls) == 1


def test_finds_optimum_of_sphere():
    """
    Unclamped velocities and standard coefficients reach the peak at 0.3.
    """
    writer = RecordingWriter()
    params = PsoParams(
        swarm_size=20, maximum_steps=60, convergence_threshold=1e-9,
        vmax=None, inertia=0.7, cognitive_coefficient=1.5, social_coefficient=1.5, seed=11,
    )
    opt = OptimizerPso(sphere, writer, dimension=2, params=params)

    state = opt.run()

    assert state in (RunState.CONVERGED, RunState.EXHAUSTED)
    np.testing.assert_allclose(opt.best_position, [0.3, 0.3], atol=0.05)
    assert opt.best_fitness > -0.005
    assert len(writer.calls) == 1


def test_best_fitness_is_monotonic():
    """
    The swarm best never gets worse, step by step and in the log.
    """
    params = PsoParams(swarm_size=8, maximum_steps=15, convergence_threshold=1e-12,
                       vmax=None, inertia=0.7, cognitive_coefficient=1.5, social_coefficient=1.5, seed=4)
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=3, params=params)

    seen = []
    while opt.is_running:
        opt.step()
        seen.append(opt.best_fitness)

    assert all(b >= a for a, b in zip(seen, seen[1:]))
    logged = [f for _, f in opt.best_fitness_of_steps.written()][1:]
    assert all(b >= a for a, b in zip(logged, logged[1:]))


def test_positions_stay_in_unit_box():
    """
    Aggressive coefficients and no velocity clamp: positions are still
    clamped into [0, 1) after every step.
    """
    params = PsoParams(swarm_size=10, maximum_steps=20, convergence_threshold=1e-12,
                       vmax=None, inertia=1.5, cognitive_coefficient=2.0, social_coefficient=2.0, seed=9)
    opt = OptimizerPso(lambda x: float(x[0] - x[1]), RecordingWriter(), dimension=2, params=params)

    while opt.is_running:
        opt.step()
        positions = opt.swarm.positions()
        assert np.all(positions >= 0.0)
        assert np.all(positions < 1.0)

    print("✓ All positions stayed inside [0, 1)")


def test_velocity_clamp():
    params = PsoParams(swarm_size=5, maximum_steps=3, convergence_threshold=1e-12,
                       vmax=0.02, inertia=1.0, cognitive_coefficient=2.0, social_coefficient=2.0, seed=2)
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=4, params=params)

    while opt.is_running:
        opt.step()
        for particle in opt.swarm:
            assert np.all(np.abs(particle.velocity) <= 0.02 + 1e-15)


def test_local_search_step_length():
    """
    Local search, checked on every move of every particle:

    - the move is never longer than local_search_radius
    - the stored velocity is exactly the move that was made
    - a particle never ends up further from the swarm best than
      max(radius, where it started)

    The recorded swarm of a step holds the positions before that step's
    move (no constraint, so nothing is resampled in between).
    """
    radius = 0.05
    params = PsoParams(swarm_size=8, maximum_steps=10, convergence_threshold=1e-12,
                       search_method=SearchMethod.LOCAL_SEARCH_RANDOM_OPTIMIZATION,
                       local_search_radius=radius, vmax=None,
                       inertia=1.0, cognitive_coefficient=2.0, social_coefficient=2.0, seed=6)
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2, params=params)

    while opt.is_running:
        step = opt.step_count
        opt.step()
        before = opt.swarm_of_steps[step].positions()
        after = opt.swarm.positions()
        center = opt.swarm.best_position

        moves = np.linalg.norm(after - before, axis=1)
        assert np.all(moves <= radius + 1e-12)
        for k, particle in enumerate(opt.swarm):
            np.testing.assert_allclose(particle.velocity, after[k] - before[k], atol=1e-15)
            limit = max(radius, np.linalg.norm(before[k] - center))
            assert np.linalg.norm(after[k] - center) <= limit + 1e-12

    print("✓ Every local search move stayed within the radius")


def test_local_search_keeps_particles_in_the_ball():
    """
    Once a particle is within the radius of the swarm best it stays there
    for that move.
    """
    radius = 0.3
    params = PsoParams(swarm_size=6, maximum_steps=8, convergence_threshold=1e-12,
                       search_method=SearchMethod.LOCAL_SEARCH_RANDOM_OPTIMIZATION,
                       local_search_radius=radius, vmax=None,
                       inertia=1.0, cognitive_coefficient=2.0, social_coefficient=2.0, seed=3)
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2, params=params)

    while opt.is_running:
        step = opt.step_count
        opt.step()
        before = opt.swarm_of_steps[step].positions()
        center = opt.swarm.best_position
        for k, particle in enumerate(opt.swarm):
            if np.linalg.norm(before[k] - center) <= radius:
                assert np.linalg.norm(particle.position - center) <= radius + 1e-12


# =============================================================================
# CANCELLATION
# =============================================================================

def test_stop_during_evaluation():
    """
    stop() called from inside step 2's batch: the batch completes, the step
    is recorded, then the run is STOPPED with no write-back.
    """
    writer = RecordingWriter()
    params = PsoParams(swarm_size=5, maximum_steps=10, convergence_threshold=1e-12, seed=1)
    holder = {}
    calls = []

    def evaluate(x):
        calls.append(x)
        if len(calls) == 7:
            holder['opt'].stop()
        return sphere(x)

    opt = OptimizerPso(evaluate, writer, dimension=2, params=params)
    holder['opt'] = opt

    state = opt.run()

    assert state is RunState.STOPPED
    assert opt.step_count == 2
    assert opt.compute_counter == 10
    assert opt.swarm_of_steps.count == 2
    assert opt.best_position_of_steps.count == 3
    assert writer.calls == []

    print("✓ Stop honoured at the step boundary")


def test_stop_between_steps():
    writer = RecordingWriter()
    params = PsoParams(swarm_size=4, maximum_steps=10, convergence_threshold=1e-12, seed=1)
    opt = OptimizerPso(sphere, writer, dimension=2, params=params)

    opt.step()
    opt.stop()

    assert opt.state is RunState.STOPPED
    assert opt.is_running is False
    with pytest.raises(OptimizerStateError):
        opt.step()
    assert opt.step_count == 1
    assert writer.calls == []


class StopsAfterStateCheck(OptimizerPso):
    """
    Calls stop() right after the run loop has seen RUNNING, the way a UI
    thread can land between the loop's state check and the next step.
    """

    stop_at_step = 2

    @property
    def is_running(self):
        running = super().is_running
        if running and self.step_count == self.stop_at_step:
            self.stop()
        return running


def test_stop_between_state_check_and_step():
    writer = RecordingWriter()
    params = PsoParams(swarm_size=4, maximum_steps=10, convergence_threshold=1e-12, seed=1)
    opt = StopsAfterStateCheck(sphere, writer, dimension=2, params=params)

    state = opt.run()

    assert state is RunState.STOPPED
    assert opt.step_count == 2
    assert opt.swarm_of_steps.count == 2
    assert writer.calls == []


def test_stop_between_state_check_and_step_async():
    writer = RecordingWriter()
    params = PsoParams(swarm_size=4, maximum_steps=10, convergence_threshold=1e-12, seed=1)
    opt = StopsAfterStateCheck(sphere, writer, dimension=2, params=params)

    state = asyncio.run(opt.run_async())

    assert state is RunState.STOPPED
    assert opt.step_count == 2
    assert writer.calls == []


def test_stop_before_run():
    writer = RecordingWriter()
    opt = OptimizerPso(sphere, writer, dimension=2, params=PsoParams(swarm_size=3, seed=1))
    opt.stop()

    assert opt.run() is RunState.STOPPED
    assert opt.step_count == 0
    assert opt.compute_counter == 0


def test_stop_after_finish_keeps_state():
    writer = RecordingWriter()
    opt = OptimizerPso(sphere, writer, dimension=2,
                       params=PsoParams(swarm_size=4, maximum_steps=2, convergence_threshold=1e-12, seed=1))
    opt.run()
    opt.stop()

    assert opt.state is RunState.EXHAUSTED
    assert len(writer.calls) == 1


def test_step_after_finish_raises():
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=3, maximum_steps=1, seed=1))
    opt.run()

    with pytest.raises(OptimizerStateError):
        opt.step()


# =============================================================================
# FAILURES
# =============================================================================

def test_evaluator_failure_marks_run_failed():
    """
    An exception in step 2 propagates. Step 1's history is intact, step 2
    left nothing behind and nothing was written back.
    """
    writer = RecordingWriter()
    params = PsoParams(swarm_size=5, maximum_steps=10, convergence_threshold=1e-12, seed=8)
    calls = []

    def evaluate(x):
        calls.append(x)
        if len(calls) == 7:
            raise RuntimeError("simulation crashed")
        return sphere(x)

    opt = OptimizerPso(evaluate, writer, dimension=2, params=params)

    with pytest.raises(RuntimeError, match="simulation crashed"):
        opt.run()

    assert opt.state is RunState.FAILED
    assert opt.step_count == 1
    assert opt.compute_counter == 5
    assert opt.swarm_of_steps.count == 1
    assert opt.best_position_of_steps.count == 2
    assert opt.swarm_of_steps[1] is None
    assert writer.calls == []

    with pytest.raises(OptimizerStateError):
        opt.step()


@pytest.mark.parametrize("bad_score", [None, float('nan'), float('inf'), -np.inf, "1.0"])
def test_invalid_fitness_is_rejected(bad_score):
    opt = OptimizerPso(lambda x: bad_score, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=3, maximum_steps=3, seed=0))

    with pytest.raises(InvalidFitnessError):
        opt.step()

    assert opt.state is RunState.FAILED
    assert opt.compute_counter == 0
    assert all(p.fitness is None for p in opt.swarm)


def test_sync_step_rejects_async_evaluator():
    async def evaluate(x):
        return sphere(x)

    opt = OptimizerPso(evaluate, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=3, maximum_steps=3, seed=0))

    with pytest.raises(OptimizerStateError):
        opt.step()
    assert opt.state is RunState.FAILED


# =============================================================================
# CONSTRAINTS
# =============================================================================

def test_constraint_keeps_evaluations_feasible():
    """
    Only the left half of the box (x < 0.5) is feasible: the evaluator never
    sees anything else.
    """
    seen = []

    def evaluate(x):
        seen.append(np.array(x))
        return sphere(x)

    params = PsoParams(swarm_size=10, maximum_steps=8, convergence_threshold=1e-12,
                       vmax=None, inertia=0.9, cognitive_coefficient=1.5, social_coefficient=1.5,
                       max_constraint_retries=50, seed=5)
    bound = RectangularBound(0.25, 0.5, 0.5, 2.0)
    opt = OptimizerPso(evaluate, RecordingWriter(), dimension=2, params=params, constraint=bound)

    opt.run()

    assert seen
    for x in seen:
        assert 0.0 < x[0] < 0.5
    assert opt.best_position[0] < 0.5


def test_constraint_with_no_feasible_region():
    """
    Nothing is ever feasible: every particle is skipped, the evaluator is
    never called, the run still ends, and nothing is written back.
    """
    calls = []
    writer = RecordingWriter()
    params = PsoParams(swarm_size=4, maximum_steps=3, convergence_threshold=1e-12,
                       max_constraint_retries=3, seed=0)
    opt = OptimizerPso(lambda x: calls.append(x) or 0.0, writer, dimension=2, params=params,
                       constraint=RectangularBound(0.5, 0.5, 0.0, 0.0))

    state = opt.run()

    assert state is RunState.EXHAUSTED
    assert calls == []
    assert opt.compute_counter == 0
    assert opt.best_fitness is None
    assert opt.best_position_of_steps.count == 0
    assert opt.swarm_of_steps.count == 3
    assert writer.calls == []


def test_constraint_point_and_design_mapping():
    """
    The constraint sees the design-unit point produced by constraint_point,
    not the raw normalized position.
    """
    checked = []

    class Spy:
        def contains(self, x, y):
            checked.append((x, y))
            return True

    opt = OptimizerPso(
        lambda x: 0.0, RecordingWriter(), dimension=3,
        params=PsoParams(swarm_size=2, maximum_steps=1, seed=0),
        constraint=Spy(),
        to_design_units=lambda p: 10.0 * p,
        constraint_point=lambda d: (d[2], d[0]),
    )
    opt.step()

    for (x, y), particle in zip(checked, opt.swarm_of_steps[0].particles):
        assert x == pytest.approx(10.0 * particle.position[2])
        assert y == pytest.approx(10.0 * particle.position[0])


# =============================================================================
# SEEDING AND HISTORY
# =============================================================================

def test_seeded_position_is_baseline():
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=4, maximum_steps=3, seed=0))
    opt.seed_initial_position([0.9, 0.1])
    opt.step()

    np.testing.assert_array_equal(opt.best_position_of_steps[0], [0.9, 0.1])
    assert opt.best_fitness_of_steps[0] == pytest.approx(sphere([0.9, 0.1]))

    with pytest.raises(OptimizerStateError):
        opt.seed_initial_position([0.5, 0.5])


def test_seed_rejects_wrong_length():
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2, params=PsoParams(seed=0))
    with pytest.raises(ValueError):
        opt.seed_initial_position([0.5, 0.5, 0.5])


def test_swarm_snapshot_matches_its_fitness():
    """
    A recorded swarm holds the positions that were evaluated, each paired
    with its score.
    """
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=5, maximum_steps=3, convergence_threshold=1e-12, seed=12))
    opt.run()

    for _, swarm in opt.swarm_of_steps.written():
        for particle in swarm.particles:
            assert particle.fitness == pytest.approx(sphere(particle.position))


def test_history_dataframe_shape():
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=3, maximum_steps=4, convergence_threshold=1e-12, seed=1))
    opt.run()

    df = opt.history_dataframe(labels=['tilt', ' '])

    assert list(df['Step']) == [0, 1, 2, 3, 4]
    assert {'tilt', 'Var2', 'Objective', 'Individual1', 'Individual6'} <= set(df.columns)
    assert 'Individual7' not in df.columns
    assert np.isnan(df.loc[0, 'Individual1'])
    assert df['Objective'].iloc[-1] == pytest.approx(opt.best_fitness)


def test_describe_best():
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=3, maximum_steps=2, seed=1))
    assert opt.describe_best() == 'no evaluated particle yet'

    opt.step()
    assert opt.describe_best().startswith('F(')


# =============================================================================
# ASYNC
# =============================================================================

def test_async_run_matches_sync_run():
    """
    Same seed, same objective: awaiting the evaluator changes nothing about
    the trajectory.
    """
    params = PsoParams(swarm_size=6, maximum_steps=6, convergence_threshold=1e-12, seed=21)

    async def evaluate_async(x):
        await asyncio.sleep(0)
        return sphere(x)

    sync_opt = OptimizerPso(sphere, RecordingWriter(), dimension=3, params=params)
    async_opt = OptimizerPso(evaluate_async, RecordingWriter(), dimension=3, params=params)

    sync_state = sync_opt.run()
    async_state = asyncio.run(async_opt.run_async())

    assert sync_state is async_state
    np.testing.assert_array_equal(sync_opt.best_position, async_opt.best_position)
    for (_, a), (_, b) in zip(sync_opt.swarm_of_steps.written(), async_opt.swarm_of_steps.written()):
        np.testing.assert_array_equal(a.positions(), b.positions())


def test_async_batch_is_evaluated_concurrently():
    """
    Every evaluation waits until all of the batch has started. This only
    finishes if the batch is gathered rather than awaited one by one.
    """
    size = 5
    opt_holder = {}

    async def main():
        started = []
        all_started = asyncio.Event()

        async def evaluate(x):
            started.append(x)
            if len(started) == size:
                all_started.set()
            await all_started.wait()
            return sphere(x)

        opt = OptimizerPso(evaluate, RecordingWriter(), dimension=2,
                           params=PsoParams(swarm_size=size, maximum_steps=3, convergence_threshold=1e-12, seed=0))
        opt_holder['opt'] = opt
        return await asyncio.wait_for(opt.astep(), timeout=5.0)

    state = asyncio.run(main())

    assert state is RunState.RUNNING
    assert opt_holder['opt'].compute_counter == size


def test_async_accepts_plain_float_evaluator():
    opt = OptimizerPso(sphere, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=3, maximum_steps=2, seed=0))
    state = asyncio.run(opt.run_async())

    assert state in (RunState.CONVERGED, RunState.EXHAUSTED)
    assert opt.compute_counter > 0


def test_async_evaluator_raising_while_batch_starts():
    """
    The evaluator hands out coroutines, then raises for the third candidate.
    The error propagates and the two coroutines already created are closed
    rather than left un-awaited.
    """
    created = []

    async def score(x):
        return sphere(x)

    def evaluate(x):
        if len(created) == 2:
            raise RuntimeError("simulation unavailable")
        coroutine = score(x)
        created.append(coroutine)
        return coroutine

    opt = OptimizerPso(evaluate, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=4, maximum_steps=3, seed=0))

    with pytest.raises(RuntimeError, match="simulation unavailable"):
        asyncio.run(opt.run_async())

    assert opt.state is RunState.FAILED
    assert len(created) == 2
    assert all(inspect.getcoroutinestate(c) == inspect.CORO_CLOSED for c in created)


def test_async_failure_cancels_sibling_evaluations():
    """
    One evaluation fails while the others are still waiting: the waiting
    ones are cancelled and collected, and the failure reaches the caller.
    """
    cancelled = []
    calls = []

    async def evaluate(x):
        calls.append(x)
        index = len(calls)
        if index == 1:
            await asyncio.sleep(0)
            raise RuntimeError("simulation crashed")
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.append(index)
            raise
        return sphere(x)

    opt = OptimizerPso(evaluate, RecordingWriter(), dimension=2,
                       params=PsoParams(swarm_size=4, maximum_steps=3, seed=0))

    async def main():
        with pytest.raises(RuntimeError, match="simulation crashed"):
            await asyncio.wait_for(opt.astep(), timeout=5.0)

    asyncio.run(main())

    assert sorted(cancelled) == [2, 3, 4]
    assert opt.state is RunState.FAILED
    assert opt.compute_counter == 0
    assert opt.swarm_of_steps.count == 0
