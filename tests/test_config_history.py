# File: tests/test_config_history.py
"""
Test run settings (PsoParams) and the write-once step logs.
"""

import json

import numpy as np
import pytest

from sunswarm.config import DEFAULT_PARAMS, ObjectiveFunctionType, PsoParams, SearchMethod
from sunswarm.history import HistoryWriteError, StepLog, history_to_dataframe
from sunswarm.kernel import Swarm


# =============================================================================
# PSO PARAMS
# =============================================================================

def test_defaults():
    p = PsoParams()

    assert p.vmax == 0.01
    assert p.inertia == 0.8
    assert p.cognitive_coefficient == 0.1
    assert p.social_coefficient == 0.1
    assert p.search_method is SearchMethod.GLOBAL_SEARCH_UNIFORM_SELECTION
    assert p == DEFAULT_PARAMS


def test_compressed_dict_keeps_only_changes():
    """
    Default settings compress to nothing; changed ones survive, enums as ints.
    """
    assert PsoParams().to_dict(compress=True) == {}

    p = PsoParams(swarm_size=30, search_method=SearchMethod.LOCAL_SEARCH_RANDOM_OPTIMIZATION)
    assert p.to_dict(compress=True) == {'swarm_size': 30, 'search_method': 2}

    full = p.to_dict()
    assert full['objective_function_type'] == 1
    assert len(full) == 12


def test_dict_round_trip_through_json():
    p = PsoParams(maximum_steps=40, vmax=None, local_search_radius=0.2,
                  objective_function_type=ObjectiveFunctionType.YEARLY_PROFIT, seed=7)

    restored = PsoParams.from_dict(json.loads(json.dumps(p.to_dict(compress=True))))

    assert restored == p
    assert restored.objective_function_type is ObjectiveFunctionType.YEARLY_PROFIT
    assert restored.objective_function_type.unit == 'dollars'


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ValueError, match="population"):
        PsoParams.from_dict({'population': 10})


def test_enum_coercion():
    p = PsoParams(search_method=2, objective_function_type=4)

    assert p.search_method is SearchMethod.LOCAL_SEARCH_RANDOM_OPTIMIZATION
    assert p.objective_function_type.unit == 'kWh'
    with pytest.raises(ValueError):
        PsoParams(search_method=3)


@pytest.mark.parametrize("kwargs", [
    {'swarm_size': 0},
    {'maximum_steps': 0},
    {'convergence_threshold': -0.1},
    {'local_search_radius': 0.0},
    {'vmax': -1.0},
    {'max_constraint_retries': -1},
])
def test_validate_rejects_bad_settings(kwargs):
    with pytest.raises(ValueError):
        PsoParams(**kwargs).validate()


# =============================================================================
# STEP LOG
# =============================================================================

def test_step_log_write_once():
    log = StepLog(3, 'best_fitness_of_steps')

    assert len(log) == 3
    assert log.count == 0
    assert log[1] is None

    log.record(1, 2.5)
    assert log[1] == 2.5
    assert log.count == 1
    assert log.to_list() == [None, 2.5, None]

    with pytest.raises(HistoryWriteError):
        log.record(1, 3.0)
    assert log[1] == 2.5


def test_step_log_bounds():
    log = StepLog(2)

    with pytest.raises(IndexError):
        log.record(2, 1.0)
    with pytest.raises(IndexError):
        log.record(-1, 1.0)
    with pytest.raises(IndexError):
        log[5]
    with pytest.raises(ValueError):
        log.record(0, None)


def test_step_log_freezes_arrays():
    """
    The recorded array is a read-only copy: later changes to the source do
    not leak in, and the slot cannot be edited in place.
    """
    log = StepLog(1)
    source = np.array([0.1, 0.2])
    log.record(0, source)
    source[0] = 0.9

    stored = log[0]
    np.testing.assert_array_equal(stored, [0.1, 0.2])
    with pytest.raises(ValueError):
        stored[0] = 0.5


def test_step_log_hands_out_swarm_copies():
    log = StepLog(1)
    swarm = Swarm(3, 2, np.random.default_rng(0))
    log.record(0, swarm)

    first = log[0]
    first.particles[0].position[:] = 0.0

    assert not np.all(log[0].particles[0].position == 0.0)
    assert [i for i, _ in log.written()] == [0]


# =============================================================================
# DATAFRAME EXPORT
# =============================================================================

def test_history_to_dataframe_columns_and_transform():
    """
    Two steps of a 2-particle, 1-variable run:

        Step | Tilt | Objective | Individual1 | Individual2
        0    | ...  | baseline  | NaN         | NaN
        1    | ...  | ...       | swarm of step 0
        2    | ...  | ...       | swarm of step 1
    """
    rng = np.random.default_rng(0)
    positions, fitness, swarms = StepLog(3), StepLog(3), StepLog(2)
    for step in range(3):
        positions.record(step, np.array([0.25 * (step + 1)]))
        fitness.record(step, float(step))
    for step in range(2):
        swarm = Swarm(2, 1, rng)
        swarm.particles[0].position = np.array([0.1 * (step + 1)])
        swarm.particles[1].position = np.array([0.5])
        swarms.record(step, swarm)

    df = history_to_dataframe(positions, fitness, swarms, labels=['Tilt'], transform=lambda p: 100.0 * np.asarray(p))

    assert list(df.columns) == ['Step', 'Tilt', 'Objective', 'Individual1', 'Individual2']
    np.testing.assert_allclose(df['Tilt'], [25.0, 50.0, 75.0])
    np.testing.assert_allclose(df['Objective'], [0.0, 1.0, 2.0])
    assert np.isnan(df.loc[0, 'Individual1'])
    np.testing.assert_allclose(df.loc[1, ['Individual1', 'Individual2']].astype(float), [10.0, 50.0])
    np.testing.assert_allclose(df.loc[2, ['Individual1', 'Individual2']].astype(float), [20.0, 50.0])


def test_history_to_dataframe_empty():
    df = history_to_dataframe(StepLog(3), StepLog(3), StepLog(2))
    assert len(df) == 0
