#!/usr/bin/env python3
"""
RUN_TILT_ANGLE_PSO: Optimize Rack Tilt Angles with Particle Swarm
=================================================================

This demo shows the tilt angle workflow on a small rooftop:
1. Place a few racks on a foundation (all flat to start)
2. Score a set of tilts with a toy daily-output model
3. Let the swarm search for better tilts
4. Write the winner back into the racks
5. Plot convergence and export a swarm replay

The toy model is NOT a solar simulation: each rack yields more the closer it
is to the latitude tilt, and racks behind a steeply tilted neighbour lose
some output to shading.

Run with:
    python demos/run_tilt_angle_pso.py

Outputs:
    artifacts/tilt_angle_history.csv     - Best design per step
    artifacts/tilt_angle_convergence.png - Convergence plot
    artifacts/tilt_angle_replay.html     - Interactive swarm replay
"""

import logging
import os
import sys
from pathlib import Path

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sunswarm.config import ObjectiveFunctionType, PsoParams
from sunswarm.logging_config import setup_logging
from sunswarm.model import Foundation, SolarPanel
from sunswarm.problems import SolarPanelTiltAngleProblem
from sunswarm.viz import create_swarm_replay_figure, plot_convergence, save_swarm_replay

LATITUDE = np.radians(42.3)


def print_header(text: str):
    """Print a formatted section header."""
    print("\n" + "=" * 70)
    print(f"  {text}")
    print("=" * 70)


def daily_output(panels) -> float:
    """Toy daily output in kWh for a row of racks, front to back."""
    total = 0.0
    for k, sp in enumerate(panels):
        kwh = 40.0 * np.cos(sp.tilt_angle - LATITUDE)
        if k > 0:
            shade = 0.25 * abs(np.sin(panels[k - 1].tilt_angle))
            kwh *= 1.0 - shade
        total += kwh
    return float(total)


def main():
    print_header("TILT ANGLE OPTIMIZATION")
    setup_logging(logging.INFO)

    # =========================================================================
    # STEP 1: HOST MODEL
    # =========================================================================
    print_header("STEP 1: Racks on a Foundation")

    foundation = Foundation(id='roof', lx=12.0, ly=20.0, solar_panels=[
        SolarPanel(id=f'rack-{k}', cx=0.0, cy=-8.0 + 4.0 * k, lx=10.0, ly=2.0, label=f'Row {k + 1}')
        for k in range(4)
    ])
    print(f"\n  {len(foundation.solar_panels)} racks, all flat")
    print(f"  Starting output: {daily_output(foundation.solar_panels):.2f} kWh")

    # =========================================================================
    # STEP 2: SEARCH
    # =========================================================================
    print_header("STEP 2: Particle Swarm Search")

    problem = SolarPanelTiltAngleProblem(foundation.solar_panels, ObjectiveFunctionType.DAILY_TOTAL_OUTPUT)
    params = PsoParams(
        swarm_size=20,
        maximum_steps=40,
        convergence_threshold=0.001,
        vmax=0.05,
        inertia=0.7,
        cognitive_coefficient=1.2,
        social_coefficient=1.2,
        seed=42,
    )
    print(f"\n  Settings: {params.to_dict(compress=True)}")

    optimizer = problem.build_optimizer(daily_output, params)
    state = optimizer.run(show_progress=True)

    print(f"\n  Finished: {state.value} after {optimizer.step_count} steps, "
          f"{optimizer.compute_counter} evaluations")

    # =========================================================================
    # STEP 3: RESULT
    # =========================================================================
    print_header("STEP 3: Applied Tilt Angles")

    for sp in foundation.solar_panels:
        print(f"    {sp.label}: {np.degrees(sp.tilt_angle):6.2f}°")
    print(f"\n  Final output: {daily_output(foundation.solar_panels):.2f} kWh")

    # =========================================================================
    # STEP 4: EXPORT
    # =========================================================================
    print_header("STEP 4: Export Results")

    os.makedirs("artifacts", exist_ok=True)
    df = optimizer.history_dataframe(labels=problem.labels, transform=problem.to_degrees)

    csv_path = "artifacts/tilt_angle_history.csv"
    df.to_csv(csv_path, index=False)
    print(f"\n  History CSV: {csv_path}")

    png_path = "artifacts/tilt_angle_convergence.png"
    plot_convergence(df, png_path, title="Tilt Angle Optimization",
                     objective_label=f"Daily output ({params.objective_function_type.unit})")

    html_path = "artifacts/tilt_angle_replay.html"
    fig = create_swarm_replay_figure(optimizer.swarm_of_steps, labels=problem.labels,
                                     transform=problem.to_degrees, title="Tilt Angle Swarm")
    save_swarm_replay(fig, html_path)

    return optimizer


if __name__ == "__main__":
    main()
