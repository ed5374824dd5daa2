#!/usr/bin/env python3
"""Run a small Townsfolk simulation and print per-tick results."""

import logging

from townsfolk.core.config import SimulationConfig
from townsfolk.core.engine import SimulationEngine


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    config = SimulationConfig(
        experiment_name="town",
        initial_population=16,
        random_seed=42,
    )
    ticks = 240

    print(f"=== Townsfolk: {config.experiment_name} ===")
    print(f"Population: {config.initial_population}")
    print(f"Ticks: {ticks} ({config.minutes_per_tick:g} min each)")
    print()

    engine = SimulationEngine(config)
    history = engine.run(ticks)

    print(f"{'Tick':>5} {'Pop':>4} {'Desp':>6} {'Aggr':>6} {'Break':>6} {'Energy':>6} "
          f"{'Food':>7} {'Heat':>6} {'Trauma':>6}  Top action")
    print("-" * 80)

    for snap in history[::20]:
        top = max(snap.action_counts.items(), key=lambda kv: kv[1])[0]
        ft = snap.field_totals
        print(
            f"{snap.tick:5d} {snap.population:4d} "
            f"{snap.mean_despair:6.3f} {snap.mean_aggression:6.3f} "
            f"{snap.mean_breakpoint:6.3f} {snap.mean_energy:6.3f} "
            f"{ft['food']:7.2f} {ft['heat']:6.2f} {ft['trauma']:6.2f}  {top}"
        )

    final = history[-1]
    print()
    print(f"=== Final State (t={engine.world_time:g} min) ===")
    print(f"Living: {final.population}")
    for kind in ("suicide_attempt", "murder_attempt", "trauma_inflicted"):
        total = sum(s.event_counts.get(kind, 0) for s in history)
        print(f"  {kind:20s}: {total}")

    print("\nAction mix (final tick):")
    for action, count in final.action_counts.items():
        print(f"  {action:12s}: {count}")

    dead = [e for e in engine.entities if not e.is_alive]
    if dead:
        print("\nDeaths:")
        for e in dead:
            by = f" by {e.killed_by}" if e.killed_by else ""
            print(f"  {e.name} ({e.id}): {e.cause_of_death}{by}")


if __name__ == "__main__":
    main()
