"""
Headless Battle Runner.

Runs battles to completion and searches for the lowest Elf attack power
at which every Elf survives.
"""

import sys
import time
from pathlib import Path
from typing import Dict

from sim.state import (
    BattleState, CombatNotResolvedError, SimulationError,
    ELF, FACTION_NAMES, DEFAULT_ELF_ATTACK_POWER, SEARCH_START_POWER,
)
from sim.mechanics import run_round
from sim.env import BattleEnv
from sim.logger import BattleLogger


def outcome(state: BattleState, rounds: int) -> int:
    """Completed rounds times the sum of the survivors' hitpoints."""
    return rounds * state.total_hitpoints()


def run_combat(state: BattleState, max_rounds: int = None) -> int:
    """
    Run rounds until one ends early because a unit found no enemy left.

    Mutates state in place and returns the number of completed rounds.
    """
    rounds = 0
    while True:
        if max_rounds is not None and rounds >= max_rounds:
            raise CombatNotResolvedError(f"combat not resolved after {rounds} rounds")

        if not run_round(state)["completed"]:
            return rounds
        rounds += 1


def run_battle(
    map_text: str,
    elf_attack_power: int = DEFAULT_ELF_ATTACK_POWER,
    max_rounds: int = None,
    stop_on_elf_death: bool = False,
    logger: BattleLogger = None,
    map_name: str = None,
    verbose: bool = False
) -> Dict:
    """
    Run a single battle.

    Args:
        map_text: ASCII battle map
        elf_attack_power: Attack power of every Elf
        max_rounds: Raise CombatNotResolvedError after this many full rounds
        stop_on_elf_death: Give up as soon as an Elf dies (result has "aborted": True)
        logger: Optional battle logger
        map_name: Name recorded in the log
        verbose: Print the board after every round

    Returns:
        Battle statistics dict
    """
    env = BattleEnv(map_text, elf_attack_power=elf_attack_power, max_rounds=max_rounds)
    env.reset()

    if logger:
        logger.start_battle(map_name=map_name, elf_attack_power=elf_attack_power)

    if verbose:
        print(env.render_text())

    done = False
    aborted = False
    while not done:
        done, truncated, info = env.step()

        if logger:
            logger.log_round(info["round_result"], env.state)

        if verbose:
            print()
            print(env.render_text())

        if truncated:
            if logger:
                logger.end_battle({"truncated": True, **env.state.summary()})
            raise CombatNotResolvedError(
                f"combat not resolved after {env.state.rounds_completed} rounds"
            )

        if stop_on_elf_death and env.elf_deaths > 0 and not done:
            aborted = True
            break

    result = {
        "elf_attack_power": elf_attack_power,
        "rounds": env.state.rounds_completed,
        "hp_total": env.state.total_hitpoints(),
        "outcome": env.outcome(),
        "winner": env.state.get_winner(),
        "elves_start": env.initial_elves,
        "elves_end": env.state.count(ELF),
        "elf_deaths": env.elf_deaths,
        "aborted": aborted,
    }

    if logger:
        logger.end_battle(result)

    return result


def find_minimum_elf_power(
    map_text: str,
    start_power: int = SEARCH_START_POWER,
    max_power: int = None,
    max_rounds: int = None,
    logger: BattleLogger = None,
    map_name: str = None,
    verbose: bool = False
) -> Dict:
    """
    Raise Elf attack power one step at a time until no Elf dies.

    Every trial starts from a freshly parsed map. A trial stops as soon as
    an Elf falls, since it can no longer succeed.

    Returns:
        The winning battle's statistics dict
    """
    power = start_power
    while True:
        if max_power is not None and power > max_power:
            raise CombatNotResolvedError(
                f"no Elf attack power up to {max_power} keeps every Elf alive"
            )

        result = run_battle(
            map_text,
            elf_attack_power=power,
            max_rounds=max_rounds,
            stop_on_elf_death=True,
            logger=logger,
            map_name=map_name,
        )

        if verbose:
            status = "elves survive" if result["elf_deaths"] == 0 else "an elf dies"
            print(f"  power {power}: {status}")

        if result["elf_deaths"] == 0:
            return result

        power += 1


def simulate(map_text: str, elf_attack_power: int = DEFAULT_ELF_ATTACK_POWER) -> int:
    """Outcome of a battle at a fixed Elf attack power."""
    return run_battle(map_text, elf_attack_power=elf_attack_power)["outcome"]


def simulate_elves_survive(map_text: str) -> int:
    """Outcome of the battle at the lowest power where every Elf survives."""
    return find_minimum_elf_power(map_text)["outcome"]


def print_result(result: Dict):
    winner = FACTION_NAMES.get(result["winner"], "Nobody")
    print(f"\nResults (Elf attack power {result['elf_attack_power']}):")
    print(f"  Winner: {winner}")
    print(f"  Full rounds: {result['rounds']}")
    print(f"  Hitpoints left: {result['hp_total']}")
    print(f"  Elves lost: {result['elf_deaths']} of {result['elves_start']}")
    print(f"  Outcome: {result['outcome']}")


def main(argv=None):
    """Run a battle from a map file."""
    import argparse

    parser = argparse.ArgumentParser(description="Simulate an Elves vs Goblins grid battle")
    parser.add_argument("map", type=str, help="Path to the battle map")
    parser.add_argument("--elf-power", type=int, default=DEFAULT_ELF_ATTACK_POWER,
                        help="Elf attack power for a single battle")
    parser.add_argument("--search", action="store_true",
                        help="Find the lowest Elf attack power at which no Elf dies")
    parser.add_argument("--max-rounds", type=int, default=None, help="Give up after this many full rounds")
    parser.add_argument("--max-power", type=int, default=None, help="Highest Elf attack power to try with --search")
    parser.add_argument("--log-dir", type=str, default=None, help="Write JSONL battle logs to this directory")
    parser.add_argument("--verbose", action="store_true", help="Print the board after every round")

    args = parser.parse_args(argv)

    print("=" * 60)
    print("Elves vs Goblins")
    print("=" * 60)

    logger = BattleLogger(log_dir=args.log_dir) if args.log_dir else None
    map_name = Path(args.map).name

    start_time = time.time()
    try:
        map_text = Path(args.map).read_text(encoding="utf-8")

        if args.search:
            print(f"\nSearching Elf attack power from {SEARCH_START_POWER}...")
            result = find_minimum_elf_power(
                map_text,
                max_power=args.max_power,
                max_rounds=args.max_rounds,
                logger=logger,
                map_name=map_name,
                verbose=args.verbose,
            )
        else:
            result = run_battle(
                map_text,
                elf_attack_power=args.elf_power,
                max_rounds=args.max_rounds,
                logger=logger,
                map_name=map_name,
                verbose=args.verbose,
            )
    except (SimulationError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    elapsed = time.time() - start_time

    print_result(result)
    print(f"\nDone in {elapsed:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
