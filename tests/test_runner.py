from __future__ import annotations

import pytest

from sim.mechanics import run_round
from sim.runner import (
    find_minimum_elf_power,
    main,
    outcome,
    run_battle,
    run_combat,
    simulate,
    simulate_elves_survive,
)
from sim.scenario import parse_map
from sim.state import CombatNotResolvedError, ELF, GOBLIN
from tests.maps import BATTLES, DUEL, ELF_POWER_SEARCHES, EXAMPLE_1


@pytest.mark.parametrize("map_text,rounds,hp_total,expected", BATTLES)
def test_run_combat_counts_full_rounds(map_text: str, rounds: int, hp_total: int, expected: int) -> None:
    state = parse_map(map_text)

    completed = run_combat(state)

    assert completed == rounds
    assert state.total_hitpoints() == hp_total
    assert outcome(state, completed) == expected


@pytest.mark.parametrize("map_text,rounds,hp_total,expected", BATTLES)
def test_simulate_at_default_power(map_text: str, rounds: int, hp_total: int, expected: int) -> None:
    assert simulate(map_text) == expected


def test_battle_ends_with_one_faction_wiped_out() -> None:
    state = parse_map(EXAMPLE_1)

    run_combat(state)

    assert state.count(ELF) == 0
    assert state.count(GOBLIN) == 4


def test_units_never_share_a_square_and_never_heal() -> None:
    state = parse_map(EXAMPLE_1)
    last_hp = {id(u): u.hp for u in state.units}

    while run_round(state)["completed"]:
        positions = [u.pos for u in state.units]
        assert len(positions) == len(set(positions))
        for unit in state.units:
            assert unit.hp <= last_hp[id(unit)]
            last_hp[id(unit)] = unit.hp


def test_run_battle_reports_statistics() -> None:
    result = run_battle(EXAMPLE_1)

    assert result == {
        "elf_attack_power": 3,
        "rounds": 47,
        "hp_total": 590,
        "outcome": 27730,
        "winner": GOBLIN,
        "elves_start": 2,
        "elves_end": 0,
        "elf_deaths": 2,
        "aborted": False,
    }


def test_duel_at_default_power() -> None:
    result = run_battle(DUEL)

    assert result["rounds"] == 67
    assert result["hp_total"] == 2
    assert result["outcome"] == 134
    assert result["winner"] == ELF


def test_stop_on_elf_death_gives_up_early() -> None:
    result = run_battle(EXAMPLE_1, stop_on_elf_death=True)

    assert result["aborted"]
    assert result["elf_deaths"] >= 1
    assert result["rounds"] < 47


def test_round_cap_raises() -> None:
    with pytest.raises(CombatNotResolvedError):
        run_combat(parse_map(EXAMPLE_1), max_rounds=10)
    with pytest.raises(CombatNotResolvedError):
        run_battle(EXAMPLE_1, max_rounds=47)

    assert run_battle(EXAMPLE_1, max_rounds=48)["outcome"] == 27730


@pytest.mark.parametrize("map_text,power,expected", ELF_POWER_SEARCHES)
def test_minimum_elf_power(map_text: str, power: int, expected: int) -> None:
    result = find_minimum_elf_power(map_text)

    assert result["elf_attack_power"] == power
    assert result["elf_deaths"] == 0
    assert result["outcome"] == expected


def test_search_result_matches_a_direct_battle_at_that_power() -> None:
    result = find_minimum_elf_power(EXAMPLE_1)

    direct = run_battle(EXAMPLE_1, elf_attack_power=result["elf_attack_power"])

    assert direct == result
    assert run_battle(EXAMPLE_1, elf_attack_power=result["elf_attack_power"] - 1)["elf_deaths"] > 0


def test_search_starts_at_four() -> None:
    result = find_minimum_elf_power(DUEL)

    assert result["elf_attack_power"] == 4
    assert result["outcome"] == 50 * 53
    assert simulate_elves_survive(DUEL) == 2650


def test_search_gives_up_past_max_power() -> None:
    with pytest.raises(CombatNotResolvedError):
        find_minimum_elf_power(EXAMPLE_1, max_power=14)


def test_cli_runs_a_battle(tmp_path, capsys) -> None:
    path = tmp_path / "example.txt"
    path.write_text(EXAMPLE_1, encoding="utf-8")

    assert main([str(path)]) == 0

    out = capsys.readouterr().out
    assert "Winner: Goblins" in out
    assert "Outcome: 27730" in out


def test_cli_search(tmp_path, capsys) -> None:
    path = tmp_path / "example.txt"
    path.write_text(EXAMPLE_1, encoding="utf-8")

    assert main([str(path), "--search", "--verbose"]) == 0

    out = capsys.readouterr().out
    assert "power 14: an elf dies" in out
    assert "Results (Elf attack power 15)" in out
    assert "Outcome: 4988" in out


def test_cli_verbose_prints_every_round(tmp_path, capsys) -> None:
    path = tmp_path / "duel.txt"
    path.write_text(DUEL, encoding="utf-8")

    assert main([str(path), "--elf-power", "4", "--verbose"]) == 0

    out = capsys.readouterr().out
    assert "=== Initially ===" in out
    assert "=== After round 50 ===" in out
    assert "=== Combat ends after 50 full rounds: Elves win ===" in out
    assert "Outcome: 2650" in out


def test_cli_reports_missing_file(tmp_path, capsys) -> None:
    assert main([str(tmp_path / "missing.txt")]) == 1

    assert "Error:" in capsys.readouterr().err


def test_cli_reports_bad_map(tmp_path, capsys) -> None:
    path = tmp_path / "bad.txt"
    path.write_text("#####\n#E?G#\n#####\n", encoding="utf-8")

    assert main([str(path)]) == 1

    assert "unexpected character" in capsys.readouterr().err
