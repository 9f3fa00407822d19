from __future__ import annotations

import json

import numpy as np

from sim.logger import BattleLogger, convert_numpy
from sim.runner import find_minimum_elf_power, main, run_battle
from tests.maps import DUEL, EXAMPLE_1


def _read_entries(path) -> list:
    return [json.loads(line) for line in path.read_text().splitlines()]


def test_convert_numpy_handles_nested_values() -> None:
    value = {"a": np.int32(3), "b": [np.float64(1.5), np.bool_(True)], "c": np.arange(3)}

    assert convert_numpy(value) == {"a": 3, "b": [1.5, True], "c": [0, 1, 2]}


def test_battle_is_logged_round_by_round(tmp_path) -> None:
    logger = BattleLogger(log_dir=str(tmp_path))

    result = run_battle(DUEL, logger=logger, map_name="duel")

    files = list(tmp_path.glob("battle_*.jsonl"))
    assert len(files) == 1

    entries = _read_entries(files[0])
    assert entries[0]["type"] == "battle_start"
    assert entries[0]["map_name"] == "duel"
    assert entries[0]["elf_attack_power"] == 3

    rounds = [e for e in entries if e["type"] == "round"]
    assert len(rounds) == 68
    assert rounds[0]["round_idx"] == 0
    assert rounds[0]["completed"]
    assert rounds[0]["turns"][0]["to"] == {"x": 2, "y": 1}
    assert not rounds[-1]["completed"]
    assert rounds[-1]["state"]["goblins"] == 0

    assert entries[-1]["type"] == "battle_end"
    assert entries[-1]["total_rounds"] == 68
    assert entries[-1]["final_info"] == result
    assert entries[-1]["final_info"]["outcome"] == 134


def test_each_search_trial_gets_its_own_file(tmp_path) -> None:
    logger = BattleLogger(log_dir=str(tmp_path))

    result = find_minimum_elf_power(EXAMPLE_1, start_power=13, logger=logger)

    assert result["elf_attack_power"] == 15
    assert len(list(tmp_path.glob("battle_*.jsonl"))) == 3


def test_disabled_logger_writes_nothing(tmp_path) -> None:
    log_dir = tmp_path / "logs"
    logger = BattleLogger(log_dir=str(log_dir), enabled=False)

    run_battle(DUEL, logger=logger)

    assert not log_dir.exists()


def test_write_failure_only_warns(tmp_path, capsys) -> None:
    logger = BattleLogger(log_dir=str(tmp_path))
    logger.start_battle(map_name="duel")
    logger.current_file = str(tmp_path / "missing" / "battle.jsonl")

    logger.end_battle({"outcome": 0})

    assert "Warning: Failed to write log entry" in capsys.readouterr().out
    assert logger.current_file is None


def test_cli_writes_logs(tmp_path) -> None:
    path = tmp_path / "duel.txt"
    path.write_text(DUEL, encoding="utf-8")
    log_dir = tmp_path / "logs"

    assert main([str(path), "--log-dir", str(log_dir)]) == 0

    files = list(log_dir.glob("battle_*.jsonl"))
    assert len(files) == 1
    assert _read_entries(files[0])[0]["map_name"] == "duel.txt"
