"""
JSONL Battle Logger.

Logs one line per round (turns taken, state summary) plus a closing
line per battle.
"""

import json
import os
from datetime import datetime
from typing import Dict, Any, Optional

import numpy as np

from sim.state import BattleState


def convert_numpy(obj: Any) -> Any:
    """Convert numpy types to Python native types for JSON serialization."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, dict):
        return {k: convert_numpy(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy(v) for v in obj]
    return obj


class BattleLogger:
    """
    Logger for battle rounds in JSONL format.
    """

    def __init__(self, log_dir: str = None, enabled: bool = True):
        """
        Initialize battle logger.

        Args:
            log_dir: Directory to write logs. Defaults to data/battle_logs/
            enabled: Whether logging is active
        """
        self.enabled = enabled

        if log_dir is None:
            base_path = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
            log_dir = os.path.join(base_path, "data", "battle_logs")

        self.log_dir = log_dir
        self.current_file: Optional[str] = None
        self.current_battle_id: Optional[str] = None
        self.rounds_logged = 0
        self.battles_started = 0

        if self.enabled:
            os.makedirs(self.log_dir, exist_ok=True)

    def start_battle(
        self,
        map_name: str = None,
        elf_attack_power: int = None,
        battle_id: str = None
    ):
        """Start a new battle. Each battle gets its own file."""
        if not self.enabled:
            return

        self.rounds_logged = 0

        if battle_id is None:
            battle_id = datetime.now().strftime("%Y%m%d_%H%M%S_%f") + f"_{self.battles_started:03d}"
        self.battles_started += 1
        self.current_battle_id = battle_id

        self.current_file = os.path.join(self.log_dir, f"battle_{battle_id}.jsonl")

        self._write({
            "timestamp": datetime.now().isoformat(),
            "type": "battle_start",
            "battle_id": battle_id,
            "map_name": map_name,
            "elf_attack_power": elf_attack_power,
        })

    def log_round(self, round_result: Dict, state: BattleState):
        """
        Log a single round.

        Args:
            round_result: Dict returned by run_round
            state: Battle state after the round
        """
        if not self.enabled or self.current_file is None:
            return

        self._write({
            "timestamp": datetime.now().isoformat(),
            "type": "round",
            "battle_id": self.current_battle_id,
            "round_idx": self.rounds_logged,
            "completed": bool(round_result.get("completed")),
            "turns": round_result.get("turns", []),
            "state": state.summary(),
            "units": [u.to_dict() for u in state.units],
        })

        self.rounds_logged += 1

    def end_battle(self, final_info: Dict = None):
        """End current battle."""
        if not self.enabled:
            return

        if self.current_file:
            self._write({
                "timestamp": datetime.now().isoformat(),
                "type": "battle_end",
                "battle_id": self.current_battle_id,
                "total_rounds": self.rounds_logged,
                "final_info": final_info or {},
            })

        self.current_file = None
        self.current_battle_id = None
        self.rounds_logged = 0

    def _write(self, entry: Dict):
        try:
            with open(self.current_file, "a") as f:
                f.write(json.dumps(convert_numpy(entry)) + "\n")
        except OSError as e:
            print(f"Warning: Failed to write log entry: {e}")
