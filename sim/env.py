"""
Round-by-Round Battle Environment.

Owns the only mutable copy of a battle and advances it one round per step.
"""

from typing import Dict, Tuple, Optional, Any

from sim.state import BattleState, ELF, FACTION_NAMES, DEFAULT_ELF_ATTACK_POWER
from sim.scenario import parse_map
from sim.mechanics import run_round, sort_by_reading_order


class BattleEnv:
    """
    Battle environment over a single map.

    The initial state is parsed once and kept untouched; every reset()
    works on a fresh copy of it, so no unit is ever shared between runs.
    Each step() runs one full round.
    """

    def __init__(
        self,
        map_text: str = None,
        elf_attack_power: int = DEFAULT_ELF_ATTACK_POWER,
        max_rounds: int = None,
        initial_state: BattleState = None
    ):
        """
        Initialize battle environment.

        Args:
            map_text: ASCII map to fight on
            elf_attack_power: Attack power of every Elf
            max_rounds: Completed rounds after which the battle is truncated (None = no cap)
            initial_state: Already parsed battle, used instead of map_text
        """
        if initial_state is None:
            if map_text is None:
                raise ValueError("BattleEnv needs map_text or initial_state")
            initial_state = parse_map(map_text, elf_attack_power=elf_attack_power)

        self.elf_attack_power = elf_attack_power
        self.max_rounds = max_rounds
        self._initial_state = initial_state.copy()

        # State
        self.state: Optional[BattleState] = None
        self.done: bool = False
        self.initial_elves: int = self._initial_state.count(ELF)

    def reset(self) -> Dict:
        """
        Reset environment to the initial battle.

        Returns:
            info dict
        """
        self.state = self._initial_state.copy()
        self.done = False
        return self._get_info()

    def step(self) -> Tuple[bool, bool, Dict]:
        """
        Run one round.

        Returns:
            (done, truncated, info)
        """
        if self.state is None:
            raise RuntimeError("Environment not reset")

        if self.done:
            return True, False, self._get_info()

        round_result = run_round(self.state)
        self.done = not round_result["completed"]

        truncated = (
            not self.done
            and self.max_rounds is not None
            and self.state.rounds_completed >= self.max_rounds
        )

        info = self._get_info()
        info["round_result"] = round_result
        return self.done, truncated, info

    @property
    def elf_deaths(self) -> int:
        if self.state is None:
            return 0
        return self.initial_elves - self.state.count(ELF)

    def outcome(self) -> int:
        """Completed rounds times the hitpoints left on the field."""
        if self.state is None:
            raise RuntimeError("Environment not reset")
        return self.state.rounds_completed * self.state.total_hitpoints()

    def _get_info(self) -> Dict[str, Any]:
        info = self.state.summary()
        info["elf_deaths"] = self.elf_deaths
        info["winner"] = self.state.get_winner() if self.done else None
        return info

    def render_text(self) -> str:
        """Render the battle map with each row's units and hitpoints."""
        if self.state is None:
            return "Environment not reset"

        lines = []
        if self.done:
            winner = self.state.get_winner()
            lines.append(
                f"=== Combat ends after {self.state.rounds_completed} full rounds: "
                f"{FACTION_NAMES.get(winner, 'nobody')} win ==="
            )
        elif self.state.rounds_completed == 0:
            lines.append("=== Initially ===")
        else:
            lines.append(f"=== After round {self.state.rounds_completed} ===")

        rows = [list(row) for row in self.state.grid.to_dict()["rows"]]
        for unit in self.state.units:
            rows[unit.pos.y][unit.pos.x] = unit.faction

        units_by_row = {}
        for unit in sort_by_reading_order(self.state.units):
            units_by_row.setdefault(unit.pos.y, []).append(f"{unit.faction}({unit.hp})")

        for y, row in enumerate(rows):
            line = "".join(row)
            if y in units_by_row:
                line += "   " + ", ".join(units_by_row[y])
            lines.append(line)

        return "\n".join(lines)
