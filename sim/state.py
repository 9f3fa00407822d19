"""
Pure Python Battle State Container.

This module defines the battle state structure used by the simulation:
a static wall grid plus the list of living units.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

import numpy as np


# =============================================================================
# RULE CONSTANTS
# =============================================================================

WALL = "#"
OPEN = "."

ELF = "E"
GOBLIN = "G"

FACTION_NAMES = {
    ELF: "Elves",
    GOBLIN: "Goblins",
}

DEFAULT_HITPOINTS = 200
GOBLIN_ATTACK_POWER = 3
DEFAULT_ELF_ATTACK_POWER = 3
SEARCH_START_POWER = 4


# =============================================================================
# ERRORS
# =============================================================================

class SimulationError(Exception):
    """Base class for battle simulation errors."""


class InvalidFactionError(SimulationError, ValueError):
    """Raised when a unit carries a faction tag other than E or G."""


class MapFormatError(SimulationError, ValueError):
    """Raised when a map text cannot be turned into a battle."""


class CombatNotResolvedError(SimulationError, RuntimeError):
    """Raised when a battle or power search exceeds its configured cap."""


@dataclass(frozen=True)
class Position:
    """Grid position. x is the column, y is the row."""
    x: int = 0
    y: int = 0

    def to_dict(self) -> Dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, d: Dict) -> "Position":
        return cls(x=d.get("x", 0), y=d.get("y", 0))


@dataclass(eq=False)
class Unit:
    """
    A single Elf or Goblin.

    Units are identified by object identity: two units with the same
    faction, position and hitpoints are still different units.
    """
    faction: str = ELF
    pos: Position = field(default_factory=Position)
    attack_power: int = DEFAULT_ELF_ATTACK_POWER
    hp: int = DEFAULT_HITPOINTS

    @property
    def is_alive(self) -> bool:
        return self.hp > 0

    def to_dict(self) -> Dict:
        return {
            "faction": self.faction,
            "pos": self.pos.to_dict(),
            "attack_power": self.attack_power,
            "hp": self.hp,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "Unit":
        return cls(
            faction=d.get("faction", ELF),
            pos=Position.from_dict(d.get("pos", {})),
            attack_power=int(d.get("attack_power", DEFAULT_ELF_ATTACK_POWER)),
            hp=int(d.get("hp", DEFAULT_HITPOINTS)),
        )


@dataclass
class Grid:
    """Static battle map. walls[y, x] is True for a wall square."""
    width: int = 0
    height: int = 0
    walls: np.ndarray = None

    def __post_init__(self):
        if self.walls is None:
            self.walls = np.zeros((self.height, self.width), dtype=bool)
        else:
            self.walls = np.array(self.walls, dtype=bool)
            self.height, self.width = self.walls.shape
        # Walls never change once the battle starts
        self.walls.setflags(write=False)

    @property
    def shape(self):
        return (self.height, self.width)

    def to_dict(self) -> Dict:
        return {
            "width": self.width,
            "height": self.height,
            "rows": [
                "".join(WALL if wall else OPEN for wall in row)
                for row in self.walls
            ],
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "Grid":
        rows = d.get("rows", [])
        if not rows:
            return cls(width=d.get("width", 0), height=d.get("height", 0))
        walls = np.array([[c == WALL for c in row] for row in rows], dtype=bool)
        return cls(walls=walls)


@dataclass
class BattleState:
    """Complete battle state for simulation."""
    grid: Grid = field(default_factory=Grid)
    units: List[Unit] = field(default_factory=list)
    rounds_completed: int = 0

    def to_dict(self) -> Dict:
        return {
            "grid": self.grid.to_dict(),
            "units": [u.to_dict() for u in self.units],
            "rounds_completed": self.rounds_completed,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "BattleState":
        return cls(
            grid=Grid.from_dict(d.get("grid", {})),
            units=[Unit.from_dict(u) for u in d.get("units", [])],
            rounds_completed=d.get("rounds_completed", 0),
        )

    def copy(self) -> "BattleState":
        """Create a deep copy of the state. No unit is shared with the original."""
        return BattleState.from_dict(self.to_dict())

    def units_of(self, faction: str) -> List[Unit]:
        """Living units of one faction, in insertion order."""
        return [u for u in self.units if u.faction == faction]

    def count(self, faction: str) -> int:
        return len(self.units_of(faction))

    def total_hitpoints(self) -> int:
        return sum(u.hp for u in self.units)

    def unit_at(self, pos: Position) -> Optional[Unit]:
        for unit in self.units:
            if unit.pos == pos:
                return unit
        return None

    def is_combat_over(self) -> bool:
        """Check if one faction has been wiped out."""
        return self.count(ELF) == 0 or self.count(GOBLIN) == 0

    def get_winner(self) -> Optional[str]:
        """Get combat winner. Returns 'E', 'G', or None."""
        if not self.is_combat_over():
            return None

        if self.count(ELF) > 0:
            return ELF
        if self.count(GOBLIN) > 0:
            return GOBLIN
        return None

    def summary(self) -> Dict[str, Any]:
        return {
            "rounds_completed": self.rounds_completed,
            "elves": self.count(ELF),
            "goblins": self.count(GOBLIN),
            "hp_total": self.total_hitpoints(),
        }
