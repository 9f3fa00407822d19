"""
Battle Map Loading.

Turns an ASCII battle map into a BattleState:
- '#' is a wall
- '.' is open floor
- 'E' / 'G' is an Elf / Goblin standing on open floor
"""

from pathlib import Path
from typing import List, Union

import numpy as np

from sim.state import (
    BattleState, Grid, Unit, Position, MapFormatError,
    WALL, OPEN, ELF, GOBLIN,
    DEFAULT_HITPOINTS, GOBLIN_ATTACK_POWER, DEFAULT_ELF_ATTACK_POWER,
)


MAP_CHARS = {WALL, OPEN, ELF, GOBLIN}


def split_map_lines(text: str) -> List[str]:
    """Split map text into rows, dropping trailing whitespace and blank lines at the ends."""
    lines = [line.rstrip() for line in text.splitlines()]
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    return lines


def parse_map(text: str, elf_attack_power: int = DEFAULT_ELF_ATTACK_POWER) -> BattleState:
    """
    Parse map text into a fresh battle.

    Args:
        text: Map rows separated by newlines, all the same length
        elf_attack_power: Attack power given to every Elf (Goblins always hit for 3)

    Returns:
        BattleState with units in reading order
    """
    lines = split_map_lines(text)
    if not lines or not lines[0]:
        raise MapFormatError("map is empty")

    width = len(lines[0])
    for y, line in enumerate(lines):
        if len(line) != width:
            raise MapFormatError(
                f"row {y} has length {len(line)}, expected {width}"
            )

    walls = np.zeros((len(lines), width), dtype=bool)
    units = []

    for y, line in enumerate(lines):
        for x, char in enumerate(line):
            if char not in MAP_CHARS:
                raise MapFormatError(f"unexpected character {char!r} at row {y}, column {x}")

            if char == WALL:
                walls[y, x] = True
            elif char in (ELF, GOBLIN):
                units.append(Unit(
                    faction=char,
                    pos=Position(x=x, y=y),
                    attack_power=elf_attack_power if char == ELF else GOBLIN_ATTACK_POWER,
                    hp=DEFAULT_HITPOINTS,
                ))

    return BattleState(grid=Grid(walls=walls), units=units)


def load_map(path: Union[str, Path], elf_attack_power: int = DEFAULT_ELF_ATTACK_POWER) -> BattleState:
    """Read a map file and parse it."""
    text = Path(path).read_text(encoding="utf-8")
    return parse_map(text, elf_attack_power=elf_attack_power)
