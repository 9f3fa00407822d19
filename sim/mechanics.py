"""
Deterministic Battle Mechanics.

Provides grid queries, reading order, movement search, turn resolution
and the round driver. Functions that change the battle mutate only the
BattleState they are given.
"""

import heapq
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from sim.state import BattleState, Grid, Unit, Position, InvalidFactionError, ELF, GOBLIN


# Neighbour enumeration order: left, right, up, down
DIRECTIONS = [(-1, 0), (1, 0), (0, -1), (0, 1)]

ENEMY_OF = {
    ELF: GOBLIN,
    GOBLIN: ELF,
}

# Markers for the movement scratch grid
UNLABELED = -2
ORIGIN = -1

UNREACHABLE = -1


# =============================================================================
# GRID & ADJACENCY
# =============================================================================

def in_bounds(grid: Grid, pos: Position) -> bool:
    """Check that a position lies on the map."""
    return 0 <= pos.x < grid.width and 0 <= pos.y < grid.height


def is_open(grid: Grid, pos: Position) -> bool:
    """Check that a position is on the map and not a wall."""
    return in_bounds(grid, pos) and not grid.walls[pos.y, pos.x]


def is_occupied(units: Iterable[Unit], pos: Position) -> bool:
    """Check if a living unit stands on the position."""
    return any(u.pos == pos for u in units)


def passable_mask(state: BattleState) -> np.ndarray:
    """Boolean map of squares a unit could step onto right now."""
    mask = ~state.grid.walls
    for unit in state.units:
        mask[unit.pos.y, unit.pos.x] = False
    return mask


def adjacent_positions(pos: Position) -> List[Position]:
    return [Position(x=pos.x + dx, y=pos.y + dy) for dx, dy in DIRECTIONS]


def adjacent_open_unoccupied(
    state: BattleState,
    pos: Position,
    passable: np.ndarray = None
) -> List[Position]:
    """
    Open, unoccupied neighbours of pos in left, right, up, down order.

    passable can be a precomputed passable_mask() when the units have not
    moved since it was built.
    """
    if passable is None:
        return [
            p for p in adjacent_positions(pos)
            if is_open(state.grid, p) and not is_occupied(state.units, p)
        ]

    return [
        p for p in adjacent_positions(pos)
        if in_bounds(state.grid, p) and passable[p.y, p.x]
    ]


def get_distance(pos1: Position, pos2: Position) -> int:
    """Calculate Manhattan distance."""
    return abs(pos1.x - pos2.x) + abs(pos1.y - pos2.y)


# =============================================================================
# READING ORDER
# =============================================================================

def reading_order(item: Union[Position, Unit]):
    """Sort key: top to bottom, then left to right."""
    pos = item.pos if isinstance(item, Unit) else item
    return (pos.y, pos.x)


def sort_by_reading_order(items: Iterable) -> List:
    return sorted(items, key=reading_order)


# =============================================================================
# MOVEMENT
# =============================================================================

def bfs_distances(
    state: BattleState,
    start: Position,
    passable: np.ndarray = None
) -> np.ndarray:
    """
    Step counts from start to every square reachable through open,
    unoccupied floor. Unreachable squares hold UNREACHABLE.
    """
    if passable is None:
        passable = passable_mask(state)

    distances = np.full(state.grid.shape, UNREACHABLE, dtype=np.int32)
    distances[start.y, start.x] = 0
    pq = [(0, start.y, start.x)]

    while pq:
        cost, y, x = heapq.heappop(pq)

        for dx, dy in DIRECTIONS:
            nx, ny = x + dx, y + dy

            if not (0 <= nx < state.grid.width and 0 <= ny < state.grid.height):
                continue
            if distances[ny, nx] != UNREACHABLE or not passable[ny, nx]:
                continue

            distances[ny, nx] = cost + 1
            heapq.heappush(pq, (cost + 1, ny, nx))

    return distances


def find_nearest_in_range(
    state: BattleState,
    origin: Position,
    in_range: Sequence[Position],
    passable: np.ndarray = None
) -> List[Position]:
    """
    In-range squares at the shortest walking distance from origin,
    sorted by reading order. Empty when none can be reached.
    """
    if not in_range:
        return []

    distances = bfs_distances(state, origin, passable)

    reachable = [
        p for p in in_range
        if distances[p.y, p.x] != UNREACHABLE
    ]
    if not reachable:
        return []

    nearest = min(int(distances[p.y, p.x]) for p in reachable)
    return sort_by_reading_order(
        set(p for p in reachable if distances[p.y, p.x] == nearest)
    )


def find_next_move(
    state: BattleState,
    origin: Position,
    targets: Sequence[Position],
    passable: np.ndarray = None
) -> Optional[Position]:
    """
    Pick the square next to origin that starts a shortest path to targets.

    Floodfills outward from every target square at once. The first
    iteration whose frontier contains squares adjacent to origin decides
    the move: the reading-order first of those squares. Returns None
    when targets is empty or no target can be reached.
    """
    if not targets:
        return None

    if passable is None:
        passable = passable_mask(state)

    labels = np.full(state.grid.shape, UNLABELED, dtype=np.int32)

    frontier = list(dict.fromkeys(targets))
    for pos in frontier:
        labels[pos.y, pos.x] = 0
    labels[origin.y, origin.x] = ORIGIN

    iteration = 0
    while True:
        iteration += 1
        new_frontier = []
        final_positions = []

        for pos in frontier:
            if get_distance(pos, origin) == 1:
                final_positions.append(pos)
                continue

            for adjacent in adjacent_open_unoccupied(state, pos, passable):
                if labels[adjacent.y, adjacent.x] == UNLABELED:
                    labels[adjacent.y, adjacent.x] = iteration
                    new_frontier.append(adjacent)

        if final_positions:
            return min(final_positions, key=reading_order)

        if not new_frontier:
            return None

        frontier = new_frontier


def choose_move(state: BattleState, unit: Unit) -> Optional[Position]:
    """
    Decide where a unit steps this turn.

    Chooses the nearest in-range square (reading order among equals),
    then the first step toward it (reading order among equals).
    """
    passable = passable_mask(state)
    in_range = find_attack_positions(state, enemy_faction(unit.faction), passable)

    nearest = find_nearest_in_range(state, unit.pos, in_range, passable)
    if not nearest:
        return None

    return find_next_move(state, unit.pos, [nearest[0]], passable)


# =============================================================================
# COMBAT
# =============================================================================

def enemy_faction(faction: str) -> str:
    """Get the faction a unit of the given faction fights."""
    try:
        return ENEMY_OF[faction]
    except KeyError:
        raise InvalidFactionError(f"invalid faction: {faction!r}") from None


def is_enemy(unit: Unit, other: Unit) -> bool:
    return enemy_faction(unit.faction) == other.faction


def targets_left(state: BattleState, unit: Unit) -> bool:
    """Check whether any enemy of unit is still alive."""
    return any(is_enemy(unit, other) for other in state.units)


def find_attack_positions(
    state: BattleState,
    faction: str,
    passable: np.ndarray = None
) -> List[Position]:
    """Open, unoccupied squares next to any living unit of faction."""
    positions = []
    for unit in state.units:
        if unit.faction == faction:
            positions.extend(adjacent_open_unoccupied(state, unit.pos, passable))
    return list(dict.fromkeys(positions))


def find_attackable_enemies(state: BattleState, unit: Unit) -> List[Unit]:
    """Enemies standing next to unit."""
    return [
        other for other in state.units
        if is_enemy(unit, other) and get_distance(other.pos, unit.pos) == 1
    ]


def select_target(enemies: Sequence[Unit]) -> Optional[Unit]:
    """Weakest enemy first, reading order among equally weak ones."""
    if not enemies:
        return None
    return min(enemies, key=lambda u: (u.hp, reading_order(u)))


def apply_damage(state: BattleState, attacker: Unit, target: Unit) -> Dict:
    """
    Hit target with attacker's attack power. Hitpoints may go negative.
    A target at 0 or below is removed from the battle at once.
    """
    old_hp = target.hp
    target.hp = old_hp - attacker.attack_power

    killed = target.hp <= 0
    if killed:
        state.units = [u for u in state.units if u is not target]

    return {
        "damage": attacker.attack_power,
        "old_hp": old_hp,
        "new_hp": target.hp,
        "killed": killed,
    }


def act(state: BattleState, unit: Unit) -> Dict:
    """
    Execute one unit's turn: move if no enemy is adjacent, then attack.

    Returns action result dict. "combat_over" is True when the unit found
    no enemy left, which ends the battle before the turn starts.
    """
    if not targets_left(state, unit):
        return {"action": "none", "combat_over": True, "reason": "no_targets"}

    result = {
        "action": "none",
        "combat_over": False,
        "faction": unit.faction,
        "from": unit.pos.to_dict(),
        "moved": False,
    }

    if not find_attackable_enemies(state, unit):
        step = choose_move(state, unit)
        if step is not None:
            unit.pos = step
            result["moved"] = True
            result["action"] = "move_only"
    result["to"] = unit.pos.to_dict()

    target = select_target(find_attackable_enemies(state, unit))
    if target is None:
        return result

    dmg_info = apply_damage(state, unit, target)
    result.update({
        "action": "attack",
        "target": target.faction,
        "target_pos": target.pos.to_dict(),
        "damage": dmg_info["damage"],
        "target_hp": dmg_info["new_hp"],
        "killed": dmg_info["killed"],
    })
    return result


# =============================================================================
# ROUNDS
# =============================================================================

def run_round(state: BattleState) -> Dict:
    """
    Run one round of turns in reading order of the units' starting squares.

    Returns {"completed": bool, "turns": [...]}. A round is incomplete when
    some unit found no enemy left; the round counter only advances for
    completed rounds.
    """
    order = sort_by_reading_order(state.units)
    turns = []

    for unit in order:
        # Killed earlier this round
        if unit not in state.units:
            continue

        turn = act(state, unit)
        turns.append(turn)

        if turn["combat_over"]:
            return {"completed": False, "turns": turns}

    state.rounds_completed += 1
    return {"completed": True, "turns": turns}
