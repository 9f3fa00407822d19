# Simulation module for Elves vs Goblins grid battles
# This module provides:
# - state.py: battle state container and rule constants
# - scenario.py: ASCII map loading
# - mechanics.py: grid queries, movement search, turns and rounds
# - env.py: round-by-round battle environment
# - runner.py: headless battle runner and command line
# - logger.py: JSONL battle logging

__version__ = "0.1.0"
