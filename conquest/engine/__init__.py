"""
Territory-conquest rules engine.
Pure functions over explicit state: no I/O and nothing held between calls.
"""

DICE_SIDES = 6

# Owner id for territories that belong to no player.
NEUTRAL = "neutral"
