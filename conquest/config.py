"""
Single place for host-level defaults.
Change DEFAULT_MAP_ID to switch which map is used when a new game does not name one.
"""
# Map id from conquest/data/maps/<id>.json.
DEFAULT_MAP_ID = "classic"
