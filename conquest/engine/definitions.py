"""
Map definitions shipped with the game.
Each map lives in data/maps/<map_id>.json with id, name, territories,
adjacency and continents.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from conquest.engine.map import GraphMap

DATA_DIR = Path(__file__).parent.parent / "data"
MAPS_DIR = DATA_DIR / "maps"


def _default_map_id() -> str:
    """Single place for default: conquest.config.DEFAULT_MAP_ID."""
    from conquest.config import DEFAULT_MAP_ID
    return DEFAULT_MAP_ID


@dataclass
class MapDefinition:
    """A loaded map: display metadata plus the graph the engine plays on."""
    id: str
    name: str
    graph_map: GraphMap

    def to_dict(self) -> dict[str, Any]:
        data = self.graph_map.to_dict()
        data["id"] = self.id
        data["name"] = self.name
        return data


def list_maps() -> list[dict[str, Any]]:
    """Return [{ id, name, territory_count }, ...] for every map file, sorted by id."""
    out = []
    if not MAPS_DIR.exists():
        return out
    for path in sorted(MAPS_DIR.glob("*.json")):
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError):
            continue
        out.append({
            "id": data.get("id", path.stem),
            "name": data.get("name", path.stem),
            "territory_count": len(data.get("territories") or {}),
        })
    return out


def load_map(map_id: str | None = None, maps_dir: Path | str | None = None) -> MapDefinition:
    """
    Load a map by id (the configured default when None).
    Raises FileNotFoundError for unknown ids.
    """
    map_id = map_id or _default_map_id()
    directory = Path(maps_dir) if maps_dir is not None else MAPS_DIR
    path = directory / f"{map_id}.json"
    # Ids are file stems; anything with a path separator is not a map id
    if Path(map_id).name != map_id or not path.exists():
        raise FileNotFoundError(f"Map not found: {map_id}")
    with open(path, "r") as f:
        data = json.load(f)
    return MapDefinition(
        id=data.get("id", map_id),
        name=data.get("name", map_id),
        graph_map=GraphMap.from_dict(data),
    )
