"""
Map graph: territories, adjacency and continents.
Maps are static input to the engine; the validators here report every
structural problem at once instead of stopping at the first.
"""

from dataclasses import dataclass, field
from typing import Any

MIN_PLAYERS = 2
MAX_PLAYERS = 6

# MapIssue kinds
UNKNOWN_ADJACENCY_KEY = "unknown_adjacency_key"
MISSING_ADJACENCY = "missing_adjacency"
UNKNOWN_ADJACENCY_TARGET = "unknown_adjacency_target"
ASYMMETRIC_ADJACENCY = "asymmetric_adjacency"
UNKNOWN_CONTINENT_TERRITORY = "unknown_continent_territory"
INVALID_CONTINENT_BONUS = "invalid_continent_bonus"
TERRITORY_WITHOUT_CONTINENT = "territory_without_continent"
TERRITORY_IN_MULTIPLE_CONTINENTS = "territory_in_multiple_continents"


@dataclass
class Continent:
    territory_ids: list[str]
    bonus: int

    def to_dict(self) -> dict[str, Any]:
        return {"territory_ids": list(self.territory_ids), "bonus": self.bonus}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Continent":
        return cls(
            territory_ids=[str(t) for t in data.get("territory_ids") or []],
            bonus=data.get("bonus", 0),
        )


@dataclass
class GraphMap:
    """
    territories: territory_id -> display metadata (name, continent_id, ...)
    adjacency: territory_id -> neighbor ids (symmetric)
    continents: continent_id -> Continent, or None for maps without continents
    """
    territories: dict[str, dict[str, Any]]
    adjacency: dict[str, list[str]]
    continents: dict[str, Continent] | None = None

    def neighbors(self, territory_id: str) -> list[str]:
        return self.adjacency.get(territory_id, [])

    def is_adjacent(self, a: str, b: str) -> bool:
        return b in self.adjacency.get(a, [])

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "territories": {tid: dict(meta) for tid, meta in self.territories.items()},
            "adjacency": {tid: list(ns) for tid, ns in self.adjacency.items()},
        }
        if self.continents is not None:
            data["continents"] = {cid: c.to_dict() for cid, c in self.continents.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphMap":
        continents_raw = data.get("continents")
        continents = None
        if isinstance(continents_raw, dict):
            continents = {str(cid): Continent.from_dict(c) for cid, c in continents_raw.items()}
        return cls(
            territories={str(tid): dict(meta or {}) for tid, meta in (data.get("territories") or {}).items()},
            adjacency={str(tid): [str(n) for n in ns] for tid, ns in (data.get("adjacency") or {}).items()},
            continents=continents,
        )


@dataclass
class MapIssue:
    """One structural problem: what kind, which ids, and a readable message."""
    kind: str
    ids: list[str]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "ids": list(self.ids), "message": self.message}


@dataclass
class MapValidationResult:
    valid: bool
    errors: list[MapIssue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": [e.to_dict() for e in self.errors]}


def validate_map(graph_map: GraphMap) -> MapValidationResult:
    """Check adjacency closure and symmetry, and that continents name known territories."""
    errors: list[MapIssue] = []
    territory_ids = set(graph_map.territories)

    for tid in graph_map.adjacency:
        if tid not in territory_ids:
            errors.append(MapIssue(
                UNKNOWN_ADJACENCY_KEY, [tid],
                f'Adjacency references unknown territory "{tid}"',
            ))

    for tid in graph_map.territories:
        if tid not in graph_map.adjacency:
            errors.append(MapIssue(
                MISSING_ADJACENCY, [tid],
                f'Territory "{tid}" has no adjacency entry',
            ))

    for tid, neighbors in graph_map.adjacency.items():
        for neighbor in neighbors:
            if neighbor not in territory_ids:
                errors.append(MapIssue(
                    UNKNOWN_ADJACENCY_TARGET, [tid, neighbor],
                    f'Territory "{tid}" is adjacent to unknown territory "{neighbor}"',
                ))
                continue
            if tid not in graph_map.adjacency.get(neighbor, []):
                errors.append(MapIssue(
                    ASYMMETRIC_ADJACENCY, [tid, neighbor],
                    f'Adjacency is not symmetric: "{tid}" -> "{neighbor}" '
                    f'but not "{neighbor}" -> "{tid}"',
                ))

    for cid, continent in (graph_map.continents or {}).items():
        for tid in continent.territory_ids:
            if tid not in territory_ids:
                errors.append(MapIssue(
                    UNKNOWN_CONTINENT_TERRITORY, [cid, tid],
                    f'Continent "{cid}" references unknown territory "{tid}"',
                ))

    return MapValidationResult(valid=not errors, errors=errors)


def validate_continent_assignments(graph_map: GraphMap) -> list[MapIssue]:
    """Every territory in exactly one continent; every bonus a positive integer."""
    errors: list[MapIssue] = []
    continents = graph_map.continents or {}

    for cid, continent in continents.items():
        bonus = continent.bonus
        if isinstance(bonus, bool) or not isinstance(bonus, int) or bonus <= 0:
            errors.append(MapIssue(
                INVALID_CONTINENT_BONUS, [cid],
                f'Continent "{cid}" bonus must be a positive integer',
            ))

    seen: dict[str, int] = {}
    for continent in continents.values():
        for tid in continent.territory_ids:
            seen[tid] = seen.get(tid, 0) + 1

    for tid in graph_map.territories:
        count = seen.get(tid, 0)
        if count == 0:
            errors.append(MapIssue(
                TERRITORY_WITHOUT_CONTINENT, [tid],
                f'Territory "{tid}" is not assigned to any continent',
            ))
        elif count > 1:
            errors.append(MapIssue(
                TERRITORY_IN_MULTIPLE_CONTINENTS, [tid],
                f'Territory "{tid}" is assigned to multiple continents',
            ))
    return errors


def validate_map_for_publish(graph_map: GraphMap) -> MapValidationResult:
    """Structural checks plus the continent partition required before a map is playable."""
    result = validate_map(graph_map)
    errors = result.errors + validate_continent_assignments(graph_map)
    return MapValidationResult(valid=not errors, errors=errors)


def player_limits(graph_map: GraphMap) -> tuple[int, int]:
    """(min, max) player count; never more players than territories."""
    territory_count = len(graph_map.territories)
    if territory_count == 0:
        return MIN_PLAYERS, MAX_PLAYERS
    return MIN_PLAYERS, min(MAX_PLAYERS, territory_count)
