"""
Ruleset configuration.
Plain dataclasses only: every tunable rule lives here as data, and the engine
reads it instead of hard-coding classic values.
"""

import math
from dataclasses import asdict, dataclass, field, replace
from typing import Any

MAX_SAFE_INTEGER = 2 ** 53 - 1

# Average armies per territory when scaling initial armies to the map size.
DEFAULT_TROOP_DENSITY = 2.8

MIN_FORCED_TRADE_HAND_SIZE = 3
MAX_FORCED_TRADE_HAND_SIZE = 12
MIN_FORTIFIES_PER_TURN = 0
MAX_FORTIFIES_PER_TURN = 10

FORTIFY_ADJACENT = "adjacent"
FORTIFY_CONNECTED = "connected"

OVERFLOW_CONTINUE_BY_FIVE = "continueByFive"
OVERFLOW_REPEAT_LAST = "repeatLast"


@dataclass
class SetupConfig:
    mode: str = "classicLikeRandomWithNeutrals"
    neutral_territory_count: int = 2
    neutral_initial_armies: int = 1
    player_initial_armies: dict[int, int] = field(
        default_factory=lambda: {2: 40, 3: 35, 4: 30, 5: 25, 6: 20}
    )
    distribution: str = "roundRobin"  # "roundRobin" | "random"


@dataclass
class CombatConfig:
    max_attack_dice: int = 3
    max_defend_dice: int = 2
    defender_dice_strategy: str = "alwaysMax"
    allow_attacker_dice_choice: bool = True


@dataclass
class FortifyConfig:
    fortify_mode: str = FORTIFY_CONNECTED
    max_fortifies_per_turn: int = MAX_SAFE_INTEGER
    allow_fortify_with_teammate: bool = False
    allow_fortify_through_teammates: bool = False


@dataclass
class TradeSetsConfig:
    allow_three_of_a_kind: bool = True
    allow_one_of_each: bool = True
    wild_acts_as_any: bool = True


@dataclass
class TerritoryTradeBonusConfig:
    enabled: bool = True
    bonus_armies: int = 2


@dataclass
class DeckDefinitionConfig:
    kinds: list[str] = field(default_factory=lambda: ["A", "B", "C"])
    wild_count: int = 2
    territory_linked: bool = True


@dataclass
class CardsConfig:
    trade_values: list[int] = field(default_factory=lambda: [4, 6, 8, 10, 12, 15])
    trade_value_overflow: str = OVERFLOW_CONTINUE_BY_FIVE
    forced_trade_hand_size: int = 5
    trade_sets: TradeSetsConfig = field(default_factory=TradeSetsConfig)
    territory_trade_bonus: TerritoryTradeBonusConfig = field(default_factory=TerritoryTradeBonusConfig)
    award_card_on_capture: bool = True
    deck_definition: DeckDefinitionConfig = field(default_factory=DeckDefinitionConfig)


@dataclass
class TeamsConfig:
    teams_enabled: bool = False
    prevent_attacking_teammates: bool = True
    allow_place_on_teammate: bool = False
    allow_fortify_with_teammate: bool = False
    allow_fortify_through_teammates: bool = False
    win_condition: str = "lastTeamStanding"
    continent_bonus_recipient: str = "majorityHolderOnTeam"


@dataclass
class RulesetConfig:
    setup: SetupConfig = field(default_factory=SetupConfig)
    combat: CombatConfig = field(default_factory=CombatConfig)
    fortify: FortifyConfig = field(default_factory=FortifyConfig)
    cards: CardsConfig = field(default_factory=CardsConfig)
    teams: TeamsConfig = field(default_factory=TeamsConfig)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        # JSON object keys are strings
        data["setup"]["player_initial_armies"] = {
            str(k): v for k, v in self.setup.player_initial_armies.items()
        }
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RulesetConfig":
        """Build from a stored dict; missing groups and fields fall back to the classic defaults."""
        if not isinstance(data, dict):
            data = {}

        def _group(key: str) -> dict[str, Any]:
            value = data.get(key)
            return value if isinstance(value, dict) else {}

        setup_raw = _group("setup")
        setup = _build(SetupConfig, setup_raw)
        if isinstance(setup_raw.get("player_initial_armies"), dict):
            setup.player_initial_armies = {
                int(k): int(v) for k, v in setup_raw["player_initial_armies"].items()
            }

        cards_raw = _group("cards")
        cards = _build(CardsConfig, cards_raw)
        cards.trade_sets = _build(TradeSetsConfig, cards_raw.get("trade_sets"))
        cards.territory_trade_bonus = _build(TerritoryTradeBonusConfig, cards_raw.get("territory_trade_bonus"))
        cards.deck_definition = _build(DeckDefinitionConfig, cards_raw.get("deck_definition"))

        return cls(
            setup=setup,
            combat=_build(CombatConfig, _group("combat")),
            fortify=_build(FortifyConfig, _group("fortify")),
            cards=cards,
            teams=_build(TeamsConfig, _group("teams")),
        )


def _build(config_cls, raw: Any):
    """Instantiate a config group from the known keys of `raw`, ignoring the rest."""
    if not isinstance(raw, dict):
        return config_cls()
    known = config_cls.__dataclass_fields__
    nested = {"trade_sets", "territory_trade_bonus", "deck_definition", "player_initial_armies"}
    kwargs = {k: v for k, v in raw.items() if k in known and k not in nested}
    return config_cls(**kwargs)


DEFAULT_RULESET = RulesetConfig()


def default_ruleset() -> RulesetConfig:
    """Fresh copy of the classic ruleset."""
    return RulesetConfig()


def resolve_initial_armies(
    setup: SetupConfig,
    player_count: int,
    territory_count: int,
    neutral_territory_count: int,
) -> int:
    """
    Starting armies per player.
    Uses the classic table when the map size is unknown; otherwise scales the
    total to the map (about DEFAULT_TROOP_DENSITY armies per territory) while
    guaranteeing at least one army per territory the player will hold.
    """
    classic_armies = setup.player_initial_armies.get(player_count, 20)
    if territory_count <= 0 or player_count <= 0:
        return classic_armies

    target_total = math.floor(territory_count * DEFAULT_TROOP_DENSITY + 0.5)
    neutral_armies = min(territory_count, neutral_territory_count) * setup.neutral_initial_armies
    player_total = max(0, target_total - neutral_armies)
    scaled_armies = math.ceil(player_total / player_count)
    min_player_territories = math.ceil(
        max(0, territory_count - neutral_territory_count) / player_count
    )
    return max(min_player_territories, scaled_armies)


def _check_int_range(value: Any, low: int, high: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < low or value > high:
        raise ValueError(f"{name} must be an integer between {low} and {high}")


def validate_ruleset_overrides(overrides: dict[str, Any] | None) -> None:
    """Raise ValueError when an override is outside its allowed range."""
    if not overrides:
        return
    cards = overrides.get("cards") or {}
    if cards.get("forced_trade_hand_size") is not None:
        _check_int_range(
            cards["forced_trade_hand_size"],
            MIN_FORCED_TRADE_HAND_SIZE,
            MAX_FORCED_TRADE_HAND_SIZE,
            "cards.forced_trade_hand_size",
        )
    fortify = overrides.get("fortify") or {}
    if fortify.get("max_fortifies_per_turn") is not None:
        _check_int_range(
            fortify["max_fortifies_per_turn"],
            MIN_FORTIFIES_PER_TURN,
            MAX_FORTIFIES_PER_TURN,
            "fortify.max_fortifies_per_turn",
        )
    mode = fortify.get("fortify_mode")
    if mode is not None and mode not in (FORTIFY_ADJACENT, FORTIFY_CONNECTED):
        raise ValueError(f"fortify.fortify_mode must be '{FORTIFY_ADJACENT}' or '{FORTIFY_CONNECTED}'")


# Override keys a game creator may change, per group.
OVERRIDABLE_FIELDS = {
    "combat": ("allow_attacker_dice_choice",),
    "fortify": ("fortify_mode", "max_fortifies_per_turn"),
    "cards": ("forced_trade_hand_size", "award_card_on_capture"),
    "teams": (
        "prevent_attacking_teammates",
        "allow_place_on_teammate",
        "allow_fortify_with_teammate",
        "allow_fortify_through_teammates",
    ),
}


def _picked(overrides: dict[str, Any], group: str) -> dict[str, Any]:
    raw = overrides.get(group) or {}
    return {k: raw[k] for k in OVERRIDABLE_FIELDS[group] if raw.get(k) is not None}


def resolve_ruleset_from_overrides(
    team_mode_enabled: bool,
    overrides: dict[str, Any] | None = None,
) -> RulesetConfig:
    """
    Classic ruleset with a game's overrides applied.
    In team mode every teammate permission defaults to on; the fortify group's
    teammate flags follow the resolved team flags so both read the same rule.
    """
    validate_ruleset_overrides(overrides)
    overrides = overrides or {}
    base = default_ruleset()

    combat = replace(base.combat, **_picked(overrides, "combat"))
    fortify = replace(base.fortify, **_picked(overrides, "fortify"))
    cards = replace(base.cards, **_picked(overrides, "cards"))

    if team_mode_enabled:
        team_flags = {
            "prevent_attacking_teammates": True,
            "allow_place_on_teammate": True,
            "allow_fortify_with_teammate": True,
            "allow_fortify_through_teammates": True,
        }
        team_flags.update(_picked(overrides, "teams"))
        teams = replace(base.teams, teams_enabled=True, **team_flags)
        fortify = replace(
            fortify,
            allow_fortify_with_teammate=teams.allow_fortify_with_teammate,
            allow_fortify_through_teammates=teams.allow_fortify_through_teammates,
        )
    else:
        teams = replace(base.teams, teams_enabled=False)

    return RulesetConfig(setup=base.setup, combat=combat, fortify=fortify, cards=cards, teams=teams)
