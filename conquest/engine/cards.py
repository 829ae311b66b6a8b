"""
Cards: deck construction, drawing with reshuffle, trade sets and trade values.
"""

from itertools import combinations

from conquest.engine.rng import Rng
from conquest.engine.ruleset import (
    OVERFLOW_CONTINUE_BY_FIVE,
    CardsConfig,
    DeckDefinitionConfig,
    TradeSetsConfig,
)
from conquest.engine.state import WILD_KIND, Card, DeckState

TRADE_SET_SIZE = 3


def create_deck(
    config: DeckDefinitionConfig,
    territory_ids: list[str],
    rng: Rng,
) -> tuple[DeckState, dict[str, Card]]:
    """
    Build and shuffle a deck.
    One card per territory, kinds cycling in order (card i gets kinds[i % len]),
    linked to its territory when `territory_linked`; then `wild_count` wild cards.
    """
    cards_by_id: dict[str, Card] = {}
    card_ids: list[str] = []

    for i, territory_id in enumerate(territory_ids):
        card_id = f"card_{i}"
        kind = config.kinds[i % len(config.kinds)]
        cards_by_id[card_id] = Card(
            kind=kind,
            territory_id=territory_id if config.territory_linked else None,
        )
        card_ids.append(card_id)

    for i in range(config.wild_count):
        card_id = f"card_w{i}"
        cards_by_id[card_id] = Card(kind=WILD_KIND)
        card_ids.append(card_id)

    return DeckState(draw=rng.shuffle(card_ids), discard=[]), cards_by_id


def draw_card(deck: DeckState, rng: Rng) -> tuple[str, DeckState] | None:
    """
    Take the head of the draw pile, reshuffling the discard pile in first if
    the draw pile is empty. Returns None when both piles are empty.
    """
    draw = deck.draw
    discard = deck.discard
    if not draw:
        if not discard:
            return None
        draw = rng.shuffle(discard)
        discard = []
    return draw[0], DeckState(draw=list(draw[1:]), discard=list(discard))


def is_valid_trade_set(kinds: list[str], trade_sets: TradeSetsConfig) -> bool:
    if len(kinds) != TRADE_SET_SIZE:
        return False
    non_wild = [k for k in kinds if k != WILD_KIND]
    wild_count = TRADE_SET_SIZE - len(non_wild)
    if wild_count > 0 and not trade_sets.wild_acts_as_any:
        return False

    distinct = set(non_wild)
    if trade_sets.allow_three_of_a_kind and len(distinct) <= 1:
        return True
    if (
        trade_sets.allow_one_of_each
        and len(distinct) == len(non_wild)
        and len(distinct) + wild_count >= TRADE_SET_SIZE
    ):
        return True
    return False


def find_valid_trade_sets(
    hand: list[str],
    cards_by_id: dict[str, Card],
    trade_sets: TradeSetsConfig,
) -> list[list[str]]:
    """All 3-card combinations from the hand that form a valid set, in hand order."""
    if len(hand) < TRADE_SET_SIZE:
        return []
    result = []
    for combo in combinations(hand, TRADE_SET_SIZE):
        kinds = [cards_by_id[cid].kind for cid in combo if cid in cards_by_id]
        if is_valid_trade_set(kinds, trade_sets):
            result.append(list(combo))
    return result


def get_trade_value(trades_completed: int, config: CardsConfig) -> int:
    """Armies granted for the trade numbered `trades_completed` (0-based)."""
    values = config.trade_values
    if not values:
        return 0
    if trades_completed < len(values):
        return values[trades_completed]
    last = values[-1]
    if config.trade_value_overflow == OVERFLOW_CONTINUE_BY_FIVE:
        return last + 5 * (trades_completed - (len(values) - 1))
    return last
