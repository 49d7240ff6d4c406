"""Variant rules: plain configuration records consumed by the hand engine."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from .cards import SUITS, Card, Deck
from .evaluator import LOWBALL_SCHEMES, SHORT_DECK_FLOOR, HandRank, evaluate_holding, showing_key
from .models import BettingStructure, RankingScheme, StreetKind, TableConfig


# Bring-in ties break on suit: clubs lowest, then diamonds, hearts, spades.
SUIT_ORDER = {SUITS.index(suit): order for order, suit in enumerate("CDHS")}


@dataclass(frozen=True)
class Street:
    kind: StreetKind
    name: str
    count: int = 0
    burn: bool = False


@dataclass(frozen=True)
class Stakes:
    small_blind: int = 0
    big_blind: int = 0
    ante: int = 0
    bring_in: int = 0


@dataclass(frozen=True)
class VariantRules:
    name: str
    title: str
    hole_cards: int
    streets: Tuple[Street, ...]
    scheme: RankingScheme = RankingScheme.HIGH
    structure: BettingStructure = BettingStructure.NO_LIMIT
    stakes: Stakes = Stakes()
    face_up: Tuple[bool, ...] = ()
    deck_min_rank: int = 2
    hole_cards_used: Optional[int] = None
    big_bet_from_round: int = 2
    raise_cap: int = 4
    uses_bring_in: bool = False
    min_players: int = 2
    max_players: int = 10

    @property
    def draw_rounds(self) -> int:
        return sum(1 for street in self.streets if street.kind == StreetKind.DRAW)

    @property
    def community_cards(self) -> int:
        return sum(street.count for street in self.streets if street.kind == StreetKind.DEAL_COMMUNITY)

    @property
    def uses_blinds(self) -> bool:
        return self.stakes.big_blind > 0 and not self.uses_bring_in

    @property
    def bring_in_amount(self) -> int:
        return self.stakes.bring_in or max(self.stakes.big_blind // 2, 1)

    def new_deck(self) -> Deck:
        if self.deck_min_rank <= 2:
            return Deck()
        return Deck.subset(self.deck_min_rank)

    def is_face_up(self, index: int) -> bool:
        return index < len(self.face_up) and self.face_up[index]

    def bet_size(self, round_index: int) -> int:
        """Fixed-limit bet unit for the given betting round (0-based)."""
        if round_index >= self.big_bet_from_round:
            return self.stakes.big_blind * 2
        return self.stakes.big_blind

    def evaluate(self, hole: Sequence[Card], board: Sequence[Card]) -> HandRank:
        return evaluate_holding(hole, board, self.scheme, self.hole_cards_used)

    def bring_in_order(self, card: Card) -> Tuple[int, int]:
        """Sort key over door cards. The greatest key posts the bring-in."""
        suit = SUIT_ORDER[card.suit]
        if self.scheme in LOWBALL_SCHEMES:
            rank = 1 if self.scheme == RankingScheme.LOWBALL_A5 and card.rank == 14 else card.rank
            return rank, suit
        return -card.rank, -suit

    def showing(self, cards: Sequence[Card]) -> Tuple[int, ...]:
        return showing_key(cards, self.scheme)


def _betting(name: str) -> Street:
    return Street(StreetKind.BETTING, name)


def _community(name: str, count: int) -> Street:
    return Street(StreetKind.DEAL_COMMUNITY, name, count=count, burn=True)


def _draw(name: str) -> Street:
    return Street(StreetKind.DRAW, name)


def _deal_hole(name: str) -> Street:
    return Street(StreetKind.DEAL_HOLE, name, count=1)


COMMUNITY_STREETS = (
    _betting("preflop"),
    _community("flop", 3),
    _betting("flop"),
    _community("turn", 1),
    _betting("turn"),
    _community("river", 1),
    _betting("river"),
)

TRIPLE_DRAW_STREETS = (
    _betting("predraw"),
    _draw("first_draw"),
    _betting("first_draw"),
    _draw("second_draw"),
    _betting("second_draw"),
    _draw("third_draw"),
    _betting("final"),
)

SINGLE_DRAW_STREETS = (
    _betting("predraw"),
    _draw("draw"),
    _betting("final"),
)

STUD_STREETS = (
    _betting("third"),
    _deal_hole("fourth"),
    _betting("fourth"),
    _deal_hole("fifth"),
    _betting("fifth"),
    _deal_hole("sixth"),
    _betting("sixth"),
    _deal_hole("seventh"),
    _betting("seventh"),
)

# Two down cards and the door card, three more up, the last one down.
STUD_FACE_UP = (False, False, True, True, True, True, False)

VARIANTS: Dict[str, VariantRules] = {
    rules.name: rules
    for rules in (
        VariantRules(
            name="holdem",
            title="No-Limit Texas Hold'em",
            hole_cards=2,
            streets=COMMUNITY_STREETS,
        ),
        VariantRules(
            name="short_deck",
            title="Short Deck Hold'em",
            hole_cards=2,
            streets=COMMUNITY_STREETS,
            scheme=RankingScheme.SHORT_DECK,
            deck_min_rank=SHORT_DECK_FLOOR,
            max_players=9,
        ),
        VariantRules(
            name="omaha",
            title="Pot-Limit Omaha",
            hole_cards=4,
            streets=COMMUNITY_STREETS,
            structure=BettingStructure.POT_LIMIT,
            hole_cards_used=2,
        ),
        VariantRules(
            name="triple_draw_27",
            title="2-7 Triple Draw Lowball",
            hole_cards=5,
            streets=TRIPLE_DRAW_STREETS,
            scheme=RankingScheme.LOWBALL_27,
            structure=BettingStructure.FIXED_LIMIT,
            max_players=6,
        ),
        VariantRules(
            name="single_draw_27",
            title="No-Limit 2-7 Single Draw",
            hole_cards=5,
            streets=SINGLE_DRAW_STREETS,
            scheme=RankingScheme.LOWBALL_27,
            max_players=6,
        ),
        VariantRules(
            name="five_card_draw",
            title="Five Card Draw",
            hole_cards=5,
            streets=SINGLE_DRAW_STREETS,
            max_players=6,
        ),
        VariantRules(
            name="triple_draw_a5",
            title="A-5 Triple Draw Lowball",
            hole_cards=5,
            streets=TRIPLE_DRAW_STREETS,
            scheme=RankingScheme.LOWBALL_A5,
            structure=BettingStructure.FIXED_LIMIT,
            max_players=6,
        ),
        VariantRules(
            name="seven_card_stud",
            title="Seven Card Stud",
            hole_cards=3,
            streets=STUD_STREETS,
            structure=BettingStructure.FIXED_LIMIT,
            face_up=STUD_FACE_UP,
            uses_bring_in=True,
            max_players=7,
        ),
        VariantRules(
            name="razz",
            title="Razz",
            hole_cards=3,
            streets=STUD_STREETS,
            scheme=RankingScheme.LOWBALL_A5,
            structure=BettingStructure.FIXED_LIMIT,
            face_up=STUD_FACE_UP,
            uses_bring_in=True,
            max_players=7,
        ),
    )
}


def variant_names() -> List[str]:
    return sorted(VARIANTS)


def get_variant(name: str) -> VariantRules:
    key = name.strip().casefold()
    try:
        return VARIANTS[key]
    except KeyError:
        raise ValueError(f"Unknown variant: {name}") from None


def rules_for(config: TableConfig) -> VariantRules:
    """Resolve ``config.variant`` and apply the table's stakes and structure."""
    template = get_variant(config.variant)
    return replace(
        template,
        stakes=Stakes(
            small_blind=config.sb,
            big_blind=config.bb,
            ante=config.ante,
            bring_in=config.bring_in,
        ),
        structure=config.structure or template.structure,
    )
