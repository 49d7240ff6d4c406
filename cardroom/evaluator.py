from __future__ import annotations

import itertools
from collections import Counter
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, List, Optional, Sequence, Tuple

from .cards import Card, RANK_CHAR, parse_cards
from .models import RankingScheme

RANK_WORDS = {
    1: "ace",
    2: "deuce",
    3: "three",
    4: "four",
    5: "five",
    6: "six",
    7: "seven",
    8: "eight",
    9: "nine",
    10: "ten",
    11: "jack",
    12: "queen",
    13: "king",
    14: "ace",
}


class HandCategory(IntEnum):
    HIGH_CARD = 0
    PAIR = 1
    TWO_PAIR = 2
    THREE_OF_A_KIND = 3
    STRAIGHT = 4
    FLUSH = 5
    FULL_HOUSE = 6
    FOUR_OF_A_KIND = 7
    STRAIGHT_FLUSH = 8


LOWBALL_SCHEMES = (RankingScheme.LOWBALL_27, RankingScheme.LOWBALL_A5)

# Lowest ranks of the stripped deck. The ace plays below them to make the
# bottom straight, which counts as a ten-high straight.
SHORT_DECK_FLOOR = 7

# Descending rank sets that form a straight with the ace playing low.
WHEELS = {
    RankingScheme.HIGH: (14, 5, 4, 3, 2),
    RankingScheme.SHORT_DECK: (14,) + tuple(range(SHORT_DECK_FLOOR + 3, SHORT_DECK_FLOOR - 1, -1)),
}

# Short-deck order: a flush beats a full house.
SHORT_DECK_ORDER = {
    HandCategory.FLUSH: int(HandCategory.FULL_HOUSE),
    HandCategory.FULL_HOUSE: int(HandCategory.FLUSH),
}


@dataclass(frozen=True, order=True)
class HandRank:
    """Comparable hand strength. Under every scheme a greater ``key`` wins."""

    key: Tuple[int, ...]
    category: HandCategory = field(compare=False)
    ranks: Tuple[int, ...] = field(compare=False)
    scheme: RankingScheme = field(compare=False)
    cards: Tuple[Card, ...] = field(compare=False, default=())

    @property
    def description(self) -> str:
        return describe_rank(self)


def evaluate(cards: Sequence[Card], scheme: RankingScheme = RankingScheme.HIGH) -> HandRank:
    """Rank the best five-card hand contained in 5-7 cards."""
    if not 5 <= len(cards) <= 7:
        raise ValueError(f"evaluate expects 5-7 cards, got {len(cards)}")
    if len(set(cards)) != len(cards):
        raise ValueError("evaluate received duplicate cards")
    best: Optional[HandRank] = None
    for combo in itertools.combinations(cards, 5):
        rank = _evaluate_five(combo, scheme)
        if best is None or rank > best:
            best = rank
    assert best is not None
    return best


def evaluate_holding(
    hole: Sequence[Card],
    board: Sequence[Card],
    scheme: RankingScheme = RankingScheme.HIGH,
    hole_cards_used: Optional[int] = None,
) -> HandRank:
    """Rank a seat's holding against the board.

    ``hole_cards_used`` forces an exact split (Omaha plays exactly two hole
    cards with three from the board); ``None`` lets any five cards play.
    """
    if hole_cards_used is None:
        return evaluate(list(hole) + list(board), scheme)
    from_board = 5 - hole_cards_used
    best: Optional[HandRank] = None
    for hole_combo in itertools.combinations(hole, hole_cards_used):
        for board_combo in itertools.combinations(board, from_board):
            rank = evaluate(hole_combo + board_combo, scheme)
            if best is None or rank > best:
                best = rank
    if best is None:
        raise ValueError("Holding does not contain enough cards for the required split")
    return best


def evaluate_labels(labels: Iterable[str], scheme: RankingScheme = RankingScheme.HIGH) -> HandRank:
    return evaluate(parse_cards(labels), scheme)


def showing_key(cards: Sequence[Card], scheme: RankingScheme = RankingScheme.HIGH) -> Tuple[int, ...]:
    """Strength of a partial face-up holding, as on a stud board. Greater shows better.

    Only paired ranks count; straights and flushes are not read from up cards.
    """
    values = [1 if scheme == RankingScheme.LOWBALL_A5 and card.rank == 14 else card.rank for card in cards]
    ordered = sorted(Counter(values).items(), key=lambda item: (item[1], item[0]), reverse=True)
    key = tuple(count for _, count in ordered) + tuple(rank for rank, _ in ordered)
    if scheme in LOWBALL_SCHEMES:
        return tuple(-value for value in key)
    return key


def _evaluate_five(cards: Sequence[Card], scheme: RankingScheme) -> HandRank:
    if scheme == RankingScheme.LOWBALL_A5:
        category, ranks = _classify_ace_to_five(cards)
    else:
        # 2-7 lowball reads the hand exactly like high poker with aces high and
        # no wheel, then inverts the order.
        category, ranks = _classify_high(cards, WHEELS.get(scheme))
    order = int(category)
    if scheme == RankingScheme.SHORT_DECK:
        order = SHORT_DECK_ORDER.get(category, order)
    key = (order,) + ranks
    if scheme in LOWBALL_SCHEMES:
        key = tuple(-value for value in key)
    return HandRank(key=key, category=category, ranks=ranks, scheme=scheme, cards=tuple(cards))


def _classify_high(cards: Sequence[Card], wheel: Optional[Tuple[int, ...]]) -> Tuple[HandCategory, Tuple[int, ...]]:
    ranks = sorted((card.rank for card in cards), reverse=True)
    is_flush = len({card.suit for card in cards}) == 1
    straight_high = _straight_high(ranks, wheel)

    counts = Counter(ranks)
    ordered = sorted(counts.items(), key=lambda item: (item[1], item[0]), reverse=True)
    shape = [count for _, count in ordered]
    grouped = tuple(rank for rank, _ in ordered)

    if straight_high and is_flush:
        return HandCategory.STRAIGHT_FLUSH, (straight_high,)
    if shape[0] == 4:
        return HandCategory.FOUR_OF_A_KIND, grouped
    if shape[:2] == [3, 2]:
        return HandCategory.FULL_HOUSE, grouped
    if is_flush:
        return HandCategory.FLUSH, tuple(ranks)
    if straight_high:
        return HandCategory.STRAIGHT, (straight_high,)
    if shape[0] == 3:
        return HandCategory.THREE_OF_A_KIND, grouped
    if shape[:2] == [2, 2]:
        return HandCategory.TWO_PAIR, grouped
    if shape[0] == 2:
        return HandCategory.PAIR, grouped
    return HandCategory.HIGH_CARD, tuple(ranks)


def _straight_high(ranks: List[int], wheel: Optional[Tuple[int, ...]]) -> Optional[int]:
    distinct = sorted(set(ranks), reverse=True)
    if len(distinct) != 5:
        return None
    if distinct[0] - distinct[4] == 4:
        return distinct[0]
    if wheel is not None and tuple(distinct) == wheel:
        return wheel[1]
    return None


def _classify_ace_to_five(cards: Sequence[Card]) -> Tuple[HandCategory, Tuple[int, ...]]:
    # Aces play low; straights and flushes do not exist.
    ranks = sorted((1 if card.rank == 14 else card.rank for card in cards), reverse=True)
    counts = Counter(ranks)
    ordered = sorted(counts.items(), key=lambda item: (item[1], item[0]), reverse=True)
    shape = [count for _, count in ordered]
    grouped = tuple(rank for rank, _ in ordered)
    if shape[0] == 4:
        return HandCategory.FOUR_OF_A_KIND, grouped
    if shape[:2] == [3, 2]:
        return HandCategory.FULL_HOUSE, grouped
    if shape[0] == 3:
        return HandCategory.THREE_OF_A_KIND, grouped
    if shape[:2] == [2, 2]:
        return HandCategory.TWO_PAIR, grouped
    if shape[0] == 2:
        return HandCategory.PAIR, grouped
    return HandCategory.HIGH_CARD, tuple(ranks)


def describe_rank(rank: HandRank) -> str:
    category = rank.category
    if rank.scheme in LOWBALL_SCHEMES and category == HandCategory.HIGH_CARD:
        top, second = rank.ranks[0], rank.ranks[1]
        return f"{RANK_WORDS[top]}-{RANK_WORDS[second]} low"
    if category == HandCategory.STRAIGHT_FLUSH:
        return "royal_flush" if rank.ranks[0] == 14 else "straight_flush"
    if category == HandCategory.FOUR_OF_A_KIND:
        return "four_of_a_kind"
    if category == HandCategory.FULL_HOUSE:
        return "full_house"
    if category == HandCategory.FLUSH:
        return "flush"
    if category == HandCategory.STRAIGHT:
        return "straight"
    if category == HandCategory.THREE_OF_A_KIND:
        return "three_of_a_kind"
    if category == HandCategory.TWO_PAIR:
        return "two_pair"
    if category == HandCategory.PAIR:
        return "pair"
    return "high_card"


def rank_labels(rank: HandRank) -> str:
    """Compact rank string such as ``7-5-4-3-2``."""
    return "-".join(RANK_CHAR.get(value, "A") for value in rank.ranks)
