from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .errors import CardError, ErrorCode

RANKS = "23456789TJQKA"
SUITS = "HDCS"
RANK_VALUE = {rank: idx for idx, rank in enumerate(RANKS, start=2)}
RANK_CHAR = {value: rank for rank, value in RANK_VALUE.items()}
DECK_SIZE = 52


@dataclass(frozen=True)
class Card:
    """A playing card. ``rank`` is 2..14 (ace high), ``suit`` is 0..3 (h, d, c, s)."""

    rank: int
    suit: int

    def __post_init__(self) -> None:
        if not 2 <= self.rank <= 14:
            raise CardError(ErrorCode.INVALID_CARD, f"Invalid rank: {self.rank}")
        if not 0 <= self.suit <= 3:
            raise CardError(ErrorCode.INVALID_CARD, f"Invalid suit: {self.suit}")

    @property
    def index(self) -> int:
        return self.suit * 13 + (self.rank - 2)

    @property
    def label(self) -> str:
        return f"{RANK_CHAR[self.rank]}{SUITS[self.suit]}"

    @classmethod
    def from_index(cls, index: int) -> "Card":
        if not 0 <= index < DECK_SIZE:
            raise CardError(ErrorCode.INVALID_CARD, f"Invalid card index: {index}")
        return cls(rank=index % 13 + 2, suit=index // 13)

    def __str__(self) -> str:
        return self.label


def parse_label(label: str) -> Card:
    """Parse ``RS`` (e.g. ``Ah``, ``Td``); ``10S`` is accepted as an alias of ``TS``."""
    text = label.strip().upper() if isinstance(label, str) else ""
    if text.startswith("10"):
        text = "T" + text[2:]
    if len(text) != 2:
        raise CardError(ErrorCode.INVALID_CARD, f"Invalid card label: {label!r}")
    rank_char, suit_char = text
    if rank_char not in RANK_VALUE:
        raise CardError(ErrorCode.INVALID_CARD, f"Invalid rank in {label!r}")
    if suit_char not in SUITS:
        raise CardError(ErrorCode.INVALID_CARD, f"Invalid suit in {label!r}")
    return Card(RANK_VALUE[rank_char], SUITS.index(suit_char))


def parse_cards(labels: Iterable[str]) -> List[Card]:
    return [parse_label(label) for label in labels]


def cards_to_labels(cards: Iterable[Card]) -> List[str]:
    return [card.label for card in cards]


def standard_cards(min_rank: int = 2) -> List[Card]:
    return [Card(rank, suit) for rank in range(min_rank, 15) for suit in range(4)]


class Deck:
    """Ordered deck with a deal position.

    Cards below ``position`` have been dealt or burned. Only the undealt tail is
    ever shuffled once dealing starts.
    """

    def __init__(self, cards: Optional[Sequence[Card]] = None) -> None:
        cards = list(cards) if cards is not None else standard_cards()
        if len(cards) > DECK_SIZE:
            raise CardError(ErrorCode.INVALID_CARD, "A deck holds at most 52 cards")
        if len(set(cards)) != len(cards):
            raise CardError(ErrorCode.INVALID_CARD, "Duplicate card in deck")
        self._cards: List[Card] = cards
        self.position = 0

    @classmethod
    def subset(cls, min_rank: int) -> "Deck":
        return cls(standard_cards(min_rank))

    @property
    def size(self) -> int:
        return len(self._cards)

    @property
    def remaining(self) -> int:
        return len(self._cards) - self.position

    def undealt(self) -> List[Card]:
        return list(self._cards[self.position :])

    def dealt(self) -> List[Card]:
        return list(self._cards[: self.position])

    def contains(self, card: Card) -> bool:
        return card in self._cards[self.position :]

    def reset(self) -> None:
        self.position = 0

    def shuffle(self, rng: random.Random) -> None:
        """Fisher-Yates over the undealt region ``position..size``."""
        for idx in range(len(self._cards) - 1, self.position, -1):
            swap = rng.randint(self.position, idx)
            self._cards[idx], self._cards[swap] = self._cards[swap], self._cards[idx]

    def deal(self) -> Card:
        if self.position >= len(self._cards):
            raise CardError(ErrorCode.DECK_EXHAUSTED, "Not enough cards left in deck")
        card = self._cards[self.position]
        self.position += 1
        return card

    def deal_many(self, count: int) -> List[Card]:
        if self.remaining < count:
            raise CardError(ErrorCode.DECK_EXHAUSTED, "Not enough cards left in deck")
        return [self.deal() for _ in range(count)]

    burn = deal

    def return_cards(self, cards: Sequence[Card], rng: random.Random) -> None:
        """Put previously dealt cards back at the tail and reshuffle the undealt region.

        Returned cards leave the dealt prefix, so the deck never grows past its
        starting composition.
        """
        dealt = self._cards[: self.position]
        for card in cards:
            try:
                dealt.remove(card)
            except ValueError:
                raise CardError(ErrorCode.NOT_IN_DECK, f"{card.label} was not dealt from this deck") from None
        self._cards = dealt + self._cards[self.position :] + list(cards)
        self.position = len(dealt)
        self.shuffle(rng)

    def remove(self, card: Card) -> None:
        for idx in range(self.position, len(self._cards)):
            if self._cards[idx] == card:
                del self._cards[idx]
                return
        raise CardError(ErrorCode.NOT_IN_DECK, f"{card.label} is not in the deck")
