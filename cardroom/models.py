from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cards import Card


class Phase(str, Enum):
    IDLE = "IDLE"
    BLINDS = "BLINDS"
    DEALING = "DEALING"
    BETTING = "BETTING"
    DRAWING = "DRAWING"
    SHOWDOWN = "SHOWDOWN"
    SETTLING = "SETTLING"
    COMPLETE = "COMPLETE"


class SeatState(str, Enum):
    EMPTY = "EMPTY"
    SITTING_OUT = "SITTING_OUT"
    ACTIVE = "ACTIVE"
    FOLDED = "FOLDED"
    ALL_IN = "ALL_IN"


class SeatRole(str, Enum):
    BUTTON = "BUTTON"
    SMALL_BLIND = "SMALL_BLIND"
    BIG_BLIND = "BIG_BLIND"
    BUTTON_SMALL_BLIND = "BUTTON_SMALL_BLIND"
    BRING_IN = "BRING_IN"
    PLAYER = "PLAYER"


class ActionType(str, Enum):
    FOLD = "FOLD"
    CHECK = "CHECK"
    CALL = "CALL"
    BET = "BET"
    RAISE = "RAISE"
    ALL_IN = "ALL_IN"
    DRAW = "DRAW"


class StreetKind(str, Enum):
    BETTING = "BETTING"
    DRAW = "DRAW"
    DEAL_COMMUNITY = "DEAL_COMMUNITY"
    DEAL_HOLE = "DEAL_HOLE"


class RankingScheme(str, Enum):
    HIGH = "HIGH"
    LOWBALL_27 = "LOWBALL_27"
    LOWBALL_A5 = "LOWBALL_A5"
    SHORT_DECK = "SHORT_DECK"


class BettingStructure(str, Enum):
    NO_LIMIT = "NO_LIMIT"
    POT_LIMIT = "POT_LIMIT"
    FIXED_LIMIT = "FIXED_LIMIT"


class EventKind(str, Enum):
    HAND_START = "HAND_START"
    BLINDS_POSTED = "BLINDS_POSTED"
    BRING_IN = "BRING_IN"
    HOLE_DEALT = "HOLE_DEALT"
    COMMUNITY_DEALT = "COMMUNITY_DEALT"
    ACTION = "ACTION"
    DRAW = "DRAW"
    SHOWDOWN = "SHOWDOWN"
    POT_AWARDED = "POT_AWARDED"
    HAND_END = "HAND_END"


@dataclass
class TableConfig:
    seats: int = 6
    starting_stack: int = 10_000
    sb: int = 50
    bb: int = 100
    ante: int = 0
    bring_in: int = 0
    move_time_ms: int = 15_000
    variant: str = "holdem"
    structure: Optional[BettingStructure] = None


@dataclass(frozen=True)
class HoleCard:
    card: Card
    face_up: bool = False


@dataclass
class PlayerSeat:
    seat: int
    name: str
    name_key: str
    stack: int
    identity: Optional[str] = None
    connected: bool = False
    state: SeatState = SeatState.ACTIVE
    sit_out_next: bool = False
    bet: int = 0
    total_bet: int = 0
    hole_cards: List[HoleCard] = field(default_factory=list)

    @property
    def cards(self) -> List[Card]:
        return [hole.card for hole in self.hole_cards]

    @property
    def in_hand(self) -> bool:
        return self.state in (SeatState.ACTIVE, SeatState.ALL_IN)

    @property
    def can_act(self) -> bool:
        return self.state == SeatState.ACTIVE and self.stack > 0

    def reset_for_hand(self) -> None:
        self.bet = 0
        self.total_bet = 0
        self.hole_cards.clear()
        if self.sit_out_next or self.stack <= 0:
            self.state = SeatState.SITTING_OUT
        else:
            self.state = SeatState.ACTIVE

    def reset_for_round(self) -> None:
        self.bet = 0

    def commit(self, amount: int) -> int:
        amount = min(amount, self.stack)
        self.stack -= amount
        self.bet += amount
        self.total_bet += amount
        if self.stack == 0 and self.state == SeatState.ACTIVE:
            self.state = SeatState.ALL_IN
        return amount

    def post_ante(self, amount: int) -> int:
        # Antes are dead money: they count toward total_bet but not the street bet.
        amount = min(amount, self.stack)
        self.stack -= amount
        self.total_bet += amount
        if self.stack == 0 and self.state == SeatState.ACTIVE:
            self.state = SeatState.ALL_IN
        return amount


@dataclass
class Event:
    seq: int
    ev: EventKind
    data: Dict[str, object] = field(default_factory=dict)
    ts: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {"seq": self.seq, "ev": self.ev.value, "ts": self.ts, **self.data}


@dataclass
class ActionWindow:
    legal: List[ActionType]
    call_amount: Optional[int]
    min_raise_to: Optional[int]
    max_raise_to: Optional[int]


@dataclass
class ActionRecord:
    seat: int
    kind: ActionType
    amount: int
    street: str
