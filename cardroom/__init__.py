"""Card-room hand engine: cards, ranking, betting, pots and the hand state machine."""

from .cards import Card, Deck, RANKS, SUITS, parse_cards, parse_label
from .errors import CardError, EngineError, ErrorCode, HandFault, InvariantError, ProtocolError
from .evaluator import HandRank, describe_rank, evaluate, evaluate_holding
from .game import GameEngine, HandContext
from .history import HandHistory, replay
from .models import ActionType, Event, EventKind, Phase, PlayerSeat, RankingScheme, SeatState, TableConfig
from .variants import VariantRules, get_variant, rules_for, variant_names

__all__ = [
    "Card",
    "Deck",
    "RANKS",
    "SUITS",
    "parse_cards",
    "parse_label",
    "CardError",
    "EngineError",
    "ErrorCode",
    "HandFault",
    "InvariantError",
    "ProtocolError",
    "HandRank",
    "describe_rank",
    "evaluate",
    "evaluate_holding",
    "GameEngine",
    "HandContext",
    "HandHistory",
    "replay",
    "ActionType",
    "Event",
    "EventKind",
    "Phase",
    "PlayerSeat",
    "RankingScheme",
    "SeatState",
    "TableConfig",
    "VariantRules",
    "get_variant",
    "rules_for",
    "variant_names",
]
