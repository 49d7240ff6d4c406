"""Hand-history documents for offline analysis, and deterministic replay."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .cards import Deck, cards_to_labels, parse_cards
from .game import GameEngine, HandContext
from .models import ActionType, BettingStructure, TableConfig


@dataclass
class HandHistory:
    hand_id: str
    variant: str
    stakes: Dict[str, int]
    players: List[Dict[str, Any]]
    actions: List[Dict[str, Any]]
    pots: List[Dict[str, Any]]
    pot_total: int
    seed: Optional[int] = None
    button: Optional[int] = None
    board: List[str] = field(default_factory=list)
    outcome: Optional[str] = None
    table_size: int = 0
    structure: Optional[str] = None
    deck: List[str] = field(default_factory=list)

    @classmethod
    def from_hand(cls, ctx: HandContext) -> "HandHistory":
        """Build the document from a finished (or voided) ``HandContext``."""
        stakes = ctx.rules.stakes
        posted = {"sb": stakes.small_blind, "bb": stakes.big_blind, "ante": stakes.ante}
        if stakes.bring_in:
            posted["bring_in"] = stakes.bring_in
        players = []
        for seat in ctx.players:
            entry: Dict[str, Any] = {
                "seat": seat.seat,
                "name": seat.name,
                "identity": seat.identity,
                "stack_start": ctx.starting_stacks[seat.seat],
            }
            if seat.hole_cards:
                entry["hole_cards"] = cards_to_labels(seat.cards)
            players.append(entry)

        return cls(
            hand_id=ctx.hand_id,
            variant=ctx.rules.name,
            stakes=posted,
            players=players,
            actions=[
                {"seat": record.seat, "kind": record.kind.value, "amount": record.amount, "street": record.street}
                for record in ctx.actions
            ],
            pots=[{"amount": award.amount, "winners": list(award.winners)} for award in ctx.awards],
            pot_total=sum(award.amount for award in ctx.awards),
            seed=ctx.seed,
            button=ctx.button,
            board=cards_to_labels(ctx.community),
            outcome=ctx.outcome,
            table_size=ctx.table_size,
            structure=ctx.rules.structure.value,
            deck=list(ctx.deck_order),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "HandHistory":
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in payload.items() if key in known})

    @classmethod
    def from_json(cls, text: str) -> "HandHistory":
        return cls.from_dict(json.loads(text))

    def table_config(self) -> TableConfig:
        seats = self.table_size or max(player["seat"] for player in self.players) + 1
        return TableConfig(
            seats=seats,
            sb=self.stakes.get("sb", 0),
            bb=self.stakes.get("bb", 0),
            ante=self.stakes.get("ante", 0),
            bring_in=self.stakes.get("bring_in", 0),
            variant=self.variant,
            structure=BettingStructure(self.structure) if self.structure else None,
        )


def replay(history: HandHistory, config: Optional[TableConfig] = None, **engine_kwargs: Any) -> HandContext:
    """Re-run a recorded hand on a fresh engine and return its ``HandContext``.

    The recorded deck order and seed reproduce the deal and any draw
    reshuffles, so the resulting event stream matches the recorded one
    apart from timestamps.
    """
    engine = GameEngine(config or history.table_config(), **engine_kwargs)
    for player in history.players:
        engine.assign_seat(
            player["name"],
            identity=player.get("identity"),
            seat=player["seat"],
            stack=player["stack_start"],
        )

    deck = Deck(parse_cards(history.deck)) if history.deck else None
    ctx = engine.start_hand(history.seed, deck=deck, button=history.button, hand_id=history.hand_id)
    for action in history.actions:
        if engine.is_hand_complete():
            break
        kind = ActionType(action["kind"])
        amount = action["amount"]
        if kind in (ActionType.FOLD, ActionType.CHECK, ActionType.CALL, ActionType.ALL_IN):
            amount = None
        engine.apply_action(action["seat"], kind, amount)
    return ctx
