from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence, Tuple

from cardroom.cards import Deck, parse_label, standard_cards
from cardroom.game import GameEngine, HandContext
from cardroom.models import ActionType, BettingStructure, TableConfig


def create_engine(
    *,
    seats: int = 4,
    starting_stack: int = 1_000,
    sb: int = 10,
    bb: int = 20,
    ante: int = 0,
    bring_in: int = 0,
    variant: str = "holdem",
    structure: Optional[BettingStructure] = None,
    move_time_ms: int = 15_000,
    stacks: Optional[Sequence[int]] = None,
) -> GameEngine:
    """Instantiate a game engine with a populated table."""
    engine = GameEngine(
        TableConfig(
            seats=seats,
            starting_stack=starting_stack,
            sb=sb,
            bb=bb,
            ante=ante,
            bring_in=bring_in,
            variant=variant,
            structure=structure,
            move_time_ms=move_time_ms,
        ),
        clock=lambda: 0.0,
    )
    for idx in range(seats):
        engine.assign_seat(f"Player{idx}", stack=stacks[idx] if stacks else None)
    return engine


def start_hand(engine: GameEngine, seed: int = 42, **kwargs) -> HandContext:
    ctx = engine.start_hand(seed=seed, **kwargs)
    assert ctx is not None
    return ctx


def stacked_deck(
    order: Sequence[int],
    hole: Dict[int, Sequence[str]],
    board: Sequence[str] = (),
    draws: Sequence[str] = (),
    min_rank: int = 2,
) -> Deck:
    """Build a deck that deals ``hole`` and ``board`` exactly.

    ``order`` is the deal order (clockwise from the button's left). Hold'em
    burns before the flop, turn and river; those burns and the rest of the
    deck are filled from the unused cards. ``draws`` follow the hole cards and
    feed the first replacement cards of a draw game.
    """
    sequence = []
    for card_index in range(len(hole[order[0]])):
        for seat in order:
            sequence.append(hole[seat][card_index])
    for street in (board[:3], board[3:4], board[4:5]):
        if street:
            sequence.append(None)
            sequence.extend(street)
    sequence.extend(draws)

    known = [parse_label(label) for label in sequence if label]
    filler = [card for card in standard_cards(min_rank) if card not in known]
    cards = [parse_label(label) if label else filler.pop(0) for label in sequence]
    return Deck(cards + filler)


def deck_from(labels: Sequence[str]) -> Deck:
    """Deck that deals ``labels`` in order, then the remaining cards."""
    known = [parse_label(label) for label in labels]
    return Deck(known + [card for card in standard_cards() if card not in known])


def perform_actions(engine: GameEngine, actions: Iterable[Tuple[int, ActionType, Optional[int]]]) -> None:
    """Apply a scripted sequence of actions (seat, action, amount)."""
    for seat_idx, action, amount in actions:
        engine.apply_action(seat_idx, action, amount)


def auto_complete_hand(engine: GameEngine) -> None:
    """Advance the current hand with straightforward actions until completion."""
    while not engine.is_hand_complete():
        actor = engine.next_actor()
        if actor is None:
            break
        legal = engine.legal_actions(actor).legal
        if ActionType.DRAW in legal:
            engine.apply_action(actor, ActionType.DRAW, 0)
        elif ActionType.CHECK in legal:
            engine.apply_action(actor, ActionType.CHECK, None)
        elif ActionType.CALL in legal:
            engine.apply_action(actor, ActionType.CALL, None)
        else:
            engine.apply_action(actor, ActionType.FOLD, None)


def events_of(ctx: HandContext, kind: str):
    return [event for event in ctx.events if event.ev.value == kind]
