from __future__ import annotations

import logging
import random
from collections import Counter
from typing import Callable, List, Mapping, Optional, Tuple

from .cards import Card
from .errors import ProtocolError
from .game import GameEngine, HandContext
from .models import ActionType, RankingScheme

LOGGER = logging.getLogger("cardroom.deciders")

# A decider answers "what does seat N do now?" for the seat the engine is
# waiting on. It returns (action, amount); amount is a raise-to total for
# BET/RAISE and a discard mask for DRAW.
Decision = Tuple[ActionType, Optional[int]]
Decider = Callable[[GameEngine, int], Decision]

_RNG = random.Random()


def passive_decider(engine: GameEngine, seat_idx: int) -> Decision:
    """Never puts in a raise: checks when free, calls otherwise, stands pat on draws."""
    window = engine.legal_actions(seat_idx)
    if ActionType.DRAW in window.legal:
        return ActionType.DRAW, 0
    if ActionType.CHECK in window.legal:
        return ActionType.CHECK, None
    if ActionType.CALL in window.legal:
        return ActionType.CALL, None
    if ActionType.ALL_IN in window.legal:
        return ActionType.ALL_IN, None
    return ActionType.FOLD, None


def _rough_hole_strength(hole: List[Card]) -> int:
    """Very rough proxy for starting-hand quality used to drive aggression choices."""
    if len(hole) < 2:
        return 0

    best = sorted(hole, key=lambda card: card.rank, reverse=True)[:2]
    values = [card.rank for card in best]
    score = sum(values)
    if values[0] == values[1]:
        score += 14  # pairs are quite strong pre-flop
    else:
        gap = abs(values[0] - values[1])
        if gap == 1:
            score += 4
        elif gap == 2:
            score += 2
    if best[0].suit == best[1].suit:
        score += 3
    if min(values) >= 11:
        score += 2
    return score


def _lowball_value(card: Card, scheme: RankingScheme) -> int:
    if scheme == RankingScheme.LOWBALL_A5 and card.rank == 14:
        return 1
    return card.rank


def discard_mask(hole: List[Card], scheme: RankingScheme) -> int:
    """Pick the cards to throw away for a draw.

    Lowball keeps one card of each rank at eight or below; high-hand draws
    keep paired cards, or the single highest card when nothing pairs.
    """
    mask = 0
    if scheme == RankingScheme.HIGH:
        counts = Counter(card.rank for card in hole)
        keep = {rank for rank, count in counts.items() if count > 1}
        if not keep:
            keep = {max(counts)}
        for idx, card in enumerate(hole):
            if card.rank not in keep:
                mask |= 1 << idx
        return mask

    seen = set()
    for idx, card in enumerate(hole):
        value = _lowball_value(card, scheme)
        if value > 8 or value in seen:
            mask |= 1 << idx
        else:
            seen.add(value)
    return mask


def _draw_strength(hole: List[Card], scheme: RankingScheme) -> int:
    if scheme == RankingScheme.HIGH:
        counts = Counter(card.rank for card in hole)
        return 10 * max(counts.values()) + max(counts)
    kept = 5 - bin(discard_mask(hole, scheme)).count("1")
    return kept * 8


def _should_raise(strength: int, betting_round: int, facing_bet: bool, rng: random.Random) -> bool:
    base = 0.2 if facing_bet else 0.35
    round_bonus = min(betting_round, 3) * 0.04
    scaled_strength = min(strength / 45.0, 0.45)
    probability = min(0.85, base + round_bonus + scaled_strength)

    # Always attack with premium holdings.
    if strength >= 36:
        return True
    return rng.random() < probability


def _choose_raise_amount(min_to: int, max_to: Optional[int], facing_bet: bool, rng: random.Random) -> int:
    if max_to is None or max_to <= min_to:
        return min_to

    span = max_to - min_to
    roll = rng.random()
    if facing_bet:
        if roll < 0.2:
            return min_to
        if roll > 0.85:
            return max_to
    else:
        if roll < 0.35:
            return min_to
        if roll > 0.9:
            return max_to
    return min_to + int(span * rng.random())


def baseline_decider(engine: GameEngine, seat_idx: int, rng: Optional[random.Random] = None) -> Decision:
    """Aggressive demo decider: random raises biased toward stronger holdings."""
    rng = rng or _RNG
    window = engine.legal_actions(seat_idx)
    seat = engine.seats[seat_idx]
    hole = seat.cards if seat else []
    ctx = engine.hand
    scheme = ctx.rules.scheme if ctx else RankingScheme.HIGH

    if ActionType.DRAW in window.legal:
        return ActionType.DRAW, discard_mask(hole, scheme)

    # Always fold if folding is the only option.
    if window.legal == [ActionType.FOLD]:
        return ActionType.FOLD, None

    if ctx is not None and ctx.rules.community_cards:
        strength = _rough_hole_strength(hole)
    else:
        strength = _draw_strength(hole, scheme)
    betting_round = ctx.betting_round_index if ctx else 0
    facing_bet = window.call_amount is not None

    aggressive = next((kind for kind in (ActionType.RAISE, ActionType.BET) if kind in window.legal), None)
    if aggressive is not None and window.min_raise_to is not None and hole:
        if _should_raise(strength, betting_round, facing_bet, rng):
            return aggressive, _choose_raise_amount(window.min_raise_to, window.max_raise_to, facing_bet, rng)

    if ActionType.CALL in window.legal:
        return ActionType.CALL, None
    if ActionType.CHECK in window.legal:
        return ActionType.CHECK, None
    if ActionType.ALL_IN in window.legal and strength >= 30:
        return ActionType.ALL_IN, None
    return ActionType.FOLD, None


def seeded_baseline(seed: int) -> Decider:
    rng = random.Random(seed)

    def decide(engine: GameEngine, seat_idx: int) -> Decision:
        return baseline_decider(engine, seat_idx, rng)

    return decide


def play_hand(
    engine: GameEngine,
    deciders: Mapping[int, Decider],
    seed: Optional[int] = None,
    **start_kwargs,
) -> HandContext:
    """Drive one hand synchronously, asking each seat's decider in turn.

    Seats without a decider, and deciders that answer with an illegal action,
    get the engine's default action instead.
    """
    ctx = engine.start_hand(seed, **start_kwargs)
    while not engine.is_hand_complete():
        seat_idx = engine.next_actor()
        if seat_idx is None:
            break
        decider = deciders.get(seat_idx)
        if decider is None:
            engine.apply_action(seat_idx, *engine.default_action(seat_idx))
            continue
        action, amount = decider(engine, seat_idx)
        try:
            engine.apply_action(seat_idx, action, amount)
        except ProtocolError as exc:
            fallback = engine.default_action(seat_idx)
            LOGGER.warning(
                "Seat %s decider sent %s %s (%s); substituting %s",
                seat_idx,
                action,
                amount,
                exc.code.value,
                fallback[0].value,
            )
            engine.apply_action(seat_idx, *fallback)
    return ctx


def play_hands(engine: GameEngine, deciders: Mapping[int, Decider], count: int, seed: int = 0) -> List[HandContext]:
    hands: List[HandContext] = []
    for offset in range(count):
        if not engine.can_start_hand():
            break
        hands.append(play_hand(engine, deciders, seed + offset))
    return hands

