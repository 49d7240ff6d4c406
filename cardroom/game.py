from __future__ import annotations

import copy
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple, Union

from .betting import BettingRound
from .cards import Card, Deck, cards_to_labels
from .errors import CardError, EngineError, ErrorCode, HandFault, ProtocolError
from .evaluator import HandRank, rank_labels
from .models import (
    ActionRecord,
    ActionType,
    ActionWindow,
    BettingStructure,
    Event,
    EventKind,
    HoleCard,
    Phase,
    PlayerSeat,
    SeatRole,
    SeatState,
    StreetKind,
    TableConfig,
)
from .pots import PotAward, PotManager
from .variants import Street, VariantRules, rules_for

LOGGER = logging.getLogger("cardroom.engine")

EventSink = Callable[[Event], None]

# GameEngine keeps all table state in memory. No networking lives here, only
# poker rules, chip accounting, and turn order.


@dataclass
class HandContext:
    # All mutable info about the current hand (deck, pots, betting round, log).
    hand_id: str
    hand_number: int
    seed: int
    rules: VariantRules
    button: int
    deck: Deck
    rng: random.Random
    pots: PotManager
    table_total: int
    starting_stacks: Dict[int, int]
    players: List[PlayerSeat] = field(default_factory=list)
    deck_order: List[str] = field(default_factory=list)
    table_size: int = 0
    sb_seat: Optional[int] = None
    bb_seat: Optional[int] = None
    bring_in_seat: Optional[int] = None
    phase: Phase = Phase.IDLE
    street_index: int = 0
    betting_round_index: int = -1
    draw_round: int = 0
    community: List[Card] = field(default_factory=list)
    betting: Optional[BettingRound] = None
    draw_queue: Deque[int] = field(default_factory=deque)
    muck: List[Tuple[int, Card]] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    actions: List[ActionRecord] = field(default_factory=list)
    showdown: Dict[int, HandRank] = field(default_factory=dict)
    awards: List[PotAward] = field(default_factory=list)
    outcome: Optional[str] = None

    @property
    def street(self) -> Street:
        streets = self.rules.streets
        return streets[min(self.street_index, len(streets) - 1)]

    @property
    def to_act(self) -> Optional[int]:
        if self.phase == Phase.BETTING and self.betting is not None:
            return self.betting.to_act
        if self.phase == Phase.DRAWING and self.draw_queue:
            return self.draw_queue[0]
        return None

    @property
    def current_bet(self) -> int:
        return self.betting.current_bet if self.betting else 0

    @property
    def min_raise(self) -> int:
        return self.betting.min_raise if self.betting else self.rules.stakes.big_blind

    @property
    def pot(self) -> int:
        return self.pots.total


class GameEngine:
    """Single-table hand engine for community-card and draw variants."""

    def __init__(
        self,
        config: TableConfig,
        rules: Optional[VariantRules] = None,
        sink: Optional[EventSink] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.rules = rules or rules_for(config)
        if config.seats > self.rules.max_players:
            raise ValueError(f"{self.rules.title} seats at most {self.rules.max_players} players")
        self.seats: List[Optional[PlayerSeat]] = [None] * config.seats
        self.button: Optional[int] = None
        self.hand_counter = 0
        self.hand: Optional[HandContext] = None
        self.sink = sink
        self.clock = clock

    # Seat management -------------------------------------------------

    def assign_seat(
        self,
        name: str,
        identity: Optional[str] = None,
        seat: Optional[int] = None,
        stack: Optional[int] = None,
    ) -> PlayerSeat:
        display = name.strip() if isinstance(name, str) else ""
        if not display:
            raise ProtocolError(ErrorCode.INVALID_SEAT, "Player name required")

        key = display.casefold()
        existing = self._find_seat_by_key(key)
        if existing:
            existing.name = display
            return existing

        if seat is None:
            seat = next((idx for idx, occupant in enumerate(self.seats) if occupant is None), None)
            if seat is None:
                raise ProtocolError(ErrorCode.TABLE_FULL, "Table is full")
        elif not 0 <= seat < self.config.seats:
            raise ProtocolError(ErrorCode.INVALID_SEAT, f"No seat {seat} at this table")
        elif self.seats[seat] is not None:
            raise ProtocolError(ErrorCode.SEAT_TAKEN, f"Seat {seat} is taken")

        player = PlayerSeat(
            seat=seat,
            name=display,
            name_key=key,
            stack=self.config.starting_stack if stack is None else stack,
            identity=identity,
        )
        self.seats[seat] = player
        return player

    def _find_seat_by_key(self, key: str) -> Optional[PlayerSeat]:
        for seat in self.seats:
            if seat and seat.name_key == key:
                return seat
        return None

    def sit_out(self, seat_idx: int) -> None:
        # Takes effect at the next hand boundary.
        self._occupied(seat_idx).sit_out_next = True

    def sit_in(self, seat_idx: int) -> None:
        self._occupied(seat_idx).sit_out_next = False

    def set_connected(self, seat_idx: int, connected: bool) -> None:
        seat = self.seats[seat_idx]
        if seat:
            seat.connected = connected

    def seating_order(self) -> List[int]:
        return [seat.seat for seat in self.seats if self._can_be_dealt(seat)]

    def can_start_hand(self) -> bool:
        return len(self.seating_order()) >= max(2, self.rules.min_players)

    def total_chips(self) -> int:
        """Chips on the table: every stack plus whatever sits in the pots."""
        in_pots = self.hand.pots.total if self.hand else 0
        return sum(seat.stack for seat in self.seats if seat) + in_pots

    # Hand lifecycle --------------------------------------------------

    def hand_in_progress(self) -> bool:
        return self.hand is not None and self.hand.phase != Phase.COMPLETE

    def start_hand(
        self,
        seed: Optional[int] = None,
        *,
        deck: Optional[Deck] = None,
        button: Optional[int] = None,
        hand_id: Optional[str] = None,
    ) -> HandContext:
        """Start a hand. ``deck`` may supply a prearranged (unshuffled) deck."""
        if self.hand_in_progress():
            raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "Hand already in progress")
        if not self.can_start_hand():
            raise ProtocolError(ErrorCode.NOT_ENOUGH_PLAYERS, "Not enough active players to start a hand")

        for seat in self.seats:
            if seat:
                seat.reset_for_hand()
        dealt_in = [seat.seat for seat in self.seats if seat and seat.state == SeatState.ACTIVE]

        if seed is None:
            seed = int(time.time() * 1000) & 0xFFFFFFFF
        # Draw reshuffles use their own stream so a replay that supplies the
        # recorded deck order reshuffles exactly like the recorded hand.
        rng = random.Random(seed)
        if deck is None:
            deck = self.rules.new_deck()
            deck.shuffle(random.Random(seed))
        else:
            # A supplied deck is dealt from its first card, even if it was used before.
            deck.reset()

        if button is not None:
            if button not in dealt_in:
                raise ProtocolError(ErrorCode.INVALID_SEAT, f"Seat {button} cannot hold the button")
            self.button = button
        elif self.button is None:
            self.button = dealt_in[0]
        else:
            self.button = self._next_seat_with_chips(self.button)

        self.hand_counter += 1
        if hand_id is None:
            hand_id = f"H-{time.strftime('%Y%m%d')}-{self.hand_counter:05d}"

        ctx = HandContext(
            hand_id=hand_id,
            hand_number=self.hand_counter,
            seed=seed,
            rules=self.rules,
            button=self.button,
            deck=deck,
            rng=rng,
            pots=PotManager(dealt_in),
            table_total=sum(seat.stack for seat in self.seats if seat),
            starting_stacks={idx: self._occupied(idx).stack for idx in dealt_in},
            players=[self._occupied(idx) for idx in dealt_in],
            deck_order=cards_to_labels(deck.undealt()),
            table_size=self.config.seats,
        )
        self.hand = ctx
        LOGGER.info(
            "Hand %s starting: variant=%s button=%s seats=%s seed=%s",
            hand_id,
            self.rules.name,
            self.button,
            dealt_in,
            seed,
        )
        self._emit(
            ctx,
            EventKind.HAND_START,
            hand_id=hand_id,
            variant=self.rules.name,
            dealer_seat=self.button,
            seat_states=[
                {"seat": seat.seat, "name": seat.name, "stack": seat.stack, "state": seat.state.value}
                for seat in self.seats
                if seat
            ],
        )

        try:
            self._post_forced_bets(ctx)
            self._deal_hole_cards(ctx)
            if ctx.rules.uses_bring_in:
                self._post_bring_in(ctx)
            self._open_street(ctx)
            self._advance(ctx)
        except (HandFault, CardError) as exc:
            self._void(ctx, "faulted", str(exc))
        self._check_chips(ctx)
        return ctx

    def _post_forced_bets(self, ctx: HandContext) -> None:
        ctx.phase = Phase.BLINDS
        stakes = ctx.rules.stakes
        in_hand = self._clockwise_from(ctx.button + 1, lambda seat: seat.in_hand)

        antes: Dict[int, int] = {}
        if stakes.ante > 0:
            for seat_idx in in_hand:
                seat = self._occupied(seat_idx)
                posted = seat.post_ante(stakes.ante)
                ctx.pots.add_commit(seat_idx, posted)
                antes[seat_idx] = posted

        sb_amount = bb_amount = 0
        if ctx.rules.uses_blinds:
            if len(in_hand) == 2:
                # Heads-up: the button posts the small blind.
                ctx.sb_seat = ctx.button
                ctx.bb_seat = next(idx for idx in in_hand if idx != ctx.button)
            else:
                ctx.sb_seat = in_hand[0]
                ctx.bb_seat = in_hand[1]
            sb_amount = self._post_blind(ctx, ctx.sb_seat, stakes.small_blind)
            bb_amount = self._post_blind(ctx, ctx.bb_seat, stakes.big_blind)

        for seat_idx in in_hand:
            if self._occupied(seat_idx).state == SeatState.ALL_IN:
                ctx.pots.mark_all_in(seat_idx)

        self._emit(
            ctx,
            EventKind.BLINDS_POSTED,
            sb_seat=ctx.sb_seat,
            sb_amount=sb_amount,
            bb_seat=ctx.bb_seat,
            bb_amount=bb_amount,
            antes=antes,
        )

    def _post_blind(self, ctx: HandContext, seat_idx: int, amount: int) -> int:
        seat = self._occupied(seat_idx)
        posted = seat.commit(amount) if seat.state == SeatState.ACTIVE else 0
        ctx.pots.add_commit(seat_idx, posted)
        return posted

    def _deal_hole_cards(self, ctx: HandContext) -> None:
        ctx.phase = Phase.DEALING
        ordered = self._clockwise_from(ctx.button + 1, lambda seat: seat.in_hand)
        for card_index in range(ctx.rules.hole_cards):
            face_up = ctx.rules.is_face_up(card_index)
            for seat_idx in ordered:
                self._occupied(seat_idx).hole_cards.append(HoleCard(ctx.deck.deal(), face_up))
        for seat_idx in ordered:
            self._announce_hole(ctx, seat_idx, ctx.rules.hole_cards)

    def _announce_hole(self, ctx: HandContext, seat_idx: int, count: int) -> None:
        data: Dict[str, object] = {"seat": seat_idx, "card_count": count}
        showing = [hole.card for hole in self._occupied(seat_idx).hole_cards[-count:] if hole.face_up]
        if showing:
            data["showing"] = cards_to_labels(showing)
        self._emit(ctx, EventKind.HOLE_DEALT, **data)

    def _post_bring_in(self, ctx: HandContext) -> None:
        # The worst door card posts the forced opening bet.
        rules = ctx.rules
        door = rules.hole_cards - 1
        contenders = self._clockwise_from(ctx.button + 1, lambda seat: seat.in_hand)
        seat_idx = max(contenders, key=lambda idx: rules.bring_in_order(self._occupied(idx).hole_cards[door].card))
        seat = self._occupied(seat_idx)
        ctx.bring_in_seat = seat_idx
        posted = seat.commit(rules.bring_in_amount) if seat.state == SeatState.ACTIVE else 0
        ctx.pots.add_commit(seat_idx, posted)
        if posted and seat.state == SeatState.ALL_IN:
            ctx.pots.mark_all_in(seat_idx)
        self._emit(
            ctx,
            EventKind.BRING_IN,
            seat=seat_idx,
            amount=posted,
            card=seat.hole_cards[door].card.label,
        )

    def _open_street(self, ctx: HandContext) -> None:
        street = ctx.street
        if street.kind == StreetKind.BETTING:
            self._open_betting_round(ctx)
        elif street.kind == StreetKind.DEAL_HOLE:
            ctx.phase = Phase.DEALING
            ctx.betting = None
            for seat_idx in self._clockwise_from(ctx.button + 1, lambda seat: seat.in_hand):
                seat = self._occupied(seat_idx)
                for _ in range(street.count):
                    index = len(seat.hole_cards)
                    seat.hole_cards.append(HoleCard(ctx.deck.deal(), ctx.rules.is_face_up(index)))
                self._announce_hole(ctx, seat_idx, street.count)
        elif street.kind == StreetKind.DEAL_COMMUNITY:
            ctx.phase = Phase.DEALING
            ctx.betting = None
            if street.burn:
                ctx.deck.burn()
            cards = ctx.deck.deal_many(street.count)
            ctx.community.extend(cards)
            self._emit(ctx, EventKind.COMMUNITY_DEALT, street=street.name, cards=cards_to_labels(cards))
        else:
            ctx.phase = Phase.DRAWING
            ctx.betting = None
            ctx.draw_round += 1
            ctx.draw_queue = deque(
                self._clockwise_from(ctx.button + 1, lambda seat: seat.state == SeatState.ACTIVE)
            )
        LOGGER.debug("Hand %s entering %s (%s)", ctx.hand_id, street.name, ctx.phase.value)

    def _open_betting_round(self, ctx: HandContext) -> None:
        rules = ctx.rules
        ctx.phase = Phase.BETTING
        ctx.betting_round_index += 1
        first_round = ctx.betting_round_index == 0
        if not first_round:
            for seat in self.seats:
                if seat:
                    seat.reset_for_round()

        forced = 0
        if first_round and rules.uses_blinds and ctx.bb_seat is not None:
            start = ctx.bb_seat + 1
            forced = rules.stakes.big_blind
        elif first_round and ctx.bring_in_seat is not None:
            start = ctx.bring_in_seat + 1
            forced = rules.bring_in_amount
        elif rules.uses_bring_in:
            start = self._best_showing(ctx)
        else:
            start = ctx.button + 1
        order = self._clockwise_from(start, lambda seat: seat.in_hand)
        # A blind or bring-in posted short still sets the full amount to call.
        current_bet = max([self._occupied(idx).bet for idx in order] + [forced])

        if rules.structure == BettingStructure.FIXED_LIMIT:
            unit = rules.bet_size(ctx.betting_round_index)
        else:
            unit = max(rules.stakes.big_blind, 1)
        min_raise = unit
        raises = None
        if first_round and ctx.bring_in_seat is not None:
            # Completing the bring-in to a full bet is the first bet of the round.
            raises = 0
            if current_bet < unit:
                min_raise = unit - current_bet

        ctx.betting = BettingRound(
            self.seats,
            order,
            structure=rules.structure,
            min_raise=min_raise,
            current_bet=current_bet,
            raise_cap=rules.raise_cap,
            pot_total=lambda: ctx.pots.total,
            bet_unit=unit,
            raises=raises,
        )

    def _best_showing(self, ctx: HandContext) -> int:
        # Ties go to the seat nearest the dealer's left.
        contenders = self._clockwise_from(ctx.button + 1, lambda seat: seat.in_hand)
        return max(
            contenders,
            key=lambda idx: ctx.rules.showing(
                [hole.card for hole in self._occupied(idx).hole_cards if hole.face_up]
            ),
        )

    def _advance(self, ctx: HandContext) -> None:
        # Walk forward through streets until a seat owes an action or the
        # hand is settled.
        while True:
            if len(self._contenders()) <= 1:
                self._settle_uncontested(ctx)
                return
            if ctx.phase == Phase.BETTING and ctx.betting is not None and not ctx.betting.is_closed:
                return
            if ctx.phase == Phase.DRAWING and ctx.draw_queue:
                return
            if ctx.phase == Phase.BETTING:
                ctx.pots.close_street()
            ctx.street_index += 1
            if ctx.street_index >= len(ctx.rules.streets):
                self._showdown(ctx)
                return
            self._open_street(ctx)

    # Action handling -------------------------------------------------

    def next_actor(self) -> Optional[int]:
        if not self.hand_in_progress():
            return None
        assert self.hand is not None
        return self.hand.to_act

    def legal_actions(self, seat_idx: int) -> ActionWindow:
        ctx = self._require_hand()
        seat = self.seats[seat_idx] if 0 <= seat_idx < len(self.seats) else None
        if seat is None or not seat.in_hand:
            raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "Seat not active")
        if ctx.phase == Phase.DRAWING:
            legal = [ActionType.DRAW] if ctx.to_act == seat_idx else []
            return ActionWindow(legal, None, None, None)
        if ctx.phase != Phase.BETTING or ctx.betting is None:
            return ActionWindow([], None, None, None)
        return ctx.betting.legal_actions(seat_idx)

    def default_action(self, seat_idx: int) -> Tuple[ActionType, Optional[int]]:
        """Substitute for a timed-out seat: stand pat, check if free, else fold."""
        ctx = self._require_hand()
        if ctx.phase == Phase.DRAWING:
            return ActionType.DRAW, 0
        window = self.legal_actions(seat_idx)
        if ActionType.CHECK in window.legal:
            return ActionType.CHECK, None
        return ActionType.FOLD, None

    def apply_action(
        self,
        seat_idx: int,
        action: Union[ActionType, str],
        amount: Optional[int] = None,
    ) -> List[Event]:
        ctx = self._require_hand()
        try:
            action = ActionType(action)
        except ValueError:
            raise ProtocolError(ErrorCode.ILLEGAL_ACTION, f"Unsupported action {action!r}") from None
        if ctx.phase not in (Phase.BETTING, Phase.DRAWING):
            raise ProtocolError(ErrorCode.HAND_NOT_ACTIVE, f"No action expected during {ctx.phase.value}")
        if seat_idx != ctx.to_act:
            raise ProtocolError(ErrorCode.NOT_YOUR_TURN, f"Seat {seat_idx} is not next to act")

        mark = len(ctx.events)
        if ctx.phase == Phase.DRAWING:
            if action != ActionType.DRAW:
                raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "Only DRAW is accepted during a draw")
            self._apply_draw(ctx, seat_idx, amount)
        else:
            if action == ActionType.DRAW:
                raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "Cannot draw during a betting round")
            self._apply_bet(ctx, seat_idx, action, amount)

        try:
            self._advance(ctx)
        except (HandFault, CardError) as exc:
            self._void(ctx, "faulted", str(exc))
        self._check_chips(ctx)
        return ctx.events[mark:]

    def _apply_bet(self, ctx: HandContext, seat_idx: int, action: ActionType, amount: Optional[int]) -> None:
        assert ctx.betting is not None
        delta, recorded = ctx.betting.apply(seat_idx, action, amount)
        seat = self._occupied(seat_idx)
        if delta:
            ctx.pots.add_commit(seat_idx, delta)
        if seat.state == SeatState.FOLDED:
            ctx.pots.mark_folded(seat_idx)
        elif seat.state == SeatState.ALL_IN:
            ctx.pots.mark_all_in(seat_idx)
        ctx.actions.append(ActionRecord(seat_idx, action, recorded, ctx.street.name))
        self._emit(ctx, EventKind.ACTION, seat=seat_idx, kind=action.value, amount=recorded)

    def _apply_draw(self, ctx: HandContext, seat_idx: int, mask: Optional[int]) -> None:
        seat = self._occupied(seat_idx)
        mask = 0 if mask is None else mask
        if not isinstance(mask, int) or isinstance(mask, bool) or not 0 <= mask < (1 << len(seat.hole_cards)):
            raise ProtocolError(ErrorCode.ILLEGAL_ACTION, f"Invalid discard mask {mask!r}")

        indices = [idx for idx in range(len(seat.hole_cards)) if mask >> idx & 1]
        discards = [seat.hole_cards[idx].card for idx in indices]
        replacements, discards_returned = self._draw_replacements(ctx, seat_idx, discards)
        for idx, card in zip(indices, replacements):
            seat.hole_cards[idx] = HoleCard(card, ctx.rules.is_face_up(idx))
        if not discards_returned:
            ctx.muck.extend((seat_idx, card) for card in discards)

        ctx.draw_queue.popleft()
        ctx.actions.append(ActionRecord(seat_idx, ActionType.DRAW, mask, ctx.street.name))
        self._emit(ctx, EventKind.DRAW, seat=seat_idx, discard_count=len(discards))

    def _draw_replacements(
        self, ctx: HandContext, seat_idx: int, discards: List[Card]
    ) -> Tuple[List[Card], bool]:
        count = len(discards)
        discards_returned = False
        if ctx.deck.remaining < count:
            # Reshuffle the muck, keeping this seat's fresh discards out of it.
            LOGGER.debug("Hand %s: deck short for seat %s draw; reshuffling muck", ctx.hand_id, seat_idx)
            ctx.deck.return_cards([card for _, card in ctx.muck], ctx.rng)
            ctx.muck.clear()
        if ctx.deck.remaining < count:
            ctx.deck.return_cards(discards, ctx.rng)
            discards_returned = True
        return ctx.deck.deal_many(count), discards_returned

    # Settlement ------------------------------------------------------

    def _settle_uncontested(self, ctx: HandContext) -> None:
        ctx.phase = Phase.SETTLING
        ctx.betting = None
        ctx.draw_queue.clear()
        winner_idx = self._contenders()[0]
        award = ctx.pots.award_uncontested(winner_idx)
        self._pay(ctx, [award])
        self._complete(ctx, "uncontested")

    def _showdown(self, ctx: HandContext) -> None:
        ctx.phase = Phase.SHOWDOWN
        ctx.betting = None
        order = self._clockwise_from(ctx.button + 1, lambda seat: True)
        for seat_idx in order:
            seat = self._occupied(seat_idx)
            if not seat.in_hand:
                continue
            try:
                rank = ctx.rules.evaluate(seat.cards, ctx.community)
            except (ValueError, EngineError) as exc:
                raise HandFault(ErrorCode.HAND_FAULT, f"Could not evaluate seat {seat_idx}: {exc}") from exc
            ctx.showdown[seat_idx] = rank
            self._emit(
                ctx,
                EventKind.SHOWDOWN,
                seat=seat_idx,
                cards=cards_to_labels(seat.cards),
                rank=rank.description,
                ranks=rank_labels(rank),
            )

        ctx.phase = Phase.SETTLING
        self._pay(ctx, ctx.pots.award(ctx.showdown, order))
        self._complete(ctx, "showdown")

    def _pay(self, ctx: HandContext, awards: List[PotAward]) -> None:
        for award in awards:
            for seat_idx, amount in award.payouts().items():
                self._occupied(seat_idx).stack += amount
            ctx.awards.append(award)
            self._emit(
                ctx,
                EventKind.POT_AWARDED,
                pot_index=award.pot_index,
                winners=list(award.winners),
                amount_each=award.amount_each,
                amount=award.amount,
                remainder=award.remainder,
                remainder_seat=award.remainder_seat,
            )
        ctx.pots.clear()

    def _complete(self, ctx: HandContext, outcome: str, reason: Optional[str] = None) -> None:
        ctx.phase = Phase.COMPLETE
        ctx.outcome = outcome
        data: Dict[str, object] = {"outcome": outcome, "stacks": self._stacks()}
        if reason:
            data["reason"] = reason
        self._emit(ctx, EventKind.HAND_END, **data)
        LOGGER.info("Hand %s complete (%s); stacks=%s", ctx.hand_id, outcome, data["stacks"])

    def abort_hand(self, reason: str) -> List[Event]:
        """Void the current hand: every commitment goes back to its stack."""
        ctx = self.hand
        if ctx is None or ctx.phase == Phase.COMPLETE:
            raise ProtocolError(ErrorCode.HAND_NOT_ACTIVE, "No hand in progress")
        mark = len(ctx.events)
        self._void(ctx, "voided", reason)
        self._check_chips(ctx)
        return ctx.events[mark:]

    def _void(self, ctx: HandContext, outcome: str, reason: str) -> None:
        LOGGER.warning("Hand %s %s: %s", ctx.hand_id, outcome, reason)
        for seat_idx, amount in ctx.pots.refund().items():
            self._occupied(seat_idx).stack += amount
        for seat in self.seats:
            if seat:
                seat.bet = 0
                seat.total_bet = 0
        ctx.betting = None
        ctx.draw_queue.clear()
        self._complete(ctx, outcome, reason)

    # Public/Snapshot helpers -----------------------------------------

    def is_hand_complete(self) -> bool:
        return bool(self.hand and self.hand.phase == Phase.COMPLETE)

    def is_match_over(self) -> bool:
        return len([seat for seat in self.seats if seat and seat.stack > 0]) <= 1

    def role_of(self, seat_idx: int) -> SeatRole:
        ctx = self.hand
        if ctx is None:
            return SeatRole.PLAYER
        if seat_idx == ctx.button and seat_idx == ctx.sb_seat:
            return SeatRole.BUTTON_SMALL_BLIND
        if seat_idx == ctx.button:
            return SeatRole.BUTTON
        if seat_idx == ctx.sb_seat:
            return SeatRole.SMALL_BLIND
        if seat_idx == ctx.bb_seat:
            return SeatRole.BIG_BLIND
        if seat_idx == ctx.bring_in_seat:
            return SeatRole.BRING_IN
        return SeatRole.PLAYER

    def snapshot(self, viewer: Optional[int] = None) -> Dict[str, object]:
        """Deep-copied table view. Face-down cards are shown only to ``viewer``."""
        ctx = self.hand
        seats = []
        for idx, seat in enumerate(self.seats):
            if seat is None:
                seats.append({"seat": idx, "state": SeatState.EMPTY.value})
                continue
            reveal = idx == viewer or (ctx is not None and idx in ctx.showdown)
            seats.append(
                {
                    "seat": idx,
                    "name": seat.name,
                    "stack": seat.stack,
                    "state": seat.state.value,
                    "bet": seat.bet,
                    "total_bet": seat.total_bet,
                    "role": self.role_of(idx).value,
                    "connected": seat.connected,
                    "hole": [
                        hole.card.label if (reveal or hole.face_up) else None for hole in seat.hole_cards
                    ],
                }
            )
        payload: Dict[str, object] = {
            "variant": self.rules.name,
            "seats": seats,
            "button": self.button,
        }
        if ctx is not None:
            payload.update(
                {
                    "hand_id": ctx.hand_id,
                    "hand_number": ctx.hand_number,
                    "phase": ctx.phase.value,
                    "dealer_seat": ctx.button,
                    "sb_seat": ctx.sb_seat,
                    "bb_seat": ctx.bb_seat,
                    "bring_in_seat": ctx.bring_in_seat,
                    "to_act": ctx.to_act,
                    "current_bet": ctx.current_bet,
                    "min_raise": ctx.min_raise,
                    "street_index": ctx.street_index,
                    "street": ctx.street.name,
                    "draw_round": ctx.draw_round,
                    "community": cards_to_labels(ctx.community),
                    "pot": ctx.pot,
                    "pots": [
                        {"amount": pot.amount, "eligible": sorted(pot.eligible), "cap": pot.cap}
                        for pot in ctx.pots.pots
                    ],
                }
            )
        return copy.deepcopy(payload)

    def act_payload(self, seat_idx: int) -> Dict[str, object]:
        window = self.legal_actions(seat_idx)
        payload = self.snapshot(viewer=seat_idx)
        payload.update(
            {
                "seat": seat_idx,
                "legal": [action.value for action in window.legal],
                "call_amount": window.call_amount,
                "min_raise_to": window.min_raise_to,
                "max_raise_to": window.max_raise_to,
            }
        )
        return payload

    def lobby_state(self) -> Dict[str, object]:
        return {
            "players": [
                {
                    "seat": seat_idx,
                    "name": seat.name,
                    "connected": seat.connected,
                    "stack": seat.stack,
                    "sitting_out": seat.sit_out_next,
                }
                for seat_idx, seat in enumerate(self.seats)
                if seat is not None
            ]
        }

    def match_result_payload(self) -> Dict[str, object]:
        active = [seat for seat in self.seats if seat and seat.stack > 0]
        winner = active[0] if len(active) == 1 else None
        return {
            "winner": {"seat": winner.seat, "name": winner.name} if winner else None,
            "final_stacks": [
                {"seat": seat.seat, "name": seat.name, "stack": seat.stack} for seat in self.seats if seat is not None
            ],
        }

    # Helpers ----------------------------------------------------------

    def _emit(self, ctx: HandContext, ev: EventKind, **data: object) -> Event:
        event = Event(seq=len(ctx.events), ev=ev, data=data, ts=self.clock())
        ctx.events.append(event)
        if self.sink is not None:
            self.sink(event)
        return event

    def _check_chips(self, ctx: HandContext) -> None:
        ctx.pots.verify(
            {idx: seat.stack for idx, seat in enumerate(self.seats) if seat},
            ctx.table_total,
        )

    def _require_hand(self) -> HandContext:
        if self.hand is None:
            raise ProtocolError(ErrorCode.HAND_NOT_ACTIVE, "Hand not in progress")
        return self.hand

    def _occupied(self, seat_idx: int) -> PlayerSeat:
        seat = self.seats[seat_idx] if 0 <= seat_idx < len(self.seats) else None
        if seat is None:
            raise ProtocolError(ErrorCode.INVALID_SEAT, f"Seat {seat_idx} is empty")
        return seat

    def _contenders(self) -> List[int]:
        return [seat.seat for seat in self.seats if seat and seat.in_hand]

    def _stacks(self) -> Dict[int, int]:
        return {seat.seat: seat.stack for seat in self.seats if seat}

    def _can_be_dealt(self, seat: Optional[PlayerSeat]) -> bool:
        return seat is not None and seat.stack > 0 and not seat.sit_out_next

    def _clockwise_from(self, start: int, predicate: Callable[[PlayerSeat], bool]) -> List[int]:
        ordered = []
        for step in range(self.config.seats):
            idx = (start + step) % self.config.seats
            seat = self.seats[idx]
            if seat and predicate(seat):
                ordered.append(idx)
        return ordered

    def _next_seat_with_chips(self, start: int) -> int:
        candidates = self._clockwise_from(start + 1, self._can_be_dealt)
        if not candidates:
            raise ProtocolError(ErrorCode.NOT_ENOUGH_PLAYERS, "No seat can take the button")
        return candidates[0]
