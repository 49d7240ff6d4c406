from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .errors import ErrorCode, ProtocolError
from .models import ActionType, ActionWindow, BettingStructure, PlayerSeat, SeatState

# BettingRound owns the rules of a single street: who acts next, which actions
# are legal, and when the round is closed. Chips move on the seats; the caller
# forwards the returned deltas to the pot manager.


class BettingRound:
    def __init__(
        self,
        seats: Sequence[Optional[PlayerSeat]],
        order: Sequence[int],
        *,
        structure: BettingStructure = BettingStructure.NO_LIMIT,
        min_raise: int,
        current_bet: int = 0,
        raise_cap: Optional[int] = None,
        pot_total: Callable[[], int] = lambda: 0,
        bet_unit: Optional[int] = None,
        raises: Optional[int] = None,
    ) -> None:
        self.seats = seats
        self.order: List[int] = list(order)
        self.structure = structure
        self.current_bet = current_bet
        self.min_raise = min_raise
        # A stud completion may be smaller than the bet unit; later raises never are.
        self.bet_unit = min_raise if bet_unit is None else bet_unit
        self.raise_cap = raise_cap if structure == BettingStructure.FIXED_LIMIT else None
        if raises is None:
            raises = 1 if current_bet > 0 else 0
        self.raises = raises
        # Bet level set by the last full bet or raise.
        self.full_bet = current_bet
        self.acted_at: Dict[int, int] = {}
        self._pot_total = pot_total

        actionable = [idx for idx in self.order if self._seat(idx).can_act]
        self.pending: Set[int] = set(actionable)
        if len(actionable) <= 1 and all(self._seat(idx).bet >= current_bet for idx in actionable):
            # Nobody left to bet against: the street is dealt without action.
            self.pending.clear()
        self.to_act: Optional[int] = self._next_pending(start=0)

    # Queries ----------------------------------------------------------

    @property
    def is_closed(self) -> bool:
        return not self.pending

    def to_call(self, seat_idx: int) -> int:
        return max(self.current_bet - self._seat(seat_idx).bet, 0)

    def can_raise(self, seat_idx: int) -> bool:
        if not self._opponents_can_act(seat_idx):
            return False
        if self.raise_cap is not None and self.raises >= self.raise_cap:
            return False
        if self.full_bet == 0:
            return True
        # A seat may raise only when it faces a full raise increment over the
        # level it last acted at, or over the last full bet if it has not
        # acted yet. A short all-in on top caps everyone at calling.
        reference = self.acted_at.get(seat_idx, self.full_bet)
        return self.current_bet == reference or self.current_bet - reference >= self.min_raise

    def raise_bounds(self, seat_idx: int) -> Optional[Tuple[int, int]]:
        """Return (min, max) raise-to totals permitted by the betting structure."""
        if not self.can_raise(seat_idx):
            return None
        seat = self._seat(seat_idx)
        min_to = self.current_bet + self.min_raise
        all_in_total = seat.bet + seat.stack
        if self.structure == BettingStructure.FIXED_LIMIT:
            max_to = min_to
        elif self.structure == BettingStructure.POT_LIMIT:
            max_to = max(min_to, self.current_bet + self._pot_total() + self.to_call(seat_idx))
        else:
            max_to = all_in_total
        return min_to, max_to

    def legal_actions(self, seat_idx: int) -> ActionWindow:
        seat = self._seat(seat_idx)
        to_call = self.to_call(seat_idx)
        all_in_total = seat.bet + seat.stack

        legal: List[ActionType] = [ActionType.FOLD]
        if to_call == 0:
            legal.append(ActionType.CHECK)
            aggressive = ActionType.BET
        else:
            if seat.stack >= to_call:
                legal.append(ActionType.CALL)
            aggressive = ActionType.RAISE

        min_raise_to = max_raise_to = None
        bounds = self.raise_bounds(seat_idx)
        if bounds is not None and all_in_total >= bounds[0]:
            legal.append(aggressive)
            min_raise_to, max_raise_to = bounds[0], min(bounds[1], all_in_total)
        if seat.stack > 0:
            if all_in_total <= self.current_bet or (bounds is not None and all_in_total <= bounds[1]):
                legal.append(ActionType.ALL_IN)

        call_amount = to_call if ActionType.CALL in legal else None
        return ActionWindow(legal, call_amount, min_raise_to, max_raise_to)

    # Mutation ---------------------------------------------------------

    def apply(self, seat_idx: int, action: ActionType, amount: Optional[int]) -> Tuple[int, int]:
        """Apply one betting action.

        Returns ``(chips_committed, recorded_amount)``. Raises ProtocolError
        before touching any state when the action is not legal.
        """
        if seat_idx != self.to_act:
            raise ProtocolError(ErrorCode.NOT_YOUR_TURN, f"Seat {seat_idx} is not next to act")
        seat = self._seat(seat_idx)
        target = self._validate(seat_idx, seat, action, amount)

        delta = 0
        recorded = 0
        if action == ActionType.FOLD:
            seat.state = SeatState.FOLDED
        elif action == ActionType.CALL:
            delta = seat.commit(self.to_call(seat_idx))
            recorded = delta
        elif action in (ActionType.BET, ActionType.RAISE, ActionType.ALL_IN):
            delta = seat.commit(target - seat.bet)
            recorded = target
            if target > self.current_bet:
                self._raise_to(seat_idx, target)

        self.acted_at[seat_idx] = self.current_bet
        self.pending.discard(seat_idx)
        self.to_act = self._next_after(seat_idx)
        return delta, recorded

    def _validate(self, seat_idx: int, seat: PlayerSeat, action: ActionType, amount: Optional[int]) -> int:
        to_call = self.to_call(seat_idx)
        all_in_total = seat.bet + seat.stack

        if action == ActionType.FOLD:
            return seat.bet
        if action == ActionType.CHECK:
            if to_call > 0:
                raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "Cannot check when facing a bet")
            return seat.bet
        if action == ActionType.CALL:
            if to_call == 0:
                raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "Nothing to call")
            if seat.stack < to_call:
                raise ProtocolError(ErrorCode.INSUFFICIENT_FUNDS, "Stack too short to call; go all-in instead")
            return self.current_bet
        if action in (ActionType.BET, ActionType.RAISE):
            if action == ActionType.BET and to_call > 0:
                raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "Cannot bet when facing a bet")
            if action == ActionType.RAISE and to_call == 0:
                raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "Nothing to raise")
            if not isinstance(amount, int) or isinstance(amount, bool):
                raise ProtocolError(ErrorCode.INVALID_RAISE_SIZE, f"{action.value} requires an integer amount")
            bounds = self.raise_bounds(seat_idx)
            if bounds is None:
                raise ProtocolError(ErrorCode.INVALID_RAISE_SIZE, "Raising is not open to this seat")
            if amount > all_in_total:
                raise ProtocolError(ErrorCode.INSUFFICIENT_FUNDS, "Raise exceeds stack")
            min_to, max_to = bounds
            if amount < min_to:
                raise ProtocolError(ErrorCode.INVALID_RAISE_SIZE, f"Raise below minimum of {min_to}")
            if amount > max_to:
                raise ProtocolError(ErrorCode.INVALID_RAISE_SIZE, f"Raise above maximum of {max_to}")
            return amount
        if action == ActionType.ALL_IN:
            if seat.stack <= 0:
                raise ProtocolError(ErrorCode.ILLEGAL_ACTION, "No chips left to commit")
            if all_in_total > self.current_bet:
                bounds = self.raise_bounds(seat_idx)
                if bounds is None:
                    raise ProtocolError(ErrorCode.INVALID_RAISE_SIZE, "Raising is not open to this seat")
                if all_in_total > bounds[1]:
                    raise ProtocolError(ErrorCode.INVALID_RAISE_SIZE, f"All-in exceeds maximum of {bounds[1]}")
            return all_in_total
        raise ProtocolError(ErrorCode.ILLEGAL_ACTION, f"Unsupported action {action}")

    def _raise_to(self, seat_idx: int, target: int) -> None:
        increment = target - self.current_bet
        if increment >= self.min_raise:
            self.min_raise = max(increment, self.bet_unit)
            self.full_bet = target
            self.raises += 1
        elif target - self.full_bet >= self.min_raise:
            # Short all-ins that add up to a full raise reopen the betting.
            self.full_bet = target
        self.current_bet = target
        self.pending = {idx for idx in self.order if idx != seat_idx and self._seat(idx).can_act}

    # Helpers ----------------------------------------------------------

    def _seat(self, seat_idx: int) -> PlayerSeat:
        seat = self.seats[seat_idx]
        if seat is None:
            raise ProtocolError(ErrorCode.INVALID_SEAT, f"Seat {seat_idx} is empty")
        return seat

    def _opponents_can_act(self, seat_idx: int) -> bool:
        return any(idx != seat_idx and self._seat(idx).can_act for idx in self.order)

    def _next_pending(self, start: int) -> Optional[int]:
        count = len(self.order)
        for step in range(count):
            idx = self.order[(start + step) % count]
            if idx in self.pending:
                return idx
        return None

    def _next_after(self, seat_idx: int) -> Optional[int]:
        if seat_idx in self.order:
            return self._next_pending(self.order.index(seat_idx) + 1)
        return self._next_pending(0)
