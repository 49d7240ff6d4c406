from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .errors import ErrorCode, InvariantError
from .evaluator import HandRank


@dataclass
class Pot:
    amount: int
    contributors: Set[int] = field(default_factory=set)
    eligible: Set[int] = field(default_factory=set)
    cap: Optional[int] = None


@dataclass
class PotAward:
    pot_index: int
    amount: int
    winners: List[int]
    amount_each: int
    remainder: int = 0
    remainder_seat: Optional[int] = None

    def payouts(self) -> Dict[int, int]:
        paid = {seat: self.amount_each for seat in self.winners}
        if self.remainder and self.remainder_seat is not None:
            paid[self.remainder_seat] += self.remainder
        return paid


class PotManager:
    """Tracks per-seat hand commitments and derives main and side pots from them."""

    def __init__(self, seats: Iterable[int] = ()) -> None:
        self.commits: Dict[int, int] = {seat: 0 for seat in seats}
        self.folded: Set[int] = set()
        self.all_in: Set[int] = set()
        self.pots: List[Pot] = []

    @property
    def total(self) -> int:
        return sum(self.commits.values())

    def add_commit(self, seat: int, delta: int) -> None:
        if delta < 0:
            raise InvariantError(ErrorCode.CHIP_CONSERVATION, "Commitments never shrink during a hand")
        self.commits[seat] = self.commits.get(seat, 0) + delta

    def mark_folded(self, seat: int) -> None:
        self.folded.add(seat)

    def mark_all_in(self, seat: int) -> None:
        self.all_in.add(seat)

    def close_street(self) -> List[Pot]:
        """Partition all commitments into pots, lowest level first."""
        live = {seat: amount for seat, amount in self.commits.items() if seat not in self.folded and amount > 0}
        levels = sorted(set(live.values()))
        pots: List[Pot] = []
        previous = 0
        for level in levels:
            pot = Pot(amount=0)
            for seat, committed in self.commits.items():
                share = min(committed, level) - previous
                if share <= 0:
                    continue
                pot.amount += share
                pot.contributors.add(seat)
            pot.eligible = {seat for seat, committed in live.items() if committed >= level}
            if any(seat in self.all_in and live[seat] == level for seat in pot.eligible):
                pot.cap = level
            pots.append(pot)
            previous = level

        # Folded money above every live level has no one left to win it on its own.
        dead = sum(max(committed - previous, 0) for committed in self.commits.values())
        if dead:
            if pots:
                pots[-1].amount += dead
                pots[-1].contributors.update(
                    seat for seat, committed in self.commits.items() if committed > previous
                )
            else:
                pots.append(
                    Pot(
                        amount=dead,
                        contributors={seat for seat, committed in self.commits.items() if committed > 0},
                    )
                )
        self.pots = pots
        return pots

    def award(self, rankings: Mapping[int, HandRank], order: Sequence[int]) -> List[PotAward]:
        """Split every pot among its best eligible hands.

        ``order`` lists seats clockwise from the dealer's left; the first winner
        in that order receives any odd chips.
        """
        position = {seat: idx for idx, seat in enumerate(order)}
        awards: List[PotAward] = []
        for pot_index, pot in enumerate(self.close_street()):
            if pot.amount <= 0:
                continue
            contenders = [seat for seat in pot.eligible if seat in rankings]
            if not contenders:
                raise InvariantError(ErrorCode.CHIP_CONSERVATION, f"Pot {pot_index} has no ranked contender")
            best = max(rankings[seat] for seat in contenders)
            winners = sorted(
                (seat for seat in contenders if rankings[seat] == best),
                key=lambda seat: position.get(seat, len(position) + seat),
            )
            share, remainder = divmod(pot.amount, len(winners))
            awards.append(
                PotAward(
                    pot_index=pot_index,
                    amount=pot.amount,
                    winners=winners,
                    amount_each=share,
                    remainder=remainder,
                    remainder_seat=winners[0] if remainder else None,
                )
            )
        return awards

    def award_uncontested(self, seat: int) -> PotAward:
        self.close_street()
        return PotAward(pot_index=0, amount=self.total, winners=[seat], amount_each=self.total)

    def refund(self) -> Dict[int, int]:
        refunds = {seat: amount for seat, amount in self.commits.items() if amount > 0}
        self.clear()
        return refunds

    def clear(self) -> None:
        for seat in self.commits:
            self.commits[seat] = 0
        self.pots = []

    def verify(self, stacks: Mapping[int, int], table_total: int) -> None:
        """Debug-only chip conservation check: stacks plus pots equal the table total."""
        if not __debug__:
            return
        pots_total = self.total
        if sum(stacks.values()) + pots_total != table_total:
            raise InvariantError(
                ErrorCode.CHIP_CONSERVATION,
                f"stacks={sum(stacks.values())} pots={pots_total} expected={table_total}",
            )
