from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    ILLEGAL_ACTION = "ILLEGAL_ACTION"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_RAISE_SIZE = "INVALID_RAISE_SIZE"
    DECK_EXHAUSTED = "DECK_EXHAUSTED"
    NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
    NOT_IN_DECK = "NOT_IN_DECK"
    INVALID_CARD = "INVALID_CARD"
    HAND_NOT_ACTIVE = "HAND_NOT_ACTIVE"
    TABLE_FULL = "TABLE_FULL"
    SEAT_TAKEN = "SEAT_TAKEN"
    INVALID_SEAT = "INVALID_SEAT"
    HAND_FAULT = "HAND_FAULT"
    CHIP_CONSERVATION = "CHIP_CONSERVATION"


class EngineError(Exception):
    """Base error: every failure carries a stable code plus a readable message."""

    def __init__(self, code: ErrorCode, msg: str = "") -> None:
        super().__init__(msg or code.value)
        self.code = code
        self.msg = msg or code.value

    def __str__(self) -> str:
        return f"{self.code.value}: {self.msg}"


class ProtocolError(EngineError, ValueError):
    """Caller broke the protocol; engine state was not touched."""


class CardError(ProtocolError):
    pass


class HandFault(EngineError, RuntimeError):
    """The hand cannot continue; the engine voids it and returns commitments."""


class InvariantError(EngineError, AssertionError):
    """Programmer error. Only raised while ``__debug__`` is set."""
