from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import websockets
from websockets.server import WebSocketServerProtocol

from cardroom.errors import ErrorCode, ProtocolError
from cardroom.game import GameEngine
from cardroom.history import HandHistory
from cardroom.models import Event, TableConfig

LOGGER = logging.getLogger("card_room_host")

# HostServer is the engine's caller: it seats remote deciders, prompts the
# seat whose turn it is, injects timeout substitutions, and broadcasts the
# event stream. Every network concern lives here; the GameEngine stays pure.


@dataclass
class ClientSession:
    seat: int
    name: str
    websocket: WebSocketServerProtocol


@dataclass
class PendingAction:
    seat: int
    hand_id: str
    deadline: float
    timer_task: Optional[asyncio.Task] = None


class HostServer:
    def __init__(self, config: TableConfig, table_id: str = "T-1") -> None:
        self.engine = GameEngine(config)
        self.table_id = table_id
        self.sessions: Dict[int, ClientSession] = {}
        self.pending_action: Optional[PendingAction] = None
        self.lock = asyncio.Lock()
        self.histories: List[HandHistory] = []

    async def start(self, host: str = "0.0.0.0", port: int = 8765) -> None:
        # websockets.serve keeps accepting clients until the process stops.
        async with websockets.serve(self._handle_connection, host, port):
            LOGGER.info("Host server listening on %s:%s (%s)", host, port, self.engine.rules.title)
            await asyncio.Future()

    async def _handle_connection(self, websocket: WebSocketServerProtocol) -> None:
        # First message must be "hello" so we know who we are talking to.
        hello = await self._read_message(websocket)
        if hello is None or hello.get("type") != "hello":
            await self._send_error(websocket, code="BAD_HELLO", msg="Expected hello")
            await websocket.close()
            return
        name = hello.get("name")
        if not isinstance(name, str) or not name.strip():
            await self._send_error(websocket, code="BAD_SCHEMA", msg="name required")
            await websocket.close()
            return
        requested = hello.get("seat")
        if requested is not None and not isinstance(requested, int):
            await self._send_error(websocket, code="BAD_SCHEMA", msg="seat must be an integer")
            await websocket.close()
            return

        try:
            async with self.lock:
                seat = self.engine.assign_seat(name, identity=hello.get("identity"), seat=requested)
                self.engine.sit_in(seat.seat)
                self.engine.set_connected(seat.seat, True)
        except ProtocolError as exc:
            await self._send_error(websocket, code=exc.code.value, msg=exc.msg)
            await websocket.close()
            return

        # Replace existing connection if any.
        previous = self.sessions.get(seat.seat)
        if previous:
            await previous.websocket.close(code=4000, reason="Replaced by new connection")

        session = ClientSession(seat=seat.seat, name=seat.name, websocket=websocket)
        self.sessions[seat.seat] = session
        LOGGER.info("Seat %s claimed by %s (stack=%s)", seat.seat, seat.name, seat.stack)

        await self._send_json(websocket, "welcome", {
            "table_id": self.table_id,
            "seat": seat.seat,
            "config": self._config_payload(),
        })
        await self._publish_lobby()

        snapshot_payload: Optional[Dict[str, object]] = None
        pending_act: Optional[Dict[str, object]] = None
        async with self.lock:
            if self.engine.hand_in_progress():
                snapshot_payload = self.engine.snapshot(viewer=seat.seat)
                if self.pending_action and self.pending_action.seat == seat.seat:
                    pending_act = self.engine.act_payload(seat.seat)
                    pending_act["time_ms"] = self._time_remaining_ms()

        if snapshot_payload:
            await self._send_json(websocket, "snapshot", snapshot_payload)
        if pending_act:
            await self._send_json(websocket, "act", pending_act)
        await self._maybe_start_hand()

        try:
            async for raw in websocket:
                message = self._decode(raw)
                msg_type = message.get("type")
                if msg_type == "action":
                    await self._handle_action(session, message)
                elif msg_type in ("sit_out", "sit_in"):
                    await self._handle_sit(session, msg_type == "sit_out")
                else:
                    await self._send_error(websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")
        except websockets.ConnectionClosed:
            pass
        finally:
            await self._handle_disconnect(session)

    async def _handle_disconnect(self, session: ClientSession) -> None:
        async with self.lock:
            if self.sessions.get(session.seat) is session:
                self.sessions.pop(session.seat, None)
                self.engine.set_connected(session.seat, False)
                # Disconnected seats finish the current hand on timeouts and
                # sit out from the next one.
                self.engine.sit_out(session.seat)
        LOGGER.warning("Seat %s (%s) disconnected; sitting out from next hand", session.seat, session.name)
        await self._publish_lobby()

    async def _handle_sit(self, session: ClientSession, sit_out: bool) -> None:
        async with self.lock:
            if sit_out:
                self.engine.sit_out(session.seat)
            else:
                self.engine.sit_in(session.seat)
        await self._publish_lobby()
        if not sit_out:
            await self._maybe_start_hand()

    async def _maybe_start_hand(self) -> None:
        async with self.lock:
            if self.engine.hand_in_progress() or not self.engine.can_start_hand():
                return
            ctx = self.engine.start_hand()
            events = list(ctx.events)
            start_payload = {
                "hand_id": ctx.hand_id,
                "hand_number": ctx.hand_number,
                "variant": ctx.rules.name,
                "dealer_seat": ctx.button,
            }

        await self._broadcast("start_hand", start_payload)
        await self._broadcast_events(events)
        await self._send_private_hands()
        await self._prompt_next_actor()

    async def _send_private_hands(self) -> None:
        # Each seat sees its own hole cards; the event stream never carries them.
        async with self.lock:
            payloads = {
                seat_idx: self.engine.snapshot(viewer=seat_idx) for seat_idx in self.sessions
            }
        for seat_idx, payload in payloads.items():
            session = self.sessions.get(seat_idx)
            if session:
                await self._send_json(session.websocket, "snapshot", payload)

    async def _prompt_next_actor(self) -> None:
        payload: Optional[Dict[str, object]] = None
        async with self.lock:
            next_seat = self.engine.next_actor()
            hand_complete = self.engine.is_hand_complete()
            if next_seat is not None:
                payload = self.engine.act_payload(next_seat)
                self._set_pending_action(next_seat)
                payload["time_ms"] = self.engine.config.move_time_ms

        if next_seat is None:
            if hand_complete:
                await self._maybe_finish_hand()
            return

        session = self.sessions.get(next_seat)
        if not session:
            LOGGER.info("Seat %s is disconnected; waiting for reconnection or timeout", next_seat)
            return
        await self._send_json(session.websocket, "act", payload)  # type: ignore[arg-type]

    async def _handle_action(self, session: ClientSession, message: Dict[str, object]) -> None:
        hand_id = message.get("hand_id")
        action_name = message.get("kind", message.get("action"))
        amount = message.get("amount")
        if amount is not None and (not isinstance(amount, int) or isinstance(amount, bool)):
            await self._send_error(session.websocket, code="BAD_SCHEMA", msg="amount must be an integer")
            return

        async with self.lock:
            hand = self.engine.hand
            if not self.engine.hand_in_progress() or hand is None or (hand_id is not None and hand_id != hand.hand_id):
                await self._send_error(
                    session.websocket,
                    code=ErrorCode.HAND_NOT_ACTIVE.value,
                    msg="Hand no longer active",
                )
                return

            try:
                events = self.engine.apply_action(session.seat, action_name, amount)  # type: ignore[arg-type]
            except ProtocolError as exc:
                LOGGER.warning(
                    "Rejected action seat=%s action=%s amount=%s reason=%s",
                    session.seat,
                    action_name,
                    amount,
                    exc,
                )
                await self._send_error(session.websocket, code=exc.code.value, msg=exc.msg)
                return
            self._clear_pending_action()

        LOGGER.debug(
            "Applied action hand=%s seat=%s action=%s amount=%s",
            hand.hand_id,
            session.seat,
            action_name,
            amount,
        )
        await self._broadcast_events(events)
        await self._prompt_next_actor()

    async def _timer_expired(self, seat_idx: int, hand_id: str) -> None:
        async with self.lock:
            pending = self.pending_action
            if pending is None or pending.seat != seat_idx or pending.hand_id != hand_id:
                return
            self.pending_action = None
            if self.engine.next_actor() != seat_idx:
                return
            action, amount = self.engine.default_action(seat_idx)
            events = self.engine.apply_action(seat_idx, action, amount)
        LOGGER.warning("Seat %s timed out in hand %s; substituting %s", seat_idx, hand_id, action.value)
        await self._broadcast_events(events)
        await self._prompt_next_actor()

    async def _run_timer(self, seat_idx: int, hand_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._timer_expired(seat_idx, hand_id)

    def _set_pending_action(self, seat_idx: int) -> None:
        hand = self.engine.hand
        assert hand is not None
        self._clear_pending_action()
        delay = self.engine.config.move_time_ms / 1000
        task: Optional[asyncio.Task] = None
        if delay > 0:
            task = asyncio.create_task(self._run_timer(seat_idx, hand.hand_id, delay))
        self.pending_action = PendingAction(
            seat=seat_idx,
            hand_id=hand.hand_id,
            deadline=time.monotonic() + delay,
            timer_task=task,
        )

    def _clear_pending_action(self) -> None:
        pending = self.pending_action
        self.pending_action = None
        if pending and pending.timer_task and pending.timer_task is not asyncio.current_task():
            pending.timer_task.cancel()

    def _time_remaining_ms(self) -> int:
        if not self.pending_action:
            return 0
        return max(int((self.pending_action.deadline - time.monotonic()) * 1000), 0)

    async def _maybe_finish_hand(self) -> None:
        async with self.lock:
            hand = self.engine.hand
            if hand is None or not self.engine.is_hand_complete():
                return
            history = HandHistory.from_hand(hand)
            self.histories.append(history)
            end_payload = {
                "hand_id": hand.hand_id,
                "outcome": hand.outcome,
                "stacks": [
                    {"seat": seat.seat, "name": seat.name, "stack": seat.stack}
                    for seat in self.engine.seats
                    if seat is not None
                ],
                "history": history.to_dict(),
            }
            match_over = self.engine.is_match_over()
            match_payload = self.engine.match_result_payload() if match_over else None

        await self._broadcast("end_hand", end_payload)
        LOGGER.info("Hand %s finished (%s)", end_payload["hand_id"], end_payload["outcome"])
        if match_payload is not None:
            await self._broadcast("match_end", match_payload)
            LOGGER.info("Match over: %s", match_payload.get("winner"))
            return
        await self._maybe_start_hand()

    async def _broadcast(self, msg_type: str, payload: Dict[str, object]) -> None:
        targets = [session.websocket for session in self.sessions.values()]
        if not targets:
            return
        message = self._envelope(msg_type, payload)
        await asyncio.gather(*(socket.send(message) for socket in targets), return_exceptions=True)

    async def _broadcast_events(self, events: List[Event]) -> None:
        for event in events:
            await self._broadcast("event", event.to_dict())

    async def _publish_lobby(self) -> None:
        async with self.lock:
            lobby_state = self.engine.lobby_state()
        await self._broadcast("lobby", lobby_state)

    def _config_payload(self) -> Dict[str, object]:
        config = self.engine.config
        rules = self.engine.rules
        return {
            "variant": rules.name,
            "title": rules.title,
            "structure": rules.structure.value,
            "seats": config.seats,
            "starting_stack": config.starting_stack,
            "sb": config.sb,
            "bb": config.bb,
            "ante": config.ante,
            "move_time_ms": config.move_time_ms,
        }

    async def _send_json(self, websocket: WebSocketServerProtocol, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: WebSocketServerProtocol, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    async def _read_message(self, websocket: WebSocketServerProtocol) -> Optional[Dict[str, object]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=5)
        except (asyncio.TimeoutError, websockets.ConnectionClosed):
            return None
        return self._decode(raw)

    def _decode(self, raw: str) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return message if isinstance(message, dict) else {}
