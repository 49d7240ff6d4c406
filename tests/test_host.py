import asyncio
import json
from typing import List

from cardroom.models import TableConfig
from host.server import ClientSession, HostServer

from .helpers import stacked_deck


# Fake sockets so we can exercise async paths without opening real connections.
class DummyWebSocket:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, *args, **kwargs) -> None:
        self.closed = True

    def messages(self, msg_type: str) -> List[dict]:
        decoded = [json.loads(raw) for raw in self.sent]
        return [payload for payload in decoded if payload["type"] == msg_type]


class ScriptedWebSocket(DummyWebSocket):
    """Client socket that says hello, sends queued messages, then hangs up."""

    def __init__(self, hello: dict, incoming: list = ()) -> None:
        super().__init__()
        self.hello = hello
        self.incoming = [json.dumps(message) for message in incoming]

    async def recv(self) -> str:
        return json.dumps(self.hello)

    def __aiter__(self):
        return self._drain()

    async def _drain(self):
        for raw in self.incoming:
            yield raw


def setup_server(num_players: int = 2, move_time_ms: int = 0) -> tuple[HostServer, list[ClientSession], list[DummyWebSocket]]:
    server = HostServer(
        TableConfig(seats=num_players, starting_stack=200, sb=5, bb=10, move_time_ms=move_time_ms)
    )
    sessions: list[ClientSession] = []
    sockets: list[DummyWebSocket] = []

    for idx in range(num_players):
        seat = server.engine.assign_seat(f"Team{idx}", f"CODE{idx}")
        websocket = DummyWebSocket()
        session = ClientSession(seat=seat.seat, name=seat.name, websocket=websocket)
        server.sessions[seat.seat] = session
        server.engine.set_connected(seat.seat, True)
        sessions.append(session)
        sockets.append(websocket)

    return server, sessions, sockets


def test_handle_action_rejects_out_of_turn():
    server, sessions, sockets = setup_server()
    ctx = server.engine.start_hand(seed=50)
    assert server.engine.next_actor() == 0

    asyncio.run(server._handle_action(sessions[1], {"hand_id": ctx.hand_id, "action": "CALL"}))

    (error,) = sockets[1].messages("error")
    assert error["code"] == "NOT_YOUR_TURN"
    assert error["v"] == 1
    assert server.engine.next_actor() == 0


def test_valid_action_is_broadcast_and_next_seat_prompted():
    server, sessions, sockets = setup_server()
    ctx = server.engine.start_hand(seed=51)

    asyncio.run(server._handle_action(sessions[0], {"hand_id": ctx.hand_id, "kind": "CALL"}))

    for socket in sockets:
        actions = [event for event in socket.messages("event") if event["ev"] == "ACTION"]
        assert actions == [
            {"type": "event", "v": 1, "ts": actions[0]["ts"], "seq": actions[0]["seq"], "ev": "ACTION",
             "seat": 0, "kind": "CALL", "amount": 5}
        ]
    (prompt,) = sockets[1].messages("act")
    assert prompt["seat"] == 1
    assert "CHECK" in prompt["legal"]
    assert prompt["time_ms"] == 0
    assert not sockets[0].messages("act")
    assert server.pending_action is not None and server.pending_action.seat == 1


def test_timer_expiry_substitutes_fold_and_finishes_the_hand():
    server, _, sockets = setup_server()
    ctx = server.engine.start_hand(seed=60)
    server._set_pending_action(0)

    asyncio.run(server._timer_expired(0, ctx.hand_id))

    assert ctx.outcome == "uncontested"
    folds = [event for event in sockets[1].messages("event") if event["ev"] == "ACTION"]
    assert folds[0]["seat"] == 0 and folds[0]["kind"] == "FOLD"
    (end,) = sockets[0].messages("end_hand")
    assert end["hand_id"] == ctx.hand_id
    assert end["history"]["outcome"] == "uncontested"
    assert [entry["stack"] for entry in end["stacks"]] == [195, 205]
    assert len(server.histories) == 1
    # The next hand starts immediately.
    assert server.engine.hand is not ctx
    assert sockets[0].messages("start_hand")


def test_stale_timer_is_ignored():
    server, _, sockets = setup_server()
    ctx = server.engine.start_hand(seed=61)
    server._set_pending_action(0)

    asyncio.run(server._timer_expired(1, ctx.hand_id))

    assert server.engine.next_actor() == 0
    assert not sockets[0].sent


def test_action_for_other_hand_rejected():
    server, sessions, sockets = setup_server()
    server.engine.start_hand(seed=70)

    asyncio.run(server._handle_action(sessions[0], {"hand_id": "H-OLD", "action": "CALL"}))

    (error,) = sockets[0].messages("error")
    assert error["code"] == "HAND_NOT_ACTIVE"


def test_illegal_check_reports_engine_code():
    server, sessions, sockets = setup_server()
    ctx = server.engine.start_hand(seed=71)

    asyncio.run(server._handle_action(sessions[0], {"hand_id": ctx.hand_id, "action": "CHECK"}))

    (error,) = sockets[0].messages("error")
    assert error["code"] == "ILLEGAL_ACTION"
    assert "Cannot check" in error["msg"]


def test_non_integer_amount_is_a_schema_error():
    server, sessions, sockets = setup_server()
    ctx = server.engine.start_hand(seed=72)

    asyncio.run(server._handle_action(sessions[0], {"hand_id": ctx.hand_id, "action": "RAISE", "amount": "40"}))

    (error,) = sockets[0].messages("error")
    assert error["code"] == "BAD_SCHEMA"
    assert server.engine.next_actor() == 0


def test_starting_a_hand_sends_private_snapshots_and_prompts_first_actor():
    server, _, sockets = setup_server()

    asyncio.run(server._maybe_start_hand())

    ctx = server.engine.hand
    assert ctx is not None
    (start,) = sockets[0].messages("start_hand")
    assert start["hand_id"] == ctx.hand_id
    assert start["variant"] == "holdem"
    kinds = [event["ev"] for event in sockets[1].messages("event")]
    assert kinds[:2] == ["HAND_START", "BLINDS_POSTED"]
    assert "cards" not in json.dumps(sockets[1].messages("event"))

    (own,) = sockets[0].messages("snapshot")
    assert all(card is not None for card in own["seats"][0]["hole"])
    assert own["seats"][1]["hole"] == [None, None]
    (prompt,) = sockets[0].messages("act")
    assert prompt["call_amount"] == 5
    assert not sockets[1].messages("act")


def test_connection_flow_welcomes_then_sits_out_on_disconnect():
    server = HostServer(TableConfig(seats=2, starting_stack=200, sb=5, bb=10, move_time_ms=0))
    websocket = ScriptedWebSocket({"type": "hello", "name": "Alice"}, [{"type": "ping"}])

    asyncio.run(server._handle_connection(websocket))

    (welcome,) = websocket.messages("welcome")
    assert welcome["seat"] == 0
    assert welcome["table_id"] == "T-1"
    assert welcome["config"]["variant"] == "holdem"
    (error,) = websocket.messages("error")
    assert error["code"] == "UNKNOWN_TYPE"
    seat = server.engine.seats[0]
    assert seat is not None
    assert seat.sit_out_next
    assert not seat.connected
    assert server.sessions == {}


def test_connection_rejected_when_table_full():
    server, _, _ = setup_server()
    websocket = ScriptedWebSocket({"type": "hello", "name": "Carol"})

    asyncio.run(server._handle_connection(websocket))

    (error,) = websocket.messages("error")
    assert error["code"] == "TABLE_FULL"
    assert websocket.closed
    assert not websocket.messages("welcome")


def test_connection_requires_hello():
    server = HostServer(TableConfig(seats=2))
    websocket = ScriptedWebSocket({"type": "action", "kind": "FOLD"})

    asyncio.run(server._handle_connection(websocket))

    (error,) = websocket.messages("error")
    assert error["code"] == "BAD_HELLO"
    assert websocket.closed


def test_busting_a_player_ends_the_match():
    server, sessions, sockets = setup_server()
    server.engine.seats[1].stack = 10  # type: ignore[union-attr]
    deck = stacked_deck([1, 0], {0: ["AS", "AH"], 1: ["7C", "2D"]}, board=["KS", "KD", "9H", "4S", "3C"])
    ctx = server.engine.start_hand(seed=90, deck=deck)

    asyncio.run(server._handle_action(sessions[0], {"hand_id": ctx.hand_id, "action": "CALL"}))

    assert ctx.outcome == "showdown"
    (match_end,) = sockets[1].messages("match_end")
    assert match_end["winner"] == {"seat": 0, "name": "Team0"}
    assert [entry["stack"] for entry in match_end["final_stacks"]] == [210, 0]
    assert not server.engine.hand_in_progress()
