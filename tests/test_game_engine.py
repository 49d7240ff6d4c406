import pytest

from cardroom.errors import ErrorCode, ProtocolError
from cardroom.game import GameEngine
from cardroom.models import ActionType, EventKind, Phase, SeatRole, SeatState, TableConfig
from cardroom.variants import VariantRules

from .helpers import auto_complete_hand, create_engine, events_of, perform_actions, stacked_deck, start_hand


def test_start_hand_assigns_button_and_blinds():
    engine = create_engine()
    ctx = start_hand(engine)
    assert ctx.button == 0
    assert (ctx.sb_seat, ctx.bb_seat) == (1, 2)
    assert ctx.phase == Phase.BETTING
    assert engine.next_actor() == 3

    (blinds,) = events_of(ctx, "BLINDS_POSTED")
    assert blinds.data == {"sb_seat": 1, "sb_amount": 10, "bb_seat": 2, "bb_amount": 20, "antes": {}}
    assert engine.role_of(0) == SeatRole.BUTTON
    assert engine.role_of(1) == SeatRole.SMALL_BLIND
    assert engine.role_of(2) == SeatRole.BIG_BLIND
    assert engine.role_of(3) == SeatRole.PLAYER


def test_hand_start_event_and_private_hole_deals():
    engine = create_engine(seats=3)
    ctx = start_hand(engine)
    start = ctx.events[0]
    assert start.ev == EventKind.HAND_START
    assert start.data["variant"] == "holdem"
    assert start.data["dealer_seat"] == 0
    assert [entry["stack"] for entry in start.data["seat_states"]] == [1000, 1000, 1000]

    hole_events = events_of(ctx, "HOLE_DEALT")
    assert [event.data for event in hole_events] == [
        {"seat": 1, "card_count": 2},
        {"seat": 2, "card_count": 2},
        {"seat": 0, "card_count": 2},
    ]
    assert all(len(seat.hole_cards) == 2 for seat in engine.seats if seat)


def test_heads_up_button_posts_small_blind_and_acts_first():
    engine = create_engine(seats=2)
    ctx = start_hand(engine)
    assert (ctx.button, ctx.sb_seat, ctx.bb_seat) == (0, 0, 1)
    assert engine.role_of(0) == SeatRole.BUTTON_SMALL_BLIND
    assert engine.next_actor() == 0

    perform_actions(engine, [(0, ActionType.CALL, None), (1, ActionType.CHECK, None)])
    assert len(ctx.community) == 3
    # Post-flop the non-dealer acts first.
    assert engine.next_actor() == 1


def test_action_events_carry_seat_kind_and_amount():
    engine = create_engine(seats=3)
    ctx = start_hand(engine, button=0)

    (raised,) = engine.apply_action(0, ActionType.RAISE, 60)
    assert raised.ev == EventKind.ACTION
    assert raised.data == {"seat": 0, "kind": "RAISE", "amount": 60}
    (called,) = engine.apply_action(1, ActionType.CALL)
    assert called.to_dict() == {"seq": called.seq, "ev": "ACTION", "ts": 0.0, "seat": 1, "kind": "CALL", "amount": 50}

    assert engine.next_actor() == 2
    assert ctx.pot == 140
    assert [record.kind for record in ctx.actions] == [ActionType.RAISE, ActionType.CALL]
    assert engine.total_chips() == 3000


def test_short_big_blind_still_sets_the_full_call():
    engine = create_engine(seats=3, stacks=[1000, 1000, 5])
    ctx = start_hand(engine, button=0)
    assert ctx.bb_seat == 2
    assert engine.seats[2].state == SeatState.ALL_IN  # type: ignore[union-attr]
    assert ctx.current_bet == 20

    window = engine.legal_actions(0)
    assert window.call_amount == 20
    assert window.min_raise_to == 40
    perform_actions(engine, [(0, ActionType.CALL, None), (1, ActionType.CALL, None)])
    assert [seat.stack for seat in engine.seats if seat] == [980, 980, 0]
    auto_complete_hand(engine)
    assert engine.total_chips() == 2005


def test_a_reused_deck_is_dealt_again_from_the_top():
    engine = create_engine(seats=2)
    deck = stacked_deck([1, 0], {0: ["AS", "AH"], 1: ["KS", "KH"]})
    first = start_hand(engine, deck=deck, button=0)
    engine.abort_hand("redeal")

    second = start_hand(engine, deck=deck, button=0)
    assert second.deck_order == first.deck_order
    assert [card.label for card in engine.seats[0].cards] == ["AS", "AH"]  # type: ignore[union-attr]
    assert [card.label for card in engine.seats[1].cards] == ["KS", "KH"]  # type: ignore[union-attr]


def test_streets_burn_and_deal_the_board_in_order():
    engine = create_engine(seats=3)
    board = ["2C", "7D", "9H", "3S", "8C"]
    deck = stacked_deck([1, 2, 0], {0: ["AS", "AH"], 1: ["KS", "KH"], 2: ["QS", "QH"]}, board)
    ctx = start_hand(engine, deck=deck)
    auto_complete_hand(engine)

    dealt = events_of(ctx, "COMMUNITY_DEALT")
    assert [(event.data["street"], event.data["cards"]) for event in dealt] == [
        ("flop", board[:3]),
        ("turn", board[3:4]),
        ("river", board[4:]),
    ]
    assert [card.label for card in ctx.community] == board
    assert ctx.outcome == "showdown"
    assert [seat.stack for seat in engine.seats if seat] == [1040, 980, 980]
    (award,) = events_of(ctx, "POT_AWARDED")
    assert award.data["winners"] == [0]
    assert award.data["amount_each"] == 60


def test_all_in_preflop_runs_out_the_board():
    engine = create_engine(seats=2, stacks=[100, 100])
    ctx = start_hand(engine, seed=9)
    perform_actions(engine, [(0, ActionType.ALL_IN, None), (1, ActionType.CALL, None)])
    assert ctx.phase == Phase.COMPLETE
    assert len(ctx.community) == 5
    assert ctx.outcome == "showdown"
    assert sum(seat.stack for seat in engine.seats if seat) == 200
    assert len(events_of(ctx, "SHOWDOWN")) == 2


def test_bets_reset_each_street_but_total_bet_accumulates():
    engine = create_engine(seats=3)
    ctx = start_hand(engine)
    perform_actions(
        engine,
        [(0, ActionType.RAISE, 60), (1, ActionType.CALL, None), (2, ActionType.CALL, None)],
    )
    assert ctx.street.name == "flop"
    for seat in engine.seats:
        assert seat is not None
        assert seat.bet == 0
        assert seat.total_bet == 60
    assert ctx.pot == 180
    assert engine.total_chips() == 3000


def test_antes_are_posted_as_dead_money():
    engine = create_engine(seats=3, ante=5)
    ctx = start_hand(engine)
    (blinds,) = events_of(ctx, "BLINDS_POSTED")
    assert blinds.data["antes"] == {1: 5, 2: 5, 0: 5}
    assert ctx.pot == 45
    assert engine.seats[0].bet == 0  # type: ignore[union-attr]
    assert engine.seats[0].total_bet == 5  # type: ignore[union-attr]
    assert ctx.current_bet == 20


def test_button_rotates_and_skips_empty_stacks():
    engine = create_engine(seats=3)
    start_hand(engine)
    engine.abort_hand("test rotation")
    engine.seats[1].stack = 0  # type: ignore[union-attr]
    ctx = start_hand(engine, seed=43)
    assert ctx.button == 2
    assert engine.seats[1].state == SeatState.SITTING_OUT  # type: ignore[union-attr]
    assert 1 not in ctx.starting_stacks


def test_sit_out_takes_effect_at_the_next_hand():
    engine = create_engine(seats=3)
    ctx = start_hand(engine)
    engine.sit_out(2)
    assert engine.seats[2].state == SeatState.ACTIVE  # type: ignore[union-attr]
    assert 2 in ctx.starting_stacks
    engine.abort_hand("next hand")

    ctx = start_hand(engine, seed=7)
    assert engine.seats[2].state == SeatState.SITTING_OUT  # type: ignore[union-attr]
    assert not engine.seats[2].hole_cards  # type: ignore[union-attr]
    engine.abort_hand("back in")

    engine.sit_in(2)
    ctx = start_hand(engine, seed=8)
    assert 2 in ctx.starting_stacks


def test_assign_seat_rejoins_by_name_and_guards_capacity():
    engine = GameEngine(TableConfig(seats=2))
    first = engine.assign_seat("Alpha")
    assert engine.assign_seat("  alpha ") is first
    with pytest.raises(ProtocolError) as excinfo:
        engine.assign_seat("Beta", seat=0)
    assert excinfo.value.code == ErrorCode.SEAT_TAKEN
    engine.assign_seat("Beta")
    with pytest.raises(ProtocolError, match="Table is full") as excinfo:
        engine.assign_seat("Gamma")
    assert excinfo.value.code == ErrorCode.TABLE_FULL
    with pytest.raises(ProtocolError) as excinfo:
        engine.assign_seat("   ")
    assert excinfo.value.code == ErrorCode.INVALID_SEAT


def test_start_hand_requires_two_players_with_chips():
    engine = GameEngine(TableConfig(seats=3))
    engine.assign_seat("Solo")
    with pytest.raises(ProtocolError) as excinfo:
        engine.start_hand(seed=1)
    assert excinfo.value.code == ErrorCode.NOT_ENOUGH_PLAYERS
    assert engine.hand is None


def test_cannot_start_a_second_hand_while_one_is_running():
    engine = create_engine(seats=2)
    start_hand(engine)
    with pytest.raises(ProtocolError, match="already in progress"):
        engine.start_hand(seed=2)


def test_snapshot_hides_other_hole_cards_and_is_a_copy():
    engine = create_engine(seats=3)
    start_hand(engine)
    view = engine.snapshot(viewer=1)
    seats = view["seats"]
    assert all(label is not None for label in seats[1]["hole"])
    assert seats[0]["hole"] == [None, None]
    assert view["to_act"] == 0
    assert view["pots"] == []
    assert view["pot"] == 30

    seats[1]["stack"] = -1
    assert engine.snapshot()["seats"][1]["stack"] == 990


def test_act_payload_has_flat_legal_fields():
    engine = create_engine(seats=3)
    start_hand(engine)
    payload = engine.act_payload(0)
    assert payload["legal"] == ["FOLD", "CALL", "RAISE", "ALL_IN"]
    assert payload["call_amount"] == 20
    assert payload["min_raise_to"] == 40
    assert payload["max_raise_to"] == 1000


def test_default_action_checks_when_free_and_folds_otherwise():
    engine = create_engine(seats=3)
    start_hand(engine)
    assert engine.default_action(0) == (ActionType.FOLD, None)
    perform_actions(engine, [(0, ActionType.CALL, None), (1, ActionType.CALL, None)])
    assert engine.default_action(2) == (ActionType.CHECK, None)


def test_events_are_sequenced_and_mirrored_to_the_sink():
    seen = []
    engine = GameEngine(TableConfig(seats=2, sb=10, bb=20), sink=seen.append, clock=lambda: 12.5)
    engine.assign_seat("A")
    engine.assign_seat("B")
    ctx = engine.start_hand(seed=3)
    returned = engine.apply_action(0, ActionType.FOLD)
    assert [event.seq for event in ctx.events] == list(range(len(ctx.events)))
    assert seen == ctx.events
    assert returned == ctx.events[-len(returned):]
    assert returned[0].ev == EventKind.ACTION
    assert returned[-1].ev == EventKind.HAND_END
    assert returned[-1].data["outcome"] == "uncontested"
    assert ctx.events[0].to_dict()["ts"] == 12.5


def test_abort_hand_returns_every_commitment():
    engine = create_engine(seats=3)
    ctx = start_hand(engine)
    perform_actions(engine, [(0, ActionType.RAISE, 100), (1, ActionType.CALL, None)])
    events = engine.abort_hand("operator stop")
    assert events[-1].ev == EventKind.HAND_END
    assert events[-1].data["outcome"] == "voided"
    assert events[-1].data["reason"] == "operator stop"
    assert ctx.phase == Phase.COMPLETE
    assert [seat.stack for seat in engine.seats if seat] == [1000, 1000, 1000]
    with pytest.raises(ProtocolError) as excinfo:
        engine.abort_hand("again")
    assert excinfo.value.code == ErrorCode.HAND_NOT_ACTIVE


def test_evaluator_failure_faults_the_hand_and_refunds(monkeypatch):
    def broken(self, hole, board):
        raise ValueError("corrupt holding")

    monkeypatch.setattr(VariantRules, "evaluate", broken)
    engine = create_engine(seats=3)
    ctx = start_hand(engine)
    auto_complete_hand(engine)
    assert ctx.outcome == "faulted"
    assert "corrupt holding" in ctx.events[-1].data["reason"]
    assert not events_of(ctx, "POT_AWARDED")
    assert [seat.stack for seat in engine.seats if seat] == [1000, 1000, 1000]


def test_pot_limit_omaha_deals_four_cards_and_caps_raises():
    engine = create_engine(seats=3, variant="omaha")
    ctx = start_hand(engine)
    assert all(len(seat.hole_cards) == 4 for seat in engine.seats if seat)
    window = engine.legal_actions(0)
    assert window.max_raise_to == 70
    auto_complete_hand(engine)
    assert ctx.phase == Phase.COMPLETE
    assert engine.total_chips() == 3000


def test_seat_counts_beyond_the_variant_limit_are_rejected():
    with pytest.raises(ValueError, match="at most 6"):
        GameEngine(TableConfig(seats=8, variant="triple_draw_27"))
