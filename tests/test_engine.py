"""Tests for the match engine: lifecycle, round clock, hits and scoring."""

import random
import threading
from dataclasses import FrozenInstanceError

import pytest

from conftest import ScriptedRandom
from gesture_arena.ai import AIOpponentController
from gesture_arena.clock import ThreadingScheduler
from gesture_arena.config import AIConfig, ConfigError, MatchConfig
from gesture_arena.engine import (
    EngineDisposedError,
    MAX_HEALTH,
    MatchEngine,
    MatchPhase,
)
from gesture_arena.events import EventKind


def make_engine(clock, rng=None, **match):
    return MatchEngine(MatchConfig(**match), scheduler=clock, rng=rng or random.Random(7))


def record(engine):
    events = []
    for kind in EventKind:
        engine.on(kind, events.append)
    return events


def kinds(events):
    return [e.kind for e in events]


class TestInitialState:
    def test_defaults(self, clock):
        engine = make_engine(clock)
        state = engine.get_state()

        assert state.current_round == 1
        assert state.total_rounds == 3
        assert state.round_duration_seconds == 180
        assert state.time_remaining_seconds == 180
        assert not state.is_running
        assert not state.is_paused
        assert state.winner is None
        assert state.phase == MatchPhase.IDLE

        first, second = state.fighters
        assert (first.id, first.name) == ("player1", "Player")
        assert (second.id, second.name) == ("player2", "AI Opponent")
        assert first.health == second.health == MAX_HEALTH
        assert first.action == "idle"
        assert first.last_action_timestamp is None

    def test_invalid_config_rejected(self, clock):
        with pytest.raises(ConfigError):
            make_engine(clock, total_rounds=0)

    def test_get_fighter(self, clock):
        engine = make_engine(clock)
        assert engine.get_fighter(1).id == "player2"
        assert engine.get_fighter(2) is None
        assert engine.get_fighter(-1) is None
        assert engine.get_fighter("0") is None


class TestHits:
    def test_jab_lands(self, clock):
        engine = make_engine(clock, rng=random.Random(3))
        events = record(engine)
        engine.start()

        assert engine.set_fighter_action(0, "jab")

        state = engine.get_state()
        attacker, defender = state.fighters
        assert 91 <= defender.health <= 94
        assert attacker.score == 10
        assert attacker.combo_count == 1
        assert attacker.action == "jab"

        assert kinds(events) == [
            EventKind.MATCH_START,
            EventKind.HIT_LANDED,
            EventKind.PLAYER_DAMAGED,
            EventKind.SCORE_UPDATE,
        ]
        hit = events[1].data
        assert hit["attacker"] == "player1"
        assert hit["defender"] == "player2"
        assert hit["attack_type"] == "jab"
        assert hit["damage"] == MAX_HEALTH - defender.health
        assert hit["score_gain"] == 10
        assert events[2].data == {"player": "player2", "damage": hit["damage"], "new_health": defender.health}
        assert events[3].data == {"player": "player1", "new_score": 10}

    def test_guard_absorbs_uppercut(self, clock):
        engine = make_engine(clock, rng=ScriptedRandom([0.2]))
        events = record(engine)
        engine.start()

        assert engine.set_fighter_action(1, "block")
        assert engine.get_fighter(1).is_blocking
        assert engine.set_fighter_action(0, "uppercut")

        state = engine.get_state()
        assert state.fighters[1].health == MAX_HEALTH
        assert state.fighters[0].score == 0
        assert state.fighters[0].combo_count == 0
        assert kinds(events)[-1] == EventKind.BLOCK_SUCCESS
        assert events[-1].data == {"blocker": "player2", "attack_type": "uppercut"}

    def test_guard_can_fail(self, clock):
        # 0.3 is not below the uppercut block chance; 0.5 rolls base damage
        engine = make_engine(clock, rng=ScriptedRandom([0.3, 0.5]))
        engine.start()
        engine.set_fighter_action(1, "block")
        engine.set_fighter_action(0, "uppercut")
        assert engine.get_fighter(1).health == 80

    def test_block_then_attack_drops_guard(self, clock):
        engine = make_engine(clock)
        engine.start()
        engine.set_fighter_action(1, "block")
        clock.advance(0.2)
        engine.set_fighter_action(1, "jab")
        assert not engine.get_fighter(1).is_blocking

    def test_combo_scoring(self, clock):
        engine = make_engine(clock, rng=ScriptedRandom())
        engine.start()
        scores = []
        for _ in range(3):
            engine.set_fighter_action(0, "jab")
            scores.append(engine.get_fighter(0).score)
            clock.advance(0.2)
        assert scores == [10, 30, 60]
        assert engine.get_fighter(0).combo_count == 3

    def test_attack_before_start_does_not_land(self, clock):
        engine = make_engine(clock)
        assert engine.set_fighter_action(0, "hook")
        assert engine.get_fighter(0).action == "hook"
        assert engine.get_fighter(1).health == MAX_HEALTH

    def test_enum_symbols_accepted(self, clock):
        from gesture_arena.gestures import BoxingGesture

        engine = make_engine(clock)
        engine.start()
        engine.set_fighter_action(0, BoxingGesture.CROSS)
        assert engine.get_fighter(0).action == "cross"
        assert engine.get_fighter(1).health < MAX_HEALTH

    def test_invalid_index_ignored(self, clock):
        engine = make_engine(clock)
        engine.start()
        assert not engine.set_fighter_action(2, "jab")
        assert not engine.set_fighter_action(-1, "jab")
        state = engine.get_state()
        assert all(f.health == MAX_HEALTH for f in state.fighters)

    def test_bool_index_ignored(self, clock):
        engine = make_engine(clock)
        engine.start()
        assert not engine.set_fighter_action(True, "jab")
        assert not engine.set_fighter_action(False, "jab")
        assert engine.get_fighter(0).action == "idle"
        assert engine.get_fighter(1).action == "idle"

    def test_unknown_symbol_ignored(self, clock):
        engine = make_engine(clock)
        engine.start()
        assert not engine.set_fighter_action(0, "kick")
        fighter = engine.get_fighter(0)
        assert fighter.action == "idle"
        assert fighter.last_action_timestamp is None

    def test_finger_symbols_accepted(self, clock):
        engine = make_engine(clock)
        assert engine.set_fighter_action(0, "thumb_up")
        assert engine.get_fighter(0).action == "thumb_up"

    def test_subscriber_error_does_not_break_hit(self, clock):
        engine = make_engine(clock)

        def broken(event):
            raise RuntimeError("ui crashed")

        engine.on(EventKind.HIT_LANDED, broken)
        engine.start()
        engine.set_fighter_action(0, "jab")
        assert engine.get_fighter(0).score == 10

    def test_event_timestamps_follow_clock(self, clock):
        engine = make_engine(clock)
        events = record(engine)
        engine.start()
        clock.advance(0.5)
        engine.set_fighter_action(0, "jab")
        assert events[0].timestamp == 0.0
        assert events[1].timestamp == 0.5


class TestDebounce:
    def test_actions_within_window_dropped(self, clock):
        engine = make_engine(clock)
        engine.start()

        assert engine.set_fighter_action(0, "jab")
        clock.advance(0.1)
        assert not engine.set_fighter_action(0, "cross")
        assert engine.get_fighter(0).action == "jab"

        clock.advance(0.1)
        assert engine.set_fighter_action(0, "cross")
        assert engine.get_fighter(0).action == "cross"
        assert engine.get_fighter(0).last_action_timestamp == pytest.approx(0.2)

    def test_debounce_is_per_fighter(self, clock):
        engine = make_engine(clock)
        engine.start()
        assert engine.set_fighter_action(0, "jab")
        assert engine.set_fighter_action(1, "jab")

    def test_zero_debounce(self, clock):
        engine = make_engine(clock, action_debounce_seconds=0)
        engine.start()
        assert engine.set_fighter_action(0, "jab")
        assert engine.set_fighter_action(0, "jab")


class TestRounds:
    def test_three_short_rounds_end_in_draw(self, clock):
        engine = make_engine(clock, total_rounds=3, round_duration_seconds=1)
        events = record(engine)
        engine.start()
        clock.advance(3.0)

        assert kinds(events) == [
            EventKind.MATCH_START,
            EventKind.ROUND_END,
            EventKind.ROUND_START,
            EventKind.ROUND_END,
            EventKind.ROUND_START,
            EventKind.ROUND_END,
            EventKind.MATCH_END,
        ]
        assert [e.data["round"] for e in events[1:6]] == [1, 2, 2, 3, 3]
        assert events[-1].data == {"winner": "draw", "knockout": False}

        state = engine.get_state()
        assert state.phase == MatchPhase.ENDED
        assert state.winner == "draw"
        assert not state.is_running
        assert clock.pending == 0

    def test_clock_counts_down(self, clock):
        engine = make_engine(clock, round_duration_seconds=10)
        engine.start()
        clock.advance(4.0)
        assert engine.get_state().time_remaining_seconds == 6
        clock.advance(6.0)
        state = engine.get_state()
        assert state.current_round == 2
        assert state.time_remaining_seconds == 10

    def test_winner_on_points(self, clock):
        engine = make_engine(clock, total_rounds=1, round_duration_seconds=2)
        engine.start()
        engine.set_fighter_action(1, "jab")
        clock.advance(2.0)
        state = engine.get_state()
        assert state.winner == "AI Opponent"
        assert state.phase == MatchPhase.ENDED

    def test_custom_draw_label(self, clock):
        engine = make_engine(clock, total_rounds=1, round_duration_seconds=1, draw_label="tie")
        engine.start()
        clock.advance(1.0)
        assert engine.get_state().winner == "tie"

    def test_start_is_noop_while_running(self, clock):
        engine = make_engine(clock)
        events = record(engine)
        engine.start()
        clock.advance(5.0)
        engine.start()
        assert kinds(events).count(EventKind.MATCH_START) == 1
        assert engine.get_state().time_remaining_seconds == 175

    def test_restart_after_end(self, clock):
        engine = make_engine(clock, total_rounds=1, round_duration_seconds=1)
        engine.start()
        engine.set_fighter_action(0, "hook")
        clock.advance(1.0)
        assert engine.phase == MatchPhase.ENDED

        engine.start()
        state = engine.get_state()
        assert state.phase == MatchPhase.RUNNING
        assert state.winner is None
        assert state.current_round == 1
        assert state.time_remaining_seconds == 1
        assert all(f.health == MAX_HEALTH and f.score == 0 for f in state.fighters)


class TestKnockout:
    def test_uppercuts_knock_out(self, clock):
        engine = make_engine(clock, rng=ScriptedRandom())
        events = record(engine)
        engine.start()

        for _ in range(5):
            engine.set_fighter_action(0, "uppercut")
            clock.advance(0.25)

        state = engine.get_state()
        assert state.fighters[1].health == 0
        assert state.fighters[0].score == 150
        assert state.winner == "Player"
        assert state.phase == MatchPhase.ENDED
        assert events[-1].kind == EventKind.MATCH_END
        assert events[-1].data == {"winner": "Player", "knockout": True}
        assert clock.pending == 0

    def test_health_never_negative(self, clock):
        engine = make_engine(clock, rng=ScriptedRandom([0.99] * 10))
        engine.start()
        for _ in range(5):
            engine.set_fighter_action(0, "uppercut")
            clock.advance(0.25)
        assert engine.get_fighter(1).health == 0

    def test_no_hits_after_knockout(self, clock):
        engine = make_engine(clock, rng=ScriptedRandom())
        engine.start()
        for _ in range(5):
            engine.set_fighter_action(0, "uppercut")
            clock.advance(0.25)

        engine.set_fighter_action(1, "uppercut")
        clock.advance(5.0)
        state = engine.get_state()
        assert state.fighters[0].health == MAX_HEALTH
        assert state.fighters[1].score == 0
        assert state.time_remaining_seconds == 179


    def test_knockout_beats_final_bell_at_same_instant(self, clock):
        engine = make_engine(clock, rng=ScriptedRandom(), total_rounds=1, round_duration_seconds=1)
        steady = AIConfig(min_interval=1.0, max_interval=1.0, revert_probability=0.0)
        AIOpponentController(engine, steady, rng=ScriptedRandom(choices=["uppercut"])).attach()
        events = record(engine)
        engine.start()

        # trade four uppercuts each: both at 20 health, 100 points
        for _ in range(3):
            engine.set_fighter_action(0, "uppercut")
            engine.set_fighter_action(1, "uppercut")
            clock.advance(0.25)
        engine.set_fighter_action(0, "uppercut")
        engine.set_fighter_action(1, "uppercut")
        state = engine.get_state()
        assert [(f.health, f.score) for f in state.fighters] == [(20, 100), (20, 100)]

        # the round runs out at t=1.0, the same instant the AI throws again
        clock.advance(0.25)

        state = engine.get_state()
        assert state.fighters[0].health == 0
        assert state.fighters[1].score == 150
        assert state.winner == "AI Opponent"
        assert events[-1].kind == EventKind.MATCH_END
        assert events[-1].data == {"winner": "AI Opponent", "knockout": True}
        assert kinds(events).count(EventKind.MATCH_END) == 1
        assert EventKind.ROUND_END not in kinds(events)
        assert clock.pending == 0

    def test_same_instant_hit_scores_before_final_bell(self, clock):
        engine = make_engine(clock, rng=ScriptedRandom(), total_rounds=1, round_duration_seconds=1)
        events = record(engine)
        engine.start()
        clock.call_later(1.0, lambda: engine.set_fighter_action(1, "jab"))
        clock.advance(1.0)

        state = engine.get_state()
        assert state.fighters[1].score == 10
        assert state.winner == "AI Opponent"
        assert kinds(events)[-2:] == [EventKind.ROUND_END, EventKind.MATCH_END]
        assert events[-1].data == {"winner": "AI Opponent", "knockout": False}

    def test_pause_at_final_bell_defers_decision(self, clock):
        engine = make_engine(clock, total_rounds=1, round_duration_seconds=1)
        engine.start()
        clock.call_later(1.0, engine.pause)
        clock.advance(1.0)
        assert engine.phase == MatchPhase.PAUSED
        assert engine.get_state().winner is None

        engine.pause()
        clock.advance(0.0)
        assert engine.phase == MatchPhase.ENDED
        assert engine.get_state().winner == "draw"


class TestPause:
    def test_pause_freezes_clock_and_hits(self, clock):
        engine = make_engine(clock)
        engine.start()
        clock.advance(0.4)

        assert engine.pause() is True
        assert engine.phase == MatchPhase.PAUSED
        clock.advance(10.0)
        assert engine.get_state().time_remaining_seconds == 180

        assert engine.set_fighter_action(0, "jab")
        assert engine.get_fighter(1).health == MAX_HEALTH

    def test_resume_keeps_interrupted_second(self, clock):
        engine = make_engine(clock)
        engine.start()
        clock.advance(0.4)
        engine.pause()
        clock.advance(10.0)

        assert engine.pause() is False
        assert engine.phase == MatchPhase.RUNNING
        clock.advance(0.5)
        assert engine.get_state().time_remaining_seconds == 180
        clock.advance(0.2)
        assert engine.get_state().time_remaining_seconds == 179

    def test_pause_when_idle(self, clock):
        engine = make_engine(clock)
        assert engine.pause() is False
        assert engine.phase == MatchPhase.IDLE


class TestResetAndDispose:
    def test_reset(self, clock):
        engine = make_engine(clock)
        events = record(engine)
        engine.start()
        engine.set_fighter_action(0, "jab")
        clock.advance(3.0)

        engine.reset()
        state = engine.get_state()
        assert state.phase == MatchPhase.IDLE
        assert state.time_remaining_seconds == 180
        assert all(f.health == MAX_HEALTH and f.score == 0 for f in state.fighters)
        assert events[-1].kind == EventKind.MATCH_END
        assert events[-1].data == {"winner": None, "reset": True}
        assert clock.pending == 0

    def test_dispose(self, clock):
        engine = make_engine(clock)
        events = record(engine)
        engine.start()
        engine.dispose()

        assert engine.phase == MatchPhase.DISPOSED
        assert clock.pending == 0
        assert engine.bus.subscriber_count() == 0
        assert not engine.set_fighter_action(0, "jab")

        before = len(events)
        clock.advance(10.0)
        assert len(events) == before

    def test_dispose_is_idempotent(self, clock):
        engine = make_engine(clock)
        engine.dispose()
        engine.dispose()

    @pytest.mark.parametrize("call", ["start", "pause", "reset"])
    def test_disposed_engine_refuses_lifecycle(self, clock, call):
        engine = make_engine(clock)
        engine.dispose()
        with pytest.raises(EngineDisposedError):
            getattr(engine, call)()

    def test_disposed_engine_refuses_subscribers(self, clock):
        engine = make_engine(clock)
        engine.dispose()
        with pytest.raises(EngineDisposedError):
            engine.on(EventKind.HIT_LANDED, print)


class TestSnapshots:
    def test_snapshots_are_frozen(self, clock):
        state = make_engine(clock).get_state()
        with pytest.raises(FrozenInstanceError):
            state.fighters[0].health = 0
        with pytest.raises(FrozenInstanceError):
            state.current_round = 5

    def test_snapshot_does_not_track_engine(self, clock):
        engine = make_engine(clock)
        engine.start()
        before = engine.get_state()
        engine.set_fighter_action(0, "jab")
        assert before.fighters[1].health == MAX_HEALTH
        assert engine.get_state().fighters[1].health < MAX_HEALTH


class TestConcurrency:
    def test_concurrent_actions_keep_state_consistent(self):
        engine = MatchEngine(
            MatchConfig(action_debounce_seconds=0, round_duration_seconds=60),
            scheduler=ThreadingScheduler(),
            rng=random.Random(11),
        )
        hits = []
        lock = threading.Lock()

        def on_hit(event):
            with lock:
                hits.append(event.data)

        engine.on(EventKind.HIT_LANDED, on_hit)
        engine.start()

        def fighter_loop(index, seed):
            rng = random.Random(seed)
            for _ in range(200):
                engine.set_fighter_action(index, rng.choice(["jab", "cross", "block", "idle"]))

        threads = [
            threading.Thread(target=fighter_loop, args=(i % 2, i)) for i in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        state = engine.get_state()
        engine.dispose()

        for index, fighter in enumerate(state.fighters):
            assert 0 <= fighter.health <= MAX_HEALTH
            gains = sum(h["score_gain"] for h in hits if h["attacker"] == fighter.id)
            assert fighter.score == gains
            taken = sum(h["damage"] for h in hits if h["defender"] == fighter.id)
            if fighter.health > 0:
                assert MAX_HEALTH - fighter.health == taken
