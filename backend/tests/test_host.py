import pytest

from buzzer.errors import BuzzersClosed, InvalidPhase, NotHost
from buzzer.models import BUZZERS_OPEN, COUNTDOWN, IDLE, ROUND_COMPLETE


@pytest.fixture()
def room_code(registry):
    code = registry.create_room('Hana', 'H', mode='team', sid='s-H')
    registry.join_room(code, 'Ann', 'A', team='Red', sid='s-A')
    registry.join_room(code, 'Bob', 'B', team='Blue', sid='s-B')
    return code


def _countdown_events(broadcaster):
    return [(e, p) for _, e, p in broadcaster.events if e in ('countdownUpdate', 'buzzersEnabled')]


def test_countdown_emits_3_2_1_0_then_opens_once(registry, scheduler, broadcaster, room_code):
    broadcaster.clear()
    registry.start_question(room_code, 'H')
    assert registry.get_room(room_code).phase == COUNTDOWN
    scheduler.run_all('tick_countdown')

    events = _countdown_events(broadcaster)
    assert events == [
        ('buzzersEnabled', False),
        ('countdownUpdate', 3),
        ('countdownUpdate', 2),
        ('countdownUpdate', 1),
        ('countdownUpdate', 0),
        ('buzzersEnabled', True),
    ]
    assert registry.get_room(room_code).phase == BUZZERS_OPEN
    assert scheduler.pending == []


def test_ticks_are_scheduled_one_at_a_time(registry, scheduler, room_code):
    registry.start_question(room_code, 'H')
    assert scheduler.count('tick_countdown') == 1
    assert scheduler.pending[0][0] == 1.0
    scheduler.run_next('tick_countdown')
    assert registry.get_room(room_code).countdown == 2
    assert scheduler.count('tick_countdown') == 1


def test_countdown_gating(registry, scheduler, room_code):
    registry.start_question(room_code, 'H')
    for _ in range(2):
        with pytest.raises(BuzzersClosed):
            registry.submit_buzz(room_code, 'A', 1000)
        scheduler.run_next('tick_countdown')
    assert registry.get_room(room_code).queue == []
    scheduler.run_all('tick_countdown')
    registry.submit_buzz(room_code, 'A', 1000)
    assert len(registry.get_room(room_code).queue) == 1


def test_start_question_clears_previous_round(registry, room_code, broadcaster):
    registry.submit_buzz(room_code, 'A', 1000)
    registry.start_question(room_code, 'H')
    assert registry.get_room(room_code).queue == []
    assert broadcaster.last('buzzOrder') == []


def test_reset_during_countdown_cancels_ticks(registry, scheduler, broadcaster, room_code):
    registry.start_question(room_code, 'H')
    registry.reset(room_code, 'H')
    broadcaster.clear()
    scheduler.run_all('tick_countdown')
    assert broadcaster.named('countdownUpdate') == []
    assert broadcaster.named('buzzersEnabled') == []
    assert registry.get_room(room_code).phase == IDLE


def test_restart_does_not_double_tick(registry, scheduler, broadcaster, room_code):
    registry.start_question(room_code, 'H')
    registry.reset(room_code, 'H')
    registry.start_question(room_code, 'H')
    broadcaster.clear()
    scheduler.run_all('tick_countdown')
    assert broadcaster.named('countdownUpdate') == [2, 1, 0]
    assert broadcaster.named('buzzersEnabled') == [True]


def test_start_question_only_from_idle_or_round_complete(registry, scheduler, room_code):
    registry.start_question(room_code, 'H')
    with pytest.raises(InvalidPhase):
        registry.start_question(room_code, 'H')
    scheduler.run_all('tick_countdown')
    with pytest.raises(InvalidPhase):
        registry.start_question(room_code, 'H')


def test_start_question_refused_while_locked(registry, room_code):
    registry.toggle_lock(room_code, 'H')
    with pytest.raises(InvalidPhase):
        registry.start_question(room_code, 'H')


def test_toggle_lock_broadcasts(registry, broadcaster, room_code):
    assert registry.toggle_lock(room_code, 'H') is True
    assert broadcaster.last('lockStatus') is True
    assert registry.toggle_lock(room_code, 'H') is False
    assert broadcaster.last('lockStatus') is False


def test_toggle_lock_invalid_during_countdown(registry, room_code):
    registry.start_question(room_code, 'H')
    with pytest.raises(InvalidPhase):
        registry.toggle_lock(room_code, 'H')
    assert registry.get_room(room_code).locked is False


@pytest.mark.parametrize('command', ['toggle_lock', 'reset', 'start_question'])
@pytest.mark.parametrize('user_id', ['A', 'nobody', '', None])
def test_host_only_commands(registry, broadcaster, scheduler, room_code, command, user_id):
    registry.submit_buzz(room_code, 'A', 1000)
    room = registry.get_room(room_code)
    before = (room.locked, room.phase, list(room.queue), room.countdown_generation)
    broadcaster.clear()
    with pytest.raises(NotHost):
        getattr(registry, command)(room_code, user_id)
    assert (room.locked, room.phase, list(room.queue), room.countdown_generation) == before
    assert broadcaster.events == []
    assert scheduler.count('tick_countdown') == 0


def test_departed_host_cannot_command_until_rejoin(registry, room_code):
    registry.leave_room(room_code, 'H', sid='s-H')
    with pytest.raises(NotHost):
        registry.toggle_lock(room_code, 'H')
    registry.rejoin_room(room_code, 'Hana', 'H', sid='s-H2')
    assert registry.toggle_lock(room_code, 'H') is True


def test_reset_is_idempotent(registry, broadcaster, room_code):
    registry.submit_buzz(room_code, 'A', 1000)
    registry.reset(room_code, 'H')
    assert registry.get_room(room_code).queue == []
    registry.reset(room_code, 'H')
    assert registry.get_room(room_code).queue == []
    assert broadcaster.named('buzzOrder')[-2:] == [[], []]
    assert broadcaster.named('buzzersEnabled')[-2:] == [False, False]


def test_reset_keeps_lock(registry, room_code):
    registry.toggle_lock(room_code, 'H')
    registry.reset(room_code, 'H')
    assert registry.get_room(room_code).locked is True


def test_adjudicate_incorrect_passes_turn(registry, broadcaster, room_code):
    registry.submit_buzz(room_code, 'A', 1000)
    registry.submit_buzz(room_code, 'B', 1100)
    entry = registry.adjudicate(room_code, 'H', False)
    assert entry.user_id == 'A'
    assert broadcaster.last('roundResult') == {'userId': 'A', 'team': 'Red', 'correct': False}
    entry = registry.adjudicate(room_code, 'H', True)
    assert entry.user_id == 'B'
    room = registry.get_room(room_code)
    assert room.phase == ROUND_COMPLETE
    # first_buzz policy already credited Red on the first buzz
    assert room.team_stats == {'Red': 1, 'Blue': 0}
    with pytest.raises(BuzzersClosed):
        registry.submit_buzz(room_code, 'H', 1200)


def test_adjudicated_policy_credits_on_correct_answer(make_registry, broadcaster):
    registry = make_registry(win_credit_policy='adjudicated')
    code = registry.create_room('Hana', 'H', mode='team', sid='s-H')
    registry.join_room(code, 'Ann', 'A', team='Red', sid='s-A')
    registry.join_room(code, 'Bob', 'B', team='Blue', sid='s-B')
    registry.submit_buzz(code, 'A', 1000)
    registry.submit_buzz(code, 'B', 1100)
    assert registry.get_room(code).team_stats == {'Red': 0, 'Blue': 0}
    registry.adjudicate(code, 'H', False)
    registry.adjudicate(code, 'H', True)
    assert registry.get_room(code).team_stats == {'Red': 0, 'Blue': 1}
    assert broadcaster.last('statsUpdate') == {'Red': 0, 'Blue': 1}


def test_adjudicate_requires_a_buzz(registry, room_code):
    with pytest.raises(InvalidPhase):
        registry.adjudicate(room_code, 'H', True)
    registry.submit_buzz(room_code, 'A', 1000)
    registry.adjudicate(room_code, 'H', False)
    with pytest.raises(InvalidPhase):
        registry.adjudicate(room_code, 'H', False)


def test_new_question_after_round_complete(registry, scheduler, room_code):
    registry.submit_buzz(room_code, 'A', 1000)
    registry.adjudicate(room_code, 'H', True)
    registry.start_question(room_code, 'H')
    scheduler.run_all('tick_countdown')
    room = registry.get_room(room_code)
    assert room.phase == BUZZERS_OPEN
    assert room.queue == [] and room.ruled_out == set()
