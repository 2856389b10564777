from evdev.ecodes import EV_KEY, KEY_A, KEY_B, KEY_C, KEY_X

from lib.host_stub import FakeClock, make_runtime, press, release

from scriptkeyz.dispatcher import BUSY, DELIVERED, NOT_LOADED, REJECTED, DispatchResult
from scriptkeyz.lib import logger
from scriptkeyz.models.task import TaskState

TAPPER = "def handle(event):\n    tap({code})\n"

SLOW = """
async def handle(event):
    await sleep(1)
    tap(KEY_X)
"""


def setup_function(module):
    logger.VERBOSE = False


def test_targeted_event_reaches_only_its_script():
    runtime, transport = make_runtime()
    runtime.load_source("a", TAPPER.format(code="KEY_A"))
    runtime.load_source("b", TAPPER.format(code="KEY_B"))

    results = runtime.dispatcher.dispatch(press(KEY_C, script="b"))
    runtime.flush()

    assert results == [DispatchResult("b", DELIVERED)]
    assert transport.synthetic == [(EV_KEY, KEY_B, 1), (EV_KEY, KEY_B, 0)]


def test_untargeted_event_is_offered_in_registration_order():
    runtime, transport = make_runtime()
    runtime.load_source("b", TAPPER.format(code="KEY_B"))
    runtime.load_source("a", TAPPER.format(code="KEY_A"))

    results = runtime.dispatcher.dispatch(press(KEY_C))
    runtime.flush()

    assert [r.script for r in results] == ["b", "a"]
    assert transport.synthetic == [
        (EV_KEY, KEY_B, 1), (EV_KEY, KEY_B, 0),
        (EV_KEY, KEY_A, 1), (EV_KEY, KEY_A, 0),
    ]


def test_script_sees_its_own_name_on_the_event():
    runtime, _ = make_runtime()
    runtime.load_source("a", "def handle(event):\n    shared['target'] = event.script\n")
    runtime.dispatcher.dispatch(press(KEY_C))
    assert runtime.shared["target"] == "a"


def test_missing_script_reports_once_and_creates_no_task():
    runtime, transport = make_runtime()

    results = runtime.dispatcher.dispatch(press(KEY_A, script="missing"))

    assert results == [DispatchResult("missing", NOT_LOADED)]
    assert transport.errors == ["Script not loaded: missing"]
    assert runtime.scheduler.live_tasks() == []
    assert transport.synthetic == []


def test_busy_task_drops_event_with_one_notice():
    clock = FakeClock()
    runtime, transport = make_runtime(clock)
    runtime.load_source("slow", SLOW)

    first = runtime.dispatcher.dispatch(press(KEY_A))
    second = runtime.dispatcher.dispatch(release(KEY_A))

    assert first == [DispatchResult("slow", DELIVERED)]
    assert second == [DispatchResult("slow", BUSY)]
    assert len(transport.errors) == 1
    assert "slow" in transport.errors[0]
    assert "busy" in transport.errors[0]

    clock.now = 1.0
    runtime.scheduler.fire_timers()
    runtime.scheduler.run_ready()
    runtime.flush()

    # only the first event was handled, the dropped one is never replayed
    assert transport.synthetic == [(EV_KEY, KEY_X, 1), (EV_KEY, KEY_X, 0)]
    assert runtime.scheduler.task_for("slow").is_idle
    assert runtime.dispatcher.dispatch(press(KEY_B)) == [DispatchResult("slow", DELIVERED)]


def test_busy_script_does_not_block_others():
    runtime, transport = make_runtime()
    runtime.load_source("slow", SLOW)
    runtime.load_source("quick", TAPPER.format(code="KEY_C"))

    runtime.dispatcher.dispatch(press(KEY_A))
    results = runtime.dispatcher.dispatch(press(KEY_B))
    runtime.flush()

    assert results == [DispatchResult("slow", BUSY), DispatchResult("quick", DELIVERED)]
    assert transport.synthetic == [(EV_KEY, KEY_C, 1), (EV_KEY, KEY_C, 0)] * 2


def test_events_for_one_script_are_handled_in_order():
    runtime, _ = make_runtime()
    runtime.load_source("log", "def handle(event):\n    shared.setdefault('seen', []).append(event.code)\n")
    for code in (KEY_A, KEY_B, KEY_C):
        runtime.dispatcher.dispatch(press(code))
    assert runtime.shared["seen"] == [KEY_A, KEY_B, KEY_C]


def test_consume_and_pass_outcomes():
    runtime, transport = make_runtime()
    runtime.load_source("eater", "def handle(event):\n    consume()\n")
    runtime.load_source("returner", "def handle(event):\n    return CONSUME\n")
    runtime.load_source("ignorer", "def handle(event):\n    pass\n")

    runtime.dispatcher.dispatch(press(KEY_A))

    assert [name for name, _ in transport.consumed_events] == ["eater", "returner"]
    assert [name for name, _ in transport.passed_events] == ["ignorer"]
    assert "CONSUME:eater" in transport.lines


def test_handler_error_is_contained():
    runtime, transport = make_runtime()
    runtime.load_source("bad", "def handle(event):\n    raise RuntimeError('nope')\n")
    runtime.load_source("good", TAPPER.format(code="KEY_B"))

    runtime.dispatcher.dispatch(press(KEY_A))
    runtime.flush()

    assert transport.errors == ["Script bad error: RuntimeError: nope"]
    assert [name for name, _ in transport.passed_events] == ["bad", "good"]
    assert transport.synthetic == [(EV_KEY, KEY_B, 1), (EV_KEY, KEY_B, 0)]

    # a later event gets a fresh task
    runtime.dispatcher.dispatch(press(KEY_A))
    assert len(transport.errors) == 2


def test_system_exit_in_script_is_a_handler_error():
    runtime, transport = make_runtime()
    runtime.load_source("quitter", "def handle(event):\n    raise SystemExit(3)\n")
    runtime.dispatcher.dispatch(press(KEY_A))
    assert transport.errors == ["Script quitter error: SystemExit: 3"]


def test_reload_leaves_running_task_on_old_body():
    clock = FakeClock()
    runtime, transport = make_runtime(clock)
    runtime.load_source("x", SLOW)
    runtime.dispatcher.dispatch(press(KEY_A))
    old_task = runtime.scheduler.task_for("x")

    runtime.load_source("x", TAPPER.format(code="KEY_B"))
    assert old_task.state is TaskState.SLEEP_WAITING

    clock.now = 1.0
    runtime.scheduler.fire_timers()
    runtime.scheduler.run_ready()
    runtime.flush()
    assert transport.synthetic == [(EV_KEY, KEY_X, 1), (EV_KEY, KEY_X, 0)]

    runtime.dispatcher.dispatch(press(KEY_A))
    runtime.flush()
    assert transport.synthetic[2:] == [(EV_KEY, KEY_B, 1), (EV_KEY, KEY_B, 0)]
    assert runtime.scheduler.task_for("x") is not old_task
    assert old_task.state is TaskState.DEAD


def test_unload_stops_delivery():
    runtime, transport = make_runtime()
    runtime.load_source("a", TAPPER.format(code="KEY_A"))
    runtime.unload_script("a")

    assert runtime.dispatcher.dispatch(press(KEY_B)) == []
    assert runtime.dispatcher.dispatch(press(KEY_B, script="a")) == [
        DispatchResult("a", NOT_LOADED)
    ]


def test_targeted_mode_rejects_untargeted_events():
    runtime, transport = make_runtime(addressing="targeted")
    runtime.load_source("a", TAPPER.format(code="KEY_A"))

    assert runtime.dispatcher.dispatch(press(KEY_B)) == [DispatchResult(None, REJECTED)]
    assert runtime.dispatcher.dispatch(press(KEY_B, script="a")) == [
        DispatchResult("a", DELIVERED)
    ]


def test_broadcast_mode_ignores_targets():
    runtime, _ = make_runtime(addressing="broadcast")
    runtime.load_source("a", TAPPER.format(code="KEY_A"))
    runtime.load_source("b", TAPPER.format(code="KEY_B"))

    results = runtime.dispatcher.dispatch(press(KEY_C, script="a"))
    assert [r.script for r in results] == ["a", "b"]


def test_stats():
    runtime, _ = make_runtime()
    runtime.load_source("a", "def handle(event):\n    consume()\n")
    runtime.dispatcher.dispatch(press(KEY_A))
    runtime.dispatcher.dispatch(press(KEY_A, script="zzz"))

    stats = runtime.dispatcher.stats
    assert stats[DELIVERED] == 1
    assert stats[NOT_LOADED] == 1
    assert stats["consume"] == 1
