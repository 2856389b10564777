import pytest
from evdev.ecodes import EV_KEY, KEY_A, KEY_B

from scriptkeyz.bridge import OutputBridge, QueryBridge
from scriptkeyz.errors import QueryProtocolViolation
from scriptkeyz.models.event import SyntheticEvent
from scriptkeyz.models.query import StateResponse, decode_answer
from scriptkeyz.models.task import Task
from scriptkeyz.registry import ScriptDefinition


def make_task(name="t"):
    return Task(definition=ScriptDefinition(name, "<test>", "", None), namespace={})


def test_output_flush_keeps_emission_order():
    bridge = OutputBridge()
    sent = []
    events = [SyntheticEvent(EV_KEY, KEY_A, 1), SyntheticEvent(EV_KEY, KEY_B, 1),
              SyntheticEvent(EV_KEY, KEY_A, 0)]
    for event in events:
        bridge.emit(event)

    assert bridge.pending == 3
    assert bridge.flush(sent.append) == events
    assert sent == [events]
    assert len(bridge) == 0


def test_output_flush_of_empty_queue_skips_sink():
    bridge = OutputBridge()
    sent = []
    assert bridge.flush(sent.append) == []
    assert sent == []


def test_output_emitted_during_flush_goes_to_next_batch():
    bridge = OutputBridge()
    late = SyntheticEvent(EV_KEY, KEY_B, 1)

    def sink(batch):
        bridge.emit(late)

    bridge.emit(SyntheticEvent(EV_KEY, KEY_A, 1))
    bridge.flush(sink)
    assert bridge.flush() == [late]


def test_output_discard():
    bridge = OutputBridge()
    bridge.emit(SyntheticEvent(EV_KEY, KEY_A, 1))
    bridge.discard()
    assert bridge.flush() == []


def test_query_issue_forwards_and_tracks():
    forwarded = []
    bridge = QueryBridge(forward=forwarded.append)
    task = make_task("remap")

    query = bridge.issue(task, "KeyState", KEY_A)

    assert forwarded == [query]
    assert task.query is query
    assert query.to_json() == {"id": query.id, "script": "remap", "kind": "KeyState", "arg": KEY_A}
    assert bridge.pending() == [query]


def test_query_ids_are_unique():
    bridge = QueryBridge()
    first = bridge.issue(make_task("a"), "KeyState", 1)
    second = bridge.issue(make_task("b"), "KeyState", 1)
    assert first.id != second.id


def test_one_outstanding_query_per_task():
    bridge = QueryBridge()
    task = make_task()
    bridge.issue(task, "KeyState", 1)
    with pytest.raises(QueryProtocolViolation):
        bridge.issue(task, "ModifierState")


def test_query_resolved_exactly_once():
    bridge = QueryBridge()
    task = make_task()
    query = bridge.issue(task, "KeyState", 1)

    assert bridge.resolve(StateResponse(query.id, "true")) is query
    assert query.answered
    assert query.value is True
    assert bridge.resolve(StateResponse(query.id, "false")) is None
    assert query.value is True


def test_query_cancel():
    bridge = QueryBridge()
    task = make_task()
    query = bridge.issue(task, "KeyState", 1)
    bridge.cancel(task)
    assert task.query is None
    assert len(bridge) == 0
    assert bridge.resolve(StateResponse(query.id, True)) is None


@pytest.mark.parametrize("kind,raw,expected", [
    ("KeyState", "true", True),
    ("KeyState", "false", False),
    ("KeyState", True, True),
    ("KeyState", None, False),
    ("DeviceConnected", b"true", True),
    ("ModifierState", "[29,42]", {29, 42}),
    ("ModifierState", [29], {29}),
    ("ModifierState", "", set()),
    ("ModifierState", "garbage", set()),
    ("ModifierState", None, set()),
    ("LayoutName", "us", "us"),
    ("Counter", "3", 3),
])
def test_decode_answer(kind, raw, expected):
    assert decode_answer(kind, raw) == expected
