import pytest

from ag_ui.core import RunErrorEvent, RunFinishedEvent, RunStartedEvent

from agentrelay.errors import RunFailedError
from agentrelay.runs import ActiveStreamRegistry, RunStream
from tests.mock_utils import event_types


async def drain(stream):
  return [event async for event in stream]


class TestRunStream:
  @pytest.mark.asyncio
  async def test_events_are_delivered_in_order_until_complete(self):
    stream = RunStream("thread-1", "run-1")
    stream.emit(RunStartedEvent(thread_id="thread-1", run_id="run-1"))
    stream.emit(RunFinishedEvent(thread_id="thread-1", run_id="run-1"))
    stream.complete()

    events = await drain(stream)

    assert event_types(events) == ["RUN_STARTED", "RUN_FINISHED"]
    assert stream.closed

  @pytest.mark.asyncio
  async def test_emit_after_close_is_dropped(self):
    stream = RunStream("thread-1", "run-1")
    stream.complete()

    assert stream.emit(RunFinishedEvent(thread_id="thread-1", run_id="run-1")) is False
    assert await drain(stream) == []

  @pytest.mark.asyncio
  async def test_fail_yields_the_error_event_then_raises(self):
    stream = RunStream("thread-1", "run-1")
    stream.fail(RunErrorEvent(message="boom"))

    events = []
    with pytest.raises(RunFailedError) as e:
      async for event in stream:
        events.append(event)

    assert [event.message for event in events] == ["boom"]
    assert e.value.reason == "boom"
    assert e.value.run_id == "run-1"

  @pytest.mark.asyncio
  async def test_cleanups_run_once_on_close(self):
    stream = RunStream("thread-1", "run-1")
    calls = []
    stream.add_cleanup(lambda: calls.append("a"))

    stream.close()
    stream.complete()

    assert calls == ["a"]

    # Late registrations run right away
    stream.add_cleanup(lambda: calls.append("b"))
    assert calls == ["a", "b"]


class TestActiveStreamRegistry:
  @pytest.mark.asyncio
  async def test_last_writer_wins(self):
    registry = ActiveStreamRegistry()
    older = RunStream("thread-1", "run-1")
    newer = RunStream("thread-1", "run-2")

    registry.bind("thread-1", older)
    registry.bind("thread-1", newer)

    binding = registry.get("thread-1")
    assert binding.stream is newer
    assert binding.run_id == "run-2"
    assert len(registry) == 1

  @pytest.mark.asyncio
  async def test_unbind_only_removes_own_stream(self):
    registry = ActiveStreamRegistry()
    older = RunStream("thread-1", "run-1")
    newer = RunStream("thread-1", "run-2")
    registry.bind("thread-1", older)
    registry.bind("thread-1", newer)

    assert registry.unbind("thread-1", older) is False
    assert "thread-1" in registry
    assert registry.unbind("thread-1", newer) is True
    assert registry.get("thread-1") is None
