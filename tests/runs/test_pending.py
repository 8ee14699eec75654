import asyncio
import pytest

from agentrelay.errors import PendingToolCallResolvedError, ToolCallAbandonedError
from agentrelay.runs import PendingToolCallRegistry


class TestPendingToolCall:
  @pytest.mark.asyncio
  async def test_resolve_wakes_the_waiter(self):
    registry = PendingToolCallRegistry()
    pending = registry.create("call-1", "thread-1", "fetch_weather")

    waiter = asyncio.create_task(pending.wait())
    await asyncio.sleep(0)
    assert not waiter.done()

    assert registry.resolve("call-1", "18C", "thread-1")
    assert await waiter == "18C"

  @pytest.mark.asyncio
  async def test_resolved_entry_is_removed_and_cannot_be_resolved_again(self):
    registry = PendingToolCallRegistry()
    pending = registry.create("call-1", "thread-1", "fetch_weather")

    assert registry.resolve("call-1", "18C")
    assert "call-1" not in registry
    assert len(registry) == 0
    assert pending.resolved

    # A duplicate delivery finds nothing to resolve
    assert registry.resolve("call-1", "19C") is False
    with pytest.raises(PendingToolCallResolvedError):
      pending.resolve("19C")
    assert await pending.wait() == "18C"

  @pytest.mark.asyncio
  async def test_lookup_is_scoped_to_the_thread(self):
    registry = PendingToolCallRegistry()
    registry.create("call-1", "thread-1", "fetch_weather")

    assert registry.get("call-1", "thread-2") is None
    assert registry.resolve("call-1", "18C", "thread-2") is False
    assert registry.get("call-1", "thread-1") is not None
    assert registry.get("call-1") is not None

  @pytest.mark.asyncio
  async def test_duplicate_creation_is_rejected(self):
    registry = PendingToolCallRegistry()
    registry.create("call-1", "thread-1", "fetch_weather")

    with pytest.raises(ValueError):
      registry.create("call-1", "thread-1", "fetch_weather")

  @pytest.mark.asyncio
  async def test_take_removes_without_resolving(self):
    registry = PendingToolCallRegistry()
    pending = registry.create("call-1", "thread-1", "fetch_weather")

    assert registry.take("call-1") is pending
    assert not pending.resolved
    assert registry.take("call-1") is None

  @pytest.mark.asyncio
  async def test_discard_thread_abandons_its_calls(self):
    registry = PendingToolCallRegistry()
    first = registry.create("call-1", "thread-1", "fetch_weather")
    registry.create("call-2", "thread-1", "fetch_weather")
    other = registry.create("call-3", "thread-2", "fetch_weather")

    assert registry.discard_thread("thread-1") == 2
    assert [p.tool_call_id for p in registry.for_thread("thread-2")] == ["call-3"]
    assert not other.resolved

    with pytest.raises(ToolCallAbandonedError):
      await first.wait()
