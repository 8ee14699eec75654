"""
Per-run output streams and the thread routing table.

A RunStream is the outbound side of one Run: session listeners and tool
handlers push AG-UI events into it, the HTTP response drains it. The Run
lives exactly as long as the stream is open.

ActiveStreamRegistry records, per thread, which stream late events should go
to. Tool handlers are created once per session but fire during whichever Run
is current, so they look the stream up here instead of capturing it.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional

from ag_ui.core import BaseEvent, RunErrorEvent

from ..errors import RunFailedError
from ..logs import get_logger

logger = get_logger("orchestrator")

_CLOSED = object()


class RunStream:
  def __init__(self, thread_id: str, run_id: str):
    self.thread_id = thread_id
    self.run_id = run_id
    self._queue: asyncio.Queue = asyncio.Queue()
    self._closed = False
    self._error: Optional[RunFailedError] = None
    self._cleanups: List[Callable[[], None]] = []

  @property
  def closed(self) -> bool:
    return self._closed

  def emit(self, event: BaseEvent) -> bool:
    if self._closed:
      logger.debug(f"[{self.run_id}] Dropping {event.type} on closed stream")
      return False
    self._queue.put_nowait(event)
    return True

  def complete(self):
    if self._closed:
      return
    logger.debug(f"[{self.run_id}] Stream complete")
    self._close()

  def fail(self, event: RunErrorEvent):
    """Emit a RunErrorEvent as the last event and end the stream abnormally."""
    if self._closed:
      return
    self._queue.put_nowait(event)
    self._error = RunFailedError(self.thread_id, self.run_id, event.message)
    self._close()

  def close(self):
    """Consumer side teardown, the producer may still be running."""
    if self._closed:
      return
    logger.debug(f"[{self.run_id}] Stream closed by consumer")
    self._close()

  def add_cleanup(self, cleanup: Callable[[], None]):
    # Registering on a closed stream runs the cleanup right away, so a late
    # subscription never outlives the Run
    if self._closed:
      cleanup()
    else:
      self._cleanups.append(cleanup)

  def _close(self):
    self._closed = True
    self._queue.put_nowait(_CLOSED)
    cleanups, self._cleanups = self._cleanups, []
    for cleanup in cleanups:
      cleanup()

  def __aiter__(self) -> AsyncIterator[BaseEvent]:
    return self._events()

  async def _events(self) -> AsyncIterator[BaseEvent]:
    while True:
      item = await self._queue.get()
      if item is _CLOSED:
        if self._error is not None:
          raise self._error
        return
      yield item


@dataclass
class ActiveStreamBinding:
  thread_id: str
  stream: RunStream
  run_id: str


class ActiveStreamRegistry:
  """Last-writer-wins routing table from thread id to the current Run's stream."""

  def __init__(self):
    self._bindings: Dict[str, ActiveStreamBinding] = {}

  def bind(self, thread_id: str, stream: RunStream) -> ActiveStreamBinding:
    previous = self._bindings.get(thread_id)
    if previous is not None and not previous.stream.closed and previous.stream is not stream:
      # Two live Runs on one thread: the newer one takes over routing and the
      # older stream stops receiving tool events
      logger.warning(
        f"Thread '{thread_id}': run '{stream.run_id}' replaces still open run '{previous.run_id}' as active stream"
      )
    binding = ActiveStreamBinding(thread_id, stream, stream.run_id)
    self._bindings[thread_id] = binding
    return binding

  def get(self, thread_id: str) -> Optional[ActiveStreamBinding]:
    return self._bindings.get(thread_id)

  def unbind(self, thread_id: str, stream: Optional[RunStream] = None) -> bool:
    binding = self._bindings.get(thread_id)
    if binding is None:
      return False
    if stream is not None and binding.stream is not stream:
      return False
    del self._bindings[thread_id]
    return True

  def __contains__(self, thread_id: str) -> bool:
    return thread_id in self._bindings

  def __len__(self) -> int:
    return len(self._bindings)
