"""
Suspended tool calls waiting for a result from a later Run.

When the model calls a tool the client has to execute, the tool handler
registers a PendingToolCall and awaits its slot. The Run that later carries
the tool result takes the entry out of the registry and fills the slot, which
resumes the handler inside the still running model turn.

Entries have no timeout. A client that never answers leaves its entry here
until the thread is deleted (discard_thread) or the process restarts.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..errors import PendingToolCallResolvedError, ToolCallAbandonedError
from ..logs import get_logger

logger = get_logger("tool")


def _new_slot() -> asyncio.Future:
  return asyncio.get_running_loop().create_future()


@dataclass
class PendingToolCall:
  tool_call_id: str
  thread_id: str
  tool_name: str
  created_at: float = field(default_factory=time.time)
  _slot: asyncio.Future = field(default_factory=_new_slot, repr=False)

  @property
  def resolved(self) -> bool:
    return self._slot.done()

  def resolve(self, result: str):
    if self._slot.done():
      raise PendingToolCallResolvedError(self.tool_call_id)
    self._slot.set_result(result)

  def abandon(self):
    if not self._slot.done():
      self._slot.set_exception(ToolCallAbandonedError(self.tool_call_id, self.thread_id))

  async def wait(self) -> str:
    return await self._slot


class PendingToolCallRegistry:
  def __init__(self):
    self._calls: Dict[str, PendingToolCall] = {}

  def create(self, tool_call_id: str, thread_id: str, tool_name: str) -> PendingToolCall:
    if tool_call_id in self._calls:
      raise ValueError(f"Tool call '{tool_call_id}' is already pending")
    pending = PendingToolCall(tool_call_id, thread_id, tool_name)
    self._calls[tool_call_id] = pending
    logger.debug(f"Tool call '{tool_call_id}' ({tool_name}) pending on thread '{thread_id}'")
    return pending

  def get(self, tool_call_id: str, thread_id: Optional[str] = None) -> Optional[PendingToolCall]:
    pending = self._calls.get(tool_call_id)
    if pending is None:
      return None
    if thread_id is not None and pending.thread_id != thread_id:
      return None
    return pending

  def take(self, tool_call_id: str, thread_id: Optional[str] = None) -> Optional[PendingToolCall]:
    """Remove and return the entry, the caller becomes responsible for resolving it."""
    pending = self.get(tool_call_id, thread_id)
    if pending is not None:
      del self._calls[tool_call_id]
    return pending

  def resolve(self, tool_call_id: str, result: str, thread_id: Optional[str] = None) -> bool:
    pending = self.take(tool_call_id, thread_id)
    if pending is None:
      return False
    pending.resolve(result)
    return True

  def for_thread(self, thread_id: str) -> List[PendingToolCall]:
    return [p for p in self._calls.values() if p.thread_id == thread_id]

  def discard_thread(self, thread_id: str) -> int:
    discarded = self.for_thread(thread_id)
    for pending in discarded:
      del self._calls[pending.tool_call_id]
      pending.abandon()
    if discarded:
      logger.info(f"Abandoned {len(discarded)} pending tool call(s) on thread '{thread_id}'")
    return len(discarded)

  def __contains__(self, tool_call_id: str) -> bool:
    return tool_call_id in self._calls

  def __len__(self) -> int:
    return len(self._calls)
