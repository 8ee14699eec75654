"""
Exception classes raised by the relay.

Every error carries the operation that failed, a few context pairs and a
suggestion, so the log line alone is enough to tell which thread and run
were affected.
"""

from typing import Optional, Dict, Any


class RelayError(Exception):
  """
  Base class for relay errors.

  Attributes:
    operation: The operation that failed
    context: Additional context about the operation
    message: Human-readable error message
  """

  def __init__(
    self,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
    message: Optional[str] = None,
  ):
    self.operation = operation
    self.context = context or {}

    if message is None:
      message = self._build_message()

    self.message = message
    super().__init__(message)

  def __str__(self) -> str:
    return self.message

  def _build_message(self) -> str:
    parts = [f"{self.operation} failed."]

    if self.context:
      context_parts = [f"{k}: {v}" for k, v in self.context.items() if v is not None]
      if context_parts:
        parts.append(f"Context: {', '.join(context_parts)}.")

    suggestion = self._get_suggestion()
    if suggestion:
      parts.append(suggestion)

    return " ".join(parts)

  def _get_suggestion(self) -> str:
    return ""


class RunFailedError(RelayError):
  """
  Raised by RunOrchestrator.run() after a RunErrorEvent has been emitted.

  The event stream already carries the error for the client; this exception
  lets the caller tell an abnormal end from a normal one.

  Example:
    try:
      async for event in orchestrator.run(run_input):
        ...
    except RunFailedError as e:
      print(f"Run {e.run_id} failed: {e.reason}")
  """

  def __init__(self, thread_id: str, run_id: str, reason: str):
    self.thread_id = thread_id
    self.run_id = run_id
    self.reason = reason
    super().__init__(
      operation="Run",
      context={"thread_id": thread_id, "run_id": run_id},
      message=f"Run '{run_id}' on thread '{thread_id}' failed: {reason}",
    )


class StatePatchError(RelayError, ValueError):
  """
  Raised when a state patch is malformed or cannot be applied.

  The batch is rejected as a whole and the state mirror is left unchanged.
  """

  def __init__(self, reason: str, thread_id: Optional[str] = None, operation_index: Optional[int] = None):
    self.reason = reason
    self.thread_id = thread_id
    self.operation_index = operation_index
    super().__init__(
      operation="State patch",
      context={"thread_id": thread_id, "operation": operation_index},
      message=reason,
    )


class PendingToolCallResolvedError(RelayError):
  """
  Raised when a pending tool call is resolved a second time.
  """

  def __init__(self, tool_call_id: str):
    self.tool_call_id = tool_call_id
    super().__init__(
      operation="Resolve pending tool call",
      context={"tool_call_id": tool_call_id},
    )

  def _get_suggestion(self) -> str:
    return "The tool call already received its result; duplicate deliveries are ignored by the orchestrator."


class ToolCallAbandonedError(RelayError):
  """
  Set on a pending tool call whose thread was deleted before a result arrived.
  """

  def __init__(self, tool_call_id: str, thread_id: str):
    self.tool_call_id = tool_call_id
    self.thread_id = thread_id
    super().__init__(
      operation="Wait for tool result",
      context={"tool_call_id": tool_call_id, "thread_id": thread_id},
      message=f"Tool call '{tool_call_id}' was abandoned because thread '{thread_id}' was deleted",
    )


class SessionNotFoundError(RelayError, KeyError):
  """
  Raised when an administrative operation targets a thread without a session.
  """

  def __init__(self, thread_id: str):
    self.thread_id = thread_id
    super().__init__(
      operation="Session lookup",
      context={"thread_id": thread_id},
      message=f"No session for thread '{thread_id}'",
    )
