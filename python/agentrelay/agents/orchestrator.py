"""
Run orchestration.

A Run is one request/response cycle on a thread. The orchestrator turns the
Run input into an AG-UI event stream and decides how the thread's long lived
model session continues:

- a fresh turn submits the last user message as a prompt;
- a resumption fills the slot of the tool call the session is suspended on,
  so the turn that dispatched the tool to the client carries on;
- a resumption whose tool call or session is gone (restart, stale client,
  duplicate delivery) falls back to a prompt that describes the result.

Example:
  orchestrator = RunOrchestrator(LiteLLMSessionClient(), config={"model": "gpt-4o"})
  async for event in orchestrator.run(run_input):
    print(event.type)
"""

from typing import AsyncIterator, Optional

from ag_ui.core import (
  BaseEvent,
  RunAgentInput,
  RunErrorEvent,
  RunFinishedEvent,
  RunStartedEvent,
  TextMessageChunkEvent,
)

from .messages import classify_run, fallback_prompt, system_message
from ..config import RelayConfig, resolve_config
from ..errors import SessionNotFoundError
from ..logs import get_logger, InfoContext
from ..runs.pending import PendingToolCallRegistry
from ..runs.streams import ActiveStreamRegistry, RunStream
from ..sessions.builder import SessionConfigBuilder
from ..sessions.protocol import MESSAGE_DELTA, SESSION_ERROR, SESSION_IDLE, ModelSession, SessionClient, SessionEvent
from ..sessions.registry import SessionRegistry
from ..state.reconciler import StateReconciler
from ..tools.adapter import ToolAdapter

logger = get_logger("orchestrator")


class RunOrchestrator(InfoContext):
  def __init__(
    self,
    client: SessionClient,
    config: Optional[RelayConfig] = None,
    sessions: Optional[SessionRegistry] = None,
    pending: Optional[PendingToolCallRegistry] = None,
    streams: Optional[ActiveStreamRegistry] = None,
    states: Optional[StateReconciler] = None,
  ):
    self.logger = logger
    self.config = resolve_config(config)
    self.client = client
    self.sessions = sessions if sessions is not None else SessionRegistry(client)
    self.pending = pending if pending is not None else PendingToolCallRegistry()
    self.streams = streams if streams is not None else ActiveStreamRegistry()
    self.states = states if states is not None else StateReconciler()
    self.adapter = ToolAdapter(
      self.streams,
      self.pending,
      self.states,
      state_patch_mode=self.config["state_patch_mode"],
      server_tools=self.config["server_tools"],
    )
    self.builder = SessionConfigBuilder(self.adapter, self.states, self.config)

  async def run(self, input: RunAgentInput) -> AsyncIterator[BaseEvent]:
    """
    Drive one Run and yield its events.

    The generator is lazy: nothing happens before the first event is pulled.
    It ends after RunFinishedEvent, or raises RunFailedError right after
    yielding RunErrorEvent.
    """
    thread_id, run_id = input.thread_id, input.run_id
    stream = RunStream(thread_id, run_id)
    logger.info(f"[{run_id}] Run started on thread '{thread_id}'")

    try:
      stream.emit(RunStartedEvent(thread_id=thread_id, run_id=run_id))
      if self.config["enable_shared_state"]:
        self.states.seed(thread_id, input.state)

      await self._start(input, stream)

      async for event in stream:
        yield event
      logger.info(f"[{run_id}] Run finished on thread '{thread_id}'")
    finally:
      stream.close()
      self.streams.unbind(thread_id, stream)
      if self.config["session_lifetime"] == "run":
        await self.sessions.release(thread_id)

  async def _start(self, input: RunAgentInput, stream: RunStream):
    thread_id = input.thread_id
    classification = classify_run(input.messages)

    try:
      if classification.is_resumption:
        if self._resume(thread_id, classification.tool_call_id, classification.tool_result, stream):
          return
        logger.warning(
          f"[{stream.run_id}] No suspended tool call '{classification.tool_call_id}' on thread '{thread_id}', "
          f"submitting the result as a prompt"
        )
        prompt = fallback_prompt(classification.tool_call_id, classification.tool_result)
      else:
        prompt = classification.prompt

      session = await self.sessions.get_or_create(
        thread_id, lambda: self.builder.build(thread_id, input.tools, system_message(input.messages))
      )
      self._attach(session, stream)
      message_id = await session.send(prompt)
      logger.debug(f"[{stream.run_id}] Submitted prompt as message '{message_id}'")
    except Exception as e:
      logger.error(f"[{stream.run_id}] Run on thread '{thread_id}' failed: {type(e).__name__}: {e}")
      stream.fail(RunErrorEvent(message=str(e) or type(e).__name__))

  def _resume(self, thread_id: str, tool_call_id: str, result: str, stream: RunStream) -> bool:
    pending = self.pending.get(tool_call_id, thread_id)
    session = self.sessions.get(thread_id)
    if pending is None or session is None:
      return False

    # Listeners go first: filling the slot may let the session reach idle
    # before control returns here
    self._attach(session, stream)
    self.pending.resolve(tool_call_id, result, thread_id)
    logger.info(f"[{stream.run_id}] Resumed tool call '{tool_call_id}' on thread '{thread_id}'")
    return True

  def _attach(self, session: ModelSession, stream: RunStream):
    """Route the thread's events to this Run until its stream closes."""
    self.streams.bind(stream.thread_id, stream)

    def on_delta(event: SessionEvent):
      delta = event.data.get("delta_content")
      if delta:
        stream.emit(TextMessageChunkEvent(message_id=event.data.get("message_id"), role="assistant", delta=delta))

    def on_idle(event: SessionEvent):
      stream.emit(RunFinishedEvent(thread_id=stream.thread_id, run_id=stream.run_id))
      stream.complete()

    def on_error(event: SessionEvent):
      message = event.data.get("message") or "The model session failed"
      logger.error(f"[{stream.run_id}] Session error on thread '{stream.thread_id}': {message}")
      stream.fail(RunErrorEvent(message=message))

    stream.add_cleanup(session.on(MESSAGE_DELTA, on_delta))
    stream.add_cleanup(session.on(SESSION_IDLE, on_idle))
    stream.add_cleanup(session.on(SESSION_ERROR, on_error))

  async def delete_thread(self, thread_id: str):
    """
    Delete everything the relay holds for a thread.

    A thread is known while it has a live session, a released session the
    client still keeps, or a state mirror. Raises SessionNotFoundError
    otherwise.
    """
    has_session = await self.sessions.known(thread_id)
    if not has_session and thread_id not in self.states:
      raise SessionNotFoundError(thread_id)

    with self.info(f"Deleting thread '{thread_id}'", f"Deleted thread '{thread_id}'"):
      if has_session:
        await self.sessions.delete(thread_id)
      self.pending.discard_thread(thread_id)
      binding = self.streams.get(thread_id)
      if binding is not None:
        self.streams.unbind(thread_id)
        binding.stream.fail(RunErrorEvent(message=f"Thread '{thread_id}' was deleted"))
      self.states.discard(thread_id)

  async def close(self):
    await self.sessions.close()
    errors = await self.client.stop()
    for error in errors:
      logger.warning(f"Error while stopping the session client: {error}")
