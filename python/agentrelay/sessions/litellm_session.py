"""
A ModelSession runtime on top of litellm.

Each session keeps its conversation in a history list owned by the client, so
a released handle can be resumed later with the same history. Prompts are
queued and processed one at a time by a background turn task; the task
streams completions, forwards text deltas as events and runs tool calls until
the model answers without calling a tool.
"""

import asyncio
import json
import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional

import litellm

from .protocol import (
  MESSAGE_DELTA,
  SESSION_ERROR,
  SESSION_IDLE,
  PreToolUseInput,
  SessionConfig,
  SessionEvent,
  SessionEventHandler,
  SessionMetadata,
  Unsubscribe,
  UserPromptInput,
)
from ..errors import SessionNotFoundError
from ..logs import get_logger, InfoContext
from ..tools.protocol import ToolInvocation

logger = get_logger("session")

ABORTED_TOOL_RESULT = "Error: the tool call was aborted"


class LiteLLMSessionClient(InfoContext):
  def __init__(self, **completion_kwargs):
    self.logger = logger
    self.completion_kwargs = completion_kwargs
    self._state = "disconnected"
    self._histories: Dict[str, List[dict]] = {}
    self._sessions: Dict[str, "LiteLLMSession"] = {}

  @property
  def state(self) -> str:
    return self._state

  async def start(self):
    self._state = "connected"

  async def stop(self) -> List[Exception]:
    errors = []
    for session in list(self._sessions.values()):
      try:
        await session.destroy()
      except Exception as e:
        logger.error(f"Failed to destroy session '{session.session_id}': {e}")
        errors.append(e)
    self._sessions.clear()
    self._state = "disconnected"
    return errors

  async def list_sessions(self) -> List[SessionMetadata]:
    return [SessionMetadata(session_id, len(history)) for session_id, history in self._histories.items()]

  async def create_session(self, config: SessionConfig) -> "LiteLLMSession":
    history = self._histories[config.session_id] = []
    return self._open(config, history)

  async def resume_session(self, session_id: str, config: SessionConfig) -> "LiteLLMSession":
    history = self._histories.get(session_id)
    if history is None:
      raise SessionNotFoundError(session_id)
    logger.debug(f"Resuming session '{session_id}' with {len(history)} message(s)")
    return self._open(config, history)

  async def delete_session(self, session_id: str):
    session = self._sessions.pop(session_id, None)
    if session is not None:
      await session.destroy()
    self._histories.pop(session_id, None)

  def _open(self, config: SessionConfig, history: List[dict]) -> "LiteLLMSession":
    session = LiteLLMSession(config, history, self)
    self._sessions[config.session_id] = session
    return session

  def _forget(self, session: "LiteLLMSession"):
    if self._sessions.get(session.session_id) is session:
      del self._sessions[session.session_id]


class LiteLLMSession:
  def __init__(self, config: SessionConfig, history: List[dict], client: LiteLLMSessionClient):
    self.session_id = config.session_id
    self.config = config
    self.history = history
    self.client = client
    self.tools = {t.name: t for t in config.tools}
    self._listeners: Dict[str, List[SessionEventHandler]] = defaultdict(list)
    self._prompts: asyncio.Queue = asyncio.Queue()
    self._task: Optional[asyncio.Task] = None

  def on(self, event_type: str, handler: SessionEventHandler) -> Unsubscribe:
    listeners = self._listeners[event_type]
    listeners.append(handler)

    def unsubscribe():
      if handler in listeners:
        listeners.remove(handler)

    return unsubscribe

  def _emit(self, event_type: str, **data):
    event = SessionEvent(event_type, data)
    for handler in list(self._listeners[event_type]):
      handler(event)

  async def send(self, prompt: str) -> str:
    hook = self.config.hooks.on_user_prompt_submitted
    if hook is not None:
      decision = await hook(UserPromptInput(self.session_id, prompt))
      if decision is not None and decision.modified_prompt is not None:
        prompt = decision.modified_prompt

    message_id = str(uuid.uuid4())
    self._prompts.put_nowait((message_id, prompt))
    if self._task is None or self._task.done():
      self._task = asyncio.create_task(self._process_prompts())
    return message_id

  async def abort(self):
    while not self._prompts.empty():
      self._prompts.get_nowait()
    task, self._task = self._task, None
    if task is None or task.done():
      return
    task.cancel()
    try:
      await task
    except asyncio.CancelledError:
      logger.debug(f"Aborted turn of session '{self.session_id}'")

  async def destroy(self):
    await self.abort()
    self._listeners.clear()
    self.client._forget(self)

  async def _process_prompts(self):
    while not self._prompts.empty():
      message_id, prompt = self._prompts.get_nowait()
      try:
        await self._turn(message_id, prompt)
      except asyncio.CancelledError:
        raise
      except Exception as e:
        logger.error(f"Turn of session '{self.session_id}' failed: {type(e).__name__}: {e}")
        self._emit(SESSION_ERROR, message=str(e))
    self._emit(SESSION_IDLE)

  async def _turn(self, message_id: str, prompt: str):
    self.history.append({"role": "user", "content": prompt})

    for iteration in range(self.config.max_iterations):
      content, tool_calls = await self._complete(message_id if iteration == 0 else str(uuid.uuid4()))

      message = {"role": "assistant", "content": content or None}
      if tool_calls:
        message["tool_calls"] = tool_calls
      self.history.append(message)

      if not tool_calls:
        return

      for position, tool_call in enumerate(tool_calls):
        try:
          result = await self._call_tool(tool_call)
        except asyncio.CancelledError:
          # Every tool call needs an answer or the next completion is rejected
          for unanswered in tool_calls[position:]:
            self.history.append({"role": "tool", "tool_call_id": unanswered["id"], "content": ABORTED_TOOL_RESULT})
          raise
        self.history.append({"role": "tool", "tool_call_id": tool_call["id"], "content": result})

    logger.warning(f"Session '{self.session_id}' reached the maximum of {self.config.max_iterations} iterations")

  async def _complete(self, message_id: str):
    messages = [{"role": "system", "content": self.config.system_message}] + self.history
    kwargs: Dict[str, Any] = dict(self.client.completion_kwargs)
    specs = [await t.spec() for t in self.tools.values()]
    if specs:
      kwargs["tools"] = specs
    if self.config.reasoning_effort:
      kwargs["reasoning_effort"] = self.config.reasoning_effort
      kwargs.setdefault("drop_params", True)

    logger.debug(f"Session '{self.session_id}' sends {len(messages)} message(s) to '{self.config.model}'")
    chunks = await litellm.acompletion(
      model=self.config.model, messages=messages, stream=self.config.streaming, **kwargs
    )
    if not self.config.streaming:
      return self._read_response(message_id, chunks)

    content = ""
    tool_calls: List[Optional[dict]] = []
    async for chunk in chunks:
      if not chunk.choices:
        continue
      delta = chunk.choices[0].delta

      if delta.content:
        content += delta.content
        self._emit(MESSAGE_DELTA, message_id=message_id, delta_content=delta.content)

      for tc in getattr(delta, "tool_calls", None) or []:
        tc_index = getattr(tc, "index", None) or 0
        while len(tool_calls) <= tc_index:
          tool_calls.append(None)

        function = getattr(tc, "function", None)
        arguments = getattr(function, "arguments", None) or ""
        if tool_calls[tc_index] is None:
          tool_calls[tc_index] = {
            "id": getattr(tc, "id", None) or f"call_{uuid.uuid4().hex}",
            "type": "function",
            "function": {"name": getattr(function, "name", None) or "unknown", "arguments": arguments},
          }
        else:
          tool_calls[tc_index]["function"]["arguments"] += arguments

    return content, [tc for tc in tool_calls if tc is not None]

  def _read_response(self, message_id: str, response):
    message = response.choices[0].message
    if message.content:
      self._emit(MESSAGE_DELTA, message_id=message_id, delta_content=message.content)
    tool_calls = [
      {
        "id": tc.id,
        "type": "function",
        "function": {"name": tc.function.name, "arguments": tc.function.arguments or ""},
      }
      for tc in (message.tool_calls or [])
    ]
    return message.content or "", tool_calls

  async def _call_tool(self, tool_call: dict) -> str:
    tool_call_id = tool_call["id"]
    name = tool_call["function"]["name"]
    json_argument = tool_call["function"]["arguments"]

    tool = self.tools.get(name)
    if tool is None:
      logger.warning(f"Session '{self.session_id}' called unknown tool '{name}'")
      return f"Error: unknown tool '{name}'"

    additional_context = None
    hook = self.config.hooks.on_pre_tool_use
    if hook is not None:
      try:
        args = json.loads(json_argument) if json_argument else {}
      except json.JSONDecodeError:
        args = {}
      decision = await hook(PreToolUseInput(self.session_id, tool_call_id, name, args))
      if decision.permission_decision == "deny":
        logger.info(f"Tool '{name}' ({tool_call_id}) denied")
        return f"Error: permission to call '{name}' was denied"
      if decision.modified_args is not None and decision.modified_args != args:
        json_argument = json.dumps(decision.modified_args)
      additional_context = decision.additional_context

    result = await tool.invoke(json_argument, ToolInvocation(self.session_id, tool_call_id, name))
    if not isinstance(result, str):
      result = json.dumps(result)
    if additional_context:
      result = f"{result}\n\n{additional_context}"
    return result
