"""
Interface of the model runtime the relay drives.

A SessionClient hands out ModelSession handles. A handle owns one
conversation: it accepts prompts, runs tools and reports progress through
events. The relay only depends on these protocols; the LiteLLM runtime in
litellm_session.py is one implementation, the fakes in the test suite are
another.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from ..tools.protocol import InvokableTool


MESSAGE_DELTA = "assistant.message_delta"
SESSION_IDLE = "session.idle"
SESSION_ERROR = "session.error"


@dataclass
class SessionEvent:
  type: str
  data: Dict[str, Any] = field(default_factory=dict)


SessionEventHandler = Callable[[SessionEvent], None]
Unsubscribe = Callable[[], None]


@dataclass
class PreToolUseInput:
  session_id: str
  tool_call_id: str
  tool_name: str
  tool_args: Dict[str, Any]


@dataclass
class PreToolUseDecision:
  permission_decision: str = "allow"
  modified_args: Optional[Dict[str, Any]] = None
  additional_context: Optional[str] = None


@dataclass
class UserPromptInput:
  session_id: str
  prompt: str


@dataclass
class UserPromptDecision:
  modified_prompt: Optional[str] = None


@dataclass
class SessionHooks:
  on_pre_tool_use: Optional[Callable[[PreToolUseInput], Awaitable[PreToolUseDecision]]] = None
  on_user_prompt_submitted: Optional[Callable[[UserPromptInput], Awaitable[UserPromptDecision]]] = None


@dataclass
class SessionConfig:
  session_id: str
  model: str
  system_message: str
  tools: List[InvokableTool] = field(default_factory=list)
  hooks: SessionHooks = field(default_factory=SessionHooks)
  streaming: bool = True
  reasoning_effort: Optional[str] = None
  max_iterations: int = 100


@dataclass
class SessionMetadata:
  session_id: str
  message_count: int = 0


class ModelSession(Protocol):
  session_id: str

  def on(self, event_type: str, handler: SessionEventHandler) -> Unsubscribe: ...

  async def send(self, prompt: str) -> str: ...

  async def abort(self) -> None: ...

  async def destroy(self) -> None: ...


class SessionClient(Protocol):
  @property
  def state(self) -> str: ...

  async def start(self) -> None: ...

  async def stop(self) -> List[Exception]: ...

  async def list_sessions(self) -> List[SessionMetadata]: ...

  async def create_session(self, config: SessionConfig) -> ModelSession: ...

  async def resume_session(self, session_id: str, config: SessionConfig) -> ModelSession: ...

  async def delete_session(self, session_id: str) -> None: ...
