import json
from typing import Iterable, Optional

from ag_ui.core import Tool as ToolDeclaration

from .protocol import (
  PreToolUseDecision,
  PreToolUseInput,
  SessionConfig,
  SessionHooks,
  UserPromptDecision,
  UserPromptInput,
)
from ..config import RelayConfig
from ..logs import get_logger
from ..state.reconciler import StateReconciler
from ..tools.adapter import ClientTool, ToolAdapter

logger = get_logger("session")

CLIENT_EXECUTION_CONTEXT = (
  "Tool results will be executed on the frontend and results returned as part of your context "
  "conversation in the later messages."
)
SERVER_EXECUTION_CONTEXT = "This tool is executed on the server and its result is returned immediately."


class SessionConfigBuilder:
  """Assembles the SessionConfig of a new session: tools, instructions and hooks."""

  def __init__(self, adapter: ToolAdapter, states: StateReconciler, config: RelayConfig):
    self.adapter = adapter
    self.states = states
    self.config = config

  def build(
    self,
    thread_id: str,
    declarations: Iterable[ToolDeclaration],
    system_message: Optional[str] = None,
  ) -> SessionConfig:
    enable_shared_state = self.config["enable_shared_state"]
    tools = self.adapter.tools_for(thread_id, declarations, enable_shared_state)
    client_tool_names = {t.name for t in tools if isinstance(t, ClientTool)}

    instructions = system_message or self.config["system_message"]
    if enable_shared_state:
      instructions += self.adapter.state_directives

    async def on_pre_tool_use(request: PreToolUseInput) -> PreToolUseDecision:
      logger.debug(f"Allowing tool '{request.tool_name}' ({request.tool_call_id}) on thread '{thread_id}'")
      context = CLIENT_EXECUTION_CONTEXT if request.tool_name in client_tool_names else SERVER_EXECUTION_CONTEXT
      return PreToolUseDecision(
        permission_decision="allow",
        modified_args=request.tool_args,
        additional_context=context,
      )

    async def on_user_prompt_submitted(request: UserPromptInput) -> UserPromptDecision:
      if not enable_shared_state:
        return UserPromptDecision()
      snapshot = json.dumps(self.states.snapshot(thread_id), indent=2)
      return UserPromptDecision(
        modified_prompt=f"{request.prompt}\n\n<ApplicationContext>:\n{snapshot}\n</ApplicationContext>\n"
      )

    logger.debug(f"Session config for thread '{thread_id}' has {len(tools)} tool(s)")
    return SessionConfig(
      session_id=thread_id,
      model=self.config["model"],
      system_message=instructions,
      tools=tools,
      hooks=SessionHooks(on_pre_tool_use=on_pre_tool_use, on_user_prompt_submitted=on_user_prompt_submitted),
      streaming=True,
      reasoning_effort=self.config["reasoning_effort"],
      max_iterations=self.config["max_iterations"],
    )
