import json
import pytest

from agentrelay.config import resolve_config
from agentrelay.runs import ActiveStreamRegistry, PendingToolCallRegistry
from agentrelay.sessions import PreToolUseInput, SessionConfigBuilder, UserPromptInput
from agentrelay.sessions.builder import CLIENT_EXECUTION_CONTEXT, SERVER_EXECUTION_CONTEXT
from agentrelay.state import StateReconciler
from agentrelay.tools import ToolAdapter
from tests.mock_utils import weather_tool


def builder(**config):
  states = StateReconciler()
  resolved = resolve_config(config)
  adapter = ToolAdapter(
    ActiveStreamRegistry(),
    PendingToolCallRegistry(),
    states,
    state_patch_mode=resolved["state_patch_mode"],
    server_tools=resolved["server_tools"],
  )
  return SessionConfigBuilder(adapter, states, resolved), states


class TestSessionConfigBuilder:
  def test_session_config(self):
    b, _ = builder(model="gpt-4o", system_message="Be brief", reasoning_effort="low", max_iterations=7)

    config = b.build("thread-1", [weather_tool()])

    assert config.session_id == "thread-1"
    assert config.model == "gpt-4o"
    assert config.streaming
    assert config.reasoning_effort == "low"
    assert config.max_iterations == 7
    assert [t.name for t in config.tools] == ["fetch_weather", "update_state"]
    assert config.system_message.startswith("Be brief")
    assert "STATE MANAGEMENT" in config.system_message

  def test_system_message_from_run_wins(self):
    b, _ = builder(system_message="Be brief", enable_shared_state=False)

    config = b.build("thread-1", [], system_message="Be verbose")

    assert config.system_message == "Be verbose"

  @pytest.mark.asyncio
  async def test_pre_tool_use_always_allows_and_annotates(self):
    b, _ = builder()
    config = b.build("thread-1", [weather_tool()])
    hook = config.hooks.on_pre_tool_use

    client_side = await hook(PreToolUseInput("thread-1", "call-1", "fetch_weather", {"city": "Lyon"}))
    server_side = await hook(PreToolUseInput("thread-1", "call-2", "update_state", {"operations": []}))

    assert client_side.permission_decision == "allow"
    assert client_side.modified_args == {"city": "Lyon"}
    assert client_side.additional_context == CLIENT_EXECUTION_CONTEXT
    assert server_side.permission_decision == "allow"
    assert server_side.additional_context == SERVER_EXECUTION_CONTEXT

  @pytest.mark.asyncio
  async def test_prompt_hook_appends_application_context(self):
    b, states = builder()
    states.seed("thread-1", {"title": "Soup"})
    config = b.build("thread-1", [])

    decision = await config.hooks.on_user_prompt_submitted(UserPromptInput("thread-1", "hello"))

    expected_state = json.dumps({"title": "Soup"}, indent=2)
    assert decision.modified_prompt == f"hello\n\n<ApplicationContext>:\n{expected_state}\n</ApplicationContext>\n"

  @pytest.mark.asyncio
  async def test_prompt_hook_reads_the_current_state(self):
    b, states = builder()
    states.seed("thread-1", {"v": 1})
    config = b.build("thread-1", [])

    class Sink:
      def emit(self, event):
        return True

    states.merge("thread-1", {"v": 2}, Sink())
    decision = await config.hooks.on_user_prompt_submitted(UserPromptInput("thread-1", "hello"))

    assert '"v": 2' in decision.modified_prompt

  @pytest.mark.asyncio
  async def test_without_shared_state(self):
    b, _ = builder(enable_shared_state=False, system_message="Be brief")
    config = b.build("thread-1", [weather_tool()])

    decision = await config.hooks.on_user_prompt_submitted(UserPromptInput("thread-1", "hello"))

    assert decision.modified_prompt is None
    assert config.system_message == "Be brief"
    assert [t.name for t in config.tools] == ["fetch_weather"]
