"""
Tools handed to a model session.

Three kinds of tools end up on a session:

- ClientTool: declared by the client in the Run input and executed by the
  client. Invoking one dispatches the call on the thread's active stream,
  finishes that Run and suspends until a later Run carries the result.
- UpdateStateTool / MergeStateTool: server side mutation of the shared state
  through the StateReconciler. They return immediately.
- Tool: any Python function registered as a server tool.

Handlers are created once per session and outlive the Run that created them,
so they always resolve the thread's current stream through the
ActiveStreamRegistry.
"""

import asyncio
from abc import ABC, abstractmethod
import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ag_ui.core import RunFinishedEvent, Tool as ToolDeclaration, ToolCallChunkEvent

from .protocol import InvokableTool, ToolInvocation
from .tool import Tool
from ..errors import StatePatchError, ToolCallAbandonedError
from ..logs import get_logger
from ..runs.pending import PendingToolCallRegistry
from ..runs.streams import ActiveStreamRegistry, RunStream
from ..state.reconciler import StateReconciler

logger = get_logger("tool")

NO_ACTIVE_STREAM_RESULT = "Error: no active client connection"
STATE_TOOL_NAME = "update_state"


def parse_arguments(json_argument: Optional[str]) -> Dict[str, Any]:
  if json_argument is None or json_argument.strip() == "":
    return {}
  args = json.loads(json_argument)
  if not isinstance(args, dict):
    raise ValueError(f"JSON argument must be an object, got {type(args).__name__}")
  return args


def normalize_arguments(json_argument: Optional[str]) -> str:
  """Re-serialize arguments for the client, leaving unparsable input untouched."""
  try:
    return json.dumps(parse_arguments(json_argument))
  except ValueError:
    return json_argument or ""


class ClientTool(InvokableTool):
  """Tool executed by the remote client. Invocations suspend the model turn."""

  def __init__(
    self,
    thread_id: str,
    declaration: ToolDeclaration,
    streams: ActiveStreamRegistry,
    pending: PendingToolCallRegistry,
  ):
    self.thread_id = thread_id
    self.name = declaration.name
    self.description = declaration.description
    # Passed through to the model untouched
    self.parameters = declaration.parameters or {"type": "object", "properties": {}}
    self.streams = streams
    self.pending = pending

  async def spec(self) -> dict:
    return {
      "type": "function",
      "function": {"name": self.name, "description": self.description, "parameters": self.parameters},
    }

  async def invoke(self, json_argument: Optional[str], invocation: ToolInvocation) -> str:
    binding = self.streams.get(self.thread_id)
    if binding is None or binding.stream.closed:
      logger.warning(f"No active stream for thread '{self.thread_id}' during tool call '{invocation.tool_call_id}'")
      return NO_ACTIVE_STREAM_RESULT

    pending = self.pending.create(invocation.tool_call_id, self.thread_id, self.name)

    stream = binding.stream
    stream.emit(
      ToolCallChunkEvent(
        tool_call_id=invocation.tool_call_id,
        tool_call_name=self.name,
        delta=normalize_arguments(json_argument),
      )
    )
    # The client owns the turn from here: it runs the tool and opens a new Run
    stream.emit(RunFinishedEvent(thread_id=self.thread_id, run_id=binding.run_id))
    stream.complete()

    logger.info(f"Tool '{self.name}' ({invocation.tool_call_id}) dispatched to client, waiting for result")

    try:
      result = await pending.wait()
    except ToolCallAbandonedError as e:
      logger.info(f"Tool '{self.name}' ({invocation.tool_call_id}) abandoned")
      return f"Error: {e}"
    except asyncio.CancelledError:
      # A resumption must not find a slot nobody waits on any more
      self.pending.take(invocation.tool_call_id)
      raise

    logger.info(f"Tool '{self.name}' ({invocation.tool_call_id}) received result from client")
    return result


class _StateTool(InvokableTool, ABC):
  name = STATE_TOOL_NAME
  description = ""
  parameters: Dict[str, Any] = {}

  def __init__(self, thread_id: str, streams: ActiveStreamRegistry, states: StateReconciler):
    self.thread_id = thread_id
    self.streams = streams
    self.states = states

  async def spec(self) -> dict:
    return {
      "type": "function",
      "function": {"name": self.name, "description": self.description, "parameters": self.parameters},
    }

  async def invoke(self, json_argument: Optional[str], invocation: ToolInvocation) -> Dict[str, Any]:
    binding = self.streams.get(self.thread_id)
    if binding is None or binding.stream.closed:
      logger.warning(f"No active stream for thread '{self.thread_id}' during {self.name}")
      return {"success": False, "error": "No active client connection"}

    try:
      args = parse_arguments(json_argument)
    except ValueError as e:
      return {"success": False, "error": f"Invalid arguments: {e}"}

    try:
      return self.apply(args, binding.stream)
    except StatePatchError as e:
      logger.warning(f"Rejected state change on thread '{self.thread_id}': {e}")
      return {"success": False, "error": str(e)}

  @abstractmethod
  def apply(self, args: Dict[str, Any], stream: RunStream) -> Dict[str, Any]:
    """Change the state and return the result reported to the model. Raises StatePatchError on rejection."""


class UpdateStateTool(_StateTool):
  description = (
    "Apply changes to the shared application state using JSON Patch operations (RFC 6902). "
    "Only send the specific operations needed - never the full state."
  )
  parameters = {
    "type": "object",
    "properties": {
      "operations": {
        "type": "array",
        "description": "JSON Patch operations to apply",
        "items": {
          "type": "object",
          "properties": {
            "op": {"type": "string", "enum": ["add", "remove", "replace"], "description": "The operation type"},
            "path": {
              "type": "string",
              "description": "JSON Pointer to the target location (e.g. '/recipe/title', '/recipe/ingredients/0')",
            },
            "value": {"description": "The value to add or replace (required for 'add' and 'replace')"},
          },
          "required": ["op", "path"],
        },
      },
    },
    "required": ["operations"],
  }

  def apply(self, args: Dict[str, Any], stream: RunStream) -> Dict[str, Any]:
    operations = args.get("operations")
    self.states.apply_patch(self.thread_id, operations, stream)
    return {"success": True, "message": f"Applied {len(operations)} operation(s)"}


class MergeStateTool(_StateTool):
  description = "Update the application state. Provide only the top-level keys you want to change."
  parameters = {
    "type": "object",
    "properties": {
      "updates": {"type": "object", "description": "The partial state object containing updated values."},
    },
    "required": ["updates"],
  }

  def apply(self, args: Dict[str, Any], stream: RunStream) -> Dict[str, Any]:
    delta = self.states.merge(self.thread_id, args.get("updates"), stream)
    if not delta:
      return {"success": True, "message": "State unchanged"}
    return {"success": True, "message": "State updated"}


JSON_PATCH_DIRECTIVES = """
STATE MANAGEMENT:
- The front-end is the source of truth for the application state.
- The <ApplicationContext> attached to each message is for your reference only.
- To change the state, call the "update_state" tool with JSON Patch operations (RFC 6902).
- Send only the minimal operations needed. Never reconstruct or send the full state.
- After using update_state, respond with a brief summary only.

Examples:
- Change a title: update_state({"operations": [{"op": "replace", "path": "/recipe/title", "value": "New Title"}]})
- Append to a list: update_state({"operations": [{"op": "add", "path": "/recipe/ingredients/-", "value": {"name": "Salt"}}]})
- Remove an item: update_state({"operations": [{"op": "remove", "path": "/recipe/ingredients/2"}]})
"""

MERGE_DIRECTIVES = """
STATE MANAGEMENT:
- The front-end is the source of truth for the application state.
- The <ApplicationContext> attached to each message is for your reference only.
- To change the state, call the "update_state" tool with only the top-level keys that change.
- After using update_state, respond with a brief summary only.
"""


class ToolAdapter:
  def __init__(
    self,
    streams: ActiveStreamRegistry,
    pending: PendingToolCallRegistry,
    states: StateReconciler,
    state_patch_mode: str = "json-patch",
    server_tools: Iterable[Union[Callable, InvokableTool]] = (),
  ):
    self.streams = streams
    self.pending = pending
    self.states = states
    self.state_patch_mode = state_patch_mode
    self.server_tools: List[InvokableTool] = [
      t if hasattr(t, "invoke") and hasattr(t, "spec") else Tool(t) for t in server_tools
    ]

  @property
  def state_directives(self) -> str:
    return MERGE_DIRECTIVES if self.state_patch_mode == "merge" else JSON_PATCH_DIRECTIVES

  def adapt(self, thread_id: str, declarations: Iterable[ToolDeclaration]) -> List[ClientTool]:
    return [ClientTool(thread_id, d, self.streams, self.pending) for d in declarations]

  def state_tool(self, thread_id: str) -> InvokableTool:
    if self.state_patch_mode == "merge":
      return MergeStateTool(thread_id, self.streams, self.states)
    return UpdateStateTool(thread_id, self.streams, self.states)

  def tools_for(
    self, thread_id: str, declarations: Iterable[ToolDeclaration], enable_shared_state: bool = True
  ) -> List[InvokableTool]:
    server_side: List[InvokableTool] = list(self.server_tools)
    if enable_shared_state:
      server_side.append(self.state_tool(thread_id))

    reserved = {t.name for t in server_side}
    client_side = []
    for tool in self.adapt(thread_id, declarations):
      if tool.name in reserved:
        logger.warning(f"Ignoring client tool '{tool.name}', the name is reserved for a server tool")
        continue
      client_side.append(tool)

    return client_side + server_side
