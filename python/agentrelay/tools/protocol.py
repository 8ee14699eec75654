from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass
class ToolInvocation:
  session_id: str
  tool_call_id: str
  tool_name: str


class InvokableTool(Protocol):
  name: str

  async def spec(self) -> dict: ...

  async def invoke(self, json_argument: Optional[str], invocation: ToolInvocation) -> Any: ...
