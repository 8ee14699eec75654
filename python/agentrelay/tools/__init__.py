from .protocol import InvokableTool, ToolInvocation
from .tool import Tool
from .adapter import ClientTool, MergeStateTool, ToolAdapter, UpdateStateTool

__all__ = [
  "InvokableTool",
  "ToolInvocation",
  "Tool",
  "ClientTool",
  "MergeStateTool",
  "ToolAdapter",
  "UpdateStateTool",
]
